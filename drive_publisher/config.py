"""Configuration management for the publish-and-notify pipeline."""

from __future__ import annotations

import re
from datetime import UTC, tzinfo as TzInfo
from pathlib import Path
from typing import Sequence
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env early so BaseSettings can pick values up seamlessly.
load_dotenv()

DEFAULT_SCOPES = ["https://www.googleapis.com/auth/drive.file"]


def _split_list(value: str | Sequence[str] | None) -> list[str]:
    """Turn delimiter-separated env strings into cleaned lists."""
    if value is None:
        return []
    if isinstance(value, str):
        items = re.split(r"[;,]", value)
    else:
        items = list(value)
    return [item.strip() for item in items if item.strip()]


class Settings(BaseSettings):
    """App configuration derived from environment variables."""

    app_name: str = Field("Google Drive Publisher", alias="PUBLISHER_APP_NAME")
    auth_user_id: str = Field("user", alias="PUBLISHER_AUTH_USER")
    drive_scopes_raw: str = Field(";".join(DEFAULT_SCOPES), alias="DRIVE_SCOPES")
    token_cache_dir: Path = Field(
        Path.home() / ".credentials" / "google-drive-publisher",
        alias="PUBLISHER_TOKEN_CACHE_DIR",
    )
    token_lock_timeout: float = Field(300.0, alias="PUBLISHER_TOKEN_LOCK_TIMEOUT")
    consent_timeout: float = Field(300.0, alias="PUBLISHER_CONSENT_TIMEOUT")

    artifact_mime_type: str = Field("application/zip", alias="PUBLISHER_MIME_TYPE")
    artifact_extension: str = Field(".zip", alias="PUBLISHER_ARTIFACT_EXTENSION")
    download_link_template: str = Field(
        "https://drive.google.com/uc?export=download&id={file_id}",
        alias="PUBLISHER_LINK_TEMPLATE",
    )
    timezone: str = Field("UTC", alias="PUBLISHER_TIMEZONE")

    drive_api_base: str = Field("https://www.googleapis.com/drive/v3", alias="DRIVE_API_BASE")
    drive_upload_base: str = Field(
        "https://www.googleapis.com/upload/drive/v3", alias="DRIVE_UPLOAD_BASE"
    )
    messenger_homeserver: str = Field("https://matrix.org", alias="MESSENGER_HOMESERVER")
    http_timeout: float = Field(60.0, alias="PUBLISHER_HTTP_TIMEOUT")

    notify_requires_upload: bool = Field(False, alias="PUBLISHER_NOTIFY_REQUIRES_UPLOAD")
    strict: bool = Field(False, alias="PUBLISHER_STRICT")
    log_level: str = Field("INFO", alias="LOG_LEVEL")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator(
        "app_name",
        "auth_user_id",
        "artifact_mime_type",
        "download_link_template",
        "timezone",
        "messenger_homeserver",
        mode="before",
    )
    @classmethod
    def _empty_str_to_default(cls, value, info):
        if isinstance(value, str) and value.strip() == "":
            return cls.model_fields[info.field_name].default
        return value

    @field_validator("artifact_extension")
    @classmethod
    def _validate_extension(cls, value: str) -> str:
        value = value.strip()
        if not value.startswith("."):
            raise ValueError("PUBLISHER_ARTIFACT_EXTENSION must start with '.'")
        return value

    @field_validator("timezone")
    @classmethod
    def _validate_timezone(cls, value: str) -> str:
        if value.upper() == "UTC":
            return "UTC"
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown PUBLISHER_TIMEZONE: {value}") from exc
        return value

    @field_validator("drive_api_base", "drive_upload_base", "messenger_homeserver")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @property
    def drive_scopes(self) -> list[str]:
        """Scopes requested for the Drive authorization."""
        return _split_list(self.drive_scopes_raw) or list(DEFAULT_SCOPES)

    @property
    def token_cache_path(self) -> Path:
        return self.token_cache_dir.expanduser() / "tokens.db"

    @property
    def tzinfo(self) -> TzInfo:
        if self.timezone == "UTC":
            return UTC
        return ZoneInfo(self.timezone)

    def download_link(self, file_id: str) -> str:
        """Resolve the public download URL for an uploaded file."""
        return self.download_link_template.format(file_id=file_id)
