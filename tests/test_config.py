from __future__ import annotations

from datetime import UTC
from pathlib import Path

import pytest
from pydantic import ValidationError

from drive_publisher.config import Settings


def test_defaults(monkeypatch) -> None:
    for name in ("PUBLISHER_APP_NAME", "DRIVE_SCOPES", "PUBLISHER_TIMEZONE", "PUBLISHER_MIME_TYPE"):
        monkeypatch.delenv(name, raising=False)

    settings = Settings(_env_file=None)

    assert settings.app_name == "Google Drive Publisher"
    assert settings.auth_user_id == "user"
    assert settings.drive_scopes == ["https://www.googleapis.com/auth/drive.file"]
    assert settings.artifact_mime_type == "application/zip"
    assert settings.tzinfo is UTC
    assert settings.token_cache_path.name == "tokens.db"
    assert settings.notify_requires_upload is False
    assert settings.strict is False


def test_reads_environment(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("DRIVE_SCOPES", "scope-a; scope-b,")
    monkeypatch.setenv("PUBLISHER_TOKEN_CACHE_DIR", str(tmp_path))
    monkeypatch.setenv("MESSENGER_HOMESERVER", "https://chat.example.org/")
    monkeypatch.setenv("PUBLISHER_STRICT", "true")

    settings = Settings(_env_file=None)

    assert settings.drive_scopes == ["scope-a", "scope-b"]
    assert settings.token_cache_path == Path(tmp_path) / "tokens.db"
    assert settings.messenger_homeserver == "https://chat.example.org"
    assert settings.strict is True


def test_reads_env_file(tmp_path, monkeypatch) -> None:
    monkeypatch.delenv("PUBLISHER_ARTIFACT_EXTENSION", raising=False)
    env_file = tmp_path / ".env"
    env_file.write_text("PUBLISHER_ARTIFACT_EXTENSION=.apk\nPUBLISHER_MIME_TYPE=\n", encoding="utf-8")

    settings = Settings(_env_file=str(env_file))

    assert settings.artifact_extension == ".apk"
    assert settings.artifact_mime_type == "application/zip"


def test_download_link() -> None:
    settings = Settings(_env_file=None)
    assert settings.download_link("abc") == "https://drive.google.com/uc?export=download&id=abc"


def test_rejects_extension_without_dot() -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, PUBLISHER_ARTIFACT_EXTENSION="zip")


def test_rejects_unknown_timezone() -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, PUBLISHER_TIMEZONE="Not/AZone")


def test_consent_timeout(monkeypatch) -> None:
    monkeypatch.delenv("PUBLISHER_CONSENT_TIMEOUT", raising=False)
    assert Settings(_env_file=None).consent_timeout == 300.0

    monkeypatch.setenv("PUBLISHER_CONSENT_TIMEOUT", "45")
    assert Settings(_env_file=None).consent_timeout == 45.0
