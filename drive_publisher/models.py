"""Typed containers shared across the pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Sequence

from .errors import PublisherError
from .utils import parse_rfc3339


@dataclass(frozen=True)
class PublishRequest:
    """One publish-and-notify invocation; blank fields count as absent."""

    file_path: str = ""
    description: str = ""
    client_secret_file: str = ""
    folder_id: str = ""
    login: str = ""
    password: str = ""
    recipient: str = ""
    message: str = ""

    @classmethod
    def from_args(cls, args: Sequence[str]) -> "PublishRequest":
        """Map positional arguments in declaration order, ignoring extras."""
        names = [item.name for item in fields(cls)]
        return cls(**dict(zip(names, args)))

    @property
    def wants_upload(self) -> bool:
        return bool(self.file_path and self.description and self.client_secret_file)

    @property
    def wants_notify(self) -> bool:
        return bool(self.login and self.password and self.recipient)


@dataclass
class RemoteFileRecord:
    """Drive file resource as returned by create/update calls."""

    file_id: str
    name: str
    description: Optional[str] = None
    mime_type: Optional[str] = None
    created: Optional[datetime] = None
    modified: Optional[datetime] = None
    parents: list[str] = field(default_factory=list)

    @classmethod
    def from_api(cls, raw: dict[str, Any]) -> "RemoteFileRecord":
        created = raw.get("createdTime")
        modified = raw.get("modifiedTime")
        return cls(
            file_id=raw["id"],
            name=raw.get("name", ""),
            description=raw.get("description"),
            mime_type=raw.get("mimeType"),
            created=parse_rfc3339(created) if created else None,
            modified=parse_rfc3339(modified) if modified else None,
            parents=raw.get("parents") or [],
        )


class Stage(str, Enum):
    AUTHORIZE = "authorize"
    UPLOAD = "upload"
    NOTIFY = "notify"
    FINALIZE = "finalize"


class StageStatus(str, Enum):
    SUCCEEDED = "succeeded"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class StageOutcome:
    """What happened to a single stage."""

    stage: Stage
    status: StageStatus
    value: Any = None
    error: Optional[PublisherError] = None
    reason: Optional[str] = None

    @classmethod
    def skipped(cls, stage: Stage, reason: str) -> "StageOutcome":
        return cls(stage=stage, status=StageStatus.SKIPPED, reason=reason)

    @classmethod
    def failed(cls, stage: Stage, error: PublisherError) -> "StageOutcome":
        return cls(stage=stage, status=StageStatus.FAILED, error=error, reason=str(error))

    @classmethod
    def succeeded(cls, stage: Stage, value: Any) -> "StageOutcome":
        return cls(stage=stage, status=StageStatus.SUCCEEDED, value=value)


@dataclass
class PipelineOutcome:
    """Per-stage result of one run plus the text that was (or would be) sent."""

    authorize: StageOutcome
    upload: StageOutcome
    notify: StageOutcome
    finalize: StageOutcome
    message: str = ""

    @property
    def stages(self) -> list[StageOutcome]:
        return [self.authorize, self.upload, self.notify, self.finalize]

    @property
    def failed_stages(self) -> list[Stage]:
        return [item.stage for item in self.stages if item.status is StageStatus.FAILED]

    @property
    def succeeded(self) -> bool:
        return not self.failed_stages

    def summary(self) -> str:
        return " ".join(f"{item.stage.value}={item.status.value}" for item in self.stages)
