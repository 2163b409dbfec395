"""Failure taxonomy raised by the collaborator clients."""

from __future__ import annotations

from enum import Enum


class PublisherError(Exception):
    """Base class for stage failures."""


class AuthFailure(PublisherError):
    """The storage service session could not be authorized."""


class UploadFailure(PublisherError):
    """The artifact could not be uploaded."""


class FinalizeFailure(PublisherError):
    """The uploaded record could not be renamed after notification."""


class NotifyFailureKind(str, Enum):
    CREDENTIALS_REJECTED = "credentials_rejected"
    RECIPIENT_NOT_FOUND = "recipient_not_found"
    CONNECTION = "connection"
    PAYLOAD = "payload"


class NotifyFailure(PublisherError):
    """The notification message was not delivered."""

    def __init__(self, kind: NotifyFailureKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind

    def __str__(self) -> str:
        return f"{self.kind.value}: {super().__str__()}"
