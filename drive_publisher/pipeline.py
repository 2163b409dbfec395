"""Publication pipeline: authorize, upload, notify, then finalize.

Every stage is attempted only when its own inputs are present and the
stage it depends on produced a result. A failing stage is recorded and
logged, suppresses its dependents, and never aborts the run.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Optional, Protocol

from .config import Settings
from .drive_client import DriveClient
from .errors import (
    AuthFailure,
    FinalizeFailure,
    NotifyFailure,
    NotifyFailureKind,
    PublisherError,
    UploadFailure,
)
from .models import (
    PipelineOutcome,
    PublishRequest,
    RemoteFileRecord,
    Stage,
    StageOutcome,
    StageStatus,
)
from .utils import LOG_TIMESTAMP_FORMAT, format_stamp, utcnow

logger = logging.getLogger(__name__)


class Authorizer(Protocol):
    def authorize(self, client_secret_path: str) -> Any: ...


class Storage(Protocol):
    def upload(self, local_path: str, description: str, folder_id: str = "") -> RemoteFileRecord: ...

    def finalize(
        self, original_local_name: str, file_id: str, sent_at: datetime
    ) -> RemoteFileRecord: ...


class Messenger(Protocol):
    def notify(self, login: str, password: str, recipient: str, message: str) -> datetime: ...


StorageFactory = Callable[[Settings, Any, Callable[[], datetime]], Storage]


def _as_stage_failure(stage: Stage, exc: Exception) -> PublisherError:
    detail = f"unexpected {type(exc).__name__}: {exc}"
    if stage is Stage.AUTHORIZE:
        return AuthFailure(detail)
    if stage is Stage.UPLOAD:
        return UploadFailure(detail)
    if stage is Stage.NOTIFY:
        return NotifyFailure(NotifyFailureKind.CONNECTION, detail)
    return FinalizeFailure(detail)


class Publisher:
    """Run one publish-and-notify traversal under the partial-failure policy."""

    def __init__(
        self,
        settings: Settings,
        authorizer: Authorizer,
        messenger: Messenger,
        storage_factory: StorageFactory = DriveClient,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.settings = settings
        self.authorizer = authorizer
        self.messenger = messenger
        self.storage_factory = storage_factory
        self.clock = clock

    def run(self, request: PublishRequest) -> PipelineOutcome:
        message = request.message
        session = None
        storage: Optional[Storage] = None

        if request.wants_upload:
            authorize = self._attempt(
                Stage.AUTHORIZE, self.authorizer.authorize, request.client_secret_file
            )
            session = authorize.value
        else:
            reason = "file path, description or client secret file missing"
            authorize = StageOutcome.skipped(Stage.AUTHORIZE, reason)

        try:
            if session is not None:
                storage = self.storage_factory(self.settings, session, self.clock)
                upload = self._attempt(
                    Stage.UPLOAD,
                    storage.upload,
                    request.file_path,
                    request.description,
                    request.folder_id,
                )
            else:
                upload = StageOutcome.skipped(Stage.UPLOAD, "no authorized session")

            record: Optional[RemoteFileRecord] = upload.value
            if record is not None:
                logger.info("%s uploaded. File ID: %s", request.file_path, record.file_id)
                message = f"{message}\n{self.settings.download_link(record.file_id)}"

            notify = self._notify(request, message, session, upload)
            finalize = self._finalize(request, storage, record, notify)
        finally:
            close = getattr(session, "close", None)
            if callable(close):
                close()

        return PipelineOutcome(
            authorize=authorize,
            upload=upload,
            notify=notify,
            finalize=finalize,
            message=message,
        )

    def _notify(
        self, request: PublishRequest, message: str, session: Any, upload: StageOutcome
    ) -> StageOutcome:
        if not request.wants_notify:
            return StageOutcome.skipped(Stage.NOTIFY, "login, password or recipient missing")
        if session is None:
            return StageOutcome.skipped(Stage.NOTIFY, "no authorized session")
        if self.settings.notify_requires_upload and upload.status is not StageStatus.SUCCEEDED:
            return StageOutcome.skipped(Stage.NOTIFY, "upload did not succeed")

        notify = self._attempt(
            Stage.NOTIFY,
            self.messenger.notify,
            request.login,
            request.password,
            request.recipient,
            message,
        )
        if notify.status is StageStatus.SUCCEEDED:
            sent = format_stamp(notify.value, LOG_TIMESTAMP_FORMAT, self.settings.tzinfo)
            logger.info("Link was sent on %s", sent)
        return notify

    def _finalize(
        self,
        request: PublishRequest,
        storage: Optional[Storage],
        record: Optional[RemoteFileRecord],
        notify: StageOutcome,
    ) -> StageOutcome:
        if notify.status is not StageStatus.SUCCEEDED:
            return StageOutcome.skipped(Stage.FINALIZE, "notification not sent")
        if storage is None or record is None:
            failure = FinalizeFailure("no uploaded file to finalize")
            logger.warning("finalize stage failed: %s", failure)
            return StageOutcome.failed(Stage.FINALIZE, failure)

        finalize = self._attempt(
            Stage.FINALIZE, storage.finalize, request.file_path, record.file_id, notify.value
        )
        if finalize.status is StageStatus.SUCCEEDED:
            logger.info("%s updated. File ID: %s", finalize.value.name, finalize.value.file_id)
        return finalize

    @staticmethod
    def _attempt(stage: Stage, func: Callable[..., Any], *args: Any) -> StageOutcome:
        try:
            value = func(*args)
        except PublisherError as exc:
            logger.warning("%s stage failed: %s", stage.value, exc)
            return StageOutcome.failed(stage, exc)
        except Exception as exc:  # noqa: BLE001
            logger.exception("%s stage raised unexpectedly", stage.value)
            return StageOutcome.failed(stage, _as_stage_failure(stage, exc))
        return StageOutcome.succeeded(stage, value)
