"""Google Drive helper focused on creating and renaming release artifacts."""

from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime, tzinfo
from pathlib import Path
from typing import Any, BinaryIO, Callable, Dict, Iterator

import requests
from requests import Response

from .config import Settings
from .errors import FinalizeFailure, UploadFailure
from .models import RemoteFileRecord
from .utils import FILE_NAME_TIMESTAMP_FORMAT, format_stamp, isoformat_utc, utcnow

logger = logging.getLogger(__name__)

FILE_FIELDS = "id,name,description,mimeType,createdTime,modifiedTime,parents"
CHUNK_SIZE = 256 * 1024


def finalized_name(name: str, sent_at: datetime, extension: str, zone: tzinfo) -> str:
    """Embed the notification time in a file name: build.zip -> build--<stamp>.zip."""
    stamp = format_stamp(sent_at, FILE_NAME_TIMESTAMP_FORMAT, zone)
    if extension and name.endswith(extension):
        return f"{name[: -len(extension)]}--{stamp}{extension}"
    return f"{name}--{stamp}"


class DriveClient:
    """Thin wrapper over the Drive v3 REST API using an authorized session."""

    def __init__(
        self,
        settings: Settings,
        session: requests.Session,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.settings = settings
        self.session = session
        self.clock = clock

    def upload(self, local_path: str, description: str, folder_id: str = "") -> RemoteFileRecord:
        """Create a new file record with metadata and content in one streamed request."""
        path = Path(local_path)
        now = isoformat_utc(self.clock())
        metadata: Dict[str, Any] = {
            "name": path.name,
            "description": description,
            "mimeType": self.settings.artifact_mime_type,
            "createdTime": now,
            "modifiedTime": now,
        }
        if folder_id:
            metadata["parents"] = [folder_id]

        boundary = uuid.uuid4().hex
        url = f"{self.settings.drive_upload_base}/files"
        params = {"uploadType": "multipart", "fields": FILE_FIELDS, "supportsAllDrives": "true"}
        headers = {"Content-Type": f"multipart/related; boundary={boundary}"}

        try:
            with path.open("rb") as content:
                logger.debug("Uploading '%s' to Drive", path.name)
                response = self.session.post(
                    url,
                    params=params,
                    headers=headers,
                    data=self._multipart_body(boundary, metadata, content),
                    timeout=self.settings.http_timeout,
                )
                self._check(response, "upload")
        except requests.RequestException as exc:
            raise UploadFailure(f"Drive upload of {path.name} failed: {exc}") from exc
        except OSError as exc:
            raise UploadFailure(f"Unable to read {local_path}: {exc}") from exc

        return self._to_record(response, UploadFailure)

    def finalize(
        self, original_local_name: str, file_id: str, sent_at: datetime
    ) -> RemoteFileRecord:
        """Rename the record and set its modification time to the notification time."""
        name = finalized_name(
            Path(original_local_name).name,
            sent_at,
            self.settings.artifact_extension,
            self.settings.tzinfo,
        )
        body = {"name": name, "modifiedTime": isoformat_utc(sent_at)}
        url = f"{self.settings.drive_api_base}/files/{file_id}"
        params = {"fields": FILE_FIELDS, "supportsAllDrives": "true"}

        try:
            response = self.session.patch(
                url, params=params, json=body, timeout=self.settings.http_timeout
            )
            self._check(response, "update")
        except requests.RequestException as exc:
            raise FinalizeFailure(f"Drive update of {file_id} failed: {exc}") from exc

        return self._to_record(response, FinalizeFailure)

    def _multipart_body(
        self, boundary: str, metadata: Dict[str, Any], content: BinaryIO
    ) -> Iterator[bytes]:
        """Yield the multipart/related body, reading the artifact in chunks."""
        yield (
            f"--{boundary}\r\n"
            "Content-Type: application/json; charset=UTF-8\r\n\r\n"
            f"{json.dumps(metadata)}\r\n"
            f"--{boundary}\r\n"
            f"Content-Type: {self.settings.artifact_mime_type}\r\n\r\n"
        ).encode("utf-8")
        while chunk := content.read(CHUNK_SIZE):
            yield chunk
        yield f"\r\n--{boundary}--\r\n".encode("utf-8")

    @staticmethod
    def _check(response: Response, action: str) -> None:
        if response.status_code >= 400:
            logger.error("Drive %s failed (%s): %s", action, response.status_code, response.text)
            response.raise_for_status()

    @staticmethod
    def _to_record(response: Response, failure: type) -> RemoteFileRecord:
        try:
            return RemoteFileRecord.from_api(response.json())
        except (ValueError, KeyError) as exc:
            raise failure(f"Unexpected Drive response: {response.text}") from exc
