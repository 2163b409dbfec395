from __future__ import annotations

import json
from datetime import UTC, datetime
from typing import Any, Callable

import pytest
import requests

from drive_publisher.config import Settings
from drive_publisher.errors import AuthFailure
from drive_publisher.models import RemoteFileRecord


class FakeResponse:
    def __init__(self, status_code: int = 200, payload: Any = None) -> None:
        self.status_code = status_code
        self._payload = payload
        self.text = json.dumps(payload) if payload is not None else ""
        self.content = self.text.encode("utf-8")

    def json(self) -> Any:
        if self._payload is None:
            raise ValueError("no body")
        return self._payload

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error", response=self)


class FakeDriveSession:
    """Stands in for an authorized requests session talking to Drive."""

    def __init__(self, file_ids: list[str] | None = None) -> None:
        self.file_ids = list(file_ids or ["file-1"])
        self.calls: list[dict[str, Any]] = []
        self.records: dict[str, dict[str, Any]] = {}
        self.uploaded: list[dict[str, Any]] = []
        self.fail_with: dict[str, FakeResponse | Exception] = {}
        self.closed = False

    def _failure(self, method: str) -> FakeResponse | None:
        failure = self.fail_with.get(method)
        if isinstance(failure, Exception):
            raise failure
        return failure

    def post(self, url, params=None, headers=None, data=None, timeout=None):
        body = data if isinstance(data, bytes) else b"".join(data)
        self.calls.append(
            {
                "method": "POST",
                "url": url,
                "params": params,
                "headers": headers,
                "body": data,
                "data": body,
            }
        )
        failure = self._failure("POST")
        if failure is not None:
            return failure
        metadata = json.loads(body.split(b"\r\n")[3])
        self.uploaded.append(metadata)
        file_id = self.file_ids.pop(0)
        record = {"id": file_id, **metadata}
        self.records[file_id] = record
        return FakeResponse(200, record)

    def patch(self, url, params=None, json=None, timeout=None):
        self.calls.append({"method": "PATCH", "url": url, "params": params, "json": json})
        failure = self._failure("PATCH")
        if failure is not None:
            return failure
        file_id = url.rsplit("/", 1)[1]
        record = self.records.setdefault(file_id, {"id": file_id})
        record.update(json)
        return FakeResponse(200, dict(record))

    def close(self) -> None:
        self.closed = True


class FakeAuthorizer:
    def __init__(self, session: Any = None, error: Exception | None = None) -> None:
        self.session = session if session is not None else FakeDriveSession()
        self.error = error
        self.calls: list[str] = []

    def authorize(self, client_secret_path: str) -> Any:
        self.calls.append(client_secret_path)
        if self.error is not None:
            raise self.error
        return self.session


class FakeStorage:
    def __init__(self) -> None:
        self.uploads: list[tuple[str, str, str]] = []
        self.finalized: list[tuple[str, str, datetime]] = []
        self.upload_error: Exception | None = None
        self.finalize_error: Exception | None = None
        self._counter = 0

    def upload(self, local_path: str, description: str, folder_id: str = "") -> RemoteFileRecord:
        self.uploads.append((local_path, description, folder_id))
        if self.upload_error is not None:
            raise self.upload_error
        self._counter += 1
        return RemoteFileRecord(file_id=f"id-{self._counter}", name=local_path)

    def finalize(self, original_local_name: str, file_id: str, sent_at: datetime) -> RemoteFileRecord:
        self.finalized.append((original_local_name, file_id, sent_at))
        if self.finalize_error is not None:
            raise self.finalize_error
        return RemoteFileRecord(file_id=file_id, name=f"renamed-{original_local_name}")


class FakeMessenger:
    def __init__(self, sent_at: datetime | None = None, error: Exception | None = None) -> None:
        self.sent_at = sent_at or datetime(2016, 1, 20, 10, 30, 15, tzinfo=UTC)
        self.error = error
        self.sent: list[tuple[str, str, str, str]] = []

    def notify(self, login: str, password: str, recipient: str, message: str) -> datetime:
        self.sent.append((login, password, recipient, message))
        if self.error is not None:
            raise self.error
        return self.sent_at


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        PUBLISHER_TOKEN_CACHE_DIR=tmp_path / "credentials",
        MESSENGER_HOMESERVER="https://matrix.example.org",
        PUBLISHER_HTTP_TIMEOUT=5,
    )


@pytest.fixture
def fake_response() -> type[FakeResponse]:
    return FakeResponse


@pytest.fixture
def drive_session() -> FakeDriveSession:
    return FakeDriveSession()


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def messenger() -> FakeMessenger:
    return FakeMessenger()


@pytest.fixture
def authorizer() -> FakeAuthorizer:
    return FakeAuthorizer()


@pytest.fixture
def make_authorizer() -> type[FakeAuthorizer]:
    return FakeAuthorizer


@pytest.fixture
def failing_authorizer() -> FakeAuthorizer:
    return FakeAuthorizer(error=AuthFailure("consent abandoned"))


@pytest.fixture
def storage_factory(storage) -> Callable[[Settings, Any, Any], FakeStorage]:
    return lambda settings, session, clock: storage
