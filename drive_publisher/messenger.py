"""Matrix messenger that delivers the release notification."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any, Dict, Mapping, Optional
from urllib.parse import quote

import requests

from .config import Settings
from .errors import NotifyFailure, NotifyFailureKind
from .utils import from_epoch_millis

logger = logging.getLogger(__name__)

_LOGIN_FAILURES = {
    400: NotifyFailureKind.CREDENTIALS_REJECTED,
    401: NotifyFailureKind.CREDENTIALS_REJECTED,
    403: NotifyFailureKind.CREDENTIALS_REJECTED,
}
_RECIPIENT_FAILURES = {
    400: NotifyFailureKind.RECIPIENT_NOT_FOUND,
    403: NotifyFailureKind.RECIPIENT_NOT_FOUND,
    404: NotifyFailureKind.RECIPIENT_NOT_FOUND,
}
_SEND_FAILURES = {
    400: NotifyFailureKind.PAYLOAD,
    413: NotifyFailureKind.PAYLOAD,
    403: NotifyFailureKind.RECIPIENT_NOT_FOUND,
}


def _q(value: str) -> str:
    return quote(value, safe="")


class MatrixMessenger:
    """Log in, resolve a direct conversation, send one text message and log out."""

    API = "/_matrix/client/v3"

    def __init__(self, settings: Settings, http: Optional[requests.Session] = None) -> None:
        self.settings = settings
        self.http = http or requests.Session()
        self.base_url = f"{settings.messenger_homeserver}{self.API}"

    def notify(self, login: str, password: str, recipient: str, message: str) -> datetime:
        """Send ``message`` to ``recipient`` and return the server-reported sent time."""
        if not message:
            raise NotifyFailure(
                NotifyFailureKind.PAYLOAD,
                "Refusing to send an empty message: no upload link and no message text",
            )

        session = self._login(login, password)
        token = session["access_token"]
        try:
            own_id = session["user_id"]
            target = self._qualify(recipient, own_id)
            room_id = self._direct_room(token, own_id, target)
            return self._send(token, room_id, message)
        finally:
            self._logout(token)

    def _login(self, login: str, password: str) -> Dict[str, Any]:
        payload = {
            "type": "m.login.password",
            "identifier": {"type": "m.id.user", "user": login},
            "password": password,
            "initial_device_display_name": self.settings.app_name,
        }
        session = self._call("POST", "/login", json=payload, failures=_LOGIN_FAILURES)
        if "access_token" not in session or "user_id" not in session:
            raise NotifyFailure(
                NotifyFailureKind.CREDENTIALS_REJECTED, "Login response carried no access token"
            )
        logger.debug("Logged in to %s as %s", self.settings.messenger_homeserver, session["user_id"])
        return session

    def _logout(self, token: str) -> None:
        try:
            self._call("POST", "/logout", token=token, json={})
        except NotifyFailure as exc:
            logger.warning("Matrix logout failed: %s", exc)

    @staticmethod
    def _qualify(recipient: str, own_id: str) -> str:
        """Turn a bare localpart into a full user id on our own server."""
        if recipient.startswith("@") and ":" in recipient:
            return recipient
        server_name = own_id.split(":", 1)[1] if ":" in own_id else ""
        return f"@{recipient.lstrip('@')}:{server_name}"

    def _direct_room(self, token: str, own_id: str, target: str) -> str:
        self._call("GET", f"/profile/{_q(target)}", token=token, failures=_RECIPIENT_FAILURES)

        account_data_path = f"/user/{_q(own_id)}/account_data/m.direct"
        direct = self._call("GET", account_data_path, token=token, allow_missing=True)
        joined = set(self._call("GET", "/joined_rooms", token=token).get("joined_rooms", []))
        for room_id in direct.get(target, []):
            if room_id in joined:
                logger.debug("Reusing direct room %s for %s", room_id, target)
                return room_id

        created = self._call(
            "POST",
            "/createRoom",
            token=token,
            json={"preset": "trusted_private_chat", "is_direct": True, "invite": [target]},
            failures=_RECIPIENT_FAILURES,
        )
        room_id = created["room_id"]
        logger.info("Created direct room %s with %s", room_id, target)

        direct.setdefault(target, []).append(room_id)
        try:
            self._call("PUT", account_data_path, token=token, json=direct)
        except NotifyFailure as exc:
            logger.warning("Could not record direct room %s: %s", room_id, exc)
        return room_id

    def _send(self, token: str, room_id: str, message: str) -> datetime:
        txn_id = uuid.uuid4().hex
        sent = self._call(
            "PUT",
            f"/rooms/{_q(room_id)}/send/m.room.message/{txn_id}",
            token=token,
            json={"msgtype": "m.text", "body": message},
            failures=_SEND_FAILURES,
        )
        event_id = sent.get("event_id")
        if not event_id:
            raise NotifyFailure(NotifyFailureKind.PAYLOAD, f"Message to {room_id} was not accepted")
        event = self._call("GET", f"/rooms/{_q(room_id)}/event/{_q(event_id)}", token=token)
        if "origin_server_ts" not in event:
            raise NotifyFailure(NotifyFailureKind.CONNECTION, f"Event {event_id} has no timestamp")
        return from_epoch_millis(int(event["origin_server_ts"]))

    def _call(
        self,
        method: str,
        path: str,
        token: str | None = None,
        json: Any = None,
        failures: Mapping[int, NotifyFailureKind] | None = None,
        allow_missing: bool = False,
    ) -> Dict[str, Any]:
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        url = f"{self.base_url}{path}"
        try:
            resp = self.http.request(
                method, url, headers=headers, json=json, timeout=self.settings.http_timeout
            )
        except requests.RequestException as exc:
            raise NotifyFailure(NotifyFailureKind.CONNECTION, f"{method} {path}: {exc}") from exc

        if allow_missing and resp.status_code == 404:
            return {}
        if resp.status_code >= 400:
            logger.error("Matrix request %s %s failed (%s): %s", method, path, resp.status_code, resp.text)
            kind = (failures or {}).get(resp.status_code, NotifyFailureKind.CONNECTION)
            raise NotifyFailure(kind, f"{method} {path} returned {resp.status_code}")
        try:
            return resp.json() if resp.content else {}
        except ValueError as exc:
            raise NotifyFailure(
                NotifyFailureKind.CONNECTION, f"{method} {path} returned invalid JSON"
            ) from exc
