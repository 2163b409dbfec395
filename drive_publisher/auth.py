"""Credential provider that yields an authorized Drive session."""

from __future__ import annotations

import functools
import json
import logging
from pathlib import Path
from typing import Callable, Optional

from google.auth.exceptions import GoogleAuthError, RefreshError
from google.auth.transport.requests import AuthorizedSession, Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow

from .config import Settings
from .errors import AuthFailure
from .token_store import TokenStore

logger = logging.getLogger(__name__)

ConsentFlow = Callable[[InstalledAppFlow], Optional[Credentials]]


def local_server_consent(
    flow: InstalledAppFlow, timeout_seconds: Optional[float] = None
) -> Optional[Credentials]:
    """Open a loopback listener and wait up to ``timeout_seconds`` for browser consent."""
    return flow.run_local_server(
        port=0, access_type="offline", prompt="consent", timeout_seconds=timeout_seconds
    )


class DriveAuthorizer:
    """Load client secrets, reuse cached tokens and fall back to interactive consent."""

    def __init__(
        self,
        settings: Settings,
        store: Optional[TokenStore] = None,
        consent: Optional[ConsentFlow] = None,
    ) -> None:
        self.settings = settings
        self.scopes = settings.drive_scopes
        self._store = store
        self._consent = consent or functools.partial(
            local_server_consent, timeout_seconds=settings.consent_timeout
        )

    def authorize(self, client_secret_path: str) -> AuthorizedSession:
        flow = self._load_flow(client_secret_path)
        store = self._store or TokenStore(
            self.settings.token_cache_path, lock_timeout=self.settings.token_lock_timeout
        )
        try:
            with store.locked():
                credentials = self._cached_credentials(store)
                if credentials is None:
                    credentials = self._run_consent(flow)
                    store.save(
                        self.settings.app_name,
                        self.settings.auth_user_id,
                        json.loads(credentials.to_json()),
                    )
        finally:
            if self._store is None:
                store.close()
        return AuthorizedSession(credentials)

    def _load_flow(self, client_secret_path: str) -> InstalledAppFlow:
        path = Path(client_secret_path).expanduser()
        try:
            return InstalledAppFlow.from_client_secrets_file(str(path), scopes=self.scopes)
        except OSError as exc:
            raise AuthFailure(f"Unable to read client secret file {path}: {exc}") from exc
        except ValueError as exc:
            raise AuthFailure(f"Malformed client secret file {path}: {exc}") from exc

    def _cached_credentials(self, store: TokenStore) -> Optional[Credentials]:
        app_name = self.settings.app_name
        user_id = self.settings.auth_user_id
        info = store.load(app_name, user_id)
        if not info:
            return None
        try:
            credentials = Credentials.from_authorized_user_info(info, self.scopes)
        except ValueError as exc:
            logger.warning("Ignoring cached token for %s/%s: %s", app_name, user_id, exc)
            return None

        if credentials.valid:
            logger.debug("Using cached token for %s/%s", app_name, user_id)
            return credentials
        if not credentials.refresh_token:
            return None

        try:
            credentials.refresh(Request())
        except RefreshError as exc:
            logger.warning("Cached token for %s/%s was rejected: %s", app_name, user_id, exc)
            store.delete(app_name, user_id)
            return None
        except GoogleAuthError as exc:
            raise AuthFailure(f"Unable to refresh cached token: {exc}") from exc

        logger.debug("Refreshed cached token for %s/%s", app_name, user_id)
        store.save(app_name, user_id, json.loads(credentials.to_json()))
        return credentials

    def _run_consent(self, flow: InstalledAppFlow) -> Credentials:
        logger.info("No usable cached token; starting interactive authorization")
        try:
            credentials = self._consent(flow)
        except Exception as exc:  # noqa: BLE001
            raise AuthFailure(f"Interactive authorization did not complete: {exc}") from exc
        if credentials is None:
            raise AuthFailure("Interactive authorization returned no credentials")
        return credentials
