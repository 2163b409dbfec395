"""SQLite-backed cache for authorized-user tokens."""

from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Iterator, Optional

import sqlite_utils

from .errors import AuthFailure

logger = logging.getLogger(__name__)


class TokenStore:
    """Store serialized credentials keyed by application name and user id."""

    TABLE = "tokens"

    def __init__(self, db_path: Path, lock_timeout: float = 300.0) -> None:
        self.db_path = db_path
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(db_path), timeout=lock_timeout, isolation_level=None)
            self.db = sqlite_utils.Database(conn)
            self._ensure_schema()
        except (OSError, sqlite3.Error) as exc:
            raise AuthFailure(f"Token cache {db_path} is not usable: {exc}") from exc

    def _ensure_schema(self) -> None:
        self.db[self.TABLE].create(
            {
                "application_name": str,
                "user_id": str,
                "token": str,
                "updated_at": str,
            },
            pk=("application_name", "user_id"),
            if_not_exists=True,
        )

    @contextmanager
    def locked(self) -> Iterator["TokenStore"]:
        """Hold an exclusive write lock so concurrent runs cannot race on refresh."""
        conn = self.db.conn
        try:
            conn.execute("BEGIN IMMEDIATE")
        except sqlite3.OperationalError as exc:
            raise AuthFailure(f"Token cache {self.db_path} is locked: {exc}") from exc
        try:
            yield self
        except BaseException:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise
        # sqlite-utils commits on its own after writes, which ends the transaction early.
        if conn.in_transaction:
            conn.execute("COMMIT")

    def load(self, application_name: str, user_id: str) -> Optional[dict[str, Any]]:
        rows = self.db[self.TABLE].rows_where(
            "application_name = ? and user_id = ?", [application_name, user_id], limit=1
        )
        for row in rows:
            try:
                return json.loads(row["token"])
            except ValueError:
                logger.warning(
                    "Discarding unreadable cached token for %s/%s", application_name, user_id
                )
                return None
        return None

    def save(self, application_name: str, user_id: str, token: dict[str, Any]) -> None:
        try:
            self.db[self.TABLE].upsert(
                {
                    "application_name": application_name,
                    "user_id": user_id,
                    "token": json.dumps(token),
                    "updated_at": datetime.now(tz=UTC).isoformat(),
                },
                pk=("application_name", "user_id"),
            )
        except sqlite3.Error as exc:
            raise AuthFailure(f"Unable to persist token cache {self.db_path}: {exc}") from exc

    def delete(self, application_name: str, user_id: str) -> None:
        self.db[self.TABLE].delete_where(
            "application_name = ? and user_id = ?", [application_name, user_id]
        )

    def close(self) -> None:
        self.db.conn.close()
