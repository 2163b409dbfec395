"""Utility helpers shared across modules."""

from __future__ import annotations

from datetime import UTC, datetime, tzinfo

FILE_NAME_TIMESTAMP_FORMAT = "%d-%b-%Y--%H-%M-%S"
LOG_TIMESTAMP_FORMAT = "%Y-%b-%d %H:%M:%S"


def parse_rfc3339(value: str) -> datetime:
    """Convert Drive RFC 3339 strings (with trailing Z) into aware UTC datetimes."""
    return datetime.fromisoformat(value.replace("Z", "+00:00")).astimezone(UTC)


def ensure_utc(dt: datetime) -> datetime:
    """Force a datetime into UTC without altering instant."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def isoformat_utc(dt: datetime) -> str:
    """Return an RFC 3339 string with millisecond precision that Drive accepts."""
    return ensure_utc(dt).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def from_epoch_millis(value: int) -> datetime:
    return datetime.fromtimestamp(value / 1000, tz=UTC)


def format_stamp(dt: datetime, fmt: str, zone: tzinfo = UTC) -> str:
    return ensure_utc(dt).astimezone(zone).strftime(fmt)


def utcnow() -> datetime:
    return datetime.now(tz=UTC)
