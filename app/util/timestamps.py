"""Timestamp helpers: the database stores UTC as "YYYY-MM-DD HH:MM:SS"."""
from __future__ import annotations

from datetime import UTC, datetime

DB_FORMAT = "%Y-%m-%d %H:%M:%S"


def utc_now() -> datetime:
    return datetime.now(UTC)


def to_db(dt: datetime) -> str:
    """Format an aware datetime as UTC database text (naive values are taken as UTC)."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC).strftime(DB_FORMAT)


def from_db(value: str) -> datetime:
    return datetime.strptime(value, DB_FORMAT).replace(tzinfo=UTC)
