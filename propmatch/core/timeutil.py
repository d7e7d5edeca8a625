from __future__ import annotations

from datetime import datetime, timezone
from typing import Any


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def parse_timestamp(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return as_utc(value)
    if isinstance(value, str) and value.strip():
        return as_utc(datetime.fromisoformat(value.strip().replace("Z", "+00:00")))
    return None


def days_since(value: datetime | None, now: datetime | None = None, default: int = 999) -> int:
    """Whole days elapsed; `default` when the timestamp is unknown."""
    if value is None:
        return default
    current = as_utc(now) if now is not None else utcnow()
    return int((current - as_utc(value)).total_seconds() // 86400)
