"""
Timestamp helpers

All timestamps are stored as UTC ISO-8601 strings with microsecond precision,
so lexical order in SQLite matches chronological order.
"""

from datetime import datetime, UTC
from typing import Callable, Optional

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(UTC)


def to_iso(value: Optional[datetime]) -> Optional[str]:
    """Normalize a datetime to the stored string form (naive values are taken as UTC)"""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="microseconds")


def from_iso(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def normalize(value: Optional[datetime]) -> Optional[datetime]:
    """Aware UTC datetime truncated to the stored precision"""
    return from_iso(to_iso(value))
