"""Timestamp helpers.

Subscription dates arrive from the hosted database as ISO 8601 strings and
are handled internally as timezone-aware UTC datetimes. Differences are
computed in whole milliseconds so that countdown arithmetic matches the
dashboard exactly.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional, Union

# Milliseconds in common time units
MILLIS_PER_SECOND = 1000
MILLIS_PER_MINUTE = 60 * MILLIS_PER_SECOND
MILLIS_PER_HOUR = 60 * MILLIS_PER_MINUTE
MILLIS_PER_DAY = 24 * MILLIS_PER_HOUR

TimestampLike = Union[datetime, str, None]


def utcnow() -> datetime:
    """Current wall-clock time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes, convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_timestamp(value: TimestampLike) -> Optional[datetime]:
    """Parse a datetime or ISO 8601 string into an aware UTC datetime.

    Args:
        value: datetime, ISO 8601 string (``Z`` suffix accepted) or None

    Returns:
        Aware UTC datetime, or None for None/empty input

    Raises:
        ValueError: If the string is not a valid ISO 8601 timestamp
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if not isinstance(value, str):
        raise ValueError(f"Unsupported timestamp type: {type(value).__name__}")

    text = value.strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return ensure_utc(datetime.fromisoformat(text))
    except ValueError:
        raise ValueError(f"Invalid ISO 8601 timestamp: '{value}'")


def to_millis(value: datetime) -> int:
    """Convert a datetime to Unix milliseconds."""
    return int(ensure_utc(value).timestamp() * 1000)


def from_millis(millis: int) -> datetime:
    """Convert Unix milliseconds to an aware UTC datetime."""
    return datetime.fromtimestamp(millis / 1000, tz=timezone.utc)


def diff_millis(end: datetime, start: datetime) -> int:
    """Whole milliseconds from ``start`` to ``end`` (floor, may be negative)."""
    return (ensure_utc(end) - ensure_utc(start)) // timedelta(milliseconds=1)


def isoformat(value: Optional[datetime]) -> Optional[str]:
    """Serialize a datetime the way the hosted database stores it."""
    if value is None:
        return None
    return ensure_utc(value).isoformat()
