"""Shared utility functions.

as_utc:        normalise naive/aware datetimes read back from the database
isoformat:     serialise an optional datetime for JSON payloads
parse_datetime: parse an ISO timestamp from stored snapshot JSON
round_half_up:  dashboard rounding, .5 goes up
"""
import math
from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Return ``value`` as an aware UTC datetime.

    SQLite drops tzinfo on ``DateTime(timezone=True)`` columns, so naive
    values coming back from the database are taken to be UTC already.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def isoformat(value: datetime | None) -> str | None:
    value = as_utc(value)
    return value.isoformat() if value else None


def parse_datetime(value) -> datetime | None:
    """Parse an ISO-8601 string (or pass through a datetime) as aware UTC.

    Returns None for empty/invalid input.
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    try:
        return as_utc(datetime.fromisoformat(str(value)))
    except (ValueError, TypeError):
        return None


def round_half_up(value: float, digits: int = 0):
    """Round with halves going up, the way the dashboards always have.

    ``round()`` rounds halves to even, so 12.5 would come out as 12.
    Returns an int when ``digits`` is 0.
    """
    if digits == 0:
        return math.floor(value + 0.5)
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor
