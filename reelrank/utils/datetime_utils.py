"""
Datetime utility functions.
Provides replacements for deprecated datetime functions.
"""

from datetime import datetime
from typing import Optional
import pytz


def utcnow() -> datetime:
    """
    Get current UTC datetime using pytz.UTC.

    Returns:
        Current UTC datetime with pytz timezone information
    """
    return datetime.now(pytz.UTC)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize a datetime to an aware UTC datetime.

    Naive values are assumed to already be UTC (SQLite hands stored
    timestamps back without tzinfo).

    Args:
        value: Datetime to normalize, or None

    Returns:
        Aware UTC datetime, or None if value was None
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return pytz.UTC.localize(value)
    return value.astimezone(pytz.UTC)


def to_local(value: datetime, tz_name: str) -> datetime:
    """
    Convert an aware datetime to the given timezone.

    Naive values are returned unchanged since they already carry a
    local wall-clock time.

    Args:
        value: Datetime to convert
        tz_name: IANA timezone name (e.g. "America/Chicago")

    Returns:
        Datetime expressed in tz_name
    """
    if value.tzinfo is None:
        return value
    return value.astimezone(pytz.timezone(tz_name))


def localize(value: datetime, tz_name: str) -> datetime:
    """
    Attach tz_name to a naive local datetime; aware values pass through.

    Args:
        value: Datetime to localize
        tz_name: IANA timezone name the naive value was recorded in

    Returns:
        Aware datetime
    """
    if value.tzinfo is not None:
        return value
    return pytz.timezone(tz_name).localize(value)


def isoformat_or_none(value: Optional[datetime]) -> Optional[str]:
    """Serialize a datetime as UTC ISO-8601, passing None through."""
    value = ensure_utc(value)
    return value.isoformat() if value else None
