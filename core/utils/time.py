"""
Time Utilities

Upstream payloads carry time in several forms:
- Price history: milliseconds since epoch (e.g., 1704110400000)
- Coin listings: ISO-8601 strings (e.g., "2024-01-01T12:00:00.000Z")
- Retry-After headers: delta-seconds ("5") or an HTTP-date

The helpers in this module normalize them into timezone-aware UTC datetimes
or plain second counts.
"""

import math
from datetime import datetime, timezone
from typing import Optional, Union

from dateutil import parser as dateparser


def to_utc_datetime(timestamp: Union[int, float]) -> datetime:
    """
    Convert a timestamp (seconds or milliseconds) to UTC datetime.

    Values above 1e12 are treated as milliseconds, anything else as seconds.

    Args:
        timestamp: Unix timestamp in seconds or milliseconds

    Returns:
        datetime: Timezone-aware datetime object in UTC

    Raises:
        ValueError: If timestamp is negative or invalid

    Examples:
        >>> to_utc_datetime(1704110400000)
        datetime.datetime(2024, 1, 1, 12, 0, tzinfo=datetime.timezone.utc)

        >>> to_utc_datetime(1704110400)
        datetime.datetime(2024, 1, 1, 12, 0, tzinfo=datetime.timezone.utc)
    """
    if timestamp < 0:
        raise ValueError(f"Timestamp cannot be negative: {timestamp}")

    if timestamp > 1e12:
        timestamp = timestamp / 1000.0

    try:
        return datetime.fromtimestamp(timestamp, tz=timezone.utc)
    except (OSError, OverflowError, ValueError) as e:
        raise ValueError(f"Invalid timestamp: {timestamp}. Error: {e}")


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 string into a UTC datetime.

    Returns None for empty or unparseable input; naive values are assumed UTC.

    Example:
        >>> parse_iso_datetime("2024-01-01T12:00:00.000Z")
        datetime.datetime(2024, 1, 1, 12, 0, tzinfo=tzutc())
    """
    if not value:
        return None
    try:
        dt = dateparser.isoparse(value)
    except (ValueError, OverflowError):
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def parse_retry_after(value: Optional[str], now: Optional[datetime] = None) -> Optional[float]:
    """
    Parse a Retry-After header value into seconds.

    Args:
        value: Header value, either delta-seconds or an HTTP-date
        now: Reference time for HTTP-dates (defaults to current UTC time)

    Returns:
        Seconds to wait (never negative), or None if absent, unparseable
        or not finite

    Examples:
        >>> parse_retry_after("5")
        5.0
        >>> parse_retry_after("soon") is None
        True
    """
    if value is None:
        return None

    value = str(value).strip()
    if not value:
        return None

    try:
        seconds = float(value)
    except ValueError:
        pass
    else:
        # "inf", "nan" and "1e400" all parse as floats
        if not math.isfinite(seconds):
            return None
        return max(0.0, seconds)

    try:
        when = dateparser.parse(value)
    except (ValueError, OverflowError):
        return None

    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)

    now = now or current_utc_datetime()
    return max(0.0, (when - now).total_seconds())


def current_utc_datetime() -> datetime:
    """Get current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)
