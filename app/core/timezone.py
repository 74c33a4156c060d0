"""
Timezone helpers.

Everything is stored and compared in UTC:
- `now_utc()`: current aware datetime
- `to_utc(dt)`: normalise naive/aware datetimes
- `parse_datetime(value)`: read timestamps coming back from the database
- `iso_utc(dt)`: ISO 8601 string for writes
"""

from datetime import datetime, timezone
from typing import Optional, Union


TZ_UTC = timezone.utc


def now_utc() -> datetime:
    """
    Returns the current datetime in UTC (timezone-aware).

    Use for database writes, log timestamps and comparisons
    against stored values.
    """
    return datetime.now(TZ_UTC)


def to_utc(dt: datetime) -> datetime:
    """
    Converts a datetime to UTC.

    Naive datetimes are assumed to already be in UTC.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=TZ_UTC)
    return dt.astimezone(TZ_UTC)


def parse_datetime(value: Union[str, datetime, None]) -> Optional[datetime]:
    """
    Parses a stored timestamp into an aware UTC datetime.

    Accepts datetimes, ISO 8601 strings (with or without a trailing "Z")
    and None. Unparseable strings return None.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return to_utc(value)
    try:
        return to_utc(datetime.fromisoformat(str(value).replace("Z", "+00:00")))
    except ValueError:
        return None


def iso_utc(dt: Optional[datetime] = None) -> str:
    """
    Returns a datetime as an ISO 8601 UTC string.

    Args:
        dt: datetime to format (default: now)
    """
    if dt is None:
        dt = now_utc()
    return to_utc(dt).isoformat()
