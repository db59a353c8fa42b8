"""Datetime and calendar utilities.

This module provides:
- Timezone-aware UTC timestamps (replacement for datetime.utcnow())
- ISO date parsing for the YYYY-MM-DD strings used in the data documents
- Sunday-to-Saturday week bounds used by deadlines and weekly reports

Usage:
    from src.utils.datetime_utils import utc_now, week_bounds

    timestamp = utc_now()
    sunday, saturday = week_bounds(date(2024, 6, 5))  # 2024-06-02, 2024-06-08
"""

from datetime import date, datetime, timedelta, timezone
from typing import Tuple, Union

from .constants import WEEKDAY_NAMES

DateLike = Union[date, datetime, str]


def utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime.

    Returns:
        Current UTC datetime with timezone info
    """
    return datetime.now(timezone.utc)


def local_now() -> datetime:
    """Return the current naive local time (deadlines are local wall-clock)."""
    return datetime.now()


def to_date(value: DateLike) -> date:
    """Coerce a date, datetime or ISO string (YYYY-MM-DD) to a date.

    Raises:
        ValueError: If a string is not a valid ISO date
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value).strip()[:10])


def parse_timestamp(value) -> datetime:
    """Parse an ISO timestamp string (accepting a trailing 'Z')."""
    if isinstance(value, datetime):
        return value
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


def day_name(value: DateLike) -> str:
    """Return the English weekday name for a date ("Monday")."""
    return WEEKDAY_NAMES[to_date(value).weekday()]


def week_bounds(value: DateLike) -> Tuple[date, date]:
    """Return (Sunday, Saturday) of the calendar week containing value."""
    d = to_date(value)
    start = d - timedelta(days=(d.weekday() + 1) % 7)
    return start, start + timedelta(days=6)


def to_naive_utc(value: datetime) -> datetime:
    """Convert an aware datetime to naive UTC; naive values are assumed UTC.

    SQLite drops tzinfo on storage, so timestamps are kept naive in UTC to
    stay comparable before and after a round trip.
    """
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)
