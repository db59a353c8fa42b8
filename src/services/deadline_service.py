"""Deadline Service - edit deadlines and delivery date policy.

Pure functions, no database access. Every date-related mutation (menu
planning, portal date selection, admin delivery dates) consults this module
first.

Calendar weeks run Sunday through Saturday. Edits for any date in a week
close at 23:59:59 local time on the Saturday immediately before that week
begins.

Usage:
    from src.services.deadline_service import compute_deadline, is_editable

    deadline = compute_deadline(date(2024, 6, 5))  # 2024-06-01 23:59:59
    is_editable(date(2024, 6, 5), now=datetime(2024, 6, 1, 12, 0))  # True
"""

from datetime import date, datetime, time, timedelta
from typing import Iterable, Iterator, List, Optional, Union

from src.services.exceptions import DeadlinePassedError, SpacingError, ValidationError
from src.utils.constants import (
    CANDIDATE_HORIZON_DAYS,
    DEADLINE_HOUR,
    DEADLINE_MINUTE,
    DEADLINE_SECOND,
    FREQUENCY_BIWEEKLY,
    MIN_BIWEEKLY_GAP_DAYS,
    WEEKDAY_INDEX,
)
from src.utils.datetime_utils import local_now, to_date, week_bounds

DEADLINE_TIME = time(DEADLINE_HOUR, DEADLINE_MINUTE, DEADLINE_SECOND)


def parse_date(value) -> date:
    """Parse a date, datetime or YYYY-MM-DD string.

    Raises:
        ValidationError: If the value is empty or not a valid date
    """
    if value is None or value == "":
        raise ValidationError(["Date is required"])
    try:
        return to_date(value)
    except (TypeError, ValueError):
        raise ValidationError([f"Invalid date: {value!r}"])


def weekday_index(value: Union[int, str]) -> int:
    """Return the Python weekday number (Monday == 0) for a name or number.

    Accepts full names and three-letter abbreviations, case-insensitive.

    Raises:
        ValidationError: If the value is not a weekday
    """
    if isinstance(value, int):
        if 0 <= value <= 6:
            return value
        raise ValidationError([f"Weekday index out of range: {value}"])

    text = str(value or "").strip().lower()
    if text in WEEKDAY_INDEX:
        return WEEKDAY_INDEX[text]
    for name, idx in WEEKDAY_INDEX.items():
        if len(text) >= 3 and name.startswith(text):
            return idx
    raise ValidationError([f"Unknown weekday: {value!r}"])


def _naive_local(now: Optional[datetime]) -> datetime:
    if now is None:
        return local_now()
    if now.tzinfo is not None:
        # Deadlines are local wall-clock times
        return now.astimezone().replace(tzinfo=None)
    return now


def compute_deadline(target_date=None, today=None) -> datetime:
    """Return the edit deadline for a delivery date.

    Args:
        target_date: Delivery date. When omitted, the deadline is the
            Saturday that ends the current week.
        today: Reference date for the omitted-target case (defaults to the
            local date)

    Returns:
        Naive local datetime at Saturday 23:59:59

    Examples:
        >>> compute_deadline(date(2024, 6, 3))  # Monday
        datetime.datetime(2024, 6, 1, 23, 59, 59)
        >>> compute_deadline(date(2024, 6, 2))  # Sunday starts the week
        datetime.datetime(2024, 6, 1, 23, 59, 59)
        >>> compute_deadline(today=date(2024, 6, 3))
        datetime.datetime(2024, 6, 8, 23, 59, 59)
    """
    if target_date is None:
        reference = to_date(today) if today is not None else local_now().date()
        _, saturday = week_bounds(reference)
        return datetime.combine(saturday, DEADLINE_TIME)

    sunday, _ = week_bounds(parse_date(target_date))
    return datetime.combine(sunday - timedelta(days=1), DEADLINE_TIME)


def is_editable(target_date, now: Optional[datetime] = None) -> bool:
    """True iff now is strictly before the deadline for target_date."""
    return _naive_local(now) < compute_deadline(target_date)


def require_editable(target_date, now: Optional[datetime] = None) -> None:
    """Raise DeadlinePassedError when target_date can no longer be edited."""
    target = parse_date(target_date)
    deadline = compute_deadline(target)
    if not _naive_local(now) < deadline:
        raise DeadlinePassedError(target, deadline)


def validate_spacing(
    dates: Iterable,
    frequency: str = FREQUENCY_BIWEEKLY,
    min_days: int = MIN_BIWEEKLY_GAP_DAYS,
) -> List[date]:
    """Validate the spacing of a client's delivery dates.

    Only biweekly clients are constrained: every adjacent pair in sorted
    order must be at least min_days apart. Weekly clients and single dates
    always pass.

    Args:
        dates: Dates or ISO strings (duplicates collapse)
        frequency: Client frequency ("weekly" or "biweekly")
        min_days: Minimum gap in days

    Returns:
        The de-duplicated dates in ascending order

    Raises:
        SpacingError: Listing every offending adjacent pair
        ValidationError: If a value is not a date
    """
    ordered = sorted({parse_date(d) for d in dates})
    if frequency != FREQUENCY_BIWEEKLY or len(ordered) < 2:
        return ordered

    offending = [
        (earlier, later)
        for earlier, later in zip(ordered, ordered[1:])
        if (later - earlier).days < min_days
    ]
    if offending:
        raise SpacingError(offending, min_days)
    return ordered


def enumerate_candidates(
    start_date,
    target_weekday,
    exclude: Iterable = (),
    count: int = 1,
    horizon_days: int = CANDIDATE_HORIZON_DAYS,
) -> Iterator[date]:
    """Lazily yield up to count dates falling on target_weekday.

    Candidates start at start_date (inclusive) and stop once they pass
    start_date + horizon_days. Excluded dates are skipped. Yields fewer
    than count when the horizon runs out; never raises for that.

    Args:
        start_date: First date considered
        target_weekday: Weekday name or number (Monday == 0)
        exclude: Dates or ISO strings to skip (blocked or already taken)
        count: Maximum number of dates to yield
        horizon_days: Search window length in days

    Yields:
        Matching dates in ascending order
    """
    start = parse_date(start_date)
    weekday = weekday_index(target_weekday)
    excluded = {parse_date(d) for d in exclude}
    last = start + timedelta(days=horizon_days)

    current = start + timedelta(days=(weekday - start.weekday()) % 7)
    produced = 0
    while produced < count and current <= last:
        if current not in excluded:
            yield current
            produced += 1
        current += timedelta(days=7)
