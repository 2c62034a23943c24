"""Calendar window helpers.

Month boundaries, range membership and overlap checks, plus the soft date
parser used everywhere a record's date has to be read. A date that cannot
be parsed comes back as ``None`` so the caller can skip that one record
instead of failing the whole calculation.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Any, List, Optional, Tuple

import pandas as pd
from dateutil.relativedelta import relativedelta

DateLike = Any


def parse_date(value: DateLike) -> Optional[date]:
    """Parse a date-like value, returning ``None`` when it is missing or malformed.

    Args:
        value: ``date``, ``datetime``, ``pd.Timestamp`` or ISO-style string

    Returns:
        The calendar date, or ``None``

    Example:
        >>> parse_date('2026-01-31')
        datetime.date(2026, 1, 31)
        >>> parse_date('not a date') is None
        True
    """
    if value is None or value is pd.NaT:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and not value.strip():
        return None
    parsed = pd.to_datetime(value, errors='coerce')
    if parsed is None or pd.isna(parsed):
        return None
    return parsed.date()


def parse_datetime(value: DateLike) -> Optional[datetime]:
    """Parse a timestamp into a naive UTC ``datetime`` (``None`` on failure)."""
    if value is None or value is pd.NaT:
        return None
    if isinstance(value, str) and not value.strip():
        return None
    parsed = pd.to_datetime(value, errors='coerce')
    if parsed is None or pd.isna(parsed):
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.tz_convert('UTC').tz_localize(None)
    return parsed.to_pydatetime()


def utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_utc_naive(value: Optional[datetime]) -> datetime:
    """``value`` as a naive UTC datetime; ``None`` means now. Naive input is taken as UTC."""
    if value is None:
        return utc_now()
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def first_day_of_month(year: int, month: int) -> date:
    return date(year, month, 1)


def days_in_month(year: int, month: int) -> int:
    return pd.Period(year=year, month=month, freq='M').days_in_month


def last_day_of_month(year: int, month: int) -> date:
    return date(year, month, days_in_month(year, month))


def month_boundaries(year: int, month: int) -> Tuple[date, date]:
    """Return ``(first_day, last_day)`` for a calendar month."""
    return first_day_of_month(year, month), last_day_of_month(year, month)


def month_key(value: DateLike) -> Optional[str]:
    """Return the ``YYYY-MM`` key for a date, or ``None`` if it cannot be parsed."""
    parsed = parse_date(value)
    if parsed is None:
        return None
    return f"{parsed.year:04d}-{parsed.month:02d}"


def same_calendar_month(left: DateLike, right: DateLike) -> bool:
    first = parse_date(left)
    second = parse_date(right)
    if first is None or second is None:
        return False
    return (first.year, first.month) == (second.year, second.month)


def is_date_in_range(value: DateLike, start: DateLike, end: DateLike) -> bool:
    """Check whether a date falls inside an inclusive ``[start, end]`` window.

    Any side that cannot be parsed makes the check fail, which excludes the
    record from whatever aggregate is being built.
    """
    day = parse_date(value)
    lower = parse_date(start)
    upper = parse_date(end)
    if day is None or lower is None or upper is None:
        return False
    return lower <= day <= upper


def ranges_overlap(start_a: DateLike, end_a: DateLike, start_b: DateLike, end_b: DateLike) -> bool:
    """Return True when two inclusive date ranges share at least one day."""
    a_start, a_end = parse_date(start_a), parse_date(end_a)
    b_start, b_end = parse_date(start_b), parse_date(end_b)
    if None in (a_start, a_end, b_start, b_end):
        return False
    return a_start <= b_end and b_start <= a_end


def add_months(value: date, months: int) -> date:
    return value + relativedelta(months=months)


def add_weeks(value: date, weeks: int) -> date:
    return value + timedelta(weeks=weeks)


def calendar_months_between(later: date, earlier: date) -> int:
    """Number of calendar-month boundaries between two dates (day of month ignored)."""
    return (later.year - earlier.year) * 12 + (later.month - earlier.month)


def whole_weeks_between(later: date, earlier: date) -> int:
    """Number of complete weeks between two dates, truncated toward zero."""
    days = (later - earlier).days
    weeks = abs(days) // 7
    return weeks if days >= 0 else -weeks


def month_sequence(year: int, month: int, count: int) -> List[Tuple[int, int]]:
    """Return ``count`` consecutive ``(year, month)`` pairs starting at the given month."""
    start = first_day_of_month(year, month)
    months = []
    for offset in range(count):
        current = add_months(start, offset)
        months.append((current.year, current.month))
    return months


def is_past_month(year: int, month: int, today: date) -> bool:
    return (year, month) < (today.year, today.month)


def effective_date(transaction: Any) -> Optional[date]:
    """Return the date a transaction counts against.

    Paid expenses count on their ``paid_date`` when one is recorded;
    unpaid expenses and all income count on their ``date``.
    """
    if getattr(transaction, 'type', None) == 'expense' and getattr(transaction, 'is_paid', False):
        paid = parse_date(getattr(transaction, 'paid_date', None))
        if paid is not None:
            return paid
    return parse_date(getattr(transaction, 'date', None))
