"""
Date utilities for calendar-day and month arithmetic.

All datetimes are naive local times, matching what the local store keeps.
"""

import calendar
from datetime import date, datetime, time, timedelta
from typing import List, Optional, Tuple


def start_of_day(day: date) -> datetime:
    """Midnight at the start of ``day``."""
    return datetime.combine(day, time.min)


def get_day_range(day: date) -> Tuple[datetime, datetime]:
    """
    Get the half-open interval covering one calendar day.

    Returns:
        Tuple of (start, end) where end is midnight of the following day
    """
    start = start_of_day(day)
    return start, start + timedelta(days=1)


def get_month_range(year: int, month: int) -> Tuple[datetime, datetime]:
    """
    Get the half-open interval covering a calendar month.

    Args:
        year: Year (e.g., 2026)
        month: Month (1-12)

    Returns:
        Tuple of (start, end) where end is midnight of the next month's first day

    Raises:
        ValueError: If month is not in valid range (1-12)
    """
    if not 1 <= month <= 12:
        raise ValueError(f"Month must be between 1 and 12, got {month}")

    _, last_day = calendar.monthrange(year, month)
    start = datetime(year, month, 1)
    return start, start + timedelta(days=last_day)


def current_month_range(now: Optional[datetime] = None) -> Tuple[datetime, datetime]:
    now = now or datetime.now()
    return get_month_range(now.year, now.month)


def start_of_year(now: Optional[datetime] = None) -> datetime:
    now = now or datetime.now()
    return datetime(now.year, 1, 1)


def is_same_day(moment: datetime, day: date) -> bool:
    return moment.date() == day


def week_dates(reference: date, first_weekday: int = 0) -> List[date]:
    """
    The seven days of the week containing ``reference``.

    Args:
        reference: Any day within the week
        first_weekday: ``date.weekday()`` number the week starts on
                      (0 = Monday, 6 = Sunday)
    """
    offset = (reference.weekday() - first_weekday) % 7
    start = reference - timedelta(days=offset)
    return [start + timedelta(days=i) for i in range(7)]


def parse_period(period: str) -> Tuple[date, date]:
    """
    Parse a period string into an inclusive (start_date, end_date).

    Supported periods:
    - "today", "yesterday"
    - "this_week" (Monday-based), "this_month", "last_month"
    - "last_7_days", "last_30_days"
    - "ytd" (year to date)

    Raises:
        ValueError: If period is not recognized
    """
    today = date.today()

    if period == "today":
        return today, today

    elif period == "yesterday":
        yesterday = today - timedelta(days=1)
        return yesterday, yesterday

    elif period == "this_week":
        days = week_dates(today)
        return days[0], days[-1]

    elif period == "this_month":
        _, last_day = calendar.monthrange(today.year, today.month)
        return today.replace(day=1), today.replace(day=last_day)

    elif period == "last_month":
        last_day_last_month = today.replace(day=1) - timedelta(days=1)
        return last_day_last_month.replace(day=1), last_day_last_month

    elif period == "last_7_days":
        return today - timedelta(days=7), today

    elif period == "last_30_days":
        return today - timedelta(days=30), today

    elif period == "ytd":
        return today.replace(month=1, day=1), today

    else:
        raise ValueError(f"Unknown period: {period}")
