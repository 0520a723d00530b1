"""
Calendar helpers shared by the recurrence expander and the forecast composer.

All helpers work on ``datetime.date`` values; there is no time-of-day.
"""

from __future__ import annotations

import calendar
from datetime import date


def last_day_of_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def clamp_day(year: int, month: int, day: int) -> date:
    """Build a date, capping ``day`` at the last day of the month."""
    return date(year, month, min(day, last_day_of_month(year, month)))


def add_months(base: date, delta: int, *, day: int | None = None) -> date:
    """
    Shift ``base`` by ``delta`` calendar months.

    The resulting day is ``day`` (or ``base.day``) capped at the length of the
    target month, so Jan 31 + 1 month is Feb 28/29.
    """
    year = base.year + (base.month - 1 + delta) // 12
    month = (base.month - 1 + delta) % 12 + 1
    return clamp_day(year, month, day if day is not None else base.day)


def month_floor(value: date) -> date:
    return date(value.year, value.month, 1)


def month_bounds(value: date) -> tuple[date, date]:
    """First and last day of the month containing ``value``."""
    return month_floor(value), date(value.year, value.month, last_day_of_month(value.year, value.month))


def month_key(value: date) -> str:
    return value.strftime("%Y-%m")


def month_label(value: date) -> str:
    """``March 2024`` style label."""
    return f"{calendar.month_name[value.month]} {value.year}"


def months_between(start: date, end: date) -> int:
    """Whole calendar months from ``start``'s month to ``end``'s month."""
    return (end.year - start.year) * 12 + (end.month - start.month)


def sunday_based_weekday(value: date) -> int:
    """Weekday index with 0 = Sunday .. 6 = Saturday."""
    return (value.weekday() + 1) % 7
