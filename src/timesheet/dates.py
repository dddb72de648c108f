"""Calendar helpers for monthly buckets and working-day targets."""

from __future__ import annotations

import calendar
from datetime import date


WORKDAYS_PER_WEEK = 5


def month_label(year: int, month: int) -> str:
    """Return a bucket label such as `March 2024`."""
    return f"{calendar.month_name[month]} {year}"


def working_days_in_month(year: int, month: int) -> int:
    """Count Monday-to-Friday days in a month."""
    _first_weekday, days = calendar.monthrange(year, month)
    return sum(
        1 for day in range(1, days + 1) if date(year, month, day).weekday() < WORKDAYS_PER_WEEK
    )


def target_hours_for_month(year: int, month: int, hours_per_workday: float) -> float:
    """Return the expected billable hours for a month."""
    return working_days_in_month(year, month) * hours_per_workday


def add_months(year: int, month: int, count: int) -> tuple[int, int]:
    """Shift a `(year, month)` pair by count months."""
    index = year * 12 + (month - 1) + count
    return (index // 12, index % 12 + 1)


def parse_month(value: object) -> int | None:
    """Parse a month number or English month name."""
    if isinstance(value, int) and 1 <= value <= 12:
        return value
    if isinstance(value, float) and value.is_integer():
        return parse_month(int(value))
    if isinstance(value, str):
        text = value.strip().lower()
        if text.isdigit():
            return parse_month(int(text))
        for number in range(1, 13):
            if text in (calendar.month_name[number].lower(), calendar.month_abbr[number].lower()):
                return number
    return None
