"""
Calendar arithmetic for recurring rules.

Pure functions only: given a rule's frequency/anchor/window they compute
the dates it falls due. Days past the end of a month are clamped to the
month's last day (day 31 in February -> Feb 28/29).
"""

from __future__ import annotations

import calendar
from datetime import date, timedelta
from typing import Protocol

from financer.core.errors import ValidationError
from financer.models import RecurringFrequency


class ScheduleLike(Protocol):
    frequency: RecurringFrequency
    day_of_week: int | None
    day_of_month: int | None
    start_date: date
    end_date: date | None
    active: bool


def last_day_of_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def clamp_day(year: int, month: int, day: int) -> date:
    return date(year, month, min(day, last_day_of_month(year, month)))


def add_months(year: int, month: int, delta: int) -> tuple[int, int]:
    total = year * 12 + (month - 1) + delta
    return total // 12, total % 12 + 1


def month_bounds(year: int, month: int) -> tuple[date, date]:
    validate_year_month(year, month)
    return date(year, month, 1), date(year, month, last_day_of_month(year, month))


def sunday_based_weekday(value: date) -> int:
    """0=Sunday .. 6=Saturday, the convention stored in ``day_of_week``."""
    return (value.weekday() + 1) % 7


def validate_year_month(year: int, month: int) -> None:
    if not isinstance(year, int) or not isinstance(month, int):
        raise ValidationError("year and month must be integers")
    if year < 1 or year > 9999:
        raise ValidationError(f"Invalid year: {year}")
    if month < 1 or month > 12:
        raise ValidationError(f"Invalid month: {month}")


def validate_anchor(
    frequency: RecurringFrequency | str,
    day_of_week: int | None,
    day_of_month: int | None,
) -> RecurringFrequency:
    """Check the anchor required by ``frequency`` and return the parsed frequency."""
    try:
        freq = RecurringFrequency(frequency)
    except ValueError:
        raise ValidationError(f"Invalid frequency: {frequency!r}") from None

    if freq.anchor == "day_of_week":
        if day_of_week is None or not 0 <= day_of_week <= 6:
            raise ValidationError("day_of_week is required for weekly rules (0-6)")
    elif freq.anchor == "day_of_month":
        if day_of_month is None or not 1 <= day_of_month <= 31:
            raise ValidationError("day_of_month is required for this frequency (1-31)")
    return freq


def _within_window(rule: ScheduleLike, value: date) -> bool:
    if value < rule.start_date:
        return False
    if rule.end_date is not None and value > rule.end_date:
        return False
    return True


def due_dates_for_month(rule: ScheduleLike, year: int, month: int) -> list[date]:
    """Dates in (year, month) on which ``rule`` falls due, ascending."""
    validate_year_month(year, month)
    if not rule.active:
        return []
    freq = validate_anchor(rule.frequency, rule.day_of_week, rule.day_of_month)
    days_in_month = last_day_of_month(year, month)

    candidates: list[date] = []
    if freq is RecurringFrequency.DAILY:
        candidates = [date(year, month, day) for day in range(1, days_in_month + 1)]
    elif freq is RecurringFrequency.WEEKLY:
        first = date(year, month, 1)
        offset = (rule.day_of_week - sunday_based_weekday(first)) % 7  # type: ignore[operator]
        current = first + timedelta(days=offset)
        while current.month == month:
            candidates.append(current)
            current += timedelta(days=7)
    else:
        interval = freq.month_interval or 1
        start = rule.start_date
        months_since_start = (year - start.year) * 12 + (month - start.month)
        if months_since_start >= 0 and months_since_start % interval == 0:
            candidates.append(clamp_day(year, month, rule.day_of_month))  # type: ignore[arg-type]

    return [d for d in candidates if _within_window(rule, d)]


def occurrences_in_range(rule: ScheduleLike, range_start: date, range_end: date) -> list[date]:
    """All due dates of ``rule`` within [range_start, range_end], ascending."""
    if range_end < range_start:
        raise ValidationError("Range end must not be before range start")
    if not rule.active:
        return []

    # Nothing outside the rule's own window can match
    window_start = max(range_start, rule.start_date)
    window_end = range_end if rule.end_date is None else min(range_end, rule.end_date)
    if window_start > window_end:
        return []

    result: list[date] = []
    year, month = window_start.year, window_start.month
    while (year, month) <= (window_end.year, window_end.month):
        for due in due_dates_for_month(rule, year, month):
            if window_start <= due <= window_end:
                result.append(due)
        year, month = add_months(year, month, 1)
    return result
