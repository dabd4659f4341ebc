"""
Utils package
"""

from .schedule import (
    add_months,
    clamp_day,
    due_dates_for_month,
    last_day_of_month,
    month_bounds,
    occurrences_in_range,
)

__all__ = [
    "add_months",
    "clamp_day",
    "due_dates_for_month",
    "last_day_of_month",
    "month_bounds",
    "occurrences_in_range",
]
