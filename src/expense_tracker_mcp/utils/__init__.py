"""
Utility functions for the expense tracker.
"""

from expense_tracker_mcp.utils.date_utils import (
    current_month_range,
    get_day_range,
    get_month_range,
    parse_period,
    week_dates,
)

__all__ = [
    "current_month_range",
    "get_day_range",
    "get_month_range",
    "parse_period",
    "week_dates",
]
