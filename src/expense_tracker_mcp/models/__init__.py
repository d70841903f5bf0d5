"""
Pydantic models for expense tracker data structures.
"""

from expense_tracker_mcp.models.category import DEFAULT_CATEGORIES, Category
from expense_tracker_mcp.models.expense import Expense
from expense_tracker_mcp.models.settings import (
    AppLanguage,
    AppSettings,
    AppTheme,
    BudgetSettings,
    Currency,
    NotificationSettings,
    NumberFormat,
    PrivacySettings,
    UserProfile,
    WeekStart,
)

__all__ = [
    "Category",
    "DEFAULT_CATEGORIES",
    "Expense",
    "AppSettings",
    "AppLanguage",
    "AppTheme",
    "BudgetSettings",
    "Currency",
    "NotificationSettings",
    "NumberFormat",
    "PrivacySettings",
    "UserProfile",
    "WeekStart",
]
