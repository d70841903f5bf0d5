"""
MCP tool definitions for the expense tracker.

Maps tool calls onto the view adapter and settings store. Tools return
JSON-serializable dicts; a rejected action raises ValueError carrying the
user-facing message from the state's error channel.
"""

from datetime import date, datetime, time
from typing import Any, Dict, List, Optional

from expense_tracker_mcp.core.export import (
    DataExportManager,
    ExportOption,
    generate_export_stats,
)
from expense_tracker_mcp.core.settings_store import SettingsStore
from expense_tracker_mcp.core.view_adapter import ExpenseViewAdapter
from expense_tracker_mcp.models.category import Category
from expense_tracker_mcp.models.expense import Expense
from expense_tracker_mcp.models.settings import (
    AppLanguage,
    AppTheme,
    Currency,
    NumberFormat,
    WeekStart,
)
from expense_tracker_mcp.utils.date_utils import parse_period


def _parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise ValueError(f"Invalid date: {value} (expected YYYY-MM-DD)") from None


def _parse_datetime(value: str) -> datetime:
    """Accept a full ISO timestamp or a bare date (taken as the current time of day)."""
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        day = _parse_date(value)
        return datetime.combine(day, datetime.now().time())


class ExpenseTrackerTools:
    """Collection of MCP tools for managing expenses."""

    def __init__(
        self,
        adapter: ExpenseViewAdapter,
        settings_store: SettingsStore,
        exporter: Optional[DataExportManager] = None,
    ):
        """
        Initialize tools.

        Args:
            adapter: View adapter wrapping the loaded AppState
            settings_store: Store for settings the state does not pass through
            exporter: CSV export manager (default export directory if None)
        """
        self.adapter = adapter
        self.settings_store = settings_store
        self.exporter = exporter or DataExportManager()

    def _fail(self, fallback: str) -> ValueError:
        return ValueError(self.adapter.error_message or fallback)

    def _find_category(self, category_id: str) -> Category:
        category = next((c for c in self.adapter.categories if c.id == category_id), None)
        if category is None:
            raise ValueError(f"Category not found: {category_id}")
        return category

    def _expense_dict(self, expense: Expense) -> Dict[str, Any]:
        data = expense.model_dump(mode="json", exclude={"category"})
        data["category_name"] = expense.category.name if expense.category else None
        data["display_amount"] = self.adapter.format_amount(expense.amount)
        return data

    def get_summary(self) -> Dict[str, Any]:
        """
        Spending overview for the selected date, today and this month.

        Returns:
            Dict with totals, per-category spending for the selected date,
            and budget usage when budgets are set
        """
        adapter = self.adapter
        names = {c.id: c.name for c in adapter.categories}
        spending = sorted(
            (
                {
                    "category_id": category_id,
                    "category": names.get(category_id, "Uncategorized"),
                    "amount": round(amount, 2),
                }
                for category_id, amount in adapter.category_spending_for_selected_date.items()
            ),
            key=lambda x: x["amount"],
            reverse=True,
        )
        top = adapter.top_category_for_selected_date

        return {
            "selected_date": adapter.selected_date.isoformat(),
            "formatted_date": adapter.formatted_date,
            "selected_date_spent": round(adapter.selected_date_spent, 2),
            "today_spent": round(adapter.today_spent, 2),
            "this_month_spent": round(adapter.this_month_spent, 2),
            "display": {
                "selected_date_spent": adapter.format_amount(adapter.selected_date_spent),
                "today_spent": adapter.format_amount(adapter.today_spent),
                "this_month_spent": adapter.format_amount(adapter.this_month_spent),
            },
            "category_spending": spending,
            "top_category": top.name if top else None,
            "budget": {
                "daily_usage": adapter.daily_budget_usage_percentage,
                "monthly_usage": adapter.monthly_budget_usage_percentage,
                "is_daily_budget_exceeded": adapter.is_daily_budget_exceeded,
                "is_budget_exceeded": adapter.is_budget_exceeded,
                "is_budget_near_limit": adapter.is_budget_near_limit,
            },
        }

    async def select_date(self, date: str) -> Dict[str, Any]:
        """Change the selected date and return the new summary."""
        self.adapter.select_date(_parse_date(date))
        return self.get_summary()

    async def refresh(self) -> Dict[str, Any]:
        await self.adapter.refresh_data()
        return {
            "expense_count": len(self.adapter.expenses),
            "category_count": len(self.adapter.categories),
        }

    def list_expenses(
        self,
        period: Optional[str] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        category_id: Optional[str] = None,
        limit: int = 100,
    ) -> Dict[str, Any]:
        """
        List loaded expenses with optional filters.

        Only the most recent window of expenses is held in memory, so very
        old expenses never appear here; use search_expenses to reach them.

        Args:
            period: Period shorthand (today, this_week, this_month, ytd, ...)
            start_date: Filter by date >= this (YYYY-MM-DD)
            end_date: Filter by date <= this (YYYY-MM-DD)
            category_id: Filter by category identifier
            limit: Maximum number of expenses to return

        Returns:
            Dict with expense count, total and list of expenses
        """
        start: Optional[date] = _parse_date(start_date) if start_date else None
        end: Optional[date] = _parse_date(end_date) if end_date else None
        if period:
            start, end = parse_period(period)

        expenses = [
            e
            for e in self.adapter.expenses
            if (start is None or e.date.date() >= start)
            and (end is None or e.date.date() <= end)
            and (category_id is None or e.category_id == category_id)
        ][:limit]

        return {
            "count": len(expenses),
            "total": round(sum(e.amount for e in expenses), 2),
            "expenses": [self._expense_dict(e) for e in expenses],
        }

    async def search_expenses(self, query: str, limit: int = 50) -> Dict[str, Any]:
        """Case-insensitive search over expense names and notes."""
        expenses = (await self.adapter.search_expenses(query))[:limit]
        return {
            "count": len(expenses),
            "expenses": [self._expense_dict(e) for e in expenses],
        }

    async def add_expense(
        self,
        amount: float,
        name: str,
        category_id: str,
        notes: Optional[str] = None,
        date: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Record a new expense.

        Raises:
            ValueError: If the input is rejected or the save fails
        """
        self.adapter.clear_error()
        success = await self.adapter.add_expense(
            amount=float(amount),
            name=name,
            category_id=category_id,
            notes=notes,
            expense_date=_parse_datetime(date) if date else None,
        )
        if not success:
            raise self._fail("Failed to add expense")

        return {
            "success": True,
            "today_spent": round(self.adapter.today_spent, 2),
            "this_month_spent": round(self.adapter.this_month_spent, 2),
        }

    async def delete_expense(self, expense_id: str) -> Dict[str, Any]:
        """
        Delete an expense by identifier.

        Raises:
            ValueError: If the expense is not loaded or the delete fails
        """
        expense = next((e for e in self.adapter.expenses if e.id == expense_id), None)
        if expense is None:
            raise ValueError(f"Expense not found: {expense_id}")

        self.adapter.clear_error()
        if not await self.adapter.delete_expense(expense):
            raise self._fail("Failed to delete expense")
        return {"success": True, "deleted": expense_id}

    async def list_categories(self, include_totals: bool = False) -> Dict[str, Any]:
        """
        List active categories in display order.

        Args:
            include_totals: Add all-time expense count and total per category
        """
        categories = []
        for category in self.adapter.categories:
            data = category.model_dump(mode="json")
            if include_totals:
                state = self.adapter.app_state
                data["expense_count"] = await state.category_expense_count(category)
                data["total_amount"] = round(await state.category_total_amount(category), 2)
            categories.append(data)

        return {"count": len(categories), "categories": categories}

    async def add_category(self, name: str, icon: str, color_hex: str) -> Dict[str, Any]:
        self.adapter.clear_error()
        if not await self.adapter.add_category(name, icon, color_hex):
            raise self._fail("Failed to add category")
        return await self.list_categories()

    async def update_category(
        self,
        category_id: str,
        name: Optional[str] = None,
        icon: Optional[str] = None,
        color_hex: Optional[str] = None,
    ) -> Dict[str, Any]:
        category = self._find_category(category_id)
        self.adapter.clear_error()
        if not await self.adapter.update_category(
            category, name=name, icon=icon, color_hex=color_hex
        ):
            raise self._fail("Failed to update category")
        return await self.list_categories()

    async def delete_category(self, category_id: str) -> Dict[str, Any]:
        """Deactivate a category. Its expenses keep their category link."""
        category = self._find_category(category_id)
        self.adapter.clear_error()
        if not await self.adapter.delete_category(category):
            raise self._fail("Failed to delete category")
        return await self.list_categories()

    async def reorder_categories(self, category_ids: List[str]) -> Dict[str, Any]:
        """
        Set display order to the given identifier sequence.

        Raises:
            ValueError: If the list is not exactly the active categories
        """
        if sorted(category_ids) != sorted(c.id for c in self.adapter.categories):
            raise ValueError("category_ids must list every active category exactly once")

        ordered = [self._find_category(category_id) for category_id in category_ids]
        self.adapter.clear_error()
        if not await self.adapter.reorder_categories(ordered):
            raise self._fail("Failed to reorder categories")
        return await self.list_categories()

    def get_settings(self) -> Dict[str, Any]:
        settings = self.adapter.app_state.user_settings
        data = settings.model_dump(
            mode="json", exclude={"user_profile": {"avatar_image_data"}}
        )
        data["formatted_currency"] = self.settings_store.formatted_currency
        data["formatted_number_format"] = self.settings_store.formatted_number_format
        data["formatted_budget"] = self.settings_store.formatted_budget
        data["app_info"] = self.settings_store.app_info
        return data

    async def update_settings(
        self,
        currency: Optional[str] = None,
        number_format: Optional[str] = None,
        week_start: Optional[str] = None,
        theme: Optional[str] = None,
        language: Optional[str] = None,
        user_name: Optional[str] = None,
        user_email: Optional[str] = None,
        daily_budget: Optional[float] = None,
        monthly_budget: Optional[float] = None,
        budget_enabled: Optional[bool] = None,
        notifications_enabled: Optional[bool] = None,
        daily_reminder: Optional[bool] = None,
        weekly_reports: Optional[bool] = None,
        reminder_time: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Change any subset of settings.

        Enum values are validated before anything is applied, so an unknown
        value leaves settings untouched.

        Raises:
            ValueError: If a value is unknown or rejected by validation
        """
        new_currency = Currency(currency.upper()) if currency else None
        new_number_format = NumberFormat(number_format) if number_format else None
        new_week_start = WeekStart(week_start) if week_start else None
        new_theme = AppTheme(theme) if theme else None
        new_language = AppLanguage(language) if language else None
        new_reminder_time = time.fromisoformat(reminder_time) if reminder_time else None

        store = self.settings_store
        state = self.adapter.app_state
        self.adapter.clear_error()

        if new_currency:
            state.update_currency(new_currency)
        if new_number_format:
            store.update_number_format(new_number_format)
        if new_week_start:
            store.update_week_start(new_week_start)
        if new_theme:
            state.update_theme(new_theme)
        if new_language:
            store.update_language(new_language)
        if user_name is not None:
            store.update_user_name(user_name)
        if user_email is not None:
            store.update_user_email(user_email)
        if daily_budget is not None:
            store.update_daily_budget(float(daily_budget))
        if monthly_budget is not None:
            store.update_monthly_budget(float(monthly_budget))
        if budget_enabled is not None:
            store.toggle_budget_enabled(budget_enabled)

        if any(
            value is not None
            for value in (notifications_enabled, daily_reminder, weekly_reports, new_reminder_time)
        ):
            notification_settings = state.user_settings.notification_settings.model_copy()
            if notifications_enabled is not None:
                notification_settings.is_enabled = notifications_enabled
            if daily_reminder is not None:
                notification_settings.daily_reminder = daily_reminder
            if weekly_reports is not None:
                notification_settings.weekly_reports = weekly_reports
            if new_reminder_time is not None:
                notification_settings.reminder_time = new_reminder_time
            await state.update_notification_settings(notification_settings)

        if self.adapter.error_message:
            raise ValueError(self.adapter.error_message)
        return self.get_settings()

    async def export_csv(self, option: str = "expenses") -> Dict[str, Any]:
        """
        Write a CSV export of the loaded data.

        Args:
            option: expenses, categories, or full

        Raises:
            ValueError: If the option is unknown or the file cannot be written
        """
        export_option = ExportOption(option)
        expenses = self.adapter.expenses
        categories = self.adapter.categories

        path = await self.exporter.export_data(
            export_option,
            expenses,
            categories,
            self.adapter.app_state.user_settings.currency,
        )
        if path is None:
            raise ValueError(self.exporter.error_message.value or "Export failed")

        stats = generate_export_stats(expenses, categories)
        return {"path": str(path), "stats": stats.model_dump(mode="json")}


_PERIOD_DESCRIPTION = (
    "Period shorthand: today, yesterday, this_week, this_month, last_month, "
    "last_7_days, last_30_days, ytd"
)

_DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"


def create_tool_schemas() -> List[Dict[str, Any]]:
    """
    Create MCP tool schemas for all tools.

    Returns:
        List of tool schema definitions
    """
    return [
        {
            "name": "get_summary",
            "description": (
                "Spending overview: totals for the selected date, today and "
                "this month, per-category spending for the selected date, and "
                "budget usage."
            ),
            "inputSchema": {"type": "object", "properties": {}},
        },
        {
            "name": "select_date",
            "description": "Change the selected date used by the summary.",
            "inputSchema": {
                "type": "object",
                "properties": {
                    "date": {
                        "type": "string",
                        "description": "Date to select (YYYY-MM-DD)",
                        "pattern": _DATE_PATTERN,
                    },
                },
                "required": ["date"],
            },
        },
        {
            "name": "refresh",
            "description": "Reload categories and expenses from the local store.",
            "inputSchema": {"type": "object", "properties": {}},
        },
        {
            "name": "list_expenses",
            "description": (
                "List recent expenses, newest first. Supports date range and "
                "category filters. Use 'period' for common date ranges."
            ),
            "inputSchema": {
                "type": "object",
                "properties": {
                    "period": {"type": "string", "description": _PERIOD_DESCRIPTION},
                    "start_date": {
                        "type": "string",
                        "description": "Start date (YYYY-MM-DD)",
                        "pattern": _DATE_PATTERN,
                    },
                    "end_date": {
                        "type": "string",
                        "description": "End date (YYYY-MM-DD)",
                        "pattern": _DATE_PATTERN,
                    },
                    "category_id": {
                        "type": "string",
                        "description": "Filter by category identifier",
                    },
                    "limit": {
                        "type": "integer",
                        "description": "Maximum number of results (default: 100)",
                        "default": 100,
                    },
                },
            },
        },
        {
            "name": "search_expenses",
            "description": "Case-insensitive search of expense names and notes.",
            "inputSchema": {
                "type": "object",
                "properties": {
                    "query": {"type": "string", "description": "Search query"},
                    "limit": {
                        "type": "integer",
                        "description": "Maximum number of results (default: 50)",
                        "default": 50,
                    },
                },
                "required": ["query"],
            },
        },
        {
            "name": "add_expense",
            "description": (
                "Record an expense. Amount must be positive and at most "
                "1,000,000; the date may not be before the start of this year "
                "or after tomorrow."
            ),
            "inputSchema": {
                "type": "object",
                "properties": {
                    "amount": {"type": "number", "description": "Amount spent"},
                    "name": {"type": "string", "description": "Expense name"},
                    "category_id": {
                        "type": "string",
                        "description": "Category identifier (see list_categories)",
                    },
                    "notes": {"type": "string", "description": "Optional notes"},
                    "date": {
                        "type": "string",
                        "description": "Date (YYYY-MM-DD) or ISO timestamp; default now",
                    },
                },
                "required": ["amount", "name", "category_id"],
            },
        },
        {
            "name": "delete_expense",
            "description": "Delete an expense by identifier.",
            "inputSchema": {
                "type": "object",
                "properties": {
                    "expense_id": {"type": "string", "description": "Expense identifier"},
                },
                "required": ["expense_id"],
            },
        },
        {
            "name": "list_categories",
            "description": "List active categories in display order.",
            "inputSchema": {
                "type": "object",
                "properties": {
                    "include_totals": {
                        "type": "boolean",
                        "description": "Include all-time expense count and total",
                        "default": False,
                    },
                },
            },
        },
        {
            "name": "add_category",
            "description": "Create a category. Names must be unique (case-insensitive).",
            "inputSchema": {
                "type": "object",
                "properties": {
                    "name": {"type": "string", "description": "Category name"},
                    "icon": {"type": "string", "description": "Icon token"},
                    "color_hex": {
                        "type": "string",
                        "description": "Color as hex (RGB, RRGGBB or AARRGGBB)",
                    },
                },
                "required": ["name", "icon", "color_hex"],
            },
        },
        {
            "name": "update_category",
            "description": "Change name, icon or color of a category.",
            "inputSchema": {
                "type": "object",
                "properties": {
                    "category_id": {"type": "string", "description": "Category identifier"},
                    "name": {"type": "string", "description": "New name"},
                    "icon": {"type": "string", "description": "New icon token"},
                    "color_hex": {"type": "string", "description": "New color as hex"},
                },
                "required": ["category_id"],
            },
        },
        {
            "name": "delete_category",
            "description": (
                "Deactivate a category. Existing expenses keep their category."
            ),
            "inputSchema": {
                "type": "object",
                "properties": {
                    "category_id": {"type": "string", "description": "Category identifier"},
                },
                "required": ["category_id"],
            },
        },
        {
            "name": "reorder_categories",
            "description": "Set the display order of all active categories.",
            "inputSchema": {
                "type": "object",
                "properties": {
                    "category_ids": {
                        "type": "array",
                        "items": {"type": "string"},
                        "description": "Every active category identifier in the new order",
                    },
                },
                "required": ["category_ids"],
            },
        },
        {
            "name": "get_settings",
            "description": "Get the current app settings.",
            "inputSchema": {"type": "object", "properties": {}},
        },
        {
            "name": "update_settings",
            "description": "Change any subset of app settings.",
            "inputSchema": {
                "type": "object",
                "properties": {
                    "currency": {
                        "type": "string",
                        "enum": [c.value for c in Currency],
                    },
                    "number_format": {
                        "type": "string",
                        "enum": [f.value for f in NumberFormat],
                    },
                    "week_start": {
                        "type": "string",
                        "enum": [w.value for w in WeekStart],
                    },
                    "theme": {"type": "string", "enum": [t.value for t in AppTheme]},
                    "language": {
                        "type": "string",
                        "enum": [lang.value for lang in AppLanguage],
                    },
                    "user_name": {"type": "string"},
                    "user_email": {
                        "type": "string",
                        "description": "Email address; empty string clears it",
                    },
                    "daily_budget": {"type": "number"},
                    "monthly_budget": {"type": "number"},
                    "budget_enabled": {"type": "boolean"},
                    "notifications_enabled": {"type": "boolean"},
                    "daily_reminder": {"type": "boolean"},
                    "weekly_reports": {"type": "boolean"},
                    "reminder_time": {
                        "type": "string",
                        "description": "Reminder time of day (HH:MM)",
                    },
                },
            },
        },
        {
            "name": "export_csv",
            "description": "Write loaded expenses and/or categories to a CSV file.",
            "inputSchema": {
                "type": "object",
                "properties": {
                    "option": {
                        "type": "string",
                        "enum": [o.value for o in ExportOption],
                        "default": "expenses",
                    },
                },
            },
        },
    ]
