"""
View adapter over AppState.

Passes data and actions straight through and adds the UI-only flags that
say which sheet or screen is visible. The only behavior of its own: every
new error hides the transient sheets. The profile screen stays open because
it is a full screen, not an overlay.
"""

import logging
from datetime import date, datetime
from enum import Enum
from typing import Callable, Dict, List, Optional

from expense_tracker_mcp.core.app_state import AppState
from expense_tracker_mcp.models.category import Category
from expense_tracker_mcp.models.expense import Expense

logger = logging.getLogger(__name__)

BUDGET_NEAR_LIMIT_RATIO = 0.75


class AppScreen(str, Enum):
    HOME = "home"
    PROFILE = "profile"

    @property
    def description(self) -> str:
        return {AppScreen.HOME: "Home", AppScreen.PROFILE: "Profile"}[self]


class ExpenseViewAdapter:
    """Thin UI-facing wrapper; AppState stays the owner of all data."""

    def __init__(self, app_state: AppState):
        self.app_state = app_state

        self.showing_add_expense = False
        self.showing_profile = False
        self.showing_today_expenses = False
        self.showing_all_expenses = False
        self.show_full_stats = False
        self.showing_search = False
        self.showing_quick_actions = False

        self._unsubscribe: Optional[Callable[[], None]] = None
        self.setup_ui_reactions()

    def setup_ui_reactions(self) -> None:
        if self._unsubscribe is None:
            self._unsubscribe = self.app_state.subscribe(
                "error_message", self._on_error_message
            )

    def _on_error_message(self, message: Optional[str]) -> None:
        if message is None:
            return
        self.hide_add_expense()
        self.hide_search()
        self.hide_quick_actions()

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    @property
    def expenses(self) -> List[Expense]:
        return self.app_state.expenses

    @property
    def categories(self) -> List[Category]:
        return self.app_state.categories

    @property
    def selected_date(self) -> date:
        return self.app_state.selected_date

    @property
    def today_spent(self) -> float:
        return self.app_state.today_spent

    @property
    def this_month_spent(self) -> float:
        return self.app_state.this_month_spent

    @property
    def selected_date_spent(self) -> float:
        return self.app_state.selected_date_spent

    @property
    def category_spending_for_selected_date(self) -> Dict[str, float]:
        return self.app_state.category_spending

    @property
    def recent_expenses(self) -> List[Expense]:
        return self.app_state.recent_expenses

    @property
    def recent_expenses_for_home(self) -> List[Expense]:
        return self.app_state.recent_expenses_for_home

    @property
    def selected_date_expenses(self) -> List[Expense]:
        return self.app_state.selected_date_expenses

    @property
    def formatted_date(self) -> str:
        return self.app_state.formatted_date

    @property
    def formatted_day_of_week(self) -> str:
        return self.app_state.formatted_day_of_week

    @property
    def week_dates(self) -> List[date]:
        return self.app_state.week_dates

    @property
    def is_loading(self) -> bool:
        return self.app_state.is_loading

    @property
    def error_message(self) -> Optional[str]:
        return self.app_state.error_message

    @property
    def showing_error_alert(self) -> bool:
        return self.app_state.error_message is not None

    @property
    def has_expenses_for_selected_date(self) -> bool:
        return bool(self.selected_date_expenses)

    @property
    def has_any_expenses(self) -> bool:
        return bool(self.expenses)

    @property
    def has_categories(self) -> bool:
        return bool(self.categories)

    @property
    def current_screen(self) -> AppScreen:
        return AppScreen.PROFILE if self.showing_profile else AppScreen.HOME

    async def load_initial_data(self) -> None:
        await self.app_state.load_initial_data()

    async def refresh_data(self) -> None:
        await self.app_state.refresh_data()

    def select_date(self, day: date) -> None:
        self.app_state.select_date(day)

    async def add_expense(
        self,
        amount: float,
        name: str,
        category_id: str,
        notes: Optional[str] = None,
        expense_date: Optional[datetime] = None,
    ) -> bool:
        success = await self.app_state.add_expense(
            amount=amount,
            name=name,
            category_id=category_id,
            notes=notes,
            expense_date=expense_date,
        )
        if success:
            self.showing_add_expense = False
        return success

    async def delete_expense(self, expense: Expense) -> bool:
        return await self.app_state.delete_expense(expense)

    async def search_expenses(self, query: str) -> List[Expense]:
        return await self.app_state.search_expenses(query)

    async def add_category(self, name: str, icon: str, color_hex: str) -> bool:
        return await self.app_state.add_category(name, icon, color_hex)

    async def update_category(
        self,
        category: Category,
        name: Optional[str] = None,
        icon: Optional[str] = None,
        color_hex: Optional[str] = None,
    ) -> bool:
        return await self.app_state.update_category(
            category, name=name, icon=icon, color_hex=color_hex
        )

    async def delete_category(self, category: Category) -> bool:
        return await self.app_state.delete_category(category)

    async def reorder_categories(self, categories: List[Category]) -> bool:
        return await self.app_state.reorder_categories(categories)

    def clear_error(self) -> None:
        self.app_state.clear_error()

    def format_amount(self, amount: float) -> str:
        return self.app_state.format_amount(amount)

    def day_abbreviation(self, day: date) -> str:
        return self.app_state.day_abbreviation(day)

    def day_number(self, day: date) -> str:
        return self.app_state.day_number(day)

    def is_today(self, day: date) -> bool:
        return self.app_state.is_today(day)

    def is_selected(self, day: date) -> bool:
        return self.app_state.is_selected(day)

    def show_add_expense(self) -> None:
        self.showing_add_expense = True

    def hide_add_expense(self) -> None:
        self.showing_add_expense = False

    def show_profile(self) -> None:
        self.showing_profile = True
        logger.debug("Showing profile screen")

    def hide_profile(self) -> None:
        self.showing_profile = False
        logger.debug("Hiding profile screen")

    def show_today_expenses(self) -> None:
        self.showing_today_expenses = True

    def hide_today_expenses(self) -> None:
        self.showing_today_expenses = False

    def show_all_expenses(self) -> None:
        self.showing_all_expenses = True

    def hide_all_expenses(self) -> None:
        self.showing_all_expenses = False

    def show_stats(self) -> None:
        self.show_full_stats = True

    def hide_stats(self) -> None:
        self.show_full_stats = False

    def show_search(self) -> None:
        self.showing_search = True

    def hide_search(self) -> None:
        self.showing_search = False

    def show_quick_actions(self) -> None:
        self.showing_quick_actions = True

    def hide_quick_actions(self) -> None:
        self.showing_quick_actions = False

    def expenses_for_category(self, category: Category) -> List[Expense]:
        return [e for e in self.expenses if e.category_id == category.id]

    def total_for_category(self, category: Category) -> float:
        return sum(e.amount for e in self.expenses_for_category(category))

    def expense_count_for_category(self, category: Category) -> int:
        return len(self.expenses_for_category(category))

    @property
    def top_category_for_selected_date(self) -> Optional[Category]:
        spending = self.category_spending_for_selected_date
        if not spending:
            return None
        top_id = max(spending, key=spending.__getitem__)
        return next((c for c in self.categories if c.id == top_id), None)

    @property
    def daily_budget_usage_percentage(self) -> Optional[float]:
        """Today's spending as a fraction of the daily budget, or None."""
        daily_budget = self.app_state.user_settings.budget_settings.daily_budget
        if not daily_budget or daily_budget <= 0:
            return None
        return self.today_spent / daily_budget

    @property
    def monthly_budget_usage_percentage(self) -> Optional[float]:
        """
        This month's spending as a fraction of the monthly budget.

        Not capped at 1.0, so values above it mean the budget is exceeded.
        None when no monthly budget is set.
        """
        monthly_budget = self.app_state.user_settings.budget_settings.monthly_budget
        if not monthly_budget or monthly_budget <= 0:
            return None
        return self.this_month_spent / monthly_budget

    @property
    def is_daily_budget_exceeded(self) -> bool:
        percentage = self.daily_budget_usage_percentage
        return percentage is not None and percentage > 1.0

    @property
    def is_budget_exceeded(self) -> bool:
        percentage = self.monthly_budget_usage_percentage
        return percentage is not None and percentage > 1.0

    @property
    def is_budget_near_limit(self) -> bool:
        percentage = self.monthly_budget_usage_percentage
        return percentage is not None and percentage > BUDGET_NEAR_LIMIT_RATIO
