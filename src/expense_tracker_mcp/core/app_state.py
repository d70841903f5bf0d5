"""
Application state: the single mutable source of truth the UI observes.

Holds the loaded expenses and categories, the selected date, loading and
error flags, and analytics derived from the expense list. Writes go through
the persistence gateway and are followed by a full reload of the affected
collection; settings changes go through the settings store and come back
through its subscription.

One instance is constructed per running app and passed to whatever needs it.
"""

import asyncio
import logging
from collections import defaultdict
from contextlib import contextmanager
from datetime import date, datetime
from typing import Any, Callable, Dict, Iterator, List, Optional

from expense_tracker_mcp.core.exceptions import LoadFailedError
from expense_tracker_mcp.core.gateway import RECENT_EXPENSES_LIMIT, PersistenceGateway
from expense_tracker_mcp.core.notifications import NotificationManager
from expense_tracker_mcp.core.observable import Published, Signal
from expense_tracker_mcp.core.settings_store import SettingsStore
from expense_tracker_mcp.models.category import Category
from expense_tracker_mcp.models.expense import Expense
from expense_tracker_mcp.models.settings import (
    AppSettings,
    AppTheme,
    Currency,
    NotificationSettings,
)
from expense_tracker_mcp.utils.date_utils import current_month_range, week_dates

logger = logging.getLogger(__name__)

RECENT_EXPENSES_COUNT = 20
HOME_EXPENSES_COUNT = 4


class AppState:
    """Owns all data the UI renders and every action that changes it."""

    def __init__(
        self,
        gateway: PersistenceGateway,
        settings_store: SettingsStore,
        notification_manager: Optional[NotificationManager] = None,
        expense_limit: int = RECENT_EXPENSES_LIMIT,
    ):
        self._gateway = gateway
        self._settings_store = settings_store
        self._notification_manager = notification_manager or NotificationManager()
        self.expense_limit = expense_limit

        # Data
        self._expenses: Published[List[Expense]] = Published([])
        self._categories: Published[List[Category]] = Published([])

        # Mirrored settings
        self._user_settings: Published[AppSettings] = Published(
            settings_store.settings, notify_unchanged=True
        )

        # UI state
        self._selected_date: Published[date] = Published(date.today())
        self._is_loading: Published[bool] = Published(False)
        self._error_message: Published[Optional[str]] = Published(
            None, notify_unchanged=True
        )

        # Analytics
        self.selected_date_spent = 0.0
        self.today_spent = 0.0
        self.this_month_spent = 0.0
        self.category_spending: Dict[str, float] = {}
        self.analytics_updated: Signal[None] = Signal()

        self._analytics_holds = 0
        self._analytics_stale = False
        self._unsubscribers: List[Callable[[], None]] = []

        self._setup_bindings()
        logger.debug("AppState initialized")

    def _setup_bindings(self) -> None:
        self._unsubscribers.append(
            self._settings_store.subscribe(self._mirror_settings)
        )

        for channel in (
            self._gateway.error_message,
            self._settings_store.error_message,
            self._notification_manager.error_message,
        ):
            self._unsubscribers.append(channel.subscribe(self._on_upstream_error))

        self._expenses.subscribe(self._on_analytics_input_changed)
        self._selected_date.subscribe(self._on_analytics_input_changed)

    def _mirror_settings(self, settings: AppSettings) -> None:
        self._user_settings.value = settings

    def _on_upstream_error(self, message: Optional[str]) -> None:
        if message is not None:
            self._error_message.value = message

    def _on_analytics_input_changed(self, _: Any) -> None:
        if self._analytics_holds:
            self._analytics_stale = True
            return
        self._recalculate_analytics()

    @contextmanager
    def _analytics_batch(self) -> Iterator[None]:
        """Defer analytics until the outermost batch ends, then compute once if an input changed."""
        self._analytics_holds += 1
        try:
            yield
        finally:
            self._analytics_holds -= 1
            if self._analytics_holds == 0 and self._analytics_stale:
                self._analytics_stale = False
                self._recalculate_analytics()

    def subscribe(self, field: str, callback: Callable[[Any], None]) -> Callable[[], None]:
        """
        Observe one published field.

        Args:
            field: One of expenses, categories, user_settings, selected_date,
                   is_loading, error_message
            callback: Called with the new value on every change
        """
        published = {
            "expenses": self._expenses,
            "categories": self._categories,
            "user_settings": self._user_settings,
            "selected_date": self._selected_date,
            "is_loading": self._is_loading,
            "error_message": self._error_message,
        }.get(field)
        if published is None:
            raise ValueError(f"Unknown field: {field}")
        return published.subscribe(callback)

    def close(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()

    @property
    def expenses(self) -> List[Expense]:
        return self._expenses.value

    @expenses.setter
    def expenses(self, value: List[Expense]) -> None:
        self._expenses.value = value

    @property
    def categories(self) -> List[Category]:
        return self._categories.value

    @property
    def user_settings(self) -> AppSettings:
        return self._user_settings.value

    @property
    def selected_date(self) -> date:
        return self._selected_date.value

    @property
    def is_loading(self) -> bool:
        return self._is_loading.value

    @property
    def error_message(self) -> Optional[str]:
        return self._error_message.value

    @property
    def selected_date_expenses(self) -> List[Expense]:
        return [e for e in self.expenses if e.is_on(self.selected_date)]

    @property
    def recent_expenses(self) -> List[Expense]:
        return self.expenses[:RECENT_EXPENSES_COUNT]

    @property
    def recent_expenses_for_home(self) -> List[Expense]:
        return self.selected_date_expenses[:HOME_EXPENSES_COUNT]

    @property
    def week_dates(self) -> List[date]:
        return week_dates(self.selected_date, self.user_settings.week_start.first_weekday)

    async def load_initial_data(self) -> None:
        """Load categories and expenses concurrently, then compute analytics."""
        self._is_loading.value = True
        try:
            with self._analytics_batch():
                await asyncio.gather(self._load_categories(), self._load_expenses())
        finally:
            self._is_loading.value = False
        logger.info("Initial data loaded")

    async def refresh_data(self) -> None:
        with self._analytics_batch():
            await asyncio.gather(self._load_categories(), self._load_expenses())
        logger.info("Data refreshed")

    async def _load_categories(self) -> None:
        try:
            self._categories.value = await self._gateway.load_categories()
            logger.debug(f"Loaded {len(self.categories)} categories")
        except LoadFailedError as e:
            self._handle_error(str(e))

    async def _load_expenses(self) -> None:
        try:
            self.expenses = await self._gateway.load_recent_expenses(
                limit=self.expense_limit
            )
            logger.debug(f"Loaded {len(self.expenses)} expenses")
        except LoadFailedError as e:
            self._handle_error(str(e))

    def select_date(self, day: date) -> None:
        self._selected_date.value = day
        logger.debug(f"Selected date changed to {day}")

    async def add_expense(
        self,
        amount: float,
        name: str,
        category_id: str,
        notes: Optional[str] = None,
        expense_date: Optional[datetime] = None,
    ) -> bool:
        category = next((c for c in self.categories if c.id == category_id), None)
        if category is None:
            self._handle_error("Category not found")
            return False

        success = await self._gateway.add_expense(
            amount=amount,
            name=name,
            notes=notes,
            category=category,
            expense_date=expense_date or datetime.now(),
        )

        if success:
            await self._load_expenses()

        return success

    async def delete_expense(self, expense: Expense) -> bool:
        """
        Remove an expense optimistically.

        The expense disappears from ``expenses`` immediately. If the store
        refuses the delete, the whole list is restored from the snapshot
        taken before the removal.
        """
        original_expenses = list(self.expenses)
        self.expenses = [e for e in original_expenses if e.id != expense.id]

        success = await self._gateway.delete_expense(expense.id)

        if not success:
            self.expenses = original_expenses
            self._handle_error("Failed to delete expense")

        return success

    async def search_expenses(self, query: str) -> List[Expense]:
        return await self._gateway.search_expenses(query)

    async def add_category(self, name: str, icon: str, color_hex: str) -> bool:
        success = await self._gateway.add_category(name, icon, color_hex)
        if success:
            await self._load_categories()
        return success

    async def update_category(
        self,
        category: Category,
        name: Optional[str] = None,
        icon: Optional[str] = None,
        color_hex: Optional[str] = None,
    ) -> bool:
        success = await self._gateway.update_category(
            category.id, name=name, icon=icon, color_hex=color_hex
        )
        if success:
            await self._load_categories()
        return success

    async def delete_category(self, category: Category) -> bool:
        success = await self._gateway.delete_category(category.id)
        if success:
            await self._load_categories()
        return success

    async def reorder_categories(self, categories: List[Category]) -> bool:
        success = await self._gateway.reorder_categories(categories)
        if success:
            await self._load_categories()
        return success

    # All-time figures from the store, not limited to the loaded window
    async def category_expense_count(self, category: Category) -> int:
        return await self._gateway.get_category_expense_count(category.id)

    async def category_total_amount(self, category: Category) -> float:
        return await self._gateway.get_category_total_amount(category.id)

    # user_settings follows through the store subscription, never assigned here
    def update_currency(self, currency: Currency) -> None:
        self._settings_store.update_currency(currency)

    def update_theme(self, theme: AppTheme) -> None:
        self._settings_store.update_theme(theme)

    def update_user_profile(self, name: str, email: Optional[str]) -> None:
        self._settings_store.update_user_name(name)
        self._settings_store.update_user_email(email)

    def update_budget_settings(
        self, daily: Optional[float], monthly: Optional[float], enabled: bool
    ) -> None:
        self._settings_store.update_daily_budget(daily)
        self._settings_store.update_monthly_budget(monthly)
        self._settings_store.toggle_budget_enabled(enabled)

    async def update_notification_settings(self, settings: NotificationSettings) -> None:
        await self._notification_manager.update_settings(settings)
        self._settings_store.update_notification_settings(settings)

    def clear_error(self) -> None:
        self._error_message.value = None

    def format_amount(self, amount: float) -> str:
        return self.user_settings.format_amount(amount)

    def _handle_error(self, message: str) -> None:
        logger.error(f"AppState error: {message}")
        self._error_message.value = message

    def _recalculate_analytics(self) -> None:
        today = date.today()
        month_start, month_end = current_month_range()

        selected_expenses = self.selected_date_expenses
        self.selected_date_spent = sum(e.amount for e in selected_expenses)
        self.today_spent = sum(e.amount for e in self.expenses if e.is_on(today))
        self.this_month_spent = sum(
            e.amount for e in self.expenses if month_start <= e.date < month_end
        )

        spending: Dict[str, float] = defaultdict(float)
        for expense in selected_expenses:
            if expense.category_id:
                spending[expense.category_id] += expense.amount
        self.category_spending = dict(spending)

        logger.debug(
            f"Analytics recalculated - selected: {self.selected_date_spent}, "
            f"today: {self.today_spent}, month: {self.this_month_spent}"
        )
        self.analytics_updated.emit(None)

    @staticmethod
    def day_abbreviation(day: date) -> str:
        return day.strftime("%a")[:1].upper()

    @staticmethod
    def day_number(day: date) -> str:
        return str(day.day)

    @staticmethod
    def is_today(day: date) -> bool:
        return day == date.today()

    def is_selected(self, day: date) -> bool:
        return day == self.selected_date

    @property
    def formatted_date(self) -> str:
        return f"{self.selected_date.day} {self.selected_date:%B %Y}"

    @property
    def formatted_day_of_week(self) -> str:
        return self.selected_date.strftime("%A")
