"""
Persistence gateway between the application state and the local store.

Every operation is a coroutine that runs the blocking ORM work on a worker
thread. Mutations report failure as ``False`` and put the detailed message
on ``error_message``; category loads additionally raise ``LoadFailedError``
so the caller can tell an empty result from a failed one.
"""

import asyncio
import logging
import time
from collections import defaultdict
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, TypeVar

from sqlalchemy import String, func, or_, select
from sqlalchemy.exc import SQLAlchemyError

from expense_tracker_mcp.core.database import (
    CategoryRecord,
    ExpenseDatabase,
    ExpenseRecord,
)
from expense_tracker_mcp.core.exceptions import InvalidInputError, LoadFailedError
from expense_tracker_mcp.core.observable import Published
from expense_tracker_mcp.models.category import DEFAULT_CATEGORIES, Category
from expense_tracker_mcp.models.expense import (
    MAX_EXPENSE_AMOUNT,
    MAX_EXPENSE_NAME_LENGTH,
    Expense,
)
from expense_tracker_mcp.utils.date_utils import (
    current_month_range,
    get_day_range,
    start_of_year,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

CATEGORY_CACHE_SECONDS = 300.0
RECENT_EXPENSES_LIMIT = 100


class PersistenceGateway:
    """Async CRUD and aggregate queries over categories and expenses."""

    def __init__(
        self,
        database: ExpenseDatabase,
        cache_validity: float = CATEGORY_CACHE_SECONDS,
    ):
        """
        Initialize the gateway.

        Args:
            database: Local object store to operate on
            cache_validity: Seconds a loaded category list stays fresh
        """
        self.db = database
        self.cache_validity = cache_validity
        self.error_message: Published[Optional[str]] = Published(
            None, notify_unchanged=True
        )

        self._categories_cache: List[Category] = []
        self._cache_timestamp: Optional[float] = None

        # Writes from anywhere (including other gateways) make the cache stale
        self._disconnect_save = database.did_save.connect(self._on_store_saved)

    def _cache_is_fresh(self) -> bool:
        return (
            self._cache_timestamp is not None
            and bool(self._categories_cache)
            and time.monotonic() - self._cache_timestamp < self.cache_validity
        )

    def invalidate_cache(self) -> None:
        self._categories_cache = []
        self._cache_timestamp = None
        logger.debug("Category cache invalidated")

    def _on_store_saved(self, _: None) -> None:
        self.invalidate_cache()

    async def _run(self, work: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Run blocking ORM work on a worker thread bound to the calling loop."""
        self.db.attach_loop(asyncio.get_running_loop())
        return await asyncio.to_thread(work, *args, **kwargs)

    def _fetch_categories(self) -> List[Category]:
        with self.db.session() as session, session.begin():
            records = session.scalars(
                select(CategoryRecord)
                .where(CategoryRecord.is_active.is_(True))
                .order_by(CategoryRecord.order, CategoryRecord.created_at)
            ).all()

            if not records:
                total = session.scalar(select(func.count()).select_from(CategoryRecord))
                if not total:
                    logger.info("Creating default categories")
                    records = [
                        CategoryRecord(name=name, icon=icon, color_hex=color_hex, order=index)
                        for index, (name, icon, color_hex) in enumerate(DEFAULT_CATEGORIES)
                    ]
                    session.add_all(records)
                    session.flush()

            return [Category.model_validate(record) for record in records]

    async def load_categories(self) -> List[Category]:
        """
        Get active categories ordered by display order.

        The very first load of an empty store seeds the default categories.

        Raises:
            LoadFailedError: If the store cannot be read
        """
        if self._cache_is_fresh():
            logger.debug("Returning cached categories")
            return list(self._categories_cache)

        try:
            categories = await self._run(self._fetch_categories)
        except SQLAlchemyError as e:
            message = f"Failed to load categories: {e}"
            self._handle_error(message)
            raise LoadFailedError(message) from e

        self._categories_cache = categories
        self._cache_timestamp = time.monotonic()
        logger.debug(f"Loaded {len(categories)} categories")
        return list(categories)

    def _insert_category(self, name: str, icon: str, color_hex: str, order: int) -> None:
        with self.db.session() as session, session.begin():
            session.add(
                CategoryRecord(name=name, icon=icon, color_hex=color_hex, order=order)
            )

    async def add_category(self, name: str, icon: str, color_hex: str) -> bool:
        clean_name = name.strip()
        if not clean_name:
            self._handle_error("Category name cannot be empty")
            return False

        try:
            existing = await self.load_categories()
        except LoadFailedError:
            return False

        if any(c.name.strip().lower() == clean_name.lower() for c in existing):
            self._handle_error("A category with this name already exists")
            return False

        new_order = max((c.order for c in existing), default=-1) + 1

        try:
            await self._run(
                self._insert_category, clean_name, icon, color_hex, new_order
            )
        except SQLAlchemyError as e:
            self._handle_error(f"Failed to add category: {e}")
            return False

        self.invalidate_cache()
        logger.info(f"Category '{clean_name}' added")
        return True

    def _modify_category(
        self,
        category_id: str,
        name: Optional[str],
        icon: Optional[str],
        color_hex: Optional[str],
        is_active: Optional[bool],
    ) -> bool:
        with self.db.session() as session, session.begin():
            record = session.get(CategoryRecord, category_id)
            if record is None:
                return False
            if name is not None:
                record.name = name
            if icon is not None:
                record.icon = icon
            if color_hex is not None:
                record.color_hex = color_hex
            if is_active is not None:
                record.is_active = is_active
            return True

    async def update_category(
        self,
        category_id: str,
        name: Optional[str] = None,
        icon: Optional[str] = None,
        color_hex: Optional[str] = None,
    ) -> bool:
        """Change only the provided fields of a category."""
        if name is not None:
            name = name.strip()
            if not name:
                self._handle_error("Category name cannot be empty")
                return False

        try:
            found = await self._run(
                self._modify_category, category_id, name, icon, color_hex, None
            )
        except SQLAlchemyError as e:
            self._handle_error(f"Failed to update category: {e}")
            return False

        if not found:
            self._handle_error("Category not found")
            return False

        self.invalidate_cache()
        logger.info(f"Category {category_id} updated")
        return True

    async def delete_category(self, category_id: str) -> bool:
        """Soft delete: mark inactive, leave every expense untouched."""
        try:
            found = await self._run(
                self._modify_category, category_id, None, None, None, False
            )
        except SQLAlchemyError as e:
            self._handle_error(f"Failed to delete category: {e}")
            return False

        if not found:
            self._handle_error("Category not found")
            return False

        self.invalidate_cache()
        logger.info(f"Category {category_id} soft deleted")
        return True

    def _write_order(self, category_ids: List[str]) -> None:
        with self.db.session() as session, session.begin():
            for index, category_id in enumerate(category_ids):
                record = session.get(CategoryRecord, category_id)
                if record is not None:
                    record.order = index

    async def reorder_categories(self, categories: List[Category]) -> bool:
        """Rewrite display order to match list position."""
        try:
            await self._run(self._write_order, [c.id for c in categories])
        except SQLAlchemyError as e:
            self._handle_error(f"Failed to reorder categories: {e}")
            return False

        self.invalidate_cache()
        logger.info("Categories reordered")
        return True

    def _fetch_expenses(self, *criteria, limit: Optional[int] = None) -> List[Expense]:
        with self.db.session() as session:
            query = select(ExpenseRecord).where(*criteria).order_by(ExpenseRecord.date.desc())
            if limit is not None:
                query = query.limit(limit)
            records = session.scalars(query).unique().all()
            return [Expense.model_validate(record) for record in records]

    async def load_recent_expenses(self, limit: int = RECENT_EXPENSES_LIMIT) -> List[Expense]:
        """
        Get the most recent expenses by date, newest first.

        Raises:
            LoadFailedError: If the store cannot be read
        """
        try:
            expenses = await self._run(self._fetch_expenses, limit=limit)
        except SQLAlchemyError as e:
            message = f"Failed to load expenses: {e}"
            self._handle_error(message)
            raise LoadFailedError(message) from e

        logger.debug(f"Loaded {len(expenses)} expenses")
        return expenses

    def _validate_expense_input(
        self, amount: float, name: str, expense_date: datetime
    ) -> None:
        """
        Check an expense before it reaches the store.

        Raises:
            InvalidInputError: With a user-facing message
        """
        if amount <= 0:
            raise InvalidInputError("Amount must be greater than zero")
        if amount > MAX_EXPENSE_AMOUNT:
            raise InvalidInputError("Amount is too large")

        clean_name = name.strip()
        if not clean_name:
            raise InvalidInputError("Expense name cannot be empty")
        if len(clean_name) > MAX_EXPENSE_NAME_LENGTH:
            raise InvalidInputError(
                f"Expense name cannot exceed {MAX_EXPENSE_NAME_LENGTH} characters"
            )

        now = datetime.now()
        if expense_date > now + timedelta(days=1):
            raise InvalidInputError("Date cannot be in the future")
        if expense_date < start_of_year(now):
            raise InvalidInputError("Date cannot be before the start of the current year")

    def _insert_expense(
        self,
        amount: float,
        name: str,
        notes: Optional[str],
        category_id: Optional[str],
        expense_date: datetime,
    ) -> None:
        with self.db.session() as session, session.begin():
            session.add(
                ExpenseRecord(
                    amount=amount,
                    name=name,
                    notes=notes,
                    category_id=category_id,
                    date=expense_date,
                )
            )

    async def add_expense(
        self,
        amount: float,
        name: str,
        notes: Optional[str] = None,
        category: Optional[Category] = None,
        expense_date: Optional[datetime] = None,
    ) -> bool:
        expense_date = expense_date or datetime.now()
        if expense_date.tzinfo is not None:
            # Stored dates are naive local time
            expense_date = expense_date.astimezone().replace(tzinfo=None)

        try:
            self._validate_expense_input(amount, name, expense_date)
        except InvalidInputError as e:
            self._handle_error(str(e))
            return False

        try:
            await self._run(
                self._insert_expense,
                float(amount),
                name.strip(),
                notes or None,
                category.id if category else None,
                expense_date,
            )
        except SQLAlchemyError as e:
            self._handle_error(f"Failed to save expense: {e}")
            return False

        logger.info(f"Expense '{name.strip()}' added")
        return True

    def _remove_expense(self, expense_id: str) -> bool:
        with self.db.session() as session, session.begin():
            record = session.get(ExpenseRecord, expense_id)
            if record is None:
                return False
            session.delete(record)
            return True

    async def delete_expense(self, expense_id: str) -> bool:
        try:
            found = await self._run(self._remove_expense, expense_id)
        except SQLAlchemyError as e:
            self._handle_error(f"Failed to delete expense: {e}")
            return False

        if not found:
            self._handle_error("Expense not found")
            return False

        logger.info(f"Expense {expense_id} deleted")
        return True

    async def get_expenses_for_date(self, day: date) -> List[Expense]:
        start, end = get_day_range(day)
        try:
            return await self._run(
                self._fetch_expenses, ExpenseRecord.date >= start, ExpenseRecord.date < end
            )
        except SQLAlchemyError as e:
            self._handle_error(f"Failed to load expenses for {day}: {e}")
            return []

    def _sum_amounts(self, *criteria) -> float:
        with self.db.session() as session:
            total = session.scalar(
                select(func.coalesce(func.sum(ExpenseRecord.amount), 0.0)).where(*criteria)
            )
        return float(total or 0.0)

    async def get_total_for_date(self, day: date) -> float:
        start, end = get_day_range(day)
        try:
            return await self._run(
                self._sum_amounts, ExpenseRecord.date >= start, ExpenseRecord.date < end
            )
        except SQLAlchemyError as e:
            self._handle_error(f"Failed to total expenses for {day}: {e}")
            return 0.0

    async def get_total_for_current_month(self) -> float:
        start, end = current_month_range()
        try:
            return await self._run(
                self._sum_amounts, ExpenseRecord.date >= start, ExpenseRecord.date < end
            )
        except SQLAlchemyError as e:
            self._handle_error(f"Failed to total this month's expenses: {e}")
            return 0.0

    async def get_category_spending_for_date(self, day: date) -> Dict[str, float]:
        spending: Dict[str, float] = defaultdict(float)
        for expense in await self.get_expenses_for_date(day):
            if expense.category_id:
                spending[expense.category_id] += expense.amount
        return dict(spending)

    def _count_for_category(self, category_id: str) -> int:
        with self.db.session() as session:
            count = session.scalar(
                select(func.count())
                .select_from(ExpenseRecord)
                .where(ExpenseRecord.category_id == category_id)
            )
        return count or 0

    async def get_category_expense_count(self, category_id: str) -> int:
        try:
            return await self._run(self._count_for_category, category_id)
        except SQLAlchemyError as e:
            self._handle_error(f"Failed to count category expenses: {e}")
            return 0

    async def get_category_total_amount(self, category_id: str) -> float:
        try:
            return await self._run(
                self._sum_amounts, ExpenseRecord.category_id == category_id
            )
        except SQLAlchemyError as e:
            self._handle_error(f"Failed to total category expenses: {e}")
            return 0.0

    async def search_expenses(self, query: str) -> List[Expense]:
        """Case-insensitive substring search over name and notes."""
        query = query.strip()
        if not query:
            return []

        folded = query.casefold()
        try:
            return await self._run(
                self._fetch_expenses,
                or_(
                    func.casefold(ExpenseRecord.name, type_=String).contains(
                        folded, autoescape=True
                    ),
                    func.casefold(ExpenseRecord.notes, type_=String).contains(
                        folded, autoescape=True
                    ),
                ),
            )
        except SQLAlchemyError as e:
            self._handle_error(f"Failed to search expenses: {e}")
            return []

    def _handle_error(self, message: str) -> None:
        logger.error(f"Persistence error: {message}")
        self.error_message.value = message

    def clear_error(self) -> None:
        self.error_message.value = None

    def close(self) -> None:
        self._disconnect_save()
