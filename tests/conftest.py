"""
Pytest configuration and fixtures for expense-tracker-mcp tests.
"""

from datetime import datetime, timedelta
from pathlib import Path

import pytest

from expense_tracker_mcp.core.app_state import AppState
from expense_tracker_mcp.core.database import ExpenseDatabase, ExpenseRecord
from expense_tracker_mcp.core.gateway import PersistenceGateway
from expense_tracker_mcp.core.notifications import NotificationManager
from expense_tracker_mcp.core.settings_store import SettingsStore
from expense_tracker_mcp.core.storage import MemoryStorage
from expense_tracker_mcp.models.category import Category
from expense_tracker_mcp.models.expense import Expense


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    """Path to a fresh SQLite file for one test."""
    return tmp_path / "expenses.db"


@pytest.fixture
def database(db_path: Path):
    """Empty expense database."""
    db = ExpenseDatabase(db_path)
    yield db
    db.close()


@pytest.fixture
def gateway(database: ExpenseDatabase):
    """Persistence gateway over the empty database."""
    gw = PersistenceGateway(database)
    yield gw
    gw.close()


@pytest.fixture
def storage() -> MemoryStorage:
    """In-memory key-value storage for settings."""
    return MemoryStorage()


@pytest.fixture
def settings_store(storage: MemoryStorage) -> SettingsStore:
    """Settings store with short timers so tests don't wait long."""
    return SettingsStore(
        storage, save_delay=0.05, notify_delay=0.01, major_notify_delay=0.02
    )


@pytest.fixture
def notification_manager() -> NotificationManager:
    return NotificationManager()


@pytest.fixture
def app_state(gateway, settings_store, notification_manager):
    """AppState wired to a real database and in-memory settings."""
    state = AppState(gateway, settings_store, notification_manager)
    yield state
    state.close()


@pytest.fixture
def food_category() -> Category:
    return Category(id="cat_food", name="Food", icon="fork.knife", color_hex="FF6B35", order=0)


@pytest.fixture
def transport_category() -> Category:
    return Category(
        id="cat_transport", name="Transport", icon="car.fill", color_hex="007AFF", order=1
    )


def _make_expense(
    expense_id: str,
    amount: float,
    when: datetime,
    category: Category = None,
    name: str = "Expense",
    notes: str = None,
) -> Expense:
    """Build an in-memory expense without touching the store."""
    return Expense(
        id=expense_id,
        amount=amount,
        name=name,
        date=when,
        notes=notes,
        category_id=category.id if category else None,
        category=category,
        created_at=when,
    )


@pytest.fixture
def make_expense():
    """Factory for in-memory expenses."""
    return _make_expense


@pytest.fixture
def seed_expense(database: ExpenseDatabase):
    """
    Factory that writes an expense row straight into the database.

    Bypasses gateway validation so tests can place expenses on any date.
    """

    def seed(
        amount: float,
        when: datetime,
        category_id: str = None,
        name: str = "Expense",
        notes: str = None,
    ) -> str:
        with database.session() as session, session.begin():
            record = ExpenseRecord(
                amount=amount,
                name=name,
                notes=notes,
                date=when,
                category_id=category_id,
            )
            session.add(record)
            session.flush()
            return record.id

    return seed


@pytest.fixture
def now() -> datetime:
    """Current time, nudged away from midnight so same-day arithmetic is stable."""
    current = datetime.now()
    if current.hour == 0:
        current = current.replace(hour=1)
    if current.hour == 23:
        current = current.replace(hour=22)
    return current


@pytest.fixture
def yesterday(now: datetime) -> datetime:
    return now - timedelta(days=1)
