"""
Integration tests for the persistence gateway against a real SQLite file.
"""

import threading
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from expense_tracker_mcp.core.exceptions import LoadFailedError
from expense_tracker_mcp.core.gateway import PersistenceGateway
from expense_tracker_mcp.models.category import DEFAULT_CATEGORIES


@pytest.mark.integration
class TestCategories:
    """Tests for category operations."""

    @pytest.mark.asyncio
    async def test_first_load_seeds_defaults(self, gateway):
        """Test that an empty store yields the 8 default categories in order."""
        categories = await gateway.load_categories()

        assert [c.name for c in categories] == [name for name, _, _ in DEFAULT_CATEGORIES]
        assert [c.order for c in categories] == list(range(8))
        assert all(c.is_active for c in categories)

    @pytest.mark.asyncio
    async def test_defaults_not_reseeded_after_all_deleted(self, gateway):
        categories = await gateway.load_categories()
        for category in categories:
            assert await gateway.delete_category(category.id)

        assert await gateway.load_categories() == []

    @pytest.mark.asyncio
    async def test_add_category_appends_order(self, gateway):
        await gateway.load_categories()
        assert await gateway.add_category("Pets", "pawprint", "A2845E")

        categories = await gateway.load_categories()
        assert categories[-1].name == "Pets"
        assert categories[-1].order == 8

    @pytest.mark.asyncio
    async def test_duplicate_name_rejected(self, gateway):
        """Test that a case-insensitive, trimmed duplicate is refused."""
        before = await gateway.load_categories()

        assert not await gateway.add_category("  food ", "x", "000000")

        assert gateway.error_message.value == "A category with this name already exists"
        assert await gateway.load_categories() == before

    @pytest.mark.asyncio
    async def test_empty_name_rejected(self, gateway):
        assert not await gateway.add_category("   ", "x", "000000")
        assert gateway.error_message.value == "Category name cannot be empty"

    @pytest.mark.asyncio
    async def test_partial_update(self, gateway):
        food = (await gateway.load_categories())[0]

        assert await gateway.update_category(food.id, icon="carrot")

        updated = (await gateway.load_categories())[0]
        assert updated.icon == "carrot"
        assert updated.name == food.name
        assert updated.color_hex == food.color_hex

    @pytest.mark.asyncio
    async def test_update_missing_category(self, gateway):
        assert not await gateway.update_category("missing", name="X")
        assert gateway.error_message.value == "Category not found"

    @pytest.mark.asyncio
    async def test_soft_delete_keeps_expenses(self, gateway, seed_expense, now):
        """Test that deleting a category leaves its expenses resolvable to it."""
        food = (await gateway.load_categories())[0]
        seed_expense(12.0, now, category_id=food.id, name="Lunch")

        assert await gateway.delete_category(food.id)

        assert food.id not in [c.id for c in await gateway.load_categories()]
        expenses = await gateway.load_recent_expenses()
        assert len(expenses) == 1
        assert expenses[0].category_id == food.id
        assert expenses[0].category.name == "Food"
        assert expenses[0].category.is_active is False

    @pytest.mark.asyncio
    async def test_reorder(self, gateway):
        categories = await gateway.load_categories()
        reordered = list(reversed(categories))

        assert await gateway.reorder_categories(reordered)

        loaded = await gateway.load_categories()
        assert [c.id for c in loaded] == [c.id for c in reordered]
        assert [c.order for c in loaded] == list(range(8))


@pytest.mark.integration
class TestCategoryCache:
    """Tests for the category cache."""

    @pytest.mark.asyncio
    async def test_second_load_is_served_from_cache(self, gateway):
        await gateway.load_categories()
        with patch.object(gateway, "_fetch_categories") as fetch:
            await gateway.load_categories()
        fetch.assert_not_called()

    @pytest.mark.asyncio
    async def test_expired_cache_reloads(self, database):
        gateway = PersistenceGateway(database, cache_validity=0.0)
        await gateway.load_categories()
        with patch.object(gateway, "_fetch_categories", return_value=[]) as fetch:
            await gateway.load_categories()
        fetch.assert_called_once()
        gateway.close()

    @pytest.mark.asyncio
    async def test_external_save_invalidates_cache(self, database, gateway):
        """Test that a write through another gateway refreshes this one."""
        await gateway.load_categories()
        other = PersistenceGateway(database)
        assert await other.add_category("Gifts", "gift", "FF9500")

        names = [c.name for c in await gateway.load_categories()]
        assert "Gifts" in names
        other.close()

    @pytest.mark.asyncio
    async def test_load_failure_raises(self, gateway):
        with patch.object(
            gateway, "_fetch_categories", side_effect=OperationalError("SELECT", {}, Exception("locked"))
        ):
            with pytest.raises(LoadFailedError):
                await gateway.load_categories()
        assert gateway.error_message.value.startswith("Failed to load categories")


@pytest.mark.integration
class TestExpenses:
    """Tests for expense operations."""

    @pytest.mark.asyncio
    async def test_add_and_load(self, gateway, now):
        food = (await gateway.load_categories())[0]

        assert await gateway.add_expense(
            12.5, "  Coffee  ", notes="oat milk", category=food, expense_date=now
        )

        expenses = await gateway.load_recent_expenses()
        assert len(expenses) == 1
        assert expenses[0].name == "Coffee"
        assert expenses[0].amount == 12.5
        assert expenses[0].category.name == "Food"

    @pytest.mark.asyncio
    async def test_amount_over_limit_rejected_without_write(self, gateway, now):
        """Test that 1,000,001 is refused before the store is touched."""
        with patch.object(gateway, "_insert_expense") as insert:
            assert not await gateway.add_expense(1_000_001, "Yacht", expense_date=now)
        insert.assert_not_called()
        assert gateway.error_message.value == "Amount is too large"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "amount,name,message",
        [
            (0, "Nothing", "Amount must be greater than zero"),
            (5, "   ", "Expense name cannot be empty"),
            (5, "x" * 101, "Expense name cannot exceed 100 characters"),
        ],
    )
    async def test_invalid_input(self, gateway, now, amount, name, message):
        assert not await gateway.add_expense(amount, name, expense_date=now)
        assert gateway.error_message.value == message

    @pytest.mark.asyncio
    async def test_date_window(self, gateway, now):
        assert not await gateway.add_expense(5, "Later", expense_date=now + timedelta(days=2))
        assert gateway.error_message.value == "Date cannot be in the future"

        assert not await gateway.add_expense(5, "Old", expense_date=datetime(now.year - 1, 12, 31))
        assert gateway.error_message.value == "Date cannot be before the start of the current year"

    @pytest.mark.asyncio
    async def test_timezone_aware_date_is_stored_as_local_time(self, gateway):
        """Test that an aware timestamp is accepted and stored as naive local time."""
        aware = datetime.now(timezone.utc).replace(microsecond=0)

        assert await gateway.add_expense(5.0, "Tea", expense_date=aware)

        stored = (await gateway.load_recent_expenses())[0]
        assert stored.date.tzinfo is None
        assert stored.date == aware.astimezone().replace(tzinfo=None)

    @pytest.mark.asyncio
    async def test_timezone_aware_future_date_rejected(self, gateway):
        later = datetime.now(timezone.utc) + timedelta(days=3)
        assert not await gateway.add_expense(5.0, "Later", expense_date=later)
        assert gateway.error_message.value == "Date cannot be in the future"

    @pytest.mark.asyncio
    async def test_recent_window_limit(self, gateway, seed_expense, now):
        for i in range(5):
            seed_expense(1.0 + i, now - timedelta(minutes=i))

        expenses = await gateway.load_recent_expenses(limit=3)
        assert [e.amount for e in expenses] == [1.0, 2.0, 3.0]

    @pytest.mark.asyncio
    async def test_delete_expense(self, gateway, seed_expense, now):
        expense_id = seed_expense(9.0, now)
        assert await gateway.delete_expense(expense_id)
        assert await gateway.load_recent_expenses() == []

    @pytest.mark.asyncio
    async def test_delete_missing_expense(self, gateway):
        assert not await gateway.delete_expense("missing")
        assert gateway.error_message.value == "Expense not found"


@pytest.mark.integration
class TestAggregates:
    """Tests for aggregate queries."""

    @pytest.mark.asyncio
    async def test_totals(self, gateway, seed_expense, now, yesterday):
        food, transport = (await gateway.load_categories())[:2]
        seed_expense(10.0, now, category_id=food.id)
        seed_expense(5.0, now, category_id=transport.id)
        seed_expense(2.5, now, category_id=food.id)
        seed_expense(100.0, yesterday, category_id=food.id)

        assert await gateway.get_total_for_date(now.date()) == 17.5
        assert len(await gateway.get_expenses_for_date(now.date())) == 3
        assert await gateway.get_category_spending_for_date(now.date()) == {
            food.id: 12.5,
            transport.id: 5.0,
        }
        assert await gateway.get_category_expense_count(food.id) == 3
        assert await gateway.get_category_total_amount(food.id) == 112.5

    @pytest.mark.asyncio
    async def test_current_month_total(self, gateway, seed_expense, now):
        seed_expense(40.0, now)
        seed_expense(60.0, now.replace(day=1, hour=0, minute=0, second=0, microsecond=0))
        seed_expense(999.0, now.replace(day=1) - timedelta(days=1))
        assert await gateway.get_total_for_current_month() == 100.0

    @pytest.mark.asyncio
    async def test_empty_totals(self, gateway, now):
        assert await gateway.get_total_for_date(now.date()) == 0.0
        assert await gateway.get_category_spending_for_date(now.date()) == {}

    @pytest.mark.asyncio
    async def test_search(self, gateway, seed_expense, now):
        seed_expense(4.0, now, name="Morning Coffee")
        seed_expense(6.0, now, name="Lunch", notes="coffee after")
        seed_expense(8.0, now, name="Taxi")

        results = await gateway.search_expenses("COFFEE")
        assert sorted(e.amount for e in results) == [4.0, 6.0]
        assert await gateway.search_expenses("   ") == []

    @pytest.mark.asyncio
    async def test_search_treats_wildcards_literally(self, gateway, seed_expense, now):
        seed_expense(4.0, now, name="Coffee")
        seed_expense(6.0, now, name="50% off shoes")
        seed_expense(8.0, now, name="snake_case mug")

        assert [e.name for e in await gateway.search_expenses("%")] == ["50% off shoes"]
        assert [e.name for e in await gateway.search_expenses("_")] == ["snake_case mug"]

    @pytest.mark.asyncio
    async def test_search_folds_non_ascii_case(self, gateway, seed_expense, now):
        seed_expense(4.0, now, name="CAFÉ Nero")
        seed_expense(6.0, now, name="Bakery", notes="STRAßE corner")

        assert [e.name for e in await gateway.search_expenses("café")] == ["CAFÉ Nero"]
        assert [e.name for e in await gateway.search_expenses("strasse")] == ["Bakery"]


@pytest.mark.integration
class TestDatabaseMaintenance:
    """Tests for row counts and wiping the store."""

    @pytest.mark.asyncio
    async def test_stats_and_delete_all(self, database, gateway, seed_expense, now):
        await gateway.load_categories()
        seed_expense(1.0, now)
        assert database.stats() == {"categories": 8, "expenses": 1}

        saves = []
        database.did_save.connect(saves.append)
        database.delete_all_data()

        assert database.stats() == {"categories": 0, "expenses": 0}
        assert len(saves) == 1


@pytest.mark.integration
class TestSaveNotifications:
    """Tests for where store-save notifications are delivered."""

    @pytest.mark.asyncio
    async def test_worker_commit_is_announced_on_loop_thread(self, database, gateway):
        await gateway.load_categories()
        threads = []
        database.did_save.connect(lambda _: threads.append(threading.get_ident()))

        assert await gateway.add_category("Gifts", "gift", "FF9500")

        assert threads == [threading.get_ident()]

