"""
End-to-end tests for the MCP server.

Drives the server through tool calls against a data directory on disk.
"""

import json
from datetime import date, datetime, timezone

import pytest
import pytest_asyncio

from expense_tracker_mcp.server import ExpenseTrackerServer
from expense_tracker_mcp.tools.tools import create_tool_schemas


@pytest_asyncio.fixture
async def server(tmp_path):
    """Create ExpenseTrackerServer over an empty data directory."""
    srv = ExpenseTrackerServer(tmp_path / "data", tmp_path / "exports")
    yield srv
    await srv.close()


async def call(server, name, arguments=None):
    """Call a tool and return the decoded JSON payload or the raw text."""
    result = await server.handle_call(name, arguments or {})
    assert len(result) == 1
    text = result[0].text
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return text


async def food_id(server):
    categories = await call(server, "list_categories")
    return next(c["id"] for c in categories["categories"] if c["name"] == "Food")


@pytest.mark.e2e
def test_tool_schemas():
    """Test that every tool has a name, description and object schema."""
    schemas = create_tool_schemas()
    names = [s["name"] for s in schemas]

    assert len(names) == len(set(names))
    assert {"get_summary", "add_expense", "export_csv", "update_settings"} <= set(names)
    for schema in schemas:
        assert schema["description"]
        assert schema["inputSchema"]["type"] == "object"


@pytest.mark.e2e
@pytest.mark.asyncio
async def test_server_tool_names_match_schemas(server):
    assert server.tool_names == {s["name"] for s in create_tool_schemas()}


@pytest.mark.e2e
@pytest.mark.asyncio
async def test_fresh_store_summary(server):
    summary = await call(server, "get_summary")

    assert summary["selected_date"] == date.today().isoformat()
    assert summary["today_spent"] == 0.0
    assert summary["category_spending"] == []
    assert summary["budget"]["daily_usage"] is None


@pytest.mark.e2e
@pytest.mark.asyncio
async def test_default_categories(server):
    categories = await call(server, "list_categories", {"include_totals": True})

    assert categories["count"] == 8
    assert categories["categories"][0]["name"] == "Food"
    assert categories["categories"][0]["expense_count"] == 0


@pytest.mark.e2e
@pytest.mark.asyncio
async def test_add_expense_flows_into_summary(server):
    category_id = await food_id(server)

    added = await call(
        server, "add_expense", {"amount": 50, "name": "Coffee", "category_id": category_id}
    )
    assert added["success"] is True
    assert added["today_spent"] == 50.0

    summary = await call(server, "get_summary")
    assert summary["today_spent"] == 50.0
    assert summary["top_category"] == "Food"
    assert summary["display"]["today_spent"] == "$50.00"

    listed = await call(server, "list_expenses", {"period": "today"})
    assert listed["count"] == 1
    assert listed["expenses"][0]["name"] == "Coffee"
    assert listed["expenses"][0]["category_name"] == "Food"


@pytest.mark.e2e
@pytest.mark.asyncio
async def test_add_expense_with_utc_offset(server):
    category_id = await food_id(server)
    stamp = datetime.now(timezone.utc).replace(microsecond=0).isoformat()

    added = await call(
        server,
        "add_expense",
        {"amount": 7, "name": "Bagel", "category_id": category_id, "date": stamp},
    )

    assert added["success"] is True
    assert (await call(server, "list_expenses"))["count"] == 1


@pytest.mark.e2e
@pytest.mark.asyncio
async def test_rejected_expense_reports_error(server):
    category_id = await food_id(server)

    text = await call(
        server, "add_expense", {"amount": 1000001, "name": "Yacht", "category_id": category_id}
    )

    assert text == "Error: Amount is too large"
    assert (await call(server, "list_expenses"))["count"] == 0


@pytest.mark.e2e
@pytest.mark.asyncio
async def test_delete_expense(server):
    category_id = await food_id(server)
    await call(server, "add_expense", {"amount": 5, "name": "Tea", "category_id": category_id})
    expense_id = (await call(server, "list_expenses"))["expenses"][0]["id"]

    deleted = await call(server, "delete_expense", {"expense_id": expense_id})

    assert deleted == {"success": True, "deleted": expense_id}
    assert (await call(server, "get_summary"))["today_spent"] == 0.0


@pytest.mark.e2e
@pytest.mark.asyncio
async def test_search_expenses(server):
    category_id = await food_id(server)
    await call(
        server,
        "add_expense",
        {"amount": 5, "name": "Bakery", "category_id": category_id, "notes": "croissant"},
    )

    found = await call(server, "search_expenses", {"query": "CROISSANT"})
    assert found["count"] == 1


@pytest.mark.e2e
@pytest.mark.asyncio
async def test_category_lifecycle(server):
    added = await call(server, "add_category", {"name": "Pets", "icon": "pawprint", "color_hex": "A2845E"})
    pets = next(c for c in added["categories"] if c["name"] == "Pets")

    updated = await call(server, "update_category", {"category_id": pets["id"], "name": "Animals"})
    assert "Animals" in [c["name"] for c in updated["categories"]]

    duplicate = await call(server, "add_category", {"name": "animals", "icon": "x", "color_hex": "000000"})
    assert duplicate == "Error: A category with this name already exists"

    remaining = await call(server, "delete_category", {"category_id": pets["id"]})
    assert pets["id"] not in [c["id"] for c in remaining["categories"]]


@pytest.mark.e2e
@pytest.mark.asyncio
async def test_reorder_requires_every_category(server):
    categories = (await call(server, "list_categories"))["categories"]
    ids = [c["id"] for c in categories]

    partial = await call(server, "reorder_categories", {"category_ids": ids[:2]})
    assert partial.startswith("Error: ")

    reordered = await call(server, "reorder_categories", {"category_ids": list(reversed(ids))})
    assert [c["id"] for c in reordered["categories"]] == list(reversed(ids))


@pytest.mark.e2e
@pytest.mark.asyncio
async def test_update_settings(server):
    settings = await call(
        server,
        "update_settings",
        {"currency": "eur", "daily_budget": 100, "budget_enabled": True, "user_name": "Ana"},
    )

    assert settings["currency"] == "EUR"
    assert settings["budget_settings"]["daily_budget"] == 100.0
    assert settings["user_profile"]["name"] == "Ana"
    assert "avatar_image_data" not in settings["user_profile"]

    summary = await call(server, "get_summary")
    assert summary["display"]["today_spent"].startswith("€")
    assert summary["budget"]["daily_usage"] == 0.0


@pytest.mark.e2e
@pytest.mark.asyncio
async def test_update_settings_rejects_bad_email(server):
    text = await call(server, "update_settings", {"user_email": "nope"})
    assert text == "Error: Invalid email format"


@pytest.mark.e2e
@pytest.mark.asyncio
async def test_export_csv(server, tmp_path):
    category_id = await food_id(server)
    await call(server, "add_expense", {"amount": 8, "name": "Lunch", "category_id": category_id})

    exported = await call(server, "export_csv", {"option": "full"})

    assert exported["stats"]["expense_count"] == 1
    assert exported["path"].startswith(str(tmp_path / "exports"))
    content = (tmp_path / "exports").joinpath(exported["path"].split("/")[-1]).read_text(
        encoding="utf-8-sig"
    )
    assert "# EXPENSES DATA" in content
    assert "Lunch" in content


@pytest.mark.e2e
@pytest.mark.asyncio
async def test_unknown_tool(server):
    assert await call(server, "no_such_tool") == "Unknown tool: no_such_tool"


@pytest.mark.e2e
@pytest.mark.asyncio
async def test_bad_arguments_are_reported(server):
    text = await call(server, "select_date", {"date": "yesterday"})
    assert text.startswith("Error: Invalid date")

    text = await call(server, "list_expenses", {"period": "fortnight"})
    assert text == "Error: Unknown period: fortnight"


@pytest.mark.e2e
@pytest.mark.asyncio
async def test_settings_persist_across_servers(tmp_path):
    first = ExpenseTrackerServer(tmp_path / "data")
    await call(first, "update_settings", {"theme": "dark"})
    await first.close()

    second = ExpenseTrackerServer(tmp_path / "data")
    try:
        settings = await call(second, "get_settings")
        assert settings["theme"] == "dark"
    finally:
        await second.close()


@pytest.mark.e2e
@pytest.mark.asyncio
async def test_clear_all_data_wipes_store(server):
    """Test that clearing all data empties the store and reseeds defaults on refresh."""
    category_id = await food_id(server)
    await call(server, "add_category", {"name": "Pets", "icon": "pawprint", "color_hex": "A2845E"})
    await call(server, "add_expense", {"amount": 5, "name": "Tea", "category_id": category_id})

    server.settings_store.clear_all_data()

    assert server.db.stats() == {"categories": 0, "expenses": 0}
    refreshed = await call(server, "refresh")
    assert refreshed == {"expense_count": 0, "category_count": 8}
