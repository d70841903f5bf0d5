"""
MCP server for the expense tracker.

Exposes the expense tracker state through the Model Context Protocol.
"""

import json
import logging
from pathlib import Path
from typing import Any, Optional

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from expense_tracker_mcp.core.app_state import AppState
from expense_tracker_mcp.core.database import DEFAULT_DATA_DIR, ExpenseDatabase
from expense_tracker_mcp.core.export import DataExportManager
from expense_tracker_mcp.core.gateway import PersistenceGateway
from expense_tracker_mcp.core.notifications import NotificationManager
from expense_tracker_mcp.core.settings_store import ALL_DATA_SHOULD_CLEAR, SettingsStore
from expense_tracker_mcp.core.storage import JsonFileStorage
from expense_tracker_mcp.core.view_adapter import ExpenseViewAdapter
from expense_tracker_mcp.tools.tools import ExpenseTrackerTools, create_tool_schemas

logger = logging.getLogger(__name__)


class ExpenseTrackerServer:
    """MCP server for expense tracker data."""

    def __init__(self, data_dir: Optional[Path] = None, export_dir: Optional[Path] = None):
        """
        Initialize the MCP server.

        Args:
            data_dir: Directory holding the expense database and settings file.
                     If None, uses ~/.expense_tracker.
            export_dir: Directory CSV exports are written to.
                       If None, uses <data_dir>/exports.
        """
        self.data_dir = data_dir or DEFAULT_DATA_DIR

        self.db = ExpenseDatabase(self.data_dir / "expenses.db")
        self.gateway = PersistenceGateway(self.db)
        self.settings_store = SettingsStore(JsonFileStorage(self.data_dir / "settings.json"))
        self.notification_manager = NotificationManager()
        self.app_state = AppState(self.gateway, self.settings_store, self.notification_manager)
        self.adapter = ExpenseViewAdapter(self.app_state)
        self.tools = ExpenseTrackerTools(
            self.adapter,
            self.settings_store,
            DataExportManager(export_dir or self.data_dir / "exports"),
        )
        self.server = Server("expense-tracker-mcp")
        self.tool_names = {schema["name"] for schema in create_tool_schemas()}
        self._loaded = False
        self.settings_store.notifications.add_observer(
            ALL_DATA_SHOULD_CLEAR, self._on_clear_all_data
        )

        # Register handlers
        self._register_handlers()

    def _on_clear_all_data(self, _: Any) -> None:
        logger.info(f"Clearing stored expenses and categories: {self.db.stats()}")
        self.db.delete_all_data()

    async def ensure_loaded(self) -> None:
        """Run the one-time initial load before the first tool call."""
        if not self._loaded:
            self._loaded = True
            await self.adapter.load_initial_data()

    async def dispatch(self, name: str, arguments: dict[str, Any]) -> Any:
        """Route a tool call to its handler."""
        tools = self.tools
        if name == "get_summary":
            return tools.get_summary(**arguments)
        if name == "list_expenses":
            return tools.list_expenses(**arguments)
        if name == "get_settings":
            return tools.get_settings(**arguments)

        handlers = {
            "select_date": tools.select_date,
            "refresh": tools.refresh,
            "search_expenses": tools.search_expenses,
            "add_expense": tools.add_expense,
            "delete_expense": tools.delete_expense,
            "list_categories": tools.list_categories,
            "add_category": tools.add_category,
            "update_category": tools.update_category,
            "delete_category": tools.delete_category,
            "reorder_categories": tools.reorder_categories,
            "update_settings": tools.update_settings,
            "export_csv": tools.export_csv,
        }
        return await handlers[name](**arguments)

    def _register_handlers(self) -> None:
        """Register MCP protocol handlers."""

        @self.server.list_tools()
        async def list_tools() -> list[Tool]:
            """List available tools."""
            schemas = create_tool_schemas()
            return [
                Tool(
                    name=schema["name"],
                    description=schema["description"],
                    inputSchema=schema["inputSchema"],
                )
                for schema in schemas
            ]

        @self.server.call_tool()
        async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
            """Handle tool calls."""
            return await self.handle_call(name, arguments)

    async def handle_call(self, name: str, arguments: Optional[dict[str, Any]]) -> list[TextContent]:
        """Run one tool call and render the result or error as text."""
        if name not in self.tool_names:
            return [TextContent(type="text", text=f"Unknown tool: {name}")]

        try:
            await self.ensure_loaded()
            result = await self.dispatch(name, arguments or {})
        except ValueError as e:
            # Validation errors and rejected actions
            return [TextContent(type="text", text=f"Error: {str(e)}")]
        except Exception as e:
            logger.exception(f"Error executing tool {name}")
            return [
                TextContent(
                    type="text",
                    text=f"Error executing tool: {str(e)}",
                )
            ]

        return [TextContent(type="text", text=json.dumps(result, indent=2))]

    async def close(self) -> None:
        await self.settings_store.flush()
        self.settings_store.close()
        self.adapter.close()
        self.app_state.close()
        self.gateway.close()
        self.db.close()

    async def run(self) -> None:  # pragma: no cover
        """Run the MCP server using stdio transport."""
        await self.ensure_loaded()
        try:
            async with stdio_server() as (read_stream, write_stream):
                await self.server.run(
                    read_stream,
                    write_stream,
                    self.server.create_initialization_options(),
                )
        finally:
            await self.close()


async def run_server(
    data_dir: Optional[Path] = None, export_dir: Optional[Path] = None
) -> None:  # pragma: no cover
    """
    Run the expense tracker MCP server.

    Args:
        data_dir: Optional data directory. If None, uses ~/.expense_tracker.
        export_dir: Optional directory for CSV exports.
    """
    server = ExpenseTrackerServer(data_dir, export_dir)
    await server.run()
