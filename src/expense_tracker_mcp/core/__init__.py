"""
Core state, persistence and settings for the expense tracker.
"""

from expense_tracker_mcp.core.app_state import AppState
from expense_tracker_mcp.core.database import ExpenseDatabase
from expense_tracker_mcp.core.exceptions import (
    ExpenseTrackerError,
    ExportError,
    InvalidInputError,
    LoadFailedError,
    SettingsPersistenceError,
    StorageError,
)
from expense_tracker_mcp.core.gateway import PersistenceGateway
from expense_tracker_mcp.core.settings_store import SettingsStore
from expense_tracker_mcp.core.view_adapter import ExpenseViewAdapter

__all__ = [
    "AppState",
    "ExpenseDatabase",
    "ExpenseViewAdapter",
    "PersistenceGateway",
    "SettingsStore",
    "ExpenseTrackerError",
    "ExportError",
    "InvalidInputError",
    "LoadFailedError",
    "SettingsPersistenceError",
    "StorageError",
]
