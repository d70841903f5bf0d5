"""
Custom exceptions for the expense tracker core.
"""


class ExpenseTrackerError(Exception):
    """Base exception for expense tracker errors."""
    pass


class InvalidInputError(ExpenseTrackerError):
    """Raised when user input fails validation before any persistence call."""
    pass


class StorageError(ExpenseTrackerError):
    """Base class for local store failures."""
    pass


class LoadFailedError(StorageError):
    """Raised when a read from the local store fails."""
    pass


class SettingsPersistenceError(ExpenseTrackerError):
    """Raised when settings cannot be encoded or written."""
    pass


class ExportError(ExpenseTrackerError):
    """Raised when an export file cannot be generated or saved."""
    pass
