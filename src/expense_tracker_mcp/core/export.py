"""
CSV export of expenses and categories.

A read-only consumer of AppState snapshots. Files are written with a UTF-8
byte order mark so spreadsheet applications detect the encoding.
"""

import asyncio
import csv
import io
import logging
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Iterable, List, Optional

from pydantic import BaseModel, computed_field

from expense_tracker_mcp.core.exceptions import ExportError
from expense_tracker_mcp.core.observable import Published
from expense_tracker_mcp.models.category import Category
from expense_tracker_mcp.models.expense import Expense
from expense_tracker_mcp.models.settings import Currency

logger = logging.getLogger(__name__)

DEFAULT_EXPORT_DIR = Path.home() / ".expense_tracker" / "exports"

EXPENSE_COLUMNS = ["Date", "Amount", "Currency", "Name", "Category", "Notes", "Created At"]
CATEGORY_COLUMNS = ["Name", "Icon", "Color", "Order", "Active", "Created At"]

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
FILE_TIMESTAMP_FORMAT = "%Y-%m-%d_%H%M"


class ExportOption(str, Enum):
    EXPENSES_CSV = "expenses"
    CATEGORIES_CSV = "categories"
    FULL_CSV = "full"

    @property
    def file_kind(self) -> str:
        return {
            ExportOption.EXPENSES_CSV: "Expenses",
            ExportOption.CATEGORIES_CSV: "Categories",
            ExportOption.FULL_CSV: "FullData",
        }[self]


class ExportStats(BaseModel):
    """Summary of what an export contains."""

    model_config = {"strict": True, "populate_by_name": True}

    expense_count: int
    category_count: int
    total_amount: float
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    categories_used: int
    export_date: datetime

    @computed_field  # type: ignore[prop-decorator]
    @property
    def formatted_date_range(self) -> str:
        if self.start_date is None or self.end_date is None:
            return "No data"
        start = self.start_date.strftime("%b %d, %Y")
        if self.start_date.date() == self.end_date.date():
            return start
        return f"{start} - {self.end_date.strftime('%b %d, %Y')}"


def _clean(field: str) -> str:
    return field.strip()


def _render_rows(header: List[str], rows: Iterable[List[str]]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(header)
    writer.writerows(rows)
    return buffer.getvalue()


def generate_expenses_csv(expenses: List[Expense], currency: Currency) -> str:
    """Expenses newest first, one row each."""
    rows = [
        [
            expense.date.strftime(TIMESTAMP_FORMAT),
            f"{expense.amount:.2f}",
            currency.code,
            _clean(expense.name),
            _clean(expense.category.name if expense.category else "Uncategorized"),
            _clean(expense.notes or ""),
            expense.created_at.strftime(TIMESTAMP_FORMAT),
        ]
        for expense in sorted(expenses, key=lambda e: e.date, reverse=True)
    ]
    return _render_rows(EXPENSE_COLUMNS, rows)


def generate_categories_csv(categories: List[Category]) -> str:
    """Categories in display order, one row each."""
    rows = [
        [
            _clean(category.name),
            _clean(category.icon),
            _clean(category.color_hex),
            str(category.order),
            "Yes" if category.is_active else "No",
            category.created_at.strftime(TIMESTAMP_FORMAT),
        ]
        for category in sorted(categories, key=lambda c: c.order)
    ]
    return _render_rows(CATEGORY_COLUMNS, rows)


def combine_csv(expenses_csv: str, categories_csv: str, now: Optional[datetime] = None) -> str:
    now = now or datetime.now()
    return (
        "# ExpenseTracker Full Data Export\n"
        f"# Export Date: {now.strftime(TIMESTAMP_FORMAT)}\n"
        "# Generated by ExpenseTracker\n"
        "\n"
        "# EXPENSES DATA\n"
        f"{expenses_csv}"
        "\n"
        "# CATEGORIES DATA\n"
        f"{categories_csv}"
    )


def generate_export_stats(expenses: List[Expense], categories: List[Category]) -> ExportStats:
    dates = [e.date for e in expenses]
    return ExportStats(
        expense_count=len(expenses),
        category_count=len(categories),
        total_amount=float(sum(e.amount for e in expenses)),
        start_date=min(dates) if dates else None,
        end_date=max(dates) if dates else None,
        categories_used=len({e.category_id for e in expenses if e.category_id}),
        export_date=datetime.now(),
    )


class DataExportManager:
    """Writes CSV exports to a directory and tracks export progress."""

    def __init__(self, export_dir: Optional[Path] = None):
        self.export_dir = export_dir or DEFAULT_EXPORT_DIR

        self.is_exporting = False
        self.export_progress = 0.0
        self.error_message: Published[Optional[str]] = Published(
            None, notify_unchanged=True
        )

    async def export_data(
        self,
        option: ExportOption,
        expenses: List[Expense],
        categories: List[Category],
        currency: Currency,
    ) -> Optional[Path]:
        """
        Render and save one export.

        Returns:
            Path of the written file, or None if the export failed. The
            failure reason is left on ``error_message``.
        """
        self.is_exporting = True
        self.export_progress = 0.0
        self.error_message.value = None

        try:
            content = self._render(option, expenses, categories, currency)
            file_name = (
                f"ExpenseTracker_{option.file_kind}_"
                f"{datetime.now().strftime(FILE_TIMESTAMP_FORMAT)}.csv"
            )
            path = await asyncio.to_thread(self._save, content, file_name)
        except ExportError as e:
            self.error_message.value = f"CSV export failed: {e}"
            logger.error(f"Export error: {e}")
            return None
        finally:
            self.is_exporting = False

        self.export_progress = 1.0
        return path

    def _render(
        self,
        option: ExportOption,
        expenses: List[Expense],
        categories: List[Category],
        currency: Currency,
    ) -> str:
        if option is ExportOption.EXPENSES_CSV:
            self.export_progress = 0.3
            content = generate_expenses_csv(expenses, currency)
        elif option is ExportOption.CATEGORIES_CSV:
            self.export_progress = 0.3
            content = generate_categories_csv(categories)
        else:
            self.export_progress = 0.2
            expenses_csv = generate_expenses_csv(expenses, currency)
            self.export_progress = 0.4
            categories_csv = generate_categories_csv(categories)
            self.export_progress = 0.6
            content = combine_csv(expenses_csv, categories_csv)
        self.export_progress = 0.7
        return content

    def _save(self, content: str, file_name: str) -> Path:
        path = self.export_dir / file_name
        try:
            self.export_dir.mkdir(parents=True, exist_ok=True)
            # utf-8-sig prepends the byte order mark
            path.write_text(content, encoding="utf-8-sig", newline="")
        except OSError as e:
            raise ExportError(f"File save error: {e}") from e

        logger.info(f"CSV exported to {path}")
        return path

    def clear_error(self) -> None:
        self.error_message.value = None

    def reset(self) -> None:
        self.is_exporting = False
        self.export_progress = 0.0
        self.error_message.value = None
