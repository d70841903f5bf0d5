"""
Expense model for expense tracker data.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, computed_field, field_validator

from expense_tracker_mcp.models.category import Category

MAX_EXPENSE_AMOUNT = 1_000_000
MAX_EXPENSE_NAME_LENGTH = 100


class Expense(BaseModel):
    """
    Represents a single recorded expense.

    The category link is a weak reference: ``category_id`` may point at an
    inactive category, and ``category`` carries the snapshot resolved when
    the expense was loaded.
    """

    # Lax mode: strict validation only accepts model instances, not ORM rows
    model_config = {"populate_by_name": True, "from_attributes": True}

    # Required fields
    id: str
    amount: float
    name: str
    date: datetime

    # Optional fields
    notes: Optional[str] = None
    category_id: Optional[str] = None
    category: Optional[Category] = None

    # Metadata
    created_at: datetime = Field(default_factory=datetime.now)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def display_name(self) -> str:
        """Get the best display name for this expense."""
        return self.name or "Untitled"

    @computed_field  # type: ignore[prop-decorator]
    @property
    def formatted_amount(self) -> str:
        """Amount with two decimal places."""
        return f"{self.amount:.2f}"

    @field_validator("amount")
    @classmethod
    def validate_amount_range(cls, v: float) -> float:
        """Validate that amount is positive and within the allowed bound."""
        if v <= 0:
            raise ValueError("Amount must be greater than zero")
        if v > MAX_EXPENSE_AMOUNT:
            raise ValueError(f"Amount {v} exceeds maximum allowed value")
        return v

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Validate that name is non-empty and not too long."""
        cleaned = v.strip()
        if not cleaned:
            raise ValueError("Expense name cannot be empty")
        if len(cleaned) > MAX_EXPENSE_NAME_LENGTH:
            raise ValueError(
                f"Expense name exceeds {MAX_EXPENSE_NAME_LENGTH} characters"
            )
        return cleaned

    def is_on(self, day) -> bool:
        """Check whether this expense falls on the given calendar day."""
        return self.date.date() == day
