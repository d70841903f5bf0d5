"""
Category model for expense tracker data.
"""

from datetime import datetime
from typing import List, Tuple

from pydantic import BaseModel, Field, computed_field, field_validator

# (name, icon, color_hex) in display order
DEFAULT_CATEGORIES: List[Tuple[str, str, str]] = [
    ("Food", "fork.knife", "FF6B35"),
    ("Transport", "car.fill", "007AFF"),
    ("Housing", "house.fill", "34C759"),
    ("Shopping", "bag.fill", "FF2D92"),
    ("Entertainment", "tv.fill", "AF52DE"),
    ("Health", "heart.fill", "FF3B30"),
    ("Education", "book.fill", "5856D6"),
    ("Travel", "airplane", "00C7BE"),
]


def decode_hex_color(value: str) -> Tuple[float, float, float, float]:
    """
    Decode a hex color string into an (r, g, b, a) tuple of 0..1 floats.

    Accepts 3 (RGB), 6 (RRGGBB) or 8 (AARRGGBB) hex digits, with or
    without a leading '#'. Anything else decodes to an opaque-ish fallback.
    """
    digits = "".join(ch for ch in value if ch.isalnum())
    try:
        number = int(digits, 16) if digits else 0
    except ValueError:
        number = 0

    if len(digits) == 3:
        a, r, g, b = 255, (number >> 8) * 17, (number >> 4 & 0xF) * 17, (number & 0xF) * 17
    elif len(digits) == 6:
        a, r, g, b = 255, number >> 16, number >> 8 & 0xFF, number & 0xFF
    elif len(digits) == 8:
        a, r, g, b = number >> 24, number >> 16 & 0xFF, number >> 8 & 0xFF, number & 0xFF
    else:
        a, r, g, b = 1, 1, 1, 0

    return (r / 255, g / 255, b / 255, a / 255)


class Category(BaseModel):
    """
    Represents a user-defined spending category.

    Categories are never physically removed; deleting one flips
    ``is_active`` so historical expenses keep resolving to it.
    """

    # Lax mode: strict validation only accepts model instances, not ORM rows
    model_config = {"populate_by_name": True, "from_attributes": True}

    # Required fields
    id: str
    name: str
    icon: str
    color_hex: str
    order: int

    # Status
    is_active: bool = True
    created_at: datetime = Field(default_factory=datetime.now)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def display_name(self) -> str:
        """Get the best display name for this category."""
        return self.name or "Untitled"

    @computed_field  # type: ignore[prop-decorator]
    @property
    def color(self) -> Tuple[float, float, float, float]:
        """Display color decoded from the stored hex string."""
        return decode_hex_color(self.color_hex)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Validate that name is non-empty after trimming."""
        if not v.strip():
            raise ValueError("Category name cannot be empty")
        return v.strip()
