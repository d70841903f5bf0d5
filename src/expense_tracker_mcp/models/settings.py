"""
Settings models for the expense tracker.

Everything the user can configure lives in one ``AppSettings`` value that is
serialized as JSON into key-value storage.
"""

from datetime import datetime, time
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from expense_tracker_mcp import __version__


class Currency(str, Enum):
    """Supported display currencies."""

    USD = "USD"
    EUR = "EUR"
    GBP = "GBP"
    JPY = "JPY"
    CNY = "CNY"
    CAD = "CAD"
    AUD = "AUD"
    CHF = "CHF"

    @property
    def symbol(self) -> str:
        return _CURRENCY_SYMBOLS[self]

    @property
    def display_name(self) -> str:
        return _CURRENCY_NAMES[self]

    @property
    def code(self) -> str:
        return self.value

    def format_amount(self, amount: float, number_format: "NumberFormat") -> str:
        """Format an amount in this currency using the given number format."""
        return number_format.format(amount, self)


_CURRENCY_SYMBOLS = {
    Currency.USD: "$",
    Currency.EUR: "€",
    Currency.GBP: "£",
    Currency.JPY: "¥",
    Currency.CNY: "¥",
    Currency.CAD: "$",
    Currency.AUD: "$",
    Currency.CHF: "₣",
}

_CURRENCY_NAMES = {
    Currency.USD: "US Dollar",
    Currency.EUR: "Euro",
    Currency.GBP: "British Pound",
    Currency.JPY: "Japanese Yen",
    Currency.CNY: "Chinese Yuan",
    Currency.CAD: "Canadian Dollar",
    Currency.AUD: "Australian Dollar",
    Currency.CHF: "Swiss Franc",
}


class NumberFormat(str, Enum):
    """How amounts are rendered for display."""

    DECIMAL = "decimal"  # $1,234.56
    SPACED = "spaced"  # 1 234,56 $
    COMPACT = "compact"  # $1.2K

    @property
    def display_name(self) -> str:
        return {
            NumberFormat.DECIMAL: "1,234.56",
            NumberFormat.SPACED: "1 234,56",
            NumberFormat.COMPACT: "1.2K (compact)",
        }[self]

    def format(self, amount: float, currency: Currency) -> str:
        """Render ``amount`` with the currency symbol."""
        if self is NumberFormat.DECIMAL:
            return f"{currency.symbol}{amount:,.2f}"

        if self is NumberFormat.SPACED:
            number = f"{amount:,.2f}".replace(",", " ").replace(".", ",")
            return f"{number} {currency.symbol}"

        if amount >= 1000:
            return f"{currency.symbol}{amount / 1000:.1f}K"
        return f"{currency.symbol}{amount:.0f}"


class WeekStart(str, Enum):
    MONDAY = "monday"
    SUNDAY = "sunday"

    @property
    def display_name(self) -> str:
        return self.value.capitalize()

    @property
    def first_weekday(self) -> int:
        """First day of the week as a ``date.weekday()`` number."""
        return 0 if self is WeekStart.MONDAY else 6


class AppTheme(str, Enum):
    SYSTEM = "system"
    LIGHT = "light"
    DARK = "dark"

    @property
    def display_name(self) -> str:
        return self.value.capitalize()


class AppLanguage(str, Enum):
    """Interface languages. Only English is translated."""

    ENGLISH = "en"
    SPANISH = "es"
    FRENCH = "fr"
    GERMAN = "de"
    ITALIAN = "it"
    PORTUGUESE = "pt"
    JAPANESE = "ja"
    KOREAN = "ko"
    CHINESE = "zh"

    @property
    def display_name(self) -> str:
        return {
            AppLanguage.ENGLISH: "English",
            AppLanguage.SPANISH: "Español",
            AppLanguage.FRENCH: "Français",
            AppLanguage.GERMAN: "Deutsch",
            AppLanguage.ITALIAN: "Italiano",
            AppLanguage.PORTUGUESE: "Português",
            AppLanguage.JAPANESE: "日本語",
            AppLanguage.KOREAN: "한국어",
            AppLanguage.CHINESE: "中文",
        }[self]

    @property
    def code(self) -> str:
        return self.value


class UserProfile(BaseModel):
    model_config = {
        "strict": True,
        "populate_by_name": True,
        "ser_json_bytes": "base64",
        "val_json_bytes": "base64",
    }

    name: str = "User"
    email: Optional[str] = None
    avatar_image_data: Optional[bytes] = None
    created_at: datetime = Field(default_factory=datetime.now)


class BudgetSettings(BaseModel):
    model_config = {"strict": True, "populate_by_name": True}

    daily_budget: Optional[float] = None
    monthly_budget: Optional[float] = None
    is_enabled: bool = False


class NotificationSettings(BaseModel):
    model_config = {"strict": True, "populate_by_name": True}

    is_enabled: bool = False
    daily_reminder: bool = False
    budget_alerts: bool = False
    weekly_reports: bool = False
    reminder_time: time = time(20, 0)


class PrivacySettings(BaseModel):
    model_config = {"strict": True, "populate_by_name": True}

    require_authentication: bool = False
    hide_amounts_in_background: bool = True
    local_storage_only: bool = True


class AppSettings(BaseModel):
    """
    The single composite settings value.

    Equality deliberately covers only the fields whose change matters to
    other subsystems, so assigning a value that differs elsewhere (for
    example only in timestamps) compares equal.
    """

    model_config = {"strict": True, "populate_by_name": True}

    # User profile
    user_profile: UserProfile = Field(default_factory=UserProfile)

    # Financial settings
    currency: Currency = Currency.USD
    number_format: NumberFormat = NumberFormat.DECIMAL
    week_start: WeekStart = WeekStart.MONDAY
    budget_settings: BudgetSettings = Field(default_factory=BudgetSettings)

    # App preferences
    theme: AppTheme = AppTheme.SYSTEM
    language: AppLanguage = AppLanguage.ENGLISH

    # Features
    notification_settings: NotificationSettings = Field(
        default_factory=NotificationSettings
    )
    privacy_settings: PrivacySettings = Field(default_factory=PrivacySettings)

    # App info
    app_version: str = __version__
    created_at: datetime = Field(default_factory=datetime.now)
    last_modified: datetime = Field(default_factory=datetime.now)

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, AppSettings):
            return NotImplemented
        return (
            self.currency == other.currency
            and self.theme == other.theme
            and self.language == other.language
            and self.number_format == other.number_format
            and self.week_start == other.week_start
            and self.user_profile.name == other.user_profile.name
            and self.user_profile.email == other.user_profile.email
            and self.budget_settings.is_enabled == other.budget_settings.is_enabled
            and self.notification_settings.is_enabled
            == other.notification_settings.is_enabled
        )

    def same_payload(self, other: "AppSettings") -> bool:
        """Full comparison of every field except timestamps."""
        exclude = {"created_at": True, "last_modified": True, "user_profile": {"created_at"}}
        return self.model_dump(exclude=exclude) == other.model_dump(exclude=exclude)

    def format_amount(self, amount: float) -> str:
        return self.currency.format_amount(amount, self.number_format)
