"""
Settings store: owns the single AppSettings value and keeps it persisted.

All mutations funnel through one commit path guarded against re-entrancy, so
a subscriber reacting to a settings change cannot recursively mutate the
settings it is observing. Persistence is debounced: a burst of updates (a
slider drag, several toggles in a row) results in one write.
"""

import asyncio
import logging
import re
from datetime import datetime, time
from typing import Callable, Optional, Set

from pydantic import ValidationError

from expense_tracker_mcp.core.exceptions import SettingsPersistenceError
from expense_tracker_mcp.core.observable import Debouncer, NotificationCenter, Published
from expense_tracker_mcp.core.storage import KeyValueStorage
from expense_tracker_mcp.models.settings import (
    AppLanguage,
    AppSettings,
    AppTheme,
    Currency,
    NotificationSettings,
    NumberFormat,
    WeekStart,
)

logger = logging.getLogger(__name__)

SETTINGS_KEY = "AppSettings_v2"
LEGACY_SETTINGS_KEY = "AppSettings"

MAX_USER_NAME_LENGTH = 50
MAX_BUDGET_AMOUNT = 1_000_000

# Events posted on the notification center
CURRENCY_DID_CHANGE = "currency_did_change"
NUMBER_FORMAT_DID_CHANGE = "number_format_did_change"
WEEK_START_DID_CHANGE = "week_start_did_change"
THEME_DID_CHANGE = "theme_did_change"
LANGUAGE_DID_CHANGE = "language_did_change"
BUDGET_ENABLED_DID_CHANGE = "budget_enabled_did_change"
SETTINGS_DID_RESET = "settings_did_reset"
ALL_DATA_SHOULD_CLEAR = "all_data_should_clear"
CLOUD_SYNC_DISABLED = "cloud_sync_disabled"

EMAIL_PATTERN = re.compile(r"^[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}$")


class SettingsStore:
    """Owns, mutates and persists the application settings."""

    def __init__(
        self,
        storage: KeyValueStorage,
        notification_center: Optional[NotificationCenter] = None,
        save_delay: float = 1.0,
        notify_delay: float = 0.1,
        major_notify_delay: float = 0.3,
    ):
        """
        Initialize the store and load persisted settings.

        Args:
            storage: Key-value storage holding the serialized settings.
            notification_center: Bus for decoupled change events.
            save_delay: Debounce interval for persisting changes, in seconds.
            notify_delay: Delay before posting minor change events.
            major_notify_delay: Delay before posting currency/theme events.
        """
        self._storage = storage
        self.notifications = notification_center or NotificationCenter()
        self.notify_delay = notify_delay
        self.major_notify_delay = major_notify_delay

        self._is_updating = False
        self._saver = Debouncer(save_delay, self._save_settings)
        self._pending_writes: Set[asyncio.Future] = set()

        self.error_message: Published[Optional[str]] = Published(
            None, notify_unchanged=True
        )
        self._settings: Published[AppSettings] = Published(
            self._load_settings_with_migration(), notify_unchanged=True
        )

    @property
    def settings(self) -> AppSettings:
        return self._settings.value

    @settings.setter
    def settings(self, value: AppSettings) -> None:
        if self._is_updating:
            return
        if value == self.settings:
            logger.debug("Ignoring assignment of equivalent settings")
            return
        self._commit(value)

    def subscribe(self, callback: Callable[[AppSettings], None]) -> Callable[[], None]:
        """Observe every committed settings change."""
        return self._settings.subscribe(callback)

    @property
    def is_save_pending(self) -> bool:
        return self._saver.pending or bool(self._pending_writes)

    def _load_settings_with_migration(self) -> AppSettings:
        try:
            data = self._storage.get(SETTINGS_KEY)
            if data is not None:
                try:
                    settings = AppSettings.model_validate_json(data)
                    logger.info("Loaded v2 settings")
                    return settings
                except ValidationError as e:
                    logger.warning(f"Discarding undecodable v2 settings: {e}")

            legacy = self._storage.get(LEGACY_SETTINGS_KEY)
            if legacy is not None:
                try:
                    migrated = AppSettings.model_validate_json(legacy)
                except ValidationError as e:
                    logger.warning(f"Discarding undecodable legacy settings: {e}")
                else:
                    logger.info("Migrating settings from v1 to v2")
                    self._storage.set(
                        SETTINGS_KEY, migrated.model_dump_json().encode("utf-8")
                    )
                    self._storage.remove(LEGACY_SETTINGS_KEY)
                    return migrated

            logger.info("Creating default settings")
            defaults = AppSettings()
            self._storage.set(SETTINGS_KEY, defaults.model_dump_json().encode("utf-8"))
            return defaults

        except OSError as e:
            self._handle_error(f"Failed to load settings: {e}")
            return AppSettings()

    def _encode(self) -> bytes:
        try:
            return self.settings.model_dump_json().encode("utf-8")
        except (ValueError, TypeError) as e:
            raise SettingsPersistenceError(str(e)) from e

    def _write(self, data: bytes) -> None:
        self._storage.set(SETTINGS_KEY, data)

    def _save_settings(self) -> None:
        if self._is_updating:
            return

        try:
            data = self._encode()
        except SettingsPersistenceError as e:
            self._handle_error(f"Failed to save settings: {e}")
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            try:
                self._write(data)
                logger.debug("Settings saved")
            except OSError as e:
                self._handle_error(f"Failed to save settings: {e}")
            return

        future = loop.run_in_executor(None, self._write, data)
        self._pending_writes.add(future)
        future.add_done_callback(self._on_write_done)

    def _on_write_done(self, future: asyncio.Future) -> None:
        self._pending_writes.discard(future)
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            self._handle_error(f"Failed to save settings: {error}")
        else:
            logger.debug("Settings saved")

    async def flush(self) -> None:
        """Write any debounced change now and wait for in-flight writes."""
        self._saver.fire_now()
        if self._pending_writes:
            await asyncio.gather(*list(self._pending_writes), return_exceptions=True)

    def close(self) -> None:
        """Drop a pending debounced write without performing it."""
        self._saver.cancel()

    def _commit(self, new_settings: AppSettings) -> None:
        new_settings = new_settings.model_copy(update={"last_modified": datetime.now()})

        self._is_updating = True
        try:
            self._settings.value = new_settings
        finally:
            self._is_updating = False

        self._saver.trigger()

    def _apply(self, mutate: Callable[[AppSettings], None]) -> bool:
        """
        Run ``mutate`` against a copy of the settings and commit the result.

        Returns:
            True if a change was committed.
        """
        if self._is_updating:
            logger.debug("Settings update in progress, skipping")
            return False

        candidate = self.settings.model_copy(deep=True)
        mutate(candidate)
        if candidate.same_payload(self.settings):
            return False

        self._commit(candidate)
        return True

    def update_user_name(self, name: str) -> None:
        if self._is_updating:
            return

        clean_name = name.strip()
        if not clean_name or len(clean_name) > MAX_USER_NAME_LENGTH:
            self._handle_error("Invalid user name")
            return

        def mutate(s: AppSettings) -> None:
            s.user_profile.name = clean_name

        if self._apply(mutate):
            logger.info(f"User name updated to '{clean_name}'")

    def update_user_email(self, email: Optional[str]) -> None:
        if self._is_updating:
            return

        clean_email = email.strip() if email else ""
        if clean_email and not self.is_valid_email(clean_email):
            self._handle_error("Invalid email format")
            return

        def mutate(s: AppSettings) -> None:
            s.user_profile.email = clean_email or None

        if self._apply(mutate):
            logger.info("User email updated")

    def update_user_avatar(self, image_data: Optional[bytes]) -> None:
        def mutate(s: AppSettings) -> None:
            s.user_profile.avatar_image_data = image_data

        if self._apply(mutate):
            logger.info("User avatar updated")

    def update_currency(self, currency: Currency) -> None:
        if self._is_updating:
            logger.debug("Update in progress, skipping currency change")
            return
        if currency == self.settings.currency:
            logger.debug(f"Currency already set to {currency.value}")
            return

        old_currency = self.settings.currency

        def mutate(s: AppSettings) -> None:
            s.currency = currency

        if self._apply(mutate):
            logger.info(
                f"Currency changed from {old_currency.value} to {currency.value}"
            )
            self.notifications.post_after(
                self.major_notify_delay, CURRENCY_DID_CHANGE, currency
            )

    def update_number_format(self, number_format: NumberFormat) -> None:
        if self._is_updating or number_format == self.settings.number_format:
            return

        def mutate(s: AppSettings) -> None:
            s.number_format = number_format

        if self._apply(mutate):
            logger.info(f"Number format updated to {number_format.value}")
            self.notifications.post_after(
                self.notify_delay, NUMBER_FORMAT_DID_CHANGE, number_format
            )

    def update_week_start(self, week_start: WeekStart) -> None:
        if self._is_updating or week_start == self.settings.week_start:
            return

        def mutate(s: AppSettings) -> None:
            s.week_start = week_start

        if self._apply(mutate):
            logger.info(f"Week start updated to {week_start.value}")
            self.notifications.post_after(
                self.notify_delay, WEEK_START_DID_CHANGE, week_start
            )

    def update_daily_budget(self, amount: Optional[float]) -> None:
        if self._is_updating:
            return
        if amount is not None and not 0 < amount <= MAX_BUDGET_AMOUNT:
            self._handle_error("Invalid daily budget amount")
            return

        def mutate(s: AppSettings) -> None:
            s.budget_settings.daily_budget = amount

        if self._apply(mutate):
            logger.info(f"Daily budget updated to {amount}")

    def update_monthly_budget(self, amount: Optional[float]) -> None:
        if self._is_updating:
            return
        if amount is not None and not 0 < amount <= MAX_BUDGET_AMOUNT:
            self._handle_error("Invalid monthly budget amount")
            return

        def mutate(s: AppSettings) -> None:
            s.budget_settings.monthly_budget = amount

        if self._apply(mutate):
            logger.info(f"Monthly budget updated to {amount}")

    def toggle_budget_enabled(self, enabled: bool) -> None:
        if self._is_updating or enabled == self.settings.budget_settings.is_enabled:
            return

        def mutate(s: AppSettings) -> None:
            s.budget_settings.is_enabled = enabled

        if self._apply(mutate):
            logger.info(f"Budget enabled: {enabled}")
            if enabled:
                self.notifications.post_after(
                    self.notify_delay, BUDGET_ENABLED_DID_CHANGE, enabled
                )

    def update_theme(self, theme: AppTheme) -> None:
        if self._is_updating:
            logger.debug("Update in progress, skipping theme change")
            return
        if theme == self.settings.theme:
            logger.debug(f"Theme already set to {theme.value}")
            return

        old_theme = self.settings.theme

        def mutate(s: AppSettings) -> None:
            s.theme = theme

        if self._apply(mutate):
            logger.info(f"Theme updated from {old_theme.value} to {theme.value}")
            self.notifications.post_after(
                self.major_notify_delay, THEME_DID_CHANGE, theme
            )

    def update_language(self, language: AppLanguage) -> None:
        if self._is_updating or language == self.settings.language:
            return

        def mutate(s: AppSettings) -> None:
            s.language = language

        if self._apply(mutate):
            logger.info(f"Language updated to {language.value}")
            self.notifications.post_after(
                self.notify_delay, LANGUAGE_DID_CHANGE, language
            )

    def update_notification_settings(
        self, notification_settings: NotificationSettings
    ) -> None:
        def mutate(s: AppSettings) -> None:
            s.notification_settings = notification_settings.model_copy()

        if self._apply(mutate):
            logger.info("Notification settings updated")

    def toggle_notifications(self, enabled: bool) -> None:
        if enabled == self.settings.notification_settings.is_enabled:
            return

        def mutate(s: AppSettings) -> None:
            s.notification_settings.is_enabled = enabled

        if self._apply(mutate):
            logger.info(f"Notifications enabled: {enabled}")

    def toggle_daily_reminder(self, enabled: bool) -> None:
        def mutate(s: AppSettings) -> None:
            s.notification_settings.daily_reminder = enabled

        self._apply(mutate)

    def toggle_budget_alerts(self, enabled: bool) -> None:
        def mutate(s: AppSettings) -> None:
            s.notification_settings.budget_alerts = enabled

        self._apply(mutate)

    def toggle_weekly_reports(self, enabled: bool) -> None:
        def mutate(s: AppSettings) -> None:
            s.notification_settings.weekly_reports = enabled

        self._apply(mutate)

    def update_reminder_time(self, reminder_time: time) -> None:
        def mutate(s: AppSettings) -> None:
            s.notification_settings.reminder_time = reminder_time

        if self._apply(mutate):
            logger.info(f"Reminder time updated to {reminder_time:%H:%M}")

    def toggle_require_authentication(self, enabled: bool) -> None:
        def mutate(s: AppSettings) -> None:
            s.privacy_settings.require_authentication = enabled

        if self._apply(mutate) and enabled:
            logger.info("Authentication setup requested")

    def toggle_hide_amounts_in_background(self, enabled: bool) -> None:
        def mutate(s: AppSettings) -> None:
            s.privacy_settings.hide_amounts_in_background = enabled

        self._apply(mutate)

    def toggle_local_storage_only(self, enabled: bool) -> None:
        def mutate(s: AppSettings) -> None:
            s.privacy_settings.local_storage_only = enabled

        if self._apply(mutate) and enabled:
            self.notifications.post(CLOUD_SYNC_DISABLED)

    def reset_all_settings(self) -> None:
        if self._is_updating:
            return

        self._commit(AppSettings())
        logger.info("All settings reset to defaults")
        self.notifications.post(SETTINGS_DID_RESET)

    def clear_all_data(self) -> None:
        self.reset_all_settings()
        self.notifications.post(ALL_DATA_SHOULD_CLEAR)
        logger.info("Clear all data initiated")

    @staticmethod
    def is_valid_email(email: str) -> bool:
        return EMAIL_PATTERN.match(email) is not None

    @staticmethod
    def is_valid_budget_amount(amount: str) -> bool:
        try:
            value = float(amount)
        except ValueError:
            return False
        return 0 < value <= MAX_BUDGET_AMOUNT

    def format_amount(self, amount: float) -> str:
        return self.settings.format_amount(amount)

    @property
    def formatted_currency(self) -> str:
        currency = self.settings.currency
        return f"{currency.symbol} {currency.display_name}"

    @property
    def formatted_number_format(self) -> str:
        number_format = self.settings.number_format
        example = number_format.format(1234.56, self.settings.currency)
        return f"{number_format.display_name} • {example}"

    @property
    def formatted_budget(self) -> str:
        budget = self.settings.budget_settings
        if budget.daily_budget is not None:
            return f"Daily: {self.format_amount(budget.daily_budget)}"
        if budget.monthly_budget is not None:
            return f"Monthly: {self.format_amount(budget.monthly_budget)}"
        return "Not set"

    @property
    def app_info(self) -> str:
        return f"Version {self.settings.app_version}"

    def _handle_error(self, message: str) -> None:
        logger.error(f"Settings error: {message}")
        self.error_message.value = message

    def clear_error(self) -> None:
        self.error_message.value = None
