"""
Local reminder planning.

The manager turns ``NotificationSettings`` into a list of scheduled
notification requests and hands immediate notifications to a delivery
callable. Nothing here talks to a platform notification service; hosts that
have one plug it in as the ``deliver`` callable.
"""

import logging
import uuid
from datetime import datetime, time, timedelta
from enum import Enum
from typing import Awaitable, Callable, List, Optional

from pydantic import BaseModel

from expense_tracker_mcp.core.observable import Published
from expense_tracker_mcp.models.settings import NotificationSettings

logger = logging.getLogger(__name__)

DAILY_REMINDER_ID = "daily_reminder"
WEEKLY_REPORT_ID = "weekly_report"

Deliver = Callable[["ScheduledNotification"], Awaitable[None]]


class AuthorizationStatus(str, Enum):
    NOT_DETERMINED = "not_determined"
    DENIED = "denied"
    AUTHORIZED = "authorized"

    @property
    def is_authorized(self) -> bool:
        return self is AuthorizationStatus.AUTHORIZED


class ScheduledNotification(BaseModel):
    model_config = {"strict": True, "populate_by_name": True}

    identifier: str
    title: str
    body: str
    fire_at: datetime
    repeats: bool = False


def next_occurrence(at: time, now: datetime, weekday: Optional[int] = None) -> datetime:
    """
    Next moment strictly after ``now`` matching ``at``.

    Args:
        at: Time of day
        now: Reference moment
        weekday: Optional ``date.weekday()`` number to pin the day to
    """
    candidate = datetime.combine(now.date(), at)
    if weekday is not None:
        candidate += timedelta(days=(weekday - candidate.weekday()) % 7)
    if candidate <= now:
        candidate += timedelta(days=7 if weekday is not None else 1)
    return candidate


async def _log_delivery(notification: ScheduledNotification) -> None:
    logger.info(f"Notification: {notification.title} - {notification.body}")


class NotificationManager:
    """Plans reminders from settings and reports its own errors."""

    def __init__(self, deliver: Optional[Deliver] = None, grant_permission: bool = True):
        """
        Initialize the manager.

        Args:
            deliver: Coroutine function that presents a notification.
                    Defaults to logging it.
            grant_permission: Outcome of a permission request on this host.
        """
        self._deliver = deliver or _log_delivery
        self._grant_permission = grant_permission

        self.authorization_status = AuthorizationStatus.NOT_DETERMINED
        self.scheduled_notifications: List[ScheduledNotification] = []
        self.error_message: Published[Optional[str]] = Published(
            None, notify_unchanged=True
        )

    async def request_permission(self) -> bool:
        granted = self._grant_permission
        self.authorization_status = (
            AuthorizationStatus.AUTHORIZED if granted else AuthorizationStatus.DENIED
        )
        if not granted:
            self._handle_error("Notification permission denied")
        return granted

    async def update_settings(self, settings: NotificationSettings) -> None:
        """Apply new settings, asking for permission the first time."""
        if settings.is_enabled and self.authorization_status is AuthorizationStatus.NOT_DETERMINED:
            await self.request_permission()
        await self.configure_from_settings(settings)

    async def configure_from_settings(
        self, settings: NotificationSettings, now: Optional[datetime] = None
    ) -> None:
        """Re-plan every repeating reminder from ``settings``."""
        now = now or datetime.now()
        planned: List[ScheduledNotification] = []

        if settings.is_enabled and self.authorization_status.is_authorized:
            if settings.daily_reminder:
                planned.append(
                    ScheduledNotification(
                        identifier=DAILY_REMINDER_ID,
                        title="Daily reminder",
                        body="Don't forget to record today's expenses.",
                        fire_at=next_occurrence(settings.reminder_time, now),
                        repeats=True,
                    )
                )
            if settings.weekly_reports:
                planned.append(
                    ScheduledNotification(
                        identifier=WEEKLY_REPORT_ID,
                        title="Weekly report",
                        body="Your spending summary for the week is ready.",
                        fire_at=next_occurrence(settings.reminder_time, now, weekday=6),
                        repeats=True,
                    )
                )

        self.scheduled_notifications = planned
        logger.debug(f"Scheduled {len(planned)} reminders")

    async def send_immediate_notification(self, title: str, body: str) -> None:
        notification = ScheduledNotification(
            identifier=f"immediate_{uuid.uuid4().hex}",
            title=title,
            body=body,
            fire_at=datetime.now(),
        )
        try:
            await self._deliver(notification)
        except Exception as e:
            self._handle_error(f"Failed to send notification: {e}")

    async def cancel_all_notifications(self) -> None:
        self.scheduled_notifications = []
        logger.info("All notifications cancelled")

    def _handle_error(self, message: str) -> None:
        logger.error(f"Notification error: {message}")
        self.error_message.value = message

    def clear_error(self) -> None:
        self.error_message.value = None
