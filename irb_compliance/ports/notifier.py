"""Outbound notification and reminder collaborators."""

import logging
from typing import Any, Protocol

from irb_compliance.notifications.models import ReminderRequest

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    """Delivers notifications. Delivery is best effort."""

    def trigger(self, trigger_kind: str, context: dict[str, Any]) -> None: ...

    def trigger_user(self, user_id: str, template_name: str, context: dict[str, Any]) -> None: ...


class ReminderScheduler(Protocol):
    """Records intent to remind someone at a future date."""

    def schedule(self, reminder: ReminderRequest) -> None: ...


class LoggingNotifier:
    """Notifier that only writes to the log."""

    def trigger(self, trigger_kind: str, context: dict[str, Any]) -> None:
        logger.info("Notification %s: %s", trigger_kind, context)

    def trigger_user(self, user_id: str, template_name: str, context: dict[str, Any]) -> None:
        logger.info("Notification %s for user %s: %s", template_name, user_id, context)


class LoggingReminderScheduler:
    """Reminder scheduler that logs and keeps every request it receives."""

    def __init__(self) -> None:
        self.scheduled: list[ReminderRequest] = []

    def schedule(self, reminder: ReminderRequest) -> None:
        self.scheduled.append(reminder)
        logger.info(
            "Reminder for %s %s on %s: %s",
            reminder.entity_type,
            reminder.entity_id,
            reminder.due_date.isoformat(),
            reminder.reason,
        )
