"""Post-commit side effects.

Notification and reminder delivery is best effort. Failures are logged
and never surface as an operation failure, since the state change they
describe has already been committed.
"""

import logging

from irb_compliance.notifications.models import NotificationRequest, ReminderRequest
from irb_compliance.ports.notifier import Notifier, ReminderScheduler
from irb_compliance.workflow.unit_of_work import CommitResult

logger = logging.getLogger(__name__)


class SideEffectDispatcher:
    """Hands committed notifications and reminders to their collaborators."""

    def __init__(self, notifier: Notifier, reminders: ReminderScheduler):
        self.notifier = notifier
        self.reminders = reminders

    def send(self, request: NotificationRequest) -> bool:
        """Deliver one notification. Returns False if delivery failed."""
        context = dict(request.context)
        if request.urgent:
            context["urgent"] = True
        try:
            if request.user_id is not None:
                self.notifier.trigger_user(request.user_id, request.trigger.value, context)
            else:
                self.notifier.trigger(request.trigger.value, context)
        except Exception as e:
            logger.error("Notification %s failed: %s", request.trigger.value, e)
            return False
        return True

    def schedule(self, reminder: ReminderRequest) -> bool:
        """Record one reminder. Returns False if scheduling failed."""
        try:
            self.reminders.schedule(reminder)
        except Exception as e:
            logger.error(
                "Reminder for %s %s failed: %s", reminder.entity_type, reminder.entity_id, e
            )
            return False
        return True

    def dispatch(self, result: CommitResult) -> int:
        """Deliver everything a commit produced, urgent notifications first.

        Returns:
            Number of failed deliveries.
        """
        failures = 0
        ordered = sorted(result.notifications, key=lambda r: not r.urgent)
        for request in ordered:
            if not self.send(request):
                failures += 1
        for reminder in result.reminders:
            if not self.schedule(reminder):
                failures += 1
        if failures:
            logger.warning("%d side effects failed after commit", failures)
        return failures
