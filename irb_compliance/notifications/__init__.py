"""Notification requests produced by the workflow engine."""

from irb_compliance.notifications.models import (
    NotificationRequest,
    NotificationTrigger,
    ReminderRequest,
)

__all__ = ["NotificationRequest", "NotificationTrigger", "ReminderRequest"]
