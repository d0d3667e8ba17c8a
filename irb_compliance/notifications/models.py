"""Notification and reminder requests staged by workflow transitions.

Requests are plain data. They are collected while a transition runs and
handed to the notifier only after the unit of work commits.
"""

from datetime import date
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class NotificationTrigger(str, Enum):
    """Notification kinds understood by the external notifier."""

    IRB_SUBMISSION_RECEIVED = "IRB_SUBMISSION_RECEIVED"
    IRB_REVIEW_ASSIGNED = "IRB_REVIEW_ASSIGNED"
    IRB_APPROVAL = "IRB_APPROVAL"
    IRB_REJECTION = "IRB_REJECTION"
    IRB_SUBMISSION_WITHDRAWN = "IRB_SUBMISSION_WITHDRAWN"
    CONTINUING_REVIEW_DUE = "CONTINUING_REVIEW_DUE"
    REVIEW_OVERDUE = "REVIEW_OVERDUE"
    SAE_REPORTED = "SAE_REPORTED"
    REGULATORY_REPORT_DUE = "REGULATORY_REPORT_DUE"
    PROTOCOL_DEVIATION = "PROTOCOL_DEVIATION"
    DOCUMENT_EXPIRING = "DOCUMENT_EXPIRING"
    COMPLIANCE_ALERT = "COMPLIANCE_ALERT"


class NotificationRequest(BaseModel):
    """A notification to send once the triggering change is committed.

    When ``user_id`` is set the request targets a single user and the
    trigger value is used as the template name.
    """

    model_config = {"frozen": True}

    trigger: NotificationTrigger = Field(..., description="Notification kind")
    context: dict[str, Any] = Field(default_factory=dict, description="Template data")
    user_id: str | None = Field(default=None, description="Recipient for user templates")
    urgent: bool = Field(default=False, description="Deliver ahead of routine traffic")


class ReminderRequest(BaseModel):
    """A follow-up reminder to hand to the external reminder scheduler."""

    model_config = {"frozen": True}

    entity_type: str = Field(..., description="Kind of record the reminder is about")
    entity_id: str = Field(..., description="Record the reminder is about")
    due_date: date = Field(..., description="When the reminder should fire")
    offset_days: int = Field(..., ge=0, description="Days after the anchor date")
    reason: str = Field(..., description="Human-readable purpose")
