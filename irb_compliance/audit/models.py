"""Audit event models for the compliance audit trail.

All models are immutable once created (Pydantic frozen=True) and carry
UTC timestamps so every state change can be reconstructed.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field


def _utc_now() -> datetime:
    """Return current UTC time (timezone-aware)."""
    return datetime.now(UTC)


class AuditAction(str, Enum):
    """Types of actions that can be audited."""

    SUBMISSION_CREATED = "submission_created"
    SUBMISSION_UPDATED = "submission_updated"
    SUBMISSION_SUBMITTED = "submission_submitted"
    REVIEWERS_ASSIGNED = "reviewers_assigned"
    DECISION_RECORDED = "decision_recorded"
    SUBMISSION_WITHDRAWN = "submission_withdrawn"
    CLARIFICATION_RESPONDED = "clarification_responded"
    CONTINUING_REVIEW_OPENED = "continuing_review_opened"
    REVIEW_STARTED = "review_started"
    REVIEW_COMPLETED = "review_completed"
    REVIEW_CANCELLED = "review_cancelled"
    AE_CREATED = "ae_created"
    AE_UPDATED = "ae_updated"
    AE_CLASSIFIED = "ae_classified"
    AE_SUBMITTED = "ae_submitted"
    HOSPITALIZATION_ADDED = "hospitalization_added"
    FOLLOW_UP_ADDED = "follow_up_added"
    DEVIATION_REPORTED = "deviation_reported"
    DEVIATION_UPDATED = "deviation_updated"
    CORRECTIVE_ACTION_ADDED = "corrective_action_added"
    DEVIATION_CLOSED = "deviation_closed"
    TRANSACTION_ROLLED_BACK = "transaction_rolled_back"


class AuditEvent(BaseModel):
    """Base audit event model.

    Attributes:
        event_id: Unique identifier for this event.
        timestamp: UTC timestamp when event occurred.
        action: Type of action being logged.
        entity_type: Type of record affected (e.g., "submission").
        entity_id: ID of the record affected.
        actor_id: ID of user who performed the action (or "system").
        old_value: Record state before the action, if any.
        new_value: Record state after the action, if any.
        context: Additional action-specific details.
    """

    model_config = {"frozen": True}

    event_id: str = Field(..., description="Unique event identifier")
    timestamp: datetime = Field(
        default_factory=_utc_now,
        description="UTC timestamp of the event",
    )
    action: AuditAction = Field(..., description="Type of action performed")
    entity_type: str = Field(..., description="Type of record affected")
    entity_id: str = Field(..., description="ID of the affected record")
    actor_id: str = Field(default="system", description="Who performed the action")
    old_value: dict[str, Any] | None = Field(default=None)
    new_value: dict[str, Any] | None = Field(default=None)
    context: dict[str, Any] = Field(default_factory=dict)


class AEClassifiedEvent(BaseModel):
    """Event logged when an adverse event's derived classification changes.

    Captures the before and after reporting requirements so reviewers can
    see why re-notification happened.
    """

    model_config = {"frozen": True}

    event_id: str = Field(..., description="Unique event identifier")
    timestamp: datetime = Field(default_factory=_utc_now)
    action: Literal[AuditAction.AE_CLASSIFIED] = Field(default=AuditAction.AE_CLASSIFIED)
    entity_type: Literal["adverse_event"] = Field(default="adverse_event")
    entity_id: str = Field(..., description="Adverse event ID")
    actor_id: str = Field(default="system")

    previous: dict[str, Any] | None = Field(
        default=None, description="Previous derived fields, None on first classification"
    )
    current: dict[str, Any] = Field(..., description="Current derived fields")
    criteria_met: list[str] = Field(default_factory=list, description="SAE criteria")

    def to_base_event(self) -> AuditEvent:
        """Convert to base AuditEvent for storage."""
        return AuditEvent(
            event_id=self.event_id,
            timestamp=self.timestamp,
            action=self.action,
            entity_type=self.entity_type,
            entity_id=self.entity_id,
            actor_id=self.actor_id,
            old_value=self.previous,
            new_value=self.current,
            context={"criteria_met": self.criteria_met},
        )
