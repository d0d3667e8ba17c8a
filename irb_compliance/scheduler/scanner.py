"""Scans for records that have come due.

The scanner only answers "is this record due"; turning a match into
notifications or workflow calls is the trigger router's job.
"""

import logging
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from irb_compliance.config import WorkflowConfig
from irb_compliance.models.enums import ComplianceStatus, SubmissionStatus
from irb_compliance.models.submission import Review, Submission
from irb_compliance.ports.clock import Clock
from irb_compliance.ports.documents import ComplianceMetricSource, DocumentRegistry
from irb_compliance.ports.storage import Repository

logger = logging.getLogger(__name__)

APPROVED_STATUSES = frozenset(
    {SubmissionStatus.APPROVED, SubmissionStatus.APPROVED_WITH_CONDITIONS}
)
ALERT_STATUSES = frozenset({ComplianceStatus.NON_COMPLIANT, ComplianceStatus.CRITICAL})


class TriggerKind(str, Enum):
    """Kinds of due conditions the scanner detects."""

    CONTINUING_REVIEW_DUE = "CONTINUING_REVIEW_DUE"
    DOCUMENT_EXPIRING = "DOCUMENT_EXPIRING"
    REVIEW_OVERDUE = "REVIEW_OVERDUE"
    COMPLIANCE_ALERT = "COMPLIANCE_ALERT"
    COMPLIANCE_SUMMARY = "COMPLIANCE_SUMMARY"


class TriggerEvent(BaseModel):
    """A synthetic event produced by a scheduled scan."""

    model_config = {"frozen": True}

    kind: TriggerKind = Field(..., description="What came due")
    entity_type: str = Field(..., description="Kind of record that came due")
    entity_id: str = Field(..., description="Record that came due")
    due_date: date | None = Field(default=None, description="Relevant due date")
    recipient_id: str | None = Field(default=None, description="User to notify directly")
    context: dict[str, Any] = Field(default_factory=dict)


class ComplianceScanner:
    """Finds continuing reviews, documents, reviews and metrics needing attention.

    Args:
        submissions: Submission storage.
        reviews: Review storage.
        documents: Document registry for expiration dates.
        metrics: Source of externally tracked compliance metrics.
        clock: Current time source.
        config: Look-ahead and look-back windows.
    """

    def __init__(
        self,
        submissions: Repository[Submission],
        reviews: Repository[Review],
        documents: DocumentRegistry,
        metrics: ComplianceMetricSource,
        clock: Clock,
        config: WorkflowConfig,
    ):
        self.submissions = submissions
        self.reviews = reviews
        self.documents = documents
        self.metrics = metrics
        self.clock = clock
        self.config = config

    def continuing_reviews_due(self) -> list[TriggerEvent]:
        """Approved submissions whose continuing review falls within the window.

        Overdue continuing reviews are included.
        """
        today = self.clock.today()
        horizon = today + timedelta(days=self.config.continuing_review_window_days)
        due = self.submissions.find(
            lambda s: s.status in APPROVED_STATUSES
            and s.next_review_due_date is not None
            and s.next_review_due_date <= horizon
        )
        return [
            TriggerEvent(
                kind=TriggerKind.CONTINUING_REVIEW_DUE,
                entity_type="submission",
                entity_id=s.id,
                due_date=s.next_review_due_date,
                recipient_id=s.submitted_by,
                context={
                    "study_id": s.study_id,
                    "submission_number": s.submission_number,
                    "title": s.title,
                    "days_until_due": (s.next_review_due_date - today).days,
                    "continuing_review_submission_id": s.continuing_review_submission_id,
                },
            )
            for s in sorted(due, key=lambda s: s.next_review_due_date)
        ]

    def documents_expiring(self) -> list[TriggerEvent]:
        """Documents expiring within the window."""
        today = self.clock.today()
        expiring = self.documents.documents_expiring(
            today, self.config.document_expiry_window_days
        )
        return [
            TriggerEvent(
                kind=TriggerKind.DOCUMENT_EXPIRING,
                entity_type="document",
                entity_id=doc.id,
                due_date=doc.expiration_date,
                recipient_id=doc.owner_id,
                context={
                    "title": doc.title,
                    "document_type": doc.document_type.value,
                    "study_id": doc.study_id,
                    "days_until_expiration": (doc.expiration_date - today).days,
                },
            )
            for doc in sorted(expiring, key=lambda d: d.expiration_date)
        ]

    def overdue_reviews(self) -> list[TriggerEvent]:
        """Pending reviews whose due date has passed."""
        today = self.clock.today()
        overdue = self.reviews.find(
            lambda r: r.is_pending and r.due_date is not None and r.due_date < today
        )
        return [
            TriggerEvent(
                kind=TriggerKind.REVIEW_OVERDUE,
                entity_type="review",
                entity_id=r.id,
                due_date=r.due_date,
                recipient_id=r.reviewer_id,
                context={
                    "submission_id": r.submission_id,
                    "days_overdue": (today - r.due_date).days,
                },
            )
            for r in overdue
        ]

    def compliance_alerts(self) -> list[TriggerEvent]:
        """Metrics flagged NON_COMPLIANT or CRITICAL within the look-back window."""
        since: datetime = self.clock.now() - timedelta(
            hours=self.config.compliance_lookback_hours
        )
        flagged = [
            m for m in self.metrics.metrics_measured_since(since) if m.status in ALERT_STATUSES
        ]
        return [
            TriggerEvent(
                kind=TriggerKind.COMPLIANCE_ALERT,
                entity_type="compliance_metric",
                entity_id=m.id,
                context={
                    "study_id": m.study_id,
                    "metric": m.name,
                    "status": m.status.value,
                    "current_value": m.current_value,
                    "target_value": m.target_value,
                },
            )
            for m in flagged
        ]

    def compliance_summary(self) -> TriggerEvent:
        """Weekly roll-up of outstanding compliance work."""
        today = self.clock.today()
        pending_reviews = self.reviews.find(lambda r: r.is_pending)
        return TriggerEvent(
            kind=TriggerKind.COMPLIANCE_SUMMARY,
            entity_type="summary",
            entity_id=f"weekly-{today.isoformat()}",
            context={
                "as_of": today.isoformat(),
                "pending_reviews": len(pending_reviews),
                "overdue_reviews": len(self.overdue_reviews()),
                "continuing_reviews_due": len(self.continuing_reviews_due()),
                "documents_expiring": len(self.documents_expiring()),
            },
        )

    def scan_all(self) -> list[TriggerEvent]:
        """Run every due-condition scan once."""
        triggers = [
            *self.continuing_reviews_due(),
            *self.documents_expiring(),
            *self.overdue_reviews(),
            *self.compliance_alerts(),
        ]
        logger.info("Scan found %d due items", len(triggers))
        return triggers
