"""IRB submission and review records."""

from datetime import UTC, date, datetime

from pydantic import BaseModel, Field, model_validator

from irb_compliance.models.enums import (
    IRBDecision,
    ReviewerRole,
    ReviewRecommendation,
    ReviewStatus,
    ReviewType,
    SubmissionStatus,
    SubmissionType,
)

DECIDED_STATUSES = frozenset(
    {
        SubmissionStatus.APPROVED,
        SubmissionStatus.APPROVED_WITH_CONDITIONS,
        SubmissionStatus.DISAPPROVED,
    }
)
TERMINAL_STATUSES = DECIDED_STATUSES | {SubmissionStatus.WITHDRAWN}
PENDING_REVIEW_STATUSES = frozenset({ReviewStatus.ASSIGNED, ReviewStatus.IN_PROGRESS})


def _utc_now() -> datetime:
    """Return current UTC time (timezone-aware)."""
    return datetime.now(UTC)


class Submission(BaseModel):
    """A request for IRB review of a study or a change to it."""

    id: str = Field(..., description="Unique submission identifier")
    study_id: str = Field(..., description="Study this submission belongs to")
    submission_number: str | None = Field(
        default=None, description="Human-readable number assigned on submit"
    )
    title: str = Field(..., description="Submission title")
    description: str | None = Field(default=None, description="Free-text summary")
    submission_type: SubmissionType = Field(..., description="Kind of submission")
    review_type: ReviewType = Field(..., description="Level of IRB review requested")
    status: SubmissionStatus = Field(
        default=SubmissionStatus.DRAFT, description="Lifecycle status"
    )
    submitted_by: str = Field(..., description="User who owns the submission")
    submitted_at: datetime | None = Field(
        default=None, description="When the submission left DRAFT"
    )
    review_categories: list[str] = Field(
        default_factory=list,
        description="Expedited or exempt category codes claimed by the submitter",
    )
    document_ids: list[str] = Field(
        default_factory=list, description="Attached document references"
    )
    assigned_reviewer_ids: list[str] = Field(
        default_factory=list, description="Reviewers assigned to this submission"
    )
    primary_reviewer_id: str | None = Field(default=None, description="Primary reviewer")
    secondary_reviewer_id: str | None = Field(
        default=None, description="Secondary reviewer"
    )
    due_date: date | None = Field(default=None, description="Review due date")
    decision: IRBDecision | None = Field(
        default=None, description="Final board decision for this cycle"
    )
    deferral: IRBDecision | None = Field(
        default=None,
        description="Most recent non-final board action (deferred, tabled, modifications)",
    )
    decision_date: datetime | None = Field(default=None, description="When decided")
    conditions: list[str] = Field(
        default_factory=list, description="Conditions attached to an approval"
    )
    modifications: list[str] = Field(
        default_factory=list, description="Modifications requested by the board"
    )
    approval_expiration_date: date | None = Field(
        default=None, description="Date the approval lapses"
    )
    next_review_due_date: date | None = Field(
        default=None, description="Next continuing-review due date"
    )
    parent_submission_id: str | None = Field(
        default=None, description="Submission this one continues or amends"
    )
    continuing_review_submission_id: str | None = Field(
        default=None, description="Open continuing-review submission, if any"
    )
    withdrawal_reason: str | None = Field(default=None, description="Why withdrawn")
    withdrawn_at: datetime | None = Field(default=None, description="When withdrawn")
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)

    @model_validator(mode="after")
    def _decision_matches_status(self) -> "Submission":
        decided = self.status in DECIDED_STATUSES
        if decided and self.decision is None:
            raise ValueError(f"Status {self.status.value} requires a decision")
        if not decided and self.decision is not None:
            raise ValueError(
                f"Decision {self.decision.value} not allowed in status {self.status.value}"
            )
        return self

    @property
    def is_terminal(self) -> bool:
        """Whether the submission has reached a terminal status for this cycle."""
        return self.status in TERMINAL_STATUSES


class Review(BaseModel):
    """One reviewer's assignment against a submission."""

    id: str = Field(..., description="Unique review identifier")
    submission_id: str = Field(..., description="Owning submission")
    reviewer_id: str = Field(..., description="Assigned reviewer")
    role: ReviewerRole = Field(..., description="Primary, secondary or member")
    status: ReviewStatus = Field(default=ReviewStatus.ASSIGNED)
    recommendation: ReviewRecommendation | None = Field(default=None)
    comments: str | None = Field(default=None, description="Reviewer comments")
    due_date: date | None = Field(default=None, description="When the review is due")
    started_at: datetime | None = Field(default=None)
    completed_at: datetime | None = Field(default=None)
    cancelled_at: datetime | None = Field(default=None)
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)

    @property
    def is_pending(self) -> bool:
        """Whether the review still needs work from the reviewer."""
        return self.status in PENDING_REVIEW_STATUSES


class SubmissionCreate(BaseModel):
    """Fields a submitter provides when drafting a submission."""

    study_id: str = Field(..., description="Study this submission belongs to")
    title: str = Field(..., min_length=1, description="Submission title")
    description: str | None = Field(default=None)
    submission_type: SubmissionType = Field(...)
    review_type: ReviewType = Field(...)
    submitted_by: str = Field(..., description="Owning user")
    review_categories: list[str] = Field(default_factory=list)
    document_ids: list[str] = Field(default_factory=list)
    parent_submission_id: str | None = Field(default=None)


class SubmissionUpdate(BaseModel):
    """Editable fields of a DRAFT submission."""

    title: str | None = Field(default=None, min_length=1)
    description: str | None = None
    review_type: ReviewType | None = None
    review_categories: list[str] | None = None
    document_ids: list[str] | None = None


class ReviewerAssignment(BaseModel):
    """Reviewer set for a submission entering review."""

    reviewer_ids: list[str] = Field(..., min_length=1)
    primary_reviewer_id: str | None = None
    secondary_reviewer_id: str | None = None
    due_date: date | None = None

    @model_validator(mode="after")
    def _leads_are_assigned(self) -> "ReviewerAssignment":
        for lead in (self.primary_reviewer_id, self.secondary_reviewer_id):
            if lead is not None and lead not in self.reviewer_ids:
                raise ValueError(f"Reviewer {lead} is not in reviewer_ids")
        return self

    def role_for(self, reviewer_id: str) -> ReviewerRole:
        """Return the review role of one assigned reviewer."""
        if reviewer_id == self.primary_reviewer_id:
            return ReviewerRole.PRIMARY
        if reviewer_id == self.secondary_reviewer_id:
            return ReviewerRole.SECONDARY
        return ReviewerRole.MEMBER


class DecisionInput(BaseModel):
    """A board decision on a submission under review."""

    decision: IRBDecision
    conditions: list[str] = Field(default_factory=list)
    modifications: list[str] = Field(default_factory=list)
    approval_expiration_date: date | None = None
