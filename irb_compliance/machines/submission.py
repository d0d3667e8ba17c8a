"""Submission and review state machines.

Submission lifecycle:
    DRAFT -> SUBMITTED -> UNDER_REVIEW -> APPROVED | APPROVED_WITH_CONDITIONS
                                       | DISAPPROVED | PENDING_CLARIFICATION
    PENDING_CLARIFICATION -> UNDER_REVIEW (or SUBMITTED without reviewers)
    any non-terminal state -> WITHDRAWN

Reaching a terminal status cancels every review still pending.
"""

import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from irb_compliance.audit.models import AuditAction
from irb_compliance.classification.submission import (
    APPROVAL_DECISIONS,
    FINAL_DECISIONS,
    approval_expiration_date,
    continuing_review_due,
    status_from_decision,
    submission_number,
)
from irb_compliance.config import WorkflowConfig
from irb_compliance.errors import ValidationError
from irb_compliance.machines.base import (
    StagedWrite,
    Transition,
    audit_entry,
    evolve,
    new_id,
    require_status,
)
from irb_compliance.models.enums import (
    DocumentType,
    IRBDecision,
    ReviewRecommendation,
    ReviewStatus,
    ReviewType,
    SubmissionStatus,
    SubmissionType,
)
from irb_compliance.models.submission import (
    TERMINAL_STATUSES,
    DecisionInput,
    Review,
    ReviewerAssignment,
    Submission,
    SubmissionCreate,
    SubmissionUpdate,
)
from irb_compliance.notifications.models import NotificationRequest, NotificationTrigger
from irb_compliance.ports.documents import DocumentRegistry
from irb_compliance.ports.reviewers import ReviewerPool

logger = logging.getLogger(__name__)

SUBMISSION = "submission"
REVIEW = "review"

NON_TERMINAL_STATUSES = [s for s in SubmissionStatus if s not in TERMINAL_STATUSES]


def _notification_context(submission: Submission) -> dict:
    return {
        "submission_id": submission.id,
        "submission_number": submission.submission_number,
        "study_id": submission.study_id,
        "title": submission.title,
        "status": submission.status.value,
    }


def cancel_pending_reviews(
    reviews: list[Review], now: datetime, reason: str
) -> tuple[list[StagedWrite], list]:
    """Cancel every ASSIGNED or IN_PROGRESS review.

    Returns:
        Tuple of (staged review writes, audit entries).
    """
    machine = ReviewMachine()
    writes: list[StagedWrite] = []
    entries = []
    for review in reviews:
        if not review.is_pending:
            continue
        transition = machine.cancel(review, reason, now)
        writes.extend(transition.writes())
        entries.extend(transition.audit)
    return writes, entries


class SubmissionMachine:
    """Guards and transitions for IRB submissions.

    Args:
        config: Workflow configuration (auto-approve categories, review days).
        documents: Registry used to check required document types.
        reviewers: Pool of reviewers for automatic expedited assignment.
        id_factory: Generator for new record ids.
    """

    def __init__(
        self,
        config: WorkflowConfig,
        documents: DocumentRegistry,
        reviewers: ReviewerPool,
        id_factory: Callable[[], str] = new_id,
    ):
        self.config = config
        self.documents = documents
        self.reviewers = reviewers
        self.id_factory = id_factory

    def create(self, data: SubmissionCreate, now: datetime) -> Transition[Submission]:
        """Draft a new submission."""
        submission = Submission(
            id=self.id_factory(),
            **data.model_dump(),
            status=SubmissionStatus.DRAFT,
            created_at=now,
            updated_at=now,
        )
        return Transition(
            entity_type=SUBMISSION,
            record=submission,
            previous=None,
            audit=[audit_entry(AuditAction.SUBMISSION_CREATED, SUBMISSION, None, submission)],
        )

    def update(
        self, submission: Submission, changes: SubmissionUpdate, now: datetime
    ) -> Transition[Submission]:
        """Edit a submission that has not yet been submitted."""
        require_status(
            SUBMISSION, submission.id, submission.status, "update", [SubmissionStatus.DRAFT]
        )
        updated = evolve(submission, **changes.model_dump(exclude_unset=True), updated_at=now)
        return Transition(
            entity_type=SUBMISSION,
            record=updated,
            previous=submission,
            audit=[
                audit_entry(
                    AuditAction.SUBMISSION_UPDATED,
                    SUBMISSION,
                    submission,
                    updated,
                    {"fields": sorted(changes.model_fields_set)},
                )
            ],
        )

    def validate_for_review(self, submission: Submission) -> list[str]:
        """List every requirement the submission is missing.

        Returns:
            Human-readable issues; empty when the submission is ready.
        """
        issues: list[str] = []

        if not submission.document_ids:
            issues.append("At least one document must be attached")

        if submission.submission_type == SubmissionType.INITIAL:
            if not self.documents.has_document_of_type(
                submission.document_ids, DocumentType.PROTOCOL
            ):
                issues.append("Initial submission requires a protocol document")
            if not self.documents.has_document_of_type(
                submission.document_ids, DocumentType.INFORMED_CONSENT
            ):
                issues.append("Initial submission requires an informed consent form")

        if submission.review_type == ReviewType.EXPEDITED and not submission.review_categories:
            issues.append("Expedited review requires at least one expedited category")

        return issues

    def submit(
        self, submission: Submission, now: datetime, sequence: int
    ) -> Transition[Submission]:
        """Submit a DRAFT for IRB review.

        Expedited submissions are assigned to the first available
        expedited reviewer. Exempt submissions claiming an auto-approve
        category are approved immediately.

        Args:
            submission: The DRAFT submission.
            now: Current time.
            sequence: Sequence number for the submission number.

        Raises:
            PreconditionError: If the submission is not in DRAFT.
            ValidationError: If any readiness requirement is missing.
        """
        require_status(
            SUBMISSION, submission.id, submission.status, "submit", [SubmissionStatus.DRAFT]
        )
        issues = self.validate_for_review(submission)
        if issues:
            raise ValidationError(issues, entity_type=SUBMISSION)

        submitted = evolve(
            submission,
            status=SubmissionStatus.SUBMITTED,
            submitted_at=now,
            submission_number=submission.submission_number
            or submission_number(
                submission.study_id, submission.submission_type, now.year, sequence
            ),
            updated_at=now,
        )
        transition = Transition(
            entity_type=SUBMISSION,
            record=submitted,
            previous=submission,
            audit=[
                audit_entry(AuditAction.SUBMISSION_SUBMITTED, SUBMISSION, submission, submitted)
            ],
            notifications=[
                NotificationRequest(
                    trigger=NotificationTrigger.IRB_SUBMISSION_RECEIVED,
                    context=_notification_context(submitted),
                )
            ],
        )

        if submitted.review_type == ReviewType.EXPEDITED:
            available = self.reviewers.available_reviewers(ReviewType.EXPEDITED)
            if available:
                reviewer_id = available[0]
                assignment = ReviewerAssignment(
                    reviewer_ids=[reviewer_id],
                    primary_reviewer_id=reviewer_id,
                    due_date=(now + timedelta(days=self.config.expedited_review_days)).date(),
                )
                transition = transition.then(
                    self.assign_reviewers(submitted, assignment, now)
                )
            else:
                logger.warning(
                    "No expedited reviewer available for submission %s", submitted.id
                )
        elif submitted.review_type == ReviewType.EXEMPT and self._auto_approvable(submitted):
            logger.info("Auto-approving exempt submission %s", submitted.id)
            transition = transition.then(
                self.make_decision(
                    submitted, DecisionInput(decision=IRBDecision.APPROVED), [], now
                )
            )

        return transition

    def _auto_approvable(self, submission: Submission) -> bool:
        return any(
            category in self.config.auto_approve_exempt_categories
            for category in submission.review_categories
        )

    def assign_reviewers(
        self, submission: Submission, assignment: ReviewerAssignment, now: datetime
    ) -> Transition[Submission]:
        """Move a SUBMITTED submission into review with a reviewer set."""
        require_status(
            SUBMISSION,
            submission.id,
            submission.status,
            "assign reviewers to",
            [SubmissionStatus.SUBMITTED],
        )

        changes: dict = {
            "status": SubmissionStatus.UNDER_REVIEW,
            "assigned_reviewer_ids": list(assignment.reviewer_ids),
            "primary_reviewer_id": assignment.primary_reviewer_id,
            "secondary_reviewer_id": assignment.secondary_reviewer_id,
            "due_date": assignment.due_date,
            "updated_at": now,
        }
        if (
            submission.submission_type == SubmissionType.INITIAL
            and submission.next_review_due_date is None
        ):
            changes["next_review_due_date"] = continuing_review_due(
                submission.review_type, now.date()
            )
        assigned = evolve(submission, **changes)

        reviews = [
            Review(
                id=self.id_factory(),
                submission_id=submission.id,
                reviewer_id=reviewer_id,
                role=assignment.role_for(reviewer_id),
                due_date=assignment.due_date,
                created_at=now,
                updated_at=now,
            )
            for reviewer_id in assignment.reviewer_ids
        ]

        notifications = [
            NotificationRequest(
                trigger=NotificationTrigger.IRB_REVIEW_ASSIGNED,
                user_id=review.reviewer_id,
                context={
                    **_notification_context(assigned),
                    "review_id": review.id,
                    "role": review.role.value,
                    "due_date": assignment.due_date.isoformat()
                    if assignment.due_date
                    else None,
                },
            )
            for review in reviews
        ]

        return Transition(
            entity_type=SUBMISSION,
            record=assigned,
            previous=submission,
            audit=[
                audit_entry(
                    AuditAction.REVIEWERS_ASSIGNED,
                    SUBMISSION,
                    submission,
                    assigned,
                    {"reviewer_ids": list(assignment.reviewer_ids)},
                )
            ],
            dependents=[StagedWrite(REVIEW, review, created=True) for review in reviews],
            notifications=notifications,
        )

    def make_decision(
        self,
        submission: Submission,
        decision: DecisionInput,
        reviews: list[Review],
        now: datetime,
    ) -> Transition[Submission]:
        """Record a board decision.

        Final decisions (approve, approve with conditions, disapprove) end
        the review cycle and cancel pending reviews. Deferred, tabled and
        modification requests send the submission to PENDING_CLARIFICATION.

        Raises:
            PreconditionError: Unless the submission is SUBMITTED or UNDER_REVIEW.
            ValidationError: If conditions or modifications are missing.
        """
        require_status(
            SUBMISSION,
            submission.id,
            submission.status,
            "record a decision on",
            [SubmissionStatus.SUBMITTED, SubmissionStatus.UNDER_REVIEW],
        )

        issues: list[str] = []
        if decision.decision == IRBDecision.APPROVED_WITH_CONDITIONS and not decision.conditions:
            issues.append("Approval with conditions requires at least one condition")
        if (
            decision.decision == IRBDecision.REQUIRES_MODIFICATIONS
            and not decision.modifications
        ):
            issues.append("Requiring modifications requires at least one modification")
        if issues:
            raise ValidationError(issues, entity_type=SUBMISSION)

        new_status = status_from_decision(decision.decision)
        today = now.date()
        changes: dict = {
            "status": new_status,
            "decision_date": now,
            "conditions": list(decision.conditions),
            "modifications": list(decision.modifications),
            "updated_at": now,
        }

        if decision.decision in FINAL_DECISIONS:
            changes["decision"] = decision.decision
        else:
            changes["deferral"] = decision.decision

        if decision.decision in APPROVAL_DECISIONS:
            changes["approval_expiration_date"] = (
                decision.approval_expiration_date
                or approval_expiration_date(submission.review_type, today)
            )
            if (
                submission.submission_type == SubmissionType.INITIAL
                and submission.next_review_due_date is None
            ):
                changes["next_review_due_date"] = continuing_review_due(
                    submission.review_type, today
                )

        decided = evolve(submission, **changes)
        audit = [
            audit_entry(
                AuditAction.DECISION_RECORDED,
                SUBMISSION,
                submission,
                decided,
                {"decision": decision.decision.value},
            )
        ]
        dependents: list[StagedWrite] = []
        if decided.status in TERMINAL_STATUSES:
            dependents, cancel_audit = cancel_pending_reviews(
                reviews, now, f"Submission {decision.decision.value.lower()}"
            )
            audit.extend(cancel_audit)

        trigger = (
            NotificationTrigger.IRB_APPROVAL
            if decision.decision in APPROVAL_DECISIONS
            else NotificationTrigger.IRB_REJECTION
        )
        context = {
            **_notification_context(decided),
            "decision": decision.decision.value,
            "conditions": list(decision.conditions),
            "modifications": list(decision.modifications),
        }
        return Transition(
            entity_type=SUBMISSION,
            record=decided,
            previous=submission,
            audit=audit,
            dependents=dependents,
            notifications=[
                NotificationRequest(trigger=trigger, context=context),
            ],
        )

    def withdraw(
        self, submission: Submission, reason: str, reviews: list[Review], now: datetime
    ) -> Transition[Submission]:
        """Withdraw a submission that has not reached a terminal status."""
        require_status(
            SUBMISSION, submission.id, submission.status, "withdraw", NON_TERMINAL_STATUSES
        )
        if not reason or not reason.strip():
            raise ValidationError(["Withdrawal reason is required"], entity_type=SUBMISSION)

        withdrawn = evolve(
            submission,
            status=SubmissionStatus.WITHDRAWN,
            withdrawal_reason=reason.strip(),
            withdrawn_at=now,
            updated_at=now,
        )
        dependents, cancel_audit = cancel_pending_reviews(reviews, now, "Submission withdrawn")
        return Transition(
            entity_type=SUBMISSION,
            record=withdrawn,
            previous=submission,
            audit=[
                audit_entry(
                    AuditAction.SUBMISSION_WITHDRAWN,
                    SUBMISSION,
                    submission,
                    withdrawn,
                    {"reason": reason.strip()},
                ),
                *cancel_audit,
            ],
            dependents=dependents,
            notifications=[
                NotificationRequest(
                    trigger=NotificationTrigger.IRB_SUBMISSION_WITHDRAWN,
                    context={**_notification_context(withdrawn), "reason": reason.strip()},
                )
            ],
        )

    def respond_to_clarification(
        self, submission: Submission, now: datetime
    ) -> Transition[Submission]:
        """Return a PENDING_CLARIFICATION submission to the board."""
        require_status(
            SUBMISSION,
            submission.id,
            submission.status,
            "respond to clarification on",
            [SubmissionStatus.PENDING_CLARIFICATION],
        )
        status = (
            SubmissionStatus.UNDER_REVIEW
            if submission.assigned_reviewer_ids
            else SubmissionStatus.SUBMITTED
        )
        responded = evolve(submission, status=status, updated_at=now)
        return Transition(
            entity_type=SUBMISSION,
            record=responded,
            previous=submission,
            audit=[
                audit_entry(
                    AuditAction.CLARIFICATION_RESPONDED, SUBMISSION, submission, responded
                )
            ],
        )

    def open_continuing_review(
        self, parent: Submission, now: datetime, sequence: int
    ) -> Transition[Submission]:
        """Open a DRAFT continuing-review submission for an approved study.

        The primary record of the returned transition is the parent, which
        is linked to the new child submission.
        """
        require_status(
            SUBMISSION,
            parent.id,
            parent.status,
            "open continuing review for",
            [SubmissionStatus.APPROVED, SubmissionStatus.APPROVED_WITH_CONDITIONS],
        )
        child = Submission(
            id=self.id_factory(),
            study_id=parent.study_id,
            submission_number=submission_number(
                parent.study_id, SubmissionType.CONTINUING_REVIEW, now.year, sequence
            ),
            title=f"Continuing Review: {parent.title}",
            description=f"Continuing review for IRB submission {parent.submission_number}",
            submission_type=SubmissionType.CONTINUING_REVIEW,
            review_type=ReviewType.FULL_BOARD,
            submitted_by=parent.submitted_by,
            parent_submission_id=parent.id,
            created_at=now,
            updated_at=now,
        )
        linked = evolve(parent, continuing_review_submission_id=child.id, updated_at=now)
        return Transition(
            entity_type=SUBMISSION,
            record=linked,
            previous=parent,
            audit=[
                audit_entry(
                    AuditAction.CONTINUING_REVIEW_OPENED,
                    SUBMISSION,
                    parent,
                    linked,
                    {"continuing_review_submission_id": child.id},
                ),
                audit_entry(AuditAction.SUBMISSION_CREATED, SUBMISSION, None, child),
            ],
            dependents=[StagedWrite(SUBMISSION, child, created=True)],
            notifications=[
                NotificationRequest(
                    trigger=NotificationTrigger.IRB_REVIEW_ASSIGNED,
                    user_id=parent.submitted_by,
                    context={
                        **_notification_context(child),
                        "parent_submission_id": parent.id,
                        "next_review_due_date": parent.next_review_due_date.isoformat()
                        if parent.next_review_due_date
                        else None,
                    },
                )
            ],
        )

    def complete_continuing_review(
        self, parent: Submission, child: Submission, now: datetime
    ) -> Transition[Submission]:
        """Roll the parent's review cycle forward after the child is approved."""
        rolled = evolve(
            parent,
            next_review_due_date=continuing_review_due(parent.review_type, now.date()),
            approval_expiration_date=child.approval_expiration_date
            or approval_expiration_date(parent.review_type, now.date()),
            continuing_review_submission_id=None,
            updated_at=now,
        )
        return Transition(
            entity_type=SUBMISSION,
            record=rolled,
            previous=parent,
            audit=[
                audit_entry(
                    AuditAction.SUBMISSION_UPDATED,
                    SUBMISSION,
                    parent,
                    rolled,
                    {"continuing_review_approved": child.id},
                )
            ],
        )

    def release_continuing_review(
        self, parent: Submission, child: Submission, now: datetime
    ) -> Transition[Submission]:
        """Unlink a withdrawn or disapproved child so a new cycle can open.

        The parent's due date is left as is.
        """
        released = evolve(parent, continuing_review_submission_id=None, updated_at=now)
        return Transition(
            entity_type=SUBMISSION,
            record=released,
            previous=parent,
            audit=[
                audit_entry(
                    AuditAction.SUBMISSION_UPDATED,
                    SUBMISSION,
                    parent,
                    released,
                    {
                        "continuing_review_closed": child.id,
                        "continuing_review_status": child.status.value,
                    },
                )
            ],
        )


class ReviewMachine:
    """Guards and transitions for individual reviewer assignments."""

    def start(self, review: Review, now: datetime) -> Transition[Review]:
        """Reviewer begins work on an assigned review."""
        require_status(REVIEW, review.id, review.status, "start", [ReviewStatus.ASSIGNED])
        started = evolve(review, status=ReviewStatus.IN_PROGRESS, started_at=now, updated_at=now)
        return Transition(
            entity_type=REVIEW,
            record=started,
            previous=review,
            audit=[audit_entry(AuditAction.REVIEW_STARTED, REVIEW, review, started)],
        )

    def complete(
        self,
        review: Review,
        recommendation: ReviewRecommendation,
        comments: str | None,
        now: datetime,
    ) -> Transition[Review]:
        """Reviewer submits a recommendation."""
        require_status(
            REVIEW,
            review.id,
            review.status,
            "complete",
            [ReviewStatus.ASSIGNED, ReviewStatus.IN_PROGRESS],
        )
        completed = evolve(
            review,
            status=ReviewStatus.COMPLETED,
            recommendation=recommendation,
            comments=comments,
            started_at=review.started_at or now,
            completed_at=now,
            updated_at=now,
        )
        return Transition(
            entity_type=REVIEW,
            record=completed,
            previous=review,
            audit=[
                audit_entry(
                    AuditAction.REVIEW_COMPLETED,
                    REVIEW,
                    review,
                    completed,
                    {"recommendation": recommendation.value},
                )
            ],
        )

    def cancel(self, review: Review, reason: str, now: datetime) -> Transition[Review]:
        """Cancel a review that is still pending."""
        require_status(
            REVIEW,
            review.id,
            review.status,
            "cancel",
            [ReviewStatus.ASSIGNED, ReviewStatus.IN_PROGRESS],
        )
        cancelled = evolve(
            review, status=ReviewStatus.CANCELLED, cancelled_at=now, updated_at=now
        )
        return Transition(
            entity_type=REVIEW,
            record=cancelled,
            previous=review,
            audit=[
                audit_entry(
                    AuditAction.REVIEW_CANCELLED, REVIEW, review, cancelled, {"reason": reason}
                )
            ],
        )
