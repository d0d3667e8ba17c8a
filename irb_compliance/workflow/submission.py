"""Submission workflow orchestrator.

Composes the submission and review state machines with storage, audit,
authorization and notification delivery.
"""

import logging

from irb_compliance.classification.submission import APPROVAL_DECISIONS
from irb_compliance.errors import ValidationError
from irb_compliance.machines.base import Transition
from irb_compliance.machines.submission import (
    REVIEW,
    SUBMISSION,
    ReviewMachine,
    SubmissionMachine,
)
from irb_compliance.models.enums import (
    ReviewRecommendation,
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
from irb_compliance.ports.authorization import Actor, WorkflowAction
from irb_compliance.workflow.services import BaseWorkflow, WorkflowServices
from irb_compliance.workflow.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)

CLOSED_WITHOUT_APPROVAL = frozenset(
    {SubmissionStatus.WITHDRAWN, SubmissionStatus.DISAPPROVED}
)


class SubmissionWorkflow(BaseWorkflow):
    """IRB submission lifecycle operations."""

    def __init__(self, services: WorkflowServices):
        super().__init__(services)
        self.machine = SubmissionMachine(
            services.config, services.documents, services.reviewers
        )
        self.review_machine = ReviewMachine()

    # Queries

    def get(self, submission_id: str) -> Submission:
        return self.services.submissions.get(submission_id)

    def list_submissions(
        self, study_id: str | None = None, status: SubmissionStatus | None = None
    ) -> list[Submission]:
        """List submissions, optionally filtered by study and status."""
        return self.services.submissions.find(
            lambda s: (study_id is None or s.study_id == study_id)
            and (status is None or s.status == status)
        )

    def reviews_for(self, submission_id: str) -> list[Review]:
        return self.services.reviews.find(lambda r: r.submission_id == submission_id)

    def validate_for_review(self, submission_id: str) -> list[str]:
        """List what a submission still needs before it can be submitted."""
        return self.machine.validate_for_review(self.get(submission_id))

    # Helpers

    def _next_sequence(self, uow: UnitOfWork, submission: Submission, year: int) -> int:
        numbered = uow.find(
            SUBMISSION,
            lambda s: s.study_id == submission.study_id
            and s.submission_number is not None
            and f"-{year}-" in s.submission_number,
        )
        return len(numbered) + 1

    def _pending_reviews(self, uow: UnitOfWork, submission_id: str) -> list[Review]:
        return uow.find(REVIEW, lambda r: r.submission_id == submission_id and r.is_pending)

    def _settle_parent(
        self, uow: UnitOfWork, actor: Actor, child: Submission
    ) -> None:
        if (
            child.submission_type != SubmissionType.CONTINUING_REVIEW
            or child.parent_submission_id is None
            or child.status not in TERMINAL_STATUSES
        ):
            return
        parent = uow.get(SUBMISSION, child.parent_submission_id)
        if parent.continuing_review_submission_id != child.id:
            logger.warning(
                "Continuing review %s is not the open review of %s; parent unchanged",
                child.id,
                parent.id,
            )
            return
        now = self.services.clock.now()
        if child.decision in APPROVAL_DECISIONS:
            uow.apply(
                self.machine.complete_continuing_review(parent, child, now), actor.user_id
            )
            logger.info("Rolled continuing review cycle forward for %s", parent.id)
        else:
            uow.apply(
                self.machine.release_continuing_review(parent, child, now), actor.user_id
            )
            logger.info(
                "Released %s continuing review %s from %s",
                child.status.value,
                child.id,
                parent.id,
            )

    # Commands

    def create(self, actor: Actor, data: SubmissionCreate) -> Submission:
        """Draft a new submission."""
        self._authorize(actor, WorkflowAction.SUBMISSION_CREATE)
        transition = self._execute(
            actor, lambda uow: self.machine.create(data, self.services.clock.now())
        )
        logger.info("Created submission %s", transition.record.id)
        return transition.record

    def update(
        self, actor: Actor, submission_id: str, changes: SubmissionUpdate
    ) -> Submission:
        """Edit a DRAFT submission."""

        def step(uow: UnitOfWork) -> Transition:
            submission = uow.get(SUBMISSION, submission_id)
            self._authorize(actor, WorkflowAction.SUBMISSION_UPDATE, submission)
            return self.machine.update(submission, changes, self.services.clock.now())

        return self._execute(actor, step).record

    def submit(self, actor: Actor, submission_id: str) -> Submission:
        """Submit a DRAFT for IRB review.

        Raises:
            NotFoundError: If the submission does not exist.
            PreconditionError: If the submission is not in DRAFT.
            ValidationError: Listing every missing requirement.
        """

        def step(uow: UnitOfWork) -> Transition:
            submission = uow.get(SUBMISSION, submission_id)
            self._authorize(actor, WorkflowAction.SUBMISSION_SUBMIT, submission)
            now = self.services.clock.now()
            transition = self.machine.submit(
                submission, now, self._next_sequence(uow, submission, now.year)
            )
            self._settle_parent(uow, actor, transition.record)
            return transition

        transition = self._execute(actor, step)
        logger.info(
            "Submitted %s as %s (%s)",
            submission_id,
            transition.record.submission_number,
            transition.record.status.value,
        )
        return transition.record

    def assign_reviewers(
        self, actor: Actor, submission_id: str, assignment: ReviewerAssignment
    ) -> Submission:
        """Put a SUBMITTED submission under review."""

        def step(uow: UnitOfWork) -> Transition:
            submission = uow.get(SUBMISSION, submission_id)
            self._authorize(actor, WorkflowAction.SUBMISSION_ASSIGN_REVIEWERS, submission)
            return self.machine.assign_reviewers(
                submission, assignment, self.services.clock.now()
            )

        return self._execute(actor, step).record

    def make_decision(
        self, actor: Actor, submission_id: str, decision: DecisionInput
    ) -> Submission:
        """Record a board decision on a submission."""

        def step(uow: UnitOfWork) -> Transition:
            submission = uow.get(SUBMISSION, submission_id)
            self._authorize(actor, WorkflowAction.SUBMISSION_DECIDE, submission)
            transition = self.machine.make_decision(
                submission,
                decision,
                self._pending_reviews(uow, submission_id),
                self.services.clock.now(),
            )
            self._settle_parent(uow, actor, transition.record)
            return transition

        transition = self._execute(actor, step)
        logger.info(
            "Decision %s recorded for submission %s",
            decision.decision.value,
            submission_id,
        )
        return transition.record

    def withdraw(self, actor: Actor, submission_id: str, reason: str) -> Submission:
        """Withdraw a submission and cancel its pending reviews."""

        def step(uow: UnitOfWork) -> Transition:
            submission = uow.get(SUBMISSION, submission_id)
            self._authorize(actor, WorkflowAction.SUBMISSION_WITHDRAW, submission)
            transition = self.machine.withdraw(
                submission,
                reason,
                self._pending_reviews(uow, submission_id),
                self.services.clock.now(),
            )
            self._settle_parent(uow, actor, transition.record)
            return transition

        transition = self._execute(actor, step)
        logger.info("Withdrew submission %s", submission_id)
        return transition.record

    def respond_to_clarification(self, actor: Actor, submission_id: str) -> Submission:
        """Return a submission awaiting clarification to the board."""

        def step(uow: UnitOfWork) -> Transition:
            submission = uow.get(SUBMISSION, submission_id)
            self._authorize(actor, WorkflowAction.SUBMISSION_RESPOND, submission)
            return self.machine.respond_to_clarification(
                submission, self.services.clock.now()
            )

        return self._execute(actor, step).record

    def start_review(self, actor: Actor, review_id: str) -> Review:
        def step(uow: UnitOfWork) -> Transition:
            review = uow.get(REVIEW, review_id)
            self._authorize(actor, WorkflowAction.REVIEW_UPDATE, review)
            return self.review_machine.start(review, self.services.clock.now())

        return self._execute(actor, step).record

    def complete_review(
        self,
        actor: Actor,
        review_id: str,
        recommendation: ReviewRecommendation,
        comments: str | None = None,
    ) -> Review:
        def step(uow: UnitOfWork) -> Transition:
            review = uow.get(REVIEW, review_id)
            self._authorize(actor, WorkflowAction.REVIEW_UPDATE, review)
            return self.review_machine.complete(
                review, recommendation, comments, self.services.clock.now()
            )

        return self._execute(actor, step).record

    def process_continuing_review(self, actor: Actor, submission_id: str) -> Submission:
        """Open the continuing-review submission for a study that is due.

        Opens at most one continuing review per cycle: when one is already
        open it is returned unchanged. A linked child that was withdrawn or
        disapproved counts as absent, so a new one is opened.

        Returns:
            The DRAFT continuing-review submission.

        Raises:
            ValidationError: If the continuing review is not yet due.
        """
        parent = self.get(submission_id)
        if parent.continuing_review_submission_id is not None:
            linked = self.get(parent.continuing_review_submission_id)
            if linked.status not in CLOSED_WITHOUT_APPROVAL:
                return linked
            logger.warning(
                "Continuing review %s of %s is %s; opening a new one",
                linked.id,
                submission_id,
                linked.status.value,
            )

        today = self.services.clock.today()
        if parent.next_review_due_date is None or parent.next_review_due_date > today:
            raise ValidationError(
                [f"Continuing review for {submission_id} is not due"],
                entity_type=SUBMISSION,
            )

        def step(uow: UnitOfWork) -> Transition:
            current = uow.get(SUBMISSION, submission_id)
            now = self.services.clock.now()
            return self.machine.open_continuing_review(
                current, now, self._next_sequence(uow, current, now.year)
            )

        transition = self._execute(actor, step)
        child_id = transition.record.continuing_review_submission_id
        logger.info("Opened continuing review %s for %s", child_id, submission_id)
        return self.get(child_id)
