"""Tests for the workflow orchestrators running against in-memory storage."""

from datetime import date, timedelta
from unittest.mock import MagicMock

import pytest

from irb_compliance.audit.models import AuditAction
from irb_compliance.errors import (
    AuthorizationError,
    NotFoundError,
    PreconditionError,
    ValidationError,
)
from irb_compliance.models.adverse_event import AdverseEventUpdate, Hospitalization
from irb_compliance.models.deviation import DeviationUpdate
from irb_compliance.models.enums import (
    AEExpectedness,
    AEOutcome,
    AESeriousness,
    AESeverity,
    AEStatus,
    DeviationSeverity,
    DeviationStatus,
    IRBDecision,
    ReviewRecommendation,
    ReviewStatus,
    ReviewType,
    SubmissionStatus,
    SubmissionType,
)
from irb_compliance.models.submission import (
    DecisionInput,
    ReviewerAssignment,
    SubmissionUpdate,
)
from irb_compliance.ports.authorization import Actor, RoleBasedAuthorizer, UserRole
from irb_compliance.workflow import ComplianceEngine


def _approved_initial(engine: ComplianceEngine, admin: Actor, pi: Actor, submission_data):
    submission = engine.submissions.create(pi, submission_data())
    engine.submissions.submit(pi, submission.id)
    return engine.submissions.make_decision(
        admin, submission.id, DecisionInput(decision=IRBDecision.APPROVED)
    )


class TestSubmissionWorkflow:
    """Tests for the submission lifecycle through the orchestrator."""

    def test_submit_persists_and_notifies(
        self, engine, pi, submission_data, notifier, audit_logger
    ) -> None:
        """Submitting stores the new status, audits it and notifies after commit."""
        submission = engine.submissions.create(pi, submission_data())
        submitted = engine.submissions.submit(pi, submission.id)

        stored = engine.submissions.get(submission.id)
        assert stored.status == SubmissionStatus.SUBMITTED
        assert stored.submission_number == submitted.submission_number
        notifier.trigger.assert_called_once()
        assert notifier.trigger.call_args.args[0] == "IRB_SUBMISSION_RECEIVED"

        actions = [e.action for e in audit_logger.get_events(submission.id)]
        assert actions == [AuditAction.SUBMISSION_CREATED, AuditAction.SUBMISSION_SUBMITTED]
        assert all(e.actor_id == "pi-1" for e in audit_logger.get_events(submission.id))

    def test_failed_validation_changes_nothing(
        self, engine, pi, submission_data, notifier, audit_logger
    ) -> None:
        """A rejected submit leaves the draft untouched with no audit or notification."""
        submission = engine.submissions.create(pi, submission_data(document_ids=["doc-protocol"]))
        with pytest.raises(ValidationError) as exc_info:
            engine.submissions.submit(pi, submission.id)

        assert "Initial submission requires an informed consent form" in exc_info.value.issues
        assert engine.submissions.get(submission.id).status == SubmissionStatus.DRAFT
        notifier.trigger.assert_not_called()
        assert len(audit_logger.get_events(submission.id)) == 1

    def test_missing_submission(self, engine, pi) -> None:
        """Unknown ids raise NotFoundError."""
        with pytest.raises(NotFoundError):
            engine.submissions.submit(pi, "does-not-exist")

    def test_submission_numbers_increment_per_study(self, engine, pi, submission_data) -> None:
        """Each submitted record in a study gets the next sequence."""
        first = engine.submissions.create(pi, submission_data())
        second = engine.submissions.create(pi, submission_data(title="Second study arm"))
        assert engine.submissions.submit(pi, first.id).submission_number.endswith("-001")
        assert engine.submissions.submit(pi, second.id).submission_number.endswith("-002")

    def test_withdraw_under_review_cancels_reviews(
        self, engine, admin, pi, submission_data, notifier
    ) -> None:
        """Withdrawing from UNDER_REVIEW leaves no pending reviews."""
        submission = engine.submissions.create(pi, submission_data())
        engine.submissions.submit(pi, submission.id)
        engine.submissions.assign_reviewers(
            admin,
            submission.id,
            ReviewerAssignment(reviewer_ids=["r-1", "r-2"], primary_reviewer_id="r-1"),
        )
        first_review = engine.submissions.reviews_for(submission.id)[0]
        engine.submissions.start_review(admin, first_review.id)

        withdrawn = engine.submissions.withdraw(pi, submission.id, "Sponsor ended funding")

        assert withdrawn.status == SubmissionStatus.WITHDRAWN
        assert withdrawn.withdrawal_reason == "Sponsor ended funding"
        reviews = engine.submissions.reviews_for(submission.id)
        assert len(reviews) == 2
        assert all(r.status == ReviewStatus.CANCELLED for r in reviews)
        triggers = [c.args[0] for c in notifier.trigger.call_args_list]
        assert "IRB_SUBMISSION_WITHDRAWN" in triggers

    def test_assigned_reviewers_are_notified_individually(
        self, engine, admin, pi, submission_data, notifier
    ) -> None:
        """Each reviewer receives a user-targeted assignment notice."""
        submission = engine.submissions.create(pi, submission_data())
        engine.submissions.submit(pi, submission.id)
        engine.submissions.assign_reviewers(
            admin, submission.id, ReviewerAssignment(reviewer_ids=["r-1", "r-2"])
        )
        users = [c.args[0] for c in notifier.trigger_user.call_args_list]
        templates = {c.args[1] for c in notifier.trigger_user.call_args_list}
        assert users == ["r-1", "r-2"]
        assert templates == {"IRB_REVIEW_ASSIGNED"}

    def test_expedited_submission_under_review(self, engine, pi, submission_data) -> None:
        """Expedited submissions land under review with a stored review."""
        submission = engine.submissions.create(
            pi, submission_data(review_type=ReviewType.EXPEDITED, review_categories=["7"])
        )
        submitted = engine.submissions.submit(pi, submission.id)

        assert submitted.status == SubmissionStatus.UNDER_REVIEW
        reviews = engine.submissions.reviews_for(submission.id)
        assert [r.reviewer_id for r in reviews] == ["reviewer-1"]
        assert reviews[0].due_date == date(2025, 3, 17)

    def test_approval_cancels_outstanding_reviews(
        self, engine, admin, pi, submission_data
    ) -> None:
        """Completed reviews stay completed; pending ones are cancelled."""
        submission = engine.submissions.create(pi, submission_data())
        engine.submissions.submit(pi, submission.id)
        engine.submissions.assign_reviewers(
            admin, submission.id, ReviewerAssignment(reviewer_ids=["r-1", "r-2"])
        )
        done, pending = engine.submissions.reviews_for(submission.id)
        engine.submissions.complete_review(
            admin, done.id, ReviewRecommendation.APPROVE, "No concerns"
        )

        approved = engine.submissions.make_decision(
            admin,
            submission.id,
            DecisionInput(
                decision=IRBDecision.APPROVED_WITH_CONDITIONS,
                conditions=["Update consent form version"],
            ),
        )
        assert approved.status == SubmissionStatus.APPROVED_WITH_CONDITIONS
        assert approved.conditions == ["Update consent form version"]
        assert engine.submissions.services.reviews.get(done.id).status == ReviewStatus.COMPLETED
        assert engine.submissions.services.reviews.get(pending.id).status == (
            ReviewStatus.CANCELLED
        )

    def test_clarification_round_trip(self, engine, admin, pi, submission_data) -> None:
        """Modifications requested, answered, then approved."""
        submission = engine.submissions.create(pi, submission_data())
        engine.submissions.submit(pi, submission.id)
        engine.submissions.assign_reviewers(
            admin, submission.id, ReviewerAssignment(reviewer_ids=["r-1"])
        )
        pending = engine.submissions.make_decision(
            admin,
            submission.id,
            DecisionInput(
                decision=IRBDecision.REQUIRES_MODIFICATIONS,
                modifications=["Clarify exclusion criteria"],
            ),
        )
        assert pending.status == SubmissionStatus.PENDING_CLARIFICATION

        responded = engine.submissions.respond_to_clarification(pi, submission.id)
        assert responded.status == SubmissionStatus.UNDER_REVIEW

        approved = engine.submissions.make_decision(
            admin, submission.id, DecisionInput(decision=IRBDecision.APPROVED)
        )
        assert approved.status == SubmissionStatus.APPROVED
        assert approved.deferral == IRBDecision.REQUIRES_MODIFICATIONS

    def test_list_submissions_filters(self, engine, pi, submission_data) -> None:
        """Listing filters by study and status."""
        first = engine.submissions.create(pi, submission_data())
        engine.submissions.create(pi, submission_data(study_id="other-study"))
        engine.submissions.submit(pi, first.id)

        submitted = engine.submissions.list_submissions(status=SubmissionStatus.SUBMITTED)
        assert [s.id for s in submitted] == [first.id]
        assert len(engine.submissions.list_submissions(study_id="other-study")) == 1


class TestContinuingReview:
    """Tests for opening and completing continuing reviews."""

    def test_not_due_is_rejected(self, engine, admin, pi, submission_data) -> None:
        """A continuing review cannot open before it is due."""
        approved = _approved_initial(engine, admin, pi, submission_data)
        with pytest.raises(ValidationError):
            engine.submissions.process_continuing_review(admin, approved.id)

    def test_opens_once_and_rolls_forward(
        self, engine, admin, pi, submission_data, clock
    ) -> None:
        """The child opens once; approving it moves the parent's cycle forward."""
        approved = _approved_initial(engine, admin, pi, submission_data)
        assert approved.next_review_due_date == date(2026, 3, 10)

        clock.advance(days=366)
        child = engine.submissions.process_continuing_review(admin, approved.id)
        again = engine.submissions.process_continuing_review(admin, approved.id)
        assert again.id == child.id
        assert child.submission_type == SubmissionType.CONTINUING_REVIEW
        assert engine.submissions.get(approved.id).continuing_review_submission_id == child.id

        engine.submissions.update(pi, child.id, SubmissionUpdate(document_ids=["doc-protocol"]))

        engine.submissions.submit(pi, child.id)
        engine.submissions.make_decision(
            admin, child.id, DecisionInput(decision=IRBDecision.APPROVED)
        )

        parent = engine.submissions.get(approved.id)
        assert parent.continuing_review_submission_id is None
        assert parent.next_review_due_date == date(2027, 3, 11)
        assert parent.status == SubmissionStatus.APPROVED

    def test_withdrawn_child_allows_a_new_cycle(
        self, engine, admin, pi, submission_data, clock
    ) -> None:
        """Withdrawing the open continuing review unlinks it and a new one can open."""
        approved = _approved_initial(engine, admin, pi, submission_data)
        clock.advance(days=366)
        first = engine.submissions.process_continuing_review(admin, approved.id)

        engine.submissions.withdraw(pi, first.id, "Filed against the wrong study")

        parent = engine.submissions.get(approved.id)
        assert parent.continuing_review_submission_id is None
        assert parent.next_review_due_date == date(2026, 3, 10)

        second = engine.submissions.process_continuing_review(admin, approved.id)
        assert second.id != first.id
        assert second.status == SubmissionStatus.DRAFT
        assert engine.submissions.get(approved.id).continuing_review_submission_id == second.id

    def test_disapproved_child_allows_a_new_cycle(
        self, engine, admin, pi, submission_data, clock, audit_logger
    ) -> None:
        """A disapproved continuing review leaves the due date and frees the parent."""
        approved = _approved_initial(engine, admin, pi, submission_data)
        clock.advance(days=366)
        child = engine.submissions.process_continuing_review(admin, approved.id)
        engine.submissions.update(pi, child.id, SubmissionUpdate(document_ids=["doc-protocol"]))
        engine.submissions.submit(pi, child.id)

        engine.submissions.make_decision(
            admin, child.id, DecisionInput(decision=IRBDecision.DISAPPROVED)
        )

        parent = engine.submissions.get(approved.id)
        assert parent.continuing_review_submission_id is None
        assert parent.next_review_due_date == date(2026, 3, 10)
        released = audit_logger.get_events(approved.id)[-1]
        assert released.context["continuing_review_closed"] == child.id
        assert released.context["continuing_review_status"] == "DISAPPROVED"

        reopened = engine.submissions.process_continuing_review(admin, approved.id)
        assert reopened.id != child.id

    def test_stale_link_to_withdrawn_child_is_replaced(
        self, services, engine, admin, pi, submission_data, clock
    ) -> None:
        """A parent still linked to a withdrawn child gets a fresh continuing review."""
        approved = _approved_initial(engine, admin, pi, submission_data)
        clock.advance(days=366)
        first = engine.submissions.process_continuing_review(admin, approved.id)
        services.submissions.update(first.id, {"status": SubmissionStatus.WITHDRAWN})

        second = engine.submissions.process_continuing_review(admin, approved.id)

        assert second.id != first.id
        assert engine.submissions.get(approved.id).continuing_review_submission_id == second.id


class TestAdverseEventWorkflow:
    """Tests for adverse event intake, reporting and reclassification."""

    def test_critical_event_notifies_before_return(
        self, engine, coordinator, ae_data, notifier
    ) -> None:
        """A life-threatening event sends an urgent SAE notice during processing."""
        event = engine.adverse_events.process_new_adverse_event(
            coordinator,
            ae_data(
                severity=AESeverity.LIFE_THREATENING,
                seriousness=AESeriousness.SERIOUS,
                expectedness=AEExpectedness.UNEXPECTED,
                outcome=AEOutcome.NOT_RECOVERED,
            ),
        )

        assert event.is_sae is True
        notifier.trigger.assert_called_once()
        trigger_kind, context = notifier.trigger.call_args.args
        assert trigger_kind == "SAE_REPORTED"
        assert context["urgent"] is True
        assert context["sae_report_id"] == event.sae_report_id

    def test_sae_report_ids_are_sequential(self, engine, coordinator, ae_data) -> None:
        """SAE report ids count up per study and year."""
        first = engine.adverse_events.process_new_adverse_event(
            coordinator, ae_data(seriousness=AESeriousness.SERIOUS)
        )
        engine.adverse_events.process_new_adverse_event(coordinator, ae_data())
        second = engine.adverse_events.process_new_adverse_event(
            coordinator, ae_data(medically_significant=True)
        )
        assert first.sae_report_id == "SAE-2025-a1b2c3d4-0001"
        assert second.sae_report_id == "SAE-2025-a1b2c3d4-0002"

    def test_classification_audited(self, engine, coordinator, ae_data, audit_logger) -> None:
        """Creation logs both the record and its classification."""
        event = engine.adverse_events.process_new_adverse_event(coordinator, ae_data())
        actions = [e.action for e in audit_logger.get_events(event.id)]
        assert actions == [AuditAction.AE_CREATED, AuditAction.AE_CLASSIFIED]

    def test_hospitalization_reclassifies_stored_event(
        self, engine, coordinator, ae_data, notifier, audit_logger
    ) -> None:
        """A hospitalization upgrades the stored event and re-notifies."""
        event = engine.adverse_events.process_new_adverse_event(coordinator, ae_data())
        updated = engine.adverse_events.add_hospitalization(
            coordinator,
            event.id,
            Hospitalization(
                admission_date=date(2025, 3, 10),
                discharge_date=date(2025, 3, 12),
                reason="Severe dehydration",
            ),
        )

        stored = engine.adverse_events.get(event.id)
        assert stored.seriousness == AESeriousness.SERIOUS
        assert stored.is_sae is True
        assert stored.sae_report_id == updated.sae_report_id
        assert notifier.trigger.call_args.args[0] == "SAE_REPORTED"
        classified = audit_logger.get_events_by_action(AuditAction.AE_CLASSIFIED)
        assert classified[-1].old_value["is_sae"] is False
        assert classified[-1].new_value["is_sae"] is True

    def test_downgrade_reclassification_sends_compliance_alert(
        self, engine, coordinator, ae_data, notifier
    ) -> None:
        """An event that stops being an SAE triggers a compliance alert."""
        event = engine.adverse_events.process_new_adverse_event(
            coordinator, ae_data(seriousness=AESeriousness.SERIOUS)
        )
        notifier.reset_mock()
        updated = engine.adverse_events.update(
            coordinator,
            event.id,
            AdverseEventUpdate(seriousness=AESeriousness.NON_SERIOUS),
        )
        assert updated.is_sae is False
        assert notifier.trigger.call_args.args[0] == "COMPLIANCE_ALERT"

    def test_submit_reports_and_schedules(
        self, engine, coordinator, ae_data, notifier, reminders
    ) -> None:
        """Submission notifies each required body and schedules SAE follow-ups."""
        event = engine.adverse_events.process_new_adverse_event(
            coordinator,
            ae_data(seriousness=AESeriousness.SERIOUS, action_taken="Dose held"),
        )
        notifier.reset_mock()
        reported = engine.adverse_events.submit(coordinator, event.id)

        assert reported.status == AEStatus.REPORTED
        recipients = [c.args[1]["recipient"] for c in notifier.trigger.call_args_list]
        assert recipients == ["SPONSOR", "IRB"]
        assert [r.offset_days for r in reminders.scheduled] == [7, 14, 30]

    def test_follow_up_reopens_event(self, engine, coordinator, ae_data) -> None:
        """A follow-up report moves a reported event to REQUIRES_FOLLOWUP."""
        event = engine.adverse_events.process_new_adverse_event(coordinator, ae_data())
        engine.adverse_events.submit(coordinator, event.id)
        reopened = engine.adverse_events.add_follow_up_report(coordinator, event.id, "doc-fu-1")
        assert reopened.status == AEStatus.REQUIRES_FOLLOWUP

        updated = engine.adverse_events.update(
            coordinator, event.id, AdverseEventUpdate(resolution_date=date(2025, 3, 12))
        )
        assert updated.resolution_date == date(2025, 3, 12)

    def test_list_and_expedited_assessment(self, engine, coordinator, ae_data) -> None:
        """SAE filter and expedited explanation work from stored records."""
        sae = engine.adverse_events.process_new_adverse_event(
            coordinator, ae_data(outcome=AEOutcome.FATAL)
        )
        engine.adverse_events.process_new_adverse_event(coordinator, ae_data())

        assert [e.id for e in engine.adverse_events.list_events(sae_only=True)] == [sae.id]
        assessment = engine.adverse_events.assess_expedited_reporting(sae.id)
        assert assessment.reasons == ["Life-threatening or fatal event"]


class TestDeviationWorkflow:
    """Tests for deviation reporting through the orchestrator."""

    def test_full_lifecycle(self, engine, coordinator, pi, deviation_data, audit_logger) -> None:
        """Report, escalate, resolve and close a deviation."""
        deviation = engine.deviations.report(coordinator, deviation_data())
        engine.deviations.update(
            coordinator,
            deviation.id,
            DeviationUpdate(severity=DeviationSeverity.CRITICAL),
        )
        engine.deviations.add_corrective_action(
            coordinator, deviation.id, "Retrained staff", "Added checklist"
        )
        closed = engine.deviations.close(pi, deviation.id, "Verified at monitoring visit")

        assert closed.status == DeviationStatus.CLOSED
        assert closed.reportable_to_irb is True
        actions = [e.action for e in audit_logger.get_events(deviation.id)]
        assert actions == [
            AuditAction.DEVIATION_REPORTED,
            AuditAction.DEVIATION_UPDATED,
            AuditAction.CORRECTIVE_ACTION_ADDED,
            AuditAction.DEVIATION_CLOSED,
        ]
        listed = engine.deviations.list_deviations(status=DeviationStatus.CLOSED)
        assert [d.id for d in listed] == [deviation.id]


class TestAuthorization:
    """Tests for permission checks in the orchestrators."""

    @pytest.fixture
    def guarded(self, services) -> ComplianceEngine:
        services.authorizer = RoleBasedAuthorizer()
        return ComplianceEngine(services)

    def test_owner_may_submit(self, guarded, submission_data) -> None:
        """A coordinator who owns the submission may submit it."""
        owner = Actor(user_id="pi-1", roles=frozenset({UserRole.STUDY_COORDINATOR}))
        submission = guarded.submissions.create(owner, submission_data())
        assert guarded.submissions.submit(owner, submission.id).status == (
            SubmissionStatus.SUBMITTED
        )

    def test_stranger_may_not_submit(self, guarded, pi, submission_data) -> None:
        """Coordinators cannot submit someone else's submission."""
        submission = guarded.submissions.create(pi, submission_data())
        stranger = Actor(user_id="coord-9", roles=frozenset({UserRole.STUDY_COORDINATOR}))
        with pytest.raises(AuthorizationError):
            guarded.submissions.submit(stranger, submission.id)
        assert guarded.submissions.get(submission.id).status == SubmissionStatus.DRAFT

    def test_only_admin_decides(self, guarded, pi, admin, submission_data) -> None:
        """Investigators cannot record board decisions."""
        submission = guarded.submissions.create(pi, submission_data())
        guarded.submissions.submit(pi, submission.id)
        with pytest.raises(AuthorizationError):
            guarded.submissions.make_decision(
                pi, submission.id, DecisionInput(decision=IRBDecision.APPROVED)
            )
        decided = guarded.submissions.make_decision(
            admin, submission.id, DecisionInput(decision=IRBDecision.APPROVED)
        )
        assert decided.status == SubmissionStatus.APPROVED

    def test_reviewer_updates_own_review(self, guarded, pi, admin, submission_data) -> None:
        """Reviewers may act on their own review only."""
        submission = guarded.submissions.create(pi, submission_data())
        guarded.submissions.submit(pi, submission.id)
        guarded.submissions.assign_reviewers(
            admin, submission.id, ReviewerAssignment(reviewer_ids=["r-1"])
        )
        review = guarded.submissions.reviews_for(submission.id)[0]

        other = Actor(user_id="r-2", roles=frozenset({UserRole.IRB_REVIEWER}))
        with pytest.raises(AuthorizationError):
            guarded.submissions.start_review(other, review.id)
        own = Actor(user_id="r-1", roles=frozenset({UserRole.IRB_REVIEWER}))
        assert guarded.submissions.start_review(own, review.id).status == (
            ReviewStatus.IN_PROGRESS
        )


class TestSideEffectIsolation:
    """Tests that notification failures never undo committed work."""

    def test_notifier_failure_is_swallowed(
        self, engine, coordinator, ae_data, notifier
    ) -> None:
        """A failing notifier does not fail the operation."""
        notifier.trigger.side_effect = ConnectionError("SMTP unreachable")
        event = engine.adverse_events.process_new_adverse_event(
            coordinator, ae_data(outcome=AEOutcome.FATAL)
        )
        assert engine.adverse_events.get(event.id).is_sae is True

    def test_precondition_error_reports_status(
        self, engine, coordinator, ae_data, clock
    ) -> None:
        """Precondition failures name the current status."""
        event = engine.adverse_events.process_new_adverse_event(coordinator, ae_data())
        engine.adverse_events.submit(coordinator, event.id)
        clock.advance(days=1)
        with pytest.raises(PreconditionError) as exc_info:
            engine.adverse_events.submit(coordinator, event.id)
        assert exc_info.value.current_status == "REPORTED"
        assert exc_info.value.details["allowed"] == ["DRAFT", "REQUIRES_FOLLOWUP"]

    def test_reminder_failure_is_swallowed(self, services, coordinator, ae_data) -> None:
        """A failing reminder scheduler does not fail submission."""
        services.reminders = MagicMock()
        services.reminders.schedule.side_effect = RuntimeError("queue down")
        engine = ComplianceEngine(services)
        event = engine.adverse_events.process_new_adverse_event(
            coordinator, ae_data(seriousness=AESeriousness.SERIOUS, action_taken="None")
        )
        reported = engine.adverse_events.submit(coordinator, event.id)
        assert reported.status == AEStatus.REPORTED
        assert services.reminders.schedule.call_count == 3

    def test_clock_drives_timestamps(self, engine, pi, submission_data, clock) -> None:
        """Submitted-at comes from the injected clock."""
        submission = engine.submissions.create(pi, submission_data())
        clock.advance(days=2)
        submitted = engine.submissions.submit(pi, submission.id)
        assert submitted.submitted_at == clock.now()
        assert submitted.submitted_at - submission.created_at == timedelta(days=2)
