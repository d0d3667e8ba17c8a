"""Tests for adverse event, deviation and submission classification rules."""

import itertools
from datetime import date
from typing import Any

import pytest

from irb_compliance.classification.adverse_event import (
    SAECriterion,
    assess_expedited_reporting,
    assess_reporting_requirements,
    check_timeline_compliance,
    follow_up_schedule,
    is_serious_adverse_event,
    reporting_deadline,
    requires_immediate_notification,
)
from irb_compliance.classification.deviation import (
    assess_deviation_reporting,
    deviation_requires_immediate_notification,
)
from irb_compliance.classification.submission import (
    add_years,
    continuing_review_due,
    sae_report_id,
    status_from_decision,
    submission_number,
)
from irb_compliance.models.adverse_event import AdverseEvent, Hospitalization
from irb_compliance.models.deviation import ProtocolDeviation
from irb_compliance.models.enums import (
    AEExpectedness,
    AEOutcome,
    AERelatedness,
    AESeriousness,
    AESeverity,
    DeviationSeverity,
    DeviationType,
    IRBDecision,
    ReportingTimeline,
    ReviewType,
    SubmissionStatus,
    SubmissionType,
)


def _event(**overrides: Any) -> AdverseEvent:
    fields: dict[str, Any] = {
        "id": "ae-1",
        "study_id": "a1b2c3d4-study",
        "description": "Rash on forearm",
        "onset_date": date(2025, 3, 1),
        "severity": AESeverity.MILD,
        "seriousness": AESeriousness.NON_SERIOUS,
        "expectedness": AEExpectedness.EXPECTED,
        "relatedness": AERelatedness.UNRELATED,
        "outcome": AEOutcome.RECOVERED,
        "reported_by": "coordinator-1",
    }
    fields.update(overrides)
    return AdverseEvent(**fields)


def _hospitalization() -> Hospitalization:
    return Hospitalization(admission_date=date(2025, 3, 2), reason="Observation")


def _deviation(**overrides: Any) -> ProtocolDeviation:
    fields: dict[str, Any] = {
        "id": "dev-1",
        "study_id": "a1b2c3d4-study",
        "deviation_type": DeviationType.DOSING,
        "severity": DeviationSeverity.MINOR,
        "description": "Dose given 30 minutes late",
        "reported_by": "coordinator-1",
    }
    fields.update(overrides)
    return ProtocolDeviation(**fields)


class TestSAEDetermination:
    """Tests for the SAE criteria."""

    def test_sae_matches_criteria_for_every_combination(self) -> None:
        """is_sae is the OR of all five criteria across the whole input space."""
        for seriousness, outcome, severity, hospitalized, significant in itertools.product(
            AESeriousness, [None, *AEOutcome], AESeverity, [False, True], [False, True]
        ):
            event = _event(
                seriousness=seriousness,
                outcome=outcome,
                severity=severity,
                hospitalizations=[_hospitalization()] if hospitalized else [],
                medically_significant=significant,
            )
            expected = (
                seriousness == AESeriousness.SERIOUS
                or outcome == AEOutcome.FATAL
                or severity == AESeverity.LIFE_THREATENING
                or hospitalized
                or significant
            )
            assert event.is_sae is expected
            assert is_serious_adverse_event(event) is expected

    def test_each_criterion_alone_is_sufficient(self) -> None:
        """Any single criterion makes an otherwise benign event an SAE."""
        cases = [
            ({"seriousness": AESeriousness.SERIOUS}, SAECriterion.SERIOUS),
            ({"outcome": AEOutcome.FATAL}, SAECriterion.FATAL),
            ({"severity": AESeverity.LIFE_THREATENING}, SAECriterion.LIFE_THREATENING),
            ({"hospitalizations": [_hospitalization()]}, SAECriterion.HOSPITALIZATION),
            ({"medically_significant": True}, SAECriterion.MEDICALLY_SIGNIFICANT),
        ]
        for overrides, criterion in cases:
            assessment = assess_reporting_requirements(_event(**overrides))
            assert assessment.is_sae
            assert assessment.criteria_met == [criterion]

    def test_classification_is_idempotent(self) -> None:
        """Repeated classification of the same input gives the same answer."""
        event = _event(severity=AESeverity.SEVERE, seriousness=AESeriousness.SERIOUS)
        first = assess_reporting_requirements(event)
        second = assess_reporting_requirements(event)
        assert first == second


class TestReportingRequirements:
    """Tests for reportable-to flags and timeline tiers."""

    def test_life_threatening_unexpected_scenario(self) -> None:
        """Life-threatening unexpected serious event is reportable everywhere, immediately."""
        event = _event(
            severity=AESeverity.LIFE_THREATENING,
            seriousness=AESeriousness.SERIOUS,
            expectedness=AEExpectedness.UNEXPECTED,
            outcome=AEOutcome.NOT_RECOVERED,
        )
        assert event.is_sae is True
        assert event.reportable_to_fda is True
        assert event.reportable_to_sponsor is True
        assert event.reportable_to_irb is True
        assert event.reporting_timeline == ReportingTimeline.IMMEDIATE

    def test_mild_expected_scenario(self) -> None:
        """Mild expected non-serious event is routine and not reportable."""
        event = _event(
            severity=AESeverity.MILD,
            seriousness=AESeriousness.NON_SERIOUS,
            expectedness=AEExpectedness.EXPECTED,
            outcome=AEOutcome.RECOVERED,
            medically_significant=False,
        )
        assert event.is_sae is False
        assert event.reportable_to_fda is False
        assert event.reportable_to_sponsor is False
        assert event.reportable_to_irb is False
        assert event.reporting_timeline == ReportingTimeline.ROUTINE

    def test_critical_events_are_always_immediate(self) -> None:
        """Life-threatening or fatal events are IMMEDIATE whatever the other fields."""
        for expectedness, relatedness in itertools.product(AEExpectedness, AERelatedness):
            for overrides in (
                {"severity": AESeverity.LIFE_THREATENING},
                {"outcome": AEOutcome.FATAL},
            ):
                event = _event(
                    expectedness=expectedness, relatedness=relatedness, **overrides
                )
                assert event.reporting_timeline == ReportingTimeline.IMMEDIATE

    def test_unexpected_sae_is_seven_day(self) -> None:
        """Non-critical unexpected SAEs take the 7-day tier."""
        for overrides in (
            {"seriousness": AESeriousness.SERIOUS},
            {"hospitalizations": [_hospitalization()]},
            {"medically_significant": True},
        ):
            event = _event(expectedness=AEExpectedness.UNEXPECTED, **overrides)
            assert event.reporting_timeline == ReportingTimeline.EXPEDITED_7_DAY
            assert event.reportable_to_fda is True

    def test_expected_sae_is_fifteen_day(self) -> None:
        """Non-critical expected SAEs take the 15-day tier and skip the FDA."""
        event = _event(seriousness=AESeriousness.SERIOUS)
        assert event.reporting_timeline == ReportingTimeline.EXPEDITED_15_DAY
        assert event.reportable_to_fda is False
        assert event.reportable_to_sponsor is True

    def test_irb_reportable_for_related_significant_event(self) -> None:
        """Related, medically significant events always go to the IRB."""
        event = _event(relatedness=AERelatedness.PROBABLE, medically_significant=True)
        assert event.reportable_to_irb is True

    def test_sponsor_flag_tracks_sae(self) -> None:
        """Sponsor reporting is required exactly when the event is an SAE."""
        for severity in AESeverity:
            event = _event(severity=severity)
            assert event.reportable_to_sponsor is event.is_sae


class TestImmediateNotification:
    """Tests for the urgent-notification rule."""

    def test_critical_event_requires_immediate_notification(self) -> None:
        """Fatal outcome triggers urgent notification even when expected."""
        assert requires_immediate_notification(_event(outcome=AEOutcome.FATAL))

    def test_unexpected_sae_requires_immediate_notification(self) -> None:
        """Unexpected SAEs trigger urgent notification."""
        event = _event(seriousness=AESeriousness.SERIOUS, expectedness=AEExpectedness.UNEXPECTED)
        assert requires_immediate_notification(event)

    def test_expected_sae_does_not(self) -> None:
        """Expected non-critical SAEs are not urgent."""
        assert not requires_immediate_notification(_event(seriousness=AESeriousness.SERIOUS))


class TestFollowUpAndDeadlines:
    """Tests for follow-up schedules, deadlines and timeline warnings."""

    def test_follow_up_schedule_tiers(self) -> None:
        """Critical, SAE and routine events get their own schedules."""
        assert follow_up_schedule(_event(outcome=AEOutcome.FATAL)) == [1, 3, 7, 14, 30]
        assert follow_up_schedule(_event(seriousness=AESeriousness.SERIOUS)) == [7, 14, 30]
        assert follow_up_schedule(_event()) == [30]

    def test_reporting_deadline(self) -> None:
        """Deadlines are onset plus the tier's allowed days."""
        onset = date(2025, 3, 1)
        assert reporting_deadline(onset, ReportingTimeline.IMMEDIATE) == date(2025, 3, 2)
        assert reporting_deadline(onset, ReportingTimeline.EXPEDITED_7_DAY) == date(2025, 3, 8)
        assert reporting_deadline(onset, ReportingTimeline.EXPEDITED_15_DAY) == date(2025, 3, 16)
        assert reporting_deadline(onset, ReportingTimeline.ROUTINE) is None

    def test_late_unexpected_sae_warns(self) -> None:
        """Reporting an unexpected SAE after 7 days produces a warning."""
        event = _event(seriousness=AESeriousness.SERIOUS, expectedness=AEExpectedness.UNEXPECTED)
        warnings = check_timeline_compliance(event, date(2025, 3, 10))
        assert warnings == [
            "Unexpected SAEs must be reported within 7 days (reported 9 days after onset)"
        ]

    def test_on_time_report_has_no_warning(self) -> None:
        """Reports within the tier produce no warnings."""
        event = _event(seriousness=AESeriousness.SERIOUS)
        assert check_timeline_compliance(event, date(2025, 3, 16)) == []

    def test_life_threatening_after_one_day_warns(self) -> None:
        """Life-threatening events reported two days after onset are late."""
        event = _event(severity=AESeverity.LIFE_THREATENING)
        warnings = check_timeline_compliance(event, date(2025, 3, 3))
        assert len(warnings) == 1
        assert "24 hours" in warnings[0]

    def test_non_sae_never_warns(self) -> None:
        """Routine events have no reporting deadline."""
        assert check_timeline_compliance(_event(), date(2026, 1, 1)) == []

    def test_missing_onset_never_warns(self) -> None:
        """Without an onset date the check cannot run."""
        event = _event(seriousness=AESeriousness.SERIOUS, onset_date=None)
        assert check_timeline_compliance(event, date(2026, 1, 1)) == []


class TestExpeditedAssessment:
    """Tests for the expedited reporting explanation."""

    @pytest.mark.parametrize(
        "overrides,timeline,reason",
        [
            ({"outcome": AEOutcome.FATAL}, ReportingTimeline.IMMEDIATE, "Life-threatening or fatal event"),
            (
                {"seriousness": AESeriousness.SERIOUS, "expectedness": AEExpectedness.UNEXPECTED},
                ReportingTimeline.EXPEDITED_7_DAY,
                "Serious and unexpected",
            ),
            (
                {"seriousness": AESeriousness.SERIOUS},
                ReportingTimeline.EXPEDITED_15_DAY,
                "Serious and expected",
            ),
        ],
    )
    def test_expedited_reasons(
        self, overrides: dict, timeline: ReportingTimeline, reason: str
    ) -> None:
        """Each expedited tier carries its reason."""
        assessment = assess_expedited_reporting(_event(**overrides))
        assert assessment.requires_expedited is True
        assert assessment.timeline == timeline
        assert assessment.reasons == [reason]

    def test_routine_is_not_expedited(self) -> None:
        """Routine events need no expedited report."""
        assessment = assess_expedited_reporting(_event())
        assert assessment.requires_expedited is False
        assert assessment.reasons == []


class TestDeviationClassification:
    """Tests for protocol deviation reporting rules."""

    def test_critical_always_reportable_to_irb_and_sponsor(self) -> None:
        """Critical deviations go to IRB and sponsor whatever the impact flags."""
        for data, safety, validity in itertools.product([False, True], repeat=3):
            deviation = _deviation(
                severity=DeviationSeverity.CRITICAL,
                impact_on_data_integrity=data,
                impact_on_participant_safety=safety,
                impact_on_study_validity=validity,
            )
            assert deviation.reportable_to_irb is True
            assert deviation.reportable_to_sponsor is True
            assert deviation.reportable_to_fda is safety

    def test_minor_without_impact_is_not_reportable(self) -> None:
        """Minor deviations with no impact are reportable nowhere."""
        deviation = _deviation()
        assert deviation.reportable_to_fda is False
        assert deviation.reportable_to_sponsor is False
        assert deviation.reportable_to_irb is False
        assert deviation.assessment.reportable_to() == frozenset()

    def test_major_needs_safety_or_data_impact(self) -> None:
        """Major deviations are reportable only with safety or data impact."""
        assert not _deviation(severity=DeviationSeverity.MAJOR).reportable_to_irb
        assert not _deviation(
            severity=DeviationSeverity.MAJOR, impact_on_study_validity=True
        ).reportable_to_irb
        assert _deviation(
            severity=DeviationSeverity.MAJOR, impact_on_data_integrity=True
        ).reportable_to_irb
        major_safety = _deviation(
            severity=DeviationSeverity.MAJOR, impact_on_participant_safety=True
        )
        assert major_safety.assessment.reportable_to() == frozenset({"IRB", "SPONSOR"})

    def test_critical_safety_deviation_goes_to_fda(self) -> None:
        """Only critical safety-impacting deviations go to the FDA."""
        assessment = assess_deviation_reporting(
            _deviation(severity=DeviationSeverity.CRITICAL, impact_on_participant_safety=True)
        )
        assert assessment.reportable_to() == frozenset({"FDA", "IRB", "SPONSOR"})

    def test_immediate_notification_rule(self) -> None:
        """Critical or safety-impacting deviations need immediate notification."""
        assert deviation_requires_immediate_notification(
            _deviation(severity=DeviationSeverity.CRITICAL)
        )
        assert deviation_requires_immediate_notification(
            _deviation(impact_on_participant_safety=True)
        )
        assert not deviation_requires_immediate_notification(
            _deviation(severity=DeviationSeverity.MAJOR, impact_on_data_integrity=True)
        )


class TestSubmissionRules:
    """Tests for submission numbering and scheduling rules."""

    def test_decision_status_mapping(self) -> None:
        """Non-final decisions send the submission back for clarification."""
        assert status_from_decision(IRBDecision.APPROVED) == SubmissionStatus.APPROVED
        assert status_from_decision(IRBDecision.DISAPPROVED) == SubmissionStatus.DISAPPROVED
        for decision in (
            IRBDecision.DEFERRED,
            IRBDecision.TABLED,
            IRBDecision.REQUIRES_MODIFICATIONS,
        ):
            assert status_from_decision(decision) == SubmissionStatus.PENDING_CLARIFICATION

    def test_continuing_review_interval(self) -> None:
        """Exempt studies are re-reviewed every three years, others yearly."""
        today = date(2025, 3, 10)
        assert continuing_review_due(ReviewType.FULL_BOARD, today) == date(2026, 3, 10)
        assert continuing_review_due(ReviewType.EXPEDITED, today) == date(2026, 3, 10)
        assert continuing_review_due(ReviewType.EXEMPT, today) == date(2028, 3, 10)

    def test_add_years_from_leap_day(self) -> None:
        """Feb 29 rolls to Feb 28 in a non-leap year."""
        assert add_years(date(2024, 2, 29), 1) == date(2025, 2, 28)
        assert add_years(date(2024, 2, 29), 4) == date(2028, 2, 29)

    def test_submission_number_format(self) -> None:
        """Submission numbers carry type, year, study prefix and sequence."""
        number = submission_number("a1b2c3d4-5678", SubmissionType.INITIAL, 2025, 1)
        assert number == "INI-2025-a1b2c3d4-001"
        number = submission_number("a1b2c3d4-5678", SubmissionType.CONTINUING_REVIEW, 2026, 12)
        assert number == "CR-2026-a1b2c3d4-012"

    def test_sae_report_id_format(self) -> None:
        """SAE report ids carry year, study prefix and a four-digit sequence."""
        assert sae_report_id("a1b2c3d4-5678", 2025, 7) == "SAE-2025-a1b2c3d4-0007"
