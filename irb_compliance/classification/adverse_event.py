"""Adverse event seriousness and reporting classification.

Implements the rule-based determination of whether an adverse event is a
Serious Adverse Event (SAE), which bodies it must be reported to, and on
which regulatory timeline.

Key principles:
- The SAE determination is a logical OR; any one criterion is sufficient.
- Timeline tiers are evaluated in fixed priority order (IMMEDIATE first).
- Every function here is pure; results are recomputed on every write.
"""

from datetime import date, timedelta
from enum import Enum
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from irb_compliance.models.enums import (
    AEExpectedness,
    AEOutcome,
    AERelatedness,
    AESeriousness,
    AESeverity,
    ReportingTimeline,
)

if TYPE_CHECKING:
    from irb_compliance.models.adverse_event import AdverseEvent

# Days allowed between onset and report for each timeline tier
TIMELINE_DAYS: dict[ReportingTimeline, int | None] = {
    ReportingTimeline.IMMEDIATE: 1,
    ReportingTimeline.EXPEDITED_7_DAY: 7,
    ReportingTimeline.EXPEDITED_15_DAY: 15,
    ReportingTimeline.ROUTINE: None,
}

CRITICAL_FOLLOW_UP_DAYS = [1, 3, 7, 14, 30]
SAE_FOLLOW_UP_DAYS = [7, 14, 30]
ROUTINE_FOLLOW_UP_DAYS = [30]


class SAECriterion(str, Enum):
    """Criteria that make an adverse event serious."""

    SERIOUS = "serious"
    FATAL = "fatal"
    LIFE_THREATENING = "life_threatening"
    HOSPITALIZATION = "hospitalization"
    MEDICALLY_SIGNIFICANT = "medically_significant"


class AEAssessment(BaseModel):
    """Derived reporting requirements for an adverse event."""

    model_config = {"frozen": True}

    is_sae: bool = Field(..., description="Whether the event is a Serious Adverse Event")
    reportable_to_fda: bool = Field(..., description="Whether FDA reporting is required")
    reportable_to_sponsor: bool = Field(
        ..., description="Whether sponsor reporting is required"
    )
    reportable_to_irb: bool = Field(..., description="Whether IRB reporting is required")
    timeline: ReportingTimeline = Field(..., description="Reporting timeline tier")
    criteria_met: list[SAECriterion] = Field(
        default_factory=list, description="SAE criteria that were triggered"
    )

    def derived_fields(self) -> tuple[bool, bool, bool, bool, ReportingTimeline]:
        """Return the persisted derived values, for change detection."""
        return (
            self.is_sae,
            self.reportable_to_fda,
            self.reportable_to_sponsor,
            self.reportable_to_irb,
            self.timeline,
        )


class ExpeditedAssessment(BaseModel):
    """Whether an event needs expedited reporting, and why."""

    requires_expedited: bool = Field(..., description="Whether expedited report is due")
    timeline: ReportingTimeline = Field(..., description="Applicable timeline tier")
    reasons: list[str] = Field(default_factory=list, description="Reasons for the tier")


def sae_criteria_met(event: "AdverseEvent") -> list[SAECriterion]:
    """List every SAE criterion the event satisfies, in a stable order."""
    criteria: list[SAECriterion] = []
    if event.seriousness == AESeriousness.SERIOUS:
        criteria.append(SAECriterion.SERIOUS)
    if event.outcome == AEOutcome.FATAL:
        criteria.append(SAECriterion.FATAL)
    if event.severity == AESeverity.LIFE_THREATENING:
        criteria.append(SAECriterion.LIFE_THREATENING)
    if len(event.hospitalizations) > 0:
        criteria.append(SAECriterion.HOSPITALIZATION)
    if event.medically_significant:
        criteria.append(SAECriterion.MEDICALLY_SIGNIFICANT)
    return criteria


def is_serious_adverse_event(event: "AdverseEvent") -> bool:
    """Determine whether an event meets any SAE criterion."""
    return len(sae_criteria_met(event)) > 0


def is_critical_event(event: "AdverseEvent") -> bool:
    """Life-threatening or fatal events always take the IMMEDIATE tier."""
    return (
        event.severity == AESeverity.LIFE_THREATENING
        or event.outcome == AEOutcome.FATAL
    )


def _determine_timeline(event: "AdverseEvent", is_sae: bool) -> ReportingTimeline:
    if is_critical_event(event):
        return ReportingTimeline.IMMEDIATE
    if is_sae and event.expectedness == AEExpectedness.UNEXPECTED:
        return ReportingTimeline.EXPEDITED_7_DAY
    if is_sae:
        return ReportingTimeline.EXPEDITED_15_DAY
    return ReportingTimeline.ROUTINE


def assess_reporting_requirements(event: "AdverseEvent") -> AEAssessment:
    """Classify an adverse event against the reporting rules.

    Args:
        event: The adverse event to classify.

    Returns:
        AEAssessment with the SAE flag, reportable-to flags and timeline.
    """
    criteria = sae_criteria_met(event)
    is_sae = len(criteria) > 0

    reportable_to_irb = is_sae or (
        event.relatedness != AERelatedness.UNRELATED and event.medically_significant
    )

    return AEAssessment(
        is_sae=is_sae,
        reportable_to_fda=is_sae and event.expectedness == AEExpectedness.UNEXPECTED,
        reportable_to_sponsor=is_sae,
        reportable_to_irb=reportable_to_irb,
        timeline=_determine_timeline(event, is_sae),
        criteria_met=criteria,
    )


def requires_immediate_notification(event: "AdverseEvent") -> bool:
    """Check whether an urgent notification must go out on intake."""
    if is_critical_event(event):
        return True
    return (
        is_serious_adverse_event(event)
        and event.expectedness == AEExpectedness.UNEXPECTED
    )


def follow_up_schedule(event: "AdverseEvent") -> list[int]:
    """Return follow-up reminder offsets in days after reporting."""
    if is_critical_event(event):
        return list(CRITICAL_FOLLOW_UP_DAYS)
    if is_serious_adverse_event(event):
        return list(SAE_FOLLOW_UP_DAYS)
    return list(ROUTINE_FOLLOW_UP_DAYS)


def reporting_deadline(onset_date: date, timeline: ReportingTimeline) -> date | None:
    """Compute the date a report is due for the given timeline tier.

    Routine events have no fixed regulatory deadline and return None.
    """
    days = TIMELINE_DAYS[timeline]
    if days is None:
        return None
    return onset_date + timedelta(days=days)


def check_timeline_compliance(event: "AdverseEvent", today: date) -> list[str]:
    """Compare days since onset with the event's timeline tier.

    Produces warnings, never blocking errors: a late report must still be
    filed.

    Args:
        event: The adverse event about to be reported.
        today: The reporting date.

    Returns:
        List of human-readable compliance warnings (empty when on time).
    """
    if event.onset_date is None:
        return []

    assessment = assess_reporting_requirements(event)
    if not assessment.is_sae:
        return []

    days_since_onset = (today - event.onset_date).days
    allowed = TIMELINE_DAYS[assessment.timeline]
    if allowed is None or days_since_onset <= allowed:
        return []

    if assessment.timeline == ReportingTimeline.IMMEDIATE:
        requirement = "Life-threatening or fatal SAEs must be reported within 24 hours"
    elif assessment.timeline == ReportingTimeline.EXPEDITED_7_DAY:
        requirement = "Unexpected SAEs must be reported within 7 days"
    else:
        requirement = "SAEs must be reported within 15 days"

    return [f"{requirement} (reported {days_since_onset} days after onset)"]


def assess_expedited_reporting(event: "AdverseEvent") -> ExpeditedAssessment:
    """Explain whether and why an event needs an expedited report."""
    assessment = assess_reporting_requirements(event)
    reasons: list[str] = []

    if assessment.timeline == ReportingTimeline.IMMEDIATE:
        reasons.append("Life-threatening or fatal event")
    elif assessment.timeline == ReportingTimeline.EXPEDITED_7_DAY:
        reasons.append("Serious and unexpected")
    elif assessment.timeline == ReportingTimeline.EXPEDITED_15_DAY:
        reasons.append("Serious and expected")

    return ExpeditedAssessment(
        requires_expedited=assessment.timeline != ReportingTimeline.ROUTINE,
        timeline=assessment.timeline,
        reasons=reasons,
    )
