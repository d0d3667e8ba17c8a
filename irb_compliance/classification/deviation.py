"""Protocol deviation reporting classification."""

from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from irb_compliance.models.enums import DeviationSeverity

if TYPE_CHECKING:
    from irb_compliance.models.deviation import ProtocolDeviation


class DeviationAssessment(BaseModel):
    """Derived reporting requirements for a protocol deviation."""

    model_config = {"frozen": True}

    reportable_to_fda: bool = Field(..., description="Whether FDA reporting is required")
    reportable_to_sponsor: bool = Field(
        ..., description="Whether sponsor reporting is required"
    )
    reportable_to_irb: bool = Field(..., description="Whether IRB reporting is required")

    def reportable_to(self) -> frozenset[str]:
        """Return the set of bodies this deviation must be reported to."""
        bodies = set()
        if self.reportable_to_fda:
            bodies.add("FDA")
        if self.reportable_to_sponsor:
            bodies.add("SPONSOR")
        if self.reportable_to_irb:
            bodies.add("IRB")
        return frozenset(bodies)


def assess_deviation_reporting(deviation: "ProtocolDeviation") -> DeviationAssessment:
    """Classify a deviation against the reporting rules.

    Critical deviations always go to the IRB and sponsor. Major deviations
    go there only when they affect participant safety or data integrity.
    The FDA is involved only for critical deviations affecting safety.
    """
    critical = deviation.severity == DeviationSeverity.CRITICAL
    major_with_impact = deviation.severity == DeviationSeverity.MAJOR and (
        deviation.impact_on_participant_safety or deviation.impact_on_data_integrity
    )
    reportable = critical or major_with_impact

    return DeviationAssessment(
        reportable_to_fda=critical and deviation.impact_on_participant_safety,
        reportable_to_sponsor=reportable,
        reportable_to_irb=reportable,
    )


def deviation_requires_immediate_notification(deviation: "ProtocolDeviation") -> bool:
    """Critical or safety-impacting deviations are escalated at once."""
    return (
        deviation.severity == DeviationSeverity.CRITICAL
        or deviation.impact_on_participant_safety
    )
