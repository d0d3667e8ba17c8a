"""Adverse event records.

Derived reporting fields (``is_sae``, ``reportable_to_*``,
``reporting_timeline``) are computed properties. They appear in
``model_dump()`` output but are never read back from input, so a
reloaded record always reflects the current rules.
"""

from datetime import UTC, date, datetime

from pydantic import BaseModel, Field, computed_field, model_validator

from irb_compliance.classification.adverse_event import (
    AEAssessment,
    assess_reporting_requirements,
)
from irb_compliance.models.enums import (
    AEExpectedness,
    AEOutcome,
    AERelatedness,
    AESeriousness,
    AESeverity,
    AEStatus,
    ReportingTimeline,
)


def _utc_now() -> datetime:
    """Return current UTC time (timezone-aware)."""
    return datetime.now(UTC)


class Hospitalization(BaseModel):
    """An inpatient stay linked to an adverse event."""

    admission_date: date = Field(..., description="Date of admission")
    discharge_date: date | None = Field(default=None, description="Date of discharge")
    reason: str = Field(..., description="Reason for admission")
    hospital: str | None = Field(default=None, description="Admitting facility")

    @model_validator(mode="after")
    def _discharge_after_admission(self) -> "Hospitalization":
        if self.discharge_date is not None and self.discharge_date < self.admission_date:
            raise ValueError("discharge_date must not be before admission_date")
        return self


class AdverseEvent(BaseModel):
    """An adverse event experienced by a study participant."""

    id: str = Field(..., description="Unique adverse event identifier")
    study_id: str = Field(..., description="Study the event occurred in")
    participant_id: str | None = Field(default=None, description="Affected participant")
    external_id: str | None = Field(
        default=None, description="Site or sponsor reference for the event"
    )
    description: str | None = Field(default=None, description="What happened")
    onset_date: date | None = Field(default=None, description="Date of onset")
    resolution_date: date | None = Field(default=None, description="Date resolved")
    severity: AESeverity = Field(..., description="Clinical severity grade")
    seriousness: AESeriousness = Field(default=AESeriousness.NON_SERIOUS)
    expectedness: AEExpectedness = Field(..., description="Listed in the brochure or not")
    relatedness: AERelatedness = Field(..., description="Causality to study treatment")
    outcome: AEOutcome | None = Field(default=None, description="Participant outcome")
    medically_significant: bool = Field(default=False)
    action_taken: str | None = Field(
        default=None, description="Action taken with study treatment"
    )
    hospitalizations: list[Hospitalization] = Field(default_factory=list)
    follow_up_report_ids: list[str] = Field(
        default_factory=list, description="Follow-up report documents, in order"
    )
    sae_report_id: str | None = Field(
        default=None, description="Human-readable SAE report id, once classified SAE"
    )
    compliance_warnings: list[str] = Field(
        default_factory=list, description="Timeline warnings raised at submission"
    )
    status: AEStatus = Field(default=AEStatus.DRAFT)
    reported_by: str = Field(..., description="User who reported the event")
    reported_at: datetime | None = Field(default=None, description="When submitted")
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)

    @property
    def assessment(self) -> AEAssessment:
        """Full classification result for the current attributes."""
        return assess_reporting_requirements(self)

    @computed_field
    @property
    def is_sae(self) -> bool:
        return self.assessment.is_sae

    @computed_field
    @property
    def reportable_to_fda(self) -> bool:
        return self.assessment.reportable_to_fda

    @computed_field
    @property
    def reportable_to_sponsor(self) -> bool:
        return self.assessment.reportable_to_sponsor

    @computed_field
    @property
    def reportable_to_irb(self) -> bool:
        return self.assessment.reportable_to_irb

    @computed_field
    @property
    def reporting_timeline(self) -> ReportingTimeline:
        return self.assessment.timeline


class AdverseEventCreate(BaseModel):
    """Authoritative fields accepted when recording a new adverse event."""

    study_id: str
    participant_id: str | None = None
    external_id: str | None = None
    description: str | None = None
    onset_date: date | None = None
    severity: AESeverity
    seriousness: AESeriousness = AESeriousness.NON_SERIOUS
    expectedness: AEExpectedness
    relatedness: AERelatedness
    outcome: AEOutcome | None = None
    medically_significant: bool = False
    action_taken: str | None = None
    hospitalizations: list[Hospitalization] = Field(default_factory=list)
    reported_by: str


class AdverseEventUpdate(BaseModel):
    """Authoritative fields that may change on an open adverse event.

    Hospitalizations are added through their own operation so the
    seriousness rule is always applied.
    """

    description: str | None = None
    onset_date: date | None = None
    resolution_date: date | None = None
    severity: AESeverity | None = None
    seriousness: AESeriousness | None = None
    expectedness: AEExpectedness | None = None
    relatedness: AERelatedness | None = None
    outcome: AEOutcome | None = None
    medically_significant: bool | None = None
    action_taken: str | None = None
