"""Protocol deviation records."""

from datetime import UTC, date, datetime

from pydantic import BaseModel, Field, computed_field

from irb_compliance.classification.deviation import (
    DeviationAssessment,
    assess_deviation_reporting,
)
from irb_compliance.models.enums import DeviationSeverity, DeviationStatus, DeviationType


def _utc_now() -> datetime:
    """Return current UTC time (timezone-aware)."""
    return datetime.now(UTC)


class ProtocolDeviation(BaseModel):
    """A departure from the approved study protocol."""

    id: str = Field(..., description="Unique deviation identifier")
    study_id: str = Field(..., description="Study the deviation occurred in")
    participant_id: str | None = Field(default=None)
    deviation_type: DeviationType = Field(..., description="Category of deviation")
    severity: DeviationSeverity = Field(..., description="Minor, major or critical")
    description: str = Field(..., description="What happened")
    deviation_date: date | None = Field(default=None, description="When it occurred")
    impact_on_data_integrity: bool = Field(default=False)
    impact_on_participant_safety: bool = Field(default=False)
    impact_on_study_validity: bool = Field(default=False)
    root_cause: str | None = Field(default=None)
    corrective_action: str | None = Field(default=None)
    preventive_action: str | None = Field(default=None)
    corrective_action_date: datetime | None = Field(default=None)
    closure_reason: str | None = Field(default=None)
    closed_at: datetime | None = Field(default=None)
    status: DeviationStatus = Field(default=DeviationStatus.REPORTED)
    reported_by: str = Field(..., description="User who reported the deviation")
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)

    @property
    def assessment(self) -> DeviationAssessment:
        """Full classification result for the current attributes."""
        return assess_deviation_reporting(self)

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


class DeviationCreate(BaseModel):
    """Authoritative fields accepted when reporting a deviation."""

    study_id: str
    participant_id: str | None = None
    deviation_type: DeviationType
    severity: DeviationSeverity
    description: str = Field(..., min_length=1)
    deviation_date: date | None = None
    impact_on_data_integrity: bool = False
    impact_on_participant_safety: bool = False
    impact_on_study_validity: bool = False
    root_cause: str | None = None
    reported_by: str


class DeviationUpdate(BaseModel):
    """Editable fields of an open deviation."""

    deviation_type: DeviationType | None = None
    severity: DeviationSeverity | None = None
    description: str | None = Field(default=None, min_length=1)
    deviation_date: date | None = None
    impact_on_data_integrity: bool | None = None
    impact_on_participant_safety: bool | None = None
    impact_on_study_validity: bool | None = None
    root_cause: str | None = None
