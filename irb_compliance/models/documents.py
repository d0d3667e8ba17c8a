"""Reference records consulted by the compliance engine."""

from datetime import date, datetime

from pydantic import BaseModel, Field

from irb_compliance.models.enums import ComplianceStatus, DocumentType


class DocumentRecord(BaseModel):
    """A study document tracked for type and expiration."""

    id: str = Field(..., description="Unique document identifier")
    title: str = Field(..., description="Document title")
    document_type: DocumentType = Field(..., description="Kind of document")
    study_id: str | None = Field(default=None)
    owner_id: str | None = Field(default=None, description="User responsible for it")
    expiration_date: date | None = Field(default=None)


class ComplianceMetric(BaseModel):
    """An externally measured compliance indicator for a study."""

    id: str = Field(..., description="Unique metric identifier")
    study_id: str = Field(..., description="Study the metric describes")
    name: str = Field(..., description="Metric name")
    current_value: float | None = Field(default=None)
    target_value: float | None = Field(default=None)
    status: ComplianceStatus = Field(..., description="Current compliance status")
    last_measured: datetime = Field(..., description="When the metric was last measured")
