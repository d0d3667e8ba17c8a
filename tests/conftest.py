"""Pytest configuration and fixtures."""

from datetime import UTC, date, datetime
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest

from irb_compliance.audit.logger import AuditLogger
from irb_compliance.config import WorkflowConfig
from irb_compliance.models.adverse_event import AdverseEventCreate
from irb_compliance.models.deviation import DeviationCreate
from irb_compliance.models.documents import DocumentRecord
from irb_compliance.models.enums import (
    AEExpectedness,
    AEOutcome,
    AERelatedness,
    AESeriousness,
    AESeverity,
    DeviationSeverity,
    DeviationType,
    DocumentType,
    ReviewType,
    SubmissionType,
)
from irb_compliance.models.submission import SubmissionCreate
from irb_compliance.ports.authorization import Actor, UserRole
from irb_compliance.ports.clock import FixedClock
from irb_compliance.ports.documents import (
    InMemoryComplianceMetricSource,
    InMemoryDocumentRegistry,
)
from irb_compliance.ports.notifier import LoggingReminderScheduler
from irb_compliance.ports.reviewers import StaticReviewerPool
from irb_compliance.workflow import ComplianceEngine, WorkflowServices

NOW = datetime(2025, 3, 10, 9, 0, 0, tzinfo=UTC)
STUDY_ID = "a1b2c3d4-0000-study"


def make_ae_data(**overrides: Any) -> AdverseEventCreate:
    """Build adverse event input for a mild, expected, non-serious event."""
    fields: dict[str, Any] = {
        "study_id": STUDY_ID,
        "participant_id": "P-001",
        "description": "Headache after dosing",
        "onset_date": date(2025, 3, 9),
        "severity": AESeverity.MILD,
        "seriousness": AESeriousness.NON_SERIOUS,
        "expectedness": AEExpectedness.EXPECTED,
        "relatedness": AERelatedness.POSSIBLE,
        "outcome": AEOutcome.RECOVERED,
        "reported_by": "coordinator-1",
    }
    fields.update(overrides)
    return AdverseEventCreate(**fields)


def make_deviation_data(**overrides: Any) -> DeviationCreate:
    """Build deviation input for a minor visit-window deviation."""
    fields: dict[str, Any] = {
        "study_id": STUDY_ID,
        "deviation_type": DeviationType.VISIT_WINDOW,
        "severity": DeviationSeverity.MINOR,
        "description": "Week 4 visit held two days late",
        "deviation_date": date(2025, 3, 7),
        "reported_by": "coordinator-1",
    }
    fields.update(overrides)
    return DeviationCreate(**fields)


def make_submission_data(**overrides: Any) -> SubmissionCreate:
    """Build input for a full-board initial submission with both required documents."""
    fields: dict[str, Any] = {
        "study_id": STUDY_ID,
        "title": "Phase II trial of compound X",
        "submission_type": SubmissionType.INITIAL,
        "review_type": ReviewType.FULL_BOARD,
        "submitted_by": "pi-1",
        "document_ids": ["doc-protocol", "doc-consent"],
    }
    fields.update(overrides)
    return SubmissionCreate(**fields)


@pytest.fixture
def clock() -> FixedClock:
    """Return a clock fixed at 2025-03-10 09:00 UTC."""
    return FixedClock(NOW)


@pytest.fixture
def audit_logger(tmp_path: Path, clock: FixedClock) -> AuditLogger:
    """Return an audit logger writing to a temporary directory."""
    return AuditLogger(tmp_path / "audit_logs", clock=clock)


@pytest.fixture
def notifier() -> MagicMock:
    """Return a mock notifier recording every call."""
    return MagicMock()


@pytest.fixture
def reminders() -> LoggingReminderScheduler:
    """Return a reminder scheduler that keeps scheduled requests."""
    return LoggingReminderScheduler()


@pytest.fixture
def documents() -> InMemoryDocumentRegistry:
    """Return a registry holding a protocol, a consent form and a brochure."""
    return InMemoryDocumentRegistry(
        [
            DocumentRecord(
                id="doc-protocol",
                title="Study Protocol v1.0",
                document_type=DocumentType.PROTOCOL,
                study_id=STUDY_ID,
                owner_id="pi-1",
            ),
            DocumentRecord(
                id="doc-consent",
                title="Informed Consent Form v1.0",
                document_type=DocumentType.INFORMED_CONSENT,
                study_id=STUDY_ID,
                owner_id="pi-1",
                expiration_date=date(2025, 3, 31),
            ),
            DocumentRecord(
                id="doc-brochure",
                title="Investigator Brochure",
                document_type=DocumentType.INVESTIGATOR_BROCHURE,
                study_id=STUDY_ID,
            ),
        ]
    )


@pytest.fixture
def metrics() -> InMemoryComplianceMetricSource:
    """Return an empty compliance metric source."""
    return InMemoryComplianceMetricSource()


@pytest.fixture
def config() -> WorkflowConfig:
    """Return default workflow configuration."""
    return WorkflowConfig()


@pytest.fixture
def services(
    audit_logger: AuditLogger,
    notifier: MagicMock,
    reminders: LoggingReminderScheduler,
    documents: InMemoryDocumentRegistry,
    metrics: InMemoryComplianceMetricSource,
    clock: FixedClock,
    config: WorkflowConfig,
) -> WorkflowServices:
    """Return in-memory services with two expedited reviewers available."""
    return WorkflowServices.in_memory(
        audit_logger,
        notifier=notifier,
        reminders=reminders,
        documents=documents,
        metrics=metrics,
        reviewers=StaticReviewerPool({ReviewType.EXPEDITED: ["reviewer-1", "reviewer-2"]}),
        clock=clock,
        config=config,
    )


@pytest.fixture
def engine(services: WorkflowServices) -> ComplianceEngine:
    """Return an engine wired to the in-memory services."""
    return ComplianceEngine(services)


@pytest.fixture
def admin() -> Actor:
    """Return an IRB administrator."""
    return Actor(user_id="admin-1", roles=frozenset({UserRole.ADMIN}))


@pytest.fixture
def pi() -> Actor:
    """Return the principal investigator who owns the test submissions."""
    return Actor(user_id="pi-1", roles=frozenset({UserRole.PRINCIPAL_INVESTIGATOR}))


@pytest.fixture
def coordinator() -> Actor:
    """Return a study coordinator."""
    return Actor(user_id="coordinator-1", roles=frozenset({UserRole.STUDY_COORDINATOR}))


@pytest.fixture
def ae_data():
    """Return the adverse event input factory."""
    return make_ae_data


@pytest.fixture
def deviation_data():
    """Return the deviation input factory."""
    return make_deviation_data


@pytest.fixture
def submission_data():
    """Return the submission input factory."""
    return make_submission_data
