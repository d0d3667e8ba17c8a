"""Collaborators shared by the workflow orchestrators."""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from irb_compliance.audit.logger import AuditLogger, AuditSink
from irb_compliance.config import WorkflowConfig
from irb_compliance.errors import AuthorizationError
from irb_compliance.machines.adverse_event import ADVERSE_EVENT
from irb_compliance.machines.base import Transition
from irb_compliance.machines.deviation import DEVIATION
from irb_compliance.machines.submission import REVIEW, SUBMISSION
from irb_compliance.models.adverse_event import AdverseEvent
from irb_compliance.models.deviation import ProtocolDeviation
from irb_compliance.models.enums import ReviewType
from irb_compliance.models.submission import Review, Submission
from irb_compliance.ports.authorization import (
    Actor,
    AllowAllAuthorizer,
    Authorizer,
    WorkflowAction,
)
from irb_compliance.ports.clock import Clock, SystemClock
from irb_compliance.ports.documents import (
    ComplianceMetricSource,
    DocumentRegistry,
    InMemoryComplianceMetricSource,
    InMemoryDocumentRegistry,
)
from irb_compliance.ports.notifier import (
    LoggingNotifier,
    LoggingReminderScheduler,
    Notifier,
    ReminderScheduler,
)
from irb_compliance.ports.reviewers import ReviewerPool, StaticReviewerPool
from irb_compliance.ports.storage import InMemoryRepository, JsonFileRepository, Repository
from irb_compliance.workflow.effects import SideEffectDispatcher
from irb_compliance.workflow.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)


@dataclass
class WorkflowServices:
    """Everything an orchestrator needs, injected once."""

    submissions: Repository[Submission]
    reviews: Repository[Review]
    adverse_events: Repository[AdverseEvent]
    deviations: Repository[ProtocolDeviation]
    audit_sink: AuditSink
    notifier: Notifier = field(default_factory=LoggingNotifier)
    reminders: ReminderScheduler = field(default_factory=LoggingReminderScheduler)
    documents: DocumentRegistry = field(default_factory=InMemoryDocumentRegistry)
    metrics: ComplianceMetricSource = field(default_factory=InMemoryComplianceMetricSource)
    reviewers: ReviewerPool = field(default_factory=StaticReviewerPool)
    clock: Clock = field(default_factory=SystemClock)
    authorizer: Authorizer = field(default_factory=AllowAllAuthorizer)
    config: WorkflowConfig = field(default_factory=WorkflowConfig)

    @classmethod
    def in_memory(cls, audit_sink: AuditSink, **overrides) -> "WorkflowServices":
        """Services backed by in-memory repositories."""
        return cls(
            submissions=InMemoryRepository(Submission, SUBMISSION),
            reviews=InMemoryRepository(Review, REVIEW),
            adverse_events=InMemoryRepository(AdverseEvent, ADVERSE_EVENT),
            deviations=InMemoryRepository(ProtocolDeviation, DEVIATION),
            audit_sink=audit_sink,
            **overrides,
        )

    @classmethod
    def from_config(cls, config: WorkflowConfig, **overrides) -> "WorkflowServices":
        """Services backed by JSON files under ``config.data_dir``.

        Expedited reviewers listed in the config populate the reviewer pool
        unless a pool is passed explicitly.
        """
        data_dir = Path(config.data_dir)
        clock = overrides.pop("clock", None) or SystemClock()
        overrides.setdefault(
            "reviewers",
            StaticReviewerPool({ReviewType.EXPEDITED: list(config.expedited_reviewers)}),
        )
        return cls(
            submissions=JsonFileRepository(Submission, SUBMISSION, data_dir / "submissions"),
            reviews=JsonFileRepository(Review, REVIEW, data_dir / "reviews"),
            adverse_events=JsonFileRepository(
                AdverseEvent, ADVERSE_EVENT, data_dir / "adverse_events"
            ),
            deviations=JsonFileRepository(
                ProtocolDeviation, DEVIATION, data_dir / "deviations"
            ),
            audit_sink=overrides.pop("audit_sink", None)
            or AuditLogger(config.audit_dir, clock=clock),
            clock=clock,
            config=config,
            **overrides,
        )

    def repositories(self) -> dict[str, Repository]:
        return {
            SUBMISSION: self.submissions,
            REVIEW: self.reviews,
            ADVERSE_EVENT: self.adverse_events,
            DEVIATION: self.deviations,
        }

    def unit_of_work(self) -> UnitOfWork:
        return UnitOfWork(
            self.repositories(), self.audit_sink, strict_audit=self.config.strict_audit
        )

    def dispatcher(self) -> SideEffectDispatcher:
        return SideEffectDispatcher(self.notifier, self.reminders)


class BaseWorkflow:
    """Runs machine transitions inside a unit of work.

    Every mutating operation follows the same sequence: authorize, begin,
    read current state, run the machine guard, stage writes and audit,
    commit, then dispatch notifications.
    """

    def __init__(self, services: WorkflowServices):
        self.services = services
        self.dispatcher = services.dispatcher()

    def _authorize(self, actor: Actor, action: WorkflowAction, entity=None) -> None:
        if not self.services.authorizer.can_perform(actor, action, entity):
            logger.warning("Actor %s denied %s", actor.user_id, action.value)
            raise AuthorizationError(
                actor.user_id, action.value, getattr(entity, "id", None)
            )

    def _execute(
        self, actor: Actor, step: Callable[[UnitOfWork], Transition]
    ) -> Transition:
        """Run ``step`` in a fresh unit of work and dispatch its side effects.

        ``step`` may stage further transitions on the unit of work itself;
        the one it returns is applied last.
        """
        uow = self.services.unit_of_work()
        uow.begin()
        try:
            transition = step(uow)
            uow.apply(transition, actor.user_id)
            result = uow.commit()
        except Exception:
            uow.rollback()
            raise
        self.dispatcher.dispatch(result)
        return transition
