"""Workflow orchestrators.

Each orchestrator runs state machine transitions inside a unit of work
and dispatches notifications only after the unit of work commits.

Example:
    services = WorkflowServices.from_config(WorkflowConfig.from_env())
    engine = ComplianceEngine(services)
    event = engine.adverse_events.process_new_adverse_event(actor, data)
"""

from irb_compliance.scheduler.registry import JobRegistry, build_default_registry
from irb_compliance.scheduler.scanner import ComplianceScanner
from irb_compliance.workflow.adverse_event import AdverseEventWorkflow
from irb_compliance.workflow.deviation import DeviationWorkflow
from irb_compliance.workflow.effects import SideEffectDispatcher
from irb_compliance.workflow.services import BaseWorkflow, WorkflowServices
from irb_compliance.workflow.submission import SubmissionWorkflow
from irb_compliance.workflow.triggers import TriggerRouter
from irb_compliance.workflow.unit_of_work import CommitResult, UnitOfWork


class ComplianceEngine:
    """All workflows and the scheduler wired to one set of services."""

    def __init__(self, services: WorkflowServices):
        self.services = services
        self.submissions = SubmissionWorkflow(services)
        self.adverse_events = AdverseEventWorkflow(services)
        self.deviations = DeviationWorkflow(services)
        self.scanner = ComplianceScanner(
            services.submissions,
            services.reviews,
            services.documents,
            services.metrics,
            services.clock,
            services.config,
        )
        self.router = TriggerRouter(self.submissions, services.dispatcher())

    def build_scheduler(self) -> JobRegistry:
        """Job registry feeding scan results to the trigger router."""
        return build_default_registry(self.scanner, self.router.handle)


__all__ = [
    "AdverseEventWorkflow",
    "BaseWorkflow",
    "CommitResult",
    "ComplianceEngine",
    "DeviationWorkflow",
    "SideEffectDispatcher",
    "SubmissionWorkflow",
    "TriggerRouter",
    "UnitOfWork",
    "WorkflowServices",
]
