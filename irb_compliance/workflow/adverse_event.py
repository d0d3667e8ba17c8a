"""Adverse event workflow orchestrator."""

import logging

from irb_compliance.classification.adverse_event import (
    ExpeditedAssessment,
    assess_expedited_reporting,
)
from irb_compliance.machines.adverse_event import ADVERSE_EVENT, AdverseEventMachine
from irb_compliance.machines.base import Transition
from irb_compliance.models.adverse_event import (
    AdverseEvent,
    AdverseEventCreate,
    AdverseEventUpdate,
    Hospitalization,
)
from irb_compliance.models.enums import AEStatus
from irb_compliance.ports.authorization import Actor, WorkflowAction
from irb_compliance.workflow.services import BaseWorkflow, WorkflowServices
from irb_compliance.workflow.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)


class AdverseEventWorkflow(BaseWorkflow):
    """Adverse event intake, classification and reporting."""

    def __init__(self, services: WorkflowServices):
        super().__init__(services)
        self.machine = AdverseEventMachine(sae_sequence=self._next_sae_sequence)

    def _next_sae_sequence(self, study_id: str, year: int) -> int:
        prefix = f"SAE-{year}-{study_id[:8]}-"
        existing = self.services.adverse_events.find(
            lambda e: e.sae_report_id is not None and e.sae_report_id.startswith(prefix)
        )
        return len(existing) + 1

    def get(self, event_id: str) -> AdverseEvent:
        return self.services.adverse_events.get(event_id)

    def list_events(
        self,
        study_id: str | None = None,
        status: AEStatus | None = None,
        sae_only: bool = False,
    ) -> list[AdverseEvent]:
        """List adverse events, optionally filtered."""
        return self.services.adverse_events.find(
            lambda e: (study_id is None or e.study_id == study_id)
            and (status is None or e.status == status)
            and (not sae_only or e.is_sae)
        )

    def assess_expedited_reporting(self, event_id: str) -> ExpeditedAssessment:
        """Explain whether a stored event needs an expedited report."""
        return assess_expedited_reporting(self.get(event_id))

    def process_new_adverse_event(
        self, actor: Actor, data: AdverseEventCreate
    ) -> AdverseEvent:
        """Record and classify a new adverse event.

        Urgent notifications for critical events are delivered before this
        returns, after the event is committed.
        """
        self._authorize(actor, WorkflowAction.AE_CREATE)
        transition = self._execute(
            actor,
            lambda uow: self.machine.create(data, actor.user_id, self.services.clock.now()),
        )
        event = transition.record
        logger.info(
            "Processed new adverse event %s, SAE: %s", event.id, event.is_sae
        )
        return event

    def update(
        self, actor: Actor, event_id: str, changes: AdverseEventUpdate
    ) -> AdverseEvent:
        """Update authoritative fields and reclassify."""

        def step(uow: UnitOfWork) -> Transition:
            event = uow.get(ADVERSE_EVENT, event_id)
            self._authorize(actor, WorkflowAction.AE_UPDATE, event)
            return self.machine.update(event, changes, actor.user_id, self.services.clock.now())

        return self._execute(actor, step).record

    def add_hospitalization(
        self, actor: Actor, event_id: str, hospitalization: Hospitalization
    ) -> AdverseEvent:
        """Record a hospitalization; the event becomes serious."""

        def step(uow: UnitOfWork) -> Transition:
            event = uow.get(ADVERSE_EVENT, event_id)
            self._authorize(actor, WorkflowAction.AE_HOSPITALIZATION, event)
            return self.machine.add_hospitalization(
                event, hospitalization, actor.user_id, self.services.clock.now()
            )

        return self._execute(actor, step).record

    def add_follow_up_report(
        self, actor: Actor, event_id: str, report_id: str
    ) -> AdverseEvent:
        """Attach a follow-up report document."""

        def step(uow: UnitOfWork) -> Transition:
            event = uow.get(ADVERSE_EVENT, event_id)
            self._authorize(actor, WorkflowAction.AE_FOLLOW_UP, event)
            return self.machine.add_follow_up_report(
                event, report_id, self.services.clock.now()
            )

        return self._execute(actor, step).record

    def submit(self, actor: Actor, event_id: str) -> AdverseEvent:
        """Submit an adverse event for official reporting."""

        def step(uow: UnitOfWork) -> Transition:
            event = uow.get(ADVERSE_EVENT, event_id)
            self._authorize(actor, WorkflowAction.AE_SUBMIT, event)
            return self.machine.submit(event, self.services.clock.now())

        event = self._execute(actor, step).record
        logger.info("Adverse event %s submitted for reporting", event_id)
        return event
