"""Protocol deviation workflow orchestrator."""

import logging

from irb_compliance.machines.base import Transition
from irb_compliance.machines.deviation import DEVIATION, DeviationMachine
from irb_compliance.models.deviation import DeviationCreate, DeviationUpdate, ProtocolDeviation
from irb_compliance.models.enums import DeviationStatus
from irb_compliance.ports.authorization import Actor, WorkflowAction
from irb_compliance.workflow.services import BaseWorkflow, WorkflowServices
from irb_compliance.workflow.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)


class DeviationWorkflow(BaseWorkflow):
    """Protocol deviation reporting, resolution and closure."""

    def __init__(self, services: WorkflowServices):
        super().__init__(services)
        self.machine = DeviationMachine()

    def get(self, deviation_id: str) -> ProtocolDeviation:
        return self.services.deviations.get(deviation_id)

    def list_deviations(
        self, study_id: str | None = None, status: DeviationStatus | None = None
    ) -> list[ProtocolDeviation]:
        return self.services.deviations.find(
            lambda d: (study_id is None or d.study_id == study_id)
            and (status is None or d.status == status)
        )

    def report(self, actor: Actor, data: DeviationCreate) -> ProtocolDeviation:
        """Record and classify a new deviation."""
        self._authorize(actor, WorkflowAction.DEVIATION_CREATE)
        deviation = self._execute(
            actor, lambda uow: self.machine.create(data, self.services.clock.now())
        ).record
        logger.info(
            "Reported deviation %s (%s), reportable to %s",
            deviation.id,
            deviation.severity.value,
            sorted(deviation.assessment.reportable_to()) or "none",
        )
        return deviation

    def update(
        self, actor: Actor, deviation_id: str, changes: DeviationUpdate
    ) -> ProtocolDeviation:
        def step(uow: UnitOfWork) -> Transition:
            deviation = uow.get(DEVIATION, deviation_id)
            self._authorize(actor, WorkflowAction.DEVIATION_UPDATE, deviation)
            return self.machine.update(deviation, changes, self.services.clock.now())

        return self._execute(actor, step).record

    def add_corrective_action(
        self,
        actor: Actor,
        deviation_id: str,
        corrective_action: str,
        preventive_action: str | None = None,
    ) -> ProtocolDeviation:
        def step(uow: UnitOfWork) -> Transition:
            deviation = uow.get(DEVIATION, deviation_id)
            self._authorize(actor, WorkflowAction.DEVIATION_CORRECTIVE_ACTION, deviation)
            return self.machine.add_corrective_action(
                deviation, corrective_action, preventive_action, self.services.clock.now()
            )

        return self._execute(actor, step).record

    def close(self, actor: Actor, deviation_id: str, reason: str) -> ProtocolDeviation:
        """Close a resolved deviation."""

        def step(uow: UnitOfWork) -> Transition:
            deviation = uow.get(DEVIATION, deviation_id)
            self._authorize(actor, WorkflowAction.DEVIATION_CLOSE, deviation)
            return self.machine.close(deviation, reason, self.services.clock.now())

        deviation = self._execute(actor, step).record
        logger.info("Protocol deviation %s closed: %s", deviation_id, reason)
        return deviation
