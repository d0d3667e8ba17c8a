"""Protocol deviation state machine.

Lifecycle:
    REPORTED -> RESOLVED -> CLOSED

CLOSED is terminal; no further edits are accepted.
"""

import logging
from collections.abc import Callable
from datetime import datetime

from irb_compliance.audit.models import AuditAction
from irb_compliance.classification.deviation import deviation_requires_immediate_notification
from irb_compliance.errors import ValidationError
from irb_compliance.machines.base import (
    Transition,
    audit_entry,
    evolve,
    new_id,
    require_status,
)
from irb_compliance.models.deviation import DeviationCreate, DeviationUpdate, ProtocolDeviation
from irb_compliance.models.enums import DeviationStatus
from irb_compliance.notifications.models import NotificationRequest, NotificationTrigger

logger = logging.getLogger(__name__)

DEVIATION = "deviation"

OPEN_STATUSES = [DeviationStatus.REPORTED, DeviationStatus.RESOLVED]


def _deviation_context(deviation: ProtocolDeviation) -> dict:
    return {
        "deviation_id": deviation.id,
        "study_id": deviation.study_id,
        "deviation_type": deviation.deviation_type.value,
        "severity": deviation.severity.value,
        "reportable_to": sorted(deviation.assessment.reportable_to()),
        "impact_on_participant_safety": deviation.impact_on_participant_safety,
        "impact_on_data_integrity": deviation.impact_on_data_integrity,
    }


class DeviationMachine:
    """Guards, classification and side effects for protocol deviations."""

    def __init__(self, id_factory: Callable[[], str] = new_id):
        self.id_factory = id_factory

    def create(self, data: DeviationCreate, now: datetime) -> Transition[ProtocolDeviation]:
        """Record a new deviation in REPORTED status."""
        deviation = ProtocolDeviation(
            id=self.id_factory(),
            **data.model_dump(),
            status=DeviationStatus.REPORTED,
            created_at=now,
            updated_at=now,
        )

        notifications = []
        if deviation_requires_immediate_notification(deviation):
            notifications.append(
                NotificationRequest(
                    trigger=NotificationTrigger.PROTOCOL_DEVIATION,
                    context=_deviation_context(deviation),
                    urgent=True,
                )
            )

        return Transition(
            entity_type=DEVIATION,
            record=deviation,
            previous=None,
            audit=[
                audit_entry(
                    AuditAction.DEVIATION_REPORTED,
                    DEVIATION,
                    None,
                    deviation,
                    {"reportable_to": sorted(deviation.assessment.reportable_to())},
                )
            ],
            notifications=notifications,
        )

    def update(
        self, deviation: ProtocolDeviation, changes: DeviationUpdate, now: datetime
    ) -> Transition[ProtocolDeviation]:
        """Edit an open deviation and re-run classification.

        Re-notifies only when the set of bodies the deviation must be
        reported to has changed.
        """
        require_status(DEVIATION, deviation.id, deviation.status, "update", OPEN_STATUSES)

        fields = changes.model_dump(exclude_unset=True)
        updated = evolve(deviation, **fields, updated_at=now)

        before = deviation.assessment.reportable_to()
        after = updated.assessment.reportable_to()
        notifications = []
        if before != after:
            logger.info(
                "Deviation %s reportable set changed: %s -> %s",
                deviation.id,
                sorted(before),
                sorted(after),
            )
            notifications.append(
                NotificationRequest(
                    trigger=NotificationTrigger.PROTOCOL_DEVIATION,
                    context={
                        **_deviation_context(updated),
                        "previous_reportable_to": sorted(before),
                    },
                    urgent=deviation_requires_immediate_notification(updated),
                )
            )

        return Transition(
            entity_type=DEVIATION,
            record=updated,
            previous=deviation,
            audit=[
                audit_entry(
                    AuditAction.DEVIATION_UPDATED,
                    DEVIATION,
                    deviation,
                    updated,
                    {"fields": sorted(fields)},
                )
            ],
            notifications=notifications,
        )

    def add_corrective_action(
        self,
        deviation: ProtocolDeviation,
        corrective_action: str,
        preventive_action: str | None,
        now: datetime,
    ) -> Transition[ProtocolDeviation]:
        """Record the corrective action, resolving the deviation."""
        require_status(
            DEVIATION,
            deviation.id,
            deviation.status,
            "add a corrective action to",
            [DeviationStatus.REPORTED],
        )
        if not corrective_action or not corrective_action.strip():
            raise ValidationError(["Corrective action is required"], entity_type=DEVIATION)

        resolved = evolve(
            deviation,
            corrective_action=corrective_action.strip(),
            preventive_action=preventive_action,
            corrective_action_date=now,
            status=DeviationStatus.RESOLVED,
            updated_at=now,
        )
        return Transition(
            entity_type=DEVIATION,
            record=resolved,
            previous=deviation,
            audit=[
                audit_entry(AuditAction.CORRECTIVE_ACTION_ADDED, DEVIATION, deviation, resolved)
            ],
        )

    def close(
        self, deviation: ProtocolDeviation, reason: str, now: datetime
    ) -> Transition[ProtocolDeviation]:
        """Close a resolved deviation."""
        require_status(
            DEVIATION, deviation.id, deviation.status, "close", [DeviationStatus.RESOLVED]
        )
        if not reason or not reason.strip():
            raise ValidationError(["Closure reason is required"], entity_type=DEVIATION)

        closed = evolve(
            deviation,
            status=DeviationStatus.CLOSED,
            closure_reason=reason.strip(),
            closed_at=now,
            updated_at=now,
        )
        return Transition(
            entity_type=DEVIATION,
            record=closed,
            previous=deviation,
            audit=[
                audit_entry(
                    AuditAction.DEVIATION_CLOSED,
                    DEVIATION,
                    deviation,
                    closed,
                    {"reason": reason.strip()},
                )
            ],
        )
