"""Adverse event state machine.

Lifecycle:
    DRAFT -> REPORTED -> REQUIRES_FOLLOWUP -> REPORTED ...

Classification is recomputed from authoritative fields on every write.
A change in any derived field is a significant change and re-notifies.
"""

import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from irb_compliance.audit.logger import generate_event_id
from irb_compliance.audit.models import AEClassifiedEvent, AuditAction
from irb_compliance.classification.adverse_event import (
    check_timeline_compliance,
    follow_up_schedule,
    reporting_deadline,
    requires_immediate_notification,
)
from irb_compliance.classification.submission import sae_report_id
from irb_compliance.errors import ValidationError
from irb_compliance.machines.base import (
    Transition,
    audit_entry,
    evolve,
    new_id,
    require_status,
)
from irb_compliance.models.adverse_event import (
    AdverseEvent,
    AdverseEventCreate,
    AdverseEventUpdate,
    Hospitalization,
)
from irb_compliance.models.enums import AESeriousness, AEStatus
from irb_compliance.notifications.models import (
    NotificationRequest,
    NotificationTrigger,
    ReminderRequest,
)

logger = logging.getLogger(__name__)

ADVERSE_EVENT = "adverse_event"

EDITABLE_STATUSES = [AEStatus.DRAFT, AEStatus.REQUIRES_FOLLOWUP]

# Callable returning the next SAE sequence number for (study_id, year)
SaeSequence = Callable[[str, int], int]


def _derived(event: AdverseEvent) -> dict:
    return {
        "is_sae": event.is_sae,
        "reportable_to_fda": event.reportable_to_fda,
        "reportable_to_sponsor": event.reportable_to_sponsor,
        "reportable_to_irb": event.reportable_to_irb,
        "reporting_timeline": event.reporting_timeline.value,
    }


def _event_context(event: AdverseEvent) -> dict:
    return {
        "adverse_event_id": event.id,
        "study_id": event.study_id,
        "external_id": event.external_id,
        "sae_report_id": event.sae_report_id,
        "severity": event.severity.value,
        "seriousness": event.seriousness.value,
        "expectedness": event.expectedness.value,
        "outcome": event.outcome.value if event.outcome else None,
        "is_sae": event.is_sae,
        "reporting_timeline": event.reporting_timeline.value,
    }


def validate_for_submission(event: AdverseEvent) -> list[str]:
    """List the fields that must be completed before reporting."""
    issues: list[str] = []
    if not event.description or not event.description.strip():
        issues.append("Description is required")
    if event.onset_date is None:
        issues.append("Onset date is required")
    if event.outcome is None:
        issues.append("Outcome is required")
    if event.is_sae and not (event.action_taken and event.action_taken.strip()):
        issues.append("Action taken is required for SAEs")
    return issues


class AdverseEventMachine:
    """Guards, classification and side effects for adverse events.

    Args:
        sae_sequence: Returns the next SAE report sequence for a study and year.
        id_factory: Generator for new record ids.
    """

    def __init__(self, sae_sequence: SaeSequence, id_factory: Callable[[], str] = new_id):
        self.sae_sequence = sae_sequence
        self.id_factory = id_factory

    def _assign_sae_report_id(self, event: AdverseEvent, now: datetime) -> AdverseEvent:
        if not event.is_sae or event.sae_report_id:
            return event
        sequence = self.sae_sequence(event.study_id, now.year)
        return evolve(event, sae_report_id=sae_report_id(event.study_id, now.year, sequence))

    def _classification_audit(
        self, previous: AdverseEvent | None, current: AdverseEvent, actor_id: str, now: datetime
    ) -> AEClassifiedEvent:
        return AEClassifiedEvent(
            event_id=generate_event_id(now),
            timestamp=now,
            entity_id=current.id,
            actor_id=actor_id,
            previous=_derived(previous) if previous is not None else None,
            current=_derived(current),
            criteria_met=[c.value for c in current.assessment.criteria_met],
        )

    def _reclassification_notice(
        self, previous: AdverseEvent, current: AdverseEvent
    ) -> NotificationRequest:
        context = {
            **_event_context(current),
            "reclassified": True,
            "previous": _derived(previous),
        }
        if current.is_sae:
            return NotificationRequest(
                trigger=NotificationTrigger.SAE_REPORTED,
                context=context,
                urgent=requires_immediate_notification(current),
            )
        return NotificationRequest(
            trigger=NotificationTrigger.COMPLIANCE_ALERT,
            context={**context, "reason": "Adverse event reclassified"},
        )

    def create(
        self, data: AdverseEventCreate, actor_id: str, now: datetime
    ) -> Transition[AdverseEvent]:
        """Record and classify a new adverse event.

        Events meeting an SAE criterion receive an SAE report id. Events
        requiring immediate notification stage an urgent SAE notice.
        """
        fields = data.model_dump()
        if data.hospitalizations:
            fields["seriousness"] = AESeriousness.SERIOUS

        event = AdverseEvent(
            id=self.id_factory(),
            **fields,
            status=AEStatus.DRAFT,
            created_at=now,
            updated_at=now,
        )
        event = self._assign_sae_report_id(event, now)

        notifications = []
        if requires_immediate_notification(event):
            notifications.append(
                NotificationRequest(
                    trigger=NotificationTrigger.SAE_REPORTED,
                    context=_event_context(event),
                    urgent=True,
                )
            )

        logger.info(
            "Classified adverse event %s: SAE=%s timeline=%s",
            event.id,
            event.is_sae,
            event.reporting_timeline.value,
        )
        return Transition(
            entity_type=ADVERSE_EVENT,
            record=event,
            previous=None,
            audit=[
                audit_entry(AuditAction.AE_CREATED, ADVERSE_EVENT, None, event),
                self._classification_audit(None, event, actor_id, now),
            ],
            notifications=notifications,
        )

    def _reclassify(
        self,
        previous: AdverseEvent,
        updated: AdverseEvent,
        action: AuditAction,
        actor_id: str,
        now: datetime,
        context: dict | None = None,
    ) -> Transition[AdverseEvent]:
        updated = self._assign_sae_report_id(updated, now)
        audit = [audit_entry(action, ADVERSE_EVENT, previous, updated, context)]
        notifications = []

        significant = (
            previous.assessment.derived_fields() != updated.assessment.derived_fields()
        )
        if significant:
            logger.info(
                "Adverse event %s reclassified: SAE %s -> %s, timeline %s -> %s",
                updated.id,
                previous.is_sae,
                updated.is_sae,
                previous.reporting_timeline.value,
                updated.reporting_timeline.value,
            )
            audit.append(self._classification_audit(previous, updated, actor_id, now))
            notifications.append(self._reclassification_notice(previous, updated))

        return Transition(
            entity_type=ADVERSE_EVENT,
            record=updated,
            previous=previous,
            audit=audit,
            notifications=notifications,
        )

    def update(
        self, event: AdverseEvent, changes: AdverseEventUpdate, actor_id: str, now: datetime
    ) -> Transition[AdverseEvent]:
        """Apply authoritative field changes and re-run classification.

        Raises:
            PreconditionError: If the event is REPORTED.
            ValidationError: If the change would downgrade seriousness while
                hospitalizations are recorded.
        """
        require_status(ADVERSE_EVENT, event.id, event.status, "update", EDITABLE_STATUSES)

        fields = changes.model_dump(exclude_unset=True)
        if event.hospitalizations and fields.get("seriousness") == AESeriousness.NON_SERIOUS:
            raise ValidationError(
                ["Seriousness cannot be downgraded while hospitalizations are recorded"],
                entity_type=ADVERSE_EVENT,
            )

        updated = evolve(event, **fields, updated_at=now)
        return self._reclassify(
            event,
            updated,
            AuditAction.AE_UPDATED,
            actor_id,
            now,
            {"fields": sorted(fields)},
        )

    def add_hospitalization(
        self,
        event: AdverseEvent,
        hospitalization: Hospitalization,
        actor_id: str,
        now: datetime,
    ) -> Transition[AdverseEvent]:
        """Attach a hospitalization, forcing the event to SERIOUS."""
        updated = evolve(
            event,
            hospitalizations=[*event.hospitalizations, hospitalization],
            seriousness=AESeriousness.SERIOUS,
            updated_at=now,
        )
        return self._reclassify(
            event,
            updated,
            AuditAction.HOSPITALIZATION_ADDED,
            actor_id,
            now,
            {"hospitalization": hospitalization.model_dump(mode="json")},
        )

    def add_follow_up_report(
        self, event: AdverseEvent, report_id: str, now: datetime
    ) -> Transition[AdverseEvent]:
        """Attach a follow-up report to a reported event and reopen it."""
        require_status(
            ADVERSE_EVENT,
            event.id,
            event.status,
            "add a follow-up report to",
            [AEStatus.REPORTED, AEStatus.REQUIRES_FOLLOWUP],
        )
        if not report_id or not report_id.strip():
            raise ValidationError(["Follow-up report id is required"], entity_type=ADVERSE_EVENT)

        updated = evolve(
            event,
            follow_up_report_ids=[*event.follow_up_report_ids, report_id],
            status=AEStatus.REQUIRES_FOLLOWUP,
            updated_at=now,
        )
        return Transition(
            entity_type=ADVERSE_EVENT,
            record=updated,
            previous=event,
            audit=[
                audit_entry(
                    AuditAction.FOLLOW_UP_ADDED,
                    ADVERSE_EVENT,
                    event,
                    updated,
                    {"report_id": report_id},
                )
            ],
        )

    def submit(self, event: AdverseEvent, now: datetime) -> Transition[AdverseEvent]:
        """Report an adverse event to the required bodies.

        Late reports are not blocked; the timeline check produces
        compliance warnings stored on the event.

        Raises:
            PreconditionError: If the event is already REPORTED.
            ValidationError: If required fields are missing.
        """
        require_status(ADVERSE_EVENT, event.id, event.status, "submit", EDITABLE_STATUSES)

        issues = validate_for_submission(event)
        if issues:
            raise ValidationError(issues, entity_type=ADVERSE_EVENT)

        today = now.date()
        warnings = check_timeline_compliance(event, today)
        for warning in warnings:
            logger.warning("Adverse event %s: %s", event.id, warning)

        reported = evolve(
            event,
            status=AEStatus.REPORTED,
            reported_at=now,
            compliance_warnings=[*event.compliance_warnings, *warnings],
            updated_at=now,
        )

        deadline = reporting_deadline(event.onset_date, reported.reporting_timeline)
        notifications = []
        for recipient, required in (
            ("FDA", reported.reportable_to_fda),
            ("SPONSOR", reported.reportable_to_sponsor),
            ("IRB", reported.reportable_to_irb),
        ):
            if required:
                notifications.append(
                    NotificationRequest(
                        trigger=NotificationTrigger.REGULATORY_REPORT_DUE,
                        context={
                            **_event_context(reported),
                            "recipient": recipient,
                            "deadline": deadline.isoformat() if deadline else None,
                            "compliance_warnings": warnings,
                        },
                        urgent=requires_immediate_notification(reported),
                    )
                )

        reminders = []
        if reported.is_sae:
            reminders = [
                ReminderRequest(
                    entity_type=ADVERSE_EVENT,
                    entity_id=reported.id,
                    due_date=today + timedelta(days=days),
                    offset_days=days,
                    reason=f"Follow-up for {reported.sae_report_id or reported.id}",
                )
                for days in follow_up_schedule(reported)
            ]

        return Transition(
            entity_type=ADVERSE_EVENT,
            record=reported,
            previous=event,
            audit=[
                audit_entry(
                    AuditAction.AE_SUBMITTED,
                    ADVERSE_EVENT,
                    event,
                    reported,
                    {"compliance_warnings": warnings},
                )
            ],
            notifications=notifications,
            reminders=reminders,
        )
