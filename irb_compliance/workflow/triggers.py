"""Routes scheduler triggers into notifications and workflow calls."""

import logging

from irb_compliance.errors import ComplianceError
from irb_compliance.models.enums import ComplianceStatus
from irb_compliance.notifications.models import NotificationRequest, NotificationTrigger
from irb_compliance.ports.authorization import SYSTEM_ACTOR
from irb_compliance.scheduler.scanner import TriggerEvent, TriggerKind
from irb_compliance.workflow.effects import SideEffectDispatcher
from irb_compliance.workflow.submission import SubmissionWorkflow

logger = logging.getLogger(__name__)


class TriggerRouter:
    """Turns each scanner trigger into its notifications and follow-on work.

    Continuing reviews that have reached their due date also open a
    continuing-review submission through the submission workflow.
    """

    def __init__(self, submissions: SubmissionWorkflow, dispatcher: SideEffectDispatcher):
        self.submissions = submissions
        self.dispatcher = dispatcher
        self.clock = submissions.services.clock

    def notifications_for(self, trigger: TriggerEvent) -> list[NotificationRequest]:
        """Notifications a trigger should produce."""
        context = {
            "entity_type": trigger.entity_type,
            "entity_id": trigger.entity_id,
            "due_date": trigger.due_date.isoformat() if trigger.due_date else None,
            **trigger.context,
        }

        if trigger.kind == TriggerKind.CONTINUING_REVIEW_DUE:
            return [
                NotificationRequest(
                    trigger=NotificationTrigger.CONTINUING_REVIEW_DUE, context=context
                )
            ]

        if trigger.kind == TriggerKind.DOCUMENT_EXPIRING:
            requests = [
                NotificationRequest(trigger=NotificationTrigger.DOCUMENT_EXPIRING, context=context)
            ]
            if trigger.recipient_id:
                requests.append(
                    NotificationRequest(
                        trigger=NotificationTrigger.DOCUMENT_EXPIRING,
                        user_id=trigger.recipient_id,
                        context=context,
                    )
                )
            return requests

        if trigger.kind == TriggerKind.REVIEW_OVERDUE:
            if trigger.recipient_id is None:
                logger.warning("Overdue review %s has no reviewer", trigger.entity_id)
                return []
            return [
                NotificationRequest(
                    trigger=NotificationTrigger.REVIEW_OVERDUE,
                    user_id=trigger.recipient_id,
                    context=context,
                )
            ]

        if trigger.kind == TriggerKind.COMPLIANCE_ALERT:
            return [
                NotificationRequest(
                    trigger=NotificationTrigger.COMPLIANCE_ALERT,
                    context=context,
                    urgent=trigger.context.get("status") == ComplianceStatus.CRITICAL.value,
                )
            ]

        if trigger.kind == TriggerKind.COMPLIANCE_SUMMARY:
            return [
                NotificationRequest(
                    trigger=NotificationTrigger.COMPLIANCE_ALERT,
                    context={**context, "report": "weekly"},
                )
            ]

        logger.warning("Unhandled trigger kind %s", trigger.kind)
        return []

    def _open_continuing_review(self, trigger: TriggerEvent) -> None:
        if trigger.due_date is None or trigger.due_date > self.clock.today():
            return
        try:
            self.submissions.process_continuing_review(SYSTEM_ACTOR, trigger.entity_id)
        except ComplianceError as e:
            logger.error(
                "Could not open continuing review for %s: %s", trigger.entity_id, e
            )

    def handle(self, trigger: TriggerEvent) -> int:
        """Process one trigger.

        Returns:
            Number of notifications delivered successfully.
        """
        if trigger.kind == TriggerKind.CONTINUING_REVIEW_DUE:
            self._open_continuing_review(trigger)

        delivered = 0
        for request in self.notifications_for(trigger):
            if self.dispatcher.send(request):
                delivered += 1
        logger.debug(
            "Trigger %s for %s delivered %d notifications",
            trigger.kind.value,
            trigger.entity_id,
            delivered,
        )
        return delivered
