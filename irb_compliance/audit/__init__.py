"""Audit trail for workflow state changes.

Every committed transition writes an immutable event recording who did
what to which record, with the before and after state.
"""

from irb_compliance.audit.logger import AuditLogger, AuditSink, generate_event_id
from irb_compliance.audit.models import AEClassifiedEvent, AuditAction, AuditEvent

__all__ = [
    "AEClassifiedEvent",
    "AuditAction",
    "AuditEvent",
    "AuditLogger",
    "AuditSink",
    "generate_event_id",
]
