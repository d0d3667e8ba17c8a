"""State machines for submissions, reviews, adverse events and deviations.

Machines are pure: they validate a requested transition against the
record's current state and return a ``Transition`` for the workflow
layer to persist, audit and dispatch.
"""

from irb_compliance.machines.adverse_event import AdverseEventMachine, validate_for_submission
from irb_compliance.machines.base import AuditEntry, StagedWrite, Transition
from irb_compliance.machines.deviation import DeviationMachine
from irb_compliance.machines.submission import ReviewMachine, SubmissionMachine

__all__ = [
    "AdverseEventMachine",
    "AuditEntry",
    "DeviationMachine",
    "ReviewMachine",
    "StagedWrite",
    "SubmissionMachine",
    "Transition",
    "validate_for_submission",
]
