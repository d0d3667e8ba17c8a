"""Shared building blocks for workflow state machines.

A machine method never performs I/O. It checks the guard for the
requested action, builds the new record, and returns a ``Transition``
describing every write, audit entry and side effect the orchestrator
must apply inside one unit of work.
"""

import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

import pydantic
from pydantic import BaseModel

from irb_compliance.audit.models import AEClassifiedEvent, AuditAction
from irb_compliance.errors import PreconditionError, ValidationError
from irb_compliance.notifications.models import NotificationRequest, ReminderRequest

RecordT = TypeVar("RecordT", bound=BaseModel)


def new_id() -> str:
    """Generate a record identifier."""
    return uuid.uuid4().hex


def evolve(record: RecordT, **changes: Any) -> RecordT:
    """Return a re-validated copy of ``record`` with ``changes`` applied.

    Unlike ``model_copy(update=...)`` this runs model validators, so record
    invariants are checked on every transition.

    Raises:
        ValidationError: Listing every field the changes left invalid, such
            as an explicit None for a required field.
    """
    data = record.model_dump()
    data.update(changes)
    try:
        return type(record).model_validate(data)
    except pydantic.ValidationError as e:
        issues = [
            f"{'.'.join(str(part) for part in error['loc']) or 'record'}: {error['msg']}"
            for error in e.errors()
        ]
        raise ValidationError(issues) from None


def snapshot(record: BaseModel | None) -> dict[str, Any] | None:
    """JSON-safe view of a record for audit entries."""
    if record is None:
        return None
    return record.model_dump(mode="json")


def require_status(
    entity_type: str,
    record_id: str,
    current: Any,
    action: str,
    allowed: Iterable[Any],
) -> None:
    """Raise PreconditionError unless ``current`` is one of ``allowed``."""
    allowed = list(allowed)
    if current not in allowed:
        raise PreconditionError(
            entity_type,
            record_id,
            current.value if hasattr(current, "value") else str(current),
            action,
            [a.value if hasattr(a, "value") else str(a) for a in allowed],
        )


@dataclass(frozen=True)
class AuditEntry:
    """An audit record staged for the unit of work."""

    action: AuditAction
    entity_type: str
    entity_id: str
    old_value: dict[str, Any] | None = None
    new_value: dict[str, Any] | None = None
    context: dict[str, Any] = field(default_factory=dict)


StagedAudit = AuditEntry | AEClassifiedEvent


@dataclass(frozen=True)
class StagedWrite:
    """A record to create or update when the unit of work commits."""

    entity_type: str
    record: BaseModel
    created: bool = False


@dataclass
class Transition(Generic[RecordT]):
    """Result of one state machine step.

    Attributes:
        entity_type: Kind of the primary record.
        record: The primary record after the step.
        previous: The primary record before the step, None when created.
        audit: Audit entries for the primary record and any dependents.
        dependents: Other records written by the step (reviews, child
            submissions, parent roll-forwards).
        notifications: Notifications to send after commit.
        reminders: Follow-up reminders to schedule after commit.
    """

    entity_type: str
    record: RecordT
    previous: RecordT | None
    audit: list[StagedAudit] = field(default_factory=list)
    dependents: list[StagedWrite] = field(default_factory=list)
    notifications: list[NotificationRequest] = field(default_factory=list)
    reminders: list[ReminderRequest] = field(default_factory=list)

    @property
    def created(self) -> bool:
        return self.previous is None

    def writes(self) -> list[StagedWrite]:
        """Every record write, the primary record first."""
        primary = StagedWrite(self.entity_type, self.record, created=self.created)
        return [primary, *self.dependents]

    def then(self, following: "Transition[RecordT]") -> "Transition[RecordT]":
        """Chain a further step on the same record into one transition.

        The chained step must start from this step's record.
        """
        return Transition(
            entity_type=self.entity_type,
            record=following.record,
            previous=self.previous,
            audit=[*self.audit, *following.audit],
            dependents=_merge_dependents(self.dependents, following.dependents),
            notifications=[*self.notifications, *following.notifications],
            reminders=[*self.reminders, *following.reminders],
        )


def _merge_dependents(
    first: list[StagedWrite], second: list[StagedWrite]
) -> list[StagedWrite]:
    merged: dict[tuple[str, str], StagedWrite] = {}
    for write in [*first, *second]:
        key = (write.entity_type, getattr(write.record, "id"))
        earlier = merged.get(key)
        created = write.created or (earlier is not None and earlier.created)
        merged[key] = StagedWrite(write.entity_type, write.record, created=created)
    return list(merged.values())


def audit_entry(
    action: AuditAction,
    entity_type: str,
    before: BaseModel | None,
    after: BaseModel,
    context: dict[str, Any] | None = None,
) -> AuditEntry:
    """Build an audit entry from before and after records."""
    return AuditEntry(
        action=action,
        entity_type=entity_type,
        entity_id=getattr(after, "id"),
        old_value=snapshot(before),
        new_value=snapshot(after),
        context=context or {},
    )
