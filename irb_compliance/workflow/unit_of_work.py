"""Unit of work spanning record writes and audit entries.

Usage:
    uow = UnitOfWork(repositories, audit_sink)
    uow.begin()
    try:
        submission = uow.get("submission", submission_id)
        uow.apply(machine.submit(submission, now, sequence), actor_id)
        result = uow.commit()
    except Exception:
        uow.rollback()
        raise
    dispatcher.dispatch(result)

Reads made through the unit of work see its staged writes. On commit,
record writes are applied in staging order and audit entries are flushed
afterwards, so a failed write never leaves an audit event behind. If a
record write fails, writes already applied are compensated so no partial
state remains. Under strict auditing an audit failure compensates the
applied writes too, and any events already appended are marked with a
TRANSACTION_ROLLED_BACK entry. Notifications and reminders
are only handed back after a successful commit.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel

from irb_compliance.audit.logger import AuditSink
from irb_compliance.audit.models import AuditAction
from irb_compliance.errors import DependencyFailure
from irb_compliance.machines.base import AuditEntry, StagedAudit, StagedWrite, Transition
from irb_compliance.notifications.models import NotificationRequest, ReminderRequest
from irb_compliance.ports.storage import Repository

logger = logging.getLogger(__name__)


@dataclass
class CommitResult:
    """What a successful commit produced."""

    records: list[BaseModel] = field(default_factory=list)
    audit_event_ids: list[str] = field(default_factory=list)
    audit_failures: int = 0
    notifications: list[NotificationRequest] = field(default_factory=list)
    reminders: list[ReminderRequest] = field(default_factory=list)


class UnitOfWork:
    """Transaction boundary for one workflow operation.

    Args:
        repositories: Repository per entity type.
        audit_sink: Destination for audit entries.
        strict_audit: When True, an audit sink failure aborts the commit
            with DependencyFailure and the applied writes are undone. When False
            the failure is logged at CRITICAL and the commit proceeds.
    """

    def __init__(
        self,
        repositories: dict[str, Repository],
        audit_sink: AuditSink,
        strict_audit: bool = False,
    ):
        self.repositories = repositories
        self.audit_sink = audit_sink
        self.strict_audit = strict_audit
        self._active = False
        self.last_result: CommitResult | None = None
        self._reset()

    def _reset(self) -> None:
        self._writes: dict[tuple[str, str], StagedWrite] = {}
        self._audit: list[tuple[str, StagedAudit]] = []
        self._notifications: list[NotificationRequest] = []
        self._reminders: list[ReminderRequest] = []

    @property
    def active(self) -> bool:
        return self._active

    def _require_active(self) -> None:
        if not self._active:
            raise RuntimeError("Unit of work has not begun")

    def _repository(self, entity_type: str) -> Repository:
        try:
            return self.repositories[entity_type]
        except KeyError:
            raise ValueError(f"No repository registered for {entity_type}") from None

    # Lifecycle

    def begin(self) -> "UnitOfWork":
        if self._active:
            raise RuntimeError("Unit of work already in progress")
        self._reset()
        self._active = True
        return self

    def rollback(self) -> None:
        """Discard everything staged. Safe to call when not active."""
        if self._active:
            logger.debug(
                "Rolling back unit of work with %d staged writes", len(self._writes)
            )
        self._reset()
        self._active = False

    def commit(self) -> CommitResult:
        """Apply staged writes, then flush audit entries.

        Raises:
            DependencyFailure: If strict auditing is on and the audit sink
                fails, after applied writes are undone.
            Exception: Any repository error, after applied writes are undone.
        """
        self._require_active()
        result = CommitResult(
            notifications=list(self._notifications), reminders=list(self._reminders)
        )

        try:
            applied = self._apply_writes(result)
            try:
                self._flush_audit(result)
            except DependencyFailure as e:
                self._compensate(applied)
                self._mark_rolled_back(result.audit_event_ids, str(e))
                raise
        finally:
            self._reset()
            self._active = False

        return result

    def __enter__(self) -> "UnitOfWork":
        return self.begin()

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is not None:
            self.rollback()
        elif self._active:
            self.last_result = self.commit()

    # Reads

    def get(self, entity_type: str, record_id: str) -> Any:
        """Fetch a record, preferring a version staged in this unit of work."""
        staged = self._writes.get((entity_type, record_id))
        if staged is not None:
            return staged.record
        return self._repository(entity_type).get(record_id)

    def find(
        self, entity_type: str, predicate: Callable[[Any], bool] | None = None
    ) -> list[Any]:
        """List records, with staged versions replacing stored ones."""
        records = {
            getattr(r, "id"): r for r in self._repository(entity_type).find()
        }
        for (staged_type, record_id), write in self._writes.items():
            if staged_type == entity_type:
                records[record_id] = write.record
        if predicate is None:
            return list(records.values())
        return [r for r in records.values() if predicate(r)]

    # Staging

    def stage(self, write: StagedWrite) -> None:
        self._require_active()
        key = (write.entity_type, getattr(write.record, "id"))
        earlier = self._writes.get(key)
        if earlier is not None and earlier.created:
            write = StagedWrite(write.entity_type, write.record, created=True)
        self._writes[key] = write

    def record_audit(self, actor_id: str, entry: StagedAudit) -> None:
        self._require_active()
        self._audit.append((actor_id, entry))

    def notify(self, request: NotificationRequest) -> None:
        self._require_active()
        self._notifications.append(request)

    def remind(self, request: ReminderRequest) -> None:
        self._require_active()
        self._reminders.append(request)

    def apply(self, transition: Transition, actor_id: str) -> None:
        """Stage every write, audit entry and side effect of a transition."""
        for write in transition.writes():
            self.stage(write)
        for entry in transition.audit:
            self.record_audit(actor_id, entry)
        for request in transition.notifications:
            self.notify(request)
        for reminder in transition.reminders:
            self.remind(reminder)

    # Commit internals

    def _flush_audit(self, result: CommitResult) -> None:
        for actor_id, entry in self._audit:
            try:
                if isinstance(entry, AuditEntry):
                    event_id = self.audit_sink.record(
                        actor_id,
                        entry.action,
                        entry.entity_type,
                        entry.entity_id,
                        entry.old_value,
                        entry.new_value,
                        entry.context,
                    )
                else:
                    event_id = self.audit_sink.log_event(entry)
            except Exception as e:
                if self.strict_audit:
                    logger.critical(
                        "Audit write failed for %s %s; aborting commit: %s",
                        entry.entity_type,
                        entry.entity_id,
                        e,
                    )
                    raise DependencyFailure("audit_sink", f"Audit write failed: {e}") from e
                logger.critical(
                    "Audit write failed for %s %s (%s); continuing: %s",
                    entry.entity_type,
                    entry.entity_id,
                    entry.action.value,
                    e,
                )
                result.audit_failures += 1
                continue
            result.audit_event_ids.append(event_id)

    def _mark_rolled_back(self, event_ids: list[str], reason: str) -> None:
        if not event_ids:
            return
        try:
            self.audit_sink.record(
                "system",
                AuditAction.TRANSACTION_ROLLED_BACK,
                "transaction",
                event_ids[0],
                context={"rolled_back_event_ids": list(event_ids), "reason": reason},
            )
        except Exception as e:
            logger.critical(
                "Could not mark audit events %s as rolled back: %s", event_ids, e
            )

    def _apply_writes(
        self, result: CommitResult
    ) -> list[tuple[StagedWrite, BaseModel | None]]:
        applied: list[tuple[StagedWrite, BaseModel | None]] = []
        try:
            for write in self._writes.values():
                repository = self._repository(write.entity_type)
                record_id = getattr(write.record, "id")
                if write.created:
                    result.records.append(repository.create(write.record))
                    applied.append((write, None))
                else:
                    original = repository.get(record_id)
                    result.records.append(
                        repository.update(record_id, write.record.model_dump())
                    )
                    applied.append((write, original))
        except Exception:
            logger.error(
                "Record write failed after %d of %d writes; compensating",
                len(applied),
                len(self._writes),
            )
            self._compensate(applied)
            raise
        return applied

    def _compensate(self, applied: list[tuple[StagedWrite, BaseModel | None]]) -> None:
        for write, original in reversed(applied):
            repository = self._repository(write.entity_type)
            record_id = getattr(write.record, "id")
            try:
                if original is None:
                    repository.delete(record_id)
                else:
                    repository.update(record_id, original.model_dump())
            except Exception as e:
                logger.critical(
                    "Could not undo write to %s %s: %s", write.entity_type, record_id, e
                )
