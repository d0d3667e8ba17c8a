"""Audit logger implementation with JSON file storage.

Provides the append-only audit sink for workflow state changes.
Events are stored in JSON Lines format, one file per UTC day:
    audit_logs/
        2025-03-10.jsonl
        2025-03-11.jsonl
        ...
"""

import json
import logging
import os
import uuid
from collections.abc import Iterator
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Protocol

from irb_compliance.audit.models import AEClassifiedEvent, AuditAction, AuditEvent
from irb_compliance.ports.clock import Clock

logger = logging.getLogger(__name__)

EventType = AuditEvent | AEClassifiedEvent


def generate_event_id(timestamp: datetime | None = None) -> str:
    """Generate a unique event ID.

    Format: EVT-{timestamp}-{uuid4_short}
    Example: EVT-20250310143052-a1b2c3d4
    """
    if timestamp is None:
        timestamp = datetime.now(UTC)
    short_uuid = uuid.uuid4().hex[:8]
    return f"EVT-{timestamp.strftime('%Y%m%d%H%M%S')}-{short_uuid}"


class AuditSink(Protocol):
    """Append-only destination for audit events."""

    def log_event(self, event: EventType) -> str: ...

    def record(
        self,
        actor_id: str,
        action: AuditAction,
        entity_type: str,
        entity_id: str,
        old_value: dict[str, Any] | None = None,
        new_value: dict[str, Any] | None = None,
        context: dict[str, Any] | None = None,
    ) -> str: ...


class AuditLogger:
    """Append-only audit logger with JSON file storage.

    Events are stored in JSON Lines format (.jsonl) with one event per line.
    Files are organized by UTC date for efficient retrieval.

    Attributes:
        log_dir: Directory where audit logs are stored.
    """

    def __init__(self, log_dir: Path | str | None = None, clock: Clock | None = None) -> None:
        """Initialize the audit logger.

        Args:
            log_dir: Directory for audit logs. If None, uses './audit_logs'.
            clock: Time source for event timestamps. Defaults to UTC wall time.
        """
        if log_dir is None:
            log_dir = Path("audit_logs")
        self.log_dir = Path(log_dir)
        self.clock = clock
        self.log_dir.mkdir(parents=True, exist_ok=True)

    def _now(self) -> datetime:
        return self.clock.now() if self.clock is not None else datetime.now(UTC)

    def _get_log_file(self, timestamp: datetime) -> Path:
        return self.log_dir / f"{timestamp.astimezone(UTC).strftime('%Y-%m-%d')}.jsonl"

    def log_event(self, event: EventType) -> str:
        """Log an audit event.

        Appends the event to the log file for its date. Events cannot be
        modified or deleted once logged.

        Args:
            event: The event to log.

        Returns:
            The event ID of the logged event.

        Raises:
            OSError: If unable to write to log file.
        """
        base_event = event if isinstance(event, AuditEvent) else event.to_base_event()
        json_line = json.dumps(
            base_event.model_dump(mode="json"), default=str, ensure_ascii=False
        )
        log_file = self._get_log_file(base_event.timestamp)

        try:
            with open(log_file, "a", encoding="utf-8") as f:
                f.write(json_line + "\n")
                f.flush()
                os.fsync(f.fileno())
        except OSError as e:
            logger.error("Failed to write audit event %s: %s", base_event.event_id, e)
            raise

        logger.debug("Logged audit event %s to %s", base_event.event_id, log_file)
        return base_event.event_id

    def record(
        self,
        actor_id: str,
        action: AuditAction,
        entity_type: str,
        entity_id: str,
        old_value: dict[str, Any] | None = None,
        new_value: dict[str, Any] | None = None,
        context: dict[str, Any] | None = None,
    ) -> str:
        """Build and log an audit event for one state change.

        Returns:
            The event ID of the logged event.
        """
        timestamp = self._now()
        event = AuditEvent(
            event_id=generate_event_id(timestamp),
            timestamp=timestamp,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            actor_id=actor_id,
            old_value=old_value,
            new_value=new_value,
            context=context or {},
        )
        return self.log_event(event)

    def _iter_events(
        self,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> Iterator[AuditEvent]:
        for log_file in sorted(self.log_dir.glob("*.jsonl")):
            try:
                file_date = datetime.strptime(log_file.stem, "%Y-%m-%d").date()
            except ValueError:
                continue

            if start_date is not None and file_date < start_date.date():
                continue
            if end_date is not None and file_date > end_date.date():
                continue

            try:
                with open(log_file, encoding="utf-8") as f:
                    for line in f:
                        line = line.strip()
                        if not line:
                            continue
                        try:
                            yield AuditEvent.model_validate(json.loads(line))
                        except (json.JSONDecodeError, ValueError) as e:
                            logger.warning("Skipping malformed event in %s: %s", log_file, e)
            except OSError as e:
                logger.error("Failed to read audit log %s: %s", log_file, e)

    def get_events(
        self,
        entity_id: str,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> list[AuditEvent]:
        """Retrieve events for a specific record, sorted by timestamp."""
        events = [
            e for e in self._iter_events(start_date, end_date) if e.entity_id == entity_id
        ]
        events.sort(key=lambda e: e.timestamp)
        return events

    def get_events_by_action(
        self,
        action: AuditAction,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> list[AuditEvent]:
        """Retrieve events of one action type, sorted by timestamp."""
        events = [e for e in self._iter_events(start_date, end_date) if e.action == action]
        events.sort(key=lambda e: e.timestamp)
        return events

    def get_all_events(
        self,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> list[AuditEvent]:
        """Retrieve all events within a date range, sorted by timestamp."""
        events = list(self._iter_events(start_date, end_date))
        events.sort(key=lambda e: e.timestamp)
        return events
