"""Periodic scans that feed due conditions back into the workflows."""

from irb_compliance.scheduler.scanner import ComplianceScanner, TriggerEvent, TriggerKind
from irb_compliance.scheduler.registry import (
    Cadence,
    JobRegistry,
    ScheduledJob,
    build_default_registry,
)

__all__ = [
    "Cadence",
    "ComplianceScanner",
    "JobRegistry",
    "ScheduledJob",
    "TriggerEvent",
    "TriggerKind",
    "build_default_registry",
]
