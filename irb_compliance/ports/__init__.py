"""Interfaces to the collaborators the workflow engine depends on.

Each port is a ``typing.Protocol`` paired with a simple default adapter
suitable for tests, the CLI and single-process deployments.
"""

from irb_compliance.ports.authorization import (
    SYSTEM_ACTOR,
    Actor,
    AllowAllAuthorizer,
    Authorizer,
    RoleBasedAuthorizer,
    UserRole,
    WorkflowAction,
)
from irb_compliance.ports.clock import Clock, FixedClock, SystemClock
from irb_compliance.ports.documents import (
    ComplianceMetricSource,
    DocumentRegistry,
    InMemoryComplianceMetricSource,
    InMemoryDocumentRegistry,
)
from irb_compliance.ports.notifier import (
    LoggingNotifier,
    LoggingReminderScheduler,
    Notifier,
    ReminderScheduler,
)
from irb_compliance.ports.reviewers import ReviewerPool, StaticReviewerPool
from irb_compliance.ports.storage import InMemoryRepository, JsonFileRepository, Repository

__all__ = [
    "SYSTEM_ACTOR",
    "Actor",
    "AllowAllAuthorizer",
    "Authorizer",
    "Clock",
    "ComplianceMetricSource",
    "DocumentRegistry",
    "FixedClock",
    "InMemoryComplianceMetricSource",
    "InMemoryDocumentRegistry",
    "InMemoryRepository",
    "JsonFileRepository",
    "LoggingNotifier",
    "LoggingReminderScheduler",
    "Notifier",
    "ReminderScheduler",
    "Repository",
    "ReviewerPool",
    "RoleBasedAuthorizer",
    "StaticReviewerPool",
    "SystemClock",
    "UserRole",
    "WorkflowAction",
]
