"""Error taxonomy for workflow operations.

Every error raised by a workflow operation derives from ``ComplianceError``
so callers (an HTTP layer, the CLI) can map them to structured responses.
"""

from typing import Any


class ComplianceError(Exception):
    """Base class for all workflow engine errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.details = details or {}


class ValidationError(ComplianceError):
    """Input is incomplete or malformed; nothing was changed.

    Carries every problem found so the caller can fix them in one pass.
    """

    def __init__(self, issues: list[str], entity_type: str | None = None):
        message = "; ".join(issues) if issues else "Validation failed"
        super().__init__(message, {"issues": list(issues)})
        self.issues = list(issues)
        self.entity_type = entity_type


class PreconditionError(ComplianceError):
    """The entity is not in a state that permits the requested action."""

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        current_status: str,
        action: str,
        allowed: list[str] | None = None,
    ):
        allowed = allowed or []
        message = (
            f"Cannot {action} {entity_type} {entity_id} in status {current_status}"
        )
        if allowed:
            message += f" (allowed from: {', '.join(allowed)})"
        super().__init__(
            message,
            {
                "entity_type": entity_type,
                "entity_id": entity_id,
                "current_status": current_status,
                "action": action,
                "allowed": allowed,
            },
        )
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.current_status = current_status
        self.action = action
        self.allowed = allowed


class NotFoundError(ComplianceError):
    """A referenced entity does not exist."""

    def __init__(self, entity_type: str, entity_id: str):
        super().__init__(
            f"{entity_type} {entity_id} not found",
            {"entity_type": entity_type, "entity_id": entity_id},
        )
        self.entity_type = entity_type
        self.entity_id = entity_id


class AuthorizationError(ComplianceError):
    """The actor lacks the role or ownership the action requires."""

    def __init__(self, actor_id: str, action: str, entity_id: str | None = None):
        super().__init__(
            f"User {actor_id} is not permitted to {action}",
            {"actor_id": actor_id, "action": action, "entity_id": entity_id},
        )
        self.actor_id = actor_id
        self.action = action
        self.entity_id = entity_id


class DependencyFailure(ComplianceError):
    """An external collaborator (audit sink, notifier, storage) failed."""

    def __init__(self, dependency: str, message: str):
        super().__init__(f"{dependency} failure: {message}", {"dependency": dependency})
        self.dependency = dependency
