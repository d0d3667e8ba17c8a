"""Role and ownership checks for workflow actions.

Transition guards in the state machines only look at entity state. Who
may perform an action is decided here and consulted by the workflow
orchestrators before any mutation.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class UserRole(str, Enum):
    """Roles recognised by the permission table."""

    ADMIN = "ADMIN"
    PRINCIPAL_INVESTIGATOR = "PRINCIPAL_INVESTIGATOR"
    STUDY_COORDINATOR = "STUDY_COORDINATOR"
    IRB_REVIEWER = "IRB_REVIEWER"
    SYSTEM = "SYSTEM"


class WorkflowAction(str, Enum):
    """Mutating actions exposed by the orchestrators."""

    SUBMISSION_CREATE = "submission.create"
    SUBMISSION_UPDATE = "submission.update"
    SUBMISSION_SUBMIT = "submission.submit"
    SUBMISSION_ASSIGN_REVIEWERS = "submission.assign_reviewers"
    SUBMISSION_DECIDE = "submission.decide"
    SUBMISSION_WITHDRAW = "submission.withdraw"
    SUBMISSION_RESPOND = "submission.respond_to_clarification"
    REVIEW_UPDATE = "review.update"
    AE_CREATE = "adverse_event.create"
    AE_UPDATE = "adverse_event.update"
    AE_SUBMIT = "adverse_event.submit"
    AE_FOLLOW_UP = "adverse_event.follow_up"
    AE_HOSPITALIZATION = "adverse_event.hospitalization"
    DEVIATION_CREATE = "deviation.create"
    DEVIATION_UPDATE = "deviation.update"
    DEVIATION_CORRECTIVE_ACTION = "deviation.corrective_action"
    DEVIATION_CLOSE = "deviation.close"


class Actor(BaseModel):
    """The authenticated caller of a workflow operation."""

    user_id: str = Field(..., description="Caller's user id")
    roles: frozenset[UserRole] = Field(default_factory=frozenset)

    def has_any_role(self, roles: frozenset[UserRole]) -> bool:
        return bool(self.roles & roles)


SYSTEM_ACTOR = Actor(user_id="system", roles=frozenset({UserRole.SYSTEM}))


class Authorizer(Protocol):
    """Capability check consumed by the workflow orchestrators."""

    def can_perform(self, actor: Actor, action: WorkflowAction, entity: Any = None) -> bool: ...


class AllowAllAuthorizer:
    """Authorizer for callers that enforce permissions upstream."""

    def can_perform(self, actor: Actor, action: WorkflowAction, entity: Any = None) -> bool:
        return True


@dataclass(frozen=True)
class Permission:
    """Who may perform one action.

    Attributes:
        roles: Roles that may always perform the action.
        owner_field: Entity attribute naming the owning user, who may also
            perform the action. None when ownership grants nothing.
    """

    roles: frozenset[UserRole]
    owner_field: str | None = None


_ADMIN = frozenset({UserRole.ADMIN})
_ADMIN_PI = frozenset({UserRole.ADMIN, UserRole.PRINCIPAL_INVESTIGATOR})
_STUDY_TEAM = frozenset(
    {UserRole.ADMIN, UserRole.PRINCIPAL_INVESTIGATOR, UserRole.STUDY_COORDINATOR}
)
_ANY_ROLE = frozenset(UserRole)

DEFAULT_PERMISSIONS: dict[WorkflowAction, Permission] = {
    WorkflowAction.SUBMISSION_CREATE: Permission(_ANY_ROLE),
    WorkflowAction.SUBMISSION_UPDATE: Permission(_ADMIN_PI, owner_field="submitted_by"),
    WorkflowAction.SUBMISSION_SUBMIT: Permission(_ADMIN_PI, owner_field="submitted_by"),
    WorkflowAction.SUBMISSION_ASSIGN_REVIEWERS: Permission(_ADMIN),
    WorkflowAction.SUBMISSION_DECIDE: Permission(_ADMIN),
    WorkflowAction.SUBMISSION_WITHDRAW: Permission(_ADMIN, owner_field="submitted_by"),
    WorkflowAction.SUBMISSION_RESPOND: Permission(_ADMIN_PI, owner_field="submitted_by"),
    WorkflowAction.REVIEW_UPDATE: Permission(_ADMIN, owner_field="reviewer_id"),
    WorkflowAction.AE_CREATE: Permission(_ANY_ROLE),
    WorkflowAction.AE_UPDATE: Permission(_STUDY_TEAM, owner_field="reported_by"),
    WorkflowAction.AE_SUBMIT: Permission(_STUDY_TEAM, owner_field="reported_by"),
    WorkflowAction.AE_FOLLOW_UP: Permission(_STUDY_TEAM, owner_field="reported_by"),
    WorkflowAction.AE_HOSPITALIZATION: Permission(_STUDY_TEAM, owner_field="reported_by"),
    WorkflowAction.DEVIATION_CREATE: Permission(_ANY_ROLE),
    WorkflowAction.DEVIATION_UPDATE: Permission(_STUDY_TEAM, owner_field="reported_by"),
    WorkflowAction.DEVIATION_CORRECTIVE_ACTION: Permission(
        _STUDY_TEAM, owner_field="reported_by"
    ),
    WorkflowAction.DEVIATION_CLOSE: Permission(_ADMIN_PI),
}


@dataclass
class RoleBasedAuthorizer:
    """Role and ownership based authorizer.

    An actor may perform an action when they hold one of the permitted
    roles, or when they own the entity through the permission's owner
    field. The SYSTEM role is always permitted so scheduled jobs can act.
    """

    permissions: dict[WorkflowAction, Permission] = field(
        default_factory=lambda: dict(DEFAULT_PERMISSIONS)
    )

    def can_perform(self, actor: Actor, action: WorkflowAction, entity: Any = None) -> bool:
        if UserRole.SYSTEM in actor.roles:
            return True

        permission = self.permissions.get(action)
        if permission is None:
            logger.warning("No permission rule for action %s; denying", action.value)
            return False

        if actor.has_any_role(permission.roles):
            return True

        if permission.owner_field and entity is not None:
            owner = getattr(entity, permission.owner_field, None)
            if owner is not None and owner == actor.user_id:
                return True

        return False
