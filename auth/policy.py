"""
auth/policy.py -- Authorization engine: who may do what to which record.

Pattern: Policy object + pure decision function. AuthorizationEngine holds an
immutable AccessPolicy and nothing else; decide() is a pure function of
(actor, action, target, context) and authorize() is decide() plus raising.
Callers pass the engine into each operation explicitly -- there are no route
decorators or guards carrying role lists.

Decision table (role order OWNER > ADMIN > MEMBER):

  Action             OWNER / ADMIN                      MEMBER
  -----------------  ---------------------------------  --------------------------------------
  CreateTask         any org member as assignee         assignee must be self or unset
  ListTasks          every task in the organization     creator-or-assignee (policy: OWN)
                                                         every org task (policy: ORGANIZATION)
  ReadTask           same organization                  task visible under the policy
  UpdateTask         same organization                  task visible; new assignee self/unset
  DeleteTask         same organization                  creator only (policy: OWN), never (NONE)
  ListUsers          own organization                   own organization
  ReadUser           own organization                   own organization
  AddUser            role <= actor role                 deny
  UpdateUser         target and new role <= actor role  deny
  RemoveUser         target role <= actor role, not self deny
  ListAuditLog       allow                              deny

Tenancy: every decision that has a target re-checks
target.organization_id == actor.organization_id, even though the stores
already query by (id, organization_id). A stale or forged reference must not
cross tenants. An absent target (None) is NotFound; a present but denied one
is Forbidden.

Layer rule: no imports from api/, tasks/store.py, or audit/. tasks/models.py
is imported for the Task shape only.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from auth.models import Actor, Role, User
from core.errors import Forbidden, NotFound

if TYPE_CHECKING:
    from core.config import Settings
    from tasks.models import Task

logger = logging.getLogger("taskhub.auth.policy")


class Action(str, Enum):
    CREATE_TASK = "CreateTask"
    READ_TASK = "ReadTask"
    LIST_TASKS = "ListTasks"
    UPDATE_TASK = "UpdateTask"
    DELETE_TASK = "DeleteTask"
    LIST_USERS = "ListUsers"
    READ_USER = "ReadUser"
    ADD_USER = "AddUser"
    UPDATE_USER = "UpdateUser"
    REMOVE_USER = "RemoveUser"
    LIST_AUDIT_LOG = "ListAuditLog"


_TASK_ACTIONS = {Action.READ_TASK, Action.UPDATE_TASK, Action.DELETE_TASK}


class MemberTaskVisibility(str, Enum):
    """Which tasks a MEMBER can see and edit."""

    OWN = "own"  # tasks the member created or is assigned to
    ORGANIZATION = "organization"  # every task in the member's organization


class MemberTaskDeletion(str, Enum):
    """Which tasks a MEMBER can delete."""

    OWN = "own"  # tasks the member created
    NONE = "none"  # none at all


@dataclass(frozen=True)
class AccessPolicy:
    """Named variant of the MEMBER rules. OWNER/ADMIN rules are fixed."""

    member_task_visibility: MemberTaskVisibility = MemberTaskVisibility.OWN
    member_task_deletion: MemberTaskDeletion = MemberTaskDeletion.OWN

    @classmethod
    def from_settings(cls, settings: Settings) -> AccessPolicy:
        return cls(
            member_task_visibility=MemberTaskVisibility(settings.member_task_visibility),
            member_task_deletion=MemberTaskDeletion(settings.member_task_deletion),
        )


# Members see and delete only their own work. The default.
OWN_TASKS_POLICY = AccessPolicy()

# Members see the whole organization's board but cannot delete anything.
SHARED_TASKS_POLICY = AccessPolicy(
    member_task_visibility=MemberTaskVisibility.ORGANIZATION,
    member_task_deletion=MemberTaskDeletion.NONE,
)


@dataclass(frozen=True)
class TaskScope:
    """Visibility filter for task lists.

    organization_id always applies. involving_user_id, when set, further
    restricts rows to tasks that user created or is assigned to.
    """

    organization_id: str
    involving_user_id: str | None = None

    def matches(self, task: Task) -> bool:
        if task.organization_id != self.organization_id:
            return False
        if self.involving_user_id is None:
            return True
        return self.involving_user_id in (task.created_by_id, task.assignee_id)


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: str = ""
    not_found: bool = False


_ALLOW = Decision(allowed=True)


def _deny(reason: str) -> Decision:
    return Decision(allowed=False, reason=reason)


def _missing(reason: str) -> Decision:
    return Decision(allowed=False, reason=reason, not_found=True)


class AuthorizationEngine:
    """Stateless decision logic over (actor, action, target).

    Usage:
        engine = AuthorizationEngine(AccessPolicy.from_settings(settings))
        scope = engine.task_scope(actor)
        engine.authorize(actor, Action.UPDATE_TASK, task, assignee=new_assignee)
    """

    def __init__(self, policy: AccessPolicy = OWN_TASKS_POLICY) -> None:
        self.policy = policy

    # ------------------------------------------------------------------
    # Visibility
    # ------------------------------------------------------------------

    def task_scope(self, actor: Actor) -> TaskScope:
        """Return the ListTasks visibility filter for actor."""
        if actor.role >= Role.ADMIN or self.policy.member_task_visibility is MemberTaskVisibility.ORGANIZATION:
            return TaskScope(organization_id=actor.organization_id)
        return TaskScope(organization_id=actor.organization_id, involving_user_id=actor.id)

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    def authorize(self, actor: Actor, action: Action, target=None, **context) -> None:
        """Raise NotFound or Forbidden unless decide() allows the request."""
        decision = self.decide(actor, action, target, **context)
        if decision.allowed:
            return
        logger.info(
            "Denied %s for user %s (%s) in org %s: %s",
            action.value,
            actor.id,
            actor.role.value,
            actor.organization_id,
            decision.reason,
        )
        if decision.not_found:
            raise NotFound(decision.reason)
        raise Forbidden(decision.reason)

    def decide(
        self,
        actor: Actor,
        action: Action,
        target=None,
        *,
        assignee: User | None = None,
        requested_role: Role | None = None,
        deactivating: bool = False,
    ) -> Decision:
        """Return the decision for actor performing action on target.

        target:         Task for task actions, User for ReadUser/UpdateUser/
                        RemoveUser, None for CreateTask/ListTasks/ListUsers/
                        AddUser/ListAuditLog.
        assignee:       proposed new assignee for CreateTask/UpdateTask
                        (None = unset or unchanged).
        requested_role: role being granted by AddUser/UpdateUser.
        deactivating:   UpdateUser is switching the target's is_active off.
        """
        if action is Action.LIST_TASKS or action is Action.LIST_USERS:
            return _ALLOW
        if action is Action.CREATE_TASK:
            return self._decide_assignee(actor, assignee)
        if action in _TASK_ACTIONS:
            return self._decide_task(actor, action, target, assignee)
        if action is Action.READ_USER:
            return self._decide_same_tenant(actor, target, "User")
        if action is Action.ADD_USER:
            return self._decide_add_user(actor, requested_role)
        if action is Action.UPDATE_USER:
            return self._decide_update_user(actor, target, requested_role, deactivating)
        if action is Action.REMOVE_USER:
            return self._decide_remove_user(actor, target)
        if action is Action.LIST_AUDIT_LOG:
            if actor.role >= Role.ADMIN:
                return _ALLOW
            return _deny("Only owners and admins can read the audit log.")
        return _deny(f"Unknown action {action!r}.")

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    def _decide_task(self, actor: Actor, action: Action, task: Task | None, assignee: User | None) -> Decision:
        if task is None:
            return _missing("Task not found.")
        if task.organization_id != actor.organization_id:
            return _deny("Access denied.")
        if actor.role >= Role.ADMIN:
            return self._decide_assignee(actor, assignee) if action is Action.UPDATE_TASK else _ALLOW

        if action is Action.DELETE_TASK:
            if self.policy.member_task_deletion is MemberTaskDeletion.OWN and task.created_by_id == actor.id:
                return _ALLOW
            return _deny("Members can only delete tasks they created.")

        if not self.task_scope(actor).matches(task):
            return _deny("Access denied.")
        if action is Action.UPDATE_TASK:
            return self._decide_assignee(actor, assignee)
        return _ALLOW

    def _decide_assignee(self, actor: Actor, assignee: User | None) -> Decision:
        if assignee is None:
            return _ALLOW
        if assignee.organization_id != actor.organization_id:
            return _deny("Assignee must be in your organization.")
        if actor.role < Role.ADMIN and assignee.id != actor.id:
            return _deny("Members can only assign tasks to themselves.")
        return _ALLOW

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def _decide_same_tenant(self, actor: Actor, target: User | None, noun: str) -> Decision:
        if target is None:
            return _missing(f"{noun} not found.")
        if target.organization_id != actor.organization_id:
            return _deny("Access denied.")
        return _ALLOW

    def _decide_add_user(self, actor: Actor, requested_role: Role | None) -> Decision:
        if actor.role < Role.ADMIN:
            return _deny("Only owners and admins can add users.")
        role = requested_role or Role.MEMBER
        if role > actor.role:
            return _deny("Only owners can create other owners.")
        return _ALLOW

    def _decide_update_user(
        self,
        actor: Actor,
        target: User | None,
        requested_role: Role | None,
        deactivating: bool,
    ) -> Decision:
        decision = self._decide_same_tenant(actor, target, "User")
        if not decision.allowed:
            return decision
        if actor.role < Role.ADMIN:
            return _deny("Only owners and admins can modify users.")
        if target.role > actor.role:
            return _deny("Admins cannot modify owners.")
        if requested_role is not None and requested_role > actor.role:
            return _deny("Only owners can grant the owner role.")
        if deactivating and target.id == actor.id:
            return _deny("You cannot deactivate your own account.")
        return _ALLOW

    def _decide_remove_user(self, actor: Actor, target: User | None) -> Decision:
        decision = self._decide_same_tenant(actor, target, "User")
        if not decision.allowed:
            return decision
        if actor.role < Role.ADMIN:
            return _deny("Only owners and admins can remove users.")
        if target.id == actor.id:
            return _deny("You cannot remove your own account.")
        if target.role > actor.role:
            return _deny("Admins cannot remove owners.")
        return _ALLOW
