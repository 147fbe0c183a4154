"""
tasks/repository.py -- Tenancy-enforcing facade over TaskStore.

Pattern: Facade. Each public method takes the acting Actor, asks the
AuthorizationEngine for a decision or a visibility filter, and only then
touches TaskStore. Route handlers call this class, never TaskStore directly.

Order of checks for single-task operations:
  1. Fetch by (id, actor.organization_id) -- a foreign task is simply absent.
  2. engine.authorize(...) on the fetched row -- re-checks tenancy and role.
  3. For assignee changes, fetch the new assignee by (id, organization_id)
     and let the engine validate it before anything is written.

Mutations are recorded on the AuditTrail after the store write commits.
"""

from __future__ import annotations

import logging
from typing import Any

from audit.models import AuditAction
from audit.store import AuditTrail
from auth.models import Actor, User
from auth.policy import Action, AuthorizationEngine
from auth.store import UserStore
from core.errors import Forbidden, NotFound
from tasks.models import UPDATABLE_FIELDS, Task
from tasks.store import TaskStore

logger = logging.getLogger("taskhub.tasks")


class TaskRepository:
    """Authorized task operations for one actor at a time.

    Usage:
        repo = TaskRepository(task_store, user_store, engine, audit_trail)
        task = repo.create(actor, title="Ship v1")
        repo.update(actor, task.id, {"assignee_id": carol_id})
        visible = repo.list(actor)
    """

    def __init__(
        self,
        store: TaskStore,
        users: UserStore,
        engine: AuthorizationEngine,
        audit: AuditTrail,
    ) -> None:
        self.store = store
        self.users = users
        self.engine = engine
        self.audit = audit

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list(self, actor: Actor) -> list[Task]:
        """Return every task actor may see, newest first."""
        self.engine.authorize(actor, Action.LIST_TASKS)
        scope = self.engine.task_scope(actor)
        return self.store.list_in_scope(scope)

    def get(self, actor: Actor, task_id: str) -> Task:
        task = self.store.get(task_id, actor.organization_id)
        self.engine.authorize(actor, Action.READ_TASK, task)
        return task

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(
        self,
        actor: Actor,
        title: str,
        description: str | None = None,
        assignee_id: str | None = None,
    ) -> Task:
        """Create a task in actor's organization.

        An unset assignee stays unset; the task is visible to a MEMBER
        creator through created_by_id.
        """
        assignee = self._resolve_assignee(actor, assignee_id)
        self.engine.authorize(actor, Action.CREATE_TASK, assignee=assignee)
        task = self.store.create(
            Task(
                title=title,
                description=description,
                organization_id=actor.organization_id,
                created_by_id=actor.id,
                assignee_id=assignee.id if assignee is not None else None,
            )
        )
        logger.info("Task %s created by %s in org %s", task.id, actor.id, actor.organization_id)
        self.audit.record(
            AuditAction.CREATE_TASK,
            "Task",
            task.id,
            actor.id,
            actor.organization_id,
            {"title": task.title, "assignee_id": task.assignee_id},
        )
        return task

    def update(self, actor: Actor, task_id: str, changes: dict[str, Any]) -> Task:
        """Apply a partial update.

        Only keys present in changes are written. An explicit None clears the
        field (assignee_id=None unassigns; description=None drops the text).
        title and completed cannot be cleared.
        """
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown task fields: {sorted(unknown)!r}")
        for required in ("title", "completed"):
            if required in changes and changes[required] is None:
                raise ValueError(f"Task field {required!r} cannot be cleared.")

        task = self.store.get(task_id, actor.organization_id)
        assignee = None
        if task is not None and changes.get("assignee_id") is not None:
            assignee = self._resolve_assignee(actor, changes["assignee_id"])
        self.engine.authorize(actor, Action.UPDATE_TASK, task, assignee=assignee)

        if not changes:
            # Nothing to write, nothing to audit.
            return task
        self.store.update(task.id, actor.organization_id, **changes)
        updated = self.store.get(task.id, actor.organization_id)
        if updated is None:
            # Deleted between the write and the re-read.
            raise NotFound("Task not found.")
        self.audit.record(
            AuditAction.UPDATE_TASK,
            "Task",
            task.id,
            actor.id,
            actor.organization_id,
            {"changes": changes},
        )
        return updated

    def delete(self, actor: Actor, task_id: str) -> None:
        task = self.store.get(task_id, actor.organization_id)
        self.engine.authorize(actor, Action.DELETE_TASK, task)
        if not self.store.delete(task.id, actor.organization_id):
            raise NotFound("Task not found.")
        logger.info("Task %s deleted by %s", task.id, actor.id)
        self.audit.record(
            AuditAction.DELETE_TASK,
            "Task",
            task.id,
            actor.id,
            actor.organization_id,
            {"title": task.title},
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _resolve_assignee(self, actor: Actor, assignee_id: str | None) -> User | None:
        """Load a prospective assignee from actor's organization.

        A user id from another tenant (or no user at all) is rejected with
        Forbidden rather than NotFound, matching the engine's wording for a
        cross-organization assignee.
        """
        if assignee_id is None:
            return None
        assignee = self.users.get_in_organization(assignee_id, actor.organization_id)
        if assignee is None:
            raise Forbidden("Assignee must be in your organization.")
        return assignee
