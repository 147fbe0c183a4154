"""
tasks/store.py -- SQLAlchemy Core persistence layer for tasks.

Pattern: Repository + Data Mapper (same as auth/store.py). TaskStore exposes
only the semantic operations the facade needs; it never decides who may see
what. tasks/repository.py hands it a TaskScope from the authorization engine.

Every read and write takes the organization id. There is no "get by id
alone" method, so a task id from another tenant simply does not match.

Security: all queries use bound parameters. No f-strings in SQL.
"""

from __future__ import annotations

import uuid

from sqlalchemy import or_, select
from sqlalchemy.engine import Engine

from auth.policy import TaskScope
from core.database import now_iso, tasks, users
from tasks.models import Task

_creator = users.alias("creator")
_assignee = users.alias("assignee")

_task_with_names = select(
    tasks,
    _creator.c.first_name.label("creator_first_name"),
    _creator.c.last_name.label("creator_last_name"),
    _assignee.c.first_name.label("assignee_first_name"),
    _assignee.c.last_name.label("assignee_last_name"),
).select_from(
    tasks.join(_creator, tasks.c.created_by_id == _creator.c.id).outerjoin(
        _assignee, tasks.c.assignee_id == _assignee.c.id
    )
)


class TaskStore:
    """Repository for Task entities, always addressed within an organization.

    Usage:
        store = TaskStore(engine)
        task = store.create(Task(title="Ship v1", organization_id=org_id, created_by_id=user_id))
        rows = store.list_in_scope(TaskScope(organization_id=org_id))
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def create(self, task: Task) -> Task:
        """Insert a task and return it as stored."""
        now = now_iso()
        task_id = str(uuid.uuid4())
        with self.engine.begin() as conn:
            conn.execute(
                tasks.insert().values(
                    id=task_id,
                    organization_id=task.organization_id,
                    created_by_id=task.created_by_id,
                    assignee_id=task.assignee_id,
                    title=task.title,
                    description=task.description,
                    completed=task.completed,
                    created_at=now,
                    updated_at=now,
                )
            )
        return self.get(task_id, task.organization_id)

    def get(self, task_id: str, org_id: str) -> Task | None:
        """Fetch by (id, organization_id). Returns None if absent or in another tenant."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _task_with_names.where((tasks.c.id == task_id) & (tasks.c.organization_id == org_id))
            ).fetchone()
        return _row_to_task(row) if row is not None else None

    def list_in_scope(self, scope: TaskScope) -> list[Task]:
        """Return tasks inside scope, newest first.

        The ownership predicate is part of the SQL, so out-of-scope rows are
        never loaded.
        """
        stmt = _task_with_names.where(tasks.c.organization_id == scope.organization_id)
        if scope.involving_user_id is not None:
            stmt = stmt.where(
                or_(
                    tasks.c.created_by_id == scope.involving_user_id,
                    tasks.c.assignee_id == scope.involving_user_id,
                )
            )
        stmt = stmt.order_by(tasks.c.created_at.desc(), tasks.c.id)
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return [_row_to_task(r) for r in rows]

    def update(self, task_id: str, org_id: str, **fields) -> bool:
        """Apply a partial update. Returns True if a row matched (id, org_id)."""
        fields["updated_at"] = now_iso()
        with self.engine.begin() as conn:
            result = conn.execute(
                tasks.update().where((tasks.c.id == task_id) & (tasks.c.organization_id == org_id)).values(**fields)
            )
        return result.rowcount > 0

    def delete(self, task_id: str, org_id: str) -> bool:
        with self.engine.begin() as conn:
            result = conn.execute(
                tasks.delete().where((tasks.c.id == task_id) & (tasks.c.organization_id == org_id))
            )
        return result.rowcount > 0


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern -- DB row -> domain dataclass)
# ---------------------------------------------------------------------------


def _row_to_task(row) -> Task:
    assignee_name = None
    if row.assignee_id is not None and row.assignee_first_name is not None:
        assignee_name = f"{row.assignee_first_name} {row.assignee_last_name}"
    return Task(
        id=row.id,
        title=row.title,
        description=row.description,
        completed=bool(row.completed),
        organization_id=row.organization_id,
        created_by_id=row.created_by_id,
        assignee_id=row.assignee_id,
        created_at=row.created_at,
        updated_at=row.updated_at,
        created_by_name=f"{row.creator_first_name} {row.creator_last_name}",
        assignee_name=assignee_name,
    )
