"""
tasks/models.py -- Domain dataclasses for tasks.

Pure data containers. Visibility and permission rules live in auth/policy.py;
tenancy-scoped reads and writes live in tasks/repository.py.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass
class Task:
    """A unit of work inside one organization.

    organization_id and created_by_id never change. assignee_id is None when
    the task is unassigned; when set it names a user of the same organization.

    created_by_name / assignee_name are display values filled in by store
    reads that join the users table.

    id is None before the record is written to the database.
    """

    title: str
    organization_id: str
    created_by_id: str
    description: Optional[str] = None
    assignee_id: Optional[str] = None
    completed: bool = False
    id: Optional[str] = None
    created_at: str = ""  # ISO 8601, set by store on insert
    updated_at: str = ""
    created_by_name: str = ""
    assignee_name: Optional[str] = None


# Fields a TaskRepository.update() patch may carry.
UPDATABLE_FIELDS = frozenset({"title", "description", "completed", "assignee_id"})
