"""
audit/models.py -- Domain dataclass for audit entries.

Records are never updated or deleted by the application -- only inserted.
Organization deletion is the one path that removes them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class AuditAction(str, Enum):
    REGISTER_ORGANIZATION = "REGISTER_ORGANIZATION"
    ADD_USER = "ADD_USER"
    UPDATE_USER = "UPDATE_USER"
    REMOVE_USER = "REMOVE_USER"
    CREATE_TASK = "CREATE_TASK"
    UPDATE_TASK = "UPDATE_TASK"
    DELETE_TASK = "DELETE_TASK"


@dataclass(frozen=True)
class AuditLogEntry:
    """Immutable record of one privileged or mutating action.

    user_id is the acting user. entity_type is "Organization", "User" or "Task".
    id is None before the record is written to the database.
    """

    action: AuditAction
    entity_type: str
    entity_id: str
    user_id: str
    organization_id: str
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: str = ""  # ISO 8601, set by store on insert
    id: int | None = None
