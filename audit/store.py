"""
audit/store.py -- Append-only audit trail backed by the audit_logs table.

record() is best-effort. It runs after the primary write has committed, in
its own transaction, so an audit failure can neither roll back nor block the
action it describes. Database errors are logged at ERROR with a traceback
(operational monitoring picks them up from there) and counted on
failed_writes; they are not raised to the caller.

list_for_organization() always filters by organization id and is capped at
the configured page size, so one request can never scan the whole table.
Who may call it is decided by the authorization engine (ListAuditLog), not
here.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from audit.models import AuditAction, AuditLogEntry
from core.database import audit_logs, now_iso

logger = logging.getLogger("taskhub.audit")

DEFAULT_PAGE_SIZE = 100


class AuditTrail:
    """Recorder and reader for AuditLogEntry rows.

    Usage:
        trail = AuditTrail(engine)
        trail.record(AuditAction.CREATE_TASK, "Task", task.id, actor.id, actor.organization_id)
        entries = trail.list_for_organization(actor.organization_id)
    """

    def __init__(self, engine: Engine, page_size: int = DEFAULT_PAGE_SIZE) -> None:
        self.engine = engine
        self.page_size = page_size
        self.failed_writes = 0

    def record(
        self,
        action: AuditAction,
        entity_type: str,
        entity_id: str,
        actor_id: str,
        organization_id: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Append one entry. Never raises on a database error."""
        try:
            with self.engine.begin() as conn:
                conn.execute(
                    audit_logs.insert().values(
                        action=AuditAction(action).value,
                        entity_type=entity_type,
                        entity_id=entity_id,
                        user_id=actor_id,
                        organization_id=organization_id,
                        metadata=json.dumps(metadata or {}, default=str),
                        created_at=now_iso(),
                    )
                )
        except SQLAlchemyError:
            self.failed_writes += 1
            logger.exception(
                "Audit write failed: action=%s entity=%s/%s actor=%s org=%s",
                action,
                entity_type,
                entity_id,
                actor_id,
                organization_id,
            )

    def list_for_organization(self, organization_id: str, limit: int | None = None) -> list[AuditLogEntry]:
        """Return the organization's entries, newest first, at most page_size of them."""
        cap = self.page_size if limit is None else max(1, min(limit, self.page_size))
        with self.engine.connect() as conn:
            rows = conn.execute(
                audit_logs.select()
                .where(audit_logs.c.organization_id == organization_id)
                .order_by(audit_logs.c.created_at.desc(), audit_logs.c.id.desc())
                .limit(cap)
            ).fetchall()
        return [_row_to_entry(r) for r in rows]


def _row_to_entry(row) -> AuditLogEntry:
    return AuditLogEntry(
        id=row.id,
        action=AuditAction(row.action),
        entity_type=row.entity_type,
        entity_id=row.entity_id,
        user_id=row.user_id,
        organization_id=row.organization_id,
        metadata=json.loads(row.metadata) if row.metadata else {},
        created_at=row.created_at,
    )
