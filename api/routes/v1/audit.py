"""
api/routes/v1/audit.py -- Audit log endpoint.

Routes:
  GET /api/v1/audit-log  -- newest entries of the caller's organization (OWNER/ADMIN)
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request

from api.dependencies import get_actor
from api.models import AuditLogResponse
from audit.store import AuditTrail
from auth.models import Actor
from auth.policy import Action, AuthorizationEngine

router = APIRouter()


@router.get("/audit-log", response_model=list[AuditLogResponse])
def list_audit_log(
    request: Request,
    limit: int | None = Query(default=None, ge=1),
    actor: Actor = Depends(get_actor),
) -> list[AuditLogResponse]:
    engine: AuthorizationEngine = request.app.state.authorization
    trail: AuditTrail = request.app.state.audit
    engine.authorize(actor, Action.LIST_AUDIT_LOG)
    entries = trail.list_for_organization(actor.organization_id, limit=limit)
    return [AuditLogResponse.from_domain(e) for e in entries]
