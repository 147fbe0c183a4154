"""
api/dependencies.py -- FastAPI Depends() helpers for the transport layer.

The only job here is turning an inbound request into an Actor (or a 401).
There are no role checks: every route passes the Actor into an
IdentityService / TaskRepository / AuditTrail call, and those ask the
AuthorizationEngine. Adding a role list to a dependency here would split the
rules across two places.

Only the Authorization: Bearer header is accepted. Access tokens are
short-lived and sent per request; refresh tokens are only ever accepted by
POST /auth/refresh.
"""

from __future__ import annotations

from fastapi import Request

from auth.models import Actor, Claims
from auth.tokens import TokenService
from core.errors import Unauthorized


def get_claims(request: Request) -> Claims:
    """Validate the bearer token and return its claims. Raises Unauthorized."""
    auth_header = request.headers.get("Authorization", "")
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise Unauthorized("Authentication required.")
    tokens: TokenService = request.app.state.token_service
    return tokens.validate_access(token.strip())


def get_actor(request: Request) -> Actor:
    """Require authentication and return the acting identity.

    Use as a FastAPI dependency:
        @router.get("/tasks")
        def list_tasks(actor: Actor = Depends(get_actor)): ...
    """
    return Actor.from_claims(get_claims(request))
