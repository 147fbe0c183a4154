"""
api/routes/v1/auth.py -- Registration, login, token refresh and logout.

Routes:
  POST /api/v1/auth/register   -- create organization + OWNER; returns tokens (public)
  POST /api/v1/auth/login      -- email/password login; returns tokens (public, rate-limited)
  POST /api/v1/auth/refresh    -- exchange refresh token for a new pair (public)
  POST /api/v1/auth/logout     -- revoke the caller's refresh token (requires auth)
  GET  /api/v1/auth/me         -- current user (requires auth)

Security:
  [H2] POST /login is rate-limited per client IP (LOGIN_RATE_LIMIT).
  [C1] IdentityService.verify_credentials() equalizes timing -- never inline
       get_by_email() + verify_password() here.
  [M5] Cache-Control: no-store on every response that carries tokens.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse

from api.dependencies import get_actor
from api.limiter import limiter, login_rate_limit
from api.models import AuthResponse, LoginRequest, RefreshRequest, RegisterRequest, UserResponse
from auth.identity import IdentityService
from auth.models import Actor
from auth.tokens import TokenService
from core.errors import NotFound

router = APIRouter()


def _token_response(auth: AuthResponse, status_code: int = 200) -> JSONResponse:
    resp = JSONResponse(status_code=status_code, content=auth.model_dump(mode="json"))
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/register", response_model=AuthResponse, status_code=201)
def register(request: Request, body: RegisterRequest) -> JSONResponse:
    """Create a new organization with the caller as its OWNER."""
    identity: IdentityService = request.app.state.identity
    tokens: TokenService = request.app.state.token_service
    user, _organization = identity.register_organization_owner(
        email=body.email,
        password=body.password,
        first_name=body.first_name,
        last_name=body.last_name,
        organization_name=body.organization_name,
    )
    pair = tokens.start_session(user)
    expires_in = request.app.state.settings.access_token_expire_seconds
    return _token_response(AuthResponse.build(pair, user, expires_in), status_code=201)


@limiter.limit(login_rate_limit)  # [H2] registered by name; SlowAPIMiddleware enforces it
@router.post("/auth/login", response_model=AuthResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password.

    Unknown email, wrong password and deactivated account all produce the
    same 401 body.
    """
    identity: IdentityService = request.app.state.identity
    tokens: TokenService = request.app.state.token_service
    user = identity.verify_credentials(body.email, body.password)
    pair = tokens.start_session(user)
    expires_in = request.app.state.settings.access_token_expire_seconds
    return _token_response(AuthResponse.build(pair, user, expires_in))


@router.post("/auth/refresh", response_model=AuthResponse)
def refresh(request: Request, body: RefreshRequest) -> JSONResponse:
    """Rotate a refresh token. Role changes since the last refresh take effect here."""
    tokens: TokenService = request.app.state.token_service
    user, pair = tokens.refresh_session(body.refresh_token)
    expires_in = request.app.state.settings.access_token_expire_seconds
    return _token_response(AuthResponse.build(pair, user, expires_in))


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/logout", status_code=204)
def logout(request: Request, actor: Actor = Depends(get_actor)) -> Response:
    """End the caller's session. Outstanding access tokens expire on their own."""
    tokens: TokenService = request.app.state.token_service
    tokens.end_session(actor.id)
    return Response(status_code=204)


@router.get("/auth/me", response_model=UserResponse)
def me(request: Request, actor: Actor = Depends(get_actor)) -> UserResponse:
    """Return the current user's record (fresh from the store, not the token)."""
    identity: IdentityService = request.app.state.identity
    user = identity.store.get_in_organization(actor.id, actor.organization_id)
    if user is None:
        raise NotFound("User not found.")
    return UserResponse.from_domain(user)
