"""
api/routes/v1/users.py -- Organization membership endpoints.

Routes:
  GET    /api/v1/users          -- members of the caller's organization
  POST   /api/v1/users          -- add a user; returns the temporary password once
  GET    /api/v1/users/{id}     -- one member
  PATCH  /api/v1/users/{id}     -- change role / active flag
  DELETE /api/v1/users/{id}     -- remove a member (cascades to their tasks)

Who may add, modify or remove whom is decided by the AuthorizationEngine
inside IdentityService. The response of POST /users is the only place the
temporary password ever appears; it is marked no-store.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from fastapi.responses import JSONResponse

from api.dependencies import get_actor
from api.models import AddUserRequest, AddUserResponse, UserPatch, UserResponse
from auth.identity import IdentityService
from auth.models import Actor

router = APIRouter()


def _identity(request: Request) -> IdentityService:
    return request.app.state.identity


@router.get("/users", response_model=list[UserResponse])
def list_users(request: Request, actor: Actor = Depends(get_actor)) -> list[UserResponse]:
    return [UserResponse.from_domain(u) for u in _identity(request).list_users(actor)]


@router.post("/users", response_model=AddUserResponse, status_code=201)
def add_user(request: Request, body: AddUserRequest, actor: Actor = Depends(get_actor)) -> JSONResponse:
    user, temp_password = _identity(request).add_user_to_organization(
        email=body.email,
        first_name=body.first_name,
        last_name=body.last_name,
        role=body.role,
        actor=actor,
    )
    payload = AddUserResponse(user=UserResponse.from_domain(user), temp_password=temp_password)
    resp = JSONResponse(status_code=201, content=payload.model_dump(mode="json"))
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.get("/users/{user_id}", response_model=UserResponse)
def get_user(request: Request, user_id: str, actor: Actor = Depends(get_actor)) -> UserResponse:
    return UserResponse.from_domain(_identity(request).get_user(actor, user_id))


@router.patch("/users/{user_id}", response_model=UserResponse)
def update_user(
    request: Request,
    user_id: str,
    body: UserPatch,
    actor: Actor = Depends(get_actor),
) -> UserResponse:
    if body.role is None and body.is_active is None:
        raise HTTPException(
            status_code=400,
            detail={"code": "no_changes", "message": "No fields to update."},
        )
    user = _identity(request).update_user(actor, user_id, role=body.role, is_active=body.is_active)
    return UserResponse.from_domain(user)


@router.delete("/users/{user_id}", status_code=204)
def remove_user(request: Request, user_id: str, actor: Actor = Depends(get_actor)) -> Response:
    _identity(request).remove_user(actor, user_id)
    return Response(status_code=204)
