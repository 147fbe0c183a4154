"""
api/routes/v1/tasks.py -- Task endpoints.

Routes:
  GET    /api/v1/tasks          -- tasks visible to the caller
  POST   /api/v1/tasks          -- create a task in the caller's organization
  GET    /api/v1/tasks/{id}     -- one task
  PATCH  /api/v1/tasks/{id}     -- partial update (absent = untouched, null = cleared)
  DELETE /api/v1/tasks/{id}     -- delete

Every route is a thin call into TaskRepository with the caller's Actor.
Visibility, tenancy and role rules are all decided there, by the engine.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, Response

from api.dependencies import get_actor
from api.models import TaskCreate, TaskPatch, TaskResponse
from auth.models import Actor
from tasks.repository import TaskRepository

router = APIRouter()


def _repo(request: Request) -> TaskRepository:
    return request.app.state.task_repository


@router.get("/tasks", response_model=list[TaskResponse])
def list_tasks(request: Request, actor: Actor = Depends(get_actor)) -> list[TaskResponse]:
    return [TaskResponse.from_domain(t) for t in _repo(request).list(actor)]


@router.post("/tasks", response_model=TaskResponse, status_code=201)
def create_task(request: Request, body: TaskCreate, actor: Actor = Depends(get_actor)) -> TaskResponse:
    task = _repo(request).create(
        actor,
        title=body.title,
        description=body.description,
        assignee_id=body.assignee_id,
    )
    return TaskResponse.from_domain(task)


@router.get("/tasks/{task_id}", response_model=TaskResponse)
def get_task(request: Request, task_id: str, actor: Actor = Depends(get_actor)) -> TaskResponse:
    return TaskResponse.from_domain(_repo(request).get(actor, task_id))


@router.patch("/tasks/{task_id}", response_model=TaskResponse)
def update_task(
    request: Request,
    task_id: str,
    body: TaskPatch,
    actor: Actor = Depends(get_actor),
) -> TaskResponse:
    changes = body.model_dump(exclude_unset=True)
    try:
        task = _repo(request).update(actor, task_id, changes)
    except ValueError as exc:
        raise HTTPException(
            status_code=422,
            detail={"code": "validation_error", "message": str(exc)},
        ) from exc
    return TaskResponse.from_domain(task)


@router.delete("/tasks/{task_id}", status_code=204)
def delete_task(request: Request, task_id: str, actor: Actor = Depends(get_actor)) -> Response:
    _repo(request).delete(actor, task_id)
    return Response(status_code=204)
