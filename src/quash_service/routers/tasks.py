"""Task endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from quash_service.core.exceptions import ServiceError
from quash_service.core.state import get_app_state
from quash_service.routers.validation import authenticate, parse_json_body
from quash_service.schemas import TaskListResponse, TaskResponse
from quash_service.services.task_manager import TaskManager

router = APIRouter()


def _task_manager() -> TaskManager:
    state = get_app_state()
    if state.task_manager is None:
        msg = "TaskManager not initialized"
        raise RuntimeError(msg)
    return state.task_manager


# ---------------------------------------------------------------------------
# POST /tasks: create task
# ---------------------------------------------------------------------------


@router.post("/tasks", status_code=201, response_model=TaskResponse)
async def create_task(request: Request) -> JSONResponse:
    """Post a new task owned by the caller."""
    caller_id = await authenticate(request)
    data = parse_json_body(await request.body())

    result = await _task_manager().create_task(caller_id, data)
    return JSONResponse(status_code=201, content=result)


# ---------------------------------------------------------------------------
# Fixed paths (MUST be before /tasks/{task_id})
# ---------------------------------------------------------------------------


@router.get("/tasks/all", response_model=TaskListResponse)
async def list_all_tasks(request: Request) -> dict[str, Any]:
    """List every task on the board."""
    await authenticate(request)
    return {"tasks": await _task_manager().list_all_tasks()}


@router.get("/tasks/quashed", response_model=TaskListResponse)
async def list_quashed_tasks(request: Request) -> dict[str, Any]:
    """List tasks the caller was hired for."""
    caller_id = await authenticate(request)
    return {"tasks": await _task_manager().list_quashed_tasks(caller_id)}


@router.get("/tasks", response_model=TaskListResponse)
async def list_user_tasks(request: Request) -> dict[str, Any]:
    """List the caller's own tasks."""
    caller_id = await authenticate(request)
    return {"tasks": await _task_manager().list_user_tasks(caller_id)}


@router.api_route("/tasks/all", methods=["POST", "PUT", "PATCH", "DELETE"])
async def tasks_all_method_not_allowed(request: Request) -> None:
    """Reject wrong methods on /tasks/all."""
    _ = request
    raise ServiceError("METHOD_NOT_ALLOWED", "Method not allowed", 405, {})


@router.api_route("/tasks/quashed", methods=["POST", "PUT", "PATCH", "DELETE"])
async def tasks_quashed_method_not_allowed(request: Request) -> None:
    """Reject wrong methods on /tasks/quashed."""
    _ = request
    raise ServiceError("METHOD_NOT_ALLOWED", "Method not allowed", 405, {})


# ---------------------------------------------------------------------------
# /tasks/{task_id}
# ---------------------------------------------------------------------------


@router.get("/tasks/{task_id}", response_model=TaskResponse)
async def get_task(task_id: str, request: Request) -> dict[str, Any]:
    """Get a task with its category and offers."""
    await authenticate(request)
    return await _task_manager().get_task(task_id)


@router.put("/tasks/{task_id}", response_model=TaskResponse)
async def update_task(task_id: str, request: Request) -> dict[str, Any]:
    """Partially update a task as its owner or hired quasher."""
    caller_id = await authenticate(request)
    data = parse_json_body(await request.body())
    return await _task_manager().update_task(caller_id, task_id, data)


@router.delete("/tasks/{task_id}")
async def delete_task(task_id: str, request: Request) -> dict[str, Any]:
    """Delete one of the caller's tasks together with its offers."""
    caller_id = await authenticate(request)
    return await _task_manager().delete_task(caller_id, task_id)

