"""Task category endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from quash_service.core.state import get_app_state
from quash_service.routers.validation import authenticate, parse_json_body
from quash_service.schemas import CategoryListResponse, CategoryResponse
from quash_service.services.category_manager import CategoryManager

router = APIRouter()


def _category_manager() -> CategoryManager:
    state = get_app_state()
    if state.category_manager is None:
        msg = "CategoryManager not initialized"
        raise RuntimeError(msg)
    return state.category_manager


@router.post("/categories", status_code=201, response_model=CategoryResponse)
async def create_category(request: Request) -> JSONResponse:
    """Create a task category."""
    await authenticate(request)
    data = parse_json_body(await request.body())

    result = await _category_manager().create_category(data)
    return JSONResponse(status_code=201, content=result)


@router.get("/categories", response_model=CategoryListResponse)
async def list_categories(request: Request) -> dict[str, Any]:
    """List all task categories, newest first."""
    await authenticate(request)
    return {"categories": await _category_manager().list_categories()}


@router.get("/categories/{category_id}", response_model=CategoryResponse)
async def get_category(category_id: str, request: Request) -> dict[str, Any]:
    await authenticate(request)
    return await _category_manager().get_category(category_id)


@router.put("/categories/{category_id}", response_model=CategoryResponse)
async def update_category(category_id: str, request: Request) -> dict[str, Any]:
    """Partially update a category."""
    await authenticate(request)
    data = parse_json_body(await request.body())
    return await _category_manager().update_category(category_id, data)


@router.delete("/categories/{category_id}")
async def delete_category(category_id: str, request: Request) -> dict[str, Any]:
    """Delete a category that no task references."""
    await authenticate(request)
    return await _category_manager().delete_category(category_id)
