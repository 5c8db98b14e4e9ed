"""Offer endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from quash_service.core.state import get_app_state
from quash_service.routers.validation import authenticate, parse_json_body
from quash_service.schemas import OfferResponse, TaskOffersResponse
from quash_service.services.task_manager import TaskManager

router = APIRouter()


def _task_manager() -> TaskManager:
    state = get_app_state()
    if state.task_manager is None:
        msg = "TaskManager not initialized"
        raise RuntimeError(msg)
    return state.task_manager


@router.post("/offers", status_code=201, response_model=OfferResponse)
async def create_offer(request: Request) -> JSONResponse:
    """Submit an offer on somebody else's task."""
    caller_id = await authenticate(request)
    data = parse_json_body(await request.body())

    result = await _task_manager().create_offer(caller_id, data)
    return JSONResponse(status_code=201, content=result)


@router.get("/offers/task/{task_id}", response_model=TaskOffersResponse)
async def list_task_offers(task_id: str, request: Request) -> dict[str, Any]:
    """List all offers on a task."""
    await authenticate(request)
    return await _task_manager().list_task_offers(task_id)


# ---------------------------------------------------------------------------
# Offer decisions (no request body)
# ---------------------------------------------------------------------------


@router.put("/offers/{offer_id}/accept", response_model=OfferResponse)
async def accept_offer(offer_id: str, request: Request) -> dict[str, Any]:
    """Accept an offer; the task moves to inProgress and rival offers are rejected."""
    caller_id = await authenticate(request)
    return await _task_manager().accept_offer(caller_id, offer_id)


@router.put("/offers/{offer_id}/reject", response_model=OfferResponse)
async def reject_offer(offer_id: str, request: Request) -> dict[str, Any]:
    """Reject a pending offer on one of the caller's tasks."""
    caller_id = await authenticate(request)
    return await _task_manager().reject_offer(caller_id, offer_id)


@router.put("/offers/{offer_id}/withdraw", response_model=OfferResponse)
async def withdraw_offer(offer_id: str, request: Request) -> dict[str, Any]:
    """Withdraw the caller's own pending offer."""
    caller_id = await authenticate(request)
    return await _task_manager().withdraw_offer(caller_id, offer_id)

