"""Skill endpoints. Every operation is scoped to the caller's own skills."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from quash_service.core.state import get_app_state
from quash_service.routers.validation import authenticate, parse_json_body
from quash_service.schemas import SkillListResponse, SkillResponse
from quash_service.services.skill_manager import SkillManager

router = APIRouter()


def _skill_manager() -> SkillManager:
    state = get_app_state()
    if state.skill_manager is None:
        msg = "SkillManager not initialized"
        raise RuntimeError(msg)
    return state.skill_manager


@router.post("/skills", status_code=201, response_model=SkillResponse)
async def create_skill(request: Request) -> JSONResponse:
    """Advertise a new skill."""
    caller_id = await authenticate(request)
    data = parse_json_body(await request.body())

    result = await _skill_manager().create_skill(caller_id, data)
    return JSONResponse(status_code=201, content=result)


@router.get("/skills", response_model=SkillListResponse)
async def list_skills(request: Request) -> dict[str, Any]:
    caller_id = await authenticate(request)
    return {"skills": await _skill_manager().list_skills(caller_id)}


@router.get("/skills/{skill_id}", response_model=SkillResponse)
async def get_skill(skill_id: str, request: Request) -> dict[str, Any]:
    caller_id = await authenticate(request)
    return await _skill_manager().get_skill(caller_id, skill_id)


@router.put("/skills/{skill_id}", response_model=SkillResponse)
async def update_skill(skill_id: str, request: Request) -> dict[str, Any]:
    """Partially update one of the caller's skills."""
    caller_id = await authenticate(request)
    data = parse_json_body(await request.body())
    return await _skill_manager().update_skill(caller_id, skill_id, data)


@router.delete("/skills/{skill_id}")
async def delete_skill(skill_id: str, request: Request) -> dict[str, Any]:
    caller_id = await authenticate(request)
    return await _skill_manager().delete_skill(caller_id, skill_id)
