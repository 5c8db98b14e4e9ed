"""Pydantic response models for the API."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict


class HealthResponse(BaseModel):
    """Response model for GET /health."""

    model_config = ConfigDict(extra="forbid")
    status: Literal["ok"]
    uptime_seconds: float
    started_at: str
    total_tasks: int
    tasks_by_status: dict[str, int]
    total_offers: int


class ErrorResponse(BaseModel):
    """Standard error response model."""

    model_config = ConfigDict(extra="forbid")
    error: str
    message: str
    details: dict[str, object]


class CategoryResponse(BaseModel):
    """Task category."""

    model_config = ConfigDict(extra="forbid")
    category_id: str
    title: str
    description: str | None
    created_at: str
    updated_at: str


class RangeResponse(BaseModel):
    """Budget range of a task."""

    model_config = ConfigDict(extra="forbid")
    min: float
    max: float


class OfferResponse(BaseModel):
    """A quasher's offer on a task."""

    model_config = ConfigDict(extra="forbid")
    offer_id: str
    task_id: str
    user_id: str
    amount: float
    deadline: str
    message: str | None
    status: Literal["pending", "accepted", "rejected", "withdrawn"]
    created_at: str
    updated_at: str


class TaskResponse(BaseModel):
    """Full task detail with its category and offers joined in."""

    model_config = ConfigDict(extra="forbid")
    task_id: str
    owner_id: str
    title: str
    description: str | None
    category_id: str
    category: CategoryResponse | None
    range: RangeResponse
    reward: float
    deadline: str
    reach: Literal["local", "regional", "global"]
    status: str
    attachments: list[str]
    offers: list[OfferResponse]
    created_at: str
    updated_at: str


class TaskListResponse(BaseModel):
    """Response model for task list endpoints."""

    model_config = ConfigDict(extra="forbid")
    tasks: list[TaskResponse]


class TaskOffersResponse(BaseModel):
    """Response model for GET /offers/task/{task_id}."""

    model_config = ConfigDict(extra="forbid")
    task_id: str
    offers: list[OfferResponse]


class CategoryListResponse(BaseModel):
    """Response model for GET /categories."""

    model_config = ConfigDict(extra="forbid")
    categories: list[CategoryResponse]


class SkillResponse(BaseModel):
    """A skill advertised by its owner."""

    model_config = ConfigDict(extra="forbid")
    skill_id: str
    owner_id: str
    title: str
    description: str | None
    range: float
    reward: float
    deadline: str
    reach: Literal["local", "regional", "global"]
    status: Literal["active", "inactive"]
    created_at: str
    updated_at: str


class SkillListResponse(BaseModel):
    """Response model for GET /skills."""

    model_config = ConfigDict(extra="forbid")
    skills: list[SkillResponse]
