"""FastAPI application factory."""

from __future__ import annotations

from fastapi import FastAPI

from quash_service.config import get_settings
from quash_service.core.exceptions import register_exception_handlers
from quash_service.core.lifespan import lifespan
from quash_service.core.middleware import RequestValidationMiddleware
from quash_service.routers import categories, health, offers, skills, tasks


def create_app() -> FastAPI:
    """
    Create and configure FastAPI application.

    Returns:
        Configured FastAPI instance with all routers registered.
    """
    settings = get_settings()

    app = FastAPI(
        title=f"{settings.service.name} Service",
        version=settings.service.version,
        lifespan=lifespan,
    )

    register_exception_handlers(app)

    app.include_router(health.router, tags=["Operations"])
    app.include_router(tasks.router, tags=["Tasks"])
    app.include_router(offers.router, tags=["Offers"])
    app.include_router(categories.router, tags=["Categories"])
    app.include_router(skills.router, tags=["Skills"])

    app.add_middleware(
        RequestValidationMiddleware,
        max_body_size=settings.request.max_body_size,
    )

    return app
