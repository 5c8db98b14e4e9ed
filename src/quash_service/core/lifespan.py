"""Application lifecycle management."""

from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path
from typing import TYPE_CHECKING

from quash_service.clients.identity_client import IdentityClient
from quash_service.config import get_settings
from quash_service.core.state import init_app_state
from quash_service.logging import get_logger, setup_logging
from quash_service.services.category_manager import CategoryManager
from quash_service.services.skill_manager import SkillManager
from quash_service.services.task_manager import TaskManager
from quash_service.services.task_store import TaskStore
from quash_service.services.token_validator import TokenValidator

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from fastapi import FastAPI


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    """Manage application lifecycle."""
    # === STARTUP ===
    settings = get_settings()

    setup_logging(settings.logging.level, settings.service.name, settings.logging.directory)
    logger = get_logger(__name__)

    state = init_app_state()

    db_path = settings.database.path
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    # Initialize IdentityClient (HTTP client for bearer token verification)
    identity_client = IdentityClient(
        base_url=settings.identity.base_url,
        verify_token_path=settings.identity.verify_token_path,
        timeout_seconds=settings.identity.timeout_seconds,
    )
    state.identity_client = identity_client
    state.token_validator = TokenValidator(identity_client=identity_client)

    # One store (one SQLite connection) shared by all managers
    store = TaskStore(db_path=db_path)
    limits = settings.limits
    task_manager = TaskManager(
        store=store,
        max_title_length=limits.max_title_length,
        max_description_length=limits.max_description_length,
        max_message_length=limits.max_message_length,
        max_attachments=limits.max_attachments,
    )
    state.task_manager = task_manager
    state.category_manager = CategoryManager(
        store=store,
        max_title_length=limits.max_title_length,
        max_description_length=limits.max_description_length,
    )
    state.skill_manager = SkillManager(
        store=store,
        max_title_length=limits.max_title_length,
        max_description_length=limits.max_description_length,
    )

    logger.info(
        "Service starting",
        extra={
            "version": settings.service.version,
            "port": settings.server.port,
            "db_path": db_path,
            "identity_base_url": settings.identity.base_url,
        },
    )

    yield  # Application runs here

    # === SHUTDOWN ===
    logger.info("Service shutting down", extra={"uptime_seconds": state.uptime_seconds})

    # Closes the shared SQLite connection
    task_manager.close()

    await identity_client.close()
