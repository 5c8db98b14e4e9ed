"""API routers."""

from quash_service.routers import categories, health, offers, skills, tasks

__all__ = ["categories", "health", "offers", "skills", "tasks"]
