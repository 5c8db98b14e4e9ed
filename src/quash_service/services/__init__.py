"""Service layer components."""

from quash_service.services.category_manager import CategoryManager
from quash_service.services.skill_manager import SkillManager
from quash_service.services.task_manager import TaskManager
from quash_service.services.task_store import TaskStore
from quash_service.services.token_validator import TokenValidator

__all__ = [
    "CategoryManager",
    "SkillManager",
    "TaskManager",
    "TaskStore",
    "TokenValidator",
]
