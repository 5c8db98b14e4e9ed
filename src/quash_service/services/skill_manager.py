"""Skill advertisements: owner-scoped CRUD."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from quash_service.core.exceptions import ServiceError
from quash_service.logging import get_logger
from quash_service.services import normalizer
from quash_service.services.common import SKILL_PREFIX, new_id, now_iso, require_id

if TYPE_CHECKING:
    from quash_service.services.task_store import TaskStore

SKILL_STATUSES = frozenset({"active", "inactive"})


class SkillManager:
    """
    Manages the skills a user advertises as individually offered work.

    A skill is only visible to its owner; another user's skill id resolves
    to SKILL_NOT_FOUND.
    """

    def __init__(
        self, store: TaskStore, max_title_length: int, max_description_length: int
    ) -> None:
        self._store = store
        self._max_title_length = max_title_length
        self._max_description_length = max_description_length
        self._logger = get_logger(__name__)

    @staticmethod
    def _skill_to_response(row: dict[str, Any]) -> dict[str, Any]:
        return {
            "skill_id": row["skill_id"],
            "owner_id": row["owner_id"],
            "title": row["title"],
            "description": row["description"],
            "range": row["range_value"],
            "reward": row["reward"],
            "deadline": row["deadline"],
            "reach": row["reach"],
            "status": row["status"],
            "created_at": row["created_at"],
            "updated_at": row["updated_at"],
        }

    def _load(self, skill_id: str, owner_id: str) -> dict[str, Any]:
        skill = self._store.get_skill(skill_id, owner_id)
        if skill is None:
            raise ServiceError("SKILL_NOT_FOUND", "Skill not found", 404, {})
        return self._skill_to_response(skill)

    async def create_skill(self, owner_id: str, data: dict[str, Any]) -> dict[str, Any]:
        """Create a skill owned by owner_id. Title, range, reward and deadline are required."""
        title = normalizer.normalize_title(
            data.get("title"), required=True, max_length=self._max_title_length
        )
        description = normalizer.normalize_text(
            data.get("description"),
            field="description",
            max_length=self._max_description_length,
        )
        range_value = normalizer.parse_reward(data.get("range"), required=True, field="range")
        reward = normalizer.parse_reward(data.get("reward"), required=True)
        deadline = normalizer.parse_deadline(data.get("deadline"), required=True)
        reach = normalizer.sanitize_reach(data.get("reach")) or normalizer.DEFAULT_REACH

        skill_id = new_id(SKILL_PREFIX)
        created_at = now_iso()
        self._store.insert_skill(
            {
                "skill_id": skill_id,
                "owner_id": owner_id,
                "title": title,
                "description": description,
                "range_value": range_value,
                "reward": reward,
                "deadline": deadline,
                "reach": reach,
                "status": "active",
                "created_at": created_at,
                "updated_at": created_at,
            }
        )
        self._logger.info("Skill created", extra={"skill_id": skill_id, "owner_id": owner_id})
        return self._load(skill_id, owner_id)

    async def list_skills(self, owner_id: str) -> list[dict[str, Any]]:
        return [self._skill_to_response(row) for row in self._store.list_skills(owner_id)]

    async def get_skill(self, owner_id: str, skill_id: str) -> dict[str, Any]:
        require_id(skill_id, SKILL_PREFIX, "INVALID_SKILL_ID", "skill id")
        return self._load(skill_id, owner_id)

    async def update_skill(
        self, owner_id: str, skill_id: str, patch: dict[str, Any]
    ) -> dict[str, Any]:
        """
        Partially update one of the caller's skills.

        Raises:
            ServiceError: INVALID_SKILL_ID, SKILL_NOT_FOUND, INVALID_FIELD, INVALID_PAYLOAD
        """
        require_id(skill_id, SKILL_PREFIX, "INVALID_SKILL_ID", "skill id")
        self._load(skill_id, owner_id)

        updates: dict[str, Any] = {}
        if "title" in patch:
            updates["title"] = normalizer.normalize_title(
                patch["title"], required=True, max_length=self._max_title_length
            )
        if "description" in patch:
            updates["description"] = normalizer.normalize_text(
                patch["description"],
                field="description",
                max_length=self._max_description_length,
            )
        if "range" in patch:
            updates["range_value"] = normalizer.parse_reward(
                patch["range"], required=True, field="range"
            )
        if "reward" in patch:
            updates["reward"] = normalizer.parse_reward(patch["reward"], required=True)
        if "deadline" in patch:
            updates["deadline"] = normalizer.parse_deadline(patch["deadline"], required=True)
        if "reach" in patch:
            reach = normalizer.sanitize_reach(patch["reach"])
            if reach is not None:
                updates["reach"] = reach
        if "status" in patch:
            if patch["status"] not in SKILL_STATUSES:
                raise ServiceError(
                    "INVALID_FIELD", "Invalid skill status", 400, {"field": "status"}
                )
            updates["status"] = patch["status"]

        if len(updates) == 0:
            raise ServiceError(
                "INVALID_PAYLOAD", "No valid fields provided for update", 400, {}
            )

        updates["updated_at"] = now_iso()
        if self._store.update_skill(skill_id, owner_id, updates) == 0:
            raise ServiceError("SKILL_NOT_FOUND", "Skill not found", 404, {})

        self._logger.info("Skill updated", extra={"skill_id": skill_id, "owner_id": owner_id})
        return self._load(skill_id, owner_id)

    async def delete_skill(self, owner_id: str, skill_id: str) -> dict[str, Any]:
        require_id(skill_id, SKILL_PREFIX, "INVALID_SKILL_ID", "skill id")
        if self._store.delete_skill(skill_id, owner_id) == 0:
            raise ServiceError("SKILL_NOT_FOUND", "Skill not found", 404, {})

        self._logger.info("Skill deleted", extra={"skill_id": skill_id, "owner_id": owner_id})
        return {"skill_id": skill_id}
