"""Task category catalogue management."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from quash_service.core.exceptions import ServiceError
from quash_service.logging import get_logger
from quash_service.services import normalizer
from quash_service.services.common import CATEGORY_PREFIX, new_id, now_iso, require_id
from quash_service.services.task_store import CategoryInUseError

if TYPE_CHECKING:
    from quash_service.services.task_store import TaskStore


class CategoryManager:
    """Create, list, update and delete the categories tasks are filed under."""

    def __init__(
        self, store: TaskStore, max_title_length: int, max_description_length: int
    ) -> None:
        self._store = store
        self._max_title_length = max_title_length
        self._max_description_length = max_description_length
        self._logger = get_logger(__name__)

    def _load(self, category_id: str) -> dict[str, Any]:
        category = self._store.get_category(category_id)
        if category is None:
            raise ServiceError("CATEGORY_NOT_FOUND", "Task category not found", 404, {})
        return category

    async def create_category(self, data: dict[str, Any]) -> dict[str, Any]:
        """Create a category. Title is required and trimmed."""
        title = normalizer.normalize_title(
            data.get("title"), required=True, max_length=self._max_title_length
        )
        description = normalizer.normalize_text(
            data.get("description"),
            field="description",
            max_length=self._max_description_length,
        )

        category_id = new_id(CATEGORY_PREFIX)
        created_at = now_iso()
        self._store.insert_category(
            {
                "category_id": category_id,
                "title": title,
                "description": description,
                "created_at": created_at,
                "updated_at": created_at,
            }
        )
        self._logger.info("Category created", extra={"category_id": category_id})
        return self._load(category_id)

    async def list_categories(self) -> list[dict[str, Any]]:
        return self._store.list_categories()

    async def get_category(self, category_id: str) -> dict[str, Any]:
        require_id(category_id, CATEGORY_PREFIX, "INVALID_CATEGORY_ID", "category id")
        return self._load(category_id)

    async def update_category(self, category_id: str, patch: dict[str, Any]) -> dict[str, Any]:
        """
        Partially update a category's title and/or description.

        Raises:
            ServiceError: INVALID_CATEGORY_ID, CATEGORY_NOT_FOUND,
                INVALID_FIELD, INVALID_PAYLOAD
        """
        require_id(category_id, CATEGORY_PREFIX, "INVALID_CATEGORY_ID", "category id")
        self._load(category_id)

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
        if len(updates) == 0:
            raise ServiceError(
                "INVALID_PAYLOAD", "No valid fields provided for update", 400, {}
            )

        updates["updated_at"] = now_iso()
        if self._store.update_category(category_id, updates) == 0:
            raise ServiceError("CATEGORY_NOT_FOUND", "Task category not found", 404, {})

        self._logger.info("Category updated", extra={"category_id": category_id})
        return self._load(category_id)

    async def delete_category(self, category_id: str) -> dict[str, Any]:
        """
        Delete a category that no task refers to.

        Raises:
            ServiceError: INVALID_CATEGORY_ID, CATEGORY_NOT_FOUND, CATEGORY_IN_USE
        """
        require_id(category_id, CATEGORY_PREFIX, "INVALID_CATEGORY_ID", "category id")
        try:
            deleted = self._store.delete_category(category_id)
        except CategoryInUseError as exc:
            raise ServiceError(
                "CATEGORY_IN_USE",
                "Category is still referenced by tasks",
                409,
                {},
            ) from exc
        if deleted == 0:
            raise ServiceError("CATEGORY_NOT_FOUND", "Task category not found", 404, {})

        self._logger.info("Category deleted", extra={"category_id": category_id})
        return {"category_id": category_id}
