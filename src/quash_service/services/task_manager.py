"""Task and offer lifecycle management: all marketplace business logic lives here."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from quash_service.core.exceptions import ServiceError
from quash_service.logging import get_logger
from quash_service.services import access_guard, normalizer
from quash_service.services.common import (
    CATEGORY_PREFIX,
    OFFER_PREFIX,
    TASK_PREFIX,
    new_id,
    now_iso,
    require_id,
)
from quash_service.services.task_store import (
    DuplicateOfferError,
    RecordNotFoundError,
    StaleStatusError,
)

if TYPE_CHECKING:
    from quash_service.services.task_store import TaskStore

# Tasks a hired quasher has worked on or is working on
_QUASHED_STATUSES = ("inProgress", "completed")


class TaskManager:
    """
    Manages the task/offer lifecycle: posting tasks, bidding, accepting,
    rejecting and withdrawing offers, and owner or hired-quasher updates.

    Every method receives the caller's user id already resolved by the
    Identity service. Persistence is delegated to TaskStore; any write whose
    precondition depends on a status is issued as a status-guarded write so
    that concurrent requests cannot both win.
    """

    def __init__(
        self,
        store: TaskStore,
        max_title_length: int,
        max_description_length: int,
        max_message_length: int,
        max_attachments: int,
    ) -> None:
        self._store = store
        self._max_title_length = max_title_length
        self._max_description_length = max_description_length
        self._max_message_length = max_message_length
        self._max_attachments = max_attachments
        self._logger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Private helper methods
    # ------------------------------------------------------------------

    @staticmethod
    def _offer_to_response(row: dict[str, Any]) -> dict[str, Any]:
        """Convert an offer row to a response dict."""
        return {
            "offer_id": row["offer_id"],
            "task_id": row["task_id"],
            "user_id": row["user_id"],
            "amount": row["amount"],
            "deadline": row["deadline"],
            "message": row["message"],
            "status": row["status"],
            "created_at": row["created_at"],
            "updated_at": row["updated_at"],
        }

    def _task_to_response(self, row: dict[str, Any]) -> dict[str, Any]:
        """Convert a task row with relations to a full task response dict."""
        return {
            "task_id": row["task_id"],
            "owner_id": row["owner_id"],
            "title": row["title"],
            "description": row["description"],
            "category_id": row["category_id"],
            "category": row["category"],
            "range": {"min": row["range_min"], "max": row["range_max"]},
            "reward": row["reward"],
            "deadline": row["deadline"],
            "reach": row["reach"],
            "status": row["status"],
            "attachments": list(row["attachments"]),
            "offers": [self._offer_to_response(offer) for offer in row["offers"]],
            "created_at": row["created_at"],
            "updated_at": row["updated_at"],
        }

    def _tasks_to_response(self, rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
        return [self._task_to_response(row) for row in self._store.attach_relations(rows)]

    def _load_task_response(self, task_id: str) -> dict[str, Any]:
        task = self._store.load_task_with_relations(task_id)
        if task is None:
            raise ServiceError("TASK_NOT_FOUND", "Task not found", 404, {})
        return self._task_to_response(task)

    @staticmethod
    def _parse_category_ref(value: object) -> str:
        """Check a category reference is present and well formed."""
        if value is None or value == "":
            raise ServiceError(
                "INVALID_FIELD", "Category is required", 400, {"field": "category_id"}
            )
        return require_id(value, CATEGORY_PREFIX, "INVALID_CATEGORY_ID", "category id")

    def _require_category(self, category_id: str) -> str:
        """Make sure a well-formed category reference resolves."""
        if self._store.get_category(category_id) is None:
            raise ServiceError("CATEGORY_NOT_FOUND", "Task category not found", 404, {})
        return category_id

    def _load_offer_and_task(self, offer_id: str) -> tuple[dict[str, Any], dict[str, Any]]:
        require_id(offer_id, OFFER_PREFIX, "INVALID_OFFER_ID", "offer id")
        offer = self._store.get_offer(offer_id)
        if offer is None:
            raise ServiceError("OFFER_NOT_FOUND", "Offer not found", 404, {})
        task = self._store.get_task(offer["task_id"])
        if task is None:
            raise ServiceError("TASK_NOT_FOUND", "Task not found", 404, {})
        return offer, task

    def _refetch_offer(self, offer_id: str) -> dict[str, Any]:
        offer = self._store.get_offer(offer_id)
        if offer is None:
            msg = f"Offer {offer_id} not found after update"
            raise RuntimeError(msg)
        return self._offer_to_response(offer)

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    async def create_task(self, owner_id: str, data: dict[str, Any]) -> dict[str, Any]:
        """
        Post a new task in status ``open``.

        Error precedence:
        1. INVALID_FIELD: title, category, range, deadline, reward, text, attachments
        2. INVALID_CATEGORY_ID: malformed category reference
        3. CATEGORY_NOT_FOUND: category does not exist
        """
        title = normalizer.normalize_title(
            data.get("title"), required=True, max_length=self._max_title_length
        )
        category_ref = self._parse_category_ref(data.get("category_id"))

        task_range = normalizer.normalize_range(data.get("range"), required=True)
        deadline = normalizer.parse_deadline(data.get("deadline"), required=True)
        reward = normalizer.parse_reward(data.get("reward"), required=True)
        description = normalizer.normalize_text(
            data.get("description"),
            field="description",
            max_length=self._max_description_length,
        )
        attachments = normalizer.normalize_attachments(
            data.get("attachments"), max_items=self._max_attachments
        )
        reach = normalizer.sanitize_reach(data.get("reach")) or normalizer.DEFAULT_REACH

        category_id = self._require_category(category_ref)

        # Required fields were enforced above, so none of these is None here.
        assert task_range is not None  # nosec B101
        task_id = new_id(TASK_PREFIX)
        created_at = now_iso()
        try:
            self._store.insert_task(
                {
                    "task_id": task_id,
                    "owner_id": owner_id,
                    "title": title,
                    "description": description,
                    "category_id": category_id,
                    "range_min": task_range["min"],
                    "range_max": task_range["max"],
                    "reward": reward,
                    "deadline": deadline,
                    "reach": reach,
                    "status": "open",
                    "attachments": attachments,
                    "created_at": created_at,
                    "updated_at": created_at,
                }
            )
        except RecordNotFoundError as exc:
            raise ServiceError("CATEGORY_NOT_FOUND", "Task category not found", 404, {}) from exc

        self._logger.info(
            "Task created",
            extra={"task_id": task_id, "owner_id": owner_id, "category_id": category_id},
        )
        return self._load_task_response(task_id)

    async def get_task(self, task_id: str) -> dict[str, Any]:
        """
        Get a single task with its category and offers.

        Raises:
            ServiceError: INVALID_TASK_ID, TASK_NOT_FOUND
        """
        require_id(task_id, TASK_PREFIX, "INVALID_TASK_ID", "task id")
        return self._load_task_response(task_id)

    async def list_all_tasks(self) -> list[dict[str, Any]]:
        """List every task, newest first."""
        return self._tasks_to_response(self._store.list_tasks(owner_id=None))

    async def list_user_tasks(self, owner_id: str) -> list[dict[str, Any]]:
        """List the tasks posted by owner_id, newest first."""
        return self._tasks_to_response(self._store.list_tasks(owner_id=owner_id))

    async def list_quashed_tasks(self, user_id: str) -> list[dict[str, Any]]:
        """List in-progress or completed tasks on which user_id holds the accepted offer."""
        return self._tasks_to_response(self._store.list_quashed_tasks(user_id, _QUASHED_STATUSES))

    async def update_task(
        self,
        caller_id: str,
        task_id: str,
        patch: dict[str, Any],
    ) -> dict[str, Any]:
        """
        Apply a partial update to a task.

        The owner may change any field; a hired quasher (holder of the
        accepted offer) may only change the status. Status changes follow
        ``access_guard.STATUS_TRANSITIONS`` for the caller's role, and a task
        with an accepted offer never returns to ``open`` or ``closed``.

        Error precedence:
        1. INVALID_TASK_ID
        2. TASK_NOT_FOUND
        3. FORBIDDEN: neither owner nor hired quasher
        4. INVALID_FIELD / INVALID_CATEGORY_ID / CATEGORY_NOT_FOUND: bad field values
        5. INVALID_PAYLOAD: nothing to update
        6. FORBIDDEN: hired quasher touching non-status fields
        7. INVALID_STATUS: transition not allowed, or task changed concurrently
        """
        require_id(task_id, TASK_PREFIX, "INVALID_TASK_ID", "task id")

        task = self._store.get_task(task_id)
        if task is None:
            raise ServiceError("TASK_NOT_FOUND", "Task not found", 404, {})

        offers = self._store.get_offers_for_task(task_id)
        role = access_guard.resolve_role(task, caller_id, offers)
        if role is None:
            raise ServiceError(
                "FORBIDDEN", "You are not authorized to update this task", 403, {}
            )

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
            task_range = normalizer.normalize_range(patch["range"], required=True)
            assert task_range is not None  # nosec B101
            updates["range_min"] = task_range["min"]
            updates["range_max"] = task_range["max"]

        if "reward" in patch:
            updates["reward"] = normalizer.parse_reward(patch["reward"], required=True)

        if "deadline" in patch:
            updates["deadline"] = normalizer.parse_deadline(patch["deadline"], required=True)

        if "category_id" in patch:
            updates["category_id"] = self._require_category(
                self._parse_category_ref(patch["category_id"])
            )

        if "reach" in patch:
            reach = normalizer.sanitize_reach(patch["reach"])
            if reach is not None:
                updates["reach"] = reach

        if "status" in patch:
            status = patch["status"]
            if not isinstance(status, str) or status not in access_guard.TASK_STATUSES:
                raise ServiceError(
                    "INVALID_FIELD", "Invalid task status", 400, {"field": "status"}
                )
            updates["status"] = status

        if "attachments" in patch:
            attachments = normalizer.normalize_attachments(
                patch["attachments"], max_items=self._max_attachments
            )
            if len(attachments) > 0:
                updates["attachments"] = attachments

        if len(updates) == 0:
            raise ServiceError(
                "INVALID_PAYLOAD", "No valid fields provided for update", 400, {}
            )

        if role == "hired" and any(column != "status" for column in updates):
            raise ServiceError(
                "FORBIDDEN",
                "A hired quasher may only change the task status",
                403,
                {},
            )

        current_status = str(task["status"])
        hired = access_guard.has_accepted_offer(task, offers)
        if "status" in updates and not access_guard.is_status_transition_allowed(
            role, current_status, updates["status"], hired=hired
        ):
            raise ServiceError(
                "INVALID_STATUS",
                f"Cannot move task from '{current_status}' to '{updates['status']}' as {role}",
                400,
                {},
            )

        updates["updated_at"] = now_iso()
        changed = self._store.update_task(task_id, updates, expected_status=current_status)
        if changed == 0:
            if self._store.get_task(task_id) is None:
                raise ServiceError("TASK_NOT_FOUND", "Task not found", 404, {})
            raise ServiceError(
                "INVALID_STATUS",
                "Task status changed while the update was in progress",
                400,
                {},
            )

        self._logger.info(
            "Task updated",
            extra={
                "task_id": task_id,
                "caller_id": caller_id,
                "role": role,
                "fields": sorted(column for column in updates if column != "updated_at"),
            },
        )
        return self._load_task_response(task_id)

    async def delete_task(self, owner_id: str, task_id: str) -> dict[str, Any]:
        """
        Delete a task (and its offers). Only the owner may delete.

        Raises:
            ServiceError: INVALID_TASK_ID, TASK_NOT_FOUND (also for non-owners)
        """
        require_id(task_id, TASK_PREFIX, "INVALID_TASK_ID", "task id")
        deleted = self._store.delete_task(task_id, owner_id)
        if deleted == 0:
            raise ServiceError("TASK_NOT_FOUND", "Task not found", 404, {})

        self._logger.info("Task deleted", extra={"task_id": task_id, "owner_id": owner_id})
        return {"task_id": task_id}

    # ------------------------------------------------------------------
    # Offers
    # ------------------------------------------------------------------

    async def create_offer(self, bidder_id: str, data: dict[str, Any]) -> dict[str, Any]:
        """
        Submit an offer on a task.

        Error precedence:
        1. INVALID_FIELD / INVALID_TASK_ID: missing or malformed fields
        2. TASK_NOT_FOUND
        3. INVALID_STATUS: task is inProgress, completed or cancelled, or
           already has an accepted offer
        4. FORBIDDEN: bidder owns the task
        5. OFFER_ALREADY_EXISTS: bidder already has an offer on the task
        """
        task_ref = data.get("task_id")
        if task_ref is None or task_ref == "":
            raise ServiceError("INVALID_FIELD", "Task is required", 400, {"field": "task_id"})
        task_id = require_id(task_ref, TASK_PREFIX, "INVALID_TASK_ID", "task id")

        amount = normalizer.parse_amount(data.get("amount"), required=True)
        deadline = normalizer.parse_deadline(data.get("deadline"), required=True)
        message = normalizer.normalize_text(
            data.get("message"), field="message", max_length=self._max_message_length
        )

        task = self._store.get_task(task_id)
        if task is None:
            raise ServiceError("TASK_NOT_FOUND", "Task not found", 404, {})

        if not access_guard.is_bidding_open(task, self._store.get_offers_for_task(task_id)):
            raise ServiceError(
                "INVALID_STATUS",
                f"Task is '{task['status']}' and no longer takes offers",
                400,
                {},
            )

        if access_guard.is_owner(task, bidder_id):
            raise ServiceError(
                "FORBIDDEN", "You cannot make an offer on your own task", 403, {}
            )

        offer_id = new_id(OFFER_PREFIX)
        created_at = now_iso()
        try:
            self._store.insert_offer(
                {
                    "offer_id": offer_id,
                    "task_id": task_id,
                    "user_id": bidder_id,
                    "amount": amount,
                    "deadline": deadline,
                    "message": message,
                    "status": "pending",
                    "created_at": created_at,
                    "updated_at": created_at,
                },
                access_guard.BIDDING_CLOSED_STATUSES,
            )
        except DuplicateOfferError as exc:
            raise ServiceError(
                "OFFER_ALREADY_EXISTS",
                "You have already made an offer on this task",
                409,
                {},
            ) from exc
        except StaleStatusError as exc:
            raise ServiceError("INVALID_STATUS", str(exc), 400, {}) from exc
        except RecordNotFoundError as exc:
            raise ServiceError("TASK_NOT_FOUND", "Task not found", 404, {}) from exc

        self._logger.info(
            "Offer created",
            extra={"offer_id": offer_id, "task_id": task_id, "user_id": bidder_id},
        )
        return self._refetch_offer(offer_id)

    async def list_task_offers(self, task_id: str) -> dict[str, Any]:
        """List all offers on a task, oldest first."""
        require_id(task_id, TASK_PREFIX, "INVALID_TASK_ID", "task id")
        offers = [self._offer_to_response(row) for row in self._store.get_offers_for_task(task_id)]
        return {"task_id": task_id, "offers": offers}

    async def accept_offer(self, caller_id: str, offer_id: str) -> dict[str, Any]:
        """
        Accept an offer: the offer becomes ``accepted``, the task ``inProgress``,
        and every other pending offer on the task ``rejected``, atomically.

        Error precedence:
        1. INVALID_OFFER_ID
        2. OFFER_NOT_FOUND, TASK_NOT_FOUND
        3. FORBIDDEN: caller does not own the task
        4. INVALID_STATUS: offer not pending, or task no longer takes offers
           (checked up front and again inside the write)
        """
        offer, task = self._load_offer_and_task(offer_id)

        if not access_guard.is_owner(task, caller_id):
            raise ServiceError(
                "FORBIDDEN", "You are not authorized to accept offers for this task", 403, {}
            )

        if offer["status"] != "pending":
            raise ServiceError(
                "INVALID_STATUS",
                f"Cannot accept offer in '{offer['status']}' status, must be 'pending'",
                400,
                {},
            )

        siblings = self._store.get_offers_for_task(str(task["task_id"]))
        if not access_guard.is_bidding_open(task, siblings):
            raise ServiceError(
                "INVALID_STATUS",
                f"Cannot accept offers on task in '{task['status']}' status",
                400,
                {},
            )

        try:
            rejected_count = self._store.accept_offer(
                offer_id,
                str(task["task_id"]),
                access_guard.BIDDING_CLOSED_STATUSES,
                now_iso(),
            )
        except StaleStatusError as exc:
            raise ServiceError("INVALID_STATUS", str(exc), 400, {}) from exc

        self._logger.info(
            "Offer accepted",
            extra={
                "offer_id": offer_id,
                "task_id": task["task_id"],
                "user_id": offer["user_id"],
                "rejected_siblings": rejected_count,
            },
        )
        return self._refetch_offer(offer_id)

    async def reject_offer(self, caller_id: str, offer_id: str) -> dict[str, Any]:
        """
        Reject a pending offer. The task status is left alone.

        Error precedence:
        1. INVALID_OFFER_ID
        2. OFFER_NOT_FOUND, TASK_NOT_FOUND
        3. FORBIDDEN: caller does not own the task
        4. INVALID_STATUS: offer not pending
        """
        offer, task = self._load_offer_and_task(offer_id)

        if not access_guard.is_owner(task, caller_id):
            raise ServiceError(
                "FORBIDDEN", "You are not authorized to reject offers for this task", 403, {}
            )

        changed = self._store.set_offer_status(
            offer_id, "rejected", expected_status="pending", now=now_iso()
        )
        if changed == 0:
            raise ServiceError(
                "INVALID_STATUS",
                f"Cannot reject offer in '{offer['status']}' status, must be 'pending'",
                400,
                {},
            )

        self._logger.info(
            "Offer rejected",
            extra={"offer_id": offer_id, "task_id": task["task_id"], "user_id": offer["user_id"]},
        )
        return self._refetch_offer(offer_id)

    async def withdraw_offer(self, bidder_id: str, offer_id: str) -> dict[str, Any]:
        """
        Withdraw one's own pending offer.

        Error precedence:
        1. INVALID_OFFER_ID
        2. OFFER_NOT_FOUND
        3. FORBIDDEN: caller did not make the offer
        4. INVALID_STATUS: offer not pending
        """
        require_id(offer_id, OFFER_PREFIX, "INVALID_OFFER_ID", "offer id")
        offer = self._store.get_offer(offer_id)
        if offer is None:
            raise ServiceError("OFFER_NOT_FOUND", "Offer not found", 404, {})

        if offer["user_id"] != bidder_id:
            raise ServiceError("FORBIDDEN", "Only the bidder can withdraw this offer", 403, {})

        changed = self._store.set_offer_status(
            offer_id, "withdrawn", expected_status="pending", now=now_iso()
        )
        if changed == 0:
            raise ServiceError(
                "INVALID_STATUS",
                f"Cannot withdraw offer in '{offer['status']}' status, must be 'pending'",
                400,
                {},
            )

        self._logger.info(
            "Offer withdrawn",
            extra={"offer_id": offer_id, "task_id": offer["task_id"], "user_id": bidder_id},
        )
        return self._refetch_offer(offer_id)

    # ------------------------------------------------------------------
    # Statistics (health endpoint)
    # ------------------------------------------------------------------

    def get_stats(self) -> dict[str, Any]:
        """Return aggregate statistics for health reporting."""
        counts: dict[str, int] = dict.fromkeys(sorted(access_guard.TASK_STATUSES), 0)
        for status_val, count in self._store.count_tasks_by_status().items():
            if status_val in counts:
                counts[status_val] = int(count)
        return {
            "total_tasks": self._store.count_tasks(),
            "tasks_by_status": counts,
            "total_offers": self._store.count_offers(),
        }

    def close(self) -> None:
        """Close the database connection."""
        self._store.close()
