"""SQLite-backed storage for categories, tasks, offers, and skills."""

from __future__ import annotations

import contextlib
import json
import sqlite3
from pathlib import Path
from threading import RLock
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Iterator


class DuplicateOfferError(Exception):
    """Raised when a bidder already holds an offer on the task."""


class StaleStatusError(Exception):
    """Raised when a status-guarded write finds the record in another state."""


class RecordNotFoundError(Exception):
    """Raised when a referenced row disappears between read and write."""


class CategoryInUseError(Exception):
    """Raised when deleting a category that tasks still reference."""


class TaskStore:
    """
    SQLite-backed storage for the marketplace aggregates.

    Offers are never embedded in tasks; they are joined in on read
    (see ``load_task_with_relations``). Multi-row mutations run in a
    single ``BEGIN IMMEDIATE`` transaction.
    """

    _TASK_COLUMNS: tuple[str, ...] = (
        "task_id",
        "owner_id",
        "title",
        "description",
        "category_id",
        "range_min",
        "range_max",
        "reward",
        "deadline",
        "reach",
        "status",
        "attachments",
        "created_at",
        "updated_at",
    )
    _TASK_COLUMNS_SQL = ", ".join(_TASK_COLUMNS)
    _TASK_SELECT_BASE_SQL = "SELECT " + _TASK_COLUMNS_SQL + " FROM tasks"  # nosec B608

    _OFFER_COLUMNS: tuple[str, ...] = (
        "offer_id",
        "task_id",
        "user_id",
        "amount",
        "deadline",
        "message",
        "status",
        "created_at",
        "updated_at",
    )
    _OFFER_COLUMNS_SQL = ", ".join(_OFFER_COLUMNS)

    _CATEGORY_COLUMNS: tuple[str, ...] = (
        "category_id",
        "title",
        "description",
        "created_at",
        "updated_at",
    )

    _SKILL_COLUMNS: tuple[str, ...] = (
        "skill_id",
        "owner_id",
        "title",
        "description",
        "range_value",
        "reward",
        "deadline",
        "reach",
        "status",
        "created_at",
        "updated_at",
    )

    def __init__(self, db_path: str) -> None:
        self._lock = RLock()
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._db = sqlite3.connect(db_path, check_same_thread=False)
        self._db.row_factory = sqlite3.Row
        self._db.execute("PRAGMA journal_mode=WAL")
        self._db.execute("PRAGMA foreign_keys=ON")
        self._db.execute("PRAGMA busy_timeout=5000")
        self._init_schema()

    def _init_schema(self) -> None:
        with self._lock:
            self._db.executescript(
                """
                CREATE TABLE IF NOT EXISTS categories (
                    category_id TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    description TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS tasks (
                    task_id TEXT PRIMARY KEY,
                    owner_id TEXT NOT NULL,
                    title TEXT NOT NULL,
                    description TEXT,
                    category_id TEXT NOT NULL REFERENCES categories(category_id),
                    range_min REAL NOT NULL,
                    range_max REAL NOT NULL,
                    reward REAL NOT NULL,
                    deadline TEXT NOT NULL,
                    reach TEXT NOT NULL DEFAULT 'local',
                    status TEXT NOT NULL DEFAULT 'open',
                    attachments TEXT NOT NULL DEFAULT '[]',
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    CHECK (range_min <= range_max)
                );

                CREATE INDEX IF NOT EXISTS idx_tasks_owner ON tasks(owner_id);
                CREATE INDEX IF NOT EXISTS idx_tasks_status ON tasks(status);

                CREATE TABLE IF NOT EXISTS offers (
                    offer_id TEXT PRIMARY KEY,
                    task_id TEXT NOT NULL REFERENCES tasks(task_id) ON DELETE CASCADE,
                    user_id TEXT NOT NULL,
                    amount REAL NOT NULL,
                    deadline TEXT NOT NULL,
                    message TEXT,
                    status TEXT NOT NULL DEFAULT 'pending',
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    UNIQUE(task_id, user_id)
                );

                CREATE INDEX IF NOT EXISTS idx_offers_user_status ON offers(user_id, status);

                CREATE TABLE IF NOT EXISTS skills (
                    skill_id TEXT PRIMARY KEY,
                    owner_id TEXT NOT NULL,
                    title TEXT NOT NULL,
                    description TEXT,
                    range_value REAL NOT NULL,
                    reward REAL NOT NULL,
                    deadline TEXT NOT NULL,
                    reach TEXT NOT NULL DEFAULT 'local',
                    status TEXT NOT NULL DEFAULT 'active',
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_skills_owner ON skills(owner_id);
                """
            )
            self._db.commit()

    @contextlib.contextmanager
    def _write_transaction(self) -> Iterator[sqlite3.Connection]:
        """Hold the lock and an immediate write transaction; roll back on any error."""
        with self._lock:
            self._db.execute("BEGIN IMMEDIATE")
            try:
                yield self._db
                self._db.commit()
            except BaseException:
                with contextlib.suppress(sqlite3.Error):
                    self._db.execute("ROLLBACK")
                raise

    @staticmethod
    def _has_accepted_offer(db: sqlite3.Connection, task_id: str) -> bool:
        row = db.execute(
            "SELECT 1 FROM offers WHERE task_id = ? AND status = 'accepted' LIMIT 1",
            (task_id,),
        ).fetchone()
        return row is not None

    # ------------------------------------------------------------------
    # Row conversion
    # ------------------------------------------------------------------

    def _row_to_task(self, row: sqlite3.Row) -> dict[str, Any]:
        task = {column: row[column] for column in self._TASK_COLUMNS}
        task["attachments"] = json.loads(task["attachments"])
        return task

    def _row_to_offer(self, row: sqlite3.Row) -> dict[str, Any]:
        return {column: row[column] for column in self._OFFER_COLUMNS}

    def _row_to_category(self, row: sqlite3.Row) -> dict[str, Any]:
        return {column: row[column] for column in self._CATEGORY_COLUMNS}

    def _row_to_skill(self, row: sqlite3.Row) -> dict[str, Any]:
        return {column: row[column] for column in self._SKILL_COLUMNS}

    @staticmethod
    def _build_update(
        table: str,
        allowed_columns: tuple[str, ...],
        updates: dict[str, Any],
        where: dict[str, Any],
    ) -> tuple[str, list[object]]:
        if any(column not in allowed_columns for column in updates):
            msg = f"Attempted to update unknown {table} column"
            raise ValueError(msg)

        set_clause = ", ".join(f"{column} = ?" for column in updates)
        where_clause = " AND ".join(f"{column} = ?" for column in where)
        query = f"UPDATE {table} SET {set_clause} WHERE {where_clause}"  # nosec B608
        return query, [*updates.values(), *where.values()]

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------

    def insert_category(self, category_data: dict[str, Any]) -> None:
        """Insert a new category row."""
        values = tuple(category_data[column] for column in self._CATEGORY_COLUMNS)
        with self._write_transaction() as db:
            db.execute(
                "INSERT INTO categories (category_id, title, description, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?)",
                values,
            )

    def get_category(self, category_id: str) -> dict[str, Any] | None:
        """Fetch a category by ID."""
        with self._lock:
            row = self._db.execute(
                "SELECT category_id, title, description, created_at, updated_at "
                "FROM categories WHERE category_id = ?",
                (category_id,),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_category(row)

    def list_categories(self) -> list[dict[str, Any]]:
        """List all categories, newest first."""
        with self._lock:
            rows = self._db.execute(
                "SELECT category_id, title, description, created_at, updated_at "
                "FROM categories ORDER BY created_at DESC, rowid DESC"
            ).fetchall()
        return [self._row_to_category(row) for row in rows]

    def update_category(self, category_id: str, updates: dict[str, Any]) -> int:
        """Update category columns and return the number of affected rows."""
        if len(updates) == 0:
            return 0
        query, params = self._build_update(
            "categories", self._CATEGORY_COLUMNS, updates, {"category_id": category_id}
        )
        with self._write_transaction() as db:
            cursor = db.execute(query, params)
        return int(cursor.rowcount)

    def delete_category(self, category_id: str) -> int:
        """Delete a category; refuses while any task references it."""
        try:
            with self._write_transaction() as db:
                cursor = db.execute(
                    "DELETE FROM categories WHERE category_id = ?",
                    (category_id,),
                )
        except sqlite3.IntegrityError as exc:
            raise CategoryInUseError(
                f"Category {category_id} is referenced by existing tasks"
            ) from exc
        return int(cursor.rowcount)

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    def insert_task(self, task_data: dict[str, Any]) -> None:
        """Insert a new task row.

        Raises RecordNotFoundError if the category vanished since it was checked.
        """
        row = dict(task_data)
        row["attachments"] = json.dumps(row["attachments"])
        values = tuple(row[column] for column in self._TASK_COLUMNS)
        placeholders = ", ".join("?" for _ in self._TASK_COLUMNS)

        try:
            with self._write_transaction() as db:
                db.execute(
                    "INSERT INTO tasks (" + self._TASK_COLUMNS_SQL + ") "  # nosec B608
                    "VALUES (" + placeholders + ")",
                    values,
                )
        except sqlite3.IntegrityError as exc:
            if "foreign key" in str(exc).lower():
                raise RecordNotFoundError(
                    f"Category {task_data['category_id']} does not exist"
                ) from exc
            raise

    def get_task(self, task_id: str) -> dict[str, Any] | None:
        """Fetch a task by ID."""
        with self._lock:
            row = self._db.execute(
                self._TASK_SELECT_BASE_SQL + " WHERE task_id = ?",
                (task_id,),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_task(row)

    def update_task(
        self,
        task_id: str,
        updates: dict[str, Any],
        *,
        expected_status: str | None,
    ) -> int:
        """Update task columns and return the number of affected rows.

        With ``expected_status`` the write only lands if the task is still in
        that status.
        """
        if len(updates) == 0:
            return 0

        row_updates = dict(updates)
        if "attachments" in row_updates:
            row_updates["attachments"] = json.dumps(row_updates["attachments"])

        where: dict[str, Any] = {"task_id": task_id}
        if expected_status is not None:
            where["status"] = expected_status
        query, params = self._build_update("tasks", self._TASK_COLUMNS, row_updates, where)

        with self._write_transaction() as db:
            cursor = db.execute(query, params)
        return int(cursor.rowcount)

    def delete_task(self, task_id: str, owner_id: str) -> int:
        """Delete a task owned by owner_id; its offers go with it."""
        with self._write_transaction() as db:
            cursor = db.execute(
                "DELETE FROM tasks WHERE task_id = ? AND owner_id = ?",
                (task_id, owner_id),
            )
        return int(cursor.rowcount)

    def list_tasks(self, owner_id: str | None) -> list[dict[str, Any]]:
        """List tasks, optionally for one owner, newest first."""
        query = self._TASK_SELECT_BASE_SQL
        params: list[object] = []
        if owner_id is not None:
            query += " WHERE owner_id = ?"
            params.append(owner_id)
        query += " ORDER BY created_at DESC, rowid DESC"

        with self._lock:
            rows = self._db.execute(query, params).fetchall()
        return [self._row_to_task(row) for row in rows]

    def list_quashed_tasks(self, user_id: str, statuses: tuple[str, ...]) -> list[dict[str, Any]]:
        """List tasks in the given statuses on which user_id holds an accepted offer."""
        placeholders = ", ".join("?" for _ in statuses)
        columns = ", ".join(f"t.{column}" for column in self._TASK_COLUMNS)
        query = (
            "SELECT " + columns + " FROM tasks t "  # nosec B608
            "JOIN offers o ON o.task_id = t.task_id "
            "WHERE o.user_id = ? AND o.status = 'accepted' "
            "AND t.status IN (" + placeholders + ") "
            "ORDER BY t.created_at DESC, t.rowid DESC"
        )
        with self._lock:
            rows = self._db.execute(query, (user_id, *statuses)).fetchall()
        return [self._row_to_task(row) for row in rows]

    def count_tasks(self) -> int:
        """Count total tasks."""
        with self._lock:
            row = self._db.execute("SELECT COUNT(*) FROM tasks").fetchone()
        return int(row[0]) if row is not None else 0

    def count_tasks_by_status(self) -> dict[str, int]:
        """Count tasks grouped by status."""
        with self._lock:
            rows = self._db.execute("SELECT status, COUNT(*) FROM tasks GROUP BY status").fetchall()
        return {str(row[0]): int(row[1]) for row in rows}

    # ------------------------------------------------------------------
    # Read-side joins
    # ------------------------------------------------------------------

    def load_task_with_relations(self, task_id: str) -> dict[str, Any] | None:
        """Fetch a task together with its category and offers."""
        task = self.get_task(task_id)
        if task is None:
            return None
        return self.attach_relations([task])[0]

    def attach_relations(self, tasks: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Attach ``category`` and ``offers`` to each task using two batched reads."""
        if len(tasks) == 0:
            return []

        task_ids = [task["task_id"] for task in tasks]
        category_ids = sorted({task["category_id"] for task in tasks})

        offers_by_task = self.get_offers_for_tasks(task_ids)
        category_placeholders = ", ".join("?" for _ in category_ids)
        with self._lock:
            rows = self._db.execute(
                "SELECT category_id, title, description, created_at, updated_at "  # nosec B608
                "FROM categories WHERE category_id IN (" + category_placeholders + ")",
                category_ids,
            ).fetchall()
        categories = {row["category_id"]: self._row_to_category(row) for row in rows}

        return [
            {
                **task,
                "category": categories.get(task["category_id"]),
                "offers": offers_by_task.get(task["task_id"], []),
            }
            for task in tasks
        ]

    # ------------------------------------------------------------------
    # Offers
    # ------------------------------------------------------------------

    def insert_offer(self, offer_data: dict[str, Any], closed_statuses: frozenset[str]) -> None:
        """
        Insert an offer, re-checking the task inside the write transaction.

        Raises:
            RecordNotFoundError: the task no longer exists
            StaleStatusError: the task has left the bidding phase
            DuplicateOfferError: the bidder already has an offer on the task
        """
        values = tuple(offer_data[column] for column in self._OFFER_COLUMNS)
        try:
            with self._write_transaction() as db:
                row = db.execute(
                    "SELECT status FROM tasks WHERE task_id = ?",
                    (offer_data["task_id"],),
                ).fetchone()
                if row is None:
                    raise RecordNotFoundError(f"Task {offer_data['task_id']} does not exist")
                if row["status"] in closed_statuses:
                    raise StaleStatusError(f"Task is '{row['status']}' and no longer takes offers")
                if self._has_accepted_offer(db, offer_data["task_id"]):
                    raise StaleStatusError("Task already has an accepted offer")
                db.execute(
                    "INSERT INTO offers (" + self._OFFER_COLUMNS_SQL + ") "  # nosec B608
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    values,
                )
        except sqlite3.IntegrityError as exc:
            if "unique" in str(exc).lower():
                raise DuplicateOfferError("This user already made an offer on this task") from exc
            raise

    def get_offer(self, offer_id: str) -> dict[str, Any] | None:
        """Fetch an offer by ID."""
        with self._lock:
            row = self._db.execute(
                "SELECT " + self._OFFER_COLUMNS_SQL + " FROM offers "  # nosec B608
                "WHERE offer_id = ?",
                (offer_id,),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_offer(row)

    def get_offers_for_task(self, task_id: str) -> list[dict[str, Any]]:
        """Fetch all offers for a task, oldest first."""
        return self.get_offers_for_tasks([task_id]).get(task_id, [])

    def get_offers_for_tasks(self, task_ids: list[str]) -> dict[str, list[dict[str, Any]]]:
        """Fetch offers for several tasks, grouped by task_id, oldest first."""
        if len(task_ids) == 0:
            return {}
        placeholders = ", ".join("?" for _ in task_ids)
        with self._lock:
            rows = self._db.execute(
                "SELECT " + self._OFFER_COLUMNS_SQL + " FROM offers "  # nosec B608
                "WHERE task_id IN (" + placeholders + ") ORDER BY created_at, rowid",
                task_ids,
            ).fetchall()

        grouped: dict[str, list[dict[str, Any]]] = {}
        for row in rows:
            grouped.setdefault(row["task_id"], []).append(self._row_to_offer(row))
        return grouped

    def accept_offer(
        self,
        offer_id: str,
        task_id: str,
        closed_statuses: frozenset[str],
        now: str,
    ) -> int:
        """
        Accept one offer, start the task, and reject its pending siblings.

        All three writes share one transaction. Nothing is written if the task
        already has an accepted offer. The first two writes are guarded on the
        statuses observed at write time, so a lost race rolls everything back
        and raises StaleStatusError.

        Returns the number of sibling offers that were rejected.
        """
        closed = sorted(closed_statuses)
        closed_placeholders = ", ".join("?" for _ in closed)
        with self._write_transaction() as db:
            if self._has_accepted_offer(db, task_id):
                raise StaleStatusError("Task already has an accepted offer")

            accepted = db.execute(
                "UPDATE offers SET status = 'accepted', updated_at = ? "
                "WHERE offer_id = ? AND task_id = ? AND status = 'pending'",
                (now, offer_id, task_id),
            )
            if accepted.rowcount != 1:
                raise StaleStatusError("Offer is no longer pending")

            started = db.execute(
                "UPDATE tasks SET status = 'inProgress', updated_at = ? "  # nosec B608
                "WHERE task_id = ? AND status NOT IN (" + closed_placeholders + ")",
                (now, task_id, *closed),
            )
            if started.rowcount != 1:
                raise StaleStatusError("Task is no longer accepting offers")

            rejected = db.execute(
                "UPDATE offers SET status = 'rejected', updated_at = ? "
                "WHERE task_id = ? AND offer_id <> ? AND status = 'pending'",
                (now, task_id, offer_id),
            )
        return int(rejected.rowcount)

    def set_offer_status(
        self,
        offer_id: str,
        status: str,
        *,
        expected_status: str,
        now: str,
    ) -> int:
        """Move an offer to status only if it is still in expected_status."""
        with self._write_transaction() as db:
            cursor = db.execute(
                "UPDATE offers SET status = ?, updated_at = ? WHERE offer_id = ? AND status = ?",
                (status, now, offer_id, expected_status),
            )
        return int(cursor.rowcount)

    def count_offers(self) -> int:
        """Count total offers."""
        with self._lock:
            row = self._db.execute("SELECT COUNT(*) FROM offers").fetchone()
        return int(row[0]) if row is not None else 0

    # ------------------------------------------------------------------
    # Skills
    # ------------------------------------------------------------------

    def insert_skill(self, skill_data: dict[str, Any]) -> None:
        """Insert a new skill row."""
        values = tuple(skill_data[column] for column in self._SKILL_COLUMNS)
        placeholders = ", ".join("?" for _ in self._SKILL_COLUMNS)
        with self._write_transaction() as db:
            db.execute(
                "INSERT INTO skills (" + ", ".join(self._SKILL_COLUMNS) + ") "  # nosec B608
                "VALUES (" + placeholders + ")",
                values,
            )

    def get_skill(self, skill_id: str, owner_id: str) -> dict[str, Any] | None:
        """Fetch a skill by ID, scoped to its owner."""
        with self._lock:
            row = self._db.execute(
                "SELECT " + ", ".join(self._SKILL_COLUMNS) + " FROM skills "  # nosec B608
                "WHERE skill_id = ? AND owner_id = ?",
                (skill_id, owner_id),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_skill(row)

    def list_skills(self, owner_id: str) -> list[dict[str, Any]]:
        """List an owner's skills, newest first."""
        with self._lock:
            rows = self._db.execute(
                "SELECT " + ", ".join(self._SKILL_COLUMNS) + " FROM skills "  # nosec B608
                "WHERE owner_id = ? ORDER BY created_at DESC, rowid DESC",
                (owner_id,),
            ).fetchall()
        return [self._row_to_skill(row) for row in rows]

    def update_skill(self, skill_id: str, owner_id: str, updates: dict[str, Any]) -> int:
        """Update an owner's skill and return the number of affected rows."""
        if len(updates) == 0:
            return 0
        query, params = self._build_update(
            "skills",
            self._SKILL_COLUMNS,
            updates,
            {"skill_id": skill_id, "owner_id": owner_id},
        )
        with self._write_transaction() as db:
            cursor = db.execute(query, params)
        return int(cursor.rowcount)

    def delete_skill(self, skill_id: str, owner_id: str) -> int:
        """Delete an owner's skill."""
        with self._write_transaction() as db:
            cursor = db.execute(
                "DELETE FROM skills WHERE skill_id = ? AND owner_id = ?",
                (skill_id, owner_id),
            )
        return int(cursor.rowcount)

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._db.close()
