"""
HomeOps Reminders — Local Database.

PreferenceDB keeps the notification preferences blob. HouseholdDB is the
local entity store the lifecycle coordinators write through: tasks, bills,
maintenance items and their history records.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from pathlib import Path

from pydantic import ValidationError

from src.data.models import (
    Bill,
    BillStatus,
    MaintenanceEvent,
    MaintenanceItem,
    NotificationPreferences,
    RecurrenceKind,
    RecurringTask,
    TaskCompletion,
    TaskStatus,
)

logger = logging.getLogger(__name__)

_PREFS_KEY = "notification_prefs"


def new_id() -> str:
    """Fresh entity identifier."""
    return uuid.uuid4().hex


class _SQLiteDB:
    """Connection handling shared by the stores."""

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from src.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        # an in-memory database lives only as long as its connection
        self._memory_conn: sqlite3.Connection | None = None
        if db_path == ":memory:":
            self._memory_conn = sqlite3.connect(db_path, check_same_thread=False)
            self._memory_conn.row_factory = sqlite3.Row
        else:
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        if self._memory_conn is not None:
            return self._memory_conn
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        raise NotImplementedError


class PreferenceDB(_SQLiteDB):
    """SQLite-backed key-value storage for notification preferences."""

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS preferences (
                    key   TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
            """)
        logger.debug("Preferences table initialized at %s", self._db_path)

    def get(self) -> NotificationPreferences:
        """Stored preferences merged over the defaults."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT value FROM preferences WHERE key = ?", (_PREFS_KEY,)
            ).fetchone()
        if row is None:
            return NotificationPreferences()

        try:
            stored = json.loads(row["value"])
            return NotificationPreferences(**stored)
        except (json.JSONDecodeError, TypeError, ValidationError) as exc:
            logger.error("Stored notification preferences are invalid, using defaults: %s", exc)
            return NotificationPreferences()

    def save(self, **partial: object) -> NotificationPreferences:
        """Merge partial values into the stored preferences.

        Raises pydantic.ValidationError when the merged result is invalid;
        nothing is written in that case.
        """
        merged = {**self.get().model_dump(), **partial}
        prefs = NotificationPreferences(**merged)
        with self._connect() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO preferences (key, value) VALUES (?, ?)",
                (_PREFS_KEY, prefs.model_dump_json()),
            )
        return prefs


class HouseholdDB(_SQLiteDB):
    """SQLite-backed storage for household entities and their history."""

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS tasks (
                    id                  TEXT PRIMARY KEY,
                    title               TEXT    NOT NULL,
                    due_date            TEXT,
                    due_time            TEXT,
                    is_recurring        INTEGER NOT NULL DEFAULT 0,
                    recurrence_kind     TEXT,
                    recurrence_interval INTEGER NOT NULL DEFAULT 1,
                    status              TEXT    NOT NULL DEFAULT 'pending',
                    next_occurrence     TEXT,
                    completed_at        TEXT,
                    completed_by        TEXT
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS bills (
                    id           TEXT PRIMARY KEY,
                    name         TEXT    NOT NULL,
                    amount       REAL    NOT NULL DEFAULT 0,
                    due_day      INTEGER CHECK (due_day BETWEEN 1 AND 31),
                    is_recurring INTEGER NOT NULL DEFAULT 1,
                    status       TEXT    NOT NULL DEFAULT 'pending',
                    paid_at      TEXT,
                    paid_amount  REAL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS maintenance_items (
                    id                    TEXT PRIMARY KEY,
                    name                  TEXT NOT NULL,
                    interval_months       INTEGER,
                    last_maintenance_date TEXT,
                    next_maintenance_date TEXT
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS task_completions (
                    id           INTEGER PRIMARY KEY AUTOINCREMENT,
                    task_id      TEXT NOT NULL,
                    completed_by TEXT,
                    completed_at TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS maintenance_history (
                    id               INTEGER PRIMARY KEY AUTOINCREMENT,
                    item_id          TEXT NOT NULL,
                    maintenance_date TEXT NOT NULL,
                    description      TEXT NOT NULL DEFAULT '',
                    cost             REAL,
                    provider         TEXT
                )
            """)
        logger.debug("Household tables initialized at %s", self._db_path)

    # -- row mapping ------------------------------------------------------------

    @staticmethod
    def _row_to_task(row: sqlite3.Row) -> RecurringTask:
        kind = row["recurrence_kind"]
        return RecurringTask(
            id=row["id"],
            title=row["title"],
            due_date=row["due_date"],
            due_time=row["due_time"],
            is_recurring=bool(row["is_recurring"]),
            recurrence_kind=RecurrenceKind(kind) if kind else None,
            recurrence_interval=row["recurrence_interval"],
            status=TaskStatus(row["status"]),
            next_occurrence=row["next_occurrence"],
            completed_at=row["completed_at"],
            completed_by=row["completed_by"],
        )

    @staticmethod
    def _row_to_bill(row: sqlite3.Row) -> Bill:
        return Bill(
            id=row["id"],
            name=row["name"],
            amount=row["amount"],
            due_day=row["due_day"],
            is_recurring=bool(row["is_recurring"]),
            status=BillStatus(row["status"]),
            paid_at=row["paid_at"],
            paid_amount=row["paid_amount"],
        )

    @staticmethod
    def _row_to_item(row: sqlite3.Row) -> MaintenanceItem:
        return MaintenanceItem(
            id=row["id"],
            name=row["name"],
            interval_months=row["interval_months"],
            last_maintenance_date=row["last_maintenance_date"],
            next_maintenance_date=row["next_maintenance_date"],
        )

    # -- tasks ------------------------------------------------------------------

    def save_task(self, task: RecurringTask) -> RecurringTask:
        """Insert or replace a task row."""
        with self._connect() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO tasks
                    (id, title, due_date, due_time, is_recurring, recurrence_kind,
                     recurrence_interval, status, next_occurrence,
                     completed_at, completed_by)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    task.id, task.title, task.due_date, task.due_time,
                    int(task.is_recurring),
                    task.recurrence_kind.value if task.recurrence_kind else None,
                    task.recurrence_interval, task.status.value, task.next_occurrence,
                    task.completed_at, task.completed_by,
                ),
            )
        logger.info("Task %s saved (%s, due %s)", task.id, task.status.value, task.due_date)
        return task

    def get_task(self, task_id: str) -> RecurringTask | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_task(row)

    def list_tasks(self, status: TaskStatus | None = None) -> list[RecurringTask]:
        """List tasks ordered by due date (undated last)."""
        query = "SELECT * FROM tasks"
        params: list = []
        if status is not None:
            query += " WHERE status = ?"
            params.append(status.value)
        query += " ORDER BY due_date IS NULL, due_date"
        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_task(r) for r in rows]

    def delete_task(self, task_id: str) -> bool:
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Task %s deleted", task_id)
        return deleted

    def add_task_completion(self, completion: TaskCompletion) -> None:
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO task_completions (task_id, completed_by, completed_at) VALUES (?, ?, ?)",
                (completion.task_id, completion.completed_by, completion.completed_at),
            )

    def list_task_completions(self, task_id: str) -> list[TaskCompletion]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM task_completions WHERE task_id = ? ORDER BY completed_at",
                (task_id,),
            ).fetchall()
        return [
            TaskCompletion(
                task_id=r["task_id"],
                completed_by=r["completed_by"],
                completed_at=r["completed_at"],
            )
            for r in rows
        ]

    # -- bills ------------------------------------------------------------------

    def save_bill(self, bill: Bill) -> Bill:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO bills
                    (id, name, amount, due_day, is_recurring, status, paid_at, paid_amount)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    bill.id, bill.name, bill.amount, bill.due_day,
                    int(bill.is_recurring), bill.status.value,
                    bill.paid_at, bill.paid_amount,
                ),
            )
        logger.info("Bill %s saved (%s)", bill.id, bill.status.value)
        return bill

    def get_bill(self, bill_id: str) -> Bill | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM bills WHERE id = ?", (bill_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_bill(row)

    def list_bills(self) -> list[Bill]:
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM bills ORDER BY due_day").fetchall()
        return [self._row_to_bill(r) for r in rows]

    def delete_bill(self, bill_id: str) -> bool:
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM bills WHERE id = ?", (bill_id,))
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Bill %s deleted", bill_id)
        return deleted

    # -- maintenance ------------------------------------------------------------

    def save_maintenance_item(self, item: MaintenanceItem) -> MaintenanceItem:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO maintenance_items
                    (id, name, interval_months, last_maintenance_date, next_maintenance_date)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    item.id, item.name, item.interval_months,
                    item.last_maintenance_date, item.next_maintenance_date,
                ),
            )
        logger.info("Maintenance item %s saved (next %s)", item.id, item.next_maintenance_date)
        return item

    def get_maintenance_item(self, item_id: str) -> MaintenanceItem | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM maintenance_items WHERE id = ?", (item_id,)
            ).fetchone()
        if row is None:
            return None
        return self._row_to_item(row)

    def list_maintenance_items(self) -> list[MaintenanceItem]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM maintenance_items "
                "ORDER BY next_maintenance_date IS NULL, next_maintenance_date"
            ).fetchall()
        return [self._row_to_item(r) for r in rows]

    def delete_maintenance_item(self, item_id: str) -> bool:
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM maintenance_items WHERE id = ?", (item_id,))
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Maintenance item %s deleted", item_id)
        return deleted

    def add_maintenance_event(self, event: MaintenanceEvent) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO maintenance_history
                    (item_id, maintenance_date, description, cost, provider)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    event.item_id, event.maintenance_date, event.description,
                    event.cost, event.provider,
                ),
            )
        logger.info("Maintenance event recorded for %s on %s", event.item_id, event.maintenance_date)

    def list_maintenance_history(self, item_id: str) -> list[MaintenanceEvent]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM maintenance_history WHERE item_id = ? "
                "ORDER BY maintenance_date DESC",
                (item_id,),
            ).fetchall()
        return [
            MaintenanceEvent(
                item_id=r["item_id"],
                maintenance_date=r["maintenance_date"],
                description=r["description"],
                cost=r["cost"],
                provider=r["provider"],
            )
            for r in rows
        ]
