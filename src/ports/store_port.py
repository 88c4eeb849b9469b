"""Store ports — the household entity store and the preference store.

Lifecycle coordinators write through these protocols; SQLite implementations
live in src.data.db.
"""

from __future__ import annotations

from typing import Protocol

from src.data.models import (
    Bill,
    MaintenanceEvent,
    MaintenanceItem,
    NotificationPreferences,
    RecurringTask,
    TaskCompletion,
    TaskStatus,
)


class PreferenceStore(Protocol):
    """Persisted notification preferences (a single key-value blob)."""

    def get(self) -> NotificationPreferences: ...

    def save(self, **partial: object) -> NotificationPreferences: ...


class EntityStore(Protocol):
    """CRUD surface for household entities. Saves return the stored row."""

    def save_task(self, task: RecurringTask) -> RecurringTask: ...

    def save_bill(self, bill: Bill) -> Bill: ...

    def save_maintenance_item(self, item: MaintenanceItem) -> MaintenanceItem: ...

    def add_task_completion(self, completion: TaskCompletion) -> None: ...

    def add_maintenance_event(self, event: MaintenanceEvent) -> None: ...

    def list_tasks(self, status: TaskStatus | None = None) -> list[RecurringTask]: ...

    def list_bills(self) -> list[Bill]: ...

    def list_maintenance_items(self) -> list[MaintenanceItem]: ...
