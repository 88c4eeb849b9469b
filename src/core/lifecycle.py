"""
HomeOps Reminders — Entity Lifecycle Coordinators.

One coordinator per domain (tasks, bills, maintenance). Each reacts to the
lifecycle events the household store reports (created, updated, deleted,
list loaded) plus the domain's own transitions (complete/skip a task, pay a
bill, register maintenance) and keeps the reminder schedule in step.

Task state machine:
    pending --complete/skip, recurring--> pending (next due date)
    pending --complete, one-off--> completed (terminal)
    pending --skip, one-off--> skipped (terminal)

Bill state machine, per cycle:
    pending <-> overdue (time-driven, derived on read)
    pending/overdue --pay--> paid (terminal for the cycle)

Store failures propagate to the caller; reminder failures never do.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import TYPE_CHECKING

from src.core.recurrence import (
    next_maintenance_date,
    next_task_occurrence,
    parse_iso_date,
    parse_optional_date,
)
from src.core.status import bill_status, is_reminder_active
from src.data.models import (
    Bill,
    BillStatus,
    MaintenanceEvent,
    MaintenanceItem,
    RecurringTask,
    ReminderKind,
    TaskCompletion,
    TaskStatus,
    reminder_tag,
)

if TYPE_CHECKING:
    from src.core.reminder_scheduler import Entity, ReminderScheduler
    from src.ports.store_port import EntityStore, PreferenceStore

logger = logging.getLogger(__name__)


class EntityLifecycleCoordinator:
    """Shared create/update/delete/load handling for one reminder kind."""

    kind: ReminderKind

    def __init__(
        self,
        scheduler: ReminderScheduler,
        preferences: PreferenceStore,
        store: EntityStore | None = None,
    ) -> None:
        self._scheduler = scheduler
        self._preferences = preferences
        self._store = store

    def tag(self, entity_id: str) -> str:
        return reminder_tag(self.kind, entity_id)

    def is_active(self, entity: Entity) -> bool:
        return is_reminder_active(self.kind, entity, self._scheduler.today())

    # -- hooks ----------------------------------------------------------------

    def resolve(self, entity: Entity) -> Entity:
        """Derive read-time state. Default: entity unchanged."""
        return entity

    def _persist(self, entity: Entity) -> Entity:
        raise NotImplementedError

    # -- lifecycle events -----------------------------------------------------

    async def on_created(self, entity: Entity) -> Entity:
        """A new row was stored: schedule its reminder if it is active."""
        entity = self.resolve(entity)
        if self.is_active(entity):
            await self._scheduler.schedule_for(self.kind, entity, self._preferences.get())
        return entity

    async def on_updated(self, entity: Entity) -> Entity:
        """A row changed: drop its reminder, then schedule afresh if still active."""
        entity = self.resolve(entity)
        await self._scheduler.cancel_for(self.tag(entity.id))
        if self.is_active(entity):
            await self._scheduler.schedule_for(self.kind, entity, self._preferences.get())
        return entity

    async def on_deleted(self, entity_id: str) -> None:
        await self._scheduler.cancel_for(self.tag(entity_id), forget=True)

    async def on_loaded(self, entities: list[Entity]) -> list[Entity]:
        """A fresh list arrived from the store: resolve status and resync reminders."""
        resolved = [self.resolve(e) for e in entities]
        active = [e for e in resolved if self.is_active(e)]
        await self._scheduler.reschedule_all(self.kind, active, self._preferences.get())
        return resolved

    async def _apply(self, entity: Entity) -> Entity:
        """Persist a coordinator-made change, then resync its reminder."""
        if self._store is not None:
            entity = self._persist(entity)
        return await self.on_updated(entity)


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------


class TaskLifecycle(EntityLifecycleCoordinator):
    kind = ReminderKind.TASK

    def _persist(self, entity: RecurringTask) -> RecurringTask:
        return self._store.save_task(entity)

    def _advance(self, task: RecurringTask) -> RecurringTask:
        today = self._scheduler.today()
        next_date = next_task_occurrence(
            today, task.recurrence_kind, task.recurrence_interval,
        ).isoformat()
        return replace(
            task,
            status=TaskStatus.PENDING,
            due_date=next_date,
            next_occurrence=next_date,
            completed_at=None,
            completed_by=None,
        )

    async def complete(self, task: RecurringTask, user_id: str | None = None) -> RecurringTask:
        """Complete a task; recurring tasks roll forward instead of terminating."""
        if task.status != TaskStatus.PENDING:
            logger.warning("Task %s is %s, complete ignored", task.id, task.status.value)
            return task

        completed_at = self._scheduler.now().isoformat()
        if task.is_recurring and task.recurrence_kind:
            updated = self._advance(task)
            if self._store is not None:
                self._store.add_task_completion(
                    TaskCompletion(task_id=task.id, completed_by=user_id, completed_at=completed_at)
                )
            logger.info("Recurring task %s completed, next due %s", task.id, updated.due_date)
        else:
            updated = replace(
                task,
                status=TaskStatus.COMPLETED,
                completed_at=completed_at,
                completed_by=user_id,
            )
            logger.info("Task %s completed", task.id)
        return await self._apply(updated)

    async def skip(self, task: RecurringTask) -> RecurringTask:
        """Skip this occurrence; one-off tasks become skipped."""
        if task.status != TaskStatus.PENDING:
            logger.warning("Task %s is %s, skip ignored", task.id, task.status.value)
            return task

        if task.is_recurring and task.recurrence_kind:
            updated = self._advance(task)
            logger.info("Recurring task %s skipped, next due %s", task.id, updated.due_date)
        else:
            updated = replace(task, status=TaskStatus.SKIPPED)
            logger.info("Task %s skipped", task.id)
        return await self._apply(updated)


# ---------------------------------------------------------------------------
# Bills
# ---------------------------------------------------------------------------


class BillLifecycle(EntityLifecycleCoordinator):
    kind = ReminderKind.BILL

    def _persist(self, entity: Bill) -> Bill:
        return self._store.save_bill(entity)

    def resolve(self, entity: Bill) -> Bill:
        status = bill_status(entity, self._scheduler.today())
        if status == entity.status:
            return entity
        return replace(entity, status=status)

    async def mark_paid(self, bill: Bill, amount: float | None = None) -> Bill:
        """Close the current cycle.

        The next cycle's reminder is not created here; it appears the next
        time on_loaded runs after the cycle rolls over.
        """
        updated = replace(
            bill,
            status=BillStatus.PAID,
            paid_at=self._scheduler.now().isoformat(),
            paid_amount=amount if amount is not None else bill.amount,
        )
        if self._store is not None:
            updated = self._persist(updated)
        await self._scheduler.cancel_for(self.tag(updated.id))
        logger.info("Bill %s paid (%.2f)", updated.id, float(updated.paid_amount))
        return updated


# ---------------------------------------------------------------------------
# Maintenance
# ---------------------------------------------------------------------------


class MaintenanceLifecycle(EntityLifecycleCoordinator):
    kind = ReminderKind.MAINTENANCE

    def _persist(self, entity: MaintenanceItem) -> MaintenanceItem:
        return self._store.save_maintenance_item(entity)

    @staticmethod
    def project(item: MaintenanceItem) -> MaintenanceItem:
        """Recompute next_maintenance_date when interval and last date are both set."""
        if not item.interval_months:
            return item
        last = parse_optional_date(item.last_maintenance_date)
        if last is None:
            return item
        next_date = next_maintenance_date(last, item.interval_months).isoformat()
        if next_date == item.next_maintenance_date:
            return item
        return replace(item, next_maintenance_date=next_date)

    async def on_created(self, entity: MaintenanceItem) -> MaintenanceItem:
        projected = self.project(entity)
        if projected is not entity and self._store is not None:
            projected = self._persist(projected)
        return await super().on_created(projected)

    async def on_updated(self, entity: MaintenanceItem) -> MaintenanceItem:
        projected = self.project(entity)
        if projected is not entity and self._store is not None:
            projected = self._persist(projected)
        return await super().on_updated(projected)

    async def register_event(
        self, item: MaintenanceItem, event: MaintenanceEvent,
    ) -> MaintenanceItem:
        """Record performed maintenance and roll the next date forward."""
        if self._store is not None:
            self._store.add_maintenance_event(event)

        if not item.interval_months:
            logger.info("Maintenance on %s recorded (no interval)", item.id)
            return item

        performed = parse_iso_date(event.maintenance_date, self._scheduler.today())
        updated = replace(
            item,
            last_maintenance_date=performed.isoformat(),
            next_maintenance_date=next_maintenance_date(
                performed, item.interval_months,
            ).isoformat(),
        )
        logger.info(
            "Maintenance on %s recorded, next due %s", item.id, updated.next_maintenance_date,
        )
        return await self._apply(updated)


# ---------------------------------------------------------------------------
# Full refresh
# ---------------------------------------------------------------------------


async def refresh_all(
    store: EntityStore,
    tasks: TaskLifecycle,
    bills: BillLifecycle,
    maintenance: MaintenanceLifecycle,
) -> None:
    """Reload every domain from the store and resync all reminders.

    This is also where a paid bill picks up its next cycle's reminder once
    the month rolls over.
    """
    await tasks.on_loaded(store.list_tasks(status=TaskStatus.PENDING))
    await bills.on_loaded(store.list_bills())
    await maintenance.on_loaded(store.list_maintenance_items())
