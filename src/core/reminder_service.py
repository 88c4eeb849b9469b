"""
HomeOps Reminders — Reminder Service.

The surface each domain's store layer calls: one-entity scheduling, batch
scheduling per domain, cancel by tag, and the notification preferences.
Preferences are read from the preference store on every call so a settings
change applies to the next schedule without a restart.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from src.data.models import (
    Bill,
    MaintenanceItem,
    NotificationPreferences,
    RecurringTask,
    ReminderKind,
)

if TYPE_CHECKING:
    from src.core.reminder_scheduler import ReminderScheduler
    from src.ports.store_port import PreferenceStore

logger = logging.getLogger(__name__)


class ReminderService:
    """Thin facade over ReminderScheduler bound to a preference store."""

    def __init__(self, scheduler: ReminderScheduler, preferences: PreferenceStore) -> None:
        self._scheduler = scheduler
        self._preferences = preferences

    # -- preferences ------------------------------------------------------------

    def get_preferences(self) -> NotificationPreferences:
        return self._preferences.get()

    def save_preferences(self, **partial: object) -> NotificationPreferences:
        prefs = self._preferences.save(**partial)
        logger.info("Notification preferences saved: %s", sorted(partial))
        return prefs

    # -- single entity ----------------------------------------------------------

    async def schedule_task_reminder(self, task: RecurringTask) -> str | None:
        return await self._scheduler.schedule_for(ReminderKind.TASK, task, self.get_preferences())

    async def schedule_bill_reminder(self, bill: Bill) -> str | None:
        return await self._scheduler.schedule_for(ReminderKind.BILL, bill, self.get_preferences())

    async def schedule_maintenance_reminder(self, item: MaintenanceItem) -> str | None:
        return await self._scheduler.schedule_for(
            ReminderKind.MAINTENANCE, item, self.get_preferences(),
        )

    # -- batch ----------------------------------------------------------------------

    async def schedule_all_task_reminders(self, tasks: list[RecurringTask]) -> dict[str, str]:
        return await self._scheduler.reschedule_all(ReminderKind.TASK, tasks, self.get_preferences())

    async def schedule_all_bill_reminders(self, bills: list[Bill]) -> dict[str, str]:
        return await self._scheduler.reschedule_all(ReminderKind.BILL, bills, self.get_preferences())

    async def schedule_all_maintenance_reminders(
        self, items: list[MaintenanceItem],
    ) -> dict[str, str]:
        return await self._scheduler.reschedule_all(
            ReminderKind.MAINTENANCE, items, self.get_preferences(),
        )

    # -- cancel / misc ------------------------------------------------------------

    async def cancel_notifications_by_tag(self, tag: str) -> None:
        await self._scheduler.cancel_for(tag)

    async def send_test_notification(self) -> str | None:
        return await self._scheduler.send_test_notification()
