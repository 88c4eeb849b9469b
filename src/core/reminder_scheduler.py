"""
HomeOps Reminders — Reminder Scheduler.

Turns tasks, bills and maintenance items into reminders on the notification
gateway, and keeps at most one active reminder per entity tag
("{kind}_{entity_id}").

The scheduler is the only component that talks to the gateway and it owns the
tag -> reminder index. Cancel and schedule for one tag run under that tag's
lock, so two reschedules racing for the same entity cannot leave duplicates.
Different tags are independent and batch work runs concurrently.

Graceful degradation:
- Gateway unavailable (checked once, at construction) -> every call is a no-op
- Gateway schedule/cancel fails -> logged, treated as "no reminder"
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import TYPE_CHECKING, Callable
from zoneinfo import ZoneInfo

from src.config import settings
from src.core.recurrence import days_until, next_bill_cycle_date, parse_optional_date
from src.core.status import is_reminder_active
from src.data.models import (
    Bill,
    MaintenanceItem,
    NotificationPreferences,
    RecurringTask,
    ReminderKind,
    ScheduledReminder,
    reminder_tag,
)

if TYPE_CHECKING:
    from src.ports.notification_port import NotificationPort

logger = logging.getLogger(__name__)

Entity = RecurringTask | Bill | MaintenanceItem


@dataclass
class ReminderPlan:
    """Where and what a reminder should be, before it reaches the gateway."""

    trigger_at: datetime        # after clamping
    candidate_at: datetime      # lead time applied, before clamping
    relevant_date: date
    title: str
    body: str
    clamped: bool = False

    @property
    def signature(self) -> str:
        return f"{self.candidate_at.isoformat()}|{self.title}|{self.body}"


# ---------------------------------------------------------------------------
# Message text
# ---------------------------------------------------------------------------


def _in_days(days: int) -> str:
    if days <= 0:
        return "today"
    return f"in {days} day{'s' if days != 1 else ''}"


def build_reminder_text(
    kind: ReminderKind, entity: Entity, relevant_date: date, fire_day: date,
) -> tuple[str, str]:
    """Return (title, body) for a reminder firing on fire_day."""
    days = days_until(relevant_date, fire_day)

    if kind == ReminderKind.TASK:
        return "Task due", f"{entity.title} is due {_in_days(days)}!"
    if kind == ReminderKind.BILL:
        return (
            "Bill due soon",
            f"{entity.name} ({float(entity.amount):.2f}) is due {_in_days(days)}",
        )
    return "Scheduled maintenance", f"{entity.name} needs maintenance {_in_days(days)}"


# ---------------------------------------------------------------------------
# Scheduler
# ---------------------------------------------------------------------------


class ReminderScheduler:
    """Schedules and cancels entity reminders idempotently, by tag."""

    def __init__(
        self,
        gateway: NotificationPort,
        clock: Callable[[], datetime] | None = None,
        timezone: str | None = None,
        max_concurrency: int | None = None,
    ) -> None:
        self._gateway = gateway
        self._tz = ZoneInfo(timezone or settings.TIMEZONE)
        self._clock = clock or (lambda: datetime.now(self._tz))
        self._max_concurrency = max(1, max_concurrency or settings.REMINDER_MAX_CONCURRENCY)

        self._index: dict[str, list[ScheduledReminder]] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        # tag -> relevant date whose reminder already fired
        self._delivered: dict[str, date] = {}

        try:
            self._available = bool(gateway.is_available())
        except Exception as exc:
            logger.warning("Notification gateway availability check failed: %s", exc)
            self._available = False

        if self._available:
            gateway.set_fired_listener(self._on_fired)
            logger.info("Reminder scheduler ready (tz=%s)", self._tz.key)
        else:
            logger.warning("Notifications unavailable, reminders are disabled")

    @property
    def available(self) -> bool:
        return self._available

    def now(self) -> datetime:
        current = self._clock()
        if current.tzinfo is None:
            return current.replace(tzinfo=self._tz)
        return current.astimezone(self._tz)

    def today(self) -> date:
        return self.now().date()

    def scheduled(self, tag: str | None = None) -> dict[str, list[ScheduledReminder]]:
        """Read-only snapshot of the tag index."""
        if tag is not None:
            return {tag: list(self._index[tag])} if tag in self._index else {}
        return {t: list(rs) for t, rs in self._index.items()}

    # -- public operations --------------------------------------------------

    async def schedule_for(
        self,
        kind: ReminderKind | str,
        entity: Entity,
        preferences: NotificationPreferences,
    ) -> str | None:
        """Replace the entity's reminder with a freshly computed one.

        Returns the gateway identifier, or None when nothing was scheduled
        (notifications off, entity inactive, event already passed, or the
        gateway failed).
        """
        kind = ReminderKind(kind)
        if not self._available or not preferences.category_enabled(kind):
            return None

        tag = reminder_tag(kind, entity.id)
        async with self._lock_for(tag):
            plan = self.plan(kind, entity, preferences)
            if plan is None:
                return None
            await self._cancel_locked(tag)
            return await self._issue_locked(kind, entity, tag, plan)

    async def cancel_for(self, tag: str, forget: bool = False) -> None:
        """Cancel every reminder under tag. Safe when there are none.

        With forget=True the tag's bookkeeping (lock, delivered date) is
        dropped too; use it when the entity itself is gone.
        """
        if not self._available:
            return
        async with self._lock_for(tag):
            await self._cancel_locked(tag)
        if forget:
            self._delivered.pop(tag, None)
            lock = self._locks.get(tag)
            if lock is not None and not lock.locked():
                del self._locks[tag]

    async def reschedule_all(
        self,
        kind: ReminderKind | str,
        entities: list[Entity],
        preferences: NotificationPreferences,
    ) -> dict[str, str]:
        """Bring every reminder of one kind in line with the given entities.

        Entities whose computed reminder is unchanged are left alone,
        inactive ones are cancelled, and reminders of this kind whose entity
        is missing from the batch are cancelled. Runs concurrently across
        tags, bounded by max_concurrency, and waits for every call.

        Returns {tag: identifier} for reminders (re)scheduled in this pass.
        """
        kind = ReminderKind(kind)
        if not self._available:
            return {}

        enabled = preferences.category_enabled(kind)
        batch = entities if enabled else []
        batch_tags = {reminder_tag(kind, e.id) for e in batch}
        orphan_tags = [
            tag for tag, reminders in self._index.items()
            if reminders and reminders[0].kind == kind and tag not in batch_tags
        ]

        semaphore = asyncio.Semaphore(self._max_concurrency)
        issued: dict[str, str] = {}

        async def _sync_entity(entity: Entity) -> None:
            tag = reminder_tag(kind, entity.id)
            async with semaphore, self._lock_for(tag):
                plan = self.plan(kind, entity, preferences)
                if plan is None:
                    await self._cancel_locked(tag)
                    return
                current = self._index.get(tag, [])
                if len(current) == 1 and current[0].signature == plan.signature:
                    return
                await self._cancel_locked(tag)
                identifier = await self._issue_locked(kind, entity, tag, plan)
                if identifier:
                    issued[tag] = identifier

        async def _drop(tag: str) -> None:
            async with semaphore, self._lock_for(tag):
                await self._cancel_locked(tag)

        await asyncio.gather(
            *(_sync_entity(e) for e in batch),
            *(_drop(tag) for tag in orphan_tags),
        )
        logger.info(
            "Rescheduled %s reminders: %d entities, %d new, %d orphans cancelled",
            kind.value, len(batch), len(issued), len(orphan_tags),
        )
        return issued

    async def reconcile(self) -> int:
        """Drop index entries the gateway no longer holds.

        Returns the number of entries removed.
        """
        if not self._available:
            return 0
        try:
            listed = await self._gateway.list_scheduled()
        except Exception:
            logger.exception("list_scheduled failed during reconcile")
            return 0

        live = {entry.get("identifier") for entry in listed}
        removed = 0
        for tag in list(self._index):
            kept = [r for r in self._index[tag] if r.identifier in live]
            removed += len(self._index[tag]) - len(kept)
            if kept:
                self._index[tag] = kept
            else:
                del self._index[tag]
        if removed:
            logger.info("Reconcile dropped %d stale reminder(s)", removed)
        return removed

    async def send_test_notification(self) -> str | None:
        """Deliver an immediate notification to confirm the setup works."""
        if not self._available:
            logger.info("Test notification skipped: notifications unavailable")
            return None
        try:
            return await self._gateway.schedule(
                "HomeOps", "Notifications configured successfully!", None, {"type": "test"},
            )
        except Exception:
            logger.exception("Test notification failed")
            return None

    # -- planning -------------------------------------------------------------

    def relevant_date(self, kind: ReminderKind, entity: Entity, today: date) -> date | None:
        """The date a reminder announces: due date, bill cycle date or maintenance date."""
        if kind == ReminderKind.TASK:
            return parse_optional_date(entity.due_date)
        if kind == ReminderKind.BILL:
            if entity.due_day is None:
                return None
            return next_bill_cycle_date(entity.due_day, today)
        return parse_optional_date(entity.next_maintenance_date)

    def plan(
        self,
        kind: ReminderKind | str,
        entity: Entity,
        preferences: NotificationPreferences,
    ) -> ReminderPlan | None:
        """Compute the reminder for an entity, or None when none is due.

        The candidate trigger is (relevant date - lead days) at the reminder
        clock time. A candidate in the past is clamped to now while the
        relevant date is today or later; once the relevant date itself has
        passed the event is stale and nothing is planned.
        """
        kind = ReminderKind(kind)
        now = self.now()
        today = now.date()

        try:
            if not is_reminder_active(kind, entity, today):
                return None
            relevant = self.relevant_date(kind, entity, today)
        except ValueError as exc:
            logger.warning("Cannot plan %s reminder for %s: %s", kind.value, entity.id, exc)
            return None
        if relevant is None:
            return None

        clock_time = time.fromisoformat(preferences.reminder_time)
        fire_day = relevant - timedelta(days=preferences.lead_days(kind))
        candidate = datetime.combine(fire_day, clock_time, tzinfo=self._tz)

        trigger = candidate
        clamped = False
        if candidate <= now:
            if relevant < today:
                return None
            tag = reminder_tag(kind, entity.id)
            if self._delivered.get(tag) == relevant:
                # already reminded about this date
                return None
            trigger = now
            clamped = True

        title, body = build_reminder_text(kind, entity, relevant, trigger.date())
        return ReminderPlan(
            trigger_at=trigger,
            candidate_at=candidate,
            relevant_date=relevant,
            title=title,
            body=body,
            clamped=clamped,
        )

    # -- internals (caller holds the tag lock) ----------------------------------

    def _lock_for(self, tag: str) -> asyncio.Lock:
        lock = self._locks.get(tag)
        if lock is None:
            lock = self._locks[tag] = asyncio.Lock()
        return lock

    async def _issue_locked(
        self, kind: ReminderKind, entity: Entity, tag: str, plan: ReminderPlan,
    ) -> str | None:
        metadata = {"type": kind.value, "entity_id": entity.id, "tag": tag}
        try:
            identifier = await self._gateway.schedule(
                plan.title, plan.body, plan.trigger_at, metadata,
            )
        except Exception:
            logger.exception("Failed to schedule reminder %s", tag)
            return None

        if not identifier:
            logger.warning("Gateway returned no identifier for %s", tag)
            return None

        self._index[tag] = [
            ScheduledReminder(
                kind=kind,
                entity_id=entity.id,
                tag=tag,
                identifier=identifier,
                trigger_at=plan.trigger_at,
                relevant_date=plan.relevant_date,
                signature=plan.signature,
                metadata=metadata,
            )
        ]
        logger.info(
            "Reminder %s scheduled for %s%s",
            tag, plan.trigger_at.isoformat(), " (clamped to now)" if plan.clamped else "",
        )
        return identifier

    async def _cancel_locked(self, tag: str) -> None:
        reminders = self._index.pop(tag, [])
        for reminder in reminders:
            try:
                await self._gateway.cancel(reminder.identifier)
            except Exception:
                logger.exception("Failed to cancel reminder %s (%s)", tag, reminder.identifier)
        if reminders:
            logger.info("Cancelled %d reminder(s) for %s", len(reminders), tag)

    def _on_fired(self, identifier: str) -> None:
        """Gateway callback: a reminder was delivered and no longer exists."""
        for tag, reminders in list(self._index.items()):
            for reminder in reminders:
                if reminder.identifier != identifier:
                    continue
                if reminder.relevant_date is not None:
                    self._delivered[tag] = reminder.relevant_date
                remaining = [r for r in reminders if r.identifier != identifier]
                if remaining:
                    self._index[tag] = remaining
                else:
                    del self._index[tag]
                logger.debug("Reminder %s fired (%s)", tag, identifier)
                return
