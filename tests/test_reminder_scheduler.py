"""Tests for src.core.reminder_scheduler — idempotent, tag-keyed reminders."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

from fakes import FakeNotificationGateway
from src.core.reminder_scheduler import ReminderScheduler, build_reminder_text
from src.data.models import (
    Bill,
    BillStatus,
    MaintenanceItem,
    NotificationPreferences,
    RecurringTask,
    ReminderKind,
    TaskStatus,
)


def _utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def _task(task_id="t1", due_date="2024-05-03", **kwargs) -> RecurringTask:
    return RecurringTask(id=task_id, title="Take out trash", due_date=due_date, **kwargs)


def _bill(bill_id="b1", due_day=10, **kwargs) -> Bill:
    return Bill(id=bill_id, name="Power", amount=120.0, due_day=due_day, **kwargs)


def _item(item_id="m1", next_date="2024-05-20") -> MaintenanceItem:
    return MaintenanceItem(id=item_id, name="Air conditioner", interval_months=6,
                           next_maintenance_date=next_date)


# ---------------------------------------------------------------------------
# schedule_for
# ---------------------------------------------------------------------------


class TestScheduleFor:
    @pytest.mark.asyncio
    async def test_schedules_task_at_reminder_time_on_due_date(self, scheduler, gateway, prefs):
        identifier = await scheduler.schedule_for(ReminderKind.TASK, _task(), prefs)

        assert identifier is not None
        [call] = gateway.schedule_calls
        assert call["trigger_at"] == _utc(2024, 5, 3, 9, 0)
        assert call["metadata"] == {"type": "task", "entity_id": "t1", "tag": "task_t1"}
        assert call["body"] == "Take out trash is due today!"

    @pytest.mark.asyncio
    async def test_twice_leaves_exactly_one_reminder(self, scheduler, gateway, prefs):
        first = await scheduler.schedule_for(ReminderKind.TASK, _task(), prefs)
        second = await scheduler.schedule_for(ReminderKind.TASK, _task(), prefs)

        assert first != second
        assert len(gateway.with_tag("task_t1")) == 1
        assert [r.identifier for r in scheduler.scheduled("task_t1")["task_t1"]] == [second]
        assert gateway.cancel_calls == [first]

    @pytest.mark.asyncio
    async def test_concurrent_calls_for_same_tag_do_not_duplicate(self, scheduler, gateway, prefs):
        await asyncio.gather(*(
            scheduler.schedule_for(ReminderKind.TASK, _task(), prefs) for _ in range(5)
        ))
        assert len(gateway.with_tag("task_t1")) == 1
        assert len(scheduler.scheduled("task_t1")["task_t1"]) == 1

    @pytest.mark.asyncio
    async def test_due_today_before_reminder_time_not_clamped(self, scheduler, gateway, prefs):
        await scheduler.schedule_for(ReminderKind.TASK, _task(due_date="2024-05-01"), prefs)
        assert gateway.schedule_calls[0]["trigger_at"] == _utc(2024, 5, 1, 9, 0)

    @pytest.mark.asyncio
    async def test_due_today_after_reminder_time_clamps_to_now(self, scheduler, gateway, clock, prefs):
        clock.current = _utc(2024, 5, 1, 10, 30)
        identifier = await scheduler.schedule_for(ReminderKind.TASK, _task(due_date="2024-05-01"), prefs)

        assert identifier is not None
        assert gateway.schedule_calls[0]["trigger_at"] == _utc(2024, 5, 1, 10, 30)

    @pytest.mark.asyncio
    async def test_stale_event_issues_no_gateway_call(self, scheduler, gateway, prefs):
        identifier = await scheduler.schedule_for(ReminderKind.TASK, _task(due_date="2024-04-29"), prefs)

        assert identifier is None
        assert gateway.calls == 0

    @pytest.mark.asyncio
    async def test_bill_uses_lead_days(self, scheduler, gateway, prefs):
        await scheduler.schedule_for(ReminderKind.BILL, _bill(due_day=10), prefs)

        [call] = gateway.schedule_calls
        assert call["trigger_at"] == _utc(2024, 5, 7, 9, 0)
        assert call["body"] == "Power (120.00) is due in 3 days"

    @pytest.mark.asyncio
    async def test_bill_lead_window_passed_clamps_to_now(self, scheduler, gateway, prefs):
        await scheduler.schedule_for(ReminderKind.BILL, _bill(due_day=2), prefs)

        [call] = gateway.schedule_calls
        assert call["trigger_at"] == _utc(2024, 5, 1, 8, 0)
        assert call["body"] == "Power (120.00) is due in 1 day"

    @pytest.mark.asyncio
    async def test_bill_past_due_day_targets_next_cycle(self, scheduler, gateway, clock, prefs):
        clock.current = _utc(2024, 5, 20, 8, 0)
        await scheduler.schedule_for(ReminderKind.BILL, _bill(due_day=5), prefs)
        assert gateway.schedule_calls[0]["trigger_at"] == _utc(2024, 6, 2, 9, 0)

    @pytest.mark.asyncio
    async def test_paid_bill_not_scheduled(self, scheduler, gateway, prefs):
        bill = _bill(status=BillStatus.PAID, paid_at="2024-05-01T07:00:00")
        assert await scheduler.schedule_for(ReminderKind.BILL, bill, prefs) is None
        assert gateway.calls == 0

    @pytest.mark.asyncio
    async def test_maintenance_uses_lead_days(self, scheduler, gateway, prefs):
        await scheduler.schedule_for(ReminderKind.MAINTENANCE, _item(), prefs)

        [call] = gateway.schedule_calls
        assert call["trigger_at"] == _utc(2024, 5, 13, 9, 0)
        assert call["body"] == "Air conditioner needs maintenance in 7 days"

    @pytest.mark.asyncio
    async def test_custom_clock_time_and_lead(self, scheduler, gateway):
        prefs = NotificationPreferences(reminder_time="18:30", maintenance_reminder_days_before=1)
        await scheduler.schedule_for(ReminderKind.MAINTENANCE, _item(), prefs)
        assert gateway.schedule_calls[0]["trigger_at"] == _utc(2024, 5, 19, 18, 30)

    @pytest.mark.asyncio
    async def test_accepts_string_kind(self, scheduler, gateway, prefs):
        assert await scheduler.schedule_for("task", _task(), prefs) is not None

    @pytest.mark.asyncio
    async def test_completed_task_not_scheduled(self, scheduler, gateway, prefs):
        task = _task(status=TaskStatus.COMPLETED)
        assert await scheduler.schedule_for(ReminderKind.TASK, task, prefs) is None
        assert gateway.calls == 0


class TestScheduleForPreconditions:
    @pytest.mark.asyncio
    async def test_global_toggle_off(self, scheduler, gateway):
        prefs = NotificationPreferences(enabled=False)
        assert await scheduler.schedule_for(ReminderKind.TASK, _task(), prefs) is None
        assert gateway.calls == 0

    @pytest.mark.asyncio
    async def test_category_toggle_off(self, scheduler, gateway):
        prefs = NotificationPreferences(bill_reminders=False)
        assert await scheduler.schedule_for(ReminderKind.BILL, _bill(), prefs) is None
        assert await scheduler.schedule_for(ReminderKind.TASK, _task(), prefs) is not None

    @pytest.mark.asyncio
    async def test_unavailable_gateway_is_noop(self, clock, prefs):
        gateway = FakeNotificationGateway(available=False)
        scheduler = ReminderScheduler(gateway, clock=clock, timezone="UTC")

        assert scheduler.available is False
        assert await scheduler.schedule_for(ReminderKind.TASK, _task(), prefs) is None
        await scheduler.cancel_for("task_t1")
        assert await scheduler.reschedule_all(ReminderKind.TASK, [_task()], prefs) == {}
        assert gateway.calls == 0

    @pytest.mark.asyncio
    async def test_availability_checked_once(self, clock, prefs):
        gateway = FakeNotificationGateway(available=True)
        scheduler = ReminderScheduler(gateway, clock=clock, timezone="UTC")
        gateway.available = False

        assert await scheduler.schedule_for(ReminderKind.TASK, _task(), prefs) is not None

    @pytest.mark.asyncio
    async def test_bill_with_bad_due_day_is_skipped(self, scheduler, gateway, prefs):
        assert await scheduler.schedule_for(ReminderKind.BILL, _bill(due_day=40), prefs) is None
        assert gateway.calls == 0


class TestGatewayFailures:
    @pytest.mark.asyncio
    async def test_schedule_failure_returns_none(self, scheduler, gateway, prefs):
        gateway.fail_schedule = True
        assert await scheduler.schedule_for(ReminderKind.TASK, _task(), prefs) is None
        assert scheduler.scheduled() == {}

    @pytest.mark.asyncio
    async def test_cancel_failure_is_not_fatal(self, scheduler, gateway, prefs):
        await scheduler.schedule_for(ReminderKind.TASK, _task(), prefs)
        gateway.fail_cancel = True

        identifier = await scheduler.schedule_for(ReminderKind.TASK, _task(), prefs)
        assert identifier is not None
        await scheduler.cancel_for("task_t1")
        assert scheduler.scheduled() == {}


# ---------------------------------------------------------------------------
# cancel_for / fired / reconcile
# ---------------------------------------------------------------------------


class TestCancelFor:
    @pytest.mark.asyncio
    async def test_cancels_tagged_reminder(self, scheduler, gateway, prefs):
        await scheduler.schedule_for(ReminderKind.TASK, _task(), prefs)
        await scheduler.cancel_for("task_t1")

        assert gateway.with_tag("task_t1") == []
        assert scheduler.scheduled("task_t1") == {}

    @pytest.mark.asyncio
    async def test_unknown_tag_is_noop(self, scheduler, gateway):
        await scheduler.cancel_for("task_nope")
        assert gateway.calls == 0

    @pytest.mark.asyncio
    async def test_forget_drops_tag_bookkeeping(self, scheduler, gateway, clock, prefs):
        clock.current = _utc(2024, 5, 1, 10, 0)
        identifier = await scheduler.schedule_for(ReminderKind.TASK, _task(due_date="2024-05-01"), prefs)
        gateway.fire(identifier)
        assert "task_t1" in scheduler._delivered

        await scheduler.cancel_for("task_t1", forget=True)

        assert "task_t1" not in scheduler._delivered
        assert "task_t1" not in scheduler._locks

    @pytest.mark.asyncio
    async def test_plain_cancel_keeps_delivered_date(self, scheduler, gateway, clock, prefs):
        clock.current = _utc(2024, 5, 1, 10, 0)
        identifier = await scheduler.schedule_for(ReminderKind.TASK, _task(due_date="2024-05-01"), prefs)
        gateway.fire(identifier)

        await scheduler.cancel_for("task_t1")

        assert scheduler._delivered["task_t1"].isoformat() == "2024-05-01"

    @pytest.mark.asyncio
    async def test_other_tags_untouched(self, scheduler, gateway, prefs):
        await scheduler.schedule_for(ReminderKind.TASK, _task("t1"), prefs)
        await scheduler.schedule_for(ReminderKind.TASK, _task("t2"), prefs)
        await scheduler.cancel_for("task_t1")
        assert len(gateway.with_tag("task_t2")) == 1


class TestFiredAndReconcile:
    @pytest.mark.asyncio
    async def test_fired_reminder_leaves_index(self, scheduler, gateway, prefs):
        identifier = await scheduler.schedule_for(ReminderKind.TASK, _task(), prefs)
        gateway.fire(identifier)
        assert scheduler.scheduled() == {}

    @pytest.mark.asyncio
    async def test_delivered_clamped_reminder_is_not_repeated(self, scheduler, gateway, clock, prefs):
        clock.current = _utc(2024, 5, 1, 10, 0)
        task = _task(due_date="2024-05-01")
        identifier = await scheduler.schedule_for(ReminderKind.TASK, task, prefs)
        gateway.fire(identifier)

        clock.advance(hours=2)
        assert await scheduler.schedule_for(ReminderKind.TASK, task, prefs) is None

    @pytest.mark.asyncio
    async def test_reconcile_drops_vanished_reminders(self, scheduler, gateway, prefs):
        await scheduler.schedule_for(ReminderKind.TASK, _task("t1"), prefs)
        await scheduler.schedule_for(ReminderKind.TASK, _task("t2"), prefs)
        gateway.notifications.clear()

        assert await scheduler.reconcile() == 2
        assert scheduler.scheduled() == {}

    @pytest.mark.asyncio
    async def test_send_test_notification_is_immediate(self, scheduler, gateway):
        assert await scheduler.send_test_notification() is not None
        assert gateway.schedule_calls[0]["trigger_at"] is None
        assert gateway.schedule_calls[0]["metadata"] == {"type": "test"}


# ---------------------------------------------------------------------------
# reschedule_all
# ---------------------------------------------------------------------------


class TestRescheduleAll:
    @pytest.mark.asyncio
    async def test_schedules_every_active_entity(self, scheduler, gateway, prefs):
        tasks = [_task("t1"), _task("t2", due_date="2024-05-09"), _task("t3", due_date=None)]
        issued = await scheduler.reschedule_all(ReminderKind.TASK, tasks, prefs)

        assert set(issued) == {"task_t1", "task_t2"}
        assert len(gateway.notifications) == 2

    @pytest.mark.asyncio
    async def test_unchanged_entities_are_not_touched(self, scheduler, gateway, prefs):
        tasks = [_task("t1"), _task("t2", due_date="2024-05-09")]
        await scheduler.reschedule_all(ReminderKind.TASK, tasks, prefs)
        calls_before = gateway.calls

        issued = await scheduler.reschedule_all(ReminderKind.TASK, tasks, prefs)

        assert issued == {}
        assert gateway.calls == calls_before

    @pytest.mark.asyncio
    async def test_changed_entity_is_rescheduled(self, scheduler, gateway, prefs):
        await scheduler.reschedule_all(ReminderKind.TASK, [_task("t1"), _task("t2")], prefs)

        issued = await scheduler.reschedule_all(
            ReminderKind.TASK, [_task("t1"), _task("t2", due_date="2024-05-12")], prefs,
        )

        assert set(issued) == {"task_t2"}
        [remaining] = gateway.with_tag("task_t2")
        assert remaining["trigger_at"] == _utc(2024, 5, 12, 9, 0)

    @pytest.mark.asyncio
    async def test_missing_entities_are_cancelled(self, scheduler, gateway, prefs):
        await scheduler.reschedule_all(ReminderKind.TASK, [_task("t1"), _task("t2")], prefs)
        await scheduler.reschedule_all(ReminderKind.TASK, [_task("t1")], prefs)

        assert gateway.with_tag("task_t2") == []
        assert set(scheduler.scheduled()) == {"task_t1"}

    @pytest.mark.asyncio
    async def test_other_kinds_are_left_alone(self, scheduler, gateway, prefs):
        await scheduler.schedule_for(ReminderKind.BILL, _bill(), prefs)
        await scheduler.reschedule_all(ReminderKind.TASK, [], prefs)
        assert len(gateway.with_tag("bill_b1")) == 1

    @pytest.mark.asyncio
    async def test_category_disabled_cancels_kind(self, scheduler, gateway, prefs):
        await scheduler.reschedule_all(ReminderKind.TASK, [_task("t1"), _task("t2")], prefs)

        off = NotificationPreferences(task_reminders=False)
        issued = await scheduler.reschedule_all(ReminderKind.TASK, [_task("t1"), _task("t2")], off)

        assert issued == {}
        assert gateway.notifications == {}

    @pytest.mark.asyncio
    async def test_inactive_entity_is_cancelled(self, scheduler, gateway, prefs):
        await scheduler.reschedule_all(ReminderKind.BILL, [_bill()], prefs)
        paid = _bill(status=BillStatus.PAID, paid_at="2024-05-01T07:30:00")

        await scheduler.reschedule_all(ReminderKind.BILL, [paid], prefs)

        assert gateway.notifications == {}

    @pytest.mark.asyncio
    async def test_one_failure_does_not_stop_the_batch(self, scheduler, gateway, prefs):
        gateway.fail_schedule = True
        issued = await scheduler.reschedule_all(ReminderKind.TASK, [_task("t1"), _task("t2")], prefs)
        assert issued == {}
        assert len(gateway.schedule_calls) == 2

    @pytest.mark.asyncio
    async def test_gateway_calls_bounded_by_max_concurrency(self, clock, prefs):
        gateway = FakeNotificationGateway()
        gateway.delay = 0.005
        scheduler = ReminderScheduler(gateway, clock=clock, timezone="UTC", max_concurrency=3)
        tasks = [_task(f"t{i}", due_date="2024-05-10") for i in range(20)]

        issued = await scheduler.reschedule_all(ReminderKind.TASK, tasks, prefs)

        assert len(issued) == 20
        assert 1 < gateway.peak_in_flight <= 3

    @pytest.mark.asyncio
    async def test_many_entities_one_reminder_each(self, scheduler, gateway, prefs):
        tasks = [_task(f"t{i}", due_date="2024-05-10") for i in range(20)]
        await scheduler.reschedule_all(ReminderKind.TASK, tasks, prefs)
        await scheduler.reschedule_all(ReminderKind.TASK, tasks, prefs)

        assert len(gateway.notifications) == 20
        for i in range(20):
            assert len(gateway.with_tag(f"task_t{i}")) == 1


class TestBuildReminderText:
    def test_plural_days(self):
        title, body = build_reminder_text(
            ReminderKind.BILL, _bill(), datetime(2024, 5, 10).date(), datetime(2024, 5, 7).date(),
        )
        assert title == "Bill due soon"
        assert body == "Power (120.00) is due in 3 days"

    def test_today(self):
        _, body = build_reminder_text(
            ReminderKind.MAINTENANCE, _item(), datetime(2024, 5, 7).date(), datetime(2024, 5, 7).date(),
        )
        assert body == "Air conditioner needs maintenance today"
