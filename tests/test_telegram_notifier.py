"""Tests for src.adapters.telegram_notifier — JobQueue-backed reminders.

The JobQueue and Bot are mocked; nothing talks to Telegram.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.adapters.telegram_notifier import TelegramNotificationGateway
from src.ports.notification_port import NotificationError


def _make_gateway(job_queue=None, chat_id=12345):
    bot = MagicMock()
    bot.send_message = AsyncMock()
    queue = job_queue if job_queue is not None else MagicMock()
    return TelegramNotificationGateway(bot=bot, job_queue=queue, chat_id=chat_id), bot, queue


def _make_job(name, data=None, removed=False):
    job = MagicMock()
    job.name = name
    job.data = data
    job.removed = removed
    job.chat_id = 12345
    return job


class TestAvailability:
    def test_available_with_queue_and_chat(self):
        gateway, _, _ = _make_gateway()
        assert gateway.is_available() is True

    def test_unavailable_without_job_queue(self):
        gateway = TelegramNotificationGateway(bot=MagicMock(), job_queue=None, chat_id=1)
        assert gateway.is_available() is False

    def test_unavailable_without_chat(self):
        gateway, _, _ = _make_gateway(chat_id=None)
        assert gateway.is_available() is False


class TestSchedule:
    @pytest.mark.asyncio
    async def test_future_trigger_passed_through(self):
        gateway, _, queue = _make_gateway()
        trigger = datetime.now(timezone.utc) + timedelta(days=2)

        identifier = await gateway.schedule("Task due", "Trash is due today!", trigger, {"tag": "task_t1"})

        kwargs = queue.run_once.call_args.kwargs
        assert kwargs["when"] == trigger
        assert kwargs["name"] == identifier
        assert kwargs["chat_id"] == 12345
        assert kwargs["data"] == {
            "title": "Task due", "body": "Trash is due today!", "metadata": {"tag": "task_t1"},
        }

    @pytest.mark.asyncio
    async def test_past_trigger_runs_immediately(self):
        gateway, _, queue = _make_gateway()
        await gateway.schedule("t", "b", datetime.now(timezone.utc) - timedelta(minutes=1), {})
        assert queue.run_once.call_args.kwargs["when"] == 0

    @pytest.mark.asyncio
    async def test_no_trigger_runs_immediately(self):
        gateway, _, queue = _make_gateway()
        await gateway.schedule("t", "b", None, {"type": "test"})
        assert queue.run_once.call_args.kwargs["when"] == 0

    @pytest.mark.asyncio
    async def test_queue_error_wrapped(self):
        gateway, _, queue = _make_gateway()
        queue.run_once.side_effect = RuntimeError("scheduler shut down")
        with pytest.raises(NotificationError, match="scheduler shut down"):
            await gateway.schedule("t", "b", None, {})

    @pytest.mark.asyncio
    async def test_identifiers_are_unique(self):
        gateway, _, _ = _make_gateway()
        first = await gateway.schedule("t", "b", None, {})
        second = await gateway.schedule("t", "b", None, {})
        assert first and second and first != second


class TestCancelAndList:
    @pytest.mark.asyncio
    async def test_cancel_removes_named_jobs(self):
        gateway, _, queue = _make_gateway()
        identifier = await gateway.schedule("t", "b", None, {})
        job = _make_job(identifier)
        queue.get_jobs_by_name.return_value = (job,)

        await gateway.cancel(identifier)

        queue.get_jobs_by_name.assert_called_once_with(identifier)
        job.schedule_removal.assert_called_once()

    @pytest.mark.asyncio
    async def test_cancel_empty_identifier_is_noop(self):
        gateway, _, queue = _make_gateway()
        await gateway.cancel("")
        queue.get_jobs_by_name.assert_not_called()

    @pytest.mark.asyncio
    async def test_list_only_own_live_jobs(self):
        gateway, _, queue = _make_gateway()
        mine = await gateway.schedule("t", "b", None, {"tag": "bill_b1"})
        cancelled = await gateway.schedule("t", "b", None, {"tag": "bill_b2"})
        queue.get_jobs_by_name.return_value = ()
        await gateway.cancel(cancelled)

        queue.jobs.return_value = (
            _make_job(mine, data={"metadata": {"tag": "bill_b1"}}),
            _make_job(cancelled, data={"metadata": {"tag": "bill_b2"}}),
            _make_job("daily_reminder_refresh"),
        )

        listed = await gateway.list_scheduled()

        assert [entry["identifier"] for entry in listed] == [mine]
        assert listed[0]["metadata"] == {"tag": "bill_b1"}


class TestDeliver:
    @pytest.mark.asyncio
    async def test_sends_message_and_reports_fired(self):
        gateway, bot, _ = _make_gateway()
        fired = []
        gateway.set_fired_listener(fired.append)
        identifier = await gateway.schedule("Bill due soon", "Rent (900.00) is due in 3 days", None, {})

        context = MagicMock()
        context.job = _make_job(identifier, data={
            "title": "Bill due soon", "body": "Rent (900.00) is due in 3 days", "metadata": {},
        })
        await gateway._deliver(context)

        bot.send_message.assert_awaited_once_with(
            chat_id=12345, text="Bill due soon\nRent (900.00) is due in 3 days",
        )
        assert fired == [identifier]

    @pytest.mark.asyncio
    async def test_send_failure_still_reports_fired(self):
        gateway, bot, _ = _make_gateway()
        bot.send_message.side_effect = RuntimeError("network down")
        fired = []
        gateway.set_fired_listener(fired.append)

        context = MagicMock()
        context.job = _make_job("abc", data={"title": "t", "body": "b"})
        await gateway._deliver(context)

        assert fired == ["abc"]
