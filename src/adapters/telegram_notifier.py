"""Telegram notification gateway — implements NotificationPort.

Reminders are one-shot jobs on the python-telegram-bot JobQueue. When a job
runs, the reminder is sent as a chat message and the scheduler is told that
the reminder no longer exists.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Callable

from telegram import Bot
from telegram.ext import ContextTypes, JobQueue

from src.ports.notification_port import NotificationError

logger = logging.getLogger(__name__)


class TelegramNotificationGateway:
    """Telegram implementation of NotificationPort."""

    def __init__(self, bot: Bot, job_queue: JobQueue | None, chat_id: int | None) -> None:
        self._bot = bot
        self._job_queue = job_queue
        self._chat_id = chat_id
        self._pending: set[str] = set()
        self._on_fired: Callable[[str], None] | None = None

    def is_available(self) -> bool:
        if self._job_queue is None:
            logger.warning("Telegram JobQueue missing, install python-telegram-bot[job-queue]")
            return False
        if self._chat_id is None:
            logger.warning("NOTIFY_CHAT_ID is not set, nowhere to deliver reminders")
            return False
        return True

    def set_fired_listener(self, callback: Callable[[str], None]) -> None:
        self._on_fired = callback

    async def schedule(
        self,
        title: str,
        body: str,
        trigger_at: datetime | None,
        metadata: dict,
    ) -> str:
        """Queue a one-shot delivery. trigger_at None (or past) means now."""
        identifier = uuid.uuid4().hex
        when: datetime | float = 0
        if trigger_at is not None and trigger_at > datetime.now(trigger_at.tzinfo):
            when = trigger_at

        try:
            self._job_queue.run_once(
                self._deliver,
                when=when,
                data={"title": title, "body": body, "metadata": dict(metadata)},
                name=identifier,
                chat_id=self._chat_id,
            )
        except Exception as exc:
            raise NotificationError(f"Failed to queue reminder: {exc}") from exc

        self._pending.add(identifier)
        return identifier

    async def cancel(self, identifier: str) -> None:
        if not identifier:
            return
        for job in self._job_queue.get_jobs_by_name(identifier):
            job.schedule_removal()
        self._pending.discard(identifier)

    async def list_scheduled(self) -> list[dict]:
        scheduled = []
        for job in self._job_queue.jobs():
            if job.name not in self._pending or job.removed:
                continue
            data = job.data or {}
            scheduled.append({
                "identifier": job.name,
                "metadata": data.get("metadata", {}),
                "trigger_at": job.next_t,
            })
        return scheduled

    async def _deliver(self, context: ContextTypes.DEFAULT_TYPE) -> None:
        job = context.job
        data = job.data or {}
        try:
            await self._bot.send_message(
                chat_id=job.chat_id,
                text=f"{data.get('title', 'HomeOps')}\n{data.get('body', '')}",
            )
        except Exception:
            logger.exception("Failed to deliver reminder %s", job.name)
        finally:
            self._pending.discard(job.name)
            if self._on_fired is not None:
                self._on_fired(job.name)
