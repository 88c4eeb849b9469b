"""Notification port — abstract interface for the platform that delivers reminders.

Core modules depend on this protocol, never on a specific messaging provider.
The gateway is constructed once at startup and handed to ReminderScheduler.
"""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Protocol


class NotificationError(Exception):
    """Raised when a notification gateway operation fails."""


class NotificationPort(Protocol):
    """Abstract notification gateway used by ReminderScheduler."""

    def is_available(self) -> bool: ...

    async def schedule(
        self,
        title: str,
        body: str,
        trigger_at: datetime | None,
        metadata: dict,
    ) -> str: ...

    async def cancel(self, identifier: str) -> None: ...

    async def list_scheduled(self) -> list[dict]: ...

    def set_fired_listener(self, callback: Callable[[str], None]) -> None: ...
