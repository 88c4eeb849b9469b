"""Disabled notification gateway — used when no delivery channel is configured.

Reports itself unavailable, so ReminderScheduler turns every call into a
no-op. The methods exist only to satisfy NotificationPort.
"""

from __future__ import annotations

from datetime import datetime
from typing import Callable


class DisabledNotificationGateway:
    """NotificationPort that never delivers anything."""

    def is_available(self) -> bool:
        return False

    def set_fired_listener(self, callback: Callable[[str], None]) -> None:
        pass

    async def schedule(
        self,
        title: str,
        body: str,
        trigger_at: datetime | None,
        metadata: dict,
    ) -> str:
        return ""

    async def cancel(self, identifier: str) -> None:
        pass

    async def list_scheduled(self) -> list[dict]:
        return []
