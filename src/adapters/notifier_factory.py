"""Notification gateway factory — creates the right gateway based on config."""

from __future__ import annotations

from typing import TYPE_CHECKING

from src.config import settings
from src.ports.notification_port import NotificationPort

if TYPE_CHECKING:
    from telegram.ext import Application


def create_notification_gateway(app: Application | None = None) -> NotificationPort:
    """Return the gateway matching NOTIFICATION_PROVIDER.

    Args:
        app: The Telegram application whose bot and JobQueue deliver
             reminders. Without it the Telegram provider degrades to the
             disabled gateway.
    """
    provider = settings.NOTIFICATION_PROVIDER.lower()

    if provider == "disabled" or (provider == "telegram" and app is None):
        from src.adapters.disabled_notifier import DisabledNotificationGateway

        return DisabledNotificationGateway()

    if provider == "telegram":
        from src.adapters.telegram_notifier import TelegramNotificationGateway

        return TelegramNotificationGateway(
            bot=app.bot,
            job_queue=app.job_queue,
            chat_id=settings.NOTIFY_CHAT_ID,
        )

    raise ValueError(f"Unknown NOTIFICATION_PROVIDER: {provider!r}")
