"""
HomeOps Reminders — Telegram Bot.

Telegram is the delivery channel for household reminders: the bot's
JobQueue holds the scheduled reminders and the household chat receives them.
A handful of commands let the household inspect and refresh the schedule.

Only the configured household chat is answered; everyone else is silently
ignored.
"""

from __future__ import annotations

import logging
import sys
from datetime import time as dt_time
from functools import wraps
from typing import Any, Callable, Coroutine
from zoneinfo import ZoneInfo

from telegram import Update
from telegram.ext import (
    Application,
    ApplicationBuilder,
    CommandHandler,
    ContextTypes,
)

from src.config import settings
from src.core.lifecycle import (
    BillLifecycle,
    MaintenanceLifecycle,
    TaskLifecycle,
    refresh_all,
)
from src.core.reminder_scheduler import ReminderScheduler
from src.core.reminder_service import ReminderService
from src.data.db import HouseholdDB, PreferenceDB

logger = logging.getLogger(__name__)

# Runs shortly after midnight so bill cycles roll over on the first of the month
_DAILY_REFRESH_TIME = dt_time(hour=0, minute=5)


# ---------------------------------------------------------------------------
# Security: silent-ignore decorator
# ---------------------------------------------------------------------------


def household_only(
    func: Callable[..., Coroutine[Any, Any, None]],
) -> Callable[..., Coroutine[Any, Any, None]]:
    """Decorator that ignores updates from any chat but the household's."""

    @wraps(func)
    async def wrapper(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        chat = update.effective_chat
        if chat is None or chat.id != settings.NOTIFY_CHAT_ID:
            cid = chat.id if chat else "unknown"
            logger.warning("Ignoring update from chat_id=%s", cid)
            return
        return await func(update, context)

    return wrapper


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@household_only
async def cmd_start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await update.message.reply_text(
        "HomeOps reminders are running.\n"
        "/reminders: list scheduled reminders\n"
        "/refresh: rebuild reminders from the household data\n"
        "/testnotify: send a test notification"
    )


@household_only
async def cmd_reminders(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    scheduler: ReminderScheduler = context.bot_data["scheduler"]
    await update.message.reply_text(format_schedule(scheduler))


@household_only
async def cmd_refresh(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await refresh_reminders(context.bot_data)
    scheduler: ReminderScheduler = context.bot_data["scheduler"]
    await update.message.reply_text(format_schedule(scheduler))


@household_only
async def cmd_testnotify(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    service: ReminderService = context.bot_data["service"]
    identifier = await service.send_test_notification()
    if identifier is None:
        await update.message.reply_text("Notifications are unavailable.")


def format_schedule(scheduler: ReminderScheduler) -> str:
    """Human-readable list of scheduled reminders, soonest first."""
    if not scheduler.available:
        return "Notifications are unavailable."

    reminders = [r for rs in scheduler.scheduled().values() for r in rs]
    if not reminders:
        return "No reminders scheduled."

    reminders.sort(key=lambda r: r.trigger_at)
    lines = [f"  {r.trigger_at:%Y-%m-%d %H:%M} {r.tag}" for r in reminders]
    return "Scheduled reminders:\n" + "\n".join(lines)


# ---------------------------------------------------------------------------
# Reminder refresh
# ---------------------------------------------------------------------------


async def refresh_reminders(bot_data: dict) -> None:
    """Resync every reminder from the household store.

    Reminders the JobQueue no longer holds are dropped from the index first,
    so the resync schedules them again where still due.

    Never raises: a failed refresh leaves the previous schedule in place.
    """
    try:
        await bot_data["scheduler"].reconcile()
        await refresh_all(
            bot_data["household_db"],
            bot_data["task_lifecycle"],
            bot_data["bill_lifecycle"],
            bot_data["maintenance_lifecycle"],
        )
    except Exception as exc:
        logger.error("Reminder refresh failed: %s", exc)


async def _post_init(app: Application) -> None:
    await refresh_reminders(app.bot_data)


def _setup_daily_refresh(app: Application) -> None:
    """Register the nightly refresh that rolls reminders into the new day."""
    if app.job_queue is None:
        return

    tz = ZoneInfo(settings.TIMEZONE)

    async def _refresh_job_callback(context: ContextTypes.DEFAULT_TYPE) -> None:
        await refresh_reminders(context.application.bot_data)

    app.job_queue.run_daily(
        _refresh_job_callback,
        time=_DAILY_REFRESH_TIME.replace(tzinfo=tz),
        name="daily_reminder_refresh",
    )
    logger.info(
        "Daily reminder refresh scheduled at %s %s",
        _DAILY_REFRESH_TIME.strftime("%H:%M"), settings.TIMEZONE,
    )


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------


def build_app(
    household_db: HouseholdDB | None = None,
    preference_db: PreferenceDB | None = None,
) -> Application:
    """Build the Telegram Application with the reminder engine wired in."""
    from src.adapters.notifier_factory import create_notification_gateway

    app = ApplicationBuilder().token(settings.TELEGRAM_BOT_TOKEN).post_init(_post_init).build()

    household_db = household_db or HouseholdDB()
    preference_db = preference_db or PreferenceDB()

    scheduler = ReminderScheduler(create_notification_gateway(app))

    app.bot_data["household_db"] = household_db
    app.bot_data["scheduler"] = scheduler
    app.bot_data["service"] = ReminderService(scheduler, preference_db)
    app.bot_data["task_lifecycle"] = TaskLifecycle(scheduler, preference_db, household_db)
    app.bot_data["bill_lifecycle"] = BillLifecycle(scheduler, preference_db, household_db)
    app.bot_data["maintenance_lifecycle"] = MaintenanceLifecycle(
        scheduler, preference_db, household_db,
    )

    app.add_handler(CommandHandler("start", cmd_start))
    app.add_handler(CommandHandler("reminders", cmd_reminders))
    app.add_handler(CommandHandler("refresh", cmd_refresh))
    app.add_handler(CommandHandler("testnotify", cmd_testnotify))

    _setup_daily_refresh(app)

    logger.info("Telegram bot application built with %d handlers", len(app.handlers[0]))
    return app


def main() -> None:
    """Entry point: build the app and start polling."""
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    if not settings.TELEGRAM_BOT_TOKEN:
        print("ERROR: TELEGRAM_BOT_TOKEN is missing or not set in .env", file=sys.stderr)
        sys.exit(1)

    logger.info("Starting HomeOps reminders bot...")
    app = build_app()
    app.run_polling()


if __name__ == "__main__":
    main()
