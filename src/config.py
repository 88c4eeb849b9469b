"""
HomeOps Reminders — Centralized configuration.

Loads all settings from .env and validates them.
This module is the foundation for every other module in the project.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

# Load .env from project root (two levels up from src/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # Telegram: empty token means reminders cannot be delivered
    TELEGRAM_BOT_TOKEN: str = ""
    NOTIFY_CHAT_ID: int | None = None

    # Notification gateway: "telegram" | "disabled"
    NOTIFICATION_PROVIDER: str = "telegram"

    # SQLite (preferences blob + local household entities)
    DATABASE_PATH: str = "data/homeops.db"

    # Reminder clock times are interpreted in this zone
    TIMEZONE: str = "America/Sao_Paulo"

    # Upper bound on concurrent gateway calls during a batch reschedule
    REMINDER_MAX_CONCURRENCY: int = 8

    LOG_LEVEL: str = "INFO"

    @field_validator("NOTIFY_CHAT_ID", mode="before")
    @classmethod
    def parse_chat_id(cls, v: str | int | None) -> int | None:
        if v is None or isinstance(v, int):
            return v
        if isinstance(v, str) and v.strip():
            return int(v.strip())
        return None

    @field_validator("REMINDER_MAX_CONCURRENCY", mode="before")
    @classmethod
    def parse_concurrency(cls, v: str | int) -> int:
        return max(1, int(v))


def _load_settings() -> Settings:
    """Load settings from environment."""
    token = os.getenv("TELEGRAM_BOT_TOKEN", "")
    if token.startswith("your-"):
        token = ""

    return Settings(
        TELEGRAM_BOT_TOKEN=token,
        NOTIFY_CHAT_ID=os.getenv("NOTIFY_CHAT_ID", ""),
        NOTIFICATION_PROVIDER=os.getenv("NOTIFICATION_PROVIDER", "telegram"),
        DATABASE_PATH=os.getenv("DATABASE_PATH", "data/homeops.db"),
        TIMEZONE=os.getenv("TIMEZONE", "America/Sao_Paulo"),
        REMINDER_MAX_CONCURRENCY=os.getenv("REMINDER_MAX_CONCURRENCY", "8"),
        LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO"),
    )


# Singleton, imported by all other modules as:
#   from src.config import settings
settings = _load_settings()
