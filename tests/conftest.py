"""Shared test fixtures and configuration.

Sets up environment variables before any src imports, and provides common
fixtures: temp databases, an in-memory notification gateway and a scheduler
pinned to a fixed clock.
"""

import os

# Patch env vars BEFORE any src imports
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "fake-token-for-tests")
os.environ.setdefault("NOTIFY_CHAT_ID", "12345")
os.environ.setdefault("NOTIFICATION_PROVIDER", "telegram")
os.environ.setdefault("DATABASE_PATH", ":memory:")
os.environ.setdefault("TIMEZONE", "UTC")

from datetime import datetime, timezone

import pytest

from fakes import FakeClock, FakeNotificationGateway, StaticPreferences


@pytest.fixture
def clock():
    """Clock frozen at 2024-05-01 08:00 UTC; tests may move it."""
    return FakeClock(datetime(2024, 5, 1, 8, 0, tzinfo=timezone.utc))


@pytest.fixture
def gateway():
    return FakeNotificationGateway()


@pytest.fixture
def scheduler(gateway, clock):
    from src.core.reminder_scheduler import ReminderScheduler
    return ReminderScheduler(gateway, clock=clock, timezone="UTC", max_concurrency=4)


@pytest.fixture
def prefs():
    from src.data.models import NotificationPreferences
    return NotificationPreferences()


@pytest.fixture
def pref_store():
    return StaticPreferences()


@pytest.fixture
def tmp_db_path(tmp_path):
    """Return a temporary SQLite DB path."""
    return str(tmp_path / "test_homeops.db")


@pytest.fixture
def household_db(tmp_db_path):
    from src.data.db import HouseholdDB
    return HouseholdDB(db_path=tmp_db_path)


@pytest.fixture
def preference_db(tmp_path):
    from src.data.db import PreferenceDB
    return PreferenceDB(db_path=str(tmp_path / "test_prefs.db"))
