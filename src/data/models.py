"""
HomeOps Reminders — Data Models.

Entities arrive from the household store as rows; dates are kept as ISO
strings (YYYY-MM-DD) exactly as stored. Calendar math happens in
src.core.recurrence on datetime.date values.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel, field_validator


class RecurrenceKind(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class TaskStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    SKIPPED = "skipped"


class BillStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"


class MaintenanceStatus(str, Enum):
    OK = "ok"
    WARNING = "warning"
    OVERDUE = "overdue"
    NONE = "none"


class ReminderKind(str, Enum):
    TASK = "task"
    BILL = "bill"
    MAINTENANCE = "maintenance"


@dataclass
class RecurringTask:
    """A household task, optionally repeating.

    next_occurrence is only meaningful when is_recurring is set; a
    one-off task has no projection.
    """

    id: str
    title: str
    due_date: str | None = None          # ISO date YYYY-MM-DD
    due_time: str | None = None          # HH:MM
    is_recurring: bool = False
    recurrence_kind: RecurrenceKind | None = None
    recurrence_interval: int = 1
    status: TaskStatus = TaskStatus.PENDING
    next_occurrence: str | None = None
    completed_at: str | None = None
    completed_by: str | None = None


@dataclass
class Bill:
    """A monthly bill. status describes the current billing cycle only."""

    id: str
    name: str
    amount: float
    due_day: int | None                  # 1–31
    is_recurring: bool = True
    status: BillStatus = BillStatus.PENDING
    paid_at: str | None = None           # ISO timestamp
    paid_amount: float | None = None


@dataclass
class MaintenanceItem:
    """An appliance or fixture with a periodic maintenance interval."""

    id: str
    name: str
    interval_months: int | None = None
    last_maintenance_date: str | None = None
    next_maintenance_date: str | None = None


@dataclass
class MaintenanceEvent:
    """History record written when maintenance is performed."""

    item_id: str
    maintenance_date: str
    description: str = ""
    cost: float | None = None
    provider: str | None = None


@dataclass
class TaskCompletion:
    """History record written when a recurring task is completed."""

    task_id: str
    completed_by: str | None
    completed_at: str


@dataclass
class ScheduledReminder:
    """A reminder currently held by the notification gateway.

    Owned by ReminderScheduler; lives until cancelled or fired.
    """

    kind: ReminderKind
    entity_id: str
    tag: str
    identifier: str
    trigger_at: datetime
    relevant_date: date | None = None     # due / maintenance date it announces
    signature: str = ""                   # unclamped trigger + text, for batch diffing
    metadata: dict = field(default_factory=dict)


def reminder_tag(kind: ReminderKind | str, entity_id: str) -> str:
    """Deterministic key for every notification belonging to one entity."""
    kind_value = kind.value if isinstance(kind, ReminderKind) else kind
    return f"{kind_value}_{entity_id}"


class NotificationPreferences(BaseModel):
    """User notification settings, persisted as a single JSON blob.

    JSON example:
    {
        "enabled": true,
        "task_reminders": true,
        "bill_reminders": true,
        "maintenance_reminders": true,
        "reminder_time": "09:00",
        "task_reminder_days_before": 0,
        "bill_reminder_days_before": 3,
        "maintenance_reminder_days_before": 7
    }
    """

    enabled: bool = True
    task_reminders: bool = True
    bill_reminders: bool = True
    maintenance_reminders: bool = True
    reminder_time: str = "09:00"        # HH:MM in 24h format
    task_reminder_days_before: int = 0
    bill_reminder_days_before: int = 3
    maintenance_reminder_days_before: int = 7

    @field_validator("reminder_time")
    @classmethod
    def validate_reminder_time(cls, v: str) -> str:
        parsed = datetime.strptime(v.strip(), "%H:%M")
        return parsed.strftime("%H:%M")

    @field_validator(
        "task_reminder_days_before",
        "bill_reminder_days_before",
        "maintenance_reminder_days_before",
    )
    @classmethod
    def non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("days before must be >= 0")
        return v

    def category_enabled(self, kind: ReminderKind) -> bool:
        """True when both the global and the per-category toggle are on."""
        if not self.enabled:
            return False
        return {
            ReminderKind.TASK: self.task_reminders,
            ReminderKind.BILL: self.bill_reminders,
            ReminderKind.MAINTENANCE: self.maintenance_reminders,
        }[kind]

    def lead_days(self, kind: ReminderKind) -> int:
        return {
            ReminderKind.TASK: self.task_reminder_days_before,
            ReminderKind.BILL: self.bill_reminder_days_before,
            ReminderKind.MAINTENANCE: self.maintenance_reminder_days_before,
        }[kind]
