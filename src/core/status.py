"""Status resolver — time-sensitive status derived on read.

The household store may hold a stale status (a bill still marked "pending"
three days after its due day). Everything here recomputes status from a
reference date; nothing is written back.

Paid-cycle rule: a bill marked paid stays paid for the rest of the calendar
month it was paid in. Once today falls in a later month, the payment belongs
to a previous cycle and the bill resolves as pending or overdue again. A paid
bill without a paid_at timestamp stays paid.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta

from src.core.recurrence import days_until, parse_optional_date
from src.data.models import (
    Bill,
    BillStatus,
    MaintenanceItem,
    MaintenanceStatus,
    RecurringTask,
    ReminderKind,
    TaskStatus,
)

logger = logging.getLogger(__name__)

MAINTENANCE_WARNING_DAYS = 7


# ---------------------------------------------------------------------------
# Bills
# ---------------------------------------------------------------------------


def _paid_in_current_cycle(bill: Bill, today: date) -> bool:
    if not bill.paid_at:
        return True
    raw = bill.paid_at.strip()
    if raw.endswith("Z"):
        # fromisoformat accepts a Z suffix only from Python 3.11
        raw = raw[:-1] + "+00:00"
    try:
        paid_on = datetime.fromisoformat(raw).date()
    except ValueError:
        logger.warning("Bill %s has unparseable paid_at '%s'", bill.id, bill.paid_at)
        return True
    return (paid_on.year, paid_on.month) >= (today.year, today.month)


def bill_status(bill: Bill, today: date) -> BillStatus:
    """Resolve the current-cycle status of a bill."""
    if bill.status == BillStatus.PAID and _paid_in_current_cycle(bill, today):
        return BillStatus.PAID

    if bill.due_day is not None and today.day > bill.due_day:
        return BillStatus.OVERDUE
    return BillStatus.PENDING


def pending_bills(bills: list[Bill], today: date) -> list[Bill]:
    return [b for b in bills if bill_status(b, today) == BillStatus.PENDING]


def overdue_bills(bills: list[Bill], today: date) -> list[Bill]:
    return [b for b in bills if bill_status(b, today) == BillStatus.OVERDUE]


def paid_bills(bills: list[Bill], today: date) -> list[Bill]:
    return [b for b in bills if bill_status(b, today) == BillStatus.PAID]


def pending_bills_amount(bills: list[Bill], today: date) -> float:
    """Total amount still owed this cycle (pending only, as the finance tab shows)."""
    return sum(float(b.amount) for b in pending_bills(bills, today))


# ---------------------------------------------------------------------------
# Maintenance
# ---------------------------------------------------------------------------


def maintenance_status(next_date: date | str | None, today: date) -> MaintenanceStatus:
    """Classify a maintenance date relative to today."""
    parsed = parse_optional_date(next_date)
    if parsed is None:
        return MaintenanceStatus.NONE

    days = days_until(parsed, today)
    if days < 0:
        return MaintenanceStatus.OVERDUE
    if days <= MAINTENANCE_WARNING_DAYS:
        return MaintenanceStatus.WARNING
    return MaintenanceStatus.OK


def upcoming_maintenance(
    items: list[MaintenanceItem], today: date, days: int = 30,
) -> list[MaintenanceItem]:
    """Items due between today and today + days (inclusive)."""
    horizon = today + timedelta(days=days)
    result = []
    for item in items:
        next_date = parse_optional_date(item.next_maintenance_date)
        if next_date is not None and today <= next_date <= horizon:
            result.append(item)
    return result


def overdue_maintenance(items: list[MaintenanceItem], today: date) -> list[MaintenanceItem]:
    return [
        item for item in items
        if maintenance_status(item.next_maintenance_date, today) == MaintenanceStatus.OVERDUE
    ]


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------


def task_overdue(task: RecurringTask, today: date) -> bool:
    """A pending task whose due date is strictly before today."""
    if task.status != TaskStatus.PENDING:
        return False
    due = parse_optional_date(task.due_date)
    return due is not None and due < today


def tasks_due_today(tasks: list[RecurringTask], today: date) -> list[RecurringTask]:
    return [
        t for t in tasks
        if t.status == TaskStatus.PENDING and parse_optional_date(t.due_date) == today
    ]


def tasks_due_this_week(tasks: list[RecurringTask], today: date) -> list[RecurringTask]:
    """Pending tasks due from today through the next 7 days."""
    week_end = today + timedelta(days=7)
    result = []
    for task in tasks:
        due = parse_optional_date(task.due_date)
        if task.status == TaskStatus.PENDING and due is not None and today <= due <= week_end:
            result.append(task)
    return result


# ---------------------------------------------------------------------------
# Reminder eligibility
# ---------------------------------------------------------------------------


def is_reminder_active(
    kind: ReminderKind,
    entity: RecurringTask | Bill | MaintenanceItem,
    today: date,
) -> bool:
    """Whether the entity is still in a state that deserves a reminder.

    Notification toggles are the scheduler's concern; this only looks at
    the entity itself.
    """
    if kind == ReminderKind.TASK:
        return entity.status == TaskStatus.PENDING and bool(entity.due_date)
    if kind == ReminderKind.BILL:
        return entity.due_day is not None and bill_status(entity, today) != BillStatus.PAID
    if kind == ReminderKind.MAINTENANCE:
        return bool(entity.next_maintenance_date)
    raise ValueError(f"Unknown reminder kind: {kind!r}")
