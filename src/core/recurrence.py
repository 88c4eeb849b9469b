"""Recurrence calculator — pure calendar arithmetic.

Projects the next occurrence of a recurring task, the next maintenance date
of an item, and the due date of a bill's upcoming cycle.

Month addition clamps to the end of the target month:
2024-01-31 + 1 month is 2024-02-29, 2023-01-31 + 1 month is 2023-02-28.
It never rolls over into the following month.

No I/O: this module only transforms dates.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta

from dateutil.relativedelta import relativedelta

from src.data.models import RecurrenceKind

logger = logging.getLogger(__name__)


def add_months(d: date, months: int) -> date:
    """Add calendar months to a date, clamping to the last day of the month."""
    return d + relativedelta(months=months)


def _normalize_interval(interval: int | None) -> int:
    if not interval or interval < 1:
        return 1
    return interval


def next_task_occurrence(
    reference_date: date,
    kind: RecurrenceKind | str,
    interval: int = 1,
) -> date:
    """Project the next due date of a recurring task.

    Args:
        reference_date: Day the projection starts from (completion day).
        kind: daily, weekly or monthly.
        interval: Number of kind-units between occurrences. Values below 1
                  are treated as 1.

    Raises ValueError on an unknown recurrence kind.
    """
    kind = RecurrenceKind(kind)
    step = _normalize_interval(interval)

    if kind is RecurrenceKind.DAILY:
        return reference_date + timedelta(days=step)
    if kind is RecurrenceKind.WEEKLY:
        return reference_date + timedelta(days=7 * step)
    return add_months(reference_date, step)


def next_maintenance_date(last_date: date, interval_months: int) -> date:
    """Next maintenance is interval_months after the last one."""
    return add_months(last_date, _normalize_interval(interval_months))


def next_bill_cycle_date(due_day: int, today: date) -> date:
    """Due date of the bill cycle that is still ahead (or due today).

    When due_day has not passed this month the target is this month,
    otherwise the following month. A due day the target month lacks
    (31 in April) is clamped to the month's last day.
    """
    if not 1 <= due_day <= 31:
        raise ValueError(f"due_day out of range: {due_day}")

    if due_day >= today.day:
        anchor = today.replace(day=1)
    else:
        anchor = add_months(today.replace(day=1), 1)
    return anchor + relativedelta(day=due_day)


def days_until(target: date, today: date) -> int:
    """Signed number of days from today to target."""
    return (target - today).days


def parse_iso_date(raw: str | date | None, fallback: date) -> date:
    """Parse a YYYY-MM-DD string, falling back when the input is unusable.

    Form input that cannot be parsed resolves to fallback (normally today)
    instead of raising. The fallback is logged because it can hide bad
    upstream data.
    """
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    if not raw:
        logger.warning("Empty date input, falling back to %s", fallback)
        return fallback
    try:
        return date.fromisoformat(raw.strip()[:10])
    except (ValueError, TypeError, AttributeError) as exc:
        logger.warning("Failed to parse date '%s': %s, using %s", raw, exc, fallback)
        return fallback


def parse_optional_date(raw: str | date | None) -> date | None:
    """Parse a YYYY-MM-DD string, returning None for missing or bad input."""
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    if not raw:
        return None
    try:
        return date.fromisoformat(raw.strip()[:10])
    except (ValueError, TypeError, AttributeError):
        logger.warning("Ignoring unparseable date '%s'", raw)
        return None
