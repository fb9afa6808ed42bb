"""Deduction scheduling: decides whether a deduction is due for a period.

Pure functions only. The date of an application is the week ending of the RCTI
it was recorded on, so a $0 skip moves the schedule forward exactly like a
paid cycle does.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Protocol

from rcti_engine.calculators.amounts import to_decimal
from rcti_engine.calculators.types import DeductionFrequency, DeductionStatus

CYCLE_DAYS = {
    DeductionFrequency.WEEKLY: 7,
    DeductionFrequency.FORTNIGHTLY: 14,
}


class SchedulableDeduction(Protocol):
    status: str
    amount_remaining: Decimal
    start_date: date
    frequency: str


@dataclass(frozen=True)
class LastApplication:
    """Most recent application of a deduction."""

    period_date: date
    amount: Decimal

    @property
    def is_skip(self) -> bool:
        return to_decimal(self.amount) == 0


def as_date(value: date | datetime) -> date:
    """Drop any time-of-day component."""
    if isinstance(value, datetime):
        return value.date()
    return value


def add_months(value: date, months: int) -> date:
    """Add calendar months, clamping the day to the end of the target month."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def next_occurrence(from_date: date | datetime, frequency: str) -> date:
    """Date the next cycle falls due after ``from_date``.

    One-time deductions have no next cycle; the same date is returned.
    """
    start = as_date(from_date)
    freq = DeductionFrequency(frequency)
    if freq in CYCLE_DAYS:
        return start + timedelta(days=CYCLE_DAYS[freq])
    if freq == DeductionFrequency.MONTHLY:
        return add_months(start, 1)
    return start


def should_apply(
    deduction: SchedulableDeduction,
    target_week_ending: date | datetime,
    last_application: LastApplication | None,
) -> bool:
    """Decide whether ``deduction`` is due on the RCTI for ``target_week_ending``."""
    if deduction.status != DeductionStatus.ACTIVE:
        return False
    if to_decimal(deduction.amount_remaining) <= 0:
        return False

    target = as_date(target_week_ending)
    if as_date(deduction.start_date) > target:
        return False

    if deduction.frequency == DeductionFrequency.ONCE:
        # A skip does not use up the one-time opportunity
        return last_application is None or last_application.is_skip

    if last_application is None:
        return True

    due = next_occurrence(last_application.period_date, deduction.frequency)
    return target >= due
