"""Tests for deduction scheduling."""

from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from rcti_engine.services.scheduler import (
    LastApplication,
    add_months,
    next_occurrence,
    should_apply,
)


@dataclass
class Deduction:
    frequency: str
    start_date: date
    amount_remaining: Decimal = Decimal("100")
    status: str = "active"


def paid(on: date, amount: str = "150") -> LastApplication:
    return LastApplication(period_date=on, amount=Decimal(amount))


def skipped(on: date) -> LastApplication:
    return LastApplication(period_date=on, amount=Decimal("0"))


class TestNextOccurrence:
    """Cycle lengths per frequency."""

    def test_weekly_and_fortnightly(self):
        assert next_occurrence(date(2025, 11, 9), "weekly") == date(2025, 11, 16)
        assert next_occurrence(date(2025, 11, 9), "fortnightly") == date(2025, 11, 23)

    def test_monthly_clamps_to_month_end(self):
        assert next_occurrence(date(2025, 1, 31), "monthly") == date(2025, 2, 28)
        assert next_occurrence(date(2024, 1, 31), "monthly") == date(2024, 2, 29)
        assert next_occurrence(date(2025, 12, 15), "monthly") == date(2026, 1, 15)

    def test_once_has_no_next_cycle(self):
        assert next_occurrence(date(2025, 11, 9), "once") == date(2025, 11, 9)

    def test_time_component_ignored(self):
        moment = datetime(2025, 11, 9, 23, 59, tzinfo=timezone.utc)

        assert next_occurrence(moment, "weekly") == date(2025, 11, 16)

    def test_add_months_across_years(self):
        assert add_months(date(2025, 11, 30), 3) == date(2026, 2, 28)


class TestShouldApply:
    """Due-ness rules."""

    def test_inactive_or_exhausted_never_due(self):
        target = date(2025, 11, 9)

        assert not should_apply(Deduction("weekly", date(2025, 11, 3), status="cancelled"), target, None)
        assert not should_apply(Deduction("weekly", date(2025, 11, 3), status="completed"), target, None)
        assert not should_apply(
            Deduction("weekly", date(2025, 11, 3), amount_remaining=Decimal("0")), target, None
        )

    def test_start_date_after_target(self):
        assert not should_apply(Deduction("weekly", date(2025, 11, 10)), date(2025, 11, 9), None)
        assert should_apply(Deduction("weekly", date(2025, 11, 9)), date(2025, 11, 9), None)

    def test_once(self):
        deduction = Deduction("once", date(2025, 11, 1))
        target = date(2025, 11, 16)

        assert should_apply(deduction, target, None)
        assert not should_apply(deduction, target, paid(date(2025, 11, 9)))
        # A skip leaves the one-time deduction due
        assert should_apply(deduction, target, skipped(date(2025, 11, 9)))

    @pytest.mark.parametrize(
        "frequency,last,target,expected",
        [
            ("weekly", date(2025, 11, 9), date(2025, 11, 15), False),
            ("weekly", date(2025, 11, 9), date(2025, 11, 16), True),
            ("fortnightly", date(2025, 11, 9), date(2025, 11, 16), False),
            ("fortnightly", date(2025, 11, 9), date(2025, 11, 23), True),
            ("monthly", date(2025, 1, 31), date(2025, 2, 27), False),
            ("monthly", date(2025, 1, 31), date(2025, 2, 28), True),
        ],
    )
    def test_recurring_cycles(self, frequency, last, target, expected):
        deduction = Deduction(frequency, date(2025, 1, 1))

        assert should_apply(deduction, target, paid(last)) is expected

    def test_skip_advances_recurring_schedule(self):
        """Weekly deduction starting 2025-11-03, skipped on 2025-11-16."""
        deduction = Deduction("weekly", date(2025, 11, 3), amount_remaining=Decimal("1850"))

        assert should_apply(deduction, date(2025, 11, 9), None)
        assert should_apply(deduction, date(2025, 11, 16), paid(date(2025, 11, 9)))
        assert not should_apply(deduction, date(2025, 11, 22), skipped(date(2025, 11, 16)))
        assert should_apply(deduction, date(2025, 11, 23), skipped(date(2025, 11, 16)))
