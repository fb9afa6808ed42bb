"""Type definitions for the calculation pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from rcti_engine.errors import ValidationError


class GstStatus(str, Enum):
    """Payee GST registration."""

    REGISTERED = "registered"
    NOT_REGISTERED = "not_registered"


class GstMode(str, Enum):
    """Whether entered rates exclude or already include GST."""

    EXCLUSIVE = "exclusive"
    INCLUSIVE = "inclusive"


class DeductionType(str, Enum):
    """Direction of a ledger adjustment."""

    DEDUCTION = "deduction"
    REIMBURSEMENT = "reimbursement"


class DeductionFrequency(str, Enum):
    """How often a deduction falls due."""

    ONCE = "once"
    WEEKLY = "weekly"
    FORTNIGHTLY = "fortnightly"
    MONTHLY = "monthly"


class DeductionStatus(str, Enum):
    """Deduction lifecycle values."""

    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class LineAmounts:
    """Rounded amounts for one line."""

    amount_ex_gst: Decimal
    gst_amount: Decimal
    amount_inc_gst: Decimal


@dataclass(frozen=True)
class RctiTotals:
    """Invoice totals derived from its lines."""

    subtotal: Decimal
    gst: Decimal
    total: Decimal


@dataclass(frozen=True)
class DisplayTotals:
    """Totals shown on rendered RCTIs.

    original_total is the line total before deductions; adjusted_total is the
    stored total.
    """

    original_total: Decimal
    net_adjustment: Decimal
    adjusted_total: Decimal


@dataclass(frozen=True)
class JobChargeLine:
    """Read-only view of a job as a chargeable line."""

    job_id: UUID | None
    job_date: date
    customer: str
    truck_type: str
    charged_hours: Decimal
    description: str


@dataclass(frozen=True)
class BreakLine:
    """Synthetic unpaid-break line for one truck type."""

    truck_type: str
    total_break_hours: Decimal
    rate_per_hour: Decimal
    description: str
    amounts: LineAmounts

    @property
    def charged_hours(self) -> Decimal:
        return -self.total_break_hours


def parse_enum(enum_cls: Any, value: Any, label: str) -> Any:
    """Coerce ``value`` to ``enum_cls`` or raise ValidationError."""
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(f"'{m.value}'" for m in enum_cls)
        raise ValidationError(f"{label} must be one of {allowed}") from None
