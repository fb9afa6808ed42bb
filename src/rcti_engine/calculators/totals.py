"""RCTI totals aggregation."""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Iterable, Mapping

from rcti_engine.calculators.amounts import bankers_round, to_decimal
from rcti_engine.calculators.types import DisplayTotals, RctiTotals

AMOUNT_FIELDS = ("amount_ex_gst", "gst_amount", "amount_inc_gst")


def _field(line: Any, name: str) -> Any:
    if isinstance(line, Mapping):
        return line[name]
    return getattr(line, name)


def calculate_rcti_totals(lines: Iterable[Any]) -> RctiTotals:
    """Sum line amounts into subtotal, GST and total.

    Lines may be ORM rows, dataclasses or mappings, and their amounts may be
    floats, strings or Decimals.
    """
    sums = {name: Decimal("0") for name in AMOUNT_FIELDS}
    for line in lines:
        for name in AMOUNT_FIELDS:
            sums[name] += to_decimal(_field(line, name))

    return RctiTotals(
        subtotal=bankers_round(sums["amount_ex_gst"]),
        gst=bankers_round(sums["gst_amount"]),
        total=bankers_round(sums["amount_inc_gst"]),
    )


def apply_net_adjustment(line_total: Any, net_adjustment: Any) -> Decimal:
    """Stored total of a finalised RCTI."""
    return bankers_round(to_decimal(line_total) + to_decimal(net_adjustment))


def calculate_display_totals(stored_total: Any, net_adjustment: Any) -> DisplayTotals:
    """Totals for rendering, derived from the stored total only.

    The stored total of a finalised RCTI already includes the adjustment, so it
    is never added a second time.
    """
    adjusted = bankers_round(stored_total)
    net = bankers_round(net_adjustment)
    return DisplayTotals(
        original_total=bankers_round(adjusted - net),
        net_adjustment=net,
        adjusted_total=adjusted,
    )
