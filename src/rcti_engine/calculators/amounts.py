"""Line amount calculation with GST and banker's rounding.

All arithmetic is done on ``Decimal``. Each output is rounded half-to-even to
whole cents independently, so many small lines do not drift upwards.
"""

from __future__ import annotations

from decimal import ROUND_HALF_EVEN, Decimal
from typing import Union

from rcti_engine.calculators.types import GstMode, GstStatus, LineAmounts

DecimalLike = Union[Decimal, int, float, str]

OUTPUT_PRECISION = Decimal("0.01")
GST_RATE = Decimal("0.10")
GST_DIVISOR = Decimal("1") + GST_RATE
ZERO = Decimal("0.00")


def to_decimal(value: DecimalLike | None) -> Decimal:
    """Normalise stored or user supplied numbers to ``Decimal``.

    Floats go through ``str`` so their shortest repr is used rather than the
    binary expansion.
    """
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise TypeError("Boolean is not a numeric amount")
    if isinstance(value, (int, float, str)):
        return Decimal(str(value))
    raise TypeError(f"Unsupported decimal input: {type(value)!r}")


def bankers_round(value: DecimalLike) -> Decimal:
    """Round to 2 decimal places, half to even."""
    return to_decimal(value).quantize(OUTPUT_PRECISION, rounding=ROUND_HALF_EVEN)


def calculate_line_amounts(
    charged_hours: DecimalLike,
    rate_per_hour: DecimalLike,
    gst_status: GstStatus | str,
    gst_mode: GstMode | str,
) -> LineAmounts:
    """Calculate ex-GST, GST and inc-GST amounts for a line.

    Negative hours (break reductions) produce negative amounts.
    """
    gross = to_decimal(charged_hours) * to_decimal(rate_per_hour)

    if GstStatus(gst_status) == GstStatus.NOT_REGISTERED:
        amount = bankers_round(gross)
        return LineAmounts(amount_ex_gst=amount, gst_amount=ZERO, amount_inc_gst=amount)

    if GstMode(gst_mode) == GstMode.EXCLUSIVE:
        amount_ex_gst = bankers_round(gross)
        gst_amount = bankers_round(amount_ex_gst * GST_RATE)
        amount_inc_gst = bankers_round(amount_ex_gst + gst_amount)
        return LineAmounts(amount_ex_gst, gst_amount, amount_inc_gst)

    # Inclusive: back-calculate ex-GST from the entered amount
    amount_inc_gst = bankers_round(gross)
    amount_ex_gst = bankers_round(amount_inc_gst / GST_DIVISOR)
    gst_amount = bankers_round(amount_inc_gst - amount_ex_gst)
    return LineAmounts(amount_ex_gst, gst_amount, amount_inc_gst)
