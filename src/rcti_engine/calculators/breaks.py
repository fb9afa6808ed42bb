"""Unpaid lunch-break lines grouped by truck type.

Break time is unpaid once per rostered shift. Shifts are imported job lines
longer than the minimum shift length; their breaks are netted against the
truck category they were worked in rather than against each job line.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Iterable, Protocol
from uuid import UUID

from rcti_engine.calculators.amounts import DecimalLike, calculate_line_amounts, to_decimal
from rcti_engine.calculators.types import BreakLine, GstMode, GstStatus

# Customer value reserved for generated break lines
BREAK_LINE_CUSTOMER = "Lunch Breaks"
DEFAULT_MIN_SHIFT_HOURS = Decimal("7")


class ChargeLine(Protocol):
    job_id: UUID | None
    customer: str
    truck_type: str
    charged_hours: Decimal
    rate_per_hour: Decimal


def is_break_line(line: ChargeLine) -> bool:
    """Return True for lines previously generated by this module."""
    return line.customer == BREAK_LINE_CUSTOMER


def break_description(truck_type: str) -> str:
    return f"{BREAK_LINE_CUSTOMER} - {truck_type}"


def calculate_break_lines(
    lines: Iterable[ChargeLine],
    driver_break_hours: DecimalLike | None,
    gst_status: GstStatus | str,
    gst_mode: GstMode | str,
    min_shift_hours: DecimalLike = DEFAULT_MIN_SHIFT_HOURS,
) -> list[BreakLine]:
    """Build one negative break line per truck type with eligible shifts."""
    break_hours = to_decimal(driver_break_hours)
    if break_hours <= 0:
        return []

    threshold = to_decimal(min_shift_hours)

    # truck_type -> [hours, rate of first line in group]
    groups: dict[str, list[Decimal]] = {}
    for line in lines:
        if is_break_line(line) or line.job_id is None:
            continue
        if to_decimal(line.charged_hours) <= threshold:
            continue
        group = groups.get(line.truck_type)
        if group is None:
            groups[line.truck_type] = [break_hours, to_decimal(line.rate_per_hour)]
        else:
            group[0] += break_hours

    result: list[BreakLine] = []
    for truck_type, (hours, rate) in groups.items():
        result.append(
            BreakLine(
                truck_type=truck_type,
                total_break_hours=hours,
                rate_per_hour=rate,
                description=break_description(truck_type),
                amounts=calculate_line_amounts(-hours, rate, gst_status, gst_mode),
            )
        )
    return result
