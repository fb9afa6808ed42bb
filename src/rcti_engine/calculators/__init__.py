"""Pure calculation functions: line amounts, breaks, totals and rates."""

from rcti_engine.calculators.amounts import bankers_round, calculate_line_amounts, to_decimal
from rcti_engine.calculators.breaks import BREAK_LINE_CUSTOMER, calculate_break_lines
from rcti_engine.calculators.totals import calculate_display_totals, calculate_rcti_totals

__all__ = [
    "BREAK_LINE_CUSTOMER",
    "bankers_round",
    "calculate_break_lines",
    "calculate_display_totals",
    "calculate_line_amounts",
    "calculate_rcti_totals",
    "to_decimal",
]
