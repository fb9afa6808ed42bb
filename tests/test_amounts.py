"""Tests for line amount calculation."""

from decimal import Decimal

import pytest

from rcti_engine.calculators.amounts import bankers_round, calculate_line_amounts, to_decimal
from rcti_engine.calculators.types import GstMode, GstStatus


class TestBankersRound:
    """Half-to-even rounding to cents."""

    def test_half_rounds_to_even(self):
        assert bankers_round(Decimal("53.125")) == Decimal("53.12")
        assert bankers_round(Decimal("53.135")) == Decimal("53.14")
        assert bankers_round(Decimal("0.005")) == Decimal("0.00")
        assert bankers_round(Decimal("0.015")) == Decimal("0.02")

    def test_negative_values(self):
        assert bankers_round(Decimal("-53.125")) == Decimal("-53.12")
        assert bankers_round(Decimal("-0.015")) == Decimal("-0.02")

    def test_float_uses_shortest_repr(self):
        """2.675 as a float is below the midpoint in binary but rounds as written."""
        assert bankers_round(2.675) == Decimal("2.68")


class TestToDecimal:
    """Normalisation of mixed numeric inputs."""

    def test_accepts_mixed_types(self):
        assert to_decimal(None) == Decimal("0")
        assert to_decimal(3) == Decimal("3")
        assert to_decimal(0.1) == Decimal("0.1")
        assert to_decimal("62.50") == Decimal("62.50")
        assert to_decimal(Decimal("1.005")) == Decimal("1.005")

    def test_rejects_bool(self):
        with pytest.raises(TypeError):
            to_decimal(True)


class TestCalculateLineAmounts:
    """GST handling per registration status and mode."""

    def test_registered_exclusive(self):
        """8.5h at $62.50: GST 53.125 rounds to even."""
        amounts = calculate_line_amounts(Decimal("8.5"), Decimal("62.5"), "registered", "exclusive")

        assert amounts.amount_ex_gst == Decimal("531.25")
        assert amounts.gst_amount == Decimal("53.12")
        assert amounts.amount_inc_gst == Decimal("584.37")

    def test_not_registered_has_no_gst(self):
        amounts = calculate_line_amounts(10, 50, GstStatus.NOT_REGISTERED, GstMode.INCLUSIVE)

        assert amounts.amount_ex_gst == Decimal("500.00")
        assert amounts.gst_amount == Decimal("0.00")
        assert amounts.amount_inc_gst == Decimal("500.00")

    def test_registered_inclusive(self):
        amounts = calculate_line_amounts(Decimal("10"), Decimal("55"), "registered", "inclusive")

        assert amounts.amount_inc_gst == Decimal("550.00")
        assert amounts.amount_ex_gst == Decimal("500.00")
        assert amounts.gst_amount == Decimal("50.00")

    def test_inclusive_components_sum_to_total(self):
        amounts = calculate_line_amounts(Decimal("7.25"), Decimal("63.10"), "registered", "inclusive")

        assert amounts.amount_ex_gst + amounts.gst_amount == amounts.amount_inc_gst

    @pytest.mark.parametrize(
        "hours,rate",
        [
            ("8.5", "62.5"),
            ("7.25", "63.10"),
            ("1", "0.07"),
            ("11.75", "98.45"),
            ("0.5", "133.33"),
        ],
    )
    def test_inverse_gst_within_one_cent(self, hours, rate):
        """Inclusive mode on an exclusive inc-GST amount recovers the ex-GST amount."""
        exclusive = calculate_line_amounts(Decimal(hours), Decimal(rate), "registered", "exclusive")
        inclusive = calculate_line_amounts(exclusive.amount_inc_gst, 1, "registered", "inclusive")

        assert abs(inclusive.amount_ex_gst - exclusive.amount_ex_gst) <= Decimal("0.01")

    def test_negative_hours_keep_sign(self):
        amounts = calculate_line_amounts(Decimal("-1.5"), Decimal("60"), "registered", "exclusive")

        assert amounts.amount_ex_gst == Decimal("-90.00")
        assert amounts.gst_amount == Decimal("-9.00")
        assert amounts.amount_inc_gst == Decimal("-99.00")

    def test_float_and_decimal_inputs_agree(self):
        from_float = calculate_line_amounts(8.5, 62.5, "registered", "exclusive")
        from_str = calculate_line_amounts("8.5", "62.50", "registered", "exclusive")
        from_decimal = calculate_line_amounts(Decimal("8.5"), Decimal("62.5"), "registered", "exclusive")

        assert from_float == from_str == from_decimal

    def test_zero_hours(self):
        amounts = calculate_line_amounts(0, Decimal("60"), "registered", "exclusive")

        assert amounts.amount_inc_gst == Decimal("0.00")

    def test_unknown_gst_status_rejected(self):
        with pytest.raises(ValueError):
            calculate_line_amounts(1, 1, "exempt", "exclusive")
