"""
Tests for the decimal, formatting and validation helpers.
"""

from decimal import Decimal

import pytest

from domain.errors import ValidationError
from utils.decimals import cell_to_decimal, decimal_to_cell, parse_decimal, round_money
from utils.formatting import format_rupees, join_display
from utils.validation import require_choice, require_text


class TestParseDecimal:

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("6000", Decimal("6000")),
            (" 10.000 ", Decimal("10.000")),
            ("1,50,000.50", Decimal("150000.50")),
            (Decimal("2.5"), Decimal("2.5")),
            (7, Decimal("7")),
        ],
    )
    def test_parses(self, value, expected):
        assert parse_decimal(value, "Weight") == expected

    def test_blank_uses_default(self):
        assert parse_decimal("", "Discount", default=Decimal("0")) == Decimal("0")
        assert parse_decimal(None, "Discount", default=Decimal("0")) == Decimal("0")

    def test_blank_without_default_is_required(self):
        with pytest.raises(ValidationError, match="Weight is required"):
            parse_decimal("  ", "Weight")

    @pytest.mark.parametrize("value", ["abc", 1.5, True, "NaN", "Infinity", "-3"])
    def test_rejects(self, value):
        with pytest.raises(ValidationError):
            parse_decimal(value, "Rate")

    def test_negative_allowed_on_request(self):
        assert parse_decimal("-3", "Adjustment", allow_negative=True) == Decimal("-3")


class TestRoundMoney:

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("907.5", "907.50"),
            ("0.045", "0.04"),
            ("0.055", "0.06"),
            ("1.234", "1.23"),
            ("-0.045", "-0.04"),
        ],
    )
    def test_half_even(self, value, expected):
        assert str(round_money(Decimal(value))) == expected


class TestSheetCells:

    @pytest.mark.parametrize("value", [None, "", float("nan"), "n/a"])
    def test_blank_or_text_cells_read_as_zero(self, value):
        assert cell_to_decimal(value) == Decimal("0")

    def test_numbers_read_exactly(self):
        assert cell_to_decimal(62315.5) == Decimal("62315.5")
        assert cell_to_decimal(10) == Decimal("10")

    def test_integral_values_are_written_as_int(self):
        assert decimal_to_cell(Decimal("60500.00")) == 60500
        assert isinstance(decimal_to_cell(Decimal("60500.00")), int)
        assert decimal_to_cell(Decimal("907.50")) == 907.5


class TestFormatRupees:

    @pytest.mark.parametrize(
        "amount,expected",
        [
            (Decimal("0"), "0.00"),
            (Decimal("999.5"), "999.50"),
            (Decimal("62315"), "62,315.00"),
            (Decimal("123456.789"), "1,23,456.79"),
            (Decimal("6231500"), "62,31,500.00"),
            (Decimal("123456789"), "12,34,56,789.00"),
            (Decimal("-9500"), "-9,500.00"),
        ],
    )
    def test_indian_grouping(self, amount, expected):
        assert format_rupees(amount) == expected


class TestJoinDisplay:

    def test_keeps_every_label(self):
        assert join_display(["Ring", "Ring", "Chain"]) == "Ring, Ring, Chain"

    def test_distinct_keeps_first_occurrence(self):
        assert join_display(["GOLD", "SILVER", "GOLD"], distinct=True) == "GOLD, SILVER"

    def test_skips_blanks(self):
        assert join_display(["", "22K"]) == "22K"


class TestValidationHelpers:

    def test_require_text_strips(self):
        assert require_text("  Asha ", "Name") == "Asha"

    def test_require_text_reports_field(self):
        with pytest.raises(ValidationError) as exc:
            require_text(None, "Name", "name")

        assert exc.value.field == "name"

    def test_require_choice(self):
        assert require_choice("gold", ("GOLD", "SILVER"), "Metal") == "GOLD"
        assert require_choice("", ("GOLD", "SILVER"), "Metal", default="GOLD") == "GOLD"

        with pytest.raises(ValidationError):
            require_choice("", ("GOLD", "SILVER"), "Metal")
