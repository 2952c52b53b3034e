"""Unit tests for currency helpers."""

from decimal import Decimal

import pytest

from choreledger.core.money import ZERO, format_money, round_money, sum_money, to_money


@pytest.mark.unit
class TestToMoney:
    """Tests for to_money."""

    def test_float_goes_through_str(self):
        """Test 0.1 becomes exactly ten cents."""
        assert to_money(0.1) == Decimal("0.10")

    def test_string_and_int(self):
        """Test strings and ints are quantized to two places."""
        assert to_money("3.5") == Decimal("3.50")
        assert to_money(7) == Decimal("7.00")

    def test_none_is_zero(self):
        """Test None converts to zero."""
        assert to_money(None) == ZERO

    @pytest.mark.parametrize("value", ["abc", "NaN", "Infinity", ""])
    def test_invalid_raises(self, value):
        """Test non-numeric and non-finite values raise ValueError."""
        with pytest.raises(ValueError, match="Invalid amount"):
            to_money(value)


@pytest.mark.unit
class TestRounding:
    """Tests for rounding and summing."""

    def test_half_even(self):
        """Test ties round to the even cent."""
        assert round_money(Decimal("0.125")) == Decimal("0.12")
        assert round_money(Decimal("0.135")) == Decimal("0.14")

    def test_sum_money(self):
        """Test signed sums are quantized."""
        assert sum_money([Decimal("1.10"), Decimal("-0.35"), Decimal("2")]) == Decimal("2.75")
        assert sum_money([]) == ZERO

    def test_format_money(self):
        """Test amounts render with a dollar sign and two places."""
        assert format_money(Decimal("12.5")) == "$12.50"
        assert format_money(Decimal("-3")) == "$-3.00"
