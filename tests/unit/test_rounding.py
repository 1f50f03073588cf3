"""
Unit Tests - Monetary Rounding
"""
from decimal import Decimal

import pytest

from kms_analytics.engine import round_money, sum_then_round


class TestRoundMoney:
    """Tests for round_money"""

    @pytest.mark.parametrize("value,expected", [
        (0.125, Decimal("0.13")),
        (-0.125, Decimal("-0.13")),
        (2.675, Decimal("2.68")),
        (1.005, Decimal("1.01")),
        (0.124, Decimal("0.12")),
        (3, Decimal("3.00")),
        (Decimal("-7.455"), Decimal("-7.46")),
    ])
    def test_half_away_from_zero(self, value, expected):
        """Halves round away from zero"""
        assert round_money(value) == expected

    @pytest.mark.parametrize("value", [None, float("nan"), float("inf")])
    def test_undefined(self, value):
        """Undefined values stay undefined"""
        assert round_money(value) is None

    def test_places(self):
        """Test custom precision"""
        assert round_money(1.23456, places=3) == Decimal("1.235")


class TestSumThenRound:
    """Tests for sum_then_round"""

    def test_rounds_once(self):
        """Totals are summed unrounded, not from rounded parts"""
        parts = [0.004, 0.004, 0.004]

        assert [round_money(p) for p in parts] == [Decimal("0.00")] * 3
        assert sum_then_round(parts) == Decimal("0.01")

    def test_skips_nulls(self):
        """Test null values are ignored"""
        assert sum_then_round([1.5, None, 2.25]) == Decimal("3.75")

    def test_empty(self):
        """Test empty input sums to zero"""
        assert sum_then_round([]) == Decimal("0.00")
