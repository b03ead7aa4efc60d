"""
Unit tests for the money helpers.
"""

import pytest
from decimal import Decimal

from common.core.money import round_money, to_decimal


class TestRoundMoney:
    @pytest.mark.parametrize(
        "value, expected",
        [
            (Decimal("666.665"), Decimal("666.67")),
            (Decimal("666.664"), Decimal("666.66")),
            ("0.005", Decimal("0.01")),
            (12, Decimal("12.00")),
            (None, Decimal("0.00")),
        ],
    )
    def test_half_up(self, value, expected):
        assert round_money(value) == expected

    def test_float_from_sqlite(self):
        assert to_decimal(0.1) == Decimal("0.1")
