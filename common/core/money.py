"""
Money helpers.

Money is always Decimal and is rounded half-up to cents only when a value
leaves a computation, never in between.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Union

CENTS = Decimal("0.01")

MoneyLike = Union[Decimal, int, float, str, None]


def to_decimal(value: MoneyLike) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    # str() keeps floats read back from SQLite free of binary noise
    return Decimal(str(value))


def round_money(value: MoneyLike) -> Decimal:
    """Round to 2 decimals using half-up rounding."""
    return to_decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)
