"""
Minor currency unit conversion.

Totals arrive as floats, strings or Decimals. They are converted through their
decimal string form, so ``1.005`` is exactly one peso and half a cent, and then
rounded half-up to whole cents. The same input always yields the same integer.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Union

Amount = Union[Decimal, float, int, str]

CENTS = Decimal("100")
TWO_PLACES = Decimal("0.01")


def to_decimal(amount: Amount) -> Decimal:
    if isinstance(amount, Decimal):
        return amount
    # str() first: Decimal(0.1) would carry the binary float error along
    return Decimal(str(amount))


def to_minor_units(amount: Amount) -> int:
    """Major units to integer cents, rounding half-up."""
    return int((to_decimal(amount) * CENTS).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(amount_in_cents: Union[int, str]) -> Decimal:
    """Integer cents back to major units with two decimal places."""
    return (Decimal(int(amount_in_cents)) / CENTS).quantize(TWO_PLACES)
