"""Conversion between decimal currency amounts and integer micro-units"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Union

MICROS_PER_UNIT = 1_000_000

Numeric = Union[Decimal, int, str, float]


def to_micros(amount: Numeric) -> int:
    """
    Convert a currency amount to integer micro-units.

    Floats go through str() so that 0.1 becomes exactly 100000 micros.
    Sub-micro precision is rounded half-up.
    """
    if isinstance(amount, float):
        amount = str(amount)
    value = Decimal(amount) * MICROS_PER_UNIT
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def from_micros(micros: int) -> Decimal:
    """Render micro-units back as a Decimal currency amount"""
    return Decimal(micros) / MICROS_PER_UNIT


def scale_micros(micros: int, factor: Decimal) -> int:
    """Multiply a micro amount by a decimal factor, rounding half-up to a whole micro"""
    return int((Decimal(micros) * factor).quantize(Decimal(1), rounding=ROUND_HALF_UP))
