"""
money.py - Coin amount helpers.

Amounts are Decimals with 3 fractional digits (half-up rounding). SQLite
stores them as INTEGER thousandths ("milli-coins") so sums are exact.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from engage.errors import ValidationError

QUANTUM = Decimal("0.001")
MILLI = 1000
ZERO = Decimal("0.000")


def to_amount(value) -> Decimal:
    """Coerce int/float/str/Decimal to a 3dp Decimal."""
    if isinstance(value, bool):
        raise ValidationError(f"Invalid amount: {value!r}")
    try:
        if isinstance(value, Decimal):
            d = value
        else:
            # str() keeps floats like 0.1 from dragging binary noise along
            d = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError(f"Invalid amount: {value!r}")
    if not d.is_finite():
        raise ValidationError(f"Invalid amount: {value!r}")
    return d.quantize(QUANTUM, rounding=ROUND_HALF_UP)


def to_milli(value) -> int:
    return int(to_amount(value) * MILLI)


def from_milli(milli: int) -> Decimal:
    return (Decimal(int(milli)) / MILLI).quantize(QUANTUM)


def as_float(value) -> float:
    """JSON-friendly rendering of an amount."""
    return float(to_amount(value))


def milli_to_float(milli: int) -> float:
    return float(from_milli(milli))
