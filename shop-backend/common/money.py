# common/money.py
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from common.exceptions import ValidationError

CENTS = Decimal("0.01")
ZERO = Decimal("0.00")


def money(q) -> Decimal:
    return Decimal(q).quantize(CENTS, rounding=ROUND_HALF_UP)


def to_decimal(value, field="amount") -> Decimal:
    if value is None or value == "":
        raise ValidationError(f"{field} is required")
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError(f"{field} must be a number")


def to_quantity(value, field="quantity") -> int:
    """Parse a strictly positive integer quantity."""
    try:
        qty = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer")
    if qty <= 0:
        raise ValidationError(f"{field} must be greater than 0")
    return qty
