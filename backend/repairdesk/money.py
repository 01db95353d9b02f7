# Overview: Decimal helpers for currency amounts stored as Numeric(10, 2).

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP


CENT = Decimal("0.01")
ZERO = Decimal("0.00")


class MoneyError(ValueError):
    """Raised when a value cannot be read as a finite currency amount."""
    pass


def to_decimal(value) -> Decimal:
    """
    Parse an API value (str, int, float, Decimal) into a 2-place Decimal.

    Floats go through str() first so 0.1 becomes Decimal("0.10") rather than
    the binary expansion. Booleans are rejected even though they are ints.
    """
    if value is None or isinstance(value, bool):
        raise MoneyError("Amount is required")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise MoneyError(f"Invalid amount: {value!r}")
    if not amount.is_finite():
        raise MoneyError("Amount must be a finite number")
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def money(value) -> Decimal:
    """Normalize a stored value (possibly None) to a 2-place Decimal."""
    if value is None:
        return ZERO
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def to_money_str(value) -> str | None:
    if value is None:
        return None
    return str(money(value))


def from_minor_units(minor: int) -> Decimal:
    """Processor amounts arrive as integer cents."""
    return (Decimal(int(minor)) / 100).quantize(CENT, rounding=ROUND_HALF_UP)


def to_minor_units(amount) -> int:
    return int((money(amount) * 100).to_integral_value(rounding=ROUND_HALF_UP))
