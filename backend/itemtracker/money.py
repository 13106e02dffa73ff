# Overview: Decimal helpers for prices and totals (2 decimal places, half-up).

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_decimal(value: Any) -> Decimal:
    """Coerce int/float/str/Decimal to a 2-place Decimal. Raises ValueError."""
    if isinstance(value, bool):
        raise ValueError("boolean is not a money amount")
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, float):
        # str() first so 0.1 stays 0.1 instead of the binary expansion
        amount = Decimal(str(value))
    else:
        try:
            amount = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValueError(f"invalid amount: {value!r}")
    if not amount.is_finite():
        raise ValueError(f"invalid amount: {value!r}")
    try:
        return amount.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        # More digits than the decimal context can hold at 2 places
        raise ValueError(f"amount out of range: {value!r}")


def line_total(quantity: int, unit_price: Any) -> Decimal:
    return to_decimal(Decimal(quantity) * to_decimal(unit_price))


def to_number(value: Optional[Decimal]) -> Optional[float]:
    """JSON representation of a stored amount."""
    if value is None:
        return None
    return float(value)
