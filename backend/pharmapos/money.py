# Overview: Exact money conversion between API decimal strings and stored integer cents.

"""
Money handling.

Amounts are stored as integer cents. The API speaks decimal strings
("42.75"). Every conversion goes through Decimal; floats coming from JSON
are converted via their shortest repr, never multiplied as binary floats.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

TWOPLACES = Decimal("0.01")
HUNDRED = Decimal(100)

# Maximum amount: 99,999,999.99, the NUMERIC(10, 2) range
MAX_AMOUNT_CENTS = 9_999_999_999
MAX_AMOUNT = Decimal(MAX_AMOUNT_CENTS) / HUNDRED


class MoneyError(ValueError):
    """Raised when an amount cannot be represented exactly in cents."""


def to_decimal(value: Any, field: str = "amount") -> Decimal:
    if isinstance(value, bool):
        raise MoneyError(f"{field} must be a decimal amount")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, float):
        result = Decimal(repr(value))
    elif isinstance(value, str):
        try:
            result = Decimal(value.strip())
        except InvalidOperation:
            raise MoneyError(f"{field} must be a decimal amount")
    else:
        raise MoneyError(f"{field} must be a decimal amount")

    if not result.is_finite():
        raise MoneyError(f"{field} must be a finite amount")
    return result


def to_cents(value: Any, field: str = "amount", *, allow_negative: bool = False) -> int:
    """
    Convert an API amount to integer cents.

    Rejects more than two fractional digits instead of rounding them away.
    """
    amount = to_decimal(value, field)
    # Before quantize, which raises InvalidOperation past 28 digits
    if abs(amount) > MAX_AMOUNT:
        raise MoneyError(f"{field} exceeds maximum allowed amount")
    if amount != amount.quantize(TWOPLACES):
        raise MoneyError(f"{field} must have at most two decimal places")
    if amount < 0 and not allow_negative:
        raise MoneyError(f"{field} cannot be negative")

    return int((amount * HUNDRED).to_integral_value())


def cents_to_decimal(cents: int | None) -> Decimal | None:
    if cents is None:
        return None
    return (Decimal(cents) / HUNDRED).quantize(TWOPLACES)


def format_cents(cents: int | None) -> str | None:
    """Serialize cents as a fixed two-place decimal string."""
    amount = cents_to_decimal(cents)
    return None if amount is None else f"{amount:.2f}"


def apply_rate_cents(cents: int, multiplier: Decimal) -> int:
    """Multiply a cent amount by a decimal factor, nearest cent (half-up)."""
    return int((Decimal(cents) * multiplier).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def apply_basis_points(cents: int, bps: int) -> int:
    """cents * bps / 10000, nearest cent (half-up). Inputs are non-negative."""
    return (cents * bps + 5000) // 10000
