"""Decimal money helpers. Amounts carry exactly two decimal places."""

from decimal import Decimal, InvalidOperation
from typing import Union

from accounts_gateway.domain.exceptions import InvalidAmount

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

Amount = Union[Decimal, int, str, float]


def to_money(value: Amount) -> Decimal:
    """
    Normalize an amount to a two-place Decimal.

    Floats go through str() so 0.1 stays 0.10 instead of its binary expansion.

    Raises:
        InvalidAmount: Value is not a finite number or has more than two decimal places
    """
    if isinstance(value, bool):
        raise InvalidAmount(f"Invalid amount: {value!r}")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise InvalidAmount(f"Invalid amount: {value!r}") from e

    if not amount.is_finite():
        raise InvalidAmount(f"Invalid amount: {value!r}")
    if amount != amount.quantize(CENT):
        raise InvalidAmount(f"Amount {amount} has more than two decimal places")
    return amount.quantize(CENT)


def to_cents(amount: Decimal) -> int:
    """Decimal amount -> integer cents for storage"""
    return int((amount * 100).to_integral_value())


def from_cents(cents: int | None) -> Decimal:
    """Integer cents from storage -> Decimal amount"""
    return (Decimal(cents or 0) / 100).quantize(CENT)
