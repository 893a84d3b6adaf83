"""Conversions between API decimals and stored integer hundredths."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

_HUNDRED = Decimal("100")
_CENT = Decimal("0.01")


def to_cents(amount: Decimal) -> int:
    return int((amount * _HUNDRED).to_integral_value(rounding=ROUND_HALF_UP))


def from_cents(cents: int) -> Decimal:
    return (Decimal(cents) / _HUNDRED).quantize(_CENT)


def round_cents(amount: Decimal) -> int:
    """Round a fractional cent amount half-up to a whole cent."""

    return int(amount.to_integral_value(rounding=ROUND_HALF_UP))
