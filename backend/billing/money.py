# Overview: Fixed-point currency helpers shared by models and services.

"""
Money conventions (authoritative)

- Amounts are persisted as integer paise (`*_cents` columns, 1 rupee = 100).
- Arithmetic happens on Decimal rupees, never on floats.
- Rounding is half-up to 2 places and is applied once, at the point an amount
  is persisted or displayed.
"""

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP

TWO_PLACES = Decimal("0.01")
WHOLE_RUPEE = Decimal("1")
HUNDRED = Decimal("100")


def round2(amount: Decimal) -> Decimal:
    """Half-up rounding to 2 decimal places."""
    return amount.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def round_rupee(amount: Decimal) -> Decimal:
    """Half-up rounding to a whole currency unit."""
    return amount.quantize(WHOLE_RUPEE, rounding=ROUND_HALF_UP)


def to_cents(amount: Decimal) -> int:
    return int(round2(amount) * HUNDRED)


def from_cents(cents: int | None) -> Decimal:
    return (Decimal(cents or 0) / HUNDRED).quantize(TWO_PLACES)


def rate_from_bps(bps: int | None) -> Decimal:
    """Basis points to percent (1800 -> 18.00)."""
    return (Decimal(bps or 0) / HUNDRED).quantize(TWO_PLACES)


def format_amount(amount: Decimal) -> str:
    """JSON-safe 2dp string ("236.00")."""
    return str(round2(amount))
