# Overview: Pure ledger arithmetic for invoice lines; no database access.

"""
Tax ledger invariants (authoritative)

- taxable = quantity * unit_price
- tax     = taxable * gst_rate / 100
- line_total = round2(quantity * unit_price * (1 + gst_rate / 100))
- Aggregates are summed from the exact (unrounded) per-line values and rounded
  once, so many small lines never accumulate rounding error.
- cgst == sgst == tax_amount / 2 exactly. The halves are not re-rounded, so an
  odd-paisa tax total yields halves ending in 5 at the third decimal.
- Round-off is reported, not decided: callers pick the final total and
  compute_round_off returns the delta, which must stay below one rupee.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Mapping

from ..money import round2, round_rupee, HUNDRED
from ..validation import ValidationError, coerce_decimal, coerce_int


@dataclass(frozen=True)
class LineFigures:
    taxable_amount: Decimal
    tax_amount: Decimal
    cgst: Decimal
    sgst: Decimal
    line_total: Decimal


@dataclass(frozen=True)
class LedgerTotals:
    subtotal: Decimal
    tax_amount: Decimal
    cgst: Decimal
    sgst: Decimal
    lines: tuple[LineFigures, ...]

    @property
    def grand_total(self) -> Decimal:
        return self.subtotal + self.tax_amount


def _raw_line(quantity, unit_price, gst_rate) -> tuple[Decimal, Decimal]:
    qty = coerce_int(quantity, "quantity")
    price = coerce_decimal(unit_price, "unit_price")
    rate = coerce_decimal(gst_rate, "gst_rate")

    if qty < 0:
        raise ValidationError("quantity must be >= 0")
    if price < 0:
        raise ValidationError("unit_price must be >= 0")
    if rate < 0:
        raise ValidationError("gst_rate must be >= 0")

    taxable = Decimal(qty) * price
    return taxable, taxable * rate / HUNDRED


def compute_line(quantity, unit_price, gst_rate) -> LineFigures:
    """Per-line figures, each rounded half-up to 2 places for display."""
    taxable, tax = _raw_line(quantity, unit_price, gst_rate)
    tax_rounded = round2(tax)
    return LineFigures(
        taxable_amount=round2(taxable),
        tax_amount=tax_rounded,
        cgst=tax_rounded / 2,
        sgst=tax_rounded / 2,
        line_total=round2(taxable + tax),
    )


def compute_ledger(lines: Iterable[Mapping]) -> LedgerTotals:
    """
    Compute per-line and aggregate figures for an ordered list of
    {quantity, unit_price, gst_rate} mappings.

    Empty input is valid and yields zero totals; whether an empty order may
    be persisted is the caller's decision.
    """
    figures = []
    subtotal_raw = Decimal(0)
    tax_raw = Decimal(0)

    for index, line in enumerate(lines):
        try:
            quantity = line["quantity"]
            unit_price = line["unit_price"]
            gst_rate = line.get("gst_rate", 0)
        except (KeyError, TypeError):
            raise ValidationError(f"line {index + 1} needs quantity and unit_price")

        taxable, tax = _raw_line(quantity, unit_price, gst_rate)
        subtotal_raw += taxable
        tax_raw += tax
        figures.append(compute_line(quantity, unit_price, gst_rate))

    tax_amount = round2(tax_raw)
    return LedgerTotals(
        subtotal=round2(subtotal_raw),
        tax_amount=tax_amount,
        cgst=tax_amount / 2,
        sgst=tax_amount / 2,
        lines=tuple(figures),
    )


def round_total(amount: Decimal) -> Decimal:
    """
    Canonical invoice rounding policy: nearest whole rupee, half-up.

    Every invoice template uses this one policy, so the stored round-off is
    always recomputable from the line items.
    """
    return round_rupee(amount)


def compute_round_off(final_total, subtotal, tax_amount) -> Decimal:
    """
    Delta between the caller's final total and subtotal + tax.

    Raises ValidationError if the delta is a full rupee or more, which means
    the caller's total was not a rounding of the computed figures.
    """
    total = coerce_decimal(final_total, "final_total")
    delta = round2(total - (coerce_decimal(subtotal, "subtotal") + coerce_decimal(tax_amount, "tax_amount")))
    if abs(delta) >= 1:
        raise ValidationError(
            f"round-off {delta} is out of range; final total must be within one rupee of subtotal + tax"
        )
    return delta
