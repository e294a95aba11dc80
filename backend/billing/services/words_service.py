# Overview: Indian-numbering amount-in-words for printed invoices.

from __future__ import annotations

from decimal import Decimal

from ..validation import ValidationError

SUFFIX = "Rupees Only"
ZERO_WORDS = "Zero " + SUFFIX

# Nine digits split as crore(2) lakh(2) thousand(2) hundred(1) tens+ones(2)
MAX_AMOUNT = 999_999_999

ONES = [
    "", "One", "Two", "Three", "Four", "Five", "Six", "Seven", "Eight", "Nine",
    "Ten", "Eleven", "Twelve", "Thirteen", "Fourteen", "Fifteen", "Sixteen",
    "Seventeen", "Eighteen", "Nineteen",
]
TENS = ["", "", "Twenty", "Thirty", "Forty", "Fifty", "Sixty", "Seventy", "Eighty", "Ninety"]


def _two_digits(n: int) -> str:
    if n < 20:
        return ONES[n]
    tens, ones = divmod(n, 10)
    return f"{TENS[tens]} {ONES[ones]}" if ones else TENS[tens]


def amount_to_words(amount) -> str:
    """
    Render a whole-rupee amount in Indian grouping, e.g.
    1500 -> "One Thousand Five Hundred Rupees Only".

    - Paise are never rendered; round to a whole rupee before calling.
    - 0 renders as "Zero Rupees Only".
    - Amounts above 99,99,99,999 (more than nine digits) are rejected: the
      crore group is only two digits wide.
    - "and" joins the tens/ones to a non-zero hundreds group only
      (150 -> "One Hundred and Fifty", 1050 -> "One Thousand Fifty").
    """
    if isinstance(amount, bool):
        raise ValidationError("amount must be a whole number")
    if isinstance(amount, Decimal):
        if amount != amount.to_integral_value():
            raise ValidationError("amount must be a whole number; round paise first")
        amount = int(amount)
    if not isinstance(amount, int):
        raise ValidationError("amount must be a whole number")
    if amount < 0:
        raise ValidationError("amount must be >= 0")
    if amount > MAX_AMOUNT:
        raise ValidationError(f"amount exceeds {MAX_AMOUNT:,}; cannot render in words")
    if amount == 0:
        return ZERO_WORDS

    crore, rest = divmod(amount, 10_000_000)
    lakh, rest = divmod(rest, 100_000)
    thousand, rest = divmod(rest, 1_000)
    hundred, remainder = divmod(rest, 100)

    parts = []
    for value, scale in ((crore, "Crore"), (lakh, "Lakh"), (thousand, "Thousand")):
        if value:
            parts.append(f"{_two_digits(value)} {scale}")
    if hundred:
        parts.append(f"{ONES[hundred]} Hundred")
    if remainder:
        if hundred:
            parts.append("and")
        parts.append(_two_digits(remainder))

    return " ".join(parts) + " " + SUFFIX
