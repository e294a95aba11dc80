# Overview: Splits invoice lines into fixed-height print pages and builds print payloads.

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from ..money import format_amount
from ..validation import ValidationError
from billing.time_utils import to_utc_z
from .words_service import amount_to_words


@dataclass(frozen=True)
class Page:
    """
    One printable page.

    padding_row_count is non-zero only on the last page; print layouts render
    that many blank rows so every page has the same table height.
    """
    page_index: int
    total_pages: int
    items: tuple
    padding_row_count: int
    page_size: int

    @property
    def first_serial(self) -> int:
        return self.page_index * self.page_size + 1

    @property
    def is_last(self) -> bool:
        return self.page_index == self.total_pages - 1


def paginate(items: Sequence, page_size: int) -> list[Page]:
    """
    Chunk items into pages of page_size, preserving order.

    An empty sequence still produces one empty page padded to page_size so a
    zero-line invoice prints a well-formed table.
    """
    if isinstance(page_size, bool) or not isinstance(page_size, int) or page_size < 1:
        raise ValidationError("page_size must be a positive integer")

    items = tuple(items)
    if not items:
        return [Page(page_index=0, total_pages=1, items=(), padding_row_count=page_size, page_size=page_size)]

    chunks = [items[i:i + page_size] for i in range(0, len(items), page_size)]
    total = len(chunks)
    pages = []
    for index, chunk in enumerate(chunks):
        padding = max(0, page_size - len(chunk)) if index == total - 1 else 0
        pages.append(Page(
            page_index=index,
            total_pages=total,
            items=chunk,
            padding_row_count=padding,
            page_size=page_size,
        ))
    return pages


def render_invoice(invoice, page_size: int) -> dict:
    """
    Print payload for an external renderer: invoice header figures plus
    paginated rows with running serial numbers.
    """
    pages = paginate(list(invoice.lines), page_size)
    return {
        "invoice": invoice.to_dict(include_lines=False),
        "taxable_amount": format_amount(invoice.subtotal),
        "cgst": str(invoice.cgst),
        "sgst": str(invoice.sgst),
        "round_off": format_amount(invoice.round_off),
        "total_amount": format_amount(invoice.total_amount),
        "amount_in_words": amount_to_words(invoice.total_amount),
        "invoice_date": to_utc_z(invoice.created_at),
        "pages": [
            {
                "page_index": page.page_index,
                "total_pages": page.total_pages,
                "padding_row_count": page.padding_row_count,
                "rows": [
                    {"serial": page.first_serial + offset, **line.to_dict()}
                    for offset, line in enumerate(page.items)
                ],
            }
            for page in pages
        ],
    }
