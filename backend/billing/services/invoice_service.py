"""
Invoice Service - priced, tax-split invoices with atomic stock deduction

WHY: An invoice and the stock it consumes are one fact. Writing them as
separate calls leaves either an invoice with no deduction or a deduction with
no invoice when the second call fails.

DESIGN PRINCIPLES:
- Validate the whole request before touching the database
- One transaction: number allocation, header, line snapshots, every decrement
- Decrements are conditional UPDATEs (see inventory_service), never
  read-modify-write, so concurrent clients cannot lose updates
- Any failure rolls the whole transaction back; nothing is retried except
  transient storage lock errors at the persistence boundary
- Status only moves forward: incoming -> packed -> dispatched
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Mapping

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Invoice, InvoiceLine
from ..money import to_cents
from ..validation import ValidationError, coerce_int, coerce_text, require_franchise_id
from billing.time_utils import utcnow
from . import inventory_service, notification_service, tax_service
from .concurrency import begin_write, lock_for_update, run_with_retry
from .document_service import allocate_document_number

STATUS_INCOMING = "incoming"
STATUS_PACKED = "packed"
STATUS_DISPATCHED = "dispatched"
STATUS_FLOW = (STATUS_INCOMING, STATUS_PACKED, STATUS_DISPATCHED)


class InvoiceError(Exception):
    """Raised for invoice operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class InvoiceNotFoundError(InvoiceError):
    pass


class UnknownStockItemError(InvoiceError):
    """A line references a stock item that does not exist."""


class InsufficientStockError(InvoiceError):
    pass


class StockConflictError(InvoiceError):
    """A stock row changed between the caller's read and the decrement."""


class PersistenceError(InvoiceError):
    """The database rejected or failed the write; nothing was persisted."""


class InvalidStatusTransition(InvoiceError):
    pass


@dataclass(frozen=True)
class OrderLine:
    stock_item_id: int
    quantity: int
    expected_version: int | None = None


def _parse_lines(lines) -> list[OrderLine]:
    if not lines:
        raise ValidationError("Order must contain at least one line item")
    if isinstance(lines, (str, bytes)) or not isinstance(lines, Iterable):
        raise ValidationError("lines must be a list")

    parsed = []
    for index, raw in enumerate(lines, start=1):
        if isinstance(raw, OrderLine):
            line = raw
        elif isinstance(raw, Mapping):
            version = raw.get("version_id")
            line = OrderLine(
                stock_item_id=coerce_int(raw.get("stock_item_id"), f"lines[{index}].stock_item_id"),
                quantity=coerce_int(raw.get("quantity"), f"lines[{index}].quantity"),
                expected_version=coerce_int(version, f"lines[{index}].version_id") if version is not None else None,
            )
        else:
            raise ValidationError(f"lines[{index}] must be an object")
        if line.quantity <= 0:
            raise ValidationError(f"lines[{index}].quantity must be > 0")
        parsed.append(line)
    return parsed


def _snapshot_fields(data: Mapping | None, fields: dict[str, int]) -> dict:
    data = data or {}
    if not isinstance(data, Mapping):
        raise ValidationError("customer and company must be objects")
    return {key: coerce_text(data.get(key), key, max_length=limit) for key, limit in fields.items()}


def _requested_totals(lines: list[OrderLine]) -> dict[int, int]:
    totals: dict[int, int] = {}
    for line in lines:
        totals[line.stock_item_id] = totals.get(line.stock_item_id, 0) + line.quantity
    return totals


def _expected_versions(lines: list[OrderLine]) -> dict[int, int]:
    versions: dict[int, int] = {}
    for line in lines:
        if line.expected_version is None:
            continue
        seen = versions.setdefault(line.stock_item_id, line.expected_version)
        if seen != line.expected_version:
            raise ValidationError(f"Conflicting version_id values for stock item {line.stock_item_id}")
    return versions


def create_invoice(
    *,
    franchise_id: str,
    lines,
    customer: Mapping | None = None,
    company: Mapping | None = None,
    created_by: str | None = None,
    now: datetime | None = None,
) -> Invoice:
    """
    Price the order, persist the invoice and decrement stock as one unit.

    Raises:
        ValidationError: empty order, non-positive quantity, malformed input
            (before any database call)
        UnknownStockItemError: a line references an unknown stock item
        InsufficientStockError / StockConflictError: a decrement was refused
        PersistenceError: the database failed; nothing was written
    """
    franchise_id = require_franchise_id(franchise_id)
    order_lines = _parse_lines(lines)
    customer_fields = _snapshot_fields(customer, {
        "name": 255, "phone": 32, "email": 255, "address": 2000, "branch_location": 255,
    })
    company_fields = _snapshot_fields(company, {
        "name": 255, "address": 2000, "gstin": 32, "terms": 4000,
    })
    requested = _requested_totals(order_lines)
    versions = _expected_versions(order_lines)
    created_at = now or utcnow()
    prefix = current_app.config.get("INVOICE_NUMBER_PREFIX", "INV")
    enforce_floor = current_app.config.get("ENFORCE_STOCK_FLOOR", True)

    def _op() -> Invoice:
        begin_write()
        try:
            stock = inventory_service.get_stock_items(requested.keys())
        except inventory_service.StockItemNotFoundError as exc:
            raise UnknownStockItemError(str(exc)) from exc

        ledger = tax_service.compute_ledger(
            {
                "quantity": line.quantity,
                "unit_price": stock[line.stock_item_id].price,
                "gst_rate": stock[line.stock_item_id].gst_rate,
            }
            for line in order_lines
        )
        total = tax_service.round_total(ledger.grand_total)
        round_off = tax_service.compute_round_off(total, ledger.subtotal, ledger.tax_amount)

        invoice = Invoice(
            invoice_number=allocate_document_number(
                franchise_id=franchise_id, document_type="INVOICE", prefix=prefix
            ),
            franchise_id=franchise_id,
            created_at=created_at,
            created_by=created_by,
            customer_name=customer_fields["name"],
            customer_phone=customer_fields["phone"],
            customer_email=customer_fields["email"],
            customer_address=customer_fields["address"],
            branch_location=customer_fields["branch_location"],
            company_name=company_fields["name"],
            company_address=company_fields["address"],
            company_gstin=company_fields["gstin"],
            terms=company_fields["terms"],
            subtotal_cents=to_cents(ledger.subtotal),
            tax_cents=to_cents(ledger.tax_amount),
            round_off_cents=to_cents(round_off),
            total_cents=to_cents(total),
            status=STATUS_INCOMING,
        )
        for position, (line, figures) in enumerate(zip(order_lines, ledger.lines), start=1):
            item = stock[line.stock_item_id]
            invoice.lines.append(InvoiceLine(
                position=position,
                stock_item_id=item.id,
                item_name=item.name,
                unit=item.unit,
                hsn_code=item.hsn_code,
                quantity=line.quantity,
                unit_price_cents=item.price_cents,
                gst_rate_bps=item.gst_rate_bps,
                line_total_cents=to_cents(figures.line_total),
            ))
        db.session.add(invoice)
        db.session.flush()

        # Fixed order so two writers touching the same items never deadlock
        for stock_item_id in sorted(requested):
            amount = requested[stock_item_id]
            outcome = inventory_service.decrement_stock_atomic(
                stock_item_id,
                amount,
                enforce_floor=enforce_floor,
                expected_version=versions.get(stock_item_id),
            )
            if outcome == inventory_service.DECREMENT_INSUFFICIENT:
                raise InsufficientStockError(
                    "Insufficient stock to create invoice",
                    details={"stock_item_id": stock_item_id, "requested_quantity": amount},
                )
            if outcome == inventory_service.DECREMENT_CONFLICT:
                raise StockConflictError(
                    "Stock changed since it was read; reload and retry",
                    details={"stock_item_id": stock_item_id, "expected_version": versions.get(stock_item_id)},
                )

        db.session.commit()
        return invoice

    invoice = run_write_unit(_op, "create invoice")
    notification_service.publish(
        notification_service.TABLE_INVOICES, franchise_id, notification_service.EVENT_INSERT, invoice.id
    )
    for stock_item_id in sorted(requested):
        notification_service.publish(
            notification_service.TABLE_STOCK_ITEMS, None, notification_service.EVENT_UPDATE, stock_item_id
        )
    return invoice


def run_write_unit(op, label: str):
    """
    Run a multi-step write as one failure domain.

    Every failure leaves the session rolled back. Database errors surface as
    PersistenceError; domain errors pass through unchanged.
    """
    try:
        return run_with_retry(op)
    except (InvoiceError, ValidationError, ValueError):
        db.session.rollback()
        raise
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.warning("Rolled back %s: %s", label, exc)
        raise PersistenceError(f"Could not {label}; nothing was saved") from exc
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Rolled back %s after an unexpected error", label)
        raise


def get_invoice(invoice_id: int, *, franchise_id: str | None = None) -> Invoice:
    """Fetch one invoice. With franchise_id, other tenants' invoices read as missing."""
    invoice = db.session.get(Invoice, invoice_id)
    if invoice is None or (franchise_id is not None and invoice.franchise_id != franchise_id):
        raise InvoiceNotFoundError("Invoice not found")
    return invoice


def list_invoices(
    franchise_id: str,
    *,
    created_after: datetime | None = None,
    created_before: datetime | None = None,
    status: str | None = None,
    newest_first: bool = True,
) -> list[Invoice]:
    """
    Invoices for one franchise.

    created_after is inclusive (createdAt >= bound), created_before exclusive.
    """
    franchise_id = require_franchise_id(franchise_id)
    q = db.session.query(Invoice).filter(Invoice.franchise_id == franchise_id)
    if created_after is not None:
        q = q.filter(Invoice.created_at >= created_after)
    if created_before is not None:
        q = q.filter(Invoice.created_at < created_before)
    if status is not None:
        if status not in STATUS_FLOW:
            raise ValidationError(f"Invalid status '{status}'. Must be one of: {', '.join(STATUS_FLOW)}")
        q = q.filter(Invoice.status == status)
    if newest_first:
        q = q.order_by(Invoice.created_at.desc(), Invoice.id.desc())
    else:
        q = q.order_by(Invoice.created_at.asc(), Invoice.id.asc())
    return q.all()


def can_transition(from_status: str, to_status: str) -> bool:
    """
    Valid transitions:
    - incoming -> packed
    - packed -> dispatched
    - any status -> itself (no-op)
    """
    if from_status not in STATUS_FLOW or to_status not in STATUS_FLOW:
        return False
    return STATUS_FLOW.index(to_status) - STATUS_FLOW.index(from_status) in (0, 1)


def update_invoice_status(invoice_id: int, new_status: str, *, franchise_id: str | None = None) -> Invoice:
    """Move an invoice one step forward. Re-applying the current status is a no-op."""
    if new_status not in STATUS_FLOW:
        raise ValidationError(f"Invalid status '{new_status}'. Must be one of: {', '.join(STATUS_FLOW)}")

    def _op() -> Invoice:
        invoice = lock_for_update(db.session.query(Invoice).filter_by(id=invoice_id)).first()
        if invoice is None or (franchise_id is not None and invoice.franchise_id != franchise_id):
            raise InvoiceNotFoundError("Invoice not found")
        if invoice.status == new_status:
            return invoice
        if not can_transition(invoice.status, new_status):
            raise InvalidStatusTransition(
                f"Cannot move invoice from '{invoice.status}' to '{new_status}'",
                details={"current_status": invoice.status, "requested_status": new_status},
            )
        invoice.status = new_status
        db.session.commit()
        return invoice

    invoice = run_write_unit(_op, "update invoice status")
    notification_service.publish(
        notification_service.TABLE_INVOICES, invoice.franchise_id, notification_service.EVENT_UPDATE, invoice.id
    )
    return invoice
