# Overview: Time-gated order lifecycle: the cancellation window and the shift lock.

"""
Order Lifecycle Service

================================================================================
PURPOSE: Decide, from the wall clock alone, whether an order may be cancelled
and whether a franchise may close its shift.
================================================================================

CANCELLATION WINDOW (per invoice):
    CANCELLABLE --(now >= created_at + window)--> EXPIRED     (terminal)
    CANCELLABLE --cancel()--> DELETED                          (hard delete)

SHIFT LOCK (per franchise):
    OPEN --close_shift()--> LOCKED --(now >= closed_at + lock)--> OPEN

RULES:
1. State is a pure function of (timestamp, now, duration); nothing is
   scheduled. Stale clients recompute on every check.
2. Boundaries are half-open: exactly at created_at + window the order is
   EXPIRED; exactly at closed_at + lock the shift is OPEN.
3. Disallowed transitions raise named errors (WindowExpired, ShiftLocked) so
   callers can show the right message.
4. "Today" for a franchise starts at its last day-close, or at local midnight
   if it has never closed a shift.
================================================================================
"""

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..models import Invoice, ShiftBoundary
from ..validation import require_franchise_id
from billing.time_utils import local_date, local_day_start, utcnow
from . import inventory_service, notification_service
from .concurrency import begin_write, lock_for_update
from .document_service import allocate_document_number
from .invoice_service import InvoiceNotFoundError, run_write_unit, list_invoices

CANCELLATION_WINDOW = timedelta(minutes=5)
SHIFT_LOCK_DURATION = timedelta(hours=12)

STATE_CANCELLABLE = "CANCELLABLE"
STATE_EXPIRED = "EXPIRED"
STATE_DELETED = "DELETED"

SHIFT_OPEN = "OPEN"
SHIFT_LOCKED = "LOCKED"

SHIFT_DOCUMENT_TYPE = "SHIFT"
SHIFT_NUMBER_PREFIX = "SHIFT"


class LifecycleError(ValueError):
    """
    Raised when a disallowed lifecycle transition is attempted.

    This is a domain outcome, not a technical failure.
    """
    code = "LifecycleError"


class WindowExpired(LifecycleError):
    code = "WindowExpired"

    def __init__(self, invoice_id: int, expired_at: datetime):
        super().__init__(f"Cancellation window for invoice {invoice_id} closed at {expired_at.isoformat()}")
        self.invoice_id = invoice_id
        self.expired_at = expired_at


class ShiftLocked(LifecycleError):
    code = "ShiftLocked"

    def __init__(self, franchise_id: str, unlocks_at: datetime):
        super().__init__(f"Shift for franchise {franchise_id} is locked until {unlocks_at.isoformat()}")
        self.franchise_id = franchise_id
        self.unlocks_at = unlocks_at


def _cancellation_window() -> timedelta:
    return timedelta(seconds=current_app.config.get(
        "CANCELLATION_WINDOW_SECONDS", int(CANCELLATION_WINDOW.total_seconds())
    ))


def _shift_lock_duration() -> timedelta:
    return timedelta(hours=current_app.config.get(
        "SHIFT_LOCK_HOURS", int(SHIFT_LOCK_DURATION.total_seconds() // 3600)
    ))


# =============================================================================
# PURE STATE FUNCTIONS
# =============================================================================

def cancellation_state(created_at: datetime, now: datetime, window: timedelta = CANCELLATION_WINDOW) -> str:
    return STATE_CANCELLABLE if now < created_at + window else STATE_EXPIRED


def cancellation_seconds_remaining(created_at: datetime, now: datetime, window: timedelta = CANCELLATION_WINDOW) -> int:
    """Whole seconds left for the countdown badge; 0 once expired."""
    remaining = (created_at + window) - now
    return max(0, int(remaining.total_seconds()))


def shift_state(last_close_at: datetime | None, now: datetime, lock: timedelta = SHIFT_LOCK_DURATION) -> str:
    if last_close_at is None:
        return SHIFT_OPEN
    return SHIFT_LOCKED if now < last_close_at + lock else SHIFT_OPEN


def shift_seconds_remaining(last_close_at: datetime | None, now: datetime, lock: timedelta = SHIFT_LOCK_DURATION) -> int:
    if last_close_at is None:
        return 0
    return max(0, int(((last_close_at + lock) - now).total_seconds()))


def format_countdown(seconds: int) -> str:
    """12h 3m 9s style, as shown next to the checkout button."""
    hours, rest = divmod(max(0, seconds), 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}h {minutes}m {secs}s"
    return f"{minutes}:{secs:02d}"


# =============================================================================
# CANCELLATION
# =============================================================================

def get_cancellation_status(invoice: Invoice, now: datetime | None = None) -> dict:
    now = now or utcnow()
    window = _cancellation_window()
    remaining = cancellation_seconds_remaining(invoice.created_at, now, window)
    return {
        "invoice_id": invoice.id,
        "state": cancellation_state(invoice.created_at, now, window),
        "seconds_remaining": remaining,
        "countdown": format_countdown(remaining),
    }


def cancel_invoice(
    invoice_id: int,
    *,
    franchise_id: str,
    now: datetime | None = None,
) -> dict:
    """
    Hard-delete an invoice while its cancellation window is open.

    Stock deducted by the invoice is restored in the same transaction as the
    delete, so stock never shows a deduction without its invoice.

    Raises:
        InvoiceNotFoundError: unknown id, another franchise's invoice, or
            already cancelled
        WindowExpired: the window has closed
    """
    franchise_id = require_franchise_id(franchise_id)
    now = now or utcnow()
    window = _cancellation_window()

    def _op() -> dict:
        begin_write()
        invoice = lock_for_update(db.session.query(Invoice).filter_by(id=invoice_id)).first()
        if invoice is None or invoice.franchise_id != franchise_id:
            raise InvoiceNotFoundError("Invoice not found")

        if cancellation_state(invoice.created_at, now, window) == STATE_EXPIRED:
            raise WindowExpired(invoice.id, invoice.created_at + window)

        restored: dict[int, int] = {}
        for line in invoice.lines:
            restored[line.stock_item_id] = restored.get(line.stock_item_id, 0) + line.quantity
        for stock_item_id in sorted(restored):
            inventory_service.restore_stock_atomic(stock_item_id, restored[stock_item_id])

        summary = {
            "invoice_id": invoice.id,
            "invoice_number": invoice.invoice_number,
            "state": STATE_DELETED,
            "restored": restored,
        }
        db.session.delete(invoice)
        db.session.commit()
        return summary

    summary = run_write_unit(_op, "cancel invoice")
    notification_service.publish(
        notification_service.TABLE_INVOICES, franchise_id, notification_service.EVENT_DELETE, invoice_id
    )
    for stock_item_id in sorted(summary["restored"]):
        notification_service.publish(
            notification_service.TABLE_STOCK_ITEMS, None, notification_service.EVENT_UPDATE, stock_item_id
        )
    return summary


# =============================================================================
# SHIFT LOCK
# =============================================================================

def get_last_shift_boundary(franchise_id: str) -> ShiftBoundary | None:
    return (
        db.session.query(ShiftBoundary)
        .filter_by(franchise_id=franchise_id, is_day_closed=True)
        .order_by(ShiftBoundary.created_at.desc(), ShiftBoundary.id.desc())
        .first()
    )


def history_window_start(franchise_id: str, now: datetime | None = None) -> datetime:
    """Left edge of the current shift's visible history."""
    now = now or utcnow()
    last = get_last_shift_boundary(franchise_id)
    if last is not None:
        return last.created_at
    return local_day_start(now, current_app.config.get("BILLING_TIMEZONE", "UTC"))


def get_shift_status(franchise_id: str, now: datetime | None = None) -> dict:
    franchise_id = require_franchise_id(franchise_id)
    now = now or utcnow()
    lock = _shift_lock_duration()
    last = get_last_shift_boundary(franchise_id)
    last_close_at = last.created_at if last else None
    remaining = shift_seconds_remaining(last_close_at, now, lock)
    return {
        "franchise_id": franchise_id,
        "state": shift_state(last_close_at, now, lock),
        "last_close_at": last_close_at,
        "seconds_remaining": remaining,
        "countdown": format_countdown(remaining) if remaining else "",
        "history_start": history_window_start(franchise_id, now),
    }


def close_shift(
    franchise_id: str,
    *,
    now: datetime | None = None,
    closed_by: str | None = None,
) -> ShiftBoundary:
    """
    Record a day-close and start the re-open lock.

    Closers of the same franchise are serialized on its SHIFT document
    sequence row, so the lock check and the insert act as one step on every
    database; the allocated number becomes the boundary's closing_number.

    Raises:
        ShiftLocked: the previous close is less than the lock duration ago
    """
    franchise_id = require_franchise_id(franchise_id)
    now = now or utcnow()
    lock = _shift_lock_duration()
    tz_name = current_app.config.get("BILLING_TIMEZONE", "UTC")

    def _op() -> ShiftBoundary:
        begin_write()
        # The UPDATE on this franchise's SHIFT sequence row holds a row lock until
        # commit; a concurrent closer blocks here and then reads the new boundary
        closing_number = allocate_document_number(
            franchise_id=franchise_id, document_type=SHIFT_DOCUMENT_TYPE, prefix=SHIFT_NUMBER_PREFIX
        )
        last = get_last_shift_boundary(franchise_id)
        last_close_at = last.created_at if last else None
        if shift_state(last_close_at, now, lock) == SHIFT_LOCKED:
            raise ShiftLocked(franchise_id, last_close_at + lock)

        boundary = ShiftBoundary(
            franchise_id=franchise_id,
            created_at=now,
            is_day_closed=True,
            business_date=local_date(now, tz_name) + timedelta(days=1),
            closed_by=closed_by,
            closing_number=closing_number,
        )
        db.session.add(boundary)
        db.session.commit()
        return boundary

    boundary = run_write_unit(_op, "close shift")
    current_app.logger.info("Shift closed for franchise %s at %s", franchise_id, now.isoformat())
    notification_service.publish(
        notification_service.TABLE_SHIFT_BOUNDARIES, franchise_id, notification_service.EVENT_INSERT, boundary.id
    )
    return boundary


def current_shift_history(franchise_id: str, now: datetime | None = None) -> dict:
    """Invoices created since the last day-close (or local midnight), newest first."""
    franchise_id = require_franchise_id(franchise_id)
    now = now or utcnow()
    start = history_window_start(franchise_id, now)
    invoices = list_invoices(franchise_id, created_after=start)
    return {
        "franchise_id": franchise_id,
        "history_start": start,
        "invoices": invoices,
        "order_count": len(invoices),
        "total_sales": sum((inv.total_amount for inv in invoices), Decimal(0)),
    }
