from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from ..money import from_cents, format_amount, rate_from_bps
from billing.time_utils import utcnow, to_utc_z


class Invoice(db.Model):
    """
    Invoice header (document-first, immutable except for status).

    WHY: Historical invoices must reprint identically, so customer and
    company details are copied onto the row instead of joined live.

    INVARIANTS:
    - subtotal/tax/round_off/total are written once, from the line items,
      by invoice_service.create_invoice and never edited on their own.
    - cgst == sgst == tax / 2 (intra-state split), derived on read.
    - status only moves forward: incoming -> packed -> dispatched.
    - created_at is set once and drives the cancellation window.
    """
    __tablename__ = "invoices"
    __table_args__ = (
        db.UniqueConstraint("franchise_id", "invoice_number", name="uq_invoices_franchise_number"),
        db.Index("ix_invoices_franchise_created", "franchise_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_number = db.Column(db.String(64), nullable=False)
    franchise_id = db.Column(db.String(64), nullable=False, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    created_by = db.Column(db.String(64), nullable=True)

    # Customer snapshot
    customer_name = db.Column(db.String(255), nullable=True)
    customer_phone = db.Column(db.String(32), nullable=True)
    customer_email = db.Column(db.String(255), nullable=True)
    customer_address = db.Column(db.Text, nullable=True)
    branch_location = db.Column(db.String(255), nullable=True)

    # Issuing company snapshot
    company_name = db.Column(db.String(255), nullable=True)
    company_address = db.Column(db.Text, nullable=True)
    company_gstin = db.Column(db.String(32), nullable=True)
    terms = db.Column(db.Text, nullable=True)

    # Ledger figures (all amounts in paise)
    subtotal_cents = db.Column(db.Integer, nullable=False)
    tax_cents = db.Column(db.Integer, nullable=False)
    round_off_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(16), nullable=False, default="incoming", index=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    lines = db.relationship(
        "InvoiceLine",
        backref="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceLine.position",
        lazy=True,
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def subtotal(self) -> Decimal:
        return from_cents(self.subtotal_cents)

    @property
    def tax_amount(self) -> Decimal:
        return from_cents(self.tax_cents)

    @property
    def cgst(self) -> Decimal:
        return self.tax_amount / 2

    @property
    def sgst(self) -> Decimal:
        return self.tax_amount / 2

    @property
    def round_off(self) -> Decimal:
        return from_cents(self.round_off_cents)

    @property
    def total_amount(self) -> Decimal:
        return from_cents(self.total_cents)

    def __repr__(self) -> str:
        return f"<Invoice id={self.id} number={self.invoice_number!r} status={self.status}>"

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "invoice_number": self.invoice_number,
            "franchise_id": self.franchise_id,
            "created_at": to_utc_z(self.created_at),
            "created_by": self.created_by,
            "customer": {
                "name": self.customer_name,
                "phone": self.customer_phone,
                "email": self.customer_email,
                "address": self.customer_address,
                "branch_location": self.branch_location,
            },
            "company": {
                "name": self.company_name,
                "address": self.company_address,
                "gstin": self.company_gstin,
                "terms": self.terms,
            },
            "subtotal": format_amount(self.subtotal),
            "tax_amount": format_amount(self.tax_amount),
            # cgst/sgst can carry a half paisa; keep full precision
            "cgst": str(self.cgst),
            "sgst": str(self.sgst),
            "round_off": format_amount(self.round_off),
            "total_amount": format_amount(self.total_amount),
            "status": self.status,
            "version_id": self.version_id,
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


class InvoiceLine(db.Model):
    """Snapshot of one priced, taxed row. Never references live stock values."""
    __tablename__ = "invoice_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(
        db.Integer, db.ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position = db.Column(db.Integer, nullable=False)

    # Plain id, not a foreign key: stock rows may be edited or removed later
    stock_item_id = db.Column(db.Integer, nullable=False, index=True)
    item_name = db.Column(db.String(255), nullable=False)
    unit = db.Column(db.String(32), nullable=True)
    hsn_code = db.Column(db.String(16), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    gst_rate_bps = db.Column(db.Integer, nullable=False, default=0)
    line_total_cents = db.Column(db.Integer, nullable=False)

    @property
    def unit_price(self) -> Decimal:
        return from_cents(self.unit_price_cents)

    @property
    def gst_rate(self) -> Decimal:
        return rate_from_bps(self.gst_rate_bps)

    @property
    def line_total(self) -> Decimal:
        return from_cents(self.line_total_cents)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_id": self.invoice_id,
            "position": self.position,
            "stock_item_id": self.stock_item_id,
            "item_name": self.item_name,
            "unit": self.unit,
            "hsn_code": self.hsn_code,
            "quantity": self.quantity,
            "unit_price": format_amount(self.unit_price),
            "gst_rate": str(self.gst_rate),
            "line_total": format_amount(self.line_total),
        }


class DocumentSequence(db.Model):
    """
    Atomic per-franchise document sequences.

    WHY: Prevent race conditions when generating invoice numbers.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("franchise_id", "document_type", name="uq_doc_sequences_franchise_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    franchise_id = db.Column(db.String(64), nullable=False, index=True)
    document_type = db.Column(db.String(32), nullable=False, index=True)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
