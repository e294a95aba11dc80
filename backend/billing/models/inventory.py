from __future__ import annotations

from ..extensions import db
from ..money import from_cents, format_amount, rate_from_bps
from billing.time_utils import to_utc_z


class StockItem(db.Model):
    """
    Central stock master data.

    WHY: Invoices snapshot these fields at creation time; the live row only
    carries the current quantity and price.

    CONCURRENCY: quantity is only ever changed through the conditional
    UPDATE in inventory_service.decrement_stock_atomic / restore_stock_atomic,
    never by read-modify-write from Python. version_id is bumped by those
    statements so optimistic readers can detect a change since their read.
    """
    __tablename__ = "stock_items"
    __table_args__ = (
        db.Index("ix_stock_items_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    unit = db.Column(db.String(32), nullable=False, default="pcs")
    category = db.Column(db.String(64), nullable=True)

    # Mutable inventory count; may go negative only when the floor check is disabled
    quantity = db.Column(db.Integer, nullable=False, default=0)

    # Authoritative storage in paise; GST in basis points (1800 = 18%)
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    gst_rate_bps = db.Column(db.Integer, nullable=False, default=0)
    hsn_code = db.Column(db.String(16), nullable=True)

    # Low-stock trigger
    threshold = db.Column(db.Integer, nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def price(self):
        return from_cents(self.price_cents)

    @property
    def gst_rate(self):
        return rate_from_bps(self.gst_rate_bps)

    @property
    def is_low_stock(self) -> bool:
        return self.quantity <= self.threshold

    def __repr__(self) -> str:
        return f"<StockItem id={self.id} name={self.name!r} quantity={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "unit": self.unit,
            "category": self.category,
            "quantity": self.quantity,
            "price": format_amount(self.price),
            "gst_rate": str(self.gst_rate),
            "hsn_code": self.hsn_code,
            "threshold": self.threshold,
            "is_low_stock": self.is_low_stock,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
