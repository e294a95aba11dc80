from __future__ import annotations

from ..extensions import db
from billing.time_utils import utcnow, to_utc_z


class ShiftBoundary(db.Model):
    """
    Day-close record.

    WHY: The most recent closing record is the left edge of a franchise's
    "today" history and starts the re-open lock.

    IMMUTABLE: Created only by lifecycle_service.close_shift; never edited.
    """
    __tablename__ = "shift_boundaries"
    __table_args__ = (
        db.Index("ix_shift_boundaries_franchise_created", "franchise_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    franchise_id = db.Column(db.String(64), nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    is_day_closed = db.Column(db.Boolean, nullable=False, default=True)

    # Business day the next shift belongs to (local calendar)
    business_date = db.Column(db.Date, nullable=True)
    closed_by = db.Column(db.String(64), nullable=True)
    closing_number = db.Column(db.String(64), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "franchise_id": self.franchise_id,
            "created_at": to_utc_z(self.created_at),
            "is_day_closed": self.is_day_closed,
            "business_date": self.business_date.isoformat() if self.business_date else None,
            "closed_by": self.closed_by,
            "closing_number": self.closing_number,
        }
