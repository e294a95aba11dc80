# Overview: Service-layer operations for stock items; the only code that changes stock quantity.

"""
Stock invariants (authoritative)

- StockItem.quantity is changed only by the conditional UPDATE statements in
  this module. Callers never read a quantity, compute a new one and write it
  back; that read-modify-write pair loses updates between clients.
- A decrement is "subtract N, fail if the result would be negative (floor
  enabled) or if the row changed since the caller read it (version given)".
- Every statement bumps version_id so optimistic readers see the change.
- Nothing here commits: decrements join the caller's transaction so an
  invoice and its stock movement land together or not at all.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import update

from ..extensions import db
from ..models import StockItem

DECREMENT_OK = "success"
DECREMENT_INSUFFICIENT = "insufficientStock"
DECREMENT_CONFLICT = "conflict"


class StockItemNotFoundError(ValueError):
    """Raised when a referenced stock item does not exist."""


def get_stock_item(stock_item_id: int) -> StockItem:
    item = db.session.get(StockItem, stock_item_id)
    if item is None:
        raise StockItemNotFoundError(f"Stock item {stock_item_id} not found")
    return item


def get_stock_items(stock_item_ids) -> dict[int, StockItem]:
    """Fetch several items at once; raises if any id is unknown."""
    ids = sorted(set(stock_item_ids))
    rows = db.session.query(StockItem).filter(StockItem.id.in_(ids)).all()
    found = {row.id: row for row in rows}
    missing = [i for i in ids if i not in found]
    if missing:
        raise StockItemNotFoundError(f"Stock items not found: {', '.join(str(i) for i in missing)}")
    return found


def list_stock_items(category: str | None = None) -> list[StockItem]:
    q = db.session.query(StockItem)
    if category:
        q = q.filter(StockItem.category == category)
    return q.order_by(StockItem.name, StockItem.id).all()


def list_low_stock_items() -> list[StockItem]:
    """Items at or below their low-stock threshold, lowest quantity first."""
    return (
        db.session.query(StockItem)
        .filter(StockItem.quantity <= StockItem.threshold)
        .order_by(StockItem.quantity, StockItem.name)
        .all()
    )


def decrement_stock_atomic(
    stock_item_id: int,
    amount: int,
    *,
    enforce_floor: bool | None = None,
    expected_version: int | None = None,
) -> str:
    """
    Atomically subtract `amount` from a stock item.

    Returns DECREMENT_OK, DECREMENT_INSUFFICIENT or DECREMENT_CONFLICT.
    Raises StockItemNotFoundError for an unknown id.

    Args:
        enforce_floor: reject if the result would be negative
            (defaults to the ENFORCE_STOCK_FLOOR setting)
        expected_version: version_id the caller read; a mismatch is a conflict
    """
    if amount <= 0:
        raise ValueError("decrement amount must be > 0")
    if enforce_floor is None:
        enforce_floor = current_app.config.get("ENFORCE_STOCK_FLOOR", True)

    stmt = update(StockItem).where(StockItem.id == stock_item_id)
    if enforce_floor:
        stmt = stmt.where(StockItem.quantity >= amount)
    if expected_version is not None:
        stmt = stmt.where(StockItem.version_id == expected_version)
    stmt = stmt.values(
        quantity=StockItem.quantity - amount,
        version_id=StockItem.version_id + 1,
    ).execution_options(synchronize_session=False)

    result = db.session.execute(stmt)
    if result.rowcount == 1:
        return DECREMENT_OK

    # Nothing matched: work out why, inside the same transaction
    row = (
        db.session.query(StockItem.quantity, StockItem.version_id)
        .filter(StockItem.id == stock_item_id)
        .first()
    )
    if row is None:
        raise StockItemNotFoundError(f"Stock item {stock_item_id} not found")
    if expected_version is not None and row.version_id != expected_version:
        return DECREMENT_CONFLICT
    return DECREMENT_INSUFFICIENT


def restore_stock_atomic(stock_item_id: int, amount: int) -> bool:
    """
    Atomically add `amount` back to a stock item (cancellation).

    Returns False if the item no longer exists; the cancellation still
    proceeds because there is nothing left to restore into.
    """
    if amount <= 0:
        raise ValueError("restore amount must be > 0")

    stmt = (
        update(StockItem)
        .where(StockItem.id == stock_item_id)
        .values(
            quantity=StockItem.quantity + amount,
            version_id=StockItem.version_id + 1,
        )
        .execution_options(synchronize_session=False)
    )
    return db.session.execute(stmt).rowcount == 1
