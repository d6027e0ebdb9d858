# Overview: Service-layer operations for per-location stock; the only writer of StockEntry.

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import StockEntry, Product
from ..validation import ConflictError, NotFoundError, ValidationError
"""
Stock Invariants

- One StockEntry per (location, product). Rows are created once and then
  only updated; they are never deleted.
- Every change is a single UPDATE with an arithmetic expression
  (quantity_on_hand = quantity_on_hand + :delta). Reading the quantity in
  Python and writing it back would lose decrements from concurrent
  terminals, so nothing here does that.
- quantity_on_hand may go below zero (oversold) unless
  STOCK_ALLOW_NEGATIVE is turned off. Negative results are logged.
- Nothing here commits: callers own the transaction.
"""


class StockError(ConflictError):
    """Raised when a stock change is refused (insufficient stock)."""


def get_entry(location_id: int, product_id: int) -> StockEntry | None:
    return db.session.query(StockEntry).filter_by(
        location_id=location_id,
        product_id=product_id,
    ).first()


def get_quantity_on_hand(location_id: int, product_id: int) -> int:
    """On-hand quantity; products never stocked at the location count as 0."""
    qty = db.session.query(StockEntry.quantity_on_hand).filter_by(
        location_id=location_id,
        product_id=product_id,
    ).scalar()
    return int(qty or 0)


def get_location_stock(location_id: int) -> dict[int, int]:
    rows = db.session.query(StockEntry.product_id, StockEntry.quantity_on_hand).filter_by(
        location_id=location_id
    ).all()
    return {product_id: qty for product_id, qty in rows}


def ensure_entry(location_id: int, product_id: int) -> StockEntry:
    """
    Register a product at a location with zero on hand.

    Safe to call repeatedly (idempotent).
    """
    entry = get_entry(location_id, product_id)
    if entry:
        return entry

    if not db.session.query(Product.id).filter_by(id=product_id).first():
        raise NotFoundError("Product not found", details={"product_id": product_id})

    entry = StockEntry(location_id=location_id, product_id=product_id, quantity_on_hand=0)
    db.session.add(entry)
    db.session.flush()
    return entry


def adjust(location_id: int, product_id: int, delta: int) -> None:
    """
    Apply a signed delta to on-hand quantity.

    Raises:
        NotFoundError: no StockEntry for (location, product)
        StockError: delta would take quantity below zero while
            STOCK_ALLOW_NEGATIVE is off
    """
    allow_negative = current_app.config.get("STOCK_ALLOW_NEGATIVE", True)

    query = db.session.query(StockEntry).filter(
        StockEntry.location_id == location_id,
        StockEntry.product_id == product_id,
    )
    if delta < 0 and not allow_negative:
        # Conditional update: the check and the write are one statement
        query = query.filter(StockEntry.quantity_on_hand + delta >= 0)

    updated = query.update(
        {StockEntry.quantity_on_hand: StockEntry.quantity_on_hand + delta},
        synchronize_session="fetch",
    )

    if updated:
        if delta < 0 and allow_negative:
            on_hand = get_quantity_on_hand(location_id, product_id)
            if on_hand < 0:
                current_app.logger.warning(
                    "Stock for product %s at location %s went negative (%s)",
                    product_id, location_id, on_hand,
                )
        return

    if get_entry(location_id, product_id) is None:
        raise NotFoundError(
            "Product is not stocked at this location",
            details={"location_id": location_id, "product_id": product_id},
        )

    raise StockError(
        "Insufficient stock",
        details={
            "location_id": location_id,
            "product_id": product_id,
            "requested_quantity": -delta,
            "on_hand": get_quantity_on_hand(location_id, product_id),
        },
    )


def decrement(location_id: int, product_id: int, qty: int) -> None:
    """Remove qty units sold. qty must be positive."""
    if qty <= 0:
        raise ValidationError("quantity must be greater than zero")
    adjust(location_id, product_id, -qty)


def receive(location_id: int, product_id: int, qty: int) -> StockEntry:
    """Add qty units, creating the StockEntry on first receipt."""
    if qty <= 0:
        raise ValidationError("quantity must be greater than zero")
    entry = ensure_entry(location_id, product_id)
    adjust(location_id, product_id, qty)
    return entry
