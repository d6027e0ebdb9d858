from __future__ import annotations

from ..extensions import db
from tillkeeper.time_utils import to_utc_z


class StockEntry(db.Model):
    """
    On-hand quantity of one product at one location.

    Mutated only through services/stock_ledger.py, always with a single
    UPDATE ... SET quantity_on_hand = quantity_on_hand + :delta so
    concurrent checkouts never lose a decrement.
    """
    __tablename__ = "stock_entries"
    __table_args__ = (
        db.UniqueConstraint("location_id", "product_id", name="uq_stock_entries_location_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    # May go negative (oversold) unless STOCK_ALLOW_NEGATIVE is off
    quantity_on_hand = db.Column(db.Integer, nullable=False, default=0)

    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "location_id": self.location_id,
            "product_id": self.product_id,
            "quantity_on_hand": self.quantity_on_hand,
            "updated_at": to_utc_z(self.updated_at),
        }
