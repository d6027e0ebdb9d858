from __future__ import annotations

from ..extensions import db
from tillkeeper.time_utils import to_utc_z


class Product(db.Model):
    """
    Finished product sold at the till.

    Products are org-wide; stock is per location (see StockEntry).
    price_cents is the current sale price and is read at checkout and at
    inventory reconciliation time, never cached on the session.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("org_id", "sku", name="uq_products_org_sku"),
        db.Index("ix_products_org_active", "org_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)

    # Authoritative storage in cents
    price_cents = db.Column(db.Integer, nullable=True)
    unit_id = db.Column(db.String(16), nullable=False, default="un")

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r} org_id={self.org_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "sku": self.sku,
            "name": self.name,
            "price_cents": self.price_cents,
            "unit_id": self.unit_id,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Promotion(db.Model):
    """
    Combo promotion: trigger_quantity units of one product sold together
    for combo_price_cents.

    Only applied when closing an INVENTORY_COUNT session, where the
    operator declares how many combos went out. Org-wide when
    location_id is NULL.
    """
    __tablename__ = "promotions"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=True, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    trigger_quantity = db.Column(db.Integer, nullable=False)
    combo_price_cents = db.Column(db.Integer, nullable=False)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "location_id": self.location_id,
            "product_id": self.product_id,
            "name": self.name,
            "trigger_quantity": self.trigger_quantity,
            "combo_price_cents": self.combo_price_cents,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
