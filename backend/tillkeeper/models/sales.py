from __future__ import annotations

from ..extensions import db
from tillkeeper.time_utils import to_utc_z


PAYMENT_CASH = "cash"
PAYMENT_PIX = "pix"
PAYMENT_CARD = "card"
PAYMENT_CONSOLIDATED = "consolidated"

# What an operator may pick at checkout; "consolidated" is reserved for the
# synthetic sale produced by inventory reconciliation
CHECKOUT_PAYMENT_METHODS = (PAYMENT_CASH, PAYMENT_PIX, PAYMENT_CARD)


class SaleTransaction(db.Model):
    """
    Completed sale recorded against a cash session.

    IMMUTABLE: created once, never updated or deleted.

    STANDARD sessions get one row per checkout. INVENTORY_COUNT sessions
    get exactly one row, written at close with payment_method
    "consolidated"; the unique index below holds that line.
    """
    __tablename__ = "sale_transactions"
    __table_args__ = (
        db.Index("ix_sale_transactions_session_created", "session_id", "created_at"),
        db.Index(
            "uq_sale_transactions_one_consolidated_per_session",
            "session_id",
            unique=True,
            sqlite_where=db.text("payment_method = 'consolidated'"),
            postgresql_where=db.text("payment_method = 'consolidated'"),
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.Integer, db.ForeignKey("cash_sessions.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)

    payment_method = db.Column(db.String(16), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    created_by = db.Column(db.Integer, db.ForeignKey("operators.id"), nullable=False)

    # All amounts in cents; net = gross - discount
    gross_total_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    net_total_cents = db.Column(db.Integer, nullable=False)
    points_redeemed = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    session = db.relationship("CashSession", backref=db.backref("sales", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "location_id": self.location_id,
            "payment_method": self.payment_method,
            "customer_id": self.customer_id,
            "created_by": self.created_by,
            "gross_total_cents": self.gross_total_cents,
            "discount_cents": self.discount_cents,
            "net_total_cents": self.net_total_cents,
            "points_redeemed": self.points_redeemed,
            "created_at": to_utc_z(self.created_at),
            "lines": [line.to_dict() for line in self.lines],
        }


class SaleLine(db.Model):
    """Individual line items on a sale transaction."""
    __tablename__ = "sale_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sale_transactions.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    sale = db.relationship("SaleTransaction", backref=db.backref("lines", lazy=True, order_by="SaleLine.id"))
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
        }
