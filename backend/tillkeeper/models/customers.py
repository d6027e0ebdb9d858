from __future__ import annotations

from ..extensions import db
from tillkeeper.time_utils import to_utc_z


class Customer(db.Model):
    """
    Customer known to the loyalty program, looked up by phone at the till.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.UniqueConstraint("org_id", "phone", name="uq_customers_org_phone"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(32), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "name": self.name,
            "phone": self.phone,
            "created_at": to_utc_z(self.created_at),
        }


class LoyaltyAccount(db.Model):
    """
    Points balance for a customer. One account per customer.

    Balance moves only through services/loyalty_service.py, with a single
    UPDATE expression per change.
    """
    __tablename__ = "loyalty_accounts"
    __table_args__ = (
        db.UniqueConstraint("customer_id", name="uq_loyalty_accounts_customer"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)

    points_balance = db.Column(db.Integer, nullable=False, default=0)
    lifetime_points_earned = db.Column(db.Integer, nullable=False, default=0)
    lifetime_points_redeemed = db.Column(db.Integer, nullable=False, default=0)

    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    customer = db.relationship("Customer", backref=db.backref("loyalty_account", uselist=False, lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "points_balance": self.points_balance,
            "lifetime_points_earned": self.lifetime_points_earned,
            "lifetime_points_redeemed": self.lifetime_points_redeemed,
            "updated_at": to_utc_z(self.updated_at),
        }


class LoyaltyTransaction(db.Model):
    """
    Append-only ledger of point movements.

    TRANSACTION TYPES:
    - EARN: points from a sale (positive)
    - REDEEM: points spent as a discount (negative)
    """
    __tablename__ = "loyalty_transactions"
    __table_args__ = (
        db.Index("ix_loyalty_txns_account_occurred", "account_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey("loyalty_accounts.id"), nullable=False, index=True)

    transaction_type = db.Column(db.String(16), nullable=False)  # EARN, REDEEM
    points = db.Column(db.Integer, nullable=False)

    sale_id = db.Column(db.Integer, db.ForeignKey("sale_transactions.id"), nullable=True, index=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    account = db.relationship("LoyaltyAccount", backref=db.backref("transactions", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "account_id": self.account_id,
            "transaction_type": self.transaction_type,
            "points": self.points,
            "sale_id": self.sale_id,
            "occurred_at": to_utc_z(self.occurred_at),
        }
