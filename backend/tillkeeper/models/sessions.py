from __future__ import annotations

from ..extensions import db
from tillkeeper.time_utils import to_utc_z


SESSION_STATUS_OPEN = "OPEN"
SESSION_STATUS_CLOSED = "CLOSED"

MODE_STANDARD = "STANDARD"
MODE_INVENTORY_COUNT = "INVENTORY_COUNT"
OPERATING_MODES = (MODE_STANDARD, MODE_INVENTORY_COUNT)


class CashSession(db.Model):
    """
    One operator shift at one till.

    LIFECYCLE:
    - OPEN: sales are accepted (STANDARD) or stock is being counted (INVENTORY_COUNT)
    - CLOSED: cash declared, variance calculated

    IMMUTABLE: Once closed, the session cannot be reopened or modified.
    A new shift always means a new row.

    Only one OPEN session may exist per location. The partial unique index
    below enforces that in the database, so two terminals opening at the
    same moment cannot both succeed.
    """
    __tablename__ = "cash_sessions"
    __table_args__ = (
        db.Index(
            "uq_cash_sessions_one_open_per_location",
            "location_id",
            unique=True,
            sqlite_where=db.text("status = 'OPEN'"),
            postgresql_where=db.text("status = 'OPEN'"),
        ),
        db.Index("ix_cash_sessions_location_opened", "location_id", "opened_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)

    operating_mode = db.Column(db.String(16), nullable=False, default=MODE_STANDARD)
    status = db.Column(db.String(16), nullable=False, default=SESSION_STATUS_OPEN, index=True)

    opened_by = db.Column(db.Integer, db.ForeignKey("operators.id"), nullable=False, index=True)
    opened_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    closed_by = db.Column(db.Integer, db.ForeignKey("operators.id"), nullable=True)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    # Set once the count sheet has been turned into the consolidated sale
    reconciled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Cash tracking (all amounts in cents)
    opening_float_cents = db.Column(db.Integer, nullable=False, default=0)
    system_sales_total_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_total_cents = db.Column(db.Integer, nullable=False, default=0)  # INVENTORY_COUNT only

    # Declared by the operator at close
    informed_total_cents = db.Column(db.Integer, nullable=True)
    informed_cash_cents = db.Column(db.Integer, nullable=True)
    informed_pix_cents = db.Column(db.Integer, nullable=True)
    informed_card_cents = db.Column(db.Integer, nullable=True)

    # opening float + sales - discounts; variance = informed - expected
    expected_total_cents = db.Column(db.Integer, nullable=True)
    variance_cents = db.Column(db.Integer, nullable=True)

    notes = db.Column(db.Text, nullable=True)

    location = db.relationship("Location", backref=db.backref("cash_sessions", lazy=True))
    opener = db.relationship("Operator", foreign_keys=[opened_by])
    closer = db.relationship("Operator", foreign_keys=[closed_by])

    @property
    def is_open(self) -> bool:
        return self.status == SESSION_STATUS_OPEN

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "location_id": self.location_id,
            "operating_mode": self.operating_mode,
            "status": self.status,
            "opened_by": self.opened_by,
            "opened_at": to_utc_z(self.opened_at),
            "closed_by": self.closed_by,
            "closed_at": to_utc_z(self.closed_at) if self.closed_at else None,
            "reconciled_at": to_utc_z(self.reconciled_at) if self.reconciled_at else None,
            "opening_float_cents": self.opening_float_cents,
            "system_sales_total_cents": self.system_sales_total_cents,
            "discount_total_cents": self.discount_total_cents,
            "informed_total_cents": self.informed_total_cents,
            "informed_cash_cents": self.informed_cash_cents,
            "informed_pix_cents": self.informed_pix_cents,
            "informed_card_cents": self.informed_card_cents,
            "expected_total_cents": self.expected_total_cents,
            "variance_cents": self.variance_cents,
            "notes": self.notes,
        }


class InventoryCountLine(db.Model):
    """
    Per-product count sheet of an INVENTORY_COUNT session.

    system_qty_at_open is captured when the session opens; counted_qty is
    filled in by the operator before closing. The rows are deleted once the
    session is reconciled: their effect lives on in the consolidated sale
    and the stock decrement.
    """
    __tablename__ = "inventory_count_lines"
    __table_args__ = (
        db.UniqueConstraint("session_id", "product_id", name="uq_count_lines_session_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.Integer, db.ForeignKey("cash_sessions.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    system_qty_at_open = db.Column(db.Integer, nullable=False)
    counted_qty = db.Column(db.Integer, nullable=True)
    counted_by = db.Column(db.Integer, db.ForeignKey("operators.id"), nullable=True)
    counted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    session = db.relationship("CashSession", backref=db.backref("count_lines", lazy=True))
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "product_id": self.product_id,
            "system_qty_at_open": self.system_qty_at_open,
            "counted_qty": self.counted_qty,
            "counted_by": self.counted_by,
            "counted_at": to_utc_z(self.counted_at) if self.counted_at else None,
        }
