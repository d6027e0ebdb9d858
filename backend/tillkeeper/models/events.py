from __future__ import annotations

from ..extensions import db
from tillkeeper.time_utils import to_utc_z


class TillEvent(db.Model):
    """
    Append-only audit trail of till activity.

    Written in the same DB transaction as the change it records, so a
    rolled-back close leaves no "session.closed" event behind. Failed side
    effects (loyalty, promotions) are recorded here too, which is how a
    drifting loyalty ledger can be traced back to the sale that caused it.
    """
    __tablename__ = "till_events"
    __table_args__ = (
        db.Index("ix_till_events_session_occurred", "session_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    session_id = db.Column(db.Integer, db.ForeignKey("cash_sessions.id"), nullable=True, index=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sale_transactions.id"), nullable=True)
    actor_operator_id = db.Column(db.Integer, db.ForeignKey("operators.id"), nullable=True)

    event_type = db.Column(db.String(64), nullable=False, index=True)
    note = db.Column(db.String(255), nullable=True)
    payload = db.Column(db.Text, nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "location_id": self.location_id,
            "session_id": self.session_id,
            "sale_id": self.sale_id,
            "actor_operator_id": self.actor_operator_id,
            "event_type": self.event_type,
            "note": self.note,
            "payload": self.payload,
            "occurred_at": to_utc_z(self.occurred_at),
        }
