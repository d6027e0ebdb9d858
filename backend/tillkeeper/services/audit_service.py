# Overview: Append-only till event trail; written inside the caller's transaction.

from __future__ import annotations

from typing import Optional
from datetime import datetime

from ..extensions import db
from ..models import TillEvent
from tillkeeper.time_utils import utcnow
"""
Till Event Invariants

- Append-only: no updates, no deletes.
- No domain logic here; callers decide what to record.
- Events are flushed, never committed, so they share the fate of the
  change they describe.
"""


def append_event(
    *,
    location_id: int,
    event_type: str,
    session_id: int | None = None,
    sale_id: int | None = None,
    actor_operator_id: int | None = None,
    occurred_at: Optional[datetime] = None,
    note: Optional[str] = None,
    payload: Optional[str] = None,
) -> TillEvent:
    ev = TillEvent(
        location_id=location_id,
        session_id=session_id,
        sale_id=sale_id,
        actor_operator_id=actor_operator_id,
        event_type=event_type,
        occurred_at=occurred_at or utcnow(),
        note=note[:255] if note else note,
        payload=payload,
    )
    db.session.add(ev)
    db.session.flush()
    return ev


def list_session_events(session_id: int) -> list[TillEvent]:
    return db.session.query(TillEvent).filter_by(
        session_id=session_id
    ).order_by(TillEvent.id).all()
