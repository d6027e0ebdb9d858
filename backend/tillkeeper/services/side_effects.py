# Overview: Non-fatal side effects (loyalty, promotion lookup) and their observable results.

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable

from flask import current_app

from ..extensions import db
from .audit_service import append_event


@dataclass(frozen=True)
class SideEffectResult:
    """
    Outcome of a fire-and-forget step.

    ok=False never aborts the enclosing sale or close; it is logged, written
    to the till event trail and handed back so callers and tests can see it.
    """
    name: str
    ok: bool
    error: str | None = None
    value: Any = None

    def to_dict(self) -> dict:
        return {"name": self.name, "ok": self.ok, "error": self.error}


def run_side_effect(
    name: str,
    func: Callable[[], Any],
    *,
    location_id: int,
    session_id: int | None = None,
    sale_id: int | None = None,
    actor_operator_id: int | None = None,
) -> SideEffectResult:
    """
    Run func inside a SAVEPOINT.

    A failure rolls back only what func wrote; the primary transaction
    (the sale, the close) carries on.
    """
    try:
        with db.session.begin_nested():
            value = func()
    except Exception as exc:
        current_app.logger.warning(
            "Side effect %s failed (session=%s sale=%s): %s",
            name, session_id, sale_id, exc,
        )
        append_event(
            location_id=location_id,
            event_type="side_effect.failed",
            session_id=session_id,
            sale_id=sale_id,
            actor_operator_id=actor_operator_id,
            note=f"{name}: {exc}",
        )
        return SideEffectResult(name=name, ok=False, error=str(exc) or exc.__class__.__name__)

    return SideEffectResult(name=name, ok=True, value=value)
