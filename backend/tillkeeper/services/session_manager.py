"""
Till session lifecycle: open -> close.

WHY: A cash session is the unit of cash accountability. Whatever happened
during the shift (checkouts or a hand count) ends up as one closing
snapshot: system sales, discounts, the cash the operator declared and the
variance between them.

DESIGN PRINCIPLES:
- One OPEN session per location, enforced by a partial unique index
- OPEN -> CLOSED is the only transition; CLOSED rows are never modified
- Closing is one transaction: consolidated sale, stock decrements and the
  session update are all visible or none are
- variance = informed - (opening float + system sales - discounts)
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import func

from ..actor import ActorContext
from ..extensions import db
from ..models import (
    CashSession, Location, SaleTransaction,
    MODE_INVENTORY_COUNT, SESSION_STATUS_OPEN, SESSION_STATUS_CLOSED,
)
from ..validation import (
    ConflictError, NotFoundError, ValidationError,
    parse_cents, parse_choice, parse_int, parse_operating_mode,
)
from tillkeeper.time_utils import utcnow
from . import inventory_reconciler
from .audit_service import append_event, list_session_events
from .concurrency import commit_or_raise, flush_or_raise, lock_for_update
from .variance import compute_variance, format_cents


OPEN_CONFLICT_MESSAGE = "Location already has an open session"
MAX_LIST_LIMIT = 200


def _get_location(actor: ActorContext, location_id: int) -> Location:
    location = db.session.get(Location, location_id)
    if not location:
        raise NotFoundError("Location not found")
    actor.require_org(location.org_id)
    return location


def _get_session(actor: ActorContext, session_id: int, *, lock: bool = False) -> CashSession:
    query = db.session.query(CashSession).filter_by(id=session_id)
    if lock:
        query = lock_for_update(query)
    session = query.first()
    if not session:
        raise NotFoundError("Session not found")
    actor.require_org(session.org_id, "Session")
    return session


def _resolve_mode(location: Location, operating_mode: str | None) -> str:
    if operating_mode is not None:
        return parse_operating_mode(operating_mode)
    if location.default_operating_mode:
        return parse_operating_mode(location.default_operating_mode)
    return parse_operating_mode(current_app.config.get("DEFAULT_OPERATING_MODE", "STANDARD"))


def open_session(
    actor: ActorContext,
    location_id: int,
    opening_float_cents: int,
    operating_mode: str | None = None,
    notes: str | None = None,
) -> CashSession:
    """
    Open a till session at a location.

    operating_mode falls back to the location's default, then to
    DEFAULT_OPERATING_MODE. Opening in INVENTORY_COUNT mode snapshots the
    location's stock for the count sheet.

    Raises:
        ValidationError: negative/invalid float or mode
        NotFoundError: unknown location (or one in another organization)
        PermissionDeniedError: location is not the actor's own
        ConflictError: location already has an OPEN session
    """
    opening_float_cents = parse_cents(opening_float_cents, "opening_float_cents")
    location_id = parse_int(location_id, "location_id")

    location = _get_location(actor, location_id)
    actor.require_location(location.id)
    if not location.is_active:
        raise ConflictError("Cannot open a session at an inactive location")

    mode = _resolve_mode(location, operating_mode)

    existing = db.session.query(CashSession).filter_by(
        location_id=location.id,
        status=SESSION_STATUS_OPEN,
    ).first()
    if existing:
        raise ConflictError(OPEN_CONFLICT_MESSAGE, details={"session_id": existing.id})

    session = CashSession(
        org_id=location.org_id,
        location_id=location.id,
        operating_mode=mode,
        status=SESSION_STATUS_OPEN,
        opened_by=actor.operator_id,
        opened_at=utcnow(),
        opening_float_cents=opening_float_cents,
        system_sales_total_cents=0,
        discount_total_cents=0,
        notes=notes,
    )
    db.session.add(session)
    # A concurrent open that slipped past the check above trips the index here
    flush_or_raise(conflict_message=OPEN_CONFLICT_MESSAGE)

    try:
        if mode == MODE_INVENTORY_COUNT:
            inventory_reconciler.snapshot_opening_stock(session)

        append_event(
            location_id=location.id,
            event_type="session.opened",
            session_id=session.id,
            actor_operator_id=actor.operator_id,
            occurred_at=session.opened_at,
            payload=f"opening_float_cents={opening_float_cents},operating_mode={mode}",
        )
    except Exception:
        db.session.rollback()
        raise
    commit_or_raise(conflict_message=OPEN_CONFLICT_MESSAGE)

    current_app.logger.info(
        "Session %s opened at location %s by operator %s (%s, float %s)",
        session.id, location.id, actor.operator_id, mode, format_cents(opening_float_cents),
    )
    return session


def _parse_informed(informed_total_cents, informed_breakdown) -> tuple[int, dict]:
    """
    Declared cash at close. A breakdown {cash, pix, card} is summed; cash
    is required, the others default to 0.
    """
    if informed_breakdown is None:
        if informed_total_cents is None:
            raise ValidationError("informed_total_cents is required")
        return parse_cents(informed_total_cents, "informed_total_cents"), {}

    if not isinstance(informed_breakdown, dict):
        raise ValidationError("informed_breakdown must be an object")
    if informed_breakdown.get("cash") is None:
        raise ValidationError("informed_breakdown.cash is required")

    breakdown = {
        "cash": parse_cents(informed_breakdown.get("cash"), "informed_breakdown.cash"),
        "pix": parse_cents(informed_breakdown.get("pix") or 0, "informed_breakdown.pix"),
        "card": parse_cents(informed_breakdown.get("card") or 0, "informed_breakdown.card"),
    }
    total = sum(breakdown.values())
    if informed_total_cents is not None and parse_cents(informed_total_cents, "informed_total_cents") != total:
        raise ValidationError(
            "informed_total_cents does not match the breakdown",
            details={"breakdown_total_cents": total},
        )
    return total, breakdown


def _sum_sales(session_id: int) -> int:
    total = db.session.query(func.coalesce(func.sum(SaleTransaction.net_total_cents), 0)).filter(
        SaleTransaction.session_id == session_id
    ).scalar()
    return int(total or 0)


def close_session(
    actor: ActorContext,
    session_id: int,
    informed_total_cents: int | None = None,
    notes: str | None = None,
    *,
    informed_breakdown: dict | None = None,
    counted_quantities=None,
    promotion_combos: dict | None = None,
) -> CashSession:
    """
    Close a session and persist the reconciliation snapshot.

    INVENTORY_COUNT sessions are reconciled first (consolidated sale,
    stock decrement, promotion discount); STANDARD sessions re-read their
    recorded sales. Then:

        expected = opening float + system sales - discounts
        variance = informed - expected

    IMMUTABLE: once closed the session cannot be reopened or modified.

    Raises:
        ValidationError: informed total missing or invalid
        NotFoundError: unknown session
        PermissionDeniedError: session is at another location
        ConflictError: session already closed / already reconciled
        PersistenceError: nothing was written
    """
    informed_total, breakdown = _parse_informed(informed_total_cents, informed_breakdown)

    session = _get_session(actor, session_id, lock=True)
    actor.require_location(session.location_id)
    if not session.is_open:
        raise ConflictError("Session is already closed", details={"session_id": session.id})
    if session.operating_mode != MODE_INVENTORY_COUNT and (counted_quantities or promotion_combos):
        raise ValidationError("Counts and promotion combos only apply to inventory-count sessions")

    try:
        if session.operating_mode == MODE_INVENTORY_COUNT:
            result = inventory_reconciler.reconcile(
                session.id,
                counted_quantities,
                actor=actor,
                promotion_combos=promotion_combos,
            )
            # Gross, so the promotion discount is subtracted exactly once below
            system_sales = result.gross_total_cents
            discount = result.discount_total_cents
        else:
            system_sales = _sum_sales(session.id)
            if system_sales != session.system_sales_total_cents:
                current_app.logger.warning(
                    "Session %s running total %s differs from recorded sales %s; using recorded sales",
                    session.id, session.system_sales_total_cents, system_sales,
                )
            discount = 0

        variance = compute_variance(
            opening_float_cents=session.opening_float_cents,
            system_sales_total_cents=system_sales,
            discount_total_cents=discount,
            informed_total_cents=informed_total,
        )

        session.system_sales_total_cents = system_sales
        session.discount_total_cents = discount
        session.informed_total_cents = informed_total
        session.informed_cash_cents = breakdown.get("cash")
        session.informed_pix_cents = breakdown.get("pix")
        session.informed_card_cents = breakdown.get("card")
        session.expected_total_cents = variance.expected_total_cents
        session.variance_cents = variance.variance_cents
        session.status = SESSION_STATUS_CLOSED
        session.closed_by = actor.operator_id
        session.closed_at = utcnow()
        if notes is not None:
            session.notes = notes

        append_event(
            location_id=session.location_id,
            event_type="session.closed",
            session_id=session.id,
            actor_operator_id=actor.operator_id,
            occurred_at=session.closed_at,
            note=notes,
            payload=(
                f"expected_total_cents={variance.expected_total_cents},"
                f"informed_total_cents={informed_total},variance_cents={variance.variance_cents}"
            ),
        )
    except Exception:
        db.session.rollback()
        raise
    commit_or_raise()

    current_app.logger.info(
        "Session %s closed by operator %s: expected %s, informed %s, variance %s",
        session.id, actor.operator_id,
        format_cents(session.expected_total_cents),
        format_cents(session.informed_total_cents),
        format_cents(session.variance_cents),
    )
    if variance.is_shortage:
        current_app.logger.warning("Session %s closed short by %s", session.id, format_cents(-variance.variance_cents))
    elif variance.is_surplus:
        current_app.logger.warning("Session %s closed over by %s", session.id, format_cents(variance.variance_cents))
    return session


def get_open_session(actor: ActorContext, location_id: int) -> CashSession | None:
    """The currently open session at a location, if any."""
    location = _get_location(actor, parse_int(location_id, "location_id"))
    return db.session.query(CashSession).filter_by(
        location_id=location.id,
        status=SESSION_STATUS_OPEN,
    ).first()


def get_session(actor: ActorContext, session_id: int) -> CashSession:
    return _get_session(actor, session_id)


def get_session_summary(actor: ActorContext, session_id: int) -> dict:
    """
    Closing report for a session.

    Returns:
        - Session details
        - Sales count and per-payment-method totals
        - Live expected total while the session is still OPEN
        - The session's till events, oldest first
    """
    session = _get_session(actor, session_id)

    rows = db.session.query(
        SaleTransaction.payment_method,
        func.count(SaleTransaction.id),
        func.coalesce(func.sum(SaleTransaction.gross_total_cents), 0),
        func.coalesce(func.sum(SaleTransaction.net_total_cents), 0),
    ).filter(
        SaleTransaction.session_id == session.id
    ).group_by(SaleTransaction.payment_method).all()

    by_method = {}
    sales_count = 0
    gross_total = 0
    for method, count, gross, net in rows:
        by_method[method] = int(net)
        sales_count += int(count)
        gross_total += int(gross)

    expected = session.expected_total_cents
    if session.is_open:
        expected = compute_variance(
            opening_float_cents=session.opening_float_cents,
            system_sales_total_cents=session.system_sales_total_cents,
            discount_total_cents=session.discount_total_cents,
            informed_total_cents=0,
        ).expected_total_cents

    events = list_session_events(session.id)

    return {
        "session": session.to_dict(),
        "sales_count": sales_count,
        "gross_sales_cents": gross_total,
        "sales_by_payment_method": by_method,
        "expected_total_cents": expected,
        "is_closed": session.status == SESSION_STATUS_CLOSED,
        "variance_cents": session.variance_cents,
        "events_count": len(events),
        "events": [e.to_dict() for e in events],
    }


def list_sessions(
    actor: ActorContext,
    location_id: int | None = None,
    status: str | None = None,
    limit: int = 50,
) -> list[CashSession]:
    """Closing history for the actor's organization, newest first."""
    query = db.session.query(CashSession).filter(CashSession.org_id == actor.organization_id)

    if location_id is not None:
        location = _get_location(actor, parse_int(location_id, "location_id"))
        query = query.filter(CashSession.location_id == location.id)
    if status is not None:
        status = parse_choice(status, "status", (SESSION_STATUS_OPEN, SESSION_STATUS_CLOSED))
        query = query.filter(CashSession.status == status)

    limit = parse_int(limit, "limit")
    limit = max(1, min(limit, MAX_LIST_LIMIT))

    return query.order_by(CashSession.opened_at.desc(), CashSession.id.desc()).limit(limit).all()
