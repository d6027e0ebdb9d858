"""
Inventory-count reconciliation for INVENTORY_COUNT till sessions.

WHY: Some locations do not ring up individual checkouts. Stock on hand is
snapshotted when the till opens, counted by hand before it closes, and the
difference becomes a single consolidated sale.

LIFECYCLE:
1. open: snapshot_opening_stock() writes one count line per active product
2. during the shift: submit_counts() fills in counted quantities
3. close: reconcile() turns the sheet into the consolidated sale,
   decrements stock once per product and discards the sheet

INVARIANTS:
- sold = max(0, qty at open - counted qty); over-counts never sell negative
- a product with no count is treated as not sold (and reported)
- reconcile() stamps reconciled_at; a second reconcile, or any count
  submitted afterwards, is a ConflictError and never decrements stock twice
  even when the first one sold nothing
- reconcile() flushes but does not commit; session_manager.close_session
  owns the transaction
"""

from __future__ import annotations

from dataclasses import dataclass, field

from flask import current_app

from ..actor import ActorContext, Capability
from ..extensions import db
from ..models import (
    CashSession, InventoryCountLine, Product, SaleTransaction, SaleLine,
    MODE_INVENTORY_COUNT, PAYMENT_CONSOLIDATED,
)
from ..validation import ConflictError, NotFoundError, ValidationError, parse_int, parse_quantity
from tillkeeper.time_utils import utcnow
from . import promotion_engine, stock_ledger
from .audit_service import append_event
from .concurrency import commit_or_raise, flush_or_raise, lock_for_update
from .promotion_engine import AppliedPromotion, SaleLineInput
from .side_effects import SideEffectResult, run_side_effect


@dataclass
class ReconciliationResult:
    """Outcome of closing a count sheet. sale is None when nothing sold."""
    sale: SaleTransaction | None
    gross_total_cents: int
    discount_total_cents: int
    missing_counts: list[int] = field(default_factory=list)
    applied_promotions: list[AppliedPromotion] = field(default_factory=list)
    side_effects: list[SideEffectResult] = field(default_factory=list)

    @property
    def net_total_cents(self) -> int:
        return self.gross_total_cents - self.discount_total_cents

    def to_dict(self) -> dict:
        return {
            "sale": self.sale.to_dict() if self.sale else None,
            "gross_total_cents": self.gross_total_cents,
            "discount_total_cents": self.discount_total_cents,
            "net_total_cents": self.net_total_cents,
            "missing_counts": self.missing_counts,
            "applied_promotions": [
                {
                    "promotion_id": a.promotion_id,
                    "name": a.name,
                    "combos": a.combos,
                    "discount_cents": a.discount_cents,
                }
                for a in self.applied_promotions
            ],
            "side_effects": [r.to_dict() for r in self.side_effects],
        }


def parse_counts(raw) -> dict[int, int]:
    """
    Normalize counted quantities.

    Accepts {product_id: qty} (JSON object keys arrive as strings) or a
    list of {"product_id": .., "counted_qty": ..}.
    """
    if raw is None:
        return {}
    if isinstance(raw, dict):
        pairs = list(raw.items())
    elif isinstance(raw, (list, tuple)):
        pairs = []
        for i, entry in enumerate(raw):
            if not isinstance(entry, dict):
                raise ValidationError(f"counts[{i}] is not an object")
            pairs.append((entry.get("product_id"), entry.get("counted_qty")))
    else:
        raise ValidationError("counts must be an object or a list")

    counts = {}
    for product_id, qty in pairs:
        pid = parse_int(product_id, "product_id")
        counts[pid] = parse_quantity(qty, f"counted_qty[{pid}]", allow_zero=True)
    return counts


def _count_lines(session_id: int) -> list[InventoryCountLine]:
    return db.session.query(InventoryCountLine).filter_by(
        session_id=session_id
    ).order_by(InventoryCountLine.product_id).all()


def snapshot_opening_stock(session: CashSession) -> list[InventoryCountLine]:
    """
    Capture on-hand quantity of every active product at the session's
    location. Called by open_session inside its transaction.
    """
    stock = stock_ledger.get_location_stock(session.location_id)
    products = db.session.query(Product).filter_by(
        org_id=session.org_id, is_active=True
    ).order_by(Product.id).all()

    lines = []
    for product in products:
        line = InventoryCountLine(
            session_id=session.id,
            product_id=product.id,
            system_qty_at_open=int(stock.get(product.id, 0)),
        )
        db.session.add(line)
        lines.append(line)
    db.session.flush()
    return lines


def _load_count_session(actor: ActorContext | None, session_id: int, *, lock: bool = False) -> CashSession:
    query = db.session.query(CashSession).filter_by(id=session_id)
    if lock:
        query = lock_for_update(query)
    session = query.first()
    if not session:
        raise NotFoundError("Session not found")
    if actor is not None:
        actor.require_org(session.org_id, "Session")
        actor.require_location(session.location_id)
    if session.operating_mode != MODE_INVENTORY_COUNT:
        raise ConflictError(
            "Session is not in inventory-count mode",
            details={"session_id": session.id, "operating_mode": session.operating_mode},
        )
    return session


def _apply_counts(actor: ActorContext | None, session: CashSession, counts: dict[int, int]) -> None:
    if not counts:
        return
    if session.reconciled_at is not None:
        raise ConflictError("Session was already reconciled", details={"session_id": session.id})

    lines = {line.product_id: line for line in _count_lines(session.id)}
    known = {
        pid for (pid,) in db.session.query(Product.id).filter(
            Product.id.in_(list(counts)),
            Product.org_id == session.org_id,
        ).all()
    }

    now = utcnow()
    for product_id, qty in counts.items():
        if product_id not in known:
            raise NotFoundError("Product not found", details={"product_id": product_id})

        line = lines.get(product_id)
        if line is None:
            # Product activated after the snapshot: current on-hand is the best baseline left
            line = InventoryCountLine(
                session_id=session.id,
                product_id=product_id,
                system_qty_at_open=stock_ledger.get_quantity_on_hand(session.location_id, product_id),
            )
            db.session.add(line)
        elif line.counted_qty is not None and line.counted_qty != qty:
            if actor is not None:
                actor.require(Capability.CAN_OVERRIDE_COUNT)

        line.counted_qty = qty
        line.counted_by = actor.operator_id if actor else None
        line.counted_at = now
    db.session.flush()


def submit_counts(actor: ActorContext, session_id: int, counts) -> list[InventoryCountLine]:
    """
    Record counted quantities ahead of close.

    Changing a quantity that was already counted requires
    CAN_OVERRIDE_COUNT; re-sending the same number is allowed.
    """
    counts = parse_counts(counts)
    if not counts:
        raise ValidationError("At least one count is required")

    session = _load_count_session(actor, session_id, lock=True)
    if not session.is_open:
        raise ConflictError("Session is closed", details={"session_id": session.id})

    try:
        _apply_counts(actor, session, counts)
    except Exception:
        db.session.rollback()
        raise
    commit_or_raise()

    current_app.logger.info("Counts submitted for session %s: %s product(s)", session.id, len(counts))
    return _count_lines(session.id)


def get_count_sheet(actor: ActorContext, session_id: int) -> dict:
    session = _load_count_session(actor, session_id)
    lines = _count_lines(session.id)
    uncounted = [line.product_id for line in lines if line.counted_qty is None]
    return {
        "session_id": session.id,
        "status": session.status,
        "lines": [
            dict(line.to_dict(), product_name=line.product.name if line.product else None)
            for line in lines
        ],
        "uncounted_product_ids": uncounted,
        "complete": not uncounted,
    }


def _lookup_promotions(session: CashSession, sale_lines: list[SaleLineInput], promotion_combos, actor_id):
    """Promotion lookup is a side effect: if it fails the batch closes undiscounted."""
    def _op():
        promotions = promotion_engine.get_active_promotions(session.org_id, session.location_id)
        return promotion_engine.apply_promotions(promotions, sale_lines, promotion_combos)

    return run_side_effect(
        "promotions.lookup",
        _op,
        location_id=session.location_id,
        session_id=session.id,
        actor_operator_id=actor_id,
    )


def reconcile(
    session_id: int,
    counted_quantities=None,
    *,
    actor: ActorContext | None = None,
    promotion_combos: dict[int, int] | None = None,
) -> ReconciliationResult:
    """
    Turn the session's count sheet into one consolidated sale.

    counted_quantities are merged into the sheet first (same rules as
    submit_counts). promotion_combos maps promotion id to the number of
    combos the operator declares sold; undeclared promotions are inferred
    from the sold quantity.

    Raises:
        NotFoundError: unknown session or product
        ConflictError: session not OPEN, not INVENTORY_COUNT, or already
            reconciled
    """
    counts = parse_counts(counted_quantities)
    combos = None
    if promotion_combos:
        combos = {
            parse_int(pid, "promotion_id"): parse_quantity(n, f"promotion_combos[{pid}]", allow_zero=True)
            for pid, n in promotion_combos.items()
        }

    session = _load_count_session(actor, session_id, lock=True)
    if not session.is_open:
        raise ConflictError("Session is not open", details={"session_id": session.id, "status": session.status})

    if session.reconciled_at is not None:
        raise ConflictError("Session was already reconciled", details={"session_id": session.id})

    actor_id = actor.operator_id if actor else session.opened_by

    _apply_counts(actor, session, counts)
    lines = _count_lines(session.id)

    missing = [line.product_id for line in lines if line.counted_qty is None]
    if missing:
        current_app.logger.warning(
            "Session %s closed with %s uncounted product(s), treated as not sold: %s",
            session.id, len(missing), missing,
        )

    sold = {
        line.product_id: max(0, line.system_qty_at_open - line.counted_qty)
        for line in lines
        if line.counted_qty is not None
    }
    sold = {pid: qty for pid, qty in sold.items() if qty > 0}

    prices = {
        p.id: p.price_cents for p in db.session.query(Product).filter(Product.id.in_(list(sold))).all()
    } if sold else {}
    sale_lines = []
    for pid in sorted(sold):
        price = prices.get(pid)
        if price is None:
            current_app.logger.warning("Product %s has no price; consolidated at 0", pid)
            price = 0
        sale_lines.append(SaleLineInput(product_id=pid, quantity=sold[pid], unit_price_cents=price))

    gross = sum(line.quantity * line.unit_price_cents for line in sale_lines)

    side_effects = []
    applied: list[AppliedPromotion] = []
    if sale_lines:
        lookup = _lookup_promotions(session, sale_lines, combos, actor_id)
        side_effects.append(lookup)
        if lookup.ok:
            applied = lookup.value or []

    discount = sum(a.discount_cents for a in applied)
    # Capped on purpose: the consolidated sale never nets below zero
    if discount > gross:
        current_app.logger.warning(
            "Promotion discount %s exceeds gross %s on session %s; capped",
            discount, gross, session.id,
        )
        discount = gross

    sale = None
    if sale_lines:
        sale = SaleTransaction(
            session_id=session.id,
            location_id=session.location_id,
            payment_method=PAYMENT_CONSOLIDATED,
            created_by=actor_id,
            gross_total_cents=gross,
            discount_cents=discount,
            net_total_cents=gross - discount,
            points_redeemed=0,
            created_at=utcnow(),
        )
        db.session.add(sale)
        flush_or_raise(conflict_message="Session was already reconciled")

        for line in sale_lines:
            db.session.add(SaleLine(
                sale_id=sale.id,
                product_id=line.product_id,
                quantity=line.quantity,
                unit_price_cents=line.unit_price_cents,
                line_total_cents=line.quantity * line.unit_price_cents,
            ))
            stock_ledger.decrement(session.location_id, line.product_id, line.quantity)

    db.session.query(InventoryCountLine).filter_by(session_id=session.id).delete(
        synchronize_session="fetch"
    )
    session.reconciled_at = utcnow()

    append_event(
        location_id=session.location_id,
        event_type="session.reconciled",
        session_id=session.id,
        sale_id=sale.id if sale else None,
        actor_operator_id=actor_id,
        payload=f"gross_total_cents={gross},discount_total_cents={discount},missing={len(missing)}",
    )
    db.session.flush()

    return ReconciliationResult(
        sale=sale,
        gross_total_cents=gross,
        discount_total_cents=discount,
        missing_counts=missing,
        applied_promotions=applied,
        side_effects=side_effects,
    )
