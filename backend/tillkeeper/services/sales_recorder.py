"""
Checkout recording for STANDARD till sessions.

WHY: In STANDARD mode every checkout is a sale on the spot: the sale row
is written, stock leaves the shelf immediately and the customer's loyalty
points move.

DESIGN:
- Inputs are validated before anything is written.
- Sale, lines, stock decrements and the session running total commit
  together or not at all.
- Loyalty earn/redeem run as side effects: a failure there is logged and
  reported in RecordedSale.side_effects but the sale stands.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from flask import current_app

from ..actor import ActorContext
from ..extensions import db
from ..models import (
    CashSession, SaleTransaction, SaleLine, Product, Customer,
    MODE_STANDARD,
)
from ..validation import (
    ConflictError, NotFoundError, ValidationError,
    parse_cents, parse_int, parse_quantity, parse_payment_method,
)
from tillkeeper.time_utils import utcnow
from . import loyalty_service, stock_ledger
from .audit_service import append_event
from .concurrency import commit_or_raise, lock_for_update
from .side_effects import SideEffectResult


@dataclass(frozen=True)
class LineItemInput:
    product_id: int
    quantity: int
    unit_price_cents: int | None = None


@dataclass
class RecordedSale:
    sale: SaleTransaction
    side_effects: list[SideEffectResult] = field(default_factory=list)

    @property
    def side_effects_ok(self) -> bool:
        return all(r.ok for r in self.side_effects)

    def to_dict(self) -> dict:
        return {
            "sale": self.sale.to_dict(),
            "side_effects": [r.to_dict() for r in self.side_effects],
            "side_effects_ok": self.side_effects_ok,
        }


def parse_line_items(raw_items) -> list[LineItemInput]:
    """Accept dicts (JSON) or LineItemInput instances."""
    if not isinstance(raw_items, (list, tuple)) or not raw_items:
        raise ValidationError("At least one line item is required")

    items = []
    for i, raw in enumerate(raw_items):
        if isinstance(raw, LineItemInput):
            raw = {"product_id": raw.product_id, "quantity": raw.quantity, "unit_price_cents": raw.unit_price_cents}
        if not isinstance(raw, dict):
            raise ValidationError(f"Line {i + 1} is not an object")

        price = raw.get("unit_price_cents")
        items.append(LineItemInput(
            product_id=parse_int(raw.get("product_id"), f"lines[{i}].product_id"),
            quantity=parse_quantity(raw.get("quantity"), f"lines[{i}].quantity"),
            unit_price_cents=parse_cents(price, f"lines[{i}].unit_price_cents") if price is not None else None,
        ))
    return items


def _load_session(actor: ActorContext, session_id: int) -> CashSession:
    session = lock_for_update(db.session.query(CashSession).filter_by(id=session_id)).first()
    if not session:
        raise NotFoundError("Session not found")
    actor.require_org(session.org_id, "Session")
    actor.require_location(session.location_id)

    if not session.is_open:
        raise ConflictError("Session is closed", details={"session_id": session.id, "status": session.status})
    if session.operating_mode != MODE_STANDARD:
        raise ConflictError(
            "Sales are recorded at close in inventory-count mode",
            details={"session_id": session.id, "operating_mode": session.operating_mode},
        )
    return session


def _price_lines(org_id: int, items: list[LineItemInput]) -> list[tuple[LineItemInput, int]]:
    product_ids = {item.product_id for item in items}
    products = {
        p.id: p for p in db.session.query(Product).filter(
            Product.id.in_(product_ids),
            Product.org_id == org_id,
        ).all()
    }

    priced = []
    for item in items:
        product = products.get(item.product_id)
        if product is None:
            raise NotFoundError("Product not found", details={"product_id": item.product_id})
        if not product.is_active:
            raise ValidationError("Product is inactive", details={"product_id": item.product_id})

        unit_price = item.unit_price_cents
        if unit_price is None:
            unit_price = product.price_cents
        if unit_price is None:
            raise ValidationError("Product has no price", details={"product_id": item.product_id})
        priced.append((item, unit_price))
    return priced


def record_sale(
    actor: ActorContext,
    session_id: int,
    line_items,
    payment_method: str,
    customer_id: int | None = None,
    *,
    loyalty_discount_cents: int = 0,
    points_used: int = 0,
) -> RecordedSale:
    """
    Record one checkout against an OPEN STANDARD session.

    loyalty_discount_cents and points_used come pre-computed from the
    caller (see loyalty_service.quote_redemption).

    Raises:
        ValidationError: bad lines, payment method or discount
        NotFoundError: unknown session, product or customer
        ConflictError: session closed or in inventory-count mode
        PersistenceError: the write failed; nothing was recorded
    """
    items = parse_line_items(line_items)
    payment_method = parse_payment_method(payment_method)
    loyalty_discount_cents = parse_cents(loyalty_discount_cents, "loyalty_discount_cents")
    points_used = parse_int(points_used, "points_used")
    if points_used < 0:
        raise ValidationError("points_used cannot be negative")
    if customer_id is not None:
        customer_id = parse_int(customer_id, "customer_id")
    if (points_used or loyalty_discount_cents) and customer_id is None:
        raise ValidationError("A customer is required to redeem loyalty points")

    session = _load_session(actor, session_id)
    priced = _price_lines(session.org_id, items)

    if customer_id is not None:
        customer = db.session.query(Customer).filter_by(id=customer_id, org_id=session.org_id).first()
        if not customer:
            raise NotFoundError("Customer not found", details={"customer_id": customer_id})

    gross = sum(item.quantity * unit_price for item, unit_price in priced)
    if loyalty_discount_cents > gross:
        raise ValidationError(
            "Loyalty discount exceeds sale total",
            details={"gross_total_cents": gross, "loyalty_discount_cents": loyalty_discount_cents},
        )
    net = gross - loyalty_discount_cents

    try:
        sale = SaleTransaction(
            session_id=session.id,
            location_id=session.location_id,
            payment_method=payment_method,
            customer_id=customer_id,
            created_by=actor.operator_id,
            gross_total_cents=gross,
            discount_cents=loyalty_discount_cents,
            net_total_cents=net,
            points_redeemed=points_used,
            created_at=utcnow(),
        )
        db.session.add(sale)
        db.session.flush()

        for item, unit_price in priced:
            db.session.add(SaleLine(
                sale_id=sale.id,
                product_id=item.product_id,
                quantity=item.quantity,
                unit_price_cents=unit_price,
                line_total_cents=item.quantity * unit_price,
            ))
            stock_ledger.decrement(session.location_id, item.product_id, item.quantity)

        db.session.query(CashSession).filter_by(id=session.id).update(
            {CashSession.system_sales_total_cents: CashSession.system_sales_total_cents + net},
            synchronize_session="fetch",
        )

        append_event(
            location_id=session.location_id,
            event_type="sale.recorded",
            session_id=session.id,
            sale_id=sale.id,
            actor_operator_id=actor.operator_id,
            occurred_at=sale.created_at,
            payload=f"net_total_cents={net},payment_method={payment_method}",
        )

        side_effects: list[SideEffectResult] = []
        if customer_id is not None and current_app.config.get("LOYALTY_ENABLED", True):
            effect_ctx = dict(
                location_id=session.location_id,
                session_id=session.id,
                sale_id=sale.id,
                actor_operator_id=actor.operator_id,
            )
            side_effects.append(
                loyalty_service.earn(customer_id, loyalty_service.points_for_amount(net), **effect_ctx)
            )
            if points_used > 0:
                side_effects.append(loyalty_service.redeem(customer_id, points_used, **effect_ctx))
    except Exception:
        # Stock refusal or a failed flush: drop the half-written sale
        db.session.rollback()
        raise

    commit_or_raise()

    current_app.logger.info(
        "Sale %s recorded on session %s: net=%s (%s)",
        sale.id, session.id, net, payment_method,
    )
    recorded = RecordedSale(sale=sale, side_effects=side_effects)
    if not recorded.side_effects_ok:
        current_app.logger.warning(
            "Sale %s kept despite failed side effects: %s",
            sale.id, ", ".join(r.name for r in side_effects if not r.ok),
        )
    return recorded
