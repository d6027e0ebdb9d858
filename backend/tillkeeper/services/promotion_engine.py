from __future__ import annotations

from dataclasses import dataclass

from ..extensions import db
from ..models import Promotion


@dataclass(frozen=True)
class SaleLineInput:
    """Priced line fed to the discount calculation."""
    product_id: int
    quantity: int
    unit_price_cents: int


@dataclass(frozen=True)
class AppliedPromotion:
    promotion_id: int
    name: str
    combos: int
    discount_cents: int


def get_active_promotions(org_id: int, location_id: int | None = None) -> list[Promotion]:
    """Active promotions for the org, plus those pinned to this location."""
    q = db.session.query(Promotion).filter_by(org_id=org_id, is_active=True)
    if location_id:
        q = q.filter((Promotion.location_id == location_id) | (Promotion.location_id.is_(None)))
    else:
        q = q.filter(Promotion.location_id.is_(None))
    return q.order_by(Promotion.id).all()


def apply_promotions(
    promotions: list[Promotion],
    sale_lines: list[SaleLineInput],
    combos_sold: dict[int, int] | None = None,
) -> list[AppliedPromotion]:
    """
    Per-promotion discount breakdown.

    Each combo saves (unit price x trigger quantity) - combo price. The
    number of combos is what the operator declared for that promotion; when
    nothing was declared it is inferred as sold quantity // trigger quantity.
    Promotions whose product was not sold contribute nothing, as do combos
    priced above the regular price.
    """
    sold: dict[int, tuple[int, int]] = {}
    for line in sale_lines:
        qty, _ = sold.get(line.product_id, (0, line.unit_price_cents))
        sold[line.product_id] = (qty + line.quantity, line.unit_price_cents)

    applied = []
    for promo in promotions:
        if promo.product_id not in sold or promo.trigger_quantity <= 0:
            continue

        sold_qty, unit_price_cents = sold[promo.product_id]
        if combos_sold is not None and promo.id in combos_sold:
            combos = max(0, int(combos_sold[promo.id]))
        else:
            combos = sold_qty // promo.trigger_quantity

        saving_per_combo = unit_price_cents * promo.trigger_quantity - promo.combo_price_cents
        if combos <= 0 or saving_per_combo <= 0:
            continue

        applied.append(AppliedPromotion(
            promotion_id=promo.id,
            name=promo.name,
            combos=combos,
            discount_cents=saving_per_combo * combos,
        ))
    return applied


def compute_discount(
    promotions: list[Promotion],
    sale_lines: list[SaleLineInput],
    combos_sold: dict[int, int] | None = None,
) -> int:
    """Sum of every promotion's contribution. Not capped against the sale total."""
    return sum(a.discount_cents for a in apply_promotions(promotions, sale_lines, combos_sold))
