"""
Loyalty points ledger.

WHY: Customers earn one point per whole currency unit spent at a STANDARD
till and may spend points as a discount on a later sale.

DESIGN:
- earn/redeem are fire-and-forget from the sale's point of view: they run
  through run_side_effect and hand back a SideEffectResult instead of
  raising, so a loyalty failure never undoes a sale.
- Balance changes are single UPDATE expressions.
- Redemptions are NOT checked against the balance unless
  LOYALTY_ENFORCE_BALANCE is on; see DESIGN.md.
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app

from ..extensions import db
from ..models import Customer, LoyaltyAccount, LoyaltyTransaction
from ..validation import ConflictError, NotFoundError, ValidationError
from tillkeeper.time_utils import utcnow
from .side_effects import SideEffectResult, run_side_effect


class LoyaltyError(ConflictError):
    """Raised for loyalty operation errors."""


@dataclass(frozen=True)
class RedemptionQuote:
    points: int
    discount_cents: int
    balance: int


def points_for_amount(net_total_cents: int) -> int:
    """floor(net total in currency units); never negative."""
    if net_total_cents <= 0:
        return 0
    return net_total_cents // 100


def get_account(customer_id: int) -> LoyaltyAccount | None:
    return db.session.query(LoyaltyAccount).filter_by(customer_id=customer_id).first()


def _ensure_account(customer_id: int) -> LoyaltyAccount:
    account = get_account(customer_id)
    if account:
        return account

    if not db.session.query(Customer.id).filter_by(id=customer_id).first():
        raise LoyaltyError(f"Customer {customer_id} not found")

    account = LoyaltyAccount(customer_id=customer_id, points_balance=0)
    db.session.add(account)
    db.session.flush()
    return account


def _apply_points(customer_id: int, points: int, transaction_type: str, sale_id: int | None) -> int:
    """
    Move points and log the movement. Returns the new balance.

    points is signed: positive for EARN, negative for REDEEM.
    """
    account = _ensure_account(customer_id)

    query = db.session.query(LoyaltyAccount).filter(LoyaltyAccount.id == account.id)
    values = {LoyaltyAccount.points_balance: LoyaltyAccount.points_balance + points}
    if points >= 0:
        values[LoyaltyAccount.lifetime_points_earned] = LoyaltyAccount.lifetime_points_earned + points
    else:
        values[LoyaltyAccount.lifetime_points_redeemed] = LoyaltyAccount.lifetime_points_redeemed - points
        if current_app.config.get("LOYALTY_ENFORCE_BALANCE", False):
            query = query.filter(LoyaltyAccount.points_balance + points >= 0)

    if not query.update(values, synchronize_session="fetch"):
        raise LoyaltyError("Insufficient loyalty points")

    db.session.add(LoyaltyTransaction(
        account_id=account.id,
        transaction_type=transaction_type,
        points=points,
        sale_id=sale_id,
        occurred_at=utcnow(),
    ))
    db.session.flush()

    balance = db.session.query(LoyaltyAccount.points_balance).filter_by(id=account.id).scalar()
    if balance < 0:
        current_app.logger.warning(
            "Loyalty balance for customer %s went negative (%s)", customer_id, balance,
        )
    return balance


def earn(
    customer_id: int,
    points: int,
    *,
    location_id: int,
    session_id: int | None = None,
    sale_id: int | None = None,
    actor_operator_id: int | None = None,
) -> SideEffectResult:
    """Credit points. Failures are logged and reported, never raised."""
    def _op():
        if points < 0:
            raise ValidationError("points cannot be negative")
        return _apply_points(customer_id, points, "EARN", sale_id)

    return run_side_effect(
        "loyalty.earn",
        _op,
        location_id=location_id,
        session_id=session_id,
        sale_id=sale_id,
        actor_operator_id=actor_operator_id,
    )


def redeem(
    customer_id: int,
    points: int,
    *,
    location_id: int,
    session_id: int | None = None,
    sale_id: int | None = None,
    actor_operator_id: int | None = None,
) -> SideEffectResult:
    """Debit points. Failures are logged and reported, never raised."""
    def _op():
        if points < 0:
            raise ValidationError("points cannot be negative")
        return _apply_points(customer_id, -points, "REDEEM", sale_id)

    return run_side_effect(
        "loyalty.redeem",
        _op,
        location_id=location_id,
        session_id=session_id,
        sale_id=sale_id,
        actor_operator_id=actor_operator_id,
    )


def quote_redemption(customer_id: int, gross_total_cents: int) -> RedemptionQuote:
    """
    How much of a sale the customer's points can pay for.

    The discount never exceeds the sale total, and is always a whole number
    of points times LOYALTY_POINT_VALUE_CENTS.
    """
    if not db.session.query(Customer.id).filter_by(id=customer_id).first():
        raise NotFoundError("Customer not found")

    point_value = current_app.config.get("LOYALTY_POINT_VALUE_CENTS", 5)
    account = get_account(customer_id)
    balance = account.points_balance if account else 0

    if balance <= 0 or gross_total_cents <= 0 or point_value <= 0:
        return RedemptionQuote(points=0, discount_cents=0, balance=balance)

    points = min(balance, gross_total_cents // point_value)
    return RedemptionQuote(points=points, discount_cents=points * point_value, balance=balance)
