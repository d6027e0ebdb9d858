# Overview: Pytest coverage for STANDARD-mode checkout recording.

import pytest

from tillkeeper.models import CashSession, SaleTransaction, SaleLine, TillEvent, MODE_STANDARD
from tillkeeper.services import loyalty_service, sales_recorder, session_manager, stock_ledger
from tillkeeper.services.sales_recorder import LineItemInput
from tillkeeper.validation import (
    ConflictError, NotFoundError, PermissionDeniedError, ValidationError,
)


@pytest.fixture
def open_session(db_session, actor, location, stocked):
    return session_manager.open_session(actor, location.id, 10000, MODE_STANDARD)


class TestRecordSale:
    def test_records_sale_and_lines(self, db_session, actor, location, open_session, product_a, product_b):
        recorded = sales_recorder.record_sale(
            actor, open_session.id,
            [
                {"product_id": product_a.id, "quantity": 3},
                {"product_id": product_b.id, "quantity": 1, "unit_price_cents": 1400},
            ],
            "pix",
        )

        sale = recorded.sale
        assert sale.payment_method == "pix"
        assert sale.gross_total_cents == 3 * 500 + 1400
        assert sale.discount_cents == 0
        assert sale.net_total_cents == sale.gross_total_cents
        assert sale.created_by == actor.operator_id
        assert recorded.side_effects == []

        lines = db_session.query(SaleLine).filter_by(sale_id=sale.id).order_by(SaleLine.id).all()
        assert [(l.product_id, l.quantity, l.unit_price_cents, l.line_total_cents) for l in lines] == [
            (product_a.id, 3, 500, 1500),
            (product_b.id, 1, 1400, 1400),
        ]

    def test_stock_leaves_immediately(self, db_session, actor, location, kiosk, open_session, product_a):
        sales_recorder.record_sale(actor, open_session.id, [{"product_id": product_a.id, "quantity": 4}], "cash")

        assert stock_ledger.get_quantity_on_hand(location.id, product_a.id) == 96
        # Other locations untouched
        assert stock_ledger.get_quantity_on_hand(kiosk.id, product_a.id) == 100

    def test_running_total(self, db_session, actor, open_session, product_a, product_b):
        sales_recorder.record_sale(actor, open_session.id, [{"product_id": product_a.id, "quantity": 2}], "cash")
        sales_recorder.record_sale(actor, open_session.id, [LineItemInput(product_b.id, 1)], "card")

        session = db_session.get(CashSession, open_session.id)
        assert session.system_sales_total_cents == 2500

    def test_audit_event(self, db_session, actor, open_session, product_a):
        recorded = sales_recorder.record_sale(actor, open_session.id, [{"product_id": product_a.id, "quantity": 1}], "cash")

        event = db_session.query(TillEvent).filter_by(event_type="sale.recorded").one()
        assert event.sale_id == recorded.sale.id
        assert event.session_id == open_session.id

    def test_loyalty_discount(self, db_session, actor, open_session, product_b, customer, location):
        loyalty_service.earn(customer.id, 100, location_id=location.id)
        db_session.commit()

        recorded = sales_recorder.record_sale(
            actor, open_session.id,
            [{"product_id": product_b.id, "quantity": 2}],
            "cash",
            customer.id,
            loyalty_discount_cents=500,
            points_used=100,
        )

        assert recorded.sale.gross_total_cents == 3000
        assert recorded.sale.discount_cents == 500
        assert recorded.sale.net_total_cents == 2500
        assert recorded.sale.points_redeemed == 100
        assert [r.name for r in recorded.side_effects] == ["loyalty.earn", "loyalty.redeem"]
        assert recorded.side_effects_ok

        # 100 + floor(25.00) - 100
        assert loyalty_service.get_account(customer.id).points_balance == 25
        assert db_session.get(CashSession, open_session.id).system_sales_total_cents == 2500

    def test_earns_points(self, db_session, actor, open_session, product_b, customer):
        sales_recorder.record_sale(actor, open_session.id, [{"product_id": product_b.id, "quantity": 3}], "card", customer.id)
        assert loyalty_service.get_account(customer.id).points_balance == 45

    def test_loyalty_disabled(self, app, db_session, actor, open_session, product_b, customer, monkeypatch):
        monkeypatch.setitem(app.config, "LOYALTY_ENABLED", False)
        recorded = sales_recorder.record_sale(actor, open_session.id, [{"product_id": product_b.id, "quantity": 1}], "cash", customer.id)

        assert recorded.side_effects == []
        assert loyalty_service.get_account(customer.id) is None


class TestLoyaltyIsolation:
    def test_forced_earn_failure_keeps_sale(self, db_session, actor, location, open_session, product_a, customer, monkeypatch):
        """Scenario 5: a broken loyalty ledger must not cost us the sale or the stock move."""
        def _boom(*args, **kwargs):
            raise RuntimeError("loyalty store unavailable")

        monkeypatch.setattr(loyalty_service, "_apply_points", _boom)

        recorded = sales_recorder.record_sale(
            actor, open_session.id, [{"product_id": product_a.id, "quantity": 2}], "cash", customer.id,
        )

        assert not recorded.side_effects_ok
        assert recorded.side_effects[0].name == "loyalty.earn"
        assert "unavailable" in recorded.side_effects[0].error
        assert recorded.to_dict()["side_effects_ok"] is False

        db_session.expire_all()
        assert db_session.get(SaleTransaction, recorded.sale.id) is not None
        assert stock_ledger.get_quantity_on_hand(location.id, product_a.id) == 98
        assert db_session.get(CashSession, open_session.id).system_sales_total_cents == 1000
        assert db_session.query(TillEvent).filter_by(event_type="side_effect.failed").count() == 1

    def test_failed_redeem_keeps_sale(self, app, db_session, actor, open_session, product_a, customer, monkeypatch):
        monkeypatch.setitem(app.config, "LOYALTY_ENFORCE_BALANCE", True)

        recorded = sales_recorder.record_sale(
            actor, open_session.id, [{"product_id": product_a.id, "quantity": 2}], "cash", customer.id,
            loyalty_discount_cents=100, points_used=20,
        )

        earn, redeem = recorded.side_effects
        assert earn.ok
        assert not redeem.ok
        assert recorded.sale.net_total_cents == 900
        # Earned 9, redemption of 20 refused
        assert loyalty_service.get_account(customer.id).points_balance == 9


class TestRejections:
    def test_inventory_mode_rejects_checkout(self, db_session, kiosk_actor, kiosk, product_a, stocked):
        session = session_manager.open_session(kiosk_actor, kiosk.id, 0)

        with pytest.raises(ConflictError):
            sales_recorder.record_sale(kiosk_actor, session.id, [{"product_id": product_a.id, "quantity": 1}], "cash")
        assert db_session.query(SaleTransaction).count() == 0

    def test_closed_session(self, db_session, actor, open_session, product_a):
        session_manager.close_session(actor, open_session.id, 10000)

        with pytest.raises(ConflictError):
            sales_recorder.record_sale(actor, open_session.id, [{"product_id": product_a.id, "quantity": 1}], "cash")

    @pytest.mark.parametrize("lines", [
        [],
        None,
        [{"product_id": 1, "quantity": 0}],
        [{"product_id": 1, "quantity": -2}],
        [{"product_id": 1, "quantity": 1.5}],
        [{"product_id": 1, "quantity": 1, "unit_price_cents": -1}],
        ["not a line"],
    ])
    def test_bad_lines(self, db_session, actor, open_session, lines):
        with pytest.raises(ValidationError):
            sales_recorder.record_sale(actor, open_session.id, lines, "cash")
        assert db_session.query(SaleTransaction).count() == 0

    @pytest.mark.parametrize("method", ["consolidated", "bitcoin", "", None])
    def test_bad_payment_method(self, db_session, actor, open_session, product_a, method):
        with pytest.raises(ValidationError):
            sales_recorder.record_sale(actor, open_session.id, [{"product_id": product_a.id, "quantity": 1}], method)

    def test_discount_above_gross(self, db_session, actor, open_session, product_a, customer):
        with pytest.raises(ValidationError):
            sales_recorder.record_sale(
                actor, open_session.id, [{"product_id": product_a.id, "quantity": 1}], "cash", customer.id,
                loyalty_discount_cents=501,
            )

    def test_redemption_needs_customer(self, db_session, actor, open_session, product_a):
        with pytest.raises(ValidationError):
            sales_recorder.record_sale(
                actor, open_session.id, [{"product_id": product_a.id, "quantity": 1}], "cash",
                points_used=10,
            )

    def test_unknown_product(self, db_session, actor, open_session):
        with pytest.raises(NotFoundError):
            sales_recorder.record_sale(actor, open_session.id, [{"product_id": 99999, "quantity": 1}], "cash")

    def test_unknown_customer(self, db_session, actor, open_session, product_a):
        with pytest.raises(NotFoundError):
            sales_recorder.record_sale(actor, open_session.id, [{"product_id": product_a.id, "quantity": 1}], "cash", 99999)

    def test_unstocked_product_rolls_back(self, db_session, actor, location, open_session, org, product_a):
        from tillkeeper.models import Product
        loose = Product(org_id=org.id, sku="NOVO-01", name="Sem estoque", price_cents=300)
        db_session.add(loose)
        db_session.commit()

        with pytest.raises(NotFoundError):
            sales_recorder.record_sale(
                actor, open_session.id,
                [{"product_id": product_a.id, "quantity": 1}, {"product_id": loose.id, "quantity": 1}],
                "cash",
            )

        assert db_session.query(SaleTransaction).count() == 0
        assert stock_ledger.get_quantity_on_hand(location.id, product_a.id) == 100

    def test_oversell_refused_when_configured(self, app, db_session, actor, location, open_session, product_b, monkeypatch):
        monkeypatch.setitem(app.config, "STOCK_ALLOW_NEGATIVE", False)

        with pytest.raises(ConflictError):
            sales_recorder.record_sale(actor, open_session.id, [{"product_id": product_b.id, "quantity": 21}], "cash")

        assert db_session.query(SaleTransaction).count() == 0
        assert stock_ledger.get_quantity_on_hand(location.id, product_b.id) == 20

    def test_other_location(self, db_session, kiosk_actor, open_session, product_a):
        with pytest.raises(PermissionDeniedError):
            sales_recorder.record_sale(kiosk_actor, open_session.id, [{"product_id": product_a.id, "quantity": 1}], "cash")

    def test_foreign_actor(self, db_session, foreign_actor, open_session, product_a):
        with pytest.raises(NotFoundError):
            sales_recorder.record_sale(foreign_actor, open_session.id, [{"product_id": product_a.id, "quantity": 1}], "cash")
