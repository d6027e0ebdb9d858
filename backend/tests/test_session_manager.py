# Overview: Pytest coverage for the till session lifecycle.

"""
Session Lifecycle Tests

Covers:
1. Opening: float validation, mode fallback, one OPEN session per location
2. Closing: variance calculation, breakdown, immutability
3. Actor rules: foreign organization, other locations, capabilities
4. Reads: open session lookup, summary, history
"""

import logging

import pytest
from sqlalchemy.exc import IntegrityError

from tillkeeper.models import (
    CashSession, TillEvent,
    MODE_STANDARD, MODE_INVENTORY_COUNT, SESSION_STATUS_OPEN, SESSION_STATUS_CLOSED,
)
from tillkeeper.services import audit_service, sales_recorder, session_manager
from tillkeeper.services.concurrency import flush_or_raise
from tillkeeper.time_utils import utcnow
from tillkeeper.validation import (
    ConflictError, NotFoundError, PermissionDeniedError, ValidationError,
)


class TestOpenSession:
    def test_open(self, db_session, actor, location):
        session = session_manager.open_session(actor, location.id, 10000, MODE_STANDARD)

        assert session.id is not None
        assert session.status == SESSION_STATUS_OPEN
        assert session.operating_mode == MODE_STANDARD
        assert session.opening_float_cents == 10000
        assert session.system_sales_total_cents == 0
        assert session.opened_by == actor.operator_id
        assert session.closed_at is None

        events = db_session.query(TillEvent).filter_by(session_id=session.id).all()
        assert [e.event_type for e in events] == ["session.opened"]

    def test_negative_float_rejected(self, db_session, actor, location):
        with pytest.raises(ValidationError):
            session_manager.open_session(actor, location.id, -1)
        assert db_session.query(CashSession).count() == 0

    @pytest.mark.parametrize("bad", [12.5, "12.5", "1e3", True, None])
    def test_float_must_be_integer_cents(self, db_session, actor, location, bad):
        with pytest.raises(ValidationError):
            session_manager.open_session(actor, location.id, bad)

    def test_unknown_mode_rejected(self, db_session, actor, location):
        with pytest.raises(ValidationError):
            session_manager.open_session(actor, location.id, 0, "SELF_SERVICE")

    def test_mode_falls_back_to_location_default(self, db_session, kiosk_actor, kiosk):
        session = session_manager.open_session(kiosk_actor, kiosk.id, 0)
        assert session.operating_mode == MODE_INVENTORY_COUNT

    def test_mode_falls_back_to_config(self, app, db_session, actor, location, monkeypatch):
        monkeypatch.setitem(app.config, "DEFAULT_OPERATING_MODE", MODE_INVENTORY_COUNT)
        session = session_manager.open_session(actor, location.id, 0)
        assert session.operating_mode == MODE_INVENTORY_COUNT

    def test_second_open_conflicts(self, db_session, actor, admin_actor, location):
        """Scenario 4: one OPEN session per location, whoever asks."""
        first = session_manager.open_session(actor, location.id, 10000)

        with pytest.raises(ConflictError) as exc:
            session_manager.open_session(admin_actor, location.id, 5000)
        assert exc.value.details["session_id"] == first.id

        assert db_session.query(CashSession).filter_by(
            location_id=location.id, status=SESSION_STATUS_OPEN
        ).count() == 1

    def test_database_rejects_second_open_row(self, db_session, actor, location):
        """The partial unique index holds even when the pre-check is bypassed."""
        session_manager.open_session(actor, location.id, 0)

        db_session.add(CashSession(
            org_id=actor.organization_id,
            location_id=location.id,
            operating_mode=MODE_STANDARD,
            status=SESSION_STATUS_OPEN,
            opened_by=actor.operator_id,
            opened_at=utcnow(),
        ))
        with pytest.raises(IntegrityError):
            db_session.flush()
        db_session.rollback()

    def test_racing_insert_surfaces_as_conflict(self, db_session, actor, location):
        session_manager.open_session(actor, location.id, 0)

        db_session.add(CashSession(
            org_id=actor.organization_id,
            location_id=location.id,
            operating_mode=MODE_STANDARD,
            status=SESSION_STATUS_OPEN,
            opened_by=actor.operator_id,
            opened_at=utcnow(),
        ))
        with pytest.raises(ConflictError):
            flush_or_raise(conflict_message=session_manager.OPEN_CONFLICT_MESSAGE)

    def test_reopen_after_close(self, db_session, actor, location):
        first = session_manager.open_session(actor, location.id, 0)
        session_manager.close_session(actor, first.id, 0)

        second = session_manager.open_session(actor, location.id, 0)

        assert second.id != first.id
        assert second.status == SESSION_STATUS_OPEN

    def test_inactive_location(self, db_session, actor, location):
        location.is_active = False
        db_session.commit()

        with pytest.raises(ConflictError):
            session_manager.open_session(actor, location.id, 0)


class TestActorRules:
    def test_foreign_location_looks_missing(self, db_session, actor, foreign_location):
        with pytest.raises(NotFoundError):
            session_manager.open_session(actor, foreign_location.id, 0)

    def test_unknown_location(self, db_session, actor):
        with pytest.raises(NotFoundError):
            session_manager.open_session(actor, 99999, 0)

    def test_other_location_needs_capability(self, db_session, actor, kiosk):
        with pytest.raises(PermissionDeniedError):
            session_manager.open_session(actor, kiosk.id, 0)

    def test_manager_cannot_open_elsewhere(self, db_session, manager_actor, location):
        with pytest.raises(PermissionDeniedError):
            session_manager.open_session(manager_actor, location.id, 0)

    def test_admin_opens_anywhere(self, db_session, admin_actor, kiosk):
        session = session_manager.open_session(admin_actor, kiosk.id, 0)
        assert session.location_id == kiosk.id

    def test_close_at_other_location_needs_capability(self, db_session, actor, admin_actor, kiosk):
        session = session_manager.open_session(admin_actor, kiosk.id, 0, MODE_STANDARD)

        with pytest.raises(PermissionDeniedError):
            session_manager.close_session(actor, session.id, 0)

    def test_foreign_session_looks_missing(self, db_session, actor, foreign_actor, foreign_location):
        session = session_manager.open_session(foreign_actor, foreign_location.id, 0)

        with pytest.raises(NotFoundError):
            session_manager.get_session(actor, session.id)
        with pytest.raises(NotFoundError):
            session_manager.close_session(actor, session.id, 0)


class TestCloseSession:
    def test_scenario_standard_balanced(self, db_session, actor, location, product_b, stocked):
        """Scenario 1: float 100.00, one sale of 2 x 15.00, 130.00 declared."""
        session = session_manager.open_session(actor, location.id, 10000, MODE_STANDARD)
        sales_recorder.record_sale(
            actor, session.id,
            [{"product_id": product_b.id, "quantity": 2, "unit_price_cents": 1500}],
            "cash",
        )

        closed = session_manager.close_session(actor, session.id, 13000)

        assert closed.status == SESSION_STATUS_CLOSED
        assert closed.system_sales_total_cents == 3000
        assert closed.discount_total_cents == 0
        assert closed.expected_total_cents == 13000
        assert closed.variance_cents == 0
        assert closed.closed_by == actor.operator_id
        assert closed.closed_at is not None

    def test_shortage(self, db_session, actor, location, product_b, stocked):
        session = session_manager.open_session(actor, location.id, 10000, MODE_STANDARD)
        sales_recorder.record_sale(actor, session.id, [{"product_id": product_b.id, "quantity": 1}], "pix")

        closed = session_manager.close_session(actor, session.id, 11000, "faltou troco")

        assert closed.expected_total_cents == 11500
        assert closed.variance_cents == -500
        assert closed.notes == "faltou troco"

    def test_no_sales(self, db_session, actor, location):
        session = session_manager.open_session(actor, location.id, 5000)
        closed = session_manager.close_session(actor, session.id, 5000)
        assert closed.system_sales_total_cents == 0
        assert closed.variance_cents == 0

    def test_shortage_and_surplus_are_logged(self, db_session, actor, location, caplog):
        short = session_manager.open_session(actor, location.id, 5000)
        with caplog.at_level(logging.WARNING):
            session_manager.close_session(actor, short.id, 4900)
        assert "closed short by 1.00" in caplog.text

        caplog.clear()
        over = session_manager.open_session(actor, location.id, 5000)
        with caplog.at_level(logging.WARNING):
            session_manager.close_session(actor, over.id, 5250)
        assert "closed over by 2.50" in caplog.text

    def test_breakdown_is_summed(self, db_session, actor, location):
        session = session_manager.open_session(actor, location.id, 5000)

        closed = session_manager.close_session(
            actor, session.id,
            informed_breakdown={"cash": 4000, "pix": 700, "card": 300},
        )

        assert closed.informed_total_cents == 5000
        assert closed.informed_cash_cents == 4000
        assert closed.informed_pix_cents == 700
        assert closed.informed_card_cents == 300
        assert closed.variance_cents == 0

    def test_breakdown_requires_cash(self, db_session, actor, location):
        session = session_manager.open_session(actor, location.id, 0)
        with pytest.raises(ValidationError):
            session_manager.close_session(actor, session.id, informed_breakdown={"pix": 100})

    def test_breakdown_must_match_total(self, db_session, actor, location):
        session = session_manager.open_session(actor, location.id, 0)
        with pytest.raises(ValidationError):
            session_manager.close_session(
                actor, session.id, 999, informed_breakdown={"cash": 100},
            )

    def test_informed_total_required(self, db_session, actor, location):
        session = session_manager.open_session(actor, location.id, 0)

        with pytest.raises(ValidationError):
            session_manager.close_session(actor, session.id, None)
        with pytest.raises(ValidationError):
            session_manager.close_session(actor, session.id, -100)

        assert db_session.get(CashSession, session.id).status == SESSION_STATUS_OPEN

    def test_closed_is_immutable(self, db_session, actor, location):
        session = session_manager.open_session(actor, location.id, 1000)
        session_manager.close_session(actor, session.id, 1000)

        with pytest.raises(ConflictError):
            session_manager.close_session(actor, session.id, 5000)

        reloaded = db_session.get(CashSession, session.id)
        assert reloaded.informed_total_cents == 1000
        assert reloaded.variance_cents == 0

    def test_counts_rejected_for_standard(self, db_session, actor, location, product_a):
        session = session_manager.open_session(actor, location.id, 0, MODE_STANDARD)
        with pytest.raises(ValidationError):
            session_manager.close_session(actor, session.id, 0, counted_quantities={product_a.id: 1})

    def test_unknown_session(self, db_session, actor):
        with pytest.raises(NotFoundError):
            session_manager.close_session(actor, 99999, 0)

    def test_close_events(self, db_session, actor, location):
        session = session_manager.open_session(actor, location.id, 0)
        session_manager.close_session(actor, session.id, 0)

        events = audit_service.list_session_events(session.id)
        assert [e.event_type for e in events] == ["session.opened", "session.closed"]


class TestReads:
    def test_get_session_is_org_scoped(self, db_session, actor, admin_actor, foreign_actor, kiosk):
        at_kiosk = session_manager.open_session(admin_actor, kiosk.id, 0)

        # Sibling locations are readable
        assert session_manager.get_session(actor, at_kiosk.id).id == at_kiosk.id
        with pytest.raises(NotFoundError):
            session_manager.get_session(foreign_actor, at_kiosk.id)

    def test_get_open_session(self, db_session, actor, location):
        assert session_manager.get_open_session(actor, location.id) is None

        session = session_manager.open_session(actor, location.id, 0)
        assert session_manager.get_open_session(actor, location.id).id == session.id

        session_manager.close_session(actor, session.id, 0)
        assert session_manager.get_open_session(actor, location.id) is None

    def test_summary(self, db_session, actor, location, product_a, product_b, stocked):
        session = session_manager.open_session(actor, location.id, 10000, MODE_STANDARD)
        sales_recorder.record_sale(actor, session.id, [{"product_id": product_b.id, "quantity": 2}], "cash")
        sales_recorder.record_sale(actor, session.id, [{"product_id": product_a.id, "quantity": 1}], "card")

        summary = session_manager.get_session_summary(actor, session.id)

        assert summary["sales_count"] == 2
        assert summary["sales_by_payment_method"] == {"cash": 3000, "card": 500}
        assert summary["expected_total_cents"] == 13500
        assert summary["is_closed"] is False
        assert summary["variance_cents"] is None
        assert summary["events_count"] == 3
        assert [e["event_type"] for e in summary["events"]] == ["session.opened", "sale.recorded", "sale.recorded"]

    def test_list_sessions(self, db_session, actor, admin_actor, location, kiosk, foreign_actor, foreign_location):
        first = session_manager.open_session(actor, location.id, 0)
        session_manager.close_session(actor, first.id, 0)
        second = session_manager.open_session(actor, location.id, 0)
        at_kiosk = session_manager.open_session(admin_actor, kiosk.id, 0)
        session_manager.open_session(foreign_actor, foreign_location.id, 0)

        all_ids = {s.id for s in session_manager.list_sessions(actor)}
        assert all_ids == {first.id, second.id, at_kiosk.id}

        open_here = session_manager.list_sessions(actor, location_id=location.id, status="open")
        assert [s.id for s in open_here] == [second.id]

        assert len(session_manager.list_sessions(actor, limit=1)) == 1

    def test_list_rejects_bad_status(self, db_session, actor):
        with pytest.raises(ValidationError):
            session_manager.list_sessions(actor, status="PAUSED")
