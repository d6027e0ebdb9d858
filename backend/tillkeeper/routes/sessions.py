# Overview: Flask API routes for till sessions; parses input and returns JSON responses.

"""
Till Session API Routes

WHY: Terminals open a till, ring up sales (or submit a hand count) and
close it with the cash they counted.

DESIGN:
- Routes only parse requests and shape responses; every rule lives in
  the services, which receive the ActorContext built by @require_actor
- TillError subclasses carry their own HTTP status
- Anything else is logged with a traceback and reported as a 500

SECURITY:
- Organization scoping and location capability checks happen in the
  services (foreign rows look like 404s)
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..models import Customer
from ..services import inventory_reconciler, loyalty_service, sales_recorder, session_manager
from ..validation import TillError, ValidationError, NotFoundError, parse_cents
from ..decorators import require_actor


till_bp = Blueprint("till", __name__, url_prefix="/api/till")


def _error_response(exc: TillError):
    db.session.rollback()
    return jsonify(exc.to_dict()), exc.status_code


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


# =============================================================================
# SESSION LIFECYCLE
# =============================================================================

@till_bp.post("/sessions")
@require_actor
def open_session_route():
    """
    Open a till session.

    Request body:
    {
        "location_id": 1,              (optional, defaults to the operator's location)
        "opening_float_cents": 10000,
        "operating_mode": "STANDARD",  (optional: STANDARD | INVENTORY_COUNT)
        "notes": "..."                 (optional)
    }

    Returns 409 if the location already has an open session.
    """
    try:
        data = _json_body()
        location_id = data.get("location_id", g.actor.location_id)
        if location_id is None:
            raise ValidationError("location_id is required")

        session = session_manager.open_session(
            g.actor,
            location_id,
            data.get("opening_float_cents"),
            operating_mode=data.get("operating_mode"),
            notes=data.get("notes"),
        )
        return jsonify({"session": session.to_dict()}), 201

    except TillError as e:
        return _error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to open session")
        return jsonify({"error": "Internal server error"}), 500


@till_bp.get("/sessions")
@require_actor
def list_sessions_route():
    """Closing history. Query params: location_id, status, limit."""
    try:
        sessions = session_manager.list_sessions(
            g.actor,
            location_id=request.args.get("location_id"),
            status=request.args.get("status"),
            limit=request.args.get("limit", 50),
        )
        return jsonify({"sessions": [s.to_dict() for s in sessions]}), 200

    except TillError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list sessions")
        return jsonify({"error": "Internal server error"}), 500


@till_bp.get("/sessions/open")
@require_actor
def get_open_session_route():
    try:
        location_id = request.args.get("location_id", g.actor.location_id)
        if location_id is None:
            raise ValidationError("location_id is required")
        session = session_manager.get_open_session(g.actor, location_id)
        return jsonify({"session": session.to_dict() if session else None}), 200

    except TillError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load open session")
        return jsonify({"error": "Internal server error"}), 500


@till_bp.get("/sessions/<int:session_id>")
@require_actor
def get_session_route(session_id: int):
    """Session details plus the closing report."""
    try:
        return jsonify(session_manager.get_session_summary(g.actor, session_id)), 200

    except TillError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load session")
        return jsonify({"error": "Internal server error"}), 500


@till_bp.post("/sessions/<int:session_id>/close")
@require_actor
def close_session_route(session_id: int):
    """
    Close a session and calculate cash variance.

    Request body:
    {
        "informed_total_cents": 13000,
        "informed_breakdown": {"cash": 10000, "pix": 2000, "card": 1000},  (alternative)
        "notes": "...",
        "counted_quantities": {"12": 90},     (INVENTORY_COUNT only)
        "promotion_combos": {"3": 2}          (INVENTORY_COUNT only)
    }

    IMMUTABLE: a closed session cannot be closed again (409).
    """
    try:
        data = _json_body()
        session = session_manager.close_session(
            g.actor,
            session_id,
            data.get("informed_total_cents"),
            data.get("notes"),
            informed_breakdown=data.get("informed_breakdown"),
            counted_quantities=data.get("counted_quantities"),
            promotion_combos=data.get("promotion_combos"),
        )
        return jsonify({"session": session.to_dict()}), 200

    except TillError as e:
        return _error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to close session")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# SALES (STANDARD MODE)
# =============================================================================

@till_bp.post("/sessions/<int:session_id>/sales")
@require_actor
def record_sale_route(session_id: int):
    """
    Record a checkout.

    Request body:
    {
        "lines": [{"product_id": 1, "quantity": 2, "unit_price_cents": 1500}],
        "payment_method": "cash",          (cash | pix | card)
        "customer_id": 7,                  (optional)
        "loyalty_discount_cents": 0,       (optional, from the loyalty quote)
        "points_used": 0                   (optional)
    }

    side_effects in the response reports loyalty failures; the sale is
    recorded either way.
    """
    try:
        data = _json_body()
        recorded = sales_recorder.record_sale(
            g.actor,
            session_id,
            data.get("lines"),
            data.get("payment_method"),
            data.get("customer_id"),
            loyalty_discount_cents=data.get("loyalty_discount_cents", 0),
            points_used=data.get("points_used", 0),
        )
        return jsonify(recorded.to_dict()), 201

    except TillError as e:
        return _error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to record sale")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# INVENTORY COUNTS (INVENTORY_COUNT MODE)
# =============================================================================

@till_bp.get("/sessions/<int:session_id>/counts")
@require_actor
def get_counts_route(session_id: int):
    try:
        return jsonify(inventory_reconciler.get_count_sheet(g.actor, session_id)), 200

    except TillError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load count sheet")
        return jsonify({"error": "Internal server error"}), 500


@till_bp.put("/sessions/<int:session_id>/counts")
@require_actor
def submit_counts_route(session_id: int):
    """
    Request body:
    {
        "counts": [{"product_id": 1, "counted_qty": 90}]   (or {"1": 90})
    }

    Changing an existing count requires CAN_OVERRIDE_COUNT (403).
    """
    try:
        data = _json_body()
        lines = inventory_reconciler.submit_counts(g.actor, session_id, data.get("counts"))
        return jsonify({"lines": [line.to_dict() for line in lines]}), 200

    except TillError as e:
        return _error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to submit counts")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# LOYALTY
# =============================================================================

@till_bp.get("/customers/<int:customer_id>/loyalty")
@require_actor
def customer_loyalty_route(customer_id: int):
    """Points balance and, with ?gross_cents=, how much of that sale points can pay."""
    try:
        customer = db.session.get(Customer, customer_id)
        if not customer:
            raise NotFoundError("Customer not found")
        g.actor.require_org(customer.org_id, "Customer")

        account = loyalty_service.get_account(customer.id)
        payload = {
            "customer_id": customer.id,
            "account": account.to_dict() if account else None,
            "points_balance": account.points_balance if account else 0,
        }

        gross = request.args.get("gross_cents")
        if gross is not None:
            quote = loyalty_service.quote_redemption(customer.id, parse_cents(gross, "gross_cents"))
            payload["redemption"] = {
                "points": quote.points,
                "discount_cents": quote.discount_cents,
            }
        return jsonify(payload), 200

    except TillError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load loyalty account")
        return jsonify({"error": "Internal server error"}), 500
