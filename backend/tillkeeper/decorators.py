# Overview: Request decorators for till API routes.

from functools import wraps
from flask import request, jsonify, g

from .actor import actor_for_operator
from .extensions import db
from .models import Operator, Organization


def require_actor(f):
    """
    Resolve the calling operator and establish the actor context.

    Authentication happens upstream; the gateway forwards the operator id
    in the X-Operator-Id header.

    Sets the following Flask g attributes:
    - g.operator: the Operator row
    - g.actor: the ActorContext passed into every till service call

    Returns 401 if:
    - No X-Operator-Id header (or not an integer)
    - Operator unknown or deactivated
    - Organization deactivated
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw_id = (request.headers.get("X-Operator-Id") or "").strip()
        if not raw_id.isdigit():
            return jsonify({"error": "Authentication required"}), 401

        operator = db.session.get(Operator, int(raw_id))
        if not operator or not operator.is_active:
            return jsonify({"error": "Unknown or inactive operator"}), 401

        org = db.session.get(Organization, operator.org_id)
        if not org or not org.is_active:
            return jsonify({"error": "Organization is inactive"}), 401

        g.operator = operator
        g.actor = actor_for_operator(operator)

        return f(*args, **kwargs)

    return decorated_function
