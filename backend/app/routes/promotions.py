from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request, g

from ..decorators import require_auth, require_permission
from ..errors import BookingError
from ..services import promotions_service
from ..validation import FieldErrors, read_amount, read_date, read_str

promotions_bp = Blueprint("promotions", __name__, url_prefix="/api/promotions")


@promotions_bp.route("", methods=["GET"])
@require_auth
@require_permission("MANAGE_PROMOTIONS")
def list_promotions():
    active_only = request.args.get("active_only", "false").lower() == "true"
    promos = promotions_service.list_promotions(active_only=active_only)
    return jsonify({"promotions": [p.to_dict() for p in promos]})


@promotions_bp.route("", methods=["POST"])
@require_auth
@require_permission("MANAGE_PROMOTIONS")
def create_promotion():
    data = request.get_json(silent=True) or {}
    try:
        promo = promotions_service.create_promotion(data, g.actor_id)
    except BookingError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create promotion")
        return jsonify({"error": "Internal server error"}), 500
    return jsonify({"promotion": promo.to_dict()}), 201


@promotions_bp.route("/evaluate", methods=["POST"])
@require_auth
@require_permission("EVALUATE_PROMO")
def evaluate_promotion():
    """
    Preview a promo code against a provisional total; nothing is redeemed.

    Body: {"promo_code": "EARLY10", "total_amount_cents": 150000, "booking_date": "2026-11-20"}
    """
    data = request.get_json(silent=True) or {}
    errors = FieldErrors()
    code = read_str(data, "promo_code", errors, required=True, max_length=20)
    total = read_amount(data, "total_amount_cents", errors, required=True)
    booking_date = read_date(data, "booking_date", errors, required=True)
    try:
        errors.raise_if_any("Invalid promo evaluation request")
        result = promotions_service.evaluate_code(code, total, booking_date)
    except BookingError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to evaluate promotion")
        return jsonify({"error": "Internal server error"}), 500
    return jsonify({"promo_code": code.upper(), **result.to_dict()})
