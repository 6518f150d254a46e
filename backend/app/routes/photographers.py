# Overview: Flask API routes for photographer availability; parses input and returns JSON responses.

"""
Photographer Availability Routes

WHY: Let booking screens show free time and pre-validate a chosen slot
before a booking is submitted. Both endpoints are read-only; the booking
service re-checks the slot under the per-day lock when it writes.
"""

from flask import Blueprint, request, jsonify, current_app

from ..errors import BookingError
from ..services import availability_service
from ..validation import FieldErrors, read_date, read_int, read_time
from ..decorators import require_auth, require_permission


photographers_bp = Blueprint("photographers", __name__, url_prefix="/api/photographers")


@photographers_bp.get("/<int:photographer_id>/slots")
@require_auth
@require_permission("VIEW_AVAILABILITY")
def available_slots_route(photographer_id: int):
    """
    Free windows for one date.

    Query params:
    - date: YYYY-MM-DD (required)
    - duration: session length in minutes (default: 60)
    - step: cut windows into slots starting every N minutes (optional)
    - stepped: true to use the configured default step (optional)
    """
    args = request.args.to_dict()
    errors = FieldErrors()
    target_date = read_date(args, "date", errors, required=True)
    duration = read_int(args, "duration", errors)
    if duration is None:
        duration = 60
    step = read_int(args, "step", errors, minimum=5, maximum=240)
    if step is None and args.get("stepped", "false").lower() == "true":
        step = current_app.config.get("DEFAULT_SLOT_STEP_MINUTES", 30)

    try:
        errors.raise_if_any("Invalid availability query")
        result = availability_service.get_available_slots(
            photographer_id, target_date, duration, step_minutes=step
        )
        return jsonify(result.to_dict()), 200
    except BookingError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to compute available slots")
        return jsonify({"error": "Internal server error"}), 500


@photographers_bp.get("/<int:photographer_id>/slots/check")
@require_auth
@require_permission("VIEW_AVAILABILITY")
def check_slot_route(photographer_id: int):
    """
    Check one candidate slot.

    Query params: date (YYYY-MM-DD), start (HH:MM), end (HH:MM, "24:00" allowed)
    """
    args = request.args.to_dict()
    errors = FieldErrors()
    target_date = read_date(args, "date", errors, required=True)
    start = read_time(args, "start", errors, required=True)
    end = read_time(args, "end", errors, required=True, allow_end_of_day=True)

    try:
        errors.raise_if_any("Invalid slot check")
        result = availability_service.check_slot(photographer_id, target_date, start, end)
        return jsonify({
            "photographer_id": photographer_id,
            "date": target_date.isoformat(),
            "start_time": args["start"],
            "end_time": args["end"],
            "available": result.available,
            "reason": result.reason,
        }), 200
    except BookingError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to check slot")
        return jsonify({"error": "Internal server error"}), 500
