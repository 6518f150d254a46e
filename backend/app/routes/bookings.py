# Overview: Flask API routes for booking operations; parses input and returns JSON responses.

# backend/app/routes/bookings.py
"""
Booking API Routes

WHY: Expose booking intake and the booking lifecycle over REST.

DESIGN:
- Create bookings (PENDING) from a package or a list of services
- Lifecycle actions are separate PATCH endpoints, one per transition
- Soft delete / restore instead of hard deletes
- Payment status is computed by the ledger on every read

SECURITY:
- Actor comes from X-Actor-Id / X-Actor-Role (require_auth)
- Each action requires its own permission (see app/permissions)
- Every change is recorded in the booking event trail with the actor
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import BookingError
from ..services import booking_service, ledger_service
from ..validation import FieldErrors, read_date, read_time
from ..decorators import require_auth, require_permission


bookings_bp = Blueprint("bookings", __name__, url_prefix="/api/bookings")


def _json_body() -> dict:
    return request.get_json(silent=True) or {}


def _booking_response(booking, status: int = 200):
    summary = ledger_service.get_payment_status(booking.id)
    return jsonify({
        "booking": booking.to_dict(),
        "payment": summary.to_dict(include_transactions=False),
    }), status


# =============================================================================
# INTAKE
# =============================================================================

@bookings_bp.post("")
@require_auth
@require_permission("CREATE_BOOKING")
def create_booking_route():
    """
    Create a booking request.

    Request body:
    {
        "customer_id": 1,
        "photographer_id": 2,            (optional)
        "package_id": 3,                 (either package_id ...)
        "services": [                    (... or services)
            {"service_id": 4, "quantity": 1, "duration_minutes": 60}
        ],
        "booking_date": "2026-11-02",
        "start_time": "10:00",
        "end_time": "11:30",             (optional)
        "session_duration_minutes": 90,  (optional)
        "location": "Studio A, 12 Main St",
        "promo_code": "EARLY10"          (optional)
    }

    Returns:
        201: Booking created (PENDING)
        400: Validation or business rule failure
        404: Referenced customer / photographer / package / service / promo missing
        409: Slot taken or promo exhausted by a concurrent request
    """
    try:
        booking = booking_service.create_booking(_json_body(), g.actor_id)
        return _booking_response(booking, 201)
    except BookingError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create booking")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# QUERIES
# =============================================================================

@bookings_bp.get("/<int:booking_id>")
@require_auth
@require_permission("VIEW_BOOKING")
def get_booking_route(booking_id: int):
    try:
        booking = booking_service.get_booking(booking_id)
        return _booking_response(booking)
    except BookingError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load booking")
        return jsonify({"error": "Internal server error"}), 500


@bookings_bp.get("/reference/<string:reference>")
@require_auth
@require_permission("VIEW_BOOKING")
def get_booking_by_reference_route(reference: str):
    try:
        booking = booking_service.get_booking_by_reference(reference)
        return _booking_response(booking)
    except BookingError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load booking by reference")
        return jsonify({"error": "Internal server error"}), 500


@bookings_bp.get("/customer/<int:customer_id>")
@require_auth
@require_permission("VIEW_BOOKING")
def list_customer_bookings_route(customer_id: int):
    """
    Bookings of one customer, newest booking date first.

    Query params:
    - include_inactive: Include soft-deleted bookings (default: false)
    """
    try:
        include_inactive = request.args.get("include_inactive", "false").lower() == "true"
        bookings = booking_service.list_customer_bookings(customer_id, include_inactive=include_inactive)
        return jsonify({"bookings": [b.to_dict(include_lines=False) for b in bookings]}), 200
    except Exception:
        current_app.logger.exception("Failed to list customer bookings")
        return jsonify({"error": "Internal server error"}), 500


@bookings_bp.get("/<int:booking_id>/payment-status")
@require_auth
@require_permission("VIEW_PAYMENTS")
def payment_status_route(booking_id: int):
    """
    Payment summary computed from the booking's transactions.

    Returns amounts paid / refunded / remaining, completeness flags, the
    payment scenario and the transaction list.
    """
    try:
        summary = ledger_service.get_payment_status(booking_id)
        return jsonify({"booking_id": booking_id, **summary.to_dict()}), 200
    except BookingError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to compute payment status")
        return jsonify({"error": "Internal server error"}), 500


@bookings_bp.get("/<int:booking_id>/events")
@require_auth
@require_permission("VIEW_BOOKING")
def booking_events_route(booking_id: int):
    try:
        events = booking_service.list_booking_events(booking_id)
        return jsonify({"booking_id": booking_id, "events": [e.to_dict() for e in events]}), 200
    except BookingError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list booking events")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# LIFECYCLE
# =============================================================================

def _run_transition(operation, booking_id: int, *args, **kwargs):
    try:
        booking = operation(booking_id, *args, g.actor_id, **kwargs)
        return _booking_response(booking)
    except BookingError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update booking %s", booking_id)
        return jsonify({"error": "Internal server error"}), 500


@bookings_bp.patch("/<int:booking_id>/confirm")
@require_auth
@require_permission("CONFIRM_BOOKING")
def confirm_booking_route(booking_id: int):
    """PENDING -> CONFIRMED. The session must still be in the future."""
    return _run_transition(booking_service.confirm_booking, booking_id)


@bookings_bp.patch("/<int:booking_id>/start")
@require_auth
@require_permission("START_BOOKING")
def start_booking_route(booking_id: int):
    """CONFIRMED / RESCHEDULED -> ONGOING, only on the booking date."""
    return _run_transition(booking_service.start_booking, booking_id)


@bookings_bp.patch("/<int:booking_id>/complete")
@require_auth
@require_permission("COMPLETE_BOOKING")
def complete_booking_route(booking_id: int):
    """-> COMPLETED. Requires the booking to be fully paid."""
    return _run_transition(booking_service.complete_booking, booking_id)


@bookings_bp.patch("/<int:booking_id>/cancel")
@require_auth
@require_permission("CANCEL_BOOKING")
def cancel_booking_route(booking_id: int):
    """
    Cancel a booking.

    Request body:
    {
        "reason": "Client moved abroad"   (5-200 characters)
    }
    """
    data = _json_body()
    if not isinstance(data, dict):
        return jsonify({"error": "Invalid JSON payload"}), 400
    reason = data.get("reason")
    if reason is not None and not isinstance(reason, str):
        return jsonify({"error": "reason must be a string"}), 400
    return _run_transition(booking_service.cancel_booking, booking_id, reason)


@bookings_bp.patch("/<int:booking_id>/reschedule")
@require_auth
@require_permission("RESCHEDULE_BOOKING")
def reschedule_booking_route(booking_id: int):
    """
    Move a booking to a new date (and optionally a new start time).

    Request body:
    {
        "new_date": "2026-11-09",
        "start_time": "14:00"   (optional, keeps the current start time)
    }
    """
    data = _json_body()
    if not isinstance(data, dict):
        return jsonify({"error": "Invalid JSON payload"}), 400
    errors = FieldErrors()
    new_date = read_date(data, "new_date", errors, required=True)
    new_start = read_time(data, "start_time", errors)
    try:
        errors.raise_if_any("Invalid reschedule request")
    except BookingError as e:
        return jsonify(e.to_dict()), e.status_code
    return _run_transition(
        booking_service.reschedule_booking, booking_id, new_date, new_start_minute=new_start
    )


# =============================================================================
# SOFT DELETE
# =============================================================================

@bookings_bp.delete("/<int:booking_id>")
@require_auth
@require_permission("DELETE_BOOKING")
def delete_booking_route(booking_id: int):
    """Soft delete; the booking stops occupying the photographer's time."""
    try:
        booking = booking_service.deactivate_booking(booking_id, g.actor_id)
        return jsonify({"booking": booking.to_dict(include_lines=False)}), 200
    except BookingError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete booking")
        return jsonify({"error": "Internal server error"}), 500


@bookings_bp.post("/<int:booking_id>/restore")
@require_auth
@require_permission("DELETE_BOOKING")
def restore_booking_route(booking_id: int):
    try:
        booking = booking_service.restore_booking(booking_id, g.actor_id)
        return jsonify({"booking": booking.to_dict(include_lines=False)}), 200
    except BookingError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to restore booking")
        return jsonify({"error": "Internal server error"}), 500
