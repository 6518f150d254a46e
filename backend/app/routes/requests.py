# Overview: Flask API routes for customer change and refund requests; parses input and returns JSON responses.

# backend/app/routes/requests.py
"""
Customer Request API Routes

WHY: Customers file cancellation, reschedule and refund requests; staff
review them. Approval runs the booking transition or the refund.

DESIGN:
- /api/booking-requests for CANCELLATION / RESCHEDULE requests
- /api/refund-requests for refund requests against completed payments
- Reviewers list every request; everyone else only sees the requests they
  filed

SECURITY:
- SUBMIT_REQUEST to file or withdraw, VIEW_REQUESTS to read
- REVIEW_REQUESTS to list all, approve or reject
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import BookingError, ForbiddenError, ValidationError
from ..permissions import role_has_permission
from ..services import request_service
from ..decorators import require_auth, require_permission


booking_requests_bp = Blueprint("booking_requests", __name__, url_prefix="/api/booking-requests")
refund_requests_bp = Blueprint("refund_requests", __name__, url_prefix="/api/refund-requests")


def _json_object() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    return data


def _is_reviewer() -> bool:
    return role_has_permission(g.actor_role, "REVIEW_REQUESTS")


def _ensure_visible(req) -> None:
    if not _is_reviewer() and req.created_by != g.actor_id:
        raise ForbiddenError("You can only view your own requests")


def _request_response(req, status: int = 200):
    return jsonify({"request": req.to_dict()}), status


def _run(operation, failure_message: str, status: int = 200):
    try:
        return _request_response(operation(), status)
    except BookingError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception(failure_message)
        return jsonify({"error": "Internal server error"}), 500


def _list(lister, failure_message: str):
    try:
        created_by = None if _is_reviewer() else g.actor_id
        requests = lister(request.args.to_dict(), created_by=created_by)
        return jsonify({"requests": [r.to_dict() for r in requests], "count": len(requests)}), 200
    except BookingError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception(failure_message)
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# BOOKING CHANGE REQUESTS
# =============================================================================

@booking_requests_bp.post("")
@require_auth
@require_permission("SUBMIT_REQUEST")
def create_change_request_route():
    """
    File a cancellation or reschedule request.

    Request body:
    {
        "booking_id": 123,
        "request_type": "CANCELLATION" | "RESCHEDULE",
        "reason": "Family emergency",          (5-500 characters)
        "new_booking_date": "2026-11-09",      (RESCHEDULE only, required)
        "new_start_time": "14:00"              (RESCHEDULE only, optional)
    }
    """
    return _run(
        lambda: request_service.create_change_request(_json_object(), g.actor_id),
        "Failed to create booking request",
        201,
    )


@booking_requests_bp.get("")
@require_auth
@require_permission("VIEW_REQUESTS")
def list_change_requests_route():
    """
    List booking requests, newest first.

    Query params: status, request_type, booking_id, customer_id
    """
    return _list(request_service.list_change_requests, "Failed to list booking requests")


@booking_requests_bp.get("/<int:request_id>")
@require_auth
@require_permission("VIEW_REQUESTS")
def get_change_request_route(request_id: int):
    def _get():
        req = request_service.get_change_request(request_id)
        _ensure_visible(req)
        return req

    return _run(_get, "Failed to get booking request")


@booking_requests_bp.patch("/<int:request_id>/approve")
@require_auth
@require_permission("REVIEW_REQUESTS")
def approve_change_request_route(request_id: int):
    """
    Approve and apply: cancels or reschedules the booking.

    Request body (optional):
    {
        "admin_notes": "Approved per policy"   (up to 1000 characters)
    }
    """
    def _approve():
        data = _json_object()
        return request_service.approve_change_request(
            request_id, g.actor_id, admin_notes=data.get("admin_notes")
        )

    return _run(_approve, "Failed to approve booking request")


@booking_requests_bp.patch("/<int:request_id>/reject")
@require_auth
@require_permission("REVIEW_REQUESTS")
def reject_change_request_route(request_id: int):
    """
    Request body:
    {
        "rejection_reason": "Inside the 48 hour window",   (5-500 characters)
        "admin_notes": "..."                               (optional)
    }
    """
    def _reject():
        data = _json_object()
        return request_service.reject_change_request(
            request_id, data.get("rejection_reason"), g.actor_id, admin_notes=data.get("admin_notes")
        )

    return _run(_reject, "Failed to reject booking request")


@booking_requests_bp.delete("/<int:request_id>")
@require_auth
@require_permission("SUBMIT_REQUEST")
def withdraw_change_request_route(request_id: int):
    """Withdraw a pending request. Only reviewers may withdraw someone else's."""
    return _run(
        lambda: request_service.withdraw_change_request(request_id, g.actor_id, owner_only=not _is_reviewer()),
        "Failed to withdraw booking request",
    )


# =============================================================================
# REFUND REQUESTS
# =============================================================================

@refund_requests_bp.post("")
@require_auth
@require_permission("SUBMIT_REQUEST")
def create_refund_request_route():
    """
    Ask for a refund of a completed payment.

    Request body:
    {
        "transaction_id": 456,
        "amount_cents": 30000,        (optional; defaults to the full payment)
        "reason": "Session was cut short"   (5-500 characters)
    }
    """
    return _run(
        lambda: request_service.create_refund_request(_json_object(), g.actor_id),
        "Failed to create refund request",
        201,
    )


@refund_requests_bp.get("")
@require_auth
@require_permission("VIEW_REQUESTS")
def list_refund_requests_route():
    """Query params: status, transaction_id, customer_id"""
    return _list(request_service.list_refund_requests, "Failed to list refund requests")


@refund_requests_bp.get("/<int:request_id>")
@require_auth
@require_permission("VIEW_REQUESTS")
def get_refund_request_route(request_id: int):
    def _get():
        req = request_service.get_refund_request(request_id)
        _ensure_visible(req)
        return req

    return _run(_get, "Failed to get refund request")


@refund_requests_bp.patch("/<int:request_id>/approve")
@require_auth
@require_permission("REVIEW_REQUESTS")
def approve_refund_request_route(request_id: int):
    """
    Approve and issue the refund.

    Request body (optional):
    {
        "admin_notes": "...",
        "reference_number": "GC-REF-1234"   (required when the payment was ELECTRONIC)
    }
    """
    def _approve():
        data = _json_object()
        return request_service.approve_refund_request(
            request_id,
            g.actor_id,
            admin_notes=data.get("admin_notes"),
            reference_number=data.get("reference_number"),
        )

    return _run(_approve, "Failed to approve refund request")


@refund_requests_bp.patch("/<int:request_id>/reject")
@require_auth
@require_permission("REVIEW_REQUESTS")
def reject_refund_request_route(request_id: int):
    def _reject():
        data = _json_object()
        return request_service.reject_refund_request(
            request_id, data.get("rejection_reason"), g.actor_id, admin_notes=data.get("admin_notes")
        )

    return _run(_reject, "Failed to reject refund request")


@refund_requests_bp.delete("/<int:request_id>")
@require_auth
@require_permission("SUBMIT_REQUEST")
def withdraw_refund_request_route(request_id: int):
    return _run(
        lambda: request_service.withdraw_refund_request(request_id, g.actor_id, owner_only=not _is_reviewer()),
        "Failed to withdraw refund request",
    )
