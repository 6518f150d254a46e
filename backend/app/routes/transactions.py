# Overview: Flask API routes for payment transactions; parses input and returns JSON responses.

# backend/app/routes/transactions.py
"""
Transaction API Routes

WHY: Record payments and refunds against bookings via REST.

DESIGN:
- CASH payments complete immediately; ELECTRONIC payments wait for staff
  verification (approve / reject)
- Refunds are created against the original transaction
- Every response carries the booking's recomputed payment summary

SECURITY:
- RECORD_PAYMENT to record, VERIFY_PAYMENT to approve / reject
- ISSUE_REFUND to refund, CANCEL_PAYMENT to withdraw a pending transaction
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import BookingError
from ..services import ledger_service, payment_service
from ..decorators import require_auth, require_permission


transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/transactions")


def _json_body() -> dict:
    return request.get_json(silent=True) or {}


def _transaction_response(txn, status: int = 200):
    summary = ledger_service.get_payment_status(txn.booking_id)
    return jsonify({
        "transaction": txn.to_dict(),
        "summary": summary.to_dict(include_transactions=False),
    }), status


# =============================================================================
# PAYMENT CREATION
# =============================================================================

@transactions_bp.post("")
@require_auth
@require_permission("RECORD_PAYMENT")
def record_transaction_route():
    """
    Record a payment against a booking.

    Request body:
    {
        "booking_id": 123,
        "payment_method": "CASH" | "ELECTRONIC",
        "amount_cents": 50000,
        "transaction_type": "PARTIAL",        (optional; derived when omitted)
        "reference_number": "GC-2026-88812",  (required for ELECTRONIC)
        "receipt_url": "https://...",         (optional)
        "notes": "Deposit"                    (optional)
    }

    Returns:
        201: Transaction recorded (COMPLETED for cash, PENDING otherwise)
        400: Invalid input, or amount exceeds the remaining balance
        404: Booking not found
    """
    try:
        txn = payment_service.record_transaction(_json_body(), g.actor_id)
        return _transaction_response(txn, 201)
    except BookingError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record transaction")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# QUERIES
# =============================================================================

@transactions_bp.get("/<int:txn_id>")
@require_auth
@require_permission("VIEW_PAYMENTS")
def get_transaction_route(txn_id: int):
    try:
        txn = payment_service.get_transaction(txn_id)
        return jsonify({"transaction": txn.to_dict()}), 200
    except BookingError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load transaction")
        return jsonify({"error": "Internal server error"}), 500


@transactions_bp.get("/bookings/<int:booking_id>/summary")
@require_auth
@require_permission("VIEW_PAYMENTS")
def transaction_summary_route(booking_id: int):
    """Ledger figures plus counts and totals per transaction status."""
    try:
        return jsonify(payment_service.transaction_summary(booking_id)), 200
    except BookingError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to summarize transactions")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# PENDING RESOLUTION
# =============================================================================

@transactions_bp.patch("/<int:txn_id>/approve")
@require_auth
@require_permission("VERIFY_PAYMENT")
def approve_transaction_route(txn_id: int):
    """PENDING -> COMPLETED after the electronic reference has been verified."""
    try:
        txn = payment_service.approve_transaction(txn_id, g.actor_id)
        return _transaction_response(txn)
    except BookingError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to approve transaction")
        return jsonify({"error": "Internal server error"}), 500


@transactions_bp.patch("/<int:txn_id>/reject")
@require_auth
@require_permission("VERIFY_PAYMENT")
def reject_transaction_route(txn_id: int):
    """
    PENDING -> FAILED.

    Request body:
    {
        "reason": "Reference number not found"   (5-200 characters)
    }
    """
    try:
        data = _json_body()
        if not isinstance(data, dict):
            return jsonify({"error": "Invalid JSON payload"}), 400
        reason = data.get("reason")
        if reason is not None and not isinstance(reason, str):
            return jsonify({"error": "reason must be a string"}), 400
        txn = payment_service.reject_transaction(txn_id, reason, g.actor_id)
        return _transaction_response(txn)
    except BookingError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to reject transaction")
        return jsonify({"error": "Internal server error"}), 500


@transactions_bp.patch("/<int:txn_id>/cancel")
@require_auth
@require_permission("CANCEL_PAYMENT")
def cancel_transaction_route(txn_id: int):
    try:
        txn = payment_service.cancel_transaction(txn_id, g.actor_id)
        return _transaction_response(txn)
    except BookingError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to cancel transaction")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# REFUNDS
# =============================================================================

@transactions_bp.post("/<int:txn_id>/refund")
@require_auth
@require_permission("ISSUE_REFUND")
def refund_transaction_route(txn_id: int):
    """
    Refund a completed payment.

    Request body:
    {
        "reason": "Session cancelled by studio",   (5-200 characters)
        "amount_cents": 30000,                     (optional; defaults to the full amount)
        "payment_method": "CASH",                  (optional; must match the original)
        "reference_number": "GC-REF-1",            (required for ELECTRONIC)
        "notes": "..."                             (optional)
    }

    Returns:
        201: Refund recorded
        400: Invalid input or refund not allowed
        404: Transaction not found
    """
    try:
        refund = payment_service.refund_transaction(txn_id, _json_body(), g.actor_id)
        return _transaction_response(refund, 201)
    except BookingError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to refund transaction")
        return jsonify({"error": "Internal server error"}), 500


@transactions_bp.delete("/<int:txn_id>")
@require_auth
@require_permission("CANCEL_PAYMENT")
def delete_transaction_route(txn_id: int):
    """Soft delete a transaction that never moved money."""
    try:
        txn = payment_service.deactivate_transaction(txn_id, g.actor_id)
        return jsonify({"transaction": txn.to_dict()}), 200
    except BookingError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete transaction")
        return jsonify({"error": "Internal server error"}), 500
