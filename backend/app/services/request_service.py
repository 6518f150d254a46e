# Overview: Service-layer operations for customer change and refund requests; encapsulates review rules and database work.

"""
Request Service

WHY: Customers do not cancel, move or refund on their own. They file a
request with a reason and staff review it. Filing changes nothing on the
booking or the ledger; only an approval does.

DESIGN PRINCIPLES:
- Change requests (CANCELLATION, RESCHEDULE) point at a booking; refund
  requests point at a completed payment
- At most one PENDING request per booking and type, and per transaction
- Approval runs the normal lifecycle path (booking_service.transition_booking
  or payment_service.refund_transaction) and marks the request APPROVED in
  the same commit. If the transition or refund fails, the request stays
  PENDING and can still be rejected
- Rejection records reviewer, time, notes and reason
- Withdrawal soft-deletes a PENDING request; customers may only withdraw
  requests they filed

LIFECYCLE:
    PENDING -> APPROVED | REJECTED
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from flask import current_app, has_app_context

from ..models import BookingChangeRequest, RefundRequest
from app.errors import (
    ForbiddenError,
    NotFoundError,
    RefundNotAllowedError,
    RequestNotAllowedError,
    ValidationError,
)
from app.stores import StaleWriteError, get_stores
from app.time_utils import format_hhmm, parse_hhmm, to_business_time, utcnow
from app.validation import FieldErrors, read_amount, read_date, read_int, read_str, read_time, require_choice
from . import booking_service, payment_service
from .booking_state import (
    BOOKING_STATUS_CONFIRMED,
    BOOKING_STATUS_PENDING,
    BOOKING_STATUS_RESCHEDULED,
    CANCEL_REASON_MAX_LENGTH,
    TERMINAL_STATUSES,
    Cancel,
    Reschedule,
)
from .concurrency import run_with_retry
from .ledger_service import PAYMENT_LIKE_TYPES, TXN_STATUS_COMPLETED
from .money import format_cents
from .references import CHANGE_REQUEST_PREFIX, REFUND_REQUEST_PREFIX, generate_unique_reference


REQUEST_TYPE_CANCELLATION = "CANCELLATION"
REQUEST_TYPE_RESCHEDULE = "RESCHEDULE"
VALID_REQUEST_TYPES = {REQUEST_TYPE_CANCELLATION, REQUEST_TYPE_RESCHEDULE}

REQUEST_STATUS_PENDING = "PENDING"
REQUEST_STATUS_APPROVED = "APPROVED"
REQUEST_STATUS_REJECTED = "REJECTED"
VALID_REQUEST_STATUSES = {REQUEST_STATUS_PENDING, REQUEST_STATUS_APPROVED, REQUEST_STATUS_REJECTED}

RESCHEDULABLE_STATUSES = {BOOKING_STATUS_PENDING, BOOKING_STATUS_CONFIRMED, BOOKING_STATUS_RESCHEDULED}

EVENT_CHANGE_REQUESTED = "CHANGE_REQUESTED"
EVENT_REFUND_REQUESTED = "REFUND_REQUESTED"
EVENT_REQUEST_REJECTED = "REQUEST_REJECTED"
EVENT_REQUEST_WITHDRAWN = "REQUEST_WITHDRAWN"

REASON_MIN = 5
REASON_MAX = 500
NOTES_MAX = 1000


def _log(level: str, message: str, *args) -> None:
    if has_app_context():
        getattr(current_app.logger, level)(message, *args)


def _reference_attempts() -> int:
    if has_app_context():
        return current_app.config.get("REFERENCE_MAX_ATTEMPTS", 10)
    return 10


def _commit(stores) -> None:
    try:
        stores.commit()
    except StaleWriteError:
        raise RequestNotAllowedError("Request changed while this request was processing; reload and try again")


def _lock_booking(booking_id: int, stores):
    """Serialize request writers on the booking, then read it."""
    if not stores.bookings.lock(booking_id):
        raise NotFoundError(f"Booking {booking_id} not found")
    booking = stores.bookings.get(booking_id, for_update=True)
    if booking is None or not booking.is_active:
        raise NotFoundError(f"Booking {booking_id} not found")
    return booking


def _load_pending(store, request_id: int, label: str, *, for_update: bool = True):
    request = store.get(request_id, for_update=for_update)
    if request is None or not request.is_active:
        raise NotFoundError(f"{label} {request_id} not found")
    if request.status != REQUEST_STATUS_PENDING:
        raise RequestNotAllowedError(
            f"Only pending requests can change (status is {request.status})",
            details={"status": request.status},
        )
    return request


def _read_notes(admin_notes) -> Optional[str]:
    errors = FieldErrors()
    notes = read_str({"admin_notes": admin_notes}, "admin_notes", errors, max_length=NOTES_MAX)
    errors.raise_if_any("Invalid review")
    return notes


def _read_rejection(rejection_reason, admin_notes) -> tuple[str, Optional[str]]:
    payload = {"rejection_reason": rejection_reason, "admin_notes": admin_notes}
    errors = FieldErrors()
    reason = read_str(payload, "rejection_reason", errors, required=True, min_length=REASON_MIN, max_length=REASON_MAX)
    notes = read_str(payload, "admin_notes", errors, max_length=NOTES_MAX)
    errors.raise_if_any("Invalid rejection")
    return reason, notes


def _stamp_review(request, status: str, actor_id: Optional[str], now: datetime, notes: Optional[str]) -> None:
    request.status = status
    request.reviewed_by = actor_id
    request.reviewed_at = now
    request.admin_notes = notes
    request.touch(actor_id, now)


def _clip(text: str, limit: int) -> str:
    return text[:limit].rstrip()


def _read_filters(args: dict, fields: dict) -> dict:
    """Validate list filters; fields maps name -> 'int' or a set of choices."""
    errors = FieldErrors()
    filters = {}
    for name, kind in fields.items():
        if kind == "int":
            filters[name] = read_int(args, name, errors, minimum=1)
        else:
            filters[name] = require_choice(read_str(args, name, errors), name, kind, errors)
    errors.raise_if_any("Invalid request filters")
    return filters


# =============================================================================
# CHANGE REQUESTS (CANCELLATION / RESCHEDULE)
# =============================================================================

def _parse_change_request(payload: dict) -> dict:
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    errors = FieldErrors()
    booking_id = read_int(payload, "booking_id", errors, required=True, minimum=1)
    request_type = require_choice(
        read_str(payload, "request_type", errors, required=True), "request_type", VALID_REQUEST_TYPES, errors
    )
    reason = read_str(payload, "reason", errors, required=True, min_length=REASON_MIN, max_length=REASON_MAX)
    new_date = read_date(payload, "new_booking_date", errors, required=request_type == REQUEST_TYPE_RESCHEDULE)
    new_start = read_time(payload, "new_start_time", errors)
    if request_type == REQUEST_TYPE_CANCELLATION:
        if new_date is not None:
            errors.add("new_booking_date", "only applies to reschedule requests")
        if new_start is not None:
            errors.add("new_start_time", "only applies to reschedule requests")
    errors.raise_if_any("Invalid booking request")

    return {
        "booking_id": booking_id,
        "request_type": request_type,
        "reason": reason,
        "new_booking_date": new_date,
        "new_start_minute": new_start,
    }


def _ensure_changeable(booking, request_type: str) -> None:
    if request_type == REQUEST_TYPE_CANCELLATION and booking.status in TERMINAL_STATUSES:
        raise RequestNotAllowedError(
            f"Cannot request cancellation of a booking that is {booking.status.lower()}",
            details={"status": booking.status},
        )
    if request_type == REQUEST_TYPE_RESCHEDULE and booking.status not in RESCHEDULABLE_STATUSES:
        raise RequestNotAllowedError(
            f"Only pending, confirmed or rescheduled bookings can be rescheduled (status is {booking.status})",
            details={"status": booking.status},
        )


def create_change_request(
    payload: dict,
    actor_id: Optional[str],
    *,
    stores=None,
    now: Optional[datetime] = None,
) -> BookingChangeRequest:
    """
    File a cancellation or reschedule request for a booking.

    Request body:
        booking_id, request_type (CANCELLATION | RESCHEDULE), reason (5-500),
        new_booking_date and optional new_start_time for RESCHEDULE

    Raises:
        ValidationError: malformed input or a reschedule date in the past
        NotFoundError: booking missing or deactivated
        RequestNotAllowedError: booking state does not allow it, or a
            request of the same type is already pending
    """
    stores = stores or get_stores()
    now = now or utcnow()
    fields = _parse_change_request(payload)
    request_type = fields["request_type"]

    if request_type == REQUEST_TYPE_RESCHEDULE and fields["new_booking_date"] < to_business_time(now).date():
        raise ValidationError(
            "Reschedule date cannot be in the past",
            details={"new_booking_date": "cannot be in the past"},
        )

    def _op() -> BookingChangeRequest:
        booking = _lock_booking(fields["booking_id"], stores)
        _ensure_changeable(booking, request_type)

        existing = stores.change_requests.find_pending(booking.id, request_type)
        if existing is not None:
            raise RequestNotAllowedError(
                f"Booking already has a pending {request_type.lower()} request ({existing.request_reference})"
            )

        new_start = fields["new_start_minute"]
        request = BookingChangeRequest(
            request_reference=generate_unique_reference(
                CHANGE_REQUEST_PREFIX, stores.change_requests.reference_exists, attempts=_reference_attempts()
            ),
            booking_id=booking.id,
            customer_id=booking.customer_id,
            request_type=request_type,
            status=REQUEST_STATUS_PENDING,
            reason=fields["reason"],
            new_booking_date=fields["new_booking_date"],
            new_start_time=format_hhmm(new_start) if new_start is not None else None,
        )
        request.stamp_created(actor_id, now)
        stores.change_requests.add(request)
        stores.flush()

        stores.bookings.append_event(
            booking,
            EVENT_CHANGE_REQUESTED,
            actor_id=actor_id,
            note=f"{request.request_reference} {request_type}",
            occurred_at=now,
        )
        _commit(stores)
        return request

    request = run_with_retry(_op, rollback=stores.rollback)
    _log("info", "Change request %s (%s) filed for booking %s by %s",
         request.request_reference, request_type, request.booking_id, actor_id)
    return request


def approve_change_request(
    request_id: int,
    actor_id: Optional[str],
    *,
    admin_notes: Optional[str] = None,
    stores=None,
    now: Optional[datetime] = None,
) -> BookingChangeRequest:
    """
    Approve a pending change request by running the cancel or reschedule
    transition. The request flips to APPROVED in the transition's commit.

    Raises whatever the transition raises (InvalidTransitionError,
    SlotUnavailableError, StaleBookingError, ...); the request then stays
    PENDING.
    """
    stores = stores or get_stores()
    now = now or utcnow()
    notes = _read_notes(admin_notes)

    request = _load_pending(stores.change_requests, request_id, "Booking request", for_update=False)
    if request.request_type == REQUEST_TYPE_CANCELLATION:
        action = Cancel(reason=_clip(request.reason, CANCEL_REASON_MAX_LENGTH))
    else:
        start = parse_hhmm(request.new_start_time) if request.new_start_time else None
        action = Reschedule(new_date=request.new_booking_date, new_start_minute=start)
    booking_id = request.booking_id

    def _mark_approved(booking, transition) -> None:
        current = _load_pending(stores.change_requests, request_id, "Booking request")
        _stamp_review(current, REQUEST_STATUS_APPROVED, actor_id, now, notes)

    booking_service.transition_booking(
        booking_id, action, actor_id, stores=stores, now=now, on_applied=_mark_approved
    )

    request = stores.change_requests.get(request_id)
    _log("info", "Change request %s approved by %s", request.request_reference, actor_id)
    return request


def reject_change_request(
    request_id: int,
    rejection_reason: Optional[str],
    actor_id: Optional[str],
    *,
    admin_notes: Optional[str] = None,
    stores=None,
    now: Optional[datetime] = None,
) -> BookingChangeRequest:
    stores = stores or get_stores()
    now = now or utcnow()
    reason, notes = _read_rejection(rejection_reason, admin_notes)

    def _op() -> BookingChangeRequest:
        request = _load_pending(stores.change_requests, request_id, "Booking request")
        _stamp_review(request, REQUEST_STATUS_REJECTED, actor_id, now, notes)
        request.rejection_reason = reason
        stores.bookings.append_event(
            stores.bookings.get(request.booking_id),
            EVENT_REQUEST_REJECTED,
            actor_id=actor_id,
            note=f"{request.request_reference}: {reason}",
            occurred_at=now,
        )
        _commit(stores)
        return request

    request = run_with_retry(_op, rollback=stores.rollback)
    _log("info", "Change request %s rejected by %s", request.request_reference, actor_id)
    return request


def withdraw_change_request(
    request_id: int,
    actor_id: Optional[str],
    *,
    owner_only: bool = False,
    stores=None,
    now: Optional[datetime] = None,
) -> BookingChangeRequest:
    """Soft delete a pending request. owner_only limits it to the actor who filed it."""
    stores = stores or get_stores()
    now = now or utcnow()
    return _withdraw(stores.change_requests, request_id, "Booking request", actor_id, owner_only, stores, now)


def get_change_request(request_id: int, *, stores=None) -> BookingChangeRequest:
    stores = stores or get_stores()
    request = stores.change_requests.get(request_id)
    if request is None or not request.is_active:
        raise NotFoundError(f"Booking request {request_id} not found")
    return request


def list_change_requests(args: Optional[dict] = None, *, created_by: Optional[str] = None, stores=None) -> list:
    """Filters: status, request_type, booking_id, customer_id."""
    stores = stores or get_stores()
    filters = _read_filters(args or {}, {
        "status": VALID_REQUEST_STATUSES,
        "request_type": VALID_REQUEST_TYPES,
        "booking_id": "int",
        "customer_id": "int",
    })
    return stores.change_requests.list(created_by=created_by, **filters)


# =============================================================================
# REFUND REQUESTS
# =============================================================================

def _parse_refund_request(payload: dict) -> dict:
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    errors = FieldErrors()
    transaction_id = read_int(payload, "transaction_id", errors, required=True, minimum=1)
    amount = read_amount(payload, "amount_cents", errors, positive=True)
    reason = read_str(payload, "reason", errors, required=True, min_length=REASON_MIN, max_length=REASON_MAX)
    errors.raise_if_any("Invalid refund request")
    return {"transaction_id": transaction_id, "amount_cents": amount, "reason": reason}


def create_refund_request(
    payload: dict,
    actor_id: Optional[str],
    *,
    stores=None,
    now: Optional[datetime] = None,
) -> RefundRequest:
    """
    Ask for (part of) a completed payment back.

    Amount defaults to the full payment amount.

    Raises:
        ValidationError: malformed input
        NotFoundError: transaction or its booking missing
        RefundNotAllowedError: not a completed payment, or amount exceeds it
        RequestNotAllowedError: a refund request is already pending for it
    """
    stores = stores or get_stores()
    now = now or utcnow()
    fields = _parse_refund_request(payload)
    txn_id = fields["transaction_id"]

    def _op() -> RefundRequest:
        txn = stores.transactions.get(txn_id)
        if txn is None or not txn.is_active:
            raise NotFoundError(f"Transaction {txn_id} not found")
        booking = _lock_booking(txn.booking_id, stores)
        txn = stores.transactions.get(txn_id, for_update=True)

        if txn.transaction_type not in PAYMENT_LIKE_TYPES:
            raise RefundNotAllowedError("Only payments can be refunded")
        if txn.status != TXN_STATUS_COMPLETED:
            raise RefundNotAllowedError(
                f"Cannot request a refund for a transaction that is {txn.status.lower()}",
                details={"status": txn.status},
            )
        amount = fields["amount_cents"] or txn.amount_cents
        if amount > txn.amount_cents:
            raise RefundNotAllowedError(
                f"Refund of {format_cents(amount)} exceeds the original {format_cents(txn.amount_cents)}",
                details={"amount_cents": amount, "original_amount_cents": txn.amount_cents},
            )

        existing = stores.refund_requests.find_pending(txn.id)
        if existing is not None:
            raise RequestNotAllowedError(
                f"Transaction already has a pending refund request ({existing.request_reference})"
            )

        request = RefundRequest(
            request_reference=generate_unique_reference(
                REFUND_REQUEST_PREFIX, stores.refund_requests.reference_exists, attempts=_reference_attempts()
            ),
            transaction_id=txn.id,
            booking_id=booking.id,
            customer_id=booking.customer_id,
            status=REQUEST_STATUS_PENDING,
            amount_cents=amount,
            reason=fields["reason"],
        )
        request.stamp_created(actor_id, now)
        stores.refund_requests.add(request)
        stores.flush()

        stores.bookings.append_event(
            booking,
            EVENT_REFUND_REQUESTED,
            actor_id=actor_id,
            transaction_id=txn.id,
            note=f"{request.request_reference} {format_cents(amount)}",
            occurred_at=now,
        )
        _commit(stores)
        return request

    request = run_with_retry(_op, rollback=stores.rollback)
    _log("info", "Refund request %s for %s against transaction %s",
         request.request_reference, format_cents(request.amount_cents), txn_id)
    return request


def approve_refund_request(
    request_id: int,
    actor_id: Optional[str],
    *,
    admin_notes: Optional[str] = None,
    reference_number: Optional[str] = None,
    stores=None,
    now: Optional[datetime] = None,
) -> RefundRequest:
    """
    Approve a pending refund request by issuing the refund.

    Electronic payments need the refund's reference_number; the refund then
    waits for verification like any other electronic refund.
    """
    stores = stores or get_stores()
    now = now or utcnow()
    notes = _read_notes(admin_notes)

    request = _load_pending(stores.refund_requests, request_id, "Refund request", for_update=False)
    refund_payload = {
        "amount_cents": request.amount_cents,
        "reason": _clip(request.reason, payment_service.REASON_MAX),
        "reference_number": reference_number,
        "notes": f"Refund request {request.request_reference}",
    }
    txn_id = request.transaction_id

    def _mark_approved(refund) -> None:
        current = _load_pending(stores.refund_requests, request_id, "Refund request")
        _stamp_review(current, REQUEST_STATUS_APPROVED, actor_id, now, notes)
        current.refund_transaction_id = refund.id

    payment_service.refund_transaction(
        txn_id, refund_payload, actor_id, stores=stores, now=now, on_recorded=_mark_approved
    )

    request = stores.refund_requests.get(request_id)
    _log("info", "Refund request %s approved by %s", request.request_reference, actor_id)
    return request


def reject_refund_request(
    request_id: int,
    rejection_reason: Optional[str],
    actor_id: Optional[str],
    *,
    admin_notes: Optional[str] = None,
    stores=None,
    now: Optional[datetime] = None,
) -> RefundRequest:
    stores = stores or get_stores()
    now = now or utcnow()
    reason, notes = _read_rejection(rejection_reason, admin_notes)

    def _op() -> RefundRequest:
        request = _load_pending(stores.refund_requests, request_id, "Refund request")
        _stamp_review(request, REQUEST_STATUS_REJECTED, actor_id, now, notes)
        request.rejection_reason = reason
        stores.bookings.append_event(
            stores.bookings.get(request.booking_id),
            EVENT_REQUEST_REJECTED,
            actor_id=actor_id,
            transaction_id=request.transaction_id,
            note=f"{request.request_reference}: {reason}",
            occurred_at=now,
        )
        _commit(stores)
        return request

    request = run_with_retry(_op, rollback=stores.rollback)
    _log("info", "Refund request %s rejected by %s", request.request_reference, actor_id)
    return request


def withdraw_refund_request(
    request_id: int,
    actor_id: Optional[str],
    *,
    owner_only: bool = False,
    stores=None,
    now: Optional[datetime] = None,
) -> RefundRequest:
    stores = stores or get_stores()
    now = now or utcnow()
    return _withdraw(stores.refund_requests, request_id, "Refund request", actor_id, owner_only, stores, now)


def get_refund_request(request_id: int, *, stores=None) -> RefundRequest:
    stores = stores or get_stores()
    request = stores.refund_requests.get(request_id)
    if request is None or not request.is_active:
        raise NotFoundError(f"Refund request {request_id} not found")
    return request


def list_refund_requests(args: Optional[dict] = None, *, created_by: Optional[str] = None, stores=None) -> list:
    """Filters: status, transaction_id, customer_id."""
    stores = stores or get_stores()
    filters = _read_filters(args or {}, {
        "status": VALID_REQUEST_STATUSES,
        "transaction_id": "int",
        "customer_id": "int",
    })
    return stores.refund_requests.list(created_by=created_by, **filters)


# =============================================================================
# WITHDRAWAL
# =============================================================================

def _withdraw(store, request_id: int, label: str, actor_id: Optional[str], owner_only: bool, stores, now: datetime):
    def _op():
        request = _load_pending(store, request_id, label)
        if owner_only and request.created_by != actor_id:
            raise ForbiddenError("You can only withdraw your own requests")
        request.deactivate(actor_id, now)
        stores.bookings.append_event(
            stores.bookings.get(request.booking_id),
            EVENT_REQUEST_WITHDRAWN,
            actor_id=actor_id,
            note=request.request_reference,
            occurred_at=now,
        )
        _commit(stores)
        return request

    request = run_with_retry(_op, rollback=stores.rollback)
    _log("info", "%s %s withdrawn by %s", label, request.request_reference, actor_id)
    return request
