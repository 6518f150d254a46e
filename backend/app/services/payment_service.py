# Overview: Service-layer operations for booking payments and refunds; encapsulates business logic and database work.

"""
Payment Service

WHY: Record money received against a booking (deposits, partial payments,
balances) and money returned (refunds) as immutable transactions. The
booking's paid/remaining amounts are never stored; ledger_service derives
them from these rows.

DESIGN PRINCIPLES:
- Many transactions per booking; each is one financial fact
- CASH completes on creation; ELECTRONIC waits in PENDING for verification
- Acceptance limit: net received + new amount <= booking final amount,
  checked on create and again on approval
- Refunds point at an original payment, use its method and never exceed it;
  a completed refund marks the original REFUNDED and links both ways
- Terminal rows are never edited; corrections are new transactions

CONCURRENCY:
Every write first takes the booking row's write lock (BookingStore.lock), so
two payments against the same booking are checked one after the other and
cannot both squeeze under the limit.
"""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Optional

from flask import current_app, has_app_context

from ..models import Transaction
from app.errors import (
    GuardViolationError,
    NotFoundError,
    PaymentLimitExceededError,
    RefundNotAllowedError,
    ValidationError,
)
from app.stores import StaleWriteError, get_stores
from app.time_utils import utcnow
from app.validation import FieldErrors, read_amount, read_int, read_str, require_choice
from .booking_state import BOOKING_STATUS_CANCELLED
from .concurrency import run_with_retry
from .ledger_service import (
    METHOD_CASH,
    METHOD_ELECTRONIC,
    PAYMENT_LIKE_TYPES,
    TXN_STATUS_CANCELLED,
    TXN_STATUS_COMPLETED,
    TXN_STATUS_FAILED,
    TXN_STATUS_PENDING,
    TXN_STATUS_REFUNDED,
    TXN_TYPE_BALANCE,
    TXN_TYPE_PARTIAL,
    TXN_TYPE_PAYMENT,
    TXN_TYPE_REFUND,
    VALID_METHODS,
    reconcile,
    summarize_by_status,
)
from .money import format_cents
from .references import TRANSACTION_PREFIX, generate_unique_reference


class PaymentError(GuardViolationError):
    """Raised when a transaction cannot move to the requested state."""
    pass


EVENT_PAYMENT_RECORDED = "PAYMENT_RECORDED"
EVENT_PAYMENT_APPROVED = "PAYMENT_APPROVED"
EVENT_PAYMENT_REJECTED = "PAYMENT_REJECTED"
EVENT_PAYMENT_CANCELLED = "PAYMENT_CANCELLED"
EVENT_REFUND_RECORDED = "REFUND_RECORDED"
EVENT_REFUND_COMPLETED = "REFUND_COMPLETED"

REASON_MIN = 5
REASON_MAX = 200

# Refunds in these states still claim part of the original
OPEN_REFUND_STATUSES = {TXN_STATUS_PENDING, TXN_STATUS_COMPLETED}


def _log(level: str, message: str, *args) -> None:
    if has_app_context():
        getattr(current_app.logger, level)(message, *args)


def _reference_attempts() -> int:
    if has_app_context():
        return current_app.config.get("REFERENCE_MAX_ATTEMPTS", 10)
    return 10


def _new_reference(stores) -> str:
    return generate_unique_reference(
        TRANSACTION_PREFIX, stores.transactions.reference_exists, attempts=_reference_attempts()
    )


def _commit(stores) -> None:
    try:
        stores.commit()
    except StaleWriteError:
        raise PaymentError("Transaction changed while this request was processing; reload and try again")


# =============================================================================
# LIMIT CHECKS
# =============================================================================

def _lock_booking(booking_id: int, stores):
    """Serialize payment writers on the booking, then read it."""
    if not stores.bookings.lock(booking_id):
        raise NotFoundError(f"Booking {booking_id} not found")
    booking = stores.bookings.get(booking_id, for_update=True)
    if booking is None or not booking.is_active:
        raise NotFoundError(f"Booking {booking_id} not found")
    return booking


def _ensure_within_limit(booking, amount_cents: int, stores, *, exclude_transaction_id: Optional[int] = None) -> int:
    """Return the net amount already received; raise if amount would overshoot."""
    txns = [
        t for t in stores.transactions.list_for_booking(booking.id)
        if exclude_transaction_id is None or t.id != exclude_transaction_id
    ]
    summary = reconcile(booking.final_amount_cents, booking.status, txns)
    if summary.amount_paid_cents + amount_cents > booking.final_amount_cents:
        remaining = max(0, booking.final_amount_cents - summary.amount_paid_cents)
        raise PaymentLimitExceededError(
            f"Payment of {format_cents(amount_cents)} exceeds the remaining balance of {format_cents(remaining)}",
            details={
                "amount_cents": amount_cents,
                "amount_paid_cents": summary.amount_paid_cents,
                "remaining_balance_cents": remaining,
            },
        )
    return summary.amount_paid_cents


def derive_transaction_type(amount_cents: int, amount_paid_cents: int, final_amount_cents: int) -> str:
    """
    PAYMENT when one transaction settles the whole booking, BALANCE when it
    settles what is left after earlier payments, otherwise PARTIAL.
    """
    remaining = final_amount_cents - amount_paid_cents
    if amount_cents >= remaining:
        return TXN_TYPE_PAYMENT if amount_paid_cents <= 0 else TXN_TYPE_BALANCE
    return TXN_TYPE_PARTIAL


# =============================================================================
# PAYMENT CREATION
# =============================================================================

def _parse_payment(payload: dict) -> dict:
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    errors = FieldErrors()
    booking_id = read_int(payload, "booking_id", errors, required=True, minimum=1)
    amount = read_amount(payload, "amount_cents", errors, required=True, positive=True)
    method = require_choice(
        read_str(payload, "payment_method", errors, required=True), "payment_method", VALID_METHODS, errors
    )
    txn_type = read_str(payload, "transaction_type", errors)
    if txn_type and txn_type.upper() == TXN_TYPE_REFUND:
        errors.add("transaction_type", "refunds are recorded against the original transaction")
        txn_type = None
    txn_type = require_choice(txn_type, "transaction_type", PAYMENT_LIKE_TYPES, errors)
    reference_number = read_str(payload, "reference_number", errors, max_length=64)
    receipt_url = read_str(payload, "receipt_url", errors, max_length=512)
    notes = read_str(payload, "notes", errors, max_length=500)
    if method == METHOD_ELECTRONIC and not reference_number:
        errors.add("reference_number", "is required for electronic payments")

    errors.raise_if_any("Invalid transaction")
    return {
        "booking_id": booking_id,
        "amount_cents": amount,
        "payment_method": method,
        "transaction_type": txn_type,
        "reference_number": reference_number,
        "receipt_url": receipt_url,
        "notes": notes,
    }


def record_transaction(
    payload: dict,
    actor_id: Optional[str],
    *,
    stores=None,
    now: Optional[datetime] = None,
) -> Transaction:
    """
    Record a payment against a booking.

    Raises:
        ValidationError: malformed input
        NotFoundError: booking missing or deactivated
        PaymentError: booking is cancelled
        PaymentLimitExceededError: amount would exceed the booking's final amount
    """
    stores = stores or get_stores()
    now = now or utcnow()
    fields = _parse_payment(payload)

    def _op() -> Transaction:
        booking = _lock_booking(fields["booking_id"], stores)
        if booking.status == BOOKING_STATUS_CANCELLED:
            raise PaymentError("Cannot record a payment for a cancelled booking")

        paid = _ensure_within_limit(booking, fields["amount_cents"], stores)
        txn_type = fields["transaction_type"] or derive_transaction_type(
            fields["amount_cents"], paid, booking.final_amount_cents
        )

        is_cash = fields["payment_method"] == METHOD_CASH
        txn = Transaction(
            transaction_reference=_new_reference(stores),
            booking_id=booking.id,
            transaction_type=txn_type,
            payment_method=fields["payment_method"],
            status=TXN_STATUS_COMPLETED if is_cash else TXN_STATUS_PENDING,
            amount_cents=fields["amount_cents"],
            reference_number=fields["reference_number"],
            receipt_url=fields["receipt_url"],
            notes=fields["notes"],
            payment_date=now if is_cash else None,
        )
        txn.stamp_created(actor_id, now)
        stores.transactions.add(txn)
        stores.flush()
        stores.bookings.append_event(
            booking,
            EVENT_PAYMENT_RECORDED,
            actor_id=actor_id,
            transaction_id=txn.id,
            note=f"{txn_type} {format_cents(txn.amount_cents)} {txn.payment_method} ({txn.status})",
            occurred_at=now,
        )
        _commit(stores)
        return txn

    txn = run_with_retry(_op, rollback=stores.rollback)
    _log("info", "Transaction %s recorded for booking %s: %s %s",
         txn.transaction_reference, txn.booking_id, txn.transaction_type, txn.status)
    return txn


# =============================================================================
# PENDING TRANSACTION RESOLUTION
# =============================================================================

def _load_pending(txn_id: int, stores):
    txn = stores.transactions.get(txn_id)
    if txn is None or not txn.is_active:
        raise NotFoundError(f"Transaction {txn_id} not found")
    booking = _lock_booking(txn.booking_id, stores)
    txn = stores.transactions.get(txn_id, for_update=True)
    if txn.status != TXN_STATUS_PENDING:
        raise PaymentError(f"Only pending transactions can be changed (status is {txn.status})")
    return txn, booking


def _link_refund(refund, original) -> None:
    if original is None or original.status != TXN_STATUS_COMPLETED:
        raise RefundNotAllowedError("The original transaction can no longer be refunded")
    original.status = TXN_STATUS_REFUNDED
    original.refund_transaction_id = refund.id


def approve_transaction(
    txn_id: int,
    actor_id: Optional[str],
    *,
    stores=None,
    now: Optional[datetime] = None,
) -> Transaction:
    """
    Verify a pending electronic transaction (PENDING -> COMPLETED).

    A payment is re-checked against the booking's final amount; a refund
    marks its original REFUNDED.
    """
    stores = stores or get_stores()
    now = now or utcnow()

    def _op() -> Transaction:
        txn, booking = _load_pending(txn_id, stores)

        if txn.transaction_type == TXN_TYPE_REFUND:
            original = stores.transactions.get(txn.original_transaction_id, for_update=True)
            _link_refund(txn, original)
            event = EVENT_REFUND_COMPLETED
        else:
            if booking.status == BOOKING_STATUS_CANCELLED:
                raise PaymentError("Cannot approve a payment for a cancelled booking")
            _ensure_within_limit(booking, txn.amount_cents, stores, exclude_transaction_id=txn.id)
            event = EVENT_PAYMENT_APPROVED

        txn.status = TXN_STATUS_COMPLETED
        txn.payment_date = now
        txn.verified_by = actor_id
        txn.verified_at = now
        txn.touch(actor_id, now)
        stores.bookings.append_event(booking, event, actor_id=actor_id, transaction_id=txn.id, occurred_at=now)
        _commit(stores)
        return txn

    txn = run_with_retry(_op, rollback=stores.rollback)
    _log("info", "Transaction %s approved by %s", txn.transaction_reference, actor_id)
    return txn


def reject_transaction(
    txn_id: int,
    reason: Optional[str],
    actor_id: Optional[str],
    *,
    stores=None,
    now: Optional[datetime] = None,
) -> Transaction:
    """Fail a pending transaction (PENDING -> FAILED) with a reason."""
    stores = stores or get_stores()
    now = now or utcnow()
    reason = (reason or "").strip()
    if not (REASON_MIN <= len(reason) <= REASON_MAX):
        raise ValidationError(
            f"Rejection reason must be {REASON_MIN}-{REASON_MAX} characters",
            details={"reason": f"must be {REASON_MIN}-{REASON_MAX} characters"},
        )

    def _op() -> Transaction:
        txn, booking = _load_pending(txn_id, stores)
        txn.status = TXN_STATUS_FAILED
        txn.failure_reason = reason
        txn.verified_by = actor_id
        txn.verified_at = now
        txn.touch(actor_id, now)
        stores.bookings.append_event(
            booking, EVENT_PAYMENT_REJECTED, actor_id=actor_id, transaction_id=txn.id, note=reason, occurred_at=now,
        )
        _commit(stores)
        return txn

    txn = run_with_retry(_op, rollback=stores.rollback)
    _log("info", "Transaction %s rejected: %s", txn.transaction_reference, reason)
    return txn


def cancel_transaction(
    txn_id: int,
    actor_id: Optional[str],
    *,
    stores=None,
    now: Optional[datetime] = None,
) -> Transaction:
    """Withdraw a pending transaction (PENDING -> CANCELLED)."""
    stores = stores or get_stores()
    now = now or utcnow()

    def _op() -> Transaction:
        txn, booking = _load_pending(txn_id, stores)
        txn.status = TXN_STATUS_CANCELLED
        txn.touch(actor_id, now)
        stores.bookings.append_event(
            booking, EVENT_PAYMENT_CANCELLED, actor_id=actor_id, transaction_id=txn.id, occurred_at=now,
        )
        _commit(stores)
        return txn

    return run_with_retry(_op, rollback=stores.rollback)


# =============================================================================
# REFUNDS
# =============================================================================

def _parse_refund(payload: dict) -> dict:
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    errors = FieldErrors()
    amount = read_amount(payload, "amount_cents", errors, positive=True)
    reason = read_str(payload, "reason", errors, required=True, min_length=REASON_MIN, max_length=REASON_MAX)
    method = require_choice(read_str(payload, "payment_method", errors), "payment_method", VALID_METHODS, errors)
    reference_number = read_str(payload, "reference_number", errors, max_length=64)
    notes = read_str(payload, "notes", errors, max_length=500)
    errors.raise_if_any("Invalid refund")
    return {
        "amount_cents": amount,
        "reason": reason,
        "payment_method": method,
        "reference_number": reference_number,
        "notes": notes,
    }


def refund_transaction(
    original_id: int,
    payload: dict,
    actor_id: Optional[str],
    *,
    stores=None,
    now: Optional[datetime] = None,
    on_recorded: Optional[Callable] = None,
) -> Transaction:
    """
    Refund (part of) a completed payment.

    Amount defaults to the full original amount. Cash refunds complete at
    once; electronic refunds need a reference number and wait for approval.
    on_recorded(refund) runs inside the same unit of work, before the commit.

    Raises:
        ValidationError: malformed input or method differs from the original
        NotFoundError: original transaction or its booking missing
        RefundNotAllowedError: original is not a completed payment, already
            has an open refund, or the amount exceeds it
    """
    stores = stores or get_stores()
    now = now or utcnow()
    fields = _parse_refund(payload)

    def _op() -> Transaction:
        original = stores.transactions.get(original_id)
        if original is None or not original.is_active:
            raise NotFoundError(f"Transaction {original_id} not found")
        booking = _lock_booking(original.booking_id, stores)
        original = stores.transactions.get(original_id, for_update=True)

        if original.transaction_type not in PAYMENT_LIKE_TYPES:
            raise RefundNotAllowedError("Only payments can be refunded")
        if original.status == TXN_STATUS_REFUNDED:
            raise RefundNotAllowedError("Transaction has already been refunded")
        if original.status != TXN_STATUS_COMPLETED:
            raise RefundNotAllowedError(f"Only completed payments can be refunded (status is {original.status})")

        open_refunds = [
            r for r in stores.transactions.list_refunds_for(original.id) if r.status in OPEN_REFUND_STATUSES
        ]
        if open_refunds:
            raise RefundNotAllowedError(
                f"Transaction already has a refund in progress ({open_refunds[0].transaction_reference})"
            )

        amount = fields["amount_cents"] or original.amount_cents
        if amount > original.amount_cents:
            raise RefundNotAllowedError(
                f"Refund of {format_cents(amount)} exceeds the original {format_cents(original.amount_cents)}",
                details={"amount_cents": amount, "original_amount_cents": original.amount_cents},
            )

        method = fields["payment_method"] or original.payment_method
        if method != original.payment_method:
            raise ValidationError(
                "Refund must use the original payment method",
                details={"payment_method": f"must be {original.payment_method}"},
            )
        is_cash = method == METHOD_CASH
        if not is_cash and not fields["reference_number"]:
            raise ValidationError(
                "Electronic refunds need a reference number",
                details={"reference_number": "is required for electronic refunds"},
            )

        refund = Transaction(
            transaction_reference=_new_reference(stores),
            booking_id=booking.id,
            transaction_type=TXN_TYPE_REFUND,
            payment_method=method,
            status=TXN_STATUS_COMPLETED if is_cash else TXN_STATUS_PENDING,
            amount_cents=amount,
            reference_number=fields["reference_number"],
            notes=fields["notes"],
            original_transaction_id=original.id,
            refund_reason=fields["reason"],
            payment_date=now if is_cash else None,
        )
        refund.stamp_created(actor_id, now)
        stores.transactions.add(refund)
        stores.flush()

        if is_cash:
            _link_refund(refund, original)
            original.touch(actor_id, now)

        stores.bookings.append_event(
            booking,
            EVENT_REFUND_COMPLETED if is_cash else EVENT_REFUND_RECORDED,
            actor_id=actor_id,
            transaction_id=refund.id,
            note=fields["reason"],
            occurred_at=now,
        )
        if on_recorded is not None:
            on_recorded(refund)
        _commit(stores)
        return refund

    refund = run_with_retry(_op, rollback=stores.rollback)
    _log("info", "Refund %s of %s against transaction %s (%s)",
         refund.transaction_reference, format_cents(refund.amount_cents), original_id, refund.status)
    return refund


# =============================================================================
# READS / SOFT DELETE
# =============================================================================

def get_transaction(txn_id: int, *, stores=None) -> Transaction:
    stores = stores or get_stores()
    txn = stores.transactions.get(txn_id)
    if txn is None or not txn.is_active:
        raise NotFoundError(f"Transaction {txn_id} not found")
    return txn


def transaction_summary(booking_id: int, *, stores=None) -> dict:
    """Ledger figures plus per-status counts for one booking."""
    stores = stores or get_stores()
    booking = stores.bookings.get(booking_id)
    if booking is None or not booking.is_active:
        raise NotFoundError(f"Booking {booking_id} not found")
    txns = stores.transactions.list_for_booking(booking.id)
    data = reconcile(booking.final_amount_cents, booking.status, txns).to_dict(include_transactions=False)
    data["booking_id"] = booking.id
    data["by_status"] = summarize_by_status(txns)
    data["transaction_count"] = len(txns)
    return data


def deactivate_transaction(
    txn_id: int,
    actor_id: Optional[str],
    *,
    stores=None,
    now: Optional[datetime] = None,
) -> Transaction:
    """Soft delete a transaction that never moved money."""
    stores = stores or get_stores()
    now = now or utcnow()

    def _op() -> Transaction:
        txn = stores.transactions.get(txn_id, for_update=True)
        if txn is None or not txn.is_active:
            raise NotFoundError(f"Transaction {txn_id} not found")
        if txn.status in (TXN_STATUS_COMPLETED, TXN_STATUS_REFUNDED):
            raise PaymentError("Completed or refunded transactions cannot be deleted; record a refund instead")
        txn.deactivate(actor_id, now)
        _commit(stores)
        return txn

    return run_with_retry(_op, rollback=stores.rollback)
