# Overview: Payment ledger; derives paid/refunded/remaining amounts for a booking from its transactions.

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Optional

from app.errors import NotFoundError
from app.stores import get_stores
from .booking_state import BOOKING_STATUS_COMPLETED, TERMINAL_STATUSES
"""
Payment Ledger Invariants (authoritative)

- Read-only: reconcile() never mutates a booking or a transaction.
- Payment-like rows (PAYMENT, PARTIAL, BALANCE) count as money received when
  COMPLETED, and also when REFUNDED: the money was received, and what went back
  is recorded by the separate REFUND row. Counting both keeps a refund from
  being subtracted twice.
- REFUND rows count as money returned only when COMPLETED.
- PENDING, FAILED and CANCELLED rows never count.
- amount_paid is net of refunds; remaining balance is reported as 0 once the
  booking is COMPLETED or CANCELLED.
- get_payment_status reads every transaction of a booking in a single
  statement so a concurrent completion is never half-counted.
"""


# =============================================================================
# TRANSACTION TYPES / METHODS / STATUS (CONSTANTS)
# =============================================================================

TXN_TYPE_PAYMENT = "PAYMENT"
TXN_TYPE_PARTIAL = "PARTIAL"
TXN_TYPE_BALANCE = "BALANCE"
TXN_TYPE_REFUND = "REFUND"

PAYMENT_LIKE_TYPES = {TXN_TYPE_PAYMENT, TXN_TYPE_PARTIAL, TXN_TYPE_BALANCE}
VALID_TXN_TYPES = PAYMENT_LIKE_TYPES | {TXN_TYPE_REFUND}

METHOD_CASH = "CASH"
METHOD_ELECTRONIC = "ELECTRONIC"
VALID_METHODS = {METHOD_CASH, METHOD_ELECTRONIC}

TXN_STATUS_PENDING = "PENDING"
TXN_STATUS_COMPLETED = "COMPLETED"
TXN_STATUS_FAILED = "FAILED"
TXN_STATUS_REFUNDED = "REFUNDED"
TXN_STATUS_CANCELLED = "CANCELLED"

VALID_TXN_STATUSES = {
    TXN_STATUS_PENDING,
    TXN_STATUS_COMPLETED,
    TXN_STATUS_FAILED,
    TXN_STATUS_REFUNDED,
    TXN_STATUS_CANCELLED,
}

RECEIVED_STATUSES = {TXN_STATUS_COMPLETED, TXN_STATUS_REFUNDED}


# =============================================================================
# PAYMENT SCENARIOS
# =============================================================================

SCENARIO_NO_PAYMENT = "no_payment"
SCENARIO_REFUND_ONLY = "refund_only"
SCENARIO_FULLY_PAID_WITH_REFUND = "fully_paid_with_refund"
SCENARIO_FULLY_PAID_NO_REFUND = "fully_paid_no_refund"
SCENARIO_PARTIALLY_PAID_WITH_REFUND = "partially_paid_with_refund"
SCENARIO_PARTIALLY_PAID_NO_REFUND = "partially_paid_no_refund"


@dataclass(frozen=True)
class PaymentSummary:
    final_amount_cents: int
    total_payments_cents: int
    total_refunded_cents: int
    amount_paid_cents: int
    remaining_balance_cents: int
    is_payment_complete: bool
    is_partially_paid: bool
    scenario: str
    booking_status: Optional[str] = None
    transactions: tuple = field(default=(), compare=False)

    def to_dict(self, *, include_transactions: bool = True) -> dict:
        data = {
            "final_amount_cents": self.final_amount_cents,
            "total_payments_cents": self.total_payments_cents,
            "total_refunded_cents": self.total_refunded_cents,
            "amount_paid_cents": self.amount_paid_cents,
            "remaining_balance_cents": self.remaining_balance_cents,
            "is_payment_complete": self.is_payment_complete,
            "is_partially_paid": self.is_partially_paid,
            "payment_scenario": self.scenario,
            "booking_status": self.booking_status,
        }
        if include_transactions:
            data["transactions"] = [t.to_dict() if hasattr(t, "to_dict") else t for t in self.transactions]
        return data


def counts_as_payment(txn) -> bool:
    return txn.transaction_type in PAYMENT_LIKE_TYPES and txn.status in RECEIVED_STATUSES


def counts_as_refund(txn) -> bool:
    return txn.transaction_type == TXN_TYPE_REFUND and txn.status == TXN_STATUS_COMPLETED


def classify_scenario(
    *,
    booking_status: Optional[str],
    total_payments: int,
    total_refunded: int,
    is_payment_complete: bool,
    is_partially_paid: bool,
) -> str:
    has_refund = total_refunded > 0
    if booking_status == BOOKING_STATUS_COMPLETED:
        return SCENARIO_FULLY_PAID_WITH_REFUND if has_refund else SCENARIO_FULLY_PAID_NO_REFUND
    if total_payments == 0 and not has_refund:
        return SCENARIO_NO_PAYMENT
    if total_payments == 0:
        return SCENARIO_REFUND_ONLY
    if is_payment_complete:
        return SCENARIO_FULLY_PAID_WITH_REFUND if has_refund else SCENARIO_FULLY_PAID_NO_REFUND
    # Partial, or payments fully offset by refunds
    return SCENARIO_PARTIALLY_PAID_WITH_REFUND if has_refund else SCENARIO_PARTIALLY_PAID_NO_REFUND


def reconcile(final_amount_cents: int, booking_status: Optional[str], transactions: Iterable) -> PaymentSummary:
    """
    Aggregate a booking's transactions against its final amount.

    Pure: callers pass plain values and transaction-shaped objects
    (transaction_type, status, amount_cents).
    """
    txns = tuple(transactions)
    total_payments = sum(t.amount_cents for t in txns if counts_as_payment(t))
    total_refunded = sum(t.amount_cents for t in txns if counts_as_refund(t))
    amount_paid = total_payments - total_refunded

    remaining = max(0, final_amount_cents - amount_paid)
    if booking_status in TERMINAL_STATUSES:
        remaining = 0

    is_complete = amount_paid >= final_amount_cents
    is_partial = 0 < amount_paid < final_amount_cents

    scenario = classify_scenario(
        booking_status=booking_status,
        total_payments=total_payments,
        total_refunded=total_refunded,
        is_payment_complete=is_complete,
        is_partially_paid=is_partial,
    )

    return PaymentSummary(
        final_amount_cents=final_amount_cents,
        total_payments_cents=total_payments,
        total_refunded_cents=total_refunded,
        amount_paid_cents=amount_paid,
        remaining_balance_cents=remaining,
        is_payment_complete=is_complete,
        is_partially_paid=is_partial,
        scenario=scenario,
        booking_status=booking_status,
        transactions=txns,
    )


def summarize_by_status(transactions: Iterable) -> dict:
    """Per-status counts and totals, for the transaction summary view."""
    summary: dict[str, dict] = {}
    for txn in transactions:
        bucket = summary.setdefault(txn.status, {"count": 0, "amount_cents": 0})
        bucket["count"] += 1
        bucket["amount_cents"] += txn.amount_cents
    return summary


def get_payment_status(booking_id: int, *, stores=None) -> PaymentSummary:
    """
    Payment summary for one booking, computed at read time.

    All transactions come from one SELECT, so a row completing mid-read is
    either fully in or fully out of the totals.
    """
    stores = stores or get_stores()
    booking = stores.bookings.get(booking_id)
    if booking is None or not booking.is_active:
        raise NotFoundError(f"Booking {booking_id} not found")
    transactions = stores.transactions.list_for_booking(booking.id)
    return reconcile(booking.final_amount_cents, booking.status, transactions)
