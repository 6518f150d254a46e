# Overview: Booking lifecycle state machine; pure guards and transitions, no database access.

"""
Booking Lifecycle State Machine

================================================================================
PURPOSE: Single source of truth for which status changes a booking may make
================================================================================

STATE MACHINE:
    PENDING     -> CONFIRMED | CANCELLED | RESCHEDULED
    CONFIRMED   -> ONGOING | COMPLETED | CANCELLED | RESCHEDULED
    ONGOING     -> COMPLETED | CANCELLED
    RESCHEDULED -> ONGOING | COMPLETED | CANCELLED | RESCHEDULED
    COMPLETED, CANCELLED: terminal

RESCHEDULED behaves like a confirmed booking that moved; it can be started,
completed, cancelled or moved again.

RULES:
1. Transitions are explicit actions (Confirm, Start, Complete, Cancel,
   Reschedule), never side effects of saving a booking.
2. Every guard failure raises a recoverable error naming the precondition.
3. Lifecycle stamps (confirmed_at, completed_at) are only set once.
4. final_amount_cents is recomputed on every applied transition.

The functions here take a booking-shaped object (anything with the Booking
attributes) plus the clock, so guards are testable without a database.
booking_service.py does the locking, slot checks and persistence.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, ClassVar, Optional, Union

from app.errors import (
    InvalidTransitionError,
    PaymentIncompleteError,
    ValidationError,
)
from app.time_utils import MINUTES_PER_DAY, combine_local, format_hhmm, parse_hhmm
from .money import final_amount


# =============================================================================
# BOOKING STATUS (CONSTANTS)
# =============================================================================

BOOKING_STATUS_PENDING = "PENDING"
BOOKING_STATUS_CONFIRMED = "CONFIRMED"
BOOKING_STATUS_ONGOING = "ONGOING"
BOOKING_STATUS_COMPLETED = "COMPLETED"
BOOKING_STATUS_CANCELLED = "CANCELLED"
BOOKING_STATUS_RESCHEDULED = "RESCHEDULED"

VALID_BOOKING_STATUSES = {
    BOOKING_STATUS_PENDING,
    BOOKING_STATUS_CONFIRMED,
    BOOKING_STATUS_ONGOING,
    BOOKING_STATUS_COMPLETED,
    BOOKING_STATUS_CANCELLED,
    BOOKING_STATUS_RESCHEDULED,
}

TERMINAL_STATUSES = {BOOKING_STATUS_COMPLETED, BOOKING_STATUS_CANCELLED}

# Statuses whose bookings no longer occupy the photographer's time
NON_BLOCKING_STATUSES = {BOOKING_STATUS_CANCELLED, BOOKING_STATUS_COMPLETED}

ALLOWED_TRANSITIONS = {
    BOOKING_STATUS_PENDING: {
        BOOKING_STATUS_CONFIRMED,
        BOOKING_STATUS_CANCELLED,
        BOOKING_STATUS_RESCHEDULED,
    },
    BOOKING_STATUS_CONFIRMED: {
        BOOKING_STATUS_ONGOING,
        BOOKING_STATUS_COMPLETED,
        BOOKING_STATUS_CANCELLED,
        BOOKING_STATUS_RESCHEDULED,
    },
    BOOKING_STATUS_ONGOING: {
        BOOKING_STATUS_COMPLETED,
        BOOKING_STATUS_CANCELLED,
    },
    BOOKING_STATUS_RESCHEDULED: {
        BOOKING_STATUS_ONGOING,
        BOOKING_STATUS_COMPLETED,
        BOOKING_STATUS_CANCELLED,
        BOOKING_STATUS_RESCHEDULED,
    },
    BOOKING_STATUS_COMPLETED: set(),
    BOOKING_STATUS_CANCELLED: set(),
}

CANCEL_REASON_MIN_LENGTH = 5
CANCEL_REASON_MAX_LENGTH = 200


def can_transition(from_status: str, to_status: str) -> bool:
    return to_status in ALLOWED_TRANSITIONS.get(from_status, set())


# =============================================================================
# ACTIONS
# =============================================================================

@dataclass(frozen=True)
class Confirm:
    name: ClassVar[str] = "confirm"
    target: ClassVar[str] = BOOKING_STATUS_CONFIRMED


@dataclass(frozen=True)
class Start:
    name: ClassVar[str] = "start"
    target: ClassVar[str] = BOOKING_STATUS_ONGOING


@dataclass(frozen=True)
class Complete:
    name: ClassVar[str] = "complete"
    target: ClassVar[str] = BOOKING_STATUS_COMPLETED


@dataclass(frozen=True)
class Cancel:
    reason: str
    name: ClassVar[str] = "cancel"
    target: ClassVar[str] = BOOKING_STATUS_CANCELLED


@dataclass(frozen=True)
class Reschedule:
    new_date: date
    new_start_minute: Optional[int] = None
    name: ClassVar[str] = "reschedule"
    target: ClassVar[str] = BOOKING_STATUS_RESCHEDULED


BookingAction = Union[Confirm, Start, Complete, Cancel, Reschedule]


@dataclass
class Transition:
    """A validated status change plus the field updates that go with it."""

    action: str
    from_status: str
    to_status: str
    changes: dict[str, Any] = field(default_factory=dict)
    note: Optional[str] = None


# =============================================================================
# GUARDS
# =============================================================================

def session_start(booking_date: date, start_minute: int) -> datetime:
    return combine_local(booking_date, start_minute)


def ensure_future_session(booking_date: date, start_minute: int, local_now: datetime, message: str) -> None:
    if session_start(booking_date, start_minute) <= local_now:
        raise InvalidTransitionError(message)


def _require_transition(booking, action: BookingAction, message: str) -> None:
    if not can_transition(booking.status, action.target):
        raise InvalidTransitionError(message, details={"status": booking.status, "action": action.name})


def _plan_confirm(booking, now: datetime, local_now: datetime) -> Transition:
    _require_transition(booking, Confirm(), f"Only pending bookings can be confirmed (status is {booking.status})")
    ensure_future_session(
        booking.booking_date,
        parse_hhmm(booking.start_time),
        local_now,
        "Cannot confirm booking for past dates",
    )
    changes = {}
    if booking.confirmed_at is None:
        changes["confirmed_at"] = now
    return Transition("confirm", booking.status, BOOKING_STATUS_CONFIRMED, changes)


def _plan_start(booking, local_now: datetime) -> Transition:
    _require_transition(booking, Start(), f"Only confirmed bookings can be started (status is {booking.status})")
    if booking.booking_date != local_now.date():
        raise InvalidTransitionError(
            "Booking can only be started on its scheduled date",
            details={"booking_date": booking.booking_date.isoformat(), "today": local_now.date().isoformat()},
        )
    return Transition("start", booking.status, BOOKING_STATUS_ONGOING)


def _plan_complete(booking, now: datetime, payment) -> Transition:
    _require_transition(
        booking,
        Complete(),
        f"Only confirmed or ongoing bookings can be completed (status is {booking.status})",
    )
    if payment is None:
        raise ValueError("complete requires the booking's payment summary")
    if not payment.is_payment_complete:
        raise PaymentIncompleteError(
            "Cannot complete booking: payment is not complete",
            details={"remaining_balance_cents": payment.remaining_balance_cents},
        )
    changes = {}
    if booking.completed_at is None:
        changes["completed_at"] = now
    return Transition("complete", booking.status, BOOKING_STATUS_COMPLETED, changes)


def _plan_cancel(booking, action: Cancel, now: datetime) -> Transition:
    reason = (action.reason or "").strip()
    if len(reason) < CANCEL_REASON_MIN_LENGTH:
        raise ValidationError(
            f"Cancellation reason must be at least {CANCEL_REASON_MIN_LENGTH} characters",
            details={"reason": f"must be at least {CANCEL_REASON_MIN_LENGTH} characters"},
        )
    if len(reason) > CANCEL_REASON_MAX_LENGTH:
        raise ValidationError(
            f"Cancellation reason cannot exceed {CANCEL_REASON_MAX_LENGTH} characters",
            details={"reason": f"cannot exceed {CANCEL_REASON_MAX_LENGTH} characters"},
        )
    _require_transition(booking, action, f"Cannot cancel a booking that is {booking.status.lower()}")
    changes = {"cancelled_reason": reason, "cancelled_at": now}
    return Transition("cancel", booking.status, BOOKING_STATUS_CANCELLED, changes, note=reason)


def _plan_reschedule(booking, action: Reschedule, local_now: datetime) -> Transition:
    _require_transition(
        booking,
        action,
        f"Only pending or confirmed bookings can be rescheduled (status is {booking.status})",
    )
    start_minute = action.new_start_minute
    if start_minute is None:
        start_minute = parse_hhmm(booking.start_time)
    end_minute = start_minute + booking.session_duration_minutes
    if end_minute > MINUTES_PER_DAY:
        raise ValidationError(
            "Rescheduled session must end on the same day",
            details={"start_time": "session would run past midnight"},
        )
    ensure_future_session(action.new_date, start_minute, local_now, "Reschedule date must be in the future")

    changes = {
        "rescheduled_from": booking.booking_date,
        "booking_date": action.new_date,
        "start_time": format_hhmm(start_minute),
        "end_time": format_hhmm(end_minute),
    }
    note = f"{booking.booking_date.isoformat()} {booking.start_time} -> {action.new_date.isoformat()} {format_hhmm(start_minute)}"
    return Transition("reschedule", booking.status, BOOKING_STATUS_RESCHEDULED, changes, note=note)


def plan_transition(
    booking,
    action: BookingAction,
    *,
    now: datetime,
    local_now: Optional[datetime] = None,
    payment=None,
) -> Transition:
    """
    Validate an action against the booking's current state.

    Args:
        booking: Booking-shaped object (status, booking_date, start_time, ...)
        action: one of Confirm, Start, Complete, Cancel, Reschedule
        now: UTC-naive time used for lifecycle stamps
        local_now: business wall-clock time used for date guards (defaults to now)
        payment: PaymentSummary, required for Complete

    Raises:
        InvalidTransitionError / PaymentIncompleteError / ValidationError
    """
    local_now = local_now or now
    if isinstance(action, Confirm):
        return _plan_confirm(booking, now, local_now)
    if isinstance(action, Start):
        return _plan_start(booking, local_now)
    if isinstance(action, Complete):
        return _plan_complete(booking, now, payment)
    if isinstance(action, Cancel):
        return _plan_cancel(booking, action, now)
    if isinstance(action, Reschedule):
        return _plan_reschedule(booking, action, local_now)
    raise TypeError(f"Unknown booking action: {action!r}")


def apply_transition(booking, transition: Transition) -> None:
    """Write the planned status and stamps onto the booking."""
    for key, value in transition.changes.items():
        setattr(booking, key, value)
    booking.status = transition.to_status
    recompute_amounts(booking)


def recompute_amounts(booking) -> None:
    """Keep discount within [0, total] and final = max(0, total - discount)."""
    if booking.discount_amount_cents > booking.total_amount_cents:
        booking.discount_amount_cents = booking.total_amount_cents
    if booking.discount_amount_cents < 0:
        booking.discount_amount_cents = 0
    booking.final_amount_cents = final_amount(booking.total_amount_cents, booking.discount_amount_cents)
