# Overview: Booking intake, lifecycle transitions and soft delete; orchestrates stores, availability and promos.

"""
Booking Service

WHY: One place that turns a validated request into a persisted booking and
moves bookings through their lifecycle, with every rule applied in a fixed
order and nothing written until every check has passed.

CREATE FLOW:
1. Shape validation (booking_intake) -> ValidationError with field details
2. Referenced customer / photographer / package / services must exist
3. Lines, total, duration and end time are derived
4. Session must start in the future and end the same day
5. Optimistic availability check (SlotUnavailableError)
6. Promo evaluation (PromoNotApplicableError)
7. Write transaction:
     lock (photographer, date) -> re-check slot (SlotConflictError)
     -> atomic promo redemption (PromoExhaustedError)
     -> insert booking + lines + CREATED event -> commit

TRANSITIONS:
- Row is loaded with SELECT ... FOR UPDATE where supported, and every write
  carries version_id. A writer that lost the race gets StaleBookingError
  reporting the status it had read.
- Reschedule with a photographer takes the per-day lock for the new date
  and re-validates the slot while ignoring the booking's own time.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Callable, Optional

from flask import current_app, has_app_context

from ..models import Booking, BookingLine
from app.errors import (
    GuardViolationError,
    NotFoundError,
    PromoNotApplicableError,
    SlotConflictError,
    SlotUnavailableError,
    StaleBookingError,
    ValidationError,
)
from app.stores import StaleWriteError, get_stores
from app.time_utils import MINUTES_PER_DAY, format_hhmm, parse_hhmm, to_business_time, utcnow
from .availability import busy_window
from .availability_service import check_slot, validate_duration
from .booking_intake import BookingRequest, derive_duration, parse_booking_request
from .booking_state import (
    BOOKING_STATUS_PENDING,
    NON_BLOCKING_STATUSES,
    Cancel,
    Complete,
    Confirm,
    Reschedule,
    Start,
    apply_transition,
    plan_transition,
    session_start,
)
from .concurrency import run_with_retry
from .ledger_service import reconcile
from .money import clamp_discount, final_amount, line_total, sum_cents
from .promotions_service import consume_promo_usage, evaluate_promo
from .references import BOOKING_PREFIX, generate_unique_reference


EVENT_CREATED = "CREATED"
EVENT_DEACTIVATED = "DEACTIVATED"
EVENT_RESTORED = "RESTORED"

TRANSITION_EVENTS = {
    "confirm": "CONFIRMED",
    "start": "STARTED",
    "complete": "COMPLETED",
    "cancel": "CANCELLED",
    "reschedule": "RESCHEDULED",
}


def _log(level: str, message: str, *args) -> None:
    if has_app_context():
        getattr(current_app.logger, level)(message, *args)


def _reference_attempts() -> int:
    if has_app_context():
        return current_app.config.get("REFERENCE_MAX_ATTEMPTS", 10)
    return 10


# =============================================================================
# INTAKE
# =============================================================================

def _build_lines(request: BookingRequest, stores) -> tuple[list[BookingLine], int, list]:
    """Resolve catalog references into booking lines; returns (lines, total, durations)."""
    lines: list[BookingLine] = []
    durations: list = []

    if request.package_id is not None:
        package = stores.catalog.get_package(request.package_id)
        if package is None or not package.is_active:
            raise NotFoundError(f"Package {request.package_id} not found")
        if not package.items:
            raise ValidationError(
                "Package has no services",
                details={"package_id": "package has no services"},
            )
        for position, item in enumerate(package.items):
            service = item.service
            lines.append(
                BookingLine(
                    position=position,
                    service_id=item.service_id,
                    quantity=item.quantity,
                    price_per_unit_cents=service.price_cents,
                    line_total_cents=line_total(item.quantity, service.price_cents),
                    duration_minutes=service.duration_minutes,
                )
            )
            durations.append((service.duration_minutes, item.quantity))
        return lines, package.price_cents, durations

    for position, requested in enumerate(request.lines):
        service = stores.catalog.get_service(requested.service_id)
        if service is None or not service.is_active:
            raise NotFoundError(f"Service {requested.service_id} not found")
        if not service.is_available:
            raise ValidationError(
                f"Service '{service.name}' is not available for booking",
                details={f"services[{position}].service_id": "service is not available"},
            )
        price = requested.price_per_unit_cents
        if price is None:
            price = service.price_cents
        minutes = requested.duration_minutes
        if minutes is None:
            minutes = service.duration_minutes
        lines.append(
            BookingLine(
                position=position,
                service_id=service.id,
                quantity=requested.quantity,
                price_per_unit_cents=price,
                line_total_cents=line_total(requested.quantity, price),
                duration_minutes=minutes,
            )
        )
        durations.append((minutes, requested.quantity))

    return lines, sum_cents(line.line_total_cents for line in lines), durations


def create_booking(
    payload: dict,
    actor_id: Optional[str],
    *,
    stores=None,
    now: Optional[datetime] = None,
) -> Booking:
    """
    Validate a booking request and persist it as PENDING.

    Raises:
        ValidationError: malformed input (field details attached)
        NotFoundError: customer, photographer, package, service or promo missing
        SlotUnavailableError / PromoNotApplicableError: business rule failed
        SlotConflictError / PromoExhaustedError: lost a race; retry with fresh data
    """
    stores = stores or get_stores()
    now = now or utcnow()
    local_now = to_business_time(now)

    request = parse_booking_request(payload)

    customer = stores.catalog.get_customer(request.customer_id)
    if customer is None or not customer.is_active:
        raise NotFoundError(f"Customer {request.customer_id} not found")

    if request.photographer_id is not None:
        photographer = stores.photographers.get(request.photographer_id)
        if photographer is None or not photographer.is_active:
            raise NotFoundError(f"Photographer {request.photographer_id} not found")

    lines, total_cents, durations = _build_lines(request, stores)

    duration = derive_duration(request, durations)
    validate_duration(duration)
    end_minute = request.start_minute + duration
    if end_minute > MINUTES_PER_DAY:
        raise ValidationError(
            "Session must end on the same day",
            details={"session_duration_minutes": "session would run past midnight"},
        )

    if session_start(request.booking_date, request.start_minute) <= local_now:
        raise ValidationError(
            "Booking date must be in the future",
            details={"booking_date": "must be in the future"},
        )

    if request.photographer_id is not None:
        precheck = check_slot(
            request.photographer_id, request.booking_date, request.start_minute, end_minute,
            stores=stores, now=now,
        )
        if not precheck.available:
            raise SlotUnavailableError(precheck.reason or "Requested slot is not available")

    promo = None
    discount_cents = 0
    if request.promo_code:
        promo = stores.promotions.get_by_code(request.promo_code)
        if promo is None:
            raise NotFoundError(f"Promo code '{request.promo_code}' not found")
        evaluation = evaluate_promo(promo, total_cents, request.booking_date, now=now, local_now=local_now)
        if not evaluation.applicable:
            raise PromoNotApplicableError(evaluation.reason or "Promo code cannot be applied")
        discount_cents = clamp_discount(total_cents, evaluation.discount_amount_cents)

    def _op() -> Booking:
        if request.photographer_id is not None:
            stores.photographers.lock_day(request.photographer_id, request.booking_date)
            recheck = check_slot(
                request.photographer_id, request.booking_date, request.start_minute, end_minute,
                stores=stores, now=now,
            )
            if not recheck.available:
                _log("warning", "Slot conflict for photographer %s on %s at %s",
                     request.photographer_id, request.booking_date, format_hhmm(request.start_minute))
                raise SlotConflictError(
                    "Selected time slot is no longer available; please pick another slot",
                    details={"reason": recheck.reason},
                )

        if promo is not None:
            consume_promo_usage(promo.id, stores=stores)

        booking = Booking(
            booking_reference=generate_unique_reference(
                BOOKING_PREFIX, stores.bookings.reference_exists, attempts=_reference_attempts()
            ),
            customer_id=request.customer_id,
            package_id=request.package_id,
            photographer_id=request.photographer_id,
            promo_id=promo.id if promo is not None else None,
            booking_date=request.booking_date,
            start_time=format_hhmm(request.start_minute),
            end_time=format_hhmm(end_minute),
            session_duration_minutes=duration,
            location=request.location,
            theme=request.theme,
            special_requests=request.special_requests,
            is_customized=request.is_customized,
            customization_notes=request.customization_notes,
            photographer_notes=request.photographer_notes,
            total_amount_cents=total_cents,
            discount_amount_cents=discount_cents,
            final_amount_cents=final_amount(total_cents, discount_cents),
            status=BOOKING_STATUS_PENDING,
            lines=lines,
        )
        booking.stamp_created(actor_id, now)
        stores.bookings.add(booking)
        stores.flush()
        stores.bookings.append_event(
            booking, EVENT_CREATED, actor_id=actor_id, to_status=BOOKING_STATUS_PENDING, occurred_at=now,
        )
        stores.commit()
        return booking

    booking = run_with_retry(_op, rollback=stores.rollback)
    _log("info", "Booking %s created for customer %s", booking.booking_reference, booking.customer_id)
    return booking


# =============================================================================
# TRANSITIONS
# =============================================================================

def transition_booking(
    booking_id: int,
    action,
    actor_id: Optional[str],
    *,
    stores=None,
    now: Optional[datetime] = None,
    on_applied: Optional[Callable] = None,
) -> Booking:
    """
    Apply one lifecycle action (Confirm, Start, Complete, Cancel, Reschedule).

    on_applied(booking, transition) runs after the change is staged and
    before the commit, so its own writes land in the same unit of work. It
    runs again on every retry.

    Raises:
        NotFoundError: booking missing or deactivated
        InvalidTransitionError / PaymentIncompleteError / ValidationError: guard failed
        SlotUnavailableError: reschedule target is not free
        StaleBookingError: a concurrent writer changed the booking first
    """
    stores = stores or get_stores()
    now = now or utcnow()
    local_now = to_business_time(now)

    def _op() -> Booking:
        if isinstance(action, Reschedule):
            current = stores.bookings.get(booking_id)
            if current is not None and current.photographer_id is not None:
                stores.photographers.lock_day(current.photographer_id, action.new_date)

        booking = stores.bookings.get(booking_id, for_update=True)
        if booking is None or not booking.is_active:
            raise NotFoundError(f"Booking {booking_id} not found")
        read_status = booking.status

        payment = None
        if isinstance(action, Complete):
            payment = reconcile(
                booking.final_amount_cents, booking.status, stores.transactions.list_for_booking(booking.id)
            )

        transition = plan_transition(booking, action, now=now, local_now=local_now, payment=payment)

        if isinstance(action, Reschedule) and booking.photographer_id is not None:
            new_start = action.new_start_minute
            if new_start is None:
                new_start = parse_hhmm(booking.start_time)
            check = check_slot(
                booking.photographer_id,
                action.new_date,
                new_start,
                new_start + booking.session_duration_minutes,
                exclude_booking_id=booking.id,
                stores=stores,
                now=now,
            )
            if not check.available:
                raise SlotUnavailableError(check.reason or "Requested slot is not available")

        apply_transition(booking, transition)
        booking.touch(actor_id, now)
        stores.bookings.append_event(
            booking,
            TRANSITION_EVENTS[transition.action],
            actor_id=actor_id,
            from_status=transition.from_status,
            to_status=transition.to_status,
            note=transition.note,
            occurred_at=now,
        )
        if on_applied is not None:
            on_applied(booking, transition)
        try:
            stores.commit()
        except StaleWriteError:
            raise StaleBookingError(
                f"Booking changed while this request was processing (it was {read_status} when read); "
                "reload and try again",
                details={"status": read_status},
            )
        return booking

    booking = run_with_retry(_op, rollback=stores.rollback)
    _log("info", "Booking %s: %s -> %s", booking.booking_reference, action.name, booking.status)
    return booking


def confirm_booking(booking_id: int, actor_id: Optional[str], **kwargs) -> Booking:
    return transition_booking(booking_id, Confirm(), actor_id, **kwargs)


def start_booking(booking_id: int, actor_id: Optional[str], **kwargs) -> Booking:
    return transition_booking(booking_id, Start(), actor_id, **kwargs)


def complete_booking(booking_id: int, actor_id: Optional[str], **kwargs) -> Booking:
    return transition_booking(booking_id, Complete(), actor_id, **kwargs)


def cancel_booking(booking_id: int, reason: str, actor_id: Optional[str], **kwargs) -> Booking:
    return transition_booking(booking_id, Cancel(reason=reason), actor_id, **kwargs)


def reschedule_booking(
    booking_id: int,
    new_date: date,
    actor_id: Optional[str],
    *,
    new_start_minute: Optional[int] = None,
    **kwargs,
) -> Booking:
    return transition_booking(
        booking_id, Reschedule(new_date=new_date, new_start_minute=new_start_minute), actor_id, **kwargs
    )


# =============================================================================
# READS / SOFT DELETE
# =============================================================================

def get_booking(booking_id: int, *, include_inactive: bool = False, stores=None) -> Booking:
    stores = stores or get_stores()
    booking = stores.bookings.get(booking_id)
    if booking is None or (not include_inactive and not booking.is_active):
        raise NotFoundError(f"Booking {booking_id} not found")
    return booking


def get_booking_by_reference(reference: str, *, stores=None) -> Booking:
    stores = stores or get_stores()
    booking = stores.bookings.get_by_reference((reference or "").strip().upper())
    if booking is None or not booking.is_active:
        raise NotFoundError(f"Booking {reference} not found")
    return booking


def list_customer_bookings(customer_id: int, *, include_inactive: bool = False, stores=None) -> list:
    stores = stores or get_stores()
    return stores.bookings.list_for_customer(customer_id, include_inactive=include_inactive)


def list_booking_events(booking_id: int, *, stores=None) -> list:
    stores = stores or get_stores()
    get_booking(booking_id, include_inactive=True, stores=stores)
    return stores.bookings.list_events(booking_id)


def _reclaim_slot(booking, stores) -> None:
    """A restored booking must not land on time someone else booked meanwhile."""
    if booking.photographer_id is None or booking.status in NON_BLOCKING_STATUSES:
        return
    stores.photographers.lock_day(booking.photographer_id, booking.booking_date)
    start = parse_hhmm(booking.start_time)
    busy = stores.bookings.list_blocking(
        booking.photographer_id, booking.booking_date, exclude_booking_id=booking.id
    )
    mine = busy_window(start, booking.session_duration_minutes)
    for other in busy:
        if mine.overlaps(busy_window(parse_hhmm(other.start_time), other.session_duration_minutes)):
            raise SlotConflictError(
                f"Cannot restore: the slot is now taken by booking {other.booking_reference}"
            )


def _set_active(booking_id: int, active: bool, actor_id: Optional[str], stores, now: datetime) -> Booking:
    def _op() -> Booking:
        if active:
            current = stores.bookings.get(booking_id)
            if current is not None and not current.is_active:
                _reclaim_slot(current, stores)
        booking = stores.bookings.get(booking_id, for_update=True)
        if booking is None:
            raise NotFoundError(f"Booking {booking_id} not found")
        if bool(booking.is_active) == active:
            state = "active" if active else "deactivated"
            raise GuardViolationError(f"Booking is already {state}")
        if active:
            booking.restore(actor_id, now)
        else:
            booking.deactivate(actor_id, now)
        stores.bookings.append_event(
            booking,
            EVENT_RESTORED if active else EVENT_DEACTIVATED,
            actor_id=actor_id,
            from_status=booking.status,
            to_status=booking.status,
            occurred_at=now,
        )
        try:
            stores.commit()
        except StaleWriteError:
            raise StaleBookingError("Booking changed while this request was processing; reload and try again")
        return booking

    return run_with_retry(_op, rollback=stores.rollback)


def deactivate_booking(booking_id: int, actor_id: Optional[str], *, stores=None, now: Optional[datetime] = None) -> Booking:
    """Soft delete: the booking stops occupying time and disappears from reads."""
    return _set_active(booking_id, False, actor_id, stores or get_stores(), now or utcnow())


def restore_booking(booking_id: int, actor_id: Optional[str], *, stores=None, now: Optional[datetime] = None) -> Booking:
    return _set_active(booking_id, True, actor_id, stores or get_stores(), now or utcnow())
