# Overview: Input-shape validation for booking requests; no database access.

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Optional

from app.errors import ValidationError
from app.validation import (
    FieldErrors,
    read_amount,
    read_bool,
    read_date,
    read_int,
    read_str,
    read_time,
)


MIN_LINE_DURATION_MINUTES = 15
DEFAULT_LINE_DURATION_MINUTES = 60


@dataclass(frozen=True)
class LineRequest:
    service_id: int
    quantity: int = 1
    price_per_unit_cents: Optional[int] = None
    duration_minutes: Optional[int] = None


@dataclass(frozen=True)
class BookingRequest:
    customer_id: int
    booking_date: date
    start_minute: int
    location: str
    package_id: Optional[int] = None
    photographer_id: Optional[int] = None
    promo_code: Optional[str] = None
    lines: tuple[LineRequest, ...] = ()
    end_minute: Optional[int] = None
    session_duration_minutes: Optional[int] = None
    theme: Optional[str] = None
    special_requests: Optional[str] = None
    is_customized: bool = False
    customization_notes: Optional[str] = None
    photographer_notes: Optional[str] = None


def _parse_lines(raw_lines, errors: FieldErrors) -> list[LineRequest]:
    if not isinstance(raw_lines, list):
        errors.add("services", "must be a list")
        return []
    lines = []
    for index, raw in enumerate(raw_lines):
        prefix = f"services[{index}]"
        if not isinstance(raw, dict):
            errors.add(prefix, "must be an object")
            continue
        line_errors = FieldErrors()
        service_id = read_int(raw, "service_id", line_errors, required=True, minimum=1)
        quantity = read_int(raw, "quantity", line_errors, minimum=1)
        price = read_amount(raw, "price_per_unit_cents", line_errors)
        duration = read_int(raw, "duration_minutes", line_errors, minimum=MIN_LINE_DURATION_MINUTES)
        for key, message in line_errors.errors.items():
            errors.add(f"{prefix}.{key}", message)
        if line_errors:
            continue
        lines.append(
            LineRequest(
                service_id=service_id,
                quantity=quantity if quantity is not None else 1,
                price_per_unit_cents=price,
                duration_minutes=duration,
            )
        )
    return lines


def parse_booking_request(payload: dict) -> BookingRequest:
    """
    Validate the shape of a create-booking payload.

    Every field problem is collected and reported together; nothing is
    looked up or written here.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    errors = FieldErrors()

    customer_id = read_int(payload, "customer_id", errors, required=True, minimum=1)
    package_id = read_int(payload, "package_id", errors, minimum=1)
    photographer_id = read_int(payload, "photographer_id", errors, minimum=1)

    raw_lines = payload.get("services")
    lines = _parse_lines(raw_lines, errors) if raw_lines is not None else []

    has_package = payload.get("package_id") is not None
    has_services = bool(raw_lines)
    if has_package and has_services:
        errors.add("services", "provide either package_id or services, not both")
    elif not has_package and not has_services:
        errors.add("services", "a booking needs a package_id or at least one service")

    booking_date = read_date(payload, "booking_date", errors, required=True)
    start_minute = read_time(payload, "start_time", errors, required=True)
    end_minute = read_time(payload, "end_time", errors, allow_end_of_day=True)
    duration = read_int(payload, "session_duration_minutes", errors, minimum=15, maximum=480)

    location = read_str(payload, "location", errors, required=True, min_length=5, max_length=200)
    theme = read_str(payload, "theme", errors, max_length=50)
    special_requests = read_str(payload, "special_requests", errors, max_length=500)
    is_customized = read_bool(payload, "is_customized", errors)
    customization_notes = read_str(payload, "customization_notes", errors, max_length=500)
    photographer_notes = read_str(payload, "photographer_notes", errors, max_length=1000)
    promo_code = read_str(payload, "promo_code", errors, max_length=20)

    if start_minute is not None and end_minute is not None and end_minute <= start_minute:
        errors.add("end_time", "must be after start_time")
    if (
        start_minute is not None
        and end_minute is not None
        and duration is not None
        and end_minute - start_minute != duration
    ):
        errors.add("end_time", "does not match session_duration_minutes")

    errors.raise_if_any("Invalid booking request")

    return BookingRequest(
        customer_id=customer_id,
        booking_date=booking_date,
        start_minute=start_minute,
        location=location,
        package_id=package_id,
        photographer_id=photographer_id,
        promo_code=promo_code.upper() if promo_code else None,
        lines=tuple(lines),
        end_minute=end_minute,
        session_duration_minutes=duration,
        theme=theme,
        special_requests=special_requests,
        is_customized=is_customized,
        customization_notes=customization_notes,
        photographer_notes=photographer_notes,
    )


def derive_duration(request: BookingRequest, line_durations: list[tuple[Optional[int], int]]) -> int:
    """
    Session length in minutes.

    Explicit duration wins, then end_time - start_time, then the sum of
    (line duration or 60) * quantity over the lines.
    """
    if request.session_duration_minutes is not None:
        return request.session_duration_minutes
    if request.end_minute is not None:
        return request.end_minute - request.start_minute
    return sum((minutes or DEFAULT_LINE_DURATION_MINUTES) * quantity for minutes, quantity in line_durations)
