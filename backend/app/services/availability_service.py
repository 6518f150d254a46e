# Overview: Store-backed availability lookups for photographers.

"""
Availability Service

Loads a photographer's schedule and the bookings that occupy the requested
date, then defers to the pure engine in availability.py. The booking service
calls check_slot() inside its write transaction, after the per-day lock, so
the answer it acts on cannot be invalidated by a concurrent writer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Optional

from flask import current_app, has_app_context

from app.errors import NotFoundError, ValidationError
from app.stores import get_stores
from app.time_utils import MINUTES_PER_DAY, format_hhmm, parse_hhmm, to_business_time, utcnow
from .availability import (
    CandidateCheck,
    TimeWindow,
    busy_window,
    check_candidate,
    clip_windows,
    compute_free_windows,
    earliest_start_minute,
    enumerate_slots,
    resolve_working_windows,
)


MIN_SESSION_MINUTES = 15
MAX_SESSION_MINUTES = 480


@dataclass(frozen=True)
class AvailableSlots:
    photographer_id: int
    date: date
    duration_minutes: int
    slots: list = field(default_factory=list)
    reason: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "photographer_id": self.photographer_id,
            "date": self.date.isoformat(),
            "duration_minutes": self.duration_minutes,
            "slots": [s.to_dict() for s in self.slots],
            "reason": self.reason,
        }


def validate_duration(duration_minutes: int) -> None:
    if not (MIN_SESSION_MINUTES <= duration_minutes <= MAX_SESSION_MINUTES):
        raise ValidationError(
            f"Session duration must be between {MIN_SESSION_MINUTES} and {MAX_SESSION_MINUTES} minutes",
            details={"duration_minutes": f"must be between {MIN_SESSION_MINUTES} and {MAX_SESSION_MINUTES}"},
        )


def _load_schedule(photographer_id: int, stores):
    photographer = stores.photographers.get(photographer_id)
    if photographer is None or not photographer.is_active:
        raise NotFoundError(f"Photographer {photographer_id} not found")
    return stores.photographers.load_schedule(photographer_id)


def _busy_windows(photographer_id: int, target_date: date, stores, exclude_booking_id: Optional[int]) -> list:
    bookings = stores.bookings.list_blocking(photographer_id, target_date, exclude_booking_id=exclude_booking_id)
    return [busy_window(parse_hhmm(b.start_time), b.session_duration_minutes) for b in bookings]


def _earliest_minute(schedule, target_date: date, now: datetime) -> Optional[int]:
    earliest = to_business_time(now) + timedelta(hours=schedule.booking_lead_time_hours)
    return earliest_start_minute(target_date, earliest)


def get_available_slots(
    photographer_id: int,
    target_date: date,
    duration_minutes: int,
    *,
    step_minutes: Optional[int] = None,
    exclude_booking_id: Optional[int] = None,
    stores=None,
    now: Optional[datetime] = None,
) -> AvailableSlots:
    """
    Free windows for a photographer on a date.

    Without step_minutes the result is the maximal free windows that fit the
    duration. With step_minutes (or stepped=True at the route) each window is
    cut into fixed-length slots starting every step minutes.
    Slots starting before now + booking lead time are dropped.
    """
    validate_duration(duration_minutes)
    stores = stores or get_stores()
    now = now or utcnow()

    schedule = _load_schedule(photographer_id, stores)
    resolved = resolve_working_windows(schedule, target_date)
    if not resolved.windows:
        return AvailableSlots(photographer_id, target_date, duration_minutes, [], resolved.reason)

    working = clip_windows(resolved.windows, _earliest_minute(schedule, target_date, now))
    busy = _busy_windows(photographer_id, target_date, stores, exclude_booking_id)
    free = compute_free_windows(working, busy, duration_minutes)
    if step_minutes:
        free = enumerate_slots(free, duration_minutes, step_minutes)

    reason = None
    if not free:
        reason = "No free window long enough for the requested duration"
    return AvailableSlots(photographer_id, target_date, duration_minutes, free, reason or resolved.reason)


def check_slot(
    photographer_id: int,
    target_date: date,
    start_minute: int,
    end_minute: int,
    *,
    exclude_booking_id: Optional[int] = None,
    stores=None,
    now: Optional[datetime] = None,
) -> CandidateCheck:
    """Validate one candidate window; returns the reason when it is rejected."""
    stores = stores or get_stores()
    now = now or utcnow()
    if not (0 <= start_minute < end_minute <= MINUTES_PER_DAY):
        raise ValidationError(
            "Slot end must be after its start within the same day",
            details={"end_time": "must be after start_time"},
        )
    candidate = TimeWindow(start_minute, end_minute)

    schedule = _load_schedule(photographer_id, stores)
    resolved = resolve_working_windows(schedule, target_date)
    if not resolved.windows:
        return CandidateCheck(False, resolved.reason)

    earliest = _earliest_minute(schedule, target_date, now)
    if earliest is not None and candidate.start < earliest:
        if schedule.booking_lead_time_hours:
            return CandidateCheck(
                False, f"Bookings need at least {schedule.booking_lead_time_hours} hours notice"
            )
        return CandidateCheck(False, "Requested time has already passed")

    busy = _busy_windows(photographer_id, target_date, stores, exclude_booking_id)
    result = check_candidate(resolved.windows, busy, candidate)
    if not result.available and has_app_context():
        current_app.logger.info(
            "Slot %s-%s on %s rejected for photographer %s: %s",
            format_hhmm(start_minute), format_hhmm(end_minute), target_date, photographer_id, result.reason,
        )
    return result


def is_slot_available(
    photographer_id: int,
    target_date: date,
    start_minute: int,
    end_minute: int,
    *,
    exclude_booking_id: Optional[int] = None,
    stores=None,
    now: Optional[datetime] = None,
) -> bool:
    return check_slot(
        photographer_id,
        target_date,
        start_minute,
        end_minute,
        exclude_booking_id=exclude_booking_id,
        stores=stores,
        now=now,
    ).available
