# Overview: Pure availability engine for photographer schedules; no database access.

"""
Availability Engine

WHY: A photographer must never be double-booked, and customers need to see
which windows are still open on a given date.

DESIGN:
- Everything here works on plain values (minutes since midnight) so the
  rules are testable without a database. availability_service.py loads the
  schedule and the busy bookings and calls into this module.
- Working hours resolve override-first: a DateOverride for the date always
  wins over the weekly default.
- Busy intervals are half-open [start, start + duration); two windows overlap
  when a.start < b.end and a.end > b.start, so back-to-back sessions are fine.
- Free windows are the maximal gaps at least `duration` long. Discrete
  fixed-length slots are only produced when a step is requested.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Iterable, Optional, Sequence

from app.time_utils import MINUTES_PER_DAY, format_hhmm, parse_hhmm


@dataclass(frozen=True, order=True)
class TimeWindow:
    start: int
    end: int

    def __post_init__(self):
        if not (0 <= self.start < self.end <= MINUTES_PER_DAY):
            raise ValueError(
                f"Invalid time window {self.start}-{self.end}: start must be before end within one day"
            )

    @classmethod
    def from_hhmm(cls, start: str, end: str) -> "TimeWindow":
        return cls(parse_hhmm(start), parse_hhmm(end, allow_end_of_day=True))

    @property
    def duration(self) -> int:
        return self.end - self.start

    def overlaps(self, other: "TimeWindow") -> bool:
        return self.start < other.end and self.end > other.start

    def contains(self, other: "TimeWindow") -> bool:
        return self.start <= other.start and other.end <= self.end

    def to_dict(self) -> dict:
        return {"start": format_hhmm(self.start), "end": format_hhmm(self.end)}


@dataclass(frozen=True)
class DaySchedule:
    accepts_bookings: bool = False
    windows: tuple[TimeWindow, ...] = ()


@dataclass(frozen=True)
class WeeklySchedule:
    """Keyed by date.weekday(): 0 = Monday ... 6 = Sunday."""

    days: dict = field(default_factory=dict)

    def for_weekday(self, weekday: int) -> DaySchedule:
        return self.days.get(weekday, DaySchedule())


@dataclass(frozen=True)
class DateOverride:
    date: date
    is_available: bool
    windows: tuple[TimeWindow, ...] = ()
    reason: Optional[str] = None


@dataclass(frozen=True)
class PhotographerSchedule:
    weekly: WeeklySchedule
    overrides: tuple[DateOverride, ...] = ()
    booking_lead_time_hours: int = 0

    def override_for(self, target_date: date) -> Optional[DateOverride]:
        for override in self.overrides:
            if override.date == target_date:
                return override
        return None


@dataclass(frozen=True)
class ResolvedHours:
    windows: tuple[TimeWindow, ...]
    reason: Optional[str] = None
    source: str = "weekly"


@dataclass(frozen=True)
class CandidateCheck:
    available: bool
    reason: Optional[str] = None


def normalize_windows(windows: Iterable[TimeWindow]) -> tuple[TimeWindow, ...]:
    """Sort and merge overlapping or touching windows."""
    merged: list[TimeWindow] = []
    for window in sorted(windows):
        if merged and window.start <= merged[-1].end:
            last = merged[-1]
            merged[-1] = TimeWindow(last.start, max(last.end, window.end))
        else:
            merged.append(window)
    return tuple(merged)


def resolve_working_windows(schedule: PhotographerSchedule, target_date: date) -> ResolvedHours:
    override = schedule.override_for(target_date)
    if override is not None:
        if not override.is_available:
            return ResolvedHours((), override.reason or "Photographer is unavailable on this date", "override")
        if override.windows:
            return ResolvedHours(normalize_windows(override.windows), override.reason, "override")
        # Available override without custom hours: fall back to the weekday's hours
        day = schedule.weekly.for_weekday(target_date.weekday())
        return ResolvedHours(normalize_windows(day.windows), override.reason, "override")

    day = schedule.weekly.for_weekday(target_date.weekday())
    if not day.accepts_bookings:
        return ResolvedHours((), "Photographer does not accept bookings on this day", "weekly")
    return ResolvedHours(normalize_windows(day.windows), None, "weekly")


def busy_window(start_minute: int, duration_minutes: int) -> TimeWindow:
    return TimeWindow(start_minute, min(start_minute + duration_minutes, MINUTES_PER_DAY))


def subtract_busy(window: TimeWindow, busy: Sequence[TimeWindow]) -> list[TimeWindow]:
    """Remove every busy interval from one working window."""
    remaining = [window]
    for occupied in sorted(busy):
        next_remaining = []
        for piece in remaining:
            if not piece.overlaps(occupied):
                next_remaining.append(piece)
                continue
            if piece.start < occupied.start:
                next_remaining.append(TimeWindow(piece.start, occupied.start))
            if occupied.end < piece.end:
                next_remaining.append(TimeWindow(occupied.end, piece.end))
        remaining = next_remaining
    return remaining


def compute_free_windows(
    working: Sequence[TimeWindow],
    busy: Sequence[TimeWindow],
    duration_minutes: int,
) -> list[TimeWindow]:
    """Free sub-intervals of the working windows long enough for the duration, ascending."""
    if duration_minutes <= 0:
        raise ValueError("duration_minutes must be positive")
    free: list[TimeWindow] = []
    for window in normalize_windows(working):
        for piece in subtract_busy(window, busy):
            if piece.duration >= duration_minutes:
                free.append(piece)
    return sorted(free)


def enumerate_slots(free: Sequence[TimeWindow], duration_minutes: int, step_minutes: int) -> list[TimeWindow]:
    """Fixed-length slots stepping through each free window."""
    if step_minutes <= 0:
        raise ValueError("step_minutes must be positive")
    slots: list[TimeWindow] = []
    for window in free:
        start = window.start
        while start + duration_minutes <= window.end:
            slots.append(TimeWindow(start, start + duration_minutes))
            start += step_minutes
    return slots


def earliest_start_minute(target_date: date, earliest: datetime) -> Optional[int]:
    """
    First bookable minute on target_date given the earliest allowed start.

    None means the whole day is open; MINUTES_PER_DAY means nothing is.
    """
    if target_date > earliest.date():
        return None
    if target_date < earliest.date():
        return MINUTES_PER_DAY
    return earliest.hour * 60 + earliest.minute + (1 if earliest.second or earliest.microsecond else 0)


def clip_windows(windows: Sequence[TimeWindow], earliest_minute: Optional[int]) -> list[TimeWindow]:
    if earliest_minute is None:
        return list(windows)
    clipped = []
    for window in windows:
        if window.end <= earliest_minute:
            continue
        clipped.append(TimeWindow(max(window.start, earliest_minute), window.end))
    return clipped


def check_candidate(
    working: Sequence[TimeWindow],
    busy: Sequence[TimeWindow],
    candidate: TimeWindow,
) -> CandidateCheck:
    """
    A candidate must sit entirely inside one working window and must not
    overlap any busy interval.
    """
    if not any(window.contains(candidate) for window in normalize_windows(working)):
        return CandidateCheck(False, "Requested time is outside the photographer's working hours")
    for occupied in busy:
        if candidate.overlaps(occupied):
            return CandidateCheck(
                False,
                f"Photographer already has a booking from {format_hhmm(occupied.start)} "
                f"to {format_hhmm(occupied.end)}",
            )
    return CandidateCheck(True)
