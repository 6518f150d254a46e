from datetime import date, datetime

import pytest

from app.errors import NotFoundError, ValidationError
from app.services import availability_service, booking_service
from app.services.availability import (
    DateOverride,
    DaySchedule,
    PhotographerSchedule,
    TimeWindow,
    WeeklySchedule,
    check_candidate,
    clip_windows,
    compute_free_windows,
    earliest_start_minute,
    enumerate_slots,
    normalize_windows,
    resolve_working_windows,
)


def hm(value: str) -> int:
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def window(start: str, end: str) -> TimeWindow:
    return TimeWindow.from_hhmm(start, end)


MONDAY_9_TO_5 = PhotographerSchedule(
    weekly=WeeklySchedule(days={0: DaySchedule(True, (window("09:00", "17:00"),))})
)
A_MONDAY = date(2026, 11, 2)


class TestTimeWindow:
    def test_back_to_back_windows_do_not_overlap(self):
        assert not window("09:00", "10:00").overlaps(window("10:00", "11:00"))
        assert window("09:30", "10:30").overlaps(window("10:00", "11:00"))

    def test_end_of_day(self):
        assert window("23:00", "24:00").end == 24 * 60

    def test_rejects_inverted_window(self):
        with pytest.raises(ValueError):
            TimeWindow(600, 600)

    def test_normalize_merges_touching_windows(self):
        merged = normalize_windows([window("13:00", "15:00"), window("09:00", "12:00"), window("12:00", "13:30")])
        assert merged == (window("09:00", "15:00"),)


class TestWorkingHours:
    def test_weekly_hours(self):
        resolved = resolve_working_windows(MONDAY_9_TO_5, A_MONDAY)
        assert resolved.windows == (window("09:00", "17:00"),)
        assert resolved.source == "weekly"

    def test_day_without_settings_takes_no_bookings(self):
        resolved = resolve_working_windows(MONDAY_9_TO_5, date(2026, 11, 3))
        assert resolved.windows == ()
        assert "does not accept bookings" in resolved.reason

    def test_unavailable_override_wins(self):
        schedule = PhotographerSchedule(
            weekly=MONDAY_9_TO_5.weekly,
            overrides=(DateOverride(A_MONDAY, False, reason="Public holiday"),),
        )
        resolved = resolve_working_windows(schedule, A_MONDAY)
        assert resolved.windows == ()
        assert resolved.reason == "Public holiday"

    def test_override_custom_hours_replace_weekly_hours(self):
        schedule = PhotographerSchedule(
            weekly=MONDAY_9_TO_5.weekly,
            overrides=(DateOverride(A_MONDAY, True, (window("13:00", "15:00"),)),),
        )
        assert resolve_working_windows(schedule, A_MONDAY).windows == (window("13:00", "15:00"),)

    def test_override_can_open_a_closed_day(self):
        tuesday = date(2026, 11, 3)
        schedule = PhotographerSchedule(
            weekly=MONDAY_9_TO_5.weekly,
            overrides=(DateOverride(tuesday, True, (window("10:00", "12:00"),)),),
        )
        assert resolve_working_windows(schedule, tuesday).windows == (window("10:00", "12:00"),)


class TestFreeWindows:
    def test_existing_booking_splits_the_day(self):
        free = compute_free_windows([window("09:00", "17:00")], [window("10:00", "11:00")], 60)

        assert free == [window("09:00", "10:00"), window("11:00", "17:00")]
        assert all(not w.overlaps(window("10:00", "11:00")) for w in free)

    def test_gaps_shorter_than_duration_are_dropped(self):
        free = compute_free_windows(
            [window("09:00", "12:00")], [window("09:45", "11:00"), window("11:30", "12:00")], 60
        )
        assert free == []

    def test_stepped_slots_never_overlap_busy_time(self):
        free = compute_free_windows([window("09:00", "17:00")], [window("10:00", "11:00")], 60)
        slots = enumerate_slots(free, 60, 30)

        assert window("09:00", "10:00") in slots
        assert window("11:00", "12:00") in slots
        assert window("09:30", "10:30") not in slots
        assert slots[-1] == window("16:00", "17:00")

    def test_duration_must_be_positive(self):
        with pytest.raises(ValueError):
            compute_free_windows([window("09:00", "17:00")], [], 0)

    def test_candidate_inside_hours_and_free(self):
        assert check_candidate([window("09:00", "17:00")], [], window("16:00", "17:00")).available

    def test_candidate_outside_hours(self):
        result = check_candidate([window("09:00", "17:00")], [], window("16:30", "17:30"))
        assert not result.available
        assert "working hours" in result.reason

    def test_candidate_overlapping_booking(self):
        result = check_candidate([window("09:00", "17:00")], [window("10:00", "11:00")], window("09:30", "10:30"))
        assert not result.available
        assert "10:00 to 11:00" in result.reason


class TestLeadTime:
    def test_future_day_is_fully_open(self):
        assert earliest_start_minute(A_MONDAY, datetime(2026, 10, 30, 12, 0)) is None

    def test_past_day_is_closed(self):
        assert earliest_start_minute(A_MONDAY, datetime(2026, 11, 3, 0, 0)) == 24 * 60

    def test_same_day_clips_to_the_next_minute(self):
        assert earliest_start_minute(A_MONDAY, datetime(2026, 11, 2, 10, 15, 30)) == hm("10:16")

    def test_clip_windows(self):
        clipped = clip_windows([window("09:00", "12:00"), window("13:00", "17:00")], hm("12:30"))
        assert clipped == [window("13:00", "17:00")]


class TestAvailabilityService:
    def test_free_windows_around_existing_booking(self, factory, now, session_date):
        photographer = factory.photographer()
        factory.booking(photographer=photographer, start_time="10:00")

        result = availability_service.get_available_slots(photographer.id, session_date, 60, now=now)

        assert [s.to_dict() for s in result.slots] == [
            {"start": "09:00", "end": "10:00"},
            {"start": "11:00", "end": "17:00"},
        ]
        assert result.reason is None

    def test_stepped_slots(self, factory, now, session_date):
        photographer = factory.photographer()
        factory.booking(photographer=photographer, start_time="10:00")

        result = availability_service.get_available_slots(photographer.id, session_date, 60, step_minutes=30, now=now)
        starts = [s.to_dict()["start"] for s in result.slots]

        assert starts[:2] == ["09:00", "11:00"]
        assert "09:30" not in starts
        assert "10:30" not in starts

    def test_cancelled_and_deleted_bookings_free_their_time(self, factory, now, session_date):
        photographer = factory.photographer()
        cancelled = factory.booking(photographer=photographer, start_time="10:00")
        deleted = factory.booking(photographer=photographer, start_time="13:00")
        booking_service.cancel_booking(cancelled.id, "Client moved abroad", "staff-1", now=now)
        booking_service.deactivate_booking(deleted.id, "admin-1", now=now)

        result = availability_service.get_available_slots(photographer.id, session_date, 60, now=now)

        assert [s.to_dict() for s in result.slots] == [{"start": "09:00", "end": "17:00"}]

    def test_closed_day_reports_reason(self, factory, now):
        photographer = factory.photographer(closed_days=(1,))

        result = availability_service.get_available_slots(photographer.id, date(2026, 11, 3), 60, now=now)

        assert result.slots == []
        assert "does not accept bookings" in result.reason

    def test_date_override_blocks_the_day(self, factory, now, session_date):
        photographer = factory.photographer()
        factory.date_override(photographer, session_date, is_available=False, reason="Out of town")

        result = availability_service.get_available_slots(photographer.id, session_date, 60, now=now)

        assert result.slots == []
        assert result.reason == "Out of town"

    def test_lead_time_hides_slots_too_soon(self, factory, session_date):
        photographer = factory.photographer(lead_time_hours=3)
        morning = datetime(2026, 11, 2, 8, 0)

        result = availability_service.get_available_slots(photographer.id, session_date, 60, now=morning)

        assert result.slots[0].to_dict()["start"] == "11:00"
        check = availability_service.check_slot(photographer.id, session_date, hm("10:00"), hm("11:00"), now=morning)
        assert not check.available
        assert "3 hours notice" in check.reason

    def test_check_slot_overlap(self, factory, now, session_date):
        photographer = factory.photographer()
        factory.booking(photographer=photographer, start_time="10:00")

        assert not availability_service.is_slot_available(photographer.id, session_date, hm("09:30"), hm("10:30"), now=now)
        assert availability_service.is_slot_available(photographer.id, session_date, hm("11:00"), hm("12:00"), now=now)

    def test_check_slot_can_ignore_one_booking(self, factory, now, session_date):
        photographer = factory.photographer()
        booking = factory.booking(photographer=photographer, start_time="10:00")

        assert availability_service.is_slot_available(
            photographer.id, session_date, hm("10:30"), hm("11:30"), exclude_booking_id=booking.id, now=now
        )

    def test_duration_bounds(self, factory, now, session_date):
        photographer = factory.photographer()
        with pytest.raises(ValidationError):
            availability_service.get_available_slots(photographer.id, session_date, 10, now=now)
        with pytest.raises(ValidationError):
            availability_service.get_available_slots(photographer.id, session_date, 600, now=now)

    def test_unknown_photographer(self, db_session, now, session_date):
        with pytest.raises(NotFoundError):
            availability_service.get_available_slots(4242, session_date, 60, now=now)
