"""
Tests for single-calendar slot generation.
"""

import pendulum
import pytest

from bookable.domain.exceptions import InvalidTimeOfDayError, InvalidTimezoneError
from bookable.domain.models import AvailabilityRule, Booking, BookingInterval, BookingStatus, BusyInterval, Service
from bookable.domain.slot_generator import SlotGenerator, generate_time_slots, get_bookings_for_date_range

MONDAY = "2025-01-27"
# A week earlier, so the notice window never interferes
NOW = pendulum.datetime(2025, 1, 20, 12, 0, tz="UTC")


def _utc(hour: int, minute: int = 0):
    return pendulum.datetime(2025, 1, 27, hour, minute, tz="UTC")


def _monday(start: str, end: str):
    return [AvailabilityRule(day_of_week=1, start_time=start, end_time=end)]


def _hours(slots):
    return [(slot.start.format("HH:mm"), slot.end.format("HH:mm"), slot.available) for slot in slots]


class TestSlotGrid:
    """Tests for how slots are laid out inside a rule."""

    def test_slot_ending_at_close_is_included(self):
        """09:00-12:00 with 60 minute slots yields exactly three slots."""
        slots = generate_time_slots(MONDAY, _monday("09:00", "12:00"), Service(60), [], "UTC", now=NOW)

        assert _hours(slots) == [
            ("09:00", "10:00", True),
            ("10:00", "11:00", True),
            ("11:00", "12:00", True),
        ]

    def test_partial_trailing_slot_is_dropped(self):
        slots = generate_time_slots(MONDAY, _monday("09:00", "11:30"), Service(60), [], "UTC", now=NOW)
        assert len(slots) == 2

    def test_rule_shorter_than_duration(self):
        slots = generate_time_slots(MONDAY, _monday("09:00", "09:20"), Service(30), [], "UTC", now=NOW)
        assert slots == []

    def test_other_weekday_returns_empty(self):
        """Monday-only rules queried for a Tuesday."""
        slots = generate_time_slots("2025-01-28", _monday("09:00", "12:00"), Service(60), [], "UTC", now=NOW)
        assert slots == []

    def test_local_rules_are_converted_to_utc(self):
        slots = generate_time_slots(MONDAY, _monday("09:00", "10:00"), Service(30), [], "Europe/Berlin", now=NOW)

        assert [slot.start for slot in slots] == [_utc(8), _utc(8, 30)]

    def test_multiple_rules_are_concatenated(self):
        rules = _monday("09:00", "10:00") + _monday("14:00", "15:00")
        slots = generate_time_slots(MONDAY, rules, Service(60), [], "UTC", now=NOW)
        assert [slot.start for slot in slots] == [_utc(9), _utc(14)]

    def test_seconds_in_rule_times_are_accepted(self):
        slots = generate_time_slots(MONDAY, _monday("09:00:00", "10:00:00"), Service(60), [], "UTC", now=NOW)
        assert len(slots) == 1

    def test_slot_end_is_start_plus_duration(self):
        slots = generate_time_slots(MONDAY, _monday("09:00", "12:00"), Service(45), [], "UTC", now=NOW)
        assert all((slot.end - slot.start).in_minutes() == 45 for slot in slots)


class TestSlotAvailability:
    """Tests for conflict, buffer and notice handling."""

    def test_booking_with_buffer_blocks_padded_window(self):
        """Booking 10:00-11:00 with a 15 minute buffer blocks [09:45, 11:15)."""
        bookings = [BookingInterval(start=_utc(10), end=_utc(11))]
        slots = generate_time_slots(MONDAY, _monday("09:00", "12:00"), Service(30, 15), bookings, "UTC", now=NOW)

        assert _hours(slots) == [
            ("09:00", "09:30", True),
            ("09:30", "10:00", False),
            ("10:00", "10:30", False),
            ("10:30", "11:00", False),
            ("11:00", "11:30", False),
            ("11:30", "12:00", True),
        ]

    def test_padded_window_edges_are_bookable(self):
        """Slots ending at 09:45 or starting at 11:15 only touch the padded booking."""
        bookings = [BookingInterval(start=_utc(10), end=_utc(11))]
        slots = generate_time_slots(MONDAY, _monday("09:00", "12:00"), Service(15, 15), bookings, "UTC", now=NOW)
        available = {slot.start.format("HH:mm"): slot.available for slot in slots}

        assert available["09:30"] is True
        assert available["11:15"] is True
        for blocked in ("09:45", "10:00", "10:15", "10:30", "10:45", "11:00"):
            assert available[blocked] is False

    def test_slots_flush_against_booking_are_free(self):
        bookings = [BookingInterval(start=_utc(10), end=_utc(11))]
        slots = generate_time_slots(MONDAY, _monday("09:00", "12:00"), Service(60), bookings, "UTC", now=NOW)

        assert [slot.available for slot in slots] == [True, False, True]

    def test_busy_times_are_not_buffered(self):
        busy = [BusyInterval(start=_utc(10), end=_utc(11))]
        slots = generate_time_slots(
            MONDAY, _monday("09:00", "12:00"), Service(30, 45), [], "UTC", busy_times=busy, now=NOW
        )

        assert [slot.available for slot in slots] == [True, True, False, False, True, True]

    def test_bookings_are_buffered_where_busy_times_are_not(self):
        bookings = [BookingInterval(start=_utc(10), end=_utc(11))]
        slots = generate_time_slots(MONDAY, _monday("09:00", "12:00"), Service(30, 45), bookings, "UTC", now=NOW)

        assert [slot.available for slot in slots] == [False, False, False, False, False, False]

    def test_minimum_notice_window(self):
        """With now at 10:00 UTC and two hours notice, slots before 12:00 are closed."""
        now = _utc(10)
        slots = generate_time_slots(MONDAY, _monday("09:00", "15:00"), Service(60), [], "UTC", now=now)

        assert [slot.available for slot in slots] == [False, False, False, True, True, True]

    def test_notice_hours_are_configurable(self):
        now = _utc(10)
        slots = generate_time_slots(
            MONDAY, _monday("09:00", "15:00"), Service(60), [], "UTC", minimum_notice_hours=0, now=now
        )

        assert [slot.available for slot in slots] == [False, True, True, True, True, True]

    def test_same_inputs_same_output(self):
        bookings = [BookingInterval(start=_utc(10), end=_utc(11))]
        generator = SlotGenerator(Service(30, 15), "Europe/Berlin")

        first = generator.generate(MONDAY, _monday("08:00", "17:00"), bookings, now=NOW)
        second = generator.generate(MONDAY, _monday("08:00", "17:00"), bookings, now=NOW)

        assert first == second


class TestDaylightSavingTransitions:
    """Slots on Europe/Berlin transition Sundays."""

    SPRING_FORWARD = "2025-03-30"
    FALL_BACK = "2025-10-26"

    @staticmethod
    def _sunday(start: str, end: str):
        return [AvailabilityRule(day_of_week=0, start_time=start, end_time=end)]

    @staticmethod
    def _assert_disjoint_and_ascending(slots):
        for previous, following in zip(slots, slots[1:]):
            assert previous.start < following.start
            assert previous.end <= following.start

    def test_offset_follows_the_date(self):
        spring = generate_time_slots(
            self.SPRING_FORWARD, self._sunday("09:00", "10:00"), Service(60), [], "Europe/Berlin", now=NOW
        )
        autumn = generate_time_slots(
            self.FALL_BACK, self._sunday("09:00", "10:00"), Service(60), [], "Europe/Berlin", now=NOW
        )

        assert spring[0].start == pendulum.datetime(2025, 3, 30, 7, 0, tz="UTC")
        assert autumn[0].start == pendulum.datetime(2025, 10, 26, 8, 0, tz="UTC")

    def test_spring_forward_skips_missing_hour(self):
        """02:00 does not exist locally, so 03:00 CEST is the only slot at 01:00 UTC."""
        slots = generate_time_slots(
            self.SPRING_FORWARD, self._sunday("00:00", "05:00"), Service(60), [], "Europe/Berlin", now=NOW
        )

        assert [slot.start for slot in slots] == [
            pendulum.datetime(2025, 3, 29, 23, 0, tz="UTC"),
            pendulum.datetime(2025, 3, 30, 0, 0, tz="UTC"),
            pendulum.datetime(2025, 3, 30, 1, 0, tz="UTC"),
            pendulum.datetime(2025, 3, 30, 2, 0, tz="UTC"),
        ]
        self._assert_disjoint_and_ascending(slots)

    def test_spring_forward_rules_around_the_gap(self):
        rules = self._sunday("00:00", "02:00") + self._sunday("03:00", "05:00")
        slots = generate_time_slots(self.SPRING_FORWARD, rules, Service(60), [], "Europe/Berlin", now=NOW)

        assert [slot.start.format("MM-DD HH:mm") for slot in slots] == [
            "03-29 23:00",
            "03-30 00:00",
            "03-30 01:00",
            "03-30 02:00",
        ]
        self._assert_disjoint_and_ascending(slots)

    def test_fall_back_rules_around_the_repeated_hour(self):
        rules = self._sunday("00:00", "02:00") + self._sunday("03:00", "05:00")
        slots = generate_time_slots(self.FALL_BACK, rules, Service(60), [], "Europe/Berlin", now=NOW)

        assert [slot.start.format("MM-DD HH:mm") for slot in slots] == [
            "10-25 22:00",
            "10-25 23:00",
            "10-26 02:00",
            "10-26 03:00",
        ]
        self._assert_disjoint_and_ascending(slots)

    def test_fall_back_slots_never_collide(self):
        slots = generate_time_slots(
            self.FALL_BACK, self._sunday("00:00", "05:00"), Service(60), [], "Europe/Berlin", now=NOW
        )

        assert len(slots) == 5
        assert slots[0].start == pendulum.datetime(2025, 10, 25, 22, 0, tz="UTC")
        assert slots[-1].start == pendulum.datetime(2025, 10, 26, 3, 0, tz="UTC")
        self._assert_disjoint_and_ascending(slots)


class TestSlotInputValidation:
    """Malformed inputs raise instead of yielding empty results."""

    def test_invalid_timezone(self):
        with pytest.raises(InvalidTimezoneError):
            generate_time_slots(MONDAY, _monday("09:00", "12:00"), Service(60), [], "Nowhere/City", now=NOW)

    def test_invalid_rule_time(self):
        with pytest.raises(InvalidTimeOfDayError):
            generate_time_slots(MONDAY, _monday("9am", "12:00"), Service(60), [], "UTC", now=NOW)

    def test_service_duration_must_be_positive(self):
        with pytest.raises(ValueError):
            Service(0)


class TestBookingsForDateRange:
    """Tests for get_bookings_for_date_range."""

    def test_cancelled_bookings_are_ignored(self):
        bookings = [
            Booking(start_time=_utc(9), end_time=_utc(10), status=BookingStatus.CONFIRMED),
            Booking(start_time=_utc(10), end_time=_utc(11), status=BookingStatus.CANCELLED),
            Booking(start_time=_utc(11), end_time=_utc(12), status=BookingStatus.PENDING),
        ]

        intervals = get_bookings_for_date_range(bookings, _utc(0), _utc(23, 59))

        assert [interval.start for interval in intervals] == [_utc(9), _utc(11)]

    def test_range_is_by_start_time(self):
        bookings = [
            Booking(start_time=_utc(8), end_time=_utc(9)),
            Booking(start_time=_utc(12), end_time=_utc(13)),
        ]

        intervals = get_bookings_for_date_range(bookings, _utc(9), _utc(12))

        assert [interval.start for interval in intervals] == [_utc(12)]

    def test_cancelled_booking_leaves_slot_open(self):
        cancelled = Booking(start_time=_utc(10), end_time=_utc(11), status=BookingStatus.CANCELLED)
        intervals = get_bookings_for_date_range([cancelled], _utc(0), _utc(23, 59))

        slots = generate_time_slots(MONDAY, _monday("10:00", "11:00"), Service(60), intervals, "UTC", now=NOW)

        assert slots[0].available
