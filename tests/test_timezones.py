"""
Tests for timezone normalization helpers.
"""

from datetime import date

import pendulum
import pytest

from bookable.domain.exceptions import InvalidTimeOfDayError, InvalidTimezoneError
from bookable.domain.timezones import (
    as_date,
    day_of_week,
    ensure_timezone,
    local_day_bounds,
    local_today,
    local_wall_clock_to_utc,
    parse_time_of_day,
    utc_to_zoned_wall_clock,
)


class TestTimezoneResolution:
    """Tests for ensure_timezone."""

    def test_known_timezone(self):
        assert ensure_timezone("Europe/Berlin").name == "Europe/Berlin"

    def test_unknown_timezone_raises(self):
        with pytest.raises(InvalidTimezoneError):
            ensure_timezone("Mars/Olympus_Mons")

    def test_invalid_timezone_is_value_error(self):
        """Malformed inputs surface as programming errors."""
        with pytest.raises(ValueError):
            local_wall_clock_to_utc("2025-01-27", "09:00", "Not/AZone")


class TestTimeOfDay:
    """Tests for parse_time_of_day."""

    def test_hours_and_minutes(self):
        assert parse_time_of_day("09:30") == (9, 30)

    def test_seconds_are_ignored(self):
        assert parse_time_of_day("17:00:00") == (17, 0)

    @pytest.mark.parametrize("value", ["9:30", "0930", "24:00", "12:60", "", "noon"])
    def test_invalid_values_raise(self, value):
        with pytest.raises(InvalidTimeOfDayError):
            parse_time_of_day(value)


class TestDates:
    """Tests for calendar date helpers."""

    def test_as_date_from_string(self):
        assert as_date("2025-01-27") == pendulum.date(2025, 1, 27)

    def test_as_date_from_datetime_keeps_wall_clock_date(self):
        instant = pendulum.datetime(2025, 1, 27, 23, 30, tz="America/New_York")
        assert as_date(instant) == pendulum.date(2025, 1, 27)

    def test_as_date_rejects_garbage(self):
        with pytest.raises(ValueError):
            as_date("27/01/2025")

    def test_day_of_week_sunday_is_zero(self):
        assert day_of_week(date(2025, 1, 26)) == 0
        assert day_of_week(date(2025, 1, 27)) == 1
        assert day_of_week(date(2025, 2, 1)) == 6


class TestWallClockConversion:
    """Tests for local/UTC conversion."""

    def test_winter_offset(self):
        result = local_wall_clock_to_utc("2025-01-27", "09:00", "Europe/Berlin")
        assert result == pendulum.datetime(2025, 1, 27, 8, 0, tz="UTC")

    def test_summer_offset(self):
        result = local_wall_clock_to_utc("2025-07-01", "09:00", "Europe/Berlin")
        assert result == pendulum.datetime(2025, 7, 1, 7, 0, tz="UTC")

    def test_utc_to_zoned_wall_clock(self):
        local = utc_to_zoned_wall_clock("2025-01-27T08:00:00Z", "Europe/Berlin")
        assert (local.hour, local.minute) == (9, 0)

    def test_local_today_crosses_date_line(self):
        now = pendulum.datetime(2025, 1, 27, 12, 0, tz="UTC")
        assert local_today("Pacific/Auckland", now=now) == pendulum.date(2025, 1, 28)
        assert local_today("UTC", now=now) == pendulum.date(2025, 1, 27)

    def test_local_day_bounds(self):
        start, end = local_day_bounds("2025-01-27", "Europe/Berlin")
        assert start == pendulum.datetime(2025, 1, 26, 23, 0, tz="UTC")
        assert (end.day, end.hour, end.minute) == (27, 22, 59)
