"""
Tests for the rolling-horizon date scanner.
"""

import pendulum

from bookable.domain.date_scanner import get_available_dates, is_date_blacked_out
from bookable.domain.models import AvailabilityRule, BlackoutRange

# Monday
NOW = pendulum.datetime(2025, 1, 20, 12, 0, tz="UTC")
MONDAYS = [AvailabilityRule(day_of_week=1, start_time="09:00", end_time="17:00")]


class TestAvailableDates:
    """Tests for get_available_dates."""

    def test_matching_weekdays_within_horizon(self):
        dates = get_available_dates(MONDAYS, "UTC", horizon_days=14, now=NOW)
        assert dates == [pendulum.date(2025, 1, 20), pendulum.date(2025, 1, 27)]

    def test_horizon_end_is_exclusive(self):
        dates = get_available_dates(MONDAYS, "UTC", horizon_days=7, now=NOW)
        assert dates == [pendulum.date(2025, 1, 20)]

    def test_blacked_out_date_is_excluded(self):
        blackouts = [BlackoutRange(start_date="2025-01-27", end_date="2025-01-27")]
        dates = get_available_dates(MONDAYS, "UTC", horizon_days=14, blackouts=blackouts, now=NOW)
        assert dates == [pendulum.date(2025, 1, 20)]

    def test_no_rules_means_no_dates(self):
        assert get_available_dates([], "UTC", now=NOW) == []

    def test_default_horizon(self):
        dates = get_available_dates(MONDAYS, "UTC", now=NOW)
        assert len(dates) == 9
        assert dates[-1] == pendulum.date(2025, 3, 17)

    def test_today_follows_provider_timezone(self):
        """Sunday 23:30 UTC is already Monday in Berlin."""
        now = pendulum.datetime(2025, 1, 19, 23, 30, tz="UTC")

        berlin = get_available_dates(MONDAYS, "Europe/Berlin", horizon_days=1, now=now)
        utc = get_available_dates(MONDAYS, "UTC", horizon_days=1, now=now)

        assert berlin == [pendulum.date(2025, 1, 20)]
        assert utc == []


class TestBlackouts:
    """Tests for inclusive blackout ranges."""

    def test_range_bounds_are_inclusive(self):
        blackouts = [BlackoutRange(start_date="2025-12-24", end_date="2025-12-26")]

        assert is_date_blacked_out(pendulum.date(2025, 12, 24), blackouts)
        assert is_date_blacked_out(pendulum.date(2025, 12, 26), blackouts)
        assert not is_date_blacked_out(pendulum.date(2025, 12, 27), blackouts)
        assert not is_date_blacked_out(pendulum.date(2025, 12, 23), blackouts)

    def test_no_blackouts(self):
        assert not is_date_blacked_out(pendulum.date(2025, 12, 24), [])
