"""
Single-provider availability: slot listing, date listing and the write-time
conflict re-check.

The service coordinates reads through the repository protocols and delegates
the calculation to the pure domain functions. Slot availability it reports is
advisory; ``ensure_slot_free`` must be called again right before a booking is
written.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import List, Optional

from pendulum import Date, DateTime

from ..domain.date_scanner import DEFAULT_HORIZON_DAYS, get_available_dates, is_date_blacked_out
from ..domain.exceptions import SlotUnavailableError
from ..domain.models import Booking, Service, Slot, to_utc
from ..domain.overlap import overlaps
from ..domain.slot_generator import DEFAULT_MINIMUM_NOTICE_HOURS, generate_time_slots, get_bookings_for_date_range
from ..domain.timezones import as_date, local_day_bounds, local_today
from .repository import BusyTimeSource, SchedulingRepository, fetch_all, fetch_busy_times

logger = logging.getLogger(__name__)


class AvailabilityService:
    """Availability for one provider's own calendar."""

    def __init__(
        self,
        repository: SchedulingRepository,
        busy_source: Optional[BusyTimeSource] = None,
        minimum_notice_hours: float = DEFAULT_MINIMUM_NOTICE_HOURS,
        horizon_days: int = DEFAULT_HORIZON_DAYS,
    ) -> None:
        self._repository = repository
        self._busy_source = busy_source
        self._minimum_notice_hours = minimum_notice_hours
        self._horizon_days = horizon_days

    async def get_slots(
        self,
        provider_id: str,
        on_date: date | str,
        service: Service,
        *,
        exclude_booking_id: Optional[str] = None,
        now: DateTime | None = None,
    ) -> List[Slot]:
        """
        Slots of one local date for one provider.

        Blacked-out dates yield no slots even when reached directly, without
        going through the date listing first. ``exclude_booking_id`` lets a
        reschedule ignore the booking being moved.
        """
        local_date = as_date(on_date)
        timezone, rules_by_provider = await fetch_all(
            self._repository.get_provider_timezone(provider_id),
            self._repository.get_availability_rules([provider_id]),
        )
        rules = rules_by_provider.get(provider_id, [])
        if not rules:
            return []

        (blackouts,) = await fetch_all(
            self._repository.get_blackout_ranges([provider_id], local_date),
        )
        if is_date_blacked_out(local_date, blackouts.get(provider_id, [])):
            logger.debug("Provider %s is blacked out on %s", provider_id, local_date)
            return []

        day_start, day_end = local_day_bounds(local_date, timezone)
        bookings, busy = await fetch_all(
            self._repository.get_bookings([provider_id], day_start, day_end, exclude_booking_id),
            fetch_busy_times(self._repository, self._busy_source, [provider_id], day_start, day_end),
        )

        return generate_time_slots(
            local_date,
            rules,
            service,
            get_bookings_for_date_range(bookings.get(provider_id, []), day_start, day_end),
            timezone,
            minimum_notice_hours=self._minimum_notice_hours,
            busy_times=busy.get(provider_id, []),
            now=now,
        )

    async def get_dates(
        self,
        provider_id: str,
        horizon_days: Optional[int] = None,
        *,
        now: DateTime | None = None,
    ) -> List[Date]:
        """Dates within the horizon that may have availability."""
        timezone, rules_by_provider = await fetch_all(
            self._repository.get_provider_timezone(provider_id),
            self._repository.get_availability_rules([provider_id]),
        )
        (blackouts,) = await fetch_all(
            self._repository.get_blackout_ranges([provider_id], local_today(timezone, now=now)),
        )

        return get_available_dates(
            rules_by_provider.get(provider_id, []),
            timezone,
            horizon_days=horizon_days if horizon_days is not None else self._horizon_days,
            blackouts=blackouts.get(provider_id, []),
            now=now,
        )

    async def ensure_slot_free(
        self,
        provider_id: str,
        start,
        end,
        *,
        override_conflicts: bool = False,
    ) -> Optional[Booking]:
        """
        Re-validate ``[start, end)`` against persisted bookings and external
        busy times immediately before a booking is written.

        Raises SlotUnavailableError on conflict. With ``override_conflicts``
        nothing is raised; the first conflicting booking (if any) is returned
        so the caller can notify its client.
        """
        start_utc, end_utc = to_utc(start), to_utc(end)
        (conflicts,) = await fetch_all(
            self._repository.get_conflicting_bookings([provider_id], start_utc, end_utc),
            context="booking conflicts",
        )
        conflicts = [
            booking for booking in conflicts
            if booking.is_active and overlaps(start_utc, end_utc, booking.start_time, booking.end_time)
        ]

        if override_conflicts:
            return conflicts[0] if conflicts else None

        if conflicts:
            logger.info("Booking conflict for %s at %s", provider_id, start_utc)
            raise SlotUnavailableError(conflict=conflicts[0])

        busy = await fetch_busy_times(
            self._repository, self._busy_source, [provider_id], start_utc, end_utc
        )
        if any(overlaps(start_utc, end_utc, block.start, block.end) for block in busy[provider_id]):
            logger.info("Calendar conflict for %s at %s", provider_id, start_utc)
            raise SlotUnavailableError()

        return None
