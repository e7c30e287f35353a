"""
Fixed-duration slot generation for a single calendar.

This is pure domain logic: no API calls, no database, no I/O. Callers fetch
rules, bookings and busy times and pass them in; "now" can be injected so the
result is fully determined by the inputs.
"""

import logging
from datetime import date
from typing import Iterable, List, Sequence

import pendulum
from pendulum import DateTime

from .models import AvailabilityRule, Booking, BookingInterval, BusyInterval, Service, Slot
from .overlap import overlaps, overlaps_with_buffer
from .timezones import as_date, day_of_week, ensure_timezone, parse_time_of_day

logger = logging.getLogger(__name__)

DEFAULT_MINIMUM_NOTICE_HOURS = 2


class SlotGenerator:
    """
    Generates back-to-back slots for one provider and one service.

    Algorithm, for every rule matching the target weekday:
    1. Walk forward from the rule's start time in steps of the service duration
    2. Stop once a slot would end after the rule's end time (ending exactly
       on it is allowed)
    3. Convert each candidate to UTC and mark it unavailable if it starts
       inside the minimum-notice window, overlaps a buffer-padded booking or
       overlaps an external busy block

    Rules are processed in input order and their slots are not de-duplicated.
    """

    def __init__(
        self,
        service: Service,
        timezone: str,
        minimum_notice_hours: float = DEFAULT_MINIMUM_NOTICE_HOURS,
    ):
        self.service = service
        self.timezone = timezone
        self.minimum_notice_hours = minimum_notice_hours
        self._tz = ensure_timezone(timezone)

    def generate(
        self,
        on_date: date,
        rules: Sequence[AvailabilityRule],
        bookings: Sequence[BookingInterval] = (),
        busy_times: Sequence[BusyInterval] = (),
        now: DateTime | None = None,
    ) -> List[Slot]:
        """
        Generate the slots of ``on_date`` (a local calendar date).

        Returns an empty list when no rule covers the date's weekday.
        """
        local_date = as_date(on_date)
        weekday = day_of_week(local_date)
        day_rules = [rule for rule in rules if rule.day_of_week == weekday]

        if not day_rules:
            return []

        current = now if now is not None else pendulum.now("UTC")
        earliest_start = current.add(minutes=int(self.minimum_notice_hours * 60))

        slots: List[Slot] = []
        for rule in day_rules:
            for slot_start in self._walk_rule(local_date, rule):
                slot_end = slot_start.add(minutes=self.service.duration_minutes)
                available = (
                    slot_start >= earliest_start
                    and not self._conflicts_with_bookings(slot_start, slot_end, bookings)
                    and not self._conflicts_with_busy_times(slot_start, slot_end, busy_times)
                )
                slots.append(Slot(start=slot_start, end=slot_end, available=available))

        logger.debug(
            "Generated %d slots for %s (%s), %d available",
            len(slots),
            local_date.to_date_string(),
            self.timezone,
            sum(1 for slot in slots if slot.available),
        )
        return slots

    def _walk_rule(self, local_date: date, rule: AvailabilityRule) -> Iterable[DateTime]:
        """Yield the UTC start of every slot that fits inside the rule."""
        start_hour, start_minute = parse_time_of_day(rule.start_time)
        end_hour, end_minute = parse_time_of_day(rule.end_time)

        # Walk in local minutes-of-day so DST shifts never move the grid.
        minute = start_hour * 60 + start_minute
        close = end_hour * 60 + end_minute
        duration = self.service.duration_minutes

        while minute + duration <= close:
            local_start = pendulum.datetime(
                local_date.year,
                local_date.month,
                local_date.day,
                minute // 60,
                minute % 60,
                tz=self._tz,
            )
            # Wall-clock times skipped by a DST jump are shifted forward by
            # pendulum and would collide with the next slot.
            if local_start.hour * 60 + local_start.minute == minute:
                yield local_start.in_timezone("UTC")
            else:
                logger.debug("Skipping nonexistent local time %02d:%02d on %s", minute // 60, minute % 60, local_date)
            minute += duration

    def _conflicts_with_bookings(
        self,
        slot_start: DateTime,
        slot_end: DateTime,
        bookings: Sequence[BookingInterval],
    ) -> bool:
        buffer_minutes = self.service.buffer_minutes
        return any(
            overlaps_with_buffer(slot_start, slot_end, booking.start, booking.end, buffer_minutes)
            for booking in bookings
        )

    @staticmethod
    def _conflicts_with_busy_times(
        slot_start: DateTime,
        slot_end: DateTime,
        busy_times: Sequence[BusyInterval],
    ) -> bool:
        # External events are checked without buffer padding.
        return any(overlaps(slot_start, slot_end, busy.start, busy.end) for busy in busy_times)


def generate_time_slots(
    on_date: date,
    rules: Sequence[AvailabilityRule],
    service: Service,
    existing_bookings: Sequence[BookingInterval],
    timezone: str,
    minimum_notice_hours: float = DEFAULT_MINIMUM_NOTICE_HOURS,
    busy_times: Sequence[BusyInterval] = (),
    now: DateTime | None = None,
) -> List[Slot]:
    """Functional entry point around :class:`SlotGenerator`."""
    generator = SlotGenerator(
        service=service,
        timezone=timezone,
        minimum_notice_hours=minimum_notice_hours,
    )
    return generator.generate(
        on_date,
        rules,
        bookings=existing_bookings,
        busy_times=busy_times,
        now=now,
    )


def get_bookings_for_date_range(
    bookings: Iterable[Booking],
    start: DateTime,
    end: DateTime,
) -> List[BookingInterval]:
    """
    Return the intervals of non-cancelled bookings starting within [start, end].
    """
    return [
        booking.interval()
        for booking in bookings
        if booking.is_active and start <= booking.start_time <= end
    ]
