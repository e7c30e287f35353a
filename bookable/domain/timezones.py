"""
Conversion between provider-local wall-clock rules and absolute UTC instants.

DST gaps and overlaps are resolved by pendulum's own convention; nothing here
special-cases them.
"""

import re
from datetime import date, datetime
from typing import Tuple, Union

import pendulum
from pendulum import Date, DateTime
from pendulum.tz.timezone import Timezone

from .exceptions import InvalidTimeOfDayError, InvalidTimezoneError
from .models import to_utc

DateLike = Union[date, str]

_TIME_OF_DAY = re.compile(r"^(\d{2}):(\d{2})(?::(\d{2}))?$")


def ensure_timezone(name: str) -> Timezone:
    """Resolve an IANA identifier, raising InvalidTimezoneError if unknown."""
    try:
        return pendulum.timezone(name)
    except (ValueError, KeyError, TypeError) as exc:
        raise InvalidTimezoneError(f"Unknown timezone: {name!r}") from exc


def parse_time_of_day(value: str) -> Tuple[int, int]:
    """
    Parse ``HH:mm`` (or ``HH:mm:ss``, seconds ignored) into (hour, minute).
    """
    match = _TIME_OF_DAY.match(value or "")
    if not match:
        raise InvalidTimeOfDayError(f"Invalid time of day: {value!r} (expected HH:mm)")

    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        raise InvalidTimeOfDayError(f"Time of day out of range: {value!r}")
    return hour, minute


def as_date(value: DateLike) -> Date:
    """Coerce a date, a datetime (its own wall-clock date) or ``YYYY-MM-DD``."""
    if isinstance(value, datetime):
        return pendulum.date(value.year, value.month, value.day)
    if isinstance(value, date):
        return pendulum.date(value.year, value.month, value.day)
    try:
        parsed = pendulum.from_format(value, "YYYY-MM-DD")
    except ValueError as exc:
        raise ValueError(f"Invalid calendar date: {value!r} (expected YYYY-MM-DD)") from exc
    return parsed.date()


def day_of_week(value: date) -> int:
    """Weekday index with Sunday = 0 .. Saturday = 6."""
    return value.isoweekday() % 7


def local_wall_clock_to_utc(on_date: DateLike, time_of_day: str, timezone: str) -> DateTime:
    """Map a local calendar date and ``HH:mm`` in ``timezone`` to a UTC instant."""
    tz = ensure_timezone(timezone)
    local_date = as_date(on_date)
    hour, minute = parse_time_of_day(time_of_day)

    local = pendulum.datetime(
        local_date.year, local_date.month, local_date.day, hour, minute, tz=tz
    )
    return local.in_timezone("UTC")


def utc_to_zoned_wall_clock(instant, timezone: str) -> DateTime:
    """Express a UTC instant as wall-clock time in ``timezone``."""
    return to_utc(instant).in_timezone(ensure_timezone(timezone))


def local_today(timezone: str, now: DateTime | None = None) -> Date:
    """Return the current calendar date in ``timezone``."""
    current = now if now is not None else pendulum.now("UTC")
    return utc_to_zoned_wall_clock(current, timezone).date()


def local_day_bounds(on_date: DateLike, timezone: str) -> Tuple[DateTime, DateTime]:
    """Return the UTC instants bounding the local calendar day."""
    tz = ensure_timezone(timezone)
    local_date = as_date(on_date)
    start = pendulum.datetime(local_date.year, local_date.month, local_date.day, tz=tz)
    return start.start_of("day").in_timezone("UTC"), start.end_of("day").in_timezone("UTC")
