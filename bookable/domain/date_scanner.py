"""
Rolling-horizon scan for calendar dates that may have availability.
"""

import logging
from datetime import date
from typing import Iterable, List, Sequence

from pendulum import Date, DateTime

from .models import AvailabilityRule, BlackoutRange
from .timezones import day_of_week, local_today

logger = logging.getLogger(__name__)

DEFAULT_HORIZON_DAYS = 60


def is_date_blacked_out(on_date: date, blackouts: Iterable[BlackoutRange]) -> bool:
    """Check if the ``YYYY-MM-DD`` form of ``on_date`` falls in any blackout."""
    date_str = on_date.isoformat()
    return any(blackout.covers(date_str) for blackout in blackouts)


def get_available_dates(
    rules: Sequence[AvailabilityRule],
    timezone: str,
    horizon_days: int = DEFAULT_HORIZON_DAYS,
    blackouts: Sequence[BlackoutRange] = (),
    now: DateTime | None = None,
) -> List[Date]:
    """
    Return local dates in ``[today, today + horizon_days)`` that have a
    weekday rule and are not blacked out.

    This is an optimistic filter: a returned date may still have no free slot
    once bookings and busy times are applied.
    """
    today = local_today(timezone, now=now)
    open_weekdays = {rule.day_of_week for rule in rules}

    if not open_weekdays:
        return []

    dates: List[Date] = []
    for offset in range(horizon_days):
        candidate = today.add(days=offset)

        if day_of_week(candidate) not in open_weekdays:
            continue
        if is_date_blacked_out(candidate, blackouts):
            continue

        dates.append(candidate)

    logger.debug("Found %d candidate dates within %d days (%s)", len(dates), horizon_days, timezone)
    return dates
