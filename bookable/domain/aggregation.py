"""
Combining per-member availability into one virtual calendar.

Two semantics are supported:

* union (resource pools): a slot or date is open if ANY member is open
* intersection (team booking links): a slot or date is open only if ALL
  required members are open
"""

import logging
from typing import Dict, List, Mapping, Sequence, Set

from pendulum import Date, DateTime

from .date_scanner import DEFAULT_HORIZON_DAYS, is_date_blacked_out
from .models import AvailabilityRule, BlackoutRange, Slot
from .timezones import day_of_week, local_today

logger = logging.getLogger(__name__)


def _slot_map(slots: Sequence[Slot]) -> Dict[DateTime, bool]:
    return {slot.start: slot.available for slot in slots}


def union_slots(member_slots: Mapping[str, Sequence[Slot]], duration_minutes: int) -> List[Slot]:
    """
    Merge members' slots keyed by start instant.

    A start instant produced by any member appears in the result; it is
    available if at least one member has it available. Members lacking the
    key simply do not contribute.
    """
    maps = [_slot_map(slots) for slots in member_slots.values()]
    all_starts = sorted({start for slot_map in maps for start in slot_map})

    return [
        Slot(
            start=start,
            end=start.add(minutes=duration_minutes),
            available=any(slot_map.get(start) is True for slot_map in maps),
        )
        for start in all_starts
    ]


def intersect_slots(
    base_slots: Sequence[Slot],
    other_member_slots: Sequence[Sequence[Slot]],
) -> List[Slot]:
    """
    Keep the first required member's grid and mark each slot available only
    if every other required member has the same start available.
    """
    result = list(base_slots)

    for slots in other_member_slots:
        available_starts = {slot.start for slot in slots if slot.available}
        result = [
            Slot(start=slot.start, end=slot.end, available=slot.available and slot.start in available_starts)
            for slot in result
        ]

    return result


def _weekdays(rules: Sequence[AvailabilityRule]) -> Set[int]:
    return {rule.day_of_week for rule in rules}


def union_available_dates(
    member_rules: Mapping[str, Sequence[AvailabilityRule]],
    member_blackouts: Mapping[str, Sequence[BlackoutRange]],
    timezone: str,
    horizon_days: int = DEFAULT_HORIZON_DAYS,
    now: DateTime | None = None,
) -> List[Date]:
    """
    Dates on which at least one member has a weekday rule and is not
    blacked out.
    """
    today = local_today(timezone, now=now)
    weekdays_by_member = {member: _weekdays(rules) for member, rules in member_rules.items()}
    union_days: Set[int] = set().union(*weekdays_by_member.values()) if weekdays_by_member else set()

    if not union_days:
        return []

    dates: List[Date] = []
    for offset in range(horizon_days):
        candidate = today.add(days=offset)
        weekday = day_of_week(candidate)

        if weekday not in union_days:
            continue

        if any(
            weekday in weekdays and not is_date_blacked_out(candidate, member_blackouts.get(member, ()))
            for member, weekdays in weekdays_by_member.items()
        ):
            dates.append(candidate)

    return dates


def intersection_available_dates(
    member_rules: Mapping[str, Sequence[AvailabilityRule]],
    member_blackouts: Mapping[str, Sequence[BlackoutRange]],
    timezone: str,
    horizon_days: int = DEFAULT_HORIZON_DAYS,
    now: DateTime | None = None,
) -> List[Date]:
    """
    Dates on which every member has a weekday rule and none is blacked out.
    """
    today = local_today(timezone, now=now)

    if not member_rules:
        return []

    weekday_sets = [_weekdays(rules) for rules in member_rules.values()]
    common_days = set.intersection(*weekday_sets)

    if not common_days:
        logger.debug("Members share no weekday; no common dates")
        return []

    dates: List[Date] = []
    for offset in range(horizon_days):
        candidate = today.add(days=offset)

        if day_of_week(candidate) not in common_days:
            continue

        if any(is_date_blacked_out(candidate, blackouts) for blackouts in member_blackouts.values()):
            continue

        dates.append(candidate)

    return dates
