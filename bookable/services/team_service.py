"""
Multi-person booking links: intersection availability and "any N of M"
member assignment.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import List, Optional, Tuple

from pendulum import Date, DateTime

from ..domain.aggregation import intersect_slots, intersection_available_dates
from ..domain.date_scanner import DEFAULT_HORIZON_DAYS, is_date_blacked_out
from ..domain.models import PoolType, Service, Slot, to_utc
from ..domain.pool_policies import compute_member_stats, day_and_week_bounds, get_policy
from ..domain.slot_generator import DEFAULT_MINIMUM_NOTICE_HOURS, generate_time_slots, get_bookings_for_date_range
from ..domain.timezones import as_date, day_of_week, local_day_bounds, local_today
from .repository import BusyTimeSource, SchedulingRepository, fetch_all, fetch_busy_times

logger = logging.getLogger(__name__)

REASON_REQUIRED = "required"


class TeamService:
    """Availability where every required member must be free."""

    def __init__(
        self,
        repository: SchedulingRepository,
        busy_source: Optional[BusyTimeSource] = None,
        minimum_notice_hours: float = DEFAULT_MINIMUM_NOTICE_HOURS,
        horizon_days: int = DEFAULT_HORIZON_DAYS,
        selection_timezone: str = "UTC",
    ) -> None:
        self._repository = repository
        self._busy_source = busy_source
        self._minimum_notice_hours = minimum_notice_hours
        self._horizon_days = horizon_days
        self._selection_timezone = selection_timezone

    async def _required_member_ids(self, link_id: str) -> List[str]:
        (members,) = await fetch_all(self._repository.get_team_members(link_id), context="team members")
        return [member.provider_id for member in members if member.is_required]

    async def get_intersection_slots(
        self,
        link_id: str,
        on_date: date | str,
        service: Service,
        timezone: str,
        *,
        now: DateTime | None = None,
    ) -> List[Slot]:
        """
        Slots on the first required member's grid, available only where all
        required members are free. Any required member being blacked out or
        without a rule for the weekday empties the result.
        """
        local_date = as_date(on_date)
        required_ids = await self._required_member_ids(link_id)
        if not required_ids:
            return []

        day_start, day_end = local_day_bounds(local_date, timezone)
        rules, blackouts, bookings, busy = await fetch_all(
            self._repository.get_availability_rules(required_ids),
            self._repository.get_blackout_ranges(required_ids, local_date),
            self._repository.get_bookings(required_ids, day_start, day_end),
            fetch_busy_times(self._repository, self._busy_source, required_ids, day_start, day_end),
            context="team availability",
        )

        if any(is_date_blacked_out(local_date, blackouts.get(member_id, [])) for member_id in required_ids):
            return []

        weekday = day_of_week(local_date)
        per_member: List[List[Slot]] = []
        for member_id in required_ids:
            member_rules = rules.get(member_id, [])
            if not any(rule.day_of_week == weekday for rule in member_rules):
                logger.debug("Team %s: %s has no hours on %s", link_id, member_id, local_date)
                return []

            per_member.append(
                generate_time_slots(
                    local_date,
                    member_rules,
                    service,
                    get_bookings_for_date_range(bookings.get(member_id, []), day_start, day_end),
                    timezone,
                    minimum_notice_hours=self._minimum_notice_hours,
                    busy_times=busy.get(member_id, []),
                    now=now,
                )
            )

        return intersect_slots(per_member[0], per_member[1:])

    async def get_intersection_dates(
        self,
        link_id: str,
        timezone: str,
        horizon_days: Optional[int] = None,
        *,
        now: DateTime | None = None,
    ) -> List[Date]:
        """Dates where every required member has a rule and none is blacked out."""
        required_ids = await self._required_member_ids(link_id)
        if not required_ids:
            return []

        rules, blackouts = await fetch_all(
            self._repository.get_availability_rules(required_ids),
            self._repository.get_blackout_ranges(required_ids, local_today(timezone, now=now)),
            context="team availability",
        )

        return intersection_available_dates(
            {member_id: rules.get(member_id, []) for member_id in required_ids},
            {member_id: blackouts.get(member_id, []) for member_id in required_ids},
            timezone,
            horizon_days=horizon_days if horizon_days is not None else self._horizon_days,
            now=now,
        )

    async def assign_members(
        self,
        link_id: str,
        start_time,
        end_time,
        min_required: int,
        assignment_mode: PoolType | str = PoolType.ROUND_ROBIN,
    ) -> List[Tuple[str, str]]:
        """
        Choose who attends a flexible team booking.

        Every required member is assigned. If fewer than ``min_required`` are
        assigned, conflict-free optional members are added in the order of
        ``assignment_mode`` (round robin or load balanced). Returns
        ``(provider_id, reason)`` pairs; persisting them is up to the caller.
        """
        policy = get_policy(assignment_mode)
        if policy.pool_type is PoolType.PRIORITY:
            raise ValueError("Team assignment supports round_robin or load_balanced only")

        start_utc, end_utc = to_utc(start_time), to_utc(end_time)
        (members,) = await fetch_all(self._repository.get_team_members(link_id), context="team members")
        if not members:
            return []

        member_ids = [member.provider_id for member in members]
        _, _, week_start = day_and_week_bounds(start_utc, self._selection_timezone)
        conflicts, assignments = await fetch_all(
            self._repository.get_conflicting_bookings(member_ids, start_utc, end_utc),
            self._repository.get_assignments(member_ids, week_start.in_timezone("UTC")),
            context="team assignment",
        )
        busy_ids = {booking.provider_id for booking in conflicts if booking.is_active}

        assigned = [(member.provider_id, REASON_REQUIRED) for member in members if member.is_required]
        additional_needed = min_required - len(assigned)

        optional = [
            member for member in members
            if not member.is_required and member.provider_id not in busy_ids
        ]
        if additional_needed > 0 and optional:
            stats = compute_member_stats(members, assignments, start_utc, self._selection_timezone)
            ranked = policy.rank(optional, stats)
            assigned.extend(
                (member.provider_id, policy.pool_type.value) for member in ranked[:additional_needed]
            )

        return assigned
