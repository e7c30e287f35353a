"""
Resource pools: union availability across members and member selection.

Reads for all members are batched and issued together; the union and the
ranking themselves are pure functions in the domain layer.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Dict, List, Optional

from pendulum import Date, DateTime

from ..domain.aggregation import union_available_dates, union_slots
from ..domain.date_scanner import DEFAULT_HORIZON_DAYS, is_date_blacked_out
from ..domain.exceptions import PoolNotFoundError
from ..domain.models import PoolType, Service, Slot, to_utc
from ..domain.pool_policies import compute_member_stats, day_and_week_bounds, get_policy, select_member
from ..domain.slot_generator import DEFAULT_MINIMUM_NOTICE_HOURS, generate_time_slots, get_bookings_for_date_range
from ..domain.timezones import as_date, day_of_week, local_day_bounds, local_today
from .repository import BusyTimeSource, SchedulingRepository, fetch_all, fetch_busy_times

logger = logging.getLogger(__name__)


class PoolService:
    """
    Availability and assignment for multi-provider resource pools.

    Pool availability uses union semantics: a slot or date is open if any
    active, non-blacked-out member can serve it.
    """

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

    async def _active_member_ids(self, pool_id: str) -> List[str]:
        (members,) = await fetch_all(self._repository.get_pool_members(pool_id), context="pool members")
        return [member.provider_id for member in members if member.is_active]

    async def get_union_slots(
        self,
        pool_id: str,
        on_date: date | str,
        service: Service,
        timezone: str,
        *,
        now: DateTime | None = None,
    ) -> List[Slot]:
        """Combined slots of one local date; available if any member is free."""
        local_date = as_date(on_date)
        member_ids = await self._active_member_ids(pool_id)
        if not member_ids:
            return []

        day_start, day_end = local_day_bounds(local_date, timezone)
        rules, blackouts, bookings, busy = await fetch_all(
            self._repository.get_availability_rules(member_ids),
            self._repository.get_blackout_ranges(member_ids, local_date),
            self._repository.get_bookings(member_ids, day_start, day_end),
            fetch_busy_times(self._repository, self._busy_source, member_ids, day_start, day_end),
            context="pool availability",
        )

        weekday = day_of_week(local_date)
        member_slots: Dict[str, List[Slot]] = {}
        for member_id in member_ids:
            if is_date_blacked_out(local_date, blackouts.get(member_id, [])):
                continue

            member_rules = rules.get(member_id, [])
            if not any(rule.day_of_week == weekday for rule in member_rules):
                continue

            member_slots[member_id] = generate_time_slots(
                local_date,
                member_rules,
                service,
                get_bookings_for_date_range(bookings.get(member_id, []), day_start, day_end),
                timezone,
                minimum_notice_hours=self._minimum_notice_hours,
                busy_times=busy.get(member_id, []),
                now=now,
            )

        logger.debug("Pool %s: %d of %d members open on %s", pool_id, len(member_slots), len(member_ids), local_date)
        return union_slots(member_slots, service.duration_minutes)

    async def get_available_dates(
        self,
        pool_id: str,
        timezone: str,
        horizon_days: Optional[int] = None,
        *,
        now: DateTime | None = None,
    ) -> List[Date]:
        """Dates on which at least one member has a rule and no blackout."""
        member_ids = await self._active_member_ids(pool_id)
        if not member_ids:
            return []

        rules, blackouts = await fetch_all(
            self._repository.get_availability_rules(member_ids),
            self._repository.get_blackout_ranges(member_ids, local_today(timezone, now=now)),
            context="pool availability",
        )

        return union_available_dates(
            {member_id: rules.get(member_id, []) for member_id in member_ids},
            blackouts,
            timezone,
            horizon_days=horizon_days if horizon_days is not None else self._horizon_days,
            now=now,
        )

    async def select_member(
        self,
        pool_id: str,
        start_time,
        end_time,
        pool_type: PoolType | str | None = None,
    ) -> Optional[str]:
        """
        Pick the provider a pool booking should be assigned to.

        1. Load active members, highest priority first
        2. Drop members with a non-cancelled booking overlapping the range
        3. ``priority`` pools take the first survivor
        4. Otherwise drop members at their daily cap and rank the rest by
           the pool's policy

        Returns None when no member is conflict-free and under its cap.
        Nothing is persisted.
        """
        start_utc, end_utc = to_utc(start_time), to_utc(end_time)

        if pool_type is None:
            (pool,) = await fetch_all(self._repository.get_pool(pool_id), context="pool")
            if pool is None:
                raise PoolNotFoundError(f"Unknown resource pool: {pool_id}")
            pool_type = pool.pool_type
        policy = get_policy(pool_type)

        (members,) = await fetch_all(self._repository.get_pool_members(pool_id), context="pool members")
        members = [member for member in members if member.is_active]
        if not members:
            return None

        (conflicts,) = await fetch_all(
            self._repository.get_conflicting_bookings(
                [member.provider_id for member in members], start_utc, end_utc
            ),
            context="booking conflicts",
        )
        busy_ids = {booking.provider_id for booking in conflicts if booking.is_active}
        candidates = [member for member in members if member.provider_id not in busy_ids]

        if not candidates:
            logger.info("Pool %s: every member is busy at %s", pool_id, start_utc)
            return None

        if not policy.needs_stats:
            return select_member(policy.pool_type, candidates)

        _, _, week_start = day_and_week_bounds(start_utc, self._selection_timezone)
        (assignments,) = await fetch_all(
            self._repository.get_assignments(
                [member.provider_id for member in candidates], week_start.in_timezone("UTC")
            ),
            context="assignment history",
        )
        stats = compute_member_stats(candidates, assignments, start_utc, self._selection_timezone)

        selected = select_member(policy.pool_type, candidates, stats)
        logger.info("Pool %s (%s) assigned %s", pool_id, policy.pool_type.value, selected)
        return selected
