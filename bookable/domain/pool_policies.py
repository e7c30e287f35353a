"""
Ranking policies used to pick one member of a resource pool.

Each pool type maps to one policy object; ``get_policy`` is the single
dispatch point. Policies only rank, they never filter. Conflict and daily-cap
filtering happens before ranking.
"""

import logging
from typing import Dict, Iterable, List, Mapping, Optional, Protocol, Sequence

from pendulum import DateTime

from .models import AssignmentRecord, MemberStats, PoolMember, PoolType
from .timezones import day_of_week, ensure_timezone

logger = logging.getLogger(__name__)


class RankingPolicy(Protocol):
    """Protocol describing a pool assignment policy."""

    pool_type: PoolType
    needs_stats: bool

    def rank(
        self,
        candidates: Sequence[PoolMember],
        stats: Mapping[str, MemberStats],
    ) -> List[PoolMember]:
        """Return candidates ordered best first."""


class PriorityPolicy:
    """Highest ``priority`` wins; ties keep the input order."""

    pool_type = PoolType.PRIORITY
    needs_stats = False

    def rank(self, candidates, stats=None):
        return sorted(candidates, key=lambda member: -member.priority)


class RoundRobinPolicy:
    """Least recently assigned wins; never-assigned members come first."""

    pool_type = PoolType.ROUND_ROBIN
    needs_stats = True

    def rank(self, candidates, stats):
        def last_assigned(member: PoolMember) -> float:
            member_stats = stats.get(member.provider_id)
            if member_stats is None or member_stats.last_assigned_at is None:
                return 0.0
            return member_stats.last_assigned_at.timestamp()

        return sorted(candidates, key=last_assigned)


class LoadBalancedPolicy:
    """Fewest bookings since the start of the week wins."""

    pool_type = PoolType.LOAD_BALANCED
    needs_stats = True

    def rank(self, candidates, stats):
        def weekly_load(member: PoolMember) -> int:
            member_stats = stats.get(member.provider_id)
            return member_stats.bookings_this_week if member_stats else 0

        return sorted(candidates, key=weekly_load)


POLICIES: Dict[PoolType, RankingPolicy] = {
    PoolType.PRIORITY: PriorityPolicy(),
    PoolType.ROUND_ROBIN: RoundRobinPolicy(),
    PoolType.LOAD_BALANCED: LoadBalancedPolicy(),
}


def get_policy(pool_type) -> RankingPolicy:
    """Return the policy for a pool type (enum member or its string value)."""
    return POLICIES[PoolType(pool_type)]


def day_and_week_bounds(instant: DateTime, timezone: str = "UTC"):
    """
    Return ``(day_start, day_end, week_start)`` around ``instant``.

    Days follow ``timezone``; weeks start on Sunday.
    """
    local = instant.in_timezone(ensure_timezone(timezone))
    day_start = local.start_of("day")
    day_end = local.end_of("day")
    week_start = day_start.subtract(days=day_of_week(day_start))
    return day_start, day_end, week_start


def compute_member_stats(
    members: Iterable,
    assignments: Iterable[AssignmentRecord],
    start_time: DateTime,
    timezone: str = "UTC",
) -> Dict[str, MemberStats]:
    """
    Count each member's assignments today and this week and find the most
    recent assignment. Only assignments whose booking starts on or after the
    week start are considered.
    """
    day_start, day_end, week_start = day_and_week_bounds(start_time, timezone)
    stats = {
        member.provider_id: MemberStats(
            provider_id=member.provider_id,
            max_per_day=getattr(member, "max_bookings_per_day", None),
        )
        for member in members
    }

    for record in assignments:
        member_stats = stats.get(record.provider_id)
        if member_stats is None or record.booking_start < week_start:
            continue

        member_stats.bookings_this_week += 1
        if day_start <= record.booking_start <= day_end:
            member_stats.bookings_today += 1
        if member_stats.last_assigned_at is None or record.assigned_at > member_stats.last_assigned_at:
            member_stats.last_assigned_at = record.assigned_at

    return stats


def select_member(
    pool_type,
    candidates: Sequence[PoolMember],
    stats: Optional[Mapping[str, MemberStats]] = None,
) -> Optional[str]:
    """
    Pick the winning provider id among conflict-free candidates.

    Members at their daily cap are dropped before ranking. Returns None when
    nobody is left.
    """
    policy = get_policy(pool_type)

    if not candidates:
        return None

    if not policy.needs_stats:
        return policy.rank(candidates, stats or {})[0].provider_id

    stats = stats or {}
    eligible = [
        member for member in candidates
        if not (stats.get(member.provider_id) and stats[member.provider_id].at_daily_cap)
    ]
    if not eligible:
        logger.debug("All %d candidates are at their daily cap", len(candidates))
        return None

    return policy.rank(eligible, stats)[0].provider_id
