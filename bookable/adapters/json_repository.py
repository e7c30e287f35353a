"""
In-memory scheduling repository backed by a JSON document.

Used by the CLI and in tests in place of the production datastore. It honors
the same contracts: cancelled bookings are never returned, pool members come
back active-only and ordered by priority, blackouts are filtered by end date.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Set

from pendulum import Date, DateTime

from ..domain.exceptions import DataSourceError
from ..domain.models import (
    AssignmentRecord,
    AvailabilityRule,
    BlackoutRange,
    Booking,
    BusyInterval,
    PoolMember,
    ResourcePool,
    TeamMember,
    TimeRange,
)
from ..domain.overlap import overlaps

logger = logging.getLogger(__name__)


class JsonRepository:
    """
    Repository and busy-time source over a JSON document.

    Expected top-level keys (all optional): ``providers``, ``availability``,
    ``blackout_dates``, ``bookings``, ``busy_times``, ``pools``,
    ``pool_members``, ``booking_assignments``, ``booking_links``.
    """

    def __init__(self, data: Dict[str, Any]):
        try:
            self._providers = {str(row["id"]): row for row in data.get("providers", [])}
            self._rules = [
                (str(row["provider_id"]), AvailabilityRule.from_row(row))
                for row in data.get("availability", [])
                if row.get("is_active", True)
            ]
            self._blackouts = [
                (str(row["provider_id"]), BlackoutRange.from_row(row))
                for row in data.get("blackout_dates", [])
            ]
            self._bookings = [Booking.from_row(row) for row in data.get("bookings", [])]
            self._pools = {str(row["id"]): ResourcePool.from_row(row) for row in data.get("pools", [])}
            self._pool_members = [
                (str(row["pool_id"]), PoolMember.from_row(row)) for row in data.get("pool_members", [])
            ]
            self._assignments = [
                AssignmentRecord.from_row(row) for row in data.get("booking_assignments", [])
            ]
            self._links = {
                str(row["id"]): [TeamMember.from_row(member) for member in row.get("members", [])]
                for row in data.get("booking_links", [])
            }
        except (KeyError, TypeError, ValueError) as exc:
            raise DataSourceError(f"Invalid scheduling data: {exc}") from exc

        self._busy_times = self._load_busy_times(data.get("busy_times", []))
        logger.debug("Loaded %d providers and %d busy blocks", len(self._providers), len(self._busy_times))

    @classmethod
    def from_file(cls, path: Path) -> "JsonRepository":
        """Load the repository from a JSON file."""
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as exc:
            raise DataSourceError(f"Could not read scheduling data from {path}: {exc}") from exc

        if not isinstance(data, dict):
            raise DataSourceError("Scheduling data must contain an object at the root level.")
        return cls(data)

    @staticmethod
    def _load_busy_times(rows: List[Dict[str, Any]]) -> List[tuple]:
        busy = []
        for row in rows:
            try:
                busy.append((str(row["provider_id"]), TimeRange.from_row(row)))
            except (KeyError, TypeError, ValueError) as exc:
                # A busy block that cannot be read must not leave the time open
                raise DataSourceError(f"Invalid busy block {row!r}: {exc}") from exc
        return busy

    async def get_provider_timezone(self, provider_id: str) -> str:
        provider = self._providers.get(provider_id)
        if provider is None:
            raise DataSourceError(f"Unknown provider: {provider_id}")
        return provider.get("timezone", "UTC")

    async def get_availability_rules(self, provider_ids: Sequence[str]) -> Dict[str, List[AvailabilityRule]]:
        rules: Dict[str, List[AvailabilityRule]] = {provider_id: [] for provider_id in provider_ids}
        for provider_id, rule in self._rules:
            if provider_id in rules:
                rules[provider_id].append(rule)
        return rules

    async def get_blackout_ranges(
        self, provider_ids: Sequence[str], on_or_after: Date
    ) -> Dict[str, List[BlackoutRange]]:
        cutoff = on_or_after.isoformat()
        blackouts: Dict[str, List[BlackoutRange]] = {provider_id: [] for provider_id in provider_ids}
        for provider_id, blackout in self._blackouts:
            if provider_id in blackouts and blackout.end_date >= cutoff:
                blackouts[provider_id].append(blackout)
        return blackouts

    async def get_bookings(
        self,
        provider_ids: Sequence[str],
        start: DateTime,
        end: DateTime,
        exclude_booking_id: Optional[str] = None,
    ) -> Dict[str, List[Booking]]:
        bookings: Dict[str, List[Booking]] = {provider_id: [] for provider_id in provider_ids}
        for booking in self._bookings:
            if booking.provider_id not in bookings or not booking.is_active:
                continue
            if exclude_booking_id is not None and booking.id == exclude_booking_id:
                continue
            if start <= booking.start_time <= end:
                bookings[booking.provider_id].append(booking)
        return bookings

    async def get_conflicting_bookings(
        self, provider_ids: Sequence[str], start: DateTime, end: DateTime
    ) -> List[Booking]:
        wanted = set(provider_ids)
        return [
            booking for booking in self._bookings
            if booking.provider_id in wanted
            and booking.is_active
            and overlaps(start, end, booking.start_time, booking.end_time)
        ]

    async def get_pool(self, pool_id: str) -> Optional[ResourcePool]:
        return self._pools.get(pool_id)

    async def get_pool_members(self, pool_id: str) -> List[PoolMember]:
        members = [member for pid, member in self._pool_members if pid == pool_id and member.is_active]
        return sorted(members, key=lambda member: -member.priority)

    async def get_assignments(self, provider_ids: Sequence[str], since: DateTime) -> List[AssignmentRecord]:
        wanted = set(provider_ids)
        return [
            record for record in self._assignments
            if record.provider_id in wanted and record.booking_start >= since
        ]

    async def get_calendar_connected(self, provider_ids: Sequence[str]) -> Set[str]:
        return {
            provider_id for provider_id in provider_ids
            if self._providers.get(provider_id, {}).get("calendar_connected", False)
        }

    async def get_team_members(self, link_id: str) -> List[TeamMember]:
        return list(self._links.get(link_id, []))

    async def get_busy_times(
        self,
        provider_ids: Sequence[str],
        start: DateTime,
        end: DateTime,
    ) -> Dict[str, List[BusyInterval]]:
        busy: Dict[str, List[BusyInterval]] = {provider_id: [] for provider_id in provider_ids}
        for provider_id, block in self._busy_times:
            # Check if event overlaps with requested time window
            if provider_id in busy and block.start < end and block.end > start:
                busy[provider_id].append(block)
        return busy
