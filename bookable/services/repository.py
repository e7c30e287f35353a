"""
Protocols for the data-fetch collaborators consumed by the services.

Implementations return plain rows converted to domain models. Any failure to
read must surface as ``DataSourceError``; the services turn that into
``AvailabilityLookupError`` rather than reporting time as free.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Dict, List, Optional, Protocol, Sequence, Set, TypeVar

from pendulum import Date, DateTime

from ..domain.exceptions import AvailabilityLookupError, DataSourceError
from ..domain.models import (
    AssignmentRecord,
    AvailabilityRule,
    BlackoutRange,
    Booking,
    BusyInterval,
    PoolMember,
    ResourcePool,
    TeamMember,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SchedulingRepository(Protocol):
    """Protocol describing the persisted scheduling data the services need."""

    async def get_provider_timezone(self, provider_id: str) -> str:
        """Return the provider's IANA timezone."""

    async def get_availability_rules(
        self, provider_ids: Sequence[str]
    ) -> Dict[str, List[AvailabilityRule]]:
        """Return active weekly rules per provider."""

    async def get_blackout_ranges(
        self, provider_ids: Sequence[str], on_or_after: Date
    ) -> Dict[str, List[BlackoutRange]]:
        """Return blackout ranges ending on or after ``on_or_after`` per provider."""

    async def get_bookings(
        self,
        provider_ids: Sequence[str],
        start: DateTime,
        end: DateTime,
        exclude_booking_id: Optional[str] = None,
    ) -> Dict[str, List[Booking]]:
        """Return non-cancelled bookings starting within [start, end] per provider."""

    async def get_conflicting_bookings(
        self, provider_ids: Sequence[str], start: DateTime, end: DateTime
    ) -> List[Booking]:
        """Return non-cancelled bookings overlapping the half-open range [start, end)."""

    async def get_pool(self, pool_id: str) -> Optional[ResourcePool]:
        """Return the pool, or None if unknown."""

    async def get_pool_members(self, pool_id: str) -> List[PoolMember]:
        """Return active members ordered by priority, highest first."""

    async def get_assignments(
        self, provider_ids: Sequence[str], since: DateTime
    ) -> List[AssignmentRecord]:
        """Return assignments whose booking starts at or after ``since``."""

    async def get_calendar_connected(self, provider_ids: Sequence[str]) -> Set[str]:
        """Return the providers with an external calendar connected."""

    async def get_team_members(self, link_id: str) -> List[TeamMember]:
        """Return the members of a multi-person booking link."""


class BusyTimeSource(Protocol):
    """Protocol describing an external calendar free/busy lookup."""

    async def get_busy_times(
        self,
        provider_ids: Sequence[str],
        start: DateTime,
        end: DateTime,
    ) -> Dict[str, List[BusyInterval]]:
        """Return busy blocks per provider."""


async def fetch_all(*aws: Awaitable, context: str = "availability") -> List:
    """
    Await reads concurrently and fail loudly if any of them fails.
    """
    try:
        return list(await asyncio.gather(*aws))
    except DataSourceError as exc:
        logger.error("Could not load %s data: %s", context, exc)
        raise AvailabilityLookupError(f"Cannot determine {context}: {exc}") from exc


async def fetch_busy_times(
    repository: SchedulingRepository,
    busy_source: Optional[BusyTimeSource],
    provider_ids: Sequence[str],
    start: DateTime,
    end: DateTime,
) -> Dict[str, List[BusyInterval]]:
    """
    Fetch external busy blocks for the providers that have a calendar
    connected. Every requested provider appears in the result.
    """
    busy: Dict[str, List[BusyInterval]] = {provider_id: [] for provider_id in provider_ids}
    if busy_source is None or not provider_ids:
        return busy

    (connected,) = await fetch_all(
        repository.get_calendar_connected(provider_ids), context="calendar connections"
    )
    connected_ids = [provider_id for provider_id in provider_ids if provider_id in connected]
    if not connected_ids:
        return busy

    (fetched,) = await fetch_all(
        busy_source.get_busy_times(connected_ids, start, end), context="calendar busy times"
    )
    for provider_id in connected_ids:
        busy[provider_id] = list(fetched.get(provider_id, []))
    return busy
