"""
Service layer helpers that orchestrate data sources and domain logic.
"""

from .availability_service import AvailabilityService
from .cache import CachedRepository, InMemoryCache, RedisCache
from .pool_service import PoolService
from .repository import BusyTimeSource, SchedulingRepository
from .team_service import TeamService

__all__ = [
    "AvailabilityService",
    "BusyTimeSource",
    "CachedRepository",
    "InMemoryCache",
    "PoolService",
    "RedisCache",
    "SchedulingRepository",
    "TeamService",
]
