"""
Domain layer - Pure scheduling logic without external dependencies.
"""

from .aggregation import intersect_slots, intersection_available_dates, union_available_dates, union_slots
from .date_scanner import get_available_dates, is_date_blacked_out
from .models import (
    AssignmentRecord,
    AvailabilityRule,
    BlackoutRange,
    Booking,
    BookingStatus,
    MemberStats,
    PoolMember,
    PoolType,
    ResourcePool,
    Service,
    Slot,
    TeamMember,
    TimeRange,
)
from .overlap import overlaps, overlaps_with_buffer
from .pool_policies import compute_member_stats, get_policy, select_member
from .slot_generator import SlotGenerator, generate_time_slots, get_bookings_for_date_range

__all__ = [
    "AssignmentRecord",
    "AvailabilityRule",
    "BlackoutRange",
    "Booking",
    "BookingStatus",
    "MemberStats",
    "PoolMember",
    "PoolType",
    "ResourcePool",
    "Service",
    "Slot",
    "SlotGenerator",
    "TeamMember",
    "TimeRange",
    "compute_member_stats",
    "generate_time_slots",
    "get_available_dates",
    "get_bookings_for_date_range",
    "get_policy",
    "intersect_slots",
    "intersection_available_dates",
    "is_date_blacked_out",
    "overlaps",
    "overlaps_with_buffer",
    "select_member",
    "union_available_dates",
    "union_slots",
]
