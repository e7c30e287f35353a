"""
Domain models for availability rules, bookings, slots and resource pools.

All rows consumed from collaborators are plain data. Instants are carried as
pendulum ``DateTime`` objects normalized to UTC; calendar dates and local
wall-clock times stay as strings until the timezone layer resolves them.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

import pendulum
from pendulum import DateTime


def to_utc(value: Any) -> DateTime:
    """Coerce an ISO 8601 string or datetime into a UTC pendulum DateTime."""
    if isinstance(value, DateTime):
        return value.in_timezone("UTC")
    if isinstance(value, datetime):
        return pendulum.instance(value).in_timezone("UTC")
    if isinstance(value, str):
        parsed = pendulum.parse(value)
        if not isinstance(parsed, DateTime):
            raise ValueError(f"Expected a date-time, got: {value}")
        return parsed.in_timezone("UTC")
    raise TypeError(f"Cannot interpret {value!r} as an instant")


@dataclass(frozen=True)
class TimeRange:
    """
    Represents an immutable time range with start and end datetime.

    Invariant: start must be before end.
    """
    start: DateTime
    end: DateTime

    def __post_init__(self):
        if self.start >= self.end:
            raise ValueError(f"Start time {self.start} must be before end time {self.end}")

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "TimeRange":
        """Build from a ``{start, end}`` mapping of ISO strings or datetimes."""
        return cls(start=to_utc(row["start"]), end=to_utc(row["end"]))

    def duration_minutes(self) -> int:
        """Return the duration in minutes."""
        return int((self.end - self.start).total_seconds() / 60)

    def __str__(self) -> str:
        return f"{self.start.format('YYYY-MM-DD HH:mm')} - {self.end.format('HH:mm')} UTC"


# Bookings and external calendar events share the same shape.
BookingInterval = TimeRange
BusyInterval = TimeRange


@dataclass(frozen=True)
class AvailabilityRule:
    """
    A recurring weekly open window in the provider's local time.

    ``day_of_week`` is 0..6 with Sunday = 0. Times are ``HH:mm`` (a trailing
    ``:ss`` is tolerated and ignored).
    """
    day_of_week: int
    start_time: str
    end_time: str

    def __post_init__(self):
        if self.day_of_week not in range(7):
            raise ValueError(f"day_of_week must be between 0 and 6, got {self.day_of_week}")

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "AvailabilityRule":
        return cls(
            day_of_week=int(row["day_of_week"]),
            start_time=str(row["start_time"]),
            end_time=str(row["end_time"]),
        )


@dataclass(frozen=True)
class BlackoutRange:
    """Inclusive ``YYYY-MM-DD`` date range in the provider's local calendar."""
    start_date: str
    end_date: str

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "BlackoutRange":
        return cls(start_date=str(row["start_date"]), end_date=str(row["end_date"]))

    def covers(self, date_str: str) -> bool:
        """Check if a ``YYYY-MM-DD`` date falls inside the range."""
        return self.start_date <= date_str <= self.end_date


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class Booking:
    """A persisted booking row as seen by the availability engine."""
    start_time: DateTime
    end_time: DateTime
    status: BookingStatus = BookingStatus.CONFIRMED
    id: Optional[str] = None
    provider_id: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Booking":
        return cls(
            start_time=to_utc(row["start_time"]),
            end_time=to_utc(row["end_time"]),
            status=BookingStatus(row.get("status", BookingStatus.CONFIRMED.value)),
            id=row.get("id"),
            provider_id=row.get("provider_id"),
        )

    @property
    def is_active(self) -> bool:
        """Cancelled bookings never occupy time."""
        return self.status is not BookingStatus.CANCELLED

    def interval(self) -> BookingInterval:
        return BookingInterval(start=self.start_time, end=self.end_time)


@dataclass(frozen=True)
class Service:
    """Duration and buffer of the service (meeting type) being booked."""
    duration_minutes: int
    buffer_minutes: int = 0

    def __post_init__(self):
        if self.duration_minutes <= 0:
            raise ValueError("duration_minutes must be greater than zero")
        if self.buffer_minutes < 0:
            raise ValueError("buffer_minutes must not be negative")


@dataclass(frozen=True)
class Slot:
    """
    A candidate bookable window with its computed availability.

    ``start`` and ``end`` are UTC instants; ``end = start + duration``.
    """
    start: DateTime
    end: DateTime
    available: bool

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the wire shape used by the slot-listing endpoint."""
        return {
            "start": self.start.to_iso8601_string(),
            "end": self.end.to_iso8601_string(),
            "available": self.available,
        }

    def format_display(self, timezone: str = "UTC") -> str:
        """
        Format the slot for display in the given timezone.
        Format: Weekday, YYYY-MM-DD | HH:mm - HH:mm
        """
        start = self.start.in_timezone(timezone)
        end = self.end.in_timezone(timezone)
        return f"{start.format('dddd, YYYY-MM-DD')} | {start.format('HH:mm')} - {end.format('HH:mm')}"


class PoolType(str, Enum):
    """Assignment policy of a resource pool."""
    ROUND_ROBIN = "round_robin"
    LOAD_BALANCED = "load_balanced"
    PRIORITY = "priority"


@dataclass(frozen=True)
class ResourcePool:
    id: str
    pool_type: PoolType

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "ResourcePool":
        return cls(id=str(row["id"]), pool_type=PoolType(row["pool_type"]))


@dataclass(frozen=True)
class PoolMember:
    """Membership of one provider in a resource pool."""
    provider_id: str
    priority: int = 0
    is_active: bool = True
    max_bookings_per_day: Optional[int] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "PoolMember":
        return cls(
            provider_id=str(row["provider_id"]),
            priority=int(row.get("priority", 0)),
            is_active=bool(row.get("is_active", True)),
            max_bookings_per_day=row.get("max_bookings_per_day"),
        )


@dataclass(frozen=True)
class AssignmentRecord:
    """One row of booking-assignment history."""
    provider_id: str
    assigned_at: DateTime
    booking_start: DateTime

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "AssignmentRecord":
        return cls(
            provider_id=str(row["provider_id"]),
            assigned_at=to_utc(row["assigned_at"]),
            booking_start=to_utc(row["booking_start"]),
        )


@dataclass
class MemberStats:
    """Per-request load statistics for one pool or team member."""
    provider_id: str
    bookings_today: int = 0
    bookings_this_week: int = 0
    last_assigned_at: Optional[DateTime] = None
    max_per_day: Optional[int] = None

    @property
    def at_daily_cap(self) -> bool:
        return self.max_per_day is not None and self.bookings_today >= self.max_per_day


@dataclass(frozen=True)
class TeamMember:
    """Member of a multi-person booking link."""
    provider_id: str
    is_required: bool = True

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "TeamMember":
        return cls(
            provider_id=str(row["provider_id"]),
            is_required=bool(row.get("is_required", True)),
        )
