"""
Domain-specific exception hierarchy for the booking availability engine.
"""


class BookableError(Exception):
    """Base class for all application-level errors."""


class InvalidTimezoneError(BookableError, ValueError):
    """Raised when an IANA timezone identifier cannot be resolved."""


class InvalidTimeOfDayError(BookableError, ValueError):
    """Raised when a time-of-day string is not in HH:mm form."""


class ConfigError(BookableError, ValueError):
    """Raised when the configuration file cannot be used."""


class DataSourceError(BookableError):
    """Raised by collaborators when rows or busy times cannot be fetched."""


class AvailabilityLookupError(BookableError):
    """Raised when availability cannot be determined."""


class SlotUnavailableError(BookableError):
    """Raised when a requested time range conflicts with existing bookings."""

    def __init__(self, message: str = "This time slot is no longer available", conflict=None):
        super().__init__(message)
        self.conflict = conflict


class PoolNotFoundError(BookableError):
    """Raised when a resource pool id is unknown."""
