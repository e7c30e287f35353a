"""
bookable - availability and slot-resolution engine for appointment booking.
"""

__version__ = "0.3.0"
