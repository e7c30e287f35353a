"""
Adapters layer - Concrete data sources (JSON fixtures, Google Calendar).
"""

from .google_calendar import GoogleCalendarClient
from .json_repository import JsonRepository

__all__ = ["GoogleCalendarClient", "JsonRepository"]
