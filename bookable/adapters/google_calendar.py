"""
Google Calendar free/busy client for external busy times.
"""

import asyncio
import logging
import time
from typing import Any, Callable, Dict, List, Optional, Sequence

import pendulum
import requests
from pendulum import DateTime

from ..domain.exceptions import DataSourceError
from ..domain.models import BusyInterval

logger = logging.getLogger(__name__)

RETRYABLE_STATUS = {429, 500, 502, 503, 504}


class GoogleCalendarClient:
    """
    Client for the Google Calendar ``freeBusy`` endpoint.

    One request per provider, issued concurrently. Access tokens come from an
    injected ``token_provider``; refreshing them is the provider's business.
    Providers without a token are reported with no busy blocks.
    """

    API_ENDPOINT = "https://www.googleapis.com/calendar/v3"

    def __init__(
        self,
        token_provider: Callable[[str], Optional[str]],
        base_url: str = API_ENDPOINT,
        timeout_seconds: float = 30,
        max_attempts: int = 3,
        initial_delay_seconds: float = 1.0,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.token_provider = token_provider
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.max_attempts = max_attempts
        self.initial_delay_seconds = initial_delay_seconds
        self.session = session or requests.Session()
        self._sleep = sleep

    async def get_busy_times(
        self,
        provider_ids: Sequence[str],
        start: DateTime,
        end: DateTime,
    ) -> Dict[str, List[BusyInterval]]:
        """
        Get busy blocks for multiple providers.

        Raises:
            DataSourceError: If any provider's calendar cannot be read
        """
        results = await asyncio.gather(
            *(asyncio.to_thread(self._fetch_provider, provider_id, start, end) for provider_id in provider_ids)
        )
        return dict(zip(provider_ids, results))

    def _fetch_provider(self, provider_id: str, start: DateTime, end: DateTime) -> List[BusyInterval]:
        access_token = self.token_provider(provider_id)
        if not access_token:
            return []

        payload = {
            "timeMin": start.in_timezone("UTC").to_iso8601_string(),
            "timeMax": end.in_timezone("UTC").to_iso8601_string(),
            "items": [{"id": "primary"}],
        }
        data = self._post_with_retry(
            f"{self.base_url}/freeBusy",
            headers={
                "Authorization": f"Bearer {access_token}",
                "Content-Type": "application/json",
            },
            payload=payload,
            provider_id=provider_id,
        )
        return self._parse_freebusy_response(data)

    def _post_with_retry(
        self,
        url: str,
        headers: Dict[str, str],
        payload: Dict[str, Any],
        provider_id: str,
    ) -> Dict[str, Any]:
        last_error: Optional[Exception] = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                response = self.session.post(url, headers=headers, json=payload, timeout=self.timeout_seconds)
                if response.status_code in RETRYABLE_STATUS:
                    raise requests.exceptions.HTTPError(
                        f"HTTP {response.status_code} from freeBusy", response=response
                    )
                response.raise_for_status()
                return response.json()

            except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as exc:
                last_error = exc
            except requests.exceptions.HTTPError as exc:
                status = exc.response.status_code if exc.response is not None else None
                if status not in RETRYABLE_STATUS:
                    raise DataSourceError(f"Failed to fetch busy times for {provider_id}: {exc}") from exc
                last_error = exc
            except (requests.exceptions.RequestException, ValueError) as exc:
                raise DataSourceError(f"Failed to fetch busy times for {provider_id}: {exc}") from exc

            if attempt < self.max_attempts:
                # Exponential backoff: 1, 2, 4 seconds
                delay = self.initial_delay_seconds * (2 ** (attempt - 1))
                logger.warning(
                    "freeBusy request for %s failed (attempt %d/%d), retrying in %.1fs: %s",
                    provider_id,
                    attempt,
                    self.max_attempts,
                    delay,
                    last_error,
                )
                self._sleep(delay)

        raise DataSourceError(
            f"Failed to fetch busy times for {provider_id} after {self.max_attempts} attempts: {last_error}"
        )

    def _parse_freebusy_response(self, response_data: Dict[str, Any]) -> List[BusyInterval]:
        """
        Parse the freeBusy response into busy intervals.

        Response format:
        {
            "calendars": {
                "primary": {
                    "busy": [{"start": "2025-01-27T15:00:00Z", "end": "..."}]
                }
            }
        }

        Raises:
            DataSourceError: If a calendar reports errors or a busy block is invalid
        """
        busy_ranges: List[BusyInterval] = []
        calendars = response_data.get("calendars", {})

        for calendar_id, calendar in calendars.items():
            errors = calendar.get("errors", [])
            if errors:
                reasons = ", ".join(str(error.get("reason")) for error in errors)
                raise DataSourceError(f"Calendar {calendar_id} could not be read: {reasons}")

            for item in calendar.get("busy", []):
                try:
                    busy_ranges.append(
                        BusyInterval(
                            start=pendulum.parse(item["start"]).in_timezone("UTC"),
                            end=pendulum.parse(item["end"]).in_timezone("UTC"),
                        )
                    )
                except (AttributeError, KeyError, TypeError, ValueError) as exc:
                    # Unreadable blocks fail the whole lookup
                    logger.error("Could not parse busy block %r from %s: %s", item, calendar_id, exc)
                    raise DataSourceError(f"Calendar {calendar_id} returned an invalid busy block: {item!r}") from exc

        return busy_ranges
