"""
Source API client.

Reads events and organizers from the Boston Tango Calendar WordPress site
("The Events Calendar" REST API, ``/wp-json/tribe/events/v1``).
"""

from datetime import UTC, date, datetime
from typing import Any, Dict, List, Tuple

import httpx

from .api_adapter import APIAdapter
from .base_adapter import AdapterConfig, FetchResult


class SourceAPIClient(APIAdapter):
    """Read-only client for the source calendar."""

    def __init__(
        self,
        base_url: str,
        per_page: int = 50,
        request_timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ):
        config = AdapterConfig(
            source_id="btc",
            base_url=base_url,
            request_timeout=request_timeout,
        )
        super().__init__(config, client=client)
        self.per_page = per_page

    @classmethod
    def from_settings(cls, settings, client: httpx.AsyncClient | None = None) -> "SourceAPIClient":
        return cls(
            base_url=settings.BTC_API_BASE,
            per_page=settings.BTC_PER_PAGE,
            request_timeout=settings.REQUEST_TIMEOUT,
            client=client,
        )

    async def fetch_events(self, day: date, per_page: int | None = None) -> FetchResult:
        """
        Fetch all events of one calendar day.

        Args:
            day: Calendar date, used as both start_date and end_date
            per_page: Page size, defaults to the client's per_page

        Returns:
            FetchResult with the events in ``raw_data`` and the full body
            in ``raw_payload``
        """
        started = datetime.now(UTC)
        params = {
            "start_date": day.isoformat(),
            "end_date": day.isoformat(),
            "per_page": per_page or self.per_page,
        }
        payload = await self._get_json("events", params=params)
        if not isinstance(payload, dict):
            payload = {}
        events = payload.get("events") or []

        self.logger.info(f"Fetched {len(events)} source events for {day.isoformat()}")
        return FetchResult(
            success=True,
            raw_data=events,
            raw_payload=payload,
            total_fetched=len(events),
            metadata={"date": day.isoformat(), "params": params},
            fetch_started_at=started,
            fetch_ended_at=datetime.now(UTC),
        )

    async def fetch_organizers_page(self, page: int = 1) -> Tuple[List[Dict[str, Any]], int]:
        """
        Fetch one page of source organizers.

        Returns:
            (organizers, total_pages); total_pages comes from the
            ``X-WP-TotalPages`` header, falling back to the body
        """
        response = await self._request(
            "GET", "organizers", params={"page": page, "per_page": self.per_page}
        )
        payload = response.json()
        if not isinstance(payload, dict):
            payload = {}
        organizers = payload.get("organizers") or []

        total_pages = response.headers.get("x-wp-totalpages") or payload.get("total_pages") or 1
        try:
            total_pages = int(total_pages)
        except (TypeError, ValueError):
            total_pages = 1
        return organizers, total_pages

    async def fetch_all_organizers(self, max_pages: int | None = None) -> List[Dict[str, Any]]:
        """Walk every organizer page until the reported total is reached."""
        organizers: List[Dict[str, Any]] = []
        page = 1
        total_pages = 1
        while page <= total_pages:
            batch, total_pages = await self.fetch_organizers_page(page)
            organizers.extend(batch)
            self.logger.info(f"Fetched organizer page {page}/{total_pages} ({len(batch)} organizers)")
            if not batch or (max_pages and page >= max_pages):
                break
            page += 1
        return organizers

    async def ping(self) -> int:
        """Fetch a single event; returns the number of events received."""
        payload = await self._get_json("events", params={"per_page": 1})
        return len((payload or {}).get("events") or [])
