"""
Target API client.

Wraps the TangoTiempo REST endpoints used by the import: venues, organizers,
categories and events. Every method performs exactly one request and raises
``httpx.HTTPStatusError`` for non-2xx responses.
"""

from typing import Any, Dict, List, Optional

import httpx

from .api_adapter import APIAdapter
from .base_adapter import AdapterConfig


class TargetAPIClient(APIAdapter):
    """Client for the TangoTiempo calendar API, scoped to one application id."""

    def __init__(
        self,
        base_url: str,
        app_id: str,
        auth_token: Optional[str] = None,
        request_timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ):
        config = AdapterConfig(
            source_id="tangotiempo",
            base_url=base_url,
            api_key=auth_token,
            request_timeout=request_timeout,
        )
        super().__init__(config, client=client)
        self.app_id = app_id

    @classmethod
    def from_settings(cls, settings, client: httpx.AsyncClient | None = None) -> "TargetAPIClient":
        return cls(
            base_url=settings.TT_API_BASE,
            app_id=settings.APP_ID,
            auth_token=settings.auth_token,
            request_timeout=settings.REQUEST_TIMEOUT,
            client=client,
        )

    def _params(self, **params: Any) -> Dict[str, Any]:
        return {"appId": self.app_id, **{k: v for k, v in params.items() if v is not None}}

    # ------------------------------------------------------------------
    # Venues
    # ------------------------------------------------------------------

    async def find_venues(self, name: str) -> List[Dict[str, Any]]:
        payload = await self._get_json("venues", params=self._params(name=name))
        return (payload or {}).get("data") or []

    async def get_venue(self, venue_id: str) -> Dict[str, Any]:
        return await self._get_json(f"venues/{venue_id}", params=self._params())

    async def create_venue(self, venue: Dict[str, Any]) -> Dict[str, Any]:
        response = await self._request("POST", "venues", params=self._params(), json=venue)
        return self._json_or_empty(response)

    async def update_venue(self, venue_id: str, venue: Dict[str, Any]) -> Dict[str, Any]:
        response = await self._request(
            "PUT", f"venues/{venue_id}", params=self._params(), json=venue
        )
        return self._json_or_empty(response)

    async def nearest_city(self, longitude: Any, latitude: Any, limit: int = 1) -> List[Dict[str, Any]]:
        """Cities closest to a point, each carrying ``distanceInKm``."""
        payload = await self._get_json(
            "venues/nearest-city",
            params=self._params(longitude=longitude, latitude=latitude, limit=limit),
        )
        return payload if isinstance(payload, list) else []

    # ------------------------------------------------------------------
    # Organizers / categories
    # ------------------------------------------------------------------

    async def find_organizers(self, **filters: Any) -> List[Dict[str, Any]]:
        """Query organizers by ``btcNiceName``, ``name`` or ``shortName``."""
        payload = await self._get_json("organizers", params=self._params(**filters))
        return (payload or {}).get("organizers") or []

    async def find_categories(self, **filters: Any) -> List[Dict[str, Any]]:
        """Query categories by ``categoryName`` or fetch up to ``limit``."""
        payload = await self._get_json("categories", params=self._params(**filters))
        return (payload or {}).get("data") or []

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    async def list_events(self, start: str, end: str) -> List[Dict[str, Any]]:
        payload = await self._get_json("events", params=self._params(start=start, end=end))
        return (payload or {}).get("events") or []

    async def create_event(self, event: Dict[str, Any]) -> Dict[str, Any]:
        response = await self._request("POST", "events/post", params=self._params(), json=event)
        return self._json_or_empty(response)

    async def delete_event(self, event_id: str) -> Dict[str, Any]:
        response = await self._request("DELETE", f"events/{event_id}", params=self._params())
        return self._json_or_empty(response)

    async def ping(self) -> int:
        """Fetch a single event; returns the number of events received."""
        payload = await self._get_json("events", params=self._params(limit=1))
        return len((payload or {}).get("events") or [])
