"""
API Adapter.

Thin async HTTP layer shared by the source and target clients. Requests raise
``httpx.HTTPStatusError`` on non-2xx responses so that the retrying executor
can classify the failure; retries are not performed here.
"""

import logging
from typing import Any

import httpx

from .base_adapter import AdapterConfig

logger = logging.getLogger(__name__)


class APIAdapter:
    """
    Adapter for JSON REST APIs.

    Supports:
    - Lazily created, reusable async HTTP client
    - Custom headers and bearer authentication
    - Injected client (tests, shared connection pools)
    """

    def __init__(self, config: AdapterConfig, client: httpx.AsyncClient | None = None):
        """
        Initialize the API adapter.

        Args:
            config: AdapterConfig with API settings
            client: Optional pre-built client; the adapter will not close it
        """
        self.config = config
        self._client: httpx.AsyncClient | None = client
        self._owns_client = client is None
        self.logger = logging.getLogger(f"btc_import.adapter.{config.source_id}")
        self._validate_config()

    def _validate_config(self) -> None:
        """Validate API configuration."""
        if not self.config.base_url:
            raise ValueError(f"{self.config.source_id} adapter requires base_url")

    @property
    def base_url(self) -> str:
        return self.config.base_url.rstrip("/")

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create async HTTP client."""
        if self._client is None:
            headers = {
                "User-Agent": "btc-import/0.3",
                "Accept": "application/json",
                **self.config.headers,
            }
            if self.config.api_key:
                headers["Authorization"] = f"Bearer {self.config.api_key}"
            self._client = httpx.AsyncClient(
                headers=headers,
                timeout=self.config.request_timeout,
            )
        return self._client

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> httpx.Response:
        """
        Send one request and raise for non-2xx statuses.

        Returns:
            The httpx.Response
        """
        client = self._get_client()
        response = await client.request(method, self._url(path), params=params, json=json)
        response.raise_for_status()
        return response

    async def _get_json(self, path: str, params: dict[str, Any] | None = None) -> Any:
        response = await self._request("GET", path, params=params)
        return response.json()

    @staticmethod
    def _json_or_empty(response: httpx.Response) -> Any:
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            return {}

    async def close(self) -> None:
        """Close async HTTP client."""
        if self._client and self._owns_client:
            await self._client.aclose()
        self._client = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
