"""
Unit tests for the source API client.

Requests are served by an ``httpx.MockTransport`` so no network is used.
"""

import asyncio
from datetime import date

import httpx
import pytest

from btc_import.ingestion.adapters import SourceAPIClient


def make_client(handler, **kwargs) -> SourceAPIClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return SourceAPIClient("https://btc.test/wp-json/tribe/events/v1/", client=http, **kwargs)


class TestFetchEvents:
    def test_requests_single_day(self):
        """Should send the same start and end date plus per_page."""
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"events": [{"id": 1}, {"id": 2}], "total": 2})

        client = make_client(handler, per_page=25)
        result = asyncio.run(client.fetch_events(date(2024, 1, 1)))

        assert result.success
        assert result.total_fetched == 2
        assert result.raw_data == [{"id": 1}, {"id": 2}]
        assert result.raw_payload["total"] == 2
        assert result.duration_seconds is not None

        request = seen[0]
        assert request.url.path == "/wp-json/tribe/events/v1/events"
        assert request.url.params["start_date"] == "2024-01-01"
        assert request.url.params["end_date"] == "2024-01-01"
        assert request.url.params["per_page"] == "25"

    def test_missing_events_key(self):
        client = make_client(lambda request: httpx.Response(200, json={}))
        result = asyncio.run(client.fetch_events(date(2024, 1, 1)))
        assert result.raw_data == []
        assert result.total_fetched == 0

    def test_http_error_raises(self):
        """Should leave retry decisions to the executor."""
        client = make_client(lambda request: httpx.Response(503, text="busy"))
        with pytest.raises(httpx.HTTPStatusError):
            asyncio.run(client.fetch_events(date(2024, 1, 1)))


class TestOrganizers:
    def test_pages_from_header(self):
        """Should follow X-WP-TotalPages across pages."""
        pages = {
            "1": [{"id": 1, "organizer": "A"}],
            "2": [{"id": 2, "organizer": "B"}],
        }

        def handler(request: httpx.Request) -> httpx.Response:
            page = request.url.params["page"]
            return httpx.Response(
                200, json={"organizers": pages[page]}, headers={"X-WP-TotalPages": "2"}
            )

        client = make_client(handler)
        organizers = asyncio.run(client.fetch_all_organizers())
        assert [o["organizer"] for o in organizers] == ["A", "B"]

    def test_total_pages_from_body(self):
        client = make_client(
            lambda request: httpx.Response(200, json={"organizers": [], "total_pages": 4})
        )
        organizers, total_pages = asyncio.run(client.fetch_organizers_page(1))
        assert organizers == []
        assert total_pages == 4

    def test_stops_on_empty_page(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request.url.params["page"])
            return httpx.Response(200, json={"organizers": []}, headers={"X-WP-TotalPages": "9"})

        asyncio.run(make_client(handler).fetch_all_organizers())
        assert calls == ["1"]

    def test_max_pages(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request.url.params["page"])
            return httpx.Response(
                200, json={"organizers": [{"id": 1}]}, headers={"X-WP-TotalPages": "9"}
            )

        organizers = asyncio.run(make_client(handler).fetch_all_organizers(max_pages=2))
        assert calls == ["1", "2"]
        assert len(organizers) == 2


class TestClientLifecycle:
    def test_base_url_required(self):
        with pytest.raises(ValueError, match="requires base_url"):
            SourceAPIClient("")

    def test_injected_client_not_closed(self):
        http = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200)))
        client = SourceAPIClient("https://btc.test", client=http)
        asyncio.run(client.close())
        assert not http.is_closed

    def test_ping(self):
        client = make_client(lambda request: httpx.Response(200, json={"events": [{"id": 1}]}))
        assert asyncio.run(client.ping()) == 1
