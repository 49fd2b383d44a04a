"""
Shared pytest fixtures for the BTC import test suite.

Provides source-event factories, an on-disk error log, a no-retry executor
and a fully mocked target API client.
"""

import logging
from typing import Any, Dict, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from btc_import.ingestion.errors import ErrorLog
from btc_import.ingestion.persist import RunArtifactWriter
from btc_import.ingestion.resilience import RetryingExecutor, RetryPolicy
from btc_import.ingestion.resolution import EntityResolver, ResolutionCache, ResolutionDefaults
from btc_import.schemas.event import SourceEvent


@pytest.fixture
def error_log(tmp_path):
    """ErrorLog writing under a temporary directory."""
    return ErrorLog(tmp_path / "logs", console=logging.getLogger("tests.error_log"))


@pytest.fixture
def executor(error_log):
    """Executor that never retries, so tests never sleep."""
    return RetryingExecutor(error_log, RetryPolicy(max_retries=0))


@pytest.fixture
def writer(tmp_path):
    return RunArtifactWriter(tmp_path / "results")


@pytest.fixture
def make_raw_event():
    """
    Return a function that builds source event dicts with sensible defaults.

    Example:
        raw = make_raw_event(id=7, venue={"venue": "Dance Hall"})
    """

    def _make_raw_event(**overrides: Any) -> Dict[str, Any]:
        raw = {
            "id": 101,
            "title": "Friday Milonga",
            "description": "<p>Dance all night</p>",
            "start_date": "2024-01-01 21:00:00",
            "end_date": "2024-01-01 23:59:00",
            "utc_start_date": "2024-01-02 02:00:00",
            "utc_end_date": "2024-01-02 04:59:00",
            "timezone": "America/New_York",
            "all_day": False,
            "cost": "$15",
            "image": {"url": "https://example.com/milonga.jpg"},
            "venue": {"id": 11, "venue": "Dance Hall"},
            "organizer": [{"id": 21, "organizer": "Tango Society"}],
            "categories": [{"id": 31, "name": "Milonga", "slug": "milonga"}],
        }
        raw.update(overrides)
        return raw

    return _make_raw_event


@pytest.fixture
def make_source_event(make_raw_event):
    def _make_source_event(**overrides: Any) -> SourceEvent:
        return SourceEvent.model_validate(make_raw_event(**overrides))

    return _make_source_event


@pytest.fixture
def target_client():
    """
    Mocked TargetAPIClient.

    Every lookup returns nothing by default; tests set ``return_value`` or
    ``side_effect`` on the methods they exercise.
    """
    client = MagicMock()
    client.app_id = "1"
    client.find_venues = AsyncMock(return_value=[])
    client.get_venue = AsyncMock(return_value={})
    client.create_venue = AsyncMock(return_value={})
    client.update_venue = AsyncMock(return_value={})
    client.nearest_city = AsyncMock(return_value=[])
    client.find_organizers = AsyncMock(return_value=[])
    client.find_categories = AsyncMock(return_value=[])
    client.list_events = AsyncMock(return_value=[])
    client.create_event = AsyncMock(return_value={"_id": "created-1"})
    client.delete_event = AsyncMock(return_value={})
    client.close = AsyncMock()
    return client


@pytest.fixture
def make_resolver(target_client, executor, error_log):
    def _make_resolver(
        cache: Optional[ResolutionCache] = None,
        defaults: Optional[ResolutionDefaults] = None,
    ) -> EntityResolver:
        return EntityResolver(
            target_client, executor, error_log, cache=cache or ResolutionCache(), defaults=defaults
        )

    return _make_resolver
