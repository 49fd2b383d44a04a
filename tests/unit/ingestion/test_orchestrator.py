"""
Unit tests for the ImportOrchestrator.

The source client is a MagicMock returning canned FetchResults and the target
client is the conftest ``target_client`` programmed to resolve the default
test event.
"""

import asyncio
from datetime import date
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from btc_import.ingestion.adapters.base_adapter import FetchResult
from btc_import.ingestion.orchestrator import (
    API_ERROR_ID,
    DRY_RUN_ID,
    ImportOrchestrator,
    day_bounds,
    summary_lines,
)
from btc_import.ingestion.persist import read_json

DAY = "2024-01-01"


# =============================================================================
# FIXTURES
# =============================================================================


def make_source(events):
    source = MagicMock()
    source.fetch_events = AsyncMock(
        return_value=FetchResult(
            success=True,
            raw_data=list(events),
            raw_payload={"events": list(events)},
            total_fetched=len(events),
        )
    )
    return source


@pytest.fixture
def resolving_target(target_client):
    """Target client that resolves "Dance Hall", any organizer and Milonga."""

    async def find_venues(name):
        return [{"_id": "v1"}] if name == "Dance Hall" else []

    async def find_categories(**filters):
        if "limit" in filters:
            return [{"_id": "m1", "categoryName": "Milonga"}]
        return []

    target_client.find_venues = AsyncMock(side_effect=find_venues)
    target_client.find_categories = AsyncMock(side_effect=find_categories)
    target_client.find_organizers.return_value = [{"_id": "o1", "fullName": "Tango Society"}]
    target_client.get_venue.return_value = {
        "_id": "v1",
        "masteredCityId": {"_id": "c1", "cityName": "Boston"},
        "isValidVenueGeolocation": True,
    }
    return target_client


@pytest.fixture
def make_orchestrator(resolving_target, error_log, writer, executor):
    def _make(events, dry_run=True, source=None):
        return ImportOrchestrator(
            source=source or make_source(events),
            target=resolving_target,
            error_log=error_log,
            writer=writer,
            dry_run=dry_run,
            executor=executor,
            default_date=date(2024, 1, 1),
        )

    return _make


def artifact(writer, name):
    return read_json(writer.path_for(name))


# =============================================================================
# TEST CLASSES
# =============================================================================


def test_day_bounds():
    assert day_bounds(DAY) == ("2024-01-01T00:00:00.000Z", "2024-01-01T23:59:59.999Z")


class TestProcessDate:
    def test_zero_events_stops_before_delete(self, make_orchestrator, resolving_target, writer):
        """Should not touch the target when the source has nothing."""
        orchestrator = make_orchestrator([], dry_run=False)
        result = asyncio.run(orchestrator.process_date(DAY))

        assert result.btc_events.total == 0
        assert result.tt_events.deleted == 0
        resolving_target.list_events.assert_not_awaited()
        resolving_target.delete_event.assert_not_awaited()
        assert artifact(writer, f"btc-events-{DAY}.json") == {"events": []}
        assert artifact(writer, f"import-results-{DAY}.json")["btcEvents"]["total"] == 0
        assert not writer.path_for(f"processed-events-{DAY}.json").exists()

    def test_dry_run_writes_nothing(self, make_orchestrator, make_raw_event, resolving_target, writer):
        orchestrator = make_orchestrator([make_raw_event(id=1), make_raw_event(id=2)])
        result = asyncio.run(orchestrator.process_date(DAY))

        assert result.tt_events.created == 2
        assert result.tt_events.deleted == 0
        resolving_target.list_events.assert_not_awaited()
        resolving_target.create_event.assert_not_awaited()

        processed = artifact(writer, f"processed-events-{DAY}.json")
        assert [p["ttId"] for p in processed] == [DRY_RUN_ID, DRY_RUN_ID]
        assert all(p["dryRun"] for p in processed)
        assert artifact(writer, f"import-results-{DAY}.json")["dryRun"] is True

    def test_live_run_deletes_then_creates(
        self, make_orchestrator, make_raw_event, resolving_target, writer
    ):
        resolving_target.list_events.return_value = [{"_id": "old1"}, {"_id": "old2"}]
        resolving_target.delete_event.side_effect = [{}, RuntimeError("locked")]
        orchestrator = make_orchestrator([make_raw_event()], dry_run=False)

        result = asyncio.run(orchestrator.process_date(DAY))

        assert result.tt_events.deleted == 1
        assert result.tt_events.created == 1
        resolving_target.list_events.assert_awaited_once_with(*day_bounds(DAY))
        assert artifact(writer, f"existing-events-{DAY}.json") == [{"_id": "old1"}, {"_id": "old2"}]

        payload = resolving_target.create_event.await_args.args[0]
        assert payload["venueID"] == "v1"
        assert payload["ownerOrganizerID"] == "o1"
        assert payload["categoryFirstId"] == "m1"
        assert payload["masteredCityName"] == "Boston"
        assert artifact(writer, f"processed-events-{DAY}.json")[0]["ttId"] == "created-1"

    def test_per_event_failures_do_not_abort(self, make_orchestrator, make_raw_event, writer):
        """Should record each failing event and keep going."""
        events = [
            make_raw_event(id=1, venue={"venue": "Ghost Hall"}),
            make_raw_event(id=2, utc_start_date="2024-01-02 06:00:00"),
            make_raw_event(id=3, utc_start_date=None, start_date=None),
            make_raw_event(id=4),
        ]
        orchestrator = make_orchestrator(events)
        result = asyncio.run(orchestrator.process_date(DAY))

        assert result.btc_events.total == 4
        assert result.btc_events.processed == 4
        assert result.entity_resolution.success == 3
        assert result.entity_resolution.failure == 1
        assert result.validation.valid == 1
        assert result.validation.invalid == 1
        assert result.tt_events.created == 1
        assert result.tt_events.failed == 3

        failed = artifact(writer, f"failed-events-{DAY}.json")
        assert [(f["btcId"], f["stage"]) for f in failed] == [
            (1, "entity_resolution"),
            (2, "validation"),
            (3, "processing"),
        ]
        assert failed[0]["resolution"]["venueResolved"] is False
        assert failed[1]["validation"]["hasValidDates"] is False
        assert failed[2]["debugInfo"]["errorName"] == "ValueError"

        unmatched = artifact(writer, f"unmatched-entities-{DAY}.json")
        assert unmatched["venues"] == ["Ghost Hall"]

    def test_malformed_record_fails_alone(self, make_orchestrator, make_raw_event, writer, error_log):
        """Should process the good record and report the malformed one."""
        good = make_raw_event(id=1)
        untitled = make_raw_event(id=2, title=None)
        bad = make_raw_event(id="x")
        del bad["id"]
        bad["categories"] = "Milonga"

        orchestrator = make_orchestrator([good, untitled, bad])
        result = asyncio.run(orchestrator.process_date(DAY))

        assert result.btc_events.total == 3
        assert result.btc_events.processed == 3
        assert result.tt_events.created == 1
        assert result.tt_events.failed == 2

        failed = artifact(writer, f"failed-events-{DAY}.json")
        assert [(f["btcId"], f["stage"]) for f in failed] == [(2, "validation"), (None, "processing")]
        assert "Missing required field: Title" in failed[0]["errors"]
        assert failed[1]["debugInfo"]["errorName"] == "ValidationError"
        assert any(e.startswith("id:") for e in failed[1]["errors"])
        assert error_log.get_error_stats()["bySeverity"].get("FATAL", 0) == 0

    def test_create_failure_counts_as_failed(
        self, make_orchestrator, make_raw_event, resolving_target, writer
    ):
        resolving_target.create_event.side_effect = RuntimeError("rejected")
        orchestrator = make_orchestrator([make_raw_event()], dry_run=False)

        result = asyncio.run(orchestrator.process_date(DAY))

        assert result.tt_events.created == 0
        assert result.tt_events.failed == 1
        processed = artifact(writer, f"processed-events-{DAY}.json")
        assert processed[0]["ttId"] == API_ERROR_ID
        assert processed[0]["apiError"] == "rejected"

    def test_fetch_failure_is_fatal(self, make_orchestrator, error_log, writer):
        """Should log FATAL, persist the partial result and re-raise."""
        source = MagicMock()
        request = httpx.Request("GET", "https://btc.test/events")
        source.fetch_events = AsyncMock(side_effect=httpx.ConnectError("refused", request=request))
        orchestrator = make_orchestrator([], source=source)

        with pytest.raises(httpx.ConnectError):
            asyncio.run(orchestrator.process_date(DAY))

        results = artifact(writer, f"import-results-{DAY}.json")
        assert "refused" in results["error"]
        assert results["endTime"] is not None
        assert error_log.get_error_stats()["bySeverity"]["FATAL"] == 1

    def test_delete_listing_failure_is_fatal(
        self, make_orchestrator, make_raw_event, resolving_target
    ):
        resolving_target.list_events.side_effect = RuntimeError("list failed")
        orchestrator = make_orchestrator([make_raw_event()], dry_run=False)
        with pytest.raises(RuntimeError, match="list failed"):
            asyncio.run(orchestrator.process_date(DAY))
        resolving_target.create_event.assert_not_awaited()

    def test_cache_reset_between_runs(self, make_orchestrator, make_raw_event, resolving_target):
        orchestrator = make_orchestrator([make_raw_event(id=1), make_raw_event(id=2)])
        asyncio.run(orchestrator.process_date(DAY))
        assert resolving_target.find_venues.await_count == 1

        asyncio.run(orchestrator.process_date(DAY))
        assert resolving_target.find_venues.await_count == 2


class TestRun:
    def test_run_assesses_and_persists(self, make_orchestrator, make_raw_event, writer):
        orchestrator = make_orchestrator([make_raw_event()])
        result, assessment = asyncio.run(orchestrator.run())

        assert result.date == DAY
        assert assessment.can_proceed
        assert artifact(writer, f"go-nogo-assessment-{DAY}.json")["canProceed"] is True

    def test_run_explicit_day(self, make_orchestrator, writer):
        orchestrator = make_orchestrator([])
        result, assessment = asyncio.run(orchestrator.run("2024-02-29"))
        assert result.date == "2024-02-29"
        assert not assessment.can_proceed
        orchestrator.source.fetch_events.assert_awaited_once_with(date(2024, 2, 29), per_page=50)


def test_summary_lines():
    from btc_import.ingestion.results import ImportRunResult

    result = ImportRunResult(date=DAY)
    result.tt_events.created = 4
    lines = summary_lines(result.finish())
    assert lines[0] == "Import Summary:"
    assert "TT Events Created: 4" in lines
