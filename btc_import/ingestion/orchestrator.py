"""
Import Orchestrator.

Drives the import of one calendar date:

    FETCH → (no events? STOP) → DELETE_EXISTING
          → for each event: RESOLVE → MAP → VALIDATE → WRITE
          → PERSIST_REPORTS

Per-event failures are recorded and never abort the run. A failure while
fetching source events or deleting existing target events is fatal: it is
logged at FATAL severity, the partial result is persisted and the exception
propagates.
"""

import logging
import traceback
import uuid
from datetime import date as date_type
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError

from btc_import.ingestion.adapters.source_api import SourceAPIClient
from btc_import.ingestion.adapters.target_api import TargetAPIClient
from btc_import.ingestion.assessment import GoNoGoAssessment, assess
from btc_import.ingestion.errors import ErrorLog, ImportStage
from btc_import.ingestion.normalization.event_mapper import (
    ValidationResult,
    map_to_target_event,
    validate_target_event,
)
from btc_import.ingestion.persist import RunArtifactWriter
from btc_import.ingestion.resilience import RetryingExecutor, RetryPolicy
from btc_import.ingestion.resolution.cache import ResolutionCache
from btc_import.ingestion.resolution.defaults import ResolutionDefaults, load_resolution_defaults
from btc_import.ingestion.resolution.resolver import EntityResolver, ResolvedEntities
from btc_import.ingestion.results import FailedEvent, FailureStage, ImportRunResult
from btc_import.monitoring.logging import with_context
from btc_import.schemas.event import SourceEvent, TargetEvent

logger = logging.getLogger(__name__)

DRY_RUN_ID = "dry-run-id"
API_ERROR_ID = "api-error-mock-id"


def day_bounds(day: str) -> Tuple[str, str]:
    """UTC start and end instants of a ``YYYY-MM-DD`` day."""
    return f"{day}T00:00:00.000Z", f"{day}T23:59:59.999Z"


class ImportOrchestrator:
    """
    Coordinates one import run per calendar date.

    Owns the ResolutionCache for the lifetime of a run: a fresh cache and
    resolver are created by every ``process_date`` call.
    """

    def __init__(
        self,
        source: SourceAPIClient,
        target: TargetAPIClient,
        error_log: ErrorLog,
        writer: RunArtifactWriter,
        dry_run: bool = True,
        executor: Optional[RetryingExecutor] = None,
        defaults: Optional[ResolutionDefaults] = None,
        per_page: int = 50,
        default_date: Optional[date_type] = None,
    ):
        self.source = source
        self.target = target
        self.error_log = error_log
        self.writer = writer
        self.dry_run = dry_run
        self.executor = executor or RetryingExecutor(error_log)
        self.defaults = defaults or ResolutionDefaults()
        self.per_page = per_page
        self.default_date = default_date
        self.run_id = uuid.uuid4().hex[:12]
        self.log = with_context(logger, run_id=self.run_id)

        self.cache = ResolutionCache()
        self.resolver = self._new_resolver()
        self.processed_events: List[Dict[str, Any]] = []
        self.failed_events: List[FailedEvent] = []

    @classmethod
    def from_settings(
        cls,
        settings,
        source: Optional[SourceAPIClient] = None,
        target: Optional[TargetAPIClient] = None,
        error_log: Optional[ErrorLog] = None,
    ) -> "ImportOrchestrator":
        """Build an orchestrator and its collaborators from Settings."""
        error_log = error_log or ErrorLog(settings.error_log_dir)
        return cls(
            source=source or SourceAPIClient.from_settings(settings),
            target=target or TargetAPIClient.from_settings(settings),
            error_log=error_log,
            writer=RunArtifactWriter(settings.OUTPUT_DIR),
            dry_run=settings.DRY_RUN,
            executor=RetryingExecutor(error_log, RetryPolicy.from_settings(settings)),
            defaults=load_resolution_defaults(settings.RESOLUTION_CONFIG_PATH),
            per_page=settings.BTC_PER_PAGE,
            default_date=settings.resolve_target_date(),
        )

    @property
    def app_id(self) -> str:
        return self.target.app_id

    def _new_resolver(self) -> EntityResolver:
        return EntityResolver(
            self.target, self.executor, self.error_log, cache=self.cache, defaults=self.defaults
        )

    def _reset_run_state(self) -> None:
        self.cache = ResolutionCache()
        self.resolver = self._new_resolver()
        self.processed_events = []
        self.failed_events = []

    # ========================================================================
    # STAGES
    # ========================================================================

    async def fetch_source_events(self, day: str) -> List[Any]:
        """
        Fetch and persist the source events of ``day``.

        Returns:
            The raw event records; each is validated on its own while processing
        """
        context = {"date": day}
        self.error_log.log_info(f"Fetching BTC events for date: {day}", ImportStage.EXTRACTION, context)

        fetch_result = await self.executor.execute(
            lambda: self.source.fetch_events(date_type.fromisoformat(day), per_page=self.per_page),
            ImportStage.EXTRACTION,
            context,
        )
        self.writer.source_events(day, fetch_result.raw_payload)

        self.error_log.log_info(
            f"Fetched {fetch_result.total_fetched} events from BTC for date: {day}",
            ImportStage.EXTRACTION,
            {**context, "count": fetch_result.total_fetched},
        )
        return list(fetch_result.raw_data)

    async def delete_events_for_date(self, day: str) -> int:
        """
        Delete every target event of ``day``.

        Returns:
            Number of deleted events; 0 in dry-run
        """
        context = {"date": day, "dryRun": self.dry_run}
        if self.dry_run:
            self.error_log.log_info(
                f"[DRY RUN] Would delete events for date: {day}", ImportStage.LOADING, context
            )
            return 0

        start, end = day_bounds(day)
        existing = await self.executor.execute(
            lambda: self.target.list_events(start, end), ImportStage.LOADING, context
        )
        self.error_log.log_info(
            f"Found {len(existing)} existing events for date: {day}",
            ImportStage.LOADING,
            {**context, "count": len(existing)},
        )
        self.writer.existing_events(day, existing)

        deleted = 0
        for event in existing:
            event_id = event.get("_id")
            try:
                await self.executor.execute(
                    lambda: self.target.delete_event(event_id),
                    ImportStage.LOADING,
                    {**context, "eventId": event_id},
                )
                deleted += 1
            except Exception as error:
                self.log.warning(f"Failed to delete event {event_id}: {error}")

        self.error_log.log_info(
            f"Deleted {deleted} events for date: {day}",
            ImportStage.LOADING,
            {**context, "deletedCount": deleted},
        )
        return deleted

    async def create_event(self, event: TargetEvent) -> Dict[str, Any]:
        """
        Write one event to the target.

        Returns:
            The created record; a synthetic ``dry-run-id`` record in dry-run,
            or an ``api-error-mock-id`` record when the API call failed
        """
        payload = event.to_payload()
        context = {"title": event.title, "startDate": event.start_date, "dryRun": self.dry_run}

        if self.dry_run:
            self.error_log.log_info(
                f"[DRY RUN] Would create event: {event.title}", ImportStage.LOADING, context
            )
            return {"_id": DRY_RUN_ID, **payload, "dryRun": True}

        try:
            created = await self.executor.execute(
                lambda: self.target.create_event(payload), ImportStage.LOADING, context
            )
        except Exception as error:
            self.error_log.log_processing_error(
                f"Failed to create event: {event.title}", ImportStage.LOADING, context, error
            )
            return {"_id": API_ERROR_ID, **payload, "apiError": str(error), "dryRun": True}

        self.error_log.log_info(
            f"Created event: {event.title}",
            ImportStage.LOADING,
            {**context, "eventId": created.get("_id")},
        )
        return created

    # ========================================================================
    # PER-EVENT
    # ========================================================================

    async def process_raw_event(self, raw: Any, result: ImportRunResult) -> None:
        """Validate one source record and process it; a malformed record fails alone."""
        try:
            event = SourceEvent.model_validate(raw)
        except ValidationError as error:
            btc_id = raw.get("id") if isinstance(raw, dict) else None
            title = (raw.get("title") if isinstance(raw, dict) else None) or ""
            self.error_log.log_processing_error(
                f"Malformed source event: {btc_id}",
                ImportStage.EXTRACTION,
                {"eventId": btc_id, "eventTitle": title},
                error,
            )
            result.tt_events.failed += 1
            result.btc_events.processed += 1
            self.failed_events.append(
                FailedEvent(
                    btc_id=btc_id,
                    title=str(title),
                    stage=FailureStage.PROCESSING,
                    source={"venue": "unknown", "organizer": "unknown", "categories": "unknown"},
                    errors=[
                        f"{'.'.join(str(p) for p in e['loc'])}: {e['msg']}"
                        for e in error.errors()
                    ],
                    details={
                        "error": str(error),
                        "debugInfo": {"errorName": type(error).__name__},
                    },
                )
            )
            return

        await self.process_event(event, result)

    async def process_event(self, event: SourceEvent, result: ImportRunResult) -> None:
        """Run one event through resolve → map → validate → write, updating ``result``."""
        try:
            resolved = await self.resolver.resolve_event_entities(event)
            if not resolved.resolved:
                result.entity_resolution.failure += 1
                result.tt_events.failed += 1
                self.failed_events.append(self._resolution_failure(event, resolved))
                return

            result.entity_resolution.success += 1
            target_event = map_to_target_event(event, resolved, self.app_id)
            validation = validate_target_event(target_event, self.error_log)
            if not validation.valid:
                result.validation.invalid += 1
                result.tt_events.failed += 1
                self.failed_events.append(self._validation_failure(event, target_event, validation))
                return

            result.validation.valid += 1
            created = await self.create_event(target_event)
            self.processed_events.append(
                {
                    "btcId": event.id,
                    "ttId": created.get("_id"),
                    "title": event.title,
                    "dryRun": self.dry_run,
                    **({"apiError": created["apiError"]} if "apiError" in created else {}),
                }
            )
            if created.get("_id") == API_ERROR_ID:
                result.tt_events.failed += 1
            else:
                result.tt_events.created += 1

        except Exception as error:
            self.error_log.log_processing_error(
                f"Error processing event: {event.title}",
                ImportStage.PROCESSING,
                {"eventId": event.id, "eventTitle": event.title},
                error,
            )
            result.tt_events.failed += 1
            self.failed_events.append(
                FailedEvent(
                    btc_id=event.id,
                    title=event.title,
                    stage=FailureStage.PROCESSING,
                    source=event.source_summary(),
                    errors=[str(error)],
                    details={
                        "error": str(error),
                        "debugInfo": {
                            "errorName": type(error).__name__,
                            "errorStack": "".join(
                                traceback.format_exception(type(error), error, error.__traceback__)
                            ),
                        },
                    },
                )
            )
        finally:
            result.btc_events.processed += 1

    @staticmethod
    def _resolution_failure(event: SourceEvent, resolved: ResolvedEntities) -> FailedEvent:
        entities = resolved.entities
        return FailedEvent(
            btc_id=event.id,
            title=event.title,
            stage=FailureStage.ENTITY_RESOLUTION,
            source=event.source_summary(),
            errors=list(resolved.errors),
            details={
                "target": {
                    "venueId": entities.get("venue_id"),
                    "organizerId": entities.get("organizer_id"),
                    "categoryFirstId": entities.get("category_first_id"),
                },
                "resolution": {
                    "venueResolved": bool(entities.get("venue_id")),
                    "organizerResolved": bool(entities.get("organizer_id")),
                    "categoryResolved": bool(entities.get("category_first_id")),
                    "geographyResolved": resolved.geography is not None,
                },
            },
        )

    @staticmethod
    def _validation_failure(
        event: SourceEvent, target_event: TargetEvent, validation: ValidationResult
    ) -> FailedEvent:
        payload = target_event.to_payload()
        errors = validation.errors
        return FailedEvent(
            btc_id=event.id,
            title=event.title,
            stage=FailureStage.VALIDATION,
            source=event.source_summary(),
            errors=list(errors),
            details={
                "mappedData": {
                    key: payload.get(key)
                    for key in (
                        "title",
                        "venueID",
                        "ownerOrganizerID",
                        "ownerOrganizerName",
                        "startDate",
                        "endDate",
                        "categoryFirstId",
                        "categoryFirst",
                    )
                },
                "validation": {
                    "hasRequiredFields": not any("Missing required field" in e for e in errors),
                    "hasValidDates": not any(
                        "Invalid date" in e or "Start date is after end date" in e for e in errors
                    ),
                    "hasValidReferences": not any(
                        "Category ID present but category name missing" in e for e in errors
                    ),
                },
            },
        )

    # ========================================================================
    # RUN
    # ========================================================================

    async def process_date(self, day: str) -> ImportRunResult:
        """
        Import all source events of ``day``.

        Raises:
            Whatever the fetch or delete stage raised, after persisting the
            partial result
        """
        self._reset_run_state()
        result = ImportRunResult(date=day, dry_run=self.dry_run)
        self.log.info(f"Starting import for {day} (dry run: {self.dry_run})")

        try:
            events = await self.fetch_source_events(day)
            result.btc_events.total = len(events)

            if not events:
                self.error_log.log_info(
                    f"No events found for date: {day}", ImportStage.EXTRACTION, {"date": day}
                )
                self.writer.import_results(day, result.finish().to_dict())
                return result

            result.tt_events.deleted = await self.delete_events_for_date(day)
        except Exception as error:
            self.error_log.log_system_error(
                f"Failed to process import for date: {day}",
                ImportStage.PROCESSING,
                {"date": day},
                error,
            )
            self.writer.import_results(day, result.finish(error=str(error)).to_dict())
            raise

        for raw in events:
            await self.process_raw_event(raw, result)

        self.writer.processed_events(day, self.processed_events)
        self.writer.failed_events(day, [f.to_dict() for f in self.failed_events])
        self.writer.unmatched_entities(day, self.cache.unmatched_report())
        self.writer.import_results(day, result.finish().to_dict())
        return result

    async def run(self, day: Optional[str] = None) -> Tuple[ImportRunResult, GoNoGoAssessment]:
        """
        Import one date and assess the outcome.

        Args:
            day: ``YYYY-MM-DD``; defaults to the configured target date

        Returns:
            (ImportRunResult, GoNoGoAssessment)
        """
        day = day or (self.default_date or date_type.today()).isoformat()
        result = await self.process_date(day)
        assessment = assess(result)
        self.writer.assessment(day, assessment.to_dict())

        for line in summary_lines(result):
            self.log.info(line)
        for line in assessment.summary_lines():
            self.log.info(line)
        return result, assessment


def summary_lines(result: ImportRunResult) -> List[str]:
    """Human-readable run summary."""
    duration = result.duration_seconds or 0.0
    return [
        "Import Summary:",
        f"Date: {result.date}",
        f"Duration: {duration:.2f} seconds",
        f"BTC Events Total: {result.btc_events.total}",
        f"BTC Events Processed: {result.btc_events.processed}",
        f"TT Events Deleted: {result.tt_events.deleted}",
        f"TT Events Created: {result.tt_events.created}",
        f"TT Events Failed: {result.tt_events.failed}",
        f"Entity Resolution Success: {result.entity_resolution.success}",
        f"Entity Resolution Failure: {result.entity_resolution.failure}",
        f"Validation Valid: {result.validation.valid}",
        f"Validation Invalid: {result.validation.invalid}",
    ]
