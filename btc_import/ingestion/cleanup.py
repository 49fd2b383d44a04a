"""
Historical cleanup.

Backs up every target event of a date to JSON, deletes them, and restores a
backup by re-posting its events. Dry-run mode writes the backup but sends no
mutating request.
"""

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from btc_import.ingestion.adapters.target_api import TargetAPIClient
from btc_import.ingestion.errors import ErrorLog, ImportStage
from btc_import.ingestion.orchestrator import day_bounds
from btc_import.ingestion.persist import RunArtifactWriter, read_json
from btc_import.ingestion.resilience import RetryingExecutor

logger = logging.getLogger(__name__)

# Server-managed fields dropped before re-posting a backed-up event
SERVER_FIELDS = ("_id", "__v")


def _iso(value: datetime) -> str:
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass
class CleanupResult:
    date: str
    dry_run: bool
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    ended_at: Optional[datetime] = None
    total_events: int = 0
    deleted_events: int = 0
    failed_events: int = 0
    backup_file: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        ended = self.ended_at or datetime.now(UTC)
        data = {
            "date": self.date,
            "startTime": _iso(self.started_at),
            "endTime": _iso(ended),
            "duration": (ended - self.started_at).total_seconds(),
            "totalEvents": self.total_events,
            "deletedEvents": self.deleted_events,
            "failedEvents": self.failed_events,
            "dryRun": self.dry_run,
            "backupFile": self.backup_file,
        }
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass
class RestoreResult:
    backup_file: str
    dry_run: bool
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    ended_at: Optional[datetime] = None
    total_events: int = 0
    restored_events: int = 0
    failed_events: int = 0
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        ended = self.ended_at or datetime.now(UTC)
        data = {
            "backupFile": self.backup_file,
            "startTime": _iso(self.started_at),
            "endTime": _iso(ended),
            "duration": (ended - self.started_at).total_seconds(),
            "totalEvents": self.total_events,
            "restoredEvents": self.restored_events,
            "failedEvents": self.failed_events,
            "dryRun": self.dry_run,
        }
        if self.error is not None:
            data["error"] = self.error
        return data


class HistoricalCleanup:
    """Backup, delete and restore the target events of a date."""

    def __init__(
        self,
        target: TargetAPIClient,
        error_log: ErrorLog,
        writer: RunArtifactWriter,
        dry_run: bool = True,
        executor: Optional[RetryingExecutor] = None,
    ):
        self.target = target
        self.error_log = error_log
        self.writer = writer
        self.dry_run = dry_run
        self.executor = executor or RetryingExecutor(error_log)

    async def cleanup_events_for_date(self, day: str) -> CleanupResult:
        """
        Back up then delete every target event of ``day``.

        Returns:
            CleanupResult; also persisted as ``cleanup-results-<day>.json``
        """
        result = CleanupResult(date=day, dry_run=self.dry_run)
        context = {"date": day, "dryRun": self.dry_run}
        start, end = day_bounds(day)

        try:
            events: List[Dict[str, Any]] = await self.executor.execute(
                lambda: self.target.list_events(start, end), ImportStage.CLEANUP, context
            )
        except Exception as error:
            self.error_log.log_system_error(
                f"Failed to clean up events for date: {day}", ImportStage.CLEANUP, context, error
            )
            result.error = str(error)
            result.ended_at = datetime.now(UTC)
            self.writer.cleanup_results(day, result.to_dict())
            raise

        result.total_events = len(events)
        if events:
            result.backup_file = str(self.writer.backup(day, events))
            logger.info(f"Backed up {len(events)} events to {result.backup_file}")

        for event in events:
            event_id = event.get("_id")
            if self.dry_run:
                logger.info(f"[DRY RUN] Would delete event: {event.get('title')} ({event_id})")
                result.deleted_events += 1
                continue
            try:
                await self.executor.execute(
                    lambda: self.target.delete_event(event_id),
                    ImportStage.CLEANUP,
                    {**context, "eventId": event_id},
                )
                result.deleted_events += 1
            except Exception as error:
                logger.error(f"Failed to delete event: {event.get('title')} ({event_id}): {error}")
                result.failed_events += 1

        result.ended_at = datetime.now(UTC)
        self.error_log.log_info(
            f"Cleanup for {day}: {result.deleted_events}/{result.total_events} deleted",
            ImportStage.CLEANUP,
            {**context, "deleted": result.deleted_events, "failed": result.failed_events},
        )
        self.writer.cleanup_results(day, result.to_dict())
        return result

    async def restore_from_backup(self, backup_file: Path | str) -> RestoreResult:
        """
        Re-post every event of a backup file as a new event.

        Returns:
            RestoreResult; also persisted as ``restore-results-<timestamp>.json``
        """
        backup_file = Path(backup_file)
        result = RestoreResult(backup_file=str(backup_file), dry_run=self.dry_run)

        try:
            events = read_json(backup_file)
        except (OSError, ValueError) as error:
            self.error_log.log_system_error(
                f"Failed to restore from backup: {backup_file}",
                ImportStage.CLEANUP,
                {"backupFile": str(backup_file)},
                error,
            )
            result.error = str(error)
            result.ended_at = datetime.now(UTC)
            self.writer.restore_results(result.to_dict())
            raise

        result.total_events = len(events)
        for event in events:
            payload = {k: v for k, v in event.items() if k not in SERVER_FIELDS}
            if self.dry_run:
                logger.info(f"[DRY RUN] Would restore event: {event.get('title')}")
                result.restored_events += 1
                continue
            try:
                await self.executor.execute(
                    lambda: self.target.create_event(payload),
                    ImportStage.CLEANUP,
                    {"title": event.get("title")},
                )
                result.restored_events += 1
            except Exception as error:
                logger.error(f"Failed to restore event: {event.get('title')}: {error}")
                result.failed_events += 1

        result.ended_at = datetime.now(UTC)
        self.writer.restore_results(result.to_dict())
        return result
