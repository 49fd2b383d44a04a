"""
btc_import.ingestion.persist

JSON artifacts written for every import run, cleanup and restore.

All files land in one output directory and are keyed by the run date
(``YYYY-MM-DD``) or, for backups and restores, by a filesystem-safe UTC
timestamp.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


def ensure_parent(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def write_json(path: Path, obj: Any, *, encoding: str = "utf-8") -> None:
    ensure_parent(path)
    with path.open("w", encoding=encoding) as f:
        json.dump(obj, f, indent=2, ensure_ascii=False, default=str)


def read_json(path: Path, *, encoding: str = "utf-8") -> Any:
    with path.open("r", encoding=encoding) as f:
        return json.load(f)


def file_timestamp(moment: datetime | None = None) -> str:
    """UTC timestamp usable in a file name, e.g. ``2024-01-02T03-04-05-678Z``."""
    moment = moment or datetime.now(UTC)
    iso = moment.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")
    return iso.replace(":", "-").replace(".", "-")


class RunArtifactWriter:
    """Names and writes the JSON artifacts of one output directory."""

    def __init__(self, output_dir: Path | str):
        self.output_dir = Path(output_dir)

    def path_for(self, name: str) -> Path:
        return self.output_dir / name

    def _write(self, name: str, obj: Any) -> Path:
        path = self.path_for(name)
        write_json(path, obj)
        logger.debug(f"Wrote {path}")
        return path

    # Import run
    def source_events(self, date: str, payload: Any) -> Path:
        return self._write(f"btc-events-{date}.json", payload)

    def existing_events(self, date: str, events: list[dict[str, Any]]) -> Path:
        return self._write(f"existing-events-{date}.json", events)

    def processed_events(self, date: str, events: list[dict[str, Any]]) -> Path:
        return self._write(f"processed-events-{date}.json", events)

    def failed_events(self, date: str, events: list[dict[str, Any]]) -> Path:
        return self._write(f"failed-events-{date}.json", events)

    def unmatched_entities(self, date: str, report: dict[str, Any]) -> Path:
        return self._write(f"unmatched-entities-{date}.json", report)

    def import_results(self, date: str, results: dict[str, Any]) -> Path:
        return self._write(f"import-results-{date}.json", results)

    def assessment(self, date: str, assessment: dict[str, Any]) -> Path:
        return self._write(f"go-nogo-assessment-{date}.json", assessment)

    # Cleanup / restore
    def backup(self, date: str, events: list[dict[str, Any]], timestamp: str | None = None) -> Path:
        return self._write(f"backup-events-{date}-{timestamp or file_timestamp()}.json", events)

    def cleanup_results(self, date: str, results: dict[str, Any]) -> Path:
        return self._write(f"cleanup-results-{date}.json", results)

    def restore_results(self, results: dict[str, Any], timestamp: str | None = None) -> Path:
        return self._write(f"restore-results-{timestamp or file_timestamp()}.json", results)

    # Organizer report
    def organizer_report(self, report: dict[str, Any], timestamp: str | None = None) -> Path:
        return self._write(
            f"organizer-resolution/organizer-resolution-{timestamp or file_timestamp()}.json",
            report,
        )
