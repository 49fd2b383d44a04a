"""
Run result types.

Counters and per-event failure records of one import run. Serialized with
the camelCase keys used by the persisted JSON reports.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Dict, Optional


class FailureStage(str, Enum):
    """Per-event stage at which an event was dropped."""

    ENTITY_RESOLUTION = "entity_resolution"
    VALIDATION = "validation"
    PROCESSING = "processing"


@dataclass
class SourceCounts:
    total: int = 0
    processed: int = 0


@dataclass
class TargetCounts:
    deleted: int = 0
    created: int = 0
    failed: int = 0


@dataclass
class ResolutionCounts:
    success: int = 0
    failure: int = 0


@dataclass
class ValidationCounts:
    valid: int = 0
    invalid: int = 0


def _iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass
class ImportRunResult:
    """Counters of one single-date import run."""

    date: str
    dry_run: bool = True
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    ended_at: Optional[datetime] = None
    btc_events: SourceCounts = field(default_factory=SourceCounts)
    tt_events: TargetCounts = field(default_factory=TargetCounts)
    entity_resolution: ResolutionCounts = field(default_factory=ResolutionCounts)
    validation: ValidationCounts = field(default_factory=ValidationCounts)
    error: Optional[str] = None

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.ended_at is None:
            return None
        return (self.ended_at - self.started_at).total_seconds()

    def finish(self, error: Optional[str] = None) -> "ImportRunResult":
        self.ended_at = datetime.now(UTC)
        if error is not None:
            self.error = error
        return self

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "date": self.date,
            "startTime": _iso(self.started_at),
            "endTime": _iso(self.ended_at),
            "duration": self.duration_seconds,
            "btcEvents": {"total": self.btc_events.total, "processed": self.btc_events.processed},
            "ttEvents": {
                "deleted": self.tt_events.deleted,
                "created": self.tt_events.created,
                "failed": self.tt_events.failed,
            },
            "entityResolution": {
                "success": self.entity_resolution.success,
                "failure": self.entity_resolution.failure,
            },
            "validation": {"valid": self.validation.valid, "invalid": self.validation.invalid},
            "dryRun": self.dry_run,
        }
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass
class FailedEvent:
    """One event dropped from the run, with stage-specific diagnostics."""

    btc_id: Any
    title: str
    stage: FailureStage
    source: Dict[str, str]
    errors: list = field(default_factory=list)
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "btcId": self.btc_id,
            "title": self.title,
            "stage": self.stage.value,
            "errors": list(self.errors),
            "source": dict(self.source),
            **self.details,
        }
