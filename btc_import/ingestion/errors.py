"""
Error taxonomy and structured error log for the import.

Every record is appended as one line to ``import-errors.log``, written in full
to ``error-details/<error_id>.json`` and surfaced on the console through the
package logger at a severity-appropriate level.
"""

from __future__ import annotations

import json
import logging
import random
import re
import time
import traceback
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class ErrorCategory(str, Enum):
    """What kind of failure a record describes."""

    API_ACCESS = "API_ACCESS"
    ENTITY_RESOLUTION = "ENTITY_RESOLUTION"
    DATA_VALIDATION = "DATA_VALIDATION"
    PROCESSING = "PROCESSING"
    SYSTEM = "SYSTEM"


class ErrorSeverity(str, Enum):
    """Severity of a record."""

    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    FATAL = "FATAL"


class ImportStage(str, Enum):
    """Pipeline stage a record was emitted from."""

    INITIALIZATION = "INITIALIZATION"
    EXTRACTION = "EXTRACTION"
    TRANSFORMATION = "TRANSFORMATION"
    ENTITY_RESOLUTION = "ENTITY_RESOLUTION"
    VALIDATION = "VALIDATION"
    LOADING = "LOADING"
    VERIFICATION = "VERIFICATION"
    CLEANUP = "CLEANUP"
    PROCESSING = "PROCESSING"


_CONSOLE_LEVELS = {
    ErrorSeverity.INFO: logging.INFO,
    ErrorSeverity.WARNING: logging.WARNING,
    ErrorSeverity.ERROR: logging.ERROR,
    ErrorSeverity.FATAL: logging.CRITICAL,
}

_LINE_PATTERN = re.compile(r"\[.*?\] \[(ERR-.*?)\] \[(.*?)\] \[(.*?)\] \[(.*?)\]")


def _utc_timestamp() -> str:
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def generate_error_id() -> str:
    """Return a unique id of the form ``ERR-<epoch ms>-<6 digits>``."""
    return f"ERR-{int(time.time() * 1000)}-{random.randint(0, 999999):06d}"


def describe_exception(error: BaseException) -> dict[str, Any]:
    """Serializable summary of a wrapped exception."""
    described: dict[str, Any] = {
        "name": type(error).__name__,
        "message": str(error),
        "stack": "".join(
            traceback.format_exception(type(error), error, error.__traceback__)
        ),
    }
    response = getattr(error, "response", None)
    status_code = getattr(response, "status_code", None)
    if status_code is not None:
        described["status"] = status_code
    return described


class PipelineError(Exception):
    """Import failure tagged with category, severity and stage."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.SYSTEM,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        stage: ImportStage = ImportStage.INITIALIZATION,
        context: dict[str, Any] | None = None,
        original_error: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = ErrorCategory(category)
        self.severity = ErrorSeverity(severity)
        self.stage = ImportStage(stage)
        self.context = context or {}
        self.original_error = original_error
        self.timestamp = _utc_timestamp()
        self.id = generate_error_id()

    def to_dict(self) -> dict[str, Any]:
        """JSON representation written to the detail file."""
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "name": type(self).__name__,
            "message": self.message,
            "category": self.category.value,
            "severity": self.severity.value,
            "stage": self.stage.value,
            "context": self.context,
            "originalError": (
                describe_exception(self.original_error) if self.original_error else None
            ),
        }

    def log_line(self) -> str:
        return (
            f"[{self.timestamp}] [{self.id}] [{self.severity.value}] "
            f"[{self.category.value}] [{self.stage.value}] {self.message}"
        )


class ErrorLog:
    """
    Append-only error/info log for one import output directory.

    Args:
        log_dir: Directory holding ``import-errors.log`` and ``error-details/``
        console: Logger used to surface each record to the operator
    """

    LOG_FILE_NAME = "import-errors.log"
    DETAILS_DIR_NAME = "error-details"

    def __init__(self, log_dir: Path | str, console: logging.Logger | None = None):
        self.log_dir = Path(log_dir)
        self.log_file = self.log_dir / self.LOG_FILE_NAME
        self.details_dir = self.log_dir / self.DETAILS_DIR_NAME
        self.console = console or logger
        self.details_dir.mkdir(parents=True, exist_ok=True)

    def record(self, error: PipelineError) -> str:
        """Persist ``error`` and echo it to the console; returns its id."""
        entry = {"timestamp": _utc_timestamp(), "error": error.to_dict()}

        with self.log_file.open("a", encoding="utf-8") as f:
            f.write(error.log_line() + "\n")

        detail_path = self.details_dir / f"{error.id}.json"
        with detail_path.open("w", encoding="utf-8") as f:
            json.dump(entry, f, indent=2, ensure_ascii=False, default=str)

        self.console.log(
            _CONSOLE_LEVELS[error.severity],
            f"[{error.severity.value}] {error.message} (ID: {error.id})",
            extra={
                "stage": error.stage.value,
                "category": error.category.value,
                "error_id": error.id,
            },
        )
        return error.id

    def create_and_log(
        self,
        message: str,
        category: ErrorCategory,
        severity: ErrorSeverity,
        stage: ImportStage,
        context: dict[str, Any] | None = None,
        original_error: BaseException | None = None,
    ) -> str:
        error = PipelineError(message, category, severity, stage, context, original_error)
        return self.record(error)

    def log_api_error(self, message, stage, context=None, original_error=None) -> str:
        return self.create_and_log(
            message, ErrorCategory.API_ACCESS, ErrorSeverity.ERROR, stage, context, original_error
        )

    def log_entity_error(self, message, stage, context=None, original_error=None) -> str:
        return self.create_and_log(
            message,
            ErrorCategory.ENTITY_RESOLUTION,
            ErrorSeverity.WARNING,
            stage,
            context,
            original_error,
        )

    def log_validation_error(self, message, stage, context=None, original_error=None) -> str:
        return self.create_and_log(
            message,
            ErrorCategory.DATA_VALIDATION,
            ErrorSeverity.WARNING,
            stage,
            context,
            original_error,
        )

    def log_processing_error(self, message, stage, context=None, original_error=None) -> str:
        return self.create_and_log(
            message, ErrorCategory.PROCESSING, ErrorSeverity.ERROR, stage, context, original_error
        )

    def log_system_error(self, message, stage, context=None, original_error=None) -> str:
        return self.create_and_log(
            message, ErrorCategory.SYSTEM, ErrorSeverity.FATAL, stage, context, original_error
        )

    def log_info(self, message, stage, context=None) -> str:
        return self.create_and_log(
            message, ErrorCategory.PROCESSING, ErrorSeverity.INFO, stage, context
        )

    def get_error_stats(self) -> dict[str, Any]:
        """
        Count log lines by category, severity and stage.

        Returns:
            Dict with totalErrors, byCategory, bySeverity and byStage
        """
        stats: dict[str, Any] = {
            "totalErrors": 0,
            "byCategory": {},
            "bySeverity": {},
            "byStage": {},
        }
        if not self.log_file.exists():
            return stats

        lines = [
            line
            for line in self.log_file.read_text(encoding="utf-8").splitlines()
            if line.strip()
        ]
        stats["totalErrors"] = len(lines)

        for line in lines:
            match = _LINE_PATTERN.match(line)
            if not match:
                continue
            _, severity, category, stage = match.groups()
            stats["byCategory"][category] = stats["byCategory"].get(category, 0) + 1
            stats["bySeverity"][severity] = stats["bySeverity"].get(severity, 0) + 1
            stats["byStage"][stage] = stats["byStage"].get(stage, 0) + 1

        return stats
