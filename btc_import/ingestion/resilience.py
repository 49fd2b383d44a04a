"""
btc_import.ingestion.resilience

Retry policy and the retrying executor that wraps every remote call.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, TypeVar

import httpx

from btc_import.ingestion.errors import ErrorLog, ImportStage

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 3
    initial_delay_s: float = 1.0
    max_delay_s: float = 30.0

    @classmethod
    def from_settings(cls, settings) -> "RetryPolicy":
        return cls(
            max_retries=settings.MAX_RETRIES,
            initial_delay_s=settings.INITIAL_DELAY_MS / 1000.0,
            max_delay_s=settings.MAX_DELAY_MS / 1000.0,
        )

    def compute_backoff_s(self, attempt: int) -> float:
        """
        attempt: 1..N (the retry about to happen)
        """
        delay = self.initial_delay_s * (2 ** max(0, attempt - 1))
        return max(0.0, min(delay, self.max_delay_s))


class FailureKind(str, Enum):
    RATE_LIMITED = "rate_limited"
    SERVER_ERROR = "server_error"
    NO_RESPONSE = "no_response"
    AUTH = "auth"
    CLIENT_ERROR = "client_error"
    REQUEST_SETUP = "request_setup"


_RETRYABLE = {FailureKind.RATE_LIMITED, FailureKind.SERVER_ERROR, FailureKind.NO_RESPONSE}


@dataclass(frozen=True)
class FailureClassification:
    kind: FailureKind
    message: str
    status_code: int | None = None
    retry_after_s: float | None = None

    @property
    def is_retryable(self) -> bool:
        return self.kind in _RETRYABLE


def parse_retry_after(value: str | None) -> float | None:
    """Seconds from a ``Retry-After`` header; None when absent or not numeric."""
    if not value:
        return None
    try:
        seconds = float(value.strip())
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


def _response_body(response: httpx.Response) -> str:
    try:
        return response.text[:500]
    except (httpx.ResponseNotRead, UnicodeDecodeError):
        return ""


def classify_failure(error: BaseException) -> FailureClassification:
    """Decide whether a failed remote call is worth retrying."""
    if isinstance(error, httpx.HTTPStatusError):
        response = error.response
        status = response.status_code
        body = _response_body(response)
        if status == 429:
            return FailureClassification(
                FailureKind.RATE_LIMITED,
                f"Rate limit exceeded (429): {body}",
                status_code=status,
                retry_after_s=parse_retry_after(response.headers.get("retry-after")),
            )
        if status >= 500:
            return FailureClassification(
                FailureKind.SERVER_ERROR, f"Server error ({status}): {body}", status_code=status
            )
        if status in (401, 403):
            return FailureClassification(
                FailureKind.AUTH, f"Authentication error ({status}): {body}", status_code=status
            )
        return FailureClassification(
            FailureKind.CLIENT_ERROR, f"API error ({status}): {body}", status_code=status
        )

    # Request never left the client
    if isinstance(error, (httpx.UnsupportedProtocol, httpx.LocalProtocolError)):
        return FailureClassification(
            FailureKind.REQUEST_SETUP, f"Request setup error: {error}"
        )
    if isinstance(error, httpx.TransportError):
        return FailureClassification(
            FailureKind.NO_RESPONSE, f"No response received from server: {error}"
        )
    return FailureClassification(FailureKind.REQUEST_SETUP, f"Request setup error: {error}")


class RetryingExecutor:
    """
    Execute remote calls with classified retries and exponential backoff.

    429, 5xx and response-less failures are retried up to ``max_retries``
    times; 401/403, other 4xx and malformed requests fail on the first attempt.
    Every failed attempt is recorded in the error log.
    """

    def __init__(self, error_log: ErrorLog, policy: RetryPolicy | None = None):
        self.error_log = error_log
        self.policy = policy or RetryPolicy()

    async def execute(
        self,
        call: Callable[[], Awaitable[T]],
        stage: ImportStage,
        context: dict[str, Any] | None = None,
    ) -> T:
        """
        Await ``call()`` until it succeeds or the failure is final.

        Args:
            call: Zero-argument coroutine factory performing one remote call
            stage: Import stage recorded with every log entry
            context: Extra fields recorded with every log entry

        Returns:
            Whatever ``call()`` returns

        Raises:
            The last exception raised by ``call()``
        """
        context = context or {}
        retries = 0

        while True:
            try:
                return await call()
            except Exception as error:
                failure = classify_failure(error)

                if not failure.is_retryable:
                    self.error_log.log_api_error(
                        failure.message,
                        stage,
                        {**context, "failure": failure.kind.value},
                        error,
                    )
                    raise

                if retries >= self.policy.max_retries:
                    self.error_log.log_api_error(
                        f"API call failed after {retries} retries: {failure.message}",
                        stage,
                        {**context, "retries": retries, "failure": failure.kind.value},
                        error,
                    )
                    raise

                retries += 1
                delay_s = self.policy.compute_backoff_s(retries)
                if failure.retry_after_s is not None:
                    delay_s = failure.retry_after_s

                self.error_log.log_api_error(
                    f"{failure.message}. Retrying ({retries}/{self.policy.max_retries})...",
                    stage,
                    {
                        **context,
                        "retries": retries - 1,
                        "delay_ms": int(delay_s * 1000),
                        "failure": failure.kind.value,
                    },
                    error,
                )
                await asyncio.sleep(delay_s)
