"""
Unit tests for the resilience module.

Tests for RetryPolicy, failure classification and RetryingExecutor.
"""

import asyncio
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from btc_import.ingestion.errors import ImportStage
from btc_import.ingestion.resilience import (
    FailureKind,
    RetryingExecutor,
    RetryPolicy,
    classify_failure,
    parse_retry_after,
)

# =============================================================================
# TEST DATA
# =============================================================================


def status_error(status: int, headers=None) -> httpx.HTTPStatusError:
    request = httpx.Request("GET", "https://api.test/events")
    response = httpx.Response(status, headers=headers, request=request, text="body")
    return httpx.HTTPStatusError(f"HTTP {status}", request=request, response=response)


def failing_call(*errors, result="ok"):
    """AsyncMock raising ``errors`` in order, then returning ``result``."""
    return AsyncMock(side_effect=[*errors, result])


# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def policy():
    return RetryPolicy(max_retries=3, initial_delay_s=1.0, max_delay_s=30.0)


@pytest.fixture
def retrying(error_log, policy):
    return RetryingExecutor(error_log, policy)


@pytest.fixture
def sleep():
    with patch("btc_import.ingestion.resilience.asyncio.sleep", new_callable=AsyncMock) as mock:
        yield mock


def log_lines(error_log):
    if not error_log.log_file.exists():
        return []
    return error_log.log_file.read_text(encoding="utf-8").splitlines()


# =============================================================================
# TEST CLASSES
# =============================================================================


class TestRetryPolicy:
    def test_backoff_doubles(self, policy):
        """Should double the delay for each retry."""
        assert [policy.compute_backoff_s(n) for n in (1, 2, 3, 4)] == [1.0, 2.0, 4.0, 8.0]

    def test_backoff_capped(self):
        """Should cap the delay at max_delay_s."""
        policy = RetryPolicy(initial_delay_s=1.0, max_delay_s=5.0)
        assert policy.compute_backoff_s(10) == 5.0

    def test_from_settings(self):
        class FakeSettings:
            MAX_RETRIES = 5
            INITIAL_DELAY_MS = 250
            MAX_DELAY_MS = 2000

        policy = RetryPolicy.from_settings(FakeSettings())
        assert policy == RetryPolicy(max_retries=5, initial_delay_s=0.25, max_delay_s=2.0)


class TestClassifyFailure:
    @pytest.mark.parametrize(
        "status, kind, retryable",
        [
            (429, FailureKind.RATE_LIMITED, True),
            (500, FailureKind.SERVER_ERROR, True),
            (503, FailureKind.SERVER_ERROR, True),
            (401, FailureKind.AUTH, False),
            (403, FailureKind.AUTH, False),
            (404, FailureKind.CLIENT_ERROR, False),
            (422, FailureKind.CLIENT_ERROR, False),
        ],
    )
    def test_status_codes(self, status, kind, retryable):
        failure = classify_failure(status_error(status))
        assert failure.kind == kind
        assert failure.is_retryable is retryable
        assert failure.status_code == status

    def test_retry_after_header(self):
        failure = classify_failure(status_error(429, headers={"Retry-After": "7"}))
        assert failure.retry_after_s == 7.0

    def test_network_errors_retry(self):
        request = httpx.Request("GET", "https://api.test")
        assert classify_failure(httpx.ConnectError("refused", request=request)).is_retryable
        assert classify_failure(httpx.ReadTimeout("slow", request=request)).is_retryable

    def test_request_setup_errors_do_not_retry(self):
        assert not classify_failure(httpx.UnsupportedProtocol("ftp://x")).is_retryable
        assert not classify_failure(ValueError("bad payload")).is_retryable

    @pytest.mark.parametrize(
        "value, expected", [("3", 3.0), (" 1.5 ", 1.5), (None, None), ("soon", None), ("-1", None)]
    )
    def test_parse_retry_after(self, value, expected):
        assert parse_retry_after(value) == expected


class TestRetryingExecutor:
    def test_success_first_attempt(self, retrying, error_log, sleep):
        call = AsyncMock(return_value={"events": []})
        result = asyncio.run(retrying.execute(call, ImportStage.EXTRACTION))
        assert result == {"events": []}
        assert call.await_count == 1
        sleep.assert_not_awaited()
        assert log_lines(error_log) == []

    def test_429_retries_until_exhausted(self, retrying, error_log, sleep):
        """Should retry a 429 max_retries times, then re-raise."""
        error = status_error(429)
        call = AsyncMock(side_effect=error)

        with pytest.raises(httpx.HTTPStatusError):
            asyncio.run(retrying.execute(call, ImportStage.EXTRACTION, {"date": "2024-01-01"}))

        assert call.await_count == 4
        assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0, 4.0]
        lines = log_lines(error_log)
        assert len(lines) == 4
        assert "API call failed after 3 retries" in lines[-1]

    def test_retry_after_overrides_backoff(self, retrying, sleep):
        call = failing_call(status_error(429, headers={"Retry-After": "12"}))
        assert asyncio.run(retrying.execute(call, ImportStage.EXTRACTION)) == "ok"
        sleep.assert_awaited_once_with(12.0)

    def test_403_never_retries(self, retrying, error_log, sleep):
        """Should surface 403 on the first attempt."""
        call = AsyncMock(side_effect=status_error(403))
        with pytest.raises(httpx.HTTPStatusError):
            asyncio.run(retrying.execute(call, ImportStage.LOADING))
        assert call.await_count == 1
        sleep.assert_not_awaited()
        assert len(log_lines(error_log)) == 1

    def test_other_4xx_never_retries(self, retrying, sleep):
        call = AsyncMock(side_effect=status_error(400))
        with pytest.raises(httpx.HTTPStatusError):
            asyncio.run(retrying.execute(call, ImportStage.LOADING))
        assert call.await_count == 1

    def test_network_error_then_success(self, retrying, error_log, sleep):
        """Should retry response-less failures and return the later success."""
        request = httpx.Request("GET", "https://api.test")
        call = failing_call(
            httpx.ConnectError("refused", request=request),
            status_error(502),
            result=[1, 2],
        )
        assert asyncio.run(retrying.execute(call, ImportStage.EXTRACTION)) == [1, 2]
        assert call.await_count == 3
        assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0]
        assert len(log_lines(error_log)) == 2

    def test_non_httpx_exception_not_retried(self, retrying, sleep):
        call = AsyncMock(side_effect=KeyError("missing"))
        with pytest.raises(KeyError):
            asyncio.run(retrying.execute(call, ImportStage.TRANSFORMATION))
        assert call.await_count == 1

    def test_zero_retries(self, error_log, sleep):
        executor = RetryingExecutor(error_log, RetryPolicy(max_retries=0))
        call = AsyncMock(side_effect=status_error(500))
        with pytest.raises(httpx.HTTPStatusError):
            asyncio.run(executor.execute(call, ImportStage.EXTRACTION))
        assert call.await_count == 1
        sleep.assert_not_awaited()
