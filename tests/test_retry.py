"""
Unit tests for the retry policy: classification and attempt bounds.
"""

import asyncio

import httpx
import pytest

from garoon_calendar_sync.models import ApiError
from garoon_calendar_sync.retry import RetryOptions
from garoon_calendar_sync.retry import compute_delay
from garoon_calendar_sync.retry import is_retryable_error
from garoon_calendar_sync.retry import with_retry


class _Flaky:
    """Callable that fails ``failures`` times before returning ``value``."""

    def __init__(self, error: Exception, failures: int, value="ok"):
        self.error = error
        self.failures = failures
        self.value = value
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return self.value


def _options(max_retries: int = 3, sleeps: list | None = None) -> RetryOptions:
    async def _sleep(seconds: float):
        if sleeps is not None:
            sleeps.append(seconds)

    return RetryOptions(max_retries=max_retries, base_delay=1.0, max_delay=10.0, sleep=_sleep)


class TestClassifier:
    @pytest.mark.parametrize("status", [408, 429, 500, 502, 503, 599])
    def test_transient_statuses_are_retryable(self, status):
        assert is_retryable_error(ApiError("google", status))

    @pytest.mark.parametrize("status", [400, 401, 403, 404, 409, 410])
    def test_client_errors_are_permanent(self, status):
        assert not is_retryable_error(ApiError("google", status))

    def test_transport_errors_are_retryable(self):
        assert is_retryable_error(httpx.ConnectError("refused"))
        assert is_retryable_error(httpx.ReadTimeout("slow"))

    def test_other_exceptions_are_permanent(self):
        assert not is_retryable_error(ValueError("bad"))


class TestBackoff:
    def test_delay_grows_and_is_capped(self):
        for attempt in range(6):
            delay = compute_delay(attempt, 1.0, 10.0)
            assert delay <= 10.0
            assert delay >= min(2**attempt, 10.0)


class TestWithRetry:
    def test_success_on_first_attempt(self):
        op = _Flaky(ApiError("google", 503), failures=0)
        assert asyncio.run(with_retry(op, _options())) == "ok"
        assert op.calls == 1

    def test_recovers_after_transient_failures(self):
        sleeps = []
        op = _Flaky(ApiError("google", 503), failures=2)
        assert asyncio.run(with_retry(op, _options(sleeps=sleeps))) == "ok"
        assert op.calls == 3
        assert len(sleeps) == 2

    def test_retryable_failure_is_bounded(self):
        """A permanently retryable failure is attempted exactly max_retries + 1 times."""
        op = _Flaky(ApiError("google", 500), failures=100)
        with pytest.raises(ApiError) as excinfo:
            asyncio.run(with_retry(op, _options(max_retries=3)))
        assert op.calls == 4
        assert excinfo.value.status_code == 500

    def test_non_retryable_failure_is_attempted_once(self):
        op = _Flaky(ApiError("google", 400), failures=100)
        with pytest.raises(ApiError):
            asyncio.run(with_retry(op, _options(max_retries=3)))
        assert op.calls == 1

    def test_zero_retries_means_single_attempt(self):
        op = _Flaky(httpx.ConnectError("refused"), failures=100)
        with pytest.raises(httpx.ConnectError):
            asyncio.run(with_retry(op, _options(max_retries=0)))
        assert op.calls == 1

    def test_sleeps_follow_backoff(self):
        sleeps = []
        op = _Flaky(ApiError("garoon", 429), failures=3)
        asyncio.run(with_retry(op, _options(max_retries=3, sleeps=sleeps)))
        assert len(sleeps) == 3
        assert 1.0 <= sleeps[0] <= 2.0
        assert 2.0 <= sleeps[1] <= 3.0
        assert 4.0 <= sleeps[2] <= 5.0
