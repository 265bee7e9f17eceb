"""
Bounded exponential-backoff retry for calendar API calls.
"""

import asyncio
import logging
import random
from collections.abc import Awaitable
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

import httpx
from tenacity import AsyncRetrying
from tenacity import RetryCallState
from tenacity import retry_if_exception
from tenacity import stop_after_attempt

from garoon_calendar_sync.models import ApiError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Request timeout and rate limiting; every 5xx is retryable as well.
_RETRYABLE_STATUS_CODES = frozenset({408, 429})


def is_retryable_error(error: BaseException) -> bool:
    """Return True for transient failures worth another attempt.

    Transport-level problems (connection refused/reset, timeouts, broken
    protocol streams) and API answers signalling rate limiting or a server
    side fault are transient.  Any other client error is permanent and
    must surface immediately.
    """
    if isinstance(error, httpx.TransportError):
        return True
    if isinstance(error, ApiError):
        code = error.status_code
        return code in _RETRYABLE_STATUS_CODES or 500 <= code < 600
    return False


@dataclass
class RetryOptions:
    max_retries: int = 3
    base_delay: float = 1.0  # seconds
    max_delay: float = 10.0  # seconds
    classifier: Callable[[BaseException], bool] = is_retryable_error
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep


def compute_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    """Backoff before retry number ``attempt + 1`` (``attempt`` counts from 0)."""
    exponential = base_delay * (2**attempt)
    jitter = random.uniform(0, base_delay)
    return min(exponential + jitter, max_delay)


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    options: RetryOptions | None = None,
) -> T:
    """Run ``operation`` with up to ``max_retries`` retries.

    The failure of the last permitted attempt, or any failure the classifier
    rejects, is re-raised unchanged.
    """
    opts = options or RetryOptions()

    def _wait(retry_state: RetryCallState) -> float:
        return compute_delay(retry_state.attempt_number - 1, opts.base_delay, opts.max_delay)

    def _log_retry(retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        logger.warning(
            "Retry %d/%d in %.2fs after: %s",
            retry_state.attempt_number,
            opts.max_retries,
            delay,
            error,
        )

    retrying = AsyncRetrying(
        sleep=opts.sleep,
        stop=stop_after_attempt(opts.max_retries + 1),
        wait=_wait,
        retry=retry_if_exception(opts.classifier),
        before_sleep=_log_retry,
        reraise=True,
    )
    return await retrying(operation)
