"""
Bounded retry for chunked Graph calls.

Every chunk-level call goes through call_with_retry() with the same
RetryPolicy: max attempts, linear backoff (base_delay * attempt) capped at
max_delay. Permission errors are not transient and fail on first sight.
A truncated or malformed body (ValueError from JSON decoding) is retried
like a 5xx.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

import httpx

from ..config import RetryPolicy
from .client import GraphAPIError

logger = logging.getLogger("m365_license_lifecycle.graph.retry")

T = TypeVar("T")

NON_TRANSIENT_STATUS = {400, 401, 403, 404}


class RetryExhausted(Exception):
    """Raised when an operation failed on every allowed attempt."""
    def __init__(self, label: str, attempts: int, last_error: BaseException):
        self.label = label
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"{label} failed after {attempts} attempt(s): {last_error}")


def is_transient(error: BaseException) -> bool:
    if isinstance(error, GraphAPIError):
        return error.status_code not in NON_TRANSIENT_STATUS
    return isinstance(error, (httpx.HTTPError, ValueError))


async def call_with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    label: str,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Run operation() until it succeeds or the policy is exhausted.
    operation must be restartable: each attempt calls it afresh.
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            return await operation()
        except (GraphAPIError, httpx.HTTPError, ValueError) as e:
            if not is_transient(e) or attempt >= policy.max_attempts:
                raise RetryExhausted(label, attempt, e) from e
            delay = policy.delay_for(attempt)
            logger.warning(
                f"{label}: attempt {attempt}/{policy.max_attempts} failed ({e}); "
                f"retrying in {delay:.0f}s"
            )
            await sleep(delay)
