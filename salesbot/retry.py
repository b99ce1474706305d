"""
Retry policy with exponential backoff and jitter.

One primitive, two callers:

- ``CompletionClient`` retries the completion endpoint on transient HTTP
  statuses (rate limits, gateway errors, the odd 404 from the provider).
- ``BulkImporter`` retries each product insert on connection/timeout
  failures while refusing to retry duplicates or validation errors.

Classification looks at an HTTP ``status_code`` attribute first (litellm and
most HTTP client exceptions carry one). Errors without a status are classified
by message signature. Unknown errors are retried.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable, Iterable
from enum import Enum
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_RETRYABLE_STATUSES = frozenset({404, 429, 500, 502, 503})

# Postgres unique_violation
_UNIQUE_VIOLATION_CODE = "23505"

_FATAL_SIGNATURES = ("duplicate", "unique", "violat", "validation", "invalid")
_RETRYABLE_SIGNATURES = ("timeout", "timed out", "connection", "econnreset", "ecancelled")


class RetryDecision(str, Enum):
    RETRYABLE = "retryable"
    FATAL = "fatal"


class RetryError(Exception):
    """Base class for errors raised by RetryPolicy.retry()."""

    def __init__(self, message: str, original: BaseException, attempts: int):
        super().__init__(message)
        self.original = original
        self.attempts = attempts


class NonRetryableError(RetryError):
    """The operation failed with an error classified as fatal."""


class RetryExhaustedError(RetryError):
    """Every allowed attempt failed with a retryable error."""


def _status_code_of(error: BaseException) -> int | None:
    status = getattr(error, "status_code", None)
    if status is None:
        status = getattr(error, "status", None)
    if isinstance(status, int):
        return status
    return None


class RetryPolicy:
    """
    Classifies errors and retries async operations with backoff.

    Args:
        max_attempts: Total attempts (first call included)
        initial_delay: Delay in seconds before the second attempt
        factor: Multiplier applied per attempt (2.0 doubles the delay)
        jitter: Upper bound of uniform random seconds added to each delay
        retryable_statuses: HTTP statuses treated as transient
        sleep: Awaitable sleep function (injectable for tests)
        rng: Random source for jitter (injectable for tests)
    """

    def __init__(
        self,
        max_attempts: int = 3,
        initial_delay: float = 0.5,
        factor: float = 2.0,
        jitter: float = 0.1,
        retryable_statuses: Iterable[int] = DEFAULT_RETRYABLE_STATUSES,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: random.Random | None = None,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.initial_delay = initial_delay
        self.factor = factor
        self.jitter = jitter
        self.retryable_statuses = frozenset(retryable_statuses)
        self._sleep = sleep
        self._rng = rng or random.Random()

    def classify(self, error: BaseException) -> RetryDecision:
        """Decide whether ``error`` is worth another attempt."""
        status = _status_code_of(error)
        if status is not None:
            if status in self.retryable_statuses:
                return RetryDecision.RETRYABLE
            return RetryDecision.FATAL

        code = str(getattr(error, "code", None) or getattr(error, "pgcode", None) or "")
        if code == _UNIQUE_VIOLATION_CODE:
            return RetryDecision.FATAL

        message = str(error).lower()
        if any(sig in message for sig in _FATAL_SIGNATURES):
            return RetryDecision.FATAL
        if isinstance(error, (TimeoutError, ConnectionError)):
            return RetryDecision.RETRYABLE
        if any(sig in message for sig in _RETRYABLE_SIGNATURES):
            return RetryDecision.RETRYABLE

        return RetryDecision.RETRYABLE

    def compute_delay(self, attempt: int) -> float:
        """Delay to wait after failed attempt number ``attempt`` (1-based)."""
        base = self.initial_delay * (self.factor ** (attempt - 1))
        if self.jitter > 0:
            return base + self._rng.uniform(0, self.jitter)
        return base

    async def retry(
        self,
        fn: Callable[[], Awaitable[T]],
        attempts: int | None = None,
        label: str = "operation",
    ) -> T:
        """
        Await ``fn()`` until it succeeds, a fatal error occurs, or attempts run out.

        Args:
            fn: Zero-argument coroutine factory; called once per attempt
            attempts: Override max_attempts for this call
            label: Name used in log lines

        Raises:
            NonRetryableError: On the first fatal error (no further attempts)
            RetryExhaustedError: When every attempt failed with retryable errors
        """
        total = attempts if attempts is not None else self.max_attempts
        if total < 1:
            raise ValueError("attempts must be at least 1")

        attempt = 0
        while True:
            attempt += 1
            if attempt > 1:
                logger.info(f"Retrying {label} (attempt {attempt}/{total})")
            try:
                return await fn()
            except Exception as e:
                decision = self.classify(e)

                if decision is RetryDecision.FATAL:
                    logger.error(f"{label} failed with non-retryable error: {e}")
                    raise NonRetryableError(
                        f"Non-retryable error: {e}", original=e, attempts=attempt
                    ) from e

                if attempt >= total:
                    logger.error(f"{label} failed after {total} attempts: {e}")
                    raise RetryExhaustedError(
                        f"Retry failed after {total} attempts: {e}", original=e, attempts=total
                    ) from e

                delay = self.compute_delay(attempt)
                logger.warning(
                    f"{label} attempt {attempt}/{total} failed: {e}. "
                    f"Waiting {delay:.2f}s before retrying"
                )
                await self._sleep(delay)
