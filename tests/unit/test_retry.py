"""
Unit tests for RetryPolicy.

Tests cover:
- Classification by HTTP status and by error signature
- Backoff delay growth and jitter bounds
- retry(): success, fatal errors, exhaustion, attempt overrides
"""

import random

import pytest

from salesbot.retry import (
    NonRetryableError,
    RetryDecision,
    RetryExhaustedError,
    RetryPolicy,
)


class StatusError(Exception):
    """Exception carrying an HTTP status like litellm's API errors."""

    def __init__(self, status_code: int, message: str = "api error"):
        super().__init__(message)
        self.status_code = status_code


class PgError(Exception):
    def __init__(self, message: str, code: str):
        super().__init__(message)
        self.code = code


class FakeSleep:
    """Records requested delays instead of sleeping."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def sleep():
    return FakeSleep()


@pytest.fixture
def policy(sleep):
    return RetryPolicy(max_attempts=3, initial_delay=1.0, factor=2.0, jitter=0.0, sleep=sleep)


class TestClassify:
    """Tests for RetryPolicy.classify."""

    @pytest.mark.parametrize("status", [404, 429, 500, 502, 503])
    def test_retryable_statuses(self, policy, status):
        assert policy.classify(StatusError(status)) is RetryDecision.RETRYABLE

    @pytest.mark.parametrize("status", [400, 401, 403, 422])
    def test_other_statuses_are_fatal(self, policy, status):
        assert policy.classify(StatusError(status)) is RetryDecision.FATAL

    def test_status_wins_over_message(self, policy):
        # A 503 whose body mentions "invalid" is still a transient outage
        assert policy.classify(StatusError(503, "invalid upstream")) is RetryDecision.RETRYABLE

    def test_custom_retryable_statuses(self, sleep):
        policy = RetryPolicy(retryable_statuses={418}, sleep=sleep)
        assert policy.classify(StatusError(418)) is RetryDecision.RETRYABLE
        assert policy.classify(StatusError(429)) is RetryDecision.FATAL

    @pytest.mark.parametrize(
        "message",
        [
            "duplicate key value violates unique constraint",
            "UNIQUE constraint failed: products.reference",
            "validation error on stock",
            "invalid input syntax for type numeric",
        ],
    )
    def test_fatal_signatures(self, policy, message):
        assert policy.classify(Exception(message)) is RetryDecision.FATAL

    def test_unique_violation_code_is_fatal(self, policy):
        assert policy.classify(PgError("insert failed", code="23505")) is RetryDecision.FATAL

    @pytest.mark.parametrize(
        "error",
        [
            TimeoutError(),
            ConnectionError("reset by peer"),
            Exception("Connection refused"),
            Exception("read ECONNRESET"),
            Exception("request timed out"),
        ],
    )
    def test_transient_signatures(self, policy, error):
        assert policy.classify(error) is RetryDecision.RETRYABLE

    def test_unknown_errors_default_to_retryable(self, policy):
        assert policy.classify(RuntimeError("something odd")) is RetryDecision.RETRYABLE


class TestComputeDelay:
    """Tests for exponential backoff."""

    def test_exponential_growth_without_jitter(self, policy):
        assert [policy.compute_delay(n) for n in (1, 2, 3, 4)] == [1.0, 2.0, 4.0, 8.0]

    def test_jitter_stays_within_bound(self, sleep):
        policy = RetryPolicy(initial_delay=2.0, jitter=0.25, sleep=sleep, rng=random.Random(7))
        for attempt in (1, 2, 3):
            base = 2.0 * 2 ** (attempt - 1)
            delay = policy.compute_delay(attempt)
            assert base <= delay <= base + 0.25

    def test_delays_never_decrease(self, sleep):
        policy = RetryPolicy(initial_delay=0.5, jitter=0.1, sleep=sleep, rng=random.Random(1))
        delays = [policy.compute_delay(n) for n in range(1, 6)]
        assert delays == sorted(delays)

    def test_rejects_zero_attempts(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)


class TestRetry:
    """Tests for RetryPolicy.retry."""

    @pytest.mark.asyncio
    async def test_returns_first_success(self, policy, sleep):
        calls = 0

        async def fn():
            nonlocal calls
            calls += 1
            return "ok"

        assert await policy.retry(fn) == "ok"
        assert calls == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_retries_transient_then_succeeds(self, policy, sleep):
        outcomes = [StatusError(429), StatusError(503), "done"]

        async def fn():
            outcome = outcomes.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome

        assert await policy.retry(fn) == "done"
        assert sleep.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_fatal_error_is_not_retried(self, policy, sleep):
        calls = 0
        original = Exception("duplicate key value violates unique constraint")

        async def fn():
            nonlocal calls
            calls += 1
            raise original

        with pytest.raises(NonRetryableError) as exc_info:
            await policy.retry(fn)

        assert calls == 1
        assert sleep.delays == []
        assert exc_info.value.original is original
        assert exc_info.value.__cause__ is original
        assert "Non-retryable error" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_exhaustion_reports_attempts(self, policy, sleep):
        calls = 0

        async def fn():
            nonlocal calls
            calls += 1
            raise StatusError(500)

        with pytest.raises(RetryExhaustedError) as exc_info:
            await policy.retry(fn)

        assert calls == 3
        assert exc_info.value.attempts == 3
        assert "after 3 attempts" in str(exc_info.value)
        assert isinstance(exc_info.value.original, StatusError)
        # No sleep after the final attempt
        assert sleep.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_attempts_override(self, policy, sleep):
        calls = 0

        async def fn():
            nonlocal calls
            calls += 1
            raise TimeoutError()

        with pytest.raises(RetryExhaustedError):
            await policy.retry(fn, attempts=5)

        assert calls == 5
        assert len(sleep.delays) == 4

    @pytest.mark.asyncio
    async def test_single_attempt_never_sleeps(self, policy, sleep):
        async def fn():
            raise ConnectionError("down")

        with pytest.raises(RetryExhaustedError):
            await policy.retry(fn, attempts=1)

        assert sleep.delays == []
