from __future__ import annotations


class LLMError(Exception):
    """Base error type for completion API failures."""

    def __init__(self, message: str, cause: BaseException | None = None):
        super().__init__(message)
        self.cause = cause


class TransientAPIError(LLMError):
    """Retryable failure (network, rate limit, 5xx) that survived every attempt."""

    def __init__(
        self,
        message: str,
        attempts: int,
        status_code: int | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message, cause=cause)
        self.attempts = attempts
        self.status_code = status_code


class FatalAPIError(LLMError):
    """Non-retryable failure (auth, bad request, permanent provider error)."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message, cause=cause)
        self.status_code = status_code


__all__ = ["LLMError", "TransientAPIError", "FatalAPIError"]
