"""
Completion client: one resilient round-trip to the chat completion API.

Uses LiteLLM for provider abstraction (DeepSeek by default; any
OpenAI-compatible model works by changing the model string). Each call goes
through ``RetryPolicy``:

- statuses 404/429/500/502/503 are retried with exponential backoff
  (``retry_base_delay * 2^(attempt-1)`` plus jitter),
- any other status fails at once with ``FatalAPIError``,
- exhausted attempts raise ``TransientAPIError``.

The provider response is normalised into a ``CompletionResult`` so the
orchestration loop only ever sees ``ContentReply`` / ``ToolCallsReply``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from litellm import acompletion

from salesbot.config.settings import LLMSettings
from salesbot.llm.errors import FatalAPIError, TransientAPIError
from salesbot.llm.models import (
    CompletionRequest,
    CompletionResult,
    ContentReply,
    ModelReply,
    TokenUsage,
    ToolCallRequest,
    ToolCallsReply,
)
from salesbot.retry import NonRetryableError, RetryExhaustedError, RetryPolicy

logger = logging.getLogger(__name__)


def _status_code(error: BaseException) -> int | None:
    status = getattr(error, "status_code", None)
    return status if isinstance(status, int) else None


def _parse_reply(message: Any) -> ModelReply:
    content = getattr(message, "content", None)
    raw_calls = getattr(message, "tool_calls", None) or []

    calls: list[ToolCallRequest] = []
    for call in raw_calls:
        function = getattr(call, "function", None)
        name = getattr(function, "name", None)
        if not isinstance(name, str):
            # Only function tool calls are understood
            continue
        calls.append(
            ToolCallRequest(
                id=call.id,
                tool_name=name,
                raw_arguments=getattr(function, "arguments", None) or "{}",
            )
        )

    if calls:
        return ToolCallsReply(calls=calls, text=content or None)
    return ContentReply(text=content or "")


def _parse_usage(response: Any) -> TokenUsage:
    usage = getattr(response, "usage", None)
    if usage is None:
        return TokenUsage()
    return TokenUsage(
        prompt_tokens=getattr(usage, "prompt_tokens", None) or 0,
        completion_tokens=getattr(usage, "completion_tokens", None) or 0,
    )


class CompletionClient:
    """
    Sends ``CompletionRequest`` objects to the completion API.

    Args:
        settings: LLM configuration (model, credentials, retry tuning)
        retry_policy: Override the policy built from settings (tests)
        sleep: Backoff sleep used when building the policy (tests pass a fake)
    """

    def __init__(
        self,
        settings: LLMSettings,
        retry_policy: RetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._settings = settings
        self._retry_policy = retry_policy or RetryPolicy(
            max_attempts=settings.max_attempts,
            initial_delay=settings.retry_base_delay,
            factor=2.0,
            jitter=settings.retry_jitter,
            retryable_statuses=settings.retryable_status_codes,
            sleep=sleep,
        )

    @property
    def model(self) -> str:
        return self._settings.model

    def _build_kwargs(self, request: CompletionRequest) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": self._settings.model,
            "messages": [message.to_wire() for message in request.messages],
        }
        if self._settings.api_key:
            kwargs["api_key"] = self._settings.api_key
        if self._settings.api_base:
            kwargs["api_base"] = self._settings.api_base

        # Request values win over the configured defaults
        if self._settings.temperature is not None:
            kwargs["temperature"] = self._settings.temperature
        if self._settings.max_tokens is not None:
            kwargs["max_tokens"] = self._settings.max_tokens
        kwargs.update(request.sampling_params())

        if request.tools:
            kwargs["tools"] = request.tools
            kwargs["tool_choice"] = request.tool_choice or "auto"
        return kwargs

    async def complete(self, request: CompletionRequest) -> CompletionResult:
        """
        Run one completion round-trip with retries.

        Raises:
            FatalAPIError: Non-retryable failure (carries ``status_code`` when known)
            TransientAPIError: Retryable failures on every attempt
        """
        kwargs = self._build_kwargs(request)
        tool_count = len(request.tools or [])
        total = self._retry_policy.max_attempts
        attempt = 0

        async def _call() -> Any:
            nonlocal attempt
            attempt += 1
            logger.info(
                f"Completion request | model: {self._settings.model} | attempt {attempt}/{total} "
                f"| msgs: {len(request.messages)} | tools: {tool_count}"
            )
            return await acompletion(**kwargs)

        try:
            response = await self._retry_policy.retry(_call, label="completion request")
        except NonRetryableError as e:
            raise FatalAPIError(
                f"Completion API call failed: {e.original}",
                status_code=_status_code(e.original),
                cause=e.original,
            ) from e
        except RetryExhaustedError as e:
            raise TransientAPIError(
                f"Completion API call failed after {e.attempts} attempts: {e.original}",
                attempts=e.attempts,
                status_code=_status_code(e.original),
                cause=e.original,
            ) from e

        if not getattr(response, "choices", None):
            raise FatalAPIError("Completion API returned no choices")

        reply = _parse_reply(response.choices[0].message)
        usage = _parse_usage(response)
        model = getattr(response, "model", None) or self._settings.model

        if isinstance(reply, ToolCallsReply):
            logger.info(
                f"Completion response | tool calls: {len(reply.calls)} "
                f"| tokens: {usage.prompt_tokens} in / {usage.completion_tokens} out"
            )
        else:
            if not reply.text:
                logger.warning("Completion response has no content and no tool calls")
            logger.info(
                f"Completion response | content: {len(reply.text)} chars "
                f"| tokens: {usage.prompt_tokens} in / {usage.completion_tokens} out"
            )

        return CompletionResult(reply=reply, usage=usage, model=model)


__all__ = ["CompletionClient"]
