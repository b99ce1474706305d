"""
Orchestration agent: one conversational turn of the sales assistant.

Data flow:
    user input + recent history → OrchestrationAgent.execute()
                                        ↓
                      CompletionClient.complete()  ←→  ToolRegistry.execute_tool()
                                        ↓
                              OrchestrationResult → CLI / caller

States of a turn:
    INIT → REQUEST → DONE
                   → TOOL_EXECUTION → REQUEST → ... → DONE | ERROR

Design decisions:
- The caller's history is never touched. The assistant tool-call messages and
  tool results of this turn live in a scratch buffer that is dropped when the
  turn ends, so only the final answer is worth persisting.
- Tool problems are reported back to the model as JSON text, not raised.
  Each one becomes the tool-result message of that call only and the loop
  keeps going. This covers malformed arguments, schema violations and
  handler failures.
- The loop is bounded by ``max_iterations`` tool rounds. Hitting the cap is a
  normal outcome (``stop_reason="iteration_limit"``) with a non-empty message.
- Anything that escapes the loop (fatal or exhausted completion errors, the
  turn deadline) becomes ``OrchestrationResult(success=False)``.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from salesbot.config.settings import AgentSettings
from salesbot.llm.client import CompletionClient
from salesbot.llm.models import (
    AgentState,
    CompletionMessage,
    CompletionRequest,
    CompletionResult,
    OrchestrationResult,
    ToolCallRequest,
    ToolCallsReply,
    ToolInvocation,
    UsageSummary,
)
from salesbot.tools.base import ToolResult
from salesbot.tools.errors import MalformedToolCallArguments, ToolValidationError
from salesbot.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

PROMPTS_DIR = Path(__file__).resolve().parent.parent / "prompts"

TRUNCATION_MARKER = "... [resultado truncado]"
INVALID_ARGUMENTS_ERROR = "Invalid JSON arguments"

PROCESSING_FALLBACK = "Procesando tu solicitud..."
NO_RESPONSE_FALLBACK = "No recibí respuesta del modelo. Por favor intenta de nuevo."
ITERATION_LIMIT_FALLBACK = (
    "Estoy tardando más de lo esperado en encontrar lo que necesitas. "
    "¿Puedes darme más detalles para ayudarte mejor?"
)
UNKNOWN_ERROR_MESSAGE = "Error desconocido"

HISTORY_ROLES = ("user", "assistant", "system")


# Control markers some models (DeepSeek) leak into the visible answer.
_MARKER_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"<｜tool▁calls▁begin｜>.*?<｜tool▁calls▁end｜>", re.DOTALL), ""),
    (re.compile(r"<\|tool_calls_begin\|>.*?<\|tool_calls_end\|>", re.DOTALL), ""),
    (re.compile(r"<｜tool▁call▁begin｜>.*?<｜tool▁call▁end｜>", re.DOTALL), ""),
    (re.compile(r"<\|tool_call_begin\|>.*?<\|tool_call_end\|>", re.DOTALL), ""),
    (re.compile(r"<｜tool▁sep｜>"), ""),
    (re.compile(r"<\|tool_sep\|>"), ""),
    (re.compile(r"\[\s*(searchProducts|getProduct|sendSaleEmail)\s*[^\]]*\]", re.IGNORECASE), ""),
    (
        re.compile(
            r"\b(ejecutando|llamando a|usando|utilizando)\s+(función|tool|herramienta)\s+\w+",
            re.IGNORECASE,
        ),
        "",
    ),
    (re.compile(r"\n\s*\n\s*\n"), "\n\n"),
]


def sanitize_response(text: str | None) -> str:
    """Strip tool-call markers and technical phrases from a model answer."""
    if not text:
        return ""
    cleaned = text
    for pattern, replacement in _MARKER_PATTERNS:
        cleaned = pattern.sub(replacement, cleaned)
    return cleaned.strip()


def load_system_prompt(path: Path | None = None) -> str:
    """Read the packaged system prompt (or ``path`` when given)."""
    prompt_path = path or PROMPTS_DIR / "system.txt"
    return prompt_path.read_text(encoding="utf-8").strip()


_UNREADABLE = object()


def _history_text(content: Any) -> Any:
    """
    Plain text of a stored message's content.

    Strings and None pass through. A list of OpenAI content parts is reduced
    to its text parts joined by newlines. Anything else returns the
    ``_UNREADABLE`` sentinel.
    """
    if content is None or isinstance(content, str):
        return content
    if isinstance(content, list):
        texts = []
        for part in content:
            if isinstance(part, str):
                texts.append(part)
            elif isinstance(part, Mapping) and isinstance(part.get("text"), str):
                texts.append(part["text"])
        return "\n".join(texts) if texts else _UNREADABLE
    return _UNREADABLE


def truncate_tool_result(content: str, limit: int) -> str:
    """Keep the first ``limit`` characters and append the truncation marker."""
    if len(content) <= limit:
        return content
    return content[:limit] + TRUNCATION_MARKER


@dataclass
class _Turn:
    """Mutable bookkeeping for one turn."""

    state: AgentState = AgentState.INIT
    usage: UsageSummary = field(default_factory=UsageSummary)
    tools_used: list[str] = field(default_factory=list)
    iterations: int = 0

    def transition(self, state: AgentState) -> None:
        logger.debug(f"Agent state: {self.state.value} -> {state.value}")
        self.state = state


class OrchestrationAgent:
    """
    Runs the bounded request → tool-execute → request loop for one turn.

    Each call to ``execute()`` is independent: the agent holds configuration
    only, so one instance can serve concurrent turns.

    Args:
        client: Completion client used for every round-trip
        registry: Default tool registry (can be overridden per call)
        settings: Loop limits (iterations, history, truncation, deadline)
        system_prompt: System message text (default: packaged prompt)
        temperature, max_tokens, top_p, frequency_penalty, presence_penalty:
            Sampling overrides sent with every request (None = provider default)
    """

    def __init__(
        self,
        client: CompletionClient,
        registry: ToolRegistry,
        settings: AgentSettings | None = None,
        system_prompt: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        top_p: float | None = None,
        frequency_penalty: float | None = None,
        presence_penalty: float | None = None,
    ):
        self._client = client
        self._registry = registry
        self._settings = settings or AgentSettings()
        self._system_prompt = system_prompt if system_prompt is not None else load_system_prompt()
        self._sampling: dict[str, Any] = {
            "temperature": temperature,
            "max_tokens": max_tokens,
            "top_p": top_p,
            "frequency_penalty": frequency_penalty,
            "presence_penalty": presence_penalty,
        }

    @property
    def max_iterations(self) -> int:
        return self._settings.max_iterations

    def _build_messages(
        self, user_input: str, history: Sequence[Mapping[str, Any]]
    ) -> list[CompletionMessage]:
        """System prompt, the last K history turns (role + content only), the new input."""
        messages = [CompletionMessage(role="system", content=self._system_prompt)]

        turns = []
        for index, turn in enumerate(history):
            if turn.get("role") not in HISTORY_ROLES:
                continue
            content = _history_text(turn.get("content"))
            if content is _UNREADABLE:
                logger.warning(f"Skipping history entry {index}: unsupported content")
                continue
            turns.append(CompletionMessage(role=turn["role"], content=content))

        keep = self._settings.history_turns
        if keep:
            messages.extend(turns[-keep:])

        messages.append(CompletionMessage(role="user", content=user_input))
        return messages

    async def execute(
        self,
        user_input: str,
        history: Sequence[Mapping[str, Any]] | None = None,
        registry: ToolRegistry | None = None,
    ) -> OrchestrationResult:
        """
        Answer one user message.

        Args:
            user_input: The customer's message (must be non-empty after stripping)
            history: Previous turns as ``{"role", "content"}`` mappings; not modified
            registry: Tool registry for this call only (default: the agent's own)

        Returns:
            OrchestrationResult. Completion failures come back with
            ``success=False`` and ``stop_reason="error"`` rather than raising.

        Raises:
            ValueError: If user_input is empty or whitespace-only
        """
        text = (user_input or "").strip()
        if not text:
            raise ValueError("User input cannot be empty")

        turn = _Turn()
        run = self._run(turn, text, history or [], registry or self._registry)
        try:
            if self._settings.turn_timeout is not None:
                return await asyncio.wait_for(run, timeout=self._settings.turn_timeout)
            return await run
        except Exception as e:
            turn.transition(AgentState.ERROR)
            if isinstance(e, asyncio.TimeoutError):
                message = f"Turn exceeded {self._settings.turn_timeout}s deadline"
            else:
                message = str(e) or UNKNOWN_ERROR_MESSAGE
            logger.error(f"Turn failed ({type(e).__name__}): {message}", exc_info=e)
            return OrchestrationResult(
                success=False,
                message=message,
                tools_used=turn.tools_used,
                usage=turn.usage,
                iterations=turn.iterations,
                stop_reason="error",
                state=turn.state,
                error=type(e).__name__,
            )

    async def _request(
        self,
        turn: _Turn,
        messages: list[CompletionMessage],
        tools: list[dict[str, Any]] | None,
        step: str,
    ) -> CompletionResult:
        turn.transition(AgentState.REQUEST)
        request = CompletionRequest(
            messages=messages,
            tools=tools,
            tool_choice="auto" if tools else None,
            **self._sampling,
        )
        result = await self._client.complete(request)
        turn.usage.add(step, result.usage)
        return result

    async def _run(
        self,
        turn: _Turn,
        user_input: str,
        history: Sequence[Mapping[str, Any]],
        registry: ToolRegistry,
    ) -> OrchestrationResult:
        base_messages = self._build_messages(user_input, history)
        logger.info(f"History: {len(history)} messages total, {len(base_messages) - 2} sent")

        tools = registry.get_wire_tools() or None
        if tools is None:
            logger.warning("No tools available for this turn")
        logger.info(
            f"Turn start | msgs: {len(base_messages)} | tools: {len(tools or [])} "
            f"| input: {user_input[:80]!r}"
        )

        result = await self._request(turn, base_messages, tools, "Initial request")
        reply = result.reply

        # Turn-scoped: never merged into the caller's history
        scratch: list[CompletionMessage] = []
        max_iterations = self._settings.max_iterations

        while isinstance(reply, ToolCallsReply) and turn.iterations < max_iterations:
            turn.iterations += 1
            turn.transition(AgentState.TOOL_EXECUTION)
            names = ", ".join(call.tool_name for call in reply.calls)
            logger.info(f"Iteration {turn.iterations}/{max_iterations} | tools: {names}")

            scratch.append(
                CompletionMessage(role="assistant", content=reply.text, tool_calls=reply.calls)
            )
            for invocation in await self._execute_calls(reply.calls, registry):
                if invocation.arguments is not None:
                    turn.tools_used.append(invocation.tool_name)
                scratch.append(
                    CompletionMessage(
                        role="tool", content=invocation.result, tool_call_id=invocation.call_id
                    )
                )

            logger.info(f"Next request | msgs: {len(base_messages)} + {len(scratch)} from tools")
            result = await self._request(
                turn,
                base_messages + scratch,
                tools,
                f"Tool iteration {turn.iterations} ({names})",
            )
            reply = result.reply

        if turn.iterations:
            logger.info(
                f"Loop finished | {turn.iterations} iterations | {len(turn.tools_used)} tool calls"
            )

        final_text = sanitize_response(reply.text)
        if isinstance(reply, ToolCallsReply):
            stop_reason = "iteration_limit"
            logger.warning(f"Iteration limit ({max_iterations}) reached with pending tool calls")
            message = final_text or ITERATION_LIMIT_FALLBACK
        else:
            stop_reason = "completed"
            message = final_text
            if not message and turn.tools_used:
                logger.warning("Empty answer after tool calls")
                message = PROCESSING_FALLBACK
            elif not message:
                logger.error("Model returned an empty answer")
                message = NO_RESPONSE_FALLBACK

        turn.transition(AgentState.DONE)
        self._log_usage(turn)
        return OrchestrationResult(
            success=True,
            message=message,
            tools_used=turn.tools_used,
            usage=turn.usage,
            iterations=turn.iterations,
            stop_reason=stop_reason,
            state=turn.state,
        )

    async def _execute_calls(
        self, calls: list[ToolCallRequest], registry: ToolRegistry
    ) -> list[ToolInvocation]:
        """Run one iteration's calls. Results always come back in call order."""
        if self._settings.parallel_tool_calls and len(calls) > 1:
            return list(await asyncio.gather(*(self._run_call(c, registry) for c in calls)))
        return [await self._run_call(call, registry) for call in calls]

    async def _run_call(self, call: ToolCallRequest, registry: ToolRegistry) -> ToolInvocation:
        """Execute one tool call; every failure becomes the call's result text."""
        try:
            arguments = call.parse_arguments()
        except MalformedToolCallArguments as e:
            logger.error(f"Could not parse arguments for {call.tool_name}: {e.reason}")
            return ToolInvocation(
                call_id=call.id,
                tool_name=call.tool_name,
                result=json.dumps({"error": INVALID_ARGUMENTS_ERROR}),
                error=str(e),
            )

        logger.info(
            f"Tool {call.tool_name} | args: {json.dumps(arguments, ensure_ascii=False)[:150]}"
        )
        error: str | None = None
        try:
            tool_result = await registry.execute_tool(call.tool_name, arguments)
            content = tool_result.to_message_content()
            if not tool_result.success:
                error = tool_result.error
        except ToolValidationError as e:
            logger.warning(f"{e} ({'; '.join(e.details)})")
            error = str(e)
            content = ToolResult.failure(error, tool=e.tool_name, fields=e.fields).to_message_content()
        except Exception as e:
            logger.error(f"Error executing tool {call.tool_name}: {e}", exc_info=e)
            error = str(e) or type(e).__name__
            content = json.dumps({"error": error, "tool": call.tool_name}, ensure_ascii=False)

        truncated = truncate_tool_result(content, self._settings.max_tool_result_chars)
        if len(truncated) != len(content):
            logger.info(
                f"Result of {call.tool_name} truncated: {len(content)} -> "
                f"{self._settings.max_tool_result_chars} chars"
            )
        logger.info(f"Tool {call.tool_name} done ({len(truncated)} chars)")
        return ToolInvocation(
            call_id=call.id,
            tool_name=call.tool_name,
            arguments=arguments,
            result=truncated,
            error=error,
        )

    def _log_usage(self, turn: _Turn) -> None:
        usage = turn.usage
        logger.info(
            f"Tokens | total: {usage.total_tokens} "
            f"(in: {usage.prompt_tokens} + out: {usage.completion_tokens})"
        )
        for index, record in enumerate(usage.breakdown, start=1):
            logger.info(
                f"   {index}. {record.step} | in: {record.prompt_tokens} "
                f"out: {record.completion_tokens} total: {record.total_tokens}"
            )
        if turn.tools_used:
            logger.info(f"Tools used: {', '.join(turn.tools_used)}")


__all__ = [
    "AgentState",
    "OrchestrationAgent",
    "sanitize_response",
    "load_system_prompt",
    "truncate_tool_result",
    "TRUNCATION_MARKER",
    "INVALID_ARGUMENTS_ERROR",
    "PROCESSING_FALLBACK",
    "NO_RESPONSE_FALLBACK",
    "ITERATION_LIMIT_FALLBACK",
]
