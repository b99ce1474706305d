"""
Data models shared by the completion client and the orchestration loop.

Messages are kept in a provider-neutral shape and converted to the OpenAI
wire format (which LiteLLM accepts for every provider) only at the edge.
Model replies are a discriminated union so the loop never has to sniff
``content`` / ``tool_calls`` on a loosely typed object.
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, computed_field

from salesbot.tools.errors import MalformedToolCallArguments

Role = Literal["system", "user", "assistant", "tool"]


class AgentState(str, Enum):
    """Turn state. A returned result is always DONE or ERROR."""

    INIT = "init"
    REQUEST = "request"
    TOOL_EXECUTION = "tool_execution"
    DONE = "done"
    ERROR = "error"


class ToolCallRequest(BaseModel):
    """A model-requested tool invocation, arguments still as raw JSON text."""

    id: str = Field(description="Provider call id; tool results must echo it")
    tool_name: str
    raw_arguments: str = Field(default="{}", description="JSON-encoded arguments object")

    def parse_arguments(self) -> dict[str, Any]:
        """
        Decode ``raw_arguments``.

        Raises:
            MalformedToolCallArguments: If the text is not JSON or not a JSON object
        """
        if not self.raw_arguments or not self.raw_arguments.strip():
            return {}
        try:
            parsed = json.loads(self.raw_arguments)
        except (TypeError, ValueError) as e:
            raise MalformedToolCallArguments(self.tool_name, self.id, str(e)) from e
        if not isinstance(parsed, dict):
            raise MalformedToolCallArguments(
                self.tool_name, self.id, f"expected a JSON object, got {type(parsed).__name__}"
            )
        return parsed

    def to_wire(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.tool_name, "arguments": self.raw_arguments},
        }


class CompletionMessage(BaseModel):
    """One chat message in the request sent to the completion API."""

    role: Role
    content: str | None = None
    tool_calls: list[ToolCallRequest] | None = None
    tool_call_id: str | None = None

    def to_wire(self) -> dict[str, Any]:
        """Convert to the OpenAI chat message dict."""
        message: dict[str, Any] = {"role": self.role, "content": self.content}
        if self.tool_calls:
            message["tool_calls"] = [call.to_wire() for call in self.tool_calls]
        if self.tool_call_id is not None:
            message["tool_call_id"] = self.tool_call_id
        return message


class CompletionRequest(BaseModel):
    """Everything needed for one round-trip to the completion API."""

    messages: list[CompletionMessage]
    temperature: float | None = None
    max_tokens: int | None = None
    top_p: float | None = None
    frequency_penalty: float | None = None
    presence_penalty: float | None = None
    tools: list[dict[str, Any]] | None = None
    tool_choice: Literal["auto", "none", "required"] | None = None

    def sampling_params(self) -> dict[str, Any]:
        """Sampling parameters that were explicitly set."""
        params = {
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "top_p": self.top_p,
            "frequency_penalty": self.frequency_penalty,
            "presence_penalty": self.presence_penalty,
        }
        return {k: v for k, v in params.items() if v is not None}


class ContentReply(BaseModel):
    """The model answered with text only."""

    kind: Literal["content"] = "content"
    text: str = ""


class ToolCallsReply(BaseModel):
    """The model asked for one or more tool calls (possibly with some text)."""

    kind: Literal["tool_calls"] = "tool_calls"
    calls: list[ToolCallRequest] = Field(min_length=1)
    text: str | None = None


ModelReply = Annotated[ContentReply | ToolCallsReply, Field(discriminator="kind")]


class TokenUsage(BaseModel):
    """Token counts for a single completion call."""

    prompt_tokens: int = 0
    completion_tokens: int = 0

    @computed_field
    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


class CompletionResult(BaseModel):
    """Normalized completion response."""

    reply: ModelReply
    usage: TokenUsage = Field(default_factory=TokenUsage)
    model: str = ""


class UsageRecord(BaseModel):
    """Usage of one completion round-trip, labelled by loop step."""

    step: str
    prompt_tokens: int = Field(default=0, ge=0)
    completion_tokens: int = Field(default=0, ge=0)

    @computed_field
    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


class UsageSummary(BaseModel):
    """Running token totals for one turn plus the per-step breakdown."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    breakdown: list[UsageRecord] = Field(default_factory=list)

    @computed_field
    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens

    def add(self, step: str, usage: TokenUsage) -> UsageRecord:
        """Record one round-trip. Totals only ever grow."""
        record = UsageRecord(
            step=step,
            prompt_tokens=max(usage.prompt_tokens, 0),
            completion_tokens=max(usage.completion_tokens, 0),
        )
        self.prompt_tokens += record.prompt_tokens
        self.completion_tokens += record.completion_tokens
        self.breakdown.append(record)
        return record


class ToolInvocation(BaseModel):
    """A single tool call as executed within one iteration. Never persisted."""

    call_id: str
    tool_name: str
    arguments: dict[str, Any] | None = None
    result: str | None = None
    error: str | None = None


StopReason = Literal["completed", "iteration_limit", "error"]


class OrchestrationResult(BaseModel):
    """Outcome of one conversational turn."""

    success: bool
    message: str
    tools_used: list[str] = Field(default_factory=list)
    usage: UsageSummary = Field(default_factory=UsageSummary)
    iterations: int = 0
    stop_reason: StopReason = "completed"
    state: AgentState = AgentState.DONE
    error: str | None = None


__all__ = [
    "Role",
    "AgentState",
    "ToolCallRequest",
    "CompletionMessage",
    "CompletionRequest",
    "ContentReply",
    "ToolCallsReply",
    "ModelReply",
    "TokenUsage",
    "CompletionResult",
    "UsageRecord",
    "UsageSummary",
    "ToolInvocation",
    "StopReason",
    "OrchestrationResult",
]
