"""
LLM Orchestration Layer.

Manages the completion API (via LiteLLM) and the bounded tool-use loop:

    user input + history
            ↓
    OrchestrationAgent.execute()  ←→  ToolRegistry (product/email tools)
            ↓
    CompletionClient.complete()   (retries with backoff)
            ↓
    OrchestrationResult  →  CLI / caller

Each turn is independent; tool round-trips live only inside the turn.
"""

from salesbot.llm.client import CompletionClient
from salesbot.llm.errors import FatalAPIError, LLMError, TransientAPIError
from salesbot.llm.models import (
    CompletionRequest,
    CompletionResult,
    OrchestrationResult,
    TokenUsage,
    UsageSummary,
)
from salesbot.llm.orchestrator import OrchestrationAgent, sanitize_response

__all__ = [
    "CompletionClient",
    "CompletionRequest",
    "CompletionResult",
    "OrchestrationAgent",
    "OrchestrationResult",
    "LLMError",
    "TransientAPIError",
    "FatalAPIError",
    "TokenUsage",
    "UsageSummary",
    "sanitize_response",
]
