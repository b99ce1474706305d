"""
Base types for tools the model can call.

A tool is a name from ``ToolName``, a description, a parameter schema and an
async handler. Handlers receive validated arguments plus a ``ToolContext``
holding the logger and the collaborators they need. They may return:

- a plain string,
- a ``{"success": ..., ...}`` mapping,
- an MCP-style ``{"content": [{"type": "text", "text": ...}]}`` envelope.

``ToolResult.from_handler_output`` maps all three onto a single envelope, so
the orchestration loop only ever serialises ``ToolResult`` objects.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel

from salesbot.tools.schema import ObjectSchema

if TYPE_CHECKING:
    from salesbot.catalog.products import ProductDataService
    from salesbot.config.settings import ToolSettings
    from salesbot.notifications import EmailSender


class ToolName(StrEnum):
    """Every tool identifier the registry accepts. Names are case-sensitive."""

    GET_PRODUCT = "getProduct"
    SEARCH_PRODUCTS = "searchProducts"
    SEND_SALE_EMAIL = "sendSaleEmail"


@dataclass
class ToolContext:
    """Per-registry context handed to every handler call."""

    logger: logging.Logger
    products: ProductDataService | None = None
    notifier: EmailSender | None = None
    settings: ToolSettings | None = None


ToolHandler = Callable[[dict[str, Any], ToolContext], Awaitable[Any]]


@dataclass(frozen=True)
class ToolDefinition:
    """A registered tool: schema plus async handler."""

    name: ToolName
    description: str
    parameters: ObjectSchema
    handler: ToolHandler


class ToolResult(BaseModel):
    """Canonical tool-result envelope sent back to the model."""

    success: bool
    data: Any = None
    error: str | None = None
    tool: str | None = None
    fields: list[str] | None = None

    @classmethod
    def failure(
        cls, error: str, tool: str | None = None, fields: list[str] | None = None
    ) -> ToolResult:
        return cls(success=False, error=error, tool=tool, fields=fields)

    @classmethod
    def from_handler_output(cls, output: Any) -> ToolResult:
        """Normalise whatever a handler returned."""
        if isinstance(output, ToolResult):
            return output

        if isinstance(output, str):
            return cls(success=True, data=output)

        if isinstance(output, Mapping):
            if "success" in output:
                rest = {k: v for k, v in output.items() if k not in ("success", "error")}
                return cls(
                    success=bool(output["success"]),
                    error=output.get("error"),
                    data=rest or None,
                )

            content = output.get("content")
            if isinstance(content, list):
                texts = [
                    str(block.get("text", ""))
                    for block in content
                    if isinstance(block, Mapping) and block.get("type", "text") == "text"
                ]
                return cls(success=True, data="\n".join(texts))

        return cls(success=True, data=output)

    def to_message_content(self) -> str:
        """JSON text for the tool-result message."""
        payload = self.model_dump(exclude_none=True)
        return json.dumps(payload, ensure_ascii=False, default=str)


__all__ = [
    "ToolName",
    "ToolContext",
    "ToolHandler",
    "ToolDefinition",
    "ToolResult",
]
