"""
MCP tool server.

Exposes the registry's tools over the Model Context Protocol on stdio, so
other MCP clients (desktop assistants, other agents) can call the same
product and notification tools the sales agent uses.

stdout carries the protocol: logging must go to stderr.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import mcp.types as types
from mcp.server.lowlevel import Server
from mcp.server.stdio import stdio_server

from salesbot import __version__
from salesbot.tools.base import ToolResult
from salesbot.tools.errors import ToolValidationError
from salesbot.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

SERVER_NAME = "salesbot-tools"


class ToolServer:
    """
    Adapts a ``ToolRegistry`` to MCP ``list_tools`` / ``call_tool``.

    Results are the same JSON envelopes the agent sends to the model,
    wrapped in a single text content block.
    """

    def __init__(self, registry: ToolRegistry, name: str = SERVER_NAME):
        self._registry = registry
        self.server: Server = Server(name, version=__version__)
        self.server.list_tools()(self.list_tools)
        self.server.call_tool()(self.call_tool)

    async def list_tools(self) -> list[types.Tool]:
        tools = []
        for definition in self._registry.load_tools():
            tools.append(
                types.Tool(
                    name=str(definition.name),
                    description=definition.description,
                    inputSchema=self._registry.schema_to_wire_format(definition.parameters),
                )
            )
        return tools

    async def call_tool(self, name: str, arguments: dict[str, Any] | None) -> list[types.TextContent]:
        logger.info(f"MCP call: {name} {json.dumps(arguments or {}, ensure_ascii=False)[:150]}")
        try:
            result = await self._registry.execute_tool(name, arguments or {})
        except ToolValidationError as e:
            result = ToolResult.failure(str(e), tool=e.tool_name, fields=e.fields)
        return [types.TextContent(type="text", text=result.to_message_content())]

    async def serve_stdio(self) -> None:
        """Run until the client closes stdin."""
        logger.info(f"MCP server '{self.server.name}' listening on stdio")
        async with stdio_server() as (read_stream, write_stream):
            await self.server.run(
                read_stream, write_stream, self.server.create_initialization_options()
            )


__all__ = ["SERVER_NAME", "ToolServer"]
