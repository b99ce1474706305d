"""
Tool registry: catalog loading, wire schemas, validation and dispatch.

The registry is an explicit object, not a module-level singleton. One is
created per application (or per tenant/test) and passed to the orchestration
agent. Each registry owns:

- a catalog loader returning the static ``ToolDefinition`` list,
- a TTL cache of the loaded catalog, refreshed lazily when empty or stale,
- the ``ToolContext`` handed to every handler.

Definitions are checked when they are loaded (known ``ToolName``, unique,
async handler), so dispatch is a plain dict lookup by exact name.

Failure isolation: a handler that raises (or exceeds the tool timeout) never
propagates out of ``execute_tool``. The exception becomes
``ToolResult(success=False, error=..., tool=...)``. Invalid arguments are
different: they raise ``ToolValidationError`` so the caller can report the
offending fields back to the model.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from pydantic import BaseModel, ValidationError

from salesbot.tools.base import ToolContext, ToolDefinition, ToolName, ToolResult
from salesbot.tools.errors import ToolExecutionError, ToolRegistrationError, ToolValidationError
from salesbot.tools.schema import JSONSchemaVisitor, ObjectSchema, ValidationModelVisitor

logger = logging.getLogger(__name__)

CatalogLoader = Callable[[], Sequence[ToolDefinition]]


def _validate_definitions(definitions: Sequence[ToolDefinition]) -> dict[str, ToolDefinition]:
    """Index definitions by name, rejecting anything the dispatcher can't handle."""
    indexed: dict[str, ToolDefinition] = {}
    for definition in definitions:
        if not isinstance(definition.name, ToolName):
            raise ToolRegistrationError(
                f"Tool name {definition.name!r} is not a known ToolName"
            )
        name = str(definition.name)
        if name in indexed:
            raise ToolRegistrationError(f"Duplicate tool name: {name}")
        if not inspect.iscoroutinefunction(definition.handler):
            raise ToolRegistrationError(f"Handler for {name} must be an async function")
        if not isinstance(definition.parameters, ObjectSchema):
            raise ToolRegistrationError(f"Parameters for {name} must be an ObjectSchema")
        indexed[name] = definition
    return indexed


class ToolRegistry:
    """
    Catalog of callable tools with TTL caching and isolated execution.

    Args:
        loader: Returns the static catalog (not a network call)
        context: Passed to every handler (logger + collaborators)
        cache_ttl: Seconds a loaded catalog stays valid (default: 60)
        tool_timeout: Optional per-handler time limit in seconds
        clock: Monotonic clock, injectable for tests
    """

    def __init__(
        self,
        loader: CatalogLoader,
        context: ToolContext | None = None,
        cache_ttl: float = 60.0,
        tool_timeout: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._loader = loader
        self._context = context or ToolContext(logger=logging.getLogger("salesbot.tools"))
        self._cache_ttl = cache_ttl
        self._tool_timeout = tool_timeout
        self._clock = clock

        self._cache: dict[str, ToolDefinition] = {}
        self._validators: dict[str, type[BaseModel]] = {}
        self._last_fetch: float | None = None
        self._schema_visitor = JSONSchemaVisitor()

    @property
    def context(self) -> ToolContext:
        return self._context

    # ------------------------------------------------------------------
    # Catalog / cache
    # ------------------------------------------------------------------

    def _is_stale(self) -> bool:
        if not self._cache or self._last_fetch is None:
            return True
        return self._clock() - self._last_fetch >= self._cache_ttl

    def _refresh(self) -> dict[str, ToolDefinition]:
        logger.info("Loading tool catalog...")
        indexed = _validate_definitions(list(self._loader()))
        # Replace, don't mutate: concurrent readers keep a consistent view.
        self._cache = indexed
        self._validators = {}
        self._last_fetch = self._clock()
        logger.info(f"Loaded {len(indexed)} tools: {', '.join(indexed)}")
        return indexed

    def _catalog(self) -> dict[str, ToolDefinition]:
        if self._is_stale():
            return self._refresh()
        logger.debug(f"Using cached tool catalog ({len(self._cache)} tools)")
        return self._cache

    def load_tools(self) -> list[ToolDefinition]:
        """Return the tool catalog, reloading it when the cache is empty or stale."""
        return list(self._catalog().values())

    def get_available_names(self) -> list[str]:
        """Tool names in catalog order (same TTL rule as load_tools)."""
        return list(self._catalog().keys())

    def clear_cache(self) -> None:
        """Drop the cached catalog; the next access reloads it."""
        self._cache = {}
        self._validators = {}
        self._last_fetch = None
        logger.info("Tool cache cleared")

    # ------------------------------------------------------------------
    # Wire format
    # ------------------------------------------------------------------

    def schema_to_wire_format(self, schema: ObjectSchema) -> dict[str, Any]:
        """Convert a parameter schema into JSON-Schema."""
        return self._schema_visitor.render(schema)

    def get_wire_tools(self) -> list[dict[str, Any]]:
        """All tools in the OpenAI function-tool format."""
        return [
            {
                "type": "function",
                "function": {
                    "name": str(definition.name),
                    "description": definition.description,
                    "parameters": self.schema_to_wire_format(definition.parameters),
                },
            }
            for definition in self.load_tools()
        ]

    # ------------------------------------------------------------------
    # Validation / execution
    # ------------------------------------------------------------------

    def _lookup(self, name: str) -> ToolDefinition | None:
        definition = self._catalog().get(name)
        if definition is None:
            # Cache miss: the catalog may have changed since the last load.
            definition = self._refresh().get(name)
        return definition

    def _validator_for(self, definition: ToolDefinition) -> type[BaseModel]:
        name = str(definition.name)
        model = self._validators.get(name)
        if model is None:
            model = ValidationModelVisitor(model_name=f"{name}Arguments").build(definition.parameters)
            self._validators[name] = model
        return model

    def validate_arguments(self, definition: ToolDefinition, args: Any) -> dict[str, Any]:
        """
        Validate ``args`` against the tool's schema.

        Returns:
            The validated arguments (defaults filled in)

        Raises:
            ToolValidationError: Listing every offending field
        """
        name = str(definition.name)
        if not isinstance(args, Mapping):
            raise ToolValidationError(name, [], [f"arguments must be an object, got {type(args).__name__}"])

        model = self._validator_for(definition)
        try:
            validated = model.model_validate(dict(args))
        except ValidationError as e:
            fields: list[str] = []
            details: list[str] = []
            for err in e.errors():
                path = ".".join(str(part) for part in err["loc"])
                if path not in fields:
                    fields.append(path)
                details.append(f"{path}: {err['msg']}")
            raise ToolValidationError(name, fields, details) from e
        return validated.model_dump(by_alias=True)

    async def _invoke(self, definition: ToolDefinition, args: dict[str, Any]) -> Any:
        name = str(definition.name)
        try:
            call = definition.handler(args, self._context)
            if self._tool_timeout is not None:
                return await asyncio.wait_for(call, timeout=self._tool_timeout)
            return await call
        except asyncio.TimeoutError as e:
            raise ToolExecutionError(
                name, TimeoutError(f"Tool '{name}' timed out after {self._tool_timeout}s")
            ) from e
        except Exception as e:
            raise ToolExecutionError(name, e) from e

    async def execute_tool(self, name: str, args: Any) -> ToolResult:
        """
        Execute a tool by exact name.

        Unknown names and handler failures come back as failed ``ToolResult``
        objects. Only argument validation raises.

        Raises:
            ToolValidationError: If ``args`` don't match the tool's schema
        """
        logger.info(f"Executing tool: {name}")

        definition = self._lookup(name)
        if definition is None:
            logger.error(f"Tool '{name}' not found")
            return ToolResult.failure(f"Tool '{name}' does not exist", tool=name)

        validated = self.validate_arguments(definition, args)

        try:
            output = await self._invoke(definition, validated)
        except ToolExecutionError as e:
            logger.error(f"Tool {name} failed: {e}", exc_info=e.cause)
            return ToolResult.failure(str(e), tool=name)

        result = ToolResult.from_handler_output(output)
        if result.success:
            logger.info(f"Tool {name} executed successfully")
        else:
            logger.warning(f"Tool {name} reported failure: {result.error}")
        if result.tool is None and not result.success:
            result.tool = name
        return result


__all__ = ["CatalogLoader", "ToolRegistry"]
