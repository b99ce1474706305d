"""
Component factory.

Centralises the construction of the assistant's components from settings,
so the CLI commands, the MCP server and tests wire things the same way.
"""

from __future__ import annotations

from pathlib import Path

from salesbot.catalog.importer import BulkImporter, load_records
from salesbot.catalog.products import InMemoryProductStore, Product, ProductDataService
from salesbot.config.logging import get_logger
from salesbot.config.settings import Settings
from salesbot.llm.client import CompletionClient
from salesbot.llm.orchestrator import OrchestrationAgent
from salesbot.notifications import EmailSender, create_email_sender
from salesbot.retry import RetryPolicy
from salesbot.tools.base import ToolContext
from salesbot.tools.catalog import load_catalog
from salesbot.tools.registry import ToolRegistry


def load_product_store(path: Path | None) -> InMemoryProductStore:
    """
    Build an in-memory store from a JSON catalog file.

    The file holds a list of products (or ``{"products": [...]}``) using the
    stored field names. Without a path the store starts empty.
    """
    if path is None:
        return InMemoryProductStore()
    return InMemoryProductStore(Product.model_validate(item) for item in load_records(path))


class AgentComponents:
    """
    Factory for building assistant components from settings.

    Example::

        factory = AgentComponents(settings)
        registry = factory.create_registry(products=load_product_store(path))
        agent = factory.create_agent(registry)
        result = await agent.execute("necesito un teclado mecánico")
    """

    def __init__(self, settings: Settings):
        self.settings = settings

    def create_client(self) -> CompletionClient:
        """Create a CompletionClient from settings."""
        return CompletionClient(self.settings.llm)

    def create_notifier(self) -> EmailSender:
        """SMTP sender when a host is configured, logging sender otherwise."""
        return create_email_sender(self.settings.email)

    def create_registry(
        self,
        products: ProductDataService | None = None,
        notifier: EmailSender | None = None,
    ) -> ToolRegistry:
        """Create a ToolRegistry over the static catalog."""
        context = ToolContext(
            logger=get_logger("tools"),
            products=products if products is not None else InMemoryProductStore(),
            notifier=notifier if notifier is not None else self.create_notifier(),
            settings=self.settings.tools,
        )
        return ToolRegistry(
            load_catalog,
            context=context,
            cache_ttl=self.settings.tools.cache_ttl,
            tool_timeout=self.settings.tools.tool_timeout,
        )

    def create_agent(
        self,
        registry: ToolRegistry,
        client: CompletionClient | None = None,
    ) -> OrchestrationAgent:
        """Create an OrchestrationAgent from settings + an initialized registry."""
        return OrchestrationAgent(
            client=client or self.create_client(),
            registry=registry,
            settings=self.settings.agent,
            temperature=self.settings.llm.temperature,
            max_tokens=self.settings.llm.max_tokens,
        )

    def create_importer(self, store: InMemoryProductStore) -> BulkImporter:
        """Create a BulkImporter inserting into ``store``."""
        importer = self.settings.importer
        return BulkImporter(
            store.create,
            RetryPolicy(
                max_attempts=importer.max_retries,
                initial_delay=importer.initial_delay,
                factor=importer.backoff_factor,
                jitter=importer.jitter,
            ),
        )
