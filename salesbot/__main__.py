"""
SalesBot CLI entry point.

Provides command-line access to the sales assistant and its utilities.
"""

import argparse
import asyncio
import json
import sys
import time
from pathlib import Path

from salesbot import __version__
from salesbot.config.logging import get_logger, setup_logging
from salesbot.config.settings import Settings, load_settings
from salesbot.components import AgentComponents, load_product_store

API_ERRORS = ("FatalAPIError", "TransientAPIError")


def create_parser() -> argparse.ArgumentParser:
    """Create and configure argument parser."""
    parser = argparse.ArgumentParser(
        prog="salesbot",
        description="LLM sales assistant with product search and sale notification tools",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"SalesBot {__version__}",
    )

    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Path to .env file (default: .env in current directory)",
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Override logging level from config",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Config command
    subparsers.add_parser(
        "config",
        help="Show current configuration",
    )

    # Tools command
    subparsers.add_parser(
        "tools",
        help="List the tools offered to the model with their JSON schemas",
    )

    # Chat command
    chat_parser = subparsers.add_parser(
        "chat",
        help="Send one message to the sales assistant",
    )
    chat_parser.add_argument(
        "message",
        help='Customer message, e.g. "necesito un teclado mecánico"',
    )
    chat_parser.add_argument(
        "--catalog",
        type=Path,
        default=None,
        help="JSON file with products to load into the in-memory store",
    )
    chat_parser.add_argument(
        "--history",
        type=Path,
        default=None,
        help='JSON file with previous turns: [{"role": "user", "content": "..."}, ...]',
    )

    # Import command
    import_parser = subparsers.add_parser(
        "import",
        help="Bulk-import products from a JSON file (record by record, with retries)",
    )
    import_parser.add_argument(
        "source_path",
        type=Path,
        help="JSON file with a list of product records",
    )

    # MCP server command
    mcp_parser = subparsers.add_parser(
        "serve-mcp",
        help="Expose the tools over the Model Context Protocol (stdio)",
    )
    mcp_parser.add_argument(
        "--catalog",
        type=Path,
        default=None,
        help="JSON file with products to load into the in-memory store",
    )

    return parser


def cmd_config(settings: Settings) -> int:
    """Show current configuration."""
    logger = get_logger(__name__)

    logger.info("Current Configuration:")
    logger.info("\n=== SalesBot Configuration ===\n")
    logger.info(f"Environment: {settings.environment}")
    logger.info(f"Log Level: {settings.log_level}")
    logger.info(f"Log File: {settings.log_file or 'None (console only)'}")
    logger.info(f"\nLLM Model: {settings.llm.model}")
    logger.info(f"LLM API Key: {'Set' if settings.llm.api_key else 'Not set'}")
    logger.info(f"LLM API Base: {settings.llm.api_base or 'provider default'}")
    logger.info(
        f"LLM Retries: {settings.llm.max_attempts} attempts, base delay "
        f"{settings.llm.retry_base_delay}s, statuses {settings.llm.retryable_status_codes}"
    )
    logger.info(f"\nAgent Max Iterations: {settings.agent.max_iterations}")
    logger.info(f"Agent History Turns: {settings.agent.history_turns}")
    logger.info(f"Agent Max Tool Result Chars: {settings.agent.max_tool_result_chars}")
    logger.info(f"Agent Turn Timeout: {settings.agent.turn_timeout or 'None'}")
    logger.info(f"Agent Parallel Tool Calls: {settings.agent.parallel_tool_calls}")
    logger.info(f"\nTool Cache TTL: {settings.tools.cache_ttl}s")
    logger.info(f"Tool Timeout: {settings.tools.tool_timeout or 'None'}")
    logger.info(f"Sale Email Recipient: {settings.tools.sale_email_recipient or 'Not set'}")
    logger.info(f"\nSMTP Host: {settings.email.smtp_host or 'None (emails are logged only)'}")
    logger.info(f"\nImport Retries: {settings.importer.max_retries}")

    return 0


def cmd_tools(settings: Settings) -> int:
    """Print tool names and their wire schemas."""
    registry = AgentComponents(settings).create_registry()
    for tool in registry.get_wire_tools():
        function = tool["function"]
        print(f"\n=== {function['name']} ===")
        print(function["description"])
        print(json.dumps(function["parameters"], indent=2, ensure_ascii=False))
    return 0


def _load_history(path: Path | None) -> list[dict]:
    if path is None:
        return []
    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, list):
        raise ValueError(f"History file must contain a JSON list: {path}")
    return data


async def cmd_chat(args, settings: Settings) -> int:
    """
    Run one conversational turn and print the answer.

    The product store is in-memory, loaded from --catalog when given. The
    output lists the tools the model called and the token usage of every
    round-trip.
    """
    logger = get_logger(__name__)

    try:
        history = _load_history(args.history)
        store = load_product_store(args.catalog)
        factory = AgentComponents(settings)
        agent = factory.create_agent(factory.create_registry(products=store))

        logger.info(f"Sending to {settings.llm.model} ({len(store)} products loaded)...")
        result = await agent.execute(args.message, history=history)
    except Exception as e:
        logger.error(f"Chat failed: {e}", exc_info=True)
        return 1

    if not result.success:
        print(f"\nLLM error: {result.message}", file=sys.stderr)
        if result.error in API_ERRORS:
            print("Tip: Set LLM__API_KEY (and LLM__API_BASE if needed) in your .env file.", file=sys.stderr)
        return 1

    print("\n=== SalesBot ===")
    print(f"> {args.message}\n")
    print(result.message)

    if result.tools_used:
        print(f"\n--- Tools ({result.iterations} iterations) ---")
        print("  " + ", ".join(result.tools_used))
    if result.stop_reason == "iteration_limit":
        print("\n(iteration limit reached)")

    print(f"\nTokens: {result.usage.total_tokens} "
          f"(prompt {result.usage.prompt_tokens} "
          f"+ completion {result.usage.completion_tokens})")
    for i, record in enumerate(result.usage.breakdown, start=1):
        print(f"  {i}. {record.step}: {record.prompt_tokens} in / {record.completion_tokens} out")

    return 0


async def cmd_import(args, settings: Settings) -> int:
    """Bulk-import products and print the report."""
    from salesbot.catalog.importer import load_records
    from salesbot.catalog.products import InMemoryProductStore

    logger = get_logger(__name__)

    source_path: Path = args.source_path
    if not source_path.exists():
        logger.error(f"File not found: {source_path}")
        return 1

    try:
        rows = load_records(source_path)
        store = InMemoryProductStore()
        importer = AgentComponents(settings).create_importer(store)

        start = time.time()
        report = await importer.run(rows)
        elapsed = time.time() - start
    except Exception as e:
        logger.error(f"Import failed: {e}", exc_info=True)
        return 1

    print("\n=== Import Report ===")
    print(f"Rows:    {report.total}")
    print(f"Created: {report.created}")
    print(f"Skipped: {report.skipped}")
    print(f"Failed:  {report.error_count}")
    for failure in report.failed:
        print(f"  - {failure.reference}: {failure.reason}")
    print(f"Elapsed: {elapsed:.2f}s")

    return 0 if not report.failed else 2


async def cmd_serve_mcp(args, settings: Settings) -> int:
    """Serve the tools over MCP on stdio."""
    from salesbot.mcp_server import ToolServer

    store = load_product_store(args.catalog)
    registry = AgentComponents(settings).create_registry(products=store)
    await ToolServer(registry).serve_stdio()
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    # Load settings
    try:
        settings = load_settings(env_file=args.env_file)
    except Exception as e:
        print(f"Error loading settings: {e}", file=sys.stderr)
        return 1

    # Override log level if specified
    if args.log_level:
        settings.log_level = args.log_level

    # stdout carries the MCP protocol, so the server logs to stderr
    setup_logging(settings, stream=sys.stderr if args.command == "serve-mcp" else None)

    # Execute command
    if args.command == "config":
        return cmd_config(settings)
    elif args.command == "tools":
        return cmd_tools(settings)
    elif args.command == "chat":
        return asyncio.run(cmd_chat(args, settings))
    elif args.command == "import":
        return asyncio.run(cmd_import(args, settings))
    elif args.command == "serve-mcp":
        return asyncio.run(cmd_serve_mcp(args, settings))
    else:
        # Default: show help
        parser.print_help()
        return 0


if __name__ == "__main__":
    sys.exit(main())
