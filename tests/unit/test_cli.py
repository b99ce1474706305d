"""
Tests for the salesbot CLI.

These tests verify that:
- The parser accepts every subcommand and its flags
- chat and import print their results and return the right exit codes
"""

import argparse
import json
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from salesbot.__main__ import cmd_chat, cmd_import, create_parser, main
from salesbot.config.settings import Settings
from salesbot.llm.models import OrchestrationResult, UsageRecord, UsageSummary


@pytest.fixture
def settings():
    return Settings(_env_file=None)


class TestParser:
    """Parser-level tests."""

    def test_chat_message_and_flags(self):
        parser = create_parser()
        args = parser.parse_args(
            ["chat", "necesito un teclado", "--catalog", "products.json", "--history", "h.json"]
        )

        assert args.command == "chat"
        assert args.message == "necesito un teclado"
        assert args.catalog == Path("products.json")
        assert args.history == Path("h.json")

    def test_chat_requires_message(self):
        parser = create_parser()
        with pytest.raises(SystemExit):
            parser.parse_args(["chat"])

    def test_import_source_path(self):
        args = create_parser().parse_args(["import", "data/products.json"])
        assert args.source_path == Path("data/products.json")

    def test_serve_mcp_catalog_defaults_to_none(self):
        args = create_parser().parse_args(["serve-mcp"])
        assert args.command == "serve-mcp"
        assert args.catalog is None

    def test_global_flags(self):
        args = create_parser().parse_args(["--log-level", "DEBUG", "--env-file", "x.env", "config"])
        assert args.log_level == "DEBUG"
        assert args.env_file == Path("x.env")

    def test_invalid_log_level_rejected(self):
        with pytest.raises(SystemExit):
            create_parser().parse_args(["--log-level", "LOUD", "config"])


class TestMain:
    """Tests for command dispatch."""

    def test_no_command_prints_help(self, capsys):
        assert main([]) == 0
        assert "usage: salesbot" in capsys.readouterr().out

    def test_tools_lists_catalog(self, capsys):
        assert main(["tools"]) == 0

        out = capsys.readouterr().out
        for name in ("getProduct", "searchProducts", "sendSaleEmail"):
            assert f"=== {name} ===" in out


def _args(**values):
    return argparse.Namespace(**values)


class TestChatCommand:
    """Tests for cmd_chat output and exit codes."""

    @pytest.mark.asyncio
    async def test_prints_answer_tools_and_usage(self, settings, capsys):
        result = OrchestrationResult(
            success=True,
            message="Tenemos 2 teclados disponibles.",
            tools_used=["searchProducts"],
            iterations=1,
            stop_reason="completed",
            usage=UsageSummary(
                prompt_tokens=300,
                completion_tokens=50,
                breakdown=[
                    UsageRecord(step="Initial request", prompt_tokens=100, completion_tokens=20),
                    UsageRecord(step="Tool iteration 1 (searchProducts)", prompt_tokens=200, completion_tokens=30),
                ],
            ),
        )
        args = _args(message="necesito un teclado", catalog=None, history=None)

        with patch("salesbot.llm.orchestrator.OrchestrationAgent.execute", new=AsyncMock(return_value=result)):
            code = await cmd_chat(args, settings)

        out = capsys.readouterr().out
        assert code == 0
        assert "Tenemos 2 teclados disponibles." in out
        assert "searchProducts" in out
        assert "Tokens: 350" in out
        assert "2. Tool iteration 1 (searchProducts): 200 in / 30 out" in out

    @pytest.mark.asyncio
    async def test_failed_turn_returns_one(self, settings, capsys):
        result = OrchestrationResult(
            success=False,
            message="Completion request failed",
            stop_reason="error",
            error="FatalAPIError",
        )
        args = _args(message="hola", catalog=None, history=None)

        with patch("salesbot.llm.orchestrator.OrchestrationAgent.execute", new=AsyncMock(return_value=result)):
            code = await cmd_chat(args, settings)

        err = capsys.readouterr().err
        assert code == 1
        assert "LLM error: Completion request failed" in err
        assert "LLM__API_KEY" in err

    @pytest.mark.asyncio
    async def test_history_must_be_a_list(self, settings, tmp_path):
        history = tmp_path / "history.json"
        history.write_text(json.dumps({"role": "user"}), encoding="utf-8")
        args = _args(message="hola", catalog=None, history=history)

        assert await cmd_chat(args, settings) == 1


class TestImportCommand:
    """Tests for cmd_import."""

    @pytest.mark.asyncio
    async def test_missing_file(self, settings, tmp_path):
        args = _args(source_path=tmp_path / "missing.json")
        assert await cmd_import(args, settings) == 1

    @pytest.mark.asyncio
    async def test_report_and_exit_code(self, settings, tmp_path, capsys):
        source = tmp_path / "products.json"
        source.write_text(
            json.dumps(
                [
                    {"code": "TK-1", "reference": "R1", "stock": 3},
                    {"code": "TK-1", "reference": "R1", "stock": 3},
                    {"description": "sin referencia"},
                ]
            ),
            encoding="utf-8",
        )

        code = await cmd_import(_args(source_path=source), settings)

        out = capsys.readouterr().out
        assert code == 2
        assert "Created: 1" in out
        assert "Skipped: 1" in out
        assert "Failed:  1" in out
