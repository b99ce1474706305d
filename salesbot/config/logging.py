"""
Logging configuration and setup.

Everything logs under the ``salesbot`` logger hierarchy: a console handler
(colored when attached to a terminal) plus an optional plain-text file
handler. The console stream is selectable because the MCP server owns stdout.
"""

import copy
import logging
import sys
from pathlib import Path
from typing import TextIO

from salesbot.config.settings import Settings

CONSOLE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Dependencies that log every HTTP request at INFO
NOISY_LOGGERS = ("LiteLLM", "LiteLLM Router", "LiteLLM Proxy", "httpx", "httpcore", "mcp")


class ColoredFormatter(logging.Formatter):
    """Formatter that adds color to the level name."""

    # ANSI color codes
    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def __init__(self, fmt: str | None = None, datefmt: str | None = None, use_color: bool = True):
        super().__init__(fmt=fmt, datefmt=datefmt)
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        if not self.use_color or record.levelname not in self.COLORS:
            return super().format(record)
        # Other handlers share the record; color a copy only.
        colored = copy.copy(record)
        colored.levelname = f"{self.COLORS[record.levelname]}{record.levelname}{self.RESET}"
        return super().format(colored)


def _console_handler(stream: TextIO, level: int) -> logging.Handler:
    handler = logging.StreamHandler(stream)
    handler.setLevel(level)
    is_tty = getattr(stream, "isatty", None)
    handler.setFormatter(
        ColoredFormatter(
            fmt=CONSOLE_FORMAT,
            datefmt=DATE_FORMAT,
            use_color=bool(is_tty and is_tty()),
        )
    )
    return handler


def _file_handler(log_file: Path, level: int) -> logging.Handler:
    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    handler = logging.FileHandler(log_path, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt=FILE_FORMAT, datefmt=DATE_FORMAT))
    return handler


def setup_logging(settings: Settings, stream: TextIO | None = None) -> None:
    """
    Configure logging based on settings.

    Args:
        settings: Application settings containing log configuration
        stream: Console stream (default: stdout). ``serve-mcp`` passes stderr.
    """
    level = getattr(logging, settings.log_level)

    app_logger = logging.getLogger("salesbot")
    app_logger.setLevel(level)
    app_logger.handlers.clear()
    app_logger.addHandler(_console_handler(stream or sys.stdout, level))
    if settings.log_file:
        app_logger.addHandler(_file_handler(settings.log_file, level))

    # Don't propagate to root logger
    app_logger.propagate = False

    # Request-level chatter from the HTTP stack only in DEBUG
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG if level <= logging.DEBUG else logging.WARNING)

    app_logger.info(f"Logging initialized - Level: {settings.log_level}")
    if settings.log_file:
        app_logger.info(f"Logging to file: {settings.log_file}")


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for a module.

    Module ``__name__`` values already start with ``salesbot.`` and are used
    as-is; short names ("tools") are placed under the ``salesbot`` logger.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured logger instance
    """
    if name == "salesbot" or name.startswith("salesbot."):
        return logging.getLogger(name)
    return logging.getLogger(f"salesbot.{name}")
