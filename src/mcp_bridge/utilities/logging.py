"""Logging utilities for the bridge."""

import logging
from typing import Literal

from rich.console import Console
from rich.logging import RichHandler

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


def get_logger(name: str) -> logging.Logger:
    """Get a logger nested under the mcp_bridge namespace.

    Args:
        name: the name of the logger, which will be prefixed with 'mcp_bridge.'

    Returns:
        a configured logger instance
    """
    if name == "mcp_bridge" or name.startswith("mcp_bridge."):
        return logging.getLogger(name)
    return logging.getLogger(f"mcp_bridge.{name}")


def configure_logging(level: LogLevel = "INFO") -> None:
    """Configure logging for the bridge and its tools.

    Args:
        level: the log level to use
    """
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
    )
