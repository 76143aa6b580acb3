"""Logging setup for the CLI and MCP server."""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

_LEVEL_MAP = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARN": logging.WARNING,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

# Per-request chatter from the MCP SDK.
_QUIET_LOGGERS = ("mcp.server.lowlevel.server", "mcp.server.stdio")


def setup_logging(level: str = "WARNING") -> None:
    """Send `stubindex` logs to stderr through rich.

    stdout is left alone: the CLI prints results there and the MCP server
    speaks its protocol over it.
    """
    handler = RichHandler(
        console=Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    )
    handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))

    root = logging.getLogger("stubindex")
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(_LEVEL_MAP.get(level.upper(), logging.WARNING))
    root.propagate = False

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
