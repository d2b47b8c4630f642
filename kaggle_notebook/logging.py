"""Logging setup for the Kaggle Notebook MCP server.

Everything logs below the ``kaggle_notebook`` logger. FastMCP's rich handler
writes to stderr, so stdout stays reserved for the stdio transport.
"""

from __future__ import annotations

import logging
from typing import Any

from fastmcp.utilities.logging import configure_logging as _fastmcp_configure_logging

LOGGER_NAME = "kaggle_notebook"
_handler_installed = False


def _level_number(level: str | int) -> int:
    if isinstance(level, int):
        return level
    number = logging.getLevelName(level.strip().upper())
    if not isinstance(number, int):
        raise ValueError(f"Unknown log level: {level!r}")
    return number


def configure_logging(level: str | int = "INFO", **rich_kwargs: Any) -> logging.Logger:
    """Set the package log level, installing the stderr handler on first use.

    Later calls without ``rich_kwargs`` only change the level, so ``main`` can
    apply the configured level after the config file has been read.
    """

    global _handler_installed

    number = _level_number(level)
    logger = logging.getLogger(LOGGER_NAME)
    if _handler_installed and not rich_kwargs:
        logger.setLevel(number)
        return logger

    _fastmcp_configure_logging(level=number, logger=logger, **rich_kwargs)
    _handler_installed = True
    return logger


def get_logger(name: str | None = None) -> logging.Logger:
    package = logging.getLogger(LOGGER_NAME)
    if not _handler_installed:
        configure_logging()
    if not name or name == LOGGER_NAME:
        return package
    return package.getChild(name.removeprefix(f"{LOGGER_NAME}."))
