"""Kaggle Notebook MCP server package."""

from .config import Config, ConfigError, load_config
from .logging import configure_logging
from .server import SERVER, main

__all__ = [
    "Config",
    "ConfigError",
    "load_config",
    "configure_logging",
    "SERVER",
    "main",
]
