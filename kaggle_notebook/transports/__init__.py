"""Transport wiring for the Kaggle Notebook MCP server."""

from __future__ import annotations

from .http import HttpTransportConfig, run_http
from .stdio import run_stdio

__all__ = [
    "HttpTransportConfig",
    "run_http",
    "run_stdio",
]
