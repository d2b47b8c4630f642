"""Stdio transport: the default way MCP clients launch this server."""

from __future__ import annotations

from fastmcp import FastMCP

from .lifecycle import serve_logged


def run_stdio(server: FastMCP, *, show_banner: bool = True) -> None:
    """Serve ``server`` over stdin/stdout until the client disconnects."""

    context = {"server": getattr(server, "name", None), "show_banner": bool(show_banner)}
    serve_logged("stdio", context, lambda: server.run(transport="stdio", show_banner=show_banner))
