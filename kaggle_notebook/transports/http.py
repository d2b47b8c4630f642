"""Streamable HTTP transport served by uvicorn."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Mapping

import uvicorn
from fastmcp import FastMCP

from ..logging import get_logger
from .lifecycle import serve_logged

logger = get_logger(__name__)


@dataclass(slots=True)
class HttpTransportConfig:
    """Configuration for the HTTP transport layer."""

    host: str
    port: int
    http_path: str
    metrics_path: str
    enable_metrics: bool


def describe_routes(config: HttpTransportConfig) -> Mapping[str, str]:
    """Return a mapping of logical endpoints to their configured paths."""

    routes: dict[str, str] = {"http": normalise_path(config.http_path)}
    if config.enable_metrics:
        routes["metrics"] = normalise_path(config.metrics_path)
    return routes


def run_http(server: FastMCP, config: HttpTransportConfig) -> None:
    """Serve the FastMCP streamable HTTP app with uvicorn."""

    routes = describe_routes(config)
    context = {"host": config.host, "port": config.port, "routes": routes}

    async def _serve() -> None:
        app = server.http_app(path=routes["http"])
        uvicorn_config = uvicorn.Config(
            app,
            host=config.host,
            port=config.port,
            timeout_graceful_shutdown=0,
            lifespan="on",
        )
        server_instance = uvicorn.Server(uvicorn_config)
        logger.info("transport.http.serve", extra={"context": context})
        await server_instance.serve()

    serve_logged("http", context, lambda: asyncio.run(_serve()))


def normalise_path(path: str) -> str:
    if not path.startswith("/"):
        path = "/" + path
    if len(path) > 1 and path.endswith("/"):
        path = path.rstrip("/")
    return path
