"""FastMCP server entrypoint for the Kaggle Notebook MCP service."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError
from fastmcp.server.middleware import Middleware, MiddlewareContext
from fastmcp.tools.tool import ToolResult
from starlette.requests import Request
from starlette.responses import PlainTextResponse, Response

from . import metrics
from .cli import KaggleCli
from .config import Config, ConfigError, load_config
from .errors import ExternalToolFailure, KaggleNotebookError
from .handlers import NotebookHandlers
from .logging import configure_logging, get_logger
from .models import ToolDescriptor
from .registry import TOOL_DESCRIPTORS, TOOL_NAMES, ToolRegistry, build_registry
from .transports import HttpTransportConfig, run_http, run_stdio
from .transports.http import normalise_path

LOGGER = get_logger(__name__)
SERVER = FastMCP(name="kaggle-server")


@dataclass(slots=True)
class AppState:
    config: Config
    registry: ToolRegistry
    # Tool calls run one at a time so CLI invocations never overlap. The lock
    # belongs to the loop it was created in and is rebuilt for a new one.
    lock: asyncio.Lock | None = None
    lock_loop: asyncio.AbstractEventLoop | None = None

    def serial_lock(self) -> asyncio.Lock:
        loop = asyncio.get_running_loop()
        if self.lock is None or self.lock_loop is not loop:
            self.lock = asyncio.Lock()
            self.lock_loop = loop
        return self.lock


APP_STATE: AppState | None = None
_METRICS_ROUTE_NAME = "__kaggle_notebook_metrics__"


def _remove_metrics_route() -> None:
    routes = getattr(SERVER, "_additional_http_routes", None)
    if not routes:
        return
    routes[:] = [route for route in routes if getattr(route, "name", None) != _METRICS_ROUTE_NAME]


def _register_metrics_route(path: str) -> None:
    cleaned = normalise_path(path or "/metrics")
    _remove_metrics_route()

    @SERVER.custom_route(cleaned, methods=["GET"], name=_METRICS_ROUTE_NAME, include_in_schema=False)
    async def metrics_endpoint(_request: Request) -> Response:
        registry = metrics.get_registry_optional()
        if registry is None:
            return PlainTextResponse("metrics unavailable\n", status_code=503)
        body = metrics.format_prometheus(registry.snapshot())
        return PlainTextResponse(body, media_type="text/plain; version=0.0.4")


def initialize_app(config: Config, *, cli: KaggleCli | None = None) -> None:
    """Resolve the CLI wrapper, build the tool registry and install metrics."""

    global APP_STATE
    if cli is None:
        cli = KaggleCli(config.credentials, executable=config.kaggle_executable)
    if config.persist_credentials:
        cli.configure()
        LOGGER.info(
            "credentials.configured",
            extra={"context": {"username": config.credentials.username}},
        )

    handlers = NotebookHandlers(
        cli,
        list_format=config.list_format,
        workspace_dir=config.workspace_dir,
        keep_workspaces=config.keep_workspaces,
    )
    registry = build_registry(handlers)
    metrics.install_registry(metrics.MetricsRegistry(TOOL_NAMES))
    if config.enable_http and config.enable_metrics:
        _register_metrics_route(config.metrics_path)
    else:
        _remove_metrics_route()
    APP_STATE = AppState(config=config, registry=registry)


def shutdown_app() -> None:
    """Clear application state and uninstall metrics."""

    global APP_STATE
    if APP_STATE is None:
        return
    metrics.install_registry(None)
    _remove_metrics_route()
    APP_STATE = None


def get_app_state() -> AppState:
    if APP_STATE is None:
        raise RuntimeError("Server is not initialised")
    return APP_STATE


def list_capabilities() -> tuple[ToolDescriptor, ...]:
    return get_app_state().registry.list_capabilities()


def _arguments(**values: Any) -> dict[str, Any]:
    return {key: value for key, value in values.items() if value is not None}


async def invoke_tool(name: str, arguments: dict[str, Any] | None) -> ToolResult:
    """Dispatch one tool call and convert domain errors into tool errors."""

    state = get_app_state()
    async with state.serial_lock():
        try:
            result = await asyncio.to_thread(state.registry.invoke, name, arguments)
        except KaggleNotebookError as exc:
            raise ToolError(exc.render()) from exc
        except Exception:
            LOGGER.exception("tool.unexpected_error", extra={"context": {"tool": name}})
            raise
    return ToolResult(content=result.to_mcp_content())


# Parameters stay untyped so that request parsing, not pydantic, reports bad values.
async def _list_notebooks_impl(page: Any = None, pageSize: Any = None) -> ToolResult:
    return await invoke_tool("list_notebooks", _arguments(page=page, pageSize=pageSize))


async def _get_notebook_impl(notebookRef: Any = None) -> ToolResult:
    return await invoke_tool("get_notebook", _arguments(notebookRef=notebookRef))


async def _update_notebook_impl(notebookRef: Any = None, filePath: Any = None) -> ToolResult:
    return await invoke_tool("update_notebook", _arguments(notebookRef=notebookRef, filePath=filePath))


async def _run_notebook_impl(notebookRef: Any = None) -> ToolResult:
    return await invoke_tool("run_notebook", _arguments(notebookRef=notebookRef))


_IMPLEMENTATIONS = {
    "list_notebooks": _list_notebooks_impl,
    "get_notebook": _get_notebook_impl,
    "update_notebook": _update_notebook_impl,
    "run_notebook": _run_notebook_impl,
}


class UnknownToolMiddleware(Middleware):
    """Send calls for unregistered tool names through the registry.

    FastMCP would otherwise answer with its own not-found error, which carries
    no error code and skips the error counter.
    """

    async def on_call_tool(self, context: MiddlewareContext, call_next: Any) -> Any:
        name = context.message.name
        if name not in _IMPLEMENTATIONS:
            return await invoke_tool(name, context.message.arguments)
        return await call_next(context)


SERVER.add_middleware(UnknownToolMiddleware())


def _register_tools() -> dict[str, Any]:
    tools: dict[str, Any] = {}
    for descriptor in TOOL_DESCRIPTORS:
        tool = SERVER.tool(
            name=descriptor.name,
            description=descriptor.description,
        )(_IMPLEMENTATIONS[descriptor.name])
        # Advertise the declared schema rather than the one inferred from the signature.
        tool.parameters = descriptor.to_dict()["inputSchema"]
        tool.output_schema = None
        tools[descriptor.name] = tool
    return tools


TOOLS = _register_tools()
list_notebooks = TOOLS["list_notebooks"]
get_notebook = TOOLS["get_notebook"]
update_notebook = TOOLS["update_notebook"]
run_notebook = TOOLS["run_notebook"]


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for running the Kaggle Notebook server."""

    configure_logging()
    try:
        config = load_config(argv)
    except ConfigError as exc:
        LOGGER.error("Invalid configuration: %s", exc)
        raise SystemExit(1) from exc

    configure_logging(config.log_level)
    LOGGER.info(
        "Configuration loaded",
        extra={
            "context": {
                "kaggle_executable": config.kaggle_executable,
                "list_format": config.list_format,
                "enable_stdio": config.enable_stdio,
                "enable_http": config.enable_http,
                "enable_metrics": config.enable_metrics,
            }
        },
    )

    try:
        initialize_app(config)
    except ExternalToolFailure as exc:
        LOGGER.error(
            "Failed to configure Kaggle CLI credentials",
            exc_info=exc,
            extra={"context": exc.details or {}},
        )
        raise SystemExit(1) from exc

    try:
        if config.enable_stdio:
            run_stdio(SERVER)
        else:
            LOGGER.info("Stdio transport disabled")

        if config.enable_http:
            http_config = HttpTransportConfig(
                host=config.http_host,
                port=config.http_port,
                http_path=config.http_path,
                metrics_path=config.metrics_path,
                enable_metrics=config.enable_metrics,
            )
            run_http(SERVER, http_config)
        else:
            LOGGER.info("HTTP transport disabled")
    except KeyboardInterrupt:
        LOGGER.info("server.interrupted")
    finally:
        shutdown_app()


if __name__ == "__main__":  # pragma: no cover - manual invocation only
    main()
