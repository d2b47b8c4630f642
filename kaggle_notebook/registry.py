"""Tool registry and name-based dispatch."""

from __future__ import annotations

from typing import Any, Callable, Mapping, Sequence

from . import metrics
from .errors import KaggleNotebookError, UnknownOperation
from .handlers import NotebookHandlers
from .logging import get_logger
from .models import (
    GET_NOTEBOOK_SCHEMA,
    LIST_NOTEBOOKS_SCHEMA,
    RUN_NOTEBOOK_SCHEMA,
    UPDATE_NOTEBOOK_SCHEMA,
    OperationResult,
    ToolDescriptor,
)

LOGGER = get_logger(__name__)

Handler = Callable[[Mapping[str, Any] | None], OperationResult]

TOOL_DESCRIPTORS: tuple[ToolDescriptor, ...] = (
    ToolDescriptor(
        name="list_notebooks",
        description="List all Kaggle notebooks for the authenticated user",
        input_schema=LIST_NOTEBOOKS_SCHEMA,
    ),
    ToolDescriptor(
        name="get_notebook",
        description="Download a Kaggle notebook",
        input_schema=GET_NOTEBOOK_SCHEMA,
    ),
    ToolDescriptor(
        name="update_notebook",
        description="Update a Kaggle notebook",
        input_schema=UPDATE_NOTEBOOK_SCHEMA,
    ),
    ToolDescriptor(
        name="run_notebook",
        description="Run a Kaggle notebook",
        input_schema=RUN_NOTEBOOK_SCHEMA,
    ),
)

TOOL_NAMES: tuple[str, ...] = tuple(descriptor.name for descriptor in TOOL_DESCRIPTORS)


class ToolRegistry:
    """Immutable mapping from tool name to descriptor and handler."""

    def __init__(self, entries: Sequence[tuple[ToolDescriptor, Handler]]) -> None:
        descriptors: list[ToolDescriptor] = []
        handlers: dict[str, Handler] = {}
        for descriptor, handler in entries:
            if descriptor.name in handlers:
                raise ValueError(f"Duplicate tool name: {descriptor.name}")
            descriptors.append(descriptor)
            handlers[descriptor.name] = handler
        self._descriptors = tuple(descriptors)
        self._handlers = handlers

    def list_capabilities(self) -> tuple[ToolDescriptor, ...]:
        return self._descriptors

    def invoke(self, name: str, arguments: Mapping[str, Any] | None) -> OperationResult:
        handler = self._handlers.get(name)
        if handler is None:
            error = UnknownOperation(name)
            metrics.record_error(error.code)
            LOGGER.warning("tool.unknown", extra={"context": {"tool": name}})
            raise error

        metrics.record_operation(name)
        try:
            return handler(arguments)
        except KaggleNotebookError as exc:
            metrics.record_error(exc.code)
            LOGGER.info("tool.failed", extra={"context": {"tool": name, "error": exc.to_dict()}})
            raise


def build_registry(handlers: NotebookHandlers) -> ToolRegistry:
    """Bind the four notebook tools to ``handlers``."""

    bound: dict[str, Handler] = {
        "list_notebooks": handlers.list_notebooks,
        "get_notebook": handlers.get_notebook,
        "update_notebook": handlers.update_notebook,
        "run_notebook": handlers.run_notebook,
    }
    return ToolRegistry([(descriptor, bound[descriptor.name]) for descriptor in TOOL_DESCRIPTORS])
