"""Tool descriptors, typed tool requests and operation results."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, ClassVar, Mapping

from jsonschema import validators as jsonschema_validators
from mcp.types import TextContent

from .errors import InvalidParams

NOTEBOOK_EXTENSION = ".ipynb"

LIST_NOTEBOOKS_SCHEMA: Mapping[str, Any] = {
    "type": "object",
    "properties": {
        "page": {"type": "integer", "minimum": 1, "description": "Page number"},
        "pageSize": {"type": "integer", "minimum": 1, "description": "Items per page"},
    },
}

GET_NOTEBOOK_SCHEMA: Mapping[str, Any] = {
    "type": "object",
    "properties": {
        "notebookRef": {
            "type": "string",
            "description": "Notebook reference (username/slug or full URL)",
        },
    },
    "required": ["notebookRef"],
}

UPDATE_NOTEBOOK_SCHEMA: Mapping[str, Any] = {
    "type": "object",
    "properties": {
        "notebookRef": {
            "type": "string",
            "description": "Notebook reference (username/slug)",
        },
        "filePath": {
            "type": "string",
            "description": "Path to local notebook file",
        },
    },
    "required": ["notebookRef", "filePath"],
}

RUN_NOTEBOOK_SCHEMA: Mapping[str, Any] = {
    "type": "object",
    "properties": {
        "notebookRef": {
            "type": "string",
            "description": "Notebook reference (username/slug)",
        },
    },
    "required": ["notebookRef"],
}


@dataclass(frozen=True, slots=True)
class ToolDescriptor:
    """Name, description and input schema of one callable tool."""

    name: str
    description: str
    input_schema: Mapping[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": _thaw(self.input_schema),
        }


@dataclass(slots=True)
class OperationResult:
    """Ordered text content blocks returned by a tool invocation."""

    content: list[dict[str, str]] = field(default_factory=list)

    @classmethod
    def text(cls, value: str) -> OperationResult:
        return cls(content=[{"type": "text", "text": value}])

    @property
    def texts(self) -> list[str]:
        return [block["text"] for block in self.content]

    def to_mcp_content(self) -> list[TextContent]:
        return [TextContent(type="text", text=block["text"]) for block in self.content]


def _thaw(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {key: _thaw(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_thaw(item) for item in value]
    return value


def _present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


def _check_arguments(
    arguments: Mapping[str, Any] | None,
    schema: Mapping[str, Any],
    *,
    missing_message: str,
) -> dict[str, Any]:
    """Validate raw tool arguments against a tool's input schema.

    Presence of required fields is checked first so that a missing or blank
    field always yields ``missing_message``; type and range problems are
    reported afterwards from the first JSON Schema error.
    """

    if arguments is None:
        arguments = {}
    if not isinstance(arguments, Mapping):
        raise InvalidParams("Tool arguments must be an object")

    required = list(schema.get("required", ()))
    missing = [name for name in required if not _present(arguments.get(name))]
    if missing:
        raise InvalidParams(missing_message, details={"missing": missing})

    # Optional fields sent as explicit nulls are treated as absent.
    cleaned = {key: value for key, value in arguments.items() if value is not None}
    thawed = _thaw(schema)
    validator_cls = jsonschema_validators.validator_for(thawed)
    error = next(iter(validator_cls(thawed).iter_errors(cleaned)), None)
    if error is not None:
        location = ".".join(str(part) for part in error.absolute_path) or "arguments"
        raise InvalidParams(f"Invalid {location}: {error.message}", details={"field": location})
    return cleaned


@dataclass(frozen=True, slots=True)
class ListNotebooksRequest:
    schema: ClassVar[Mapping[str, Any]] = MappingProxyType(dict(LIST_NOTEBOOKS_SCHEMA))

    page: int | None = None
    page_size: int | None = None

    @classmethod
    def parse(cls, arguments: Mapping[str, Any] | None) -> ListNotebooksRequest:
        values = _check_arguments(arguments, cls.schema, missing_message="")
        return cls(page=values.get("page"), page_size=values.get("pageSize"))


@dataclass(frozen=True, slots=True)
class GetNotebookRequest:
    schema: ClassVar[Mapping[str, Any]] = MappingProxyType(dict(GET_NOTEBOOK_SCHEMA))

    notebook_ref: str

    @classmethod
    def parse(cls, arguments: Mapping[str, Any] | None) -> GetNotebookRequest:
        values = _check_arguments(
            arguments, cls.schema, missing_message="notebookRef parameter is required"
        )
        return cls(notebook_ref=values["notebookRef"].strip())


@dataclass(frozen=True, slots=True)
class UpdateNotebookRequest:
    schema: ClassVar[Mapping[str, Any]] = MappingProxyType(dict(UPDATE_NOTEBOOK_SCHEMA))

    notebook_ref: str
    file_path: str

    @classmethod
    def parse(cls, arguments: Mapping[str, Any] | None) -> UpdateNotebookRequest:
        values = _check_arguments(
            arguments,
            cls.schema,
            missing_message="Both notebookRef and filePath parameters are required",
        )
        return cls(notebook_ref=values["notebookRef"].strip(), file_path=values["filePath"])


@dataclass(frozen=True, slots=True)
class RunNotebookRequest:
    schema: ClassVar[Mapping[str, Any]] = MappingProxyType(dict(RUN_NOTEBOOK_SCHEMA))

    notebook_ref: str

    @classmethod
    def parse(cls, arguments: Mapping[str, Any] | None) -> RunNotebookRequest:
        values = _check_arguments(
            arguments, cls.schema, missing_message="notebookRef parameter is required"
        )
        return cls(notebook_ref=values["notebookRef"].strip())
