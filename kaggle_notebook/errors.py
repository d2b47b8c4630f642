"""Centralized error codes and helper utilities."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

__all__ = [
    "INVALID_PARAMS",
    "UNKNOWN_OPERATION",
    "EXTERNAL_TOOL_FAILURE",
    "NOTEBOOK_FILE_MISSING",
    "KaggleNotebookError",
    "InvalidParams",
    "UnknownOperation",
    "ExternalToolFailure",
    "NotebookFileMissing",
    "error_payload",
]

INVALID_PARAMS = "INVALID_PARAMS"
UNKNOWN_OPERATION = "UNKNOWN_OPERATION"
EXTERNAL_TOOL_FAILURE = "EXTERNAL_TOOL_FAILURE"
NOTEBOOK_FILE_MISSING = "NOTEBOOK_FILE_MISSING"


@dataclass(slots=True)
class KaggleNotebookError(Exception):
    """Domain-specific exception carrying an error code and message."""

    code: str
    message: str
    details: Mapping[str, Any] | None = None

    def __str__(self) -> str:  # pragma: no cover - delegation to message
        return self.message

    def to_dict(self) -> dict[str, Any]:
        return error_payload(self.code, self.message, details=self.details)

    def render(self) -> str:
        """Return the single-line ``CODE: message`` form sent to MCP clients."""

        return f"{self.code}: {self.message}"


class InvalidParams(KaggleNotebookError):
    def __init__(self, message: str, *, details: Mapping[str, Any] | None = None) -> None:
        super().__init__(INVALID_PARAMS, message, details)


class UnknownOperation(KaggleNotebookError):
    def __init__(self, name: str) -> None:
        super().__init__(UNKNOWN_OPERATION, f"Unknown tool: {name}", {"name": name})

    @property
    def name(self) -> str:
        return str((self.details or {}).get("name", ""))


class ExternalToolFailure(KaggleNotebookError):
    def __init__(self, message: str, *, details: Mapping[str, Any] | None = None) -> None:
        super().__init__(EXTERNAL_TOOL_FAILURE, message, details)


class NotebookFileMissing(KaggleNotebookError):
    def __init__(self, message: str, *, details: Mapping[str, Any] | None = None) -> None:
        super().__init__(NOTEBOOK_FILE_MISSING, message, details)


def error_payload(code: str, message: str, *, details: Mapping[str, Any] | None = None) -> dict[str, Any]:
    """Build a structured error payload used in logs and error responses."""

    payload: dict[str, Any] = {
        "code": code,
        "message": message,
    }
    if details:
        payload["details"] = dict(details)
    return payload
