from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from threading import RLock
from time import monotonic
from typing import Iterable, Mapping

_registry_lock = RLock()
_registry: "MetricsRegistry | None" = None


@dataclass(frozen=True)
class MetricsSnapshot:
    """Immutable snapshot of the current metrics state."""

    operations: Mapping[str, int]
    errors: Mapping[str, int]
    uptime_seconds: float


class MetricsRegistry:
    """Thread-safe registry of tool invocation and error counters."""

    __slots__ = ("_known_operations", "_operations", "_errors", "_lock", "_started_at")

    def __init__(self, operations: Iterable[str] = ()) -> None:
        self._known_operations = tuple(operations)
        self._operations: Counter[str] = Counter()
        self._errors: Counter[str] = Counter()
        self._lock = RLock()
        self._started_at = monotonic()

    def record_operation(self, name: str, *, count: int = 1) -> None:
        if count <= 0:
            return
        key = name.strip().lower()
        if not key:
            return
        with self._lock:
            self._operations[key] += count

    def record_error(self, code: str, *, count: int = 1) -> None:
        if count <= 0:
            return
        key = code.strip().upper()
        if not key:
            return
        with self._lock:
            self._errors[key] += count

    def snapshot(self) -> MetricsSnapshot:
        with self._lock:
            operations: dict[str, int] = {name: int(self._operations.get(name, 0)) for name in self._known_operations}
            for name, value in self._operations.items():
                if name not in operations:
                    operations[name] = int(value)
            errors = {code: int(value) for code, value in self._errors.items()}
            uptime = max(monotonic() - self._started_at, 0.0)
        return MetricsSnapshot(operations=operations, errors=errors, uptime_seconds=uptime)

    def reset(self) -> None:
        with self._lock:
            self._operations.clear()
            self._errors.clear()
            self._started_at = monotonic()


def install_registry(registry: MetricsRegistry | None) -> None:
    """Install the active metrics registry (or disable metrics when None)."""

    with _registry_lock:
        global _registry
        _registry = registry


def get_registry_optional() -> MetricsRegistry | None:
    with _registry_lock:
        return _registry


def record_operation(name: str, *, count: int = 1) -> None:
    registry = get_registry_optional()
    if registry is not None:
        registry.record_operation(name, count=count)


def record_error(code: str, *, count: int = 1) -> None:
    registry = get_registry_optional()
    if registry is not None:
        registry.record_error(code, count=count)


def format_prometheus(snapshot: MetricsSnapshot) -> str:
    """Render metrics using Prometheus exposition format (text, version 0.0.4)."""

    lines: list[str] = []

    lines.append("# HELP kaggle_notebook_tool_calls_total Tool invocations by tool name.")
    lines.append("# TYPE kaggle_notebook_tool_calls_total counter")
    for name in sorted(snapshot.operations):
        lines.append(f'kaggle_notebook_tool_calls_total{{tool="{name}"}} {snapshot.operations[name]}')

    lines.append("# HELP kaggle_notebook_errors_total Tool errors returned, grouped by error code.")
    lines.append("# TYPE kaggle_notebook_errors_total counter")
    if snapshot.errors:
        for code in sorted(snapshot.errors):
            lines.append(f'kaggle_notebook_errors_total{{code="{code}"}} {snapshot.errors[code]}')
    else:
        lines.append('kaggle_notebook_errors_total{code="none"} 0')

    lines.append("# HELP kaggle_notebook_uptime_seconds Server uptime in seconds.")
    lines.append("# TYPE kaggle_notebook_uptime_seconds gauge")
    lines.append(f"kaggle_notebook_uptime_seconds {snapshot.uptime_seconds:.6f}")

    return "\n".join(lines) + "\n"
