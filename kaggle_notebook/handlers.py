"""Handlers for the four notebook tools."""

from __future__ import annotations

import json
import shutil
import tempfile
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Mapping

from .cli import KaggleCli
from .errors import ExternalToolFailure, NotebookFileMissing
from .listing import PARSERS
from .logging import get_logger
from .models import (
    NOTEBOOK_EXTENSION,
    GetNotebookRequest,
    ListNotebooksRequest,
    OperationResult,
    RunNotebookRequest,
    UpdateNotebookRequest,
)

LOGGER = get_logger(__name__)

KERNEL_METADATA_FILE = "kernel-metadata.json"


@contextmanager
def notebook_workspace(parent: Path | None = None, *, keep: bool = False) -> Iterator[Path]:
    """Create a timestamp-namespaced download directory for one fetch.

    The directory is removed on exit unless ``keep`` is set.
    """

    if parent is not None:
        parent.mkdir(parents=True, exist_ok=True)
    prefix = f"kaggle-{int(time.time() * 1000)}-"
    path = Path(tempfile.mkdtemp(prefix=prefix, dir=str(parent) if parent is not None else None))
    try:
        yield path
    finally:
        if keep:
            LOGGER.info("notebook.get.workspace_kept", extra={"context": {"workspace": str(path)}})
        else:
            shutil.rmtree(path, ignore_errors=True)
            LOGGER.debug("notebook.get.workspace_removed", extra={"context": {"workspace": str(path)}})


def _wrap_failure(action: str, exc: ExternalToolFailure) -> ExternalToolFailure:
    return ExternalToolFailure(f"Failed to {action}: {exc.message}", details=exc.details)


def find_notebook_file(directory: Path) -> Path | None:
    """Return the first ``.ipynb`` entry of ``directory`` in name order."""

    for entry in sorted(directory.iterdir(), key=lambda item: item.name):
        if entry.name.endswith(NOTEBOOK_EXTENSION):
            return entry
    return None


def _embedded_kernel_id(file_path: str) -> str | None:
    path = Path(file_path).expanduser()
    folder = path if path.is_dir() else path.parent
    metadata_path = folder / KERNEL_METADATA_FILE
    if not metadata_path.is_file():
        return None
    try:
        payload = json.loads(metadata_path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return None
    kernel_id = payload.get("id") if isinstance(payload, Mapping) else None
    return kernel_id if isinstance(kernel_id, str) else None


class NotebookHandlers:
    """Validate tool arguments, call the Kaggle CLI and shape its output."""

    def __init__(
        self,
        cli: KaggleCli,
        *,
        list_format: str = "table",
        workspace_dir: Path | None = None,
        keep_workspaces: bool = False,
    ) -> None:
        if list_format not in PARSERS:
            raise ValueError(f"Unsupported list format: {list_format}")
        self._cli = cli
        self._list_format = list_format
        self._workspace_dir = workspace_dir
        self._keep_workspaces = keep_workspaces

    def list_notebooks(self, arguments: Mapping[str, Any] | None) -> OperationResult:
        request = ListNotebooksRequest.parse(arguments)
        if request.page is not None or request.page_size is not None:
            # The CLI always returns its default page.
            LOGGER.debug(
                "notebook.list.paging_ignored",
                extra={"context": {"page": request.page, "page_size": request.page_size}},
            )
        try:
            output = self._cli.list_mine(csv=self._list_format == "csv")
        except ExternalToolFailure as exc:
            raise _wrap_failure("list notebooks", exc) from exc

        records = PARSERS[self._list_format](output)
        LOGGER.info("notebook.list", extra={"context": {"count": len(records)}})
        return OperationResult.text(json.dumps(records, indent=2))

    def get_notebook(self, arguments: Mapping[str, Any] | None) -> OperationResult:
        request = GetNotebookRequest.parse(arguments)
        with notebook_workspace(self._workspace_dir, keep=self._keep_workspaces) as workspace:
            try:
                self._cli.pull(request.notebook_ref, workspace)
            except ExternalToolFailure as exc:
                raise _wrap_failure("get notebook", exc) from exc

            notebook_file = find_notebook_file(workspace)
            if notebook_file is None:
                raise NotebookFileMissing(
                    "No notebook file found in downloaded contents",
                    details={"notebook_ref": request.notebook_ref},
                )
            try:
                content = notebook_file.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as exc:
                LOGGER.warning(
                    "notebook.get.unreadable",
                    extra={"context": {"notebook_ref": request.notebook_ref, "file": notebook_file.name}},
                )
                raise ExternalToolFailure(
                    f"Failed to get notebook: could not read {notebook_file.name}: {exc}",
                    details={"notebook_ref": request.notebook_ref, "file": notebook_file.name},
                ) from exc

        if not content:
            raise NotebookFileMissing(
                f"Downloaded notebook file {notebook_file.name} is empty",
                details={"notebook_ref": request.notebook_ref},
            )
        LOGGER.info(
            "notebook.get",
            extra={"context": {"notebook_ref": request.notebook_ref, "file": notebook_file.name}},
        )
        return OperationResult.text(content)

    def update_notebook(self, arguments: Mapping[str, Any] | None) -> OperationResult:
        request = UpdateNotebookRequest.parse(arguments)
        embedded_id = _embedded_kernel_id(request.file_path)
        if embedded_id is not None and embedded_id != request.notebook_ref:
            # Push follows the local metadata, not the requested reference.
            LOGGER.warning(
                "notebook.update.ref_mismatch",
                extra={
                    "context": {
                        "notebook_ref": request.notebook_ref,
                        "embedded_id": embedded_id,
                        "file_path": request.file_path,
                    }
                },
            )
        try:
            self._cli.push(request.file_path)
        except ExternalToolFailure as exc:
            raise _wrap_failure("update notebook", exc) from exc

        LOGGER.info("notebook.update", extra={"context": {"notebook_ref": request.notebook_ref}})
        return OperationResult.text(f"Successfully updated notebook {request.notebook_ref}")

    def run_notebook(self, arguments: Mapping[str, Any] | None) -> OperationResult:
        request = RunNotebookRequest.parse(arguments)
        try:
            output = self._cli.run(request.notebook_ref)
        except ExternalToolFailure as exc:
            raise _wrap_failure("run notebook", exc) from exc

        LOGGER.info("notebook.run", extra={"context": {"notebook_ref": request.notebook_ref}})
        if output.strip():
            return OperationResult.text(output)
        return OperationResult.text(f"Notebook {request.notebook_ref} execution started successfully")
