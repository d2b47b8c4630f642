from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any

import pytest
from fastmcp import Client
from fastmcp.exceptions import ToolError

from kaggle_notebook import load_config, metrics
from kaggle_notebook.errors import UNKNOWN_OPERATION, ExternalToolFailure
from kaggle_notebook.server import (
    SERVER,
    _get_notebook_impl,
    _list_notebooks_impl,
    _run_notebook_impl,
    _update_notebook_impl,
    get_app_state,
    initialize_app,
    invoke_tool,
    list_capabilities,
    shutdown_app,
)

NOTEBOOK_JSON = json.dumps({"cells": [{"cell_type": "code", "source": "print(1)"}], "nbformat": 4})


class RecordingCli:
    def __init__(self) -> None:
        self.calls: list[tuple[Any, ...]] = []
        self.fail_run = False
        self.notebook_bytes: bytes | None = None

    def configure(self) -> None:
        self.calls.append(("configure",))

    def list_mine(self, *, csv: bool = False) -> str:
        self.calls.append(("list", csv))
        return "ref title\nalice/nb1 First\nalice/nb2 Second\n"

    def pull(self, notebook_ref: str, target_dir: Path) -> str:
        self.calls.append(("pull", notebook_ref))
        if self.notebook_bytes is not None:
            (target_dir / "first.ipynb").write_bytes(self.notebook_bytes)
        else:
            (target_dir / "first.ipynb").write_text(NOTEBOOK_JSON, encoding="utf-8")
        return ""

    def push(self, path: str) -> str:
        self.calls.append(("push", path))
        return ""

    def run(self, notebook_ref: str) -> str:
        self.calls.append(("run", notebook_ref))
        if self.fail_run:
            raise ExternalToolFailure("Command failed with exit status 1: kaggle kernels run")
        return ""


@pytest.fixture
def cli(tmp_path: Path):
    environ = {
        "KAGGLE_USERNAME": "alice",
        "KAGGLE_KEY": "secret-key",
        "KAGGLE_NOTEBOOK_WORKSPACE_DIR": str(tmp_path / "workspaces"),
    }
    config = load_config(argv=[], environ=environ)
    recording = RecordingCli()
    initialize_app(config, cli=recording)  # type: ignore[arg-type]
    try:
        yield recording
    finally:
        shutdown_app()


def _text(result) -> str:  # type: ignore[no-untyped-def]
    return result.content[0].text


def test_startup_configures_credentials_once(cli: RecordingCli) -> None:
    assert cli.calls == [("configure",)]
    assert [descriptor.name for descriptor in list_capabilities()] == [
        "list_notebooks",
        "get_notebook",
        "update_notebook",
        "run_notebook",
    ]


@pytest.mark.asyncio
async def test_list_notebooks_impl_returns_json_text(cli: RecordingCli) -> None:
    result = await _list_notebooks_impl(page=1, pageSize=10)

    assert json.loads(_text(result)) == [
        {"ref": "alice/nb1", "title": "First"},
        {"ref": "alice/nb2", "title": "Second"},
    ]


@pytest.mark.asyncio
async def test_get_notebook_impl_returns_notebook(cli: RecordingCli, tmp_path: Path) -> None:
    result = await _get_notebook_impl(notebookRef="alice/nb1")

    assert _text(result) == NOTEBOOK_JSON
    assert list((tmp_path / "workspaces").iterdir()) == []


@pytest.mark.asyncio
async def test_update_notebook_impl_confirms_requested_ref(cli: RecordingCli) -> None:
    result = await _update_notebook_impl(notebookRef="alice/nb1", filePath="/tmp/x.ipynb")

    assert _text(result) == "Successfully updated notebook alice/nb1"
    assert cli.calls[-1] == ("push", "/tmp/x.ipynb")


@pytest.mark.asyncio
async def test_missing_argument_becomes_tool_error_without_cli_call(cli: RecordingCli) -> None:
    with pytest.raises(ToolError, match="INVALID_PARAMS: notebookRef parameter is required"):
        await _run_notebook_impl()

    assert cli.calls == [("configure",)]


@pytest.mark.asyncio
async def test_unknown_tool_is_reported_by_name(cli: RecordingCli) -> None:
    with pytest.raises(ToolError, match="UNKNOWN_OPERATION: Unknown tool: delete_notebook"):
        await invoke_tool("delete_notebook", {})


@pytest.mark.asyncio
async def test_client_lists_declared_tools(cli: RecordingCli) -> None:
    async with Client(SERVER) as client:
        tools = await client.list_tools()

    by_name = {tool.name: tool for tool in tools}
    assert set(by_name) == {"list_notebooks", "get_notebook", "update_notebook", "run_notebook"}
    assert by_name["update_notebook"].inputSchema["required"] == ["notebookRef", "filePath"]


@pytest.mark.asyncio
async def test_client_run_notebook_confirmation(cli: RecordingCli) -> None:
    async with Client(SERVER) as client:
        result = await client.call_tool_mcp("run_notebook", {"notebookRef": "alice/nb1"})

    assert result.isError is False
    assert result.content[0].text == "Notebook alice/nb1 execution started successfully"


@pytest.mark.asyncio
async def test_client_receives_external_failure(cli: RecordingCli) -> None:
    cli.fail_run = True

    async with Client(SERVER) as client:
        result = await client.call_tool_mcp("run_notebook", {"notebookRef": "alice/nb1"})

    assert result.isError is True
    assert "EXTERNAL_TOOL_FAILURE: Failed to run notebook" in result.content[0].text


@pytest.mark.asyncio
async def test_client_unknown_tool_carries_error_code(cli: RecordingCli) -> None:
    async with Client(SERVER) as client:
        result = await client.call_tool_mcp("delete_notebook", {})

    assert result.isError is True
    assert "UNKNOWN_OPERATION: Unknown tool: delete_notebook" in result.content[0].text
    registry = metrics.get_registry_optional()
    assert registry is not None
    assert registry.snapshot().errors == {UNKNOWN_OPERATION: 1}
    assert cli.calls == [("configure",)]


@pytest.mark.asyncio
async def test_client_wrong_argument_type_is_invalid_params(cli: RecordingCli) -> None:
    async with Client(SERVER) as client:
        result = await client.call_tool_mcp("get_notebook", {"notebookRef": 123})

    assert result.isError is True
    assert "INVALID_PARAMS" in result.content[0].text
    assert cli.calls == [("configure",)]


@pytest.mark.asyncio
async def test_client_undecodable_notebook_is_external_failure(cli: RecordingCli, tmp_path: Path) -> None:
    cli.notebook_bytes = b"\xff\xfe{bad"

    async with Client(SERVER) as client:
        result = await client.call_tool_mcp("get_notebook", {"notebookRef": "alice/nb1"})

    assert result.isError is True
    assert "EXTERNAL_TOOL_FAILURE: Failed to get notebook" in result.content[0].text
    assert list((tmp_path / "workspaces").iterdir()) == []


def test_calls_succeed_across_event_loops(cli: RecordingCli) -> None:
    first = asyncio.run(invoke_tool("run_notebook", {"notebookRef": "alice/nb1"}))
    first_lock = get_app_state().lock
    second = asyncio.run(invoke_tool("run_notebook", {"notebookRef": "alice/nb2"}))

    assert first.content[0].text == "Notebook alice/nb1 execution started successfully"
    assert second.content[0].text == "Notebook alice/nb2 execution started successfully"
    assert get_app_state().lock is not first_lock
    assert cli.calls[-2:] == [("run", "alice/nb1"), ("run", "alice/nb2")]
