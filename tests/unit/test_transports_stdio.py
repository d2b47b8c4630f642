from __future__ import annotations

from typing import Any

import pytest

from kaggle_notebook.config import Config, KaggleCredentials
from kaggle_notebook.server import SERVER, main as run_main
from kaggle_notebook.transports.stdio import run_stdio


class _DummyServer:
    def __init__(self) -> None:
        self.calls: list[dict[str, Any]] = []

    def run(self, *, transport: str, show_banner: bool) -> None:
        self.calls.append({"transport": transport, "show_banner": show_banner})


def _make_config(*, enable_stdio: bool, enable_http: bool = False) -> Config:
    return Config(
        credentials=KaggleCredentials(username="alice", key="secret-key"),
        kaggle_executable="kaggle",
        persist_credentials=False,
        list_format="table",
        workspace_dir=None,
        keep_workspaces=False,
        enable_stdio=enable_stdio,
        enable_http=enable_http,
        enable_metrics=False,
        http_host="127.0.0.1",
        http_port=8766,
        http_path="/mcp",
        metrics_path="/metrics",
        log_level="INFO",
        config_file=None,
    )


def _patch_main(monkeypatch: pytest.MonkeyPatch, config: Config, calls: list[tuple[Any, ...]]) -> None:
    monkeypatch.setattr("kaggle_notebook.server.configure_logging", lambda *args, **kwargs: None)
    monkeypatch.setattr("kaggle_notebook.server.initialize_app", lambda cfg: calls.append(("init", cfg)))
    monkeypatch.setattr("kaggle_notebook.server.shutdown_app", lambda: calls.append(("shutdown",)))
    monkeypatch.setattr("kaggle_notebook.server.run_http", lambda *args, **kwargs: calls.append(("http", args)))
    monkeypatch.setattr("kaggle_notebook.server.load_config", lambda argv: config)


def test_run_stdio_invokes_fastmcp() -> None:
    dummy = _DummyServer()

    run_stdio(dummy, show_banner=False)

    assert dummy.calls == [{"transport": "stdio", "show_banner": False}]


def test_run_stdio_propagates_keyboard_interrupt() -> None:
    class InterruptingServer:
        def run(self, *, transport: str, show_banner: bool) -> None:  # noqa: D401 - simple stub
            raise KeyboardInterrupt

    with pytest.raises(KeyboardInterrupt):
        run_stdio(InterruptingServer())


def test_run_stdio_reraises_server_failure() -> None:
    class FailingServer:
        name = "failing"

        def run(self, *, transport: str, show_banner: bool) -> None:
            raise RuntimeError("transport closed")

    with pytest.raises(RuntimeError, match="transport closed"):
        run_stdio(FailingServer(), show_banner=False)


def test_main_runs_stdio_when_enabled(monkeypatch: pytest.MonkeyPatch) -> None:
    config = _make_config(enable_stdio=True)
    calls: list[tuple[Any, ...]] = []
    _patch_main(monkeypatch, config, calls)

    def _capture_stdio(server: Any, *, show_banner: bool = True) -> None:
        calls.append(("stdio", server, show_banner))

    monkeypatch.setattr("kaggle_notebook.server.run_stdio", _capture_stdio)

    run_main([])

    assert ("init", config) in calls
    assert ("stdio", SERVER, True) in calls
    assert all(call[0] != "http" for call in calls)
    assert calls[-1] == ("shutdown",)


def test_main_runs_http_when_stdio_disabled(monkeypatch: pytest.MonkeyPatch) -> None:
    config = _make_config(enable_stdio=False, enable_http=True)
    calls: list[tuple[Any, ...]] = []
    _patch_main(monkeypatch, config, calls)
    monkeypatch.setattr("kaggle_notebook.server.run_stdio", lambda *args, **kwargs: calls.append(("stdio", args)))

    run_main([])

    assert all(call[0] != "stdio" for call in calls)
    http_call = next(call for call in calls if call[0] == "http")
    assert http_call[1][0] is SERVER
    assert http_call[1][1].http_path == "/mcp"


def test_main_shuts_down_gracefully_on_interrupt(monkeypatch: pytest.MonkeyPatch) -> None:
    config = _make_config(enable_stdio=True)
    calls: list[tuple[Any, ...]] = []
    _patch_main(monkeypatch, config, calls)

    def _interrupt(*_args: Any, **_kwargs: Any) -> None:
        raise KeyboardInterrupt

    monkeypatch.setattr("kaggle_notebook.server.run_stdio", _interrupt)

    run_main([])

    assert calls[-1] == ("shutdown",)


def test_main_exits_when_credentials_missing(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("kaggle_notebook.server.configure_logging", lambda *args, **kwargs: None)
    monkeypatch.delenv("KAGGLE_USERNAME", raising=False)
    monkeypatch.delenv("KAGGLE_KEY", raising=False)

    with pytest.raises(SystemExit) as excinfo:
        run_main([])

    assert excinfo.value.code == 1
