"""Thin wrapper around the ``kaggle`` command-line tool."""

from __future__ import annotations

import os
import subprocess
from pathlib import Path
from typing import Mapping, Sequence

from .config import KaggleCredentials
from .errors import ExternalToolFailure
from .logging import get_logger

LOGGER = get_logger(__name__)


class KaggleCli:
    """Run ``kaggle`` subcommands with injected credentials.

    Every command is executed synchronously as an argv list (never through a
    shell). A non-zero exit status or a failure to start the executable is
    raised as :class:`ExternalToolFailure` carrying the CLI's own message.
    """

    def __init__(
        self,
        credentials: KaggleCredentials,
        *,
        executable: str = "kaggle",
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self._credentials = credentials
        self._executable = executable
        self._environ = dict(os.environ if environ is None else environ)

    def configure(self) -> None:
        """Persist the credentials into the Kaggle CLI's own configuration."""

        self._run("config", "set", "-n", "username", "-v", self._credentials.username)
        self._run("config", "set", "-n", "key", "-v", self._credentials.key, redact=True)

    def list_mine(self, *, csv: bool = False) -> str:
        args = ["kernels", "list", "--mine"]
        if csv:
            args.append("--csv")
        return self._run(*args)

    def pull(self, notebook_ref: str, target_dir: Path) -> str:
        return self._run("kernels", "pull", "-p", str(target_dir), notebook_ref)

    def push(self, path: str) -> str:
        return self._run("kernels", "push", "-p", path)

    def run(self, notebook_ref: str) -> str:
        return self._run("kernels", "run", notebook_ref)

    def _command(self, args: Sequence[str]) -> list[str]:
        return [self._executable, *args]

    def _run(self, *args: str, redact: bool = False) -> str:
        command = self._command(args)
        shown = [*command[:-1], "***"] if redact else command
        LOGGER.debug("cli.invoke", extra={"context": {"command": shown}})
        env = {**self._environ, **self._credentials.as_env()}
        try:
            result = subprocess.run(
                command,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                env=env,
                check=False,
            )
        except OSError as exc:
            LOGGER.error("cli.start_failed", extra={"context": {"command": shown, "error": str(exc)}})
            raise ExternalToolFailure(
                f"Could not start {self._executable}: {exc}",
                details={"command": shown},
            ) from exc

        if result.returncode != 0:
            message = _failure_message(result, shown)
            LOGGER.warning(
                "cli.failed",
                extra={"context": {"command": shown, "returncode": result.returncode}},
            )
            raise ExternalToolFailure(
                message,
                details={"command": shown, "returncode": result.returncode},
            )
        return result.stdout or ""


def _failure_message(result: subprocess.CompletedProcess[str], command: Sequence[str]) -> str:
    output = (result.stderr or "").strip() or (result.stdout or "").strip()
    header = f"Command failed with exit status {result.returncode}: {' '.join(command)}"
    if output:
        return f"{header}\n{output}"
    return header
