"""Configuration loading utilities for the Kaggle Notebook MCP server."""

from __future__ import annotations

import argparse
import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, MutableMapping, Sequence

ENV_PREFIX = "KAGGLE_NOTEBOOK_"

BOOL_TRUE = {"1", "true", "t", "yes", "y", "on"}
BOOL_FALSE = {"0", "false", "f", "no", "n", "off"}

DEFAULT_KAGGLE_EXECUTABLE = "kaggle"
DEFAULT_HTTP_HOST = "127.0.0.1"
DEFAULT_HTTP_PORT = 8766
DEFAULT_HTTP_PATH = "/mcp"
DEFAULT_METRICS_PATH = "/metrics"
DEFAULT_LIST_FORMAT = "table"
DEFAULT_LOG_LEVEL = "INFO"

LIST_FORMATS = ("table", "csv")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

ENV_FIELD_MAP = {
    "config_file": f"{ENV_PREFIX}CONFIG_FILE",
    "kaggle_username": "KAGGLE_USERNAME",
    "kaggle_key": "KAGGLE_KEY",
    "kaggle_executable": f"{ENV_PREFIX}KAGGLE_EXECUTABLE",
    "persist_credentials": f"{ENV_PREFIX}PERSIST_CREDENTIALS",
    "list_format": f"{ENV_PREFIX}LIST_FORMAT",
    "workspace_dir": f"{ENV_PREFIX}WORKSPACE_DIR",
    "keep_workspaces": f"{ENV_PREFIX}KEEP_WORKSPACES",
    "enable_stdio": f"{ENV_PREFIX}ENABLE_STDIO",
    "enable_http": f"{ENV_PREFIX}ENABLE_HTTP",
    "enable_metrics": f"{ENV_PREFIX}ENABLE_METRICS",
    "http_host": f"{ENV_PREFIX}HTTP_HOST",
    "http_port": f"{ENV_PREFIX}HTTP_PORT",
    "http_path": f"{ENV_PREFIX}HTTP_PATH",
    "metrics_path": f"{ENV_PREFIX}METRICS_PATH",
    "log_level": f"{ENV_PREFIX}LOG_LEVEL",
}

DEFAULT_VALUES: dict[str, Any] = {
    "config_file": None,
    "kaggle_username": None,
    "kaggle_key": None,
    "kaggle_executable": DEFAULT_KAGGLE_EXECUTABLE,
    "persist_credentials": True,
    "list_format": DEFAULT_LIST_FORMAT,
    "workspace_dir": None,
    "keep_workspaces": False,
    "enable_stdio": True,
    "enable_http": False,
    "enable_metrics": False,
    "http_host": DEFAULT_HTTP_HOST,
    "http_port": DEFAULT_HTTP_PORT,
    "http_path": DEFAULT_HTTP_PATH,
    "metrics_path": DEFAULT_METRICS_PATH,
    "log_level": DEFAULT_LOG_LEVEL,
}


class ConfigError(ValueError):
    """Raised when configuration values are invalid."""


@dataclass(frozen=True, slots=True)
class KaggleCredentials:
    """Kaggle API credentials resolved once at startup."""

    username: str
    key: str

    def as_env(self) -> dict[str, str]:
        return {"KAGGLE_USERNAME": self.username, "KAGGLE_KEY": self.key}

    def __repr__(self) -> str:
        return f"KaggleCredentials(username={self.username!r}, key='***')"


@dataclass(slots=True)
class Config:
    """Configuration model for the Kaggle Notebook MCP server."""

    credentials: KaggleCredentials
    kaggle_executable: str
    persist_credentials: bool
    list_format: str
    workspace_dir: Path | None
    keep_workspaces: bool
    enable_stdio: bool
    enable_http: bool
    enable_metrics: bool
    http_host: str
    http_port: int
    http_path: str
    metrics_path: str
    log_level: str
    config_file: Path | None = None


def load_config(
    argv: Sequence[str] | None = None,
    environ: Mapping[str, str] | None = None,
) -> Config:
    """Load configuration from CLI arguments, environment variables, and optional file."""

    parser = _build_arg_parser()
    parsed = parser.parse_args(argv)
    cli_values = {k: v for k, v in vars(parsed).items() if v is not None}

    env_values = _extract_env_values(os.environ if environ is None else environ)

    config_path_value = cli_values.get("config_file") or env_values.get("config_file")
    file_values = _load_config_file(config_path_value)

    merged: dict[str, Any] = {}
    _merge_layer(merged, DEFAULT_VALUES)
    _merge_layer(merged, file_values)
    _merge_layer(merged, env_values)
    _merge_layer(merged, cli_values)

    return _normalize_values(merged, config_path_value)


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kaggle-notebook-mcp",
        description="Kaggle Notebook MCP server configuration flags.",
        add_help=False,
        formatter_class=argparse.RawTextHelpFormatter,
    )
    parser.add_argument("-h", "--help", action="help", help="Show this help message and exit.")
    parser.add_argument(
        "--config-file",
        dest="config_file",
        metavar="PATH",
        help="Path to a JSON configuration file. Default: none.",
    )
    parser.add_argument(
        "--kaggle-username",
        dest="kaggle_username",
        metavar="NAME",
        help="Kaggle account name (default: $KAGGLE_USERNAME).",
    )
    parser.add_argument(
        "--kaggle-key",
        dest="kaggle_key",
        metavar="KEY",
        help="Kaggle API key (default: $KAGGLE_KEY).",
    )
    parser.add_argument(
        "--kaggle-executable",
        dest="kaggle_executable",
        metavar="PATH",
        help=f"Kaggle CLI executable (default: {DEFAULT_KAGGLE_EXECUTABLE}).",
    )
    parser.add_argument(
        "--persist-credentials",
        dest="persist_credentials",
        metavar="BOOL",
        help="Write credentials into the Kaggle CLI configuration at startup (default: true).",
    )
    parser.add_argument(
        "--list-format",
        dest="list_format",
        choices=LIST_FORMATS,
        help=f"Output format requested from 'kaggle kernels list' (default: {DEFAULT_LIST_FORMAT}).",
    )
    parser.add_argument(
        "--workspace-dir",
        dest="workspace_dir",
        metavar="PATH",
        help="Parent directory for temporary download workspaces (default: system temp dir).",
    )
    parser.add_argument(
        "--keep-workspaces",
        dest="keep_workspaces",
        metavar="BOOL",
        help="Leave download workspaces on disk after reading (default: false).",
    )
    parser.add_argument(
        "--enable-stdio",
        dest="enable_stdio",
        metavar="BOOL",
        help="Enable the stdio transport (default: true).",
    )
    parser.add_argument(
        "--enable-http",
        dest="enable_http",
        metavar="BOOL",
        help="Enable the streamable HTTP transport (default: false).",
    )
    parser.add_argument(
        "--enable-metrics",
        dest="enable_metrics",
        metavar="BOOL",
        help="Expose Prometheus metrics on the HTTP transport (default: false).",
    )
    parser.add_argument(
        "--http-host",
        dest="http_host",
        metavar="HOST",
        help=f"HTTP bind host (default: {DEFAULT_HTTP_HOST}).",
    )
    parser.add_argument(
        "--http-port",
        dest="http_port",
        metavar="PORT",
        help=f"HTTP bind port (default: {DEFAULT_HTTP_PORT}).",
    )
    parser.add_argument(
        "--http-path",
        dest="http_path",
        metavar="PATH",
        help=f"Endpoint path for the MCP HTTP transport (default: {DEFAULT_HTTP_PATH}).",
    )
    parser.add_argument(
        "--metrics-path",
        dest="metrics_path",
        metavar="PATH",
        help=f"Endpoint path for metrics (default: {DEFAULT_METRICS_PATH}).",
    )
    parser.add_argument(
        "--log-level",
        dest="log_level",
        metavar="LEVEL",
        help=f"Log level (default: {DEFAULT_LOG_LEVEL}).",
    )
    return parser


def _extract_env_values(env: Mapping[str, str]) -> dict[str, Any]:
    values: dict[str, Any] = {}
    for field, env_name in ENV_FIELD_MAP.items():
        if env_name in env:
            values[field] = env[env_name]
    return values


def _load_config_file(path_value: str | Path | None) -> dict[str, Any]:
    if not path_value:
        return {}
    path = Path(path_value).expanduser()
    if not path.exists():
        raise ConfigError(f"Config file does not exist: {path}")
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Config file is not valid JSON: {path}") from exc
    if not isinstance(payload, Mapping):
        raise ConfigError("Config file must contain a JSON object")
    unknown = sorted(set(payload).difference(DEFAULT_VALUES))
    if unknown:
        raise ConfigError(f"Unknown config file keys: {', '.join(unknown)}")
    return dict(payload)


def _merge_layer(base: MutableMapping[str, Any], overrides: Mapping[str, Any]) -> None:
    for key, value in overrides.items():
        if value is None:
            continue
        base[key] = value


def _normalize_values(values: Mapping[str, Any], config_path_value: str | Path | None) -> Config:
    credentials = _parse_credentials(values.get("kaggle_username"), values.get("kaggle_key"))

    kaggle_executable = _parse_str(values.get("kaggle_executable"), field="kaggle_executable")
    persist_credentials = _parse_bool(values.get("persist_credentials"), default=True)
    list_format = _parse_choice(values.get("list_format"), field="list_format", choices=LIST_FORMATS)
    workspace_dir = _parse_optional_path(values.get("workspace_dir"), field="workspace_dir")
    keep_workspaces = _parse_bool(values.get("keep_workspaces"), default=False)

    enable_stdio = _parse_bool(values.get("enable_stdio"), default=True)
    enable_http = _parse_bool(values.get("enable_http"), default=False)
    enable_metrics = _parse_bool(values.get("enable_metrics"), default=False)

    http_host = _parse_str(values.get("http_host"), field="http_host")
    http_port = _parse_int(values.get("http_port"), field="http_port", minimum=0, maximum=65535)
    http_path = _parse_str(values.get("http_path"), field="http_path")
    metrics_path = _parse_str(values.get("metrics_path"), field="metrics_path")
    log_level = _parse_choice(
        str(values.get("log_level", DEFAULT_LOG_LEVEL)).upper(), field="log_level", choices=LOG_LEVELS
    )

    if not (enable_stdio or enable_http):
        raise ConfigError("At least one transport (stdio or http) must be enabled")

    return Config(
        credentials=credentials,
        kaggle_executable=kaggle_executable,
        persist_credentials=persist_credentials,
        list_format=list_format,
        workspace_dir=workspace_dir,
        keep_workspaces=keep_workspaces,
        enable_stdio=enable_stdio,
        enable_http=enable_http,
        enable_metrics=enable_metrics,
        http_host=http_host,
        http_port=http_port,
        http_path=http_path,
        metrics_path=metrics_path,
        log_level=log_level,
        config_file=_parse_optional_path(config_path_value, field="config_file"),
    )


def _parse_credentials(username: Any, key: Any) -> KaggleCredentials:
    username_str = str(username).strip() if username is not None else ""
    key_str = str(key).strip() if key is not None else ""
    if not username_str or not key_str:
        raise ConfigError("Kaggle credentials not provided (set KAGGLE_USERNAME and KAGGLE_KEY)")
    return KaggleCredentials(username=username_str, key=key_str)


def _parse_str(value: Any, *, field: str) -> str:
    if not isinstance(value, str):
        raise ConfigError(f"Invalid value for {field}: {value!r}")
    stripped = value.strip()
    if not stripped:
        raise ConfigError(f"{field} may not be empty")
    return stripped


def _parse_choice(value: Any, *, field: str, choices: Sequence[str]) -> str:
    candidate = _parse_str(value, field=field)
    if candidate not in choices:
        raise ConfigError(f"{field} must be one of: {', '.join(choices)}")
    return candidate


def _parse_bool(value: Any, *, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in BOOL_TRUE:
            return True
        if lowered in BOOL_FALSE:
            return False
    raise ConfigError(f"Invalid boolean value: {value!r}")


def _parse_int(value: Any, *, field: str, minimum: int | None = None, maximum: int | None = None) -> int:
    try:
        if isinstance(value, (int, float)):
            int_value = int(value)
        else:
            int_value = int(str(value).strip())
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid integer for {field}: {value!r}") from exc

    if minimum is not None and int_value < minimum:
        raise ConfigError(f"{field} must be >= {minimum}")
    if maximum is not None and int_value > maximum:
        raise ConfigError(f"{field} must be <= {maximum}")
    return int_value


def _parse_path(value: Any, *, field: str) -> Path:
    if isinstance(value, Path):
        return value.expanduser().resolve()
    if not isinstance(value, str):
        raise ConfigError(f"Invalid path for {field}: {value!r}")
    stripped = value.strip()
    if not stripped:
        raise ConfigError(f"{field} may not be empty")
    return Path(stripped).expanduser().resolve()


def _parse_optional_path(value: Any, *, field: str) -> Path | None:
    if value in (None, ""):
        return None
    return _parse_path(value, field=field)
