"""Shared configuration loader for ethclient."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping
from urllib.parse import urlparse

import yaml


class ConfigurationError(RuntimeError):
    """Raised when configuration is invalid."""


DEFAULT_CONFIG_PATH = Path.home() / ".ethclient.yaml"
DEFAULT_KEYSTORE_DIR = "keystore"
DEFAULT_RPC_TIMEOUT = 5.0
DEFAULT_WAIT_TIMEOUT = 60.0
DEFAULT_POLL_INTERVAL = 1.0


@dataclass
class ClientConfig:
    """Connection and file locations used by the CLI commands."""

    url: str
    timeout: float = DEFAULT_RPC_TIMEOUT
    wait_timeout: float = DEFAULT_WAIT_TIMEOUT
    poll_interval: float = DEFAULT_POLL_INTERVAL
    keystore: str = DEFAULT_KEYSTORE_DIR
    token_file: str | None = None


def _load_config_file(path: Path, *, required: bool) -> dict[str, Any]:
    if not path.exists():
        if required:
            raise ConfigurationError(f"Config file not found: {path}")
        return {}

    try:
        loaded = yaml.safe_load(path.read_text()) or {}
    except yaml.YAMLError as exc:  # pragma: no cover - delegated to PyYAML
        raise ConfigurationError(f"Invalid YAML in config file {path}: {exc}") from exc

    if not isinstance(loaded, dict):
        raise ConfigurationError(f"Expected {path} to contain a YAML object with an 'rpc' section")
    return loaded


def _section(file_config: dict[str, Any], name: str, path: Path) -> dict[str, Any]:
    section = file_config.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigurationError(f"Expected '{name}' to be a mapping in {path}")
    return section


def _coerce_seconds(raw: Any, *, source: str) -> float | None:
    if raw is None or raw == "":
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid duration in {source}: {raw}") from exc
    if value <= 0:
        raise ConfigurationError(f"Duration in {source} must be positive: {raw}")
    return value


def _first_value(*values: Any, default: Any = None) -> Any:
    for value in values:
        if value is not None and value != "":
            return value
    return default


def _check_endpoint(raw: str) -> str:
    parsed = urlparse(raw)
    if parsed.scheme.lower() not in {"http", "https"} or not parsed.netloc:
        raise ConfigurationError(f"Invalid RPC endpoint URL: {raw}")
    return raw


def load_client_config(
    *,
    config_path: str | Path | None = None,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, Any] | None = None,
    require_url: bool = True,
) -> ClientConfig:
    """Load client configuration from overrides, environment and optional YAML.

    Values given in ``overrides`` (usually CLI flags) win over the
    ``ETHCLIENT_*`` environment variables, which win over the ``rpc`` and
    ``client`` sections of the YAML file.
    With ``require_url=False`` a missing endpoint leaves ``url`` empty, for
    commands that work offline.
    """

    env_map = os.environ if env is None else env
    path = Path(config_path).expanduser() if config_path is not None else DEFAULT_CONFIG_PATH
    file_config = _load_config_file(path, required=config_path is not None)
    rpc_section = _section(file_config, "rpc", path)
    client_section = _section(file_config, "client", path)
    override_map = dict(overrides or {})

    url = _first_value(
        override_map.get("url"), env_map.get("ETHCLIENT_RPC_URL"), rpc_section.get("url")
    )
    if not url and require_url:
        raise ConfigurationError(
            "RPC endpoint must be provided via --url, ETHCLIENT_RPC_URL or the 'rpc.url' config entry"
        )

    timeout = _first_value(
        _coerce_seconds(override_map.get("timeout"), source="overrides"),
        _coerce_seconds(env_map.get("ETHCLIENT_RPC_TIMEOUT"), source="environment"),
        _coerce_seconds(rpc_section.get("timeout"), source=f"{path} rpc.timeout"),
        default=DEFAULT_RPC_TIMEOUT,
    )
    wait_timeout = _first_value(
        _coerce_seconds(override_map.get("wait_timeout"), source="overrides"),
        _coerce_seconds(env_map.get("ETHCLIENT_WAIT_TIMEOUT"), source="environment"),
        _coerce_seconds(rpc_section.get("wait_timeout"), source=f"{path} rpc.wait_timeout"),
        default=DEFAULT_WAIT_TIMEOUT,
    )
    poll_interval = _first_value(
        _coerce_seconds(override_map.get("poll_interval"), source="overrides"),
        _coerce_seconds(rpc_section.get("poll_interval"), source=f"{path} rpc.poll_interval"),
        default=DEFAULT_POLL_INTERVAL,
    )
    keystore = _first_value(
        override_map.get("keystore"),
        env_map.get("ETHCLIENT_KEYSTORE"),
        client_section.get("keystore"),
        default=DEFAULT_KEYSTORE_DIR,
    )
    token_file = _first_value(
        override_map.get("token_file"),
        env_map.get("ETHCLIENT_TOKEN_FILE"),
        client_section.get("token_file"),
    )

    return ClientConfig(
        url=_check_endpoint(str(url)) if url else "",
        timeout=timeout,
        wait_timeout=wait_timeout,
        poll_interval=poll_interval,
        keystore=str(keystore),
        token_file=str(token_file) if token_file else None,
    )
