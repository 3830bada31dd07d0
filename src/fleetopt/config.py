"""Config file loading and auto-discovery for fleetopt.

Searches for ``fleetopt.yaml`` in the current directory and parent
directories and parses it. Only the CLI reads configuration; library
classes take everything through their constructors.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml

CONFIG_FILENAME = "fleetopt.yaml"

DEFAULT_REQUEST_TIMEOUT = 30.0
DEFAULT_DELETE_TIMEOUT = 15 * 60.0
DEFAULT_UPDATE_TIMEOUT = 60.0
DEFAULT_POLL_INTERVAL = 10.0


@dataclass(frozen=True)
class FleetOptConfig:
    """Parsed fleetopt configuration."""

    config_path: Path | None = None
    api_url: str | None = None
    api_token: str | None = None
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    delete_timeout: float = DEFAULT_DELETE_TIMEOUT
    update_timeout: float = DEFAULT_UPDATE_TIMEOUT
    poll_interval: float = DEFAULT_POLL_INTERVAL


def find_config(start: Path | None = None) -> Path | None:
    """Walk from *start* (default ``cwd()``) up to the filesystem root.

    Returns the first ``fleetopt.yaml`` found, or ``None``.
    """
    current = (start or Path.cwd()).resolve()
    while True:
        candidate = current / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            return None
        current = parent


def load_config(
    path: str | Path | None = None,
    *,
    auto_discover: bool = True,
) -> FleetOptConfig:
    """Load a fleetopt config file.

    Resolution order:

    1. Explicit *path* (error if it doesn't exist).
    2. Auto-discover by walking parent directories.
    3. Return an empty ``FleetOptConfig`` (all defaults).
    """
    config_path: Path | None = None

    if path is not None:
        config_path = Path(path).resolve()
        if not config_path.is_file():
            msg = f"Config file not found: {config_path}"
            raise FileNotFoundError(msg)
    elif auto_discover:
        config_path = find_config()

    if config_path is None:
        return FleetOptConfig()

    return _parse_config(config_path)


def _seconds(data: dict, key: str, default: float, config_path: Path) -> float:
    value = data.get(key)
    if value is None:
        return default
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        msg = f"{key} in {config_path} must be a number of seconds, got {value!r}"
        raise ValueError(msg) from None
    if seconds <= 0:
        msg = f"{key} in {config_path} must be positive, got {value!r}"
        raise ValueError(msg)
    return seconds


def _parse_config(config_path: Path) -> FleetOptConfig:
    """Read and parse a YAML config file."""
    text = config_path.read_text(encoding="utf-8")
    data = yaml.safe_load(text) or {}

    if not isinstance(data, dict):
        msg = f"Expected a YAML mapping in {config_path}, got {type(data).__name__}"
        raise ValueError(msg)

    return FleetOptConfig(
        config_path=config_path,
        api_url=data.get("api_url"),
        api_token=data.get("api_token"),
        request_timeout=_seconds(data, "request_timeout", DEFAULT_REQUEST_TIMEOUT, config_path),
        delete_timeout=_seconds(data, "delete_timeout", DEFAULT_DELETE_TIMEOUT, config_path),
        update_timeout=_seconds(data, "update_timeout", DEFAULT_UPDATE_TIMEOUT, config_path),
        poll_interval=_seconds(data, "poll_interval", DEFAULT_POLL_INTERVAL, config_path),
    )
