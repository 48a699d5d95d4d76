from __future__ import annotations

import json
import os
import warnings
from dataclasses import dataclass
from pathlib import Path
from typing import Any

DEFAULT_CONFIG_PATH = Path("~/.config/beachboard/config.json").expanduser()
DEFAULT_DB_PATH = Path("~/.beachboard/board.sqlite").expanduser()

CONFIG_ENV_OVERRIDES = {
    "db_path": "BEACHBOARD_DB",
    "station_id": "BEACHBOARD_STATION_ID",
    "remote_url": "BEACHBOARD_REMOTE_URL",
    "remote_timeout_s": "BEACHBOARD_REMOTE_TIMEOUT_S",
    "probe_interval_s": "BEACHBOARD_PROBE_INTERVAL_S",
    "backoff_base_s": "BEACHBOARD_BACKOFF_BASE_S",
    "backoff_max_s": "BEACHBOARD_BACKOFF_MAX_S",
    "max_attempts": "BEACHBOARD_MAX_ATTEMPTS",
    "poll_interval_s": "BEACHBOARD_POLL_INTERVAL_S",
    "circle_count": "BEACHBOARD_CIRCLE_COUNT",
    "serve_host": "BEACHBOARD_SERVE_HOST",
    "serve_port": "BEACHBOARD_SERVE_PORT",
    "serve_mdns": "BEACHBOARD_SERVE_MDNS",
    "log_level": "BEACHBOARD_LOG_LEVEL",
    "export_dir": "BEACHBOARD_EXPORT_DIR",
}

_INT_KEYS = {"max_attempts", "circle_count", "serve_port"}
_FLOAT_KEYS = {
    "remote_timeout_s",
    "probe_interval_s",
    "backoff_base_s",
    "backoff_max_s",
    "poll_interval_s",
}
_BOOL_KEYS = {"serve_mdns"}


def get_config_path(path: Path | None = None) -> Path:
    candidate = path or Path(os.getenv("BEACHBOARD_CONFIG", DEFAULT_CONFIG_PATH))
    return candidate.expanduser()


def read_config_file(path: Path | None = None) -> dict[str, Any]:
    config_path = get_config_path(path)
    if not config_path.exists():
        return {}
    raw = config_path.read_text()
    if not raw.strip():
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError("invalid config json") from exc
    if not isinstance(data, dict):
        raise ValueError("config must be an object")
    return data


def write_config_file(data: dict[str, Any], path: Path | None = None) -> Path:
    config_path = get_config_path(path)
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(json.dumps(data, ensure_ascii=False, indent=2) + "\n")
    return config_path


def get_env_overrides() -> dict[str, str]:
    overrides: dict[str, str] = {}
    for key, env_var in CONFIG_ENV_OVERRIDES.items():
        value = os.getenv(env_var)
        if value is not None:
            overrides[key] = value
    return overrides


@dataclass
class BeachBoardConfig:
    db_path: str = str(DEFAULT_DB_PATH)
    station_id: str = "station"

    # "" keeps the station offline-only; "auto" browses mDNS for a board service.
    remote_url: str = ""
    remote_timeout_s: float = 5.0
    probe_interval_s: float = 30.0
    backoff_base_s: float = 1.0
    backoff_max_s: float = 30.0
    max_attempts: int = 5
    poll_interval_s: float = 2.0

    circle_count: int = 12

    serve_host: str = "0.0.0.0"
    serve_port: int = 7447
    serve_mdns: bool = True

    log_level: str = "WARNING"
    export_dir: str = "."


def _parse_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    if value.lower() in {"1", "true", "yes", "on"}:
        return True
    if value.lower() in {"0", "false", "off", "no"}:
        return False
    return default


def _parse_int(value: object, default: int, *, key: str) -> int:
    if value is None:
        return default
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        warnings.warn(f"Invalid int for {key}: {value!r}", RuntimeWarning, stacklevel=2)
        return default


def _parse_float(value: object, default: float, *, key: str) -> float:
    if value is None:
        return default
    try:
        return float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        warnings.warn(f"Invalid float for {key}: {value!r}", RuntimeWarning, stacklevel=2)
        return default


def _coerce_bool(value: object, default: bool, *, key: str) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str):
        return _parse_bool(value, default)
    warnings.warn(f"Invalid bool for {key}: {value!r}", RuntimeWarning, stacklevel=2)
    return default


def load_config(path: Path | None = None) -> BeachBoardConfig:
    cfg = BeachBoardConfig()
    config_path = get_config_path(path)
    if config_path.exists():
        try:
            data = json.loads(config_path.read_text())
        except json.JSONDecodeError:
            data = {}
        if isinstance(data, dict):
            cfg = _apply_dict(cfg, data)
    cfg = _apply_dict(cfg, get_env_overrides())
    return cfg


def _apply_dict(cfg: BeachBoardConfig, data: dict[str, Any]) -> BeachBoardConfig:
    for key, value in data.items():
        if not hasattr(cfg, key):
            continue
        if key in _INT_KEYS:
            setattr(cfg, key, _parse_int(value, getattr(cfg, key), key=key))
            continue
        if key in _FLOAT_KEYS:
            setattr(cfg, key, _parse_float(value, getattr(cfg, key), key=key))
            continue
        if key in _BOOL_KEYS:
            setattr(cfg, key, _coerce_bool(value, getattr(cfg, key), key=key))
            continue
        setattr(cfg, key, "" if value is None else str(value))
    return cfg
