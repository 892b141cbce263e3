"""Engine-wide configuration loaded from JSON resources."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from importlib import resources
from math import isfinite
from pathlib import Path
from typing import Any, Mapping

_CONFIG_RESOURCE = "engine.json"
_CONFIG_PATH_ENV = "PATCH_ENGINE_CONFIG"
_ENGINE_CONFIG_CACHE: PatchEngineConfig | None = None

_DEFAULT_FETCH_TIMEOUT = 45.0
_DEFAULT_HEAD_TIMEOUT = 45.0
_DEFAULT_CHUNK_SIZE = 64 * 1024
_DEFAULT_WORKSPACE_DIRNAME = ".online-patch"
_DEFAULT_STATE_FILENAME = "state.json"
_DEFAULT_CACHE_BUSTER_PARAM = "cb"
_DEFAULT_LOG_VERBOSITY = "info"
_LOG_VERBOSITIES = frozenset({"disabled", "error", "warning", "info", "verbose"})


@dataclass(frozen=True)
class PatchEngineConfig:
    """Structured configuration values for the patch engine."""

    fetch_timeout_seconds: float = _DEFAULT_FETCH_TIMEOUT
    head_timeout_seconds: float = _DEFAULT_HEAD_TIMEOUT
    chunk_size: int = _DEFAULT_CHUNK_SIZE
    workspace_dirname: str = _DEFAULT_WORKSPACE_DIRNAME
    state_filename: str = _DEFAULT_STATE_FILENAME
    cache_buster_param: str = _DEFAULT_CACHE_BUSTER_PARAM
    log_verbosity: str = _DEFAULT_LOG_VERBOSITY


def get_engine_config() -> PatchEngineConfig:
    """Return the cached engine configuration."""

    global _ENGINE_CONFIG_CACHE
    if _ENGINE_CONFIG_CACHE is None:
        _ENGINE_CONFIG_CACHE = load_engine_config(os.environ.get(_CONFIG_PATH_ENV) or None)
    return _ENGINE_CONFIG_CACHE


def reset_engine_config_cache() -> None:
    """Reset the cached configuration for subsequent reloads."""

    global _ENGINE_CONFIG_CACHE
    _ENGINE_CONFIG_CACHE = None


def load_engine_config(path: str | Path | None = None) -> PatchEngineConfig:
    """Load configuration from ``path`` or the bundled JSON resource."""

    data = _read_config_data(path)
    network = data.get("network") if isinstance(data, Mapping) else None
    workspace = data.get("workspace") if isinstance(data, Mapping) else None
    logging_section = data.get("logging") if isinstance(data, Mapping) else None
    if not isinstance(network, Mapping):
        network = {}
    if not isinstance(workspace, Mapping):
        workspace = {}
    if not isinstance(logging_section, Mapping):
        logging_section = {}

    return PatchEngineConfig(
        fetch_timeout_seconds=_coerce_positive_float(
            network.get("fetch_timeout_seconds"), default=_DEFAULT_FETCH_TIMEOUT
        ),
        head_timeout_seconds=_coerce_positive_float(
            network.get("head_timeout_seconds"), default=_DEFAULT_HEAD_TIMEOUT
        ),
        chunk_size=_coerce_positive_int(network.get("chunk_size"), default=_DEFAULT_CHUNK_SIZE),
        workspace_dirname=_coerce_name(
            workspace.get("dirname"), default=_DEFAULT_WORKSPACE_DIRNAME
        ),
        state_filename=_coerce_name(
            workspace.get("state_filename"), default=_DEFAULT_STATE_FILENAME
        ),
        cache_buster_param=_coerce_name(
            network.get("cache_buster_param"), default=_DEFAULT_CACHE_BUSTER_PARAM
        ),
        log_verbosity=_coerce_verbosity(logging_section.get("file_verbosity")),
    )


def _read_config_data(path: str | Path | None) -> Mapping[str, Any]:
    if path is not None:
        return _load_json_from_path(Path(path).expanduser())
    return _load_default_config_data()


def _load_json_from_path(path: Path) -> Mapping[str, Any]:
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError:
        return {}
    return _parse_json(raw)


def _load_default_config_data() -> Mapping[str, Any]:
    try:
        resource = resources.files(__package__).joinpath(_CONFIG_RESOURCE)
        raw = resource.read_text(encoding="utf-8")
    except (FileNotFoundError, OSError):
        return {}
    return _parse_json(raw)


def _parse_json(raw: str) -> Mapping[str, Any]:
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return {}
    if isinstance(parsed, Mapping):
        return parsed
    return {}


def _coerce_positive_int(value: Any, *, default: int) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        candidate = int(value)
    elif isinstance(value, str):
        try:
            candidate = int(float(value))
        except ValueError:
            return default
    else:
        return default
    if candidate <= 0:
        return default
    return candidate


def _coerce_positive_float(value: Any, *, default: float) -> float:
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        candidate = float(value)
    elif isinstance(value, str):
        try:
            candidate = float(value.strip())
        except ValueError:
            return default
    else:
        return default
    if not isfinite(candidate) or candidate <= 0:
        return default
    return candidate


def _coerce_verbosity(value: Any) -> str:
    if isinstance(value, str) and value.strip().lower() in _LOG_VERBOSITIES:
        return value.strip().lower()
    return _DEFAULT_LOG_VERBOSITY


def _coerce_name(value: Any, *, default: str) -> str:
    if not isinstance(value, str):
        return default
    cleaned = value.strip()
    if not cleaned or "/" in cleaned or "\\" in cleaned or cleaned in {".", ".."}:
        return default
    return cleaned


__all__ = [
    "PatchEngineConfig",
    "get_engine_config",
    "load_engine_config",
    "reset_engine_config_cache",
]
