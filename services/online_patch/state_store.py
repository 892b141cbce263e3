"""Read and write the persisted patch state beside a binary."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Mapping

from services.online_patch.constants import STATE_TMP_SUFFIX
from services.online_patch.models import STATE_SCHEMA_VERSION, PatchState

_LOGGER = logging.getLogger(__name__)

_LEGACY_SCHEMA_VERSION = 1


def read_state(path: Path) -> PatchState | None:
    """Return the persisted state or ``None`` when it is missing or unusable.

    A corrupt file only degrades the caller to "unknown", which then falls
    back to verifying the live binary's digest.
    """

    path = Path(path)
    if not path.exists():
        return None
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError):
        _LOGGER.debug("Ignoring unreadable patch state at %s", path, exc_info=True)
        return None
    if not isinstance(payload, Mapping):
        _LOGGER.debug("Ignoring patch state at %s: payload is not an object", path)
        return None

    version = payload.get("schema_version", _LEGACY_SCHEMA_VERSION)
    if version == _LEGACY_SCHEMA_VERSION:
        payload = _migrate_v1(payload)
    elif version != STATE_SCHEMA_VERSION:
        _LOGGER.debug("Ignoring patch state at %s with unsupported schema %r", path, version)
        return None

    return _parse_state(payload, path)


def write_state(path: Path, state: PatchState) -> None:
    """Atomically replace the state file at ``path`` with ``state``."""

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(path.name + STATE_TMP_SUFFIX)
    tmp_path.write_text(json.dumps(state_to_payload(state), indent=2), encoding="utf-8")
    os.replace(tmp_path, path)
    _LOGGER.debug("Persisted patch state enabled=%s to %s", state.enabled, path)


def state_to_payload(state: PatchState) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "schema_version": STATE_SCHEMA_VERSION,
        "enabled": state.enabled,
        "updated_at": state.updated_at,
    }
    for key in ("patch_hash", "patch_url", "original_url", "note"):
        value = getattr(state, key)
        if value is not None:
            payload[key] = value
    return payload


def _migrate_v1(payload: Mapping[str, Any]) -> dict[str, Any]:
    # Launcher-era files used camelCase timestamps and a prefixed note key.
    migrated = dict(payload)
    migrated["schema_version"] = STATE_SCHEMA_VERSION
    if "note" not in migrated and "patch_note" in migrated:
        migrated["note"] = migrated.pop("patch_note")
    if "updated_at" not in migrated and "updatedAt" in migrated:
        migrated["updated_at"] = migrated.pop("updatedAt")
    return migrated


def _parse_state(payload: Mapping[str, Any], path: Path) -> PatchState | None:
    enabled = payload.get("enabled")
    if not isinstance(enabled, bool):
        _LOGGER.debug("Ignoring patch state at %s: 'enabled' is not a boolean", path)
        return None

    updated_at = payload.get("updated_at")
    if isinstance(updated_at, bool) or not isinstance(updated_at, (int, float)):
        updated_at = 0

    return PatchState(
        enabled=enabled,
        patch_hash=_optional_text(payload.get("patch_hash")),
        patch_url=_optional_text(payload.get("patch_url")),
        original_url=_optional_text(payload.get("original_url")),
        note=_optional_text(payload.get("note")),
        updated_at=int(updated_at),
    )


def _optional_text(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


__all__ = ["read_state", "state_to_payload", "write_state"]
