"""Derive the patch workspace layout for a live binary."""

from __future__ import annotations

import time
from pathlib import Path

from services.online_patch.constants import (
    ORIGINAL_SLOT_DIRNAME,
    PATCHED_SLOT_DIRNAME,
    TEMP_DOWNLOAD_LABEL,
)
from services.online_patch.models import PatchWorkspace

DEFAULT_WORKSPACE_DIRNAME = ".online-patch"
DEFAULT_STATE_FILENAME = "state.json"


def resolve_workspace(
    binary_path: Path,
    *,
    root_dirname: str = DEFAULT_WORKSPACE_DIRNAME,
    state_filename: str = DEFAULT_STATE_FILENAME,
    stamp: int | None = None,
) -> PatchWorkspace:
    """Return the workspace paths beside ``binary_path``.

    Pure: nothing is created or read.  Every path except the temp download
    slot depends only on the binary's directory and file name, so resolving
    again after a restart finds the same backups and state.  Callers resolve
    on every operation because installs can move between calls.
    """

    binary_path = Path(binary_path)
    exe_name = binary_path.name
    root = binary_path.parent / root_dirname
    return PatchWorkspace(
        root=root,
        original_slot=root / ORIGINAL_SLOT_DIRNAME / exe_name,
        patched_slot=root / PATCHED_SLOT_DIRNAME / exe_name,
        state_path=root / state_filename,
        temp_download_path=scratch_path(root, TEMP_DOWNLOAD_LABEL, exe_name, stamp=stamp),
    )


def scratch_path(root: Path, label: str, exe_name: str, *, stamp: int | None = None) -> Path:
    if stamp is None:
        stamp = time.time_ns() // 1_000_000
    return Path(root) / f"temp_{label}_{stamp}_{exe_name}"


__all__ = [
    "DEFAULT_STATE_FILENAME",
    "DEFAULT_WORKSPACE_DIRNAME",
    "resolve_workspace",
    "scratch_path",
]
