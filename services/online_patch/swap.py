"""File replacement primitives used when swapping binary variants."""

from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path

from services.online_patch.constants import SWAP_SUFFIX

_LOGGER = logging.getLogger(__name__)


def ensure_dirs(*directories: Path) -> None:
    for directory in directories:
        Path(directory).mkdir(parents=True, exist_ok=True)


def unlink_if_exists(path: Path) -> None:
    try:
        Path(path).unlink()
    except FileNotFoundError:
        return


def move_replace(source: Path, destination: Path) -> None:
    """Move ``source`` onto ``destination``, copying when a rename is impossible.

    An existing ``destination`` is overwritten by the rename itself, so it is
    never missing in between.  The copy fallback covers moves across
    filesystems.  It stages the copy beside ``destination`` and renames it into
    place, and only removes ``source`` once that rename has succeeded, so a
    failed copy leaves both files as they were.
    """

    source = Path(source)
    destination = Path(destination)
    ensure_dirs(destination.parent)
    try:
        os.replace(source, destination)
        _LOGGER.debug("Renamed %s -> %s", source, destination)
        return
    except OSError as exc:
        _LOGGER.debug("Rename %s -> %s failed (%s); copying instead", source, destination, exc)

    copy_replace(source, destination)
    try:
        source.unlink()
    except OSError:
        _LOGGER.warning("Copied %s but could not remove the source", source, exc_info=True)


def copy_replace(source: Path, destination: Path) -> None:
    """Copy ``source`` over ``destination`` via a sibling temp file.

    ``destination`` only ever holds either its old content or the complete
    copy, never a partially written file.
    """

    source = Path(source)
    destination = Path(destination)
    ensure_dirs(destination.parent)
    staging = destination.with_name(destination.name + SWAP_SUFFIX)
    unlink_if_exists(staging)
    try:
        shutil.copy2(source, staging)
        os.replace(staging, destination)
    except OSError:
        unlink_if_exists(staging)
        raise
    _LOGGER.debug("Copied %s -> %s", source, destination)


def remove_tree(root: Path) -> bool:
    """Delete ``root`` recursively, returning ``False`` if anything remained."""

    root = Path(root)
    if not root.exists():
        return True
    try:
        shutil.rmtree(root)
    except OSError:
        _LOGGER.warning("Failed to remove patch workspace %s", root, exc_info=True)
        return False
    return True


__all__ = ["copy_replace", "ensure_dirs", "move_replace", "remove_tree", "unlink_if_exists"]
