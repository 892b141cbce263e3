"""In-flight guard serialising operations per binary target."""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from services.online_patch.models import OperationInProgressError

_LOGGER = logging.getLogger(__name__)


class OperationGuard:
    """Reject a second operation on a binary while one is still running.

    Operations are not re-entrant for the same target because they share the
    workspace slots, so the guard fails fast instead of queueing.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._active: set[Path] = set()

    @contextmanager
    def hold(self, binary_path: Path) -> Iterator[None]:
        key = _key(binary_path)
        with self._lock:
            if key in self._active:
                raise OperationInProgressError(
                    "Patch operation already in progress. Please wait."
                )
            self._active.add(key)
        _LOGGER.debug("Acquired patch guard for %s", key)
        try:
            yield
        finally:
            with self._lock:
                self._active.discard(key)
            _LOGGER.debug("Released patch guard for %s", key)

    def is_busy(self, binary_path: Path) -> bool:
        with self._lock:
            return _key(binary_path) in self._active


def _key(binary_path: Path) -> Path:
    return Path(binary_path).expanduser().absolute()


__all__ = ["OperationGuard"]
