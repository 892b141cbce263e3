"""Progress reporting for single and aggregate multi-file downloads."""

from __future__ import annotations

import logging
from typing import Callable

from services.online_patch.models import AggregateProgress, ProgressEvent, ProgressPhase

_LOGGER = logging.getLogger(__name__)

ProgressListener = Callable[[ProgressEvent], None]


def _percent(current: int, total: int | None) -> int:
    if not total or total <= 0:
        return -1
    return max(0, min(100, round(current / total * 100)))


class ProgressReporter:
    """Translate byte counts into :class:`ProgressEvent` notifications.

    With an ``aggregate`` every chunk advances the shared counter and the
    percentage is computed against the aggregate total, so sequential
    downloads of one operation read as a single bar.  An aggregate without a
    known total stays indeterminate instead of reporting per-file percentages.
    """

    def __init__(
        self,
        listener: ProgressListener | None,
        phase: ProgressPhase,
        aggregate: AggregateProgress | None = None,
    ) -> None:
        self._listener = listener
        self._phase = phase
        self._aggregate = aggregate
        self._file_bytes = 0
        self._file_total: int | None = None

    @property
    def phase(self) -> ProgressPhase:
        return self._phase

    @property
    def aggregate(self) -> AggregateProgress | None:
        return self._aggregate

    def start(self, file_total: int | None = None) -> None:
        self._file_bytes = 0
        self._file_total = file_total
        current, total = self._position()
        self._emit(_percent(current, total), current, total)

    def advance(self, chunk_length: int, file_total: int | None = None) -> None:
        if file_total is not None:
            self._file_total = file_total
        self._file_bytes += chunk_length
        if self._aggregate is not None:
            self._aggregate.current_bytes += chunk_length
        current, total = self._position()
        self._emit(_percent(current, total), current, total)

    def indeterminate(self) -> None:
        current, total = self._position()
        self._emit(-1, current, total)

    def finish(self) -> None:
        current, total = self._position()
        if self._aggregate is not None:
            self._emit(_percent(current, total), current, total)
        else:
            self._emit(100, current, total)

    def _position(self) -> tuple[int, int | None]:
        if self._aggregate is not None:
            return self._aggregate.current_bytes, self._aggregate.total_bytes
        return self._file_bytes, self._file_total

    def _emit(self, percent: int, current: int, total: int | None) -> None:
        if self._listener is None:
            return
        event = ProgressEvent(
            phase=self._phase,
            percent=percent,
            current_bytes=current,
            total_bytes=total,
        )
        try:
            self._listener(event)
        except Exception:
            _LOGGER.exception("Progress listener raised while handling %s", event)


__all__ = ["ProgressListener", "ProgressReporter"]
