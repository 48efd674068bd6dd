"""Relative timeline geometry for the start and duration columns."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from .utils import NS_PER_SECOND


@dataclass(frozen=True)
class TimelineSpan:
    """Horizontal bar in pixels relative to the column origin."""

    start: float
    width: float


class TimeBounds:
    """Running ``min(start)`` / ``max(stop)`` over the records seen so far.

    Bounds only ever widen: new records are folded in as they arrive and
    the window is cleared only by :meth:`reset`.
    """

    __slots__ = ("_min_start", "_max_stop")

    def __init__(self) -> None:
        self._min_start: Optional[float] = None
        self._max_stop: Optional[float] = None

    def include(self, start: float, stop: float) -> None:
        if self._min_start is None or start < self._min_start:
            self._min_start = start
        if self._max_stop is None or stop > self._max_stop:
            self._max_stop = stop

    def include_many(self, starts: Sequence[float], stops: Sequence[float]) -> None:
        if len(starts) == 0:
            return
        self.include(float(np.min(starts)), float(np.max(stops)))

    def reset(self) -> None:
        self._min_start = None
        self._max_stop = None

    @property
    def min_start(self) -> float:
        return 0.0 if self._min_start is None else self._min_start

    @property
    def max_stop(self) -> float:
        return 0.0 if self._max_stop is None else self._max_stop

    @property
    def span(self) -> float:
        return self.max_stop - self.min_start


def project(
    start: float,
    stop: float,
    min_start: float,
    max_stop: float,
    start_width: float,
    duration_width: float,
    *,
    duration_column: bool = False,
) -> Optional[TimelineSpan]:
    """Map ``[start, stop)`` into the combined width of both columns.

    Returns ``None`` when the window has no positive span or the interval
    ends before it starts. For the duration column the offset is re-based
    onto that column's own origin.
    """
    span_s = max_stop - min_start
    if span_s <= 0 or stop < start:
        return None
    column_px = start_width + duration_width
    start_px = (start - min_start) * column_px / span_s
    width_px = (stop - start) * column_px / span_s
    if duration_column:
        start_px -= start_width
    return TimelineSpan(start=start_px, width=width_px)


def project_all(
    starts: Sequence[float],
    stops: Sequence[float],
    min_start: float,
    max_stop: float,
    start_width: float,
    duration_width: float,
) -> Optional[np.ndarray]:
    """Vectorised :func:`project` for the start column.

    Returns an ``(n, 2)`` array of ``(start_px, width_px)`` rows, or ``None``
    when the window has no positive span. Rows whose interval ends before it
    starts are NaN.
    """
    span_s = max_stop - min_start
    if span_s <= 0:
        return None
    start_arr = np.asarray(starts, dtype=np.float64)
    stop_arr = np.asarray(stops, dtype=np.float64)
    scale = (start_width + duration_width) / span_s
    spans = np.column_stack(((start_arr - min_start) * scale, (stop_arr - start_arr) * scale))
    spans[stop_arr < start_arr] = np.nan
    return spans


def ns_times(values_ns: Sequence[int]) -> np.ndarray:
    return np.asarray(values_ns, dtype=np.float64) / NS_PER_SECOND


__all__ = ["TimelineSpan", "TimeBounds", "project", "project_all", "ns_times"]
