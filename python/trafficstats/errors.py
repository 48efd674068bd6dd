"""Exception types raised by the statistics engine."""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Union


class TrafficStatsError(Exception):
    """Base class for trafficstats failures."""


class InvariantViolation(TrafficStatsError):
    """The backend broke a record contract (negative duration, stale handle, ...)."""


class TemplateError(TrafficStatsError):
    """The HTML map template could not be read."""


class MapExportError(TrafficStatsError):
    """Writing a map document to its destination failed."""

    def __init__(self, path: Union[str, Path], reason: Optional[BaseException] = None) -> None:
        self.path = Path(path)
        self.reason = reason
        detail = f": {reason}" if reason is not None else ""
        super().__init__(f"Failed to save map file {self.path}{detail}")


__all__ = ["TrafficStatsError", "InvariantViolation", "TemplateError", "MapExportError"]
