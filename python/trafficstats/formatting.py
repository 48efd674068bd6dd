"""Cooked text for table cells."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from .metrics import NOT_AVAILABLE, Metric
from .utils import NS_PER_SECOND

NA_DISPLAY = "—"
MIDDLE_DOT = "·"
RIGHT_ARROW = "→"

_SI_PREFIXES = (
    (1000 ** 4, "T"),
    (1000 ** 3, "G"),
    (1000 ** 2, "M"),
    (1000, "k"),
)


def format_count(value: int) -> str:
    return f"{value:,}"


def format_size(value: float) -> str:
    """SI-prefixed integer size; values below 10000 are printed as is."""
    size = int(value)
    for factor, prefix in _SI_PREFIXES:
        if size // factor >= 10:
            return f"{size // factor} {prefix}"
    return str(size)


def format_bps(value: Metric) -> str:
    if value is NOT_AVAILABLE:
        return NA_DISPLAY
    return format_size(value)


def format_relative_start(start_ns: int, precision: int) -> str:
    return f"{start_ns / NS_PER_SECOND:.{precision}f}"


def format_absolute_start(start_abs_ns: int, nanosecond_precision: bool) -> str:
    seconds, nsecs = divmod(start_abs_ns, NS_PER_SECOND)
    clock = datetime.fromtimestamp(seconds).strftime("%H:%M:%S")
    if nanosecond_precision:
        return f"{clock}.{nsecs:09d}"
    return f"{clock}.{nsecs // 1000:06d}"


def format_duration(value: Metric, precision: int) -> str:
    if value is NOT_AVAILABLE:
        return NA_DISPLAY
    return f"{value:.{precision}f}"


def format_optional(value: Optional[object]) -> str:
    if value is None or value == "":
        return NA_DISPLAY
    return str(value)


__all__ = [
    "NA_DISPLAY",
    "MIDDLE_DOT",
    "RIGHT_ARROW",
    "format_count",
    "format_size",
    "format_bps",
    "format_relative_start",
    "format_absolute_start",
    "format_duration",
    "format_optional",
]
