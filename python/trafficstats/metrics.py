"""Derived per-record metrics: duration, bit rates and totals."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Union

from .errors import InvariantViolation
from .records import EndpointRecord, FlowRecord
from .utils import NS_PER_SECOND

logger = logging.getLogger(__name__)

# Below this duration rate arithmetic is too noisy to be meaningful.
MIN_BW_CALC_DURATION = 5 / 1000.0


class _NotAvailable:
    """Sentinel for metrics that exist but cannot be computed."""

    _instance = None

    def __new__(cls) -> "_NotAvailable":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "NOT_AVAILABLE"


NOT_AVAILABLE = _NotAvailable()

Metric = Union[float, _NotAvailable]


@dataclass(frozen=True)
class DerivedMetrics:
    duration: Metric
    bps_ab: Metric
    bps_ba: Metric
    total_frames: int
    total_bytes: int


def raw_duration(record: FlowRecord) -> float:
    """Duration in seconds without the non-negative check."""
    return (record.stop_ns - record.start_ns) / NS_PER_SECOND


def duration(record: FlowRecord) -> float:
    value = raw_duration(record)
    if value < 0:
        raise InvariantViolation(
            f"conversation stops before it starts ({record.stop_ns} < {record.start_ns} ns)"
        )
    return value


def bandwidth(nbytes: int, duration_s: float) -> Metric:
    """Bits per second, or ``NOT_AVAILABLE`` for intervals under 5 ms."""
    if duration_s > MIN_BW_CALC_DURATION:
        return nbytes * 8 / duration_s
    return NOT_AVAILABLE


def total_frames(record: Union[FlowRecord, EndpointRecord]) -> int:
    return record.tx_frames + record.rx_frames


def total_bytes(record: Union[FlowRecord, EndpointRecord]) -> int:
    return record.tx_bytes + record.rx_bytes


def derive(record: FlowRecord, *, strict: bool = True) -> DerivedMetrics:
    """Compute every derived value of a conversation.

    With ``strict`` a negative duration raises :class:`InvariantViolation`;
    otherwise it is logged and the time based values degrade to
    ``NOT_AVAILABLE``.
    """
    try:
        duration_s: Metric = duration(record)
    except InvariantViolation:
        if strict:
            raise
        logger.warning(
            "Conversation %s:%s -> %s:%s has a negative duration",
            record.src_address,
            record.src_port,
            record.dst_address,
            record.dst_port,
        )
        duration_s = NOT_AVAILABLE

    if duration_s is NOT_AVAILABLE:
        bps_ab: Metric = NOT_AVAILABLE
        bps_ba: Metric = NOT_AVAILABLE
    else:
        bps_ab = bandwidth(record.tx_bytes, duration_s)
        bps_ba = bandwidth(record.rx_bytes, duration_s)

    return DerivedMetrics(
        duration=duration_s,
        bps_ab=bps_ab,
        bps_ba=bps_ba,
        total_frames=total_frames(record),
        total_bytes=total_bytes(record),
    )


__all__ = [
    "MIN_BW_CALC_DURATION",
    "NOT_AVAILABLE",
    "Metric",
    "DerivedMetrics",
    "raw_duration",
    "duration",
    "bandwidth",
    "total_frames",
    "total_bytes",
    "derive",
]
