"""Raw counter records pushed by the capture backend."""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum, unique
from typing import Any, Mapping, Optional

from .utils import format_ip, ns_to_seconds


@unique
class EndpointType(Enum):
    TCP = "tcp"
    UDP = "udp"
    OTHER = "other"


@dataclass(frozen=True)
class Address:
    """A raw address plus the display name resolved for it, if any."""

    raw: bytes
    resolved: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "raw", bytes(self.raw))

    def display(self, resolve_names: bool = False) -> str:
        if resolve_names and self.resolved:
            return self.resolved
        return format_ip(self.raw)

    def __str__(self) -> str:
        return format_ip(self.raw)


@dataclass(frozen=True)
class GeoLookup:
    """Geolocation/AS result supplied by an external database."""

    found: bool = False
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    country: Optional[str] = None
    city: Optional[str] = None
    as_number: Optional[int] = None
    as_org: Optional[str] = None
    accuracy: Optional[int] = None

    @property
    def has_coords(self) -> bool:
        if not self.found or self.latitude is None or self.longitude is None:
            return False
        if not (math.isfinite(self.latitude) and math.isfinite(self.longitude)):
            return False
        return -90.0 <= self.latitude <= 90.0 and -180.0 <= self.longitude <= 180.0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "GeoLookup":
        def _float(key: str) -> Optional[float]:
            value = data.get(key)
            return float(value) if value is not None else None

        def _int(key: str) -> Optional[int]:
            value = data.get(key)
            return int(value) if value is not None else None

        return cls(
            found=bool(data.get("found", True)),
            latitude=_float("latitude"),
            longitude=_float("longitude"),
            country=data.get("country") or None,
            city=data.get("city") or None,
            as_number=_int("as_number"),
            as_org=data.get("as_org") or None,
            accuracy=_int("accuracy"),
        )


@dataclass(frozen=True)
class FlowRecord:
    """Counters for one conversation key.

    Times are kept in nanoseconds: ``start_ns``/``stop_ns`` relative to the
    first packet of the capture, ``start_abs_ns`` since the Unix epoch.
    """

    src_address: Address
    src_port: int
    dst_address: Address
    dst_port: int
    endpoint_type: EndpointType = EndpointType.OTHER
    tx_frames: int = 0
    tx_bytes: int = 0
    rx_frames: int = 0
    rx_bytes: int = 0
    start_ns: int = 0
    stop_ns: int = 0
    start_abs_ns: int = 0
    conv_id: int = 0
    src_port_name: Optional[str] = None
    dst_port_name: Optional[str] = None

    @property
    def start_time(self) -> float:
        return ns_to_seconds(self.start_ns)

    @property
    def stop_time(self) -> float:
        return ns_to_seconds(self.stop_ns)

    @property
    def start_abs_time(self) -> float:
        return ns_to_seconds(self.start_abs_ns)


@dataclass(frozen=True)
class EndpointRecord:
    """Counters for one address (and port) of a protocol table."""

    address: Address
    port: int = 0
    endpoint_type: EndpointType = EndpointType.OTHER
    tx_frames: int = 0
    tx_bytes: int = 0
    rx_frames: int = 0
    rx_bytes: int = 0
    geo: Optional[GeoLookup] = None
    port_name: Optional[str] = None

    @property
    def geo_found(self) -> Optional[GeoLookup]:
        if self.geo is not None and self.geo.found:
            return self.geo
        return None


def port_display(port: int, name: Optional[str], resolve_names: bool) -> str:
    if resolve_names and name:
        return name
    return str(port)


__all__ = [
    "EndpointType",
    "Address",
    "GeoLookup",
    "FlowRecord",
    "EndpointRecord",
    "port_display",
]
