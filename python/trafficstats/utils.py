"""Utility helpers shared by the statistics tables."""

from __future__ import annotations

import ipaddress
from typing import Union

NS_PER_SECOND = 1_000_000_000
UINT32_MAX = 0xFFFFFFFF


def format_ip(value: Union[bytes, bytearray, str]) -> str:
    """Convert a raw address buffer into a printable string."""
    if isinstance(value, (bytes, bytearray)):
        if len(value) == 4:
            return ".".join(str(b & 0xFF) for b in value)
        if len(value) == 16:
            return str(ipaddress.IPv6Address(bytes(value)))
        if len(value) == 6:
            return ":".join(f"{b:02x}" for b in value)
        return value.hex()
    return str(value)


def parse_ip(text: str) -> bytes:
    """Inverse of :func:`format_ip` for IPv4/IPv6 text."""
    return ipaddress.ip_address(text.strip()).packed


def ns_to_seconds(value_ns: int) -> float:
    return value_ns / NS_PER_SECOND


__all__ = ["NS_PER_SECOND", "UINT32_MAX", "format_ip", "parse_ip", "ns_to_seconds"]
