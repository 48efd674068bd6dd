"""Column catalogue for conversation and endpoint tables.

Each column maps to one :class:`ColumnSpec` holding its title, the raw
sort key extractor and the cooked display extractor, so ordering and
display can be exercised independently of any widget.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum, unique
from types import MappingProxyType
from typing import Any, Callable, Mapping, Tuple, Union

from .config import DisplayOptions
from .formatting import (
    NA_DISPLAY,
    RIGHT_ARROW,
    format_absolute_start,
    format_bps,
    format_count,
    format_duration,
    format_optional,
    format_relative_start,
    format_size,
)
from .metrics import derive, raw_duration
from .records import Address, EndpointRecord, FlowRecord, port_display
from .utils import UINT32_MAX


@unique
class ConversationColumn(Enum):
    SRC_ADDR = 0
    SRC_PORT = 1
    DST_ADDR = 2
    DST_PORT = 3
    PACKETS = 4
    BYTES = 5
    PKT_AB = 6
    BYTES_AB = 7
    PKT_BA = 8
    BYTES_BA = 9
    START = 10
    DURATION = 11
    BPS_AB = 12
    BPS_BA = 13


@unique
class EndpointColumn(Enum):
    ADDR = 0
    PORT = 1
    PACKETS = 2
    BYTES = 3
    PKT_AB = 4
    BYTES_AB = 5
    PKT_BA = 6
    BYTES_BA = 7
    GEO_COUNTRY = 8
    GEO_CITY = 9
    GEO_AS_NUM = 10
    GEO_AS_ORG = 11


Column = Union[ConversationColumn, EndpointColumn]

ADDRESS_COLUMNS = frozenset(
    {ConversationColumn.SRC_ADDR, ConversationColumn.DST_ADDR, EndpointColumn.ADDR}
)
PORT_COLUMNS = frozenset(
    {ConversationColumn.SRC_PORT, ConversationColumn.DST_PORT, EndpointColumn.PORT}
)
TIMELINE_COLUMNS = frozenset({ConversationColumn.START, ConversationColumn.DURATION})
GEO_COLUMNS = frozenset(
    {
        EndpointColumn.GEO_COUNTRY,
        EndpointColumn.GEO_CITY,
        EndpointColumn.GEO_AS_NUM,
        EndpointColumn.GEO_AS_ORG,
    }
)


@dataclass(frozen=True)
class ColumnSpec:
    column: Column
    title: str
    sort_key: Callable[[Any, bool], Any]
    display: Callable[[Any, DisplayOptions], str]
    align_right: bool = True


# Sort keys ------------------------------------------------------------------
def float_key(value: float) -> Tuple[int, float]:
    """Orders NaN after every number, including +inf; NaNs compare equal."""
    if math.isnan(value):
        return (1, 0.0)
    return (0, value)


def address_key(address: Address, resolve_names: bool) -> Any:
    if resolve_names:
        return address.display(True).lower()
    # Binary order, shorter address families first.
    return (len(address.raw), address.raw)


def rate(nbytes: int, duration_s: float) -> float:
    """``nbytes / duration_s`` with IEEE semantics for a zero duration."""
    if duration_s == 0:
        return math.nan if nbytes == 0 else math.copysign(math.inf, nbytes)
    return nbytes / duration_s


def duration_key(record: FlowRecord) -> Tuple[int, float]:
    """Inverted intervals share the NaN bucket instead of sorting as negative."""
    value = raw_duration(record)
    return float_key(math.nan if value < 0 else value)


def rate_key(nbytes: int, record: FlowRecord) -> Tuple[int, float]:
    value = raw_duration(record)
    return float_key(math.nan if value < 0 else rate(nbytes, value))


def optional_text_key(value: Any) -> Tuple[int, str]:
    if value is None or value == "":
        return (1, "")
    return (0, str(value))


def _geo_attr(record: EndpointRecord, name: str) -> Any:
    geo = record.geo_found
    return getattr(geo, name) if geo is not None else None


def as_number_key(record: EndpointRecord) -> int:
    value = _geo_attr(record, "as_number")
    return int(value) if value else UINT32_MAX


# Display helpers ------------------------------------------------------------
def _conv_start(record: FlowRecord, options: DisplayOptions) -> str:
    if options.absolute_start_time:
        return format_absolute_start(record.start_abs_ns, options.nanosecond_precision)
    return format_relative_start(record.start_ns, options.start_precision)


def _geo_text(name: str) -> Callable[[EndpointRecord, DisplayOptions], str]:
    return lambda record, options: format_optional(_geo_attr(record, name))


# ---------------------------------------------------------------------------
_CONVERSATION_SPECS = (
    ColumnSpec(
        ConversationColumn.SRC_ADDR,
        "Address A",
        lambda r, rn: address_key(r.src_address, rn),
        lambda r, o: r.src_address.display(o.resolve_names),
        align_right=False,
    ),
    ColumnSpec(
        ConversationColumn.SRC_PORT,
        "Port A",
        lambda r, rn: r.src_port,
        lambda r, o: port_display(r.src_port, r.src_port_name, o.resolve_names),
    ),
    ColumnSpec(
        ConversationColumn.DST_ADDR,
        "Address B",
        lambda r, rn: address_key(r.dst_address, rn),
        lambda r, o: r.dst_address.display(o.resolve_names),
        align_right=False,
    ),
    ColumnSpec(
        ConversationColumn.DST_PORT,
        "Port B",
        lambda r, rn: r.dst_port,
        lambda r, o: port_display(r.dst_port, r.dst_port_name, o.resolve_names),
    ),
    ColumnSpec(
        ConversationColumn.PACKETS,
        "Packets",
        lambda r, rn: r.tx_frames + r.rx_frames,
        lambda r, o: format_count(r.tx_frames + r.rx_frames),
    ),
    ColumnSpec(
        ConversationColumn.BYTES,
        "Bytes",
        lambda r, rn: r.tx_bytes + r.rx_bytes,
        lambda r, o: format_size(r.tx_bytes + r.rx_bytes),
    ),
    ColumnSpec(
        ConversationColumn.PKT_AB,
        f"Packets A {RIGHT_ARROW} B",
        lambda r, rn: r.tx_frames,
        lambda r, o: format_count(r.tx_frames),
    ),
    ColumnSpec(
        ConversationColumn.BYTES_AB,
        f"Bytes A {RIGHT_ARROW} B",
        lambda r, rn: r.tx_bytes,
        lambda r, o: format_size(r.tx_bytes),
    ),
    ColumnSpec(
        ConversationColumn.PKT_BA,
        f"Packets B {RIGHT_ARROW} A",
        lambda r, rn: r.rx_frames,
        lambda r, o: format_count(r.rx_frames),
    ),
    ColumnSpec(
        ConversationColumn.BYTES_BA,
        f"Bytes B {RIGHT_ARROW} A",
        lambda r, rn: r.rx_bytes,
        lambda r, o: format_size(r.rx_bytes),
    ),
    ColumnSpec(
        ConversationColumn.START,
        "Rel Start",
        lambda r, rn: r.start_ns,
        _conv_start,
    ),
    ColumnSpec(
        ConversationColumn.DURATION,
        "Duration",
        lambda r, rn: duration_key(r),
        lambda r, o: format_duration(derive(r, strict=False).duration, o.duration_precision),
    ),
    ColumnSpec(
        ConversationColumn.BPS_AB,
        f"Bits/s A {RIGHT_ARROW} B",
        lambda r, rn: rate_key(r.tx_bytes, r),
        lambda r, o: format_bps(derive(r, strict=False).bps_ab),
    ),
    ColumnSpec(
        ConversationColumn.BPS_BA,
        f"Bits/s B {RIGHT_ARROW} A",
        lambda r, rn: rate_key(r.rx_bytes, r),
        lambda r, o: format_bps(derive(r, strict=False).bps_ba),
    ),
)

_ENDPOINT_SPECS = (
    ColumnSpec(
        EndpointColumn.ADDR,
        "Address",
        lambda r, rn: address_key(r.address, rn),
        lambda r, o: r.address.display(o.resolve_names),
        align_right=False,
    ),
    ColumnSpec(
        EndpointColumn.PORT,
        "Port",
        lambda r, rn: r.port,
        lambda r, o: port_display(r.port, r.port_name, o.resolve_names),
    ),
    ColumnSpec(
        EndpointColumn.PACKETS,
        "Packets",
        lambda r, rn: r.tx_frames + r.rx_frames,
        lambda r, o: format_count(r.tx_frames + r.rx_frames),
    ),
    ColumnSpec(
        EndpointColumn.BYTES,
        "Bytes",
        lambda r, rn: r.tx_bytes + r.rx_bytes,
        lambda r, o: format_size(r.tx_bytes + r.rx_bytes),
    ),
    ColumnSpec(
        EndpointColumn.PKT_AB,
        "Tx Packets",
        lambda r, rn: r.tx_frames,
        lambda r, o: format_count(r.tx_frames),
    ),
    ColumnSpec(
        EndpointColumn.BYTES_AB,
        "Tx Bytes",
        lambda r, rn: r.tx_bytes,
        lambda r, o: format_size(r.tx_bytes),
    ),
    ColumnSpec(
        EndpointColumn.PKT_BA,
        "Rx Packets",
        lambda r, rn: r.rx_frames,
        lambda r, o: format_count(r.rx_frames),
    ),
    ColumnSpec(
        EndpointColumn.BYTES_BA,
        "Rx Bytes",
        lambda r, rn: r.rx_bytes,
        lambda r, o: format_size(r.rx_bytes),
    ),
    ColumnSpec(
        EndpointColumn.GEO_COUNTRY,
        "Country",
        lambda r, rn: optional_text_key(_geo_attr(r, "country")),
        _geo_text("country"),
        align_right=False,
    ),
    ColumnSpec(
        EndpointColumn.GEO_CITY,
        "City",
        lambda r, rn: optional_text_key(_geo_attr(r, "city")),
        _geo_text("city"),
        align_right=False,
    ),
    ColumnSpec(
        EndpointColumn.GEO_AS_NUM,
        "AS Number",
        lambda r, rn: as_number_key(r),
        lambda r, o: str(_geo_attr(r, "as_number")) if _geo_attr(r, "as_number") else NA_DISPLAY,
        align_right=False,
    ),
    ColumnSpec(
        EndpointColumn.GEO_AS_ORG,
        "AS Organization",
        lambda r, rn: optional_text_key(_geo_attr(r, "as_org")),
        _geo_text("as_org"),
        align_right=False,
    ),
)

CONVERSATION_COLUMNS: Mapping[ConversationColumn, ColumnSpec] = MappingProxyType(
    {spec.column: spec for spec in _CONVERSATION_SPECS}
)
ENDPOINT_COLUMNS: Mapping[EndpointColumn, ColumnSpec] = MappingProxyType(
    {spec.column: spec for spec in _ENDPOINT_SPECS}
)


def column_spec(column: Column) -> ColumnSpec:
    if isinstance(column, ConversationColumn):
        return CONVERSATION_COLUMNS[column]
    if isinstance(column, EndpointColumn):
        return ENDPOINT_COLUMNS[column]
    raise TypeError(f"not a table column: {column!r}")


def parse_column(name: str, columns: Mapping[Column, ColumnSpec]) -> Column:
    """Look a column up by enum name (``bytes_ab``) or title (``Bytes A → B``)."""
    wanted = name.strip().lower().replace("-", "_")
    for column, spec in columns.items():
        if column.name.lower() == wanted or spec.title.lower() == name.strip().lower():
            return column
    raise KeyError(name)


__all__ = [
    "ConversationColumn",
    "EndpointColumn",
    "Column",
    "ColumnSpec",
    "ADDRESS_COLUMNS",
    "PORT_COLUMNS",
    "TIMELINE_COLUMNS",
    "GEO_COLUMNS",
    "CONVERSATION_COLUMNS",
    "ENDPOINT_COLUMNS",
    "float_key",
    "address_key",
    "rate",
    "duration_key",
    "rate_key",
    "optional_text_key",
    "as_number_key",
    "column_spec",
    "parse_column",
]
