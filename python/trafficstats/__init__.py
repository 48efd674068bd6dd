"""Conversation and endpoint traffic statistics tables with geolocation map export."""

from .errors import InvariantViolation, MapExportError, TemplateError, TrafficStatsError
from .records import Address, EndpointRecord, EndpointType, FlowRecord, GeoLookup
from .record_store import RecordHandle, RecordStore
from .metrics import NOT_AVAILABLE, DerivedMetrics, derive
from .columns import ConversationColumn, EndpointColumn, parse_column
from .config import DisplayOptions, TableOptions, load_options, save_options
from .sorting import Ordering, compare, sorted_indices
from .timeline import TimeBounds, TimelineSpan, project
from .directions import (
    DIRECTION_MAP,
    ConversationDirection,
    DirectionMap,
    FilterDirection,
    build_direction_map,
)
from .geo_export import MapExportResult, MapStatus, export_map
from .engine import TABLE_KINDS, ConversationTable, EndpointTable, TableKind
from .tap import PcapTap

__all__ = [
    "TrafficStatsError",
    "InvariantViolation",
    "MapExportError",
    "TemplateError",
    "Address",
    "EndpointRecord",
    "EndpointType",
    "FlowRecord",
    "GeoLookup",
    "RecordHandle",
    "RecordStore",
    "NOT_AVAILABLE",
    "DerivedMetrics",
    "derive",
    "ConversationColumn",
    "EndpointColumn",
    "parse_column",
    "DisplayOptions",
    "TableOptions",
    "load_options",
    "save_options",
    "Ordering",
    "compare",
    "sorted_indices",
    "TimeBounds",
    "TimelineSpan",
    "project",
    "DIRECTION_MAP",
    "ConversationDirection",
    "DirectionMap",
    "FilterDirection",
    "build_direction_map",
    "MapExportResult",
    "MapStatus",
    "export_map",
    "TABLE_KINDS",
    "ConversationTable",
    "EndpointTable",
    "TableKind",
    "PcapTap",
]
