"""Conversation and endpoint tables fed by a capture backend.

The backend drives a table through three callbacks:

* :meth:`TrafficTable.on_reset` when aggregation restarts,
* :meth:`TrafficTable.on_records_appended` / :meth:`TrafficTable.on_records_updated`
  to push batches of new or grown records,
* :meth:`TrafficTable.draw` to apply everything pushed since the last draw.

Pushed batches are only queued; ``draw`` is the single point where the
record store and the time bounds change, so readers never observe a half
applied batch.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import (
    Callable,
    Dict,
    Generic,
    Iterable,
    List,
    Mapping,
    Optional,
    Sequence,
    TypeVar,
    Union,
)

import numpy as np

from .columns import (
    CONVERSATION_COLUMNS,
    ENDPOINT_COLUMNS,
    GEO_COLUMNS,
    PORT_COLUMNS,
    TIMELINE_COLUMNS,
    Column,
    ColumnSpec,
    ConversationColumn,
    EndpointColumn,
)
from .config import DisplayOptions, TableOptions
from .directions import DIRECTION_MAP, ConversationDirection, FilterBuilder, FilterDirection
from .errors import InvariantViolation
from .formatting import MIDDLE_DOT
from .geo_export import MapExportResult, export_map
from .metrics import DerivedMetrics, derive, duration
from .record_store import RecordHandle, RecordStore
from .records import EndpointRecord, EndpointType, FlowRecord
from .sorting import sorted_indices
from .timeline import TimeBounds, TimelineSpan, ns_times, project, project_all

logger = logging.getLogger(__name__)

R = TypeVar("R", FlowRecord, EndpointRecord)

Handle = Union[RecordHandle, int]


@dataclass(frozen=True)
class TableKind:
    """Protocol specific traits of a statistics table."""

    short_name: str
    filter_name: str
    hide_ports: bool = False
    has_geo: bool = False


TABLE_KINDS: Mapping[str, TableKind] = MappingProxyType(
    {
        "eth": TableKind("Ethernet", "eth", hide_ports=True),
        "ipv4": TableKind("IPv4", "ip", hide_ports=True, has_geo=True),
        "ipv6": TableKind("IPv6", "ipv6", hide_ports=True, has_geo=True),
        "tcp": TableKind("TCP", "tcp"),
        "udp": TableKind("UDP", "udp"),
        "ncp": TableKind("NCP", "ncp"),
    }
)


def table_kind(name: Union[str, TableKind]) -> TableKind:
    if isinstance(name, TableKind):
        return name
    key = name.strip().lower()
    if key in TABLE_KINDS:
        return TABLE_KINDS[key]
    for kind in TABLE_KINDS.values():
        if kind.filter_name == key:
            return kind
    raise KeyError(f"unknown table type: {name}")


class TrafficTable(Generic[R]):
    """Shared ingestion, ordering and display logic."""

    columns: Mapping[Column, ColumnSpec] = MappingProxyType({})
    counter_fields = ("tx_frames", "tx_bytes", "rx_frames", "rx_bytes")

    def __init__(
        self,
        kind: Union[str, TableKind],
        *,
        options: Optional[TableOptions] = None,
    ) -> None:
        self.kind = table_kind(kind)
        self.options = options or TableOptions()
        self._store: RecordStore[R] = RecordStore()
        self._pending_new: List[R] = []
        self._pending_updates: Dict[int, R] = {}
        self._lock = threading.RLock()
        self._listeners: List[Callable[["TrafficTable"], None]] = []
        self._title = self.kind.short_name

    # Backend callbacks ------------------------------------------------
    def on_reset(self) -> None:
        with self._lock:
            self._store.reset()
            self._pending_new.clear()
            self._pending_updates.clear()
            self._reset_state()
            self._title = self.kind.short_name
        logger.debug("%s table reset", self.kind.short_name)
        self._notify()

    def on_records_appended(self, batch: Iterable[R]) -> None:
        with self._lock:
            self._pending_new.extend(batch)

    def on_records_updated(self, updates: Mapping[int, R]) -> None:
        with self._lock:
            self._pending_updates.update(updates)

    def draw(self) -> bool:
        """Apply pending batches; returns whether anything changed."""
        with self._lock:
            changed = bool(self._pending_new or self._pending_updates)
            if changed:
                self._apply_pending()
            self._title = self._make_title()
        if changed:
            logger.debug("%s table now holds %d records", self.kind.short_name, len(self))
        self._notify()
        return changed

    def add_listener(self, callback: Callable[["TrafficTable"], None]) -> None:
        """Register ``callback`` to run after every draw and reset."""
        self._listeners.append(callback)

    def remove_listener(self, callback: Callable[["TrafficTable"], None]) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    # Reads ------------------------------------------------------------
    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    def record(self, handle: Handle) -> R:
        with self._lock:
            return self._store.get(handle)

    def handle(self, index: int) -> RecordHandle:
        with self._lock:
            return self._store.handle(index)

    def records(self) -> List[R]:
        with self._lock:
            return list(self._store)

    @property
    def title(self) -> str:
        return self._title

    @property
    def resize_wanted(self) -> bool:
        return len(self) < self.options.resize_threshold

    def visible_columns(self) -> List[Column]:
        hidden = PORT_COLUMNS if self.kind.hide_ports else frozenset()
        return [column for column in self.columns if column not in hidden]

    def column_title(self, column: Column, display: Optional[DisplayOptions] = None) -> str:
        return self.columns[column].title

    def sorted_indices(
        self,
        column: Column,
        resolve_names: bool = False,
        *,
        descending: bool = False,
    ) -> List[int]:
        self._require_column(column)
        with self._lock:
            return sorted_indices(list(self._store), column, resolve_names, descending=descending)

    def display(self, handle: Handle, column: Column, display: Optional[DisplayOptions] = None) -> str:
        spec = self._require_column(column)
        record = self.record(handle)
        return spec.display(record, display or DisplayOptions())

    # Internals --------------------------------------------------------
    def _make_title(self) -> str:
        count = len(self._store)
        if count > 0:
            return f"{self.kind.short_name} {MIDDLE_DOT} {count}"
        return self.kind.short_name

    def _require_column(self, column: Column) -> ColumnSpec:
        if column not in self.columns:
            raise KeyError(f"{column!r} is not a {type(self).__name__} column")
        return self.columns[column]

    def _apply_pending(self) -> None:
        new_records = self._pending_new
        updates = self._pending_updates
        self._pending_new = []
        self._pending_updates = {}

        for record in new_records:
            self._check_record(record)
        base = len(self._store)
        for index, record in updates.items():
            if 0 <= index < base:
                self._check_growth(self._store.get(index), record)
            elif base <= index < base + len(new_records):
                self._check_growth(new_records[index - base], record)
            else:
                self._violation(f"update for unknown record index {index}")

        for record in new_records:
            self._store.append(record)
            self._record_added(record)
        for index, record in updates.items():
            if 0 <= index < len(self._store):
                self._store.replace(index, record)
                self._record_added(record)

    def _check_growth(self, previous: R, current: R) -> None:
        for name in self.counter_fields:
            if getattr(current, name) < getattr(previous, name):
                self._violation(
                    f"{name} decreased from {getattr(previous, name)} to {getattr(current, name)}"
                )

    def _violation(self, message: str) -> None:
        if self.options.strict_invariants:
            raise InvariantViolation(message)
        logger.warning("Backend contract violated: %s", message)

    def _notify(self) -> None:
        for callback in list(self._listeners):
            callback(self)

    def _check_record(self, record: R) -> None:
        pass

    def _record_added(self, record: R) -> None:
        pass

    def _reset_state(self) -> None:
        pass


class ConversationTable(TrafficTable[FlowRecord]):
    """Per-conversation statistics with relative timeline support."""

    columns = CONVERSATION_COLUMNS

    def __init__(self, kind: Union[str, TableKind], *, options: Optional[TableOptions] = None) -> None:
        self._bounds = TimeBounds()
        super().__init__(kind, options=options)

    @property
    def min_rel_start_time(self) -> float:
        with self._lock:
            return self._bounds.min_start

    @property
    def max_rel_stop_time(self) -> float:
        with self._lock:
            return self._bounds.max_stop

    def column_title(self, column: Column, display: Optional[DisplayOptions] = None) -> str:
        if column == ConversationColumn.START and display is not None and display.absolute_start_time:
            return "Abs Start"
        if self.kind.filter_name == "ncp" and column == ConversationColumn.SRC_PORT:
            return "Connection A"
        if self.kind.filter_name == "ncp" and column == ConversationColumn.DST_PORT:
            return "Connection B"
        return super().column_title(column, display)

    def display(self, handle: Handle, column: Column, display: Optional[DisplayOptions] = None) -> str:
        if self.options.strict_invariants:
            duration(self.record(handle))
        return super().display(handle, column, display)

    def metrics(self, handle: Handle) -> DerivedMetrics:
        return derive(self.record(handle), strict=self.options.strict_invariants)

    def timeline_span(
        self,
        handle: Handle,
        column: Column,
        start_width: float,
        duration_width: float,
    ) -> Optional[TimelineSpan]:
        """Bar geometry for the start or duration cell of a row."""
        if column not in TIMELINE_COLUMNS:
            return None
        with self._lock:
            record = self._store.get(handle)
            min_start, max_stop = self._bounds.min_start, self._bounds.max_stop
        return project(
            record.start_time,
            record.stop_time,
            min_start,
            max_stop,
            start_width,
            duration_width,
            duration_column=column == ConversationColumn.DURATION,
        )

    def timeline_spans(self, start_width: float, duration_width: float) -> Optional[np.ndarray]:
        """``(start_px, width_px)`` per row in the start column's frame."""
        with self._lock:
            records = list(self._store)
            min_start, max_stop = self._bounds.min_start, self._bounds.max_stop
        return project_all(
            ns_times([r.start_ns for r in records]),
            ns_times([r.stop_ns for r in records]),
            min_start,
            max_stop,
            start_width,
            duration_width,
        )

    def follow_type(self, handle: Handle) -> Optional[EndpointType]:
        """Stream type that can be followed for the row, if any."""
        endpoint_type = self.record(handle).endpoint_type
        if endpoint_type in (EndpointType.TCP, EndpointType.UDP):
            return endpoint_type
        return None

    def graph_filter(self, handle: Handle) -> Optional[str]:
        record = self.record(handle)
        if record.endpoint_type is EndpointType.TCP:
            return f"tcp.stream eq {record.conv_id}"
        return None

    def conversation_filter(
        self,
        handle: Handle,
        direction: FilterDirection,
        builder: FilterBuilder,
        directions: Mapping[FilterDirection, ConversationDirection] = DIRECTION_MAP,
    ) -> str:
        return builder(self.record(handle), directions[direction])

    # ------------------------------------------------------------------
    def _check_record(self, record: FlowRecord) -> None:
        if record.stop_ns < record.start_ns:
            self._violation(
                f"conversation {record.src_address}:{record.src_port} -> "
                f"{record.dst_address}:{record.dst_port} stops before it starts"
            )

    def _check_growth(self, previous: FlowRecord, current: FlowRecord) -> None:
        super()._check_growth(previous, current)
        self._check_record(current)

    def _record_added(self, record: FlowRecord) -> None:
        # Inverted intervals reach here only in lenient mode.
        if record.stop_ns < record.start_ns:
            return
        self._bounds.include(record.start_time, record.stop_time)

    def _reset_state(self) -> None:
        self._bounds.reset()


class EndpointTable(TrafficTable[EndpointRecord]):
    """Per-endpoint statistics with optional geolocation columns."""

    columns = ENDPOINT_COLUMNS

    def __init__(self, kind: Union[str, TableKind], *, options: Optional[TableOptions] = None) -> None:
        self._has_geo_data = False
        self._geo_listeners: List[Callable[["EndpointTable"], None]] = []
        super().__init__(kind, options=options)

    @property
    def has_geo_data(self) -> bool:
        return self._has_geo_data

    def add_geo_listener(self, callback: Callable[["EndpointTable"], None]) -> None:
        """Register ``callback`` for when the first mappable endpoint arrives."""
        self._geo_listeners.append(callback)

    def visible_columns(self) -> List[Column]:
        columns = super().visible_columns()
        if not self.kind.has_geo:
            columns = [column for column in columns if column not in GEO_COLUMNS]
        return columns

    def column_title(self, column: Column, display: Optional[DisplayOptions] = None) -> str:
        if self.kind.filter_name == "ncp" and column == EndpointColumn.PORT:
            return "Connection"
        return super().column_title(column, display)

    def geo_endpoints(self) -> List[EndpointRecord]:
        return [r for r in self.records() if r.geo is not None and r.geo.has_coords]

    def export_map(
        self,
        path: Union[str, Path],
        *,
        rows: Optional[Sequence[int]] = None,
        json_only: Optional[bool] = None,
        template: Optional[str] = None,
        omit_city: bool = False,
    ) -> MapExportResult:
        """Export the mappable endpoints, optionally limited to ``rows``."""
        if rows is None:
            endpoints = self.geo_endpoints()
        else:
            endpoints = [self.record(index) for index in rows]
        return export_map(
            path,
            endpoints,
            json_only=json_only,
            template=template,
            omit_city=omit_city,
        )

    # ------------------------------------------------------------------
    def draw(self) -> bool:
        had_geo = self._has_geo_data
        changed = super().draw()
        if self._has_geo_data and not had_geo:
            for callback in list(self._geo_listeners):
                callback(self)
        return changed

    def _record_added(self, record: EndpointRecord) -> None:
        if not self._has_geo_data and record.geo is not None and record.geo.has_coords:
            self._has_geo_data = True

    def _reset_state(self) -> None:
        self._has_geo_data = False


__all__ = [
    "TableKind",
    "TABLE_KINDS",
    "table_kind",
    "TrafficTable",
    "ConversationTable",
    "EndpointTable",
]
