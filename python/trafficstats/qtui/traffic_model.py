"""Model classes backing the conversation and endpoint table views."""

from __future__ import annotations

from typing import List, Optional

from PySide6.QtCore import QAbstractTableModel, QModelIndex, Qt

from ..columns import ADDRESS_COLUMNS, Column
from ..config import DisplayOptions
from ..engine import ConversationTable, EndpointTable, TrafficTable
from ..timeline import TimelineSpan

# Role carrying the TimelineSpan of start/duration cells for bar delegates.
TIMELINE_ROLE = int(Qt.UserRole)
# Role carrying the underlying record of a row.
RECORD_ROLE = int(Qt.UserRole) + 1


class TrafficTableModel(QAbstractTableModel):
    """Qt table model presenting a :class:`TrafficTable` in sorted order.

    The model keeps only a permutation of record indices; cell text and sort
    order come from the table, and every table draw refreshes the view.
    """

    def __init__(
        self,
        table: TrafficTable,
        *,
        display: Optional[DisplayOptions] = None,
        parent=None,
    ) -> None:
        super().__init__(parent)
        self._table = table
        self._display = display or DisplayOptions()
        self._columns: List[Column] = table.visible_columns()
        self._rows: List[int] = []
        self._sort_column: Optional[Column] = None
        self._descending = False
        self._table.add_listener(self._on_table_changed)
        self._rebuild_rows()

    # ------------------------------------------------------------------
    def rowCount(self, parent: QModelIndex = QModelIndex()) -> int:  # noqa: N802 - Qt API
        if parent.isValid():
            return 0
        return len(self._rows)

    def columnCount(self, parent: QModelIndex = QModelIndex()) -> int:  # noqa: N802 - Qt API
        if parent.isValid():
            return 0
        return len(self._columns)

    def data(self, index: QModelIndex, role: int = Qt.DisplayRole):  # noqa: N802 - Qt API
        if not index.isValid() or not 0 <= index.row() < len(self._rows):
            return None

        record_index = self._rows[index.row()]
        column = self._columns[index.column()]

        if role == Qt.DisplayRole:
            return self._table.display(record_index, column, self._display)

        if role == Qt.TextAlignmentRole:
            if self._table.columns[column].align_right:
                return int(Qt.AlignRight | Qt.AlignVCenter)
            return int(Qt.AlignLeft | Qt.AlignVCenter)

        if role == RECORD_ROLE:
            return self._table.record(record_index)

        return None

    def headerData(
        self,
        section: int,
        orientation: Qt.Orientation,
        role: int = Qt.DisplayRole,
    ):
        if role != Qt.DisplayRole:
            return None
        if orientation == Qt.Horizontal:
            if 0 <= section < len(self._columns):
                return self._table.column_title(self._columns[section], self._display)
        return None

    def sort(self, column: int, order: Qt.SortOrder = Qt.AscendingOrder) -> None:
        if not 0 <= column < len(self._columns):
            return
        self.layoutAboutToBeChanged.emit()
        self._sort_column = self._columns[column]
        self._descending = order == Qt.DescendingOrder
        self._rebuild_rows()
        self.layoutChanged.emit()

    # ------------------------------------------------------------------
    @property
    def table(self) -> TrafficTable:
        return self._table

    @property
    def display_options(self) -> DisplayOptions:
        return self._display

    def set_display_options(self, display: DisplayOptions) -> None:
        """Swap presentation switches; name resolution also re-sorts address columns."""
        resort = (
            display.resolve_names != self._display.resolve_names
            and self._sort_column in ADDRESS_COLUMNS
        )
        self._display = display
        if resort:
            self.layoutAboutToBeChanged.emit()
            self._rebuild_rows()
            self.layoutChanged.emit()
        if self._rows:
            self.dataChanged.emit(
                self.index(0, 0),
                self.index(len(self._rows) - 1, len(self._columns) - 1),
            )
        self.headerDataChanged.emit(Qt.Horizontal, 0, len(self._columns) - 1)

    def column_at(self, section: int) -> Optional[Column]:
        if 0 <= section < len(self._columns):
            return self._columns[section]
        return None

    def record_index(self, row: int) -> Optional[int]:
        """Store index of the record shown at view ``row``."""
        if 0 <= row < len(self._rows):
            return self._rows[row]
        return None

    def detach(self) -> None:
        self._table.remove_listener(self._on_table_changed)

    # ------------------------------------------------------------------
    def _on_table_changed(self, _table: TrafficTable) -> None:
        self.beginResetModel()
        self._rebuild_rows()
        self.endResetModel()

    def _rebuild_rows(self) -> None:
        if self._sort_column is None:
            self._rows = list(range(len(self._table)))
        else:
            self._rows = self._table.sorted_indices(
                self._sort_column,
                self._display.resolve_names,
                descending=self._descending,
            )


class ConversationTableModel(TrafficTableModel):
    """Adds timeline bar geometry for the start and duration columns."""

    def __init__(
        self,
        table: ConversationTable,
        *,
        display: Optional[DisplayOptions] = None,
        parent=None,
    ) -> None:
        self._start_width = 0.0
        self._duration_width = 0.0
        super().__init__(table, display=display, parent=parent)

    def set_timeline_widths(self, start_width: float, duration_width: float) -> None:
        """Record the current pixel widths of the start and duration columns."""
        self._start_width = float(start_width)
        self._duration_width = float(duration_width)
        if self._rows:
            self.dataChanged.emit(
                self.index(0, 0),
                self.index(len(self._rows) - 1, len(self._columns) - 1),
                [TIMELINE_ROLE],
            )

    def data(self, index: QModelIndex, role: int = Qt.DisplayRole):  # noqa: N802 - Qt API
        if role == TIMELINE_ROLE:
            if not index.isValid() or not 0 <= index.row() < len(self._rows):
                return None
            return self.timeline_span(index.row(), index.column())
        return super().data(index, role)

    def timeline_span(self, row: int, section: int) -> Optional[TimelineSpan]:
        if self._start_width + self._duration_width <= 0:
            return None
        table = self._table
        assert isinstance(table, ConversationTable)
        return table.timeline_span(
            self._rows[row],
            self._columns[section],
            self._start_width,
            self._duration_width,
        )


class EndpointTableModel(TrafficTableModel):
    """Endpoint rows; exposes whether a map can be offered."""

    def __init__(
        self,
        table: EndpointTable,
        *,
        display: Optional[DisplayOptions] = None,
        parent=None,
    ) -> None:
        super().__init__(table, display=display, parent=parent)

    @property
    def can_map(self) -> bool:
        table = self._table
        assert isinstance(table, EndpointTable)
        return table.has_geo_data

    def selected_record_indices(self, rows: List[int]) -> List[int]:
        """Store indices for view ``rows``, ready for :meth:`EndpointTable.export_map`."""
        return [self._rows[row] for row in rows if 0 <= row < len(self._rows)]


__all__ = [
    "TIMELINE_ROLE",
    "RECORD_ROLE",
    "TrafficTableModel",
    "ConversationTableModel",
    "EndpointTableModel",
]
