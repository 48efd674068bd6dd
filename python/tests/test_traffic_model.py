from __future__ import annotations

import pytest

pytest.importorskip("PySide6.QtCore")

from PySide6.QtCore import Qt  # noqa: E402

from trafficstats import (  # noqa: E402
    Address,
    ConversationTable,
    DisplayOptions,
    EndpointRecord,
    EndpointTable,
    FlowRecord,
    GeoLookup,
    TimelineSpan,
)
from trafficstats.qtui.traffic_model import (  # noqa: E402
    RECORD_ROLE,
    TIMELINE_ROLE,
    ConversationTableModel,
    EndpointTableModel,
)


def _flow(start_s: int, stop_s: int, tx_bytes: int, resolved=None) -> FlowRecord:
    return FlowRecord(
        src_address=Address(bytes([10, 0, 0, tx_bytes % 250 + 1]), resolved),
        src_port=1000,
        dst_address=Address(b"\x0a\x00\x00\xfe"),
        dst_port=80,
        tx_frames=1,
        tx_bytes=tx_bytes,
        start_ns=start_s * 1_000_000_000,
        stop_ns=stop_s * 1_000_000_000,
    )


def _conversation_model():
    table = ConversationTable("tcp")
    model = ConversationTableModel(table)
    table.on_records_appended([_flow(2, 5, 300, "zeta"), _flow(0, 10, 100, "alpha")])
    table.draw()
    return table, model


def test_model_follows_table_draws():
    table, model = _conversation_model()
    assert model.rowCount() == 2
    assert model.columnCount() == 14
    assert model.headerData(0, Qt.Horizontal) == "Address A"
    assert model.data(model.index(0, 5)) == "300"

    table.on_reset()
    assert model.rowCount() == 0


def test_sort_uses_table_order():
    _, model = _conversation_model()
    model.sort(5, Qt.AscendingOrder)
    assert model.data(model.index(0, 5)) == "100"
    assert model.record_index(0) == 1

    model.sort(5, Qt.DescendingOrder)
    assert model.data(model.index(0, 5)) == "300"


def test_resolved_names_resort_address_column():
    _, model = _conversation_model()
    model.sort(0, Qt.AscendingOrder)
    assert model.record_index(0) == 0

    model.set_display_options(DisplayOptions(resolve_names=True))
    assert model.data(model.index(0, 0)) == "alpha"
    assert model.data(model.index(1, 0)) == "zeta"


def test_timeline_role():
    _, model = _conversation_model()
    assert model.data(model.index(0, 10), TIMELINE_ROLE) is None

    model.set_timeline_widths(100, 50)
    assert model.data(model.index(0, 10), TIMELINE_ROLE) == TimelineSpan(30.0, 45.0)
    assert model.data(model.index(0, 11), TIMELINE_ROLE) == TimelineSpan(-70.0, 45.0)
    assert model.data(model.index(0, 4), TIMELINE_ROLE) is None
    assert model.data(model.index(0, 0), RECORD_ROLE).tx_bytes == 300


def test_endpoint_model_map_state():
    table = EndpointTable("ipv4")
    model = EndpointTableModel(table)
    assert not model.can_map
    assert model.columnCount() == 11

    geo = GeoLookup(found=True, latitude=37.75, longitude=-97.82)
    table.on_records_appended([EndpointRecord(Address(b"\x08\x08\x04\x04"), geo=geo)])
    table.draw()

    assert model.can_map
    assert model.selected_record_indices([0, 5]) == [0]
    assert model.data(model.index(0, 0), Qt.TextAlignmentRole) == int(Qt.AlignLeft | Qt.AlignVCenter)
