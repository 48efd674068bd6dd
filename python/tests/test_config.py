from __future__ import annotations

import json

from trafficstats.config import DisplayOptions, TableOptions, load_options, save_options


def test_defaults_for_missing_file(tmp_path):
    display, table = load_options(tmp_path / "absent.json")
    assert display == DisplayOptions()
    assert table == TableOptions()
    assert table.strict_invariants is True


def test_round_trip(tmp_path):
    path = tmp_path / "options.json"
    display = DisplayOptions(resolve_names=True, nanosecond_precision=True)
    table = TableOptions(strict_invariants=False, resize_threshold=50)
    save_options(path, display, table)

    assert load_options(path) == (display, table)
    assert display.start_precision == 9
    assert display.duration_precision == 6
    assert DisplayOptions().start_precision == 6
    assert DisplayOptions().duration_precision == 4


def test_invalid_values_are_ignored(tmp_path):
    path = tmp_path / "options.json"
    path.write_text(
        json.dumps(
            {
                "display": {"omit_city": "yes", "absolute_start_time": True, "unknown": True},
                "table": {"resize_threshold": -1, "strict_invariants": 0},
            }
        ),
        encoding="utf-8",
    )
    display, table = load_options(path)
    assert display == DisplayOptions(absolute_start_time=True)
    assert table == TableOptions()


def test_malformed_file_logs_warning(tmp_path, caplog):
    path = tmp_path / "options.json"
    path.write_text("{not json", encoding="utf-8")
    with caplog.at_level("WARNING", logger="trafficstats.config"):
        display, table = load_options(path)
    assert display == DisplayOptions()
    assert table == TableOptions()
    assert "Ignoring unreadable options file" in caplog.text
