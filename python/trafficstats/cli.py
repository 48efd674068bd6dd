"""Command-line entry point printing conversation or endpoint statistics."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Dict, List, Optional, Sequence, TextIO, Union

from .columns import Column, parse_column
from .config import DisplayOptions, TableOptions, load_options
from .engine import TABLE_KINDS, ConversationTable, EndpointTable, TrafficTable
from .errors import TrafficStatsError
from .records import GeoLookup
from .tap import PcapTap, system_service_name
from .utils import parse_ip

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Print per-conversation or per-endpoint traffic statistics from a PCAP capture.",
    )
    parser.add_argument(
        "mode",
        choices=["conversations", "endpoints"],
        help="Which statistics table to print.",
    )
    parser.add_argument(
        "pcap_path",
        type=Path,
        help="Path to a PCAP or PCAPNG file.",
    )
    parser.add_argument(
        "--table",
        choices=[name for name in TABLE_KINDS if name != "ncp"],
        default="tcp",
        help="Protocol table to build (default: tcp).",
    )
    parser.add_argument(
        "--sort",
        metavar="COLUMN",
        help="Column to sort by, as a name (bytes_ab) or title (\"Bytes A → B\").",
    )
    parser.add_argument(
        "--descending",
        action="store_true",
        help="Sort in descending order.",
    )
    parser.add_argument(
        "--resolve-names",
        type=Path,
        metavar="HOSTS.json",
        help="JSON object mapping addresses to host names; enables name resolution.",
    )
    parser.add_argument(
        "--geo",
        type=Path,
        metavar="GEO.json",
        help="JSON object mapping addresses to geolocation entries.",
    )
    parser.add_argument(
        "--map",
        type=Path,
        metavar="OUT",
        help="Write a map of geolocated endpoints (HTML, or GeoJSON for *.json).",
    )
    parser.add_argument(
        "--options",
        type=Path,
        metavar="OPTIONS.json",
        help="Display and table options file.",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default="INFO",
        help="Log level for diagnostic output.",
    )
    return parser


# ---------------------------------------------------------------------------
def load_hosts(path: Path) -> Dict[bytes, str]:
    """Read ``{"address": "name"}`` pairs keyed by raw address bytes."""
    raw = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ValueError(f"{path}: expected a JSON object")
    return {parse_ip(address): str(name) for address, name in raw.items()}


def load_geo(path: Path) -> Dict[bytes, GeoLookup]:
    """Read ``{"address": {"latitude": ..., "longitude": ..., ...}}`` entries."""
    raw = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ValueError(f"{path}: expected a JSON object")
    return {parse_ip(address): GeoLookup.from_dict(entry) for address, entry in raw.items()}


def render_table(
    table: TrafficTable,
    rows: Sequence[int],
    display: DisplayOptions,
    stream: TextIO,
) -> None:
    columns = table.visible_columns()
    header = [table.column_title(column, display) for column in columns]
    cells = [[table.display(row, column, display) for column in columns] for row in rows]
    widths = [
        max([len(title)] + [len(line[pos]) for line in cells]) for pos, title in enumerate(header)
    ]
    right = [table.columns[column].align_right for column in columns]

    def _line(values: List[str]) -> str:
        parts = [
            value.rjust(width) if align else value.ljust(width)
            for value, width, align in zip(values, widths, right)
        ]
        return "  ".join(parts).rstrip()

    stream.write(table.title + "\n")
    stream.write(_line(header) + "\n")
    for line in cells:
        stream.write(_line(line) + "\n")


def run(
    mode: str,
    pcap_path: Path,
    *,
    table_name: str,
    sort: Optional[str],
    descending: bool,
    hosts: Optional[Dict[bytes, str]],
    geo: Optional[Dict[bytes, GeoLookup]],
    map_path: Optional[Path],
    display: DisplayOptions,
    table_options: TableOptions,
    stream: TextIO,
) -> int:
    table: Union[ConversationTable, EndpointTable]
    if mode == "conversations":
        table = ConversationTable(table_name, options=table_options)
    else:
        table = EndpointTable(table_name, options=table_options)

    column: Optional[Column] = None
    if sort:
        column = parse_column(sort, table.columns)

    if hosts is not None:
        display.resolve_names = True
    tap = PcapTap(
        pcap_path,
        table_name,
        name_resolver=hosts.get if hosts is not None else None,
        service_resolver=system_service_name,
        geo_resolver=geo.get if geo is not None else None,
    )
    if isinstance(table, ConversationTable):
        tap.run(conversations=table)
    else:
        tap.run(endpoints=table)

    if column is not None:
        rows = table.sorted_indices(column, display.resolve_names, descending=descending)
    else:
        rows = list(range(len(table)))
    render_table(table, rows, display, stream)

    if map_path is not None and isinstance(table, EndpointTable):
        result = table.export_map(map_path, omit_city=display.omit_city)
        if result.nothing_to_map:
            logger.error("No endpoints available to map")
            return 1
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(level=getattr(logging, args.log_level))

    if args.map is not None and args.mode != "endpoints":
        parser.error("--map is only available for endpoints.")

    if args.options is not None:
        display, table_options = load_options(args.options)
    else:
        display, table_options = DisplayOptions(), TableOptions()

    try:
        hosts = load_hosts(args.resolve_names) if args.resolve_names is not None else None
        geo = load_geo(args.geo) if args.geo is not None else None
    except (OSError, ValueError) as exc:
        logger.error("Failed to load lookup file: %s", exc)
        return 1

    try:
        return run(
            args.mode,
            args.pcap_path,
            table_name=args.table,
            sort=args.sort,
            descending=args.descending,
            hosts=hosts,
            geo=geo,
            map_path=args.map,
            display=display,
            table_options=table_options,
            stream=sys.stdout,
        )
    except KeyError as exc:
        logger.error("Unknown column: %s", exc.args[0] if exc.args else exc)
        return 1
    except (FileNotFoundError, RuntimeError, TrafficStatsError) as exc:
        logger.error(str(exc))
        return 1


__all__ = ["build_parser", "load_hosts", "load_geo", "render_table", "run", "main"]


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
