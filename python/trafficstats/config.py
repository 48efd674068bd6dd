"""Display and table options, optionally persisted as JSON."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Mapping, Tuple, Union

logger = logging.getLogger(__name__)


@dataclass
class DisplayOptions:
    """Presentation switches; none of these change ordering or metrics."""

    resolve_names: bool = False
    absolute_start_time: bool = False
    nanosecond_precision: bool = False
    omit_city: bool = False

    @property
    def start_precision(self) -> int:
        return 9 if self.nanosecond_precision else 6

    @property
    def duration_precision(self) -> int:
        return 6 if self.nanosecond_precision else 4

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "DisplayOptions":
        return cls(**_known_bools(cls, data))


@dataclass
class TableOptions:
    """Engine behaviour for a statistics table."""

    strict_invariants: bool = True
    resize_threshold: int = 200

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TableOptions":
        options = cls()
        if isinstance(data.get("strict_invariants"), bool):
            options.strict_invariants = data["strict_invariants"]
        threshold = data.get("resize_threshold")
        if isinstance(threshold, int) and not isinstance(threshold, bool) and threshold >= 0:
            options.resize_threshold = threshold
        return options


def _known_bools(cls, data: Mapping[str, Any]) -> dict:
    names = {f.name for f in fields(cls)}
    return {key: value for key, value in data.items() if key in names and isinstance(value, bool)}


# ---------------------------------------------------------------------------
def load_options(path: Union[str, Path]) -> Tuple[DisplayOptions, TableOptions]:
    """Read options from ``path``; missing or malformed files yield defaults."""
    options_path = Path(path)
    if not options_path.exists():
        return DisplayOptions(), TableOptions()
    try:
        raw = json.loads(options_path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        logger.warning("Ignoring unreadable options file %s", options_path, exc_info=True)
        return DisplayOptions(), TableOptions()
    if not isinstance(raw, dict):
        logger.warning("Ignoring options file %s: expected a JSON object", options_path)
        return DisplayOptions(), TableOptions()

    display = raw.get("display") if isinstance(raw.get("display"), dict) else {}
    table = raw.get("table") if isinstance(raw.get("table"), dict) else {}
    return DisplayOptions.from_dict(display), TableOptions.from_dict(table)


def save_options(
    path: Union[str, Path],
    display: DisplayOptions,
    table: TableOptions,
) -> None:
    payload = {"display": display.to_dict(), "table": table.to_dict()}
    Path(path).write_text(json.dumps(payload, indent=2), encoding="utf-8")


__all__ = ["DisplayOptions", "TableOptions", "load_options", "save_options"]
