"""Filter direction selectors and their conversation direction mapping."""

from __future__ import annotations

from enum import Enum, unique
from types import MappingProxyType
from typing import Iterator, Mapping, Protocol

from .records import FlowRecord


@unique
class FilterDirection(Enum):
    """Direction choices offered by the filter menus."""

    A_TO_FROM_B = "A ↔ B"
    A_TO_B = "A → B"
    A_FROM_B = "B → A"
    A_TO_FROM_ANY = "A ↔ Any"
    A_TO_ANY = "A → Any"
    A_FROM_ANY = "Any → A"
    ANY_TO_FROM_B = "Any ↔ B"
    ANY_TO_B = "Any → B"
    ANY_FROM_B = "B → Any"


@unique
class ConversationDirection(Enum):
    """Direction understood by the filter-string collaborator."""

    A_TO_FROM_B = "a_to_from_b"
    A_TO_B = "a_to_b"
    A_FROM_B = "a_from_b"
    A_TO_FROM_ANY = "a_to_from_any"
    A_TO_ANY = "a_to_any"
    A_FROM_ANY = "a_from_any"
    ANY_TO_FROM_B = "any_to_from_b"
    ANY_TO_B = "any_to_b"
    ANY_FROM_B = "any_from_b"


class DirectionMap(Mapping[FilterDirection, ConversationDirection]):
    """Immutable selector table; build once and pass it where needed."""

    __slots__ = ("_table",)

    def __init__(self, table: Mapping[FilterDirection, ConversationDirection]) -> None:
        missing = set(FilterDirection) - set(table)
        if missing:
            raise ValueError(f"direction map is missing {sorted(d.name for d in missing)}")
        self._table = MappingProxyType(dict(table))

    def __getitem__(self, key: FilterDirection) -> ConversationDirection:
        return self._table[key]

    def __iter__(self) -> Iterator[FilterDirection]:
        return iter(self._table)

    def __len__(self) -> int:
        return len(self._table)


def build_direction_map() -> DirectionMap:
    return DirectionMap(
        {
            FilterDirection.A_TO_FROM_B: ConversationDirection.A_TO_FROM_B,
            FilterDirection.A_TO_B: ConversationDirection.A_TO_B,
            FilterDirection.A_FROM_B: ConversationDirection.A_FROM_B,
            FilterDirection.A_TO_FROM_ANY: ConversationDirection.A_TO_FROM_ANY,
            FilterDirection.A_TO_ANY: ConversationDirection.A_TO_ANY,
            FilterDirection.A_FROM_ANY: ConversationDirection.A_FROM_ANY,
            FilterDirection.ANY_TO_FROM_B: ConversationDirection.ANY_TO_FROM_B,
            FilterDirection.ANY_TO_B: ConversationDirection.ANY_TO_B,
            FilterDirection.ANY_FROM_B: ConversationDirection.ANY_FROM_B,
        }
    )


DIRECTION_MAP = build_direction_map()


class FilterBuilder(Protocol):
    def __call__(self, record: FlowRecord, direction: ConversationDirection) -> str:  # pragma: no cover - protocol definition
        ...


def conversation_filter(
    record: FlowRecord,
    direction: FilterDirection,
    builder: FilterBuilder,
    directions: Mapping[FilterDirection, ConversationDirection] = DIRECTION_MAP,
) -> str:
    """Ask ``builder`` for the filter string matching ``direction``."""
    return builder(record, directions[direction])


__all__ = [
    "FilterDirection",
    "ConversationDirection",
    "DirectionMap",
    "build_direction_map",
    "DIRECTION_MAP",
    "FilterBuilder",
    "conversation_filter",
]
