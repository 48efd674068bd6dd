"""Column comparators for conversation and endpoint rows."""

from __future__ import annotations

from enum import IntEnum
from typing import Any, Callable, List, Sequence

from .columns import Column, column_spec


class Ordering(IntEnum):
    LESS = -1
    EQUAL = 0
    GREATER = 1


def sort_key(column: Column, resolve_names: bool) -> Callable[[Any], Any]:
    """Return the key extractor for ``column``.

    Keys within one (column, mode) pair are totally ordered, which makes
    :func:`compare` a strict weak ordering over the records.
    """
    extractor = column_spec(column).sort_key
    return lambda record: extractor(record, resolve_names)


def compare(column: Column, resolve_names: bool, a: Any, b: Any) -> Ordering:
    key = sort_key(column, resolve_names)
    left, right = key(a), key(b)
    if left < right:
        return Ordering.LESS
    if right < left:
        return Ordering.GREATER
    return Ordering.EQUAL


def comparator(column: Column, resolve_names: bool) -> Callable[[Any, Any], Ordering]:
    return lambda a, b: compare(column, resolve_names, a, b)


def sorted_indices(
    records: Sequence[Any],
    column: Column,
    resolve_names: bool = False,
    *,
    descending: bool = False,
) -> List[int]:
    """Stable row order for ``records``; equal rows keep their store order."""
    key = sort_key(column, resolve_names)
    keys = [key(record) for record in records]
    return sorted(range(len(keys)), key=keys.__getitem__, reverse=descending)


__all__ = ["Ordering", "sort_key", "compare", "comparator", "sorted_indices"]
