"""Append-only record storage owned by a statistics table."""

from __future__ import annotations

from typing import Generic, Iterator, List, NamedTuple, TypeVar, Union

from .errors import InvariantViolation

R = TypeVar("R")


class RecordHandle(NamedTuple):
    """Stable reference to a stored record, valid until the next reset."""

    index: int
    generation: int


class RecordStore(Generic[R]):
    """Growable record array; records are only appended or replaced in place.

    Handles carry the store generation so a handle issued before
    :meth:`reset` is detected instead of silently pointing at a new record.
    """

    __slots__ = ("_records", "_generation")

    def __init__(self) -> None:
        self._records: List[R] = []
        self._generation = 0

    # ------------------------------------------------------------------
    def append(self, record: R) -> RecordHandle:
        self._records.append(record)
        return RecordHandle(len(self._records) - 1, self._generation)

    def get(self, handle: Union[RecordHandle, int]) -> R:
        index = self._check(handle)
        return self._records[index]

    def replace(self, handle: Union[RecordHandle, int], record: R) -> R:
        """Swap in an updated version of the record; returns the previous one."""
        index = self._check(handle)
        previous = self._records[index]
        self._records[index] = record
        return previous

    def handle(self, index: int) -> RecordHandle:
        self._check(index)
        return RecordHandle(index, self._generation)

    def reset(self) -> None:
        self._records = []
        self._generation += 1

    # ------------------------------------------------------------------
    @property
    def generation(self) -> int:
        return self._generation

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[R]:
        return iter(list(self._records))

    def __getitem__(self, index: int) -> R:
        return self.get(index)

    # ------------------------------------------------------------------
    def _check(self, handle: Union[RecordHandle, int]) -> int:
        if isinstance(handle, RecordHandle):
            if handle.generation != self._generation:
                raise InvariantViolation(
                    f"record handle {handle.index} was issued before a reset "
                    f"(generation {handle.generation}, current {self._generation})"
                )
            index = handle.index
        else:
            index = int(handle)
        if not 0 <= index < len(self._records):
            raise InvariantViolation(
                f"record index {index} out of range for {len(self._records)} records"
            )
        return index


__all__ = ["RecordHandle", "RecordStore"]
