"""Occupancy bitmap over physical memory, one entry per byte."""

from __future__ import annotations

from itertools import groupby
from typing import Iterator


class MemoryBitmap:
    """Tracks which bytes of memory are occupied and finds free runs."""

    def __init__(self, size: int) -> None:
        if size < 0:
            raise ValueError("bitmap size cannot be negative")
        self.size = size
        self._bits = bytearray(size)

    def __len__(self) -> int:
        return self.size

    def __getitem__(self, index: int) -> bool:
        return bool(self._bits[index])

    def _check_range(self, start: int, count: int) -> None:
        if start < 0 or count < 0 or start + count > self.size:
            raise IndexError(
                f"range {start}..{start + count} lies outside a bitmap of {self.size}"
            )

    def is_free(self, start: int, count: int) -> bool:
        """Return whether every position in the range is free."""
        self._check_range(start, count)
        return not any(self._bits[start:start + count])

    def occupy(self, start: int, count: int) -> bool:
        """Mark the range as occupied if it is entirely free.

        Returns whether the range was taken; an occupied range is left alone.
        """
        if not self.is_free(start, count):
            return False
        self._bits[start:start + count] = b"\x01" * count
        return True

    def release(self, start: int, count: int) -> None:
        """Mark the range as free."""
        self._check_range(start, count)
        self._bits[start:start + count] = bytes(count)

    def _free_runs(self) -> Iterator[tuple[int, int]]:
        """Yield ``(start, length)`` for each maximal run of free positions."""
        for used, run in groupby(enumerate(self._bits), key=lambda pair: pair[1]):
            if not used:
                positions = [index for index, _ in run]
                yield positions[0], len(positions)

    def first_fit(self, size: int) -> int | None:
        """Return the start of the first free run of at least ``size``."""
        return next(
            (start for start, length in self._free_runs() if length >= size), None
        )

    def best_fit(self, size: int) -> int | None:
        """Return the start of the smallest free run of at least ``size``."""
        fitting = [run for run in self._free_runs() if run[1] >= size]
        if not fitting:
            return None
        return min(fitting, key=lambda run: run[1])[0]

    def worst_fit(self, size: int) -> int | None:
        """Return the start of the largest free run of at least ``size``."""
        fitting = [run for run in self._free_runs() if run[1] >= size]
        if not fitting:
            return None
        return max(fitting, key=lambda run: run[1])[0]