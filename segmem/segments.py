"""Segmented physical memory: segment tables, free holes and compaction."""

from __future__ import annotations

import logging
from bisect import insort

from segmem.model import AllocationAlgorithm, Segment, SegmentTable

_LOG = logging.getLogger(__name__)


class OutOfMemoryError(Exception):
    """There is not enough free memory in total for the request."""


class CompactionNeeded(Exception):
    """Enough memory is free, but no single hole can hold the request."""


def format_address(address: int) -> str:
    """Format a memory address as hexadecimal text, e.g. ``0x1f``."""
    return f"{address:#x}"


class SegmentManager:
    """Owns physical memory, the per-process segment tables and the hole list."""

    def __init__(
        self,
        memory_size: int,
        segment_zero_size: int,
        segment_count: int,
        algorithm: AllocationAlgorithm = AllocationAlgorithm.FIRST,
    ) -> None:
        if memory_size < 0 or segment_zero_size < 0:
            raise ValueError("sizes cannot be negative")
        if segment_count < 1:
            raise ValueError("a table holds at least segment zero")
        self.memory_size = memory_size
        self.memory = bytearray(memory_size)
        self.segment_count = segment_count
        self.algorithm = AllocationAlgorithm(algorithm)
        self.free_memory = memory_size
        self.tables: list[SegmentTable] = []
        self.holes: list[Segment] = [Segment(0, memory_size)]
        base = self.choose_hole(segment_zero_size)
        self.segment_zero = Segment(base, base + segment_zero_size, free=False)
        self.free_memory -= segment_zero_size

    # -- tables ---------------------------------------------------------

    def create_table(self, pid: int) -> SegmentTable:
        """Create the table of a new process, sharing segment zero."""
        table = SegmentTable(pid, [self.segment_zero])
        table.segments.extend(
            Segment(None, None, id=index, pid=pid, free=True)
            for index in range(1, self.segment_count)
        )
        self.tables.append(table)
        _LOG.info("Process created PID: %d", pid)
        return table

    def find_table(self, pid: int) -> SegmentTable | None:
        """Return the table of ``pid``, or None when there is none."""
        return next((table for table in self.tables if table.pid == pid), None)

    def index_of_table(self, pid: int) -> int | None:
        """Return the position of the table of ``pid``, or None."""
        return next(
            (index for index, table in enumerate(self.tables) if table.pid == pid),
            None,
        )

    def _table(self, pid: int) -> SegmentTable:
        table = self.find_table(pid)
        if table is None:
            raise KeyError(f"no segment table for PID {pid}")
        return table

    # -- hole selection ---------------------------------------------------

    def first_fit(self, size: int) -> int | None:
        """Take ``size`` bytes from the first hole that can hold them."""
        for index, hole in enumerate(self.holes):
            if size < hole.size():
                base = hole.base
                hole.base += size
                return base
            if size == hole.size():
                del self.holes[index]
                return hole.base
        return None

    def best_fit(self, size: int) -> int | None:
        """Take ``size`` bytes from the hole that leaves the least over."""
        best: Segment | None = None
        for index, hole in enumerate(self.holes):
            waste = hole.size() - size
            if waste == 0:
                del self.holes[index]
                return hole.base
            if waste > 0 and (best is None or waste < best.size() - size):
                best = hole
        if best is None:
            return None
        base = best.base
        best.base += size
        return base

    def worst_fit(self, size: int) -> int | None:
        """Take ``size`` bytes from the hole that leaves the most over."""
        worst_index: int | None = None
        largest_waste = -1
        for index, hole in enumerate(self.holes):
            waste = hole.size() - size
            if waste >= 0 and waste > largest_waste:
                worst_index, largest_waste = index, waste
        if worst_index is None:
            return None
        hole = self.holes[worst_index]
        base = hole.base
        if largest_waste == 0:
            del self.holes[worst_index]
        else:
            hole.base += size
        return base

    def choose_hole(self, size: int) -> int:
        """Take ``size`` bytes with the configured algorithm and return their base.

        Raises OutOfMemoryError when too little memory is free in total and
        CompactionNeeded when no single hole is large enough.
        """
        if size > self.free_memory:
            raise OutOfMemoryError(f"{size} bytes requested, {self.free_memory} free")
        strategies = {
            AllocationAlgorithm.FIRST: self.first_fit,
            AllocationAlgorithm.BEST: self.best_fit,
            AllocationAlgorithm.WORST: self.worst_fit,
        }
        base = strategies[self.algorithm](size)
        if base is None:
            raise CompactionNeeded(f"no hole holds {size} bytes")
        return base

    # -- segments ---------------------------------------------------------

    def allocate_segment(self, pid: int, segment_id: int, size: int) -> int:
        """Place segment ``segment_id`` of ``pid`` in memory and return its base."""
        table = self._table(pid)
        segment = table.segments[segment_id]
        base = self.choose_hole(size)
        segment.base = base
        segment.limit = base + size
        segment.free = False
        self.free_memory -= size
        return base

    def delete_segment(self, segment: Segment) -> None:
        """Release a segment: its memory becomes a hole and it is unplaced."""
        self.free_memory += segment.size()
        hole = Segment(segment.base, segment.limit)
        segment.base = None
        segment.limit = None
        segment.free = True
        self.insert_hole(hole)

    def finish_segment(self, segment: Segment) -> None:
        """Return the memory of a used segment to the hole list."""
        if not segment.free:
            self.free_memory += segment.size()
            self.insert_hole(Segment(segment.base, segment.limit))

    def delete_table(self, table: SegmentTable) -> None:
        """Release every segment of ``table`` except the shared segment zero."""
        for segment in table.segments[1:self.segment_count]:
            self.finish_segment(segment)

    def remove_process(self, pid: int) -> SegmentTable:
        """Release the memory of ``pid`` and drop its table."""
        table = self._table(pid)
        self.delete_table(table)
        self.tables.remove(table)
        return table

    # -- holes ------------------------------------------------------------

    def insert_hole(self, hole: Segment) -> None:
        """Insert ``hole`` in address order and merge adjacent holes."""
        insort(self.holes, hole, key=lambda item: item.base)
        self.merge_holes()

    def merge_holes(self) -> None:
        """Join holes where one ends exactly where the next begins."""
        merged: list[Segment] = []
        for hole in self.holes:
            if merged and merged[-1].limit == hole.base:
                merged[-1].limit = hole.limit
            else:
                merged.append(hole)
        self.holes = merged

    def compact(self) -> None:
        """Move every used segment down to close the gaps between them.

        Contents move with their segments; the free space ends up as one
        hole at the top of memory.
        """
        used = [self.segment_zero]
        used.extend(
            segment
            for table in self.tables
            for segment in table.segments[1:]
            if not segment.free
        )
        used.sort(key=lambda segment: segment.base)
        end = used[0].limit
        for segment in used[1:]:
            size = segment.size()
            if segment.base != end:
                data = bytes(self.memory[segment.base:segment.limit])
                segment.base = end
                segment.limit = end + size
                self.memory[segment.base:segment.limit] = data
            end = segment.limit
        self.holes = [Segment(end, self.memory_size)]

    # -- memory access ----------------------------------------------------

    def _check_range(self, address: int, size: int) -> None:
        if address < 0 or size < 0 or address + size > self.memory_size:
            raise IndexError(
                f"access of {size} bytes at {format_address(address)} is outside memory"
            )

    def read(self, address: int, size: int) -> bytes:
        """Return ``size`` bytes of memory starting at ``address``."""
        self._check_range(address, size)
        return bytes(self.memory[address:address + size])

    def write(self, address: int, data: bytes) -> None:
        """Store ``data`` in memory starting at ``address``."""
        self._check_range(address, len(data))
        self.memory[address:address + len(data)] = data