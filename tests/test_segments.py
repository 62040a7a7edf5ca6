import pytest

from segmem.model import AllocationAlgorithm
from segmem.segments import (
    CompactionNeeded,
    OutOfMemoryError,
    SegmentManager,
    format_address,
)

MEMORY = 100
ZERO = 10
COUNT = 4


def _manager(algorithm=AllocationAlgorithm.FIRST):
    return SegmentManager(MEMORY, ZERO, COUNT, algorithm)


def _holes_account_for_free_memory(manager):
    return sum(hole.size() for hole in manager.holes) == manager.free_memory


def test_segment_zero_placed_at_start():
    manager = _manager()
    assert manager.segment_zero.base == 0
    assert manager.segment_zero.limit == ZERO
    assert manager.free_memory == MEMORY - ZERO
    assert _holes_account_for_free_memory(manager)


def test_create_table_shares_segment_zero():
    manager = _manager()
    first = manager.create_table(1)
    second = manager.create_table(2)
    assert len(first.segments) == COUNT
    assert first.segments[0] is manager.segment_zero
    assert second.segments[0] is manager.segment_zero
    assert all(segment.free and segment.base is None for segment in first.segments[1:])
    assert [segment.id for segment in first.segments[1:]] == [1, 2, 3]


def test_find_table_and_index():
    manager = _manager()
    manager.create_table(7)
    table = manager.create_table(9)
    assert manager.find_table(9) is table
    assert manager.index_of_table(9) == 1
    assert manager.find_table(3) is None
    assert manager.index_of_table(3) is None


def test_allocate_segment_takes_memory():
    manager = _manager()
    table = manager.create_table(1)
    base = manager.allocate_segment(1, 1, 20)
    assert base == ZERO
    segment = table.segments[1]
    assert not segment.free
    assert segment.size() == 20
    assert manager.free_memory == MEMORY - ZERO - 20
    assert _holes_account_for_free_memory(manager)


def test_allocate_more_than_free_raises_out_of_memory():
    manager = _manager()
    manager.create_table(1)
    with pytest.raises(OutOfMemoryError):
        manager.allocate_segment(1, 1, MEMORY)


def test_allocate_for_unknown_process_raises():
    manager = _manager()
    with pytest.raises(KeyError):
        manager.allocate_segment(5, 1, 10)


def _scattered(algorithm=AllocationAlgorithm.FIRST):
    manager = _manager(algorithm)
    table = manager.create_table(1)
    manager.allocate_segment(1, 1, 30)
    manager.allocate_segment(1, 2, 30)
    manager.delete_segment(table.segments[1])
    return manager, table


def test_fragmented_memory_needs_compaction():
    manager, _ = _scattered()
    assert len(manager.holes) == 2
    with pytest.raises(CompactionNeeded):
        manager.allocate_segment(1, 3, 50)


def test_delete_segment_merges_adjacent_holes():
    manager, table = _scattered()
    manager.delete_segment(table.segments[2])
    assert len(manager.holes) == 1
    assert manager.holes[0].base == ZERO
    assert manager.holes[0].limit == MEMORY
    assert table.segments[2].free and table.segments[2].base is None
    assert _holes_account_for_free_memory(manager)


def test_compact_moves_data_and_leaves_one_hole():
    manager, table = _scattered()
    moved = table.segments[2]
    manager.write(moved.base, b"hello")
    manager.compact()
    assert moved.base == manager.segment_zero.limit
    assert manager.read(moved.base, 5) == b"hello"
    assert len(manager.holes) == 1
    assert manager.holes[0].base == moved.limit
    assert manager.holes[0].limit == MEMORY
    assert _holes_account_for_free_memory(manager)
    assert manager.allocate_segment(1, 3, 50) == moved.limit


def _three_holes():
    # holes of sizes 20, 30 and 25, in that address order
    manager = _manager()
    table = manager.create_table(1)
    manager.allocate_segment(1, 1, 20)
    manager.allocate_segment(1, 2, 10)
    manager.allocate_segment(1, 3, 30)
    other = manager.create_table(2)
    manager.allocate_segment(2, 1, 5)
    manager.delete_segment(table.segments[1])
    manager.delete_segment(table.segments[3])
    return manager, other


def test_first_fit_picks_first_hole_that_fits():
    manager, _ = _three_holes()
    sizes = [hole.size() for hole in manager.holes]
    base = manager.first_fit(22)
    assert base == manager.holes[1].base - 22
    assert sizes[0] == manager.holes[0].size()


def test_best_fit_picks_smallest_hole():
    manager, _ = _three_holes()
    smallest = min(manager.holes, key=lambda hole: hole.size())
    start = smallest.base
    assert manager.best_fit(18) == start


def test_worst_fit_picks_largest_hole():
    manager, _ = _three_holes()
    largest = max(manager.holes, key=lambda hole: hole.size())
    start = largest.base
    assert manager.worst_fit(18) == start


def test_remove_process_returns_memory():
    manager = _manager()
    manager.create_table(1)
    manager.allocate_segment(1, 1, 20)
    manager.allocate_segment(1, 2, 15)
    removed = manager.remove_process(1)
    assert removed.pid == 1
    assert manager.tables == []
    assert manager.free_memory == MEMORY - ZERO
    assert len(manager.holes) == 1
    assert _holes_account_for_free_memory(manager)


def test_remove_unknown_process_raises():
    with pytest.raises(KeyError):
        _manager().remove_process(42)


def test_read_write_round_trip_and_bounds():
    manager = _manager()
    manager.write(40, b"\x01\x02\x03")
    assert manager.read(40, 3) == b"\x01\x02\x03"
    with pytest.raises(IndexError):
        manager.read(MEMORY - 1, 2)
    with pytest.raises(IndexError):
        manager.write(-1, b"x")


def test_format_address_round_trips_through_hex():
    assert format_address(255) == "0xff"
    assert int(format_address(4096), 16) == 4096


def test_invalid_segment_count_rejected():
    with pytest.raises(ValueError):
        SegmentManager(MEMORY, ZERO, 0)