"""Data shared between the modules: processes, registers, segments, resources."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from enum import IntEnum
from typing import ClassVar, Iterator


class OpCode(IntEnum):
    """Operation code that heads every packet on the wire."""

    MESSAGE = 0
    PACKAGE = 1
    PCB = 2
    INSTRUCTION = 3


class State(IntEnum):
    """Scheduling state of a process."""

    NEW = 0
    READY = 1
    EXEC = 2
    BLOCKED = 3
    EXIT = 4
    ERROR = 5

    def label(self) -> str:
        """Return the upper-case display name of the state."""
        return self.name


class AllocationAlgorithm(IntEnum):
    """Strategy used to choose a free hole for a new segment."""

    FIRST = 0
    BEST = 1
    WORST = 2

    @classmethod
    def from_name(cls, name: str) -> "AllocationAlgorithm":
        """Parse ``FIRST`` or ``BEST`` ignoring case; anything else is ``WORST``."""
        upper = name.upper()
        if upper == "FIRST":
            return cls.FIRST
        if upper == "BEST":
            return cls.BEST
        return cls.WORST


@dataclass
class Registers:
    """CPU registers, each a fixed-width character field."""

    WIDTHS: ClassVar[dict[str, int]] = {
        "ax": 4, "bx": 4, "cx": 4, "dx": 4,
        "eax": 8, "ebx": 8, "ecx": 8, "edx": 8,
        "rax": 16, "rbx": 16, "rcx": 16, "rdx": 16,
    }

    ax: str
    bx: str
    cx: str
    dx: str
    eax: str
    ebx: str
    ecx: str
    edx: str
    rax: str
    rbx: str
    rcx: str
    rdx: str

    def __post_init__(self) -> None:
        for item in fields(self):
            value = getattr(self, item.name)
            width = self.WIDTHS[item.name]
            if len(value) > width:
                raise ValueError(
                    f"register {item.name.upper()} holds at most {width} characters"
                )

    @classmethod
    def blank(cls) -> "Registers":
        """Return registers with every field filled with spaces."""
        return cls(**{name: " " * width for name, width in cls.WIDTHS.items()})

    def items(self) -> Iterator[tuple[str, str]]:
        """Yield ``(name, value)`` pairs in wire order."""
        for name in self.WIDTHS:
            yield name, getattr(self, name)


@dataclass
class Segment:
    """A segment or free hole, addressed by offsets into physical memory."""

    base: int | None
    limit: int | None
    id: int = 0
    pid: int = 0
    free: bool = True

    def size(self) -> int:
        """Return the number of bytes the segment spans; 0 when it is unplaced."""
        if self.base is None or self.limit is None:
            return 0
        return self.limit - self.base


@dataclass
class SegmentTable:
    """The segments that belong to one process."""

    pid: int
    segments: list[Segment] = field(default_factory=list)

    def used_segments(self) -> Iterator[Segment]:
        """Yield the segments that are in use."""
        return (segment for segment in self.segments if not segment.free)


@dataclass
class Pcb:
    """Process control block kept by the kernel."""

    pid: int
    instructions: list[str]
    program_counter: int = 0
    registers: Registers = field(default_factory=Registers.blank)
    segment_table: SegmentTable | None = None
    burst_estimate: int = 0
    ready_since: int = 0
    cpu_arrival: int = 0
    file_table: list = field(default_factory=list)
    resources: list = field(default_factory=list)
    state: State = State.NEW

    def __post_init__(self) -> None:
        if self.segment_table is None:
            self.segment_table = SegmentTable(self.pid)

    @classmethod
    def create(cls, pid: int, instructions: list[str], estimate: int) -> "Pcb":
        """Create a new process in state NEW with blank registers."""
        return cls(pid=pid, instructions=instructions, burst_estimate=estimate)


@dataclass
class ExecutionContext:
    """The part of a process that travels to the CPU."""

    pid: int
    instructions: list[str]
    program_counter: int
    registers: Registers
    segment_table: SegmentTable


@dataclass
class Resource:
    """A counted resource and the processes blocked on it."""

    name: str
    count: int
    blocked: list = field(default_factory=list)