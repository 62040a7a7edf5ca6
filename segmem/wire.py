"""Binary packet format shared by the modules, with (de)serialisers for its payloads."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from typing import Iterable

from segmem.model import (
    ExecutionContext,
    OpCode,
    Pcb,
    Registers,
    Segment,
    SegmentTable,
)

_UINT32 = struct.Struct("<I")
_ADDRESS = struct.Struct("<Q")
_HEADER = struct.Struct("<II")

NULL_ADDRESS = 0xFFFF_FFFF_FFFF_FFFF
"""Address written on the wire for a segment that has no place in memory."""

HEADER_SIZE = _HEADER.size
"""Bytes taken by the op code and payload size in front of every packet."""


def _text(raw: bytes) -> str:
    """Decode a C-style string: everything up to the first NUL byte."""
    return raw.split(b"\0", 1)[0].decode("utf-8", errors="replace")


def _op_code(value: int) -> int:
    try:
        return OpCode(value)
    except ValueError:
        return value


@dataclass
class Packet:
    """An op code with a payload that grows as values are appended."""

    op_code: int = OpCode.PACKAGE
    payload: bytearray = field(default_factory=bytearray)

    def add_value(self, data: bytes) -> None:
        """Append ``data`` preceded by its length."""
        self.payload += _UINT32.pack(len(data))
        self.payload += data

    def add_raw(self, data: bytes) -> None:
        """Append ``data`` as it is, without a length prefix."""
        self.payload += data

    def to_bytes(self) -> bytes:
        """Return the packet as sent: op code, payload size, payload."""
        return _HEADER.pack(int(self.op_code), len(self.payload)) + bytes(self.payload)

    @classmethod
    def from_bytes(cls, data: bytes) -> "Packet":
        """Parse one complete packet; the data must hold exactly one."""
        if len(data) < HEADER_SIZE:
            raise ValueError("packet is shorter than its header")
        op_code, size = _HEADER.unpack_from(data)
        payload = data[HEADER_SIZE:]
        if len(payload) != size:
            raise ValueError(
                f"packet announces {size} payload bytes but carries {len(payload)}"
            )
        return cls(_op_code(op_code), bytearray(payload))


class Reader:
    """Sequential reader over a payload."""

    def __init__(self, data: bytes) -> None:
        self.data = bytes(data)
        self.offset = 0

    def read_bytes(self, size: int) -> bytes:
        """Return the next ``size`` bytes."""
        end = self.offset + size
        if size < 0 or end > len(self.data):
            raise ValueError(
                f"cannot read {size} bytes at offset {self.offset} of {len(self.data)}"
            )
        chunk = self.data[self.offset:end]
        self.offset = end
        return chunk

    def read_uint32(self) -> int:
        """Return the next unsigned 32-bit integer."""
        return _UINT32.unpack(self.read_bytes(_UINT32.size))[0]

    def read_bool(self) -> bool:
        """Return the next one-byte boolean."""
        return self.read_bytes(1) != b"\0"

    def read_string(self) -> str:
        """Return the next length-prefixed string."""
        return _text(self.read_bytes(self.read_uint32()))

    def _read_address(self) -> int | None:
        value = _ADDRESS.unpack(self.read_bytes(_ADDRESS.size))[0]
        return None if value == NULL_ADDRESS else value


def message_packet(text: str, op_code: int = OpCode.MESSAGE) -> Packet:
    """Build a packet whose payload is ``text`` followed by a NUL byte."""
    return Packet(op_code, bytearray(text.encode("utf-8") + b"\0"))


def serialize_registers(packet: Packet, registers: Registers) -> None:
    """Append every register as a fixed-width field, padded with NUL bytes."""
    for name, value in registers.items():
        width = Registers.WIDTHS[name]
        raw = value.encode("utf-8")
        if len(raw) > width:
            raise ValueError(f"register {name.upper()} does not fit in {width} bytes")
        packet.add_raw(raw.ljust(width, b"\0"))


def _serialize_instructions(packet: Packet, instructions: Iterable[str]) -> None:
    lines = list(instructions)
    packet.add_raw(_UINT32.pack(len(lines)))
    for line in lines:
        packet.add_value(line.encode("utf-8") + b"\0")


def _address(value: int | None) -> bytes:
    return _ADDRESS.pack(NULL_ADDRESS if value is None else value)


def _serialize_segment_entries(packet: Packet, pid: int, segments: list[Segment]) -> None:
    packet.add_raw(_UINT32.pack(pid))
    packet.add_raw(_UINT32.pack(len(segments)))
    for segment in segments:
        packet.add_raw(_address(segment.base))
        packet.add_raw(_address(segment.limit))


def serialize_pcb(pcb: Pcb) -> Packet:
    """Serialise the parts of a process that the CPU needs."""
    packet = Packet()
    packet.add_raw(_UINT32.pack(pcb.pid))
    _serialize_instructions(packet, pcb.instructions)
    packet.add_raw(_UINT32.pack(pcb.program_counter))
    serialize_registers(packet, pcb.registers)
    _serialize_segment_entries(packet, pcb.pid, pcb.segment_table.segments)
    return packet


def serialize_context(context: ExecutionContext) -> Packet:
    """Serialise the program counter and registers of an execution context."""
    packet = Packet()
    packet.add_raw(_UINT32.pack(context.program_counter))
    serialize_registers(packet, context.registers)
    return packet


def serialize_segments(table: SegmentTable) -> Packet:
    """Serialise a segment table: pid, count, then base and limit of each segment."""
    packet = Packet()
    _serialize_segment_entries(packet, table.pid, table.segments)
    return packet


def deserialize_registers(reader: Reader) -> Registers:
    """Read the twelve fixed-width registers."""
    values = {name: _text(reader.read_bytes(width)) for name, width in Registers.WIDTHS.items()}
    return Registers(**values)


def deserialize_instructions(reader: Reader) -> list[str]:
    """Read a counted list of length-prefixed instruction lines."""
    count = reader.read_uint32()
    lines = []
    for _ in range(count):
        raw = reader.read_bytes(reader.read_uint32())
        lines.append(_text(raw[:-1]))
    return lines


def deserialize_segments(reader: Reader) -> SegmentTable:
    """Read a segment table; a segment without a base is free."""
    pid = reader.read_uint32()
    count = reader.read_uint32()
    table = SegmentTable(pid)
    for segment_id in range(count):
        base = reader._read_address()
        limit = reader._read_address()
        table.segments.append(
            Segment(base=base, limit=limit, id=segment_id, pid=pid, free=base is None)
        )
    return table


def deserialize_reason(reader: Reader) -> str:
    """Read a length-prefixed reason string."""
    return reader.read_string()


def deserialize_pcb(data: bytes) -> tuple[ExecutionContext, int]:
    """Read an execution context; return it with the number of bytes consumed."""
    reader = Reader(data)
    pid = reader.read_uint32()
    instructions = deserialize_instructions(reader)
    program_counter = reader.read_uint32()
    registers = deserialize_registers(reader)
    table = deserialize_segments(reader)
    context = ExecutionContext(pid, instructions, program_counter, registers, table)
    return context, reader.offset


def deserialize_context(data: bytes, pcb: Pcb) -> int:
    """Update ``pcb`` with the program counter and registers in ``data``.

    Returns the number of bytes consumed.
    """
    reader = Reader(data)
    pcb.program_counter = reader.read_uint32()
    pcb.registers = deserialize_registers(reader)
    return reader.offset