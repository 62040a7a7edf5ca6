"""Instruction codes and the parser for textual instruction lines."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum

BLANK_PARAMETER = " " * 16
"""Placeholder stored for a parameter that the line does not supply."""

_PARAMETER_SLOTS = 3


class InstructionCode(IntEnum):
    """Every operation understood by the CPU, kernel and memory modules."""

    SET = 0
    MOV_IN = 1
    MOV_OUT = 2
    I_O = 3
    F_OPEN = 4
    F_CLOSE = 5
    F_SEEK = 6
    F_READ = 7
    F_WRITE = 8
    F_TRUNCATE = 9
    WAIT = 10
    SIGNAL = 11
    CREATE_SEGMENT = 12
    DELETE_SEGMENT = 13
    YIELD = 14
    EXIT = 15
    INICIAR = 16
    SEGMENT = 17
    OUT = 18
    COMPACT = 19
    FINALIZAR = 20
    F_CREATE = 21

    def label(self) -> str:
        """Return the display name of the code.

        ``I_O`` is shown as ``I/O``; codes without a display name of their
        own (``EXIT`` and ``F_CREATE``) are shown as ``EXIT``.
        """
        return _LABELS.get(self, "EXIT")


_LABELS = {
    code: code.name
    for code in InstructionCode
    if code not in (InstructionCode.EXIT, InstructionCode.F_CREATE)
}
_LABELS[InstructionCode.I_O] = "I/O"

_BY_NAME = {code.name: code for code in InstructionCode}
_BY_NAME["I/O"] = InstructionCode.I_O


def instruction_code(name: str) -> InstructionCode:
    """Map an instruction mnemonic, ignoring case, to its code.

    Unknown mnemonics map to ``InstructionCode.EXIT``.
    """
    return _BY_NAME.get(name.upper(), InstructionCode.EXIT)


@dataclass(frozen=True)
class Instruction:
    """A parsed instruction: its code and exactly three parameters."""

    code: InstructionCode
    parameters: tuple[str, str, str]


def parse_instruction(line: str) -> Instruction:
    """Parse a space separated instruction line.

    Up to three parameters are kept; missing ones are filled with a blank
    sixteen-character placeholder and extra ones are ignored.
    """
    mnemonic, *arguments = line.split(" ")
    kept = arguments[:_PARAMETER_SLOTS]
    kept += [BLANK_PARAMETER] * (_PARAMETER_SLOTS - len(kept))
    return Instruction(instruction_code(mnemonic), (kept[0], kept[1], kept[2]))