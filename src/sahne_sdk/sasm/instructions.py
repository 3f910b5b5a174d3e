"""
Sahne64 Target Instructions
===========================

Structured form of the compiler output. Operands keep their kind until
render() turns them into text, so the linker can substitute a symbol
reference without touching labels, strings, or names that merely contain
the symbol's spelling.

Text Form
---------
    main:                   label
    SYS_CALL 1              kernel service number
    ARG 1024                call argument
    RES handle1             call result target
    MOV [4096], 42          move (static address in brackets, decimal)
    JUMP loop               unconditional jump
    ADD x, 1                any other opcode with its operands
"""

from dataclasses import dataclass, replace
from enum import Enum, auto
from typing import Callable, Iterable, Optional, Union

from sahne_sdk.errors import SourceLocation


class OperandKind(Enum):
    SYMBOL = auto()      # reference the linker may resolve
    IMMEDIATE = auto()   # integer constant
    STRING = auto()      # quoted string constant
    FLAG = auto()        # ZF, CF, SF, OF
    STATIC = auto()      # static memory address
    NAME = auto()        # definition name, never resolved


@dataclass(frozen=True)
class Operand:
    """
    A typed output operand.

    Attributes:
        kind: Operand kind
        value: Name for SYMBOL, FLAG and NAME; text for STRING; integer for
            IMMEDIATE and STATIC
    """
    kind: OperandKind
    value: Union[int, str]

    @classmethod
    def symbol(cls, name: str) -> "Operand":
        return cls(OperandKind.SYMBOL, name)

    @classmethod
    def immediate(cls, value: int) -> "Operand":
        return cls(OperandKind.IMMEDIATE, value)

    @classmethod
    def string(cls, text: str) -> "Operand":
        return cls(OperandKind.STRING, text)

    @classmethod
    def flag(cls, name: str) -> "Operand":
        return cls(OperandKind.FLAG, name)

    @classmethod
    def static(cls, address: int) -> "Operand":
        return cls(OperandKind.STATIC, address)

    @classmethod
    def name(cls, name: str) -> "Operand":
        return cls(OperandKind.NAME, name)

    def render(self) -> str:
        if self.kind == OperandKind.STRING:
            return f'"{self.value}"'
        if self.kind == OperandKind.STATIC:
            return f"[{self.value}]"
        return str(self.value)


# Pseudo-opcode for label definitions.
LABEL = "LABEL"


@dataclass(frozen=True)
class TargetInstruction:
    """
    One output line.

    Attributes:
        opcode: SYS_CALL, ARG, RES, MOV, JUMP, LABEL or a generic opcode
        operands: Typed operands
        location: Source statement this line was generated from
    """
    opcode: str
    operands: tuple[Operand, ...] = ()
    location: Optional[SourceLocation] = None

    # -------------------------------------------------------------------------
    # Constructors
    # -------------------------------------------------------------------------

    @classmethod
    def label(cls, name: str, location: Optional[SourceLocation] = None) -> "TargetInstruction":
        return cls(LABEL, (Operand.name(name),), location)

    @classmethod
    def sys_call(cls, number: int, location: Optional[SourceLocation] = None) -> "TargetInstruction":
        return cls("SYS_CALL", (Operand.immediate(number),), location)

    @classmethod
    def arg(cls, operand: Operand, location: Optional[SourceLocation] = None) -> "TargetInstruction":
        return cls("ARG", (operand,), location)

    @classmethod
    def res(cls, target: str, location: Optional[SourceLocation] = None) -> "TargetInstruction":
        return cls("RES", (Operand.name(target),), location)

    @classmethod
    def mov(cls, dest: Operand, src: Operand, location: Optional[SourceLocation] = None) -> "TargetInstruction":
        return cls("MOV", (dest, src), location)

    @classmethod
    def jump(cls, target: str, location: Optional[SourceLocation] = None) -> "TargetInstruction":
        return cls("JUMP", (Operand.name(target),), location)

    # -------------------------------------------------------------------------
    # Queries and Transformation
    # -------------------------------------------------------------------------

    @property
    def is_label(self) -> bool:
        return self.opcode == LABEL

    def symbols(self) -> list[str]:
        """Names referenced through SYMBOL operands."""
        return [op.value for op in self.operands if op.kind == OperandKind.SYMBOL]

    def map_operands(self, fn: Callable[[Operand], Operand]) -> "TargetInstruction":
        """Return a copy with fn applied to every operand."""
        operands = tuple(fn(op) for op in self.operands)
        if operands == self.operands:
            return self
        return replace(self, operands=operands)

    def render(self) -> str:
        if self.is_label:
            return f"{self.operands[0].render()}:"
        if not self.operands:
            return self.opcode
        return f"{self.opcode} " + ", ".join(op.render() for op in self.operands)

    def __str__(self) -> str:
        return self.render()


def render_program(instructions: Iterable[TargetInstruction]) -> str:
    """Serialize instructions one per line, with a trailing newline."""
    lines = [instr.render() for instr in instructions]
    if not lines:
        return ""
    return "\n".join(lines) + "\n"
