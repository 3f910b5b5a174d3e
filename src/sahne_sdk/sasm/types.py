"""
Sahne64 Type System
===================

A closed catalogue of primitive types used by every stage after parsing.

Supported Types
---------------
| Name     | Kind     | Signed | Size (bytes)  |
|----------|----------|--------|---------------|
| BYTE     | integer  | yes    | 1             |
| WORD     | integer  | yes    | 2             |
| DWORD    | integer  | yes    | 4             |
| QWORD    | integer  | yes    | 8             |
| USIZE    | integer  | no     | pointer width |
| PTR      | pointer  | no     | pointer width |
| STRING   | string   | -      | unsized       |
| HANDLE   | handle   | no     | pointer width |
| TASK_ID  | task-id  | no     | pointer width |

Strings have no compile-time size. Handles and task ids are kernel-assigned
values the size of a machine word.

Compatibility
-------------
is_assignable() answers "may a value of type A be used where type B is
expected?":

- equal types are compatible
- an integer is accepted where a wider-or-equal integer is expected
- word types (USIZE, PTR, HANDLE, TASK_ID and a pointer-width QWORD) are
  mutually accepted
"""

from dataclasses import dataclass
from enum import Enum, auto
from typing import Optional


# Default machine word size in bytes.
POINTER_WIDTH = 8


# =============================================================================
# Base Kinds
# =============================================================================

class BaseType(Enum):
    """Fundamental kind of a Sahne64 type."""
    INTEGER = auto()
    POINTER = auto()
    STRING = auto()
    HANDLE = auto()
    TASK_ID = auto()


class IntegerSize(Enum):
    """Integer widths; USIZE follows the target's pointer width."""
    BYTE = 1
    WORD = 2
    DWORD = 4
    QWORD = 8
    USIZE = 0


# =============================================================================
# Type Representation
# =============================================================================

@dataclass(frozen=True)
class Type:
    """
    A Sahne64 type. Equality is structural.

    Attributes:
        base: The fundamental kind
        signed: Signedness, meaningful for integers only
        int_size: Width of an integer type, None for the other kinds
    """
    base: BaseType
    signed: bool = False
    int_size: Optional[IntegerSize] = None

    @classmethod
    def integer(cls, signed: bool, size: IntegerSize) -> "Type":
        return cls(BaseType.INTEGER, signed, size)

    @property
    def name(self) -> str:
        """Source-level spelling of the type."""
        if self.base == BaseType.INTEGER:
            if self.signed or self.int_size == IntegerSize.USIZE:
                return self.int_size.name
            return f"U{self.int_size.name}"
        if self.base == BaseType.POINTER:
            return "PTR"
        return self.base.name

    def __str__(self) -> str:
        return self.name

    @property
    def is_integer(self) -> bool:
        return self.base == BaseType.INTEGER

    @property
    def is_string(self) -> bool:
        return self.base == BaseType.STRING

    def size(self, pointer_width: int = POINTER_WIDTH) -> Optional[int]:
        """
        Size in bytes, or None for STRING whose size is dynamic.

        Args:
            pointer_width: Target machine word size in bytes
        """
        if self.base == BaseType.INTEGER:
            if self.int_size == IntegerSize.USIZE:
                return pointer_width
            return self.int_size.value
        if self.base == BaseType.STRING:
            return None
        return pointer_width

    def is_word(self, pointer_width: int = POINTER_WIDTH) -> bool:
        """True for pointer-width values: USIZE, PTR, HANDLE, TASK_ID, wide integers."""
        if self.base in (BaseType.POINTER, BaseType.HANDLE, BaseType.TASK_ID):
            return True
        return self.is_integer and self.size(pointer_width) == pointer_width

    def value_range(self, pointer_width: int = POINTER_WIDTH) -> Optional[tuple[int, int]]:
        """
        Inclusive (min, max) for integer literals stored in this type.

        Pointers hold unsigned word values. Strings, handles and task ids
        cannot be written as integer literals and return None.
        """
        if self.base == BaseType.INTEGER:
            bits = self.size(pointer_width) * 8
            if self.signed:
                return -(1 << (bits - 1)), (1 << (bits - 1)) - 1
            return 0, (1 << bits) - 1
        if self.base == BaseType.POINTER:
            return 0, (1 << (pointer_width * 8)) - 1
        return None


# =============================================================================
# Type Constants
# =============================================================================

TYPE_BYTE = Type.integer(True, IntegerSize.BYTE)
TYPE_WORD = Type.integer(True, IntegerSize.WORD)
TYPE_DWORD = Type.integer(True, IntegerSize.DWORD)
TYPE_QWORD = Type.integer(True, IntegerSize.QWORD)
TYPE_USIZE = Type.integer(False, IntegerSize.USIZE)
TYPE_POINTER = Type(BaseType.POINTER)
TYPE_STRING = Type(BaseType.STRING)
TYPE_HANDLE = Type(BaseType.HANDLE)
TYPE_TASK_ID = Type(BaseType.TASK_ID)

# Source-level type names accepted by VAR.
TYPE_NAMES: dict[str, Type] = {
    "BYTE": TYPE_BYTE,
    "WORD": TYPE_WORD,
    "DWORD": TYPE_DWORD,
    "QWORD": TYPE_QWORD,
    "USIZE": TYPE_USIZE,
    "PTR": TYPE_POINTER,
    "STRING": TYPE_STRING,
    "HANDLE": TYPE_HANDLE,
    "TASK_ID": TYPE_TASK_ID,
}


def resolve_type_name(name: str) -> Optional[Type]:
    """Return the type for a source-level type name, or None if unknown."""
    return TYPE_NAMES.get(name)


# =============================================================================
# Compatibility Rules
# =============================================================================

def is_assignable(expected: Type, actual: Type, pointer_width: int = POINTER_WIDTH) -> bool:
    """Return True if a value of type actual may be used where expected is required."""
    if expected == actual:
        return True

    if expected.is_word(pointer_width) and actual.is_word(pointer_width):
        return True

    if expected.is_integer and actual.is_integer:
        return actual.size(pointer_width) <= expected.size(pointer_width)

    return False


def literal_fits(expected: Type, value: int, pointer_width: int = POINTER_WIDTH) -> bool:
    """Return True if integer literal value can be stored in type expected."""
    bounds = expected.value_range(pointer_width)
    if bounds is None:
        return False
    low, high = bounds
    return low <= value <= high


def default_integer_type(value: int) -> Type:
    """Type given to an untyped variable first assigned the literal value."""
    for candidate in (TYPE_DWORD, TYPE_QWORD):
        if literal_fits(candidate, value):
            return candidate
    return TYPE_USIZE
