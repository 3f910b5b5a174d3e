"""
Sahne64 Memory Layout
=====================

Two-section compile-time memory model:

- STATIC: global variables get fixed addresses, assigned by a cursor that
  starts at the static base and only moves forward. Statics are never
  freed and never moved, so an address handed out stays valid for the rest
  of the compilation.
- HANDLE: handles and task ids are kernel-assigned at run time. They get a
  symbolic reservation only (address 0, pointer-width size) so that double
  declaration and double release can be caught.

Layout Scan
-----------
build_memory_layout() runs once, after semantic analysis succeeded, and
walks the program in order:

    VAR name [type]              (global scope only)  -> allocate_static
    ALLOCATE / ACQUIRE ... AS h                       -> allocate_handle
    GET_TASK_ID / GET_CORE_ID / GET_TOTAL_CORES t     -> allocate_handle
    RELEASE h                    (h a handle symbol)  -> release_handle
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from sahne_sdk.errors import SourceLocation
from sahne_sdk.sasm.analyzer import scoped_statements
from sahne_sdk.sasm.ast import (
    ProgramNode,
    IdentifierExpression,
    AllocateMemory,
    AcquireResource,
    ReleaseMemory,
    GetTaskId,
    GetCoreId,
    GetTotalCores,
    Instruction,
)
from sahne_sdk.sasm.errors import (
    DiagnosticCollector,
    DuplicateAllocationError,
    MemoryLayoutError,
    UnknownHandleError,
)
from sahne_sdk.sasm.symbols import GLOBAL_SCOPE, SymbolKind, SymbolTable
from sahne_sdk.sasm.types import POINTER_WIDTH

logger = logging.getLogger(__name__)


DEFAULT_STATIC_BASE = 0x1000


class MemorySection(Enum):
    STATIC = "static"
    HANDLE = "handle"


@dataclass(frozen=True)
class MemoryAllocation:
    """
    One reservation.

    Attributes:
        name: Variable or handle name
        section: Section the reservation lives in
        address: Static address; always 0 for handles
        size: Reserved size in bytes
        location: Declaration that caused the reservation
    """
    name: str
    section: MemorySection
    address: int
    size: int
    location: Optional[SourceLocation] = None

    @property
    def end(self) -> int:
        return self.address + self.size


class MemoryManager:
    """
    Static and handle allocator for one compilation.

    Usage:
        memory = MemoryManager(static_base=0x1000)
        memory.allocate_static("x", 4)       # 0x1000
        memory.allocate_static("y", 8)       # 0x1004
        memory.allocate_handle("buffer")
        memory.release_handle("buffer")
    """

    def __init__(self, static_base: int = DEFAULT_STATIC_BASE, pointer_width: int = POINTER_WIDTH):
        self.static_base = static_base
        self.pointer_width = pointer_width
        self._cursor = static_base
        self._statics: dict[str, MemoryAllocation] = {}
        self._handles: dict[str, MemoryAllocation] = {}

    def allocate_static(
        self,
        name: str,
        size: int,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ) -> int:
        """
        Assign the next static address to name and advance the cursor.

        Returns:
            The assigned address

        Raises:
            DuplicateAllocationError: name already has static storage
        """
        if name in self._statics:
            raise DuplicateAllocationError(name, MemorySection.STATIC.value, location, source_line)

        address = self._cursor
        self._statics[name] = MemoryAllocation(name, MemorySection.STATIC, address, size, location)
        self._cursor += size
        logger.debug(f"Static '{name}' at {address:#06x} ({size} bytes)")
        return address

    def allocate_handle(
        self,
        name: str,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ) -> MemoryAllocation:
        """
        Reserve a handle slot for name.

        Raises:
            DuplicateAllocationError: name already holds a reservation
        """
        if name in self._handles:
            raise DuplicateAllocationError(name, MemorySection.HANDLE.value, location, source_line)

        allocation = MemoryAllocation(name, MemorySection.HANDLE, 0, self.pointer_width, location)
        self._handles[name] = allocation
        logger.debug(f"Handle '{name}' reserved")
        return allocation

    def release_handle(
        self,
        name: str,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ) -> None:
        """
        Drop the reservation for name.

        Raises:
            UnknownHandleError: name holds no reservation
        """
        if name not in self._handles:
            raise UnknownHandleError(name, location, source_line)
        del self._handles[name]
        logger.debug(f"Handle '{name}' released")

    def static_address(self, name: str) -> Optional[int]:
        allocation = self._statics.get(name)
        return allocation.address if allocation else None

    def get_static_allocations(self) -> list[MemoryAllocation]:
        """Static allocations in address order."""
        return sorted(self._statics.values(), key=lambda a: a.address)

    def get_handle_allocations(self) -> list[MemoryAllocation]:
        return list(self._handles.values())

    @property
    def static_size(self) -> int:
        """Bytes used by the static section."""
        return self._cursor - self.static_base


def build_memory_layout(
    program: ProgramNode,
    symbols: SymbolTable,
    memory: MemoryManager,
    diagnostics: DiagnosticCollector,
    source_lines: Optional[list[str]] = None,
) -> bool:
    """
    Populate memory from the declarations of an analyzed program.

    Layout errors are collected into diagnostics.

    Returns:
        True if no layout error was reported
    """
    errors_before = diagnostics.error_count()
    lines = source_lines or []

    for stmt, scope in scoped_statements(program):
        source_line = None
        if 0 < stmt.location.line <= len(lines):
            source_line = lines[stmt.location.line - 1]
        try:
            if isinstance(stmt, Instruction) and stmt.opcode == "VAR":
                if scope.is_global:
                    _layout_static(stmt, symbols, memory, source_line)
            elif isinstance(stmt, (AllocateMemory, AcquireResource)):
                memory.allocate_handle(stmt.handle, stmt.location, source_line)
            elif isinstance(stmt, (GetTaskId, GetCoreId, GetTotalCores)):
                memory.allocate_handle(stmt.target, stmt.location, source_line)
            elif isinstance(stmt, ReleaseMemory):
                _layout_release(stmt, symbols, memory, source_line)
        except MemoryLayoutError as e:
            diagnostics.add(e)

    logger.debug(
        f"Memory layout: {len(memory.get_static_allocations())} statics "
        f"({memory.static_size} bytes), {len(memory.get_handle_allocations())} handles"
    )
    return diagnostics.error_count() == errors_before


def _layout_static(
    stmt: Instruction,
    symbols: SymbolTable,
    memory: MemoryManager,
    source_line: Optional[str],
) -> None:
    name = stmt.operands[0].name
    symbol = symbols.lookup_in_scope(name, GLOBAL_SCOPE)
    size = None
    if symbol is not None and symbol.type is not None:
        size = symbol.type.size(memory.pointer_width)
    # STRING and still-untyped variables hold a reference.
    if size is None:
        size = memory.pointer_width
    memory.allocate_static(name, size, stmt.location, source_line)


def _layout_release(
    stmt: ReleaseMemory,
    symbols: SymbolTable,
    memory: MemoryManager,
    source_line: Optional[str],
) -> None:
    if not isinstance(stmt.handle, IdentifierExpression):
        return
    symbol = symbols.lookup(stmt.handle.name)
    if symbol is not None and symbol.kind == SymbolKind.HANDLE:
        memory.release_handle(symbol.name, stmt.location, source_line)
