"""
Sahne64 Symbol Table
====================

Maps names to symbol records. The scope model has two levels: the global
scope, and one local scope per named procedure.

Lookup Model
------------
- insert() adds or overwrites by name: the last write wins. Callers check
  uniqueness with lookup_in_scope() first when it matters.
- lookup() returns the most recent symbol of that name from any scope.
- lookup_in_scope() only returns a symbol declared in exactly that scope.
- lookup_kind() finds a label, procedure or other kind by name, preferring
  the given scope, so variables never shadow labels or procedures.

Leaving a procedure never removes its locals. They stay visible to lookup()
but no longer collide with declarations in other scopes.
"""

from dataclasses import dataclass
from enum import Enum, auto
from typing import Iterator, Optional

from sahne_sdk.errors import SourceLocation
from sahne_sdk.sasm.types import Type


# =============================================================================
# Symbol Kinds and Scopes
# =============================================================================

class SymbolKind(Enum):
    """What a name denotes."""
    VARIABLE = auto()
    LABEL = auto()
    PROCEDURE = auto()
    MACRO = auto()
    EXTERNAL = auto()
    GLOBAL = auto()
    HANDLE = auto()
    TASK_ID = auto()
    RESOURCE_ID = auto()


@dataclass(frozen=True)
class Scope:
    """
    Declaration scope: global, or local to one named procedure.

    Scopes are values. The analyzer passes them explicitly to every check
    instead of keeping a "current scope" field.
    """
    procedure: Optional[str] = None

    @classmethod
    def local(cls, procedure: str) -> "Scope":
        return cls(procedure)

    @property
    def is_global(self) -> bool:
        return self.procedure is None

    def __str__(self) -> str:
        if self.procedure is None:
            return "global"
        return f"local({self.procedure})"


GLOBAL_SCOPE = Scope()


@dataclass
class Symbol:
    """
    A symbol record.

    Attributes:
        name: Symbol name as written in source
        kind: What the name denotes
        scope: Scope the symbol was declared in
        type: Declared or inferred type; None for an untyped VAR until its
            first typed use, and for kinds that carry no value
        location: Declaration site, for duplicate-symbol hints
    """
    name: str
    kind: SymbolKind
    scope: Scope = GLOBAL_SCOPE
    type: Optional[Type] = None
    location: Optional[SourceLocation] = None

    @property
    def is_value(self) -> bool:
        """True for symbols that hold a runtime value an operand can read."""
        return self.kind in (
            SymbolKind.VARIABLE,
            SymbolKind.HANDLE,
            SymbolKind.TASK_ID,
            SymbolKind.RESOURCE_ID,
            SymbolKind.GLOBAL,
            SymbolKind.EXTERNAL,
        )


# =============================================================================
# Symbol Table
# =============================================================================

class SymbolTable:
    """
    Name to symbol mapping with a flattened view and scope-qualified lookup.

    Usage:
        table = SymbolTable()
        table.insert(Symbol("x", SymbolKind.VARIABLE, GLOBAL_SCOPE, TYPE_DWORD))
        table.lookup("x")
        table.lookup_in_scope("x", Scope.local("main"))   # None
    """

    def __init__(self) -> None:
        self._symbols: dict[str, Symbol] = {}
        self._scoped: dict[tuple[Scope, str], Symbol] = {}

    def insert(self, symbol: Symbol) -> None:
        """Add or overwrite a symbol by name."""
        self._symbols[symbol.name] = symbol
        self._scoped[(symbol.scope, symbol.name)] = symbol

    def lookup(self, name: str) -> Optional[Symbol]:
        """Return the symbol named name, regardless of scope."""
        return self._symbols.get(name)

    def lookup_in_scope(self, name: str, scope: Scope) -> Optional[Symbol]:
        """Return the symbol named name only if it was declared in scope."""
        return self._scoped.get((scope, name))

    def lookup_kind(
        self,
        name: str,
        kind: SymbolKind,
        scope: Scope = GLOBAL_SCOPE,
    ) -> Optional[Symbol]:
        """
        Return the symbol of the given kind named name.

        Looks in scope, then the global scope, then every other scope in
        declaration order. Symbols of other kinds with the same name are
        skipped, so a local variable never hides a label or procedure.
        """
        for candidate in (scope, GLOBAL_SCOPE):
            symbol = self._scoped.get((candidate, name))
            if symbol is not None and symbol.kind == kind:
                return symbol
        for symbol in self._scoped.values():
            if symbol.name == name and symbol.kind == kind:
                return symbol
        return None

    def names(self) -> list[str]:
        return list(self._symbols)

    def of_kind(self, *kinds: SymbolKind) -> list[Symbol]:
        """Return all symbols of the given kinds, in declaration order."""
        return [s for s in self._scoped.values() if s.kind in kinds]

    def __contains__(self, name: str) -> bool:
        return name in self._symbols

    def __iter__(self) -> Iterator[Symbol]:
        return iter(self._symbols.values())

    def __len__(self) -> int:
        return len(self._symbols)
