"""
Sahne64 Extern Symbol Table
===========================

Tracks names bound outside the compilation unit:

| Directive                  | Binding      | Address                      |
|----------------------------|--------------|------------------------------|
| GLOBAL name                | GLOBAL       | none (exported)              |
| EXTERN name                | EXTERNAL     | supplied at link time        |
| SAHNE64_API name number    | SAHNE64_API  | the number, immediately      |

Duplicate declarations and addresses supplied for undeclared names are
warnings, not errors.
"""

import logging
from dataclasses import dataclass
from enum import Enum, auto
from typing import Iterator, Optional

from sahne_sdk.errors import SourceLocation
from sahne_sdk.sasm.errors import (
    DiagnosticCollector,
    DuplicateExternWarning,
    UnknownExternWarning,
)

logger = logging.getLogger(__name__)


class SymbolBinding(Enum):
    """How an extern name is bound."""
    GLOBAL = auto()
    EXTERNAL = auto()
    SAHNE64_API = auto()


@dataclass
class ExternSymbol:
    """
    An external binding.

    Attributes:
        name: Symbol name
        binding: Binding kind
        address: Resolved numeric value (syscall number for API bindings,
            link-time address for external ones), None until resolved
        location: Declaring directive
    """
    name: str
    binding: SymbolBinding
    address: Optional[int] = None
    location: Optional[SourceLocation] = None

    @property
    def is_resolved(self) -> bool:
        return self.address is not None


class ExternSymbolTable:
    """
    Name to external binding mapping.

    Warnings go to the optional DiagnosticCollector and the module logger.
    """

    def __init__(self, diagnostics: Optional[DiagnosticCollector] = None):
        self._symbols: dict[str, ExternSymbol] = {}
        self.diagnostics = diagnostics

    def declare(
        self,
        name: str,
        binding: SymbolBinding,
        location: Optional[SourceLocation] = None,
    ) -> ExternSymbol:
        """Declare name with binding. A repeated declaration replaces the first."""
        if name in self._symbols:
            self._warn(DuplicateExternWarning(name, location))

        symbol = ExternSymbol(name, binding, location=location)
        self._symbols[name] = symbol
        logger.debug(f"Declared extern '{name}' as {binding.name}")
        return symbol

    def resolve(
        self,
        name: str,
        address: int,
        location: Optional[SourceLocation] = None,
    ) -> bool:
        """
        Record the numeric value of name.

        Returns:
            True if name was declared and is now resolved
        """
        symbol = self._symbols.get(name)
        if symbol is None:
            self._warn(UnknownExternWarning(name, location))
            return False

        symbol.address = address
        logger.debug(f"Resolved extern '{name}' to {address}")
        return True

    def lookup(self, name: str) -> Optional[ExternSymbol]:
        return self._symbols.get(name)

    def unresolved(self) -> list[ExternSymbol]:
        """EXTERNAL bindings that still have no address."""
        return [
            s for s in self._symbols.values()
            if s.binding == SymbolBinding.EXTERNAL and not s.is_resolved
        ]

    def _warn(self, warning: DuplicateExternWarning | UnknownExternWarning) -> None:
        if self.diagnostics is None:
            logger.warning(warning.message)
        else:
            logger.debug(warning.message)
            self.diagnostics.add_warning(warning)

    def __contains__(self, name: str) -> bool:
        return name in self._symbols

    def __iter__(self) -> Iterator[ExternSymbol]:
        return iter(self._symbols.values())

    def __len__(self) -> int:
        return len(self._symbols)
