"""
Sahne64 Linker
==============

Final pass over the generated instructions.

link() is the default policy: the instructions pass through unchanged and
external resolution is left to the loader. resolve_extern_symbols() binds
names the compiler already knows the value of:

- SAHNE64_API names resolve to their kernel call number.
- EXTERN names resolve to the address supplied at link time, if any.

Only SYMBOL operands are replaced. Labels, RES targets, strings and the
names in GLOBAL/EXTERN lines are never touched, so a label that happens to
contain an API name keeps its spelling.

An EXTERN with no address yields one UnresolvedExternalWarning per run
and stays symbolic in the output; the loader must bind it.
"""

import logging
from typing import Optional

from sahne_sdk.sasm.errors import DiagnosticCollector, UnresolvedExternalWarning
from sahne_sdk.sasm.externs import ExternSymbolTable, SymbolBinding
from sahne_sdk.sasm.instructions import Operand, OperandKind, TargetInstruction

logger = logging.getLogger(__name__)


# Bindings whose value can be substituted into the output.
RESOLVABLE_BINDINGS = (SymbolBinding.SAHNE64_API, SymbolBinding.EXTERNAL)


class Linker:
    """
    Links the instruction stream of one compilation.

    Usage:
        linker = Linker(externs, diagnostics)
        instructions = linker.link(instructions)
        instructions = linker.resolve_extern_symbols(instructions)
    """

    def __init__(
        self,
        externs: ExternSymbolTable,
        diagnostics: Optional[DiagnosticCollector] = None,
    ):
        self.externs = externs
        self.diagnostics = diagnostics if diagnostics is not None else DiagnosticCollector()

    def link(self, instructions: list[TargetInstruction]) -> list[TargetInstruction]:
        """Return instructions unchanged."""
        logger.debug(f"Linking {len(instructions)} instructions")
        return list(instructions)

    def resolve_extern_symbols(self, instructions: list[TargetInstruction]) -> list[TargetInstruction]:
        """
        Substitute resolved extern and API symbols with their values.

        Running this again on its own output gives the same result.

        Returns:
            New instruction list
        """
        return resolve_extern_symbols(instructions, self.externs, self.diagnostics)


def resolve_extern_symbols(
    instructions: list[TargetInstruction],
    externs: ExternSymbolTable,
    diagnostics: Optional[DiagnosticCollector] = None,
) -> list[TargetInstruction]:
    """
    Replace SYMBOL operands bound to a resolved extern with its value.

    Args:
        instructions: Generated instructions
        externs: Extern bindings of the compilation
        diagnostics: Receives one UnresolvedExternalWarning per unresolved
            EXTERN binding

    Returns:
        New instruction list
    """
    def substitute(operand: Operand) -> Operand:
        if operand.kind != OperandKind.SYMBOL:
            return operand
        extern = externs.lookup(operand.value)
        if extern is None or extern.binding not in RESOLVABLE_BINDINGS or not extern.is_resolved:
            return operand
        return Operand.immediate(extern.address)

    resolved = [instr.map_operands(substitute) for instr in instructions]

    for extern in externs.unresolved():
        warning = UnresolvedExternalWarning(extern.name, extern.location)
        if diagnostics is None:
            logger.warning(warning.message)
        else:
            logger.debug(warning.message)
            diagnostics.add_warning(warning)

    replaced = sum(1 for before, after in zip(instructions, resolved) if before is not after)
    logger.debug(f"Resolved extern symbols in {replaced} instructions")
    return resolved
