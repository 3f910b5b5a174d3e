"""
Sahne64 Assembly Compiler Error Hierarchy
=========================================

This module defines the exception hierarchy for the Sahne64 assembly
compiler. All exceptions inherit from SasmError, which itself inherits
from the SDK-wide SahneError.

Exception Hierarchy
-------------------
SasmError (base for all compiler diagnostics)
├── SasmCompilationError - aggregate report of collected errors
├── LexicalError - characters that do not form a token
│   ├── UnterminatedStringError - missing closing quote
│   └── InvalidCharacterError - unexpected character
├── SasmSyntaxError - malformed statements
│   └── UnexpectedTokenError - expected vs. found token
├── SemanticError - scope and type violations
│   ├── DuplicateSymbolError - name declared twice in one scope
│   ├── UndefinedSymbolError - undeclared variable or label
│   │   └── UndefinedProcedureError - CALL/SPAWN target missing
│   ├── TypeMismatchError - value does not fit the expected type
│   ├── UnknownTypeError - VAR names an unknown type
│   └── OperandCountError - wrong number of opcode operands
├── MemoryLayoutError - static/handle layout errors
│   ├── DuplicateAllocationError - name allocated twice
│   └── UnknownHandleError - release of an unreserved handle
├── CodeGenError - lowering errors
│   └── UnsupportedOperandError - internal defect, never collected
├── MacroExpansionError - macro pre-expansion errors
└── SasmWarning - non-fatal diagnostics
    ├── UnresolvedExternalWarning
    ├── DuplicateExternWarning
    ├── UnknownExternWarning
    └── MacroRedefinitionWarning

Error Message Format
--------------------
    program.sasm:3:6: error: undefined symbol 'missing_label'
        JUMP missing_label
             ^
    hint: did you mean 'mising_label'?
"""

import difflib
from typing import Iterable, List, Optional

from sahne_sdk.errors import SahneError, SourceLocation


# =============================================================================
# Base Exception
# =============================================================================

class SasmError(SahneError):
    """
    Base exception for all Sahne64 assembly compiler diagnostics.

    Attributes:
        message: The error description
        location: Where in the source the error occurred
        hint: A suggestion for fixing the error
        source_line: The actual source text at the error location
    """

    severity = "error"

    def __init__(
        self,
        message: str,
        location: Optional[SourceLocation] = None,
        hint: Optional[str] = None,
        source_line: Optional[str] = None,
    ):
        self.message = message
        self.location = location
        self.hint = hint
        self.source_line = source_line
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """
        Format the diagnostic with location, source context, and hint.

            program.sasm:1:10: error: unexpected token '5'
                ALLOCATE 5 5
                         ^
            hint: expected 'AS'
        """
        parts = []

        if self.location:
            parts.append(f"{self.location}: {self.severity}: {self.message}")
        else:
            parts.append(f"{self.severity}: {self.message}")

        if self.source_line is not None and self.location is not None:
            parts.append(f"    {self.source_line}")
            if self.location.column > 0:
                padding = " " * (4 + self.location.column - 1)
                parts.append(f"{padding}^")

        if self.hint:
            parts.append(f"hint: {self.hint}")

        return "\n".join(parts)


class SasmCompilationError(SasmError):
    """
    Aggregate compilation error containing multiple errors.

    The message is the pre-formatted report from DiagnosticCollector and
    is passed through unchanged.
    """

    def _format_message(self) -> str:
        return self.message


# =============================================================================
# Lexical Errors
# =============================================================================

class LexicalError(SasmError):
    """Characters in the source that do not form a valid token."""
    pass


class UnterminatedStringError(LexicalError):
    """A string literal reached end of line or end of input."""

    def __init__(
        self,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ):
        super().__init__(
            "unterminated string literal",
            location=location,
            hint="add closing '\"' to complete the string",
            source_line=source_line,
        )


class InvalidCharacterError(LexicalError):
    """A character that no token can start with."""

    def __init__(
        self,
        char: str,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ):
        self.char = char
        super().__init__(
            f"invalid character '{char}' (0x{ord(char):02X})",
            location=location,
            source_line=source_line,
        )


# =============================================================================
# Syntax Errors
# =============================================================================

class SasmSyntaxError(SasmError):
    """
    Malformed statement.

    Raised by the parser when a token does not match the operand grammar
    of the statement being parsed.
    """
    pass


class UnexpectedTokenError(SasmSyntaxError):
    """A token other than the one the grammar requires."""

    def __init__(
        self,
        found: str,
        expected: Optional[str] = None,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ):
        self.found = found
        self.expected = expected

        hint = None
        if expected:
            hint = f"expected {expected}"

        super().__init__(
            f"unexpected token '{found}'",
            location=location,
            hint=hint,
            source_line=source_line,
        )


# =============================================================================
# Semantic Errors
# =============================================================================

class SemanticError(SasmError):
    """
    Semantic error in a syntactically valid program.

    Examples:
        - Using an undeclared variable or label
        - Declaring a name twice in the same scope
        - Passing a string where a size is expected
    """
    pass


def find_similar_names(name: str, candidates: Iterable[str]) -> List[str]:
    """Return up to three other candidate names that look like typos of name."""
    others = [c for c in candidates if c != name]
    return difflib.get_close_matches(name, others, n=3, cutoff=0.75)


class DuplicateSymbolError(SemanticError):
    """A name declared twice in the same scope."""

    def __init__(
        self,
        name: str,
        location: Optional[SourceLocation] = None,
        original_location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ):
        self.name = name
        self.original_location = original_location

        hint = None
        if original_location:
            hint = f"'{name}' was first declared at {original_location}"

        super().__init__(
            f"duplicate symbol '{name}'",
            location=location,
            hint=hint,
            source_line=source_line,
        )


class UndefinedSymbolError(SemanticError):
    """
    Reference to an undeclared variable, label or procedure.

    Similar names are offered as a hint to help catch typos.
    """

    kind = "symbol"

    def __init__(
        self,
        name: str,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
        similar_names: Optional[List[str]] = None,
    ):
        self.name = name
        self.similar_names = similar_names or []

        hint = None
        if self.similar_names:
            suggestions = ", ".join(f"'{s}'" for s in self.similar_names[:3])
            hint = f"did you mean {suggestions}?"

        super().__init__(
            f"undefined {self.kind} '{name}'",
            location=location,
            hint=hint,
            source_line=source_line,
        )


class UndefinedProcedureError(UndefinedSymbolError):
    """CALL or SPAWN names a procedure that is never declared."""

    kind = "procedure"


class TypeMismatchError(SemanticError):
    """A value whose type is not accepted where it is used."""

    def __init__(
        self,
        message: str,
        expected_type: Optional[str] = None,
        actual_type: Optional[str] = None,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ):
        self.expected_type = expected_type
        self.actual_type = actual_type

        hint = None
        if expected_type and actual_type:
            hint = f"expected '{expected_type}', got '{actual_type}'"

        super().__init__(
            message,
            location=location,
            hint=hint,
            source_line=source_line,
        )


class UnknownTypeError(SemanticError):
    """VAR names a type outside the recognized catalogue."""

    def __init__(
        self,
        type_name: str,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
        known_types: Optional[List[str]] = None,
    ):
        self.type_name = type_name

        hint = None
        if known_types:
            hint = "known types: " + ", ".join(known_types)

        super().__init__(
            f"unknown type '{type_name}'",
            location=location,
            hint=hint,
            source_line=source_line,
        )


class OperandCountError(SemanticError):
    """An opcode given the wrong number of operands."""

    def __init__(
        self,
        opcode: str,
        expected: str,
        actual: int,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ):
        self.opcode = opcode
        self.expected = expected
        self.actual = actual

        super().__init__(
            f"'{opcode}' expects {expected}, got {actual}",
            location=location,
            source_line=source_line,
        )


# =============================================================================
# Memory Layout Errors
# =============================================================================

class MemoryLayoutError(SasmError):
    """Error assigning static addresses or handle slots."""
    pass


class DuplicateAllocationError(MemoryLayoutError):
    """A static variable or handle allocated more than once."""

    def __init__(
        self,
        name: str,
        section: str,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ):
        self.name = name
        self.section = section
        super().__init__(
            f"'{name}' is already allocated in the {section} section",
            location=location,
            source_line=source_line,
        )


class UnknownHandleError(MemoryLayoutError):
    """Release of a handle name that holds no reservation."""

    def __init__(
        self,
        name: str,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ):
        self.name = name
        super().__init__(
            f"unknown handle '{name}'",
            location=location,
            source_line=source_line,
        )


# =============================================================================
# Code Generation Errors
# =============================================================================

class CodeGenError(SasmError):
    """Error during lowering of the validated AST."""
    pass


class UnsupportedOperandError(CodeGenError):
    """
    An operand the code generator cannot lower.

    A program that passed semantic analysis never produces this error, so
    it signals a compiler defect. It is never collected as a user
    diagnostic and always propagates to the caller.
    """

    def __init__(
        self,
        operand: str,
        location: Optional[SourceLocation] = None,
    ):
        self.operand = operand
        super().__init__(
            f"internal error: cannot lower operand {operand}",
            location=location,
        )


# =============================================================================
# Macro Errors
# =============================================================================

class MacroExpansionError(SasmError):
    """
    Error expanding a macro.

    Raised for argument-count mismatches, runaway recursive expansion,
    and definitions missing their ENDMACRO line.
    """

    def __init__(
        self,
        macro_name: str,
        message: str,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ):
        self.macro_name = macro_name
        super().__init__(
            f"error expanding macro '{macro_name}': {message}",
            location=location,
            source_line=source_line,
        )


# =============================================================================
# Warnings
# =============================================================================

class SasmWarning(SasmError):
    """Non-fatal diagnostic. Reported, never blocks output."""

    severity = "warning"


class UnresolvedExternalWarning(SasmWarning):
    """An EXTERN binding with no address at link time."""

    def __init__(self, name: str, location: Optional[SourceLocation] = None):
        self.name = name
        super().__init__(
            f"unresolved external symbol '{name}'",
            location=location,
            hint=f"supply an address with --extern {name}=ADDR",
        )


class DuplicateExternWarning(SasmWarning):
    """An extern binding declared a second time."""

    def __init__(self, name: str, location: Optional[SourceLocation] = None):
        self.name = name
        super().__init__(
            f"extern symbol '{name}' declared more than once",
            location=location,
            hint="the last declaration wins",
        )


class UnknownExternWarning(SasmWarning):
    """An address supplied for a name that was never declared."""

    def __init__(self, name: str, location: Optional[SourceLocation] = None):
        self.name = name
        super().__init__(
            f"address supplied for undeclared extern symbol '{name}'",
            location=location,
        )


class MacroRedefinitionWarning(SasmWarning):
    """A macro defined again; the newer definition replaces it."""

    def __init__(self, name: str, location: Optional[SourceLocation] = None):
        self.name = name
        super().__init__(f"macro '{name}' redefined", location=location)


# =============================================================================
# Diagnostic Collection
# =============================================================================

class DiagnosticCollector:
    """
    Collects errors and warnings across all compilation stages.

    Stages raise typed errors; stage drivers catch them and add them here
    so one run reports every problem it can find.

    Example:
        diagnostics = DiagnosticCollector(max_errors=100)

        for stmt in program.statements:
            try:
                check(stmt)
            except SemanticError as e:
                diagnostics.add(e)
                if diagnostics.should_stop():
                    break

        diagnostics.raise_if_errors()
    """

    def __init__(self, max_errors: int = 100):
        self.errors: List[SasmError] = []
        self.warnings: List[SasmWarning] = []
        self.max_errors = max_errors

    def add(self, error: SasmError) -> None:
        """Add an error. Warnings passed here are routed to add_warning."""
        if isinstance(error, SasmWarning):
            self.add_warning(error)
            return
        self.errors.append(error)

    def add_warning(self, warning: SasmWarning) -> None:
        """Add a warning."""
        self.warnings.append(warning)

    def has_errors(self) -> bool:
        """Return True if any errors have been collected."""
        return len(self.errors) > 0

    def should_stop(self) -> bool:
        """Return True if max_errors has been reached."""
        return len(self.errors) >= self.max_errors

    def error_count(self) -> int:
        return len(self.errors)

    def warning_count(self) -> int:
        return len(self.warnings)

    def errors_of(self, error_type: type) -> List[SasmError]:
        """Return the collected errors that are instances of error_type."""
        return [e for e in self.errors if isinstance(e, error_type)]

    def report(self) -> str:
        """Format all errors and warnings for display."""
        lines = []

        for error in self.errors:
            lines.append(str(error))
            lines.append("")

        for warning in self.warnings:
            lines.append(str(warning))

        error_word = "error" if len(self.errors) == 1 else "errors"
        warning_word = "warning" if len(self.warnings) == 1 else "warnings"
        lines.append(
            f"\n{len(self.errors)} {error_word}, {len(self.warnings)} {warning_word}"
        )

        return "\n".join(lines)

    def clear(self) -> None:
        """Clear all collected errors and warnings."""
        self.errors.clear()
        self.warnings.clear()

    def raise_if_errors(self) -> None:
        """Raise a SasmCompilationError if any errors were collected."""
        if self.has_errors():
            raise SasmCompilationError(self.report())
