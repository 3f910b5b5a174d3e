"""
Sahne64 Macro Pre-Expansion
===========================

Optional text-level stage run before lexing. It is enabled with
CompilerOptions.expand_macros or `sasmc -M`.

Syntax
------
    MACRO sys_write(handle, value)
        SEND handle, value
        YIELD
    ENDMACRO

    sys_write out, 42

Definitions are removed from the output (their lines become blank so the
lines before the first expansion keep their numbers). A line whose first
word is a defined macro is replaced by the macro body, with each parameter
replaced by its argument wherever it appears as a whole word. Bodies may
invoke other macros, down to MAX_EXPANSION_DEPTH levels.

Errors
------
- Argument count mismatch, missing ENDMACRO, a nested MACRO definition and
  runaway expansion raise MacroExpansionError.
- Redefining a macro is a warning; the newer definition wins.
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional

from sahne_sdk.errors import SourceLocation
from sahne_sdk.sasm.errors import (
    DiagnosticCollector,
    MacroExpansionError,
    MacroRedefinitionWarning,
)

logger = logging.getLogger(__name__)


MAX_EXPANSION_DEPTH = 16

_DEFINITION = re.compile(r"^\s*MACRO\s+([A-Za-z_]\w*)\s*(?:\(([^)]*)\))?\s*(?:;.*)?$")
_END = re.compile(r"^\s*ENDMACRO\s*(?:;.*)?$")
_WORD = re.compile(r"[A-Za-z_]\w*")


@dataclass(frozen=True)
class Macro:
    """
    A macro definition.

    Attributes:
        name: Macro name
        parameters: Parameter names in order
        body: Body lines, unexpanded
        location: MACRO line
    """
    name: str
    parameters: tuple[str, ...]
    body: tuple[str, ...]
    location: SourceLocation


class MacroProcessor:
    """
    Expands macros in a source text.

    Usage:
        expanded = MacroProcessor(source, "prog.sasm").process()
    """

    def __init__(
        self,
        source: str,
        filename: str = "<input>",
        diagnostics: Optional[DiagnosticCollector] = None,
        max_depth: int = MAX_EXPANSION_DEPTH,
    ):
        self.source = source
        self.filename = filename
        # Warnings are logged only when no caller collects them.
        self._log_warnings = diagnostics is None
        self.diagnostics = diagnostics if diagnostics is not None else DiagnosticCollector()
        self.max_depth = max_depth
        self.macros: dict[str, Macro] = {}
        self._lines = source.splitlines()

    def process(self) -> str:
        """
        Collect definitions and expand invocations.

        Returns:
            The expanded source text

        Raises:
            MacroExpansionError: On any expansion error
        """
        remaining = self._collect_definitions()

        output: list[str] = []
        for line_no, line in remaining:
            output.extend(self._expand_line(line, line_no, 0))

        logger.debug(
            f"Macro expansion: {len(self.macros)} macros, "
            f"{len(self._lines)} lines in, {len(output)} lines out"
        )
        text = "\n".join(output)
        if self.source.endswith("\n"):
            text += "\n"
        return text

    # =========================================================================
    # Definitions
    # =========================================================================

    def _collect_definitions(self) -> list[tuple[int, str]]:
        """Strip MACRO ... ENDMACRO blocks, returning the other lines."""
        remaining: list[tuple[int, str]] = []
        index = 0

        while index < len(self._lines):
            line = self._lines[index]
            match = _DEFINITION.match(line)
            if not match:
                remaining.append((index + 1, line))
                index += 1
                continue

            start = index
            name = match.group(1)
            params = tuple(p.strip() for p in (match.group(2) or "").split(",") if p.strip())
            location = self._location(start + 1, line)

            body: list[str] = []
            index += 1
            while True:
                if index >= len(self._lines):
                    raise MacroExpansionError(
                        name, "missing ENDMACRO", location, line,
                    )
                body_line = self._lines[index]
                if _END.match(body_line):
                    break
                if _DEFINITION.match(body_line):
                    raise MacroExpansionError(
                        name, "nested MACRO definition",
                        self._location(index + 1, body_line), body_line,
                    )
                body.append(body_line)
                index += 1

            self._define(Macro(name, params, tuple(body), location))

            # Keep line numbering for the lines that follow.
            for blank_no in range(start, index + 1):
                remaining.append((blank_no + 1, ""))
            index += 1

        return remaining

    def _define(self, macro: Macro) -> None:
        if macro.name in self.macros:
            warning = MacroRedefinitionWarning(macro.name, macro.location)
            if self._log_warnings:
                logger.warning(warning.message)
            else:
                logger.debug(warning.message)
            self.diagnostics.add_warning(warning)
        self.macros[macro.name] = macro
        logger.debug(f"Defined macro '{macro.name}' with {len(macro.parameters)} parameters")

    # =========================================================================
    # Expansion
    # =========================================================================

    def _expand_line(self, line: str, line_no: int, depth: int) -> list[str]:
        code = line.split(";", 1)[0]
        words = code.split(None, 1)
        if not words or words[0] not in self.macros:
            return [line]

        macro = self.macros[words[0]]
        if depth >= self.max_depth:
            raise MacroExpansionError(
                macro.name,
                f"expansion nested deeper than {self.max_depth} levels",
                self._location(line_no, line), line,
            )

        rest = words[1].strip() if len(words) > 1 else ""
        args = [a.strip() for a in rest.split(",")] if rest else []
        if len(args) != len(macro.parameters):
            raise MacroExpansionError(
                macro.name,
                f"expected {len(macro.parameters)} arguments, got {len(args)}",
                self._location(line_no, line), line,
            )

        mapping = dict(zip(macro.parameters, args))
        expanded: list[str] = []
        for body_line in macro.body:
            substituted = _WORD.sub(lambda m: mapping.get(m.group(0), m.group(0)), body_line)
            expanded.extend(self._expand_line(substituted, line_no, depth + 1))
        return expanded

    def _location(self, line_no: int, line: str) -> SourceLocation:
        column = len(line) - len(line.lstrip()) + 1
        return SourceLocation(self.filename, line_no, column)


def expand_macros(
    source: str,
    filename: str = "<input>",
    diagnostics: Optional[DiagnosticCollector] = None,
) -> str:
    """Convenience wrapper around MacroProcessor.process()."""
    return MacroProcessor(source, filename, diagnostics).process()
