"""
Sahne64 SDK Base Errors
=======================

Root exception of the SDK and the source position type shared by every
compiler stage.

SahneError
└── SasmError and its subclasses (sahne_sdk.sasm.errors)

The formatting of diagnostics (caret line, hints, severity) lives with the
compiler errors; this module only knows where in a file something happened.
"""

from dataclasses import dataclass


class SahneError(Exception):
    """
    Base exception for the Sahne64 SDK.

    The CLI catches this to turn any SDK failure into a build error exit:

        try:
            compile_file("task.sasm")
        except SahneError as e:
            click.echo(str(e), err=True)
    """
    pass


@dataclass(frozen=True)
class SourceLocation:
    """
    A position in a .sasm source.

    Tokens, AST nodes, generated instructions and diagnostics all carry
    one. Lines and columns count from 1.

    Attributes:
        filename: Source file name, "<input>" for in-memory source
        line: Line number
        column: Column of the first character
    """
    filename: str
    line: int
    column: int

    def __str__(self) -> str:
        return f"{self.filename}:{self.line}:{self.column}"
