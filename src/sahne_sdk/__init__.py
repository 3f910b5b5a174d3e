"""
Sahne64 SDK - Assembly Toolchain for the Sahne64 Microkernel
============================================================

This package provides the Sahne64 assembly compiler. Sahne64 programs are
written in a small assembly-like language whose instructions expose the
microkernel's primitives: memory handles, tasks, named resources, messaging
and core/task identity queries.

Main Components
---------------
- **sasm**: Sahne64 assembly compiler (sasmc)
    Lexer, parser, semantic analyzer, memory layout, code generator and
    linker producing SYS_CALL / ARG / RES instruction streams

- **cli**: Command-line tools

Quick Start
-----------
Compile a program:
    >>> from sahne_sdk.sasm import compile_sasm
    >>> print(compile_sasm("GET_CORE_ID core"), end="")
    SYS_CALL 12
    RES core

Or use the command-line tool:
    $ sasmc task.sasm -o task.sys

Version History
---------------
1.0.0 - Initial release with the sasmc compiler
"""

__version__ = "1.0.0"

from sahne_sdk.errors import SahneError, SourceLocation

__all__ = [
    "__version__",
    "SahneError",
    "SourceLocation",
]
