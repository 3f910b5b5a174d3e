"""
Sahne64 Assembly Compiler Main Module
=====================================

Orchestrates the complete compilation:

    Source → [Macros] → Lex → Parse → Analyze → Layout → Generate → Link

Usage
-----
Command line:
    $ sasmc kernel_task.sasm -o kernel_task.sys

Programmatic:
    >>> from sahne_sdk.sasm import compile_sasm
    >>> print(compile_sasm("ALLOCATE 1024 AS handle1"), end="")
    SYS_CALL 1
    ARG 1024
    RES handle1

Stage Gating
------------
Every stage reports into one DiagnosticCollector. A stage only runs when
the stages before it reported no errors:

1. Macro expansion (optional) stops on its first error.
2. Lexing and parsing recover at statement boundaries and report every
   malformed statement.
3. Semantic analysis reports every violation it finds.
4. Memory layout reports duplicate and unknown reservations.
5. Code generation and linking never report errors for a program that got
   this far; unresolved externals are warnings.

compile_source() returns a CompilationResult either way. The convenience
functions compile_sasm() and compile_file() raise SasmCompilationError
when the result has errors.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from sahne_sdk.sasm.analyzer import ControlFlowFact, SemanticAnalyzer
from sahne_sdk.sasm.ast import ProgramNode
from sahne_sdk.sasm.codegen import CodeGenerator
from sahne_sdk.sasm.errors import (
    DiagnosticCollector,
    MacroExpansionError,
    SasmError,
    SasmWarning,
)
from sahne_sdk.sasm.externs import ExternSymbolTable
from sahne_sdk.sasm.instructions import TargetInstruction, render_program
from sahne_sdk.sasm.lexer import Lexer
from sahne_sdk.sasm.linker import Linker
from sahne_sdk.sasm.macros import MacroProcessor
from sahne_sdk.sasm.memory import DEFAULT_STATIC_BASE, MemoryManager, build_memory_layout
from sahne_sdk.sasm.parser import Parser
from sahne_sdk.sasm.symbols import SymbolTable
from sahne_sdk.sasm.types import POINTER_WIDTH

logger = logging.getLogger(__name__)


@dataclass
class CompilerOptions:
    """
    Compiler configuration options.

    Attributes:
        static_base: First address of the static section
        pointer_width: Width in bytes of USIZE, PTR, handles and task ids
        expand_macros: Run the macro pre-expansion stage
        max_errors: Stop collecting after this many errors
        resolve_externs: Substitute resolved API and extern symbols during
            linking. When False the output keeps every name symbolic.
        extern_addresses: Link-time addresses for EXTERN names
    """
    static_base: int = DEFAULT_STATIC_BASE
    pointer_width: int = POINTER_WIDTH
    expand_macros: bool = False
    max_errors: int = 100
    resolve_externs: bool = True
    extern_addresses: dict[str, int] = field(default_factory=dict)


@dataclass
class CompilationResult:
    """
    Result of a compilation.

    Attributes:
        filename: Source filename
        success: True if no stage reported an error
        output: Rendered instructions, one per line (empty on failure)
        instructions: Structured instructions (empty on failure)
        preprocessed_source: Source after macro expansion, or the input
        ast: Parsed program, if parsing ran
        token_count: Number of tokens lexed
        symbols: Symbol table after analysis
        externs: Extern table after linking
        memory: Memory layout, if layout ran
        control_flow: Control-flow facts recorded by the analyzer
        diagnostics: All errors and warnings
    """
    filename: str = "<input>"
    success: bool = False
    output: str = ""
    instructions: list[TargetInstruction] = field(default_factory=list)
    preprocessed_source: str = ""
    ast: Optional[ProgramNode] = None
    token_count: int = 0
    symbols: Optional[SymbolTable] = None
    externs: Optional[ExternSymbolTable] = None
    memory: Optional[MemoryManager] = None
    control_flow: list[ControlFlowFact] = field(default_factory=list)
    diagnostics: DiagnosticCollector = field(default_factory=DiagnosticCollector)

    @property
    def errors(self) -> list[SasmError]:
        return self.diagnostics.errors

    @property
    def warnings(self) -> list[SasmWarning]:
        return self.diagnostics.warnings

    def raise_if_errors(self) -> None:
        """Raise SasmCompilationError with the full report if there were errors."""
        self.diagnostics.raise_if_errors()


class SahneCompiler:
    """
    Sahne64 assembly compiler.

    Each compile_source() call builds fresh tables, so one compiler can be
    reused for several inputs.

    Example:
        compiler = SahneCompiler(CompilerOptions(extern_addresses={"log": 0x2000}))
        result = compiler.compile_source(source, "task.sasm")
        if result.success:
            print(result.output)
        else:
            print(result.diagnostics.report())

    Attributes:
        options: Compiler configuration options
    """

    def __init__(self, options: Optional[CompilerOptions] = None):
        self.options = options or CompilerOptions()

    def compile_source(self, source: str, filename: str = "<input>") -> CompilationResult:
        """
        Compile Sahne64 assembly source.

        Args:
            source: Source text
            filename: Source filename for error messages

        Returns:
            CompilationResult with output or diagnostics

        Raises:
            UnsupportedOperandError: Internal defect in code generation
        """
        diagnostics = DiagnosticCollector(max_errors=self.options.max_errors)
        result = CompilationResult(filename=filename, diagnostics=diagnostics)

        # Stage 1: Macro pre-expansion
        if self.options.expand_macros:
            try:
                source = MacroProcessor(source, filename, diagnostics).process()
            except MacroExpansionError as e:
                diagnostics.add(e)
                return self._finish(result)
        result.preprocessed_source = source
        source_lines = source.splitlines()

        # Stage 2: Lexing and parsing
        tokens = list(Lexer(source, filename).tokenize())
        result.token_count = len(tokens)
        program = Parser(tokens, filename, source_lines, diagnostics).parse()
        result.ast = program
        if diagnostics.has_errors():
            return self._finish(result)

        # Stage 3: Semantic analysis
        symbols = SymbolTable()
        externs = ExternSymbolTable(diagnostics)
        analyzer = SemanticAnalyzer(
            symbols, externs, diagnostics, source_lines, self.options.pointer_width,
        )
        analyzer.analyze(program)
        result.symbols = symbols
        result.externs = externs
        result.control_flow = analyzer.control_flow
        if diagnostics.has_errors():
            return self._finish(result)

        # Stage 4: Memory layout
        memory = MemoryManager(self.options.static_base, self.options.pointer_width)
        build_memory_layout(program, symbols, memory, diagnostics, source_lines)
        result.memory = memory
        if diagnostics.has_errors():
            return self._finish(result)

        # Stage 5: Code generation and linking
        instructions = CodeGenerator(symbols, memory).generate(program)
        linker = Linker(externs, diagnostics)
        instructions = linker.link(instructions)
        if self.options.resolve_externs:
            for name, address in self.options.extern_addresses.items():
                externs.resolve(name, address)
            instructions = linker.resolve_extern_symbols(instructions)

        result.instructions = instructions
        result.output = render_program(instructions)
        result.success = True
        return self._finish(result)

    def compile_file(self, filepath: str) -> CompilationResult:
        """
        Compile a source file.

        Raises:
            FileNotFoundError: If the source file does not exist
        """
        path = Path(filepath)
        if not path.exists():
            raise FileNotFoundError(f"Source file not found: {filepath}")
        return self.compile_source(path.read_text(encoding="utf-8"), filepath)

    def _finish(self, result: CompilationResult) -> CompilationResult:
        diagnostics = result.diagnostics
        if diagnostics.has_errors():
            result.success = False
            logger.debug(f"Compilation of {result.filename} failed with {diagnostics.error_count()} errors")
        else:
            logger.debug(
                f"Compiled {result.filename}: {len(result.instructions)} instructions, "
                f"{diagnostics.warning_count()} warnings"
            )
        return result


# =============================================================================
# Convenience Functions
# =============================================================================

def compile_sasm(
    source: str,
    filename: str = "<input>",
    options: Optional[CompilerOptions] = None,
) -> str:
    """
    Compile Sahne64 assembly source to target text.

    Raises:
        SasmCompilationError: If compilation fails

    Example:
        >>> compile_sasm("VAR x DWORD\\nx = 42")
        'MOV [4096], 42\\n'
    """
    result = SahneCompiler(options).compile_source(source, filename)
    result.raise_if_errors()
    return result.output


def compile_file(
    filepath: str,
    output_path: Optional[str] = None,
    options: Optional[CompilerOptions] = None,
) -> str:
    """
    Compile a source file, optionally writing the output.

    Raises:
        SasmCompilationError: If compilation fails
        FileNotFoundError: If the source file does not exist
    """
    result = SahneCompiler(options).compile_file(filepath)
    result.raise_if_errors()

    if output_path:
        Path(output_path).write_text(result.output, encoding="utf-8")

    return result.output
