"""
Sahne64 Assembly Compiler
=========================

Compiles Sahne64 assembly into a linear instruction stream for the
Sahne64 loader.

Pipeline
--------
    Source → [Macros] → Lexer → Parser → AST → Semantic Analyzer
           → Memory Layout → Code Generator → Linker → Instructions

Usage
-----
>>> from sahne_sdk.sasm import compile_sasm
>>> print(compile_sasm('''
... SAHNE64_API read_api 10
... CALL read_api
... '''), end="")
CALL 10
"""

from sahne_sdk.sasm.compiler import (
    SahneCompiler,
    CompilerOptions,
    CompilationResult,
    compile_sasm,
    compile_file,
)
from sahne_sdk.sasm.errors import (
    SasmError,
    SasmCompilationError,
    LexicalError,
    SasmSyntaxError,
    SemanticError,
    DuplicateSymbolError,
    UndefinedSymbolError,
    UndefinedProcedureError,
    TypeMismatchError,
    UnknownTypeError,
    OperandCountError,
    MemoryLayoutError,
    DuplicateAllocationError,
    UnknownHandleError,
    CodeGenError,
    UnsupportedOperandError,
    MacroExpansionError,
    SasmWarning,
    UnresolvedExternalWarning,
    DiagnosticCollector,
)
from sahne_sdk.sasm.lexer import Lexer, Token, TokenType
from sahne_sdk.sasm.parser import Parser, parse_source
from sahne_sdk.sasm.ast import ASTPrinter, ASTVisitor, ProgramNode
from sahne_sdk.sasm.analyzer import SemanticAnalyzer
from sahne_sdk.sasm.memory import MemoryManager
from sahne_sdk.sasm.codegen import CodeGenerator
from sahne_sdk.sasm.linker import Linker, resolve_extern_symbols
from sahne_sdk.sasm.macros import MacroProcessor
from sahne_sdk.sasm.instructions import Operand, TargetInstruction, render_program
from sahne_sdk.sasm.syscalls import SYSTEM_CALLS, get_syscall, get_syscall_by_number

__all__ = [
    # Compiler
    "SahneCompiler",
    "CompilerOptions",
    "CompilationResult",
    "compile_sasm",
    "compile_file",
    # Errors
    "SasmError",
    "SasmCompilationError",
    "LexicalError",
    "SasmSyntaxError",
    "SemanticError",
    "DuplicateSymbolError",
    "UndefinedSymbolError",
    "UndefinedProcedureError",
    "TypeMismatchError",
    "UnknownTypeError",
    "OperandCountError",
    "MemoryLayoutError",
    "DuplicateAllocationError",
    "UnknownHandleError",
    "CodeGenError",
    "UnsupportedOperandError",
    "MacroExpansionError",
    "SasmWarning",
    "UnresolvedExternalWarning",
    "DiagnosticCollector",
    # Stages
    "Lexer",
    "Token",
    "TokenType",
    "Parser",
    "parse_source",
    "ASTPrinter",
    "ASTVisitor",
    "ProgramNode",
    "SemanticAnalyzer",
    "MemoryManager",
    "CodeGenerator",
    "Linker",
    "resolve_extern_symbols",
    "MacroProcessor",
    "Operand",
    "TargetInstruction",
    "render_program",
    "SYSTEM_CALLS",
    "get_syscall",
    "get_syscall_by_number",
]
