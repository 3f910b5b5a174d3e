"""
Sahne64 Semantic Analyzer
=========================

Validates a parsed program against scope, type and control-structure rules
and fills the symbol and extern tables as a side effect.

Passes
------
1. Collection: declares every label, every procedure (a label spelled
   PROCEDURE_<name>) and every GLOBAL / EXTERN / SAHNE64_API binding, so
   these may be referenced before they appear.
2. Validation: one ordered walk over the statements. Each statement is
   dispatched through a table keyed by its AST node type; the handler
   composes the declaration, type, procedure, operator, I/O and extern
   checks that apply to that node shape. Variables, handles and task ids
   are declared here, in program order.

Scopes
------
Statements before the first procedure label are in the global scope. A
PROCEDURE_<name> label opens local(<name>) until the next procedure label.
The scope of each statement is computed up front and passed to every
handler; the analyzer keeps no "current scope" state.

Diagnostics
-----------
Every check reports into a DiagnosticCollector. Operand checks report
individually, so one statement can contribute several errors. Control-flow
facts (transfers, unreachable statements) are recorded on the analyzer and
logged at debug level; they never fail the analysis.

Example Usage
-------------
>>> from sahne_sdk.sasm.parser import parse_source
>>> from sahne_sdk.sasm.analyzer import SemanticAnalyzer
>>> program = parse_source("JUMP missing_label")
>>> analyzer = SemanticAnalyzer()
>>> analyzer.analyze(program)
False
>>> analyzer.diagnostics.errors[0].message
"undefined symbol 'missing_label'"
"""

import logging
from dataclasses import dataclass
from typing import Callable, Iterator, Optional

from sahne_sdk.errors import SourceLocation
from sahne_sdk.sasm.ast import (
    ProgramNode,
    Statement,
    Expression,
    IdentifierExpression,
    NumberLiteral,
    FlagLiteral,
    StringLiteral,
    HandleLiteral,
    TaskIdLiteral,
    LabelStatement,
    FlagDeclaration,
    Assignment,
    JumpStatement,
    AllocateMemory,
    ReleaseMemory,
    SpawnTask,
    ExitTask,
    SleepTask,
    YieldTask,
    AcquireResource,
    ControlResource,
    SendMessage,
    ReceiveMessage,
    GetTaskId,
    GetCoreId,
    GetTotalCores,
    Instruction,
)
from sahne_sdk.sasm.errors import (
    DiagnosticCollector,
    SemanticError,
    DuplicateSymbolError,
    UndefinedSymbolError,
    UndefinedProcedureError,
    TypeMismatchError,
    UnknownTypeError,
    OperandCountError,
    find_similar_names,
)
from sahne_sdk.sasm.externs import ExternSymbolTable, SymbolBinding
from sahne_sdk.sasm.symbols import (
    GLOBAL_SCOPE,
    Scope,
    Symbol,
    SymbolKind,
    SymbolTable,
)
from sahne_sdk.sasm.types import (
    POINTER_WIDTH,
    TYPE_BYTE,
    TYPE_DWORD,
    TYPE_HANDLE,
    TYPE_STRING,
    TYPE_TASK_ID,
    TYPE_USIZE,
    TYPE_NAMES,
    BaseType,
    Type,
    default_integer_type,
    is_assignable,
    literal_fits,
    resolve_type_name,
)

logger = logging.getLogger(__name__)


# Label prefix that declares a procedure.
PROCEDURE_PREFIX = "PROCEDURE_"


# =============================================================================
# Opcode Classes
# =============================================================================

ARITHMETIC_OPCODES = frozenset({"ADD", "SUB", "MUL", "DIV", "MOD"})
COMPARISON_OPCODES = frozenset({"CMP"})
BINARY_LOGICAL_OPCODES = frozenset({"AND", "OR", "XOR"})
UNARY_LOGICAL_OPCODES = frozenset({"NOT"})
IO_OPCODES = frozenset({"READ", "WRITE"})
CALL_OPCODES = frozenset({"CALL"})
CONDITIONAL_JUMP_OPCODES = frozenset({
    "JZ", "JNZ", "JE", "JNE", "JC", "JNC", "JS", "JNS", "JO", "JNO",
})
EXTERN_DIRECTIVES = frozenset({"GLOBAL", "EXTERN", "SAHNE64_API"})
DIRECTIVE_OPCODES = EXTERN_DIRECTIVES | {"VAR"}


def procedure_name(label: str) -> Optional[str]:
    """Return the procedure declared by a label, or None for a plain label."""
    if label.startswith(PROCEDURE_PREFIX) and len(label) > len(PROCEDURE_PREFIX):
        return label[len(PROCEDURE_PREFIX):]
    return None


def scoped_statements(program: ProgramNode) -> Iterator[tuple[Statement, Scope]]:
    """
    Pair every statement with the scope it belongs to.

    A procedure label belongs to the procedure it opens.
    """
    scope = GLOBAL_SCOPE
    for stmt in program.statements:
        if isinstance(stmt, LabelStatement):
            proc = procedure_name(stmt.name)
            if proc is not None:
                scope = Scope.local(proc)
        yield stmt, scope


# =============================================================================
# Control-Flow Facts
# =============================================================================

@dataclass(frozen=True)
class ControlFlowFact:
    """
    Informational control-flow observation.

    Attributes:
        kind: 'jump', 'branch', 'call', 'spawn', 'exit', 'yield' or
            'unreachable'
        location: Statement the fact is about
        detail: Target name or other detail, when there is one
    """
    kind: str
    location: SourceLocation
    detail: Optional[str] = None


# =============================================================================
# Semantic Analyzer
# =============================================================================

class SemanticAnalyzer:
    """
    Validates a ProgramNode and populates the symbol and extern tables.

    Usage:
        analyzer = SemanticAnalyzer(diagnostics=diagnostics)
        if analyzer.analyze(program):
            layout = build_memory_layout(program, analyzer.symbols, ...)

    Attributes:
        symbols: Symbol table filled during analysis
        externs: Extern table filled by the directives
        diagnostics: Collector receiving errors and warnings
        control_flow: Recorded control-flow facts
    """

    def __init__(
        self,
        symbols: Optional[SymbolTable] = None,
        externs: Optional[ExternSymbolTable] = None,
        diagnostics: Optional[DiagnosticCollector] = None,
        source_lines: Optional[list[str]] = None,
        pointer_width: int = POINTER_WIDTH,
    ):
        self.diagnostics = diagnostics if diagnostics is not None else DiagnosticCollector()
        self.symbols = symbols if symbols is not None else SymbolTable()
        self.externs = externs if externs is not None else ExternSymbolTable(self.diagnostics)
        self.source_lines = source_lines or []
        self.pointer_width = pointer_width
        self.control_flow: list[ControlFlowFact] = []

        self._handlers: dict[type, Callable[[Statement, Scope], None]] = {
            LabelStatement: self._check_label,
            FlagDeclaration: self._check_flag,
            Assignment: self._check_assignment,
            JumpStatement: self._check_jump,
            AllocateMemory: self._check_allocate,
            ReleaseMemory: self._check_release,
            SpawnTask: self._check_spawn,
            ExitTask: self._check_exit,
            SleepTask: self._check_sleep,
            YieldTask: self._check_yield,
            AcquireResource: self._check_acquire,
            ControlResource: self._check_control,
            SendMessage: self._check_send,
            ReceiveMessage: self._check_receive,
            GetTaskId: self._check_identity_query,
            GetCoreId: self._check_identity_query,
            GetTotalCores: self._check_identity_query,
            Instruction: self._check_instruction,
        }

        self._opcode_handlers: dict[str, Callable[[Instruction, Scope], None]] = {}
        for opcode in ARITHMETIC_OPCODES:
            self._opcode_handlers[opcode] = self._check_arithmetic
        for opcode in COMPARISON_OPCODES:
            self._opcode_handlers[opcode] = self._check_comparison
        for opcode in BINARY_LOGICAL_OPCODES | UNARY_LOGICAL_OPCODES:
            self._opcode_handlers[opcode] = self._check_logical
        self._opcode_handlers["READ"] = self._check_read
        self._opcode_handlers["WRITE"] = self._check_write
        self._opcode_handlers["CALL"] = self._check_call
        for opcode in CONDITIONAL_JUMP_OPCODES:
            self._opcode_handlers[opcode] = self._check_conditional_jump
        self._opcode_handlers["VAR"] = self._check_var
        for opcode in EXTERN_DIRECTIVES:
            self._opcode_handlers[opcode] = self._check_extern_directive

    def analyze(self, program: ProgramNode) -> bool:
        """
        Run both passes over program.

        Returns:
            True if no errors were reported
        """
        errors_before = self.diagnostics.error_count()

        self._collect_declarations(program)
        self._validate(program)
        self._check_exports()

        found = self.diagnostics.error_count() - errors_before
        logger.debug(
            f"Semantic analysis finished: {len(self.symbols)} symbols, "
            f"{len(self.externs)} externs, {found} errors"
        )
        return found == 0

    # =========================================================================
    # Pass 1: Collection
    # =========================================================================

    def _collect_declarations(self, program: ProgramNode) -> None:
        """Declare labels, procedures and extern bindings ahead of use."""
        for stmt, scope in scoped_statements(program):
            try:
                if isinstance(stmt, LabelStatement):
                    self._collect_label(stmt, scope)
                elif isinstance(stmt, Instruction) and stmt.opcode in EXTERN_DIRECTIVES:
                    self._collect_extern(stmt)
            except SemanticError as e:
                self.diagnostics.add(e)

    def _collect_label(self, stmt: LabelStatement, scope: Scope) -> None:
        proc = procedure_name(stmt.name)
        if proc is None:
            self._declare(stmt.name, SymbolKind.LABEL, scope, None, stmt.location)
            return

        self._declare(stmt.name, SymbolKind.LABEL, GLOBAL_SCOPE, None, stmt.location)
        self._declare(proc, SymbolKind.PROCEDURE, GLOBAL_SCOPE, None, stmt.location)
        logger.debug(f"Procedure '{proc}' opens scope {Scope.local(proc)}")

    def _collect_extern(self, stmt: Instruction) -> None:
        """
        Populate the extern table from a directive.

            GLOBAL name
            EXTERN name
            SAHNE64_API name number
        """
        expected = 2 if stmt.opcode == "SAHNE64_API" else 1
        if len(stmt.operands) != expected:
            word = "operand" if expected == 1 else "operands"
            raise OperandCountError(
                stmt.opcode, f"{expected} {word}", len(stmt.operands),
                stmt.location, self._source_line(stmt.location),
            )

        name_expr = stmt.operands[0]
        if not isinstance(name_expr, IdentifierExpression):
            raise TypeMismatchError(
                f"{stmt.opcode} expects a symbol name",
                location=name_expr.location,
                source_line=self._source_line(name_expr.location),
            )
        name = name_expr.name

        if stmt.opcode == "GLOBAL":
            self.externs.declare(name, SymbolBinding.GLOBAL, stmt.location)
            return

        existing = self.symbols.lookup_in_scope(name, GLOBAL_SCOPE)
        if existing is not None and existing.kind != SymbolKind.EXTERNAL:
            raise DuplicateSymbolError(
                name, stmt.location, existing.location, self._source_line(stmt.location),
            )

        if stmt.opcode == "EXTERN":
            self.externs.declare(name, SymbolBinding.EXTERNAL, stmt.location)
        else:
            number = stmt.operands[1]
            if not isinstance(number, NumberLiteral) or number.value < 0:
                raise TypeMismatchError(
                    "SAHNE64_API expects a non-negative call number",
                    location=number.location,
                    source_line=self._source_line(number.location),
                )
            self.externs.declare(name, SymbolBinding.SAHNE64_API, stmt.location)
            self.externs.resolve(name, number.value, stmt.location)

        self.symbols.insert(
            Symbol(name, SymbolKind.EXTERNAL, GLOBAL_SCOPE, TYPE_USIZE, stmt.location)
        )

    # =========================================================================
    # Pass 2: Validation Walk
    # =========================================================================

    def _validate(self, program: ProgramNode) -> None:
        after_transfer = False

        for stmt, scope in scoped_statements(program):
            if after_transfer and not isinstance(stmt, LabelStatement):
                self._record("unreachable", stmt.location)
            after_transfer = isinstance(stmt, (JumpStatement, ExitTask))

            handler = self._handlers[type(stmt)]
            try:
                handler(stmt, scope)
            except SemanticError as e:
                self.diagnostics.add(e)

            if self.diagnostics.should_stop():
                logger.debug("Error limit reached, stopping semantic analysis")
                break

    def _check_exports(self) -> None:
        """GLOBAL names must be declared somewhere in the unit."""
        for extern in self.externs:
            if extern.binding == SymbolBinding.GLOBAL and extern.name not in self.symbols:
                self.diagnostics.add(self._undefined(extern.name, extern.location))

    # =========================================================================
    # Statement Handlers
    # =========================================================================

    def _check_label(self, stmt: LabelStatement, scope: Scope) -> None:
        pass

    def _check_flag(self, stmt: FlagDeclaration, scope: Scope) -> None:
        logger.debug(f"Flag {stmt.flag} declared at {stmt.location}")

    def _check_assignment(self, stmt: Assignment, scope: Scope) -> None:
        target = self._lookup(stmt.target, scope)
        if target is None:
            raise self._undefined(stmt.target, stmt.location, self._value_names())
        if target.kind != SymbolKind.VARIABLE:
            raise TypeMismatchError(
                f"cannot assign to {target.kind.name.lower()} '{stmt.target}'",
                location=stmt.location,
                source_line=self._source_line(stmt.location),
            )

        value_type = self._operand(stmt.value, target.type, scope)
        if target.type is None and value_type is not None:
            target.type = value_type
            logger.debug(f"Variable '{target.name}' typed {value_type} by assignment")

    def _check_jump(self, stmt: JumpStatement, scope: Scope) -> None:
        self._resolve_label(stmt.target, stmt.location, scope)
        self._record("jump", stmt.location, stmt.target)

    def _check_allocate(self, stmt: AllocateMemory, scope: Scope) -> None:
        self._operand(stmt.size, TYPE_USIZE, scope)
        self._declare(stmt.handle, SymbolKind.HANDLE, scope, TYPE_HANDLE, stmt.location)

    def _check_release(self, stmt: ReleaseMemory, scope: Scope) -> None:
        self._operand(stmt.handle, TYPE_USIZE, scope)

    def _check_spawn(self, stmt: SpawnTask, scope: Scope) -> None:
        if stmt.priority is not None:
            self._operand(stmt.priority, TYPE_DWORD, scope)
        self._record("spawn", stmt.location, stmt.procedure)
        self._resolve_procedure(stmt.procedure, stmt.location, allow_extern=False)

    def _check_exit(self, stmt: ExitTask, scope: Scope) -> None:
        if stmt.code is not None:
            self._operand(stmt.code, TYPE_DWORD, scope)
        self._record("exit", stmt.location)

    def _check_sleep(self, stmt: SleepTask, scope: Scope) -> None:
        self._operand(stmt.duration, TYPE_DWORD, scope)

    def _check_yield(self, stmt: YieldTask, scope: Scope) -> None:
        self._record("yield", stmt.location)

    def _check_acquire(self, stmt: AcquireResource, scope: Scope) -> None:
        self._operand(stmt.name, TYPE_STRING, scope)
        self._declare(stmt.handle, SymbolKind.HANDLE, scope, TYPE_HANDLE, stmt.location)

    def _check_control(self, stmt: ControlResource, scope: Scope) -> None:
        self._operand(stmt.handle, TYPE_USIZE, scope)
        self._operand(stmt.command, TYPE_DWORD, scope)

    def _check_send(self, stmt: SendMessage, scope: Scope) -> None:
        self._operand(stmt.handle, TYPE_USIZE, scope)
        self._operand(stmt.message, None, scope)

    def _check_receive(self, stmt: ReceiveMessage, scope: Scope) -> None:
        self._operand(stmt.handle, TYPE_USIZE, scope)
        self._resolve_variable(stmt.buffer, stmt.location, scope)

    def _check_identity_query(self, stmt: GetTaskId | GetCoreId | GetTotalCores, scope: Scope) -> None:
        symbol_type = TYPE_TASK_ID if isinstance(stmt, GetTaskId) else TYPE_USIZE
        self._declare(stmt.target, SymbolKind.TASK_ID, scope, symbol_type, stmt.location)

    def _check_instruction(self, stmt: Instruction, scope: Scope) -> None:
        handler = self._opcode_handlers.get(stmt.opcode, self._check_passthrough)
        handler(stmt, scope)

    # =========================================================================
    # Generic Instruction Handlers
    # =========================================================================

    def _check_arithmetic(self, stmt: Instruction, scope: Scope) -> None:
        self._require_count(stmt, 2)
        for operand in stmt.operands:
            self._guarded(self._require_numeric, stmt.opcode, operand, scope)

    def _check_comparison(self, stmt: Instruction, scope: Scope) -> None:
        self._require_count(stmt, 2)
        for operand in stmt.operands:
            self._guarded(self._require_comparable, stmt.opcode, operand, scope)

    def _check_logical(self, stmt: Instruction, scope: Scope) -> None:
        self._require_count(stmt, 1 if stmt.opcode in UNARY_LOGICAL_OPCODES else 2)
        for operand in stmt.operands:
            self._guarded(self._require_logical, stmt.opcode, operand, scope)

    def _check_read(self, stmt: Instruction, scope: Scope) -> None:
        self._require_count(stmt, 1)
        operand = stmt.operands[0]
        if not isinstance(operand, IdentifierExpression):
            raise self._mismatch("READ expects a variable", operand)
        self._resolve_variable(operand.name, operand.location, scope)

    def _check_write(self, stmt: Instruction, scope: Scope) -> None:
        self._require_count(stmt, 1)
        operand = stmt.operands[0]
        if isinstance(operand, IdentifierExpression):
            self._resolve_variable(operand.name, operand.location, scope)
        elif isinstance(operand, (NumberLiteral, FlagLiteral, StringLiteral)):
            return
        else:
            raise self._mismatch(
                "WRITE expects a variable, number, flag or string", operand,
            )

    def _check_call(self, stmt: Instruction, scope: Scope) -> None:
        if not stmt.operands:
            raise OperandCountError(
                stmt.opcode, "at least 1 operand", 0,
                stmt.location, self._source_line(stmt.location),
            )
        target = stmt.operands[0]
        if not isinstance(target, IdentifierExpression):
            raise self._mismatch("CALL expects a procedure name", target)
        self._record("call", stmt.location, target.name)
        for argument in stmt.operands[1:]:
            self._operand(argument, None, scope)
        self._resolve_procedure(target.name, target.location, allow_extern=True)

    def _check_conditional_jump(self, stmt: Instruction, scope: Scope) -> None:
        if not stmt.operands:
            raise OperandCountError(
                stmt.opcode, "at least 1 operand", 0,
                stmt.location, self._source_line(stmt.location),
            )
        target = stmt.operands[0]
        if not isinstance(target, IdentifierExpression):
            raise self._mismatch(f"{stmt.opcode} expects a label", target)
        self._record("branch", stmt.location, target.name)
        for operand in stmt.operands[1:]:
            self._operand(operand, None, scope)
        self._resolve_label(target.name, target.location, scope)

    def _check_var(self, stmt: Instruction, scope: Scope) -> None:
        """VAR name [type] declares a variable in the statement's scope."""
        if len(stmt.operands) not in (1, 2):
            raise OperandCountError(
                "VAR", "1 or 2 operands", len(stmt.operands),
                stmt.location, self._source_line(stmt.location),
            )

        name = stmt.operands[0]
        if not isinstance(name, IdentifierExpression):
            raise self._mismatch("VAR expects a variable name", name)

        var_type = None
        if len(stmt.operands) == 2:
            type_name = stmt.operands[1]
            if not isinstance(type_name, IdentifierExpression):
                raise self._mismatch("VAR expects a type name", type_name)
            var_type = resolve_type_name(type_name.name)
            if var_type is None:
                raise UnknownTypeError(
                    type_name.name,
                    type_name.location,
                    self._source_line(type_name.location),
                    known_types=list(TYPE_NAMES),
                )

        self._declare(name.name, SymbolKind.VARIABLE, scope, var_type, name.location)

    def _check_extern_directive(self, stmt: Instruction, scope: Scope) -> None:
        # Declared during collection.
        pass

    def _check_passthrough(self, stmt: Instruction, scope: Scope) -> None:
        """Any other opcode: identifier operands must name something declared."""
        for operand in stmt.operands:
            if isinstance(operand, IdentifierExpression):
                if operand.name not in self.symbols and operand.name not in self.externs:
                    self.diagnostics.add(self._undefined(operand.name, operand.location))
            else:
                self._operand(operand, None, scope)

    # =========================================================================
    # Shared Checks
    # =========================================================================

    def _operand(self, expr: Expression, expected: Optional[Type], scope: Scope) -> Optional[Type]:
        """
        Check one operand against an expected type and report failures.

        Returns:
            The operand's type, or None if unknown or invalid
        """
        try:
            return self._type_of(expr, expected, scope)
        except SemanticError as e:
            self.diagnostics.add(e)
            return None

    def _type_of(self, expr: Expression, expected: Optional[Type], scope: Scope) -> Optional[Type]:
        """
        Resolve the type of expr, checking it against expected.

        An untyped variable used where a type is expected takes that type.

        Raises:
            UndefinedSymbolError: Identifier not declared
            TypeMismatchError: Value not accepted for expected
        """
        if isinstance(expr, IdentifierExpression):
            symbol = self._lookup(expr.name, scope)
            if symbol is None:
                raise self._undefined(expr.name, expr.location, self._value_names())
            if not symbol.is_value:
                raise self._mismatch(
                    f"{symbol.kind.name.lower()} '{expr.name}' is not a value", expr,
                )
            if expected is None:
                return symbol.type
            if symbol.type is None:
                symbol.type = expected
                logger.debug(f"Variable '{symbol.name}' typed {expected} by first use")
                return expected
            if not is_assignable(expected, symbol.type, self.pointer_width):
                raise self._mismatch(
                    f"'{expr.name}' has the wrong type", expr, expected, symbol.type,
                )
            return symbol.type

        if isinstance(expr, NumberLiteral):
            if expected is not None:
                if expected.base not in (BaseType.INTEGER, BaseType.POINTER):
                    raise self._mismatch(
                        "integer literal where a non-numeric value is expected",
                        expr, expected, default_integer_type(expr.value),
                    )
                if not literal_fits(expected, expr.value, self.pointer_width):
                    raise self._mismatch(
                        f"literal {expr.value} does not fit in {expected}", expr,
                    )
                return expected
            return default_integer_type(expr.value)

        if isinstance(expr, FlagLiteral):
            if expected is not None and not expected.is_integer:
                raise self._mismatch("flag where a non-integer is expected", expr, expected, TYPE_BYTE)
            return TYPE_BYTE

        if isinstance(expr, StringLiteral):
            if expected is not None and not expected.is_string:
                raise self._mismatch("string literal where a string is not expected", expr, expected, TYPE_STRING)
            return TYPE_STRING

        if isinstance(expr, HandleLiteral):
            raise self._mismatch(
                f"handle literal &{expr.value} cannot be used; handles are assigned by the kernel",
                expr,
            )

        if isinstance(expr, TaskIdLiteral):
            raise self._mismatch(
                f"task id literal #{expr.value} cannot be used; task ids are assigned by the kernel",
                expr,
            )

        raise self._mismatch(f"unsupported operand {type(expr).__name__}", expr)

    def _guarded(
        self,
        check: Callable[[str, Expression, Scope], None],
        opcode: str,
        operand: Expression,
        scope: Scope,
    ) -> None:
        try:
            check(opcode, operand, scope)
        except SemanticError as e:
            self.diagnostics.add(e)

    def _require_count(self, stmt: Instruction, count: int) -> None:
        if len(stmt.operands) != count:
            word = "operand" if count == 1 else "operands"
            raise OperandCountError(
                stmt.opcode, f"{count} {word}", len(stmt.operands),
                stmt.location, self._source_line(stmt.location),
            )

    def _require_numeric(self, opcode: str, operand: Expression, scope: Scope) -> None:
        if isinstance(operand, NumberLiteral):
            return
        if not isinstance(operand, IdentifierExpression):
            raise self._mismatch(f"{opcode} operand must be numeric", operand)
        operand_type = self._type_of(operand, None, scope)
        if operand_type is not None and operand_type.base not in (BaseType.INTEGER, BaseType.POINTER):
            raise self._mismatch(
                f"{opcode} operand '{operand.name}' must be numeric", operand,
                "integer", operand_type,
            )

    def _require_comparable(self, opcode: str, operand: Expression, scope: Scope) -> None:
        if isinstance(operand, (NumberLiteral, FlagLiteral)):
            return
        if not isinstance(operand, IdentifierExpression):
            raise self._mismatch(
                f"{opcode} operand must be a number, identifier or flag", operand,
            )
        self._type_of(operand, None, scope)

    def _require_logical(self, opcode: str, operand: Expression, scope: Scope) -> None:
        if isinstance(operand, (NumberLiteral, FlagLiteral)):
            return
        if not isinstance(operand, IdentifierExpression):
            raise self._mismatch(f"{opcode} operand must be an integer", operand)
        operand_type = self._type_of(operand, None, scope)
        if operand_type is not None and not operand_type.is_integer:
            raise self._mismatch(
                f"{opcode} operand '{operand.name}' must be an integer", operand,
                "integer", operand_type,
            )

    def _resolve_label(self, name: str, location: SourceLocation, scope: Scope) -> Symbol:
        symbol = self.symbols.lookup_kind(name, SymbolKind.LABEL, scope)
        if symbol is None:
            labels = [s.name for s in self.symbols.of_kind(SymbolKind.LABEL)]
            raise self._undefined(name, location, labels)
        return symbol

    def _resolve_procedure(self, name: str, location: SourceLocation, allow_extern: bool) -> None:
        if self.symbols.lookup_kind(name, SymbolKind.PROCEDURE) is not None:
            return

        if allow_extern:
            extern = self.externs.lookup(name)
            if extern is not None and extern.binding in (SymbolBinding.EXTERNAL, SymbolBinding.SAHNE64_API):
                return

        procedures = [s.name for s in self.symbols.of_kind(SymbolKind.PROCEDURE)]
        raise UndefinedProcedureError(
            name, location, self._source_line(location),
            find_similar_names(name, procedures),
        )

    def _resolve_variable(self, name: str, location: SourceLocation, scope: Scope) -> Symbol:
        symbol = self._lookup(name, scope)
        if symbol is None:
            raise self._undefined(name, location, self._value_names())
        if symbol.kind != SymbolKind.VARIABLE:
            raise TypeMismatchError(
                f"'{name}' is a {symbol.kind.name.lower()}, not a variable",
                location=location,
                source_line=self._source_line(location),
            )
        return symbol

    def _declare(
        self,
        name: str,
        kind: SymbolKind,
        scope: Scope,
        symbol_type: Optional[Type],
        location: SourceLocation,
    ) -> Symbol:
        existing = self.symbols.lookup_in_scope(name, scope)
        if existing is not None:
            raise DuplicateSymbolError(
                name, location, existing.location, self._source_line(location),
            )
        symbol = Symbol(name, kind, scope, symbol_type, location)
        self.symbols.insert(symbol)
        logger.debug(f"Declared {kind.name.lower()} '{name}' in {scope}")
        return symbol

    # =========================================================================
    # Helpers
    # =========================================================================

    def _lookup(self, name: str, scope: Scope) -> Optional[Symbol]:
        """Find name in scope, then the global scope, then anywhere."""
        symbol = self.symbols.lookup_in_scope(name, scope)
        if symbol is None and not scope.is_global:
            symbol = self.symbols.lookup_in_scope(name, GLOBAL_SCOPE)
        if symbol is None:
            symbol = self.symbols.lookup(name)
        return symbol

    def _record(self, kind: str, location: SourceLocation, detail: Optional[str] = None) -> None:
        fact = ControlFlowFact(kind, location, detail)
        self.control_flow.append(fact)
        target = f" -> {detail}" if detail else ""
        logger.debug(f"Control flow at {location}: {kind}{target}")

    def _value_names(self) -> list[str]:
        return [s.name for s in self.symbols if s.is_value]

    def _undefined(
        self,
        name: str,
        location: Optional[SourceLocation],
        candidates: Optional[list[str]] = None,
    ) -> UndefinedSymbolError:
        similar = find_similar_names(name, candidates if candidates is not None else self.symbols.names())
        return UndefinedSymbolError(name, location, self._source_line(location), similar)

    def _mismatch(
        self,
        message: str,
        expr: Expression,
        expected: Optional[Type | str] = None,
        actual: Optional[Type | str] = None,
    ) -> TypeMismatchError:
        return TypeMismatchError(
            message,
            expected_type=str(expected) if expected is not None else None,
            actual_type=str(actual) if actual is not None else None,
            location=expr.location,
            source_line=self._source_line(expr.location),
        )

    def _source_line(self, location: Optional[SourceLocation]) -> Optional[str]:
        if location is None:
            return None
        if 0 < location.line <= len(self.source_lines):
            return self.source_lines[location.line - 1]
        return None
