"""
Sahne64 Code Generator
======================

Lowers a validated AST to TargetInstruction values, one statement at a
time in program order.

Lowering Rules
--------------
| Statement                  | Output                                  |
|----------------------------|-----------------------------------------|
| name:                      | name:                                   |
| x = 42   (x global)        | MOV [<static address of x>], 42         |
| x = 42   (x local)         | MOV x, 42                               |
| x = y, x = CF, x = "s"     | MOV x, y                                |
| JUMP t                     | JUMP t                                  |
| kernel statement           | SYS_CALL n / ARG ... / RES ...          |
| VAR, SAHNE64_API           | nothing (compile-time only)             |
| GLOBAL n, EXTERN n         | emitted as written                      |
| any other opcode           | OPCODE op1, op2, ...                    |

Kernel statements are driven by the syscalls table: the service number,
one ARG per input read from the statement field of the same name (optional
inputs only when present), and RES from the call's target field.

A plain label declared in more than one procedure is written as
<procedure>.<label>, and jumps to it use the same spelling, so every label
line in the output is unique.

The generator only runs on programs that passed semantic analysis. An
operand it cannot lower is a compiler defect and raises
UnsupportedOperandError to the caller instead of being collected.
"""

import logging

from sahne_sdk.sasm.analyzer import CONDITIONAL_JUMP_OPCODES, procedure_name
from sahne_sdk.sasm.ast import (
    ASTVisitor,
    ProgramNode,
    Statement,
    Expression,
    IdentifierExpression,
    NumberLiteral,
    FlagLiteral,
    StringLiteral,
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
from sahne_sdk.sasm.errors import UnsupportedOperandError
from sahne_sdk.sasm.instructions import Operand, TargetInstruction
from sahne_sdk.sasm.memory import MemoryManager
from sahne_sdk.sasm.symbols import GLOBAL_SCOPE, Scope, SymbolKind, SymbolTable
from sahne_sdk.sasm.syscalls import syscall_for

logger = logging.getLogger(__name__)


# Directives consumed at compile time.
SILENT_DIRECTIVES = frozenset({"VAR", "SAHNE64_API"})

# Directives passed to the loader with their names untouched.
LINKAGE_DIRECTIVES = frozenset({"GLOBAL", "EXTERN"})


class CodeGenerator(ASTVisitor):
    """
    Generates target instructions from an analyzed program.

    Usage:
        generator = CodeGenerator(analyzer.symbols, memory)
        instructions = generator.generate(program)
    """

    def __init__(self, symbols: SymbolTable, memory: MemoryManager):
        self.symbols = symbols
        self.memory = memory
        self._output: list[TargetInstruction] = []
        self._scope: Scope = GLOBAL_SCOPE

    def generate(self, program: ProgramNode) -> list[TargetInstruction]:
        """Lower program and return its instructions."""
        self._output = []
        self._scope = GLOBAL_SCOPE
        self.visit(program)
        logger.debug(f"Generated {len(self._output)} instructions")
        return self._output

    # =========================================================================
    # Emission Helpers
    # =========================================================================

    def _emit(self, instruction: TargetInstruction) -> None:
        self._output.append(instruction)

    def _emit_syscall(self, stmt: Statement) -> None:
        """
        Emit SYS_CALL, one ARG per present input, and RES for calls with a result.

        Raises:
            UnsupportedOperandError: an argument cannot be lowered
        """
        call = syscall_for(stmt)
        logger.debug(f"Lowering {call.format_signature()} at {stmt.location}")
        self._emit(TargetInstruction.sys_call(call.number, stmt.location))

        for param in call.inputs:
            value = getattr(stmt, param.name)
            if value is None:
                continue
            # SPAWN names its procedure directly.
            if isinstance(value, str):
                value = IdentifierExpression(stmt.location, value)
            self._emit(TargetInstruction.arg(self._operand(value), stmt.location))

        if call.target is not None:
            self._emit(TargetInstruction.res(getattr(stmt, call.target), stmt.location))

    def _label(self, name: str) -> str:
        """Output spelling of the label name refers to from the current scope."""
        symbol = self.symbols.lookup_kind(name, SymbolKind.LABEL, self._scope)
        if symbol is None or symbol.scope.is_global:
            return name
        same_name = [s for s in self.symbols.of_kind(SymbolKind.LABEL) if s.name == name]
        if len(same_name) == 1:
            return name
        return f"{symbol.scope.procedure}.{name}"

    def _operand(self, expr: Expression) -> Operand:
        """Lower an expression to an output operand."""
        if isinstance(expr, IdentifierExpression):
            return Operand.symbol(expr.name)
        if isinstance(expr, NumberLiteral):
            return Operand.immediate(expr.value)
        if isinstance(expr, FlagLiteral):
            return Operand.flag(expr.name)
        if isinstance(expr, StringLiteral):
            return Operand.string(expr.value)
        raise UnsupportedOperandError(repr(expr), expr.location)

    # =========================================================================
    # Program Structure
    # =========================================================================

    def visit_ProgramNode(self, node: ProgramNode) -> None:
        for stmt in node.statements:
            self.visit(stmt)

    def visit_LabelStatement(self, node: LabelStatement) -> None:
        proc = procedure_name(node.name)
        if proc is not None:
            self._scope = Scope.local(proc)
        self._emit(TargetInstruction.label(self._label(node.name), node.location))

    def visit_FlagDeclaration(self, node: FlagDeclaration) -> None:
        pass

    def visit_Assignment(self, node: Assignment) -> None:
        value = self._operand(node.value)
        dest = Operand.name(node.target)

        # Only a global assigned a number is written through its static address.
        if isinstance(node.value, NumberLiteral):
            local = None
            if not self._scope.is_global:
                local = self.symbols.lookup_in_scope(node.target, self._scope)
            address = self.memory.static_address(node.target)
            if local is None and address is not None:
                dest = Operand.static(address)

        self._emit(TargetInstruction.mov(dest, value, node.location))

    def visit_JumpStatement(self, node: JumpStatement) -> None:
        self._emit(TargetInstruction.jump(self._label(node.target), node.location))

    # =========================================================================
    # Kernel Statements
    # =========================================================================

    def visit_AllocateMemory(self, node: AllocateMemory) -> None:
        self._emit_syscall(node)

    def visit_ReleaseMemory(self, node: ReleaseMemory) -> None:
        self._emit_syscall(node)

    def visit_SpawnTask(self, node: SpawnTask) -> None:
        self._emit_syscall(node)

    def visit_ExitTask(self, node: ExitTask) -> None:
        self._emit_syscall(node)

    def visit_SleepTask(self, node: SleepTask) -> None:
        self._emit_syscall(node)

    def visit_YieldTask(self, node: YieldTask) -> None:
        self._emit_syscall(node)

    def visit_AcquireResource(self, node: AcquireResource) -> None:
        self._emit_syscall(node)

    def visit_ControlResource(self, node: ControlResource) -> None:
        self._emit_syscall(node)

    def visit_SendMessage(self, node: SendMessage) -> None:
        self._emit_syscall(node)

    def visit_ReceiveMessage(self, node: ReceiveMessage) -> None:
        self._emit_syscall(node)

    def visit_GetTaskId(self, node: GetTaskId) -> None:
        self._emit_syscall(node)

    def visit_GetCoreId(self, node: GetCoreId) -> None:
        self._emit_syscall(node)

    def visit_GetTotalCores(self, node: GetTotalCores) -> None:
        self._emit_syscall(node)

    # =========================================================================
    # Generic Instructions
    # =========================================================================

    def visit_Instruction(self, node: Instruction) -> None:
        if node.opcode in SILENT_DIRECTIVES:
            return

        if node.opcode in LINKAGE_DIRECTIVES:
            operands = tuple(Operand.name(op.name) for op in node.operands)
        else:
            operands = tuple(self._operand(op) for op in node.operands)
            if node.opcode in CONDITIONAL_JUMP_OPCODES and operands:
                operands = (Operand.name(self._label(node.operands[0].name)),) + operands[1:]
        self._emit(TargetInstruction(node.opcode, operands, node.location))
