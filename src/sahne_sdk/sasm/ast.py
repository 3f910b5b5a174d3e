"""
Sahne64 Abstract Syntax Tree (AST) Definitions
==============================================

This module defines the AST node types built by the Sahne64 parser.

Node Hierarchy
--------------
ASTNode (base)
├── ProgramNode - root node, ordered statement list
├── Statements
│   ├── LabelStatement - name:
│   ├── FlagDeclaration - FLAG ZF
│   ├── Assignment - name = expr
│   ├── JumpStatement - JUMP label
│   ├── AllocateMemory - ALLOCATE size AS handle
│   ├── ReleaseMemory - RELEASE handle
│   ├── SpawnTask - SPAWN procedure [WITH prio=expr]
│   ├── ExitTask - EXIT [code]
│   ├── SleepTask - SLEEP duration
│   ├── YieldTask - YIELD
│   ├── AcquireResource - ACQUIRE name AS handle
│   ├── ControlResource - CTRL handle, command
│   ├── SendMessage - SEND handle, message
│   ├── ReceiveMessage - RECV handle, buffer
│   ├── GetTaskId / GetCoreId / GetTotalCores - identity queries
│   └── Instruction - generic opcode with operands
└── Expressions
    ├── IdentifierExpression - name reference
    ├── NumberLiteral - integer constant
    ├── FlagLiteral - ZF, CF, SF, OF
    ├── StringLiteral - "text" or 'resource'
    ├── HandleLiteral - &N
    └── TaskIdLiteral - #N

Design Notes
------------
- Every node records its source location for error reporting
- Nodes are frozen and operand lists are tuples: passes read the tree,
  none of them modify it
"""

from dataclasses import dataclass
from typing import Any, Optional

from sahne_sdk.errors import SourceLocation


# =============================================================================
# AST Node Base Classes
# =============================================================================

@dataclass(frozen=True)
class ASTNode:
    """
    Base class for all AST nodes.

    Attributes:
        location: Source location where this node appears
    """
    location: SourceLocation


@dataclass(frozen=True)
class Expression(ASTNode):
    """Base class for operand expressions."""
    pass


@dataclass(frozen=True)
class Statement(ASTNode):
    """Base class for statements."""
    pass


# =============================================================================
# Expression Nodes
# =============================================================================

@dataclass(frozen=True)
class IdentifierExpression(Expression):
    name: str


@dataclass(frozen=True)
class NumberLiteral(Expression):
    value: int


@dataclass(frozen=True)
class FlagLiteral(Expression):
    name: str


@dataclass(frozen=True)
class StringLiteral(Expression):
    """
    String constant.

    Attributes:
        value: String contents without quotes
        resource: True when written as a 'resource-id'
    """
    value: str
    resource: bool = False


@dataclass(frozen=True)
class HandleLiteral(Expression):
    """&N: a numeric handle. Kernel-assigned, so never valid as an operand."""
    value: int


@dataclass(frozen=True)
class TaskIdLiteral(Expression):
    """#N: a numeric task id. Kernel-assigned, so never valid as an operand."""
    value: int


# =============================================================================
# Program Root Node
# =============================================================================

@dataclass(frozen=True)
class ProgramNode(ASTNode):
    """
    Root node: the ordered statements of one compilation unit.

    Attributes:
        statements: Statements in source order
    """
    statements: tuple[Statement, ...] = ()


# =============================================================================
# Statement Nodes
# =============================================================================

@dataclass(frozen=True)
class LabelStatement(Statement):
    name: str


@dataclass(frozen=True)
class FlagDeclaration(Statement):
    flag: str


@dataclass(frozen=True)
class Assignment(Statement):
    target: str
    value: Expression


@dataclass(frozen=True)
class JumpStatement(Statement):
    target: str


@dataclass(frozen=True)
class AllocateMemory(Statement):
    size: Expression
    handle: str


@dataclass(frozen=True)
class ReleaseMemory(Statement):
    handle: Expression


@dataclass(frozen=True)
class SpawnTask(Statement):
    """
    SPAWN procedure [WITH prio=expr].

    Attributes:
        procedure: Name of the procedure the new task runs
        priority: Optional priority expression
    """
    procedure: str
    priority: Optional[Expression] = None


@dataclass(frozen=True)
class ExitTask(Statement):
    code: Optional[Expression] = None


@dataclass(frozen=True)
class SleepTask(Statement):
    duration: Expression


@dataclass(frozen=True)
class YieldTask(Statement):
    pass


@dataclass(frozen=True)
class AcquireResource(Statement):
    name: Expression
    handle: str


@dataclass(frozen=True)
class ControlResource(Statement):
    handle: Expression
    command: Expression


@dataclass(frozen=True)
class SendMessage(Statement):
    handle: Expression
    message: Expression


@dataclass(frozen=True)
class ReceiveMessage(Statement):
    handle: Expression
    buffer: str


@dataclass(frozen=True)
class GetTaskId(Statement):
    target: str


@dataclass(frozen=True)
class GetCoreId(Statement):
    target: str


@dataclass(frozen=True)
class GetTotalCores(Statement):
    target: str


@dataclass(frozen=True)
class Instruction(Statement):
    """
    Generic instruction: an opcode and its operands.

    Covers arithmetic, comparison, logical, I/O, CALL, conditional jumps,
    and the VAR / GLOBAL / EXTERN / SAHNE64_API directives. Any other
    opcode is passed through to the output.
    """
    opcode: str
    operands: tuple[Expression, ...] = ()


# Statements that invoke a kernel service.
KERNEL_STATEMENTS = (
    AllocateMemory, ReleaseMemory, SpawnTask, ExitTask, SleepTask, YieldTask,
    AcquireResource, ControlResource, SendMessage, ReceiveMessage,
    GetTaskId, GetCoreId, GetTotalCores,
)


# =============================================================================
# AST Visitor Pattern
# =============================================================================

class ASTVisitor:
    """
    Base class for AST visitors.

    Subclasses override visit_* methods for the node types they care
    about; everything else falls back to generic_visit().

    Usage:
        class LabelCollector(ASTVisitor):
            def __init__(self):
                self.labels = []

            def visit_LabelStatement(self, node):
                self.labels.append(node.name)

        collector = LabelCollector()
        collector.visit(program)
    """

    def visit(self, node: ASTNode) -> Any:
        """Dispatch to visit_<ClassName>, or generic_visit if undefined."""
        method_name = f"visit_{node.__class__.__name__}"
        visitor = getattr(self, method_name, self.generic_visit)
        return visitor(node)

    def generic_visit(self, node: ASTNode) -> None:
        """Visit all child nodes."""
        for field_value in node.__dict__.values():
            if isinstance(field_value, ASTNode):
                self.visit(field_value)
            elif isinstance(field_value, tuple):
                for item in field_value:
                    if isinstance(item, ASTNode):
                        self.visit(item)


# =============================================================================
# AST Pretty Printer
# =============================================================================

class ASTPrinter(ASTVisitor):
    """
    Renders the AST one statement per line for debugging.

    Usage:
        printer = ASTPrinter()
        print(printer.print(program))

    Output:
        Program
          Allocate 1024 -> handle1
          Spawn worker prio=5
    """

    def __init__(self):
        self.output: list[str] = []

    def print(self, node: ASTNode) -> str:
        """Print the AST and return it as a string."""
        self.output = []
        self.visit(node)
        return "\n".join(self.output)

    def _emit(self, text: str) -> None:
        self.output.append(f"  {text}")

    def visit_ProgramNode(self, node: ProgramNode):
        self.output.append("Program")
        for stmt in node.statements:
            self.visit(stmt)

    def visit_LabelStatement(self, node: LabelStatement):
        self._emit(f"Label {node.name}")

    def visit_FlagDeclaration(self, node: FlagDeclaration):
        self._emit(f"Flag {node.flag}")

    def visit_Assignment(self, node: Assignment):
        self._emit(f"Assign {node.target} = {self._expr_str(node.value)}")

    def visit_JumpStatement(self, node: JumpStatement):
        self._emit(f"Jump {node.target}")

    def visit_AllocateMemory(self, node: AllocateMemory):
        self._emit(f"Allocate {self._expr_str(node.size)} -> {node.handle}")

    def visit_ReleaseMemory(self, node: ReleaseMemory):
        self._emit(f"Release {self._expr_str(node.handle)}")

    def visit_SpawnTask(self, node: SpawnTask):
        prio = f" prio={self._expr_str(node.priority)}" if node.priority else ""
        self._emit(f"Spawn {node.procedure}{prio}")

    def visit_ExitTask(self, node: ExitTask):
        code = f" {self._expr_str(node.code)}" if node.code else ""
        self._emit(f"Exit{code}")

    def visit_SleepTask(self, node: SleepTask):
        self._emit(f"Sleep {self._expr_str(node.duration)}")

    def visit_YieldTask(self, node: YieldTask):
        self._emit("Yield")

    def visit_AcquireResource(self, node: AcquireResource):
        self._emit(f"Acquire {self._expr_str(node.name)} -> {node.handle}")

    def visit_ControlResource(self, node: ControlResource):
        self._emit(f"Control {self._expr_str(node.handle)}, {self._expr_str(node.command)}")

    def visit_SendMessage(self, node: SendMessage):
        self._emit(f"Send {self._expr_str(node.handle)}, {self._expr_str(node.message)}")

    def visit_ReceiveMessage(self, node: ReceiveMessage):
        self._emit(f"Receive {self._expr_str(node.handle)} -> {node.buffer}")

    def visit_GetTaskId(self, node: GetTaskId):
        self._emit(f"GetTaskId -> {node.target}")

    def visit_GetCoreId(self, node: GetCoreId):
        self._emit(f"GetCoreId -> {node.target}")

    def visit_GetTotalCores(self, node: GetTotalCores):
        self._emit(f"GetTotalCores -> {node.target}")

    def visit_Instruction(self, node: Instruction):
        operands = ", ".join(self._expr_str(op) for op in node.operands)
        self._emit(f"Instruction {node.opcode} {operands}".rstrip())

    def _expr_str(self, expr: Expression) -> str:
        """Convert an expression to its source spelling."""
        if expr is None:
            return ""
        if isinstance(expr, NumberLiteral):
            return str(expr.value)
        if isinstance(expr, StringLiteral):
            quote = "'" if expr.resource else '"'
            return f"{quote}{expr.value}{quote}"
        if isinstance(expr, (IdentifierExpression, FlagLiteral)):
            return expr.name
        if isinstance(expr, HandleLiteral):
            return f"&{expr.value}"
        if isinstance(expr, TaskIdLiteral):
            return f"#{expr.value}"
        return f"<{type(expr).__name__}>"
