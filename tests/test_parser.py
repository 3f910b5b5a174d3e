# =============================================================================
# test_parser.py - Parser Unit Tests
# =============================================================================
# Tests for the Sahne64 recursive descent parser.
#
# Test coverage includes:
#   - Every statement form and its operand grammar
#   - Labels, assignments and generic instructions
#   - Line rules: statement ends, trailing-comma continuation
#   - Error reporting (expected vs. found) and recovery
#   - Lexical errors surfaced through the parser
#   - AST printer output
# =============================================================================

import pytest
from sahne_sdk.errors import SourceLocation
from sahne_sdk.sasm.parser import parse_source
from sahne_sdk.sasm.ast import (
    ASTPrinter,
    ASTVisitor,
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
    InvalidCharacterError,
    UnexpectedTokenError,
    UnterminatedStringError,
)


# =============================================================================
# Helper Functions
# =============================================================================

def parse(source: str, filename: str = "<test>"):
    """Parse source and return (program, diagnostics)."""
    diagnostics = DiagnosticCollector()
    program = parse_source(source, filename, diagnostics)
    return program, diagnostics


def parse_ok(source: str):
    """Parse source that must be free of errors and return its statements."""
    program, diagnostics = parse(source)
    assert not diagnostics.has_errors(), diagnostics.report()
    return program.statements


def parse_one(source: str):
    statements = parse_ok(source)
    assert len(statements) == 1
    return statements[0]


# =============================================================================
# Simple Statement Tests
# =============================================================================

class TestSimpleStatements:

    def test_empty_program(self):
        program, diagnostics = parse("")
        assert program.statements == ()
        assert not diagnostics.has_errors()

    def test_program_location(self):
        program, _ = parse("YIELD", "task.sasm")
        assert program.location == SourceLocation("task.sasm", 1, 1)

    def test_label(self):
        stmt = parse_one("start:")
        assert isinstance(stmt, LabelStatement)
        assert stmt.name == "start"

    def test_label_shares_line_with_statement(self):
        statements = parse_ok("loop: YIELD")
        assert isinstance(statements[0], LabelStatement)
        assert isinstance(statements[1], YieldTask)

    def test_flag_declaration(self):
        stmt = parse_one("FLAG ZF")
        assert isinstance(stmt, FlagDeclaration)
        assert stmt.flag == "ZF"

    def test_assignment(self):
        stmt = parse_one("x = 42")
        assert isinstance(stmt, Assignment)
        assert stmt.target == "x"
        assert isinstance(stmt.value, NumberLiteral)
        assert stmt.value.value == 42

    def test_assignment_of_identifier(self):
        stmt = parse_one("x = y")
        assert isinstance(stmt.value, IdentifierExpression)
        assert stmt.value.name == "y"

    def test_jump(self):
        stmt = parse_one("JUMP loop")
        assert isinstance(stmt, JumpStatement)
        assert stmt.target == "loop"

    def test_statement_location(self):
        statements = parse_ok("YIELD\n  JUMP top\ntop:")
        assert statements[1].location.line == 2
        assert statements[1].location.column == 3


# =============================================================================
# Kernel Statement Tests
# =============================================================================

class TestKernelStatements:

    def test_allocate(self):
        stmt = parse_one("ALLOCATE 1024 AS handle1")
        assert isinstance(stmt, AllocateMemory)
        assert stmt.size == NumberLiteral(stmt.size.location, 1024)
        assert stmt.handle == "handle1"

    def test_allocate_with_variable_size(self):
        stmt = parse_one("ALLOCATE size AS buf")
        assert isinstance(stmt.size, IdentifierExpression)

    def test_release(self):
        stmt = parse_one("RELEASE handle1")
        assert isinstance(stmt, ReleaseMemory)
        assert stmt.handle.name == "handle1"

    def test_spawn(self):
        stmt = parse_one("SPAWN worker")
        assert isinstance(stmt, SpawnTask)
        assert stmt.procedure == "worker"
        assert stmt.priority is None

    def test_spawn_with_priority(self):
        stmt = parse_one("SPAWN worker WITH prio=5")
        assert stmt.procedure == "worker"
        assert stmt.priority.value == 5

    def test_spawn_priority_must_be_named_prio(self):
        _, diagnostics = parse("SPAWN worker WITH priority=5")
        error = diagnostics.errors[0]
        assert isinstance(error, UnexpectedTokenError)
        assert error.expected == "'prio'"

    def test_spawn_with_clause_must_share_line(self):
        _, diagnostics = parse("SPAWN worker\nWITH prio=5")
        assert diagnostics.has_errors()

    def test_exit_without_code(self):
        stmt = parse_one("EXIT")
        assert isinstance(stmt, ExitTask)
        assert stmt.code is None

    def test_exit_with_code(self):
        stmt = parse_one("EXIT 3")
        assert stmt.code.value == 3

    def test_exit_code_must_share_line(self):
        """A number on the next line is not the exit code."""
        statements = parse_ok("EXIT\nYIELD")
        assert statements[0].code is None
        assert isinstance(statements[1], YieldTask)

    def test_sleep(self):
        stmt = parse_one("SLEEP 100")
        assert isinstance(stmt, SleepTask)
        assert stmt.duration.value == 100

    def test_yield(self):
        assert isinstance(parse_one("YIELD"), YieldTask)

    def test_acquire_string(self):
        stmt = parse_one('ACQUIRE "uart" AS port')
        assert isinstance(stmt, AcquireResource)
        assert isinstance(stmt.name, StringLiteral)
        assert stmt.name.value == "uart"
        assert not stmt.name.resource
        assert stmt.handle == "port"

    def test_acquire_resource_id(self):
        stmt = parse_one("ACQUIRE 'uart' AS port")
        assert stmt.name.resource

    def test_acquire_identifier(self):
        stmt = parse_one("ACQUIRE device AS port")
        assert isinstance(stmt.name, IdentifierExpression)

    def test_acquire_rejects_number(self):
        _, diagnostics = parse("ACQUIRE 5 AS port")
        assert diagnostics.errors[0].expected == "resource name"

    def test_ctrl(self):
        stmt = parse_one("CTRL port, 2")
        assert isinstance(stmt, ControlResource)
        assert stmt.handle.name == "port"
        assert stmt.command.value == 2

    def test_send(self):
        stmt = parse_one("SEND chan, msg")
        assert isinstance(stmt, SendMessage)
        assert stmt.message.name == "msg"

    def test_recv(self):
        stmt = parse_one("RECV chan, buf")
        assert isinstance(stmt, ReceiveMessage)
        assert stmt.handle.name == "chan"
        assert stmt.buffer == "buf"

    def test_recv_buffer_must_be_name(self):
        _, diagnostics = parse("RECV chan, 5")
        assert diagnostics.errors[0].expected == "buffer name"

    @pytest.mark.parametrize("keyword,node_class", [
        ("GET_TASK_ID", GetTaskId),
        ("GET_CORE_ID", GetCoreId),
        ("GET_TOTAL_CORES", GetTotalCores),
    ])
    def test_identity_queries(self, keyword, node_class):
        stmt = parse_one(f"{keyword} result")
        assert isinstance(stmt, node_class)
        assert stmt.target == "result"


# =============================================================================
# Generic Instruction Tests
# =============================================================================

class TestGenericInstructions:

    def test_no_operands(self):
        stmt = parse_one("NOP")
        assert isinstance(stmt, Instruction)
        assert stmt.opcode == "NOP"
        assert stmt.operands == ()

    def test_comma_separated(self):
        stmt = parse_one("ADD x, 1")
        assert stmt.opcode == "ADD"
        assert [type(op) for op in stmt.operands] == [IdentifierExpression, NumberLiteral]

    def test_commas_are_optional(self):
        stmt = parse_one("SAHNE64_API read_api 10")
        assert stmt.opcode == "SAHNE64_API"
        assert stmt.operands[0].name == "read_api"
        assert stmt.operands[1].value == 10

    def test_var_directive(self):
        stmt = parse_one("VAR counter DWORD")
        assert stmt.opcode == "VAR"
        assert [op.name for op in stmt.operands] == ["counter", "DWORD"]

    def test_all_operand_kinds(self):
        stmt = parse_one('OUT x, 5, ZF, "s", &3, #4')
        assert [type(op) for op in stmt.operands] == [
            IdentifierExpression,
            NumberLiteral,
            FlagLiteral,
            StringLiteral,
            HandleLiteral,
            TaskIdLiteral,
        ]

    def test_trailing_comma_continues_line(self):
        stmt = parse_one("WRITE a, b,\n      c")
        assert [op.name for op in stmt.operands] == ["a", "b", "c"]

    def test_operands_stop_at_end_of_line(self):
        statements = parse_ok("WRITE a\nb")
        assert len(statements) == 2
        assert [op.name for op in statements[0].operands] == ["a"]
        assert statements[1].opcode == "b"

    def test_dangling_comma(self):
        _, diagnostics = parse("ADD x,")
        assert diagnostics.errors[0].expected == "operand"


# =============================================================================
# Syntax Error Tests
# =============================================================================

class TestSyntaxErrors:

    def test_expected_vs_found(self):
        _, diagnostics = parse("ALLOCATE 5 5")
        error = diagnostics.errors[0]
        assert isinstance(error, UnexpectedTokenError)
        assert error.found == "5"
        assert error.expected == "'AS'"
        assert error.message == "unexpected token '5'"
        assert error.location.column == 12

    def test_formatted_message(self):
        _, diagnostics = parse("ALLOCATE 5 5", "demo.sasm")
        lines = str(diagnostics.errors[0]).split("\n")
        assert lines[0] == "demo.sasm:1:12: error: unexpected token '5'"
        assert lines[1] == "    ALLOCATE 5 5"
        assert lines[2].index("^") == 15
        assert lines[3] == "hint: expected 'AS'"

    def test_statement_must_end_line(self):
        _, diagnostics = parse("YIELD 5")
        error = diagnostics.errors[0]
        assert error.expected == "end of line"

    def test_missing_jump_target(self):
        _, diagnostics = parse("JUMP")
        assert diagnostics.errors[0].found == "end of input"

    def test_missing_assignment_value(self):
        _, diagnostics = parse("x =")
        assert diagnostics.errors[0].expected == "expression"

    def test_keyword_cannot_start_statement(self):
        _, diagnostics = parse("AS x")
        assert diagnostics.errors[0].expected == "statement"

    def test_recovery_reports_every_statement(self):
        program, diagnostics = parse("ALLOCATE AS h\nYIELD\nJUMP 5\nEXIT")
        assert diagnostics.error_count() == 2
        assert [type(s) for s in program.statements] == [YieldTask, ExitTask]

    def test_max_errors_stops_parsing(self):
        diagnostics = DiagnosticCollector(max_errors=2)
        parse_source("JUMP 1\nJUMP 2\nJUMP 3\nJUMP 4", "<test>", diagnostics)
        assert diagnostics.error_count() == 2


# =============================================================================
# Lexical Error Tests
# =============================================================================

class TestLexicalErrors:

    def test_invalid_character(self):
        program, diagnostics = parse("YIELD\n@\nEXIT")
        error = diagnostics.errors[0]
        assert isinstance(error, InvalidCharacterError)
        assert error.message == "invalid character '@' (0x40)"
        assert [type(s) for s in program.statements] == [YieldTask, ExitTask]

    def test_unterminated_string(self):
        _, diagnostics = parse('SEND h, "abc')
        assert isinstance(diagnostics.errors[0], UnterminatedStringError)

    def test_skipped_unknown_tokens_are_reported(self):
        program, diagnostics = parse("JUMP 5 @ $\nYIELD")
        assert diagnostics.error_count() == 3
        assert len(diagnostics.errors_of(InvalidCharacterError)) == 2
        assert isinstance(program.statements[0], YieldTask)


# =============================================================================
# AST Utilities
# =============================================================================

class TestASTUtilities:

    def test_printer(self):
        program, _ = parse("ALLOCATE 1024 AS handle1\nSPAWN worker WITH prio=5")
        assert ASTPrinter().print(program) == (
            "Program\n"
            "  Allocate 1024 -> handle1\n"
            "  Spawn worker prio=5"
        )

    def test_printer_generic_and_literals(self):
        program, _ = parse("start:\nWRITE \"hi\"\nACQUIRE 'uart' AS h\nEXIT")
        assert ASTPrinter().print(program).split("\n")[1:] == [
            "  Label start",
            '  Instruction WRITE "hi"',
            "  Acquire 'uart' -> h",
            "  Exit",
        ]

    def test_visitor_dispatch(self):
        class LabelCollector(ASTVisitor):
            def __init__(self):
                self.labels = []

            def visit_LabelStatement(self, node):
                self.labels.append(node.name)

        program, _ = parse("a:\nYIELD\nb: EXIT")
        collector = LabelCollector()
        collector.visit(program)
        assert collector.labels == ["a", "b"]

    def test_nodes_are_immutable(self):
        stmt = parse_one("YIELD")
        with pytest.raises(Exception):
            stmt.location = None
