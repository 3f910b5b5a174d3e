# =============================================================================
# test_analyzer.py - Semantic Analyzer Tests
# =============================================================================
# Tests for scope, type and control-structure validation.
#
# Test coverage includes:
#   - Labels, jumps and control-flow facts
#   - Procedures, scopes, SPAWN and CALL resolution
#   - Kernel statements and the operand types they expect
#   - VAR declarations, typed and untyped variables
#   - Arithmetic, comparison, logical and I/O opcode checks
#   - GLOBAL / EXTERN / SAHNE64_API directives
#   - Error collection (several errors per run)
# =============================================================================

import pytest
from sahne_sdk.sasm.analyzer import SemanticAnalyzer, procedure_name, scoped_statements
from sahne_sdk.sasm.errors import (
    DiagnosticCollector,
    DuplicateExternWarning,
    DuplicateSymbolError,
    OperandCountError,
    TypeMismatchError,
    UndefinedProcedureError,
    UndefinedSymbolError,
    UnknownTypeError,
)
from sahne_sdk.sasm.externs import SymbolBinding
from sahne_sdk.sasm.parser import parse_source
from sahne_sdk.sasm.symbols import GLOBAL_SCOPE, Scope, SymbolKind
from sahne_sdk.sasm.types import (
    TYPE_DWORD,
    TYPE_HANDLE,
    TYPE_QWORD,
    TYPE_TASK_ID,
    TYPE_USIZE,
)


# =============================================================================
# Helper Functions
# =============================================================================

def analyze(source: str):
    """Parse and analyze source, returning the analyzer."""
    diagnostics = DiagnosticCollector()
    program = parse_source(source, "<test>", diagnostics)
    assert not diagnostics.has_errors(), diagnostics.report()
    analyzer = SemanticAnalyzer(diagnostics=diagnostics, source_lines=source.splitlines())
    analyzer.analyze(program)
    return analyzer


def assert_valid(source: str):
    analyzer = analyze(source)
    assert not analyzer.diagnostics.has_errors(), analyzer.diagnostics.report()
    return analyzer


def single_error(source: str, error_type: type):
    """Analyze source and return its only error, checking the type."""
    analyzer = analyze(source)
    errors = analyzer.diagnostics.errors
    assert len(errors) == 1, analyzer.diagnostics.report()
    assert isinstance(errors[0], error_type)
    return errors[0]


# =============================================================================
# Procedure Naming and Scopes
# =============================================================================

class TestScopes:

    def test_procedure_name(self):
        assert procedure_name("PROCEDURE_worker") == "worker"
        assert procedure_name("worker") is None
        assert procedure_name("PROCEDURE_") is None

    def test_scoped_statements(self):
        program = parse_source("YIELD\nPROCEDURE_a:\nYIELD\nPROCEDURE_b:\nEXIT")
        scopes = [scope for _, scope in scoped_statements(program)]
        assert scopes == [
            GLOBAL_SCOPE,
            Scope.local("a"),
            Scope.local("a"),
            Scope.local("b"),
            Scope.local("b"),
        ]

    def test_analyze_returns_success(self):
        diagnostics = DiagnosticCollector()
        program = parse_source("YIELD", "<test>", diagnostics)
        assert SemanticAnalyzer(diagnostics=diagnostics).analyze(program)

    def test_same_local_name_in_two_procedures(self):
        assert_valid(
            "PROCEDURE_a:\nVAR n DWORD\nEXIT\n"
            "PROCEDURE_b:\nVAR n QWORD\nEXIT"
        )

    def test_same_name_twice_in_one_procedure(self):
        single_error("PROCEDURE_a:\nVAR n DWORD\nVAR n QWORD", DuplicateSymbolError)

    def test_local_may_shadow_global(self):
        analyzer = assert_valid("VAR n BYTE\nEXIT\nPROCEDURE_a:\nVAR n QWORD\nn = 1000")
        assert analyzer.symbols.lookup_in_scope("n", Scope.local("a")).type == TYPE_QWORD

    def test_procedure_sees_global_not_other_local(self):
        """Inside b, 'n' is the global BYTE, not a's QWORD local."""
        error = single_error(
            "VAR n BYTE\nEXIT\n"
            "PROCEDURE_a:\nVAR n QWORD\nEXIT\n"
            "PROCEDURE_b:\nn = 1000",
            TypeMismatchError,
        )
        assert error.message == "literal 1000 does not fit in BYTE"

    def test_plain_labels_are_local_to_procedures(self):
        assert_valid(
            "PROCEDURE_a:\nloop:\nJUMP loop\n"
            "PROCEDURE_b:\nloop:\nJUMP loop"
        )

    def test_local_variable_does_not_hide_label(self):
        assert_valid("done:\nYIELD\nPROCEDURE_worker:\nVAR done DWORD\nJUMP done")

    def test_local_variable_does_not_hide_procedure(self):
        assert_valid("PROCEDURE_worker:\nVAR worker DWORD\nSPAWN worker")

    def test_local_variable_does_not_hide_called_procedure(self):
        assert_valid("CALL helper\nEXIT\nPROCEDURE_helper:\nVAR helper DWORD\nhelper = 1")

    def test_variable_is_not_a_jump_target(self):
        error = single_error("PROCEDURE_w:\nVAR done DWORD\nJUMP done", UndefinedSymbolError)
        assert error.hint is None

    def test_duplicate_label_in_one_scope(self):
        error = single_error("start:\nYIELD\nstart:", DuplicateSymbolError)
        assert error.name == "start"
        assert error.original_location.line == 1


# =============================================================================
# Labels and Control Flow
# =============================================================================

class TestControlFlow:

    def test_undefined_jump_target(self):
        error = single_error("JUMP missing_label", UndefinedSymbolError)
        assert error.message == "undefined symbol 'missing_label'"
        assert error.source_line == "JUMP missing_label"

    def test_similar_label_hint(self):
        error = single_error("missing_labl:\nJUMP missing_label", UndefinedSymbolError)
        assert error.hint == "did you mean 'missing_labl'?"

    def test_forward_jump(self):
        assert_valid("JUMP done\nYIELD\ndone:\nEXIT")

    def test_jump_to_variable_is_rejected(self):
        single_error("VAR x DWORD\nJUMP x", UndefinedSymbolError)

    def test_control_flow_facts(self):
        analyzer = assert_valid("JUMP done\nYIELD\ndone:\nEXIT\nYIELD")
        kinds = [fact.kind for fact in analyzer.control_flow]
        assert kinds == ["jump", "unreachable", "yield", "exit", "unreachable", "yield"]
        assert analyzer.control_flow[0].detail == "done"

    def test_label_after_transfer_is_reachable(self):
        analyzer = assert_valid("EXIT\nnext:\nYIELD")
        assert "unreachable" not in [fact.kind for fact in analyzer.control_flow]

    def test_unreachable_code_does_not_fail(self):
        analyzer = analyze("EXIT\nYIELD")
        assert not analyzer.diagnostics.has_errors()

    def test_conditional_jump(self):
        analyzer = assert_valid("loop:\nJZ loop")
        assert analyzer.control_flow[0].kind == "branch"

    def test_conditional_jump_undefined(self):
        single_error("JNZ nowhere", UndefinedSymbolError)

    def test_conditional_jump_needs_target(self):
        single_error("JZ", OperandCountError)

    def test_conditional_jump_target_must_be_name(self):
        single_error("JE 5", TypeMismatchError)


# =============================================================================
# Procedures, SPAWN and CALL
# =============================================================================

class TestProcedures:

    def test_procedure_label_declares_procedure(self):
        analyzer = assert_valid("SPAWN worker WITH prio=5\nEXIT\nPROCEDURE_worker:\nYIELD")
        assert analyzer.symbols.lookup("worker").kind == SymbolKind.PROCEDURE
        assert analyzer.symbols.lookup("PROCEDURE_worker").kind == SymbolKind.LABEL

    def test_spawn_undefined_procedure(self):
        error = single_error("SPAWN worker WITH prio=5", UndefinedProcedureError)
        assert error.message == "undefined procedure 'worker'"

    def test_spawn_plain_label(self):
        single_error("worker:\nSPAWN worker", UndefinedProcedureError)

    def test_spawn_extern_is_rejected(self):
        single_error("EXTERN worker\nSPAWN worker", UndefinedProcedureError)

    def test_spawn_priority_type(self):
        analyzer = analyze('SPAWN worker WITH prio="high"\nPROCEDURE_worker:')
        assert len(analyzer.diagnostics.errors_of(TypeMismatchError)) == 1

    def test_call_procedure(self):
        analyzer = assert_valid("CALL helper\nEXIT\nPROCEDURE_helper:\nYIELD")
        assert analyzer.control_flow[0].kind == "call"

    def test_call_with_arguments(self):
        assert_valid("VAR a DWORD\nCALL helper, a, 5\nEXIT\nPROCEDURE_helper:")

    def test_call_undefined(self):
        single_error("CALL nothing", UndefinedProcedureError)

    def test_call_extern(self):
        assert_valid("EXTERN log\nCALL log")

    def test_call_api_declared_later(self):
        assert_valid("CALL read_api\nSAHNE64_API read_api 10")

    def test_call_without_target(self):
        single_error("CALL", OperandCountError)

    def test_call_target_must_be_name(self):
        single_error("CALL 5", TypeMismatchError)

    def test_duplicate_procedure(self):
        analyzer = analyze("PROCEDURE_a:\nYIELD\nPROCEDURE_a:")
        assert analyzer.diagnostics.errors_of(DuplicateSymbolError)


# =============================================================================
# Kernel Statements
# =============================================================================

class TestKernelStatements:

    def test_allocate_declares_handle(self):
        analyzer = assert_valid("ALLOCATE 1024 AS buf")
        symbol = analyzer.symbols.lookup("buf")
        assert symbol.kind == SymbolKind.HANDLE
        assert symbol.type == TYPE_HANDLE

    def test_allocate_size_must_be_integer(self):
        single_error('ALLOCATE "big" AS buf', TypeMismatchError)

    def test_allocate_negative_size(self):
        error = single_error("ALLOCATE -1 AS buf", TypeMismatchError)
        assert error.message == "literal -1 does not fit in USIZE"

    def test_allocate_size_from_variable(self):
        assert_valid("VAR size USIZE\nALLOCATE size AS buf")

    def test_allocate_undeclared_size(self):
        single_error("ALLOCATE size AS buf", UndefinedSymbolError)

    def test_duplicate_handle(self):
        single_error("ALLOCATE 1 AS b\nALLOCATE 2 AS b", DuplicateSymbolError)

    def test_release(self):
        assert_valid("ALLOCATE 64 AS buf\nRELEASE buf")

    def test_release_undeclared(self):
        single_error("RELEASE buf", UndefinedSymbolError)

    def test_resource_lifecycle(self):
        assert_valid("ACQUIRE 'uart' AS port\nCTRL port, 1\nSEND port, 5\nRELEASE port")

    def test_acquire_name_must_be_string(self):
        error = single_error("VAR n DWORD\nACQUIRE n AS p", TypeMismatchError)
        assert error.hint == "expected 'STRING', got 'DWORD'"

    def test_handle_literal_rejected(self):
        error = single_error("CTRL &3, 1", TypeMismatchError)
        assert "handle literal &3" in error.message

    def test_task_id_literal_rejected(self):
        error = single_error("SEND #2, 1", TypeMismatchError)
        assert "task id literal #2" in error.message

    def test_send_undeclared_handle(self):
        single_error("SEND chan, 5", UndefinedSymbolError)

    def test_send_message_must_be_declared(self):
        single_error("ACQUIRE 'net' AS chan\nSEND chan, msg", UndefinedSymbolError)

    def test_send_string_message(self):
        assert_valid('ACQUIRE "net" AS chan\nSEND chan, "ping"')

    def test_recv(self):
        assert_valid("ACQUIRE 'net' AS chan\nVAR buf\nRECV chan, buf")

    def test_recv_undeclared_buffer(self):
        single_error("ACQUIRE 'net' AS chan\nRECV chan, buf", UndefinedSymbolError)

    def test_recv_into_handle(self):
        error = single_error("ACQUIRE 'net' AS chan\nRECV chan, chan", TypeMismatchError)
        assert error.message == "'chan' is a handle, not a variable"

    def test_sleep_and_exit_codes(self):
        assert_valid("SLEEP 100\nEXIT 0")

    def test_exit_code_must_fit_dword(self):
        single_error("EXIT 0x100000000", TypeMismatchError)

    def test_identity_queries(self):
        analyzer = assert_valid("GET_TASK_ID me\nGET_CORE_ID core\nGET_TOTAL_CORES cores")
        assert analyzer.symbols.lookup("me").type == TYPE_TASK_ID
        assert analyzer.symbols.lookup("core").type == TYPE_USIZE
        assert analyzer.symbols.lookup("cores").type == TYPE_USIZE
        assert all(
            analyzer.symbols.lookup(n).kind == SymbolKind.TASK_ID
            for n in ("me", "core", "cores")
        )

    def test_identity_result_usable_as_value(self):
        assert_valid("GET_TOTAL_CORES cores\nALLOCATE cores AS buf")


# =============================================================================
# Variables
# =============================================================================

class TestVariables:

    def test_typed_variable(self):
        analyzer = assert_valid("VAR x DWORD\nx = 42")
        symbol = analyzer.symbols.lookup("x")
        assert symbol.kind == SymbolKind.VARIABLE
        assert symbol.type == TYPE_DWORD

    def test_unknown_type(self):
        error = single_error("VAR x FLOAT", UnknownTypeError)
        assert error.message == "unknown type 'FLOAT'"
        assert error.hint.startswith("known types: BYTE")

    def test_var_without_name(self):
        single_error("VAR", OperandCountError)

    def test_var_too_many_operands(self):
        single_error("VAR x DWORD 5", OperandCountError)

    def test_var_name_must_be_identifier(self):
        single_error("VAR 5", TypeMismatchError)

    def test_var_type_must_be_name(self):
        error = single_error("VAR x 5", TypeMismatchError)
        assert error.message == "VAR expects a type name"

    def test_use_before_declaration(self):
        single_error("SLEEP t\nVAR t DWORD", UndefinedSymbolError)

    def test_untyped_variable_typed_by_assignment(self):
        analyzer = assert_valid("VAR x\nx = 42")
        assert analyzer.symbols.lookup("x").type == TYPE_DWORD

    def test_untyped_variable_typed_by_wide_literal(self):
        analyzer = assert_valid("VAR x\nx = 0x100000000")
        assert analyzer.symbols.lookup("x").type == TYPE_QWORD

    def test_untyped_variable_typed_by_first_use(self):
        analyzer = assert_valid("VAR d\nSLEEP d")
        assert analyzer.symbols.lookup("d").type == TYPE_DWORD

    def test_literal_too_wide(self):
        error = single_error("VAR x BYTE\nx = 300", TypeMismatchError)
        assert error.message == "literal 300 does not fit in BYTE"

    def test_string_into_integer(self):
        single_error('VAR x DWORD\nx = "hi"', TypeMismatchError)

    def test_integer_into_string(self):
        single_error("VAR s STRING\ns = 5", TypeMismatchError)

    def test_string_variable(self):
        assert_valid('VAR s STRING\ns = "hello"')

    def test_narrow_variable_into_wide(self):
        assert_valid("VAR a BYTE\nVAR b QWORD\nb = a")

    def test_wide_variable_into_narrow(self):
        single_error("VAR a QWORD\nVAR b BYTE\nb = a", TypeMismatchError)

    def test_assign_undeclared(self):
        single_error("x = 1", UndefinedSymbolError)

    def test_assign_to_label(self):
        error = single_error("top:\ntop = 1", TypeMismatchError)
        assert error.message == "cannot assign to label 'top'"

    def test_assign_to_handle(self):
        single_error("ALLOCATE 8 AS h\nh = 1", TypeMismatchError)

    def test_label_is_not_a_value(self):
        error = single_error("top:\nSLEEP top", TypeMismatchError)
        assert error.message == "label 'top' is not a value"


# =============================================================================
# Operator and I/O Opcodes
# =============================================================================

class TestOperators:

    def test_arithmetic(self):
        assert_valid("VAR a DWORD\nVAR b DWORD\nADD a, b\nSUB a, 1\nMUL a, 2\nDIV a, b\nMOD a, 3")

    def test_arithmetic_operand_count(self):
        error = single_error("VAR a DWORD\nADD a", OperandCountError)
        assert error.message == "'ADD' expects 2 operands, got 1"

    def test_arithmetic_on_string_variable(self):
        single_error("VAR s STRING\nADD s, 1", TypeMismatchError)

    def test_arithmetic_on_string_literal(self):
        error = single_error('VAR a DWORD\nADD a, "x"', TypeMismatchError)
        assert error.message == "ADD operand must be numeric"

    def test_each_bad_operand_is_reported(self):
        analyzer = analyze('VAR s STRING\nADD s, "x"')
        assert len(analyzer.diagnostics.errors_of(TypeMismatchError)) == 2

    def test_arithmetic_undeclared(self):
        single_error("ADD a, 1", UndefinedSymbolError)

    def test_compare(self):
        assert_valid("VAR a DWORD\nCMP a, 5\nCMP ZF, 1")

    def test_compare_count(self):
        single_error("VAR a DWORD\nCMP a", OperandCountError)

    def test_compare_string(self):
        single_error('CMP "a", 1', TypeMismatchError)

    def test_logical(self):
        assert_valid("VAR a DWORD\nAND a, 1\nOR a, ZF\nXOR a, a\nNOT a")

    def test_not_is_unary(self):
        single_error("VAR a DWORD\nNOT a, 1", OperandCountError)

    def test_logical_needs_integer(self):
        single_error("VAR s STRING\nAND s, 1", TypeMismatchError)

    def test_read(self):
        assert_valid("VAR a DWORD\nREAD a")

    def test_read_literal(self):
        error = single_error("READ 5", TypeMismatchError)
        assert error.message == "READ expects a variable"

    def test_read_count(self):
        single_error("VAR a DWORD\nREAD a, a", OperandCountError)

    def test_read_handle(self):
        single_error("ACQUIRE 'kbd' AS h\nREAD h", TypeMismatchError)

    @pytest.mark.parametrize("operand", ["a", "5", "ZF", '"text"'])
    def test_write_operands(self, operand):
        assert_valid(f"VAR a DWORD\nWRITE {operand}")

    def test_write_handle_literal(self):
        single_error("WRITE &1", TypeMismatchError)

    def test_passthrough_opcode(self):
        assert_valid("VAR a DWORD\nPUSH a\nNOP")

    def test_passthrough_undeclared(self):
        single_error("PUSH ghost", UndefinedSymbolError)


# =============================================================================
# Extern Directives
# =============================================================================

class TestExternDirectives:

    def test_api_resolves_immediately(self):
        analyzer = assert_valid("SAHNE64_API read_api 10")
        extern = analyzer.externs.lookup("read_api")
        assert extern.binding == SymbolBinding.SAHNE64_API
        assert extern.address == 10
        assert analyzer.symbols.lookup("read_api").kind == SymbolKind.EXTERNAL

    def test_api_usable_as_operand(self):
        assert_valid("SAHNE64_API read_api 10\nPUSH read_api")

    def test_api_needs_number(self):
        single_error("SAHNE64_API read_api", OperandCountError)

    def test_api_number_non_negative(self):
        single_error("SAHNE64_API read_api -1", TypeMismatchError)

    def test_extern_is_unresolved(self):
        analyzer = assert_valid("EXTERN log")
        assert [e.name for e in analyzer.externs.unresolved()] == ["log"]

    def test_extern_name_must_be_identifier(self):
        single_error("EXTERN 5", TypeMismatchError)

    def test_global_export(self):
        analyzer = assert_valid("GLOBAL main\nmain:\nEXIT")
        assert analyzer.externs.lookup("main").binding == SymbolBinding.GLOBAL

    def test_global_procedure_export(self):
        assert_valid("GLOBAL worker\nEXIT\nPROCEDURE_worker:")

    def test_global_undefined(self):
        single_error("GLOBAL ghost", UndefinedSymbolError)

    def test_extern_collides_with_label(self):
        single_error("log:\nEXTERN log", DuplicateSymbolError)

    def test_duplicate_api_is_warning(self):
        analyzer = assert_valid("SAHNE64_API a 1\nSAHNE64_API a 2")
        assert analyzer.externs.lookup("a").address == 2
        assert isinstance(analyzer.diagnostics.warnings[0], DuplicateExternWarning)


# =============================================================================
# Error Collection
# =============================================================================

class TestErrorCollection:

    def test_multiple_errors_in_one_run(self):
        analyzer = analyze("JUMP nowhere\nSPAWN ghost\nVAR x FLOAT\nADD y, 1")
        assert analyzer.diagnostics.error_count() == 4

    def test_max_errors(self):
        diagnostics = DiagnosticCollector(max_errors=2)
        program = parse_source("JUMP a\nJUMP b\nJUMP c\nJUMP d", "<test>", diagnostics)
        SemanticAnalyzer(diagnostics=diagnostics).analyze(program)
        assert diagnostics.error_count() == 2

    def test_shared_tables(self):
        analyzer = assert_valid("VAR x DWORD\nEXTERN log")
        assert "x" in analyzer.symbols
        assert "log" in analyzer.externs
