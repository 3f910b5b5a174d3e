# =============================================================================
# test_errors.py - Error Hierarchy and Diagnostic Collection Tests
# =============================================================================
# Tests for error message formatting, the exception hierarchy and the
# DiagnosticCollector shared by every compiler stage.
# =============================================================================

import pytest
from sahne_sdk.errors import SahneError, SourceLocation
from sahne_sdk.sasm.errors import (
    SasmError,
    SasmCompilationError,
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
    find_similar_names,
)


LOC = SourceLocation("prog.sasm", 3, 6)


class TestSourceLocation:

    def test_str(self):
        assert str(LOC) == "prog.sasm:3:6"

    def test_is_frozen_value(self):
        assert LOC == SourceLocation("prog.sasm", 3, 6)
        with pytest.raises(AttributeError):
            LOC.line = 4

    def test_sdk_errors_share_root(self):
        assert issubclass(SasmError, SahneError)


class TestFormatting:

    def test_location_and_severity(self):
        error = SasmError("something broke", LOC)
        assert str(error) == "prog.sasm:3:6: error: something broke"

    def test_without_location(self):
        assert str(SasmError("oops")) == "error: oops"

    def test_source_line_and_caret(self):
        error = UndefinedSymbolError(
            "missing_label", LOC, "JUMP missing_label", ["mising_label"],
        )
        assert str(error).split("\n") == [
            "prog.sasm:3:6: error: undefined symbol 'missing_label'",
            "    JUMP missing_label",
            "         ^",
            "hint: did you mean 'mising_label'?",
        ]

    def test_warning_severity(self):
        warning = UnresolvedExternalWarning("log", LOC)
        assert str(warning).startswith("prog.sasm:3:6: warning: unresolved external symbol 'log'")
        assert "--extern log=ADDR" in str(warning)


class TestHierarchy:

    @pytest.mark.parametrize("error", [
        DuplicateSymbolError("x"),
        UndefinedSymbolError("x"),
        UndefinedProcedureError("x"),
        TypeMismatchError("bad"),
        UnknownTypeError("FLOAT"),
        OperandCountError("ADD", "2 operands", 1),
    ])
    def test_semantic_errors(self, error):
        assert isinstance(error, SemanticError)
        assert isinstance(error, SahneError)

    def test_layout_errors(self):
        assert isinstance(DuplicateAllocationError("x", "static"), MemoryLayoutError)
        assert isinstance(UnknownHandleError("h"), MemoryLayoutError)

    def test_unsupported_operand_is_codegen_error(self):
        assert isinstance(UnsupportedOperandError("<expr>"), CodeGenError)

    def test_undefined_procedure_is_undefined_symbol(self):
        error = UndefinedProcedureError("worker")
        assert isinstance(error, UndefinedSymbolError)
        assert error.message == "undefined procedure 'worker'"

    def test_messages(self):
        assert DuplicateAllocationError("x", "static").message == (
            "'x' is already allocated in the static section"
        )
        assert UnknownHandleError("h").message == "unknown handle 'h'"
        assert OperandCountError("ADD", "2 operands", 1).message == "'ADD' expects 2 operands, got 1"
        assert MacroExpansionError("m", "boom").message == "error expanding macro 'm': boom"

    def test_duplicate_symbol_hint(self):
        error = DuplicateSymbolError("x", LOC, SourceLocation("prog.sasm", 1, 1))
        assert error.hint == "'x' was first declared at prog.sasm:1:1"

    def test_type_mismatch_hint(self):
        error = TypeMismatchError("wrong", "DWORD", "STRING")
        assert error.hint == "expected 'DWORD', got 'STRING'"

    def test_unknown_type_hint(self):
        error = UnknownTypeError("FLOAT", known_types=["BYTE", "WORD"])
        assert error.hint == "known types: BYTE, WORD"


class TestSimilarNames:

    def test_close_match(self):
        assert find_similar_names("countr", ["counter", "handle"]) == ["counter"]

    def test_exact_name_is_not_suggested(self):
        assert find_similar_names("done", ["done", "dome"]) == ["dome"]

    def test_no_match(self):
        assert find_similar_names("zzz", ["counter", "handle"]) == []


class TestDiagnosticCollector:

    def test_empty(self):
        diagnostics = DiagnosticCollector()
        assert not diagnostics.has_errors()
        assert diagnostics.error_count() == 0
        diagnostics.raise_if_errors()

    def test_add_routes_warnings(self):
        diagnostics = DiagnosticCollector()
        diagnostics.add(UnresolvedExternalWarning("log"))
        diagnostics.add(UndefinedSymbolError("x"))
        assert diagnostics.error_count() == 1
        assert diagnostics.warning_count() == 1
        assert isinstance(diagnostics.warnings[0], SasmWarning)

    def test_should_stop(self):
        diagnostics = DiagnosticCollector(max_errors=2)
        diagnostics.add(UndefinedSymbolError("a"))
        assert not diagnostics.should_stop()
        diagnostics.add(UndefinedSymbolError("b"))
        assert diagnostics.should_stop()

    def test_errors_of(self):
        diagnostics = DiagnosticCollector()
        diagnostics.add(UndefinedSymbolError("a"))
        diagnostics.add(UndefinedProcedureError("b"))
        diagnostics.add(TypeMismatchError("c"))
        assert len(diagnostics.errors_of(UndefinedSymbolError)) == 2
        assert len(diagnostics.errors_of(UndefinedProcedureError)) == 1

    def test_report(self):
        diagnostics = DiagnosticCollector()
        diagnostics.add(UndefinedSymbolError("x", LOC))
        diagnostics.add_warning(UnresolvedExternalWarning("log"))
        report = diagnostics.report()
        assert "undefined symbol 'x'" in report
        assert "unresolved external symbol 'log'" in report
        assert report.endswith("1 error, 1 warning")

    def test_raise_if_errors(self):
        diagnostics = DiagnosticCollector()
        diagnostics.add(UndefinedSymbolError("x", LOC))
        with pytest.raises(SasmCompilationError) as exc_info:
            diagnostics.raise_if_errors()
        assert "undefined symbol 'x'" in str(exc_info.value)

    def test_warnings_alone_do_not_raise(self):
        diagnostics = DiagnosticCollector()
        diagnostics.add_warning(UnresolvedExternalWarning("log"))
        diagnostics.raise_if_errors()

    def test_clear(self):
        diagnostics = DiagnosticCollector()
        diagnostics.add(UndefinedSymbolError("x"))
        diagnostics.add_warning(UnresolvedExternalWarning("log"))
        diagnostics.clear()
        assert diagnostics.error_count() == 0
        assert diagnostics.warning_count() == 0
