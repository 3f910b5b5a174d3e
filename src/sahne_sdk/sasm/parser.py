"""
Sahne64 Recursive Descent Parser
================================

This module builds an AST from the token stream produced by the lexer.

Grammar (Simplified EBNF)
-------------------------
program     ::= statement*
statement   ::= IDENT ':'                                   (label)
              | IDENT '=' expr                              (assignment)
              | 'FLAG' FLAG
              | 'JUMP' IDENT
              | 'ALLOCATE' expr 'AS' IDENT
              | 'RELEASE' expr
              | 'SPAWN' IDENT ('WITH' 'prio' '=' expr)?
              | 'EXIT' expr?
              | 'SLEEP' expr
              | 'YIELD'
              | 'ACQUIRE' (STRING | RESOURCE_ID | IDENT) 'AS' IDENT
              | 'CTRL' expr ',' expr
              | 'SEND' expr ',' expr
              | 'RECV' expr ',' IDENT
              | ('GET_TASK_ID' | 'GET_CORE_ID' | 'GET_TOTAL_CORES') IDENT
              | IDENT (expr (','? expr)*)?                  (generic instruction)
expr        ::= IDENT | NUMBER | FLAG | STRING | RESOURCE_ID | HANDLE | TASK_ID

Line Rules
----------
Statements end at the end of their line; only a label may share its line
with the statement that follows it. Optional operands (EXIT code, the
WITH clause) and generic operands must start on the line of the statement.
A generic operand list continues onto the next line only after a trailing
comma:

    WRITE a, b,
          c            ; one instruction, three operands

Error Recovery
--------------
A malformed statement is reported and the parser skips forward to the
next statement boundary: a keyword, a label, or an identifier starting a
new line. Every UNKNOWN token met along the way is reported as a lexical
error, so a single run reports every problem in the file.

Example Usage
-------------
>>> from sahne_sdk.sasm.lexer import Lexer
>>> from sahne_sdk.sasm.parser import Parser
>>> source = "ALLOCATE 1024 AS handle1"
>>> tokens = list(Lexer(source, "demo.sasm").tokenize())
>>> program = Parser(tokens, "demo.sasm", source.splitlines()).parse()
>>> stmt = program.statements[0]
>>> type(stmt).__name__, stmt.handle
('AllocateMemory', 'handle1')
"""

import logging
from typing import Optional

from sahne_sdk.errors import SourceLocation
from sahne_sdk.sasm.lexer import Lexer, Token, TokenType
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
    LexicalError,
    SasmError,
    UnexpectedTokenError,
    UnterminatedStringError,
    InvalidCharacterError,
)

logger = logging.getLogger(__name__)


# Tokens that can start an operand expression.
EXPRESSION_START = (
    TokenType.IDENTIFIER,
    TokenType.NUMBER,
    TokenType.FLAG,
    TokenType.STRING,
    TokenType.RESOURCE_ID,
    TokenType.HANDLE,
    TokenType.TASK_ID,
)


class Parser:
    """
    Recursive descent parser for Sahne64 assembly.

    Syntax and lexical errors are added to a DiagnosticCollector, which may
    be shared with later stages. parse() always returns a ProgramNode
    holding every statement that parsed cleanly; callers check the
    collector before using it.

    Attributes:
        tokens: List of tokens to parse, ending with EOF
        filename: Source filename for error reporting
        diagnostics: Collector receiving syntax and lexical errors
    """

    def __init__(
        self,
        tokens: list[Token],
        filename: str = "<input>",
        source_lines: Optional[list[str]] = None,
        diagnostics: Optional[DiagnosticCollector] = None,
    ):
        """
        Initialize the parser.

        Args:
            tokens: Tokens from the lexer
            filename: Source filename for error messages
            source_lines: Original source lines for error context
            diagnostics: Collector to add errors to (a private one if None)
        """
        if not tokens or tokens[-1].type != TokenType.EOF:
            tokens = list(tokens) + [Token(TokenType.EOF, None, 1, 1, filename)]
        self.tokens = tokens
        self.filename = filename
        self.source_lines = source_lines or []
        self.diagnostics = diagnostics if diagnostics is not None else DiagnosticCollector()

        self._pos = 0

    def parse(self) -> ProgramNode:
        """
        Parse the token stream into an AST.

        Returns:
            ProgramNode with all successfully parsed statements
        """
        statements: list[Statement] = []

        while not self._at_end():
            start = self._pos
            try:
                statements.append(self._parse_statement())
            except SasmError as e:
                self.diagnostics.add(e)
                if self.diagnostics.should_stop():
                    break
                self._synchronize(start)

        logger.debug(f"Parsed {len(statements)} statements from {self.filename}")

        return ProgramNode(
            location=SourceLocation(self.filename, 1, 1),
            statements=tuple(statements),
        )

    # =========================================================================
    # Token Access Methods
    # =========================================================================

    def _at_end(self) -> bool:
        return self._peek().type == TokenType.EOF

    def _peek(self, offset: int = 0) -> Token:
        pos = self._pos + offset
        if pos >= len(self.tokens):
            return self.tokens[-1]
        return self.tokens[pos]

    def _previous(self) -> Token:
        return self.tokens[max(0, self._pos - 1)]

    def _advance(self) -> Token:
        if not self._at_end():
            token = self.tokens[self._pos]
            self._pos += 1
            return token
        return self.tokens[-1]

    def _check(self, *types: TokenType) -> bool:
        return self._peek().type in types

    def _check_keyword(self, word: str) -> bool:
        return self._peek().is_keyword(word)

    def _on_line(self, line: int) -> bool:
        """True if the current token is not EOF and sits on the given line."""
        return not self._at_end() and self._peek().line == line

    def _expect(self, token_type: TokenType, expected: str) -> Token:
        """
        Consume a token of the given type.

        Raises:
            LexicalError: If the current token is UNKNOWN
            UnexpectedTokenError: For any other mismatch
        """
        if self._check(token_type):
            return self._advance()
        raise self._unexpected(expected)

    def _expect_keyword(self, word: str) -> Token:
        if self._check_keyword(word):
            return self._advance()
        raise self._unexpected(f"'{word}'")

    def _unexpected(self, expected: str) -> SasmError:
        """Build the error for the current token not matching expected."""
        token = self._peek()
        if token.type == TokenType.UNKNOWN:
            return self._lexical_error(token)
        return UnexpectedTokenError(
            token.describe(),
            expected,
            token.location,
            self._get_source_line(token.line),
        )

    def _lexical_error(self, token: Token) -> LexicalError:
        """Turn an UNKNOWN token into the matching lexical error."""
        source_line = self._get_source_line(token.line)
        if token.value in ('"', "'"):
            return UnterminatedStringError(token.location, source_line)
        return InvalidCharacterError(token.value, token.location, source_line)

    def _get_source_line(self, line: int) -> Optional[str]:
        if 0 < line <= len(self.source_lines):
            return self.source_lines[line - 1]
        return None

    # =========================================================================
    # Error Recovery
    # =========================================================================

    def _at_boundary(self, start_line: int) -> bool:
        """True if the current token can begin a new statement."""
        token = self._peek()
        if token.type == TokenType.EOF:
            return True
        if token.type == TokenType.KEYWORD:
            return token.value not in ("AS", "WITH")
        if token.type == TokenType.IDENTIFIER:
            return token.line > start_line or self._peek(1).type == TokenType.COLON
        return False

    def _synchronize(self, start: int) -> None:
        """
        Skip to the next statement boundary after an error.

        Always makes progress past the failing statement's first token.
        Skipped UNKNOWN tokens are reported, except the one that raised.
        """
        start_line = self.tokens[start].line

        if self._pos == start or not self._at_boundary(start_line):
            self._advance()

        while not self._at_boundary(start_line):
            token = self._advance()
            if token.type == TokenType.UNKNOWN:
                self.diagnostics.add(self._lexical_error(token))

    def _end_statement(self, line: int) -> None:
        """Require the statement to end its line."""
        if self._on_line(line):
            raise self._unexpected("end of line")

    # =========================================================================
    # Statement Parsing
    # =========================================================================

    def _parse_statement(self) -> Statement:
        token = self._peek()

        if token.type == TokenType.IDENTIFIER:
            following = self._peek(1)
            if following.type == TokenType.COLON:
                return self._parse_label()
            if following.type == TokenType.EQUALS:
                statement = self._parse_assignment()
            else:
                statement = self._parse_instruction()
        elif token.type == TokenType.KEYWORD and token.value in self._KEYWORD_PARSERS:
            statement = self._KEYWORD_PARSERS[token.value](self)
        else:
            raise self._unexpected("statement")

        self._end_statement(self._previous().line)
        return statement

    def _parse_label(self) -> LabelStatement:
        name = self._advance()
        self._advance()  # ':'
        return LabelStatement(name.location, name.value)

    def _parse_assignment(self) -> Assignment:
        target = self._advance()
        self._advance()  # '='
        value = self._parse_expression()
        return Assignment(target.location, target.value, value)

    def _parse_flag(self) -> FlagDeclaration:
        keyword = self._advance()
        flag = self._expect(TokenType.FLAG, "flag name (ZF, CF, SF, OF)")
        return FlagDeclaration(keyword.location, flag.value)

    def _parse_jump(self) -> JumpStatement:
        keyword = self._advance()
        target = self._expect(TokenType.IDENTIFIER, "label name")
        return JumpStatement(keyword.location, target.value)

    def _parse_allocate(self) -> AllocateMemory:
        keyword = self._advance()
        size = self._parse_expression()
        self._expect_keyword("AS")
        handle = self._expect(TokenType.IDENTIFIER, "handle name")
        return AllocateMemory(keyword.location, size, handle.value)

    def _parse_release(self) -> ReleaseMemory:
        keyword = self._advance()
        return ReleaseMemory(keyword.location, self._parse_expression())

    def _parse_spawn(self) -> SpawnTask:
        keyword = self._advance()
        procedure = self._expect(TokenType.IDENTIFIER, "procedure name")

        priority = None
        if self._check_keyword("WITH") and self._on_line(procedure.line):
            self._advance()
            if not (self._check(TokenType.IDENTIFIER) and self._peek().value == "prio"):
                raise self._unexpected("'prio'")
            self._advance()
            self._expect(TokenType.EQUALS, "'='")
            priority = self._parse_expression()

        return SpawnTask(keyword.location, procedure.value, priority)

    def _parse_exit(self) -> ExitTask:
        keyword = self._advance()
        code = None
        if self._on_line(keyword.line) and self._check(*EXPRESSION_START):
            code = self._parse_expression()
        return ExitTask(keyword.location, code)

    def _parse_sleep(self) -> SleepTask:
        keyword = self._advance()
        return SleepTask(keyword.location, self._parse_expression())

    def _parse_yield(self) -> YieldTask:
        keyword = self._advance()
        return YieldTask(keyword.location)

    def _parse_acquire(self) -> AcquireResource:
        keyword = self._advance()
        if not self._check(TokenType.STRING, TokenType.RESOURCE_ID, TokenType.IDENTIFIER):
            raise self._unexpected("resource name")
        name = self._parse_expression()
        self._expect_keyword("AS")
        handle = self._expect(TokenType.IDENTIFIER, "handle name")
        return AcquireResource(keyword.location, name, handle.value)

    def _parse_ctrl(self) -> ControlResource:
        keyword = self._advance()
        handle = self._parse_expression()
        self._expect(TokenType.COMMA, "','")
        command = self._parse_expression()
        return ControlResource(keyword.location, handle, command)

    def _parse_send(self) -> SendMessage:
        keyword = self._advance()
        handle = self._parse_expression()
        self._expect(TokenType.COMMA, "','")
        message = self._parse_expression()
        return SendMessage(keyword.location, handle, message)

    def _parse_recv(self) -> ReceiveMessage:
        keyword = self._advance()
        handle = self._parse_expression()
        self._expect(TokenType.COMMA, "','")
        buffer = self._expect(TokenType.IDENTIFIER, "buffer name")
        return ReceiveMessage(keyword.location, handle, buffer.value)

    def _parse_identity_query(self):
        keyword = self._advance()
        target = self._expect(TokenType.IDENTIFIER, "target name")
        node_class = {
            "GET_TASK_ID": GetTaskId,
            "GET_CORE_ID": GetCoreId,
            "GET_TOTAL_CORES": GetTotalCores,
        }[keyword.value]
        return node_class(keyword.location, target.value)

    def _parse_instruction(self) -> Instruction:
        """
        Parse a generic instruction: opcode and optional operand list.

        Operands are separated by optional commas. Without a comma the next
        operand must be on the current line.
        """
        opcode = self._advance()
        operands: list[Expression] = []
        line = opcode.line

        while self._on_line(line) and self._check(*EXPRESSION_START):
            operands.append(self._parse_expression())
            line = self._previous().line
            if self._check(TokenType.COMMA) and self._on_line(line):
                self._advance()
                if not self._check(*EXPRESSION_START):
                    raise self._unexpected("operand")
                line = self._peek().line

        return Instruction(opcode.location, opcode.value, tuple(operands))

    _KEYWORD_PARSERS = {
        "FLAG": _parse_flag,
        "JUMP": _parse_jump,
        "ALLOCATE": _parse_allocate,
        "RELEASE": _parse_release,
        "SPAWN": _parse_spawn,
        "EXIT": _parse_exit,
        "SLEEP": _parse_sleep,
        "YIELD": _parse_yield,
        "ACQUIRE": _parse_acquire,
        "CTRL": _parse_ctrl,
        "SEND": _parse_send,
        "RECV": _parse_recv,
        "GET_TASK_ID": _parse_identity_query,
        "GET_CORE_ID": _parse_identity_query,
        "GET_TOTAL_CORES": _parse_identity_query,
    }

    # =========================================================================
    # Expression Parsing
    # =========================================================================

    def _parse_expression(self) -> Expression:
        token = self._peek()

        if token.type == TokenType.IDENTIFIER:
            self._advance()
            return IdentifierExpression(token.location, token.value)
        if token.type == TokenType.NUMBER:
            self._advance()
            return NumberLiteral(token.location, token.value)
        if token.type == TokenType.FLAG:
            self._advance()
            return FlagLiteral(token.location, token.value)
        if token.type == TokenType.STRING:
            self._advance()
            return StringLiteral(token.location, token.value)
        if token.type == TokenType.RESOURCE_ID:
            self._advance()
            return StringLiteral(token.location, token.value, resource=True)
        if token.type == TokenType.HANDLE:
            self._advance()
            return HandleLiteral(token.location, token.value)
        if token.type == TokenType.TASK_ID:
            self._advance()
            return TaskIdLiteral(token.location, token.value)

        raise self._unexpected("expression")


# =============================================================================
# Convenience Function
# =============================================================================

def parse_source(
    source: str,
    filename: str = "<input>",
    diagnostics: Optional[DiagnosticCollector] = None,
) -> ProgramNode:
    """
    Lex and parse source text.

    Errors go to diagnostics; pass a collector and check it afterwards.
    """
    tokens = list(Lexer(source, filename).tokenize())
    parser = Parser(tokens, filename, source.splitlines(), diagnostics)
    return parser.parse()
