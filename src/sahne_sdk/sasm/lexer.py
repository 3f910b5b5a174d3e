"""
Sahne64 Assembly Lexer (Tokenizer)
==================================

This module converts Sahne64 assembly source text into a stream of located
tokens for the parser.

Token Categories
----------------
- Keywords: JUMP, FLAG, ALLOCATE, AS, RELEASE, SPAWN, WITH, EXIT, SLEEP,
  YIELD, ACQUIRE, CTRL, SEND, RECV, GET_TASK_ID, GET_CORE_ID, GET_TOTAL_CORES
- Identifiers: variable, label, procedure and opcode names
- Flags: ZF, CF, SF, OF
- Numbers: decimal (optionally negative) and hexadecimal (0x)
- Strings: "double quoted"
- Resource ids: 'single quoted' resource names
- Handle literals: &3
- Task-id literals: #7
- Punctuation: : , ( ) =

Number Formats
--------------
| Format      | Prefix  | Example   | Value |
|-------------|---------|-----------|-------|
| Decimal     | (none)  | 1024      | 1024  |
| Negative    | -       | -5        | -5    |
| Hexadecimal | 0x/0X   | 0x1000    | 4096  |

Comments
--------
A semicolon starts a comment that runs to the end of the line.

Error Tokens
------------
The lexer never raises. A character that cannot start a token, a lone '-'
and an unterminated string all produce an UNKNOWN token carrying the
offending character. The parser turns those into LexicalError diagnostics
so that one run reports every problem.

Example Usage
-------------
>>> from sahne_sdk.sasm.lexer import Lexer
>>> lexer = Lexer("ALLOCATE 1024 AS handle1", "demo.sasm")
>>> for token in lexer.tokenize():
...     print(token)
Token(KEYWORD, 'ALLOCATE', 1:1)
Token(NUMBER, 1024, 1:10)
Token(KEYWORD, 'AS', 1:15)
Token(IDENTIFIER, 'handle1', 1:18)
Token(EOF, 1:25)
"""

from dataclasses import dataclass
from enum import Enum, auto
from typing import Iterator, Optional
import string

from sahne_sdk.errors import SourceLocation


# =============================================================================
# Token Type Enumeration
# =============================================================================

class TokenType(Enum):
    """Token categories of the Sahne64 assembly language."""

    # === Words ===
    KEYWORD = auto()        # Statement keywords and AS / WITH
    IDENTIFIER = auto()     # Names and generic opcodes
    FLAG = auto()           # ZF, CF, SF, OF

    # === Literals ===
    NUMBER = auto()         # Integer literal
    HANDLE = auto()         # &N
    TASK_ID = auto()        # #N
    RESOURCE_ID = auto()    # 'name'
    STRING = auto()         # "text"

    # === Punctuation ===
    COLON = auto()          # :
    COMMA = auto()          # ,
    LPAREN = auto()         # (
    RPAREN = auto()         # )
    EQUALS = auto()         # =

    # === Structural ===
    EOF = auto()            # End of input, repeated on every later call
    UNKNOWN = auto()        # Lexical error signal


# =============================================================================
# Word Tables
# =============================================================================

KEYWORDS = frozenset({
    "JUMP", "FLAG", "ALLOCATE", "AS", "RELEASE", "SPAWN", "WITH", "EXIT",
    "SLEEP", "YIELD", "ACQUIRE", "CTRL", "SEND", "RECV",
    "GET_TASK_ID", "GET_CORE_ID", "GET_TOTAL_CORES",
})

FLAG_NAMES = frozenset({"ZF", "CF", "SF", "OF"})

PUNCTUATION: dict[str, TokenType] = {
    ":": TokenType.COLON,
    ",": TokenType.COMMA,
    "(": TokenType.LPAREN,
    ")": TokenType.RPAREN,
    "=": TokenType.EQUALS,
}


# =============================================================================
# Token Data Class
# =============================================================================

@dataclass(frozen=True)
class Token:
    """
    A single located token.

    Attributes:
        type: The TokenType classification
        value: Word text, integer value, string contents, or the offending
            character for UNKNOWN tokens; None for EOF
        line: Line number in source (1-indexed)
        column: Column number in source (1-indexed)
        filename: Name of the source file
    """
    type: TokenType
    value: str | int | None
    line: int
    column: int
    filename: str = "<input>"

    def __repr__(self) -> str:
        """Format token for debugging output."""
        if self.value is not None:
            if isinstance(self.value, int):
                return f"Token({self.type.name}, {self.value}, {self.line}:{self.column})"
            return f"Token({self.type.name}, {self.value!r}, {self.line}:{self.column})"
        return f"Token({self.type.name}, {self.line}:{self.column})"

    @property
    def location(self) -> SourceLocation:
        """Return a SourceLocation for error reporting."""
        return SourceLocation(self.filename, self.line, self.column)

    def is_keyword(self, word: Optional[str] = None) -> bool:
        """Return True for a keyword token, optionally a specific one."""
        if self.type != TokenType.KEYWORD:
            return False
        return word is None or self.value == word

    def describe(self) -> str:
        """Short human-readable spelling used in syntax errors."""
        if self.type == TokenType.EOF:
            return "end of input"
        if self.type == TokenType.STRING:
            return f'"{self.value}"'
        if self.type == TokenType.RESOURCE_ID:
            return f"'{self.value}'"
        if self.type == TokenType.HANDLE:
            return f"&{self.value}"
        if self.type == TokenType.TASK_ID:
            return f"#{self.value}"
        return str(self.value)


# =============================================================================
# Lexer Implementation
# =============================================================================

class Lexer:
    """
    Tokenizes Sahne64 assembly source.

    The lexer keeps a cursor over the source together with 1-based line and
    column counters. Whitespace, newlines and comments are skipped and never
    emitted. Once the input is exhausted every call to next() returns an EOF
    token.

    Usage:
        lexer = Lexer(source_text, filename)
        tokens = list(lexer.tokenize())
    """

    IDENT_START = string.ascii_letters + "_"
    IDENT_CHARS = string.ascii_letters + string.digits + "_"

    def __init__(self, source: str, filename: str = "<input>"):
        """
        Initialize the lexer with source text.

        Args:
            source: The assembly source to tokenize
            filename: Name of the source file (for error messages)
        """
        self.source = source
        self.filename = filename

        self._pos = 0
        self._line = 1
        self._column = 1

    def tokenize(self) -> Iterator[Token]:
        """
        Generate tokens up to and including the EOF token.

        Yields:
            Token objects representing each lexical element
        """
        while True:
            token = self.next()
            yield token
            if token.type == TokenType.EOF:
                return

    def next(self) -> Token:
        """Return the next token and advance past it."""
        self._skip_whitespace_and_comments()

        if self._at_end():
            return self._make_token(TokenType.EOF, None, self._line, self._column)

        start_line = self._line
        start_column = self._column
        char = self._peek()

        if char in PUNCTUATION:
            self._advance()
            return self._make_token(PUNCTUATION[char], char, start_line, start_column)

        if char in self.IDENT_START:
            return self._scan_word(start_line, start_column)

        if char.isdigit() or char == "-":
            return self._scan_number(start_line, start_column)

        if char == '"':
            return self._scan_quoted('"', TokenType.STRING, start_line, start_column)

        if char == "'":
            return self._scan_quoted("'", TokenType.RESOURCE_ID, start_line, start_column)

        if char == "&":
            return self._scan_prefixed(TokenType.HANDLE, start_line, start_column)

        if char == "#":
            return self._scan_prefixed(TokenType.TASK_ID, start_line, start_column)

        self._advance()
        return self._make_token(TokenType.UNKNOWN, char, start_line, start_column)

    # =========================================================================
    # Character Access Methods
    # =========================================================================

    def _at_end(self) -> bool:
        return self._pos >= len(self.source)

    def _peek(self, offset: int = 0) -> str:
        """Look ahead without advancing; empty string past the end."""
        pos = self._pos + offset
        if pos >= len(self.source):
            return ""
        return self.source[pos]

    def _advance(self) -> str:
        """Consume one character, updating line and column tracking."""
        if self._at_end():
            return ""

        char = self.source[self._pos]
        self._pos += 1

        if char == "\n":
            self._line += 1
            self._column = 1
        else:
            self._column += 1

        return char

    def _make_token(
        self,
        token_type: TokenType,
        value: str | int | None,
        line: int,
        column: int,
    ) -> Token:
        return Token(
            type=token_type,
            value=value,
            line=line,
            column=column,
            filename=self.filename,
        )

    # =========================================================================
    # Whitespace and Comment Handling
    # =========================================================================

    def _skip_whitespace_and_comments(self) -> None:
        while not self._at_end():
            char = self._peek()

            if char.isspace():
                self._advance()
                continue

            if char == ";":
                while not self._at_end() and self._peek() != "\n":
                    self._advance()
                continue

            break

    # =========================================================================
    # Token Scanning
    # =========================================================================

    def _scan_word(self, start_line: int, start_column: int) -> Token:
        """
        Scan a keyword, flag name or identifier.

        Words are runs of letters, digits and underscores. The keyword and
        flag tables are consulted on the complete word, so 'ASSIGN' is an
        identifier, not the keyword 'AS' followed by 'SIGN'.
        """
        chars = []
        while self._peek() and self._peek() in self.IDENT_CHARS:
            chars.append(self._advance())

        word = "".join(chars)

        if word in KEYWORDS:
            return self._make_token(TokenType.KEYWORD, word, start_line, start_column)
        if word in FLAG_NAMES:
            return self._make_token(TokenType.FLAG, word, start_line, start_column)
        return self._make_token(TokenType.IDENTIFIER, word, start_line, start_column)

    def _scan_number(self, start_line: int, start_column: int) -> Token:
        """
        Scan a decimal or hexadecimal integer with an optional '-' sign.

        A '-' that is not followed by a digit is an UNKNOWN token, as is a
        '0x' prefix with no hex digits after it.
        """
        negative = False
        if self._peek() == "-":
            self._advance()
            if not self._peek().isdigit():
                return self._make_token(TokenType.UNKNOWN, "-", start_line, start_column)
            negative = True

        if self._peek() == "0" and self._peek(1) in ("x", "X"):
            self._advance()
            self._advance()
            digits = []
            while self._peek() and self._peek() in string.hexdigits:
                digits.append(self._advance())
            if not digits:
                return self._make_token(TokenType.UNKNOWN, "x", start_line, start_column)
            value = int("".join(digits), 16)
        else:
            digits = []
            while self._peek().isdigit():
                digits.append(self._advance())
            value = int("".join(digits))

        if negative:
            value = -value
        return self._make_token(TokenType.NUMBER, value, start_line, start_column)

    def _scan_quoted(
        self,
        quote: str,
        token_type: TokenType,
        start_line: int,
        start_column: int,
    ) -> Token:
        """
        Scan a quoted run up to the matching quote on the same line.

        Reaching end of line or end of input first yields UNKNOWN(quote);
        the cursor stays at the newline so the next statement lexes normally.
        """
        self._advance()

        chars = []
        while not self._at_end():
            char = self._peek()
            if char == quote:
                self._advance()
                return self._make_token(token_type, "".join(chars), start_line, start_column)
            if char == "\n":
                break
            chars.append(self._advance())

        return self._make_token(TokenType.UNKNOWN, quote, start_line, start_column)

    def _scan_prefixed(self, token_type: TokenType, start_line: int, start_column: int) -> Token:
        """Scan '&N' or '#N'; the prefix alone is an UNKNOWN token."""
        prefix = self._advance()
        if not self._peek().isdigit():
            return self._make_token(TokenType.UNKNOWN, prefix, start_line, start_column)

        digits = []
        while self._peek().isdigit():
            digits.append(self._advance())
        return self._make_token(token_type, int("".join(digits)), start_line, start_column)
