"""
LR35902 Assembly Language Lexer
===============================

This module implements the lexer (tokenizer) for Game Boy assembly language.
It converts source text into the flat token list the parser consumes.

Token Types
-----------
- IDENTIFIER: Label and constant names
- NUMBER: Numeric literals (always 16-bit unsigned)
- STRING: Double-quoted strings, copied verbatim
- REGISTER: 8-bit register (a, b, c, d, e, h, l)
- REGISTER16: Register pair (af, bc, de, hl, sp, pc)
- FLAG: Condition flag (z, nz, n, hc, cr, nc)
- MNEMONIC: Instruction name (nop, ld, jp, ...)
- DIRECTIVE: Assembler directive (.byte, .org, ...)
- COMMA, COLON, LPAREN, RPAREN: Delimiters
- NEWLINE: End of statement

Keywords are lowercase and case-sensitive: "nop" is a mnemonic, "NOP" is an
ordinary identifier.

Number Formats
--------------

| Format      | Prefix       | Example | Value |
|-------------|--------------|---------|-------|
| Decimal     | (none)       | 123     | 123   |
| Octal       | leading 0    | 0177    | 127   |
| Binary      | 0b           | 0b1010  | 10    |
| Hexadecimal | 0x           | 0x7F    | 127   |

Comments
--------
A semicolon starts a comment that runs to the end of the line.

Example
-------
>>> from gb_sdk.assembler.lexer import scan
>>> scan("nop\\nhalt\\n")
[Token(MNEMONIC, 'nop', 1:1), Token(NEWLINE, 1:4), Token(MNEMONIC, 'halt', 2:1), Token(NEWLINE, 2:5)]
"""

from dataclasses import dataclass
from enum import Enum, auto
from typing import Iterator, Optional
import string

from gb_sdk.cpu import DIRECTIVES, FLAGS, MNEMONICS, REGISTER_PAIRS, REGISTERS
from gb_sdk.errors import LexError, SourceLocation


# =============================================================================
# Token Type Enumeration
# =============================================================================

class TokenType(Enum):
    """Token types for LR35902 assembly language."""

    # Values
    IDENTIFIER = auto()   # Labels, constant names
    NUMBER = auto()       # Numeric literals (all formats)
    STRING = auto()       # Double-quoted string "..."

    # Keywords
    REGISTER = auto()     # a, b, c, d, e, h, l
    REGISTER16 = auto()   # af, bc, de, hl, sp, pc
    FLAG = auto()         # z, nz, n, hc, cr, nc
    MNEMONIC = auto()     # nop, ld, jp, ...
    DIRECTIVE = auto()    # .byte, .org, ...

    # Delimiters
    COMMA = auto()        # ,
    COLON = auto()        # :
    LPAREN = auto()       # (
    RPAREN = auto()       # )

    # Structural
    NEWLINE = auto()      # End of statement

    # Inserted by the parser after a spliced include, never produced by scan()
    END_INCLUDE = auto()


# =============================================================================
# Token Data Class
# =============================================================================

@dataclass(frozen=True)
class Token:
    """
    A single token from the source code.

    Attributes:
        type: The TokenType classification
        value: The token value (str for names and keywords, int for numbers)
        line: Line number in source (1-indexed)
        column: Column number in source (1-indexed)
        filename: Name of the source file
    """
    type: TokenType
    value: str | int | None
    line: int
    column: int
    filename: str

    def __repr__(self) -> str:
        if self.value is not None:
            if isinstance(self.value, int):
                return f"Token({self.type.name}, ${self.value:X}, {self.line}:{self.column})"
            return f"Token({self.type.name}, {self.value!r}, {self.line}:{self.column})"
        return f"Token({self.type.name}, {self.line}:{self.column})"

    @property
    def location(self) -> SourceLocation:
        """Return a SourceLocation for error reporting."""
        return SourceLocation(self.filename, self.line, self.column)

    def describe(self) -> str:
        """Human-readable description for error messages."""
        if self.type is TokenType.NEWLINE:
            return "end of line"
        if self.type is TokenType.END_INCLUDE:
            return "end of included file"
        if self.type is TokenType.NUMBER:
            return f"number {self.value}"
        if self.type is TokenType.STRING:
            return f"string {self.value!r}"
        if self.value is not None:
            return f"{self.type.name.lower()} '{self.value}'"
        return self.type.name.lower()


# =============================================================================
# Lexer Implementation
# =============================================================================

class Lexer:
    """
    Tokenizes LR35902 assembly source code.

    Usage:
        lexer = Lexer(source_text, filename)
        tokens = list(lexer.tokenize())

    Attributes:
        source: The source code being tokenized
        filename: Name of the source file (for error reporting)
    """

    # Characters that can start an identifier
    IDENT_START = string.ascii_letters + "_"

    # Characters that can continue an identifier
    IDENT_CHARS = string.ascii_letters + string.digits + "_"

    # Single-character delimiters
    SINGLE_CHAR_TOKENS = {
        ",": TokenType.COMMA,
        ":": TokenType.COLON,
        "(": TokenType.LPAREN,
        ")": TokenType.RPAREN,
    }

    # Insignificant whitespace (newline is a token)
    WHITESPACE = " \t\r\f\v"

    MAX_VALUE = 0xFFFF

    def __init__(self, source: str, filename: str = "<input>"):
        """
        Initialize the lexer with source code.

        Args:
            source: The assembly source code to tokenize
            filename: Name of the source file (for error messages)
        """
        self.source = source
        self.filename = filename

        self._pos = 0
        self._line = 1
        self._column = 1
        self._line_start_pos = 0

        # Blank lines collapse, so remember whether the last token was a NEWLINE
        self._last_type: Optional[TokenType] = None

    def tokenize(self) -> Iterator[Token]:
        """
        Generate tokens from the source code.

        Yields:
            Token objects representing each lexical element

        Raises:
            LexError: If a malformed token is encountered
        """
        while not self._at_end():
            char = self._peek()

            if char in self.WHITESPACE:
                self._advance()
                continue

            if char == ";":
                self._skip_comment()
                continue

            if char == "\n":
                start_line, start_column = self._line, self._column
                self._advance()
                if self._last_type not in (None, TokenType.NEWLINE):
                    yield self._emit(TokenType.NEWLINE, None, start_line, start_column)
                continue

            yield self._emit_token(self._scan_token())

    # =========================================================================
    # Character Access Methods
    # =========================================================================

    def _at_end(self) -> bool:
        return self._pos >= len(self.source)

    def _peek(self, offset: int = 0) -> str:
        """Character at current position + offset, or '' past the end."""
        pos = self._pos + offset
        if pos >= len(self.source):
            return ""
        return self.source[pos]

    def _advance(self) -> str:
        """Consume and return the current character, tracking line/column."""
        if self._at_end():
            return ""

        char = self.source[self._pos]
        self._pos += 1

        if char == "\n":
            self._line += 1
            self._column = 1
            self._line_start_pos = self._pos
        else:
            self._column += 1

        return char

    def _take_while(self, chars: str) -> str:
        """Consume characters while they belong to the given set."""
        taken = []
        # '' in chars is True, so check for end of input first
        while self._peek() and self._peek() in chars:
            taken.append(self._advance())
        return "".join(taken)

    # =========================================================================
    # Token Creation
    # =========================================================================

    def _emit(self, token_type: TokenType, value: str | int | None,
              line: int, column: int) -> Token:
        self._last_type = token_type
        return Token(token_type, value, line, column, self.filename)

    def _emit_token(self, token: Token) -> Token:
        self._last_type = token.type
        return token

    def _make_token(self, token_type: TokenType, value: str | int | None,
                    line: int, column: int) -> Token:
        return Token(token_type, value, line, column, self.filename)

    def _error(self, message: str, column: Optional[int] = None) -> LexError:
        """Create a LexError at the current line, pointing at column."""
        location = SourceLocation(self.filename, self._line, column or self._column)
        return LexError(message, location, source_line=self.get_current_line())

    # =========================================================================
    # Comments
    # =========================================================================

    def _skip_comment(self) -> None:
        """Skip a ; comment up to (not including) the newline."""
        while not self._at_end() and self._peek() != "\n":
            self._advance()

    # =========================================================================
    # Token Scanning
    # =========================================================================

    def _scan_token(self) -> Token:
        start_line = self._line
        start_column = self._column
        char = self._peek()

        if char in self.IDENT_START:
            return self._scan_identifier(start_line, start_column)

        if char.isdigit():
            return self._scan_number(start_line, start_column)

        if char == ".":
            return self._scan_directive(start_line, start_column)

        if char == '"':
            return self._scan_string(start_line, start_column)

        if char in self.SINGLE_CHAR_TOKENS:
            self._advance()
            return self._make_token(self.SINGLE_CHAR_TOKENS[char], char, start_line, start_column)

        raise self._error(f"unexpected character '{char}'")

    def _scan_identifier(self, start_line: int, start_column: int) -> Token:
        """
        Scan an identifier and classify it against the keyword tables.

        Registers are checked before flags so that "c" is the register; the
        parser accepts it as the carry condition where a condition is expected.
        """
        name = self._take_while(self.IDENT_CHARS)

        if name in REGISTERS:
            token_type = TokenType.REGISTER
        elif name in REGISTER_PAIRS:
            token_type = TokenType.REGISTER16
        elif name in FLAGS:
            token_type = TokenType.FLAG
        elif name in MNEMONICS:
            token_type = TokenType.MNEMONIC
        else:
            token_type = TokenType.IDENTIFIER

        return self._make_token(token_type, name, start_line, start_column)

    def _scan_directive(self, start_line: int, start_column: int) -> Token:
        """Scan a .directive keyword; unknown spellings are an error."""
        self._advance()  # consume .
        name = "." + self._take_while(self.IDENT_CHARS)

        if name not in DIRECTIVES:
            if name == ".":
                raise self._error("expected directive name after '.'", start_column)
            raise self._error(f"unknown directive '{name}'", start_column)

        return self._make_token(TokenType.DIRECTIVE, name, start_line, start_column)

    def _scan_number(self, start_line: int, start_column: int) -> Token:
        """
        Scan a numeric literal.

        A leading 0 followed by digits is octal; 0b and 0x select binary and
        hexadecimal; anything else is decimal.
        """
        prefix = self._peek(1).lower() if self._peek() == "0" else ""

        if prefix == "x":
            self._advance()
            self._advance()
            digits = self._take_while(string.hexdigits)
            radix, kind = 16, "hexadecimal"
        elif prefix == "b":
            self._advance()
            self._advance()
            digits = self._take_while("01")
            radix, kind = 2, "binary"
        elif prefix.isdigit():
            self._advance()  # leading 0
            digits = self._take_while(string.digits)
            radix, kind = 8, "octal"
        else:
            digits = self._take_while(string.digits)
            radix, kind = 10, "decimal"

        # A literal must end at a non-identifier character: "0x1g", "12ab", "0b12"
        trailing = self._peek()
        if trailing and trailing in self.IDENT_CHARS:
            raise self._error(f"malformed {kind} literal", start_column)

        if not digits:
            raise self._error(f"expected {kind} digits", start_column)

        try:
            value = int(digits, radix)
        except ValueError:
            raise self._error(f"malformed {kind} literal", start_column) from None

        if value > self.MAX_VALUE:
            raise self._error(
                f"numeric literal {value} does not fit in 16 bits", start_column
            )

        return self._make_token(TokenType.NUMBER, value, start_line, start_column)

    def _scan_string(self, start_line: int, start_column: int) -> Token:
        """Scan a double-quoted string; content is taken verbatim."""
        self._advance()  # consume opening "

        chars = []
        while not self._at_end():
            char = self._peek()

            if char == '"':
                self._advance()  # consume closing "
                return self._make_token(TokenType.STRING, "".join(chars), start_line, start_column)

            if char == "\n":
                break

            chars.append(self._advance())

        raise self._error("unterminated string literal", start_column)

    # =========================================================================
    # Utility Methods
    # =========================================================================

    def get_current_line(self) -> str:
        """Get the current line of source text."""
        line_end = self.source.find("\n", self._line_start_pos)
        if line_end == -1:
            line_end = len(self.source)
        return self.source[self._line_start_pos:line_end]


def scan(source: str, filename: str = "<input>") -> list[Token]:
    """
    Tokenize a complete source text.

    Args:
        source: Assembly source code
        filename: Name used in token locations and error messages

    Returns:
        Flat list of tokens (no end-of-file marker)

    Raises:
        LexError: On the first malformed token
    """
    return list(Lexer(source, filename).tokenize())
