"""
Game Boy SDK Error Hierarchy
============================

This module defines the exception hierarchy for the whole SDK. All
exceptions inherit from GBError, so callers can catch every SDK error with
a single except clause.

Exception Hierarchy
-------------------
GBError (base)
├── AssemblerError (assembler-related)
│   ├── LexError - malformed token in source
│   ├── AssemblySyntaxError - statement does not match its grammar
│   ├── DuplicateSymbolError - label or constant defined twice
│   ├── UnresolvedSymbolError - reference to a symbol that is never defined
│   ├── RangeError - value does not fit its operand width
│   └── IncludeError - included file missing or unreadable
│       └── CircularIncludeError - a file (indirectly) includes itself
├── ObjectFormatError - invalid library container
└── InternalError - encoder invariant violated

Assembly is fail-fast: the first error aborts the run and nothing is written.

Error messages follow this format:
    filename:line:column: error: description
        source_line_text
        ^ (pointer to error location)
    hint: suggestion for fixing (when available)
"""

from dataclasses import dataclass
from typing import Optional


# =============================================================================
# Base Exception Class
# =============================================================================

class GBError(Exception):
    """
    Base exception for all Game Boy SDK errors.

        try:
            assembler.assemble_file("game.asm")
        except GBError as e:
            print(f"Error: {e}")
    """
    pass


# =============================================================================
# Source Location Tracking
# =============================================================================

@dataclass(frozen=True)
class SourceLocation:
    """
    A position in a source file, used for error reporting.

    Attributes:
        filename: Name of the source file (or "<input>" for string input)
        line: Line number (1-indexed)
        column: Column number (1-indexed)
    """
    filename: str
    line: int
    column: int

    def __str__(self) -> str:
        return f"{self.filename}:{self.line}:{self.column}"


# =============================================================================
# Assembler Exceptions
# =============================================================================

class AssemblerError(GBError):
    """
    Base exception for all assembler errors.

    Attributes:
        message: The error description
        location: Where in the source the error occurred (optional)
        hint: A suggestion for fixing the error (optional)
        source_line: The source text at the error location (optional)
    """

    def __init__(
        self,
        message: str,
        location: Optional[SourceLocation] = None,
        hint: Optional[str] = None,
        source_line: Optional[str] = None,
    ):
        self.message = message
        self.location = location
        self.hint = hint
        self.source_line = source_line
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """
        Format the error message with location, source context, and hint.

        Example output:
            game.asm:15:8: error: unresolved symbol 'mian'
                jp mian
                   ^
            hint: did you mean 'main'?
        """
        parts = []

        if self.location:
            parts.append(f"{self.location}: error: {self.message}")
        else:
            parts.append(f"error: {self.message}")

        if self.source_line is not None and self.location is not None:
            parts.append(f"    {self.source_line}")
            if self.location.column > 0:
                padding = " " * (4 + self.location.column - 1)
                parts.append(f"{padding}^")

        if self.hint:
            parts.append(f"hint: {self.hint}")

        return "\n".join(parts)


class LexError(AssemblerError):
    """
    Malformed token in assembly source.

    Examples:
        - Unterminated string literal
        - Malformed numeric literal (0x with no digits, 09 as octal)
        - Unknown directive (.foo)
        - Unexpected character
    """
    pass


class AssemblySyntaxError(AssemblerError):
    """
    A statement does not match the grammar of its mnemonic or directive.

    Raised for wrong operand counts, operand classes the instruction does not
    accept, and missing statement-terminating newlines.
    """
    pass


class UnresolvedSymbolError(AssemblerError):
    """
    Reference to a symbol that never resolves.

    Raised by the back-patch phase after the full pass, so forward
    references are fine; only names never defined anywhere end up here.
    Similar names are suggested to help catch typos.
    """

    def __init__(
        self,
        symbol: str,
        location: Optional[SourceLocation] = None,
        hint: Optional[str] = None,
        source_line: Optional[str] = None,
        similar_symbols: Optional[list[str]] = None,
    ):
        self.symbol = symbol
        self.similar_symbols = similar_symbols or []

        if not hint and self.similar_symbols:
            suggestions = ", ".join(f"'{s}'" for s in self.similar_symbols[:3])
            hint = f"did you mean {suggestions}?"

        super().__init__(
            f"unresolved symbol '{symbol}'",
            location=location,
            hint=hint,
            source_line=source_line,
        )


class DuplicateSymbolError(AssemblerError):
    """
    Symbol defined more than once.

    Labels, .equ constants and predefined symbols share one table and a name
    is never silently overwritten.
    """

    def __init__(
        self,
        symbol: str,
        location: Optional[SourceLocation] = None,
        original_location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ):
        self.symbol = symbol
        self.original_location = original_location

        hint = None
        if original_location:
            hint = f"'{symbol}' was first defined at {original_location}"

        super().__init__(
            f"duplicate symbol '{symbol}'",
            location=location,
            hint=hint,
            source_line=source_line,
        )


class RangeError(AssemblerError):
    """
    A value does not fit its declared width.

    Examples:
        - .byte 256
        - ld a, 0x1234
        - jr to a target more than 128 bytes away
        - .org behind the current location
    """
    pass


class IncludeError(AssemblerError):
    """
    Error including a file.

    Raised when:
    - Include file not found
    - Permission denied reading file
    """

    def __init__(
        self,
        filename: str,
        reason: str,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
        search_paths: Optional[list[str]] = None,
    ):
        self.included_filename = filename
        self.reason = reason
        self.search_paths = search_paths or []

        hint = None
        if self.search_paths:
            paths_str = ", ".join(self.search_paths)
            hint = f"searched in: {paths_str}"

        super().__init__(
            f"cannot include '{filename}': {reason}",
            location=location,
            hint=hint,
            source_line=source_line,
        )


class CircularIncludeError(IncludeError):
    """A file includes itself, directly or through other files."""

    def __init__(
        self,
        filename: str,
        chain: list[str],
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ):
        self.chain = chain
        super().__init__(
            filename,
            "circular include (" + " -> ".join(chain) + ")",
            location=location,
            source_line=source_line,
        )


# =============================================================================
# Library Container Exceptions
# =============================================================================

class ObjectFormatError(GBError):
    """
    Invalid library container.

    Raised when reading a library that:
    - Has a missing or wrong magic marker
    - Is truncated or has trailing bytes
    - Contains invalid strings
    """
    pass


# =============================================================================
# Internal Errors
# =============================================================================

class InternalError(GBError):
    """
    An invariant between the parser and the code generator was broken.

    The parser only produces instruction forms that exist in the opcode
    table and resolves every symbol before encoding, so this indicates a
    bug rather than a problem with the user's source.
    """
    pass
