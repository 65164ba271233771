"""
LR35902 Assembly Language Parser
================================

This module implements the parser/resolver for Game Boy assembly language.
In a single left-to-right pass over the token list it:

- binds labels to the current location counter,
- validates each instruction against its mnemonic's operand grammar,
- appends instruction and directive units, advancing the location counter
  by each unit's fixed size before the next statement is parsed,
- splices included files' tokens into the live token list.

A back-patch phase then replaces every symbol reference with its resolved
value, which is what lets a jump target a label defined further down (or in a
later included file).

Statement Forms
---------------
```asm
start:                  ; label, binds the current location
    ld a, 0x05          ; instruction
    jp nz, start        ; conditional jump, label operand
    .byte 1, 2, 3       ; directive
loop: dec a             ; label followed by a statement on the same line
```

Operand Syntax
--------------

| Syntax        | Class                      | Example        |
|---------------|----------------------------|----------------|
| a..l          | 8-bit register             | ld a, b        |
| bc de hl ...  | register pair              | push bc        |
| nz z nc cr c  | condition                  | ret nz         |
| (hl) (bc)     | indirect through a pair    | ld a, (hl)     |
| (c)           | high-page indirect via C   | ld (c), a      |
| number        | immediate, bit, vector     | ld a, 0x10     |
| (number)      | memory address             | ld a, (0xc000) |
| name          | label or constant          | call print     |
| (name)        | address given by a symbol  | ld (buffer), a |

Directives
----------
- `.byte [v, ...]`   literal bytes (one zero byte with no operand)
- `.ascii "s"`       7-bit ASCII string
- `.asciz "s"`       ASCII string plus a zero terminator
- `.utf8 "s"`        UTF-8 encoded string
- `.fill n, v`       n bytes of value v
- `.org addr[, v]`   pad with v up to absolute position addr
- `.equ name, v`     named constant
- `.use "file"`      textual inclusion
- `.text`, `.data`   section markers (no effect)
"""

from dataclasses import dataclass, field
from enum import Enum, auto
from pathlib import Path
from typing import Callable, Iterator, Optional
import logging

from gb_sdk.cpu import (
    CONDITIONS,
    MNEMONICS,
    REGISTER_PAIRS,
    REGISTERS,
    RST_VECTORS,
    InstructionInfo,
    format_form,
    get_instruction_info,
    get_valid_forms,
)
from gb_sdk.errors import (
    AssemblySyntaxError,
    CircularIncludeError,
    DuplicateSymbolError,
    IncludeError,
    RangeError,
    SourceLocation,
    UnresolvedSymbolError,
)
from gb_sdk.assembler.lexer import Token, TokenType, scan

logger = logging.getLogger(__name__)

# Highest value representable by a symbol or an address
MAX_ADDRESS = 0xFFFF

# Base of the high page addressed by ldh (n8)
HIGH_PAGE = 0xFF00


# =============================================================================
# Operands
# =============================================================================

class OperandKind(Enum):
    """Operand classes. SYMBOL only exists until the back-patch phase."""
    IMMEDIATE8 = auto()    # n8
    IMMEDIATE16 = auto()   # n16
    REGISTER = auto()      # a, b, c, d, e, h, l
    REGISTER16 = auto()    # af, bc, de, hl, sp
    INDIRECT = auto()      # (c)
    INDIRECT16 = auto()    # (hl), (bc), (de)
    CONDITION = auto()     # nz, z, nc, cr
    ADDRESS8 = auto()      # (n8), high-page offset
    ADDRESS16 = auto()     # (n16)
    RELATIVE = auto()      # e8, signed displacement
    BIT = auto()           # bit index for bit/res/set
    VECTOR = auto()        # rst target
    SYMBOL = auto()        # unresolved name


# Operand kind for each value-carrying opcode-table key, and back
VALUE_KEY_KINDS: dict[str, OperandKind] = {
    "n8": OperandKind.IMMEDIATE8,
    "n16": OperandKind.IMMEDIATE16,
    "(n8)": OperandKind.ADDRESS8,
    "(n16)": OperandKind.ADDRESS16,
    "e8": OperandKind.RELATIVE,
}
_KIND_KEYS = {kind: key for key, kind in VALUE_KEY_KINDS.items()}


@dataclass(frozen=True)
class Operand:
    """
    A parsed instruction operand.

    Attributes:
        kind: The operand class
        value: Register/condition name, numeric value, or symbol name
        target: For SYMBOL operands, the class the symbol resolves to
        location: Where the operand appeared (SYMBOL operands only)
    """
    kind: OperandKind
    value: int | str
    target: Optional[OperandKind] = None
    location: Optional[SourceLocation] = field(default=None, compare=False)

    @property
    def key(self) -> str:
        """The opcode-table key of this operand's class."""
        kind = self.target if self.kind is OperandKind.SYMBOL else self.kind
        if kind in (OperandKind.REGISTER, OperandKind.REGISTER16, OperandKind.CONDITION):
            return str(self.value)
        if kind in (OperandKind.INDIRECT, OperandKind.INDIRECT16):
            return f"({self.value})"
        if kind is OperandKind.BIT:
            return str(self.value)
        if kind is OperandKind.VECTOR:
            return f"${self.value:02X}"
        return _KIND_KEYS[kind]

    @property
    def is_symbol(self) -> bool:
        return self.kind is OperandKind.SYMBOL

    def __str__(self) -> str:
        if self.kind is OperandKind.SYMBOL:
            if self.target in (OperandKind.ADDRESS8, OperandKind.ADDRESS16):
                return f"({self.value})"
            return str(self.value)
        if self.kind in (OperandKind.IMMEDIATE8, OperandKind.VECTOR):
            return f"${self.value:02X}"
        if self.kind is OperandKind.IMMEDIATE16:
            return f"${self.value:04X}"
        if self.kind is OperandKind.ADDRESS8:
            return f"(${HIGH_PAGE + self.value:04X})"
        if self.kind is OperandKind.ADDRESS16:
            return f"(${self.value:04X})"
        if self.kind is OperandKind.RELATIVE:
            return f"{self.value:+d}"
        return self.key


# =============================================================================
# Program Units
# =============================================================================

@dataclass
class Unit:
    """
    Base class for everything that occupies space in the output.

    Attributes:
        location: Source location of the statement
        address: Location counter value when the unit was appended
    """
    location: SourceLocation
    address: int


@dataclass
class Instruction(Unit):
    """
    Machine instruction.

    Attributes:
        mnemonic: Lowercase mnemonic
        operands: Zero to two operands, in source order
        size: Encoded size in bytes, fixed by the operand classes
    """
    mnemonic: str
    operands: tuple[Operand, ...] = ()
    size: int = 1

    @property
    def keys(self) -> tuple[str, ...]:
        return tuple(op.key for op in self.operands)

    def __str__(self) -> str:
        return format_form(self.mnemonic, tuple(str(op) for op in self.operands))


@dataclass
class Directive(Unit):
    """Base class for directives; the size is known without encoding."""

    @property
    def size(self) -> int:
        return 0


@dataclass
class ByteData(Directive):
    """Literal bytes from .byte."""
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


class StringKind(Enum):
    ASCII = auto()
    ASCIZ = auto()
    UTF8 = auto()


@dataclass
class StringData(Directive):
    """String emitted by .ascii, .asciz or .utf8."""
    text: str
    kind: StringKind

    @property
    def payload(self) -> bytes:
        if self.kind is StringKind.UTF8:
            return self.text.encode("utf-8")
        data = self.text.encode("ascii")
        if self.kind is StringKind.ASCIZ:
            data += b"\x00"
        return data

    @property
    def size(self) -> int:
        return len(self.payload)


@dataclass
class Fill(Directive):
    """A run of count bytes, all equal to value."""
    count: int
    value: int

    @property
    def size(self) -> int:
        return self.count


@dataclass
class Pad(Directive):
    """Filler from the unit's address up to an absolute target position."""
    target: int
    value: int

    @property
    def size(self) -> int:
        return self.target - self.address


@dataclass
class Constant(Directive):
    """A .equ definition; the value lives in the symbol table."""
    name: str
    value: int


@dataclass
class Include(Directive):
    """Marks where an included file's statements begin."""
    path: str


# =============================================================================
# Symbol Table
# =============================================================================

@dataclass
class Symbol:
    """
    Symbol table entry.

    Attributes:
        name: Symbol name
        value: Resolved 16-bit value (address or constant)
        location: Where the symbol was defined (None for predefined symbols)
        is_constant: True for .equ and predefined symbols, False for labels
    """
    name: str
    value: int
    location: Optional[SourceLocation] = None
    is_constant: bool = False


class SymbolTable:
    """
    Mapping of names to resolved values.

    Labels and constants share the table. Once defined, a name is never
    overwritten: any redefinition raises DuplicateSymbolError.
    """

    def __init__(self) -> None:
        self._symbols: dict[str, Symbol] = {}

    def define(
        self,
        name: str,
        value: int,
        location: Optional[SourceLocation] = None,
        is_constant: bool = False,
        source_line: Optional[str] = None,
    ) -> Symbol:
        """
        Add a symbol.

        Raises:
            DuplicateSymbolError: If the name is already defined
            RangeError: If the value does not fit in 16 bits
        """
        if name in self._symbols:
            raise DuplicateSymbolError(
                name,
                location=location,
                original_location=self._symbols[name].location,
                source_line=source_line,
            )
        if not 0 <= value <= MAX_ADDRESS:
            raise RangeError(
                f"value ${value:X} of '{name}' does not fit in 16 bits",
                location,
                source_line=source_line,
            )

        symbol = Symbol(name, value, location, is_constant)
        self._symbols[name] = symbol
        return symbol

    def lookup(self, name: str) -> Optional[Symbol]:
        return self._symbols.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._symbols

    def __len__(self) -> int:
        return len(self._symbols)

    def __iter__(self) -> Iterator[Symbol]:
        return iter(self._symbols.values())

    def as_dict(self) -> dict[str, int]:
        """All symbols as name -> value."""
        return {name: sym.value for name, sym in self._symbols.items()}

    def labels(self) -> dict[str, int]:
        """Label symbols only (the addresses a library exports)."""
        return {name: sym.value for name, sym in self._symbols.items() if not sym.is_constant}

    def similar(self, name: str) -> list[str]:
        """
        Find defined names that look like a typo of name.

        Uses a case-insensitive match or an edit distance of at most 2.
        """
        name_lower = name.lower()
        similar = []

        for sym in self._symbols:
            sym_lower = sym.lower()
            if (
                sym_lower == name_lower or
                abs(len(sym) - len(name)) <= 1 and
                _edit_distance(name_lower, sym_lower) <= 2
            ):
                similar.append(sym)

        return similar[:3]


def _edit_distance(s1: str, s2: str) -> int:
    """Levenshtein edit distance between two strings."""
    if len(s1) < len(s2):
        s1, s2 = s2, s1

    distances = list(range(len(s2) + 1))
    for i, c1 in enumerate(s1):
        new_distances = [i + 1]
        for j, c2 in enumerate(s2):
            if c1 == c2:
                new_distances.append(distances[j])
            else:
                new_distances.append(1 + min(distances[j], distances[j + 1], new_distances[-1]))
        distances = new_distances
    return distances[-1]


# =============================================================================
# Program
# =============================================================================

@dataclass
class Program:
    """
    The parser's output: units in emission order plus the symbol table.

    Attributes:
        units: Instructions and directives, in source order
        location: Location counter, i.e. the address of the next unit and,
                  once parsing is complete, the total output length
        symbols: Labels and constants
    """
    units: list[Unit] = field(default_factory=list)
    location: int = 0
    symbols: SymbolTable = field(default_factory=SymbolTable)

    def append(self, unit: Unit) -> None:
        """Append a unit and advance the location counter by its size."""
        self.units.append(unit)
        self.location += unit.size

    @property
    def instructions(self) -> list[Instruction]:
        return [unit for unit in self.units if isinstance(unit, Instruction)]

    def __len__(self) -> int:
        return len(self.units)


# =============================================================================
# Operand Matching
# =============================================================================

@dataclass
class _RawOperand:
    """
    An operand as written, before it is matched to an instruction form.

    form is one of: register, pair, flag, number, name, indirect,
    indirect_pair, address, address_name.
    """
    form: str
    value: int | str
    token: Token


class _Fit(Enum):
    MATCH = auto()
    MISMATCH = auto()
    OUT_OF_RANGE = auto()


def _high_page_offset(value: int) -> Optional[int]:
    """Offset into $FF00-$FFFF for ldh, accepting either n8 or the full address."""
    if value <= 0xFF:
        return value
    if value >= HIGH_PAGE:
        return value - HIGH_PAGE
    return None


def _fit(raw: _RawOperand, key: str) -> _Fit:
    """Check whether a written operand fits one opcode-table key."""
    form, value = raw.form, raw.value
    result = False

    if key in REGISTERS:
        result = form == "register" and value == key
    elif key in REGISTER_PAIRS:
        result = form == "pair" and value == key
    elif key in CONDITIONS:
        # "c" lexes as the register but doubles as the carry condition
        result = (form == "flag" and value == key) or (
            key == "cr" and form == "register" and value == "c"
        )
    elif key == "(c)":
        result = form == "indirect" and value == "c"
    elif key in ("(hl)", "(bc)", "(de)"):
        result = form == "indirect_pair" and f"({value})" == key
    elif key == "n8":
        if form == "number" and value > 0xFF:
            return _Fit.OUT_OF_RANGE
        result = form in ("number", "name")
    elif key in ("n16", "e8"):
        result = form in ("number", "name")
    elif key == "(n16)":
        result = form in ("address", "address_name")
    elif key == "(n8)":
        if form == "address" and _high_page_offset(value) is None:
            return _Fit.OUT_OF_RANGE
        result = form in ("address", "address_name")
    elif key.isdigit():
        if form == "number" and value > 7:
            return _Fit.OUT_OF_RANGE
        result = form == "number" and value == int(key)
    elif key.startswith("$"):
        if form == "number" and value not in RST_VECTORS:
            return _Fit.OUT_OF_RANGE
        result = form == "number" and value == int(key[1:], 16)

    return _Fit.MATCH if result else _Fit.MISMATCH


# =============================================================================
# Source Reading
# =============================================================================

def read_source(path: str | Path) -> str:
    """
    Read a source file.

    Raises:
        OSError: If the file cannot be read
        UnicodeDecodeError: If the file is not valid UTF-8
    """
    return Path(path).read_text(encoding="utf-8")


# =============================================================================
# Parser Implementation
# =============================================================================

class Parser:
    """
    Single-pass parser and resolver.

    All state of one assembly run lives here: the token list and cursor, the
    program being built (units, location counter, symbol table) and the set
    of include files currently being spliced. Separate Parser instances never
    share state.

    Usage:
        tokens = scan(source, "game.asm")
        program = Parser(tokens, "game.asm", source=source).parse()
    """

    def __init__(
        self,
        tokens: list[Token],
        filename: str = "<input>",
        include_paths: Optional[list[str | Path]] = None,
        defines: Optional[dict[str, int]] = None,
        source: Optional[str] = None,
        reader: Optional[Callable[[Path], str]] = None,
    ):
        """
        Initialize the parser.

        Args:
            tokens: Tokens of the root file
            filename: Root source filename, for include resolution and errors
            include_paths: Extra directories searched for .use files
            defines: Predefined constants (like -D on the command line)
            source: Root source text, used to quote lines in error messages
            reader: Reads an include file's text (default: read_source)
        """
        self._tokens = list(tokens)
        self._reader = reader or read_source
        self._filename = filename
        self._pos = 0
        self._program = Program()
        self._include_paths = [Path(p) for p in include_paths or ()]

        # Source lines by filename, for error context
        self._sources: dict[str, list[str]] = {}
        if source is not None:
            self._sources[filename] = source.splitlines()

        # Canonical paths of files whose tokens are currently being parsed
        self._active_includes: list[str] = []
        if filename != "<input>" and Path(filename).is_file():
            self._active_includes.append(str(Path(filename).resolve()))

        for name, value in (defines or {}).items():
            self._program.symbols.define(name, value, is_constant=True)

    @property
    def program(self) -> Program:
        return self._program

    def parse(self) -> Program:
        """
        Parse all tokens, then back-patch symbol references.

        Returns:
            The completed Program

        Raises:
            AssemblerError: On the first error encountered
        """
        while not self._at_end():
            token = self._current()

            if token.type is TokenType.NEWLINE:
                self._advance()
            elif token.type is TokenType.END_INCLUDE:
                self._finish_include(token)
                self._advance()
            elif token.type is TokenType.IDENTIFIER and self._peek_type(1) is TokenType.COLON:
                self._parse_label()
            elif token.type is TokenType.MNEMONIC:
                self._parse_instruction()
            elif token.type is TokenType.DIRECTIVE:
                self._parse_directive()
            else:
                raise self._unexpected_statement(token)

        self._backpatch()

        logger.debug(
            f"Parsed {len(self._program)} units, {self._program.location} bytes, "
            f"{len(self._program.symbols)} symbols"
        )
        return self._program

    # =========================================================================
    # Token Navigation
    # =========================================================================

    def _at_end(self) -> bool:
        return self._pos >= len(self._tokens)

    def _current(self) -> Token:
        return self._tokens[self._pos]

    def _peek_type(self, offset: int) -> Optional[TokenType]:
        pos = self._pos + offset
        if pos >= len(self._tokens):
            return None
        return self._tokens[pos].type

    def _advance(self) -> Token:
        token = self._tokens[self._pos]
        self._pos += 1
        return token

    def _check(self, token_type: TokenType) -> bool:
        return not self._at_end() and self._current().type is token_type

    def _match(self, token_type: TokenType) -> Optional[Token]:
        if self._check(token_type):
            return self._advance()
        return None

    def _at_statement_end(self) -> bool:
        return self._at_end() or self._current().type in (TokenType.NEWLINE, TokenType.END_INCLUDE)

    def _last_location(self) -> SourceLocation:
        """Location just past the last token, for errors at end of input."""
        last = self._tokens[-1]
        return SourceLocation(last.filename, last.line, last.column + 1)

    def _expect(self, token_type: TokenType, what: str) -> Token:
        if self._at_end():
            raise self._error(AssemblySyntaxError, f"expected {what}, found end of input",
                              self._last_location())
        token = self._current()
        if token.type is not token_type:
            raise self._error(AssemblySyntaxError, f"expected {what}, found {token.describe()}",
                              token.location)
        return self._advance()

    def _end_of_statement(self) -> None:
        """Require a statement-terminating newline (or end of file)."""
        if self._at_end():
            return
        token = self._current()
        if token.type is TokenType.NEWLINE:
            self._advance()
        elif token.type is not TokenType.END_INCLUDE:
            raise self._error(
                AssemblySyntaxError,
                f"expected end of line, found {token.describe()}",
                token.location,
            )

    # =========================================================================
    # Error Helpers
    # =========================================================================

    def _source_line(self, location: Optional[SourceLocation]) -> Optional[str]:
        if location is None:
            return None
        lines = self._sources.get(location.filename)
        if lines is None or not 0 < location.line <= len(lines):
            return None
        return lines[location.line - 1]

    def _error(self, cls, message: str, location: SourceLocation, hint: Optional[str] = None):
        return cls(message, location, hint=hint, source_line=self._source_line(location))

    def _unexpected_statement(self, token: Token) -> AssemblySyntaxError:
        hint = None
        if token.type is TokenType.IDENTIFIER:
            lowered = str(token.value).lower()
            if lowered in MNEMONICS:
                hint = f"mnemonics are lowercase; did you mean '{lowered}'?"
            else:
                hint = f"labels are defined as '{token.value}:'"
        return self._error(
            AssemblySyntaxError,
            f"unexpected {token.describe()} at start of statement",
            token.location,
            hint,
        )

    # =========================================================================
    # Labels
    # =========================================================================

    def _parse_label(self) -> None:
        """Bind name: to the current location counter."""
        token = self._advance()
        self._advance()  # colon

        address = self._program.location
        if address > MAX_ADDRESS:
            raise self._error(
                RangeError,
                f"label '{token.value}' at ${address:X} is beyond the 16-bit address space",
                token.location,
            )

        self._program.symbols.define(
            token.value, address, token.location,
            source_line=self._source_line(token.location),
        )
        logger.debug(f"Label {token.value} = ${address:04X}")

    def _emit(self, unit: Unit) -> None:
        """Append a unit, refusing output that runs past $FFFF."""
        end = unit.address + unit.size
        if end > MAX_ADDRESS + 1:
            raise self._error(
                RangeError,
                f"output ends at ${end:X}, beyond the 16-bit address space",
                unit.location,
                hint=f"this statement starts at ${unit.address:X} and emits {unit.size} byte(s)",
            )
        self._program.append(unit)

    # =========================================================================
    # Instructions
    # =========================================================================

    def _parse_instruction(self) -> None:
        token = self._advance()
        mnemonic = token.value

        raw = self._parse_raw_operands()
        keys, info = self._select_form(mnemonic, raw, token)
        self._end_of_statement()

        address = self._program.location
        next_address = address + info.size
        operands = tuple(
            self._build_operand(operand, key, next_address)
            for operand, key in zip(raw, keys)
        )

        self._emit(Instruction(token.location, address, mnemonic, operands, info.size))

    def _parse_raw_operands(self) -> list[_RawOperand]:
        """Parse a comma-separated operand list up to the end of the statement."""
        operands: list[_RawOperand] = []
        if self._at_statement_end():
            return operands

        operands.append(self._parse_raw_operand())
        while self._match(TokenType.COMMA):
            operands.append(self._parse_raw_operand())
        return operands

    def _parse_raw_operand(self) -> _RawOperand:
        if self._at_statement_end():
            location = self._last_location() if self._at_end() else self._current().location
            raise self._error(AssemblySyntaxError, "expected operand", location)

        token = self._advance()
        simple_forms = {
            TokenType.REGISTER: "register",
            TokenType.REGISTER16: "pair",
            TokenType.FLAG: "flag",
            TokenType.NUMBER: "number",
            TokenType.IDENTIFIER: "name",
        }
        if token.type in simple_forms:
            return _RawOperand(simple_forms[token.type], token.value, token)

        if token.type is TokenType.LPAREN:
            inner_forms = {
                TokenType.REGISTER: "indirect",
                TokenType.REGISTER16: "indirect_pair",
                TokenType.NUMBER: "address",
                TokenType.IDENTIFIER: "address_name",
            }
            inner = self._advance() if not self._at_statement_end() else None
            if inner is None or inner.type not in inner_forms:
                location = inner.location if inner else token.location
                raise self._error(
                    AssemblySyntaxError,
                    "expected register, address or label inside parentheses",
                    location,
                )
            self._expect(TokenType.RPAREN, "')'")
            return _RawOperand(inner_forms[inner.type], inner.value, inner)

        raise self._error(
            AssemblySyntaxError, f"expected operand, found {token.describe()}", token.location
        )

    def _select_form(
        self, mnemonic: str, raw: list[_RawOperand], token: Token
    ) -> tuple[tuple[str, ...], InstructionInfo]:
        """
        Match written operands against the mnemonic's grammar.

        Returns:
            The matching operand keys and their encoding

        Raises:
            RangeError: If a literal has the right class but the wrong width
            AssemblySyntaxError: If no form matches
        """
        forms = get_valid_forms(mnemonic)
        out_of_range: Optional[_RawOperand] = None

        for keys in forms:
            if len(keys) != len(raw):
                continue
            fits = [_fit(operand, key) for operand, key in zip(raw, keys)]
            if all(f is _Fit.MATCH for f in fits):
                return keys, get_instruction_info(mnemonic, keys)
            if out_of_range is None and _Fit.MISMATCH not in fits:
                out_of_range = raw[fits.index(_Fit.OUT_OF_RANGE)]

        if out_of_range is not None:
            raise self._error(
                RangeError,
                f"value {out_of_range.value} is out of range for '{mnemonic}'",
                out_of_range.token.location,
            )

        hint = _describe_forms(mnemonic, forms)
        arities = {len(keys) for keys in forms}
        if len(raw) not in arities:
            expected = " or ".join(str(n) for n in sorted(arities))
            message = f"'{mnemonic}' takes {expected} operand(s), got {len(raw)}"
        else:
            message = f"invalid operands for '{mnemonic}'"
        error_location = raw[0].token.location if raw else token.location
        raise self._error(AssemblySyntaxError, message, error_location, hint)

    def _build_operand(self, raw: _RawOperand, key: str, next_address: int) -> Operand:
        """Turn a written operand into the Operand for the matched key."""
        if key in REGISTERS:
            return Operand(OperandKind.REGISTER, key)
        if key in REGISTER_PAIRS:
            return Operand(OperandKind.REGISTER16, key)
        if key in CONDITIONS:
            return Operand(OperandKind.CONDITION, key)
        if key == "(c)":
            return Operand(OperandKind.INDIRECT, "c")
        if key.startswith("(") and key[1:-1] in REGISTER_PAIRS:
            return Operand(OperandKind.INDIRECT16, key[1:-1])
        if key.isdigit():
            return Operand(OperandKind.BIT, raw.value)
        if key.startswith("$"):
            return Operand(OperandKind.VECTOR, raw.value)

        kind = VALUE_KEY_KINDS[key]
        if raw.form in ("name", "address_name"):
            return Operand(OperandKind.SYMBOL, raw.value, target=kind, location=raw.token.location)
        value = self._convert(kind, raw.value, next_address, raw.token.location)
        return Operand(kind, value)

    def _convert(
        self,
        kind: OperandKind,
        value: int,
        next_address: int,
        location: Optional[SourceLocation],
        name: Optional[str] = None,
    ) -> int:
        """
        Fit a resolved value into an operand class.

        Relative targets become the signed displacement from next_address,
        high-page addresses become the offset from $FF00.
        """
        label = f"'{name}' (${value:04X})" if name else f"${value:X}"

        if kind is OperandKind.IMMEDIATE8:
            if value > 0xFF:
                raise self._error(RangeError, f"value {label} does not fit in 8 bits", location)
        elif kind is OperandKind.ADDRESS8:
            offset = _high_page_offset(value)
            if offset is None:
                raise self._error(
                    RangeError,
                    f"address {label} is not in the high page ($FF00-$FFFF)",
                    location,
                )
            return offset
        elif kind is OperandKind.RELATIVE:
            displacement = value - next_address
            if not -128 <= displacement <= 127:
                raise self._error(
                    RangeError,
                    f"relative jump to {label} is out of range (offset {displacement})",
                    location,
                    hint="jr reaches -128..+127 bytes from the next instruction; use jp",
                )
            return displacement
        return value

    # =========================================================================
    # Directives
    # =========================================================================

    def _parse_directive(self) -> None:
        token = self._advance()
        handlers = {
            ".byte": self._directive_byte,
            ".ascii": self._directive_string,
            ".asciz": self._directive_string,
            ".utf8": self._directive_string,
            ".fill": self._directive_fill,
            ".org": self._directive_org,
            ".equ": self._directive_equ,
            ".use": self._directive_use,
            ".text": self._directive_section,
            ".data": self._directive_section,
        }
        handlers[token.value](token)

    def _expect_number(self, what: str = "number") -> Token:
        return self._expect(TokenType.NUMBER, what)

    def _expect_byte(self) -> int:
        token = self._expect_number("byte value")
        if token.value > 0xFF:
            raise self._error(
                RangeError, f"byte value {token.value} does not fit in 8 bits", token.location
            )
        return token.value

    def _directive_byte(self, token: Token) -> None:
        values = []
        if not self._at_statement_end():
            values.append(self._expect_byte())
            while self._match(TokenType.COMMA):
                values.append(self._expect_byte())
        self._end_of_statement()

        data = bytes(values) if values else b"\x00"
        self._emit(ByteData(token.location, self._program.location, data))

    def _directive_string(self, token: Token) -> None:
        kind = {
            ".ascii": StringKind.ASCII,
            ".asciz": StringKind.ASCIZ,
            ".utf8": StringKind.UTF8,
        }[token.value]

        string = self._expect(TokenType.STRING, "string")
        self._end_of_statement()

        if kind is not StringKind.UTF8 and not string.value.isascii():
            raise self._error(
                RangeError,
                f"{token.value} string contains non-ASCII characters",
                string.location,
                hint="use .utf8 for text outside 7-bit ASCII",
            )
        self._emit(StringData(token.location, self._program.location, string.value, kind))

    def _directive_fill(self, token: Token) -> None:
        count = self._expect_number("fill count").value
        self._expect(TokenType.COMMA, "','")
        value = self._expect_byte()
        self._end_of_statement()

        self._emit(Fill(token.location, self._program.location, count, value))

    def _directive_org(self, token: Token) -> None:
        target_token = self._expect_number("target address")
        value = 0
        if self._match(TokenType.COMMA):
            value = self._expect_byte()
        self._end_of_statement()

        location = self._program.location
        if target_token.value < location:
            raise self._error(
                RangeError,
                f".org ${target_token.value:04X} is behind the current location ${location:04X}",
                target_token.location,
            )
        self._emit(Pad(token.location, location, target_token.value, value))

    def _directive_equ(self, token: Token) -> None:
        name = self._expect(TokenType.IDENTIFIER, "constant name")
        self._expect(TokenType.COMMA, "','")
        value = self._expect_number("constant value").value
        self._end_of_statement()

        self._program.symbols.define(
            name.value, value, name.location, is_constant=True,
            source_line=self._source_line(name.location),
        )
        self._emit(Constant(token.location, self._program.location, name.value, value))
        logger.debug(f"Constant {name.value} = ${value:04X}")

    def _directive_section(self, token: Token) -> None:
        self._end_of_statement()
        logger.debug(f"Section marker {token.value} at ${self._program.location:04X}")

    # =========================================================================
    # Includes
    # =========================================================================

    def _directive_use(self, token: Token) -> None:
        """
        Splice an included file's tokens into the live token list.

        The tokens go right after this statement, followed by an END_INCLUDE
        marker that takes the file off the in-progress list. Parsing simply
        continues through them, so labels and the location counter are shared
        with the including file.
        """
        name = self._expect(TokenType.STRING, "file name")
        self._end_of_statement()

        path = self._resolve_include(name.value, name.location)
        canonical = str(path.resolve())
        if canonical in self._active_includes:
            chain = [Path(p).name for p in self._active_includes] + [path.name]
            raise CircularIncludeError(
                name.value, chain, name.location, source_line=self._source_line(name.location)
            )

        try:
            text = self._reader(path)
        except (OSError, UnicodeDecodeError) as e:
            reason = e.strerror if isinstance(e, OSError) and e.strerror else str(e)
            raise self._error_include(name, reason) from e

        filename = str(path)
        tokens = scan(text, filename)
        self._sources[filename] = text.splitlines()

        last_line = tokens[-1].line if tokens else 1
        marker = Token(TokenType.END_INCLUDE, canonical, last_line, 1, filename)
        self._tokens[self._pos:self._pos] = tokens + [marker]
        self._active_includes.append(canonical)

        self._emit(Include(token.location, self._program.location, name.value))
        logger.debug(f"Included {filename} ({len(tokens)} tokens)")

    def _finish_include(self, marker: Token) -> None:
        self._active_includes.remove(marker.value)

    def _resolve_include(self, name: str, location: SourceLocation) -> Path:
        """
        Find an include file: working directory first, then the including
        file's directory, then the configured include paths.
        """
        candidates = [Path(name)]
        if location.filename != "<input>":
            candidates.append(Path(location.filename).parent / name)
        candidates.extend(path / name for path in self._include_paths)

        for candidate in candidates:
            if candidate.is_file():
                return candidate

        searched = list(dict.fromkeys(str(c.parent) for c in candidates))
        raise IncludeError(
            name, "file not found", location,
            source_line=self._source_line(location),
            search_paths=searched,
        )

    def _error_include(self, name: Token, reason: str) -> IncludeError:
        return IncludeError(
            name.value, reason, name.location, source_line=self._source_line(name.location)
        )

    # =========================================================================
    # Back-patch
    # =========================================================================

    def _backpatch(self) -> None:
        """Replace every symbol operand with its resolved value."""
        patched = 0
        for inst in self._program.instructions:
            if not any(op.is_symbol for op in inst.operands):
                continue
            inst.operands = tuple(self._resolve(op, inst) for op in inst.operands)
            patched += 1

        if patched:
            logger.debug(f"Back-patched {patched} instruction(s)")

    def _resolve(self, operand: Operand, inst: Instruction) -> Operand:
        if not operand.is_symbol:
            return operand

        symbol = self._program.symbols.lookup(operand.value)
        if symbol is None:
            raise UnresolvedSymbolError(
                operand.value,
                location=operand.location,
                source_line=self._source_line(operand.location),
                similar_symbols=self._program.symbols.similar(operand.value),
            )

        value = self._convert(
            operand.target, symbol.value, inst.address + inst.size, operand.location, operand.value
        )
        return Operand(operand.target, value)


def _describe_forms(mnemonic: str, forms: tuple[tuple[str, ...], ...], limit: int = 8) -> str:
    """List valid forms for a hint, collapsing the long bit/res/set tables."""
    shown = [format_form(mnemonic, keys) for keys in forms[:limit]]
    if len(forms) > limit:
        shown.append(f"... ({len(forms)} forms)")
    return "valid forms: " + "; ".join(shown)


# =============================================================================
# Convenience Functions
# =============================================================================

def parse(
    tokens: list[Token],
    filename: str = "<input>",
    include_paths: Optional[list[str | Path]] = None,
    defines: Optional[dict[str, int]] = None,
    source: Optional[str] = None,
    reader: Optional[Callable[[Path], str]] = None,
) -> Program:
    """Parse a token list into a back-patched Program."""
    return Parser(tokens, filename, include_paths, defines, source, reader).parse()


def parse_source(
    source: str,
    filename: str = "<input>",
    include_paths: Optional[list[str | Path]] = None,
    defines: Optional[dict[str, int]] = None,
) -> Program:
    """Scan and parse source text."""
    return parse(scan(source, filename), filename, include_paths, defines, source)
