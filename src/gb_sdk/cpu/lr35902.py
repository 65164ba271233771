"""
LR35902 Instruction Set Definition
==================================

This module defines the Game Boy CPU (Sharp LR35902) instruction set: the
keyword tables the lexer classifies identifiers against, and the opcode table
the parser and the code generator share.

The LR35902 is a Z80 derivative. It drops the Z80's IX/IY registers, the
shadow register set and the ED/DD/FD prefixes, and adds a handful of
Game Boy specific forms (LDH, LDI/LDD, SWAP, STOP).

Operand Keys
------------
Every operand has a *key* describing its operand class. An instruction form
is identified by its mnemonic and the tuple of its operand keys:

| Key               | Meaning                                 | Bytes |
|-------------------|-----------------------------------------|-------|
| a b c d e h l     | 8-bit register                          | 0     |
| af bc de hl sp    | 16-bit register pair                    | 0     |
| (c)               | high-page indirect through C            | 0     |
| (hl) (bc) (de)    | indirect through a register pair        | 0     |
| nz z nc cr        | condition flag (cr is the carry flag)   | 0     |
| n8                | 8-bit immediate                         | 1     |
| n16               | 16-bit immediate (little-endian)        | 2     |
| (n8)              | high-page address $FF00+n8 (LDH)        | 1     |
| (n16)             | absolute memory address                 | 2     |
| e8                | signed jump displacement (JR)           | 1     |
| 0 .. 7            | bit index (BIT/RES/SET)                 | 0     |
| $00 .. $38        | restart vector (RST)                    | 0     |

Example
-------
>>> from gb_sdk.cpu import OPCODE_TABLE
>>> OPCODE_TABLE[("jp", ("n16",))]
InstructionInfo(opcode=C3, size=3)

Reference
---------
- Pan Docs, CPU Instruction Set: https://gbdev.io/pandocs/CPU_Instruction_Set.html
- Opcode map: https://gbdev.io/gb-opcodes/optables/
"""

from dataclasses import dataclass
from typing import Optional


# =============================================================================
# Keyword Tables
# =============================================================================
# All keywords are lowercase and matched case-sensitively by the lexer.
# Anything that is not a keyword is a plain identifier (a label name).
# =============================================================================

REGISTERS = frozenset({"a", "b", "c", "d", "e", "h", "l"})

REGISTER_PAIRS = frozenset({"af", "bc", "de", "hl", "sp", "pc"})

# n (subtract) and hc (half carry) are flags, but no instruction branches on them
FLAGS = frozenset({"z", "nz", "n", "hc", "cr", "nc"})

# Flags usable as a branch condition; "cr" is the carry flag
CONDITIONS = frozenset({"nz", "z", "nc", "cr"})

MNEMONICS = frozenset({
    "adc", "add", "and", "bit", "call", "ccf", "cp", "cpl", "daa", "dec",
    "di", "ei", "halt", "inc", "jp", "jr", "ld", "ldd", "ldh", "ldhl", "ldi",
    "nop", "or", "pop", "push", "res", "ret", "reti", "rl", "rla", "rlc",
    "rlca", "rr", "rra", "rrc", "rrca", "rst", "sbc", "scf", "set", "sla",
    "sra", "srl", "stop", "sub", "swap", "xor",
})

DIRECTIVES = frozenset({
    ".ascii", ".asciz", ".byte", ".data", ".equ", ".fill", ".org", ".text",
    ".use", ".utf8",
})


# =============================================================================
# Operand Sizes
# =============================================================================

# Operand keys that carry payload bytes after the opcode
OPERAND_SIZES: dict[str, int] = {
    "n8": 1,
    "(n8)": 1,
    "e8": 1,
    "n16": 2,
    "(n16)": 2,
}

# Operand keys whose value is supplied by a literal or a label
VALUE_KEYS = frozenset(OPERAND_SIZES)

# Register operands in the order the opcode map encodes them (r8 field)
R8_ORDER = ("b", "c", "d", "e", "h", "l", "(hl)", "a")

# Restart vectors accepted by RST
RST_VECTORS = tuple(range(0x00, 0x40, 0x08))


# =============================================================================
# Instruction Information
# =============================================================================

@dataclass(frozen=True)
class InstructionInfo:
    """
    Encoding of one instruction form.

    Attributes:
        opcode: The opcode byte(s), including any $CB prefix
        operand_size: Number of payload bytes following the opcode (0-2)
    """
    opcode: bytes
    operand_size: int = 0

    @property
    def size(self) -> int:
        """Total encoded size in bytes."""
        return len(self.opcode) + self.operand_size

    def __repr__(self) -> str:
        return f"InstructionInfo(opcode={self.opcode.hex(' ').upper()}, size={self.size})"


# =============================================================================
# Opcode Map
# =============================================================================
# Key: (mnemonic, operand keys)
# Value: opcode byte, or a tuple of bytes for two-byte opcodes
#
# The table mirrors the hardware opcode map row by row. Forms are listed in
# the order the parser tries them, so keep the more specific forms first.
# =============================================================================

_OPCODES: dict[tuple[str, tuple[str, ...]], int | tuple[int, ...]] = {
    # -------------------------------------------------------------------------
    # 0x00-0x3F
    # -------------------------------------------------------------------------
    ("nop", ()): 0x00,
    ("ld", ("bc", "n16")): 0x01,
    ("ld", ("(bc)", "a")): 0x02,
    ("inc", ("bc",)): 0x03,
    ("inc", ("b",)): 0x04,
    ("dec", ("b",)): 0x05,
    ("ld", ("b", "n8")): 0x06,
    ("rlca", ()): 0x07,
    ("ld", ("(n16)", "sp")): 0x08,
    ("add", ("hl", "bc")): 0x09,
    ("ld", ("a", "(bc)")): 0x0A,
    ("dec", ("bc",)): 0x0B,
    ("inc", ("c",)): 0x0C,
    ("dec", ("c",)): 0x0D,
    ("ld", ("c", "n8")): 0x0E,
    ("rrca", ()): 0x0F,

    ("stop", ()): (0x10, 0x00),
    ("ld", ("de", "n16")): 0x11,
    ("ld", ("(de)", "a")): 0x12,
    ("inc", ("de",)): 0x13,
    ("inc", ("d",)): 0x14,
    ("dec", ("d",)): 0x15,
    ("ld", ("d", "n8")): 0x16,
    ("rla", ()): 0x17,
    ("jr", ("e8",)): 0x18,
    ("add", ("hl", "de")): 0x19,
    ("ld", ("a", "(de)")): 0x1A,
    ("dec", ("de",)): 0x1B,
    ("inc", ("e",)): 0x1C,
    ("dec", ("e",)): 0x1D,
    ("ld", ("e", "n8")): 0x1E,
    ("rra", ()): 0x1F,

    ("jr", ("nz", "e8")): 0x20,
    ("ld", ("hl", "n16")): 0x21,
    ("ldi", ("(hl)", "a")): 0x22,
    ("inc", ("hl",)): 0x23,
    ("inc", ("h",)): 0x24,
    ("dec", ("h",)): 0x25,
    ("ld", ("h", "n8")): 0x26,
    ("daa", ()): 0x27,
    ("jr", ("z", "e8")): 0x28,
    ("add", ("hl", "hl")): 0x29,
    ("ldi", ("a", "(hl)")): 0x2A,
    ("dec", ("hl",)): 0x2B,
    ("inc", ("l",)): 0x2C,
    ("dec", ("l",)): 0x2D,
    ("ld", ("l", "n8")): 0x2E,
    ("cpl", ()): 0x2F,

    ("jr", ("nc", "e8")): 0x30,
    ("ld", ("sp", "n16")): 0x31,
    ("ldd", ("(hl)", "a")): 0x32,
    ("inc", ("sp",)): 0x33,
    ("inc", ("(hl)",)): 0x34,
    ("dec", ("(hl)",)): 0x35,
    ("ld", ("(hl)", "n8")): 0x36,
    ("scf", ()): 0x37,
    ("jr", ("cr", "e8")): 0x38,
    ("add", ("hl", "sp")): 0x39,
    ("ldd", ("a", "(hl)")): 0x3A,
    ("dec", ("sp",)): 0x3B,
    ("inc", ("a",)): 0x3C,
    ("dec", ("a",)): 0x3D,
    ("ld", ("a", "n8")): 0x3E,
    ("ccf", ()): 0x3F,

    # -------------------------------------------------------------------------
    # 0x40-0xBF
    # -------------------------------------------------------------------------
    ("halt", ()): 0x76,

    # ld r8, r8 (0x40-0x7F); 0x76 is halt, not ld (hl), (hl)
    ("ld", ("b", "b")): 0x40,
    ("ld", ("b", "c")): 0x41,
    ("ld", ("b", "d")): 0x42,
    ("ld", ("b", "e")): 0x43,
    ("ld", ("b", "h")): 0x44,
    ("ld", ("b", "l")): 0x45,
    ("ld", ("b", "(hl)")): 0x46,
    ("ld", ("b", "a")): 0x47,
    ("ld", ("c", "b")): 0x48,
    ("ld", ("c", "c")): 0x49,
    ("ld", ("c", "d")): 0x4A,
    ("ld", ("c", "e")): 0x4B,
    ("ld", ("c", "h")): 0x4C,
    ("ld", ("c", "l")): 0x4D,
    ("ld", ("c", "(hl)")): 0x4E,
    ("ld", ("c", "a")): 0x4F,
    ("ld", ("d", "b")): 0x50,
    ("ld", ("d", "c")): 0x51,
    ("ld", ("d", "d")): 0x52,
    ("ld", ("d", "e")): 0x53,
    ("ld", ("d", "h")): 0x54,
    ("ld", ("d", "l")): 0x55,
    ("ld", ("d", "(hl)")): 0x56,
    ("ld", ("d", "a")): 0x57,
    ("ld", ("e", "b")): 0x58,
    ("ld", ("e", "c")): 0x59,
    ("ld", ("e", "d")): 0x5A,
    ("ld", ("e", "e")): 0x5B,
    ("ld", ("e", "h")): 0x5C,
    ("ld", ("e", "l")): 0x5D,
    ("ld", ("e", "(hl)")): 0x5E,
    ("ld", ("e", "a")): 0x5F,
    ("ld", ("h", "b")): 0x60,
    ("ld", ("h", "c")): 0x61,
    ("ld", ("h", "d")): 0x62,
    ("ld", ("h", "e")): 0x63,
    ("ld", ("h", "h")): 0x64,
    ("ld", ("h", "l")): 0x65,
    ("ld", ("h", "(hl)")): 0x66,
    ("ld", ("h", "a")): 0x67,
    ("ld", ("l", "b")): 0x68,
    ("ld", ("l", "c")): 0x69,
    ("ld", ("l", "d")): 0x6A,
    ("ld", ("l", "e")): 0x6B,
    ("ld", ("l", "h")): 0x6C,
    ("ld", ("l", "l")): 0x6D,
    ("ld", ("l", "(hl)")): 0x6E,
    ("ld", ("l", "a")): 0x6F,
    ("ld", ("(hl)", "b")): 0x70,
    ("ld", ("(hl)", "c")): 0x71,
    ("ld", ("(hl)", "d")): 0x72,
    ("ld", ("(hl)", "e")): 0x73,
    ("ld", ("(hl)", "h")): 0x74,
    ("ld", ("(hl)", "l")): 0x75,
    ("ld", ("(hl)", "a")): 0x77,
    ("ld", ("a", "b")): 0x78,
    ("ld", ("a", "c")): 0x79,
    ("ld", ("a", "d")): 0x7A,
    ("ld", ("a", "e")): 0x7B,
    ("ld", ("a", "h")): 0x7C,
    ("ld", ("a", "l")): 0x7D,
    ("ld", ("a", "(hl)")): 0x7E,
    ("ld", ("a", "a")): 0x7F,

    # 8-bit arithmetic and logic on r8 (0x80-0xBF)
    ("add", ("a", "b")): 0x80,
    ("add", ("a", "c")): 0x81,
    ("add", ("a", "d")): 0x82,
    ("add", ("a", "e")): 0x83,
    ("add", ("a", "h")): 0x84,
    ("add", ("a", "l")): 0x85,
    ("add", ("a", "(hl)")): 0x86,
    ("add", ("a", "a")): 0x87,
    ("adc", ("a", "b")): 0x88,
    ("adc", ("a", "c")): 0x89,
    ("adc", ("a", "d")): 0x8A,
    ("adc", ("a", "e")): 0x8B,
    ("adc", ("a", "h")): 0x8C,
    ("adc", ("a", "l")): 0x8D,
    ("adc", ("a", "(hl)")): 0x8E,
    ("adc", ("a", "a")): 0x8F,
    ("sub", ("b",)): 0x90,
    ("sub", ("c",)): 0x91,
    ("sub", ("d",)): 0x92,
    ("sub", ("e",)): 0x93,
    ("sub", ("h",)): 0x94,
    ("sub", ("l",)): 0x95,
    ("sub", ("(hl)",)): 0x96,
    ("sub", ("a",)): 0x97,
    ("sbc", ("a", "b")): 0x98,
    ("sbc", ("a", "c")): 0x99,
    ("sbc", ("a", "d")): 0x9A,
    ("sbc", ("a", "e")): 0x9B,
    ("sbc", ("a", "h")): 0x9C,
    ("sbc", ("a", "l")): 0x9D,
    ("sbc", ("a", "(hl)")): 0x9E,
    ("sbc", ("a", "a")): 0x9F,
    ("and", ("b",)): 0xA0,
    ("and", ("c",)): 0xA1,
    ("and", ("d",)): 0xA2,
    ("and", ("e",)): 0xA3,
    ("and", ("h",)): 0xA4,
    ("and", ("l",)): 0xA5,
    ("and", ("(hl)",)): 0xA6,
    ("and", ("a",)): 0xA7,
    ("xor", ("b",)): 0xA8,
    ("xor", ("c",)): 0xA9,
    ("xor", ("d",)): 0xAA,
    ("xor", ("e",)): 0xAB,
    ("xor", ("h",)): 0xAC,
    ("xor", ("l",)): 0xAD,
    ("xor", ("(hl)",)): 0xAE,
    ("xor", ("a",)): 0xAF,
    ("or", ("b",)): 0xB0,
    ("or", ("c",)): 0xB1,
    ("or", ("d",)): 0xB2,
    ("or", ("e",)): 0xB3,
    ("or", ("h",)): 0xB4,
    ("or", ("l",)): 0xB5,
    ("or", ("(hl)",)): 0xB6,
    ("or", ("a",)): 0xB7,
    ("cp", ("b",)): 0xB8,
    ("cp", ("c",)): 0xB9,
    ("cp", ("d",)): 0xBA,
    ("cp", ("e",)): 0xBB,
    ("cp", ("h",)): 0xBC,
    ("cp", ("l",)): 0xBD,
    ("cp", ("(hl)",)): 0xBE,
    ("cp", ("a",)): 0xBF,

    # -------------------------------------------------------------------------
    # 0xC0-0xFF
    # -------------------------------------------------------------------------
    ("ret", ("nz",)): 0xC0,
    ("pop", ("bc",)): 0xC1,
    ("jp", ("nz", "n16")): 0xC2,
    ("jp", ("n16",)): 0xC3,
    ("call", ("nz", "n16")): 0xC4,
    ("push", ("bc",)): 0xC5,
    ("add", ("a", "n8")): 0xC6,
    ("rst", ("$00",)): 0xC7,
    ("ret", ("z",)): 0xC8,
    ("ret", ()): 0xC9,
    ("jp", ("z", "n16")): 0xCA,
    ("call", ("z", "n16")): 0xCC,
    ("call", ("n16",)): 0xCD,
    ("adc", ("a", "n8")): 0xCE,
    ("rst", ("$08",)): 0xCF,

    ("ret", ("nc",)): 0xD0,
    ("pop", ("de",)): 0xD1,
    ("jp", ("nc", "n16")): 0xD2,
    ("call", ("nc", "n16")): 0xD4,
    ("push", ("de",)): 0xD5,
    ("sub", ("n8",)): 0xD6,
    ("rst", ("$10",)): 0xD7,
    ("ret", ("cr",)): 0xD8,
    ("reti", ()): 0xD9,
    ("jp", ("cr", "n16")): 0xDA,
    ("call", ("cr", "n16")): 0xDC,
    ("sbc", ("a", "n8")): 0xDE,
    ("rst", ("$18",)): 0xDF,

    ("ldh", ("(n8)", "a")): 0xE0,
    ("pop", ("hl",)): 0xE1,
    ("ld", ("(c)", "a")): 0xE2,
    ("ldh", ("(c)", "a")): 0xE2,
    ("push", ("hl",)): 0xE5,
    ("and", ("n8",)): 0xE6,
    ("rst", ("$20",)): 0xE7,
    ("add", ("sp", "n8")): 0xE8,
    ("jp", ("hl",)): 0xE9,
    ("jp", ("(hl)",)): 0xE9,
    ("ld", ("(n16)", "a")): 0xEA,
    ("xor", ("n8",)): 0xEE,
    ("rst", ("$28",)): 0xEF,

    ("ldh", ("a", "(n8)")): 0xF0,
    ("pop", ("af",)): 0xF1,
    ("ld", ("a", "(c)")): 0xF2,
    ("ldh", ("a", "(c)")): 0xF2,
    ("di", ()): 0xF3,
    ("push", ("af",)): 0xF5,
    ("or", ("n8",)): 0xF6,
    ("rst", ("$30",)): 0xF7,
    ("ldhl", ("sp", "n8")): 0xF8,
    ("ld", ("sp", "hl")): 0xF9,
    ("ld", ("a", "(n16)")): 0xFA,
    ("ei", ()): 0xFB,
    ("cp", ("n8",)): 0xFE,
    ("rst", ("$38",)): 0xFF,
}

# $CB-prefixed rotate/shift (0x00-0x3F) and bit operations (0x40-0xFF).
# Each row applies one operation to the eight r8 operands in R8_ORDER.
_CB_ROTATES = ("rlc", "rrc", "rl", "rr", "sla", "sra", "swap", "srl")
_CB_BIT_OPS = ("bit", "res", "set")

for _row, _mnemonic in enumerate(_CB_ROTATES):
    for _col, _reg in enumerate(R8_ORDER):
        _OPCODES[(_mnemonic, (_reg,))] = (0xCB, _row * 8 + _col)

for _group, _mnemonic in enumerate(_CB_BIT_OPS, start=1):
    for _bit in range(8):
        for _col, _reg in enumerate(R8_ORDER):
            _OPCODES[(_mnemonic, (str(_bit), _reg))] = (0xCB, _group * 0x40 + _bit * 8 + _col)


def _make_info(keys: tuple[str, ...], opcode: int | tuple[int, ...]) -> InstructionInfo:
    """Build the InstructionInfo for one table row."""
    raw = bytes([opcode]) if isinstance(opcode, int) else bytes(opcode)
    return InstructionInfo(raw, sum(OPERAND_SIZES.get(key, 0) for key in keys))


OPCODE_TABLE: dict[tuple[str, tuple[str, ...]], InstructionInfo] = {
    key: _make_info(key[1], opcode) for key, opcode in _OPCODES.items()
}

# Per-mnemonic grammar: the legal operand forms, in table order
MNEMONIC_FORMS: dict[str, tuple[tuple[str, ...], ...]] = {}
for (_mnemonic, _keys) in OPCODE_TABLE:
    MNEMONIC_FORMS[_mnemonic] = MNEMONIC_FORMS.get(_mnemonic, ()) + (_keys,)

del _row, _col, _reg, _group, _bit, _mnemonic, _keys


# =============================================================================
# Lookup Functions
# =============================================================================

def get_instruction_info(mnemonic: str, keys: tuple[str, ...]) -> Optional[InstructionInfo]:
    """
    Look up the encoding of an instruction form.

    Args:
        mnemonic: Lowercase mnemonic
        keys: Operand keys, e.g. ("a", "n8")

    Returns:
        InstructionInfo, or None if the form does not exist
    """
    return OPCODE_TABLE.get((mnemonic, keys))


def get_valid_forms(mnemonic: str) -> tuple[tuple[str, ...], ...]:
    """Return the legal operand forms of a mnemonic (empty if unknown)."""
    return MNEMONIC_FORMS.get(mnemonic, ())


def format_form(mnemonic: str, keys: tuple[str, ...]) -> str:
    """Render a form for messages, e.g. 'ld a, n8'."""
    if not keys:
        return mnemonic
    return f"{mnemonic} {', '.join(keys)}"
