"""
Game Boy SDK CPU Package
========================

This package contains the CPU architecture definitions shared by the
assembler's lexer, parser and code generator.

The Game Boy uses a Sharp LR35902, a Z80-derived 8-bit CPU running at
4.19 MHz.

Modules:
    lr35902: Keyword tables, the opcode map and lookup helpers.

Usage:
    from gb_sdk.cpu import (
        OPCODE_TABLE,
        InstructionInfo,
        get_instruction_info,
    )
"""

from gb_sdk.cpu.lr35902 import (
    # Core types
    InstructionInfo,
    # Keyword tables
    REGISTERS,
    REGISTER_PAIRS,
    FLAGS,
    CONDITIONS,
    MNEMONICS,
    DIRECTIVES,
    # Opcode map
    OPCODE_TABLE,
    MNEMONIC_FORMS,
    OPERAND_SIZES,
    VALUE_KEYS,
    R8_ORDER,
    RST_VECTORS,
    # Lookup functions
    get_instruction_info,
    get_valid_forms,
    format_form,
)

__all__ = [
    "InstructionInfo",
    "REGISTERS",
    "REGISTER_PAIRS",
    "FLAGS",
    "CONDITIONS",
    "MNEMONICS",
    "DIRECTIVES",
    "OPCODE_TABLE",
    "MNEMONIC_FORMS",
    "OPERAND_SIZES",
    "VALUE_KEYS",
    "R8_ORDER",
    "RST_VECTORS",
    "get_instruction_info",
    "get_valid_forms",
    "format_form",
]
