"""
LR35902 Assembler for the Game Boy
==================================

This package converts Game Boy assembly source into machine code, written
either as a flat binary or as a library container with exported labels.

Main Components
---------------
- **Assembler**: Facade that runs the whole pipeline and writes output
- **Lexer**: Turns source text into tokens
- **Parser**: Single-pass parser/resolver that builds the Program, binds
  labels, splices includes and back-patches forward references
- **CodeGenerator**: Encodes the Program into bytes

Assembly Process
----------------
1. **Scanning**: source text -> tokens (mnemonics, registers, numbers...)
2. **Parsing**: tokens -> units with fixed addresses and sizes; labels are
   bound to the location counter as they are seen
3. **Back-patch**: symbol operands replaced by their values
4. **Encoding**: units -> bytes, each unit exactly its declared size

Example Usage
-------------
>>> from gb_sdk.assembler import Assembler
>>> asm = Assembler()
>>> asm.assemble_string("nop\\nhalt\\n")
b'\\x00v'
"""

from gb_sdk.assembler.assembler import Assembler, assemble, assemble_file
from gb_sdk.assembler.codegen import FILL_CHUNK_SIZE, CodeGenerator, generate, write
from gb_sdk.assembler.lexer import Lexer, Token, TokenType, scan
from gb_sdk.assembler.parser import (
    ByteData,
    Constant,
    Directive,
    Fill,
    Include,
    Instruction,
    Operand,
    OperandKind,
    Pad,
    Parser,
    Program,
    StringData,
    StringKind,
    Symbol,
    SymbolTable,
    Unit,
    parse,
    parse_source,
    read_source,
)

__all__ = [
    # Main interface
    "Assembler",
    "assemble",
    "assemble_file",
    # Lexer
    "Lexer",
    "Token",
    "TokenType",
    "scan",
    # Parser
    "Parser",
    "Program",
    "Unit",
    "Instruction",
    "Directive",
    "ByteData",
    "StringData",
    "StringKind",
    "Fill",
    "Pad",
    "Constant",
    "Include",
    "Operand",
    "OperandKind",
    "Symbol",
    "SymbolTable",
    "parse",
    "parse_source",
    "read_source",
    # Code generation
    "CodeGenerator",
    "FILL_CHUNK_SIZE",
    "generate",
    "write",
]
