"""
Game Boy SDK - Assembler Toolchain for the Sharp LR35902
========================================================

This package provides an assembler for the Game Boy's LR35902 CPU (a Z80
derivative) and a container format for assembled libraries.

Main Components
---------------
- **assembler**: LR35902 assembler (gbasm)
    Converts assembly source files (.asm) to flat binaries or libraries

- **obj**: Library containers (gbobj)
    Code plus exported label addresses, for use by other tools

- **cpu**: LR35902 instruction set tables

Quick Start
-----------
Assemble a program:
    >>> from gb_sdk.assembler import Assembler
    >>> asm = Assembler()
    >>> code = asm.assemble_file("game.asm")
    >>> asm.write_binary("game.gb")

Inspect a library:
    >>> from gb_sdk.obj import Library
    >>> lib = Library.from_file("game.gbo")
    >>> lib.symbols
"""

__version__ = "1.0.0"

from gb_sdk.errors import (
    GBError,
    AssemblerError,
    ObjectFormatError,
    InternalError,
)

__all__ = [
    "__version__",
    "GBError",
    "AssemblerError",
    "ObjectFormatError",
    "InternalError",
]
