"""
LR35902 Code Generator
======================

This module encodes a parsed, back-patched Program into machine code.

Parsing already fixed every unit's address and size, so encoding is a single
linear walk over the units:

- Instructions: opcode bytes from the opcode table, then the operand payload
  (8-bit values as one byte, 16-bit values little-endian, relative jumps as a
  two's complement displacement byte).
- Data directives: literal bytes, encoded strings, or runs of a fill value.
- Constants, includes and section markers emit nothing.

After each unit the emitted byte count is compared with the size the parser
used to advance the location counter; a mismatch would shift every later
label, so it is treated as an internal error.

Output goes to any object with a ``write(bytes)`` method (an open binary
file, an ``io.BytesIO``), or straight to bytes via ``generate()``.
"""

from typing import BinaryIO
import io
import logging
import struct

from gb_sdk.cpu import OPCODE_TABLE
from gb_sdk.errors import InternalError
from gb_sdk.assembler.parser import (
    ByteData,
    Fill,
    Instruction,
    OperandKind,
    Pad,
    Program,
    StringData,
    Unit,
)

logger = logging.getLogger(__name__)

# Largest single write used for .fill and .org padding
FILL_CHUNK_SIZE = 0xFF


class CodeGenerator:
    """
    Encodes Program units into bytes.

    Usage:
        gen = CodeGenerator()
        with open("game.gb", "wb") as f:
            gen.write(f, program)
    """

    def __init__(self, chunk_size: int = FILL_CHUNK_SIZE):
        """
        Args:
            chunk_size: Maximum bytes per write for fill and pad runs
        """
        if chunk_size < 1:
            raise ValueError(f"chunk size must be positive, got {chunk_size}")
        self._chunk_size = chunk_size

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    def write(self, sink: BinaryIO, program: Program) -> int:
        """
        Encode every unit of a program into sink.

        Args:
            sink: Destination with a write(bytes) method
            program: Parsed and back-patched program

        Returns:
            Total number of bytes written

        Raises:
            InternalError: If an instruction has no encoding, a symbol is
                           still unresolved, or a unit's emitted size differs
                           from its declared size
        """
        total = 0
        for unit in program.units:
            written = self._write_unit(sink, unit)
            if written != unit.size:
                raise InternalError(
                    f"{unit.location}: emitted {written} bytes for {type(unit).__name__} "
                    f"at ${unit.address:04X}, expected {unit.size}"
                )
            total += written

        logger.debug(f"Emitted {total} bytes for {len(program.units)} units")
        return total

    def generate(self, program: Program) -> bytes:
        """Encode a program into a bytes object."""
        buffer = io.BytesIO()
        self.write(buffer, program)
        return buffer.getvalue()

    # =========================================================================
    # Unit Encoders
    # =========================================================================

    def _write_unit(self, sink: BinaryIO, unit: Unit) -> int:
        if isinstance(unit, Instruction):
            data = self.encode_instruction(unit)
            sink.write(data)
            return len(data)
        if isinstance(unit, ByteData):
            sink.write(unit.data)
            return len(unit.data)
        if isinstance(unit, StringData):
            data = unit.payload
            sink.write(data)
            return len(data)
        if isinstance(unit, Fill):
            return self._write_run(sink, unit.count, unit.value)
        if isinstance(unit, Pad):
            return self._write_run(sink, unit.target - unit.address, unit.value)
        return 0

    def _write_run(self, sink: BinaryIO, count: int, value: int) -> int:
        """Write count copies of value, at most chunk_size bytes at a time."""
        remaining = count
        while remaining > 0:
            n = min(remaining, self._chunk_size)
            sink.write(bytes([value]) * n)
            remaining -= n
        return count

    def encode_instruction(self, inst: Instruction) -> bytes:
        """
        Encode one instruction.

        Raises:
            InternalError: If the form is missing from the opcode table or an
                           operand is still a symbol reference
        """
        info = OPCODE_TABLE.get((inst.mnemonic, inst.keys))
        if info is None:
            raise InternalError(f"{inst.location}: no encoding for '{inst}'")

        data = bytearray(info.opcode)
        for operand in inst.operands:
            kind = operand.kind
            if kind is OperandKind.SYMBOL:
                raise InternalError(
                    f"{inst.location}: symbol '{operand.value}' was not back-patched"
                )
            if kind in (OperandKind.IMMEDIATE8, OperandKind.ADDRESS8):
                data.append(operand.value)
            elif kind in (OperandKind.IMMEDIATE16, OperandKind.ADDRESS16):
                data += struct.pack("<H", operand.value)
            elif kind is OperandKind.RELATIVE:
                data += struct.pack("<b", operand.value)

        return bytes(data)


# =============================================================================
# Convenience Functions
# =============================================================================

def write(sink: BinaryIO, program: Program, chunk_size: int = FILL_CHUNK_SIZE) -> int:
    """Encode a program into sink; returns the number of bytes written."""
    return CodeGenerator(chunk_size).write(sink, program)


def generate(program: Program, chunk_size: int = FILL_CHUNK_SIZE) -> bytes:
    """Encode a program into bytes."""
    return CodeGenerator(chunk_size).generate(program)
