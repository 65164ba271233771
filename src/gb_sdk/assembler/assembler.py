"""
LR35902 Assembler - Main Interface
==================================

This module provides the main Assembler class that ties the lexer, parser
and code generator together.

Usage
-----
>>> from gb_sdk.assembler import Assembler
>>> asm = Assembler()
>>> code = asm.assemble_string('''
... start:
...     ld a, 0x05
...     jp start
... ''')
>>> code.hex(" ")
'3e 05 c3 00 00'

Output can be written as a flat binary (the bytes above) or as a library
container that also carries the exported label addresses:

>>> asm.write_binary("game.gb")
>>> asm.write_library("game.gbo")
"""

from pathlib import Path
from typing import Optional
import logging

from gb_sdk.errors import GBError
from gb_sdk.assembler.codegen import FILL_CHUNK_SIZE, CodeGenerator
from gb_sdk.assembler.lexer import scan
from gb_sdk.assembler.parser import MAX_ADDRESS, Parser, Program, read_source
from gb_sdk.obj import Library

logger = logging.getLogger(__name__)


class Assembler:
    """
    Game Boy assembler.

    One Assembler holds the configuration (include paths, predefined
    symbols) and the result of the most recent assembly. Every call to
    assemble_string/assemble_file starts from a clean parser context.

    Attributes:
        verbose: Log progress at INFO level
    """

    def __init__(
        self,
        include_paths: list[str | Path] | None = None,
        defines: dict[str, int] | None = None,
        verbose: bool = False,
        chunk_size: int = FILL_CHUNK_SIZE,
    ):
        """
        Initialize the assembler.

        Args:
            include_paths: Directories searched for .use files, after the
                           working directory and the including file's directory
            defines: Predefined constants, like -D on the command line
            verbose: Log progress messages
            chunk_size: Maximum bytes per write for .fill and .org padding
        """
        self.verbose = verbose
        self._include_paths: list[Path] = []
        self._defines: dict[str, int] = {}
        self._codegen = CodeGenerator(chunk_size)
        self._program: Optional[Program] = None
        self._code: Optional[bytes] = None

        for path in include_paths or ():
            self.add_include_path(path)
        for name, value in (defines or {}).items():
            self.define_symbol(name, value)

    # =========================================================================
    # Configuration
    # =========================================================================

    def add_include_path(self, path: str | Path) -> None:
        """
        Add a directory to search for include files.

        Args:
            path: Directory path to add
        """
        path = Path(path)
        if not path.is_dir():
            logger.warning(f"Include path '{path}' is not a directory")
            return
        if path not in self._include_paths:
            self._include_paths.append(path)

    def define_symbol(self, name: str, value: int) -> None:
        """
        Pre-define a constant.

        Args:
            name: Symbol name
            value: Symbol value (0-$FFFF)

        Raises:
            ValueError: If the value does not fit in 16 bits
        """
        if not 0 <= value <= MAX_ADDRESS:
            raise ValueError(f"value of '{name}' must be in 0..$FFFF, got {value}")
        self._defines[name] = value

    @property
    def include_paths(self) -> list[Path]:
        return list(self._include_paths)

    @property
    def defines(self) -> dict[str, int]:
        return dict(self._defines)

    # =========================================================================
    # Assembly Methods
    # =========================================================================

    def assemble_string(self, source: str, filename: str = "<input>") -> bytes:
        """
        Assemble source code from a string.

        The pipeline is:
        1. Scan the source into tokens
        2. Parse, splicing includes and binding labels, then back-patch
        3. Encode the program

        Args:
            source: Assembly source code
            filename: Filename for error messages and include resolution

        Returns:
            Machine code

        Raises:
            AssemblerError: If assembly fails
        """
        self._program = None
        self._code = None

        tokens = scan(source, filename)
        parser = Parser(tokens, filename, self._include_paths, self._defines, source)
        program = parser.parse()
        code = self._codegen.generate(program)

        self._program = program
        self._code = code

        if self.verbose:
            logger.info(
                f"Assembled {filename}: {len(code)} bytes, "
                f"{len(program.symbols)} symbols"
            )
        return code

    def assemble_file(self, filepath: str | Path) -> bytes:
        """
        Assemble source code from a file.

        Args:
            filepath: Path to assembly source file

        Returns:
            Machine code

        Raises:
            AssemblerError: If assembly fails
            GBError: If the source file is not valid UTF-8
            OSError: If the source file cannot be read
        """
        filepath = Path(filepath)
        logger.debug(f"Reading {filepath}")
        try:
            source = read_source(filepath)
        except UnicodeDecodeError as e:
            raise GBError(
                f"{filepath}: source is not valid UTF-8 (byte ${e.object[e.start]:02X} "
                f"at offset {e.start})"
            ) from e
        return self.assemble_string(source, str(filepath))

    # =========================================================================
    # Results
    # =========================================================================

    def _require_result(self) -> Program:
        if self._program is None:
            raise GBError("nothing has been assembled")
        return self._program

    def get_code(self) -> bytes:
        """Return the machine code of the last assembly."""
        self._require_result()
        return self._code

    def get_program(self) -> Program:
        """Return the parsed program of the last assembly."""
        return self._require_result()

    def get_symbols(self) -> dict[str, int]:
        """Return all labels and constants of the last assembly."""
        return self._require_result().symbols.as_dict()

    def get_exports(self) -> dict[str, int]:
        """Return the labels a library container exports."""
        return self._require_result().symbols.labels()

    def build_library(self) -> Library:
        """Wrap the last assembly's code and labels in a library container."""
        return Library.from_code(self.get_code(), self.get_exports())

    # =========================================================================
    # Output Methods
    # =========================================================================

    def write_binary(self, filepath: str | Path) -> None:
        """
        Write the flat binary (machine code only, no header).

        Args:
            filepath: Output file path
        """
        code = self.get_code()
        Path(filepath).write_bytes(code)
        logger.debug(f"Wrote {len(code)} bytes to {filepath}")

    def write_library(self, filepath: str | Path) -> None:
        """
        Write a library container with code and exported labels.

        Args:
            filepath: Output file path
        """
        self.build_library().to_file(filepath)

    def format_symbols(self) -> str:
        """
        Render the symbol listing, one "name = $XXXX" line per symbol, sorted
        by address and then name. Constants are marked with "(equ)".
        """
        program = self._require_result()
        lines = ["; symbol table"]
        for sym in sorted(program.symbols, key=lambda s: (s.value, s.name)):
            suffix = "  (equ)" if sym.is_constant else ""
            lines.append(f"{sym.name:<24} = ${sym.value:04X}{suffix}")
        return "\n".join(lines) + "\n"

    def write_symbols(self, filepath: str | Path) -> None:
        """
        Write the symbol listing produced by format_symbols().

        Args:
            filepath: Output file path
        """
        text = self.format_symbols()
        Path(filepath).write_text(text, encoding="utf-8")
        logger.debug(f"Wrote {len(self.get_symbols())} symbols to {filepath}")


# =============================================================================
# Convenience Functions
# =============================================================================

def assemble(source: str, filename: str = "<input>", **kwargs) -> bytes:
    """
    Convenience function to assemble source code.

    Args:
        source: Assembly source code
        filename: Filename for errors and include resolution
        **kwargs: Passed to Assembler (include_paths, defines, chunk_size)

    Returns:
        Machine code

    Raises:
        AssemblerError: If assembly fails
    """
    return Assembler(**kwargs).assemble_string(source, filename)


def assemble_file(filepath: str | Path, **kwargs) -> bytes:
    """
    Convenience function to assemble a file.

    Args:
        filepath: Path to source file
        **kwargs: Passed to Assembler (include_paths, defines, chunk_size)

    Returns:
        Machine code

    Raises:
        AssemblerError: If assembly fails
    """
    return Assembler(**kwargs).assemble_file(filepath)
