"""
gbasm - LR35902 Assembler Command-Line Interface
================================================

This module implements the command-line interface for the Game Boy
assembler.

Usage Examples
--------------
Basic assembly (writes out.gb):
    $ gbasm game.asm

With output file:
    $ gbasm game.asm -o game.gb

Library container with exported labels:
    $ gbasm -f lib game.asm -o game.gbo

With include path, defines and a symbol listing:
    $ gbasm -I ./include -D DEBUG=1 -s game.sym game.asm

Verbose mode:
    $ gbasm -v game.asm
"""

from pathlib import Path
from typing import Optional
import logging

import click

from gb_sdk import __version__
from gb_sdk.assembler import Assembler
from gb_sdk.cli.errors import handle_cli_exception

DEFAULT_OUTPUT = "out.gb"


def parse_define(defn: str) -> tuple[str, int]:
    """
    Parse a -D argument.

    Accepts NAME (value 1) or NAME=VALUE where VALUE is decimal, 0x/$ hex or
    0b binary.

    Raises:
        click.BadParameter: If the name is empty or the value is invalid
    """
    name, sep, value_str = defn.partition("=")
    name = name.strip()
    if not name:
        raise click.BadParameter(f"missing symbol name in -D {defn}")
    if not sep:
        return name, 1

    value_str = value_str.strip().lower()
    try:
        if value_str.startswith("$"):
            value = int(value_str[1:], 16)
        elif value_str.startswith("0x"):
            value = int(value_str[2:], 16)
        elif value_str.startswith("0b"):
            value = int(value_str[2:], 2)
        else:
            value = int(value_str)
    except ValueError:
        raise click.BadParameter(f"invalid value in -D {defn}")

    if not 0 <= value <= 0xFFFF:
        raise click.BadParameter(f"value in -D {defn} does not fit in 16 bits")
    return name, value


def write_outputs(outputs: list[tuple[Path, bytes]]) -> None:
    """
    Write each (path, data) pair. If any write fails, files already written
    by this call are removed before the error propagates.
    """
    written: list[Path] = []
    try:
        for path, data in outputs:
            path.write_bytes(data)
            written.append(path)
    except OSError:
        for path in written:
            path.unlink(missing_ok=True)
        raise


# =============================================================================
# CLI Definition
# =============================================================================

@click.command()
@click.argument(
    "input_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
@click.option(
    "-o", "--output",
    type=click.Path(dir_okay=False, path_type=Path),
    default=DEFAULT_OUTPUT,
    show_default=True,
    help="Output file",
)
@click.option(
    "-f", "--format", "output_format",
    type=click.Choice(["bin", "lib"], case_sensitive=False),
    default="bin",
    show_default=True,
    help="Output format: flat binary or library container",
)
@click.option(
    "-I", "--include",
    multiple=True,
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Add include search path (can be repeated)",
)
@click.option(
    "-D", "--define",
    multiple=True,
    help="Define symbol (format: NAME or NAME=VALUE)",
)
@click.option(
    "-s", "--symbols",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Generate symbol file",
)
@click.option(
    "-v", "--verbose",
    is_flag=True,
    help="Verbose output",
)
@click.version_option(version=__version__, prog_name="gbasm")
def main(
    input_file: Path,
    output: Path,
    output_format: str,
    include: tuple[Path, ...],
    define: tuple[str, ...],
    symbols: Optional[Path],
    verbose: bool,
) -> None:
    """
    Assemble LR35902 source code for the Game Boy.

    INPUT_FILE is the assembly source file (.asm) to assemble.

    Nothing is written unless assembly succeeds.

    \b
    Examples:
        gbasm game.asm                   # Outputs out.gb
        gbasm game.asm -o game.gb        # Specify output file
        gbasm -f lib game.asm -o a.gbo   # Library container
        gbasm -I inc/ game.asm           # Add include path
        gbasm -D DEBUG=1 game.asm        # Define symbol
    """
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(name)s: %(message)s")

    try:
        asm = Assembler(include_paths=list(include), verbose=verbose)
        for defn in define:
            asm.define_symbol(*parse_define(defn))

        if verbose:
            click.echo(f"Assembling {input_file}...")

        code = asm.assemble_file(input_file)

        if output_format.lower() == "lib":
            outputs = [(output, asm.build_library().write())]
        else:
            outputs = [(output, code)]
        if symbols:
            outputs.append((symbols, asm.format_symbols().encode("utf-8")))
        write_outputs(outputs)

        if verbose:
            click.echo(f"Wrote {len(code)} bytes ({output_format}) to {output}")
            if symbols:
                click.echo(f"Wrote symbols to {symbols}")
            click.echo(f"Defined {len(asm.get_symbols())} symbols")

    except Exception as e:
        handle_cli_exception(e, verbose=verbose, error_type="Assembly")


if __name__ == "__main__":
    main()
