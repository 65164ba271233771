"""
gbobj - Library Container Command-Line Interface
================================================

Inspects library containers written by ``gbasm -f lib``.

Commands
--------
- **info**: Show version, code size and exported symbols
- **extract**: Write the raw code of a library to a file

Usage Examples
--------------
    $ gbobj info game.gbo
    $ gbobj extract game.gbo -o game.gb
"""

from pathlib import Path

import click

from gb_sdk import __version__
from gb_sdk.cli.errors import handle_cli_exception
from gb_sdk.obj import Library


@click.group()
@click.version_option(__version__, "--version", "-V", prog_name="gbobj")
def main() -> None:
    """
    Library container tool for the Game Boy SDK.

    \b
    Commands:
      info      Show library information
      extract   Write the library's code to a file

    \b
    Examples:
      gbobj info game.gbo
      gbobj extract game.gbo -o game.gb
    """
    pass


# =============================================================================
# Info Command
# =============================================================================

@main.command("info")
@click.argument(
    "lib_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
def cmd_info(lib_file: Path) -> None:
    """
    Show information about a library file.

    \b
    Example:
      gbobj info game.gbo
    """
    try:
        lib = Library.from_file(lib_file)

        click.echo(f"Library: {lib_file}")
        click.echo("=" * 40)
        click.echo(f"Version:     {lib.version}")
        click.echo(f"Code size:   {len(lib.code)} bytes")
        click.echo(f"Symbols:     {len(lib.symbols)}")
        for name, address in sorted(lib.symbols.items(), key=lambda item: (item[1], item[0])):
            click.echo(f"  ${address:04X}  {name}")

    except Exception as e:
        handle_cli_exception(e)


# =============================================================================
# Extract Command
# =============================================================================

@main.command("extract")
@click.argument(
    "lib_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
@click.option(
    "-o", "--output",
    type=click.Path(dir_okay=False, path_type=Path),
    required=True,
    help="Output file for the raw code",
)
def cmd_extract(lib_file: Path, output: Path) -> None:
    """
    Extract the code of a library as a flat binary.

    \b
    Example:
      gbobj extract game.gbo -o game.gb
    """
    try:
        lib = Library.from_file(lib_file)
        output.write_bytes(lib.code)
        click.echo(f"Extracted {len(lib.code)} bytes to {output}")

    except Exception as e:
        handle_cli_exception(e)


if __name__ == "__main__":
    main()
