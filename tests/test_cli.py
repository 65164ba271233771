# =============================================================================
# test_cli.py - Command-Line Interface Tests
# =============================================================================
# Tests for the gbasm and gbobj command-line tools.
#
# Test coverage includes:
#   - Output formats and default output name
#   - Include paths, defines and symbol files
#   - Exit codes for assembly errors and bad arguments
#   - Library inspection and extraction
# =============================================================================

import click
import pytest
from click.testing import CliRunner

from gb_sdk import __version__
from gb_sdk.cli.errors import ExitCode
from gb_sdk.cli.gbasm import main as gbasm, parse_define
from gb_sdk.cli.gbobj import main as gbobj
from gb_sdk.obj import Library


@pytest.fixture
def runner():
    return CliRunner()


def write_source(path, text):
    path.write_text(text, encoding="utf-8")
    return path


# =============================================================================
# -D Parsing
# =============================================================================

class TestParseDefine:
    """Parsing of NAME[=VALUE] arguments."""

    def test_name_only(self):
        assert parse_define("DEBUG") == ("DEBUG", 1)

    def test_decimal(self):
        assert parse_define("LIVES=3") == ("LIVES", 3)

    def test_hex(self):
        assert parse_define("BASE=0xC000") == ("BASE", 0xC000)
        assert parse_define("BASE=$FF") == ("BASE", 0xFF)

    def test_binary(self):
        assert parse_define("MASK=0b101") == ("MASK", 5)

    def test_invalid_value(self):
        with pytest.raises(click.BadParameter):
            parse_define("X=abc")

    def test_too_large(self):
        with pytest.raises(click.BadParameter):
            parse_define("X=70000")

    def test_missing_name(self):
        with pytest.raises(click.BadParameter):
            parse_define("=1")


# =============================================================================
# gbasm
# =============================================================================

class TestGbasm:
    """The assembler command."""

    def test_default_output(self, runner, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        write_source(tmp_path / "game.asm", "nop\nhalt\n")

        result = runner.invoke(gbasm, ["game.asm"])
        assert result.exit_code == 0, result.output
        assert (tmp_path / "out.gb").read_bytes() == bytes([0x00, 0x76])

    def test_output_option(self, runner, tmp_path):
        src = write_source(tmp_path / "game.asm", "start:\n jp start\n")
        out = tmp_path / "game.gb"

        result = runner.invoke(gbasm, [str(src), "-o", str(out)])
        assert result.exit_code == 0, result.output
        assert out.read_bytes() == bytes([0xC3, 0x00, 0x00])

    def test_library_format(self, runner, tmp_path):
        src = write_source(tmp_path / "game.asm", ".equ K, 1\nmain: ld a, K\nloop: jr loop\n")
        out = tmp_path / "game.gbo"

        result = runner.invoke(gbasm, [str(src), "-f", "lib", "-o", str(out)])
        assert result.exit_code == 0, result.output
        lib = Library.from_file(out)
        assert lib.code == bytes([0x3E, 0x01, 0x18, 0xFE])
        assert lib.symbols == {"main": 0, "loop": 2}

    def test_include_and_define(self, runner, tmp_path):
        inc = tmp_path / "inc"
        inc.mkdir()
        write_source(inc / "consts.asm", ".equ STEP, 4\n")
        src = write_source(tmp_path / "game.asm", '.use "consts.asm"\nld a, STEP\nld b, LEVEL\n')
        out = tmp_path / "game.gb"

        result = runner.invoke(
            gbasm, [str(src), "-I", str(inc), "-D", "LEVEL=0x10", "-o", str(out)]
        )
        assert result.exit_code == 0, result.output
        assert out.read_bytes() == bytes([0x3E, 0x04, 0x06, 0x10])

    def test_symbols_file(self, runner, tmp_path):
        src = write_source(tmp_path / "game.asm", "nop\nentry: halt\n")
        sym = tmp_path / "game.sym"

        result = runner.invoke(
            gbasm, [str(src), "-o", str(tmp_path / "game.gb"), "-s", str(sym)]
        )
        assert result.exit_code == 0, result.output
        assert "entry" in sym.read_text(encoding="utf-8")
        assert "$0001" in sym.read_text(encoding="utf-8")

    def test_verbose(self, runner, tmp_path):
        src = write_source(tmp_path / "game.asm", "nop\n")
        result = runner.invoke(gbasm, [str(src), "-o", str(tmp_path / "g.gb"), "-v"])
        assert result.exit_code == 0, result.output
        assert "Wrote 1 bytes" in result.output

    def test_assembly_error_writes_nothing(self, runner, tmp_path):
        src = write_source(tmp_path / "bad.asm", "nop\njp nowhere\n")
        out = tmp_path / "bad.gb"

        result = runner.invoke(gbasm, [str(src), "-o", str(out)])
        assert result.exit_code == ExitCode.BUILD_ERROR
        assert "unresolved symbol 'nowhere'" in result.output
        assert not out.exists()

    def test_unwritable_symbols_file_writes_nothing(self, runner, tmp_path):
        src = write_source(tmp_path / "game.asm", "nop\n")
        out = tmp_path / "game.gb"
        sym = tmp_path / "nodir" / "game.sym"

        result = runner.invoke(gbasm, [str(src), "-o", str(out), "-s", str(sym)])
        assert result.exit_code == ExitCode.INVALID_ARGS
        assert not out.exists()
        assert not sym.exists()

    def test_output_below_regular_file(self, runner, tmp_path):
        src = write_source(tmp_path / "game.asm", "nop\n")
        blocker = tmp_path / "blocker"
        blocker.write_bytes(b"")

        result = runner.invoke(gbasm, [str(src), "-o", str(blocker / "game.gb")])
        assert result.exit_code == ExitCode.INVALID_ARGS
        assert "Internal error" not in result.output

    def test_non_utf8_source(self, runner, tmp_path):
        src = tmp_path / "bad.asm"
        src.write_bytes(b"nop\n\xff\n")
        out = tmp_path / "bad.gb"

        result = runner.invoke(gbasm, [str(src), "-o", str(out)])
        assert result.exit_code == ExitCode.BUILD_ERROR
        assert "not valid UTF-8" in result.output
        assert not out.exists()

    def test_circular_include_fails(self, runner, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        write_source(tmp_path / "a.asm", '.use "b.asm"\n')
        write_source(tmp_path / "b.asm", '.use "a.asm"\n')

        result = runner.invoke(gbasm, ["a.asm"])
        assert result.exit_code == ExitCode.BUILD_ERROR
        assert "circular include" in result.output
        assert not (tmp_path / "out.gb").exists()

    def test_bad_define(self, runner, tmp_path):
        src = write_source(tmp_path / "game.asm", "nop\n")
        result = runner.invoke(gbasm, [str(src), "-D", "X=zz", "-o", str(tmp_path / "g.gb")])
        assert result.exit_code == ExitCode.INVALID_ARGS

    def test_missing_input(self, runner, tmp_path):
        result = runner.invoke(gbasm, [str(tmp_path / "missing.asm")])
        assert result.exit_code == 2

    def test_unknown_format(self, runner, tmp_path):
        src = write_source(tmp_path / "game.asm", "nop\n")
        result = runner.invoke(gbasm, [str(src), "-f", "elf"])
        assert result.exit_code == 2

    def test_version(self, runner):
        result = runner.invoke(gbasm, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output


# =============================================================================
# gbobj
# =============================================================================

class TestGbobj:
    """The library container tool."""

    @pytest.fixture
    def library(self, tmp_path):
        path = tmp_path / "game.gbo"
        Library.from_code(b"\x00\x76\xC9", {"start": 0, "stop_here": 1}).to_file(path)
        return path

    def test_info(self, runner, library):
        result = runner.invoke(gbobj, ["info", str(library)])
        assert result.exit_code == 0, result.output
        assert "Code size:   3 bytes" in result.output
        assert "$0000  start" in result.output
        assert "$0001  stop_here" in result.output

    def test_extract(self, runner, library, tmp_path):
        out = tmp_path / "code.bin"
        result = runner.invoke(gbobj, ["extract", str(library), "-o", str(out)])
        assert result.exit_code == 0, result.output
        assert out.read_bytes() == b"\x00\x76\xC9"

    def test_info_invalid_file(self, runner, tmp_path):
        bad = tmp_path / "bad.gbo"
        bad.write_bytes(b"not a library")
        result = runner.invoke(gbobj, ["info", str(bad)])
        assert result.exit_code == ExitCode.BUILD_ERROR
        assert "Error:" in result.output

    def test_extract_requires_output(self, runner, library):
        result = runner.invoke(gbobj, ["extract", str(library)])
        assert result.exit_code == 2
