# =============================================================================
# test_parser.py - Parser/Resolver Unit Tests
# =============================================================================
# Tests for the single-pass parser, symbol table and back-patch phase.
#
# Test coverage includes:
#   - Labels and the location counter
#   - Operand classification and instruction form selection
#   - Relative jumps and high-page addresses
#   - Data directives (.byte, .ascii, .fill, .org, .equ)
#   - Forward references and unresolved symbols
#   - Error conditions and hints
# =============================================================================

import pytest

from gb_sdk.assembler.lexer import scan
from gb_sdk.assembler.parser import (
    ByteData,
    Constant,
    Fill,
    Include,
    Instruction,
    Operand,
    OperandKind,
    Pad,
    Parser,
    StringData,
    StringKind,
    SymbolTable,
    parse_source,
)
from gb_sdk.errors import (
    AssemblySyntaxError,
    DuplicateSymbolError,
    RangeError,
    SourceLocation,
    UnresolvedSymbolError,
)


def parse(source: str, **kwargs):
    return parse_source(source, "<test>", **kwargs)


def only_instruction(source: str) -> Instruction:
    program = parse(source)
    assert len(program.instructions) == 1
    return program.instructions[0]


# =============================================================================
# Statements and Location Counter
# =============================================================================

class TestStatements:
    """Units, addresses and the location counter."""

    def test_two_instructions(self):
        program = parse("nop\nhalt\n")
        assert [u.mnemonic for u in program.units] == ["nop", "halt"]
        assert [u.address for u in program.units] == [0, 1]
        assert program.location == 2

    def test_empty_source(self):
        program = parse("")
        assert program.units == []
        assert program.location == 0

    def test_location_advances_by_size(self):
        program = parse("nop\nld a, 1\njp 0x150\n")
        assert [u.address for u in program.units] == [0, 1, 3]
        assert [u.size for u in program.units] == [1, 2, 3]
        assert program.location == 6

    def test_no_newline_at_end(self):
        assert len(parse("nop").units) == 1

    def test_statement_after_label_on_same_line(self):
        program = parse("nop\nloop: dec a\n")
        assert program.symbols.lookup("loop").value == 1
        assert program.units[1].mnemonic == "dec"

    def test_section_markers_emit_nothing(self):
        program = parse(".text\nnop\n.data\n.byte 1\n")
        assert len(program.units) == 2
        assert program.location == 2

    def test_trailing_tokens_rejected(self):
        with pytest.raises(AssemblySyntaxError, match="expected end of line"):
            parse("ld a, b c\n")

    def test_uppercase_mnemonic_hint(self):
        with pytest.raises(AssemblySyntaxError) as exc_info:
            parse("NOP\n")
        assert "mnemonics are lowercase" in exc_info.value.hint

    def test_bare_identifier(self):
        with pytest.raises(AssemblySyntaxError) as exc_info:
            parse("start\n")
        assert "start:" in exc_info.value.hint

    def test_stray_number(self):
        with pytest.raises(AssemblySyntaxError, match="start of statement"):
            parse("42\n")


# =============================================================================
# Labels and Symbols
# =============================================================================

class TestLabels:
    """Labels bind to the location counter."""

    def test_label_at_start(self):
        program = parse("start:\n nop\n")
        assert program.symbols.lookup("start").value == 0

    def test_label_after_code(self):
        program = parse("nop\nnop\nhere:\n")
        assert program.symbols.lookup("here").value == 2

    def test_consecutive_labels(self):
        program = parse("a1:\na2:\n halt\n")
        assert program.symbols.lookup("a1").value == 0
        assert program.symbols.lookup("a2").value == 0

    def test_labels_are_not_constants(self):
        program = parse("start:\n.equ SIZE, 4\n")
        assert program.symbols.labels() == {"start": 0}
        assert program.symbols.as_dict() == {"start": 0, "SIZE": 4}

    def test_duplicate_label(self):
        with pytest.raises(DuplicateSymbolError) as exc_info:
            parse("x:\n nop\nx:\n")
        error = exc_info.value
        assert error.symbol == "x"
        assert error.location.line == 3
        assert error.original_location.line == 1

    def test_label_colliding_with_constant(self):
        with pytest.raises(DuplicateSymbolError):
            parse(".equ x, 1\nx:\n")

    def test_label_colliding_with_define(self):
        with pytest.raises(DuplicateSymbolError):
            parse("DEBUG:\n", defines={"DEBUG": 1})

    def test_label_beyond_address_space(self):
        with pytest.raises(RangeError, match="16-bit address space"):
            parse(".org 0xFFFF\n.byte 1\nx:\n")

    def test_output_may_end_exactly_at_address_space(self):
        program = parse(".org 0xFFFF\n.byte 1\n")
        assert program.location == 0x10000

    def test_output_beyond_address_space(self):
        with pytest.raises(RangeError, match="16-bit address space") as exc_info:
            parse(".fill 0xFFFF, 0\n.fill 0xFFFF, 0\nnop\n")
        assert exc_info.value.location.line == 2

    def test_instruction_straddling_address_space_end(self):
        with pytest.raises(RangeError, match="16-bit address space"):
            parse(".org 0xFFFE\njp 0x0150\n")


# =============================================================================
# Instruction Forms
# =============================================================================

class TestInstructionForms:
    """Operands are matched against each mnemonic's grammar."""

    def test_register_and_immediate(self):
        inst = only_instruction("ld a, 5")
        assert inst.operands == (
            Operand(OperandKind.REGISTER, "a"),
            Operand(OperandKind.IMMEDIATE8, 5),
        )
        assert inst.keys == ("a", "n8")
        assert inst.size == 2

    def test_register_pair_immediate(self):
        inst = only_instruction("ld hl, 0x1234")
        assert inst.operands[1] == Operand(OperandKind.IMMEDIATE16, 0x1234)
        assert inst.size == 3

    def test_indirect_pair(self):
        inst = only_instruction("ld a, (hl)")
        assert inst.operands[1] == Operand(OperandKind.INDIRECT16, "hl")
        assert inst.keys == ("a", "(hl)")

    def test_indirect_c(self):
        inst = only_instruction("ld (c), a")
        assert inst.operands[0] == Operand(OperandKind.INDIRECT, "c")
        assert inst.size == 1

    def test_absolute_address(self):
        inst = only_instruction("ld (0xC000), a")
        assert inst.operands[0] == Operand(OperandKind.ADDRESS16, 0xC000)
        assert inst.size == 3

    def test_condition(self):
        inst = only_instruction("ret nz")
        assert inst.operands == (Operand(OperandKind.CONDITION, "nz"),)

    def test_register_c_as_carry_condition(self):
        inst = only_instruction("jp c, 0x100")
        assert inst.operands[0] == Operand(OperandKind.CONDITION, "cr")
        assert inst.keys == ("cr", "n16")

    def test_cr_condition(self):
        inst = only_instruction("ret cr")
        assert inst.keys == ("cr",)

    def test_bit_operand(self):
        inst = only_instruction("bit 7, h")
        assert inst.operands[0] == Operand(OperandKind.BIT, 7)
        assert inst.size == 2

    def test_bit_out_of_range(self):
        with pytest.raises(RangeError):
            parse("set 8, a")

    def test_rst_vector(self):
        inst = only_instruction("rst 0x38")
        assert inst.operands == (Operand(OperandKind.VECTOR, 0x38),)

    def test_rst_invalid_vector(self):
        with pytest.raises(RangeError):
            parse("rst 0x39")

    def test_immediate_too_large(self):
        with pytest.raises(RangeError, match="out of range"):
            parse("ld a, 256")

    def test_wrong_operand_count(self):
        with pytest.raises(AssemblySyntaxError, match="'ld' takes 2 operand"):
            parse("ld a")

    def test_operand_on_implied_instruction(self):
        with pytest.raises(AssemblySyntaxError, match="'nop' takes 0 operand"):
            parse("nop a")

    def test_invalid_operand_class(self):
        with pytest.raises(AssemblySyntaxError, match="invalid operands for 'push'") as exc_info:
            parse("push a")
        assert "push bc" in exc_info.value.hint

    def test_missing_operand_after_comma(self):
        with pytest.raises(AssemblySyntaxError, match="expected operand"):
            parse("ld a,\n")

    def test_unclosed_parenthesis(self):
        with pytest.raises(AssemblySyntaxError, match=r"expected '\)'"):
            parse("ld a, (hl\n")

    def test_stop_is_two_bytes(self):
        assert only_instruction("stop").size == 2


# =============================================================================
# Relative Jumps and High Page
# =============================================================================

class TestRelative:
    """jr operands become displacements from the next instruction."""

    def test_backward_label(self):
        program = parse("loop: nop\njr loop\n")
        jr = program.instructions[1]
        assert jr.operands == (Operand(OperandKind.RELATIVE, -3),)

    def test_forward_label(self):
        program = parse("jr nz, skip\nnop\nskip:\n")
        assert program.instructions[0].operands[1] == Operand(OperandKind.RELATIVE, 1)

    def test_literal_target(self):
        inst = only_instruction("jr 0x10")
        assert inst.operands == (Operand(OperandKind.RELATIVE, 0x0E),)

    def test_jump_to_self(self):
        inst = only_instruction("x: jr x")
        assert inst.operands == (Operand(OperandKind.RELATIVE, -2),)

    def test_literal_out_of_range(self):
        with pytest.raises(RangeError, match="out of range"):
            parse("jr 200")

    def test_forward_label_out_of_range(self):
        with pytest.raises(RangeError) as exc_info:
            parse("jr far\n.fill 200, 0\nfar:\n")
        assert "far" in exc_info.value.message

    def test_maximum_forward_distance(self):
        program = parse("jr far\n.fill 127, 0\nfar:\n")
        assert program.instructions[0].operands[0].value == 127


class TestHighPage:
    """ldh (n8) takes an offset or a full $FF00-$FFFF address."""

    def test_offset(self):
        inst = only_instruction("ldh (0x80), a")
        assert inst.operands[0] == Operand(OperandKind.ADDRESS8, 0x80)

    def test_full_address(self):
        inst = only_instruction("ldh a, (0xFF44)")
        assert inst.operands[1] == Operand(OperandKind.ADDRESS8, 0x44)

    def test_outside_high_page(self):
        with pytest.raises(RangeError):
            parse("ldh (0x1234), a")

    def test_symbol_in_high_page(self):
        program = parse(".equ LY, 0xFF44\nldh a, (LY)\n")
        assert program.instructions[0].operands[1] == Operand(OperandKind.ADDRESS8, 0x44)


# =============================================================================
# Symbol Resolution
# =============================================================================

class TestResolution:
    """Back-patching of forward references and constants."""

    def test_forward_jump(self):
        program = parse("jp end\nnop\nend:\n")
        assert program.instructions[0].operands == (Operand(OperandKind.IMMEDIATE16, 4),)

    def test_call_label(self):
        program = parse("call subr\nhalt\nsubr: ret\n")
        assert program.instructions[0].operands == (Operand(OperandKind.IMMEDIATE16, 4),)

    def test_symbol_operand_before_backpatch_keeps_size(self):
        program = parse("ld hl, buffer\nbuffer: .byte 0\n")
        assert program.instructions[0].size == 3
        assert program.symbols.lookup("buffer").value == 3

    def test_constant_as_immediate(self):
        program = parse(".equ COUNT, 5\nld b, COUNT\n")
        assert program.instructions[0].operands[1] == Operand(OperandKind.IMMEDIATE8, 5)

    def test_predefined_symbol(self):
        program = parse("ld a, DEBUG", defines={"DEBUG": 1})
        assert program.instructions[0].operands[1] == Operand(OperandKind.IMMEDIATE8, 1)

    def test_symbol_address_operand(self):
        program = parse("ld (var), a\nvar: .byte 0\n")
        assert program.instructions[0].operands[0] == Operand(OperandKind.ADDRESS16, 3)

    def test_label_too_large_for_8_bits(self):
        with pytest.raises(RangeError, match="8 bits"):
            parse(".fill 300, 0\nx:\nld a, x\n")

    def test_unresolved_symbol(self):
        with pytest.raises(UnresolvedSymbolError) as exc_info:
            parse("jp mian\nmain:\n")
        error = exc_info.value
        assert error.symbol == "mian"
        assert error.similar_symbols == ["main"]
        assert "did you mean 'main'" in str(error)
        assert error.location.line == 1

    def test_unresolved_without_suggestions(self):
        with pytest.raises(UnresolvedSymbolError) as exc_info:
            parse("call nowhere\n")
        assert exc_info.value.similar_symbols == []


# =============================================================================
# Directives
# =============================================================================

class TestDirectives:
    """Data and definition directives."""

    def test_byte_list(self):
        unit = parse(".byte 1, 2, 0xFF\n").units[0]
        assert isinstance(unit, ByteData)
        assert unit.data == bytes([1, 2, 0xFF])

    def test_byte_without_operand(self):
        unit = parse(".byte\n").units[0]
        assert unit.data == b"\x00"
        assert unit.size == 1

    def test_byte_out_of_range(self):
        with pytest.raises(RangeError):
            parse(".byte 256\n")

    def test_ascii(self):
        unit = parse('.ascii "Hi"\n').units[0]
        assert isinstance(unit, StringData)
        assert unit.kind == StringKind.ASCII
        assert unit.payload == b"Hi"

    def test_asciz(self):
        unit = parse('.asciz "Hi"\n').units[0]
        assert unit.payload == b"Hi\x00"
        assert unit.size == 3

    def test_utf8(self):
        unit = parse('.utf8 "é"\n').units[0]
        assert unit.payload == "é".encode("utf-8")
        assert unit.size == 2

    def test_ascii_rejects_non_ascii(self):
        with pytest.raises(RangeError, match="non-ASCII"):
            parse('.ascii "héllo"\n')

    def test_string_requires_string(self):
        with pytest.raises(AssemblySyntaxError, match="expected string"):
            parse(".ascii 5\n")

    def test_fill(self):
        unit = parse(".fill 10, 0xAA\n").units[0]
        assert isinstance(unit, Fill)
        assert (unit.count, unit.value, unit.size) == (10, 0xAA, 10)

    def test_fill_requires_value(self):
        with pytest.raises(AssemblySyntaxError):
            parse(".fill 10\n")

    def test_org_pads_to_target(self):
        program = parse("nop\nnop\n.org 0x10\nhere:\n")
        pad = program.units[2]
        assert isinstance(pad, Pad)
        assert pad.size == 14
        assert pad.value == 0
        assert program.symbols.lookup("here").value == 0x10

    def test_org_with_fill_value(self):
        pad = parse(".org 4, 0xFF\n").units[0]
        assert (pad.target, pad.value, pad.size) == (4, 0xFF, 4)

    def test_org_at_current_location(self):
        assert parse("nop\n.org 1\n").units[1].size == 0

    def test_org_behind_location(self):
        with pytest.raises(RangeError, match="behind"):
            parse("nop\nnop\n.org 1\n")

    def test_equ(self):
        program = parse(".equ SCREEN, 0x9800\n")
        assert isinstance(program.units[0], Constant)
        assert program.units[0].size == 0
        symbol = program.symbols.lookup("SCREEN")
        assert symbol.value == 0x9800
        assert symbol.is_constant

    def test_equ_redefinition(self):
        with pytest.raises(DuplicateSymbolError):
            parse(".equ A1, 1\n.equ A1, 2\n")

    def test_equ_requires_literal(self):
        with pytest.raises(AssemblySyntaxError, match="expected constant value"):
            parse(".equ A1, B1\n")


# =============================================================================
# Symbol Table
# =============================================================================

class TestSymbolTable:
    """SymbolTable behaviour on its own."""

    def test_define_and_lookup(self):
        table = SymbolTable()
        table.define("start", 0x150)
        assert "start" in table
        assert len(table) == 1
        assert table.lookup("start").value == 0x150
        assert table.lookup("missing") is None

    def test_never_overwrites(self):
        table = SymbolTable()
        loc = SourceLocation("a.asm", 1, 1)
        table.define("x", 1, loc)
        with pytest.raises(DuplicateSymbolError):
            table.define("x", 2)
        assert table.lookup("x").value == 1

    def test_value_range(self):
        with pytest.raises(RangeError):
            SymbolTable().define("x", 0x10000)

    def test_similar_names(self):
        table = SymbolTable()
        for name in ("main", "MAIN_LOOP", "print", "Main"):
            table.define(name, 0)
        assert table.similar("mian") == ["main", "Main"]
        assert table.similar("prnt") == ["print"]
        assert table.similar("zzzzzz") == []


# =============================================================================
# Includes
# =============================================================================

class TestIncludeReader:
    """Included text comes from the parser's reader."""

    def test_custom_reader(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        (tmp_path / "lib.asm").write_text("", encoding="utf-8")
        read = []

        def reader(path):
            read.append(path.name)
            return "helper: ret\n"

        source = 'call helper\n.use "lib.asm"\n'
        program = Parser(scan(source), source=source, reader=reader).parse()
        assert read == ["lib.asm"]
        assert program.symbols.lookup("helper").value == 3
        assert isinstance(program.units[1], Include)
        assert program.units[1].path == "lib.asm"
