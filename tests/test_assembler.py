import os
import random

import pytest

import battleasm
from battleasm import (assemble, parse_header, Options, FILLER_WORD, RANDOM_WINDOW,
                       AsmError, SizeMismatch, UnknownMnemonic, UnknownRegister,
                       DirectiveBacktrack, NestedRepeat, UnterminatedRepeat, MalformedHeader,
                       MalformedDirective, UnboundVariableFree,
                       TooManyVariables)

DATA = os.path.join(os.path.dirname(__file__), "data")


def read(name):
    with open(os.path.join(DATA, name), "r", encoding="utf-8") as f:
        return f.readlines()


def test_plain_program_counts_instruction_lines():
    program = assemble("p 0\n; comment\nldi 1\n\n  mv r1, r0 ; copy\nflag\n")
    assert program.name == "p"
    assert program.offset == 0
    assert program.size == 3
    assert program.codes == [1, 0x8020, FILLER_WORD]
    assert [w.lineno for w in program.words] == [3, 5, 6]
    assert program.words[1].source == "mv r1, r0 ; copy"


def test_starts_pads_with_filler():
    program = assemble("p 0\nldi 1\nldi 2\n#starts 5\nmv r1, r2\n")
    assert program.size == 6
    assert program.codes == [1, 2, FILLER_WORD, FILLER_WORD, FILLER_WORD, 0x8022]
    assert program.words[2].lineno is None
    assert program.words[2].source is None


def test_starts_at_current_position_is_a_no_op():
    program = assemble("p 0\nldi 1\n#STARTS 1\nldi 2\n")
    assert program.codes == [1, 2]


def test_starts_backwards():
    source = "p 0\n" + "flag\n" * 6 + "#starts 3\n"
    with pytest.raises(DirectiveBacktrack) as exc:
        assemble(source)
    assert exc.value.lineno == 8
    assert "current instruction: 6, wanted instruction: 3" in str(exc.value)


def test_repeat_replays_block():
    program = assemble("rep 0\nldi 1\n#repeat 2 3\naddi r1, 1\nsubi r2, 2\nflag\n")
    addi, subi = 0xC821, 0xCC42
    assert program.size == 8
    assert program.codes == [1, addi, subi, addi, subi, addi, subi, FILLER_WORD]


def test_repeat_once_is_plain():
    program = assemble("rep 0\n#repeat 2 1\nldi 1\nldi 2\n")
    assert program.codes == [1, 2]


def test_repeat_skips_filler_from_starts():
    program = assemble("p 0\n#repeat 2 2\nldi 1\n#starts 3\nldi 2\n")
    assert program.size == 6
    assert program.codes == [1, FILLER_WORD, FILLER_WORD, 2, 1, 2]


def test_repeat_sees_final_size_in_constants():
    # #before is taken when the line is encoded, replays copy the word verbatim
    program = assemble("p 0\n#repeat 1 3\nldi #before\nldi #size\n")
    assert program.codes == [0, 0, 0, 4]


def test_nested_repeat():
    with pytest.raises(NestedRepeat) as exc:
        assemble("p 0\n#repeat 2 2\nflag\n#repeat 1 2\nflag\n")
    assert exc.value.lineno == 4


def test_unterminated_repeat():
    with pytest.raises(UnterminatedRepeat) as exc:
        assemble("p 0\nflag\n#repeat 3 2\nflag\n")
    assert exc.value.lineno == 3


def test_constants_see_program_size():
    program = assemble("c 0\nldi #size\nldi #before\nldi #after\nldi #size:-1\n")
    assert program.codes == [4, 1, 1, 3]


def test_constants_after_starts():
    program = assemble("c 0\n#starts 10\nldi #before\n")
    assert program.size == 11
    assert program.codes[10] == 10


def test_free_releases_slot():
    program = assemble("p 0\nmv a, b\n#free a\nmv c, r0\n")
    assert program.codes == [0x8002 | (1 << 5), 0x8000 | (1 << 5)]
    assert program.variables == {"c": 1, "b": 2}


def test_free_unbound():
    with pytest.raises(UnboundVariableFree) as exc:
        assemble("p 0\n#free ghost\n")
    assert exc.value.lineno == 2


def test_too_many_variables_in_program():
    lines = ["p 0"] + [f"not v{i}" for i in range(30)]
    with pytest.raises(TooManyVariables) as exc:
        assemble(lines)
    assert exc.value.lineno == 31


def test_variables_disabled():
    with pytest.raises(UnknownRegister):
        assemble("p 0\nmv a, r1\n", Options(allow_variables=False))
    assert assemble("p 0\nmv sp, pc\n", Options(allow_variables=False)).codes == [0x8000 | (30 << 5) | 31]


def test_error_carries_line_number():
    with pytest.raises(UnknownMnemonic) as exc:
        assemble("p 0\nldi 1\n\nfoo\n")
    assert exc.value.lineno == 4
    assert str(exc.value) == "line 4: Unknown instruction: 'foo'"


def test_first_error_wins_over_later_directive():
    # the sizing pass must not report the broken directive before the emit pass reaches line 2
    with pytest.raises(UnknownMnemonic) as exc:
        assemble("p 0\nfoo\n#starts abc\n")
    assert exc.value.lineno == 2


@pytest.mark.parametrize("source, error", [
    ("p 0\n#starts\n", MalformedDirective),
    ("p 0\n#starts abc\n", MalformedDirective),
    ("p 0\n#repeat 2\n", MalformedDirective),
    ("p 0\n#repeat 0 2\n", MalformedDirective),
    ("p 0\n#repeat 2 0\n", MalformedDirective),
    ("p 0\n#free\n", MalformedDirective),
])
def test_malformed_directives(source, error):
    with pytest.raises(error) as exc:
        assemble(source)
    assert exc.value.lineno == 2
    assert isinstance(exc.value, AsmError)


def test_unknown_directive_is_skipped(caplog):
    with caplog.at_level("WARNING", logger="battleasm"):
        program = assemble("p 0\n# setup\nldi 1\n#foo 1\n")
    assert program.codes == [1]
    assert program.size == 1
    warnings = [r.getMessage() for r in caplog.records if r.levelname == "WARNING"]
    assert len(warnings) == 2
    assert warnings[0].startswith("line 2:")
    assert warnings[1].startswith("line 4:")


@pytest.mark.parametrize("line, expected", [
    ("mars 377", ("mars", 377)),
    ("mars 377 ; comment", ("mars", 377)),
    ("prog x10", ("prog", 16)),
    ("prog -1", ("prog", -1)),
    ("prog random", ("prog", -1)),
])
def test_parse_header(line, expected):
    assert parse_header(line) == expected


@pytest.mark.parametrize("source", ["", "\n\n", "prog\n", "1abc 0\n", "prog -5\n", "prog zz\n", "prog 1 2\n"])
def test_malformed_header(source):
    with pytest.raises(MalformedHeader):
        assemble(source)


def test_header_after_leading_comments():
    program = assemble("; title\n\nprog 4\nflag\n")
    assert (program.name, program.offset, program.size) == ("prog", 4, 1)
    assert program.words[0].lineno == 4


def test_random_offset_in_window():
    source = "p -1\nflag\nflag\n"
    for seed in range(200):
        program = assemble(source, rng=random.Random(seed))
        assert 0 <= program.offset < RANDOM_WINDOW - program.size
        assert program.random_offset


def test_random_offset_is_seeded():
    a = assemble("p random\nflag\n", rng=random.Random(7))
    b = assemble("p random\nflag\n", rng=random.Random(7))
    assert a.offset == b.offset
    assert not assemble("p 5\nflag\n").random_offset


def test_random_offset_too_large():
    with pytest.raises(MalformedHeader):
        assemble("p -1\n#starts 1024\n", rng=random.Random(0))


def test_size_mismatch_is_an_assertion(monkeypatch):
    monkeypatch.setattr(battleasm, "encode_line", lambda *args: None)
    with pytest.raises(SizeMismatch) as exc:
        assemble("p 0\nflag\n")
    assert not isinstance(exc.value, AsmError)
    assert isinstance(exc.value, AssertionError)


def test_assemblers_do_not_share_state():
    first = assemble("p 0\nmv a, b\n")
    second = assemble("p 0\nmv c, d\n")
    assert first.variables == {"a": 1, "b": 2}
    assert second.variables == {"c": 1, "d": 2}


def test_mars_program():
    program = assemble(read("mars.asm"))
    assert program.size == 9
    assert program.codes == [
        0b1000000000111111,
        0b0101001111000000,
        0b1000000001000000,
        0b1101000001000001,
        0b1000000001111111,
        0b1100110000100010,
        0b1011110001000001,
        0b1111110000000000,
        0b1010010001100000,
    ]
    assert program.variables == {"[counter]": 1, "[fire_instr]": 2, "[main]": 3}


def test_launcher_program():
    program = assemble(read("launcher.asm"))
    assert (program.name, program.offset, program.size) == ("launcher", 377, 20)
    bump, drop = 0x8701, 0x8B02
    assert program.codes == [
        0x829F, 15, 0x8680,
        2, 0x8420,
        1, 0x8040,
        bump, drop, bump, drop,
        FILLER_WORD, FILLER_WORD, FILLER_WORD, FILLER_WORD, FILLER_WORD,
        0xBEF8, bump, FILLER_WORD, 0xA680,
    ]
    assert program.variables == {"step": 1, "one": 2}
