from __future__ import annotations

from typing import List

import pytest

from codegen import (
    Add,
    JumpIfZero,
    JumpUnlessZero,
    MoveLeft,
    MoveRight,
    Opcode,
    Read,
    Sub,
    Write,
    generate,
)
from parser import parse


def _codegen(source: str) -> List[Opcode]:
    return generate(parse(source))


def _matching_jumps(program: List[Opcode]) -> List[tuple]:
    pairs = []
    stack = []
    for index, opcode in enumerate(program):
        if isinstance(opcode, JumpIfZero):
            stack.append(index)
        elif isinstance(opcode, JumpUnlessZero):
            pairs.append((stack.pop(), index))
    assert not stack
    return pairs


def test_empty_ast():
    assert _codegen("") == []


def test_folding():
    assert _codegen("++") == [Add(2)]
    assert _codegen(">>><<--") == [MoveRight(3), MoveLeft(2), Sub(2)]


def test_folding_is_local():
    assert _codegen("+.+") == [Add(1), Write(), Add(1)]
    assert _codegen("+,+") == [Add(1), Read(), Add(1)]
    assert _codegen("+[]+") == [Add(1), JumpIfZero(2), JumpUnlessZero(1), Add(1)]
    assert _codegen("+-+") == [Add(1), Sub(1), Add(1)]


def test_add_folding_wraps_at_cell_size():
    assert _codegen("+" * 256) == [Add(0)]
    assert _codegen("-" * 257) == [Sub(1)]


def test_moves_do_not_wrap():
    assert _codegen(">" * 300) == [MoveRight(300)]


def test_calculate_loop_offsets():
    assert _codegen("[]") == [JumpIfZero(1), JumpUnlessZero(0)]
    assert _codegen("[+]") == [JumpIfZero(2), Add(1), JumpUnlessZero(0)]
    assert _codegen("[+++]") == [JumpIfZero(2), Add(3), JumpUnlessZero(0)]
    assert _codegen("[[[]]]") == [
        JumpIfZero(5),
        JumpIfZero(4),
        JumpIfZero(3),
        JumpUnlessZero(2),
        JumpUnlessZero(1),
        JumpUnlessZero(0),
    ]
    assert _codegen("[[]]") == [JumpIfZero(3), JumpIfZero(2), JumpUnlessZero(1), JumpUnlessZero(0)]
    assert _codegen("[+[+]+]") == [
        JumpIfZero(6),
        Add(1),
        JumpIfZero(4),
        Add(1),
        JumpUnlessZero(2),
        Add(1),
        JumpUnlessZero(0),
    ]


def test_loop_offsets_after_preceding_opcodes():
    assert _codegen("+[[]]") == [Add(1), JumpIfZero(4), JumpIfZero(3), JumpUnlessZero(2), JumpUnlessZero(1)]
    assert _codegen("+[+[+]]") == [
        Add(1),
        JumpIfZero(6),
        Add(1),
        JumpIfZero(5),
        Add(1),
        JumpUnlessZero(3),
        JumpUnlessZero(1),
    ]


@pytest.mark.parametrize(
    "source",
    ["[]", "+[->+<]", "++[>++[>+<-]<-]", ">,[.,]<[[-]>[-]]", "+[+[+[+]+]+]+[-]", "[][[]][[][]]"],
)
def test_jumps_point_at_each_other(source: str):
    program = _codegen(source)
    for open_index, close_index in _matching_jumps(program):
        assert program[open_index].target == close_index
        assert program[close_index].target == open_index


def test_generation_is_pure():
    ast = parse("++[>+++[-<+>]<.,]")
    assert generate(ast) == generate(ast)


def test_opcodes_keep_source_location():
    program = _codegen("\n +")
    assert program[0].location.line == 2
    assert program[0].location.column == 2


def test_deep_nesting_generates():
    depth = 1500
    program = _codegen("[" * depth + "-" + "]" * depth)
    assert len(program) == 2 * depth + 1
    assert program[depth] == Sub(1)
    for open_index, close_index in _matching_jumps(program):
        assert close_index == 2 * depth - open_index
        assert program[open_index].target == close_index
        assert program[close_index].target == open_index
