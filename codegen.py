from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple, Type

import parser as nodes
from parser import Ast, SourceLocation

# Add/Sub deltas live in one cell, so they wrap like the cell does.
CELL_MODULUS = 256


@dataclass
class Opcode:
    location: Optional[SourceLocation] = field(default=None, compare=False, repr=False, kw_only=True)


@dataclass
class MoveLeft(Opcode):
    count: int = 1


@dataclass
class MoveRight(Opcode):
    count: int = 1


@dataclass
class Add(Opcode):
    delta: int = 1


@dataclass
class Sub(Opcode):
    delta: int = 1


@dataclass
class Write(Opcode):
    pass


@dataclass
class Read(Opcode):
    pass


@dataclass
class JumpIfZero(Opcode):
    target: int = 0


@dataclass
class JumpUnlessZero(Opcode):
    target: int = 0


Program = List[Opcode]


FOLDABLE: Dict[Type[nodes.Instruction], Type[Opcode]] = {
    nodes.MoveRight: MoveRight,
    nodes.MoveLeft: MoveLeft,
    nodes.Increment: Add,
    nodes.Decrement: Sub,
}


def generate(ast: Ast) -> Program:
    """Lower a tree into one flat program with absolute jump targets.

    Opcodes are emitted straight into the final sequence, so a loop's start is
    simply the current length. Open loops sit on an explicit stack of
    (remaining parent instructions, JumpIfZero, its index); the JumpIfZero
    target is patched once the matching JumpUnlessZero is emitted.
    """
    program: Program = []
    open_loops: List[Tuple[Iterator[nodes.Instruction], JumpIfZero, int]] = []
    instructions: Iterator[nodes.Instruction] = iter(ast)
    while True:
        instruction = next(instructions, None)
        if instruction is None:
            if not open_loops:
                return program
            instructions, opener, loop_start = open_loops.pop()
            opener.target = len(program)
            program.append(JumpUnlessZero(location=opener.location, target=loop_start))
            continue
        kind = FOLDABLE.get(type(instruction))
        if kind is not None:
            _fold(program, kind, instruction.location)
        elif isinstance(instruction, nodes.Write):
            program.append(Write(location=instruction.location))
        elif isinstance(instruction, nodes.Read):
            program.append(Read(location=instruction.location))
        elif isinstance(instruction, nodes.Loop):
            opener = JumpIfZero(location=instruction.location)
            open_loops.append((instructions, opener, len(program)))
            program.append(opener)
            instructions = iter(instruction.body)
        else:
            raise TypeError(f"unknown instruction: {type(instruction).__name__}")


def _fold(program: Program, kind: Type[Opcode], location: Optional[SourceLocation]) -> None:
    last = program[-1] if program else None
    if type(last) is not kind:
        program.append(kind(location=location))
    elif isinstance(last, (Add, Sub)):
        last.delta = (last.delta + 1) % CELL_MODULUS
    elif isinstance(last, (MoveLeft, MoveRight)):
        last.count += 1
