from __future__ import annotations
import json
import os
import sys
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Deque, Dict, Optional

import numpy as np
from numpy.typing import NDArray

from codegen import (
    CELL_MODULUS,
    Add,
    JumpIfZero,
    JumpUnlessZero,
    MoveLeft,
    MoveRight,
    Opcode,
    Program,
    Read,
    Sub,
    Write,
    generate,
)
from lexer import BFError, Lexer
from parser import Ast, Parser, SourceLocation


DEFAULT_TAPE_SIZE = 30_000
DEFAULT_HISTORY_LIMIT = 64
# Cells shown on each side of the data pointer in verbose tracebacks.
TAPE_WINDOW = 8

Tape = NDArray[np.uint8]


class BFRuntimeError(BFError):
    """Raised for runtime faults."""

    def __init__(
        self,
        message: str,
        *,
        location: Optional[SourceLocation] = None,
        opcode: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.location = location
        self.opcode = opcode
        self.step_index: Optional[int] = None


class TapeBoundsError(BFRuntimeError):
    """Raised when the data pointer leaves the tape."""


class InputExhaustedError(BFRuntimeError):
    """Raised when a read finds no more input."""


@dataclass
class StateEntry:
    step_index: int
    state_id: str
    pc: int
    dp: int
    opcode: str
    source_location: Optional[SourceLocation]


class StateLogger:
    def __init__(self, verbose: bool, history_limit: int = DEFAULT_HISTORY_LIMIT) -> None:
        self.verbose = verbose
        self.entries: Deque[StateEntry] = deque(maxlen=history_limit)
        self.next_state_index = 0

    def record(self, *, pc: int, dp: int, opcode: Opcode) -> None:
        step_index = self.next_state_index
        self.next_state_index += 1
        # Only verbose runs keep per-step entries; a plain run just counts.
        if not self.verbose:
            return
        self.entries.append(
            StateEntry(
                step_index=step_index,
                state_id=f"s_{step_index:06d}",
                pc=pc,
                dp=dp,
                opcode=opcode.__class__.__name__,
                source_location=opcode.location,
            )
        )

    @property
    def last_step_index(self) -> Optional[int]:
        return self.next_state_index - 1 if self.next_state_index else None


def _read_stdin_byte() -> Optional[int]:
    chunk = sys.stdin.buffer.read(1)
    return chunk[0] if chunk else None


def _write_stdout_byte(byte: int) -> None:
    stream = sys.stdout.buffer
    stream.write(bytes((byte,)))
    stream.flush()


class Interpreter:
    def __init__(
        self,
        *,
        source: str,
        filename: str,
        verbose: bool,
        tape_size: int = DEFAULT_TAPE_SIZE,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        input_provider: Optional[Callable[[], Optional[int]]] = None,
        output_sink: Optional[Callable[[int], None]] = None,
    ) -> None:
        if tape_size <= 0:
            raise ValueError("tape_size must be positive")
        self.source = source
        self._source_lines = source.splitlines()
        normalized_filename = filename if filename == "<string>" else os.path.abspath(filename)
        self.filename = normalized_filename
        self.verbose = verbose
        self.tape_size = tape_size
        self.input_provider = input_provider or _read_stdin_byte
        self.output_sink = output_sink or _write_stdout_byte
        self.logger = StateLogger(verbose=verbose, history_limit=history_limit)
        self.tape: Optional[Tape] = None
        self.pc = 0
        self.dp = 0

    def parse(self) -> Ast:
        lexer = Lexer(self.source, self.filename)
        tokens = lexer.tokenize()
        parser = Parser(tokens, self.filename, self._source_lines)
        return parser.parse()

    def compile(self) -> Program:
        return generate(self.parse())

    def run(self) -> Tape:
        program = self.compile()
        tape: Tape = np.zeros(self.tape_size, dtype=np.uint8)
        self.execute(program, tape)
        return tape

    def execute(self, program: Program, tape: Tape) -> None:
        self.tape = tape
        self.pc = 0
        self.dp = 0
        try:
            self._execute_program(program, tape)
        except BFRuntimeError as error:
            error.step_index = self.logger.last_step_index
            raise
        except Exception as exc:
            # Surface Python-level faults as BF tracebacks too.
            location = program[self.pc].location if self.pc < len(program) else None
            wrapped = BFRuntimeError(f"Internal interpreter error: {exc}", location=location, opcode="internal")
            wrapped.step_index = self.logger.last_step_index
            raise wrapped from exc

    def _execute_program(self, program: Program, tape: Tape) -> None:
        record = self.logger.record
        size = len(tape)
        end = len(program)
        pc = 0
        dp = 0
        try:
            while pc < end:
                opcode = program[pc]
                record(pc=pc, dp=dp, opcode=opcode)
                if isinstance(opcode, Add):
                    tape[dp] = (int(tape[dp]) + opcode.delta) % CELL_MODULUS
                elif isinstance(opcode, Sub):
                    tape[dp] = (int(tape[dp]) - opcode.delta) % CELL_MODULUS
                elif isinstance(opcode, MoveRight):
                    dp += opcode.count
                    if dp >= size:
                        raise self._bounds_error(opcode, dp, size)
                elif isinstance(opcode, MoveLeft):
                    dp -= opcode.count
                    if dp < 0:
                        raise self._bounds_error(opcode, dp, size)
                elif isinstance(opcode, JumpIfZero):
                    if tape[dp] == 0:
                        pc = opcode.target
                elif isinstance(opcode, JumpUnlessZero):
                    if tape[dp] != 0:
                        pc = opcode.target
                elif isinstance(opcode, Write):
                    self.output_sink(int(tape[dp]))
                elif isinstance(opcode, Read):
                    tape[dp] = self._read_byte(opcode)
                else:
                    raise BFRuntimeError(
                        f"Unknown opcode {opcode.__class__.__name__}",
                        location=opcode.location,
                        opcode=opcode.__class__.__name__,
                    )
                pc += 1
        finally:
            self.pc = pc
            self.dp = dp

    def _read_byte(self, opcode: Read) -> int:
        byte = self.input_provider()
        if byte is None:
            raise InputExhaustedError("Read past end of input", location=opcode.location, opcode="Read")
        if not 0 <= byte <= 255:
            raise BFRuntimeError(f"Input provider returned non-byte value {byte}", location=opcode.location, opcode="Read")
        return byte

    def _bounds_error(self, opcode: Opcode, dp: int, size: int) -> TapeBoundsError:
        return TapeBoundsError(
            f"Data pointer moved to {dp}, outside tape of {size} cells",
            location=opcode.location,
            opcode=opcode.__class__.__name__,
        )


class TracebackFormatter:
    def __init__(self, interpreter: Interpreter) -> None:
        self.interpreter = interpreter

    def tape_window(self) -> Dict[int, int]:
        tape = self.interpreter.tape
        if tape is None:
            return {}
        dp = self.interpreter.dp
        lo = max(0, min(dp, len(tape)) - TAPE_WINDOW)
        hi = min(len(tape), max(dp, 0) + TAPE_WINDOW + 1)
        return {index: int(tape[index]) for index in range(lo, hi)}

    def format_text(self, error: BFRuntimeError, verbose: bool) -> str:
        interpreter = self.interpreter
        lines = ["Traceback (most recent call last):"]
        location = error.location
        if location:
            lines.append(f"  File \"{location.file}\", line {location.line}, column {location.column}, in <program>")
            if location.statement:
                lines.append(f"    {location.statement}")
        else:
            lines.append("  <unknown location> in <program>")
        lines.append(f"    Step index: {error.step_index}  pc: {interpreter.pc}  dp: {interpreter.dp}")
        if verbose:
            for entry in interpreter.logger.entries:
                lines.append(f"    [{entry.state_id}] pc={entry.pc} dp={entry.dp} {entry.opcode}")
            window = ", ".join(f"{k}={v}" for k, v in self.tape_window().items())
            lines.append(f"    Tape: {window}")
        op = error.opcode or "runtime"
        lines.append(f"{error.__class__.__name__}: {error.message} (opcode: {op})")
        return "\n".join(lines)

    def to_json(self, error: BFRuntimeError) -> str:
        interpreter = self.interpreter
        data: Dict[str, Any] = {
            "error": {
                "type": error.__class__.__name__,
                "message": error.message,
                "opcode": error.opcode,
                "failing_step_index": error.step_index,
            },
            "state": {"pc": interpreter.pc, "dp": interpreter.dp},
        }
        if error.location:
            data["source_location"] = {
                "file": error.location.file,
                "line": error.location.line,
                "column": error.location.column,
                "statement": error.location.statement,
            }
        if interpreter.logger.entries:
            data["history"] = [
                {"state_id": e.state_id, "step_index": e.step_index, "pc": e.pc, "dp": e.dp, "opcode": e.opcode}
                for e in interpreter.logger.entries
            ]
        data["tape_window"] = {str(k): v for k, v in self.tape_window().items()}
        return json.dumps(data, indent=2)
