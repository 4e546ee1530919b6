from __future__ import annotations

import logging
import sys
from dataclasses import dataclass, field
from typing import BinaryIO, Iterable, Iterator, Optional, Union

from .operations import OperatorKind, Program

logger = logging.getLogger(__name__)

DEFAULT_TAPE_SIZE = 30000

_WHITESPACE = frozenset(b" \t\n\r\v\f")

InputData = Union[BinaryIO, Iterable[int], None]


class StepLimitExceeded(RuntimeError):
    """Raised when execution exceeds the configured step budget."""


@dataclass
class ExecutionState:
    step: int
    pc: int
    kind: Optional[OperatorKind]
    value: int
    pointer: int
    tape_start: int
    tape: list
    output: bytes
    program_length: int


class _ByteSource:
    """Reads one byte at a time from a binary stream or an iterable of ints."""

    def __init__(self, data: InputData) -> None:
        if data is None:
            self._read = lambda: None
        elif hasattr(data, "read"):
            self._read = lambda: _read_stream_byte(data)
        else:
            iterator = iter(data)
            self._read = lambda: next(iterator, None)

    def next_byte(self, skip_whitespace: bool = False) -> Optional[int]:
        byte = self._read()
        while skip_whitespace and byte is not None and byte in _WHITESPACE:
            byte = self._read()
        return byte


def _read_stream_byte(stream: BinaryIO) -> Optional[int]:
    chunk = stream.read(1)
    if not chunk:
        return None
    return chunk[0]


@dataclass
class TapeInterpreter:
    tape_size: int = DEFAULT_TAPE_SIZE
    skip_whitespace: bool = False

    tape: bytearray = field(init=False, repr=False)
    pointer: int = field(init=False, repr=False)
    output_buffer: bytearray = field(init=False, repr=False)
    steps: int = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if self.tape_size <= 0:
            raise ValueError("tape_size must be positive, got {}".format(self.tape_size))
        self.reset()

    def reset(self) -> None:
        self.tape = bytearray(self.tape_size)
        self.pointer = 0
        self.output_buffer = bytearray()
        self.steps = 0

    def run(
        self,
        program: Program,
        input_data: InputData = None,
        output: Optional[BinaryIO] = None,
        max_steps: Optional[int] = None,
    ) -> bytes:
        """Execute ``program`` to completion without building snapshots.

        Written bytes are returned only when no ``output`` stream is given;
        bytes streamed to ``output`` are not kept.
        """
        self.reset()
        source = _ByteSource(input_data)
        collect = output is None
        pc = 0
        program_length = len(program)
        while pc < program_length:
            self._check_step_limit(max_steps, pc)
            pc = self._execute(pc, program, source, output, collect)
            self.steps += 1
        logger.info("program finished after %d steps", self.steps)
        return bytes(self.output_buffer)

    def step(
        self,
        program: Program,
        input_data: InputData = None,
        output: Optional[BinaryIO] = None,
        max_steps: Optional[int] = None,
        tape_window: int = 10,
    ) -> Iterator[ExecutionState]:
        self.reset()
        source = _ByteSource(input_data)
        pc = 0
        program_length = len(program)

        while pc < program_length:
            self._check_step_limit(max_steps, pc)
            operation = program[pc]
            pc = self._execute(pc, program, source, output, True)
            self.steps += 1
            yield self._snapshot(pc, operation.kind, operation.value, self.steps, program_length, tape_window)

        # Emit final snapshot indicating completion
        yield self._snapshot(pc, None, 0, self.steps, program_length, tape_window)

    def _check_step_limit(self, max_steps: Optional[int], pc: int) -> None:
        if max_steps is not None and self.steps >= max_steps:
            logger.warning("step limit of %d reached at pc=%d", max_steps, pc)
            raise StepLimitExceeded("Program exceeded allowed step count")

    def _execute(
        self,
        pc: int,
        program: Program,
        source: _ByteSource,
        output: Optional[BinaryIO],
        collect: bool,
    ) -> int:
        operation = program[pc]
        kind = operation.kind
        if kind is OperatorKind.INCREMENT_VALUE:
            self.tape[self.pointer] = (self.tape[self.pointer] + operation.value) % 256
        elif kind is OperatorKind.INCREMENT_PTR:
            self.pointer = (self.pointer + operation.value) % self.tape_size
        elif kind is OperatorKind.READ:
            byte = source.next_byte(self.skip_whitespace)
            # End of input leaves the cell untouched.
            if byte is not None:
                self.tape[self.pointer] = byte
        elif kind is OperatorKind.WRITE:
            byte = self.tape[self.pointer]
            if collect:
                self.output_buffer.append(byte)
            if output is not None:
                output.write(bytes((byte,)))
                output.flush()
        elif kind is OperatorKind.JUMP_IF_ZERO:
            if self.tape[self.pointer] == 0:
                pc = operation.value
        elif kind is OperatorKind.JUMP_IF_NOT_ZERO:
            if self.tape[self.pointer] != 0:
                pc = operation.value
        return pc + 1

    def _snapshot(
        self,
        pc: int,
        kind: Optional[OperatorKind],
        value: int,
        step: int,
        program_length: int,
        tape_window: int,
    ) -> ExecutionState:
        start = max(0, self.pointer - tape_window)
        end = min(self.tape_size, self.pointer + tape_window + 1)
        return ExecutionState(
            step=step,
            pc=pc,
            kind=kind,
            value=value,
            pointer=self.pointer,
            tape_start=start,
            tape=list(self.tape[start:end]),
            output=bytes(self.output_buffer),
            program_length=program_length,
        )


def interpret(
    program: Program,
    tape_size: int = DEFAULT_TAPE_SIZE,
    input_data: InputData = None,
    output: Optional[BinaryIO] = None,
    max_steps: Optional[int] = None,
    skip_whitespace: bool = False,
) -> bytes:
    """Run ``program`` on a fresh tape, reading stdin and writing stdout by default."""
    if input_data is None:
        input_data = sys.stdin.buffer
    if output is None:
        output = sys.stdout.buffer
    interpreter = TapeInterpreter(tape_size=tape_size, skip_whitespace=skip_whitespace)
    return interpreter.run(program, input_data=input_data, output=output, max_steps=max_steps)


__all__ = [
    "DEFAULT_TAPE_SIZE",
    "ExecutionState",
    "StepLimitExceeded",
    "TapeInterpreter",
    "interpret",
]
