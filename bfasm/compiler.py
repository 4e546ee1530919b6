from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Union

from .interpreter import DEFAULT_TAPE_SIZE
from .operations import OperatorKind, Operation, Program, jump_pairs

logger = logging.getLogger(__name__)

_SYSCALL_READ = "0x3"
_SYSCALL_WRITE = "0x4"
_STDIN = "0x0"
_STDOUT = "0x1"


def label_for(index: int) -> str:
    """Assembly label for the operation at ``index``."""
    if index < 0:
        raise ValueError("operation index must be non-negative, got {}".format(index))
    return "op{}".format(index)


@dataclass
class AsmCompiler:
    """Generates NASM source for 32-bit Linux.

    ``ebx`` holds the tape position and cells are addressed as
    ``[buffer+ebx]``. Pointer moves are not wrapped.
    """

    buffer_size: int = DEFAULT_TAPE_SIZE
    comments: bool = True

    def __post_init__(self) -> None:
        if self.buffer_size <= 0:
            raise ValueError("buffer_size must be positive, got {}".format(self.buffer_size))

    def emit(self, program: Program) -> str:
        labels = self._jump_labels(program)
        lines: List[str] = [
            "section .data",
            "buffer: times {} db 0".format(self.buffer_size),
            "section .text",
            "global _start",
            "_start:",
            "xor ebx, ebx",
        ]
        for index, operation in enumerate(program):
            lines.extend(self._emit_operation(index, operation, labels))
        lines.extend(self._comment("end program"))
        lines.extend(["mov ebx, 0", "mov eax, 1", "int 80h"])
        logger.debug("emitted %d lines for %d operations", len(lines), len(program))
        return "\n".join(lines) + "\n"

    def compile(self, program: Program, out_path: Union[str, Path]) -> None:
        assembly = self.emit(program)
        with open(out_path, "w", encoding="ascii") as handle:
            handle.write(assembly)
        logger.info("wrote %d operations to %s", len(program), out_path)

    def _jump_labels(self, program: Program) -> Dict[int, str]:
        pairs = jump_pairs(program)
        indices = list(pairs) + list(pairs.values())
        labels = {index: label_for(index) for index in indices}
        if len(set(labels.values())) != len(labels):
            raise ValueError("jump labels are not unique")
        return labels

    def _emit_operation(self, index: int, operation: Operation, labels: Dict[int, str]) -> List[str]:
        kind = operation.kind
        if kind is OperatorKind.INCREMENT_VALUE:
            return self._comment("increment or decrement by value.") + [
                "add [buffer+ebx], byte {}".format(operation.value % 256),
            ]
        if kind is OperatorKind.INCREMENT_PTR:
            return self._comment("increment or decrement pointer by value.") + [
                "add ebx, {}".format(operation.value),
            ]
        if kind is OperatorKind.READ:
            return self._comment("read character to buffer.") + self._syscall(_SYSCALL_READ, _STDIN)
        if kind is OperatorKind.WRITE:
            return self._comment("print character from buffer.") + self._syscall(_SYSCALL_WRITE, _STDOUT)
        if kind is OperatorKind.JUMP_IF_ZERO:
            return self._comment("jump if current value is 0.") + [
                "cmp [buffer+ebx], byte 0",
                "je {}".format(labels[operation.value]),
                "{}:".format(labels[index]),
            ]
        return self._comment("jump if current value is not 0.") + [
            "cmp [buffer+ebx], byte 0",
            "jne {}".format(labels[operation.value]),
            "{}:".format(labels[index]),
        ]

    def _syscall(self, number: str, fd: str) -> List[str]:
        return [
            "mov ecx, buffer",
            "add ecx, ebx",
            "push ebx",
            "mov eax, {}".format(number),
            "mov ebx, {}".format(fd),
            "mov edx, 0x1",
            "int 80h",
            "pop ebx",
        ]

    def _comment(self, text: str) -> List[str]:
        if not self.comments:
            return []
        return [";" + text]


def compile_program(
    program: Program,
    out_path: Union[str, Path],
    buffer_size: int = DEFAULT_TAPE_SIZE,
) -> None:
    AsmCompiler(buffer_size=buffer_size).compile(program, out_path)


__all__ = ["AsmCompiler", "compile_program", "label_for"]
