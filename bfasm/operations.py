from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List


class OperatorKind(Enum):
    INCREMENT_PTR = ">"
    INCREMENT_VALUE = "+"
    READ = ","
    WRITE = "."
    JUMP_IF_ZERO = "["
    JUMP_IF_NOT_ZERO = "]"

    @property
    def symbol(self) -> str:
        return self.value

    @property
    def is_jump(self) -> bool:
        return self in (OperatorKind.JUMP_IF_ZERO, OperatorKind.JUMP_IF_NOT_ZERO)


# Symbols used when rendering negative deltas of the folded kinds.
_NEGATIVE_SYMBOLS = {
    OperatorKind.INCREMENT_PTR: "<",
    OperatorKind.INCREMENT_VALUE: "-",
}


@dataclass
class Operation:
    """One decoded instruction.

    For the increment kinds ``value`` is a signed delta. For jumps it is the
    program index of the matching jump. Read and Write leave it at 0.
    """

    kind: OperatorKind
    value: int = 0

    def render(self) -> str:
        if self.kind in _NEGATIVE_SYMBOLS:
            if self.value < 0:
                return _NEGATIVE_SYMBOLS[self.kind] * -self.value
            return self.kind.symbol * self.value
        return self.kind.symbol


Program = List[Operation]


def jump_pairs(program: Program) -> Dict[int, int]:
    """Re-derive bracket pairs from the jump kinds and check the stored targets.

    Returns a mapping from each JumpIfZero index to its JumpIfNotZero index.
    """
    pairs: Dict[int, int] = {}
    stack: List[int] = []
    for index, operation in enumerate(program):
        if operation.kind is OperatorKind.JUMP_IF_ZERO:
            stack.append(index)
        elif operation.kind is OperatorKind.JUMP_IF_NOT_ZERO:
            if not stack:
                raise ValueError("JumpIfNotZero at {} has no matching JumpIfZero".format(index))
            start = stack.pop()
            if program[start].value != index or operation.value != start:
                raise ValueError(
                    "Jump pair {}/{} does not reference each other".format(start, index)
                )
            pairs[start] = index
    if stack:
        raise ValueError("JumpIfZero at {} has no matching JumpIfNotZero".format(stack.pop()))
    return pairs


__all__ = ["OperatorKind", "Operation", "Program", "jump_pairs"]
