from __future__ import annotations

import logging
from typing import List, Optional

from .operations import OperatorKind, Operation, Program

logger = logging.getLogger(__name__)

_VALUE_DELTAS = {"+": 1, "-": -1}
_POINTER_DELTAS = {">": 1, "<": -1}
_OPERATOR_CHARS = frozenset("+-<>,.[]")


class PreprocessError(ValueError):
    """Raised when source text cannot be turned into a well-formed program."""

    def __init__(self, message: str, position: int) -> None:
        super().__init__(message)
        self.position = position


class UnbalancedClose(PreprocessError):
    """A ']' was found with no pending '['."""


class UnbalancedOpen(PreprocessError):
    """One or more '[' were still pending at the end of the source."""

    def __init__(self, message: str, positions: List[int]) -> None:
        super().__init__(message, positions[-1])
        self.positions = positions


def _fold_run(source: str, start: int, deltas: dict) -> tuple[int, int]:
    total = 0
    index = start
    while index < len(source) and source[index] in deltas:
        total += deltas[source[index]]
        index += 1
    return total, index


def preprocess(source: str) -> Program:
    """Transform program text into an operation sequence.

    Runs of ``+``/``-`` and of ``>``/``<`` fold into a single operation each.
    Brackets are resolved in one pass: ``[`` appends a placeholder pointing at
    itself, which the matching ``]`` patches to its own index.
    """
    program: Program = []
    # (operation index, source offset) for every pending '['
    pending: List[tuple[int, int]] = []

    i = 0
    while i < len(source):
        char = source[i]
        if char not in _OPERATOR_CHARS:
            i += 1
            continue

        if char in _VALUE_DELTAS:
            value, i = _fold_run(source, i, _VALUE_DELTAS)
            program.append(Operation(OperatorKind.INCREMENT_VALUE, value))
            continue
        if char in _POINTER_DELTAS:
            value, i = _fold_run(source, i, _POINTER_DELTAS)
            program.append(Operation(OperatorKind.INCREMENT_PTR, value))
            continue

        if char == ",":
            program.append(Operation(OperatorKind.READ))
        elif char == ".":
            program.append(Operation(OperatorKind.WRITE))
        elif char == "[":
            index = len(program)
            pending.append((index, i))
            program.append(Operation(OperatorKind.JUMP_IF_ZERO, index))
        else:
            open_index = _pop_pending(pending, program)
            if open_index is None:
                raise UnbalancedClose("Unexpected closing bracket at position {}".format(i), i)
            program[open_index].value = len(program)
            program.append(Operation(OperatorKind.JUMP_IF_NOT_ZERO, open_index))
        i += 1

    if pending:
        positions = [offset for _, offset in pending]
        raise UnbalancedOpen(
            "Unclosed bracket at position {}".format(positions[-1]),
            positions,
        )

    logger.debug("preprocessed %d characters into %d operations", len(source), len(program))
    return program


def _pop_pending(pending: List[tuple[int, int]], program: Program) -> Optional[int]:
    if not pending:
        return None
    index, _ = pending.pop()
    if program[index].kind is not OperatorKind.JUMP_IF_ZERO:
        return None
    return index


__all__ = ["PreprocessError", "UnbalancedClose", "UnbalancedOpen", "preprocess"]
