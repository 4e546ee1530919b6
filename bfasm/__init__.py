from .compiler import AsmCompiler, compile_program, label_for
from .interpreter import DEFAULT_TAPE_SIZE, ExecutionState, StepLimitExceeded, TapeInterpreter, interpret
from .operations import Operation, OperatorKind, Program, jump_pairs
from .preprocessor import PreprocessError, UnbalancedClose, UnbalancedOpen, preprocess
from .visualizer import VisualizerSession

__all__ = [
    "AsmCompiler",
    "DEFAULT_TAPE_SIZE",
    "ExecutionState",
    "Operation",
    "OperatorKind",
    "PreprocessError",
    "Program",
    "StepLimitExceeded",
    "TapeInterpreter",
    "UnbalancedClose",
    "UnbalancedOpen",
    "VisualizerSession",
    "compile_program",
    "interpret",
    "jump_pairs",
    "label_for",
    "preprocess",
]
