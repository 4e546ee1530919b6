from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

from .compiler import AsmCompiler
from .interpreter import DEFAULT_TAPE_SIZE, StepLimitExceeded, TapeInterpreter
from .preprocessor import PreprocessError, preprocess

logger = logging.getLogger(__name__)


def _read_source(path: str) -> str:
    source_path = Path(path)
    if not source_path.exists():
        raise FileNotFoundError(f"Source file not found: {path}")
    # Any byte is a valid character; non-operators are skipped later.
    return source_path.read_bytes().decode("latin-1")


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Interpret a program or compile it to 32-bit NASM")
    parser.add_argument("source", help="Path to the program source file")
    parser.add_argument("out", nargs="?", help="Destination for the assembly (interpret when omitted)")
    parser.add_argument("-o", "--output", dest="output", help="Destination for the assembly")
    parser.add_argument(
        "--tape-size",
        type=int,
        default=DEFAULT_TAPE_SIZE,
        help=f"Tape length used when interpreting (default: {DEFAULT_TAPE_SIZE})",
    )
    parser.add_argument(
        "--buffer-size",
        type=int,
        default=DEFAULT_TAPE_SIZE,
        help=f"Size of the static buffer in compiled output (default: {DEFAULT_TAPE_SIZE})",
    )
    parser.add_argument("--max-steps", type=int, default=None, help="Abort interpretation after N operations")
    parser.add_argument(
        "--skip-whitespace",
        action="store_true",
        help="Skip whitespace bytes before each read",
    )
    parser.add_argument("--no-comments", action="store_true", help="Omit comments from compiled output")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    out_path = args.output or args.out
    if args.output and args.out:
        parser.error("give the destination either positionally or with -o, not both")

    try:
        source_text = _read_source(args.source)
    except OSError as exc:
        print(f"Unable to open the program for reading: {exc}", file=sys.stderr)
        return 1

    try:
        program = preprocess(source_text)
    except PreprocessError as exc:
        print(f"Invalid program: {exc}", file=sys.stderr)
        return 1

    if out_path:
        logger.debug("compiling %s to %s", args.source, out_path)
        try:
            compiler = AsmCompiler(buffer_size=args.buffer_size, comments=not args.no_comments)
            compiler.compile(program, out_path)
        except ValueError as exc:
            print(f"Compilation error: {exc}", file=sys.stderr)
            return 1
        except OSError as exc:
            print(f"Unable to write assembly: {exc}", file=sys.stderr)
            return 1
        return 0

    try:
        interpreter = TapeInterpreter(tape_size=args.tape_size, skip_whitespace=args.skip_whitespace)
    except ValueError as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        return 1

    try:
        interpreter.run(
            program,
            input_data=sys.stdin.buffer,
            output=sys.stdout.buffer,
            max_steps=args.max_steps,
        )
    except StepLimitExceeded as exc:
        sys.stdout.flush()
        print(str(exc), file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
