"""BF-Lang entry point."""
from __future__ import annotations
import argparse
import sys
from typing import List, Optional

from interpreter import DEFAULT_TAPE_SIZE, BFRuntimeError, Interpreter, TracebackFormatter
from lexer import BFParseError


def _positive_int(text: str) -> int:
    try:
        value = int(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid int value: '{text}'")
    if value <= 0:
        raise argparse.ArgumentTypeError("tape size must be positive")
    return value


def run_cli(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="bf-lang",
        description="BF-Lang reference interpreter",
        epilog="Literal source starting with '-' must follow '--', e.g. bf-lang -source -- '-+.'",
    )
    parser.add_argument("program", help="Source file path or literal source with -source (put '--' before source starting with '-')")
    parser.add_argument("-source", "--source", dest="source_mode", action="store_true", help="Treat program argument as literal source text")
    parser.add_argument("-verbose", "--verbose", dest="verbose", action="store_true", help="Emit step history and tape cells in tracebacks")
    parser.add_argument("--traceback-json", action="store_true", help="Also emit JSON traceback")
    parser.add_argument("--tape-size", type=_positive_int, default=DEFAULT_TAPE_SIZE, help=f"Number of tape cells (default {DEFAULT_TAPE_SIZE})")
    args = parser.parse_args(argv)

    if args.source_mode:
        source_text = args.program
        filename = "<string>"
    else:
        filename = args.program
        try:
            with open(filename, "r", encoding="utf-8") as handle:
                source_text = handle.read()
        except (OSError, UnicodeDecodeError) as exc:
            print(f"Failed to read {filename}: {exc}", file=sys.stderr)
            return 1

    interpreter = Interpreter(source=source_text, filename=filename, verbose=args.verbose, tape_size=args.tape_size)
    try:
        interpreter.run()
    except BFParseError as error:
        print(f"ParseError: {error}", file=sys.stderr)
        return 1
    except BFRuntimeError as error:
        formatter = TracebackFormatter(interpreter)
        print(formatter.format_text(error, verbose=args.verbose), file=sys.stderr)
        if args.traceback_json:
            print(formatter.to_json(error), file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(run_cli())
