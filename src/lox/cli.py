"""Lox CLI — run a .lox file, or start a prompt when no file is given."""

from __future__ import annotations

from dataclasses import replace
import sys
from typing import TextIO

from . import new_session
from .config import TRACK_TREE, TRACK_VM, Options, apply_pragmas
from .diagnostics import EXIT_IOERR, EXIT_OK, EXIT_USAGE


USAGE: str = """\
lox [OPTIONS] [FILE]

Run a Lox program, or start an interactive prompt when FILE is omitted.

Options:
  --tree             Run on the tree-walking interpreter (default)
  --vm               Run on the bytecode virtual machine
  --print-code       Disassemble each compiled function (vm)
  --trace-execution  Trace the stack and each instruction (vm)
  --stress-gc        Collect garbage on every allocation (vm)
  --log-gc           Log allocations and collections (vm)
  --help             Show this help message
"""

_FLAGS: dict[str, str] = {
    "--print-code": "print_code",
    "--trace-execution": "trace_execution",
    "--stress-gc": "stress_gc",
    "--log-gc": "log_gc",
}


def main(argv: list[str] | None = None) -> int:
    args = argv if argv is not None else sys.argv[1:]
    filepath: str = ""
    track: str = ""
    flags: dict[str, object] = {}
    i = 0
    while i < len(args):
        arg = args[i]
        if arg == "--help" or arg == "-h":
            print(USAGE, end="")
            return EXIT_OK
        elif arg == "--tree":
            track = TRACK_TREE
            i += 1
        elif arg == "--vm":
            track = TRACK_VM
            i += 1
        elif arg in _FLAGS:
            flags[_FLAGS[arg]] = True
            i += 1
        elif arg.startswith("-"):
            print("lox: unknown flag '" + arg + "'", file=sys.stderr)
            print("Usage: lox [OPTIONS] [FILE]", file=sys.stderr)
            return EXIT_USAGE
        elif filepath == "":
            filepath = arg
            i += 1
        else:
            print("Usage: lox [OPTIONS] [FILE]", file=sys.stderr)
            return EXIT_USAGE

    options = replace(Options(), **flags)
    if filepath == "":
        if track != "":
            options = replace(options, track=track)
        return run_prompt(options, sys.stdin, sys.stdout, sys.stderr)
    return run_file(filepath, options, track)


def run_file(filepath: str, options: Options, track: str = "") -> int:
    try:
        with open(filepath, "rb") as f:
            raw = f.read()
    except FileNotFoundError:
        print("lox: " + filepath + ": No such file or directory", file=sys.stderr)
        return EXIT_IOERR
    except OSError as e:
        print("lox: " + filepath + ": " + str(e), file=sys.stderr)
        return EXIT_IOERR
    try:
        source = raw.decode("utf-8")
    except ValueError:
        print("lox: " + filepath + ": invalid utf-8", file=sys.stderr)
        return EXIT_IOERR

    options = apply_pragmas(source, options)
    if track != "":
        options = replace(options, track=track)
    session = new_session(sys.stdout, sys.stderr, options)
    result = session.interpret_source(source)
    sys.stdout.flush()
    return result.exit_code


def run_prompt(options: Options, stdin: TextIO, stdout: TextIO, stderr: TextIO) -> int:
    """Read-eval-print loop; globals survive from one line to the next."""
    session = new_session(stdout, stderr, options)
    while True:
        stdout.write("> ")
        stdout.flush()
        line = stdin.readline()
        if line == "":
            stdout.write("\n")
            return EXIT_OK
        # Errors are reported and forgotten; the prompt keeps going.
        session.interpret_source(line)


def main_entry() -> None:
    sys.exit(main())


if __name__ == "__main__":
    main_entry()
