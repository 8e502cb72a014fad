"""Lox interpreter and bytecode VM — public API."""

from __future__ import annotations

from dataclasses import replace
import io
from typing import TextIO

from .ast import Expr, Program
from .collector import Heap
from .compiler import compile_source
from .config import TRACK_TREE, TRACK_VM, Options, apply_pragmas
from .diagnostics import (
    Diagnostics,
    LoxError as LoxError,
    LoxRuntimeError as LoxRuntimeError,
    LoxStaticError as LoxStaticError,
    RunResult as RunResult,
)
from .objects import ObjFunction
from .parse import parse_tokens
from .resolve import resolve_program
from .runtime import Interpreter
from .tokens import Token as Token, tokenize as tokenize
from .vm import VM


def parse(source: str) -> Program:
    """Parse Lox source into a Program AST; raises LoxStaticError on errors."""
    diagnostics = Diagnostics(io.StringIO())
    program = parse_tokens(tokenize(source), diagnostics)
    if diagnostics.had_error:
        raise diagnostics.static_failure()
    return program


def resolve(program: Program) -> dict[Expr, int]:
    """Scope distances for every local variable use in `program`."""
    diagnostics = Diagnostics(io.StringIO())
    locals_ = resolve_program(program, diagnostics)
    if diagnostics.had_error:
        raise diagnostics.static_failure()
    return locals_


def compile(source: str) -> ObjFunction:
    """Compile Lox source to its top-level script function."""
    diagnostics = Diagnostics(io.StringIO())
    function = compile_source(source, Heap(), diagnostics)
    if function is None:
        raise diagnostics.static_failure()
    return function


def new_session(
    out: TextIO, err: TextIO, options: Options | None = None
) -> Interpreter | VM:
    """A track instance whose globals persist across `interpret_source` calls."""
    opts = options if options is not None else Options()
    diagnostics = Diagnostics(err)
    if opts.track == TRACK_VM:
        return VM(out, diagnostics, opts)
    return Interpreter(out, diagnostics, opts)


def run(
    source: str, track: str | None = None, options: Options | None = None
) -> RunResult:
    """Run a whole program with captured output streams."""
    opts = apply_pragmas(source, options if options is not None else Options())
    if track is not None:
        if track not in (TRACK_TREE, TRACK_VM):
            raise ValueError("unknown track " + repr(track))
        opts = replace(opts, track=track)
    out = io.StringIO()
    err = io.StringIO()
    session = new_session(out, err, opts)
    result = session.interpret_source(source)
    return RunResult(result.exit_code, out.getvalue(), err.getvalue())
