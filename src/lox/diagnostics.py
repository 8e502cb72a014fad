"""Lox diagnostics — error taxonomy, reporting, and process exit codes."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import TextIO

from .tokens import TK_EOF, TK_ERROR, Token


# sysexits.h codes used by the command-line shell
EXIT_OK = 0
EXIT_USAGE = 64
EXIT_DATAERR = 65
EXIT_SOFTWARE = 70
EXIT_IOERR = 74


class InterpretResult(IntEnum):
    """Outcome of running one chunk of source on either track."""

    OK = 0
    STATIC_ERROR = 1
    RUNTIME_ERROR = 2

    @property
    def exit_code(self) -> int:
        if self is InterpretResult.STATIC_ERROR:
            return EXIT_DATAERR
        if self is InterpretResult.RUNTIME_ERROR:
            return EXIT_SOFTWARE
        return EXIT_OK


@dataclass
class RunResult:
    exit_code: int
    stdout: str
    stderr: str


# ============================================================
# ERRORS
# ============================================================


@dataclass
class StaticError:
    """A lexical, syntax, or resolution error tied to a source line."""

    line: int
    where: str
    message: str

    def format(self) -> str:
        return "[line " + str(self.line) + "] Error" + self.where + ": " + self.message


class LoxError(Exception):
    """Base error for every Lox failure surfaced to callers."""


class LoxStaticError(LoxError):
    """One or more static errors; the program must not run."""

    def __init__(self, errors: list[StaticError]):
        self.errors: list[StaticError] = list(errors)
        super().__init__("\n".join(e.format() for e in self.errors))


class LoxRuntimeError(LoxError):
    """A runtime error; halts the current program.

    `trace` holds one (line, frame name) pair per active call frame,
    innermost first. The track raising the error fills it in.
    """

    def __init__(self, msg: str, line: int):
        self.msg: str = msg
        self.line: int = line
        self.trace: list[tuple[int, str]] = []
        super().__init__(msg + " at line " + str(line))


def frame_label(name: str | None) -> str:
    """Trace label for a frame: 'script' for top level, 'name()' otherwise."""
    if name is None:
        return "script"
    return name + "()"


# ============================================================
# REPORTER
# ============================================================


@dataclass
class Diagnostics:
    """Collects errors for one run and writes them to `err` as they happen."""

    err: TextIO
    errors: list[StaticError] = field(default_factory=list)
    had_error: bool = False
    had_runtime_error: bool = False

    def error(self, line: int, message: str) -> None:
        self.report(line, "", message)

    def error_at(self, token: Token, message: str) -> None:
        if token.type == TK_EOF:
            self.report(token.line, " at end", message)
        elif token.type == TK_ERROR:
            self.report(token.line, "", message)
        else:
            self.report(token.line, " at '" + token.lexeme + "'", message)

    def report(self, line: int, where: str, message: str) -> None:
        entry = StaticError(line, where, message)
        self.errors.append(entry)
        self.err.write(entry.format() + "\n")
        self.had_error = True

    def runtime_error(self, error: LoxRuntimeError) -> None:
        self.err.write(error.msg + "\n")
        if not error.trace:
            self.err.write("[line " + str(error.line) + "]\n")
        for line, label in error.trace:
            self.err.write("[line " + str(line) + "] in " + label + "\n")
        self.had_runtime_error = True

    def static_failure(self) -> LoxStaticError:
        return LoxStaticError(self.errors)

    def reset(self) -> None:
        """Forget earlier errors (the prompt keeps going after a bad line)."""
        self.errors = []
        self.had_error = False
        self.had_runtime_error = False
