"""Tests for the tree-walking interpreter."""

import io

import pytest

from lox.diagnostics import Diagnostics, InterpretResult, LoxRuntimeError
from lox.runtime import Environment, Interpreter, LoxFunction
from lox.tokens import Token, TK_IDENT


def name(text: str, line: int = 1) -> Token:
    return Token(TK_IDENT, text, line)


def session() -> tuple[Interpreter, io.StringIO, io.StringIO]:
    out = io.StringIO()
    err = io.StringIO()
    return Interpreter(out, Diagnostics(err)), out, err


# ---------------------------------------------------------------------------
# Environments
# ---------------------------------------------------------------------------


def test_lookup_walks_enclosing_chain():
    outer = Environment()
    outer.define("a", 1.0)
    inner = Environment(outer)
    assert inner.get(name("a")) == 1.0


def test_assign_updates_defining_scope():
    outer = Environment()
    outer.define("a", 1.0)
    inner = Environment(outer)
    inner.assign(name("a"), 2.0)
    assert outer.values["a"] == 2.0
    assert "a" not in inner.values


def test_undefined_lookup_raises():
    env = Environment()
    with pytest.raises(LoxRuntimeError) as info:
        env.get(name("missing", 7))
    assert info.value.msg == "Undefined variable 'missing'."
    assert info.value.line == 7


def test_undefined_assign_raises():
    with pytest.raises(LoxRuntimeError):
        Environment().assign(name("missing"), None)


def test_get_at_and_assign_at():
    root = Environment()
    root.define("x", "root")
    middle = Environment(root)
    leaf = Environment(middle)
    assert leaf.get_at(2, "x") == "root"
    leaf.assign_at(2, name("x"), "changed")
    assert root.values["x"] == "changed"
    assert leaf.ancestor(1) is middle


# ---------------------------------------------------------------------------
# Interpreter sessions
# ---------------------------------------------------------------------------


def test_globals_persist_between_runs():
    interp, out, _ = session()
    assert interp.interpret_source("var a = 40;") == InterpretResult.OK
    assert interp.interpret_source("print a + 2;") == InterpretResult.OK
    assert out.getvalue() == "42\n"


def test_session_recovers_after_runtime_error():
    interp, out, err = session()
    assert interp.interpret_source("print nope;") == InterpretResult.RUNTIME_ERROR
    assert interp.interpret_source('print "ok";') == InterpretResult.OK
    assert out.getvalue() == "ok\n"
    assert err.getvalue() == "Undefined variable 'nope'.\n[line 1] in script\n"
    assert interp.frames == []
    assert interp.environment is interp.globals


def test_static_error_result():
    interp, out, err = session()
    assert interp.interpret_source("print ;") == InterpretResult.STATIC_ERROR
    assert out.getvalue() == ""
    assert err.getvalue() == "[line 1] Error at ';': Expect expression.\n"


def test_functions_close_over_environment():
    interp, out, _ = session()
    interp.interpret_source(
        "fun make() { var n = 0; fun inc() { n = n + 1; return n; } return inc; }\n"
        "var inc = make();"
    )
    fn = interp.globals.values["inc"]
    assert isinstance(fn, LoxFunction)
    assert fn.closure.values["n"] == 0.0
    interp.interpret_source("inc(); inc();")
    assert fn.closure.values["n"] == 2.0


def test_frames_limit_is_stack_overflow():
    interp, _, err = session()
    result = interp.interpret_source("fun f() { f(); }\nf();")
    assert result == InterpretResult.RUNTIME_ERROR
    lines = err.getvalue().splitlines()
    assert lines[0] == "Stack overflow."
    assert lines[-1] == "[line 2] in script"
    assert len(lines) == 1 + 64


def test_clock_is_a_native():
    interp, out, _ = session()
    interp.interpret_source("print clock;")
    assert out.getvalue() == "<native fn>\n"
