"""Tests for the Lox resolver."""

import pytest

import lox
from lox.ast import Assign, BlockStmt, ExprStmt, FunStmt, PrintStmt, ReturnStmt, Variable
from lox.diagnostics import LoxStaticError


def resolve_errors(source: str) -> list[str]:
    program = lox.parse(source)
    with pytest.raises(LoxStaticError) as info:
        lox.resolve(program)
    return [e.format() for e in info.value.errors]


def test_globals_are_not_recorded():
    program = lox.parse("var a = 1; print a;")
    assert lox.resolve(program) == {}


def test_block_local_distance_zero():
    program = lox.parse("{ var a = 1; print a; }")
    block = program.statements[0]
    assert isinstance(block, BlockStmt)
    use = block.statements[1]
    assert isinstance(use, PrintStmt)
    assert lox.resolve(program)[use.expression] == 0


def test_closure_distance_counts_scopes():
    source = "fun outer() { var x = 1; fun inner() { { return x; } } }"
    program = lox.parse(source)
    outer = program.statements[0]
    assert isinstance(outer, FunStmt)
    inner = outer.function.body[1]
    assert isinstance(inner, FunStmt)
    block = inner.function.body[0]
    assert isinstance(block, BlockStmt)
    ret = block.statements[0]
    assert isinstance(ret, ReturnStmt)
    assert isinstance(ret.value, Variable)
    # block -> inner params -> outer body
    assert lox.resolve(program)[ret.value] == 2


def test_assignment_is_resolved():
    program = lox.parse("{ var a; { a = 2; } }")
    outer = program.statements[0]
    assert isinstance(outer, BlockStmt)
    inner = outer.statements[1]
    assert isinstance(inner, BlockStmt)
    stmt = inner.statements[0]
    assert isinstance(stmt, ExprStmt)
    assert isinstance(stmt.expression, Assign)
    assert lox.resolve(program)[stmt.expression] == 1


def test_own_initializer():
    assert resolve_errors("{ var a = a; }") == [
        "[line 1] Error at 'a': Can't read local variable in its own initializer."
    ]


def test_global_self_reference_is_allowed():
    program = lox.parse("var a = a;")
    assert lox.resolve(program) == {}


def test_duplicate_in_scope():
    assert resolve_errors("fun f() { var a; var a; }") == [
        "[line 1] Error at 'a': Already a variable with this name in this scope."
    ]


def test_top_level_return():
    assert resolve_errors("return;") == [
        "[line 1] Error at 'return': Can't return from top-level code."
    ]


def test_initializer_may_return_bare():
    program = lox.parse("class A { init() { return; } }")
    lox.resolve(program)


def test_initializer_value_return():
    assert resolve_errors("class A { init() { return 1; } }") == [
        "[line 1] Error at 'return': Can't return a value from an initializer."
    ]


def test_this_outside_class():
    assert resolve_errors("fun f() { return this; }") == [
        "[line 1] Error at 'this': Can't use 'this' outside of a class."
    ]


def test_super_outside_class():
    assert resolve_errors("super.x;") == [
        "[line 1] Error at 'super': Can't use 'super' outside of a class."
    ]


def test_super_without_superclass():
    assert resolve_errors("class A { m() { super.m(); } }") == [
        "[line 1] Error at 'super': Can't use 'super' in a class with no superclass."
    ]


def test_inherit_from_self():
    assert resolve_errors("class A < A {}") == [
        "[line 1] Error at 'A': A class can't inherit from itself."
    ]


def test_all_errors_are_collected():
    errors = resolve_errors("return;\nprint this;")
    assert len(errors) == 2
