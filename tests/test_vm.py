"""Tests for the bytecode virtual machine."""

import io

from lox.config import Options
from lox.diagnostics import Diagnostics, InterpretResult
from lox.objects import ObjClosure, ObjInstance, ObjString
from lox.vm import VM


def session(**options) -> tuple[VM, io.StringIO, io.StringIO]:
    out = io.StringIO()
    err = io.StringIO()
    return VM(out, Diagnostics(err), Options(track="vm", **options)), out, err


def global_value(vm: VM, name: str) -> object:
    return vm.globals[vm.heap.intern(name)]


def test_globals_persist_between_runs():
    vm, out, _ = session()
    assert vm.interpret_source("var a = 40;") == InterpretResult.OK
    assert vm.interpret_source("print a + 2;") == InterpretResult.OK
    assert out.getvalue() == "42\n"


def test_stack_is_empty_after_a_run():
    vm, _, _ = session()
    vm.interpret_source("fun f(a) { var b = a; return b; } print f(1);")
    assert vm.stack == []
    assert vm.frames == []
    assert vm.open_upvalues == []


def test_runtime_error_resets_the_stack():
    vm, out, err = session()
    result = vm.interpret_source("fun f() { return -nil; }\nprint f();")
    assert result == InterpretResult.RUNTIME_ERROR
    assert err.getvalue() == (
        "Operand must be a number.\n[line 1] in f()\n[line 2] in script\n"
    )
    assert vm.stack == []
    assert vm.frames == []
    assert vm.interpret_source('print "again";') == InterpretResult.OK
    assert out.getvalue() == "again\n"


def test_static_error_runs_nothing():
    vm, out, err = session()
    assert vm.interpret_source('print "x";\nprint ;') == InterpretResult.STATIC_ERROR
    assert out.getvalue() == ""
    assert err.getvalue() == "[line 2] Error at ';': Expect expression.\n"


def test_strings_are_interned():
    vm, out, _ = session()
    vm.interpret_source('var a = "con" + "cat"; var b = "concat";')
    a = global_value(vm, "a")
    assert isinstance(a, ObjString)
    assert a is global_value(vm, "b")


def test_upvalues_close_when_their_scope_ends():
    vm, out, _ = session()
    vm.interpret_source(
        "var get;\n"
        "{\n"
        "  var x = 1;\n"
        "  fun g() { return x; }\n"
        "  get = g;\n"
        "  x = 2;\n"
        "}\n"
        "print get();"
    )
    assert out.getvalue() == "2\n"
    closure = global_value(vm, "get")
    assert isinstance(closure, ObjClosure)
    upvalue = closure.upvalues[0]
    assert upvalue is not None
    assert not upvalue.is_open
    assert upvalue.closed == 2.0


def test_sibling_closures_share_one_upvalue():
    vm, _, _ = session()
    vm.interpret_source(
        "var a; var b;\n"
        "fun make() { var n = 0; fun f() { n = n + 1; } fun g() { return n; } a = f; b = g; }\n"
        "make();"
    )
    f = global_value(vm, "a")
    g = global_value(vm, "b")
    assert isinstance(f, ObjClosure) and isinstance(g, ObjClosure)
    assert f.upvalues[0] is g.upvalues[0]


def test_instances_and_fields():
    vm, out, _ = session()
    vm.interpret_source("class P {} var p = P(); p.x = 3;")
    p = global_value(vm, "p")
    assert isinstance(p, ObjInstance)
    assert p.fields[vm.heap.intern("x")] == 3.0
    assert p.to_string() == "P instance"


def test_inherited_methods_are_copied():
    vm, out, _ = session()
    vm.interpret_source("class A { m() { return 1; } } class B < A {}")
    b = global_value(vm, "B")
    assert vm.heap.intern("m") in b.methods


def test_frame_limit():
    vm, _, err = session()
    result = vm.interpret_source("fun f() { f(); }\nf();")
    assert result == InterpretResult.RUNTIME_ERROR
    lines = err.getvalue().splitlines()
    assert lines[0] == "Stack overflow."
    assert len(lines) == 1 + 64


def test_trace_execution_output():
    vm, out, err = session(trace_execution=True)
    vm.interpret_source("print 1;")
    text = err.getvalue()
    assert "[ <script> ]" in text
    assert "[ <script> ][ 1 ]" in text
    assert "OP_PRINT" in text
    assert out.getvalue() == "1\n"


def test_print_code_output():
    vm, _, err = session(print_code=True)
    vm.interpret_source("print 1;")
    assert err.getvalue().startswith("== <script> ==\n0000    1 OP_CONSTANT")


def test_native_clock():
    vm, out, _ = session()
    vm.interpret_source("print clock() >= 0;\nprint clock;")
    assert out.getvalue() == "true\n<native fn>\n"
