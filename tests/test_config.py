"""Tests for run options and source pragmas."""

import pytest

import lox
from lox.config import Options, apply_pragmas, extract_pragmas


def test_no_pragmas():
    assert extract_pragmas("print 1;") == {}


def test_leading_pragmas_are_read():
    source = "// pragma track vm\n\n// pragma stress-gc\n// just a note\nprint 1;"
    assert extract_pragmas(source) == {"track": "vm", "stress_gc": True}


def test_pragmas_after_code_are_ignored():
    assert extract_pragmas("print 1;\n// pragma track vm") == {}


def test_unknown_pragmas_are_ignored():
    source = "// pragma track jvm\n// pragma fast\n// pragma print-code extra"
    assert extract_pragmas(source) == {}


def test_apply_keeps_other_options():
    base = Options(trace_execution=True)
    opts = apply_pragmas("// pragma print-code", base)
    assert opts.print_code
    assert opts.trace_execution
    assert opts.track == "tree"
    assert not base.print_code


def test_run_picks_track_from_pragma():
    result = lox.run("// pragma track vm\n// pragma print-code\nprint 1;")
    assert result.stdout == "1\n"
    assert "== <script> ==" in result.stderr


def test_explicit_track_overrides_pragma():
    result = lox.run("// pragma track vm\n// pragma print-code\nprint 1;", track="tree")
    assert result.stdout == "1\n"
    assert result.stderr == ""


def test_unknown_track_is_rejected():
    with pytest.raises(ValueError):
        lox.run("print 1;", track="jit")
