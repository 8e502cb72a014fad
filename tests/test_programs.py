"""End-to-end Lox programs, run on both tracks.

Test cases live in programs/*.tests files. The expected section holds:

    out:   one line of stdout (repeat for more lines)
    err:   one line of stderr (repeat for more lines)
    exit:  exit code (default 0)

Every case runs on the tree-walking interpreter and on the bytecode VM, and
both must produce exactly the expected streams.
"""

from pathlib import Path

import pytest

from conftest import discover_specs
from lox import run

PROGRAMS_DIR = Path(__file__).parent / "programs"
TRACKS = ["tree", "vm"]


def parse_expected(expected_lines: list[str]) -> tuple[str, str, int]:
    """Collect out:/err:/exit: directives into (stdout, stderr, exit_code)."""
    out: list[str] = []
    err: list[str] = []
    exit_code = 0
    for line in expected_lines:
        if line.strip() == "":
            continue
        if line.startswith("out:"):
            out.append(line[5:] if line.startswith("out: ") else line[4:])
        elif line.startswith("err:"):
            err.append(line[5:] if line.startswith("err: ") else line[4:])
        elif line.startswith("exit:"):
            exit_code = int(line[5:].strip())
        else:
            raise ValueError("bad expectation line: " + repr(line))
    stdout = "".join(text + "\n" for text in out)
    stderr = "".join(text + "\n" for text in err)
    return stdout, stderr, exit_code


def pytest_generate_tests(metafunc):
    if "program" in metafunc.fixturenames:
        params = []
        for test_id, input_lines, expected_lines in discover_specs(PROGRAMS_DIR):
            for track in TRACKS:
                params.append(
                    pytest.param(
                        "\n".join(input_lines) + "\n",
                        expected_lines,
                        track,
                        id=f"{test_id}[{track}]",
                    )
                )
        metafunc.parametrize("program,expected_lines,track", params)


def test_program(program: str, expected_lines: list[str], track: str, timeout) -> None:
    stdout, stderr, exit_code = parse_expected(expected_lines)
    result = run(program, track=track)
    assert result.stdout == stdout, f"stdout mismatch\nstderr: {result.stderr}"
    assert result.stderr == stderr
    assert result.exit_code == exit_code


@pytest.mark.parametrize("track", TRACKS)
def test_deeply_nested_expression(track: str, timeout) -> None:
    depth = 500
    program = "print " + "(" * depth + "1" + ")" * depth + ";\n"
    result = run(program, track=track)
    assert result.stdout == "1\n"
    assert result.exit_code == 0


@pytest.mark.parametrize("track", TRACKS)
def test_deeply_nested_blocks(track: str, timeout) -> None:
    depth = 300
    program = "{ " * depth + "print 2;" + " }" * depth + "\n"
    result = run(program, track=track)
    assert result.stdout == "2\n"
    assert result.exit_code == 0
