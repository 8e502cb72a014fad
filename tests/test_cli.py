"""CLI tests for the `lox` entry point.

Test cases live in cli/*.tests files. Format:

    === test name
    args: --vm tests/cli/scripts/hello.lox
    stdin lines (fed to the prompt when no file is given)
    ---
    exit: 0
    stdout: hello
    stderr-contains: some message
    ---

Special directives in the input section:
    args:           CLI arguments (first line, required)

Assertion directives in the expected section:
    exit:             exact exit code
    stdout:           exact stdout content (trailing newline stripped)
    stdout-contains:  stdout must contain substring
    stdout-empty:     stdout must be empty
    stderr:           exact stderr content (trailing newline stripped)
    stderr-contains:  stderr must contain substring
    stderr-empty:     stderr must be empty
"""

import os
import subprocess
import sys
from pathlib import Path

import pytest

from conftest import parse_spec_file

CLI_DIR = Path(__file__).parent / "cli"
ROOT_DIR = Path(__file__).parent.parent


def _parse_spec(input_lines: list[str], expected_lines: list[str]) -> dict:
    """Parse input + expected lines into a test spec dict."""
    spec: dict = {"args": [], "stdin": "", "assertions": []}
    body_start = 0
    if input_lines and input_lines[0].startswith("args:"):
        args_str = input_lines[0][5:].strip()
        spec["args"] = args_str.split() if args_str else []
        body_start = 1
    spec["stdin"] = "\n".join(input_lines[body_start:])

    for line in expected_lines:
        line = line.strip()
        if not line:
            continue
        if line.startswith("exit:"):
            spec["assertions"].append(("exit", int(line[5:].strip())))
        elif line.startswith("stdout:"):
            spec["assertions"].append(("stdout", line[7:].strip()))
        elif line.startswith("stdout-contains:"):
            spec["assertions"].append(("stdout-contains", line[16:].strip()))
        elif line.startswith("stdout-empty:"):
            spec["assertions"].append(("stdout-empty", None))
        elif line.startswith("stderr:"):
            spec["assertions"].append(("stderr", line[7:].strip()))
        elif line.startswith("stderr-contains:"):
            spec["assertions"].append(("stderr-contains", line[16:].strip()))
        elif line.startswith("stderr-empty:"):
            spec["assertions"].append(("stderr-empty", None))
    return spec


def discover_cli_tests() -> list[tuple[str, dict]]:
    """Find all CLI tests across .tests files."""
    results = []
    for test_file in sorted(CLI_DIR.glob("*.tests")):
        for name, input_lines, expected_lines in parse_spec_file(test_file):
            test_id = f"{test_file.stem}/{name}"
            results.append((test_id, _parse_spec(input_lines, expected_lines)))
    return results


def run_cli(spec: dict) -> subprocess.CompletedProcess[bytes]:
    """Run the lox CLI from a test spec."""
    cmd = [sys.executable, "-m", "lox", *spec["args"]]
    env = dict(os.environ)
    src = str(ROOT_DIR / "src")
    env["PYTHONPATH"] = src + os.pathsep + env.get("PYTHONPATH", "")
    return subprocess.run(
        cmd,
        input=spec["stdin"].encode(),
        capture_output=True,
        cwd=ROOT_DIR,
        env=env,
        timeout=30,
    )


def check_assertions(
    result: subprocess.CompletedProcess[bytes], assertions: list[tuple]
) -> None:
    """Check all assertions against a CLI result."""
    stdout = result.stdout.decode(errors="replace")
    stderr = result.stderr.decode(errors="replace")
    for kind, value in assertions:
        if kind == "exit":
            assert result.returncode == value, (
                f"expected exit {value}, got {result.returncode}\nstderr: {stderr}"
            )
        elif kind == "stdout":
            actual = stdout.rstrip("\n")
            assert actual == value, f"expected stdout {value!r}, got {actual!r}"
        elif kind == "stdout-contains":
            assert value in stdout, f"expected stdout to contain {value!r}, got {stdout!r}"
        elif kind == "stdout-empty":
            assert stdout == "", f"expected empty stdout, got {stdout[:200]!r}"
        elif kind == "stderr":
            actual = stderr.rstrip("\n")
            assert actual == value, f"expected stderr {value!r}, got {actual!r}"
        elif kind == "stderr-contains":
            assert value in stderr, f"expected stderr to contain {value!r}, got {stderr!r}"
        elif kind == "stderr-empty":
            assert stderr == "", f"expected empty stderr, got {stderr!r}"


def pytest_generate_tests(metafunc):
    """Parametrize test_cli over all .tests files."""
    if "cli_spec" in metafunc.fixturenames:
        tests = discover_cli_tests()
        params = [pytest.param(spec, id=test_id) for test_id, spec in tests]
        metafunc.parametrize("cli_spec", params)


def test_cli(cli_spec: dict) -> None:
    """Run a single CLI test case from a .tests file."""
    result = run_cli(cli_spec)
    check_assertions(result, cli_spec["assertions"])


def test_main_in_process(tmp_path: Path, capsys) -> None:
    from lox.cli import main

    script = tmp_path / "square.lox"
    script.write_text("fun square(n) { return n * n; }\nprint square(12);\n")
    assert main(["--vm", str(script)]) == 0
    assert capsys.readouterr().out == "144\n"
