"""Run options and the source pragmas that can switch them on."""

from __future__ import annotations

from dataclasses import dataclass, replace


TRACK_TREE = "tree"
TRACK_VM = "vm"
TRACKS: tuple[str, ...] = (TRACK_TREE, TRACK_VM)


@dataclass
class Options:
    """Which track runs a program, plus the bytecode track's debug switches."""

    track: str = TRACK_TREE
    print_code: bool = False
    trace_execution: bool = False
    stress_gc: bool = False
    log_gc: bool = False


_FLAG_PRAGMAS: dict[str, str] = {
    "print-code": "print_code",
    "trace-execution": "trace_execution",
    "stress-gc": "stress_gc",
    "log-gc": "log_gc",
}


def extract_pragmas(source: str) -> dict[str, object]:
    """Scan the leading comment block for `// pragma ...` lines.

    Returns the option fields they set. Scanning stops at the first line
    that is neither blank nor a line comment.
    """
    found: dict[str, object] = {}
    for line in source.split("\n"):
        stripped = line.strip()
        if stripped == "":
            continue
        if not stripped.startswith("//"):
            break
        body = stripped[2:].strip()
        if not body.startswith("pragma "):
            continue
        words = body[len("pragma ") :].split()
        if len(words) == 1 and words[0] in _FLAG_PRAGMAS:
            found[_FLAG_PRAGMAS[words[0]]] = True
        elif len(words) == 2 and words[0] == "track" and words[1] in TRACKS:
            found["track"] = words[1]
    return found


def apply_pragmas(source: str, options: Options) -> Options:
    """Options for running `source`: pragmas layered over `options`."""
    return replace(options, **extract_pragmas(source))
