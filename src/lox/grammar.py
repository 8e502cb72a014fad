"""Lox grammar tables shared by the AST parser and the bytecode compiler.

Both front ends read operator binding strength from here, so the two tracks
cannot disagree on how an expression groups.
"""

from __future__ import annotations

from enum import IntEnum


class Precedence(IntEnum):
    """Binding strength, lowest first."""

    NONE = 0
    ASSIGNMENT = 1  # =
    OR = 2  # or
    AND = 3  # and
    EQUALITY = 4  # == !=
    COMPARISON = 5  # < > <= >=
    TERM = 6  # + -
    FACTOR = 7  # * /
    UNARY = 8  # ! -
    CALL = 9  # . ()
    PRIMARY = 10


# Binary operators are all left-associative.
BINARY_PRECEDENCE: dict[str, Precedence] = {
    "or": Precedence.OR,
    "and": Precedence.AND,
    "==": Precedence.EQUALITY,
    "!=": Precedence.EQUALITY,
    "<": Precedence.COMPARISON,
    "<=": Precedence.COMPARISON,
    ">": Precedence.COMPARISON,
    ">=": Precedence.COMPARISON,
    "+": Precedence.TERM,
    "-": Precedence.TERM,
    "*": Precedence.FACTOR,
    "/": Precedence.FACTOR,
}

# Postfix forms that bind tightest: call and property access.
POSTFIX_OPERATORS: set[str] = {"(", "."}

LOGICAL_OPERATORS: set[str] = {"and", "or"}

UNARY_OPERATORS: set[str] = {"!", "-"}

# Tokens that begin a statement; error recovery stops in front of them.
STATEMENT_KEYWORDS: set[str] = {
    "class",
    "fun",
    "var",
    "for",
    "if",
    "while",
    "print",
    "return",
}

MAX_ARGUMENTS = 255

# Call depth limit shared by both tracks; the top-level script counts as one.
FRAMES_MAX = 64


def infix_precedence(token_type: str) -> Precedence:
    """How tightly a token binds when it follows a complete operand."""
    if token_type in POSTFIX_OPERATORS:
        return Precedence.CALL
    return BINARY_PRECEDENCE.get(token_type, Precedence.NONE)

# Host recursion limit while either track parses, compiles, or runs. Both
# front ends recurse once per nesting level and the tree-walker once per call.
RECURSION_LIMIT = 20000
