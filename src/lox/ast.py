"""Lox AST — parse-time node definitions for the tree-walking track.

Nodes compare by identity so the resolver can key scope distances on the
exact expression it visited.
"""

from __future__ import annotations

from dataclasses import dataclass

from .tokens import Token


# ============================================================
# EXPRESSIONS
# ============================================================


@dataclass(eq=False)
class Expr:
    """Base for all expressions."""


@dataclass(eq=False)
class Assign(Expr):
    """name = value."""

    name: Token
    value: Expr


@dataclass(eq=False)
class Binary(Expr):
    """Arithmetic, comparison, and equality operators."""

    left: Expr
    operator: Token
    right: Expr


@dataclass(eq=False)
class Call(Expr):
    """callee(arguments). `paren` is the closing parenthesis."""

    callee: Expr
    paren: Token
    arguments: list[Expr]


@dataclass(eq=False)
class Get(Expr):
    """object.name."""

    object: Expr
    name: Token


@dataclass(eq=False)
class Grouping(Expr):
    """( expression )."""

    expression: Expr


@dataclass(eq=False)
class Literal(Expr):
    """Number, string, true, false, or nil."""

    value: object


@dataclass(eq=False)
class Logical(Expr):
    """Short-circuiting and / or."""

    left: Expr
    operator: Token
    right: Expr


@dataclass(eq=False)
class Set(Expr):
    """object.name = value."""

    object: Expr
    name: Token
    value: Expr


@dataclass(eq=False)
class Super(Expr):
    """super.method."""

    keyword: Token
    method: Token


@dataclass(eq=False)
class This(Expr):
    keyword: Token


@dataclass(eq=False)
class Unary(Expr):
    operator: Token
    right: Expr


@dataclass(eq=False)
class Variable(Expr):
    name: Token


@dataclass(eq=False)
class Function(Expr):
    """A function body with its parameters; declarations and methods share it."""

    name: Token
    params: list[Token]
    body: list[Stmt]


# ============================================================
# STATEMENTS
# ============================================================


@dataclass(eq=False)
class Stmt:
    """Base for all statements."""


@dataclass(eq=False)
class BlockStmt(Stmt):
    statements: list[Stmt]


@dataclass(eq=False)
class ClassStmt(Stmt):
    """class Name < Superclass { methods }."""

    name: Token
    superclass: Variable | None
    methods: list[Function]


@dataclass(eq=False)
class ExprStmt(Stmt):
    expression: Expr


@dataclass(eq=False)
class FunStmt(Stmt):
    function: Function


@dataclass(eq=False)
class IfStmt(Stmt):
    condition: Expr
    then_branch: Stmt
    else_branch: Stmt | None


@dataclass(eq=False)
class PrintStmt(Stmt):
    expression: Expr


@dataclass(eq=False)
class ReturnStmt(Stmt):
    keyword: Token
    value: Expr | None


@dataclass(eq=False)
class VarStmt(Stmt):
    name: Token
    initializer: Expr | None


@dataclass(eq=False)
class WhileStmt(Stmt):
    """Also the target of `for` desugaring."""

    condition: Expr
    body: Stmt


# ============================================================
# PROGRAM
# ============================================================


@dataclass(eq=False)
class Program:
    statements: list[Stmt]
