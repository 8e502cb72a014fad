"""Lox resolver — binds every local variable reference to a scope distance.

Runs once over the AST before evaluation. Scopes mirror lexical nesting; a
reference found in no local scope is left unrecorded and treated as global
by the evaluator.
"""

from __future__ import annotations

from .ast import (
    Assign,
    Binary,
    BlockStmt,
    Call,
    ClassStmt,
    Expr,
    ExprStmt,
    Function,
    FunStmt,
    Get,
    Grouping,
    IfStmt,
    Literal,
    Logical,
    PrintStmt,
    Program,
    ReturnStmt,
    Set,
    Stmt,
    Super,
    This,
    Unary,
    Variable,
    VarStmt,
    WhileStmt,
)
from .diagnostics import Diagnostics
from .tokens import Token


# Function kinds
FN_NONE = "none"
FN_FUNCTION = "function"
FN_INITIALIZER = "initializer"
FN_METHOD = "method"

# Class kinds
CLASS_NONE = "none"
CLASS_CLASS = "class"
CLASS_SUBCLASS = "subclass"


class Resolver:
    def __init__(self, diagnostics: Diagnostics) -> None:
        self.diagnostics: Diagnostics = diagnostics
        # name -> True once the initializer has been resolved
        self.scopes: list[dict[str, bool]] = []
        self.locals: dict[Expr, int] = {}
        self.current_function: str = FN_NONE
        self.current_class: str = CLASS_NONE

    def error(self, token: Token, msg: str) -> None:
        self.diagnostics.error_at(token, msg)

    # ── Scope management ──────────────────────────────────────

    def begin_scope(self) -> None:
        self.scopes.append({})

    def end_scope(self) -> None:
        self.scopes.pop()

    def declare(self, name: Token) -> None:
        if len(self.scopes) == 0:
            return
        scope = self.scopes[-1]
        if name.lexeme in scope:
            self.error(name, "Already a variable with this name in this scope.")
        scope[name.lexeme] = False

    def define(self, name: Token) -> None:
        if len(self.scopes) == 0:
            return
        self.scopes[-1][name.lexeme] = True

    def resolve_local(self, expr: Expr, name: Token) -> None:
        i = len(self.scopes) - 1
        while i >= 0:
            if name.lexeme in self.scopes[i]:
                self.locals[expr] = len(self.scopes) - 1 - i
                return
            i -= 1

    # ── Statements ────────────────────────────────────────────

    def resolve_program(self, program: Program) -> dict[Expr, int]:
        self.resolve_stmts(program.statements)
        return self.locals

    def resolve_stmts(self, statements: list[Stmt]) -> None:
        for stmt in statements:
            self.resolve_stmt(stmt)

    def resolve_stmt(self, stmt: Stmt) -> None:
        if isinstance(stmt, BlockStmt):
            self.begin_scope()
            self.resolve_stmts(stmt.statements)
            self.end_scope()
            return

        if isinstance(stmt, VarStmt):
            self.declare(stmt.name)
            if stmt.initializer is not None:
                self.resolve_expr(stmt.initializer)
            self.define(stmt.name)
            return

        if isinstance(stmt, FunStmt):
            # Defined before the body so the function can recurse.
            self.declare(stmt.function.name)
            self.define(stmt.function.name)
            self.resolve_function(stmt.function, FN_FUNCTION)
            return

        if isinstance(stmt, ClassStmt):
            self.resolve_class(stmt)
            return

        if isinstance(stmt, ExprStmt):
            self.resolve_expr(stmt.expression)
            return

        if isinstance(stmt, PrintStmt):
            self.resolve_expr(stmt.expression)
            return

        if isinstance(stmt, IfStmt):
            self.resolve_expr(stmt.condition)
            self.resolve_stmt(stmt.then_branch)
            if stmt.else_branch is not None:
                self.resolve_stmt(stmt.else_branch)
            return

        if isinstance(stmt, WhileStmt):
            self.resolve_expr(stmt.condition)
            self.resolve_stmt(stmt.body)
            return

        if isinstance(stmt, ReturnStmt):
            if self.current_function == FN_NONE:
                self.error(stmt.keyword, "Can't return from top-level code.")
            if stmt.value is not None:
                if self.current_function == FN_INITIALIZER:
                    self.error(
                        stmt.keyword, "Can't return a value from an initializer."
                    )
                self.resolve_expr(stmt.value)
            return

        raise TypeError("unknown statement " + type(stmt).__name__)

    def resolve_class(self, stmt: ClassStmt) -> None:
        enclosing_class = self.current_class
        self.current_class = CLASS_CLASS
        self.declare(stmt.name)
        self.define(stmt.name)

        if stmt.superclass is not None:
            if stmt.superclass.name.lexeme == stmt.name.lexeme:
                self.error(stmt.superclass.name, "A class can't inherit from itself.")
            self.current_class = CLASS_SUBCLASS
            self.resolve_expr(stmt.superclass)
            self.begin_scope()
            self.scopes[-1]["super"] = True

        self.begin_scope()
        self.scopes[-1]["this"] = True
        for method in stmt.methods:
            kind = FN_METHOD
            if method.name.lexeme == "init":
                kind = FN_INITIALIZER
            self.resolve_function(method, kind)
        self.end_scope()

        if stmt.superclass is not None:
            self.end_scope()
        self.current_class = enclosing_class

    def resolve_function(self, function: Function, kind: str) -> None:
        enclosing_function = self.current_function
        self.current_function = kind
        self.begin_scope()
        for param in function.params:
            self.declare(param)
            self.define(param)
        self.resolve_stmts(function.body)
        self.end_scope()
        self.current_function = enclosing_function

    # ── Expressions ───────────────────────────────────────────

    def resolve_expr(self, expr: Expr) -> None:
        if isinstance(expr, Variable):
            if (
                len(self.scopes) > 0
                and self.scopes[-1].get(expr.name.lexeme) is False
            ):
                self.error(
                    expr.name, "Can't read local variable in its own initializer."
                )
            self.resolve_local(expr, expr.name)
            return

        if isinstance(expr, Assign):
            self.resolve_expr(expr.value)
            self.resolve_local(expr, expr.name)
            return

        if isinstance(expr, (Binary, Logical)):
            self.resolve_expr(expr.left)
            self.resolve_expr(expr.right)
            return

        if isinstance(expr, Unary):
            self.resolve_expr(expr.right)
            return

        if isinstance(expr, Grouping):
            self.resolve_expr(expr.expression)
            return

        if isinstance(expr, Literal):
            return

        if isinstance(expr, Call):
            self.resolve_expr(expr.callee)
            for arg in expr.arguments:
                self.resolve_expr(arg)
            return

        if isinstance(expr, Get):
            self.resolve_expr(expr.object)
            return

        if isinstance(expr, Set):
            self.resolve_expr(expr.value)
            self.resolve_expr(expr.object)
            return

        if isinstance(expr, This):
            if self.current_class == CLASS_NONE:
                self.error(expr.keyword, "Can't use 'this' outside of a class.")
                return
            self.resolve_local(expr, expr.keyword)
            return

        if isinstance(expr, Super):
            if self.current_class == CLASS_NONE:
                self.error(expr.keyword, "Can't use 'super' outside of a class.")
            elif self.current_class != CLASS_SUBCLASS:
                self.error(
                    expr.keyword, "Can't use 'super' in a class with no superclass."
                )
            self.resolve_local(expr, expr.keyword)
            return

        raise TypeError("unknown expression " + type(expr).__name__)


# ============================================================
# PUBLIC API
# ============================================================


def resolve_program(program: Program, diagnostics: Diagnostics) -> dict[Expr, int]:
    """Resolve a parsed program. Errors are recorded on `diagnostics`."""
    return Resolver(diagnostics).resolve_program(program)
