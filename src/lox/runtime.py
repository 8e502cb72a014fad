"""Lox runtime — the tree-walking track.

Evaluates a resolved AST directly. Scopes are chained `Environment` objects;
a closure keeps the environment that was active when it was defined, so that
chain outlives the block that created it for as long as the closure is alive.
"""

from __future__ import annotations

from dataclasses import dataclass
import sys
import time
from typing import Callable, TextIO

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
from .config import Options
from .diagnostics import (
    Diagnostics,
    InterpretResult,
    LoxRuntimeError,
    frame_label,
)
from .grammar import FRAMES_MAX, RECURSION_LIMIT
from .parse import parse_tokens
from .resolve import resolve_program
from .tokens import Token, tokenize
from .values import divide, is_falsey, stringify, values_equal


# ============================================================
# Environments
# ============================================================


class Environment:
    """One lexical scope: a name -> value map linked to its enclosing scope."""

    def __init__(self, enclosing: Environment | None = None):
        self.values: dict[str, object] = {}
        self.enclosing: Environment | None = enclosing

    def define(self, name: str, value: object) -> None:
        self.values[name] = value

    def ancestor(self, distance: int) -> Environment:
        env = self
        for _ in range(distance):
            assert env.enclosing is not None
            env = env.enclosing
        return env

    def get_at(self, distance: int, name: str) -> object:
        return self.ancestor(distance).values[name]

    def assign_at(self, distance: int, name: Token, value: object) -> None:
        self.ancestor(distance).values[name.lexeme] = value

    def get(self, name: Token) -> object:
        if name.lexeme in self.values:
            return self.values[name.lexeme]
        if self.enclosing is not None:
            return self.enclosing.get(name)
        raise LoxRuntimeError("Undefined variable '" + name.lexeme + "'.", name.line)

    def assign(self, name: Token, value: object) -> None:
        if name.lexeme in self.values:
            self.values[name.lexeme] = value
            return
        if self.enclosing is not None:
            self.enclosing.assign(name, value)
            return
        raise LoxRuntimeError("Undefined variable '" + name.lexeme + "'.", name.line)


# ============================================================
# Callables and objects
# ============================================================


class LoxCallable:
    """Anything a call expression can invoke."""

    def arity(self) -> int:
        raise NotImplementedError

    def call(self, interp: Interpreter, arguments: list[object], line: int) -> object:
        raise NotImplementedError

    def to_string(self) -> str:
        raise NotImplementedError


class NativeFunction(LoxCallable):
    def __init__(self, name: str, arity: int, fn: Callable[[list[object]], object]):
        self.name = name
        self._arity = arity
        self._fn = fn

    def arity(self) -> int:
        return self._arity

    def call(self, interp: Interpreter, arguments: list[object], line: int) -> object:
        return self._fn(arguments)

    def to_string(self) -> str:
        return "<native fn>"


class LoxFunction(LoxCallable):
    """A user function, or a method bound to an instance via `bind`."""

    def __init__(
        self, declaration: Function, closure: Environment, is_initializer: bool
    ):
        self.declaration = declaration
        self.closure = closure
        self.is_initializer = is_initializer

    @property
    def name(self) -> str:
        return self.declaration.name.lexeme

    def bind(self, instance: LoxInstance) -> LoxFunction:
        env = Environment(self.closure)
        env.define("this", instance)
        return LoxFunction(self.declaration, env, self.is_initializer)

    def arity(self) -> int:
        return len(self.declaration.params)

    def call(self, interp: Interpreter, arguments: list[object], line: int) -> object:
        env = Environment(self.closure)
        for param, arg in zip(self.declaration.params, arguments):
            env.define(param.lexeme, arg)
        try:
            interp.execute_block(self.declaration.body, env)
        except _Return as r:
            if self.is_initializer:
                return self.closure.get_at(0, "this")
            return r.value
        if self.is_initializer:
            return self.closure.get_at(0, "this")
        return None

    def to_string(self) -> str:
        return "<fn " + self.name + ">"


class LoxClass(LoxCallable):
    def __init__(
        self,
        name: str,
        superclass: LoxClass | None,
        methods: dict[str, LoxFunction],
    ):
        self.name = name
        self.superclass = superclass
        self.methods = methods

    def find_method(self, name: str) -> LoxFunction | None:
        if name in self.methods:
            return self.methods[name]
        if self.superclass is not None:
            return self.superclass.find_method(name)
        return None

    def arity(self) -> int:
        initializer = self.find_method("init")
        if initializer is None:
            return 0
        return initializer.arity()

    def call(self, interp: Interpreter, arguments: list[object], line: int) -> object:
        instance = LoxInstance(self)
        initializer = self.find_method("init")
        if initializer is not None:
            # Through call_value so `init` gets a frame of its own.
            interp.call_value(initializer.bind(instance), arguments, line)
        return instance

    def to_string(self) -> str:
        return self.name


class LoxInstance:
    def __init__(self, klass: LoxClass):
        self.klass = klass
        self.fields: dict[str, object] = {}

    def get(self, name: Token) -> object:
        if name.lexeme in self.fields:
            return self.fields[name.lexeme]
        method = self.klass.find_method(name.lexeme)
        if method is not None:
            return method.bind(self)
        raise LoxRuntimeError("Undefined property '" + name.lexeme + "'.", name.line)

    def set(self, name: Token, value: object) -> None:
        self.fields[name.lexeme] = value

    def to_string(self) -> str:
        return self.klass.name + " instance"


# ============================================================
# Control flow signals (internal)
# ============================================================


@dataclass
class _Return(Exception):
    value: object


@dataclass
class _Frame:
    name: str
    call_line: int


def _clock(arguments: list[object]) -> object:
    return time.perf_counter()


# ============================================================
# Interpreter
# ============================================================


class Interpreter:
    """Tree-walking evaluator; globals persist across `interpret` calls."""

    def __init__(
        self,
        out: TextIO,
        diagnostics: Diagnostics,
        options: Options | None = None,
    ):
        self.out = out
        self.diagnostics = diagnostics
        self.options = options if options is not None else Options()
        self.globals = Environment()
        self.environment = self.globals
        self.locals: dict[Expr, int] = {}
        self.frames: list[_Frame] = []
        self.globals.define("clock", NativeFunction("clock", 0, _clock))

    # ---- Running -----------------------------------------------------------

    def interpret_source(self, source: str) -> InterpretResult:
        """Lex, parse, resolve, and run one piece of source."""
        self.diagnostics.reset()
        limit = sys.getrecursionlimit()
        if limit < RECURSION_LIMIT:
            sys.setrecursionlimit(RECURSION_LIMIT)
        try:
            program = parse_tokens(tokenize(source), self.diagnostics)
            if self.diagnostics.had_error:
                return InterpretResult.STATIC_ERROR
            resolved = resolve_program(program, self.diagnostics)
            if self.diagnostics.had_error:
                return InterpretResult.STATIC_ERROR
            self.locals.update(resolved)
            return self.interpret(program)
        finally:
            sys.setrecursionlimit(limit)

    def interpret(self, program: Program) -> InterpretResult:
        limit = sys.getrecursionlimit()
        if limit < RECURSION_LIMIT:
            sys.setrecursionlimit(RECURSION_LIMIT)
        try:
            for stmt in program.statements:
                self.execute(stmt)
        except LoxRuntimeError as e:
            e.trace = self._trace(e.line)
            self.diagnostics.runtime_error(e)
            return InterpretResult.RUNTIME_ERROR
        finally:
            self.frames = []
            self.environment = self.globals
            sys.setrecursionlimit(limit)
        return InterpretResult.OK

    def _trace(self, line: int) -> list[tuple[int, str]]:
        """Frames still on the stack when an error escaped, innermost first."""
        trace: list[tuple[int, str]] = []
        for frame in reversed(self.frames):
            trace.append((line, frame_label(frame.name)))
            line = frame.call_line
        trace.append((line, frame_label(None)))
        return trace

    # ---- Statements --------------------------------------------------------

    def execute_block(self, statements: list[Stmt], env: Environment) -> None:
        previous = self.environment
        self.environment = env
        try:
            for stmt in statements:
                self.execute(stmt)
        finally:
            self.environment = previous

    def execute(self, stmt: Stmt) -> None:
        if isinstance(stmt, ExprStmt):
            self.evaluate(stmt.expression)
            return

        if isinstance(stmt, PrintStmt):
            value = self.evaluate(stmt.expression)
            self.out.write(stringify(value) + "\n")
            return

        if isinstance(stmt, VarStmt):
            value = None
            if stmt.initializer is not None:
                value = self.evaluate(stmt.initializer)
            self.environment.define(stmt.name.lexeme, value)
            return

        if isinstance(stmt, BlockStmt):
            self.execute_block(stmt.statements, Environment(self.environment))
            return

        if isinstance(stmt, IfStmt):
            if not is_falsey(self.evaluate(stmt.condition)):
                self.execute(stmt.then_branch)
            elif stmt.else_branch is not None:
                self.execute(stmt.else_branch)
            return

        if isinstance(stmt, WhileStmt):
            while not is_falsey(self.evaluate(stmt.condition)):
                self.execute(stmt.body)
            return

        if isinstance(stmt, FunStmt):
            fn = LoxFunction(stmt.function, self.environment, False)
            self.environment.define(stmt.function.name.lexeme, fn)
            return

        if isinstance(stmt, ReturnStmt):
            value = None
            if stmt.value is not None:
                value = self.evaluate(stmt.value)
            raise _Return(value)

        if isinstance(stmt, ClassStmt):
            self._execute_class(stmt)
            return

        raise TypeError("unknown statement " + type(stmt).__name__)

    def _execute_class(self, stmt: ClassStmt) -> None:
        superclass: LoxClass | None = None
        if stmt.superclass is not None:
            value = self.evaluate(stmt.superclass)
            if not isinstance(value, LoxClass):
                raise LoxRuntimeError(
                    "Superclass must be a class.", stmt.superclass.name.line
                )
            superclass = value

        self.environment.define(stmt.name.lexeme, None)

        if superclass is not None:
            self.environment = Environment(self.environment)
            self.environment.define("super", superclass)

        methods: dict[str, LoxFunction] = {}
        for method in stmt.methods:
            methods[method.name.lexeme] = LoxFunction(
                method, self.environment, method.name.lexeme == "init"
            )
        klass = LoxClass(stmt.name.lexeme, superclass, methods)

        if superclass is not None:
            assert self.environment.enclosing is not None
            self.environment = self.environment.enclosing
        self.environment.assign(stmt.name, klass)

    # ---- Expressions -------------------------------------------------------

    def evaluate(self, expr: Expr) -> object:
        if isinstance(expr, Literal):
            return expr.value

        if isinstance(expr, Variable):
            return self._look_up_variable(expr.name, expr)

        if isinstance(expr, Binary):
            return self._eval_binary(expr)

        if isinstance(expr, Call):
            return self._eval_call(expr)

        if isinstance(expr, Grouping):
            return self.evaluate(expr.expression)

        if isinstance(expr, Assign):
            value = self.evaluate(expr.value)
            distance = self.locals.get(expr)
            if distance is not None:
                self.environment.assign_at(distance, expr.name, value)
            else:
                self.globals.assign(expr.name, value)
            return value

        if isinstance(expr, Logical):
            left = self.evaluate(expr.left)
            if expr.operator.type == "or":
                if not is_falsey(left):
                    return left
            elif is_falsey(left):
                return left
            return self.evaluate(expr.right)

        if isinstance(expr, Unary):
            right = self.evaluate(expr.right)
            if expr.operator.type == "!":
                return is_falsey(right)
            if not isinstance(right, float):
                raise LoxRuntimeError("Operand must be a number.", expr.operator.line)
            return -right

        if isinstance(expr, Get):
            obj = self.evaluate(expr.object)
            if isinstance(obj, LoxInstance):
                return obj.get(expr.name)
            raise LoxRuntimeError("Only instances have properties.", expr.name.line)

        if isinstance(expr, Set):
            obj = self.evaluate(expr.object)
            value = self.evaluate(expr.value)
            if not isinstance(obj, LoxInstance):
                raise LoxRuntimeError("Only instances have fields.", expr.name.line)
            obj.set(expr.name, value)
            return value

        if isinstance(expr, This):
            return self._look_up_variable(expr.keyword, expr)

        if isinstance(expr, Super):
            return self._eval_super(expr)

        raise TypeError("unknown expression " + type(expr).__name__)

    def _look_up_variable(self, name: Token, expr: Expr) -> object:
        distance = self.locals.get(expr)
        if distance is not None:
            return self.environment.get_at(distance, name.lexeme)
        return self.globals.get(name)

    def _eval_binary(self, expr: Binary) -> object:
        left = self.evaluate(expr.left)
        right = self.evaluate(expr.right)
        op = expr.operator.type

        if op == "==":
            return values_equal(left, right)
        if op == "!=":
            return not values_equal(left, right)

        if op == "+":
            if isinstance(left, float) and isinstance(right, float):
                return left + right
            if isinstance(left, str) and isinstance(right, str):
                return left + right
            raise LoxRuntimeError(
                "Operands must be two numbers or two strings.", expr.operator.line
            )

        if not isinstance(left, float) or not isinstance(right, float):
            raise LoxRuntimeError("Operands must be numbers.", expr.operator.line)
        if op == "-":
            return left - right
        if op == "*":
            return left * right
        if op == "/":
            return divide(left, right)
        if op == ">":
            return left > right
        if op == ">=":
            return left >= right
        if op == "<":
            return left < right
        if op == "<=":
            return left <= right
        raise TypeError("unknown operator " + op)

    def _eval_call(self, expr: Call) -> object:
        callee = self.evaluate(expr.callee)
        arguments = [self.evaluate(arg) for arg in expr.arguments]
        return self.call_value(callee, arguments, expr.paren.line)

    def call_value(self, callee: object, arguments: list[object], line: int) -> object:
        if not isinstance(callee, LoxCallable):
            raise LoxRuntimeError("Can only call functions and classes.", line)
        if len(arguments) != callee.arity():
            raise LoxRuntimeError(
                "Expected "
                + str(callee.arity())
                + " arguments but got "
                + str(len(arguments))
                + ".",
                line,
            )

        if not isinstance(callee, LoxFunction):
            return callee.call(self, arguments, line)

        # The script itself counts as one of the FRAMES_MAX frames.
        if len(self.frames) + 1 >= FRAMES_MAX:
            raise LoxRuntimeError("Stack overflow.", line)
        self.frames.append(_Frame(callee.name, line))
        result = callee.call(self, arguments, line)
        # Left in place on error so the trace can be read off the stack.
        self.frames.pop()
        return result

    def _eval_super(self, expr: Super) -> object:
        distance = self.locals[expr]
        superclass = self.environment.get_at(distance, "super")
        # 'this' is always one scope inside the one holding 'super'.
        instance = self.environment.get_at(distance - 1, "this")
        assert isinstance(superclass, LoxClass)
        assert isinstance(instance, LoxInstance)
        method = superclass.find_method(expr.method.lexeme)
        if method is None:
            raise LoxRuntimeError(
                "Undefined property '" + expr.method.lexeme + "'.", expr.method.line
            )
        return method.bind(instance)
