"""Lox bytecode compiler — a single pass from tokens straight to chunks.

A Pratt parser drives code generation; no AST is built. Operator binding
strength comes from the same `grammar` table the AST parser climbs, so both
tracks group expressions identically. Locals live in stack slots tracked at
compile time; names not found locally become upvalues (when an enclosing
function declares them) or globals.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable, TextIO

from .chunk import Chunk, OpCode
from .collector import Heap
from .diagnostics import Diagnostics
from .grammar import (
    MAX_ARGUMENTS,
    STATEMENT_KEYWORDS,
    Precedence,
    infix_precedence,
)
from .objects import ObjFunction
from .tokens import (
    TK_EOF,
    TK_ERROR,
    TK_IDENT,
    TK_NUMBER,
    TK_STRING,
    Token,
    synthetic_token,
    tokenize,
)

UINT8_COUNT = 256
UINT16_MAX = 65535

# Function kinds
TYPE_FUNCTION = "function"
TYPE_INITIALIZER = "initializer"
TYPE_METHOD = "method"
TYPE_SCRIPT = "script"


@dataclass
class Local:
    name: str
    depth: int  # -1 while the initializer is being compiled
    is_captured: bool = False


@dataclass
class UpvalueRef:
    index: int
    is_local: bool


class FunctionState:
    """Compile-time bookkeeping for the function currently being emitted."""

    def __init__(
        self, enclosing: FunctionState | None, function: ObjFunction, type_: str
    ):
        self.enclosing: FunctionState | None = enclosing
        self.function: ObjFunction = function
        self.type: str = type_
        self.upvalues: list[UpvalueRef] = []
        self.scope_depth: int = 0
        # Slot zero holds the callee, or the receiver inside methods.
        slot_zero = "this" if type_ in (TYPE_METHOD, TYPE_INITIALIZER) else ""
        self.locals: list[Local] = [Local(slot_zero, 0)]


class ClassState:
    def __init__(self, enclosing: ClassState | None):
        self.enclosing: ClassState | None = enclosing
        self.has_superclass: bool = False


ParseFn = Callable[[bool], None]


class Compiler:
    def __init__(
        self,
        tokens: list[Token],
        heap: Heap,
        diagnostics: Diagnostics,
        *,
        print_code: bool = False,
        debug: TextIO | None = None,
    ):
        self.tokens: list[Token] = tokens
        self.pos: int = 0
        self.current: Token = tokens[0]
        self.previous: Token = tokens[0]
        self.heap: Heap = heap
        self.diagnostics: Diagnostics = diagnostics
        self.print_code: bool = print_code
        self.debug: TextIO | None = debug
        self.had_error: bool = False
        self.panic_mode: bool = False
        self.state: FunctionState | None = None
        self.class_state: ClassState | None = None

        self.prefix_rules: dict[str, ParseFn] = {
            "(": self.grouping,
            "-": self.unary,
            "!": self.unary,
            TK_IDENT: self.variable,
            TK_STRING: self.string,
            TK_NUMBER: self.number,
            "false": self.literal,
            "nil": self.literal,
            "true": self.literal,
            "super": self.super_,
            "this": self.this,
        }
        self.infix_rules: dict[str, ParseFn] = {
            "(": self.call,
            ".": self.dot,
            "-": self.binary,
            "+": self.binary,
            "/": self.binary,
            "*": self.binary,
            "!=": self.binary,
            "==": self.binary,
            ">": self.binary,
            ">=": self.binary,
            "<": self.binary,
            "<=": self.binary,
            "and": self.and_,
            "or": self.or_,
        }

    # ── Entry point ──────────────────────────────────────────

    def compile(self) -> ObjFunction | None:
        """Compile the whole token stream into the top-level script function."""
        self.heap.add_root_source(self._roots)
        try:
            script = self.heap.allocate(ObjFunction())
            self.state = FunctionState(None, script, TYPE_SCRIPT)
            self.advance()
            while not self.match(TK_EOF):
                self.declaration()
            function, _ = self.end_compiler()
        finally:
            self.heap.remove_root_source(self._roots)
        if self.had_error:
            return None
        return function

    def _roots(self) -> Iterable[object]:
        state = self.state
        while state is not None:
            yield state.function
            state = state.enclosing

    # ── Token helpers ────────────────────────────────────────

    def advance(self) -> None:
        self.previous = self.current
        while True:
            self.current = self.tokens[self.pos]
            if self.current.type != TK_EOF:
                self.pos += 1
            if self.current.type != TK_ERROR:
                break
            self.error_at_current(self.current.lexeme)

    def check(self, type_: str) -> bool:
        return self.current.type == type_

    def match(self, type_: str) -> bool:
        if not self.check(type_):
            return False
        self.advance()
        return True

    def consume(self, type_: str, msg: str) -> None:
        if self.check(type_):
            self.advance()
            return
        self.error_at_current(msg)

    # ── Errors ───────────────────────────────────────────────

    def error_at(self, token: Token, msg: str) -> None:
        if self.panic_mode:
            return
        self.panic_mode = True
        self.had_error = True
        self.diagnostics.error_at(token, msg)

    def error(self, msg: str) -> None:
        self.error_at(self.previous, msg)

    def error_at_current(self, msg: str) -> None:
        self.error_at(self.current, msg)

    def synchronize(self) -> None:
        self.panic_mode = False
        while self.current.type != TK_EOF:
            if self.previous.type == ";":
                return
            if self.current.type in STATEMENT_KEYWORDS:
                return
            self.advance()

    # ── Emission ─────────────────────────────────────────────

    def chunk(self) -> Chunk:
        assert self.state is not None
        return self.state.function.chunk

    def emit(self, *data: int, line: int | None = None) -> None:
        if line is None:
            line = self.previous.line
        chunk = self.chunk()
        for byte in data:
            chunk.write(byte, line)

    def emit_loop(self, loop_start: int) -> None:
        self.emit(OpCode.LOOP)
        offset = len(self.chunk().code) - loop_start + 2
        if offset > UINT16_MAX:
            self.error("Loop body too large.")
        self.emit((offset >> 8) & 0xFF, offset & 0xFF)

    def emit_jump(self, op: OpCode) -> int:
        self.emit(op, 0xFF, 0xFF)
        return len(self.chunk().code) - 2

    def patch_jump(self, offset: int) -> None:
        code = self.chunk().code
        # -2 for the jump operand itself
        jump = len(code) - offset - 2
        if jump > UINT16_MAX:
            self.error("Too much code to jump over.")
        code[offset] = (jump >> 8) & 0xFF
        code[offset + 1] = jump & 0xFF

    def emit_return(self) -> None:
        assert self.state is not None
        if self.state.type == TYPE_INITIALIZER:
            self.emit(OpCode.GET_LOCAL, 0)
        else:
            self.emit(OpCode.NIL)
        self.emit(OpCode.RETURN)

    def make_constant(self, value: object) -> int:
        index = self.chunk().add_constant(value)
        if index >= UINT8_COUNT:
            self.error("Too many constants in one chunk.")
            return 0
        return index

    def emit_constant(self, value: object) -> None:
        self.emit(OpCode.CONSTANT, self.make_constant(value))

    def end_compiler(self) -> tuple[ObjFunction, list[UpvalueRef]]:
        self.emit_return()
        state = self.state
        assert state is not None
        function = state.function
        if self.print_code and not self.had_error and self.debug is not None:
            name = function.name.chars if function.name is not None else "<script>"
            self.debug.write(function.chunk.disassemble(name))
        self.state = state.enclosing
        return function, state.upvalues

    # ── Scopes and variables ─────────────────────────────────

    def begin_scope(self) -> None:
        assert self.state is not None
        self.state.scope_depth += 1

    def end_scope(self) -> None:
        state = self.state
        assert state is not None
        state.scope_depth -= 1
        while state.locals and state.locals[-1].depth > state.scope_depth:
            if state.locals[-1].is_captured:
                self.emit(OpCode.CLOSE_UPVALUE)
            else:
                self.emit(OpCode.POP)
            state.locals.pop()

    def identifier_constant(self, name: Token) -> int:
        return self.make_constant(self.heap.intern(name.lexeme))

    def add_local(self, name: Token) -> None:
        assert self.state is not None
        if len(self.state.locals) == UINT8_COUNT:
            self.error("Too many local variables in function.")
            return
        self.state.locals.append(Local(name.lexeme, -1))

    def declare_variable(self) -> None:
        state = self.state
        assert state is not None
        if state.scope_depth == 0:
            return
        name = self.previous
        for local in reversed(state.locals):
            if local.depth != -1 and local.depth < state.scope_depth:
                break
            if local.name == name.lexeme:
                self.error("Already a variable with this name in this scope.")
        self.add_local(name)

    def parse_variable(self, msg: str) -> int:
        self.consume(TK_IDENT, msg)
        self.declare_variable()
        assert self.state is not None
        if self.state.scope_depth > 0:
            return 0
        return self.identifier_constant(self.previous)

    def mark_initialized(self) -> None:
        assert self.state is not None
        if self.state.scope_depth == 0:
            return
        self.state.locals[-1].depth = self.state.scope_depth

    def define_variable(self, global_: int) -> None:
        assert self.state is not None
        if self.state.scope_depth > 0:
            self.mark_initialized()
            return
        self.emit(OpCode.DEFINE_GLOBAL, global_)

    def resolve_local(self, state: FunctionState, name: Token) -> int:
        i = len(state.locals) - 1
        while i >= 0:
            local = state.locals[i]
            if local.name == name.lexeme:
                if local.depth == -1:
                    self.error("Can't read local variable in its own initializer.")
                return i
            i -= 1
        return -1

    def add_upvalue(self, state: FunctionState, index: int, is_local: bool) -> int:
        for i, upvalue in enumerate(state.upvalues):
            if upvalue.index == index and upvalue.is_local == is_local:
                return i
        if len(state.upvalues) == UINT8_COUNT:
            self.error("Too many closure variables in function.")
            return 0
        state.upvalues.append(UpvalueRef(index, is_local))
        state.function.upvalue_count = len(state.upvalues)
        return len(state.upvalues) - 1

    def resolve_upvalue(self, state: FunctionState, name: Token) -> int:
        if state.enclosing is None:
            return -1
        local = self.resolve_local(state.enclosing, name)
        if local != -1:
            state.enclosing.locals[local].is_captured = True
            return self.add_upvalue(state, local, True)
        upvalue = self.resolve_upvalue(state.enclosing, name)
        if upvalue != -1:
            return self.add_upvalue(state, upvalue, False)
        return -1

    def named_variable(self, name: Token, can_assign: bool) -> None:
        assert self.state is not None
        arg = self.resolve_local(self.state, name)
        if arg != -1:
            get_op, set_op = OpCode.GET_LOCAL, OpCode.SET_LOCAL
        else:
            arg = self.resolve_upvalue(self.state, name)
            if arg != -1:
                get_op, set_op = OpCode.GET_UPVALUE, OpCode.SET_UPVALUE
            else:
                arg = self.identifier_constant(name)
                get_op, set_op = OpCode.GET_GLOBAL, OpCode.SET_GLOBAL

        if can_assign and self.match("="):
            self.expression()
            self.emit(set_op, arg, line=name.line)
        else:
            self.emit(get_op, arg, line=name.line)

    # ── Declarations ─────────────────────────────────────────

    def declaration(self) -> None:
        if self.match("class"):
            self.class_declaration()
        elif self.match("fun"):
            self.fun_declaration()
        elif self.match("var"):
            self.var_declaration()
        else:
            self.statement()
        if self.panic_mode:
            self.synchronize()

    def class_declaration(self) -> None:
        self.consume(TK_IDENT, "Expect class name.")
        class_name = self.previous
        name_constant = self.identifier_constant(class_name)
        self.declare_variable()

        self.emit(OpCode.CLASS, name_constant)
        self.define_variable(name_constant)

        class_state = ClassState(self.class_state)
        self.class_state = class_state

        if self.match("<"):
            self.consume(TK_IDENT, "Expect superclass name.")
            superclass_name = self.previous
            self.variable(False)
            if class_name.lexeme == superclass_name.lexeme:
                self.error("A class can't inherit from itself.")

            self.begin_scope()
            self.add_local(synthetic_token("super", superclass_name.line))
            self.define_variable(0)

            self.named_variable(class_name, False)
            self.emit(OpCode.INHERIT, line=superclass_name.line)
            class_state.has_superclass = True

        self.named_variable(class_name, False)
        self.consume("{", "Expect '{' before class body.")
        while not self.check("}") and not self.check(TK_EOF):
            self.method()
        self.consume("}", "Expect '}' after class body.")
        self.emit(OpCode.POP)

        if class_state.has_superclass:
            self.end_scope()
        self.class_state = class_state.enclosing

    def method(self) -> None:
        self.consume(TK_IDENT, "Expect method name.")
        constant = self.identifier_constant(self.previous)
        type_ = TYPE_METHOD
        if self.previous.lexeme == "init":
            type_ = TYPE_INITIALIZER
        self.function(type_)
        self.emit(OpCode.METHOD, constant)

    def fun_declaration(self) -> None:
        global_ = self.parse_variable("Expect function name.")
        self.mark_initialized()
        self.function(TYPE_FUNCTION)
        self.define_variable(global_)

    def function(self, type_: str) -> None:
        kind = "function" if type_ == TYPE_FUNCTION else "method"
        name = self.previous
        # Rooted through the state chain before anything else is allocated.
        self.state = FunctionState(
            self.state, self.heap.allocate(ObjFunction()), type_
        )
        self.state.function.name = self.heap.intern(name.lexeme)
        self.begin_scope()

        self.consume("(", "Expect '(' after " + kind + " name.")
        if not self.check(")"):
            while True:
                self.state.function.arity += 1
                if self.state.function.arity > MAX_ARGUMENTS:
                    self.error_at_current(
                        "Can't have more than " + str(MAX_ARGUMENTS) + " parameters."
                    )
                constant = self.parse_variable("Expect parameter name.")
                self.define_variable(constant)
                if not self.match(","):
                    break
        self.consume(")", "Expect ')' after parameters.")
        self.consume("{", "Expect '{' before " + kind + " body.")
        self.block()

        function, upvalues = self.end_compiler()
        self.emit(OpCode.CLOSURE, self.make_constant(function))
        for upvalue in upvalues:
            self.emit(1 if upvalue.is_local else 0, upvalue.index)

    def var_declaration(self) -> None:
        global_ = self.parse_variable("Expect variable name.")
        if self.match("="):
            self.expression()
        else:
            self.emit(OpCode.NIL)
        self.consume(";", "Expect ';' after variable declaration.")
        self.define_variable(global_)

    # ── Statements ───────────────────────────────────────────

    def statement(self) -> None:
        if self.match("print"):
            self.print_statement()
        elif self.match("for"):
            self.for_statement()
        elif self.match("if"):
            self.if_statement()
        elif self.match("return"):
            self.return_statement()
        elif self.match("while"):
            self.while_statement()
        elif self.match("{"):
            self.begin_scope()
            self.block()
            self.end_scope()
        else:
            self.expression_statement()

    def block(self) -> None:
        while not self.check("}") and not self.check(TK_EOF):
            self.declaration()
        self.consume("}", "Expect '}' after block.")

    def print_statement(self) -> None:
        self.expression()
        self.consume(";", "Expect ';' after value.")
        self.emit(OpCode.PRINT)

    def expression_statement(self) -> None:
        self.expression()
        self.consume(";", "Expect ';' after expression.")
        self.emit(OpCode.POP)

    def if_statement(self) -> None:
        self.consume("(", "Expect '(' after 'if'.")
        self.expression()
        self.consume(")", "Expect ')' after if condition.")

        then_jump = self.emit_jump(OpCode.JUMP_IF_FALSE)
        self.emit(OpCode.POP)
        self.statement()
        else_jump = self.emit_jump(OpCode.JUMP)

        self.patch_jump(then_jump)
        self.emit(OpCode.POP)
        if self.match("else"):
            self.statement()
        self.patch_jump(else_jump)

    def while_statement(self) -> None:
        loop_start = len(self.chunk().code)
        self.consume("(", "Expect '(' after 'while'.")
        self.expression()
        self.consume(")", "Expect ')' after condition.")

        exit_jump = self.emit_jump(OpCode.JUMP_IF_FALSE)
        self.emit(OpCode.POP)
        self.statement()
        self.emit_loop(loop_start)

        self.patch_jump(exit_jump)
        self.emit(OpCode.POP)

    def for_statement(self) -> None:
        self.begin_scope()
        self.consume("(", "Expect '(' after 'for'.")
        if self.match(";"):
            pass
        elif self.match("var"):
            self.var_declaration()
        else:
            self.expression_statement()

        loop_start = len(self.chunk().code)
        exit_jump = -1
        if not self.match(";"):
            self.expression()
            self.consume(";", "Expect ';' after loop condition.")
            exit_jump = self.emit_jump(OpCode.JUMP_IF_FALSE)
            self.emit(OpCode.POP)

        if not self.match(")"):
            body_jump = self.emit_jump(OpCode.JUMP)
            increment_start = len(self.chunk().code)
            self.expression()
            self.emit(OpCode.POP)
            self.consume(")", "Expect ')' after for clauses.")
            self.emit_loop(loop_start)
            loop_start = increment_start
            self.patch_jump(body_jump)

        self.statement()
        self.emit_loop(loop_start)

        if exit_jump != -1:
            self.patch_jump(exit_jump)
            self.emit(OpCode.POP)
        self.end_scope()

    def return_statement(self) -> None:
        assert self.state is not None
        if self.state.type == TYPE_SCRIPT:
            self.error("Can't return from top-level code.")
        if self.match(";"):
            self.emit_return()
            return
        if self.state.type == TYPE_INITIALIZER:
            self.error("Can't return a value from an initializer.")
        self.expression()
        self.consume(";", "Expect ';' after return value.")
        self.emit(OpCode.RETURN)

    # ── Expressions ──────────────────────────────────────────

    def expression(self) -> None:
        self.parse_precedence(Precedence.ASSIGNMENT)

    def parse_precedence(self, precedence: Precedence) -> None:
        self.advance()
        prefix = self.prefix_rules.get(self.previous.type)
        if prefix is None:
            self.error("Expect expression.")
            return
        can_assign = precedence <= Precedence.ASSIGNMENT
        prefix(can_assign)

        while precedence <= infix_precedence(self.current.type):
            self.advance()
            self.infix_rules[self.previous.type](can_assign)

        if can_assign and self.match("="):
            self.error("Invalid assignment target.")

    def number(self, can_assign: bool) -> None:
        self.emit_constant(self.previous.literal)

    def string(self, can_assign: bool) -> None:
        text = self.previous.literal
        assert isinstance(text, str)
        self.emit_constant(self.heap.intern(text))

    def literal(self, can_assign: bool) -> None:
        kind = self.previous.type
        if kind == "false":
            self.emit(OpCode.FALSE)
        elif kind == "nil":
            self.emit(OpCode.NIL)
        else:
            self.emit(OpCode.TRUE)

    def grouping(self, can_assign: bool) -> None:
        self.expression()
        self.consume(")", "Expect ')' after expression.")

    def unary(self, can_assign: bool) -> None:
        op = self.previous
        self.parse_precedence(Precedence.UNARY)
        if op.type == "!":
            self.emit(OpCode.NOT, line=op.line)
        else:
            self.emit(OpCode.NEGATE, line=op.line)

    def binary(self, can_assign: bool) -> None:
        op = self.previous
        self.parse_precedence(Precedence(infix_precedence(op.type) + 1))
        self.emit(_BINARY_OPS[op.type], line=op.line)
        if op.type == "!=":
            self.emit(OpCode.NOT, line=op.line)

    def and_(self, can_assign: bool) -> None:
        end_jump = self.emit_jump(OpCode.JUMP_IF_FALSE)
        self.emit(OpCode.POP)
        self.parse_precedence(Precedence.AND)
        self.patch_jump(end_jump)

    def or_(self, can_assign: bool) -> None:
        else_jump = self.emit_jump(OpCode.JUMP_IF_FALSE)
        end_jump = self.emit_jump(OpCode.JUMP)
        self.patch_jump(else_jump)
        self.emit(OpCode.POP)
        self.parse_precedence(Precedence.OR)
        self.patch_jump(end_jump)

    def variable(self, can_assign: bool) -> None:
        self.named_variable(self.previous, can_assign)

    def argument_list(self) -> int:
        arg_count = 0
        if not self.check(")"):
            while True:
                if arg_count == MAX_ARGUMENTS:
                    self.error_at_current(
                        "Can't have more than " + str(MAX_ARGUMENTS) + " arguments."
                    )
                self.expression()
                arg_count += 1
                if not self.match(","):
                    break
        self.consume(")", "Expect ')' after arguments.")
        return min(arg_count, MAX_ARGUMENTS)

    def call(self, can_assign: bool) -> None:
        arg_count = self.argument_list()
        self.emit(OpCode.CALL, arg_count)

    def dot(self, can_assign: bool) -> None:
        self.consume(TK_IDENT, "Expect property name after '.'.")
        name_token = self.previous
        name = self.identifier_constant(name_token)
        if can_assign and self.match("="):
            self.expression()
            self.emit(OpCode.SET_PROPERTY, name, line=name_token.line)
        elif self.match("("):
            arg_count = self.argument_list()
            # Lookup errors report the name's line, call errors the ')' line.
            self.emit(OpCode.INVOKE, name, line=name_token.line)
            self.emit(arg_count)
        else:
            self.emit(OpCode.GET_PROPERTY, name, line=name_token.line)

    def this(self, can_assign: bool) -> None:
        if self.class_state is None:
            self.error("Can't use 'this' outside of a class.")
            return
        self.variable(False)

    def super_(self, can_assign: bool) -> None:
        keyword = self.previous
        if self.class_state is None:
            self.error("Can't use 'super' outside of a class.")
        elif not self.class_state.has_superclass:
            self.error("Can't use 'super' in a class with no superclass.")

        self.consume(".", "Expect '.' after 'super'.")
        self.consume(TK_IDENT, "Expect superclass method name.")
        name_token = self.previous
        name = self.identifier_constant(name_token)

        self.named_variable(synthetic_token("this", keyword.line), False)
        if self.match("("):
            arg_count = self.argument_list()
            self.named_variable(synthetic_token("super", keyword.line), False)
            self.emit(OpCode.SUPER_INVOKE, name, line=name_token.line)
            self.emit(arg_count)
        else:
            self.named_variable(synthetic_token("super", keyword.line), False)
            self.emit(OpCode.GET_SUPER, name, line=name_token.line)


_BINARY_OPS: dict[str, OpCode] = {
    "+": OpCode.ADD,
    "-": OpCode.SUBTRACT,
    "*": OpCode.MULTIPLY,
    "/": OpCode.DIVIDE,
    "==": OpCode.EQUAL,
    "!=": OpCode.EQUAL,
    ">": OpCode.GREATER,
    ">=": OpCode.GREATER_EQUAL,
    "<": OpCode.LESS,
    "<=": OpCode.LESS_EQUAL,
}


# ============================================================
# PUBLIC API
# ============================================================


def compile_source(
    source: str,
    heap: Heap,
    diagnostics: Diagnostics,
    *,
    print_code: bool = False,
    debug: TextIO | None = None,
) -> ObjFunction | None:
    """Compile `source` to its script function; None if any error was reported."""
    compiler = Compiler(
        tokenize(source), heap, diagnostics, print_code=print_code, debug=debug
    )
    return compiler.compile()
