"""Lox parser — recursive descent, one method per grammar production.

Binary operators are parsed by precedence climbing over the shared table in
`grammar`. A syntax error is reported, the parser skips to the next statement
boundary, and parsing continues so one run surfaces every independent error.
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
from .grammar import (
    BINARY_PRECEDENCE,
    LOGICAL_OPERATORS,
    MAX_ARGUMENTS,
    STATEMENT_KEYWORDS,
    UNARY_OPERATORS,
    Precedence,
)
from .tokens import TK_EOF, TK_ERROR, TK_IDENT, TK_NUMBER, TK_STRING, Token


class ParseError(Exception):
    """Unwinds to the nearest declaration so the parser can resynchronize."""

    def __init__(self, msg: str, token: Token):
        self.msg: str = msg
        self.token: Token = token
        super().__init__(msg + " at line " + str(token.line))


class Parser:
    """Recursive descent parser for Lox."""

    def __init__(self, tokens: list[Token], diagnostics: Diagnostics):
        self.diagnostics: Diagnostics = diagnostics
        self.tokens: list[Token] = []
        for tok in tokens:
            if tok.type == TK_ERROR:
                diagnostics.error(tok.line, tok.lexeme)
            else:
                self.tokens.append(tok)
        self.pos: int = 0

    # ── Helpers ──────────────────────────────────────────────

    def current(self) -> Token:
        return self.tokens[self.pos]

    def previous(self) -> Token:
        return self.tokens[self.pos - 1]

    def at_end(self) -> bool:
        return self.current().type == TK_EOF

    def advance(self) -> Token:
        tok = self.tokens[self.pos]
        if tok.type != TK_EOF:
            self.pos += 1
        return tok

    def at(self, type_: str) -> bool:
        return self.current().type == type_

    def match(self, *types: str) -> bool:
        for type_ in types:
            if self.at(type_):
                self.advance()
                return True
        return False

    def expect(self, type_: str, msg: str) -> Token:
        if self.at(type_):
            return self.advance()
        raise self.error(self.current(), msg)

    def error(self, token: Token, msg: str) -> ParseError:
        self.diagnostics.error_at(token, msg)
        return ParseError(msg, token)

    def synchronize(self) -> None:
        """Discard tokens up to a likely statement boundary."""
        self.advance()
        while not self.at_end():
            if self.previous().type == ";":
                return
            if self.current().type in STATEMENT_KEYWORDS:
                return
            self.advance()

    # ── Declarations ─────────────────────────────────────────

    def parse_program(self) -> Program:
        statements: list[Stmt] = []
        while not self.at_end():
            stmt = self.parse_declaration()
            if stmt is not None:
                statements.append(stmt)
        return Program(statements)

    def parse_declaration(self) -> Stmt | None:
        """Declaration = ClassDecl | FunDecl | VarDecl | Statement"""
        try:
            if self.match("class"):
                return self.parse_class_decl()
            if self.match("fun"):
                return FunStmt(self.parse_function("function"))
            if self.match("var"):
                return self.parse_var_decl()
            return self.parse_stmt()
        except ParseError:
            self.synchronize()
            return None

    def parse_class_decl(self) -> ClassStmt:
        """ClassDecl = 'class' IDENT ( '<' IDENT )? '{' Function* '}'"""
        name = self.expect(TK_IDENT, "Expect class name.")
        superclass: Variable | None = None
        if self.match("<"):
            self.expect(TK_IDENT, "Expect superclass name.")
            superclass = Variable(self.previous())
        self.expect("{", "Expect '{' before class body.")
        methods: list[Function] = []
        while not self.at("}") and not self.at_end():
            methods.append(self.parse_function("method"))
        self.expect("}", "Expect '}' after class body.")
        return ClassStmt(name, superclass, methods)

    def parse_function(self, kind: str) -> Function:
        """Function = IDENT '(' Parameters? ')' Block"""
        name = self.expect(TK_IDENT, "Expect " + kind + " name.")
        self.expect("(", "Expect '(' after " + kind + " name.")
        params: list[Token] = []
        if not self.at(")"):
            while True:
                if len(params) >= MAX_ARGUMENTS:
                    self.diagnostics.error_at(
                        self.current(),
                        "Can't have more than " + str(MAX_ARGUMENTS) + " parameters.",
                    )
                params.append(self.expect(TK_IDENT, "Expect parameter name."))
                if not self.match(","):
                    break
        self.expect(")", "Expect ')' after parameters.")
        self.expect("{", "Expect '{' before " + kind + " body.")
        body = self.parse_block()
        return Function(name, params, body)

    def parse_var_decl(self) -> VarStmt:
        """VarDecl = 'var' IDENT ( '=' Expr )? ';'"""
        name = self.expect(TK_IDENT, "Expect variable name.")
        initializer: Expr | None = None
        if self.match("="):
            initializer = self.parse_expr()
        self.expect(";", "Expect ';' after variable declaration.")
        return VarStmt(name, initializer)

    # ── Statements ───────────────────────────────────────────

    def parse_stmt(self) -> Stmt:
        if self.match("for"):
            return self.parse_for_stmt()
        if self.match("if"):
            return self.parse_if_stmt()
        if self.match("print"):
            return self.parse_print_stmt()
        if self.match("return"):
            return self.parse_return_stmt()
        if self.match("while"):
            return self.parse_while_stmt()
        if self.match("{"):
            return BlockStmt(self.parse_block())
        return self.parse_expr_stmt()

    def parse_for_stmt(self) -> Stmt:
        """For = 'for' '(' ( VarDecl | ExprStmt | ';' ) Expr? ';' Expr? ')' Statement

        Desugared into a block holding the initializer and a while loop.
        """
        self.expect("(", "Expect '(' after 'for'.")
        initializer: Stmt | None
        if self.match(";"):
            initializer = None
        elif self.match("var"):
            initializer = self.parse_var_decl()
        else:
            initializer = self.parse_expr_stmt()

        condition: Expr | None = None
        if not self.at(";"):
            condition = self.parse_expr()
        self.expect(";", "Expect ';' after loop condition.")

        increment: Expr | None = None
        if not self.at(")"):
            increment = self.parse_expr()
        self.expect(")", "Expect ')' after for clauses.")

        body = self.parse_stmt()
        if increment is not None:
            body = BlockStmt([body, ExprStmt(increment)])
        if condition is None:
            condition = Literal(True)
        body = WhileStmt(condition, body)
        if initializer is not None:
            body = BlockStmt([initializer, body])
        return body

    def parse_if_stmt(self) -> IfStmt:
        """If = 'if' '(' Expr ')' Statement ( 'else' Statement )?"""
        self.expect("(", "Expect '(' after 'if'.")
        condition = self.parse_expr()
        self.expect(")", "Expect ')' after if condition.")
        then_branch = self.parse_stmt()
        else_branch: Stmt | None = None
        if self.match("else"):
            else_branch = self.parse_stmt()
        return IfStmt(condition, then_branch, else_branch)

    def parse_print_stmt(self) -> PrintStmt:
        value = self.parse_expr()
        self.expect(";", "Expect ';' after value.")
        return PrintStmt(value)

    def parse_return_stmt(self) -> ReturnStmt:
        keyword = self.previous()
        value: Expr | None = None
        if not self.at(";"):
            value = self.parse_expr()
        self.expect(";", "Expect ';' after return value.")
        return ReturnStmt(keyword, value)

    def parse_while_stmt(self) -> WhileStmt:
        self.expect("(", "Expect '(' after 'while'.")
        condition = self.parse_expr()
        self.expect(")", "Expect ')' after condition.")
        body = self.parse_stmt()
        return WhileStmt(condition, body)

    def parse_block(self) -> list[Stmt]:
        """Block = '{' Declaration* '}' (opening brace already consumed)"""
        statements: list[Stmt] = []
        while not self.at("}") and not self.at_end():
            stmt = self.parse_declaration()
            if stmt is not None:
                statements.append(stmt)
        self.expect("}", "Expect '}' after block.")
        return statements

    def parse_expr_stmt(self) -> ExprStmt:
        expr = self.parse_expr()
        self.expect(";", "Expect ';' after expression.")
        return ExprStmt(expr)

    # ── Expressions ──────────────────────────────────────────

    def parse_expr(self) -> Expr:
        return self.parse_assignment()

    def parse_assignment(self) -> Expr:
        """Assignment = ( Call '.' )? IDENT '=' Assignment | Binary"""
        expr = self.parse_binary(Precedence.OR)
        if self.at("="):
            equals = self.advance()
            value = self.parse_assignment()
            if isinstance(expr, Variable):
                return Assign(expr.name, value)
            if isinstance(expr, Get):
                return Set(expr.object, expr.name, value)
            # Reported but not thrown: the parser is not confused.
            self.diagnostics.error_at(equals, "Invalid assignment target.")
        return expr

    def parse_binary(self, min_prec: Precedence) -> Expr:
        """Binary = Unary ( BinaryOp Binary )*, climbing by operator precedence"""
        left = self.parse_unary()
        while True:
            op = self.current()
            prec = BINARY_PRECEDENCE.get(op.type)
            if prec is None or prec < min_prec:
                return left
            self.advance()
            right = self.parse_binary(Precedence(prec + 1))
            if op.type in LOGICAL_OPERATORS:
                left = Logical(left, op, right)
            else:
                left = Binary(left, op, right)

    def parse_unary(self) -> Expr:
        """Unary = ( '!' | '-' ) Unary | Call"""
        if self.current().type in UNARY_OPERATORS:
            op = self.advance()
            right = self.parse_unary()
            return Unary(op, right)
        return self.parse_call()

    def parse_call(self) -> Expr:
        """Call = Primary ( '(' Arguments? ')' | '.' IDENT )*"""
        expr = self.parse_primary()
        while True:
            if self.match("("):
                expr = self.finish_call(expr)
            elif self.match("."):
                name = self.expect(TK_IDENT, "Expect property name after '.'.")
                expr = Get(expr, name)
            else:
                return expr

    def finish_call(self, callee: Expr) -> Call:
        arguments: list[Expr] = []
        if not self.at(")"):
            while True:
                if len(arguments) >= MAX_ARGUMENTS:
                    self.diagnostics.error_at(
                        self.current(),
                        "Can't have more than " + str(MAX_ARGUMENTS) + " arguments.",
                    )
                arguments.append(self.parse_expr())
                if not self.match(","):
                    break
        paren = self.expect(")", "Expect ')' after arguments.")
        return Call(callee, paren, arguments)

    def parse_primary(self) -> Expr:
        tok = self.current()
        if self.match("false"):
            return Literal(False)
        if self.match("true"):
            return Literal(True)
        if self.match("nil"):
            return Literal(None)
        if self.match(TK_NUMBER, TK_STRING):
            return Literal(tok.literal)
        if self.match("super"):
            self.expect(".", "Expect '.' after 'super'.")
            method = self.expect(TK_IDENT, "Expect superclass method name.")
            return Super(tok, method)
        if self.match("this"):
            return This(tok)
        if self.match(TK_IDENT):
            return Variable(tok)
        if self.match("("):
            expr = self.parse_expr()
            self.expect(")", "Expect ')' after expression.")
            return Grouping(expr)
        raise self.error(tok, "Expect expression.")


def parse_tokens(tokens: list[Token], diagnostics: Diagnostics) -> Program:
    """Parse a token list; errors are recorded on `diagnostics`."""
    return Parser(tokens, diagnostics).parse_program()
