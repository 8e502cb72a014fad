"""Lox tokenizer — lexes source into a flat token list."""

from __future__ import annotations


# Token type constants. Keywords and operators use their own text as type.
TK_NUMBER = "NUMBER"
TK_STRING = "STRING"
TK_IDENT = "IDENTIFIER"
TK_ERROR = "ERROR"
TK_EOF = "EOF"

KEYWORDS: set[str] = {
    "and",
    "class",
    "else",
    "false",
    "for",
    "fun",
    "if",
    "nil",
    "or",
    "print",
    "return",
    "super",
    "this",
    "true",
    "var",
    "while",
}

# Two-character operators, tried before their one-character prefixes
MULTI_OPS: list[str] = [
    "!=",
    "==",
    "<=",
    ">=",
]

SINGLE_OPS: set[str] = {
    "(",
    ")",
    "{",
    "}",
    ",",
    ".",
    "-",
    "+",
    ";",
    "/",
    "*",
    "!",
    "=",
    "<",
    ">",
}


class Token:
    """A token with type, lexeme, literal value, and source line.

    Error tokens carry their message in `lexeme`.
    """

    def __init__(self, type_: str, lexeme: str, line: int, literal: object = None):
        self.type: str = type_
        self.lexeme: str = lexeme
        self.line: int = line
        self.literal: object = literal

    def __repr__(self) -> str:
        return (
            "Token("
            + self.type
            + ", "
            + repr(self.lexeme)
            + ", "
            + str(self.line)
            + ")"
        )


def synthetic_token(text: str, line: int = 0) -> Token:
    """An identifier token that never appeared in source ('this', 'super')."""
    return Token(TK_IDENT, text, line)


def _is_digit(c: str) -> bool:
    return c >= "0" and c <= "9"


def _is_alpha(c: str) -> bool:
    return (c >= "a" and c <= "z") or (c >= "A" and c <= "Z") or c == "_"


def _is_alnum(c: str) -> bool:
    return _is_alpha(c) or _is_digit(c)


def tokenize(source: str) -> list[Token]:
    """Tokenize Lox source into a flat list ending with TK_EOF.

    Lexical problems do not stop the scan: each one becomes a TK_ERROR token
    and scanning resumes at the next character.
    """
    tokens: list[Token] = []
    pos = 0
    line = 1
    length = len(source)

    while pos < length:
        c = source[pos]

        # Newlines
        if c == "\n":
            pos += 1
            line += 1
            continue

        # Whitespace
        if c == " " or c == "\t" or c == "\r":
            pos += 1
            continue

        # Line comment: //
        if c == "/" and pos + 1 < length and source[pos + 1] == "/":
            while pos < length and source[pos] != "\n":
                pos += 1
            continue

        # Block comment: /* ... */ (not nested)
        if c == "/" and pos + 1 < length and source[pos + 1] == "*":
            start_line = line
            pos += 2
            while pos < length and not (
                source[pos] == "*" and pos + 1 < length and source[pos + 1] == "/"
            ):
                if source[pos] == "\n":
                    line += 1
                pos += 1
            if pos >= length:
                tokens.append(Token(TK_ERROR, "Unterminated comment.", start_line))
                continue
            pos += 2
            continue

        start_pos = pos

        # Number: digits with an optional fractional part
        if _is_digit(c):
            while pos < length and _is_digit(source[pos]):
                pos += 1
            if (
                pos + 1 < length
                and source[pos] == "."
                and _is_digit(source[pos + 1])
            ):
                pos += 1
                while pos < length and _is_digit(source[pos]):
                    pos += 1
            raw = source[start_pos:pos]
            tokens.append(Token(TK_NUMBER, raw, line, float(raw)))
            continue

        # String literal: "..." may span lines, no escapes
        if c == '"':
            pos += 1
            while pos < length and source[pos] != '"':
                if source[pos] == "\n":
                    line += 1
                pos += 1
            if pos >= length:
                tokens.append(Token(TK_ERROR, "Unterminated string.", line))
                continue
            pos += 1  # skip closing "
            raw = source[start_pos:pos]
            tokens.append(Token(TK_STRING, raw, line, raw[1:-1]))
            continue

        # Identifier or keyword
        if _is_alpha(c):
            while pos < length and _is_alnum(source[pos]):
                pos += 1
            word = source[start_pos:pos]
            if word in KEYWORDS:
                tokens.append(Token(word, word, line))
            else:
                tokens.append(Token(TK_IDENT, word, line))
            continue

        # Two-character operators
        matched = False
        for op in MULTI_OPS:
            if source[pos : pos + 2] == op:
                tokens.append(Token(op, op, line))
                pos += 2
                matched = True
                break
        if matched:
            continue

        # Single-character operators and punctuation
        if c in SINGLE_OPS:
            tokens.append(Token(c, c, line))
            pos += 1
            continue

        tokens.append(Token(TK_ERROR, "Unexpected character.", line))
        pos += 1

    tokens.append(Token(TK_EOF, "", line))
    return tokens
