"""Lox tokenizer — lexes source into a flat token list."""

from __future__ import annotations

from .errors import LoxError


# Token type constants. Keywords use the keyword text itself as their type.
TK_NUMBER = "NUMBER"
TK_STRING = "STRING"
TK_IDENT = "IDENT"
TK_OP = "OP"
TK_EOF = "EOF"

KEYWORDS: set[str] = {
    "and",
    "break",
    "class",
    "continue",
    "else",
    "false",
    "fun",
    "if",
    "nil",
    "or",
    "print",
    "private",
    "return",
    "static",
    "this",
    "true",
    "var",
    "while",
}

# Multi-character operators, matched before single characters
MULTI_OPS: list[str] = [
    "!=",
    "==",
    "<=",
    ">=",
    "++",
    "--",
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
    "?",
    ":",
}


class TokenizeError(LoxError):
    """Error during tokenization."""

    def __init__(self, msg: str, line: int, col: int):
        super().__init__(msg, line=line)
        self.col: int = col


class Token:
    """A token with type, raw lexeme, literal value, and position."""

    __slots__ = ("type", "lexeme", "literal", "line", "col")

    def __init__(
        self, type_: str, lexeme: str, literal: object, line: int, col: int = 0
    ):
        self.type: str = type_
        self.lexeme: str = lexeme
        self.literal: object = literal
        self.line: int = line
        self.col: int = col

    def __repr__(self) -> str:
        return (
            "Token("
            + self.type
            + ", "
            + repr(self.lexeme)
            + ", "
            + str(self.line)
            + ", "
            + str(self.col)
            + ")"
        )


def _is_digit(c: str) -> bool:
    return c >= "0" and c <= "9"


def _is_alpha(c: str) -> bool:
    return (c >= "a" and c <= "z") or (c >= "A" and c <= "Z") or c == "_"


def _is_alnum(c: str) -> bool:
    return _is_alpha(c) or _is_digit(c)


def tokenize(source: str) -> list[Token]:
    """Tokenize Lox source into a flat list ending with TK_EOF."""
    tokens: list[Token] = []
    pos = 0
    line = 1
    col = 1
    length = len(source)

    while pos < length:
        c = source[pos]

        # Newlines
        if c == "\n":
            pos += 1
            line += 1
            col = 1
            continue

        # Whitespace
        if c == " " or c == "\t" or c == "\r":
            pos += 1
            col += 1
            continue

        # Line comment: //
        if c == "/" and pos + 1 < length and source[pos + 1] == "/":
            while pos < length and source[pos] != "\n":
                pos += 1
            continue

        start_pos = pos
        start_line = line
        start_col = col

        # Number: digits with an optional fraction, always a float
        if _is_digit(c):
            while pos < length and _is_digit(source[pos]):
                pos += 1
                col += 1
            if (
                pos + 1 < length
                and source[pos] == "."
                and _is_digit(source[pos + 1])
            ):
                pos += 1
                col += 1
                while pos < length and _is_digit(source[pos]):
                    pos += 1
                    col += 1
            raw = source[start_pos:pos]
            tokens.append(Token(TK_NUMBER, raw, float(raw), start_line, start_col))
            continue

        # String literal: "...", may span lines, no escapes
        if c == '"':
            pos += 1
            col += 1
            while pos < length and source[pos] != '"':
                if source[pos] == "\n":
                    line += 1
                    col = 0
                pos += 1
                col += 1
            if pos >= length:
                raise TokenizeError("unterminated string", start_line, start_col)
            pos += 1  # skip closing "
            col += 1
            raw = source[start_pos:pos]
            tokens.append(Token(TK_STRING, raw, raw[1:-1], start_line, start_col))
            continue

        # Identifier or keyword
        if _is_alpha(c):
            while pos < length and _is_alnum(source[pos]):
                pos += 1
                col += 1
            word = source[start_pos:pos]
            if word in KEYWORDS:
                tokens.append(Token(word, word, None, start_line, start_col))
            else:
                tokens.append(Token(TK_IDENT, word, None, start_line, start_col))
            continue

        # Multi-character operators
        matched = False
        for op in MULTI_OPS:
            op_len = len(op)
            if source[pos : pos + op_len] == op:
                tokens.append(Token(TK_OP, op, None, start_line, start_col))
                pos += op_len
                col += op_len
                matched = True
                break
        if matched:
            continue

        # Single-character operators
        if c in SINGLE_OPS:
            tokens.append(Token(TK_OP, c, None, start_line, start_col))
            pos += 1
            col += 1
            continue

        raise TokenizeError("unexpected character: " + repr(c), line, col)

    tokens.append(Token(TK_EOF, "", None, line, col))
    return tokens
