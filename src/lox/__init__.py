"""Lox interpreter — public API."""

from __future__ import annotations

from .ast import Stmt
from .environment import Environment as Environment
from .errors import (
    InternalError as InternalError,
    LoxError as LoxError,
    LoxRuntimeError as LoxRuntimeError,
    StaticError as StaticError,
)
from .parse import ParseError as ParseError, Parser
from .resolve import Resolution as Resolution, analyze, resolve as resolve
from .runtime import Interpreter as Interpreter, RunResult as RunResult, run as run
from .tokens import TokenizeError as TokenizeError, tokenize as tokenize


def parse(source: str, repl: bool = False) -> list[Stmt]:
    """Parse Lox source into statements. Raises the first ParseError."""
    tokens = tokenize(source)
    parser = Parser(tokens, repl=repl)
    statements = parser.parse_program()
    if parser.errors:
        raise parser.errors[0]
    return statements


def check(source: str) -> list[LoxError]:
    """Tokenize, parse and resolve Lox source. Returns list of errors (empty = ok)."""
    _, _, errors = analyze(source)
    return errors

