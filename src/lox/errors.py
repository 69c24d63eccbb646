"""Lox diagnostics — the static and runtime error taxonomies."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .tokens import Token


class LoxError(Exception):
    """Base error for everything the interpreter reports against source."""

    def __init__(self, msg: str, token: Token | None = None, line: int = 0):
        self.msg: str = msg
        self.token: Token | None = token
        self.line: int = token.line if token is not None else line
        super().__init__(_format(msg, token, self.line))

    @property
    def kind(self) -> str:
        return type(self).__name__


def _format(msg: str, token: Token | None, line: int) -> str:
    if token is None:
        return "[line " + str(line) + "] Error: " + msg
    if token.type == "EOF":
        return "[line " + str(line) + "] Error at end: " + msg
    return "[line " + str(line) + "] Error at '" + token.lexeme + "': " + msg


# ============================================================
# STATIC ERRORS (reported by the resolver, accumulated)
# ============================================================


class StaticError(LoxError):
    """Compile-time error; any one of these suppresses interpretation."""


class DuplicateDeclaration(StaticError):
    pass


class UseBeforeInit(StaticError):
    pass


class UnusedVariable(StaticError):
    pass


class ReturnOutsideFunction(StaticError):
    pass


class ReturnFromInitializer(StaticError):
    pass


class ThisOutsideClass(StaticError):
    pass


class ThisOutsideInstanceContext(StaticError):
    pass


class TerminateOutsideLoop(StaticError):
    pass


class UndeclaredFieldAssignment(StaticError):
    pass


# ============================================================
# RUNTIME ERRORS (raised by the interpreter, first one halts)
# ============================================================


class LoxRuntimeError(LoxError):
    """Runtime failure carrying the offending token."""

    def __init__(self, token: Token, msg: str):
        super().__init__(msg, token)


class UndefinedVariable(LoxRuntimeError):
    pass


class NotANumber(LoxRuntimeError):
    pass


class MixedOrNonNumericOperands(LoxRuntimeError):
    pass


class AmbiguousPlusOperands(LoxRuntimeError):
    pass


class ArityMismatch(LoxRuntimeError):
    def __init__(self, token: Token, expected: int, got: int):
        super().__init__(
            token,
            "Expected " + str(expected) + " arguments but got " + str(got) + ".",
        )
        self.expected: int = expected
        self.got: int = got


class NotCallable(LoxRuntimeError):
    pass


class NotAnInstance(LoxRuntimeError):
    pass


class PrivateAccessViolation(LoxRuntimeError):
    pass


class UndefinedProperty(LoxRuntimeError):
    pass


class UndefinedField(LoxRuntimeError):
    pass


class UndefinedStaticMethod(LoxRuntimeError):
    pass


class InternalError(Exception):
    """A control outcome escaped its handler; the resolver let something through."""


class StackOverflow(LoxError):
    """Nesting or recursion went deeper than the host stack allows."""

    def __init__(self, msg: str):
        Exception.__init__(self, msg)
        self.msg: str = msg
        self.token: Token | None = None
        self.line: int = 0
