"""Lox runtime environments — one node per scope, chained outward."""

from __future__ import annotations

from .errors import UndefinedVariable
from .tokens import Token


class Environment:
    def __init__(self, enclosing: Environment | None = None) -> None:
        self.enclosing: Environment | None = enclosing
        self.values: dict[str, object] = {}

    def define(self, name: str, value: object) -> None:
        self.values[name] = value

    def get(self, name: Token) -> object:
        env: Environment | None = self
        while env is not None:
            if name.lexeme in env.values:
                return env.values[name.lexeme]
            env = env.enclosing
        raise UndefinedVariable(name, "Undefined variable '" + name.lexeme + "'.")

    def assign(self, name: Token, value: object) -> None:
        env: Environment | None = self
        while env is not None:
            if name.lexeme in env.values:
                env.values[name.lexeme] = value
                return
            env = env.enclosing
        raise UndefinedVariable(name, "Undefined variable '" + name.lexeme + "'.")

    # ---- Resolved access ---------------------------------------------------

    def ancestor(self, distance: int) -> Environment:
        env = self
        i = 0
        while i < distance:
            assert env.enclosing is not None, "hop count deeper than the chain"
            env = env.enclosing
            i += 1
        return env

    def get_at(self, distance: int, name: str) -> object:
        return self.ancestor(distance).values[name]

    def assign_at(self, distance: int, name: Token, value: object) -> None:
        self.ancestor(distance).values[name.lexeme] = value

    def __repr__(self) -> str:
        depth = 0
        env = self.enclosing
        while env is not None:
            depth += 1
            env = env.enclosing
        return "Environment(" + ", ".join(self.values) + "; depth=" + str(depth) + ")"
