"""Lox AST — parse-time node definitions.

Nodes are frozen and compared by identity, so a node can key the resolver's
hop-count table without the table ever being written into the tree.
"""

from __future__ import annotations

from dataclasses import dataclass

from .tokens import Token


# ============================================================
# EXPRESSIONS
# ============================================================


@dataclass(frozen=True, eq=False)
class Expr:
    """Base for all expressions."""


@dataclass(frozen=True, eq=False)
class Literal(Expr):
    """Number, string, true, false or nil."""

    value: object


@dataclass(frozen=True, eq=False)
class Grouping(Expr):
    """( expr )."""

    expression: Expr


@dataclass(frozen=True, eq=False)
class Unary(Expr):
    """! expr, - expr."""

    operator: Token
    right: Expr


@dataclass(frozen=True, eq=False)
class Binary(Expr):
    """Arithmetic, comparison and equality."""

    left: Expr
    operator: Token
    right: Expr


@dataclass(frozen=True, eq=False)
class Logical(Expr):
    """and / or — short-circuiting."""

    left: Expr
    operator: Token
    right: Expr


@dataclass(frozen=True, eq=False)
class Conditional(Expr):
    """cond ? then : else."""

    condition: Expr
    then_branch: Expr
    else_branch: Expr


@dataclass(frozen=True, eq=False)
class Variable(Expr):
    name: Token


@dataclass(frozen=True, eq=False)
class Assign(Expr):
    name: Token
    value: Expr


@dataclass(frozen=True, eq=False)
class SelfOp(Expr):
    """++name, --name, name++, name--."""

    name: Token
    operator: Token
    prefix: bool


@dataclass(frozen=True, eq=False)
class Call(Expr):
    """callee(args) — paren is kept for error locations."""

    callee: Expr
    paren: Token
    arguments: list[Expr]


@dataclass(frozen=True, eq=False)
class Get(Expr):
    """object.name."""

    object: Expr
    name: Token


@dataclass(frozen=True, eq=False)
class Set(Expr):
    """object.name = value."""

    object: Expr
    name: Token
    value: Expr


@dataclass(frozen=True, eq=False)
class This(Expr):
    keyword: Token


# ============================================================
# STATEMENTS
# ============================================================


@dataclass(frozen=True, eq=False)
class Stmt:
    """Base for all statements."""


@dataclass(frozen=True, eq=False)
class ExpressionStmt(Stmt):
    """Bare expression as statement."""

    expression: Expr


@dataclass(frozen=True, eq=False)
class PrintStmt(Stmt):
    expression: Expr


@dataclass(frozen=True, eq=False)
class VarStmt(Stmt):
    """var name = initializer?;"""

    name: Token
    initializer: Expr | None


@dataclass(frozen=True, eq=False)
class BlockStmt(Stmt):
    statements: list[Stmt]


@dataclass(frozen=True, eq=False)
class IfStmt(Stmt):
    condition: Expr
    then_branch: Stmt
    else_branch: Stmt | None


@dataclass(frozen=True, eq=False)
class WhileStmt(Stmt):
    condition: Expr
    body: Stmt


@dataclass(frozen=True, eq=False)
class FunctionStmt(Stmt):
    """fun name(params) { body } — also every kind of method."""

    name: Token
    params: list[Token]
    body: list[Stmt]


@dataclass(frozen=True, eq=False)
class ReturnStmt(Stmt):
    keyword: Token
    value: Expr | None


@dataclass(frozen=True, eq=False)
class ClassStmt(Stmt):
    """class Name { members }, members already split by visibility."""

    name: Token
    methods: list[FunctionStmt]
    static_methods: list[FunctionStmt]
    private_methods: list[FunctionStmt]
    fields: list[Token]
    private_fields: list[Token]

    def declares_field(self, name: str) -> bool:
        for tok in self.fields:
            if tok.lexeme == name:
                return True
        for tok in self.private_fields:
            if tok.lexeme == name:
                return True
        return False


@dataclass(frozen=True, eq=False)
class TerminateStmt(Stmt):
    """break; or continue; — keyword.type tells which."""

    keyword: Token
