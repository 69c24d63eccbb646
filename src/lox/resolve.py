"""Lox resolver — static scope analysis ahead of interpretation.

One forward pass over the program. For every expression that reads or writes
a local variable it records how many environments the interpreter must walk
outward to find the binding; globals are left unannotated and looked up by
name at run time. Along the way it reports the static errors: duplicate or
unused locals, reads before initialization, misplaced return/break/continue,
misuse of ``this``, and assignments to undeclared fields.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace

from .ast import (
    Assign,
    Binary,
    BlockStmt,
    Call,
    ClassStmt,
    Conditional,
    Expr,
    ExpressionStmt,
    FunctionStmt,
    Get,
    Grouping,
    IfStmt,
    Literal,
    Logical,
    PrintStmt,
    ReturnStmt,
    SelfOp,
    Set,
    Stmt,
    TerminateStmt,
    This,
    Unary,
    Variable,
    VarStmt,
    WhileStmt,
)
from .errors import (
    DuplicateDeclaration,
    LoxError,
    ReturnFromInitializer,
    ReturnOutsideFunction,
    StackOverflow,
    StaticError,
    TerminateOutsideLoop,
    ThisOutsideClass,
    ThisOutsideInstanceContext,
    UndeclaredFieldAssignment,
    UnusedVariable,
    UseBeforeInit,
)
from .parse import Parser
from .tokens import Token, TokenizeError, tokenize


FN_NONE: str = "NONE"
FN_FUNCTION: str = "FUNCTION"
FN_METHOD: str = "METHOD"
FN_INITIALIZER: str = "INITIALIZER"
FN_STATIC_METHOD: str = "STATIC_METHOD"

THIS: str = "this"
INIT: str = "init"


@dataclass
class VariableMeta:
    """Per-declaration bookkeeping, alive while its scope is open."""

    token: Token
    initialized: bool = False
    accessed: bool = False


@dataclass(frozen=True)
class _Context:
    """Where the traversal currently is; replaced, never mutated."""

    function: str = FN_NONE
    klass: ClassStmt | None = None
    has_this: bool = False
    in_loop: bool = False


@dataclass
class Resolution:
    """Result of a resolver pass: the hop-count table and any static errors."""

    locals: dict[Expr, int] = field(default_factory=dict)
    errors: list[StaticError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


class Resolver:
    def __init__(self) -> None:
        self.scopes: list[dict[str, VariableMeta]] = []
        self.locals: dict[Expr, int] = {}
        self.errors: list[StaticError] = []
        # Globals whose own initializer is being resolved right now
        self.pending_globals: set[str] = set()

    def error(self, err: StaticError) -> None:
        self.errors.append(err)

    # ── Scope management ──────────────────────────────────────

    def enter_scope(self) -> None:
        self.scopes.append({})

    def exit_scope(self) -> None:
        scope = self.scopes.pop()
        for name, meta in scope.items():
            if name == THIS:
                continue
            if not meta.accessed:
                self.error(
                    UnusedVariable("Local variable '" + name + "' is never used.", meta.token)
                )

    def declare(self, name: Token) -> None:
        if not self.scopes:
            return
        scope = self.scopes[-1]
        if name.lexeme in scope:
            self.error(
                DuplicateDeclaration(
                    "Already a variable named '" + name.lexeme + "' in this scope.", name
                )
            )
        scope[name.lexeme] = VariableMeta(name)

    def define(self, name: Token) -> None:
        if not self.scopes:
            return
        self.scopes[-1][name.lexeme].initialized = True

    def resolve_local(self, expr: Expr, name: Token, *, read: bool) -> None:
        i = len(self.scopes) - 1
        while i >= 0:
            meta = self.scopes[i].get(name.lexeme)
            if meta is not None:
                if read:
                    meta.accessed = True
                if not meta.initialized:
                    self.error(
                        UseBeforeInit(
                            "Can't read local variable '"
                            + name.lexeme
                            + "' in its own initializer.",
                            name,
                        )
                    )
                self.locals[expr] = len(self.scopes) - 1 - i
                return
            i -= 1
        if name.lexeme in self.pending_globals:
            self.error(
                UseBeforeInit(
                    "Can't read variable '" + name.lexeme + "' in its own initializer.",
                    name,
                )
            )

    # ── Statements ────────────────────────────────────────────

    def resolve_stmts(self, stmts: list[Stmt], *, ctx: _Context) -> None:
        for stmt in stmts:
            self.resolve_stmt(stmt, ctx=ctx)

    def resolve_stmt(self, stmt: Stmt, *, ctx: _Context) -> None:
        if isinstance(stmt, BlockStmt):
            self.enter_scope()
            self.resolve_stmts(stmt.statements, ctx=ctx)
            self.exit_scope()
            return

        if isinstance(stmt, VarStmt):
            self.resolve_var_stmt(stmt, ctx=ctx)
            return

        if isinstance(stmt, FunctionStmt):
            self.declare(stmt.name)
            self.define(stmt.name)
            self.resolve_function(stmt, FN_FUNCTION, ctx=ctx)
            return

        if isinstance(stmt, ClassStmt):
            self.resolve_class(stmt, ctx=ctx)
            return

        if isinstance(stmt, ExpressionStmt):
            self.resolve_expr(stmt.expression, ctx=ctx)
            return

        if isinstance(stmt, PrintStmt):
            self.resolve_expr(stmt.expression, ctx=ctx)
            return

        if isinstance(stmt, IfStmt):
            self.resolve_expr(stmt.condition, ctx=ctx)
            self.resolve_stmt(stmt.then_branch, ctx=ctx)
            if stmt.else_branch is not None:
                self.resolve_stmt(stmt.else_branch, ctx=ctx)
            return

        if isinstance(stmt, WhileStmt):
            self.resolve_expr(stmt.condition, ctx=ctx)
            self.resolve_stmt(stmt.body, ctx=replace(ctx, in_loop=True))
            return

        if isinstance(stmt, ReturnStmt):
            if ctx.function == FN_NONE:
                self.error(
                    ReturnOutsideFunction("Can't return from top-level code.", stmt.keyword)
                )
            if stmt.value is not None:
                if ctx.function == FN_INITIALIZER:
                    self.error(
                        ReturnFromInitializer(
                            "Can't return a value from an initializer.", stmt.keyword
                        )
                    )
                self.resolve_expr(stmt.value, ctx=ctx)
            return

        if isinstance(stmt, TerminateStmt):
            if not ctx.in_loop:
                self.error(
                    TerminateOutsideLoop(
                        "Can't use '" + stmt.keyword.lexeme + "' outside of a loop.",
                        stmt.keyword,
                    )
                )
            return

        raise TypeError("unhandled statement node: " + type(stmt).__name__)

    def resolve_var_stmt(self, stmt: VarStmt, *, ctx: _Context) -> None:
        self.declare(stmt.name)
        if stmt.initializer is not None:
            is_global = not self.scopes
            if is_global:
                self.pending_globals.add(stmt.name.lexeme)
            try:
                self.resolve_expr(stmt.initializer, ctx=ctx)
            finally:
                if is_global:
                    self.pending_globals.discard(stmt.name.lexeme)
        self.define(stmt.name)

    def resolve_function(self, fn: FunctionStmt, kind: str, *, ctx: _Context) -> None:
        inner = replace(ctx, function=kind, in_loop=False)
        self.enter_scope()
        for param in fn.params:
            self.declare(param)
            self.define(param)
        self.resolve_stmts(fn.body, ctx=inner)
        self.exit_scope()

    def resolve_class(self, stmt: ClassStmt, *, ctx: _Context) -> None:
        self.declare(stmt.name)
        self.define(stmt.name)
        class_ctx = replace(ctx, klass=stmt)

        # Instance methods close over an environment that binds `this`
        self.enter_scope()
        self.scopes[-1][THIS] = VariableMeta(
            Token(THIS, THIS, None, stmt.name.line, stmt.name.col), initialized=True
        )
        method_ctx = replace(class_ctx, has_this=True)
        for method in stmt.methods:
            kind = FN_INITIALIZER if method.name.lexeme == INIT else FN_METHOD
            self.resolve_function(method, kind, ctx=method_ctx)
        for method in stmt.private_methods:
            self.resolve_function(method, FN_METHOD, ctx=method_ctx)
        self.exit_scope()

        # Static methods close over the defining environment directly
        static_ctx = replace(class_ctx, has_this=False)
        for method in stmt.static_methods:
            self.resolve_function(method, FN_STATIC_METHOD, ctx=static_ctx)

    # ── Expressions ───────────────────────────────────────────

    def resolve_expr(self, expr: Expr, *, ctx: _Context) -> None:
        if isinstance(expr, Variable):
            self.resolve_local(expr, expr.name, read=True)
            return

        if isinstance(expr, Assign):
            self.resolve_expr(expr.value, ctx=ctx)
            self.resolve_local(expr, expr.name, read=False)
            return

        if isinstance(expr, SelfOp):
            self.resolve_local(expr, expr.name, read=True)
            return

        if isinstance(expr, This):
            if ctx.klass is None:
                self.error(
                    ThisOutsideClass("Can't use 'this' outside of a class.", expr.keyword)
                )
                return
            if not ctx.has_this:
                self.error(
                    ThisOutsideInstanceContext(
                        "Can't use 'this' in a static method.", expr.keyword
                    )
                )
                return
            self.resolve_local(expr, expr.keyword, read=True)
            return

        if isinstance(expr, Set):
            if (
                isinstance(expr.object, This)
                and ctx.klass is not None
                and not ctx.klass.declares_field(expr.name.lexeme)
            ):
                self.error(
                    UndeclaredFieldAssignment(
                        "Can't assign undeclared field '"
                        + expr.name.lexeme
                        + "' on class '"
                        + ctx.klass.name.lexeme
                        + "'.",
                        expr.name,
                    )
                )
            self.resolve_expr(expr.object, ctx=ctx)
            self.resolve_expr(expr.value, ctx=ctx)
            return

        if isinstance(expr, Get):
            self.resolve_expr(expr.object, ctx=ctx)
            return

        if isinstance(expr, Call):
            self.resolve_expr(expr.callee, ctx=ctx)
            for arg in expr.arguments:
                self.resolve_expr(arg, ctx=ctx)
            return

        if isinstance(expr, (Binary, Logical)):
            self.resolve_expr(expr.left, ctx=ctx)
            self.resolve_expr(expr.right, ctx=ctx)
            return

        if isinstance(expr, Conditional):
            self.resolve_expr(expr.condition, ctx=ctx)
            self.resolve_expr(expr.then_branch, ctx=ctx)
            self.resolve_expr(expr.else_branch, ctx=ctx)
            return

        if isinstance(expr, Unary):
            self.resolve_expr(expr.right, ctx=ctx)
            return

        if isinstance(expr, Grouping):
            self.resolve_expr(expr.expression, ctx=ctx)
            return

        if isinstance(expr, Literal):
            return

        raise TypeError("unhandled expression node: " + type(expr).__name__)


def resolve(statements: list[Stmt]) -> Resolution:
    """Resolve a whole program. Errors are collected, never raised."""
    resolver = Resolver()
    resolver.resolve_stmts(statements, ctx=_Context())
    return Resolution(resolver.locals, resolver.errors)


def analyze(
    source: str, *, repl: bool = False
) -> tuple[list[Stmt], dict[Expr, int], list[LoxError]]:
    """Tokenize, parse and resolve source.

    Returns the program, its hop-count table, and every front-end error found.
    The program must not be run unless the error list is empty.
    """
    try:
        tokens = tokenize(source)
    except TokenizeError as e:
        return [], {}, [e]
    try:
        parser = Parser(tokens, repl=repl)
        statements = parser.parse_program()
        if parser.errors:
            return statements, {}, list(parser.errors)
        resolution = resolve(statements)
    except RecursionError:
        return [], {}, [StackOverflow("Nesting too deep.")]
    return statements, resolution.locals, list(resolution.errors)
