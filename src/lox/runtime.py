"""Lox runtime — tree-walking interpreter and the class/instance model."""

from __future__ import annotations

import io
import math
import sys
import time
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Callable, TextIO

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
from .environment import Environment
from .errors import (
    AmbiguousPlusOperands,
    ArityMismatch,
    InternalError,
    LoxError,
    LoxRuntimeError,
    MixedOrNonNumericOperands,
    NotAnInstance,
    NotANumber,
    NotCallable,
    PrivateAccessViolation,
    StackOverflow,
    UndefinedField,
    UndefinedProperty,
    UndefinedStaticMethod,
)
from .resolve import INIT, THIS, analyze
from .tokens import Token


# ============================================================
# Execution outcomes
# ============================================================

OUT_NORMAL: str = "normal"
OUT_RETURN: str = "return"
OUT_BREAK: str = "break"
OUT_CONTINUE: str = "continue"


@dataclass(frozen=True)
class Outcome:
    """How a statement finished. Only OUT_RETURN carries a value."""

    kind: str
    value: object = None


NORMAL = Outcome(OUT_NORMAL)
BROKE = Outcome(OUT_BREAK)
CONTINUED = Outcome(OUT_CONTINUE)


# ============================================================
# Callables
# ============================================================


class LoxCallable:
    def arity(self) -> int:
        raise NotImplementedError

    def call(self, interpreter: Interpreter, arguments: list[object]) -> object:
        raise NotImplementedError


class NativeFunction(LoxCallable):
    """Host-implemented function with a fixed arity."""

    def __init__(
        self,
        name: str,
        arity: int,
        fn: Callable[[Interpreter, list[object]], object],
    ):
        self.name: str = name
        self._arity: int = arity
        self._fn = fn

    def arity(self) -> int:
        return self._arity

    def call(self, interpreter: Interpreter, arguments: list[object]) -> object:
        return self._fn(interpreter, arguments)

    def __str__(self) -> str:
        return "<native fn>"


class LoxFunction(LoxCallable):
    def __init__(
        self,
        declaration: FunctionStmt,
        closure: Environment,
        is_initializer: bool = False,
    ):
        self.declaration: FunctionStmt = declaration
        self.closure: Environment = closure
        self.is_initializer: bool = is_initializer

    def bind(self, instance: LoxInstance) -> LoxFunction:
        """Method value for one instance; its body sees private members."""
        env = Environment(self.closure)
        env.define(THIS, LoxInstanceProxy(instance, allow_private=True))
        return LoxFunction(self.declaration, env, self.is_initializer)

    def arity(self) -> int:
        return len(self.declaration.params)

    def call(self, interpreter: Interpreter, arguments: list[object]) -> object:
        env = Environment(self.closure)
        for param, arg in zip(self.declaration.params, arguments):
            env.define(param.lexeme, confine(arg, env))
        outcome = interpreter.execute_block(self.declaration.body, env)
        if outcome.kind != OUT_NORMAL and outcome.kind != OUT_RETURN:
            raise InternalError(
                "'" + outcome.kind + "' escaped function " + self.declaration.name.lexeme
            )
        if self.is_initializer:
            this = self.closure.get_at(0, THIS)
            assert isinstance(this, LoxInstanceProxy)
            return this.public_view()
        return confine(outcome.value, interpreter.environment)

    def __str__(self) -> str:
        return "<fn " + self.declaration.name.lexeme + ">"

    def __repr__(self) -> str:
        return "LoxFunction(" + self.declaration.name.lexeme + ")"


class LoxClass(LoxCallable):
    def __init__(
        self,
        name: str,
        methods: dict[str, LoxFunction],
        static_methods: dict[str, LoxFunction],
        private_methods: dict[str, LoxFunction],
        fields: list[str],
        private_fields: list[str],
    ):
        self.name: str = name
        self.methods: dict[str, LoxFunction] = methods
        self.static_methods: dict[str, LoxFunction] = static_methods
        self.private_methods: dict[str, LoxFunction] = private_methods
        self.fields: list[str] = fields
        self.private_fields: list[str] = private_fields

    def find_method(self, name: str) -> LoxFunction | None:
        return self.methods.get(name)

    def get_static(self, name: Token) -> LoxFunction:
        method = self.static_methods.get(name.lexeme)
        if method is None:
            raise UndefinedStaticMethod(
                name,
                "Undefined static method '" + name.lexeme + "' on class " + self.name + ".",
            )
        return method

    def arity(self) -> int:
        init = self.find_method(INIT)
        if init is None:
            return 0
        return init.arity()

    def call(self, interpreter: Interpreter, arguments: list[object]) -> object:
        instance = LoxInstance(self)
        init = self.find_method(INIT)
        if init is not None:
            init.bind(instance).call(interpreter, arguments)
        return LoxInstanceProxy(instance, allow_private=False)

    def __str__(self) -> str:
        return self.name

    def __repr__(self) -> str:
        return "LoxClass(" + self.name + ")"


# ============================================================
# Instances
# ============================================================


class LoxInstance:
    """Field storage for one object. Reached only through a LoxInstanceProxy."""

    def __init__(self, klass: LoxClass):
        self.klass: LoxClass = klass
        self.fields: dict[str, object] = {name: None for name in klass.fields}
        self.private_fields: dict[str, object] = {
            name: None for name in klass.private_fields
        }

    def get(self, name: Token, allow_private: bool) -> object:
        key = name.lexeme
        if key in self.fields:
            return self.fields[key]
        if key in self.private_fields:
            if not allow_private:
                raise self._private(name)
            return self.private_fields[key]
        method = self.klass.methods.get(key)
        if method is not None:
            return method.bind(self)
        method = self.klass.private_methods.get(key)
        if method is not None:
            if not allow_private:
                raise self._private(name)
            return method.bind(self)
        raise UndefinedProperty(name, "Undefined property '" + key + "'.")

    def set(self, name: Token, value: object, allow_private: bool) -> None:
        key = name.lexeme
        if key in self.fields:
            self.fields[key] = value
            return
        if key in self.private_fields:
            if not allow_private:
                raise self._private(name)
            self.private_fields[key] = value
            return
        raise UndefinedField(
            name, "Undefined field '" + key + "' on " + self.klass.name + " instance."
        )

    def _private(self, name: Token) -> PrivateAccessViolation:
        return PrivateAccessViolation(
            name, "Can't access private member '" + name.lexeme + "' from outside its class."
        )

    def __str__(self) -> str:
        return self.klass.name + " instance"


class LoxInstanceProxy:
    """A view of an instance; allow_private decides what the holder can reach."""

    __slots__ = ("instance", "allow_private")

    def __init__(self, instance: LoxInstance, allow_private: bool):
        self.instance: LoxInstance = instance
        self.allow_private: bool = allow_private

    def get(self, name: Token) -> object:
        return self.instance.get(name, self.allow_private)

    def set(self, name: Token, value: object) -> None:
        self.instance.set(name, value, self.allow_private)

    def public_view(self) -> LoxInstanceProxy:
        if not self.allow_private:
            return self
        return LoxInstanceProxy(self.instance, allow_private=False)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, LoxInstanceProxy):
            return NotImplemented
        return self.instance is other.instance

    def __hash__(self) -> int:
        return id(self.instance)

    def __str__(self) -> str:
        return str(self.instance)

    def __repr__(self) -> str:
        kind = "private" if self.allow_private else "public"
        return "LoxInstanceProxy(" + self.instance.klass.name + ", " + kind + ")"


# ============================================================
# Value helpers
# ============================================================


def confine(value: object, env: Environment) -> object:
    """The form of value that may be stored in env.

    A private proxy stays private only in scopes nested inside a method bound
    to the same instance; anywhere else it is narrowed to the public view.
    """
    if not isinstance(value, LoxInstanceProxy) or not value.allow_private:
        return value
    scope: Environment | None = env
    while scope is not None:
        this = scope.values.get(THIS)
        if isinstance(this, LoxInstanceProxy) and this.instance is value.instance:
            return value
        scope = scope.enclosing
    return value.public_view()


def is_truthy(value: object) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    return True


def is_equal(a: object, b: object) -> bool:
    if a is None:
        return b is None
    # bool is an int subclass in Python; Lox never equates true and 1
    if type(a) is not type(b):
        return False
    return a == b


def stringify(value: object) -> str:
    if value is None:
        return "nil"
    if value is True:
        return "true"
    if value is False:
        return "false"
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        if math.isinf(value):
            return "Infinity" if value > 0 else "-Infinity"
        return _number_text(value)
    return str(value)


def _number_text(value: float) -> str:
    magnitude = abs(value)
    if magnitude == 0.0 or 1e-3 <= magnitude < 1e7:
        text = repr(value)
        if text.endswith(".0"):
            text = text[:-2]
        return text
    # outside that range numbers print as d.dddE<exp>, e.g. 1.0E23
    sign, digits, exponent = Decimal(repr(value)).as_tuple()
    assert isinstance(exponent, int)
    head = str(digits[0])
    tail = "".join(str(d) for d in digits[1:]).rstrip("0") or "0"
    power = exponent + len(digits) - 1
    return ("-" if sign else "") + head + "." + tail + "E" + str(power)


def _divide(a: float, b: float) -> float:
    if b == 0.0:
        if a == 0.0 or math.isnan(a):
            return math.nan
        return math.copysign(math.inf, a) * math.copysign(1.0, b)
    return a / b


def _clock(interpreter: Interpreter, arguments: list[object]) -> object:
    return time.time()


# ============================================================
# Interpreter
# ============================================================


class Interpreter:
    """Executes resolved programs.

    One interpreter keeps its globals across calls to ``interpret``, which is
    what lets a REPL session build on earlier lines. Hop-count tables from
    successive resolutions are merged.
    """

    def __init__(self, stdout: TextIO | None = None):
        self.stdout: TextIO | None = stdout
        self.globals: Environment = Environment()
        self.globals.define("clock", NativeFunction("clock", 0, _clock))
        self.environment: Environment = self.globals
        self.locals: dict[Expr, int] = {}

    def interpret(
        self, statements: list[Stmt], locals: dict[Expr, int] | None = None
    ) -> None:
        """Run top-level statements; the first runtime error propagates."""
        if locals is not None:
            self.locals.update(locals)
        for stmt in statements:
            outcome = self.execute(stmt)
            if outcome.kind != OUT_NORMAL:
                raise InternalError("'" + outcome.kind + "' escaped to the top level")

    def write(self, text: str) -> None:
        out = self.stdout if self.stdout is not None else sys.stdout
        out.write(text + "\n")

    # ---- Statements --------------------------------------------------------

    def execute_block(self, statements: list[Stmt], env: Environment) -> Outcome:
        previous = self.environment
        self.environment = env
        try:
            for stmt in statements:
                outcome = self.execute(stmt)
                if outcome.kind != OUT_NORMAL:
                    return outcome
            return NORMAL
        finally:
            self.environment = previous

    def execute(self, stmt: Stmt) -> Outcome:
        if isinstance(stmt, ExpressionStmt):
            self.evaluate(stmt.expression)
            return NORMAL

        if isinstance(stmt, PrintStmt):
            self.write(stringify(self.evaluate(stmt.expression)))
            return NORMAL

        if isinstance(stmt, VarStmt):
            value = None
            if stmt.initializer is not None:
                value = self.evaluate(stmt.initializer)
            value = confine(value, self.environment)
            self.environment.define(stmt.name.lexeme, value)
            return NORMAL

        if isinstance(stmt, BlockStmt):
            return self.execute_block(stmt.statements, Environment(self.environment))

        if isinstance(stmt, IfStmt):
            if is_truthy(self.evaluate(stmt.condition)):
                return self.execute(stmt.then_branch)
            if stmt.else_branch is not None:
                return self.execute(stmt.else_branch)
            return NORMAL

        if isinstance(stmt, WhileStmt):
            while is_truthy(self.evaluate(stmt.condition)):
                outcome = self.execute(stmt.body)
                if outcome.kind == OUT_BREAK:
                    break
                if outcome.kind == OUT_RETURN:
                    return outcome
            return NORMAL

        if isinstance(stmt, FunctionStmt):
            fn = LoxFunction(stmt, self.environment)
            self.environment.define(stmt.name.lexeme, fn)
            return NORMAL

        if isinstance(stmt, ReturnStmt):
            value = None
            if stmt.value is not None:
                value = self.evaluate(stmt.value)
            return Outcome(OUT_RETURN, value)

        if isinstance(stmt, TerminateStmt):
            if stmt.keyword.type == "break":
                return BROKE
            return CONTINUED

        if isinstance(stmt, ClassStmt):
            self.execute_class(stmt)
            return NORMAL

        raise InternalError("unhandled statement node: " + type(stmt).__name__)

    def execute_class(self, stmt: ClassStmt) -> None:
        self.environment.define(stmt.name.lexeme, None)
        env = self.environment
        methods: dict[str, LoxFunction] = {}
        for m in stmt.methods:
            methods[m.name.lexeme] = LoxFunction(m, env, m.name.lexeme == INIT)
        static_methods: dict[str, LoxFunction] = {}
        for m in stmt.static_methods:
            static_methods[m.name.lexeme] = LoxFunction(m, env)
        private_methods: dict[str, LoxFunction] = {}
        for m in stmt.private_methods:
            private_methods[m.name.lexeme] = LoxFunction(m, env)
        klass = LoxClass(
            stmt.name.lexeme,
            methods,
            static_methods,
            private_methods,
            [tok.lexeme for tok in stmt.fields],
            [tok.lexeme for tok in stmt.private_fields],
        )
        self.environment.assign(stmt.name, klass)

    # ---- Expressions -------------------------------------------------------

    def evaluate(self, expr: Expr) -> object:
        if isinstance(expr, Literal):
            return expr.value

        if isinstance(expr, Grouping):
            return self.evaluate(expr.expression)

        if isinstance(expr, Variable):
            return self.look_up_variable(expr.name, expr)

        if isinstance(expr, This):
            return self.look_up_variable(expr.keyword, expr)

        if isinstance(expr, Assign):
            value = self.evaluate(expr.value)
            self.assign_variable(expr.name, expr, value)
            return value

        if isinstance(expr, SelfOp):
            return self.eval_self_op(expr)

        if isinstance(expr, Unary):
            right = self.evaluate(expr.right)
            if expr.operator.lexeme == "!":
                return not is_truthy(right)
            if not isinstance(right, float):
                raise NotANumber(expr.operator, "Operand must be a number.")
            return -right

        if isinstance(expr, Binary):
            return self.eval_binary(expr)

        if isinstance(expr, Logical):
            left = self.evaluate(expr.left)
            if expr.operator.lexeme == "or":
                if is_truthy(left):
                    return left
            elif not is_truthy(left):
                return left
            return self.evaluate(expr.right)

        if isinstance(expr, Conditional):
            if is_truthy(self.evaluate(expr.condition)):
                return self.evaluate(expr.then_branch)
            return self.evaluate(expr.else_branch)

        if isinstance(expr, Call):
            callee = self.evaluate(expr.callee)
            arguments = [self.evaluate(arg) for arg in expr.arguments]
            if not isinstance(callee, LoxCallable):
                raise NotCallable(expr.paren, "Can only call functions and classes.")
            if len(arguments) != callee.arity():
                raise ArityMismatch(expr.paren, callee.arity(), len(arguments))
            return callee.call(self, arguments)

        if isinstance(expr, Get):
            obj = self.evaluate(expr.object)
            if isinstance(obj, LoxInstanceProxy):
                return obj.get(expr.name)
            if isinstance(obj, LoxClass):
                return obj.get_static(expr.name)
            raise NotAnInstance(expr.name, "Only instances have properties.")

        if isinstance(expr, Set):
            obj = self.evaluate(expr.object)
            if not isinstance(obj, LoxInstanceProxy):
                raise NotAnInstance(expr.name, "Only instances have fields.")
            value = self.evaluate(expr.value)
            if isinstance(value, LoxInstanceProxy):
                obj.set(expr.name, value.public_view())
            else:
                obj.set(expr.name, value)
            return value

        raise InternalError("unhandled expression node: " + type(expr).__name__)

    def eval_binary(self, expr: Binary) -> object:
        left = self.evaluate(expr.left)
        right = self.evaluate(expr.right)
        op = expr.operator.lexeme
        if op == "==":
            return is_equal(left, right)
        if op == "!=":
            return not is_equal(left, right)
        if op == "+":
            if isinstance(left, float) and isinstance(right, float):
                return left + right
            if isinstance(left, str) and isinstance(right, str):
                return left + right
            raise AmbiguousPlusOperands(
                expr.operator, "Operands must be two numbers or two strings."
            )
        if not isinstance(left, float) or not isinstance(right, float):
            raise MixedOrNonNumericOperands(expr.operator, "Operands must be numbers.")
        if op == "-":
            return left - right
        if op == "*":
            return left * right
        if op == "/":
            return _divide(left, right)
        if op == ">":
            return left > right
        if op == ">=":
            return left >= right
        if op == "<":
            return left < right
        if op == "<=":
            return left <= right
        raise InternalError("unknown binary operator: " + op)

    def eval_self_op(self, expr: SelfOp) -> object:
        current = self.look_up_variable(expr.name, expr)
        if not isinstance(current, float):
            raise NotANumber(
                expr.operator, "Operand of '" + expr.operator.lexeme + "' must be a number."
            )
        if expr.operator.lexeme == "++":
            updated = current + 1.0
        else:
            updated = current - 1.0
        self.assign_variable(expr.name, expr, updated)
        if expr.prefix:
            return updated
        return current

    # ---- Variables ---------------------------------------------------------

    def look_up_variable(self, name: Token, expr: Expr) -> object:
        distance = self.locals.get(expr)
        if distance is not None:
            return self.environment.get_at(distance, name.lexeme)
        return self.globals.get(name)

    def assign_variable(self, name: Token, expr: Expr, value: object) -> None:
        distance = self.locals.get(expr)
        if distance is not None:
            target = self.environment.ancestor(distance)
            self.environment.assign_at(distance, name, confine(value, target))
        else:
            self.globals.assign(name, confine(value, self.globals))


# ============================================================
# Whole-program entry point
# ============================================================


EXIT_OK: int = 0
EXIT_STATIC: int = 65
EXIT_RUNTIME: int = 70


@dataclass
class RunResult:
    exit_code: int
    stdout: str
    errors: list[LoxError] = field(default_factory=list)


def run(source: str) -> RunResult:
    """Tokenize, parse, resolve and run a Lox program, capturing its output."""
    statements, locals, errors = analyze(source)
    if errors:
        return RunResult(EXIT_STATIC, "", errors)
    out = io.StringIO()
    interp = Interpreter(stdout=out)
    try:
        interp.interpret(statements, locals)
    except LoxRuntimeError as e:
        return RunResult(EXIT_RUNTIME, out.getvalue(), [e])
    except RecursionError:
        overflow = StackOverflow("Stack overflow.")
        return RunResult(EXIT_RUNTIME, out.getvalue(), [overflow])
    return RunResult(EXIT_OK, out.getvalue(), [])
