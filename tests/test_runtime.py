"""Tests for the interpreter, value helpers and the class/instance model."""

import io
import math

import pytest

from lox import ParseError, check, parse, run
from lox.ast import TerminateStmt
from lox.errors import (
    InternalError,
    PrivateAccessViolation,
    StackOverflow,
    UndefinedVariable,
)
from lox.resolve import analyze
from lox.runtime import (
    Interpreter,
    LoxClass,
    LoxFunction,
    LoxInstanceProxy,
    is_equal,
    is_truthy,
    stringify,
)
from lox.tokens import TK_IDENT, Token


def tok(name: str) -> Token:
    return Token(TK_IDENT, name, None, 1)


def interpret(source: str) -> tuple[Interpreter, str]:
    statements, locals, errors = analyze(source)
    assert errors == []
    out = io.StringIO()
    interp = Interpreter(stdout=out)
    interp.interpret(statements, locals)
    return interp, out.getvalue()


# ---------------------------------------------------------------------------
# Value helpers
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "value,text",
    [
        (None, "nil"),
        (True, "true"),
        (False, "false"),
        (3.0, "3"),
        (-0.5, "-0.5"),
        (math.inf, "Infinity"),
        (-math.inf, "-Infinity"),
        (math.nan, "NaN"),
        (9999999.0, "9999999"),
        (0.001, "0.001"),
        (1e7, "1.0E7"),
        (1e23, "1.0E23"),
        (12345678.9, "1.23456789E7"),
        (0.0001, "1.0E-4"),
        (-2.5e-5, "-2.5E-5"),
        ("text", "text"),
    ],
)
def test_stringify(value, text):
    assert stringify(value) == text


def test_truthiness():
    assert not is_truthy(None)
    assert not is_truthy(False)
    assert is_truthy(0.0)
    assert is_truthy("")
    assert is_truthy(True)


def test_equality_never_coerces():
    assert is_equal(None, None)
    assert not is_equal(None, False)
    assert not is_equal(True, 1.0)
    assert not is_equal(0.0, False)
    assert not is_equal("1", 1.0)
    assert is_equal(2.0, 2.0)


# ---------------------------------------------------------------------------
# Whole programs
# ---------------------------------------------------------------------------


def test_run_captures_output():
    result = run('print "hi";\nprint 1 + 1;')
    assert result.exit_code == 0
    assert result.stdout == "hi\n2\n"
    assert result.errors == []


def test_run_static_error_exit_code():
    result = run('print "never";\nreturn;')
    assert result.exit_code == 65
    assert result.stdout == ""
    assert [e.kind for e in result.errors] == ["ReturnOutsideFunction"]


def test_run_runtime_error_keeps_prior_output():
    result = run('print "first";\nprint nope;\nprint "never";')
    assert result.exit_code == 70
    assert result.stdout == "first\n"
    assert isinstance(result.errors[0], UndefinedVariable)
    assert str(result.errors[0]) == (
        "[line 2] Error at 'nope': Undefined variable 'nope'."
    )


def test_run_reports_runaway_recursion():
    result = run("fun down(n) {\n  return down(n + 1);\n}\nprint \"start\";\ndown(0);")
    assert result.exit_code == 70
    assert result.stdout == "start\n"
    assert [e.kind for e in result.errors] == ["StackOverflow"]


def test_deep_nesting_is_a_static_error():
    source = "print " + "(" * 600 + "1" + ")" * 600 + ";"
    result = run(source)
    assert result.exit_code == 65
    assert isinstance(result.errors[0], StackOverflow)
    assert [e.kind for e in check(source)] == ["StackOverflow"]


def test_parse_raises_first_error():
    with pytest.raises(ParseError) as info:
        parse("print ;\nvar = 1;")
    assert "Expect expression." in str(info.value)


def test_check_collects_errors():
    assert check("print 1;") == []
    assert [e.kind for e in check("{ var a; }")] == ["UnusedVariable"]


def test_environment_restored_after_runtime_error():
    statements, locals, errors = analyze("{\n  {\n    print nope;\n  }\n}")
    assert errors == []
    interp = Interpreter(stdout=io.StringIO())
    with pytest.raises(UndefinedVariable):
        interp.interpret(statements, locals)
    assert interp.environment is interp.globals


def test_globals_persist_across_interpret_calls():
    interp = Interpreter(stdout=io.StringIO())
    for line in ["var a = 1;", "fun f() { return a + 1; }", "print f();"]:
        statements, locals, errors = analyze(line)
        assert errors == []
        interp.interpret(statements, locals)
    assert interp.stdout.getvalue() == "2\n"


def test_stray_break_is_an_internal_error():
    stmt = TerminateStmt(Token("break", "break", None, 1))
    interp = Interpreter(stdout=io.StringIO())
    with pytest.raises(InternalError):
        interp.interpret([stmt], {})


def test_division_by_zero_follows_ieee():
    _, out = interpret("print 1 / 0;\nprint -1 / 0;\nprint 0 / 0;\nprint 1 / -0;")
    assert out.split("\n")[:4] == ["Infinity", "-Infinity", "NaN", "-Infinity"]


def test_clock_returns_seconds():
    interp, _ = interpret("var t = clock();")
    assert isinstance(interp.globals.values["t"], float)


# ---------------------------------------------------------------------------
# Classes and instances
# ---------------------------------------------------------------------------


CLASS_SOURCE = """class Account {
  owner;
  private balance;
  init(owner) {
    this.owner = owner;
    this.balance = 0;
  }
  deposit(n) {
    this.balance = this.balance + n;
    return this.balance;
  }
  static open(owner) {
    return Account(owner);
  }
  private audit() {
    return this.balance;
  }
}
var acct = Account("ann");
acct.deposit(5);
"""


def test_construction_returns_public_proxy():
    interp, _ = interpret(CLASS_SOURCE)
    acct = interp.globals.values["acct"]
    assert isinstance(acct, LoxInstanceProxy)
    assert not acct.allow_private
    assert acct.instance.fields == {"owner": "ann"}
    assert acct.instance.private_fields == {"balance": 5.0}


def test_public_proxy_rejects_private_members():
    interp, _ = interpret(CLASS_SOURCE)
    acct = interp.globals.values["acct"]
    with pytest.raises(PrivateAccessViolation):
        acct.get(tok("balance"))
    with pytest.raises(PrivateAccessViolation):
        acct.get(tok("audit"))
    with pytest.raises(PrivateAccessViolation):
        acct.set(tok("balance"), 1.0)


def test_private_proxy_reaches_private_members():
    interp, _ = interpret(CLASS_SOURCE)
    inside = LoxInstanceProxy(interp.globals.values["acct"].instance, allow_private=True)
    assert inside.get(tok("balance")) == 5.0
    assert isinstance(inside.get(tok("audit")), LoxFunction)
    assert inside.public_view().allow_private is False
    assert inside.public_view() == inside


def test_bound_methods_are_fresh_per_access():
    interp, _ = interpret(CLASS_SOURCE)
    acct = interp.globals.values["acct"]
    first = acct.get(tok("deposit"))
    second = acct.get(tok("deposit"))
    assert first is not second
    assert first.closure is not second.closure
    this_a = first.closure.get_at(0, "this")
    this_b = second.closure.get_at(0, "this")
    assert this_a.allow_private and this_b.allow_private
    assert this_a.instance is this_b.instance is acct.instance


def test_class_maps_and_arity():
    interp, _ = interpret(CLASS_SOURCE)
    klass = interp.globals.values["Account"]
    assert isinstance(klass, LoxClass)
    assert sorted(klass.methods) == ["deposit", "init"]
    assert sorted(klass.static_methods) == ["open"]
    assert sorted(klass.private_methods) == ["audit"]
    assert klass.fields == ["owner"]
    assert klass.private_fields == ["balance"]
    assert klass.arity() == 1
    assert klass.methods["init"].is_initializer
    assert not klass.static_methods["open"].is_initializer


def test_explicit_init_call_returns_public_proxy():
    interp, _ = interpret(CLASS_SOURCE + 'var again = acct.init("bob");\n')
    again = interp.globals.values["again"]
    assert isinstance(again, LoxInstanceProxy)
    assert not again.allow_private
    assert again == interp.globals.values["acct"]
    assert again.instance.private_fields == {"balance": 0.0}


def test_static_method_constructs_instances():
    _, out = interpret(CLASS_SOURCE + 'print Account.open("cy").owner;\n')
    assert out == "cy\n"


LEAKY_SOURCE = """var leaked;
class Vault {
  private secret;
  init() {
    this.secret = 42;
    leaked = this;
  }
  me() {
    return this;
  }
  peek() {
    var self = this;
    return self.secret + this.me().secret;
  }
}
var v = Vault();
var returned = v.me();
"""


def test_returned_this_is_public():
    interp, _ = interpret(LEAKY_SOURCE)
    returned = interp.globals.values["returned"]
    assert isinstance(returned, LoxInstanceProxy)
    assert not returned.allow_private
    with pytest.raises(PrivateAccessViolation):
        returned.get(tok("secret"))


def test_this_stored_in_global_is_public():
    interp, _ = interpret(LEAKY_SOURCE)
    leaked = interp.globals.values["leaked"]
    assert not leaked.allow_private
    assert leaked == interp.globals.values["v"]
    with pytest.raises(PrivateAccessViolation):
        leaked.set(tok("secret"), 99.0)


def test_this_stays_private_within_its_methods():
    _, out = interpret(LEAKY_SOURCE + "print v.peek();\n")
    assert out == "84\n"
