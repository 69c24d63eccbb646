"""Lox parser — recursive descent, one method per grammar production."""

from __future__ import annotations

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
from .errors import LoxError
from .tokens import TK_EOF, TK_IDENT, TK_NUMBER, TK_OP, TK_STRING, Token

MAX_ARGS = 255

EQUALITY_OPS: set[str] = {"!=", "=="}

COMPARE_OPS: set[str] = {">", ">=", "<", "<="}

# Statement keywords the parser resynchronizes on after an error
SYNC_KEYWORDS: set[str] = {
    "class",
    "fun",
    "var",
    "if",
    "while",
    "print",
    "return",
}


class ParseError(LoxError):
    """Parse error with location info."""

    def __init__(self, msg: str, token: Token):
        super().__init__(msg, token)


class Parser:
    """Recursive descent parser for Lox.

    Errors are collected in ``errors``; after each one the parser skips to the
    next statement boundary and carries on, so one pass reports them all.
    In ``repl`` mode the trailing ``;`` of the last statement is optional and a
    bare trailing expression becomes a print statement.
    """

    def __init__(self, tokens: list[Token], *, repl: bool = False):
        self.tokens: list[Token] = tokens
        self.pos: int = 0
        self.repl: bool = repl
        self.errors: list[ParseError] = []

    # ── Helpers ──────────────────────────────────────────────

    def current(self) -> Token:
        return self.tokens[self.pos]

    def previous(self) -> Token:
        return self.tokens[self.pos - 1]

    def advance(self) -> Token:
        tok = self.tokens[self.pos]
        if tok.type != TK_EOF:
            self.pos += 1
        return tok

    def at(self, value: str) -> bool:
        tok = self.current()
        if tok.type == TK_STRING or tok.type == TK_NUMBER or tok.type == TK_IDENT:
            return False
        return tok.lexeme == value

    def at_type(self, type_: str) -> bool:
        return self.current().type == type_

    def at_end(self) -> bool:
        return self.current().type == TK_EOF

    def match(self, *values: str) -> bool:
        for value in values:
            if self.at(value):
                self.advance()
                return True
        return False

    def expect(self, value: str, msg: str) -> Token:
        if self.at(value):
            return self.advance()
        raise self.error(self.current(), msg)

    def expect_ident(self, msg: str) -> Token:
        if self.at_type(TK_IDENT):
            return self.advance()
        raise self.error(self.current(), msg)

    def error(self, tok: Token, msg: str) -> ParseError:
        err = ParseError(msg, tok)
        self.errors.append(err)
        return err

    def synchronize(self) -> None:
        self.advance()
        while not self.at_end():
            if self.previous().lexeme == ";" and self.previous().type == TK_OP:
                return
            if self.current().type in SYNC_KEYWORDS:
                return
            self.advance()

    def _expect_terminator(self, msg: str) -> None:
        if self.repl and self.at_end():
            return
        self.expect(";", msg)

    # ── Top Level ────────────────────────────────────────────

    def parse_program(self) -> list[Stmt]:
        statements: list[Stmt] = []
        while not self.at_end():
            stmt = self.parse_declaration()
            if stmt is not None:
                statements.append(stmt)
        return statements

    def parse_declaration(self) -> Stmt | None:
        try:
            if self.match("class"):
                return self.parse_class_decl()
            if self.match("fun"):
                return self.parse_function(self.expect_ident("Expect function name."))
            if self.match("var"):
                return self.parse_var_decl()
            return self.parse_stmt()
        except ParseError:
            self.synchronize()
            return None

    def parse_class_decl(self) -> ClassStmt:
        name = self.expect_ident("Expect class name.")
        self.expect("{", "Expect '{' before class body.")
        methods: list[FunctionStmt] = []
        static_methods: list[FunctionStmt] = []
        private_methods: list[FunctionStmt] = []
        fields: list[Token] = []
        private_fields: list[Token] = []
        while not self.at("}") and not self.at_end():
            if self.match("static"):
                static_methods.append(
                    self.parse_function(self.expect_ident("Expect method name."))
                )
                continue
            private = self.match("private")
            member = self.expect_ident("Expect class member name.")
            if self.match(";"):
                if private:
                    private_fields.append(member)
                else:
                    fields.append(member)
            elif private:
                private_methods.append(self.parse_function(member))
            else:
                methods.append(self.parse_function(member))
        self.expect("}", "Expect '}' after class body.")
        return ClassStmt(
            name, methods, static_methods, private_methods, fields, private_fields
        )

    def parse_function(self, name: Token) -> FunctionStmt:
        """Function = IDENT '(' Params? ')' Block — name already consumed."""
        self.expect("(", "Expect '(' after function name.")
        params: list[Token] = []
        if not self.at(")"):
            params.append(self.expect_ident("Expect parameter name."))
            while self.match(","):
                if len(params) >= MAX_ARGS:
                    self.error(self.current(), "Can't have more than 255 parameters.")
                params.append(self.expect_ident("Expect parameter name."))
        self.expect(")", "Expect ')' after parameters.")
        self.expect("{", "Expect '{' before function body.")
        body = self.parse_block()
        return FunctionStmt(name, params, body)

    def parse_var_decl(self) -> VarStmt:
        name = self.expect_ident("Expect variable name.")
        initializer: Expr | None = None
        if self.match("="):
            initializer = self.parse_expr()
        self._expect_terminator("Expect ';' after variable declaration.")
        return VarStmt(name, initializer)

    # ── Statements ───────────────────────────────────────────

    def parse_stmt(self) -> Stmt:
        if self.match("if"):
            return self.parse_if_stmt()
        if self.match("while"):
            return self.parse_while_stmt()
        if self.match("print"):
            return self.parse_print_stmt()
        if self.match("return"):
            return self.parse_return_stmt()
        if self.match("break", "continue"):
            keyword = self.previous()
            self.expect(";", "Expect ';' after '" + keyword.lexeme + "'.")
            return TerminateStmt(keyword)
        if self.match("{"):
            return BlockStmt(self.parse_block())
        return self.parse_expr_stmt()

    def parse_if_stmt(self) -> IfStmt:
        self.expect("(", "Expect '(' after 'if'.")
        cond = self.parse_expr()
        self.expect(")", "Expect ')' after if condition.")
        then_branch = self.parse_stmt()
        else_branch: Stmt | None = None
        if self.match("else"):
            else_branch = self.parse_stmt()
        return IfStmt(cond, then_branch, else_branch)

    def parse_while_stmt(self) -> WhileStmt:
        self.expect("(", "Expect '(' after 'while'.")
        cond = self.parse_expr()
        self.expect(")", "Expect ')' after condition.")
        body = self.parse_stmt()
        return WhileStmt(cond, body)

    def parse_print_stmt(self) -> PrintStmt:
        value = self.parse_expr()
        self._expect_terminator("Expect ';' after value.")
        return PrintStmt(value)

    def parse_return_stmt(self) -> ReturnStmt:
        keyword = self.previous()
        value: Expr | None = None
        if not self.at(";"):
            value = self.parse_expr()
        self.expect(";", "Expect ';' after return value.")
        return ReturnStmt(keyword, value)

    def parse_block(self) -> list[Stmt]:
        """Block body — the opening '{' is already consumed."""
        statements: list[Stmt] = []
        while not self.at("}") and not self.at_end():
            stmt = self.parse_declaration()
            if stmt is not None:
                statements.append(stmt)
        self.expect("}", "Expect '}' after block.")
        return statements

    def parse_expr_stmt(self) -> Stmt:
        expr = self.parse_expr()
        if self.repl and self.at_end():
            return PrintStmt(expr)
        self.expect(";", "Expect ';' after expression.")
        return ExpressionStmt(expr)

    # ── Expressions ──────────────────────────────────────────

    def parse_expr(self) -> Expr:
        return self.parse_assignment()

    def parse_assignment(self) -> Expr:
        """Assignment = ( Call '.' )? IDENT '=' Assignment | Or"""
        expr = self.parse_or()
        if self.match("="):
            equals = self.previous()
            value = self.parse_assignment()
            if isinstance(expr, Variable):
                return Assign(expr.name, value)
            if isinstance(expr, Get):
                return Set(expr.object, expr.name, value)
            # Reported, but the expression is still usable
            self.error(equals, "Invalid assignment target.")
        return expr

    def parse_or(self) -> Expr:
        """Or = And ( 'or' And )*"""
        left = self.parse_and()
        while self.match("or"):
            op = self.previous()
            right = self.parse_and()
            left = Logical(left, op, right)
        return left

    def parse_and(self) -> Expr:
        """And = Equality ( 'and' Equality )*"""
        left = self.parse_equality()
        while self.match("and"):
            op = self.previous()
            right = self.parse_equality()
            left = Logical(left, op, right)
        return left

    def parse_equality(self) -> Expr:
        """Equality = Conditional ( ( '!=' | '==' ) Conditional )*"""
        left = self.parse_conditional()
        while self.match(*EQUALITY_OPS):
            op = self.previous()
            right = self.parse_conditional()
            left = Binary(left, op, right)
        return left

    def parse_conditional(self) -> Expr:
        """Conditional = Comparison ( '?' Conditional ':' Conditional )?"""
        expr = self.parse_comparison()
        if self.match("?"):
            then_branch = self.parse_conditional()
            self.expect(":", "Expect ':' after then branch of conditional.")
            else_branch = self.parse_conditional()
            return Conditional(expr, then_branch, else_branch)
        return expr

    def parse_comparison(self) -> Expr:
        """Comparison = Term ( ( '>' | '>=' | '<' | '<=' ) Term )*"""
        left = self.parse_term()
        while self.match(*COMPARE_OPS):
            op = self.previous()
            right = self.parse_term()
            left = Binary(left, op, right)
        return left

    def parse_term(self) -> Expr:
        """Term = Factor ( ( '-' | '+' ) Factor )*"""
        left = self.parse_factor()
        while self.match("-", "+"):
            op = self.previous()
            right = self.parse_factor()
            left = Binary(left, op, right)
        return left

    def parse_factor(self) -> Expr:
        """Factor = Unary ( ( '/' | '*' ) Unary )*"""
        left = self.parse_unary()
        while self.match("/", "*"):
            op = self.previous()
            right = self.parse_unary()
            left = Binary(left, op, right)
        return left

    def parse_unary(self) -> Expr:
        """Unary = ( '!' | '-' ) Unary | ( '++' | '--' ) IDENT | Postfix"""
        if self.match("!", "-"):
            op = self.previous()
            right = self.parse_unary()
            return Unary(op, right)
        if self.match("++", "--"):
            op = self.previous()
            name = self.expect_ident("Expect variable name after '" + op.lexeme + "'.")
            return SelfOp(name, op, True)
        return self.parse_postfix()

    def parse_postfix(self) -> Expr:
        """Postfix = Call ( '++' | '--' )?"""
        expr = self.parse_call()
        if self.match("++", "--"):
            op = self.previous()
            if not isinstance(expr, Variable):
                raise self.error(op, "Invalid increment target.")
            return SelfOp(expr.name, op, False)
        return expr

    def parse_call(self) -> Expr:
        """Call = Primary ( '(' Args? ')' | '.' IDENT )*"""
        expr = self.parse_primary()
        while True:
            if self.match("("):
                expr = self.finish_call(expr)
            elif self.match("."):
                name = self.expect_ident("Expect property name after '.'.")
                expr = Get(expr, name)
            else:
                break
        return expr

    def finish_call(self, callee: Expr) -> Call:
        args: list[Expr] = []
        if not self.at(")"):
            args.append(self.parse_expr())
            while self.match(","):
                if len(args) >= MAX_ARGS:
                    self.error(self.current(), "Can't have more than 255 arguments.")
                args.append(self.parse_expr())
        paren = self.expect(")", "Expect ')' after arguments.")
        return Call(callee, paren, args)

    def parse_primary(self) -> Expr:
        """Parse a primary expression."""
        if self.match("false"):
            return Literal(False)
        if self.match("true"):
            return Literal(True)
        if self.match("nil"):
            return Literal(None)
        if self.at_type(TK_NUMBER) or self.at_type(TK_STRING):
            return Literal(self.advance().literal)
        if self.match("this"):
            return This(self.previous())
        if self.at_type(TK_IDENT):
            return Variable(self.advance())
        if self.match("("):
            expr = self.parse_expr()
            self.expect(")", "Expect ')' after expression.")
            return Grouping(expr)
        raise self.error(self.current(), "Expect expression.")
