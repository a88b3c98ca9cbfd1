"""
Formula expression engine.

Expressions are parsed into a small AST and evaluated against a map of named
numeric variables. Nothing is ever handed to eval(); the tokenizer only
accepts a fixed character set.

Grammar (lowest precedence first):

    conditional := or_expr [ "?" conditional ":" conditional ]
    or_expr     := and_expr { "||" and_expr }
    and_expr    := comparison { "&&" comparison }
    comparison  := additive [ ("<" | "<=" | ">" | ">=" | "==" | "!=") additive ]
    additive    := term { ("+" | "-") term }
    term        := unary { ("*" | "/") unary }
    unary       := ("-" | "+" | "!") unary | primary
    primary     := NUMBER | IDENTIFIER | "(" conditional ")"

Failure semantics:
- Unknown identifiers read as 0 and log a warning.
- Unsafe characters, syntax errors, nesting deeper than MAX_NESTING,
  division by zero and non-finite results raise FormulaEvaluationError
  internally. evaluate_expression() logs it and
  returns 0 unless strict=True, in which case the error propagates.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Mapping

from ..errors import FormulaEvaluationError
from ..number_utils import parse_number, round_half_up


logger = logging.getLogger(__name__)

VALUE_TYPE_PLACES = {
    "price": 0,
    "amount": 0,
    "weight": 4,
    "percent": 2,
}

_NUMBER_RE = re.compile(r"\d+(?:\.\d*)?|\.\d+")
_IDENT_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
_TWO_CHAR_OPS = ("&&", "||", "<=", ">=", "==", "!=")
_ONE_CHAR_OPS = set("+-*/()<>!?:")

MAX_NESTING = 64


# --------------------------------------------------------------------------
# Tokenizer
# --------------------------------------------------------------------------

@dataclass(frozen=True)
class Token:
    kind: str  # "num", "ident", "op", "end"
    value: str
    pos: int


def tokenize(expression: str) -> list[Token]:
    tokens: list[Token] = []
    i = 0
    n = len(expression)
    while i < n:
        c = expression[i]
        if c.isspace():
            i += 1
            continue

        m = _NUMBER_RE.match(expression, i)
        if m:
            tokens.append(Token("num", m.group(0), i))
            i = m.end()
            continue

        m = _IDENT_RE.match(expression, i)
        if m:
            tokens.append(Token("ident", m.group(0), i))
            i = m.end()
            continue

        pair = expression[i:i + 2]
        if pair in _TWO_CHAR_OPS:
            tokens.append(Token("op", pair, i))
            i += 2
            continue

        if c in _ONE_CHAR_OPS:
            tokens.append(Token("op", c, i))
            i += 1
            continue

        raise FormulaEvaluationError(
            f"Unsafe character {c!r} at position {i}",
            details={"expression": expression, "position": i},
        )

    tokens.append(Token("end", "", n))
    return tokens


# --------------------------------------------------------------------------
# AST
# --------------------------------------------------------------------------

class _Scope:
    """Variable lookup for one evaluation; remembers unknown names."""

    def __init__(self, variables: Mapping[str, object]):
        self.variables = variables
        self.unknown: list[str] = []

    def lookup(self, name: str) -> float:
        if name in self.variables:
            value = parse_number(self.variables[name])
            if value is not None:
                return value
        if name not in self.unknown:
            self.unknown.append(name)
        return 0.0


@dataclass(frozen=True)
class Number:
    value: float

    def evaluate(self, scope: _Scope) -> float:
        return self.value


@dataclass(frozen=True)
class Variable:
    name: str

    def evaluate(self, scope: _Scope) -> float:
        return scope.lookup(self.name)


@dataclass(frozen=True)
class Unary:
    op: str
    operand: object

    def evaluate(self, scope: _Scope) -> float:
        value = self.operand.evaluate(scope)
        if self.op == "-":
            return -value
        if self.op == "!":
            return 0.0 if value else 1.0
        return value


@dataclass(frozen=True)
class Binary:
    op: str
    left: object
    right: object

    def evaluate(self, scope: _Scope) -> float:
        op = self.op
        if op == "&&":
            return 1.0 if (self.left.evaluate(scope) and self.right.evaluate(scope)) else 0.0
        if op == "||":
            return 1.0 if (self.left.evaluate(scope) or self.right.evaluate(scope)) else 0.0

        a = self.left.evaluate(scope)
        b = self.right.evaluate(scope)
        if op == "+":
            return a + b
        if op == "-":
            return a - b
        if op == "*":
            return a * b
        if op == "/":
            if b == 0:
                raise FormulaEvaluationError("Division by zero")
            return a / b
        if op == "<":
            return float(a < b)
        if op == "<=":
            return float(a <= b)
        if op == ">":
            return float(a > b)
        if op == ">=":
            return float(a >= b)
        if op == "==":
            return float(a == b)
        if op == "!=":
            return float(a != b)
        raise FormulaEvaluationError(f"Unknown operator {op!r}")


@dataclass(frozen=True)
class Conditional:
    condition: object
    if_true: object
    if_false: object

    def evaluate(self, scope: _Scope) -> float:
        # Only the selected branch is evaluated
        if self.condition.evaluate(scope):
            return self.if_true.evaluate(scope)
        return self.if_false.evaluate(scope)


# --------------------------------------------------------------------------
# Parser
# --------------------------------------------------------------------------

_COMPARISON_OPS = ("<", "<=", ">", ">=", "==", "!=")


class _Parser:
    def __init__(self, expression: str):
        self.expression = expression
        self.tokens = tokenize(expression)
        self.pos = 0
        self.depth = 0

    @property
    def current(self) -> Token:
        return self.tokens[self.pos]

    def _advance(self) -> Token:
        tok = self.tokens[self.pos]
        self.pos += 1
        return tok

    def _accept(self, *ops: str) -> Token | None:
        tok = self.current
        if tok.kind == "op" and tok.value in ops:
            return self._advance()
        return None

    def _expect(self, op: str) -> Token:
        tok = self._accept(op)
        if tok is None:
            self._fail(f"expected {op!r}")
        return tok

    def _fail(self, reason: str):
        tok = self.current
        found = tok.value or "end of expression"
        raise FormulaEvaluationError(
            f"Syntax error: {reason}, found {found!r} at position {tok.pos}",
            details={"expression": self.expression, "position": tok.pos},
        )

    def parse(self):
        if self.current.kind == "end":
            self._fail("empty expression")
        node = self._conditional()
        if self.current.kind != "end":
            self._fail("unexpected token")
        return node

    def _enter(self):
        self.depth += 1
        if self.depth > MAX_NESTING:
            self._fail(f"nesting deeper than {MAX_NESTING} levels")

    def _conditional(self):
        self._enter()
        try:
            condition = self._or()
            if self._accept("?"):
                if_true = self._conditional()
                self._expect(":")
                if_false = self._conditional()
                return Conditional(condition, if_true, if_false)
            return condition
        finally:
            self.depth -= 1

    def _or(self):
        node = self._and()
        while self._accept("||"):
            node = Binary("||", node, self._and())
        return node

    def _and(self):
        node = self._comparison()
        while self._accept("&&"):
            node = Binary("&&", node, self._comparison())
        return node

    def _comparison(self):
        node = self._additive()
        tok = self._accept(*_COMPARISON_OPS)
        if tok:
            node = Binary(tok.value, node, self._additive())
        return node

    def _additive(self):
        node = self._term()
        while True:
            tok = self._accept("+", "-")
            if not tok:
                return node
            node = Binary(tok.value, node, self._term())

    def _term(self):
        node = self._unary()
        while True:
            tok = self._accept("*", "/")
            if not tok:
                return node
            node = Binary(tok.value, node, self._unary())

    def _unary(self):
        tok = self._accept("-", "+", "!")
        if not tok:
            return self._primary()
        self._enter()
        try:
            return Unary(tok.value, self._unary())
        finally:
            self.depth -= 1

    def _primary(self):
        tok = self.current
        if tok.kind == "num":
            self._advance()
            return Number(float(tok.value))
        if tok.kind == "ident":
            self._advance()
            return Variable(tok.value)
        if self._accept("("):
            node = self._conditional()
            self._expect(")")
            return node
        self._fail("expected a number, a name or '('")


@lru_cache(maxsize=512)
def parse_expression(expression: str):
    """Parse an expression into its AST (cached per expression string)."""
    return _Parser(expression).parse()


def identifiers(expression: str) -> set[str]:
    """Names referenced by an expression."""
    return {tok.value for tok in tokenize(expression) if tok.kind == "ident"}


def _evaluate(expression: str, scope: _Scope) -> float:
    try:
        result = parse_expression(expression).evaluate(scope)
    except RecursionError as exc:
        # long operator chains build deep trees even below MAX_NESTING
        raise FormulaEvaluationError(
            "Expression is too deeply nested to evaluate",
            details={"expression": expression},
        ) from exc
    if not math.isfinite(result):
        raise FormulaEvaluationError("Expression produced a non-finite result")
    return result


def evaluate_expression(
    expression: str,
    variables: Mapping[str, object],
    *,
    value_type: str | None = "amount",
    strict: bool = False,
    formula_name: str | None = None,
) -> float:
    """
    Evaluate an expression and round it for its value type.

    Returns 0.0 on failure unless strict is set.
    """
    scope = _Scope(variables)
    try:
        result = _evaluate(expression, scope)
    except FormulaEvaluationError as exc:
        exc.details.setdefault("expression", expression)
        if formula_name:
            exc.details.setdefault("formula", formula_name)
        logger.error(
            "Formula evaluation failed: %s (formula=%s, expression=%r)",
            exc.message, formula_name, expression,
        )
        if strict:
            raise
        return 0.0
    finally:
        for name in scope.unknown:
            logger.warning(
                "Unknown identifier %r in formula %s defaults to 0", name, formula_name or expression
            )

    places = VALUE_TYPE_PLACES.get(value_type or "")
    if places is None:
        return result
    return round_half_up(result, places)
