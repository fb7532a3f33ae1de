"""
scripts/evaluation/conditions.py — Rule condition language.

A rule condition is a small boolean expression evaluated against one check's
raw output plus the run's named thresholds:

    OffsetSeconds > MaxTimeOffsetSeconds
    Count -gt 0 -and Any(Status == 'Failed')
    NOT IsHealthy OR (QueueLength >= 50 AND State != "Running")

Conditions are tokenized, parsed into an expression tree and interpreted by
the node classes below. Nothing is handed to eval().

Name resolution: thresholds first, then fields of a scalar record. Against a
sequence output only the collection forms resolve: ``Count`` (element count)
and ``Any(field <op> value)`` (at least one element satisfies the comparison).

evaluate_condition() never raises: syntax errors, unresolved names and type
mismatches all evaluate to False and are logged at DEBUG level.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum, auto
from functools import lru_cache
from typing import Any

from scripts.evaluation import RawOutput, ScalarOutput, SequenceOutput, to_raw_output

logger = logging.getLogger(__name__)


class ConditionError(ValueError):
    """Raised while parsing or interpreting a condition."""


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------


class TokenKind(Enum):
    NUMBER = auto()
    STRING = auto()
    LITERAL = auto()  # true / false / null
    NAME = auto()
    COUNT = auto()
    ANY = auto()
    CMP = auto()
    AND = auto()
    OR = auto()
    NOT = auto()
    LPAREN = auto()
    RPAREN = auto()
    EOF = auto()


@dataclass(frozen=True)
class Token:
    kind: TokenKind
    value: Any
    pos: int


_TOKEN_RE = re.compile(
    r"""
    (?P<ws>\s+)
  | (?P<number>-?\d+(?:\.\d+)?(?![A-Za-z_]))
  | (?P<string>'[^']*'|"[^"]*")
  | (?P<dash_op>-(?:eq|ne|gt|ge|lt|le|and|or|not)\b)
  | (?P<symbol>==|!=|<>|>=|<=|&&|\|\||=|>|<|!)
  | (?P<lparen>\()
  | (?P<rparen>\))
  | (?P<ps_literal>\$(?:true|false|null)\b)
  | (?P<name>[A-Za-z_][A-Za-z0-9_]*)
    """,
    re.VERBOSE | re.IGNORECASE,
)

# Every spelling of a comparison collapses to one canonical operator.
_COMPARISONS = {
    "==": "eq", "=": "eq", "-eq": "eq",
    "!=": "ne", "<>": "ne", "-ne": "ne",
    ">": "gt", "-gt": "gt",
    ">=": "ge", "-ge": "ge",
    "<": "lt", "-lt": "lt",
    "<=": "le", "-le": "le",
}

_CONNECTIVES = {
    "&&": TokenKind.AND, "-and": TokenKind.AND, "and": TokenKind.AND,
    "||": TokenKind.OR, "-or": TokenKind.OR, "or": TokenKind.OR,
    "!": TokenKind.NOT, "-not": TokenKind.NOT, "not": TokenKind.NOT,
}

_LITERALS = {"true": True, "false": False, "null": None}

# Parentheses and NOT prefixes together.
MAX_NESTING_DEPTH = 64


def tokenize(text: str) -> list[Token]:
    tokens: list[Token] = []
    pos = 0
    while pos < len(text):
        match = _TOKEN_RE.match(text, pos)
        if match is None:
            raise ConditionError(f"unexpected character {text[pos]!r} at position {pos}")
        kind = match.lastgroup
        raw = match.group()
        if kind == "number":
            value = float(raw) if "." in raw else int(raw)
            tokens.append(Token(TokenKind.NUMBER, value, pos))
        elif kind == "string":
            tokens.append(Token(TokenKind.STRING, raw[1:-1], pos))
        elif kind in ("dash_op", "symbol"):
            op = raw.lower()
            if op in _COMPARISONS:
                tokens.append(Token(TokenKind.CMP, _COMPARISONS[op], pos))
            else:
                tokens.append(Token(_CONNECTIVES[op], op, pos))
        elif kind == "lparen":
            tokens.append(Token(TokenKind.LPAREN, raw, pos))
        elif kind == "rparen":
            tokens.append(Token(TokenKind.RPAREN, raw, pos))
        elif kind == "ps_literal":
            tokens.append(Token(TokenKind.LITERAL, _LITERALS[raw[1:].lower()], pos))
        elif kind == "name":
            lowered = raw.lower()
            if lowered in _CONNECTIVES:
                tokens.append(Token(_CONNECTIVES[lowered], lowered, pos))
            elif lowered in _LITERALS:
                tokens.append(Token(TokenKind.LITERAL, _LITERALS[lowered], pos))
            elif raw == "Count":
                tokens.append(Token(TokenKind.COUNT, raw, pos))
            elif raw == "Any":
                tokens.append(Token(TokenKind.ANY, raw, pos))
            else:
                tokens.append(Token(TokenKind.NAME, raw, pos))
        pos = match.end()
    tokens.append(Token(TokenKind.EOF, None, len(text)))
    return tokens


# ---------------------------------------------------------------------------
# Expression tree
# ---------------------------------------------------------------------------


class Scope:
    """Name resolution for one evaluation: thresholds, then record fields."""

    def __init__(self, raw_output: RawOutput, thresholds: Mapping[str, Any]):
        self.raw_output = raw_output
        self.thresholds = thresholds

    def resolve(self, name: str) -> Any:
        if name in self.thresholds:
            return self.thresholds[name]
        if isinstance(self.raw_output, ScalarOutput) and name in self.raw_output.record:
            return self.raw_output.record[name]
        raise ConditionError(f"unresolved name '{name}'")


class Expr(ABC):
    @abstractmethod
    def evaluate(self, scope: Scope) -> Any:
        """Return the node's value in the given scope."""


@dataclass(frozen=True)
class Literal(Expr):
    value: Any

    def evaluate(self, scope: Scope) -> Any:
        return self.value


@dataclass(frozen=True)
class Name(Expr):
    name: str

    def evaluate(self, scope: Scope) -> Any:
        return scope.resolve(self.name)


@dataclass(frozen=True)
class CountRef(Expr):
    def evaluate(self, scope: Scope) -> Any:
        if "Count" in scope.thresholds:
            return scope.thresholds["Count"]
        if isinstance(scope.raw_output, SequenceOutput):
            return len(scope.raw_output)
        return scope.resolve("Count")


@dataclass(frozen=True)
class AnyMatch(Expr):
    field: str
    op: str
    value: Expr

    def evaluate(self, scope: Scope) -> Any:
        if not isinstance(scope.raw_output, SequenceOutput):
            raise ConditionError("Any() requires a collection output")
        expected = self.value.evaluate(scope)
        for record in scope.raw_output.records:
            if self.field not in record:
                continue
            try:
                if compare(self.op, record[self.field], expected):
                    return True
            except ConditionError:
                # one malformed element does not decide the predicate
                continue
        return False


@dataclass(frozen=True)
class Compare(Expr):
    op: str
    left: Expr
    right: Expr

    def evaluate(self, scope: Scope) -> Any:
        return compare(self.op, self.left.evaluate(scope), self.right.evaluate(scope))


@dataclass(frozen=True)
class Not(Expr):
    operand: Expr

    def evaluate(self, scope: Scope) -> Any:
        return not truthy(self.operand.evaluate(scope))


@dataclass(frozen=True)
class And(Expr):
    operands: tuple[Expr, ...]

    def evaluate(self, scope: Scope) -> Any:
        return all(truthy(op.evaluate(scope)) for op in self.operands)


@dataclass(frozen=True)
class Or(Expr):
    operands: tuple[Expr, ...]

    def evaluate(self, scope: Scope) -> Any:
        return any(truthy(op.evaluate(scope)) for op in self.operands)


# ---------------------------------------------------------------------------
# Value semantics
# ---------------------------------------------------------------------------


def truthy(value: Any) -> bool:
    return bool(value)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _to_number(value: Any) -> float:
    if _is_number(value):
        return value
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            pass
    raise ConditionError(f"cannot compare {value!r} as a number")


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if _is_number(value):
        return value != 0
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    raise ConditionError(f"cannot compare {value!r} as a boolean")


def _coerce(left: Any, right: Any) -> tuple[Any, Any]:
    if isinstance(left, bool) or isinstance(right, bool):
        return _to_bool(left), _to_bool(right)
    if _is_number(left) or _is_number(right):
        return _to_number(left), _to_number(right)
    if isinstance(left, str) and isinstance(right, str):
        return left.casefold(), right.casefold()
    raise ConditionError(f"cannot compare {type(left).__name__} with {type(right).__name__}")


def compare(op: str, left: Any, right: Any) -> bool:
    if left is None or right is None:
        if op == "eq":
            return left is None and right is None
        if op == "ne":
            return not (left is None and right is None)
        raise ConditionError("cannot order a null value")

    if op in ("eq", "ne"):
        try:
            a, b = _coerce(left, right)
        except ConditionError:
            # incomparable values are simply unequal
            return op == "ne"
        return (a == b) if op == "eq" else (a != b)

    a, b = _coerce(left, right)
    if op == "gt":
        return a > b
    if op == "ge":
        return a >= b
    if op == "lt":
        return a < b
    if op == "le":
        return a <= b
    raise ConditionError(f"unknown comparison operator '{op}'")


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


class Parser:
    """Recursive descent parser. Precedence: NOT > AND > OR."""

    def __init__(self, tokens: list[Token]):
        self.tokens = tokens
        self.pos = 0
        self.depth = 0

    def current(self) -> Token:
        return self.tokens[self.pos]

    def consume(self, kind: TokenKind) -> Token:
        tok = self.current()
        if tok.kind != kind:
            raise ConditionError(f"expected {kind.name}, got {tok.kind.name} at position {tok.pos}")
        self.pos += 1
        return tok

    def nested(self, parse: Callable[[], Expr]) -> Expr:
        self.depth += 1
        if self.depth > MAX_NESTING_DEPTH:
            raise ConditionError(
                f"condition nests deeper than {MAX_NESTING_DEPTH} levels at position {self.current().pos}"
            )
        try:
            return parse()
        finally:
            self.depth -= 1

    def parse(self) -> Expr:
        expr = self.parse_or()
        if self.current().kind != TokenKind.EOF:
            raise ConditionError(f"unexpected token at position {self.current().pos}")
        return expr

    def parse_or(self) -> Expr:
        operands = [self.parse_and()]
        while self.current().kind == TokenKind.OR:
            self.consume(TokenKind.OR)
            operands.append(self.parse_and())
        if len(operands) == 1:
            return operands[0]
        return Or(tuple(operands))

    def parse_and(self) -> Expr:
        operands = [self.parse_not()]
        while self.current().kind == TokenKind.AND:
            self.consume(TokenKind.AND)
            operands.append(self.parse_not())
        if len(operands) == 1:
            return operands[0]
        return And(tuple(operands))

    def parse_not(self) -> Expr:
        if self.current().kind == TokenKind.NOT:
            self.consume(TokenKind.NOT)
            return Not(self.nested(self.parse_not))
        return self.parse_comparison()

    def parse_comparison(self) -> Expr:
        left = self.parse_operand()
        if self.current().kind == TokenKind.CMP:
            op = self.consume(TokenKind.CMP).value
            right = self.parse_operand()
            return Compare(op, left, right)
        return left

    def parse_operand(self) -> Expr:
        tok = self.current()
        if tok.kind in (TokenKind.NUMBER, TokenKind.STRING, TokenKind.LITERAL):
            self.pos += 1
            return Literal(tok.value)
        if tok.kind == TokenKind.NAME:
            self.pos += 1
            return Name(tok.value)
        if tok.kind == TokenKind.COUNT:
            self.pos += 1
            return CountRef()
        if tok.kind == TokenKind.ANY:
            return self.parse_any()
        if tok.kind == TokenKind.LPAREN:
            self.consume(TokenKind.LPAREN)
            expr = self.nested(self.parse_or)
            self.consume(TokenKind.RPAREN)
            return expr
        raise ConditionError(f"unexpected {tok.kind.name} at position {tok.pos}")

    def parse_any(self) -> Expr:
        self.consume(TokenKind.ANY)
        self.consume(TokenKind.LPAREN)
        field_tok = self.current()
        if field_tok.kind not in (TokenKind.NAME, TokenKind.COUNT):
            raise ConditionError(f"Any() expects a field name at position {field_tok.pos}")
        self.pos += 1
        op = self.consume(TokenKind.CMP).value
        value = self.parse_operand()
        if not isinstance(value, (Literal, Name)):
            raise ConditionError(f"Any() expects a literal or threshold at position {field_tok.pos}")
        self.consume(TokenKind.RPAREN)
        return AnyMatch(field_tok.value, op, value)


@lru_cache(maxsize=1024)
def parse_condition(text: str) -> Expr:
    """Parse a condition string into an expression tree.

    Raises:
        ConditionError: on any lexical or syntax error.
    """
    if not isinstance(text, str) or not text.strip():
        raise ConditionError("condition is empty")
    return Parser(tokenize(text)).parse()


def evaluate_condition(
    condition: str,
    raw_output: RawOutput | Any,
    thresholds: Mapping[str, Any] | None = None,
) -> bool:
    """Evaluate one rule condition. Returns False instead of raising."""
    try:
        tree = parse_condition(condition)
        scope = Scope(to_raw_output(raw_output), thresholds or {})
        return truthy(tree.evaluate(scope))
    except (ValueError, TypeError, RecursionError) as exc:
        logger.debug("Condition %r not matched: %s", condition, exc)
        return False
