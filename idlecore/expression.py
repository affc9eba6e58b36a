"""Restricted arithmetic expressions for formula curves.

Expressions are parsed once into a small tree of immutable nodes and then
interpreted against a mapping of variable values. The grammar covers numbers,
variables, the constants ``e`` and ``pi``, the operators ``+ - * / ^``,
parentheses and a fixed set of math functions. Nothing else is accepted.
"""

from __future__ import annotations

import math
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable

from idlecore._types import CurveContext


class ExpressionError(ValueError):
    """Raised for malformed expressions or arithmetic failures."""


_FUNCTIONS: dict[str, tuple[Callable[..., float], int, int | None]] = {
    # name: (fn, min args, max args)
    "min": (min, 1, None),
    "max": (max, 1, None),
    "floor": (math.floor, 1, 1),
    "ceil": (math.ceil, 1, 1),
    "round": (round, 1, 1),
    "log": (math.log, 1, 2),
    "log10": (math.log10, 1, 1),
    "sqrt": (math.sqrt, 1, 1),
    "abs": (abs, 1, 1),
    "sin": (math.sin, 1, 1),
    "cos": (math.cos, 1, 1),
    "tan": (math.tan, 1, 1),
    "exp": (math.exp, 1, 1),
    "pow": (math.pow, 2, 2),
}

_CONSTANTS = {"e": math.e, "pi": math.pi}

_TOKEN_RE = re.compile(
    r"\s*(?:(?P<number>\d+(?:\.\d*)?(?:[eE][+-]?\d+)?|\.\d+(?:[eE][+-]?\d+)?)"
    r"|(?P<name>[A-Za-z_][A-Za-z0-9_]*)"
    r"|(?P<op>[-+*/^(),]))"
)


# ── Nodes ────────────────────────────────────────────────────────────


class Node(ABC):
    @abstractmethod
    def evaluate(self, ctx: CurveContext) -> float: ...

    @abstractmethod
    def variables(self) -> frozenset[str]: ...


@dataclass(frozen=True)
class Num(Node):
    value: float

    def evaluate(self, ctx: CurveContext) -> float:
        return self.value

    def variables(self) -> frozenset[str]:
        return frozenset()


@dataclass(frozen=True)
class Var(Node):
    name: str

    def evaluate(self, ctx: CurveContext) -> float:
        return float(ctx.get(self.name, 0.0))

    def variables(self) -> frozenset[str]:
        return frozenset({self.name})


@dataclass(frozen=True)
class Unary(Node):
    op: str
    operand: Node

    def evaluate(self, ctx: CurveContext) -> float:
        value = self.operand.evaluate(ctx)
        return -value if self.op == "-" else value

    def variables(self) -> frozenset[str]:
        return self.operand.variables()


@dataclass(frozen=True)
class Binary(Node):
    op: str
    left: Node
    right: Node

    def evaluate(self, ctx: CurveContext) -> float:
        a = self.left.evaluate(ctx)
        b = self.right.evaluate(ctx)
        try:
            if self.op == "+":
                return a + b
            if self.op == "-":
                return a - b
            if self.op == "*":
                return a * b
            if self.op == "/":
                return a / b
            return math.pow(a, b)
        except (ZeroDivisionError, OverflowError, ValueError) as exc:
            raise ExpressionError(f"{a} {self.op} {b}: {exc}") from exc

    def variables(self) -> frozenset[str]:
        return self.left.variables() | self.right.variables()


@dataclass(frozen=True)
class Call(Node):
    name: str
    args: tuple[Node, ...]

    def evaluate(self, ctx: CurveContext) -> float:
        fn = _FUNCTIONS[self.name][0]
        values = [arg.evaluate(ctx) for arg in self.args]
        try:
            return float(fn(*values))
        except (ZeroDivisionError, OverflowError, ValueError) as exc:
            raise ExpressionError(f"{self.name}{tuple(values)}: {exc}") from exc

    def variables(self) -> frozenset[str]:
        names: frozenset[str] = frozenset()
        for arg in self.args:
            names |= arg.variables()
        return names


# ── Parser ───────────────────────────────────────────────────────────


def _tokenize(text: str) -> list[tuple[str, str]]:
    tokens: list[tuple[str, str]] = []
    pos = 0
    text = text.rstrip()
    while pos < len(text):
        match = _TOKEN_RE.match(text, pos)
        if match is None or match.end() == pos:
            raise ExpressionError(f"Unexpected character {text[pos:].strip()[:1]!r} in {text!r}")
        kind = match.lastgroup
        if kind is None:
            raise ExpressionError(f"Unexpected input in {text!r}")
        tokens.append((kind, match.group(kind)))
        pos = match.end()
    return tokens


class _Parser:
    def __init__(self, text: str) -> None:
        self.text = text
        self.tokens = _tokenize(text)
        self.pos = 0

    def peek(self) -> tuple[str, str] | None:
        if self.pos < len(self.tokens):
            return self.tokens[self.pos]
        return None

    def take(self) -> tuple[str, str]:
        token = self.peek()
        if token is None:
            raise ExpressionError(f"Unexpected end of expression {self.text!r}")
        self.pos += 1
        return token

    def expect(self, op: str) -> None:
        kind, value = self.take()
        if kind != "op" or value != op:
            raise ExpressionError(f"Expected {op!r} but found {value!r} in {self.text!r}")

    def at_op(self, *ops: str) -> bool:
        token = self.peek()
        return token is not None and token[0] == "op" and token[1] in ops

    def parse(self) -> Node:
        node = self.additive()
        if self.peek() is not None:
            raise ExpressionError(f"Unexpected {self.peek()[1]!r} in {self.text!r}")
        return node

    def additive(self) -> Node:
        node = self.multiplicative()
        while self.at_op("+", "-"):
            op = self.take()[1]
            node = Binary(op, node, self.multiplicative())
        return node

    def multiplicative(self) -> Node:
        node = self.unary()
        while self.at_op("*", "/"):
            op = self.take()[1]
            node = Binary(op, node, self.unary())
        return node

    def unary(self) -> Node:
        if self.at_op("+", "-"):
            op = self.take()[1]
            return Unary(op, self.unary())
        return self.power()

    def power(self) -> Node:
        base = self.primary()
        if self.at_op("^"):
            self.take()
            # right associative: 2^3^2 == 2^(3^2)
            return Binary("^", base, self.unary())
        return base

    def primary(self) -> Node:
        kind, value = self.take()
        if kind == "number":
            return Num(float(value))
        if kind == "name":
            if self.at_op("("):
                return self.call(value)
            if value in _CONSTANTS:
                return Num(_CONSTANTS[value])
            return Var(value)
        if value == "(":
            node = self.additive()
            self.expect(")")
            return node
        raise ExpressionError(f"Unexpected {value!r} in {self.text!r}")

    def call(self, name: str) -> Node:
        spec = _FUNCTIONS.get(name)
        if spec is None:
            raise ExpressionError(f"Unknown function {name!r} in {self.text!r}")
        self.expect("(")
        args: list[Node] = []
        if not self.at_op(")"):
            args.append(self.additive())
            while self.at_op(","):
                self.take()
                args.append(self.additive())
        self.expect(")")
        _, lo, hi = spec
        if len(args) < lo or (hi is not None and len(args) > hi):
            raise ExpressionError(f"Wrong number of arguments for {name}(): {len(args)}")
        return Call(name, tuple(args))


@dataclass(frozen=True)
class Expression:
    """A parsed formula, evaluated against a variable mapping."""

    source: str
    root: Node

    @classmethod
    def parse(cls, text: str) -> Expression:
        if not text or not text.strip():
            raise ExpressionError("Empty expression")
        return cls(source=text, root=_Parser(text).parse())

    @property
    def variables(self) -> frozenset[str]:
        return self.root.variables()

    def evaluate(self, ctx: CurveContext) -> float:
        return self.root.evaluate(ctx)


def parse_expression(text: str) -> Expression:
    return Expression.parse(text)
