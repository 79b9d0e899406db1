# src/pity_outcomes/predicate.py

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional, Tuple, Union

import numpy as np

from .errors import QueryError
from .pull_state import FIELD_ALIASES, ITEM_FIELDS, SCALAR_FIELDS, TrialState


# ------------------------------------------------------------
# Syntax tree
# ------------------------------------------------------------

@dataclass(frozen=True)
class Literal:
    value: int


@dataclass(frozen=True)
class Field:
    name: str


@dataclass(frozen=True)
class Item:
    name: str
    index: "Node"


@dataclass(frozen=True)
class Unary:
    op: str
    operand: "Node"


@dataclass(frozen=True)
class Binary:
    op: str
    left: "Node"
    right: "Node"


Node = Union[Literal, Field, Item, Unary, Binary]


@dataclass(frozen=True)
class Query:
    """
    A labelled predicate, parsed and validated once before any trial runs.
    """
    label: str
    expression: str
    predicate: Node


# ------------------------------------------------------------
# Tokenizer
# ------------------------------------------------------------

_TOKEN_RE = re.compile(
    r"\s*(?:"
    r"(?P<int>\d+)"
    r"|(?P<name>[A-Za-z_][A-Za-z_0-9]*)"
    r"|(?P<op>&&|\|\||==|!=|<=|>=|[-+*/%<>!()\[\]])"
    r")"
)

Token = Tuple[str, str, int]  # (kind, text, position)


def tokenize(expression: str) -> List[Token]:
    tokens: List[Token] = []
    pos = 0
    end = len(expression.rstrip())
    while pos < end:
        m = _TOKEN_RE.match(expression, pos)
        if m is None or m.end() == pos:
            bad = expression[pos:].lstrip()[:1]
            raise QueryError(f"unexpected character {bad!r} at position {pos}")
        kind = m.lastgroup
        tokens.append((kind, m.group(kind), m.start(kind)))
        pos = m.end()
    tokens.append(("end", "", end))
    return tokens


# ------------------------------------------------------------
# Parser (recursive descent, C precedence)
# ------------------------------------------------------------

_BINARY_LEVELS = (
    ("||",),
    ("&&",),
    ("==", "!="),
    ("<", "<=", ">", ">="),
    ("+", "-"),
    ("*", "/", "%"),
)

_KEYWORDS = {"true": 1, "false": 0}

# Literals are evaluated as int64.
_INT_MAX = int(np.iinfo(np.int64).max)


class _Parser:
    def __init__(self, expression: str):
        self.tokens = tokenize(expression)
        self.i = 0

    def peek(self) -> Token:
        return self.tokens[self.i]

    def advance(self) -> Token:
        tok = self.tokens[self.i]
        self.i += 1
        return tok

    def expect(self, text: str) -> None:
        kind, got, pos = self.advance()
        if got != text:
            found = got or "end of expression"
            raise QueryError(f"expected '{text}' at position {pos}, found '{found}'")

    def parse(self) -> Node:
        if self.peek()[0] == "end":
            raise QueryError("empty expression")
        node = self.binary(0)
        kind, text, pos = self.peek()
        if kind != "end":
            raise QueryError(f"unexpected '{text}' at position {pos}")
        return node

    def binary(self, level: int) -> Node:
        if level == len(_BINARY_LEVELS):
            return self.unary()
        ops = _BINARY_LEVELS[level]
        node = self.binary(level + 1)
        while self.peek()[0] == "op" and self.peek()[1] in ops:
            op = self.advance()[1]
            node = Binary(op, node, self.binary(level + 1))
        return node

    def unary(self) -> Node:
        kind, text, _ = self.peek()
        if kind == "op" and text in ("!", "-", "+"):
            self.advance()
            return Unary(text, self.unary())
        return self.primary()

    def primary(self) -> Node:
        kind, text, pos = self.advance()
        if kind == "int":
            value = int(text)
            if value > _INT_MAX:
                raise QueryError(f"integer literal out of range at position {pos}: {text}")
            return Literal(value)
        if kind == "name":
            return self.reference(text, pos)
        if kind == "op" and text == "(":
            node = self.binary(0)
            self.expect(")")
            return node
        raise QueryError(f"unexpected '{text or 'end of expression'}' at position {pos}")

    def reference(self, name: str, pos: int) -> Node:
        if name in _KEYWORDS:
            return Literal(_KEYWORDS[name])
        canonical = FIELD_ALIASES.get(name, name)
        indexed = self.peek()[1] == "["
        if canonical in SCALAR_FIELDS:
            if indexed:
                raise QueryError(f"'{name}' is not indexable (position {pos})")
            return Field(canonical)
        if canonical in ITEM_FIELDS:
            if not indexed:
                raise QueryError(f"'{name}' needs an item index, e.g. {name}[0]")
            self.advance()
            index = self.binary(0)
            self.expect("]")
            return Item(canonical, index)
        known = sorted(list(SCALAR_FIELDS) + list(ITEM_FIELDS))
        raise QueryError(f"unknown identifier '{name}' at position {pos}; known fields: {', '.join(known)}")


def parse(expression: str) -> Node:
    """
    Parse a C-like predicate into a validated syntax tree.

    Supports integer literals, true/false, the TrialState fields, indexed
    per-item counters, ! - + unary operators, * / %, + -, comparisons, == !=,
    && and ||, with C precedence.
    """
    return _Parser(expression).parse()


def compile_query(label: str, expression: str) -> Query:
    try:
        return Query(label=label, expression=expression, predicate=parse(expression))
    except QueryError as e:
        raise QueryError(e.message, label=label, expression=expression) from None


def parse_query_arg(arg: str) -> Query:
    """
    Compile a command-line query of the form "<label>;<expression>".
    """
    label, sep, expression = arg.partition(";")
    if not sep:
        raise QueryError(f"expected '<label>;<expression>', got {arg!r}")
    if not label.strip():
        raise QueryError("query label must not be empty", expression=expression)
    return compile_query(label.strip(), expression)


# ------------------------------------------------------------
# Evaluation
# ------------------------------------------------------------

def _num(v) -> np.ndarray:
    v = np.asarray(v)
    if v.dtype == np.bool_:
        return v.astype(np.int64)
    return v


def _truth(v) -> np.ndarray:
    v = np.asarray(v)
    if v.dtype == np.bool_:
        return v
    return v != 0


def _div(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    # C semantics: truncate toward zero; x / 0 evaluates to 0.
    safe = np.where(b == 0, 1, b)
    q = np.abs(a) // np.abs(safe)
    q = np.where((a < 0) != (safe < 0), -q, q)
    return np.where(b == 0, 0, q)


def _mod(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    return np.where(b == 0, 0, a - _div(a, b) * b)


_ARITH = {
    "+": np.add,
    "-": np.subtract,
    "*": np.multiply,
    "/": _div,
    "%": _mod,
}
_COMPARE = {
    "<": np.less,
    "<=": np.less_equal,
    ">": np.greater,
    ">=": np.greater_equal,
    "==": np.equal,
    "!=": np.not_equal,
}


def _eval(node: Node, state: TrialState):
    if isinstance(node, Literal):
        return np.int64(node.value)
    if isinstance(node, Field):
        return state.scalar(node.name)
    if isinstance(node, Item):
        return state.item(node.name, _num(_eval(node.index, state)))
    if isinstance(node, Unary):
        v = _eval(node.operand, state)
        if node.op == "!":
            return ~_truth(v)
        if node.op == "-":
            return -_num(v)
        return _num(v)
    if isinstance(node, Binary):
        left = _eval(node.left, state)
        right = _eval(node.right, state)
        if node.op == "&&":
            return _truth(left) & _truth(right)
        if node.op == "||":
            return _truth(left) | _truth(right)
        if node.op in _COMPARE:
            return _COMPARE[node.op](_num(left), _num(right))
        return _ARITH[node.op](_num(left), _num(right))
    raise TypeError(f"not a predicate node: {node!r}")


def evaluate(node: Node, state: TrialState) -> np.ndarray:
    """
    Evaluate a predicate against every lane of `state`.

    Returns a boolean array with one entry per lane. Never mutates the state.
    """
    return np.broadcast_to(_truth(_eval(node, state)), (state.lanes,))


def count_true(query: Query, state: TrialState) -> int:
    return int(np.count_nonzero(evaluate(query.predicate, state)))


def describe(node: Node, parent: Optional[str] = None) -> str:
    """
    Render a syntax tree back to a fully parenthesized expression.
    """
    if isinstance(node, Literal):
        return str(node.value)
    if isinstance(node, Field):
        return node.name
    if isinstance(node, Item):
        return f"{node.name}[{describe(node.index)}]"
    if isinstance(node, Unary):
        return f"{node.op}{describe(node.operand, node.op)}"
    text = f"{describe(node.left, node.op)} {node.op} {describe(node.right, node.op)}"
    return f"({text})" if parent is not None else text
