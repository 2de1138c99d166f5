"""
Condition Expressions

A small, closed expression language for condition steps. Expressions are
tokenized and parsed by recursive descent; nothing is ever handed to eval().

Grammar:

    expr       := or_expr
    or_expr    := and_expr (("||" | "or") and_expr)*
    and_expr   := not_expr (("&&" | "and") not_expr)*
    not_expr   := ("!" | "not") not_expr | comparison
    comparison := operand (COMPARATOR operand)?
    operand    := NUMBER | STRING | true | false | null | undefined
                | PATH | "{{" PATH "}}" | "(" expr ")"

PATH is a dotted lookup into the variable store, e.g. `audienceSize` or
`fetch.items.0.score`. Unknown paths evaluate to null.
"""

import math
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, List, Mapping, Tuple

from .templating import get_nested_value


class ExpressionError(ValueError):
    """Raised for malformed expressions."""
    pass


_TOKEN_SPEC = [
    ("WS", r"\s+"),
    ("TEMPLATE", r"\{\{\s*[^}]+?\s*\}\}"),
    ("NUMBER", r"-?\d+(?:\.\d+)?(?![\w.])"),
    ("STRING", r"\"(?:[^\"\\]|\\.)*\"|'(?:[^'\\]|\\.)*'"),
    ("OP", r"===|!==|==|!=|>=|<=|&&|\|\||>|<|!"),
    ("LPAREN", r"\("),
    ("RPAREN", r"\)"),
    ("PATH", r"[A-Za-z_$][\w$\-]*(?:\.[\w$\-]+)*"),
]
_TOKEN_RE = re.compile("|".join(f"(?P<{name}>{pattern})" for name, pattern in _TOKEN_SPEC))

COMPARATORS = {"==", "!=", "===", "!==", ">", "<", ">=", "<="}
_LITERALS = {"true": True, "false": False, "null": None, "undefined": None}


@dataclass(frozen=True)
class Token:
    kind: str
    value: str
    position: int


def tokenize(expression: str) -> List[Token]:
    tokens: List[Token] = []
    position = 0
    while position < len(expression):
        match = _TOKEN_RE.match(expression, position)
        if not match:
            raise ExpressionError(f"Unexpected character {expression[position]!r} at position {position}")
        kind = match.lastgroup
        if kind != "WS":
            tokens.append(Token(kind, match.group(), position))
        position = match.end()
    return tokens


def _unquote(literal: str) -> str:
    body = literal[1:-1]
    return re.sub(r"\\(.)", r"\1", body)


class _Parser:
    """Recursive-descent parser producing a tuple-based syntax tree."""

    def __init__(self, expression: str):
        self.expression = expression
        self.tokens = tokenize(expression)
        self.index = 0

    def parse(self) -> Tuple:
        if not self.tokens:
            raise ExpressionError("Empty expression")
        node = self._or()
        if self.index < len(self.tokens):
            token = self.tokens[self.index]
            raise ExpressionError(f"Unexpected {token.value!r} at position {token.position}")
        return node

    def _peek(self):
        return self.tokens[self.index] if self.index < len(self.tokens) else None

    def _next(self) -> Token:
        token = self._peek()
        if token is None:
            raise ExpressionError(f"Unexpected end of expression: {self.expression!r}")
        self.index += 1
        return token

    def _at_keyword(self, *values: str) -> bool:
        token = self._peek()
        return token is not None and token.kind in ("OP", "PATH") and token.value in values

    def _or(self) -> Tuple:
        node = self._and()
        while self._at_keyword("||", "or"):
            self._next()
            node = ("or", node, self._and())
        return node

    def _and(self) -> Tuple:
        node = self._not()
        while self._at_keyword("&&", "and"):
            self._next()
            node = ("and", node, self._not())
        return node

    def _not(self) -> Tuple:
        if self._at_keyword("!", "not"):
            self._next()
            return ("not", self._not())
        return self._comparison()

    def _comparison(self) -> Tuple:
        left = self._operand()
        token = self._peek()
        if token is not None and token.kind == "OP" and token.value in COMPARATORS:
            self._next()
            return ("cmp", token.value, left, self._operand())
        return left

    def _operand(self) -> Tuple:
        token = self._next()
        if token.kind == "NUMBER":
            number = float(token.value)
            return ("lit", int(number) if number.is_integer() and "." not in token.value else number)
        if token.kind == "STRING":
            return ("lit", _unquote(token.value))
        if token.kind == "TEMPLATE":
            return ("path", token.value[2:-2].strip())
        if token.kind == "PATH":
            if token.value in _LITERALS:
                return ("lit", _LITERALS[token.value])
            if token.value in ("and", "or", "not"):
                raise ExpressionError(f"Unexpected {token.value!r} at position {token.position}")
            return ("path", token.value)
        if token.kind == "LPAREN":
            node = self._or()
            closing = self._next()
            if closing.kind != "RPAREN":
                raise ExpressionError(f"Expected ')' at position {closing.position}")
            return node
        raise ExpressionError(f"Unexpected {token.value!r} at position {token.position}")


@lru_cache(maxsize=256)
def parse_expression(expression: str) -> Tuple:
    """Parse an expression into a syntax tree (cached per expression text)."""
    return _Parser(expression).parse()


def _to_number(value: Any) -> float:
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return math.nan
    return math.nan


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _loose_equals(left: Any, right: Any) -> bool:
    if left is None or right is None:
        return left is None and right is None
    if _is_number(left) and isinstance(right, str) or isinstance(left, str) and _is_number(right):
        return _to_number(left) == _to_number(right)
    return left == right


def _strict_equals(left: Any, right: Any) -> bool:
    if isinstance(left, bool) != isinstance(right, bool):
        return False
    if _is_number(left) and _is_number(right):
        return left == right
    return type(left) is type(right) and left == right


def _compare(op: str, left: Any, right: Any) -> bool:
    if op == "==":
        return _loose_equals(left, right)
    if op == "!=":
        return not _loose_equals(left, right)
    if op == "===":
        return _strict_equals(left, right)
    if op == "!==":
        return not _strict_equals(left, right)

    a, b = _to_number(left), _to_number(right)
    if op == ">":
        return a > b
    if op == "<":
        return a < b
    if op == ">=":
        return a >= b
    if op == "<=":
        return a <= b
    raise ExpressionError(f"Unknown comparator: {op}")


def _evaluate(node: Tuple, variables: Mapping[str, Any]) -> Any:
    kind = node[0]
    if kind == "lit":
        return node[1]
    if kind == "path":
        return get_nested_value(variables, node[1])
    if kind == "not":
        return not _truthy(_evaluate(node[1], variables))
    if kind == "and":
        return _truthy(_evaluate(node[1], variables)) and _truthy(_evaluate(node[2], variables))
    if kind == "or":
        return _truthy(_evaluate(node[1], variables)) or _truthy(_evaluate(node[2], variables))
    if kind == "cmp":
        return _compare(node[1], _evaluate(node[2], variables), _evaluate(node[3], variables))
    raise ExpressionError(f"Unknown node: {kind}")


def _truthy(value: Any) -> bool:
    if isinstance(value, float) and math.isnan(value):
        return False
    return bool(value)


def evaluate_expression(expression: str, variables: Mapping[str, Any]) -> bool:
    """Evaluate a condition expression against the variable store."""
    return _truthy(_evaluate(parse_expression(expression), variables))
