"""
Parser for OData-style $filter and $orderby expressions.

Pure functions with no I/O. The parser turns an expression such as

    (sku eq 'MS122-32') and startswith(productList.metadata.color, 'bl')

into an immutable AST that both entry stores evaluate: the memory store via
``predicate.py`` and the SQLite store via ``sql.py``.

Grammar:
    expr        := and_expr ('or' and_expr)*
    and_expr    := unary ('and' unary)*
    unary       := 'not' unary | primary
    primary     := '(' expr ')' | function | comparison
    function    := name '(' operand ',' operand ')'
    comparison  := operand op operand      op: eq ne gt ge lt le
    operand     := field_path | 'string' | number | true | false | null

Invariants:
    - Every comparison has exactly one field side and one literal side;
      the AST always stores the field on the left
    - String functions take one field and one string literal
    - Field path segments are plain identifiers (safe inside a JSON path)
    - Integer literals fit a signed 64-bit integer; nesting and the number
      of conditions are bounded

How to change safely:
    - New operators must be added to both predicate.py and sql.py
    - Keep error messages pointing at the character position
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple, Union

from ..errors import InvalidFilterError

# Fields holding arrays of sub-documents; a path through one of them matches
# when any element matches.
ARRAY_FIELDS = frozenset({"productList"})

COMPARISON_OPS = ("eq", "ne", "gt", "ge", "lt", "le")

# Operator to use when the literal is written on the left: 5 lt x == x gt 5
_FLIPPED_OPS = {"eq": "eq", "ne": "ne", "gt": "lt", "ge": "le", "lt": "gt", "le": "ge"}

STRING_FUNCTIONS = ("startswith", "endswith", "contains", "substringof")

# Nested parentheses and "not" prefixes.
MAX_NESTING_DEPTH = 100

MAX_CONDITIONS = 200

# Integer literals must fit a signed 64-bit SQLite INTEGER.
INTEGER_MIN = -(2**63)
INTEGER_MAX = 2**63 - 1

_TOKEN_RE = re.compile(
    r"""
    (?P<ws>\s+)
    |(?P<string>'(?:[^']|'')*')
    |(?P<number>-?\d+(?:\.\d+)?(?:[eE][+-]?\d+)?)
    |(?P<name>[A-Za-z_][A-Za-z0-9_]*(?:[./][A-Za-z_][A-Za-z0-9_]*)*)
    |(?P<lparen>\()
    |(?P<rparen>\))
    |(?P<comma>,)
    """,
    re.VERBOSE,
)


@dataclass(frozen=True)
class Token:
    kind: str
    text: str
    position: int


@dataclass(frozen=True)
class FieldRef:
    """Reference to a document field, e.g. ``productList.metadata.color``."""

    path: Tuple[str, ...]

    @property
    def dotted(self) -> str:
        return ".".join(self.path)


@dataclass(frozen=True)
class Literal:
    """A constant: str, int, float, bool or None."""

    value: Any


@dataclass(frozen=True)
class Comparison:
    op: str
    field: FieldRef
    literal: Literal


@dataclass(frozen=True)
class FunctionCall:
    """String function applied to a field, e.g. ``startswith(sku, 'MS')``."""

    name: str
    field: FieldRef
    literal: Literal


@dataclass(frozen=True)
class And:
    left: "FilterNode"
    right: "FilterNode"


@dataclass(frozen=True)
class Or:
    left: "FilterNode"
    right: "FilterNode"


@dataclass(frozen=True)
class Not:
    operand: "FilterNode"


FilterNode = Union[Comparison, FunctionCall, And, Or, Not]


@dataclass(frozen=True)
class OrderKey:
    field: FieldRef
    descending: bool = False


def tokenize(expression: str) -> List[Token]:
    """Split an expression into tokens.

    Raises:
        InvalidFilterError: On characters that start no token
    """
    tokens: List[Token] = []
    pos = 0
    while pos < len(expression):
        match = _TOKEN_RE.match(expression, pos)
        if match is None:
            raise InvalidFilterError(
                f"unexpected character {expression[pos]!r} at position {pos}",
                expression=expression,
                position=pos,
            )
        kind = match.lastgroup or ""
        if kind != "ws":
            tokens.append(Token(kind, match.group(), pos))
        pos = match.end()
    return tokens


def _field_from_name(text: str) -> FieldRef:
    path = tuple(re.split(r"[./]", text))
    if path[-1] in ARRAY_FIELDS:
        raise ValueError(f"field '{text}' is a list; compare one of its attributes")
    return FieldRef(path)


def _literal_from_token(token: Token) -> Literal:
    if token.kind == "string":
        return Literal(token.text[1:-1].replace("''", "'"))
    if token.kind == "number":
        text = token.text
        if any(ch in text for ch in ".eE"):
            return Literal(float(text))
        value = int(text)
        if not INTEGER_MIN <= value <= INTEGER_MAX:
            raise ValueError(f"integer {text} is out of range")
        return Literal(value)
    keyword = token.text
    if keyword == "true":
        return Literal(True)
    if keyword == "false":
        return Literal(False)
    return Literal(None)


class _Parser:
    """Recursive-descent parser over a token list."""

    def __init__(self, expression: str) -> None:
        self.expression = expression
        self.tokens = tokenize(expression)
        self.index = 0
        self.depth = 0
        self.conditions = 0

    # ------------------------------------------------------------------
    # Token helpers
    # ------------------------------------------------------------------
    def _peek(self, offset: int = 0) -> Optional[Token]:
        idx = self.index + offset
        return self.tokens[idx] if idx < len(self.tokens) else None

    def _advance(self) -> Token:
        token = self._peek()
        if token is None:
            raise self._error("unexpected end of expression", len(self.expression))
        self.index += 1
        return token

    def _expect(self, kind: str) -> Token:
        token = self._advance()
        if token.kind != kind:
            raise self._error(f"expected {kind}, found {token.text!r}", token.position)
        return token

    def _at_keyword(self, keyword: str) -> bool:
        token = self._peek()
        return token is not None and token.kind == "name" and token.text == keyword

    def _nest(self, position: int) -> None:
        self.depth += 1
        if self.depth > MAX_NESTING_DEPTH:
            raise self._error("expression nested too deeply", position)

    def _count_condition(self, position: int) -> None:
        self.conditions += 1
        if self.conditions > MAX_CONDITIONS:
            raise self._error(f"more than {MAX_CONDITIONS} conditions", position)

    def _error(self, message: str, position: int) -> InvalidFilterError:
        return InvalidFilterError(
            f"invalid filter: {message} (position {position})",
            expression=self.expression,
            position=position,
        )

    # ------------------------------------------------------------------
    # Grammar
    # ------------------------------------------------------------------
    def parse(self) -> FilterNode:
        if not self.tokens:
            raise self._error("empty expression", 0)
        node = self._or()
        trailing = self._peek()
        if trailing is not None:
            raise self._error(f"unexpected token {trailing.text!r}", trailing.position)
        return node

    def _or(self) -> FilterNode:
        node = self._and()
        while self._at_keyword("or"):
            self._advance()
            node = Or(node, self._and())
        return node

    def _and(self) -> FilterNode:
        node = self._unary()
        while self._at_keyword("and"):
            self._advance()
            node = And(node, self._unary())
        return node

    def _unary(self) -> FilterNode:
        if self._at_keyword("not"):
            self._nest(self._advance().position)
            node = Not(self._unary())
            self.depth -= 1
            return node
        return self._primary()

    def _primary(self) -> FilterNode:
        token = self._peek()
        if token is None:
            raise self._error("unexpected end of expression", len(self.expression))
        if token.kind == "lparen":
            self._nest(self._advance().position)
            node = self._or()
            self._expect("rparen")
            self.depth -= 1
            return node
        if token.kind == "name" and token.text in STRING_FUNCTIONS:
            following = self._peek(1)
            if following is not None and following.kind == "lparen":
                return self._function()
        return self._comparison()

    def _function(self) -> FunctionCall:
        name_token = self._advance()
        self._count_condition(name_token.position)
        self._expect("lparen")
        first = self._operand()
        self._expect("comma")
        second = self._operand()
        self._expect("rparen")

        # substringof('needle', haystack) is the OData v2 spelling of contains
        if name_token.text == "substringof":
            first, second = second, first
            name = "contains"
        else:
            name = name_token.text

        if not isinstance(first, FieldRef) or not isinstance(second, Literal):
            raise self._error(
                f"{name_token.text}() needs a field and a string literal",
                name_token.position,
            )
        if not isinstance(second.value, str):
            raise self._error(
                f"{name_token.text}() needs a string literal", name_token.position
            )
        return FunctionCall(name, first, second)

    def _comparison(self) -> Comparison:
        start = self._peek()
        self._count_condition(start.position if start else len(self.expression))
        left = self._operand()
        op_token = self._advance()
        if op_token.kind != "name" or op_token.text not in COMPARISON_OPS:
            raise self._error(
                f"expected comparison operator, found {op_token.text!r}",
                op_token.position,
            )
        right = self._operand()

        if isinstance(left, FieldRef) and isinstance(right, Literal):
            return Comparison(op_token.text, left, right)
        if isinstance(left, Literal) and isinstance(right, FieldRef):
            return Comparison(_FLIPPED_OPS[op_token.text], right, left)
        raise self._error(
            "comparisons must be between a field and a literal",
            start.position if start else 0,
        )

    def _operand(self) -> Union[FieldRef, Literal]:
        token = self._advance()
        if token.kind in ("string", "number"):
            try:
                return _literal_from_token(token)
            except ValueError as exc:
                raise self._error(str(exc), token.position) from exc
        if token.kind == "name":
            if token.text in ("true", "false", "null"):
                return _literal_from_token(token)
            if token.text in COMPARISON_OPS or token.text in ("and", "or", "not"):
                raise self._error(f"expected operand, found {token.text!r}", token.position)
            try:
                return _field_from_name(token.text)
            except ValueError as exc:
                raise self._error(str(exc), token.position) from exc
        raise self._error(f"expected operand, found {token.text!r}", token.position)


def parse_filter(expression: str) -> FilterNode:
    """Parse a $filter expression into an AST.

    Args:
        expression: Filter text, e.g. ``sku eq 'MS122-32'``

    Returns:
        Root node of the filter AST

    Raises:
        InvalidFilterError: If the expression is malformed
    """
    return _Parser(expression).parse()


def parse_orderby(expression: str) -> List[OrderKey]:
    """Parse a $orderby expression such as ``sku desc, productList.productId``.

    Ordering through list fields is not supported because a record has no
    single value to sort on.

    Raises:
        InvalidFilterError: If the expression is malformed
    """
    keys: List[OrderKey] = []
    for raw in expression.split(","):
        parts = raw.split()
        if not parts or len(parts) > 2:
            raise InvalidFilterError(
                f"invalid $orderby clause {raw.strip()!r}", expression=expression
            )
        name = parts[0]
        direction = parts[1].lower() if len(parts) == 2 else "asc"
        if direction not in ("asc", "desc"):
            raise InvalidFilterError(
                f"invalid $orderby direction {parts[1]!r}", expression=expression
            )
        if not re.fullmatch(r"[A-Za-z_][A-Za-z0-9_]*(?:[./][A-Za-z_][A-Za-z0-9_]*)*", name):
            raise InvalidFilterError(
                f"invalid $orderby field {name!r}", expression=expression
            )
        path = tuple(re.split(r"[./]", name))
        if any(segment in ARRAY_FIELDS for segment in path):
            raise InvalidFilterError(
                f"cannot order by list field {name!r}", expression=expression
            )
        keys.append(OrderKey(FieldRef(path), descending=direction == "desc"))
    return keys
