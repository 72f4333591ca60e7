"""
Evaluate filter ASTs against documents in Python.

Used by the in-memory entry store. Semantics follow the SQLite translation
in sql.py so that both stores answer the same query the same way:

- A path through a list field (``productList``) matches when any element
  matches; an absent or empty list never matches.
- Missing fields resolve to null; ``eq null`` matches them.
- Ordering comparisons and string functions only match values of the
  literal's type (numbers with numbers, strings with strings).
- Booleans compare as the integers 1 and 0, as they do in SQLite JSON.
"""

from __future__ import annotations

import json
import operator
from typing import Any, Callable, Dict, List, Sequence, Tuple

from .filter import (
    ARRAY_FIELDS,
    And,
    Comparison,
    FieldRef,
    FilterNode,
    FunctionCall,
    Not,
    Or,
    OrderKey,
)

Document = Dict[str, Any]

_OPS: Dict[str, Callable[[Any, Any], bool]] = {
    "eq": operator.eq,
    "ne": operator.ne,
    "gt": operator.gt,
    "ge": operator.ge,
    "lt": operator.lt,
    "le": operator.le,
}


def _normalize(value: Any) -> Any:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False)
    return value


def _extract_raw(value: Any, path: Sequence[str]) -> Any:
    for segment in path:
        if not isinstance(value, dict):
            return None
        value = value.get(segment)
    return value


def _extract(value: Any, path: Sequence[str]) -> Any:
    return _normalize(_extract_raw(value, path))


def resolve(document: Document, field: FieldRef) -> List[Any]:
    """Return the candidate values a field path selects from a document.

    Args:
        document: Persisted SKU document
        field: Field path to resolve

    Returns:
        One candidate for a plain path, one per element for a list path
    """
    path = field.path
    for idx, segment in enumerate(path[:-1]):
        if segment in ARRAY_FIELDS:
            parent = _extract_raw(document, path[:idx])
            items = parent.get(segment) if isinstance(parent, dict) else None
            if not isinstance(items, list):
                return []
            rest = path[idx + 1 :]
            return [_extract(item, rest) for item in items]
    return [_extract(document, path)]


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _compare(op: str, candidate: Any, literal: Any) -> bool:
    literal = _normalize(literal)
    if literal is None:
        if op == "eq":
            return candidate is None
        if op == "ne":
            return candidate is not None
        return False
    if candidate is None:
        return False
    if _is_number(literal):
        if not _is_number(candidate):
            return False
    elif not isinstance(candidate, str):
        return False
    return _OPS[op](candidate, literal)


def _call(name: str, candidate: Any, needle: str) -> bool:
    if not isinstance(candidate, str):
        return False
    if name == "startswith":
        return candidate.startswith(needle)
    if name == "endswith":
        return candidate.endswith(needle)
    return needle in candidate


def evaluate(node: FilterNode, document: Document) -> bool:
    """Evaluate a filter AST against one document."""
    if isinstance(node, Comparison):
        return any(
            _compare(node.op, candidate, node.literal.value)
            for candidate in resolve(document, node.field)
        )
    if isinstance(node, FunctionCall):
        return any(
            _call(node.name, candidate, node.literal.value)
            for candidate in resolve(document, node.field)
        )
    if isinstance(node, And):
        return evaluate(node.left, document) and evaluate(node.right, document)
    if isinstance(node, Or):
        return evaluate(node.left, document) or evaluate(node.right, document)
    if isinstance(node, Not):
        return not evaluate(node.operand, document)
    raise TypeError(f"Unknown filter node: {node!r}")


def build_predicate(node: FilterNode) -> Callable[[Document], bool]:
    """Bind a filter AST into a single-argument predicate."""
    return lambda document: evaluate(node, document)


def _sort_key(value: Any) -> Tuple[int, Any]:
    # SQLite ordering: NULL < numbers < text
    if value is None:
        return (0, 0)
    if _is_number(value):
        return (1, value)
    return (2, str(value))


def sort_documents(documents: List[Document], keys: Sequence[OrderKey]) -> List[Document]:
    """Sort documents by order keys; ties keep their original order."""
    ordered = list(documents)
    for key in reversed(keys):
        ordered.sort(
            key=lambda doc: _sort_key(_extract(doc, key.field.path)),
            reverse=key.descending,
        )
    return ordered
