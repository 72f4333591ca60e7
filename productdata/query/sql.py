"""
Translate filter ASTs into SQLite SQL over the JSON document column.

The SQLite store keeps each SKU as a JSON document in ``skus.data``.
Plain paths become ``json_extract(skus.data, '$.a.b')``; a path through a
list field becomes an ``EXISTS`` over ``json_each`` so that the record
matches when any element matches.

Invariants:
    - Literal values are always bound as parameters, never inlined
    - JSON paths are built only from identifier segments checked by the parser
    - Every generated condition is two-valued (never NULL), so NOT is safe
    - Semantics match predicate.py (see its module docstring)
"""

from __future__ import annotations

from typing import Any, List, Sequence, Tuple

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

DOCUMENT_COLUMN = "skus.data"

_SQL_OPS = {"eq": "=", "ne": "!=", "gt": ">", "ge": ">=", "lt": "<", "le": "<="}


def _json_path(path: Sequence[str]) -> str:
    return "$." + ".".join(path)


def _value_condition(value_sql: str, node: FilterNode) -> Tuple[str, List[Any]]:
    """Build the condition for one candidate value expression."""
    if isinstance(node, FunctionCall):
        needle = node.literal.value
        if node.name == "startswith":
            return (
                f"(typeof({value_sql}) = 'text' AND substr({value_sql}, 1, length(?)) = ?)",
                [needle, needle],
            )
        if node.name == "endswith":
            return (
                f"(typeof({value_sql}) = 'text' AND length({value_sql}) >= length(?) "
                f"AND substr({value_sql}, length({value_sql}) - length(?) + 1) = ?)",
                [needle, needle, needle],
            )
        return (f"(typeof({value_sql}) = 'text' AND instr({value_sql}, ?) > 0)", [needle])

    assert isinstance(node, Comparison)
    literal = node.literal.value
    if literal is None:
        if node.op == "eq":
            return (f"({value_sql} IS NULL)", [])
        if node.op == "ne":
            return (f"({value_sql} IS NOT NULL)", [])
        return ("0", [])

    if isinstance(literal, bool):
        literal = int(literal)
    if isinstance(literal, (int, float)):
        type_guard = f"typeof({value_sql}) IN ('integer', 'real')"
    else:
        type_guard = f"typeof({value_sql}) = 'text'"
    return (f"({type_guard} AND {value_sql} {_SQL_OPS[node.op]} ?)", [literal])


def _field_condition(field: FieldRef, node: FilterNode) -> Tuple[str, List[Any]]:
    path = field.path
    for idx, segment in enumerate(path[:-1]):
        if segment in ARRAY_FIELDS:
            array_path = _json_path(path[: idx + 1])
            inner_sql, params = _value_condition(
                f"json_extract(elem.value, '{_json_path(path[idx + 1:])}')", node
            )
            sql = (
                f"(json_type({DOCUMENT_COLUMN}, '{array_path}') = 'array' AND EXISTS ("
                f"SELECT 1 FROM json_each({DOCUMENT_COLUMN}, '{array_path}') AS elem "
                f"WHERE elem.type = 'object' AND {inner_sql}))"
            )
            return sql, params
    return _value_condition(f"json_extract({DOCUMENT_COLUMN}, '{_json_path(path)}')", node)


def to_sql(node: FilterNode) -> Tuple[str, List[Any]]:
    """Translate a filter AST into a WHERE condition.

    Args:
        node: Root of the filter AST

    Returns:
        Tuple of (sql_condition, parameters)
    """
    if isinstance(node, (Comparison, FunctionCall)):
        return _field_condition(node.field, node)
    if isinstance(node, And):
        left, left_params = to_sql(node.left)
        right, right_params = to_sql(node.right)
        return f"({left} AND {right})", left_params + right_params
    if isinstance(node, Or):
        left, left_params = to_sql(node.left)
        right, right_params = to_sql(node.right)
        return f"({left} OR {right})", left_params + right_params
    if isinstance(node, Not):
        inner, params = to_sql(node.operand)
        return f"(NOT {inner})", params
    raise TypeError(f"Unknown filter node: {node!r}")


def order_by_sql(keys: Sequence[OrderKey]) -> str:
    """Build an ORDER BY clause; insertion order breaks ties."""
    terms = [
        f"json_extract({DOCUMENT_COLUMN}, '{_json_path(key.field.path)}') "
        f"{'DESC' if key.descending else 'ASC'}"
        for key in keys
    ]
    terms.append("skus.rowid ASC")
    return "ORDER BY " + ", ".join(terms)
