"""
Query language for SKU retrieval.

This package turns request directives into something the entry stores can
execute:
- directives: ``$count``, ``$filter``, ``$top``, ``$skip``, ``$orderby``,
  ``$inlinecount`` parsed from query parameters
- filter: tokenizer and parser producing an immutable filter AST
- predicate: AST evaluation in Python (memory store)
- sql: AST translation to SQLite (SQLite store)

How to change safely:
    - predicate.py and sql.py must agree on every operator; the store tests
      run the same queries against both backends
"""

from .directives import INLINECOUNT_ALLPAGES, QueryDirectives
from .filter import (
    And,
    Comparison,
    FieldRef,
    FilterNode,
    FunctionCall,
    Literal,
    Not,
    Or,
    OrderKey,
    parse_filter,
    parse_orderby,
)

__all__ = [
    "QueryDirectives",
    "INLINECOUNT_ALLPAGES",
    "FilterNode",
    "Comparison",
    "FunctionCall",
    "And",
    "Or",
    "Not",
    "FieldRef",
    "Literal",
    "OrderKey",
    "parse_filter",
    "parse_orderby",
]
