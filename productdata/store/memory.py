"""
In-memory entry store implementation.

This module provides a dict-backed entry store for:
- Unit tests
- Local development without a database file

Invariants:
    - All data is lost on process exit
    - Same query semantics as the SQLite store (shared filter AST)
    - Thread-safe; every public method holds one lock
    - Documents are copied on the way in and out, and must be strict JSON

How to change safely:
    - Keep behaviour identical to SqliteEntryStore; the shared store tests
      run against both
"""

from __future__ import annotations

import json
import logging
import threading
from typing import Any, Dict, Iterable, List, Optional, Sequence

from ..errors import StoreError, ValidationError
from ..models import SkuEntry
from ..query.filter import parse_filter, parse_orderby
from ..query.predicate import build_predicate, sort_documents
from .base import DEFAULT_MAX_OPS_PER_CALL, UpsertInstruction, is_blank

logger = logging.getLogger(__name__)


class InMemoryEntryStore:
    """Dict-backed implementation of EntryStore.

    Example:
        >>> store = InMemoryEntryStore()
        >>> store.upsert_batch([UpsertInstruction("MS1", {"sku": "MS1", "productList": []})])
        >>> store.count_all()
        1
    """

    def __init__(self, max_ops_per_call: int = DEFAULT_MAX_OPS_PER_CALL) -> None:
        if max_ops_per_call < 1:
            raise ValueError(f"max_ops_per_call must be positive, got {max_ops_per_call}")
        self.max_ops_per_call = max_ops_per_call
        # dict preserves insertion order; replacing a value keeps its slot
        self._documents: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def _matching(self, expression: Optional[str]) -> List[Dict[str, Any]]:
        documents = list(self._documents.values())
        if is_blank(expression):
            return documents
        predicate = build_predicate(parse_filter(expression))
        return [doc for doc in documents if predicate(doc)]

    def fetch_by_keys(self, keys: Iterable[str]) -> List[SkuEntry]:
        wanted = set(keys)
        with self._lock:
            return [
                SkuEntry.from_dict(doc)
                for key, doc in self._documents.items()
                if key in wanted
            ]

    def count_all(self) -> int:
        with self._lock:
            return len(self._documents)

    def evaluate_filter(
        self,
        expression: Optional[str],
        limit: int,
        skip: int = 0,
        orderby: Optional[str] = None,
    ) -> List[SkuEntry]:
        keys = parse_orderby(orderby) if not is_blank(orderby) else []
        with self._lock:
            documents = self._matching(expression)
            if keys:
                documents = sort_documents(documents, keys)
            return [SkuEntry.from_dict(doc) for doc in documents[skip : skip + limit]]

    def count_filtered(self, expression: Optional[str]) -> int:
        with self._lock:
            return len(self._matching(expression))

    def upsert_batch(self, instructions: Sequence[UpsertInstruction]) -> None:
        if len(instructions) > self.max_ops_per_call:
            raise StoreError(
                f"batch of {len(instructions)} exceeds the limit of {self.max_ops_per_call}",
                operation="upsert_batch",
            )
        try:
            staged = {
                item.key: json.loads(json.dumps(item.document, allow_nan=False))
                for item in instructions
            }
        except ValueError as exc:
            raise ValidationError(
                f"entry cannot be stored as JSON: {exc}", field_name="data"
            ) from exc
        with self._lock:
            self._documents.update(staged)
        logger.debug("Upserted batch", extra={"count": len(instructions)})

    def delete_by_key(self, key: str) -> bool:
        with self._lock:
            return self._documents.pop(key, None) is not None

    def find_by_product_id(self, product_id: str) -> Optional[SkuEntry]:
        with self._lock:
            for doc in self._documents.values():
                products = doc.get("productList") or []
                if any(
                    isinstance(item, dict) and item.get("productId") == product_id
                    for item in products
                ):
                    return SkuEntry.from_dict(doc)
        return None

    def close(self) -> None:
        """Clear all data."""
        with self._lock:
            self._documents.clear()
