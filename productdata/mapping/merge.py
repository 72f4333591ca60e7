"""
Merge engine: reconcile incoming SKU entries with persisted ones.

An insert never drops products that are already stored. For each incoming
entry the engine:

1. rejects the whole batch if any entry has an empty sku or product list,
   or a product carrying NaN or an infinity anywhere in its values;
2. folds repeated SKUs in the batch into one entry (first appearance keeps
   its position, product lists are concatenated in order);
3. drops repeated product ids within the entry, first occurrence wins;
4. merges with the persisted entry of the same sku, if any: a matching
   product keeps its stored position and takes the incoming mutable fields
   wholesale, an unmatched incoming product is appended, and stored
   products absent from the input are kept as they are.

Validation runs before the store is read, so a rejected batch costs no I/O.

Invariants:
    - Output has exactly one entry per distinct incoming sku, in order of
      first appearance
    - Product ids are unique within every output entry
    - Inputs are never mutated
    - The merge is not transactional; concurrent writers to one sku race and
      the last upsert wins
"""

from __future__ import annotations

import copy
import logging
import math
from typing import Any, Dict, List, Sequence

from ..errors import ValidationError
from ..models import ProductEntry, SkuEntry
from ..store.base import EntryStore

logger = logging.getLogger(__name__)


def _is_finite(value: Any) -> bool:
    if isinstance(value, float):
        return math.isfinite(value)
    if isinstance(value, dict):
        return all(_is_finite(item) for item in value.values())
    if isinstance(value, (list, tuple)):
        return all(_is_finite(item) for item in value)
    return True


def validate_entries(entries: Sequence[SkuEntry]) -> None:
    """Reject a batch with an empty sku or product list, or non-finite numbers.

    Raises:
        ValidationError: Listing every offending position
    """
    problems: List[str] = []
    for index, entry in enumerate(entries):
        if not entry.sku:
            problems.append(f"data[{index}]: sku must not be empty")
        if not entry.product_list:
            problems.append(f"data[{index}]: productList must not be empty")
        for position, product in enumerate(entry.product_list):
            values = [
                product.being_read,
                product.becoming_readable,
                product.exit_error,
                product.daily_turn,
                product.metadata,
            ]
            if not _is_finite(values):
                problems.append(
                    f"data[{index}].productList[{position}]: numbers must be finite"
                )
    if problems:
        raise ValidationError(
            "; ".join(problems), field_name="data", errors=problems
        )


def fold_duplicate_skus(entries: Sequence[SkuEntry]) -> List[SkuEntry]:
    """Combine entries sharing a sku into one, keeping first-appearance order."""
    folded: Dict[str, SkuEntry] = {}
    for entry in entries:
        existing = folded.get(entry.sku)
        if existing is None:
            folded[entry.sku] = SkuEntry(entry.sku, list(entry.product_list))
        else:
            existing.product_list.extend(entry.product_list)
    return list(folded.values())


def dedupe_products(products: Sequence[ProductEntry]) -> List[ProductEntry]:
    """Collapse products sharing a product id; the first occurrence wins."""
    seen: Dict[str, ProductEntry] = {}
    for product in products:
        seen.setdefault(product.product_id, product)
    return list(seen.values())


def merge_products(
    persisted: Sequence[ProductEntry],
    incoming: Sequence[ProductEntry],
) -> List[ProductEntry]:
    """Merge incoming products into a persisted product list.

    Args:
        persisted: Stored products, in stored order
        incoming: Deduplicated incoming products

    Returns:
        New product list; inputs are left untouched
    """
    merged = [copy.deepcopy(product) for product in persisted]
    positions = {product.product_id: idx for idx, product in enumerate(merged)}
    for product in incoming:
        idx = positions.get(product.product_id)
        if idx is None:
            positions[product.product_id] = len(merged)
            merged.append(copy.deepcopy(product))
        else:
            merged[idx] = merged[idx].with_fields_from(product)
    return merged


def merge_entries(incoming: Sequence[SkuEntry], store: EntryStore) -> List[SkuEntry]:
    """Produce the entries to upsert for an incoming batch.

    Args:
        incoming: Caller-supplied entries, not yet deduplicated
        store: Entry store holding the persisted entries

    Returns:
        One merged entry per distinct incoming sku

    Raises:
        ValidationError: If any entry has an empty sku or product list
        StoreError: If the persisted entries cannot be read
    """
    validate_entries(incoming)

    entries = [
        SkuEntry(entry.sku, dedupe_products(entry.product_list))
        for entry in fold_duplicate_skus(incoming)
    ]
    if not entries:
        return []

    persisted = {entry.sku: entry for entry in store.fetch_by_keys(e.sku for e in entries)}

    result: List[SkuEntry] = []
    for entry in entries:
        stored = persisted.get(entry.sku)
        if stored is None:
            result.append(SkuEntry(entry.sku, [copy.deepcopy(p) for p in entry.product_list]))
        else:
            result.append(
                SkuEntry(entry.sku, merge_products(stored.product_list, entry.product_list))
            )

    logger.debug(
        "Merged incoming entries",
        extra={
            "incoming": len(incoming),
            "distinct_skus": len(entries),
            "matched": sum(1 for entry in entries if entry.sku in persisted),
        },
    )
    return result
