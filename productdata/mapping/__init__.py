"""
The mapping core: merge-on-write upserts and query retrieval.

- merge: reconcile incoming entries with persisted ones
- batch: upsert in groups bounded by the store's ceiling
- retrieve: classify query directives and run the store calls
- ingest: group flat readings into SKU entries
- service: ProductDataService, the operations the HTTP layer calls
"""

from .batch import upsert_entries
from .ingest import Reading, group_readings
from .merge import dedupe_products, fold_duplicate_skus, merge_entries, merge_products
from .retrieve import RetrievalMode, RetrieveResult, classify, retrieve
from .service import ProductDataService

__all__ = [
    "ProductDataService",
    "merge_entries",
    "merge_products",
    "dedupe_products",
    "fold_duplicate_skus",
    "upsert_entries",
    "retrieve",
    "classify",
    "RetrievalMode",
    "RetrieveResult",
    "Reading",
    "group_readings",
]
