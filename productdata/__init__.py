"""
Product Data Service - SKU to product mapping store.

This package maps a business identifier (SKU) to the list of products that
belong to it and exposes a small retrieve/insert API on top of it:

    ┌─────────────┐     ┌──────────────┐     ┌──────────────────┐
    │ HTTP client │────▶│   FastAPI    │────▶│ ProductDataService│
    └─────────────┘     │  (api/)      │     │   (mapping/)      │
                        └──────────────┘     └────────┬─────────┘
                                                      │
                     writes: merge ──▶ batch upsert   │  reads: retrieval
                                                      ▼
                                             ┌──────────────────┐
                                             │   EntryStore      │
                                             │ (SQLite / memory) │
                                             └──────────────────┘

Invariants:
    - One persisted record per SKU, keyed uniquely by ``sku``
    - Product ids are unique within a SKU's product list
    - Upserts merge with what is already stored; products are never dropped
    - Reads never return more than the configured response limit

How to change safely:
    - Keep the persisted camelCase document layout stable (see models.py)
    - New query directives must keep the pure-count rule intact
    - Store implementations must pass the shared store test-suite
"""

from ._version import __version__

__all__ = ["__version__"]
