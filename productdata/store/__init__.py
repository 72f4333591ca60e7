"""
Entry store abstraction for the Product Data Service.

This module provides a pluggable storage backend interface supporting:
- SQLite (durable, default)
- In-memory (for testing and local development)

Invariants:
    - One document per SKU, keyed uniquely by ``sku``
    - upsert_batch accepts at most ``max_ops_per_call`` instructions

How to change safely:
    - New backends must implement the EntryStore protocol
    - Run the shared store tests against the new backend
"""

from .base import (
    DEFAULT_MAX_OPS_PER_CALL,
    EntryStore,
    UpsertInstruction,
    create_entry_store,
    partition_ranges,
)
from .memory import InMemoryEntryStore
from .sqlite_store import SqliteEntryStore

__all__ = [
    # Protocol and types
    "EntryStore",
    "UpsertInstruction",
    "DEFAULT_MAX_OPS_PER_CALL",
    "partition_ranges",
    # Factory
    "create_entry_store",
    # Implementations
    "InMemoryEntryStore",
    "SqliteEntryStore",
]
