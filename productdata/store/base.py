"""
Base protocol and types for the entry store abstraction.

An entry store durably keeps one document per SKU and answers the queries
the mapping core needs: lookups by key, filtered scans, counts and bounded
batch upserts.

Invariants:
    - ``sku`` is unique across the store (enforced by the store itself)
    - ``upsert_batch`` never accepts more than ``max_ops_per_call`` instructions
    - One ``upsert_batch`` call is atomic; separate calls are independent
    - Unordered results come back in insertion order; an upsert of an existing
      key keeps its position

How to change safely:
    - Protocol changes require updating every implementation
    - Run the shared store tests against every backend
"""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass
from typing import (
    TYPE_CHECKING,
    Any,
    Dict,
    Iterable,
    List,
    Optional,
    Protocol,
    Sequence,
    Tuple,
    runtime_checkable,
)
import logging

from ..models import SkuEntry

if TYPE_CHECKING:
    from ..config import Settings

logger = logging.getLogger(__name__)

# Ceiling used when a store is built without an explicit value
DEFAULT_MAX_OPS_PER_CALL = 1000


@dataclass(frozen=True)
class UpsertInstruction:
    """Insert-or-replace one document by its key.

    Attributes:
        key: SKU the document is stored under
        document: Replacement document in the persisted layout
    """

    key: str
    document: Dict[str, Any]

    @classmethod
    def for_entry(cls, entry: SkuEntry) -> UpsertInstruction:
        return cls(key=entry.sku, document=entry.to_dict())


def partition_ranges(total: int, size: int) -> List[Tuple[int, int]]:
    """Split ``total`` items into consecutive half-open ranges of at most ``size``.

    Args:
        total: Number of items
        size: Maximum items per range

    Returns:
        List of (start, end) index pairs; empty when ``total`` is 0

    Raises:
        ValueError: If size is not positive or total is negative

    Example:
        >>> partition_ranges(2500, 1000)
        [(0, 1000), (1000, 2000), (2000, 2500)]
    """
    if size < 1:
        raise ValueError(f"size must be positive, got {size}")
    if total < 0:
        raise ValueError(f"total must not be negative, got {total}")
    return [(start, min(start + size, total)) for start in range(0, total, size)]


@runtime_checkable
class EntryStore(Protocol):
    """Protocol for entry store backends.

    Filter and ordering expressions are passed as text; stores parse them
    with ``productdata.query`` so that malformed input surfaces as
    ``InvalidFilterError`` from every backend.
    """

    max_ops_per_call: int

    @abstractmethod
    def fetch_by_keys(self, keys: Iterable[str]) -> List[SkuEntry]:
        """Return the persisted entries for the given keys.

        Keys with no record are skipped; order follows the store's order.

        Raises:
            StoreError: If the read fails
        """
        ...

    @abstractmethod
    def count_all(self) -> int:
        """Return the number of entries in the store."""
        ...

    @abstractmethod
    def evaluate_filter(
        self,
        expression: Optional[str],
        limit: int,
        skip: int = 0,
        orderby: Optional[str] = None,
    ) -> List[SkuEntry]:
        """Return entries matching a filter expression.

        Args:
            expression: Filter text; None or blank matches every entry
            limit: Maximum entries returned
            skip: Matching entries to skip first
            orderby: Optional ordering expression

        Raises:
            InvalidFilterError: If an expression is malformed
            StoreError: If the read fails
        """
        ...

    @abstractmethod
    def count_filtered(self, expression: Optional[str]) -> int:
        """Return the number of entries matching a filter expression.

        Raises:
            InvalidFilterError: If the expression is malformed
            StoreError: If the read fails
        """
        ...

    @abstractmethod
    def upsert_batch(self, instructions: Sequence[UpsertInstruction]) -> None:
        """Insert or replace every instruction in one atomic call.

        Raises:
            StoreError: If the batch exceeds ``max_ops_per_call`` or the write
                fails; nothing from this call is persisted
        """
        ...

    @abstractmethod
    def delete_by_key(self, key: str) -> bool:
        """Delete one entry.

        Returns:
            True if deleted, False if no entry had the key
        """
        ...

    @abstractmethod
    def find_by_product_id(self, product_id: str) -> Optional[SkuEntry]:
        """Return the first entry (store order) listing the product id."""
        ...

    @abstractmethod
    def close(self) -> None:
        """Release resources held by the store."""
        ...


def is_blank(expression: Optional[str]) -> bool:
    return expression is None or not expression.strip()


def create_entry_store(settings: "Settings") -> EntryStore:
    """Factory function to create an entry store from configuration.

    Args:
        settings: Service settings

    Returns:
        Initialized EntryStore implementation

    Raises:
        ValueError: If backend is not supported
    """
    from .memory import InMemoryEntryStore
    from .sqlite_store import SqliteEntryStore

    if settings.store_backend == "sqlite":
        store: EntryStore = SqliteEntryStore(
            settings.database_path,
            max_ops_per_call=settings.max_ops_per_call,
            wal_mode=settings.sqlite_wal_mode,
            busy_timeout_ms=settings.sqlite_busy_timeout_ms,
        )
    elif settings.store_backend == "memory":
        store = InMemoryEntryStore(max_ops_per_call=settings.max_ops_per_call)
    else:
        raise ValueError(f"Unsupported store backend: {settings.store_backend}")

    logger.info(
        "Entry store created",
        extra={"backend": settings.store_backend, "max_ops_per_call": store.max_ops_per_call},
    )
    return store
