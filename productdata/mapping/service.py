"""
Product Data Service: the operations exposed to the calling layer.

Wires the merge engine, batch upsert executor and retrieval engine to one
entry store and reports every operation to a metrics observer.

Operations:
    retrieve(directives, max_size)  -> RetrieveResult
    insert(entries)                 -> number of entries written
    ingest(readings)                -> number of entries written
    get_by_product_id(product_id)   -> SkuEntry narrowed to that product
    delete_by_sku(sku)              -> None

Invariants:
    - Every operation runs synchronously in the caller's thread
    - No state is shared between calls except through the store
    - The observer sees attempt, then success or error, then latency, for
      every call; it never changes the outcome
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Optional, Sequence

from ..errors import NoStoreError, NotFoundError, ValidationError
from ..metrics import GuardedObserver, MetricsObserver, NullObserver
from ..models import SkuEntry
from ..query.directives import QueryDirectives
from ..store.base import EntryStore
from .batch import upsert_entries
from .ingest import Reading, group_readings
from .merge import merge_entries
from .retrieve import RetrieveResult, retrieve

logger = logging.getLogger(__name__)

PRODUCT_ID_MAX_LENGTH = 1024


class ProductDataService:
    """Mapping between SKUs and their products.

    Attributes:
        store: Entry store, or None when no database is configured
        max_size: Default ceiling on entries returned by retrieve
        observer: Metrics observer

    Example:
        >>> service = ProductDataService(InMemoryEntryStore(), max_size=100)
        >>> service.insert([SkuEntry("MS1", [ProductEntry("P1")])])
        1
        >>> service.get_by_product_id("P1").sku
        'MS1'
    """

    def __init__(
        self,
        store: Optional[EntryStore],
        max_size: int = 10000,
        observer: Optional[MetricsObserver] = None,
    ) -> None:
        self.store = store
        self.max_size = max_size
        self.observer = observer or NullObserver()
        self._events = GuardedObserver(self.observer)

    @contextmanager
    def _observe(self, operation: str) -> Iterator[None]:
        self._events.record_attempt(operation)
        started = time.perf_counter()
        try:
            yield
        except Exception as exc:
            self._events.record_error(operation, exc)
            raise
        else:
            self._events.record_success(operation)
        finally:
            self._events.record_latency(operation, time.perf_counter() - started)

    def _require_store(self) -> EntryStore:
        if self.store is None:
            raise NoStoreError()
        return self.store

    def retrieve(
        self,
        directives: QueryDirectives,
        max_size: Optional[int] = None,
    ) -> RetrieveResult:
        """Run a query.

        Args:
            directives: Parsed query directives
            max_size: Ceiling on returned entries (defaults to self.max_size)

        Raises:
            NoStoreError: If no store is configured
            ValidationError: On invalid directives or filter
        """
        with self._observe("retrieve"):
            return retrieve(self.store, directives, max_size or self.max_size)

    def insert(self, entries: Sequence[SkuEntry]) -> int:
        """Merge entries with stored data and upsert them.

        Returns:
            Number of SKU entries written

        Raises:
            NoStoreError: If no store is configured
            ValidationError: If an entry has an empty sku or product list
            BatchUpsertError: If a group failed after earlier groups committed
        """
        with self._observe("insert"):
            store = self._require_store()
            merged = merge_entries(entries, store)
            return upsert_entries(merged, store, self._events)

    def ingest(self, readings: Sequence[Reading]) -> int:
        """Group flat readings by sku and insert them."""
        with self._observe("ingest"):
            store = self._require_store()
            merged = merge_entries(group_readings(readings), store)
            return upsert_entries(merged, store, self._events)

    def get_by_product_id(self, product_id: str) -> SkuEntry:
        """Return the SKU owning a product, narrowed to that product.

        Raises:
            ValidationError: If the product id is empty or too long
            NotFoundError: If no SKU lists the product
        """
        with self._observe("get_by_product_id"):
            if not product_id or len(product_id) > PRODUCT_ID_MAX_LENGTH:
                raise ValidationError(
                    f"productId must be 1 to {PRODUCT_ID_MAX_LENGTH} characters",
                    field_name="productId",
                )
            store = self._require_store()
            entry = store.find_by_product_id(product_id)
            if entry is None:
                raise NotFoundError(
                    f"product {product_id} not found",
                    resource_type="product",
                    resource_id=product_id,
                )
            return SkuEntry(
                entry.sku,
                [product for product in entry.product_list if product.product_id == product_id],
            )

    def delete_by_sku(self, sku: str) -> None:
        """Remove one SKU entry.

        Raises:
            NotFoundError: If the SKU does not exist
        """
        with self._observe("delete_by_sku"):
            store = self._require_store()
            if not store.delete_by_key(sku):
                raise NotFoundError(f"sku {sku} not found", resource_type="sku", resource_id=sku)
            logger.info("Deleted SKU", extra={"sku": sku})
