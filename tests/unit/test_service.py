"""
Unit tests for ProductDataService.

Tests cover:
- Insert (merge + batch upsert) end to end over the memory store
- Product id lookup and SKU deletion
- The no-store precondition
- Observer reporting, and that the observer never changes results
"""

import pytest

from productdata.errors import NoStoreError, NotFoundError, ValidationError
from productdata.mapping.ingest import Reading
from productdata.mapping.service import ProductDataService
from productdata.metrics import CountingObserver, NullObserver
from productdata.models import ProductEntry, SkuEntry
from productdata.query.directives import QueryDirectives
from productdata.store import InMemoryEntryStore


class BrokenObserver(NullObserver):
    """Observer whose every method raises."""

    def _fail(self, *args):
        raise RuntimeError("metrics backend down")

    record_attempt = record_success = record_error = record_latency = record_count = _fail


class TestProductDataService:
    """Tests for ProductDataService."""

    @pytest.fixture
    def observer(self):
        return CountingObserver()

    @pytest.fixture
    def service(self, observer):
        return ProductDataService(InMemoryEntryStore(max_ops_per_call=2), max_size=50, observer=observer)

    def all_entries(self, service):
        return service.retrieve(QueryDirectives()).entries

    def test_insert_and_retrieve(self, service):
        """Inserted entries are returned by retrieve."""
        written = service.insert([
            SkuEntry("A", [ProductEntry("P1")]),
            SkuEntry("B", [ProductEntry("P2")]),
            SkuEntry("C", [ProductEntry("P3")]),
        ])

        assert written == 3
        assert [e.sku for e in self.all_entries(service)] == ["A", "B", "C"]

    def test_insert_merges_with_stored(self, service):
        """A second insert keeps earlier products."""
        service.insert([SkuEntry("A", [ProductEntry("P1"), ProductEntry("P2")])])
        service.insert([SkuEntry("A", [ProductEntry("P3"), ProductEntry("P1", daily_turn=0.9)])])

        entry = self.all_entries(service)[0]
        assert entry.product_ids() == ["P1", "P2", "P3"]
        assert entry.product_list[0].daily_turn == 0.9

    def test_insert_is_idempotent(self, service):
        """Inserting the same entry twice equals inserting it once."""
        entry = SkuEntry("A", [ProductEntry("P1", daily_turn=0.3, metadata={"c": "blue"})])
        service.insert([entry])
        once = self.all_entries(service)
        service.insert([entry])
        assert self.all_entries(service) == once

    def test_insert_validation(self, service):
        """An invalid entry rejects the whole batch."""
        with pytest.raises(ValidationError):
            service.insert([SkuEntry("A", [ProductEntry("P1")]), SkuEntry("B", [])])
        assert self.all_entries(service) == []

    def test_insert_rejects_non_finite_numbers(self, service):
        """NaN or infinity anywhere in a product rejects the batch."""
        with pytest.raises(ValidationError) as exc_info:
            service.insert([
                SkuEntry("A", [ProductEntry("P1", metadata={"x": [1.0, float("nan")]})]),
                SkuEntry("B", [ProductEntry("P2", daily_turn=float("inf"))]),
            ])
        assert exc_info.value.errors == [
            "data[0].productList[0]: numbers must be finite",
            "data[1].productList[0]: numbers must be finite",
        ]
        assert self.all_entries(service) == []

    def test_ingest(self, service):
        """Readings are grouped and merged like inserts."""
        service.insert([SkuEntry("A", [ProductEntry("P0")])])

        written = service.ingest([Reading("A", "P1"), Reading("B", "Q1"), Reading("A", "P0", exit_error=0.4)])

        assert written == 2
        entries = self.all_entries(service)
        assert entries[0].product_ids() == ["P0", "P1"]
        assert entries[0].product_list[0].exit_error == 0.4
        assert entries[1].sku == "B"

    def test_get_by_product_id(self, service):
        """Returns the owning sku narrowed to the product."""
        service.insert([SkuEntry("A", [ProductEntry("P1"), ProductEntry("P2", daily_turn=0.4)])])

        entry = service.get_by_product_id("P2")

        assert entry.sku == "A"
        assert entry.product_list == [ProductEntry("P2", daily_turn=0.4)]

    def test_get_by_product_id_not_found(self, service):
        """Unknown product ids raise NotFoundError."""
        with pytest.raises(NotFoundError) as exc_info:
            service.get_by_product_id("missing")
        assert exc_info.value.resource_type == "product"

    @pytest.mark.parametrize("product_id", ["", "x" * 1025])
    def test_get_by_product_id_bounds(self, service, product_id):
        """Product ids must be 1 to 1024 characters."""
        with pytest.raises(ValidationError):
            service.get_by_product_id(product_id)

    def test_delete_by_sku(self, service):
        """Deleting removes the entry; a second delete is not found."""
        service.insert([SkuEntry("A", [ProductEntry("P1")])])

        service.delete_by_sku("A")

        assert self.all_entries(service) == []
        with pytest.raises(NotFoundError):
            service.delete_by_sku("A")

    def test_no_store(self):
        """Every operation fails fast without a store."""
        service = ProductDataService(None)
        with pytest.raises(NoStoreError):
            service.insert([SkuEntry("A", [ProductEntry("P1")])])
        with pytest.raises(NoStoreError):
            service.retrieve(QueryDirectives(count=True))
        with pytest.raises(NoStoreError):
            service.delete_by_sku("A")

    def test_observer_records_outcomes(self, service, observer):
        """Attempts, successes, errors and latency are reported."""
        service.insert([SkuEntry("A", [ProductEntry("P1")]), SkuEntry("B", [ProductEntry("P2")]),
                        SkuEntry("C", [ProductEntry("P3")])])
        with pytest.raises(NotFoundError):
            service.get_by_product_id("missing")

        snapshot = observer.snapshot()
        assert snapshot["insert"]["attempts"] == 1
        assert snapshot["insert"]["successes"] == 1
        assert snapshot["insert"]["latency_seconds"]["count"] == 1
        assert snapshot["upsert"]["items"] == 3
        assert snapshot["get_by_product_id"]["errors"] == {"NotFoundError": 1}
        assert snapshot["get_by_product_id"]["successes"] == 0

    def test_observer_does_not_change_results(self):
        """Same results with and without an observer."""
        results = []
        for observer in (None, NullObserver(), CountingObserver()):
            service = ProductDataService(InMemoryEntryStore(), observer=observer)
            service.insert([SkuEntry("A", [ProductEntry("P1")]), SkuEntry("A", [ProductEntry("P2")])])
            results.append(service.retrieve(QueryDirectives(inlinecount="allpages")))
        assert results[0] == results[1] == results[2]

    def test_failing_observer_is_ignored(self, caplog):
        """An observer that raises neither fails nor changes an operation."""
        service = ProductDataService(InMemoryEntryStore(), observer=BrokenObserver())

        with caplog.at_level("WARNING", logger="productdata.metrics"):
            assert service.insert([SkuEntry("A", [ProductEntry("P1")])]) == 1
            with pytest.raises(NotFoundError):
                service.get_by_product_id("missing")

        assert service.get_by_product_id("P1").sku == "A"
        assert any(r.getMessage() == "Metrics observer failed" for r in caplog.records)
