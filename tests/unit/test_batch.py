"""
Unit tests for the batch upsert executor.

Tests cover:
- Group sizes and order
- Empty batches
- Failure after earlier groups committed
- Instrumentation of processed entries
"""

import pytest

from productdata.errors import BatchUpsertError, StoreError
from productdata.mapping.batch import upsert_entries
from productdata.metrics import CountingObserver
from productdata.models import ProductEntry, SkuEntry
from productdata.store import InMemoryEntryStore


class RecordingStore(InMemoryEntryStore):
    """In-memory store that records upsert group sizes and can fail a group."""

    def __init__(self, max_ops_per_call, fail_on_call=None):
        super().__init__(max_ops_per_call=max_ops_per_call)
        self.calls = []
        self.fail_on_call = fail_on_call

    def upsert_batch(self, instructions):
        self.calls.append([item.key for item in instructions])
        if self.fail_on_call is not None and len(self.calls) == self.fail_on_call:
            raise StoreError("disk full", operation="upsert_batch")
        super().upsert_batch(instructions)


def entries(count):
    return [SkuEntry(f"SKU{i:05d}", [ProductEntry(str(i))]) for i in range(count)]


class TestUpsertEntries:
    """Tests for upsert_entries()."""

    def test_partitions_into_bounded_groups(self):
        """2500 entries at 1000 per call make calls of 1000, 1000, 500."""
        store = RecordingStore(max_ops_per_call=1000)

        written = upsert_entries(entries(2500), store)

        assert written == 2500
        assert [len(call) for call in store.calls] == [1000, 1000, 500]
        assert store.count_all() == 2500

    def test_groups_run_in_input_order(self):
        """Consecutive, non-overlapping groups."""
        store = RecordingStore(max_ops_per_call=2)

        upsert_entries(entries(5), store)

        assert store.calls == [
            ["SKU00000", "SKU00001"],
            ["SKU00002", "SKU00003"],
            ["SKU00004"],
        ]

    def test_single_group(self):
        """A batch under the ceiling is one call."""
        store = RecordingStore(max_ops_per_call=1000)
        upsert_entries(entries(3), store)
        assert len(store.calls) == 1

    def test_empty_batch_makes_no_calls(self):
        """Nothing to write, nothing called."""
        store = RecordingStore(max_ops_per_call=1000)
        assert upsert_entries([], store) == 0
        assert store.calls == []

    def test_failure_keeps_committed_groups(self):
        """A failed group stops the run without rolling back earlier groups."""
        store = RecordingStore(max_ops_per_call=2, fail_on_call=2)

        with pytest.raises(BatchUpsertError) as exc_info:
            upsert_entries(entries(5), store)

        error = exc_info.value
        assert error.committed == 2
        assert error.failed_group == 1
        assert error.total == 5
        assert isinstance(error, StoreError)
        assert isinstance(error.__cause__, StoreError)
        assert len(store.calls) == 2
        assert store.count_all() == 2

    def test_reports_processed_count(self):
        """The observer receives the running count per group."""
        store = RecordingStore(max_ops_per_call=2)
        observer = CountingObserver()

        upsert_entries(entries(5), store, observer)

        assert observer.snapshot()["upsert"]["items"] == 5
