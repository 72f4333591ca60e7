"""
Unit tests for query directives and the retrieval engine.

Tests cover:
- Directive parsing from query parameters
- Mode precedence (pure count, filtered count, inline count, paged, plain)
- $top clamping and validation
- The no-store precondition
"""

import pytest

from productdata.errors import InvalidFilterError, NoStoreError, ValidationError
from productdata.mapping.retrieve import (
    RetrievalMode,
    classify,
    resolve_limit,
    resolve_skip,
    retrieve,
)
from productdata.models import ProductEntry, SkuEntry
from productdata.query.directives import QueryDirectives
from productdata.store import InMemoryEntryStore, UpsertInstruction


class RecordingStore(InMemoryEntryStore):
    """In-memory store that records which read methods were called."""

    def __init__(self):
        super().__init__()
        self.calls = []

    def count_all(self):
        self.calls.append("count_all")
        return super().count_all()

    def count_filtered(self, expression):
        self.calls.append("count_filtered")
        return super().count_filtered(expression)

    def evaluate_filter(self, expression, limit, skip=0, orderby=None):
        self.calls.append(("evaluate_filter", limit, skip))
        return super().evaluate_filter(expression, limit, skip, orderby)


@pytest.fixture
def store():
    store = RecordingStore()
    store.upsert_batch([
        UpsertInstruction.for_entry(SkuEntry(f"S{i:03d}", [ProductEntry(f"P{i}")]))
        for i in range(150)
    ])
    store.upsert_batch([
        UpsertInstruction.for_entry(SkuEntry("X", [ProductEntry("PX")])),
    ])
    return store


def directives(**params):
    return QueryDirectives.from_query({f"${name}": value for name, value in params.items()})


class TestQueryDirectives:
    """Tests for QueryDirectives.from_query()."""

    def test_parses_known_directives(self):
        """Every directive is picked up."""
        parsed = QueryDirectives.from_query({
            "$count": "",
            "$filter": "sku eq 'X'",
            "$top": "5",
            "$skip": "2",
            "$orderby": "sku",
            "$inlinecount": "allpages",
        })
        assert parsed == QueryDirectives(
            count=True, filter="sku eq 'X'", top="5", skip="2",
            orderby="sku", inlinecount="allpages",
        )

    def test_prefix_is_optional(self):
        """Names work with or without '$'."""
        assert QueryDirectives.from_query({"top": "5"}).top == "5"

    def test_unknown_dollar_directive_rejected(self):
        """An unknown '$' name is a validation error."""
        with pytest.raises(ValidationError):
            QueryDirectives.from_query({"$expand": "x"})

    def test_other_parameters_ignored(self):
        """Plain parameters are not directives."""
        parsed = QueryDirectives.from_query([("trace", "1"), ("$count", "")])
        assert parsed == QueryDirectives(count=True)
        assert not parsed.has_non_count_directive()

    def test_first_repeated_value_wins(self):
        """Repeated names keep the first value."""
        parsed = QueryDirectives.from_query([("$top", "1"), ("$top", "2")])
        assert parsed.top == "1"

    def test_inline_allpages(self):
        """Only 'allpages' turns on inline count."""
        assert directives(inlinecount="allpages").inline_allpages
        assert not directives(inlinecount="none").inline_allpages


class TestClassify:
    """Tests for classify()."""

    def test_pure_count(self):
        assert classify(directives(count="")) is RetrievalMode.PURE_COUNT

    def test_filtered_count(self):
        assert classify(directives(count="", filter="sku eq 'X'")) is RetrievalMode.FILTERED_COUNT

    def test_inline_count(self):
        mode = classify(directives(filter="sku eq 'X'", inlinecount="allpages"))
        assert mode is RetrievalMode.INLINE_COUNT

    def test_paged(self):
        assert classify(directives(top="5")) is RetrievalMode.PAGED

    def test_plain(self):
        assert classify(directives()) is RetrievalMode.PLAIN
        assert classify(directives(filter="sku eq 'X'")) is RetrievalMode.PLAIN

    def test_count_with_inlinecount_rejected(self):
        """Both count semantics at once are ambiguous."""
        with pytest.raises(ValidationError):
            classify(directives(count="", inlinecount="allpages"))

    def test_count_with_other_inlinecount_value(self):
        """A non-allpages inlinecount does not conflict with count."""
        mode = classify(directives(count="", inlinecount="none"))
        assert mode is RetrievalMode.FILTERED_COUNT


class TestResolveLimit:
    """Tests for $top and $skip resolution."""

    def test_default_is_max_size(self):
        assert resolve_limit(None, 100) == 100

    def test_clamped(self):
        assert resolve_limit("99999", 100) == 100

    def test_below_ceiling(self):
        assert resolve_limit("7", 100) == 7

    @pytest.mark.parametrize("raw", ["abc", "1.5", "", "-1", "+5", "1_000", "\u0665", "9" * 25])
    def test_invalid_top(self, raw):
        with pytest.raises(ValidationError, match=r"invalid \$top value"):
            resolve_limit(raw, 100)

    def test_skip(self):
        assert resolve_skip(None) == 0
        assert resolve_skip("3") == 3
        with pytest.raises(ValidationError, match=r"invalid \$skip value"):
            resolve_skip("x")

    def test_skip_largest_value(self):
        """The largest 64-bit value is accepted; one more is not."""
        assert resolve_skip(str(2**63 - 1)) == 2**63 - 1
        with pytest.raises(ValidationError, match=r"invalid \$skip value"):
            resolve_skip(str(2**63))
        with pytest.raises(ValidationError, match=r"invalid \$skip value"):
            resolve_skip("99999999999999999999")

    def test_large_top_is_clamped(self):
        assert resolve_limit(str(2**63 - 1), 100) == 100


class TestRetrieve:
    """Tests for retrieve()."""

    def test_no_store(self):
        """Retrieving without a store fails immediately."""
        with pytest.raises(NoStoreError, match="no database connection"):
            retrieve(None, directives(), 100)

    def test_pure_count(self, store):
        """$count alone counts the whole store without a filter scan."""
        result = retrieve(store, directives(count=""), 100)

        assert result.mode is RetrievalMode.PURE_COUNT
        assert result.entries is None
        assert result.count.count == 151
        assert store.calls == ["count_all"]

    def test_count_with_filter(self, store):
        """$count with $filter returns only the matching count."""
        result = retrieve(store, directives(count="", filter="sku eq 'X'"), 100)

        assert result.entries is None
        assert result.count.count == 1
        assert "count_all" not in store.calls

    def test_inlinecount(self, store):
        """inlinecount=allpages returns entries and their count."""
        result = retrieve(store, directives(filter="sku eq 'X'", inlinecount="allpages"), 100)

        assert [e.sku for e in result.entries] == ["X"]
        assert result.count.count == 1

    def test_inlinecount_counts_beyond_page(self, store):
        """The inline count covers every match, not just the page."""
        result = retrieve(
            store, directives(filter="startswith(sku, 'S')", inlinecount="allpages", top="10"), 100
        )
        assert len(result.entries) == 10
        assert result.count.count == 150

    def test_plain_filter(self, store):
        """A filter alone returns entries without a count."""
        result = retrieve(store, directives(filter="sku eq 'X'"), 100)

        assert result.mode is RetrievalMode.PLAIN
        assert [e.sku for e in result.entries] == ["X"]
        assert result.count is None

    def test_empty_result_is_success(self, store):
        """Zero matches is a valid outcome."""
        result = retrieve(store, directives(filter="sku eq 'nothing'"), 100)
        assert result.entries == []

    def test_top_clamped_to_max_size(self, store):
        """top=99999 with max_size=100 returns at most 100 entries."""
        result = retrieve(store, directives(top="99999"), 100)

        assert result.mode is RetrievalMode.PAGED
        assert len(result.entries) == 100
        assert store.calls == [("evaluate_filter", 100, 0)]

    def test_default_limit_is_max_size(self, store):
        """Without top the ceiling still applies."""
        result = retrieve(store, directives(), 20)
        assert len(result.entries) == 20

    def test_invalid_top_makes_no_store_call(self, store):
        """A bad top fails before the fetch."""
        with pytest.raises(ValidationError):
            retrieve(store, directives(top="abc"), 100)
        assert store.calls == []

    def test_count_with_invalid_top(self, store):
        """top counts as another directive, so it is validated."""
        with pytest.raises(ValidationError):
            retrieve(store, directives(count="", top="abc"), 100)
        assert store.calls == []

    def test_conflicting_counts_make_no_store_call(self, store):
        """Ambiguous count directives are rejected up front."""
        with pytest.raises(ValidationError):
            retrieve(store, directives(count="", inlinecount="allpages", filter="sku eq 'X'"), 100)
        assert store.calls == []

    def test_skip_and_orderby(self, store):
        """skip and orderby are passed to the store."""
        result = retrieve(store, directives(orderby="sku desc", skip="1", top="2"), 100)
        assert [e.sku for e in result.entries] == ["S149", "S148"]

    def test_malformed_filter(self, store):
        """A malformed filter surfaces as a validation error."""
        with pytest.raises(InvalidFilterError):
            retrieve(store, directives(filter="sku eq"), 100)

    def test_skip_out_of_range_makes_no_store_call(self, store):
        """An oversized $skip is a validation error raised before any read."""
        with pytest.raises(ValidationError, match=r"invalid \$skip value"):
            retrieve(store, directives(skip="99999999999999999999"), 100)
        assert store.calls == []

    def test_integer_literal_out_of_range(self, store):
        """Integer literals beyond 64 bits are rejected as a malformed filter."""
        with pytest.raises(InvalidFilterError, match="out of range"):
            retrieve(store, directives(filter="productList.dailyTurn gt 99999999999999999999"), 100)
