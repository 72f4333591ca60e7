"""
Unit tests for the SKU data model.

Tests cover:
- Persisted document layout
- Defaults for absent attributes
- Field replacement used by the merge engine
"""

from productdata.models import CountResult, ProductEntry, SkuEntry


class TestProductEntry:
    """Tests for ProductEntry."""

    def test_to_dict_uses_persisted_keys(self):
        """Document keys are camelCase."""
        product = ProductEntry("P1", being_read=0.1, becoming_readable=0.2,
                               exit_error=0.3, daily_turn=0.4, metadata={"color": "blue"})

        assert product.to_dict() == {
            "productId": "P1",
            "beingRead": 0.1,
            "becomingReadable": 0.2,
            "exitError": 0.3,
            "dailyTurn": 0.4,
            "metadata": {"color": "blue"},
        }

    def test_from_dict_defaults(self):
        """Absent numeric attributes are zero and metadata is empty."""
        product = ProductEntry.from_dict({"productId": "P1"})

        assert product.being_read == 0.0
        assert product.becoming_readable == 0.0
        assert product.exit_error == 0.0
        assert product.daily_turn == 0.0
        assert product.metadata == {}

    def test_from_dict_null_metadata(self):
        """Null metadata becomes an empty map."""
        product = ProductEntry.from_dict({"productId": "P1", "metadata": None})
        assert product.metadata == {}

    def test_with_fields_from_replaces_all_mutable_fields(self):
        """Every mutable field is replaced, including defaults."""
        stored = ProductEntry("P1", daily_turn=0.1, exit_error=0.5, metadata={"a": 1, "b": 2})
        incoming = ProductEntry("P1", daily_turn=0.9, metadata={"c": 3})

        updated = stored.with_fields_from(incoming)

        assert updated.product_id == "P1"
        assert updated.daily_turn == 0.9
        assert updated.exit_error == 0.0
        assert updated.metadata == {"c": 3}
        assert stored.daily_turn == 0.1

    def test_with_fields_from_copies_metadata(self):
        """Updated product does not share metadata with the source."""
        incoming = ProductEntry("P1", metadata={"tags": ["x"]})
        updated = ProductEntry("P1").with_fields_from(incoming)

        incoming.metadata["tags"].append("y")
        assert updated.metadata == {"tags": ["x"]}


class TestSkuEntry:
    """Tests for SkuEntry."""

    def test_round_trip(self):
        """from_dict reads what to_dict writes."""
        entry = SkuEntry("MS122-32", [ProductEntry("P1", daily_turn=0.5), ProductEntry("P2")])
        assert SkuEntry.from_dict(entry.to_dict()) == entry

    def test_missing_product_list(self):
        """Absent productList is an empty list."""
        entry = SkuEntry.from_dict({"sku": "MS1"})
        assert entry.product_list == []

    def test_product_ids(self):
        """Product ids in list order."""
        entry = SkuEntry("MS1", [ProductEntry("B"), ProductEntry("A")])
        assert entry.product_ids() == ["B", "A"]


class TestCountResult:
    """Tests for CountResult."""

    def test_to_dict(self):
        """Count serializes under 'count'."""
        assert CountResult(7).to_dict() == {"count": 7}
