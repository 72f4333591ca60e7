"""
Data model for SKU entries.

A SKU entry connects one business identifier (the SKU) to one or more
product entries. The persisted document layout uses camelCase keys:

    {
        "sku": "MS122-32",
        "productList": [
            {
                "productId": "889319388921",
                "beingRead": 0.0123,
                "becomingReadable": 0.0456,
                "exitError": 0.0789,
                "dailyTurn": 0.0121,
                "metadata": {"color": "blue"}
            }
        ]
    }

Invariants:
    - ``to_dict`` output round-trips through ``from_dict``
    - Absent numeric attributes default to 0.0, absent metadata to {}
    - Range checks on numeric attributes happen at the HTTP boundary
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, List

# Attributes replaced wholesale when an incoming product matches a stored one
MUTABLE_PRODUCT_FIELDS = (
    "metadata",
    "daily_turn",
    "becoming_readable",
    "being_read",
    "exit_error",
)


@dataclass
class ProductEntry:
    """One product associated with a SKU.

    Attributes:
        product_id: Secondary identity, unique within a SKU's product list
        being_read: Fraction in [0, 1]
        becoming_readable: Fraction in [0, 1]
        exit_error: Fraction in [0, 1]
        daily_turn: Fraction in [0, 1]
        metadata: Arbitrary caller-supplied attributes
    """

    product_id: str
    being_read: float = 0.0
    becoming_readable: float = 0.0
    exit_error: float = 0.0
    daily_turn: float = 0.0
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the persisted document layout."""
        return {
            "productId": self.product_id,
            "beingRead": self.being_read,
            "becomingReadable": self.becoming_readable,
            "exitError": self.exit_error,
            "dailyTurn": self.daily_turn,
            "metadata": copy.deepcopy(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ProductEntry:
        """Create from a persisted or incoming document."""
        return cls(
            product_id=str(data.get("productId", "")),
            being_read=float(data.get("beingRead") or 0.0),
            becoming_readable=float(data.get("becomingReadable") or 0.0),
            exit_error=float(data.get("exitError") or 0.0),
            daily_turn=float(data.get("dailyTurn") or 0.0),
            metadata=copy.deepcopy(data.get("metadata") or {}),
        )

    def with_fields_from(self, other: ProductEntry) -> ProductEntry:
        """Return a copy of this product carrying ``other``'s mutable fields.

        The product id is kept; every mutable field is replaced, including
        ones that ``other`` left at their defaults.
        """
        updated = copy.deepcopy(self)
        for name in MUTABLE_PRODUCT_FIELDS:
            setattr(updated, name, copy.deepcopy(getattr(other, name)))
        return updated


@dataclass
class SkuEntry:
    """A SKU and its associated products.

    Attributes:
        sku: Unique business key
        product_list: Ordered products belonging to the SKU
    """

    sku: str
    product_list: List[ProductEntry] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the persisted document layout."""
        return {
            "sku": self.sku,
            "productList": [product.to_dict() for product in self.product_list],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> SkuEntry:
        """Create from a persisted or incoming document."""
        return cls(
            sku=str(data.get("sku", "")),
            product_list=[
                ProductEntry.from_dict(item) for item in data.get("productList") or []
            ],
        )

    def product_ids(self) -> List[str]:
        return [product.product_id for product in self.product_list]


@dataclass(frozen=True)
class CountResult:
    """A single row count returned by retrieval."""

    count: int

    def to_dict(self) -> Dict[str, int]:
        return {"count": self.count}
