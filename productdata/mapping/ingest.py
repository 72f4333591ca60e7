"""
Ingestion of flat product readings.

Upstream producers publish one record per product rather than one per SKU:

    {"sku": "MS122-32", "upc": "889319388921", "beingRead": 0.01,
     "becomingReadable": 0.04, "exitError": 0.07, "dailyTurn": 0.01,
     "metadata": {"color": "blue"}}

The producer field ``upc`` carries the product id, whatever its scheme.
Readings are grouped into SKU entries and then go through the normal
insert path (merge + batch upsert).
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence

from ..models import ProductEntry, SkuEntry
from .merge import fold_duplicate_skus


@dataclass
class Reading:
    """One flat product reading.

    Attributes:
        sku: SKU the product belongs to
        product_id: Product id (``upc`` on the wire)
        being_read: Fraction in [0, 1]
        becoming_readable: Fraction in [0, 1]
        exit_error: Fraction in [0, 1]
        daily_turn: Fraction in [0, 1]
        metadata: Arbitrary producer attributes
    """

    sku: str
    product_id: str
    being_read: float = 0.0
    becoming_readable: float = 0.0
    exit_error: float = 0.0
    daily_turn: float = 0.0
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Reading:
        return cls(
            sku=str(data.get("sku", "")),
            product_id=str(data.get("upc", "")),
            being_read=float(data.get("beingRead") or 0.0),
            becoming_readable=float(data.get("becomingReadable") or 0.0),
            exit_error=float(data.get("exitError") or 0.0),
            daily_turn=float(data.get("dailyTurn") or 0.0),
            metadata=copy.deepcopy(data.get("metadata") or {}),
        )

    def to_product(self) -> ProductEntry:
        return ProductEntry(
            product_id=self.product_id,
            being_read=self.being_read,
            becoming_readable=self.becoming_readable,
            exit_error=self.exit_error,
            daily_turn=self.daily_turn,
            metadata=copy.deepcopy(self.metadata),
        )


def group_readings(readings: Sequence[Reading]) -> List[SkuEntry]:
    """Group readings by sku, in order of first appearance.

    Products keep reading order within each SKU; repeated product ids are
    left for the merge engine to collapse.
    """
    return fold_duplicate_skus(
        [SkuEntry(reading.sku, [reading.to_product()]) for reading in readings]
    )
