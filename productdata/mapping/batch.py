"""
Batch upsert executor.

Turns merged SKU entries into upsert instructions and writes them to the
entry store in consecutive groups of at most ``store.max_ops_per_call``.

Invariants:
    - Group boundaries depend only on len(entries) and the store ceiling
    - Groups run one after another in the calling thread, in input order
    - An empty batch makes no store call
    - A failed group stops the run; earlier groups stay committed and the
      raised BatchUpsertError says how many entries were written
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from ..errors import BatchUpsertError, StoreError
from ..metrics import MetricsObserver, NullObserver
from ..models import SkuEntry
from ..store.base import EntryStore, UpsertInstruction, partition_ranges

logger = logging.getLogger(__name__)


def upsert_entries(
    entries: Sequence[SkuEntry],
    store: EntryStore,
    observer: Optional[MetricsObserver] = None,
) -> int:
    """Upsert entries in bounded groups.

    Args:
        entries: Merged entries, one per sku
        store: Target entry store
        observer: Receives the running count of written entries

    Returns:
        Number of entries written

    Raises:
        BatchUpsertError: If a group fails
    """
    observer = observer or NullObserver()
    instructions = [UpsertInstruction.for_entry(entry) for entry in entries]
    ranges = partition_ranges(len(instructions), store.max_ops_per_call)

    committed = 0
    for group, (start, end) in enumerate(ranges):
        try:
            store.upsert_batch(instructions[start:end])
        except StoreError as exc:
            logger.error(
                "Batch upsert group failed",
                extra={
                    "group": group,
                    "groups": len(ranges),
                    "committed": committed,
                    "total": len(instructions),
                },
            )
            raise BatchUpsertError(
                f"upsert failed in group {group + 1} of {len(ranges)} "
                f"after {committed} of {len(instructions)} entries were written: {exc.message}",
                committed=committed,
                failed_group=group,
                total=len(instructions),
            ) from exc
        committed += end - start
        observer.record_count("upsert", end - start)

    if ranges:
        logger.info(
            "Upserted entries",
            extra={"count": committed, "groups": len(ranges)},
        )
    return committed
