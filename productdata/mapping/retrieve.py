"""
Query retrieval engine.

Classifies a set of query directives into one of five response modes and
runs the matching store calls:

    PURE_COUNT      $count alone                  -> count of the whole store
    FILTERED_COUNT  $count with other directives  -> count of matching entries
    INLINE_COUNT    $inlinecount=allpages         -> matching entries + count
    PAGED           $top given                    -> matching entries
    PLAIN           anything else                 -> matching entries

Decision order:
    1. no store                        -> NoStoreError
    2. $count and nothing else         -> PURE_COUNT (no parsing, no filter)
    3. $count with inlinecount=allpages -> ValidationError (ambiguous)
    4. $top / $skip parsed; $top clamped to max_size, default max_size
    5. filter evaluated with the effective limit, then the shape is picked

Invariants:
    - At most max_size entries are ever returned
    - An invalid $top or $skip fails before any store call
    - Counts cover every matching entry, not just the returned page; an
      allpages inline count follows OData and ignores $top and $skip
    - $top and $skip are plain ASCII digits no larger than 2**63 - 1
    - An empty result is a success, never an error
"""

from __future__ import annotations

import enum
import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional

from ..errors import NoStoreError, ValidationError
from ..models import CountResult, SkuEntry
from ..query.directives import QueryDirectives
from ..store.base import EntryStore

logger = logging.getLogger(__name__)

_DIGITS_RE = re.compile(r"[0-9]+")

# Largest value SQLite accepts for LIMIT and OFFSET.
MAX_DIRECTIVE_VALUE = 2**63 - 1


class RetrievalMode(enum.Enum):
    """Response shape chosen for a directive set."""

    PURE_COUNT = "pure_count"
    FILTERED_COUNT = "filtered_count"
    INLINE_COUNT = "inline_count"
    PAGED = "paged"
    PLAIN = "plain"


@dataclass
class RetrieveResult:
    """Outcome of a retrieve call.

    Attributes:
        entries: Matching entries, or None for count-only modes
        count: Count result, or None when no count was requested
        mode: The response mode that produced this result
    """

    entries: Optional[List[SkuEntry]] = None
    count: Optional[CountResult] = None
    mode: RetrievalMode = field(default=RetrievalMode.PLAIN)


def classify(directives: QueryDirectives) -> RetrievalMode:
    """Pick the response mode for a directive set.

    Raises:
        ValidationError: If $count and $inlinecount=allpages are combined
    """
    if directives.count and not directives.has_non_count_directive():
        return RetrievalMode.PURE_COUNT
    if directives.count and directives.inline_allpages:
        raise ValidationError(
            "$count and $inlinecount=allpages cannot be combined",
            field_name="$count",
        )
    if directives.inline_allpages:
        return RetrievalMode.INLINE_COUNT
    if directives.count:
        return RetrievalMode.FILTERED_COUNT
    if directives.top is not None:
        return RetrievalMode.PAGED
    return RetrievalMode.PLAIN


def _parse_non_negative(raw: str, name: str) -> int:
    text = raw.strip()
    if (
        not _DIGITS_RE.fullmatch(text)
        or len(text) > 19
        or int(text) > MAX_DIRECTIVE_VALUE
    ):
        raise ValidationError(f"invalid ${name} value", field_name=f"${name}")
    return int(text)


def resolve_limit(top: Optional[str], max_size: int) -> int:
    """Return the effective page size for a raw $top value.

    Raises:
        ValidationError: If top is not a non-negative integer
    """
    if top is None:
        return max_size
    return min(_parse_non_negative(top, "top"), max_size)


def resolve_skip(skip: Optional[str]) -> int:
    if skip is None:
        return 0
    return _parse_non_negative(skip, "skip")


def retrieve(
    store: Optional[EntryStore],
    directives: QueryDirectives,
    max_size: int,
) -> RetrieveResult:
    """Run a retrieve request against the store.

    Args:
        store: Entry store, None if no database is configured
        directives: Parsed query directives
        max_size: Ceiling on returned entries

    Returns:
        RetrieveResult whose populated fields depend on the mode

    Raises:
        NoStoreError: If no store is configured
        ValidationError: On conflicting directives, bad $top/$skip or a
            malformed filter
        StoreError: If the store fails
    """
    if store is None:
        raise NoStoreError()
    if max_size < 1:
        raise ValueError(f"max_size must be positive, got {max_size}")

    mode = classify(directives)
    if mode is RetrievalMode.PURE_COUNT:
        return RetrieveResult(count=CountResult(store.count_all()), mode=mode)

    limit = resolve_limit(directives.top, max_size)
    skip = resolve_skip(directives.skip)

    if mode is RetrievalMode.FILTERED_COUNT:
        count = store.count_filtered(directives.filter)
        return RetrieveResult(count=CountResult(count), mode=mode)

    entries = store.evaluate_filter(
        directives.filter, limit=limit, skip=skip, orderby=directives.orderby
    )
    logger.debug(
        "Retrieved entries",
        extra={"mode": mode.value, "limit": limit, "skip": skip, "returned": len(entries)},
    )

    if mode is RetrievalMode.INLINE_COUNT:
        count = store.count_filtered(directives.filter)
        return RetrieveResult(entries=entries, count=CountResult(count), mode=mode)
    return RetrieveResult(entries=entries, mode=mode)
