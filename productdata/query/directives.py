"""
Query directives for SKU retrieval.

Parses the ``$``-prefixed query parameters of a retrieve request into a
``QueryDirectives`` value:

    $count                 presence only, value ignored
    $filter=<expr>         filter expression (see filter.py)
    $top=<n>               requested page size, parsed by the retrieval engine
    $skip=<n>              offset into the filtered result
    $orderby=<expr>        sort keys (see filter.parse_orderby)
    $inlinecount=allpages  return data and count together

Invariants:
    - Directive names are accepted with or without the ``$`` prefix
    - Unknown ``$``-prefixed names are rejected; other parameters are ignored
    - ``top`` and ``skip`` stay raw strings here so that parse failures are
      reported by the retrieval engine, after the pure-count check
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Mapping, Optional, Tuple, Union

from ..errors import ValidationError

DIRECTIVE_NAMES = ("count", "filter", "top", "skip", "orderby", "inlinecount")

INLINECOUNT_ALLPAGES = "allpages"

QueryParams = Union[Mapping[str, str], Iterable[Tuple[str, str]]]


@dataclass(frozen=True)
class QueryDirectives:
    """Directives controlling one retrieve call.

    Attributes:
        count: Whether ``$count`` was present
        filter: Filter expression, if any
        top: Requested page size (unparsed)
        skip: Requested offset (unparsed)
        orderby: Ordering expression, if any
        inlinecount: Raw ``$inlinecount`` value
    """

    count: bool = False
    filter: Optional[str] = None
    top: Optional[str] = None
    skip: Optional[str] = None
    orderby: Optional[str] = None
    inlinecount: Optional[str] = None

    @property
    def inline_allpages(self) -> bool:
        return self.inlinecount == INLINECOUNT_ALLPAGES

    def has_non_count_directive(self) -> bool:
        """Whether any directive other than ``$count`` was supplied."""
        return any(
            value is not None
            for value in (self.filter, self.top, self.skip, self.orderby, self.inlinecount)
        )

    @classmethod
    def from_query(cls, params: QueryParams) -> QueryDirectives:
        """Build directives from query-string parameters.

        Args:
            params: Mapping or sequence of (name, value) pairs; for repeated
                names the first value wins

        Returns:
            Parsed directives

        Raises:
            ValidationError: On an unknown ``$`` directive
        """
        items = params.items() if isinstance(params, Mapping) else params
        values: dict[str, str] = {}
        for raw_name, value in items:
            name = raw_name[1:] if raw_name.startswith("$") else raw_name
            if name not in DIRECTIVE_NAMES:
                if raw_name.startswith("$"):
                    raise ValidationError(
                        f"unknown query directive {raw_name!r}", field_name=raw_name
                    )
                continue
            values.setdefault(name, value)

        return cls(
            count="count" in values,
            filter=values.get("filter"),
            top=values.get("top"),
            skip=values.get("skip"),
            orderby=values.get("orderby"),
            inlinecount=values.get("inlinecount"),
        )
