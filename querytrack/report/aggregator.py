"""Summary report aggregation: query counts per creation date and type.

Pure functions over an already filtered query list.  Presentation order is
part of the contract: dates ascending, type labels ascending.  Every export
and print target iterates ``dates`` and ``types`` as given here.
"""

import logging
from collections import Counter, defaultdict
from collections.abc import Iterable
from datetime import datetime, tzinfo
from typing_extensions import TypedDict

from querytrack.models import UNTYPED_LABEL, Query, QueryType

logger = logging.getLogger(__name__)


class SummaryMatrix(TypedDict):
    dates: list[str]  # YYYY-MM-DD, ascending
    types: list[str]  # type labels, ascending
    counts: dict[str, dict[str, int]]  # counts[date][type], zero cells omitted
    row_totals: dict[str, int]  # per date
    column_totals: dict[str, int]  # per type
    grand_total: int


class TypeCount(TypedDict):
    name: str
    color: str
    count: int


def parse_created_date(value: str | None, tz: tzinfo | None = None) -> str | None:
    """Return the calendar date (YYYY-MM-DD) of an ISO timestamp, or None.

    Aware timestamps are converted to ``tz`` (the local timezone when None);
    naive ones are taken as already local.
    """
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except (TypeError, ValueError):
        return None
    if parsed.tzinfo is not None or tz is not None:
        parsed = parsed.astimezone(tz)
    return parsed.date().isoformat()


def type_label(query: Query) -> str:
    """Display label for a query's type; missing or deleted types are Untyped."""
    return query.type_name or UNTYPED_LABEL


def build_summary(queries: Iterable[Query], tz: tzinfo | None = None) -> SummaryMatrix:
    """Group queries by creation date and type label, with row/column/grand totals.

    Queries whose ``created_at`` cannot be parsed are left out of every count.
    """
    cells: dict[str, Counter[str]] = defaultdict(Counter)
    skipped = 0
    for query in queries:
        day = parse_created_date(query.created_at, tz)
        if day is None:
            skipped += 1
            continue
        cells[day][type_label(query)] += 1

    if skipped:
        logger.debug("Summary skipped %d queries with unparseable created_at", skipped)

    dates = sorted(cells)
    types = sorted({label for row in cells.values() for label in row})
    column_totals = {t: sum(cells[d][t] for d in dates) for t in types}

    return SummaryMatrix(
        dates=dates,
        types=types,
        counts={d: dict(sorted(cells[d].items())) for d in dates},
        row_totals={d: sum(cells[d].values()) for d in dates},
        column_totals=column_totals,
        grand_total=sum(column_totals.values()),
    )


def cell(matrix: SummaryMatrix, date: str, label: str) -> int:
    """Count for one (date, type) cell; empty cells are zero."""
    return matrix["counts"].get(date, {}).get(label, 0)


def count_by_type(queries: Iterable[Query], types: Iterable[QueryType]) -> list[TypeCount]:
    """Number of queries per known type, in the order the types are given."""
    per_type = Counter(q.query_type_id for q in queries if q.query_type_id)
    return [TypeCount(name=t.name, color=t.color, count=per_type.get(t.id, 0)) for t in types]
