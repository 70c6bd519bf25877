"""Status filter and free-text search over an in-memory query list."""

from collections.abc import Iterable

from querytrack.models import Query, QueryStatus

ALL_STATUSES = "all"


def _matches_search(query: Query, needle: str) -> bool:
    """Case-insensitive substring match on title, description and type name."""
    haystacks = (query.title, query.description, query.type_name)
    return any(needle in value.casefold() for value in haystacks if value)


def filter_queries(
    queries: Iterable[Query],
    status: QueryStatus | str = ALL_STATUSES,
    search: str = "",
) -> list[Query]:
    """Return the queries matching both the status filter and the search text.

    Args:
        queries: Queries in display order.
        status: ``"all"`` or one status value; compared by equality.
        search: Free text. Empty means no text filter.

    Returns:
        The matching queries in their original order.
    """
    needle = search.casefold()
    return [
        q
        for q in queries
        if (status == ALL_STATUSES or q.status == status) and (not needle or _matches_search(q, needle))
    ]
