"""Record store gateway: queries and query types over the Supabase REST API.

Every function takes the caller's ``SessionContext`` explicitly.  Row-level
security on the backend scopes all reads and writes to that user; rows that
belong to someone else look exactly like rows that do not exist.
"""

import logging
from datetime import UTC, datetime
from typing import TypeVar

from pydantic import BaseModel, ValidationError

from querytrack.config import get_settings
from querytrack.errors import NotFound, Unauthenticated, Unavailable, ValidationFailure
from querytrack.gateway.http import supabase_request
from querytrack.models import (
    RESOLVED_STATUSES,
    Query,
    QueryCreate,
    QueryType,
    QueryTypeCreate,
    QueryUpdate,
)
from querytrack.session import SessionContext

logger = logging.getLogger(__name__)

QUERIES_PATH = "/rest/v1/queries"
QUERY_TYPES_PATH = "/rest/v1/query_types"
QUERY_SELECT = "*,query_types(name,color)"
RETURN_REPRESENTATION = "return=representation"
RETURN_MINIMAL = "return=minimal"

ModelT = TypeVar("ModelT", bound=BaseModel)


# ---------------------------------------------------------------------------
# Session helpers
# ---------------------------------------------------------------------------


def current_user_id(session: SessionContext | None) -> str | None:
    """The signed-in user's id, or None when there is no usable session."""
    if session is None or not session.access_token:
        return None
    return session.user_id


def _require_token(session: SessionContext | None) -> SessionContext:
    if session is None or not session.access_token:
        raise Unauthenticated("Not authenticated")
    return session


def _require_user(session: SessionContext | None) -> str:
    user_id = current_user_id(session)
    if not user_id:
        raise Unauthenticated("Not authenticated")
    return user_id


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------


def _parse_rows(data: object, model: type[ModelT], operation: str) -> list[ModelT]:
    if not isinstance(data, list):
        logger.warning("%s: expected a JSON array, got %s", operation, type(data).__name__)
        raise Unavailable("Malformed response from the backend")
    try:
        return [model.model_validate(row) for row in data]
    except ValidationError as e:
        logger.warning("%s: row failed validation: %s", operation, e)
        raise Unavailable("Malformed response from the backend") from e


def _single_row(data: object, model: type[ModelT], operation: str, missing: str) -> ModelT:
    rows = _parse_rows(data, model, operation)
    if not rows:
        raise NotFound(missing)
    return rows[0]


def _eq(value: str) -> str:
    return f"eq.{value}"


# ---------------------------------------------------------------------------
# Query types
# ---------------------------------------------------------------------------


async def list_types(session: SessionContext) -> list[QueryType]:
    """All of the user's query types, sorted by name."""
    data = await supabase_request(
        "list_types",
        "GET",
        QUERY_TYPES_PATH,
        session=_require_token(session),
        params={"select": "*", "order": "name.asc"},
    )
    return _parse_rows(data, QueryType, "list_types")


async def create_type(session: SessionContext, payload: QueryTypeCreate) -> QueryType:
    """Create a query type. Names are not checked for uniqueness."""
    user_id = _require_user(session)
    data = await supabase_request(
        "create_type",
        "POST",
        QUERY_TYPES_PATH,
        session=session,
        params={"select": "*"},
        json_body={**payload.model_dump(mode="json"), "user_id": user_id},
        prefer=RETURN_REPRESENTATION,
    )
    created = _single_row(data, QueryType, "create_type", "Query type was not created")
    logger.info("Created query type %s (%s)", created.id, created.name)
    return created


async def delete_type(session: SessionContext, type_id: str) -> None:
    """Delete a query type. Queries that referenced it display as Untyped."""
    _require_user(session)
    data = await supabase_request(
        "delete_type",
        "DELETE",
        QUERY_TYPES_PATH,
        session=session,
        params={"id": _eq(type_id), "select": "id"},
        prefer=RETURN_REPRESENTATION,
    )
    if not data:
        raise NotFound("Query type not found")
    logger.info("Deleted query type %s", type_id)


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


async def list_queries(session: SessionContext) -> list[Query]:
    """All of the user's queries joined with their type, newest first."""
    data = await supabase_request(
        "list_queries",
        "GET",
        QUERIES_PATH,
        session=_require_token(session),
        params={"select": QUERY_SELECT, "order": "created_at.desc"},
    )
    return _parse_rows(data, Query, "list_queries")


async def get_query(session: SessionContext, query_id: str) -> Query:
    """One of the user's queries joined with its type.

    Raises:
        NotFound: If the id does not exist or belongs to someone else.
    """
    data = await supabase_request(
        "get_query",
        "GET",
        QUERIES_PATH,
        session=_require_token(session),
        params={"id": _eq(query_id), "select": QUERY_SELECT},
    )
    return _single_row(data, Query, "get_query", "Query not found")


async def create_query(session: SessionContext, payload: QueryCreate) -> Query:
    """Insert one query and return it as stored."""
    user_id = _require_user(session)
    data = await supabase_request(
        "create_query",
        "POST",
        QUERIES_PATH,
        session=session,
        params={"select": QUERY_SELECT},
        json_body={**payload.model_dump(mode="json"), "user_id": user_id},
        prefer=RETURN_REPRESENTATION,
    )
    created = _single_row(data, Query, "create_query", "Query was not created")
    logger.info("Created query %s", created.id)
    return created


async def create_queries(session: SessionContext, payloads: list[QueryCreate]) -> int:
    """Insert a batch of queries in one request. The batch succeeds or fails as a whole.

    Returns:
        Number of queries inserted.
    """
    user_id = _require_user(session)
    if not payloads:
        raise ValidationFailure("No data found in file")
    _ = await supabase_request(
        "create_queries",
        "POST",
        QUERIES_PATH,
        session=session,
        json_body=[{**p.model_dump(mode="json"), "user_id": user_id} for p in payloads],
        prefer=RETURN_MINIMAL,
    )
    logger.info("Imported %d queries", len(payloads))
    return len(payloads)


def build_update(update: QueryUpdate, now: datetime | None = None) -> dict[str, object]:
    """Column changes for a partial update.

    Moving into resolved or closed stamps ``resolved_at``.  Any other change
    leaves ``resolved_at`` as it was; it is never cleared.
    """
    changes: dict[str, object] = update.model_dump(mode="json", exclude_unset=True)
    if update.status in RESOLVED_STATUSES:
        changes["resolved_at"] = (now or datetime.now(UTC)).isoformat()
    return changes


async def update_query(session: SessionContext, query_id: str, update: QueryUpdate) -> Query:
    """Apply a partial update and return the updated query."""
    _require_user(session)
    changes = build_update(update)
    if not changes:
        raise ValidationFailure("Nothing to update")
    data = await supabase_request(
        "update_query",
        "PATCH",
        QUERIES_PATH,
        session=session,
        params={"id": _eq(query_id), "select": QUERY_SELECT},
        json_body=changes,
        prefer=RETURN_REPRESENTATION,
    )
    updated = _single_row(data, Query, "update_query", "Query not found")
    logger.info("Updated query %s (%s)", query_id, ", ".join(sorted(changes)))
    return updated


async def delete_query(session: SessionContext, query_id: str) -> None:
    _require_user(session)
    data = await supabase_request(
        "delete_query",
        "DELETE",
        QUERIES_PATH,
        session=session,
        params={"id": _eq(query_id), "select": "id"},
        prefer=RETURN_REPRESENTATION,
    )
    if not data:
        raise NotFound("Query not found")
    logger.info("Deleted query %s", query_id)


# ---------------------------------------------------------------------------
# AI summary
# ---------------------------------------------------------------------------


async def request_summary(session: SessionContext, title: str, description: str | None) -> str:
    """Ask the summarization edge function for a summary of one query.

    Raises:
        Unavailable: If the call fails or the function returns no summary text.
    """
    function_name = get_settings().summary_function_name
    data = await supabase_request(
        "request_summary",
        "POST",
        f"/functions/v1/{function_name}",
        session=_require_token(session),
        json_body={"title": title, "description": description},
    )
    summary = data.get("summary") if isinstance(data, dict) else None
    if not isinstance(summary, str) or not summary.strip():
        raise Unavailable("No summary generated")
    return summary.strip()


async def generate_and_store_summary(session: SessionContext, query: Query) -> Query:
    """Request a summary for ``query`` and persist it on the record."""
    summary = await request_summary(session, query.title, query.description)
    return await update_query(session, query.id, QueryUpdate(ai_summary=summary))


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


async def check_health() -> tuple[bool, str | None]:
    """Probe the backend auth service. Returns (healthy, detail)."""
    try:
        _ = await supabase_request("health", "GET", "/auth/v1/health")
    except (Unavailable, Unauthenticated, NotFound) as e:
        return False, e.message
    return True, None
