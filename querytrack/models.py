"""Pydantic models for queries, query types and their write payloads.

Field names follow the backend tables (``queries`` and ``query_types``).
Timestamps stay as the raw strings the backend returns: reporting code parses
them itself and skips values it cannot read instead of rejecting the record.
"""

from enum import StrEnum
from typing import Self

from pydantic import AliasChoices, BaseModel, Field, model_validator

UNTYPED_LABEL = "Untyped"
DEFAULT_TYPE_COLOR = "#3B82F6"


class QueryStatus(StrEnum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    CLOSED = "closed"


class QueryPriority(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


# Statuses that stamp resolved_at when a query moves into them
RESOLVED_STATUSES = frozenset({QueryStatus.RESOLVED, QueryStatus.CLOSED})


class QueryType(BaseModel):
    """A user-defined label used to categorise queries."""

    id: str
    name: str
    color: str = DEFAULT_TYPE_COLOR
    created_at: str | None = None


class QueryTypeRef(BaseModel):
    """The slice of a query type joined onto each query row."""

    name: str
    color: str = DEFAULT_TYPE_COLOR


class Query(BaseModel):
    """A trackable unit of work, joined with its type when the type still exists."""

    id: str
    title: str
    description: str | None = None
    status: QueryStatus = QueryStatus.PENDING
    priority: QueryPriority = QueryPriority.MEDIUM
    query_type_id: str | None = None
    ai_summary: str | None = None
    created_at: str = ""
    updated_at: str | None = None
    resolved_at: str | None = None
    # PostgREST names the embedded resource after the table
    query_type: QueryTypeRef | None = Field(
        default=None,
        validation_alias=AliasChoices("query_types", "query_type"),
    )

    @property
    def type_name(self) -> str | None:
        return self.query_type.name if self.query_type else None


class QueryCreate(BaseModel):
    """Fields accepted when creating a query (add dialog or import)."""

    title: str = Field(min_length=1)
    description: str | None = None
    status: QueryStatus = QueryStatus.PENDING
    priority: QueryPriority = QueryPriority.MEDIUM
    query_type_id: str | None = None


class QueryUpdate(BaseModel):
    """Partial update. Only fields that were explicitly set are sent."""

    title: str | None = Field(default=None, min_length=1)
    description: str | None = None
    status: QueryStatus | None = None
    priority: QueryPriority | None = None
    query_type_id: str | None = None
    ai_summary: str | None = None

    @model_validator(mode="after")
    def _required_columns_not_null(self) -> Self:
        # Only description, query_type_id and ai_summary may be cleared
        for name in ("title", "status", "priority"):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be empty")
        return self


class QueryTypeCreate(BaseModel):
    name: str = Field(min_length=1)
    color: str = DEFAULT_TYPE_COLOR
