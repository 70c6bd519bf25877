"""HTTP client the Streamlit UI uses to talk to the QueryTrack API.

Holds the last-fetched query and query-type lists.  Every successful mutation
invalidates the affected collections so the next read refetches; a failed
mutation leaves the cache as it was.  ``SubmitGuard`` keeps one in-flight
submission per action, and lets submissions tied to one upload or record
through only once, because the backend does not deduplicate inserts.
"""

import contextlib
import logging
from collections.abc import Iterator, MutableMapping
from enum import StrEnum

import httpx

from querytrack.errors import NotFound, QueryTrackError, Unauthenticated, Unavailable, ValidationFailure
from querytrack.models import Query, QueryCreate, QueryStatus, QueryType, QueryTypeCreate, QueryUpdate
from querytrack.report.export import ExportKind
from querytrack.session import SessionContext, SessionStore

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 60.0


class Collection(StrEnum):
    QUERIES = "queries"
    QUERY_TYPES = "query_types"


# Deleting or adding a type changes the type names joined onto queries
_INVALIDATES: dict[str, tuple[Collection, ...]] = {
    "create_query": (Collection.QUERIES,),
    "update_query": (Collection.QUERIES,),
    "delete_query": (Collection.QUERIES,),
    "generate_summary": (Collection.QUERIES,),
    "import_queries": (Collection.QUERIES,),
    "create_type": (Collection.QUERY_TYPES, Collection.QUERIES),
    "delete_type": (Collection.QUERY_TYPES, Collection.QUERIES),
}

_EXPORT_PATHS: dict[ExportKind, str] = {
    ExportKind.QUERIES_CSV: "/export/queries.csv",
    ExportKind.QUERIES_XLSX: "/export/queries.xlsx",
    ExportKind.SUMMARY_XLSX: "/export/summary.xlsx",
    ExportKind.SUMMARY_HTML: "/export/summary.html",
}


class CollectionCache:
    """Last-fetched lists keyed by collection."""

    def __init__(self) -> None:
        self._queries: list[Query] | None = None
        self._types: list[QueryType] | None = None

    @property
    def queries(self) -> list[Query] | None:
        return self._queries

    @queries.setter
    def queries(self, value: list[Query]) -> None:
        self._queries = value

    @property
    def types(self) -> list[QueryType] | None:
        return self._types

    @types.setter
    def types(self, value: list[QueryType]) -> None:
        self._types = value

    def invalidate(self, *collections: Collection) -> None:
        for collection in collections or tuple(Collection):
            if collection is Collection.QUERIES:
                self._queries = None
            else:
                self._types = None


class SubmitGuard:
    """Tracks which actions have a submission in flight."""

    def __init__(self) -> None:
        self._pending: set[str] = set()
        self._consumed: set[str] = set()

    def is_pending(self, action: str) -> bool:
        return action in self._pending

    @contextlib.contextmanager
    def hold(self, action: str) -> Iterator[None]:
        """Mark ``action`` in flight for the duration of the block.

        Raises:
            ValidationFailure: If the same action is already in flight.
        """
        if action in self._pending:
            raise ValidationFailure("Already submitting, please wait")
        self._pending.add(action)
        try:
            yield
        finally:
            self._pending.discard(action)

    @contextlib.contextmanager
    def once(self, token: str) -> Iterator[None]:
        """Let a submission bound to ``token`` through at most once.

        A click that lands while a request is in flight is replayed on the
        next run, after ``hold`` has released its action.  The token stays
        consumed after success and is released again if the block raises.

        Raises:
            ValidationFailure: If ``token`` already went through.
        """
        if token in self._consumed:
            raise ValidationFailure("Already submitted")
        self._consumed.add(token)
        try:
            yield
        except Exception:
            self._consumed.discard(token)
            raise


def _raise_for_response(response: httpx.Response) -> None:
    if response.is_success:
        return
    detail: object = None
    with contextlib.suppress(ValueError, AttributeError):
        detail = response.json().get("detail")  # pyright: ignore[reportAny]
    message = detail if isinstance(detail, str) else f"Request failed (HTTP {response.status_code})"
    error_cls: type[QueryTrackError]
    match response.status_code:
        case 401 | 403:
            error_cls = Unauthenticated
        case 404:
            error_cls = NotFound
        case 400 | 422:
            error_cls = ValidationFailure
        case _:
            error_cls = Unavailable
    raise error_cls(message)


class QueryTrackClient:
    """Synchronous API client with a per-user collection cache."""

    def __init__(
        self,
        base_url: str,
        sessions: SessionStore,
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.sessions = sessions
        self.timeout = timeout
        self.cache = CollectionCache()
        self.guard = SubmitGuard()
        # A different user must never see the previous user's cached rows
        _ = sessions.subscribe(lambda _session: self.cache.invalidate())

    # --- transport ---

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, str] | None = None,
        json_body: object = None,
        files: dict[str, tuple[str, bytes, str]] | None = None,
        authenticated: bool = True,
    ) -> httpx.Response:
        headers: dict[str, str] = {}
        if authenticated:
            session = self.sessions.current
            if session is None:
                raise Unauthenticated("Not authenticated")
            headers["Authorization"] = f"Bearer {session.access_token}"
        try:
            response = httpx.request(
                method,
                f"{self.base_url}{path}",
                params=params,
                json=json_body,
                files=files,
                headers=headers,
                timeout=self.timeout,
            )
        except httpx.ConnectError as e:
            raise Unavailable("Cannot reach the API server") from e
        except httpx.TimeoutException as e:
            raise Unavailable("The API server did not respond in time") from e
        except httpx.HTTPError as e:
            raise Unavailable(f"Request failed: {e}") from e
        if response.status_code == 401 and authenticated:
            # Token expired or revoked: drop the session so the UI shows the sign-in form
            self.sessions.clear()
        _raise_for_response(response)
        return response

    def _mutate(
        self,
        action: str,
        method: str,
        path: str,
        *,
        once: str | None = None,
        **kwargs: object,
    ) -> httpx.Response:
        one_shot = self.guard.once(f"{action}:{once}") if once else contextlib.nullcontext()
        with self.guard.hold(action), one_shot:
            response = self._request(method, path, **kwargs)  # type: ignore[arg-type]
        self.cache.invalidate(*_INVALIDATES[action])
        logger.debug("%s succeeded, invalidated %s", action, ", ".join(_INVALIDATES[action]))
        return response

    # --- auth ---

    def sign_in(self, email: str, password: str) -> SessionContext:
        data = self._request(
            "POST", "/auth/login", json_body={"email": email, "password": password}, authenticated=False
        ).json()
        session = SessionContext(
            access_token=data["access_token"],
            user_id=data.get("user_id"),
            email=data.get("email"),
            refresh_token=data.get("refresh_token"),
        )
        self.sessions.set(session)
        return session

    def sign_up(self, email: str, password: str) -> bool:
        """Register; returns True when signed in, False when email confirmation is pending."""
        data = self._request(
            "POST", "/auth/signup", json_body={"email": email, "password": password}, authenticated=False
        ).json()
        session_data = data.get("session")
        if not session_data:
            return False
        self.sessions.set(
            SessionContext(
                access_token=session_data["access_token"],
                user_id=session_data.get("user_id"),
                email=session_data.get("email"),
                refresh_token=session_data.get("refresh_token"),
            )
        )
        return True

    def sign_out(self) -> None:
        try:
            _ = self._request("POST", "/auth/logout")
        finally:
            self.sessions.clear()

    # --- reads (cached) ---

    def list_types(self) -> list[QueryType]:
        if self.cache.types is None:
            data = self._request("GET", "/types").json()
            self.cache.types = [QueryType.model_validate(row) for row in data]
        return self.cache.types

    def list_queries(self) -> list[Query]:
        """All queries, newest first. Filtering happens locally on this list."""
        if self.cache.queries is None:
            data = self._request("GET", "/queries").json()
            self.cache.queries = [Query.model_validate(row) for row in data]
        return self.cache.queries

    # --- mutations ---

    def create_query(self, payload: QueryCreate) -> Query:
        response = self._mutate("create_query", "POST", "/queries", json_body=payload.model_dump(mode="json"))
        return Query.model_validate(response.json())

    def update_query(self, query_id: str, update: QueryUpdate) -> Query:
        response = self._mutate(
            "update_query",
            "PATCH",
            f"/queries/{query_id}",
            json_body=update.model_dump(mode="json", exclude_unset=True),
        )
        return Query.model_validate(response.json())

    def change_status(self, query: Query, widget_state: MutableMapping[str, object], key: str) -> Query | None:
        """Send the status picked in the inline select stored under ``key``.

        Nothing is sent when the pick equals the stored status.  On failure the
        widget is put back to the stored status, so later runs do not send the
        same change again.
        """
        picked = widget_state.get(key, query.status.value)
        if picked == query.status.value:
            return None
        try:
            return self.update_query(query.id, QueryUpdate(status=QueryStatus(str(picked))))
        except QueryTrackError:
            widget_state[key] = query.status.value
            raise

    def delete_query(self, query_id: str) -> None:
        _ = self._mutate("delete_query", "DELETE", f"/queries/{query_id}", once=query_id)

    def generate_summary(self, query_id: str) -> Query:
        response = self._mutate("generate_summary", "POST", f"/queries/{query_id}/summary", once=query_id)
        return Query.model_validate(response.json())

    def import_queries(self, filename: str, content: bytes, upload_id: str | None = None) -> int:
        """Upload a workbook; ``upload_id`` identifies the upload so it is only ever imported once."""
        if not content:
            raise ValidationFailure("No data found in file")
        response = self._mutate(
            "import_queries",
            "POST",
            "/queries/import",
            files={"file": (filename, content, "application/octet-stream")},
            once=upload_id,
        )
        return int(response.json()["imported"])

    def create_type(self, payload: QueryTypeCreate) -> QueryType:
        response = self._mutate("create_type", "POST", "/types", json_body=payload.model_dump(mode="json"))
        return QueryType.model_validate(response.json())

    def delete_type(self, type_id: str) -> None:
        _ = self._mutate("delete_type", "DELETE", f"/types/{type_id}", once=type_id)

    # --- exports ---

    def download(self, kind: ExportKind, status: str = "all", search: str = "") -> tuple[str, bytes]:
        """Fetch an export; returns (file name, content)."""
        response = self._request("GET", _EXPORT_PATHS[kind], params={"status": status, "search": search})
        disposition = response.headers.get("content-disposition", "")
        filename = disposition.split("filename=")[-1].strip('"') if "filename=" in disposition else kind.value
        return filename, response.content
