"""FastAPI backend for QueryTrack.

Fronts the managed backend for the UI: auth, query and type CRUD, spreadsheet
import, AI summaries, stats, filtered exports and the printable summary.
Each request carries the caller's access token; it is resolved into an
explicit ``SessionContext`` and passed to every gateway call.
"""

import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from datetime import date
from typing import Annotated

from fastapi import Depends, FastAPI, File, Query as QueryParam, Request, Response, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.responses import HTMLResponse, JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel

from querytrack.config import get_settings, report_timezone
from querytrack.errors import NotFound, QueryTrackError, Unauthenticated, Unavailable, ValidationFailure
from querytrack.gateway import auth, supabase
from querytrack.models import Query, QueryCreate, QueryStatus, QueryType, QueryTypeCreate, QueryUpdate
from querytrack.observability.metrics import (
    APP_INFO,
    COMPONENT_HEALTHY,
    EXPORTS_TOTAL,
    IMPORTED_QUERIES_TOTAL,
    REQUEST_DURATION,
    REQUESTS_TOTAL,
)
from querytrack.report.aggregator import SummaryMatrix, TypeCount, build_summary, count_by_type
from querytrack.report.export import (
    CSV_MEDIA_TYPE,
    HTML_MEDIA_TYPE,
    XLSX_MEDIA_TYPE,
    ExportKind,
    export_filename,
    queries_to_csv,
    queries_to_xlsx,
    summary_to_html,
    summary_to_xlsx,
)
from querytrack.report.filtering import ALL_STATUSES, filter_queries
from querytrack.report.importer import parse_import_rows, read_workbook
from querytrack.session import SessionContext

logger = logging.getLogger(__name__)

APP_VERSION = "0.1.0"


# ---------------------------------------------------------------------------
# Pydantic models
# ---------------------------------------------------------------------------


class Credentials(BaseModel):
    """Request body for POST /auth/login and /auth/signup."""

    email: str
    password: str


class SessionResponse(BaseModel):
    """A signed-in session as handed to the UI."""

    access_token: str
    refresh_token: str | None = None
    user_id: str | None = None
    email: str | None = None


class SignUpResponse(BaseModel):
    session: SessionResponse | None = None
    confirmation_required: bool


class UserResponse(BaseModel):
    user_id: str | None
    email: str | None


class ImportResponse(BaseModel):
    imported: int


class ComponentHealth(BaseModel):
    """Health status of a single dependency."""

    name: str
    status: str
    detail: str | None = None


class HealthResponse(BaseModel):
    """Response body for GET /health."""

    status: str
    version: str
    components: list[ComponentHealth]


def _session_response(session: SessionContext) -> SessionResponse:
    return SessionResponse(
        access_token=session.access_token,
        refresh_token=session.refresh_token,
        user_id=session.user_id,
        email=session.email,
    )


# ---------------------------------------------------------------------------
# Application lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:  # noqa: ARG001
    """Configure logging and build info once at startup."""
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    APP_INFO.info({"version": APP_VERSION})
    logger.info("QueryTrack API starting (backend: %s)", settings.supabase_url)
    yield
    logger.info("Shutting down QueryTrack API")


app = FastAPI(title="QueryTrack", lifespan=lifespan)


# ---------------------------------------------------------------------------
# Error mapping and instrumentation
# ---------------------------------------------------------------------------

_ERROR_STATUS: dict[type[QueryTrackError], int] = {
    Unauthenticated: 401,
    NotFound: 404,
    ValidationFailure: 422,
    Unavailable: 502,
}


@app.exception_handler(QueryTrackError)
async def _handle_app_error(request: Request, exc: QueryTrackError) -> JSONResponse:
    status_code = next((code for cls, code in _ERROR_STATUS.items() if isinstance(exc, cls)), 500)
    logger.info("%s %s -> %d: %s", request.method, request.url.path, status_code, exc.message)
    return JSONResponse(status_code=status_code, content={"detail": exc.message})


@app.exception_handler(RequestValidationError)
async def _handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report a rejected request body as a ValidationFailure with one short message."""
    errors = exc.errors()
    message = str(errors[0].get("msg", "Invalid request")) if errors else "Invalid request"
    return await _handle_app_error(request, ValidationFailure(message.removeprefix("Value error, ")))


@app.middleware("http")
async def _record_metrics(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
    start = time.monotonic()
    response = await call_next(request)
    route = request.scope.get("route")
    endpoint = getattr(route, "path", request.url.path)
    REQUEST_DURATION.labels(endpoint=endpoint).observe(time.monotonic() - start)
    REQUESTS_TOTAL.labels(endpoint=endpoint, status="success" if response.status_code < 400 else "error").inc()
    return response


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

_bearer = HTTPBearer(auto_error=False)


async def get_session(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer)],
) -> SessionContext:
    """Resolve the bearer token into the caller's session context."""
    if credentials is None or not credentials.credentials:
        raise Unauthenticated("Not authenticated")
    return await auth.get_user(credentials.credentials)


SessionDep = Annotated[SessionContext, Depends(get_session)]


def _status_filter(status: str) -> str:
    if status != ALL_STATUSES and status not in {s.value for s in QueryStatus}:
        raise ValidationFailure(f"Unknown status filter: {status}")
    return status


StatusParam = Annotated[str, QueryParam()]
SearchParam = Annotated[str, QueryParam()]


async def _filtered_queries(session: SessionContext, status: str, search: str) -> list[Query]:
    queries = await supabase.list_queries(session)
    return filter_queries(queries, _status_filter(status), search)


def _attachment(content: bytes | str, media_type: str, kind: ExportKind, disposition: str = "attachment") -> Response:
    EXPORTS_TOTAL.labels(kind=kind.value).inc()
    filename = export_filename(kind, date.today())
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'{disposition}; filename="{filename}"'},
    )


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


@app.post("/auth/login", response_model=SessionResponse)
async def login(body: Credentials) -> SessionResponse:
    session = await auth.sign_in(body.email, body.password)
    return _session_response(session)


@app.post("/auth/signup", response_model=SignUpResponse)
async def signup(body: Credentials) -> SignUpResponse:
    session = await auth.sign_up(body.email, body.password)
    if session is None:
        return SignUpResponse(session=None, confirmation_required=True)
    return SignUpResponse(session=_session_response(session), confirmation_required=False)


@app.post("/auth/logout", status_code=204)
async def logout(session: SessionDep) -> Response:
    await auth.sign_out(session)
    return Response(status_code=204)


@app.get("/auth/user", response_model=UserResponse)
async def current_user(session: SessionDep) -> UserResponse:
    return UserResponse(user_id=supabase.current_user_id(session), email=session.email)


# ---------------------------------------------------------------------------
# Query types
# ---------------------------------------------------------------------------


@app.get("/types", response_model=list[QueryType])
async def list_types(session: SessionDep) -> list[QueryType]:
    return await supabase.list_types(session)


@app.post("/types", response_model=QueryType, status_code=201)
async def create_type(body: QueryTypeCreate, session: SessionDep) -> QueryType:
    return await supabase.create_type(session, body)


@app.delete("/types/{type_id}", status_code=204)
async def delete_type(type_id: str, session: SessionDep) -> Response:
    await supabase.delete_type(session, type_id)
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


@app.get("/queries", response_model=list[Query])
async def list_queries(
    session: SessionDep, status: StatusParam = ALL_STATUSES, search: SearchParam = ""
) -> list[Query]:
    """List the caller's queries, newest first, narrowed by status and search text."""
    return await _filtered_queries(session, status, search)


@app.post("/queries", response_model=Query, status_code=201)
async def create_query(body: QueryCreate, session: SessionDep) -> Query:
    return await supabase.create_query(session, body)


@app.post("/queries/import", response_model=ImportResponse)
async def import_queries(session: SessionDep, file: Annotated[UploadFile, File()]) -> ImportResponse:
    """Insert every row of an uploaded .xlsx sheet as one batch."""
    rows = read_workbook(await file.read())
    types = await supabase.list_types(session)
    payloads = parse_import_rows(rows, types)
    imported = await supabase.create_queries(session, payloads)
    IMPORTED_QUERIES_TOTAL.inc(imported)
    return ImportResponse(imported=imported)


@app.patch("/queries/{query_id}", response_model=Query)
async def update_query(query_id: str, body: QueryUpdate, session: SessionDep) -> Query:
    return await supabase.update_query(session, query_id, body)


@app.delete("/queries/{query_id}", status_code=204)
async def delete_query(query_id: str, session: SessionDep) -> Response:
    await supabase.delete_query(session, query_id)
    return Response(status_code=204)


@app.post("/queries/{query_id}/summary", response_model=Query)
async def generate_summary(query_id: str, session: SessionDep) -> Query:
    """Generate an AI summary for one query and store it on the record."""
    query = await supabase.get_query(session, query_id)
    return await supabase.generate_and_store_summary(session, query)


# ---------------------------------------------------------------------------
# Stats and reports
# ---------------------------------------------------------------------------


@app.get("/stats", response_model=list[TypeCount])
async def stats(session: SessionDep) -> list[TypeCount]:
    """Number of queries per type, one entry per type in the order the backend lists them."""
    types = await supabase.list_types(session)
    queries = await supabase.list_queries(session)
    return count_by_type(queries, types)


@app.get("/reports/summary", response_model=SummaryMatrix)
async def summary(
    session: SessionDep, status: StatusParam = ALL_STATUSES, search: SearchParam = ""
) -> SummaryMatrix:
    queries = await _filtered_queries(session, status, search)
    return build_summary(queries, report_timezone())


@app.get("/export/queries.csv")
async def export_queries_csv(
    session: SessionDep, status: StatusParam = ALL_STATUSES, search: SearchParam = ""
) -> Response:
    queries = await _filtered_queries(session, status, search)
    return _attachment(queries_to_csv(queries, report_timezone()), CSV_MEDIA_TYPE, ExportKind.QUERIES_CSV)


@app.get("/export/queries.xlsx")
async def export_queries_xlsx(
    session: SessionDep, status: StatusParam = ALL_STATUSES, search: SearchParam = ""
) -> Response:
    queries = await _filtered_queries(session, status, search)
    return _attachment(queries_to_xlsx(queries, report_timezone()), XLSX_MEDIA_TYPE, ExportKind.QUERIES_XLSX)


@app.get("/export/summary.xlsx")
async def export_summary_xlsx(
    session: SessionDep, status: StatusParam = ALL_STATUSES, search: SearchParam = ""
) -> Response:
    queries = await _filtered_queries(session, status, search)
    matrix = build_summary(queries, report_timezone())
    return _attachment(summary_to_xlsx(matrix), XLSX_MEDIA_TYPE, ExportKind.SUMMARY_XLSX)


@app.get("/export/summary.html", response_class=HTMLResponse)
async def export_summary_html(
    session: SessionDep, status: StatusParam = ALL_STATUSES, search: SearchParam = ""
) -> Response:
    """Printable summary document; the page opens the print dialog on load."""
    queries = await _filtered_queries(session, status, search)
    matrix = build_summary(queries, report_timezone())
    document = summary_to_html(matrix, date.today())
    return _attachment(document, HTML_MEDIA_TYPE, ExportKind.SUMMARY_HTML, disposition="inline")


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------


@app.get("/metrics")
async def metrics() -> Response:
    """Expose Prometheus metrics in exposition format."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Check that the managed backend is reachable."""
    healthy, detail = await supabase.check_health()
    component = ComponentHealth(name="supabase", status="healthy" if healthy else "unhealthy", detail=detail)
    COMPONENT_HEALTHY.labels(component=component.name).set(1.0 if healthy else 0.0)
    return HealthResponse(status=component.status, version=APP_VERSION, components=[component])
