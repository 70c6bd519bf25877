"""Shared HTTP helper for the Supabase REST, auth and functions endpoints.

Translates every transport or HTTP failure into the application error
taxonomy and counts each call in ``GATEWAY_CALLS_TOTAL``.
"""

import logging
from collections.abc import Mapping

import httpx

from querytrack.config import get_settings
from querytrack.errors import NotFound, QueryTrackError, Unauthenticated, Unavailable
from querytrack.observability.metrics import GATEWAY_CALLS_TOTAL
from querytrack.session import SessionContext

logger = logging.getLogger(__name__)

_DEFAULT_STATUS_ERRORS: Mapping[int, type[QueryTrackError]] = {
    401: Unauthenticated,
    403: Unauthenticated,
    404: NotFound,
}


def supabase_headers(session: SessionContext | None = None, prefer: str | None = None) -> dict[str, str]:
    """Build the apikey/Authorization headers Supabase expects on every call."""
    anon_key = get_settings().supabase_anon_key
    token = session.access_token if session and session.access_token else anon_key
    headers = {
        "apikey": anon_key,
        "Authorization": f"Bearer {token}",
        "Accept": "application/json",
    }
    if prefer:
        headers["Prefer"] = prefer
    return headers


def error_message(response: httpx.Response) -> str:
    """Pull the human-readable message out of a Supabase error body."""
    try:
        body: object = response.json()  # pyright: ignore[reportAny]
    except ValueError:
        return response.text[:200] or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        for key in ("message", "msg", "error_description", "error"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
    return f"HTTP {response.status_code}"


async def supabase_request(
    operation: str,
    method: str,
    path: str,
    *,
    session: SessionContext | None = None,
    params: Mapping[str, str] | None = None,
    json_body: object = None,
    prefer: str | None = None,
    status_errors: Mapping[int, type[QueryTrackError]] | None = None,
) -> object:
    """Make one request against the Supabase project and return the decoded JSON.

    Args:
        operation: Name used for metrics and log lines.
        method: HTTP method.
        path: Path below the project URL, e.g. ``/rest/v1/queries``.
        session: Caller identity; the anon key is used when absent.
        params: Query string parameters.
        json_body: JSON request body.
        prefer: Value of the PostgREST ``Prefer`` header.
        status_errors: Per-status overrides of the default error mapping.

    Returns:
        The decoded JSON body, or None for an empty body.

    Raises:
        Unauthenticated: On 401/403 (unless overridden).
        NotFound: On 404 (unless overridden).
        Unavailable: On any other failure, including malformed JSON.
    """
    settings = get_settings()
    url = f"{settings.supabase_url.rstrip('/')}{path}"
    errors = {**_DEFAULT_STATUS_ERRORS, **(status_errors or {})}

    try:
        async with httpx.AsyncClient(timeout=settings.request_timeout_seconds) as client:
            response = await client.request(
                method,
                url,
                headers=supabase_headers(session, prefer),
                params=params,
                json=json_body,
            )
            _ = response.raise_for_status()
    except httpx.HTTPStatusError as e:
        GATEWAY_CALLS_TOTAL.labels(operation=operation, status="error").inc()
        status_code = e.response.status_code
        message = error_message(e.response)
        logger.warning("%s failed: HTTP %d - %s", operation, status_code, message)
        raise errors.get(status_code, Unavailable)(message) from e
    except httpx.ConnectError as e:
        GATEWAY_CALLS_TOTAL.labels(operation=operation, status="error").inc()
        logger.warning("%s failed: cannot connect to %s", operation, settings.supabase_url)
        raise Unavailable("Cannot reach the backend") from e
    except httpx.TimeoutException as e:
        GATEWAY_CALLS_TOTAL.labels(operation=operation, status="error").inc()
        logger.warning("%s timed out after %ss", operation, settings.request_timeout_seconds)
        raise Unavailable("The backend did not respond in time") from e
    except httpx.HTTPError as e:
        GATEWAY_CALLS_TOTAL.labels(operation=operation, status="error").inc()
        logger.warning("%s failed: %s", operation, e)
        raise Unavailable("Backend request failed") from e

    if not response.content:
        GATEWAY_CALLS_TOTAL.labels(operation=operation, status="success").inc()
        return None
    try:
        data: object = response.json()  # pyright: ignore[reportAny]
    except ValueError as e:
        GATEWAY_CALLS_TOTAL.labels(operation=operation, status="error").inc()
        logger.warning("%s returned a non-JSON body", operation)
        raise Unavailable("Malformed response from the backend") from e

    GATEWAY_CALLS_TOTAL.labels(operation=operation, status="success").inc()
    return data
