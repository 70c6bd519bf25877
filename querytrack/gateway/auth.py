"""Thin wrapper over the Supabase auth (GoTrue) endpoints.

Produces and ends ``SessionContext`` values; session lifecycle itself lives
in the backend.
"""

import logging

from querytrack.errors import Unauthenticated, Unavailable, ValidationFailure
from querytrack.gateway.http import supabase_request
from querytrack.session import SessionContext

logger = logging.getLogger(__name__)


def _session_from_payload(data: object) -> SessionContext | None:
    """Build a session from a GoTrue token/signup response (None if it carries no token)."""
    if not isinstance(data, dict):
        raise Unavailable("Malformed response from the auth service")
    token = data.get("access_token")
    if not isinstance(token, str) or not token:
        return None
    user = data.get("user")
    user_id = email = None
    if isinstance(user, dict):
        user_id = user.get("id") if isinstance(user.get("id"), str) else None
        email = user.get("email") if isinstance(user.get("email"), str) else None
    refresh = data.get("refresh_token")
    return SessionContext(
        access_token=token,
        user_id=user_id,
        email=email,
        refresh_token=refresh if isinstance(refresh, str) else None,
    )


async def sign_in(email: str, password: str) -> SessionContext:
    """Exchange email/password for a session."""
    if not email or not password:
        raise ValidationFailure("Email and password are required")
    data = await supabase_request(
        "sign_in",
        "POST",
        "/auth/v1/token",
        params={"grant_type": "password"},
        json_body={"email": email, "password": password},
        status_errors={400: Unauthenticated},
    )
    session = _session_from_payload(data)
    if session is None:
        raise Unauthenticated("Invalid login credentials")
    logger.info("User %s signed in", session.user_id)
    return session


async def sign_up(email: str, password: str) -> SessionContext | None:
    """Register a new account.

    Returns:
        The new session, or None when the project requires email confirmation first.
    """
    if not email or not password:
        raise ValidationFailure("Email and password are required")
    data = await supabase_request(
        "sign_up",
        "POST",
        "/auth/v1/signup",
        json_body={"email": email, "password": password},
        status_errors={400: ValidationFailure, 422: ValidationFailure},
    )
    session = _session_from_payload(data)
    if session is None:
        logger.info("Sign-up for %s pending email confirmation", email)
    return session


async def sign_out(session: SessionContext) -> None:
    """Revoke the session's refresh tokens on the backend."""
    _ = await supabase_request("sign_out", "POST", "/auth/v1/logout", session=session)
    logger.info("User %s signed out", session.user_id)


async def get_user(access_token: str) -> SessionContext:
    """Resolve an access token to the full session context it belongs to."""
    if not access_token:
        raise Unauthenticated("Not authenticated")
    data = await supabase_request(
        "get_user",
        "GET",
        "/auth/v1/user",
        session=SessionContext(access_token=access_token),
    )
    if not isinstance(data, dict) or not isinstance(data.get("id"), str):
        raise Unavailable("Malformed response from the auth service")
    email = data.get("email")
    return SessionContext(
        access_token=access_token,
        user_id=data["id"],
        email=email if isinstance(email, str) else None,
    )
