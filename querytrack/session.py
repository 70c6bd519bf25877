"""Explicit auth session context and the process-wide subscription point.

Gateway calls never look up "the current user" themselves: callers pass a
``SessionContext`` in.  ``SessionStore`` is the one place that changes on
sign-in / sign-out and notifies subscribers (the UI keeps one per browser
session).
"""

import logging
from collections.abc import Callable

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

SessionListener = Callable[["SessionContext | None"], None]


class SessionContext(BaseModel):
    """Identity of the caller as issued by the backend auth service."""

    model_config = ConfigDict(frozen=True)

    # Tokens stay out of reprs, logs and tracebacks
    access_token: str = Field(repr=False)
    user_id: str | None = None
    email: str | None = None
    refresh_token: str | None = Field(default=None, repr=False)


class SessionStore:
    """Holds the current session and fans out changes to subscribers."""

    def __init__(self) -> None:
        self._current: SessionContext | None = None
        self._listeners: list[SessionListener] = []

    @property
    def current(self) -> SessionContext | None:
        return self._current

    def set(self, session: SessionContext) -> None:
        self._current = session
        logger.info("Signed in as %s", session.email or session.user_id)
        self._notify()

    def clear(self) -> None:
        if self._current is None:
            return
        self._current = None
        logger.info("Signed out")
        self._notify()

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Register a listener; returns a callable that removes it again."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self._current)
