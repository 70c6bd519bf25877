"""Error taxonomy shared by the gateway, the API and the UI.

Every failure that reaches a user is one of these four kinds.  The message is
short and human-readable because it is shown verbatim in a toast.
"""


class QueryTrackError(Exception):
    """Base class for all application errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class Unauthenticated(QueryTrackError):
    """No signed-in user context (or the backend rejected the token)."""


class Unavailable(QueryTrackError):
    """Network or backend failure, including malformed responses."""


class NotFound(QueryTrackError):
    """The referenced id no longer exists."""


class ValidationFailure(QueryTrackError):
    """Bad input detectable on the client, e.g. an empty required field."""
