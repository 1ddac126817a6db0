"""Domain errors surfaced by the account and watchlist services."""

from __future__ import annotations


class ReelWatchError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code: int = 500
    default_message: str = "Server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class Unauthenticated(ReelWatchError):
    """No credential was presented."""

    status_code = 401
    default_message = "No token"


class Forbidden(ReelWatchError):
    """A credential was presented but could not be verified."""

    status_code = 403
    default_message = "Invalid token"


class NotFound(ReelWatchError):
    status_code = 404
    default_message = "User not found"


class DuplicateEmail(ReelWatchError):
    status_code = 400
    default_message = "User already exists"


class InvalidCredentials(ReelWatchError):
    """Unknown email or wrong password; the two are indistinguishable."""

    status_code = 401
    default_message = "Invalid credentials"


class InvalidInput(ReelWatchError):
    status_code = 400
    default_message = "Invalid request"


class StorageUnavailable(ReelWatchError):
    """The persistence layer is unreachable or erroring."""

    status_code = 500
    default_message = "Server error"


class InvalidToken(Exception):
    """Raised by the session issuer when a token does not verify."""


class SigningKeyMissing(RuntimeError):
    """Raised when a token must be issued but no signing secret is configured."""
