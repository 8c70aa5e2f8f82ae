"""
Application error taxonomy.

Services raise these; the API layer turns them into JSON responses using
``status_code`` and ``to_dict()``. Messages are safe to show to clients.
"""

from typing import Any, Optional


class AppError(Exception):
    """Base class for every domain failure."""

    status_code: int = 500
    default_code: str = "APP_ERROR"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to a dictionary for API responses."""
        return {
            "code": self.code,
            "detail": self.message,
            "details": self.details,
        }


class ValidationError(AppError):
    """Malformed input, e.g. an e-mail without '@'."""

    status_code = 400
    default_code = "VALIDATION_ERROR"


class ConflictError(AppError):
    """The record already exists (duplicate e-mail)."""

    status_code = 409
    default_code = "CONFLICT"


class AuthError(AppError):
    """Bad credentials or an invalid, expired or revoked token.

    Messages stay generic so callers cannot tell which check failed.
    """

    status_code = 401
    default_code = "AUTH_ERROR"


class InvalidTokenError(AuthError):
    """A signed token failed verification."""

    default_code = "INVALID_TOKEN"

    def __init__(self, message: str = "Invalid token"):
        super().__init__(message)


class NotFoundError(AppError):
    """Entity absent. Not used on credential paths."""

    status_code = 404
    default_code = "NOT_FOUND"


class InternalError(AppError):
    """Storage or codec failure."""

    status_code = 500
    default_code = "INTERNAL_ERROR"

    def __init__(self, message: str = "Internal server error"):
        super().__init__(message)
