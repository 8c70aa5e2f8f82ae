"""FastAPI dependencies for authentication."""

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from src.errors import AuthError
from src.models.user import User
from src.services.auth_service import AuthService

bearer_scheme = HTTPBearer(auto_error=False)


def get_auth_service() -> AuthService:
    """Provide an AuthService per request."""
    return AuthService()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    auth_service: AuthService = Depends(get_auth_service),
) -> User:
    """Extract and validate the current user from a Bearer access token.

    Args:
        credentials: Bearer token from Authorization header

    Returns:
        Authenticated User model

    Raises:
        AuthError: If the header is missing, the token is invalid or
            expired, or the user is missing or inactive
    """
    if credentials is None:
        raise AuthError("Authentication required")

    return await auth_service.authenticate(credentials.credentials)
