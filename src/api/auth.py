"""Authentication API endpoints.

Domain errors raised by AuthService propagate to the AppError handler in
``src.main``, which maps them to status codes.
"""

from fastapi import APIRouter, Depends, status

from src.api.dependencies import get_auth_service, get_current_user
from src.models.auth import (
    AuthResponse,
    ChangePasswordRequest,
    ForgotPasswordRequest,
    LoginRequest,
    LogoutRequest,
    MessageResponse,
    RefreshRequest,
    RegisterRequest,
    ResetPasswordRequest,
)
from src.models.user import User
from src.services.auth_service import AuthService

router = APIRouter(prefix="/auth", tags=["Auth"])


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(
    request: RegisterRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> User:
    """Create an account.

    Raises:
        400: Malformed e-mail or password
        409: E-mail already registered
    """
    return await auth_service.register(
        email=request.email,
        password=request.password,
        first_name=request.first_name,
        last_name=request.last_name,
    )


@router.post("/login")
async def login(
    request: LoginRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> AuthResponse:
    """Login with e-mail and password.

    Raises:
        401: Invalid credentials (unknown e-mail, wrong password or disabled account)
    """
    return await auth_service.login(request.email, request.password)


@router.post("/logout")
async def logout(
    request: LogoutRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Revoke a refresh token. Succeeds even if the token is unknown."""
    await auth_service.logout(request.refresh_token)
    return MessageResponse(message="Logged out successfully")


@router.post("/refresh")
async def refresh(
    request: RefreshRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> AuthResponse:
    """Exchange a refresh token for a new token pair.

    The presented refresh token is rotated and stops working.

    Raises:
        401: Invalid, expired, superseded or revoked refresh token
    """
    return await auth_service.refresh(request.refresh_token)


@router.post("/forgot-password")
async def forgot_password(
    request: ForgotPasswordRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Request a password reset link. Same answer whether or not the e-mail exists."""
    await auth_service.forgot_password(request.email)
    return MessageResponse(
        message="If this email is registered, a password reset link has been sent"
    )


@router.post("/reset-password")
async def reset_password(
    request: ResetPasswordRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Set a new password with a reset token and sign out everywhere.

    Raises:
        401: Invalid, expired or already used reset token
    """
    await auth_service.reset_password(request.reset_token, request.new_password)
    return MessageResponse(message="Password reset successfully")


@router.post("/change-password")
async def change_password(
    request: ChangePasswordRequest,
    current_user: User = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Change the current user's password and sign out everywhere."""
    await auth_service.change_password(
        current_user.id,
        request.current_password,
        request.new_password,
    )
    return MessageResponse(message="Password changed successfully")


@router.get("/me")
async def get_me(current_user: User = Depends(get_current_user)) -> User:
    """Get the authenticated user."""
    return current_user
