"""Auth request and response models with validation."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from src.models.user import User

TokenType = Literal["access", "refresh"]


class RegisterRequest(BaseModel):
    """New account details.

    E-mail shape and password length are checked by AuthService so the
    same rules apply when it is called directly.
    """

    email: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., min_length=1)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)


class LoginRequest(BaseModel):
    """Login credentials for authentication."""

    email: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., min_length=1)


class RefreshRequest(BaseModel):
    """Request to exchange a refresh token for a new token pair."""

    refresh_token: str = Field(..., min_length=1)


class LogoutRequest(BaseModel):
    """Request to revoke a refresh token."""

    refresh_token: str = Field(..., min_length=1)


class ForgotPasswordRequest(BaseModel):
    """Request a password reset token for an e-mail address."""

    email: str = Field(..., min_length=1, max_length=255)


class ResetPasswordRequest(BaseModel):
    """Redeem a reset token for a new password.

    Attributes:
        reset_token: Token delivered by the forgot-password flow
        new_password: Replacement password
    """

    reset_token: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=1)

    @field_validator("new_password")
    @classmethod
    def password_not_blank(cls, v: str) -> str:
        """Ensure password is not empty or whitespace only."""
        if not v.strip():
            raise ValueError("Password cannot be empty or whitespace only")
        return v


class ChangePasswordRequest(BaseModel):
    """Authenticated password change."""

    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=1)

    @field_validator("new_password")
    @classmethod
    def password_not_blank(cls, v: str) -> str:
        """Ensure password is not empty or whitespace only."""
        if not v.strip():
            raise ValueError("Password cannot be empty or whitespace only")
        return v


class AuthResponse(BaseModel):
    """Successful authentication response with token pair.

    Attributes:
        access_token: Short-lived, stateless JWT
        refresh_token: Long-lived token tracked in the session ledger
        token_type: Always "bearer"
        expires_in: Access token lifetime in seconds
        user: Snapshot of the authenticated user
    """

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int = Field(ge=1, description="Access token lifetime in seconds")
    user: User


class MessageResponse(BaseModel):
    """Acknowledgement for operations without a payload."""

    message: str


class TokenClaims(BaseModel):
    """Verified claims of a signed token."""

    sub: int
    type: TokenType
    iat: datetime
    exp: datetime
    jti: str
