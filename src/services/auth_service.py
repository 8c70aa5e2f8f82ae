"""Authentication service: registration, sessions and password reset."""

import secrets
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Optional

import bcrypt
import structlog

from src.config import get_settings
from src.database import transaction
from src.errors import AuthError, InvalidTokenError, ValidationError
from src.models.auth import AuthResponse
from src.models.user import User
from src.services.email_service import EmailService
from src.services.session_ledger import SessionLedger
from src.services.token_codec import TokenCodec
from src.services.user_service import UserService

logger = structlog.get_logger(__name__)

# bcrypt ignores (or, in newer releases, rejects) anything past 72 bytes
BCRYPT_MAX_PASSWORD_BYTES = 72

INVALID_CREDENTIALS = "Invalid credentials"
INVALID_REFRESH_TOKEN = "Invalid refresh token"
INVALID_ACCESS_TOKEN = "Invalid or expired access token"
INVALID_RESET_TOKEN = "Invalid or expired reset token"


@lru_cache(maxsize=None)
def _dummy_hash(rounds: int) -> bytes:
    """Hash compared against when no user matches, so timing stays uniform."""
    return bcrypt.hashpw(b"no-such-user-placeholder", bcrypt.gensalt(rounds=rounds))


def normalize_email(email: str) -> str:
    """Trim and lower-case an e-mail address."""
    return email.strip().lower()


class AuthService:
    """Orchestrates the session lifecycle over the user store and session ledger.

    States per user: anonymous -> authenticated (login) -> authenticated
    (refresh) -> anonymous (logout, token expiry, password reset).
    """

    def __init__(
        self,
        user_service: Optional[UserService] = None,
        ledger: Optional[SessionLedger] = None,
        codec: Optional[TokenCodec] = None,
        email_service: Optional[EmailService] = None,
    ):
        self.settings = get_settings()
        self.users = user_service or UserService()
        self.ledger = ledger or SessionLedger()
        self.codec = codec or TokenCodec()
        self.email_service = email_service or EmailService()

    # ---------------------------------------------------------------------
    # Passwords
    # ---------------------------------------------------------------------

    def hash_password(self, password: str) -> str:
        """Hash a password using bcrypt.

        Args:
            password: Plain-text password to hash

        Returns:
            Bcrypt hash string
        """
        salt = bcrypt.gensalt(rounds=self.settings.bcrypt_rounds)
        hashed = bcrypt.hashpw(password.encode("utf-8"), salt)
        return hashed.decode("utf-8")

    def verify_password(self, password: str, password_hash: str) -> bool:
        """Verify a password against a bcrypt hash.

        Args:
            password: Plain-text password to check
            password_hash: Bcrypt hash to verify against

        Returns:
            True if the password matches, False otherwise
        """
        encoded = password.encode("utf-8")
        if len(encoded) > BCRYPT_MAX_PASSWORD_BYTES:
            # Same bcrypt cost as a real comparison
            self._burn_password_check(password)
            return False
        return bcrypt.checkpw(encoded, password_hash.encode("utf-8"))

    def _burn_password_check(self, password: str) -> None:
        encoded = password.encode("utf-8")[:BCRYPT_MAX_PASSWORD_BYTES]
        bcrypt.checkpw(encoded, _dummy_hash(self.settings.bcrypt_rounds))

    @staticmethod
    def _validate_new_password(password: str) -> None:
        if not password or not password.strip():
            raise ValidationError("Password cannot be empty")
        if len(password.encode("utf-8")) > BCRYPT_MAX_PASSWORD_BYTES:
            raise ValidationError(
                f"Password must be at most {BCRYPT_MAX_PASSWORD_BYTES} bytes"
            )

    # ---------------------------------------------------------------------
    # Tokens
    # ---------------------------------------------------------------------

    def _issue_token_pair(self, user_id: int) -> tuple[str, str, datetime]:
        """Issue an access token and a refresh token.

        Returns:
            Tuple of (access_token, refresh_token, refresh_expires_at)
        """
        refresh_ttl = timedelta(days=self.settings.refresh_token_expire_days)
        access_token = self.codec.issue(
            user_id, "access", timedelta(days=self.settings.access_token_expire_days)
        )
        refresh_token = self.codec.issue(user_id, "refresh", refresh_ttl)
        return access_token, refresh_token, datetime.now(timezone.utc) + refresh_ttl

    def _auth_response(self, access_token: str, refresh_token: str, user: User) -> AuthResponse:
        return AuthResponse(
            access_token=access_token,
            refresh_token=refresh_token,
            token_type="bearer",
            expires_in=self.settings.access_token_expire_seconds,
            user=user,
        )

    # ---------------------------------------------------------------------
    # Operations
    # ---------------------------------------------------------------------

    async def register(
        self,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
    ) -> User:
        """Create an account.

        Raises:
            ValidationError: If the e-mail has no '@', a name is blank, or
                the password is empty or too long
            ConflictError: If the e-mail is already registered
        """
        email = normalize_email(email)
        if "@" not in email:
            raise ValidationError("Invalid email format")
        if not first_name.strip() or not last_name.strip():
            raise ValidationError("First and last name are required")
        self._validate_new_password(password)

        user = await self.users.create_user(
            email=email,
            password_hash=self.hash_password(password),
            first_name=first_name.strip(),
            last_name=last_name.strip(),
        )
        logger.info("user_registered", user_id=user.id)
        return user

    async def login(self, email: str, password: str) -> AuthResponse:
        """Verify credentials and open a new session.

        Unknown e-mail, wrong password and inactive account all fail the
        same way.

        Raises:
            AuthError: "Invalid credentials"
        """
        result = await self.users.get_by_email(normalize_email(email))

        if result is None:
            self._burn_password_check(password)
            logger.info("login_failed", reason="unknown_email")
            raise AuthError(INVALID_CREDENTIALS)

        user, password_hash = result

        if not self.verify_password(password, password_hash):
            logger.info("login_failed", reason="wrong_password", user_id=user.id)
            raise AuthError(INVALID_CREDENTIALS)

        if not user.is_active:
            logger.info("login_failed", reason="inactive", user_id=user.id)
            raise AuthError(INVALID_CREDENTIALS)

        access_token, refresh_token, expires_at = self._issue_token_pair(user.id)

        async with transaction() as conn:
            await self.ledger.purge_expired_refresh_tokens(user.id, conn=conn)
            # Leave room for the session being opened
            await self.ledger.trim_sessions(
                user.id, self.settings.max_sessions_per_user - 1, conn=conn
            )
            await self.ledger.store_refresh_token(user.id, refresh_token, expires_at, conn=conn)

        logger.info("user_logged_in", user_id=user.id)
        return self._auth_response(access_token, refresh_token, user)

    async def logout(self, refresh_token: str) -> None:
        """Revoke a refresh token. Unknown tokens are ignored."""
        removed = await self.ledger.delete_refresh_token(refresh_token)
        logger.info("user_logged_out", ledger_row_removed=removed)

    async def refresh(self, refresh_token: str) -> AuthResponse:
        """Exchange a refresh token for a new pair, rotating the ledger row.

        The ledger row of the presented token is overwritten in place, so
        the presented token stops working once this call succeeds.

        Raises:
            AuthError: If the token is invalid, expired, superseded or
                revoked, or its user is missing or inactive
        """
        try:
            claims = self.codec.verify(refresh_token, expected_kind="refresh")
        except InvalidTokenError:
            raise AuthError(INVALID_REFRESH_TOKEN)

        user = await self.users.get_by_id(claims.sub)
        if user is None or not user.is_active:
            logger.warning("refresh_rejected", reason="user_unavailable", user_id=claims.sub)
            raise AuthError(INVALID_REFRESH_TOKEN)

        access_token, new_refresh_token, expires_at = self._issue_token_pair(user.id)

        async with transaction() as conn:
            owner_id = await self.ledger.rotate_refresh_token(
                refresh_token, new_refresh_token, expires_at, conn=conn
            )
            if owner_id is None:
                logger.warning("refresh_rejected", reason="not_in_ledger", user_id=user.id)
                raise AuthError(INVALID_REFRESH_TOKEN)
            if owner_id != user.id:
                # Rolls the rotation back
                logger.error("refresh_owner_mismatch", user_id=user.id, owner_id=owner_id)
                raise AuthError(INVALID_REFRESH_TOKEN)

        logger.info("session_refreshed", user_id=user.id)
        return self._auth_response(access_token, new_refresh_token, user)

    async def forgot_password(self, email: str) -> None:
        """Start a password reset.

        Always succeeds so callers cannot probe which e-mails exist.
        """
        result = await self.users.get_by_email(normalize_email(email))

        if result is None:
            logger.info("password_reset_requested", user_found=False)
            return

        user, _ = result
        reset_token = secrets.token_urlsafe(32)
        expires_at = datetime.now(timezone.utc) + timedelta(
            minutes=self.settings.reset_token_expire_minutes
        )

        await self.ledger.create_reset_token(user.id, reset_token, expires_at)
        delivered = await self.email_service.send_password_reset(
            to_email=user.email,
            first_name=user.first_name,
            reset_token=reset_token,
            expires_at=expires_at,
        )

        if not delivered:
            logger.warning("password_reset_delivery_failed", user_id=user.id)
        logger.info("password_reset_requested", user_found=True, user_id=user.id)

    async def reset_password(self, reset_token: str, new_password: str) -> None:
        """Redeem a reset token.

        Consuming the token, storing the new hash and revoking every refresh
        token of the user happen in one transaction.

        Raises:
            ValidationError: If the new password is empty or too long
            AuthError: "Invalid or expired reset token"
        """
        self._validate_new_password(new_password)
        new_hash = self.hash_password(new_password)

        async with transaction() as conn:
            user_id = await self.ledger.consume_reset_token(reset_token, conn=conn)
            if user_id is None:
                raise AuthError(INVALID_RESET_TOKEN)

            if not await self.users.update_password(user_id, new_hash, conn=conn):
                raise AuthError(INVALID_RESET_TOKEN)

            revoked = await self.ledger.revoke_all_refresh_tokens(user_id, conn=conn)

        logger.info("password_reset_completed", user_id=user_id, sessions_revoked=revoked)

    async def change_password(
        self,
        user_id: int,
        current_password: str,
        new_password: str,
    ) -> None:
        """Change the password of an authenticated user and end all sessions.

        Raises:
            AuthError: If the current password does not match
            ValidationError: If the new password is empty or too long
        """
        current_hash = await self.users.get_password_hash(user_id)
        if current_hash is None or not self.verify_password(current_password, current_hash):
            logger.info("password_change_failed", user_id=user_id)
            raise AuthError("Current password is incorrect")

        self._validate_new_password(new_password)
        new_hash = self.hash_password(new_password)

        async with transaction() as conn:
            if not await self.users.update_password(user_id, new_hash, conn=conn):
                raise AuthError("Current password is incorrect")
            revoked = await self.ledger.revoke_all_refresh_tokens(user_id, conn=conn)

        logger.info("password_changed", user_id=user_id, sessions_revoked=revoked)

    async def authenticate(self, access_token: str) -> User:
        """Resolve a bearer access token to its active user.

        Raises:
            AuthError: If the token is invalid, expired, a refresh token, or
                its user is missing or inactive
        """
        try:
            claims = self.codec.verify(access_token, expected_kind="access")
        except InvalidTokenError:
            raise AuthError(INVALID_ACCESS_TOKEN)

        user = await self.users.get_by_id(claims.sub)
        if user is None or not user.is_active:
            raise AuthError(INVALID_ACCESS_TOKEN)

        return user
