"""Session ledger: persisted refresh tokens and password reset tokens.

Single-use and rotation guarantees come from conditional UPDATE/DELETE
statements whose RETURNING row tells the caller whether it won, so two
concurrent requests can never both redeem the same token.
"""

import hashlib
from datetime import datetime, timezone
from typing import Optional

import asyncpg
import structlog

from src.database import connection

logger = structlog.get_logger(__name__)


def hash_token(raw_token: str) -> str:
    """Return the SHA-256 hex digest stored in place of a bearer string."""
    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()


def _affected_rows(status: str) -> int:
    """Parse the row count from an asyncpg command status like 'DELETE 3'."""
    try:
        return int(status.rsplit(" ", 1)[-1])
    except (AttributeError, ValueError):
        return 0


class SessionLedger:
    """Storage for refresh and reset tokens.

    Every method takes an optional connection so several calls can share
    the caller's transaction.
    """

    # -----------------------------------------------------------------
    # Refresh tokens
    # -----------------------------------------------------------------

    async def store_refresh_token(
        self,
        user_id: int,
        raw_token: str,
        expires_at: datetime,
        conn: Optional[asyncpg.Connection] = None,
    ) -> None:
        """Persist a newly issued refresh token.

        Args:
            user_id: Owning user
            raw_token: Bearer string handed to the client
            expires_at: Absolute expiry
            conn: Optional connection of an enclosing transaction
        """
        async with connection(conn) as c:
            await c.execute(
                """
                INSERT INTO refresh_tokens (user_id, token_hash, expires_at, created_at)
                VALUES ($1, $2, $3, $4)
                """,
                user_id,
                hash_token(raw_token),
                expires_at,
                datetime.now(timezone.utc),
            )

        logger.info(
            "refresh_token_stored",
            user_id=user_id,
            expires_at=expires_at.isoformat(),
        )

    async def find_refresh_token_owner(
        self,
        raw_token: str,
        conn: Optional[asyncpg.Connection] = None,
    ) -> Optional[int]:
        """Return the owning user id if the token is present and unexpired.

        Args:
            raw_token: Bearer string presented by the client
            conn: Optional connection of an enclosing transaction

        Returns:
            User id, or None if unknown, revoked or expired
        """
        async with connection(conn) as c:
            return await c.fetchval(
                """
                SELECT user_id FROM refresh_tokens
                WHERE token_hash = $1 AND expires_at > $2
                """,
                hash_token(raw_token),
                datetime.now(timezone.utc),
            )

    async def rotate_refresh_token(
        self,
        old_token: str,
        new_token: str,
        expires_at: datetime,
        conn: Optional[asyncpg.Connection] = None,
    ) -> Optional[int]:
        """Overwrite a live refresh token row in place with a new token.

        The row is only updated while the old token is still present and
        unexpired, so a superseded or revoked token can never be rotated.
        The row also takes the current time as its creation time, so a
        refreshed session ranks as the newest when sessions are trimmed.

        Args:
            old_token: Bearer string being exchanged
            new_token: Replacement bearer string
            expires_at: Expiry of the replacement
            conn: Optional connection of an enclosing transaction

        Returns:
            Owning user id if the row was rotated, None otherwise
        """
        async with connection(conn) as c:
            user_id = await c.fetchval(
                """
                UPDATE refresh_tokens
                SET token_hash = $1, expires_at = $2, created_at = $4
                WHERE token_hash = $3 AND expires_at > $4
                RETURNING user_id
                """,
                hash_token(new_token),
                expires_at,
                hash_token(old_token),
                datetime.now(timezone.utc),
            )

        if user_id is None:
            logger.warning("refresh_token_rotation_missed")
        else:
            logger.info(
                "refresh_token_rotated",
                user_id=user_id,
                expires_at=expires_at.isoformat(),
            )
        return user_id

    async def delete_refresh_token(
        self,
        raw_token: str,
        conn: Optional[asyncpg.Connection] = None,
    ) -> bool:
        """Delete one refresh token.

        Returns:
            True if a row was removed
        """
        async with connection(conn) as c:
            status = await c.execute(
                "DELETE FROM refresh_tokens WHERE token_hash = $1",
                hash_token(raw_token),
            )
        return _affected_rows(status) > 0

    async def revoke_all_refresh_tokens(
        self,
        user_id: int,
        conn: Optional[asyncpg.Connection] = None,
    ) -> int:
        """Delete every refresh token of a user.

        Returns:
            Number of revoked tokens
        """
        async with connection(conn) as c:
            status = await c.execute(
                "DELETE FROM refresh_tokens WHERE user_id = $1",
                user_id,
            )

        revoked = _affected_rows(status)
        logger.info("all_refresh_tokens_revoked", user_id=user_id, revoked=revoked)
        return revoked

    async def purge_expired_refresh_tokens(
        self,
        user_id: int,
        conn: Optional[asyncpg.Connection] = None,
    ) -> int:
        """Delete a user's expired refresh tokens.

        Returns:
            Number of purged rows
        """
        async with connection(conn) as c:
            status = await c.execute(
                "DELETE FROM refresh_tokens WHERE user_id = $1 AND expires_at <= $2",
                user_id,
                datetime.now(timezone.utc),
            )
        return _affected_rows(status)

    async def trim_sessions(
        self,
        user_id: int,
        keep: int,
        conn: Optional[asyncpg.Connection] = None,
    ) -> int:
        """Keep only the ``keep`` newest refresh tokens of a user.

        Returns:
            Number of dropped rows
        """
        async with connection(conn) as c:
            status = await c.execute(
                """
                DELETE FROM refresh_tokens
                WHERE user_id = $1 AND id NOT IN (
                    SELECT id FROM refresh_tokens
                    WHERE user_id = $1
                    ORDER BY created_at DESC, id DESC
                    LIMIT $2
                )
                """,
                user_id,
                max(keep, 0),
            )

        dropped = _affected_rows(status)
        if dropped:
            logger.info("sessions_trimmed", user_id=user_id, dropped=dropped, kept=keep)
        return dropped

    # -----------------------------------------------------------------
    # Password reset tokens
    # -----------------------------------------------------------------

    async def create_reset_token(
        self,
        user_id: int,
        raw_token: str,
        expires_at: datetime,
        conn: Optional[asyncpg.Connection] = None,
    ) -> None:
        """Persist an unused password reset token."""
        async with connection(conn) as c:
            await c.execute(
                """
                INSERT INTO password_reset_tokens (user_id, token_hash, expires_at, used, created_at)
                VALUES ($1, $2, $3, FALSE, $4)
                """,
                user_id,
                hash_token(raw_token),
                expires_at,
                datetime.now(timezone.utc),
            )

        logger.info(
            "reset_token_created",
            user_id=user_id,
            expires_at=expires_at.isoformat(),
        )

    async def consume_reset_token(
        self,
        raw_token: str,
        conn: Optional[asyncpg.Connection] = None,
    ) -> Optional[int]:
        """Mark a reset token used if it is unused and unexpired.

        Returns:
            Owning user id if this call consumed the token, None otherwise
        """
        async with connection(conn) as c:
            user_id = await c.fetchval(
                """
                UPDATE password_reset_tokens
                SET used = TRUE
                WHERE token_hash = $1 AND used = FALSE AND expires_at > $2
                RETURNING user_id
                """,
                hash_token(raw_token),
                datetime.now(timezone.utc),
            )

        if user_id is None:
            logger.warning("reset_token_rejected")
        else:
            logger.info("reset_token_consumed", user_id=user_id)
        return user_id
