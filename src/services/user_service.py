"""User record storage (credential store)."""

import json
from datetime import datetime, timezone
from typing import Any, Optional

import asyncpg
import structlog

from src.database import connection
from src.errors import ConflictError
from src.models.user import User

logger = structlog.get_logger(__name__)

USER_COLUMNS = (
    "id, email, first_name, last_name, avatar_url, goals, "
    "is_active, email_verified, created_at, updated_at"
)


def _row_to_user(row: Any) -> User:
    """Build a User from a users row."""
    goals = row["goals"]
    if isinstance(goals, str):
        # asyncpg returns JSONB as text unless a codec is registered
        goals = json.loads(goals)

    return User(
        id=row["id"],
        email=row["email"],
        first_name=row["first_name"],
        last_name=row["last_name"],
        avatar_url=row["avatar_url"],
        goals=goals or [],
        is_active=row["is_active"],
        email_verified=row["email_verified"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class UserService:
    """Service for user CRUD operations.

    Expects already-hashed passwords; hashing lives in AuthService.
    """

    async def create_user(
        self,
        email: str,
        password_hash: str,
        first_name: str,
        last_name: str,
        conn: Optional[asyncpg.Connection] = None,
    ) -> User:
        """Insert a new active, unverified user.

        Args:
            email: Normalized e-mail address
            password_hash: Bcrypt hash of the password
            first_name: Given name
            last_name: Family name
            conn: Optional connection of an enclosing transaction

        Returns:
            Created User model

        Raises:
            ConflictError: If the e-mail is already registered
        """
        now = datetime.now(timezone.utc)

        async with connection(conn) as c:
            try:
                row = await c.fetchrow(
                    f"""
                    INSERT INTO users (email, password_hash, first_name, last_name,
                                       goals, is_active, email_verified, created_at, updated_at)
                    VALUES ($1, $2, $3, $4, '[]'::jsonb, TRUE, FALSE, $5, $6)
                    RETURNING {USER_COLUMNS}
                    """,
                    email,
                    password_hash,
                    first_name,
                    last_name,
                    now,
                    now,
                )
            except asyncpg.UniqueViolationError:
                logger.info("user_create_conflict")
                raise ConflictError("Email already registered")

        user = _row_to_user(row)
        logger.info("user_created", user_id=user.id)
        return user

    async def get_by_email(
        self,
        email: str,
        conn: Optional[asyncpg.Connection] = None,
    ) -> Optional[tuple[User, str]]:
        """Get a user by e-mail.

        Args:
            email: Normalized e-mail address

        Returns:
            Tuple of (User, password_hash) or None if not found
        """
        async with connection(conn) as c:
            row = await c.fetchrow(
                f"""
                SELECT {USER_COLUMNS}, password_hash
                FROM users
                WHERE email = $1
                """,
                email,
            )

        if row is None:
            return None

        return _row_to_user(row), row["password_hash"]

    async def get_by_id(
        self,
        user_id: int,
        conn: Optional[asyncpg.Connection] = None,
    ) -> Optional[User]:
        """Get a user by id.

        Returns:
            User model or None if not found
        """
        async with connection(conn) as c:
            row = await c.fetchrow(
                f"SELECT {USER_COLUMNS} FROM users WHERE id = $1",
                user_id,
            )

        if row is None:
            return None

        return _row_to_user(row)

    async def get_password_hash(
        self,
        user_id: int,
        conn: Optional[asyncpg.Connection] = None,
    ) -> Optional[str]:
        """Get the stored password hash of a user, or None if not found."""
        async with connection(conn) as c:
            return await c.fetchval(
                "SELECT password_hash FROM users WHERE id = $1",
                user_id,
            )

    async def update_password(
        self,
        user_id: int,
        password_hash: str,
        conn: Optional[asyncpg.Connection] = None,
    ) -> bool:
        """Replace a user's password hash.

        Returns:
            True if the user exists and was updated
        """
        async with connection(conn) as c:
            updated_id = await c.fetchval(
                """
                UPDATE users
                SET password_hash = $1, updated_at = $2
                WHERE id = $3
                RETURNING id
                """,
                password_hash,
                datetime.now(timezone.utc),
                user_id,
            )

        if updated_id is None:
            logger.warning("password_update_user_not_found", user_id=user_id)
            return False

        logger.info("password_updated", user_id=user_id)
        return True

    async def set_active(
        self,
        user_id: int,
        is_active: bool,
        conn: Optional[asyncpg.Connection] = None,
    ) -> Optional[User]:
        """Activate or deactivate a user.

        Returns:
            Updated User model, or None if user not found
        """
        async with connection(conn) as c:
            row = await c.fetchrow(
                f"""
                UPDATE users
                SET is_active = $1, updated_at = $2
                WHERE id = $3
                RETURNING {USER_COLUMNS}
                """,
                is_active,
                datetime.now(timezone.utc),
                user_id,
            )

        if row is None:
            return None

        logger.info("user_active_changed", user_id=user_id, is_active=is_active)
        return _row_to_user(row)

    async def delete_user(
        self,
        user_id: int,
        conn: Optional[asyncpg.Connection] = None,
    ) -> bool:
        """Hard-delete a user; tokens cascade.

        Returns:
            True if the user was deleted, False if not found
        """
        async with connection(conn) as c:
            result = await c.execute(
                "DELETE FROM users WHERE id = $1",
                user_id,
            )

        deleted = result == "DELETE 1"

        if deleted:
            logger.info("user_deleted", user_id=user_id)
        else:
            logger.warning("user_delete_not_found", user_id=user_id)

        return deleted
