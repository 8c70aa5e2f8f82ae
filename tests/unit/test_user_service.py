"""Unit tests for UserService.

Tests user CRUD operations with mocked asyncpg database.
"""

import json
from datetime import datetime, timezone

import asyncpg
import pytest

from src.errors import ConflictError
from src.models.user import User
from src.services.user_service import UserService


@pytest.fixture
def user_service():
    return UserService()


def _make_user_row(
    user_id=1,
    email="alice@example.com",
    password_hash="$2b$04$hashedpasswordhere000000000000000000000000000000000000",
    first_name="Alice",
    last_name="Smith",
    goals="[]",
    is_active=True,
):
    """Create a dict that mimics an asyncpg Record for a users row."""
    now = datetime.now(timezone.utc)
    return {
        "id": user_id,
        "email": email,
        "password_hash": password_hash,
        "first_name": first_name,
        "last_name": last_name,
        "avatar_url": None,
        "goals": goals,
        "is_active": is_active,
        "email_verified": False,
        "created_at": now,
        "updated_at": now,
    }


class TestCreateUser:
    """Tests for UserService.create_user."""

    async def test_inserts_row_and_returns_user(self, user_service, patched_pool):
        _, conn = patched_pool
        conn.fetchrow.return_value = _make_user_row()

        user = await user_service.create_user(
            email="alice@example.com",
            password_hash="$2b$04$hash",
            first_name="Alice",
            last_name="Smith",
        )

        assert isinstance(user, User)
        assert user.id == 1
        assert user.email == "alice@example.com"
        assert user.is_active is True
        assert user.email_verified is False
        assert user.goals == []

        sql = conn.fetchrow.call_args[0][0]
        assert "INSERT INTO users" in sql
        assert "RETURNING" in sql

    async def test_snapshot_has_no_password_hash(self, user_service, patched_pool):
        _, conn = patched_pool
        conn.fetchrow.return_value = _make_user_row()

        user = await user_service.create_user("alice@example.com", "$2b$04$hash", "Alice", "Smith")

        assert "password_hash" not in user.model_dump()

    async def test_duplicate_email_raises_conflict(self, user_service, patched_pool):
        _, conn = patched_pool
        conn.fetchrow.side_effect = asyncpg.UniqueViolationError("duplicate key")

        with pytest.raises(ConflictError):
            await user_service.create_user("alice@example.com", "$2b$04$hash", "Alice", "Smith")


class TestGetUser:
    """Tests for lookups."""

    async def test_get_by_email_returns_user_and_hash(self, user_service, patched_pool):
        _, conn = patched_pool
        row = _make_user_row(goals=json.dumps(["run 10k"]))
        conn.fetchrow.return_value = row

        result = await user_service.get_by_email("alice@example.com")

        assert result is not None
        user, password_hash = result
        assert user.email == "alice@example.com"
        assert user.goals == ["run 10k"]
        assert password_hash == row["password_hash"]

    async def test_get_by_email_accepts_decoded_goals(self, user_service, patched_pool):
        _, conn = patched_pool
        conn.fetchrow.return_value = _make_user_row(goals=["swim"])

        user, _ = await user_service.get_by_email("alice@example.com")

        assert user.goals == ["swim"]

    async def test_get_by_email_not_found(self, user_service, patched_pool):
        _, conn = patched_pool
        conn.fetchrow.return_value = None

        assert await user_service.get_by_email("ghost@example.com") is None

    async def test_get_by_id(self, user_service, patched_pool):
        _, conn = patched_pool
        conn.fetchrow.return_value = _make_user_row(user_id=3)

        user = await user_service.get_by_id(3)

        assert user.id == 3
        assert conn.fetchrow.call_args[0][1] == 3

    async def test_get_by_id_not_found(self, user_service, patched_pool):
        _, conn = patched_pool
        conn.fetchrow.return_value = None

        assert await user_service.get_by_id(99) is None

    async def test_get_password_hash(self, user_service, patched_pool):
        _, conn = patched_pool
        conn.fetchval.return_value = "$2b$04$hash"

        assert await user_service.get_password_hash(1) == "$2b$04$hash"


class TestUpdateUser:
    """Tests for password, activation and deletion."""

    async def test_update_password(self, user_service, patched_pool):
        _, conn = patched_pool
        conn.fetchval.return_value = 1

        assert await user_service.update_password(1, "$2b$04$new") is True
        args = conn.fetchval.call_args[0]
        assert "UPDATE users" in args[0]
        assert args[1] == "$2b$04$new"
        assert args[3] == 1

    async def test_update_password_missing_user(self, user_service, patched_pool):
        _, conn = patched_pool
        conn.fetchval.return_value = None

        assert await user_service.update_password(1, "$2b$04$new") is False

    async def test_set_active(self, user_service, patched_pool):
        _, conn = patched_pool
        conn.fetchrow.return_value = _make_user_row(is_active=False)

        user = await user_service.set_active(1, False)

        assert user.is_active is False

    async def test_set_active_missing_user(self, user_service, patched_pool):
        _, conn = patched_pool
        conn.fetchrow.return_value = None

        assert await user_service.set_active(1, False) is None

    async def test_delete_user(self, user_service, patched_pool):
        _, conn = patched_pool
        conn.execute.return_value = "DELETE 1"

        assert await user_service.delete_user(1) is True

    async def test_delete_user_not_found(self, user_service, patched_pool):
        _, conn = patched_pool
        conn.execute.return_value = "DELETE 0"

        assert await user_service.delete_user(1) is False
