"""Unit tests for the connection and transaction helpers."""

from unittest.mock import AsyncMock, patch

import asyncpg
import pytest

from src import database
from src.errors import AuthError, InternalError


class TestConnection:
    """Tests for database.connection()."""

    async def test_acquires_from_pool(self, patched_pool):
        _, conn = patched_pool

        async with database.connection() as c:
            assert c is conn

    async def test_reuses_given_connection(self, mock_pool):
        _, conn = mock_pool

        with patch("src.database.get_pool", new_callable=AsyncMock) as mock_get_pool:
            async with database.connection(conn) as c:
                assert c is conn

        mock_get_pool.assert_not_awaited()

    async def test_storage_error_becomes_internal(self, patched_pool):
        with pytest.raises(InternalError) as exc_info:
            async with database.connection():
                raise asyncpg.PostgresConnectionError("connection lost")

        # The client-facing message does not echo driver details
        assert "connection lost" not in exc_info.value.message

    async def test_os_error_becomes_internal(self, patched_pool):
        with pytest.raises(InternalError):
            async with database.connection():
                raise ConnectionRefusedError()

    async def test_uninitialized_pool_becomes_internal(self):
        with patch("src.database._pool", None):
            with pytest.raises(InternalError):
                async with database.connection():
                    pass

    async def test_domain_errors_propagate(self, patched_pool):
        with pytest.raises(AuthError):
            async with database.connection():
                raise AuthError("Invalid credentials")


class TestTransaction:
    """Tests for database.transaction()."""

    async def test_opens_transaction_on_connection(self, patched_pool):
        _, conn = patched_pool

        async with database.transaction() as c:
            assert c is conn

        assert len(conn.transactions) == 1
        assert conn.transactions[0].entered is True

    async def test_storage_error_becomes_internal(self, patched_pool):
        with pytest.raises(InternalError):
            async with database.transaction():
                raise asyncpg.PostgresError("boom")

    async def test_domain_errors_propagate(self, patched_pool):
        with pytest.raises(AuthError):
            async with database.transaction():
                raise AuthError("Invalid or expired reset token")


class TestGetPool:

    async def test_raises_when_not_initialized(self):
        with patch("src.database._pool", None):
            with pytest.raises(RuntimeError, match="not initialized"):
                await database.get_pool()

    async def test_health_check_false_without_pool(self):
        with patch("src.database._pool", None):
            assert await database.health_check() is False
