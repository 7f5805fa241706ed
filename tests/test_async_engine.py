"""Tests for async database engine module."""

import pytest
from unittest.mock import patch, MagicMock

from sqlalchemy import inspect

from config.database import DatabaseSettings

# Check if aiosqlite is available for tests that need real database connections
try:
    import aiosqlite  # noqa: F401
    HAS_AIOSQLITE = True
except ImportError:
    HAS_AIOSQLITE = False

requires_aiosqlite = pytest.mark.skipif(
    not HAS_AIOSQLITE,
    reason="aiosqlite not installed"
)


class TestCreateEngine:
    """Tests for create_engine function."""

    def test_sqlite_uses_null_pool(self, tmp_path):
        """SQLite should use NullPool."""
        with patch('database.async_engine.create_async_engine') as mock_create:
            with patch('database.async_engine._setup_sqlite_pragmas') as pragmas:
                mock_create.return_value = MagicMock()

                from database.async_engine import create_engine
                from sqlalchemy.pool import NullPool

                create_engine(DatabaseSettings(sqlite_path=tmp_path / "t.db"))

                call_kwargs = mock_create.call_args[1]
                assert call_kwargs['poolclass'] is NullPool
                assert 'pool_size' not in call_kwargs
                pragmas.assert_called_once()

    def test_postgres_uses_queue_pool(self):
        """PostgreSQL should use a bounded connection pool."""
        with patch('database.async_engine.create_async_engine') as mock_create:
            mock_create.return_value = MagicMock()

            from database.async_engine import create_engine
            from sqlalchemy.pool import AsyncAdaptedQueuePool

            settings = DatabaseSettings(driver="postgresql+asyncpg", ssl_mode="disable", pool_size=4)
            create_engine(settings)

            call_kwargs = mock_create.call_args[1]
            assert call_kwargs['poolclass'] is AsyncAdaptedQueuePool
            assert call_kwargs['pool_size'] == 4


class TestGlobalEngine:
    """Tests for the process-wide engine and session factory."""

    @requires_aiosqlite
    def test_engine_is_cached(self, tmp_path):
        from database.async_engine import get_async_engine

        settings = DatabaseSettings(sqlite_path=tmp_path / "t.db")
        assert get_async_engine(settings) is get_async_engine(settings)

    @requires_aiosqlite
    def test_session_factory_is_cached(self, tmp_path):
        from database.async_engine import get_async_session_factory

        settings = DatabaseSettings(sqlite_path=tmp_path / "t.db")
        assert get_async_session_factory(settings) is get_async_session_factory(settings)

    @requires_aiosqlite
    @pytest.mark.asyncio
    async def test_init_and_close(self, tmp_path):
        """init_database creates the delivery tables; close_database drops the globals."""
        import database.async_engine as module

        settings = DatabaseSettings(sqlite_path=tmp_path / "t.db")
        await module.init_database(settings)

        async with module.get_async_engine().connect() as conn:
            tables = await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names())

        assert {"email_idempotency_keys", "email_send_attempts", "email_deduplication_log"} <= set(tables)

        await module.close_database()
        assert module._async_engine is None
        assert module._async_session_factory is None


class TestDatabaseHealth:
    """Tests for DatabaseHealth.check."""

    @requires_aiosqlite
    @pytest.mark.asyncio
    async def test_healthy(self, tmp_path):
        from database.async_engine import DatabaseHealth, close_database

        result = await DatabaseHealth(DatabaseSettings(sqlite_path=tmp_path / "t.db")).check()
        await close_database()

        assert result["status"] == "healthy"
        assert result["database"] == "sqlite"

    @pytest.mark.asyncio
    async def test_unhealthy_on_error(self):
        from database.async_engine import DatabaseHealth

        with patch('database.async_engine.get_async_engine', side_effect=RuntimeError("no engine")):
            result = await DatabaseHealth(DatabaseSettings()).check()

        assert result["status"] == "unhealthy"
