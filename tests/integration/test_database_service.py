"""
Integration Tests for DatabaseService
=====================================

Purpose
-------
Test engine lifecycle, session management and transaction discipline against
a real database file.

Test Coverage
-------------
- Connection, health check and idempotent lifecycle
- Transaction commit and automatic rollback
- Unique constraint violations surfacing from flush
- Guarding use before initialization

Testing Strategy
----------------
- `sqlite+aiosqlite` file per test, NullPool
- Row-level behaviour of the ledger tables lives in test_sql_store.py
"""

import pytest
from sqlalchemy import select, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.pool import NullPool

from credit_ledger.core.database.service import (
    DatabaseConfigSnapshot,
    DatabaseNotInitializedError,
    DatabaseService,
)
from credit_ledger.database.models import CreditBalanceRow


# ============================================================================
# DATABASE CONNECTION TESTS
# ============================================================================


@pytest.mark.database
class TestDatabaseConnection:
    """Connection and lifecycle."""

    async def test_database_connection(self, sqlite_database):
        # Act
        async with sqlite_database.get_session() as session:
            result = await session.execute(text("SELECT 1 as value"))
            row = result.fetchone()

        # Assert
        assert row is not None
        assert row.value == 1

    async def test_sqlite_uses_null_pool(self, sqlite_database):
        assert sqlite_database.config.is_sqlite
        assert sqlite_database.config.pool_class is NullPool

    async def test_shutdown_is_idempotent(self, tmp_path):
        # Arrange
        database = DatabaseService.from_config(f"sqlite+aiosqlite:///{tmp_path / 'x.db'}")
        await database.initialize()
        await database.initialize()

        # Act
        await database.shutdown()
        await database.shutdown()

        # Assert
        assert database.is_initialized is False
        assert await database.health_check() is False

    async def test_use_before_initialize_raises(self, tmp_path):
        database = DatabaseService(
            DatabaseConfigSnapshot(url=f"sqlite+aiosqlite:///{tmp_path / 'x.db'}")
        )

        with pytest.raises(DatabaseNotInitializedError):
            async with database.get_session():
                pass


# ============================================================================
# TRANSACTION TESTS
# ============================================================================


@pytest.mark.database
class TestDatabaseTransactions:
    """Commit on success, rollback on exception."""

    async def test_transaction_commit(self, sqlite_database):
        # Act
        async with sqlite_database.get_transaction() as session:
            session.add(CreditBalanceRow(user_id="u-1", total_credits=10))

        # Assert
        async with sqlite_database.get_session() as session:
            row = await session.get(CreditBalanceRow, "u-1")
        assert row is not None
        assert row.total_credits == 10
        assert row.updated_at.tzinfo is not None

    async def test_transaction_rollback_on_exception(self, sqlite_database):
        # Act
        with pytest.raises(ValueError):
            async with sqlite_database.get_transaction() as session:
                session.add(CreditBalanceRow(user_id="u-2", total_credits=5))
                await session.flush()
                raise ValueError("abort")

        # Assert
        async with sqlite_database.get_session() as session:
            result = await session.execute(
                select(CreditBalanceRow).where(CreditBalanceRow.user_id == "u-2")
            )
            assert result.scalar_one_or_none() is None


# ============================================================================
# ERROR HANDLING TESTS
# ============================================================================


@pytest.mark.database
class TestDatabaseErrorHandling:
    """Driver errors propagate unchanged."""

    async def test_unique_constraint_violation(self, sqlite_database):
        # Arrange
        async with sqlite_database.get_transaction() as session:
            session.add(CreditBalanceRow(user_id="u-1", total_credits=1))

        # Act & Assert
        with pytest.raises(IntegrityError):
            async with sqlite_database.get_transaction() as session:
                session.add(CreditBalanceRow(user_id="u-1", total_credits=2))

    async def test_invalid_sql_query(self, sqlite_database):
        with pytest.raises(Exception):
            async with sqlite_database.get_session() as session:
                await session.execute(text("SELECT * FROM nonexistent_table"))
