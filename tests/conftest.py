"""
Pytest Configuration and Fixtures for the Credit Ledger Tests
=============================================================

Purpose
-------
Centralized fixtures for the credit ledger test suite: in-memory stores,
a controllable clock, settings, a ready-wired orchestrator, and the
SQL/testcontainers fixtures for integration tests.

Architecture Notes
------------------
- Unit tests run against `InMemoryLedgerStore` (fast, isolated)
- SQL tests run on `sqlite+aiosqlite` in a per-test file database
- Postgres and Redis tests use testcontainers and are marked `integration`
  (deselected by default; run with ``pytest -m integration``)
"""

from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Callable, Generator

import pytest
import pytest_asyncio

os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("LOG_LEVEL", "DEBUG")

from credit_ledger.container import build_orchestrator  # noqa: E402
from credit_ledger.core.config.settings import LedgerSettings  # noqa: E402
from credit_ledger.core.database.retry_policy import (  # noqa: E402
    DatabaseRetryConfig,
    DatabaseRetryPolicy,
)
from credit_ledger.core.database.service import (  # noqa: E402
    DatabaseConfigSnapshot,
    DatabaseService,
)
from credit_ledger.core.logging.logger import get_logger  # noqa: E402
from credit_ledger.database import create_schema  # noqa: E402
from credit_ledger.modules.ledger.memory_store import InMemoryLedgerStore  # noqa: E402
from credit_ledger.modules.ledger.sql_store import SqlLedgerStore  # noqa: E402

logger = get_logger(__name__)


# ============================================================================
# CLOCK
# ============================================================================


class FakeClock:
    """Mutable clock; call it for the current time, `advance` to move it."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now

    def next_day(self) -> datetime:
        return self.advance(days=1)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc))


# ============================================================================
# SETTINGS & POLICIES
# ============================================================================


@pytest.fixture
def settings() -> LedgerSettings:
    return LedgerSettings.defaults()


@pytest.fixture
def fast_retry_policy() -> DatabaseRetryPolicy:
    """Retry policy with no backoff so retry paths stay fast."""
    return DatabaseRetryPolicy(
        DatabaseRetryConfig(
            max_attempts=3, initial_backoff_ms=0, max_backoff_ms=0, jitter_ms=0
        )
    )


# ============================================================================
# STORES & ORCHESTRATOR (Unit Tests)
# ============================================================================


@pytest.fixture
def memory_store() -> InMemoryLedgerStore:
    return InMemoryLedgerStore()


@pytest.fixture
def make_orchestrator(settings, clock, fast_retry_policy) -> Callable[..., object]:
    """
    Factory for orchestrators over a given store.

    Usage:
        orchestrator = make_orchestrator(store, storage_timeout_seconds=0.05)
    """

    def _make(store, **overrides):
        overrides.setdefault("clock", clock)
        overrides.setdefault("retry_policy", fast_retry_policy)
        return build_orchestrator(store, overrides.pop("settings", settings), **overrides)

    return _make


@pytest.fixture
def orchestrator(make_orchestrator, memory_store):
    return make_orchestrator(memory_store)


# ============================================================================
# SQL FIXTURES
# ============================================================================


@pytest_asyncio.fixture
async def sqlite_database(tmp_path) -> AsyncGenerator[DatabaseService, None]:
    """
    File-backed SQLite database with the ledger schema.

    Scope: function (fresh file per test)
    """
    url = f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}"
    database = DatabaseService(DatabaseConfigSnapshot.from_config(url))
    await database.initialize()
    await create_schema(database.engine)
    yield database
    await database.shutdown()


@pytest.fixture
def sqlite_store(sqlite_database) -> SqlLedgerStore:
    return SqlLedgerStore(sqlite_database)


@pytest.fixture(scope="session")
def postgres_container() -> Generator[object, None, None]:
    """
    Start PostgreSQL testcontainer for integration tests.

    Scope: session (container persists across all tests)
    """
    from testcontainers.postgres import PostgresContainer

    logger.info("Starting PostgreSQL testcontainer...")
    container = PostgresContainer(image="postgres:17-alpine", driver="asyncpg")
    container.start()
    logger.info("PostgreSQL testcontainer started: %s", container.get_connection_url())

    yield container

    logger.info("Stopping PostgreSQL testcontainer...")
    container.stop()


@pytest_asyncio.fixture
async def postgres_database(postgres_container) -> AsyncGenerator[DatabaseService, None]:
    """
    DatabaseService on the Postgres testcontainer with a clean schema per test.
    """
    from credit_ledger.database import drop_schema

    url = postgres_container.get_connection_url().replace("psycopg2", "asyncpg")
    database = DatabaseService(DatabaseConfigSnapshot.from_config(url))
    await database.initialize()
    await drop_schema(database.engine)
    await create_schema(database.engine)
    yield database
    await database.shutdown()


@pytest.fixture(scope="session")
def redis_container() -> Generator[object, None, None]:
    """Start Redis testcontainer for analytics cache integration tests."""
    from testcontainers.redis import RedisContainer

    logger.info("Starting Redis testcontainer...")
    container = RedisContainer(image="redis:7-alpine")
    container.start()

    yield container

    logger.info("Stopping Redis testcontainer...")
    container.stop()
