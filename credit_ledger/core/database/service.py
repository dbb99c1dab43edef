"""
Database Service - Core Infrastructure Layer (2025)

Purpose
-------
Async database engine and session management for the credit ledger. Provides
atomic transactions, pessimistic locking support, statement timeouts and a
health check for all SQL-backed ledger components.

Responsibilities
----------------
- Own a single AsyncEngine instance with connection pooling
- Provide async context managers for read-only sessions and atomic transactions
- Enforce transaction discipline: automatic commit on success, rollback on exception
- Configure statement timeouts for PostgreSQL connections
- Provide idempotent initialization with async lock protection

Non-Responsibilities
--------------------
- Retry policies for transient failures (handled by DatabaseRetryPolicy)
- Translating driver errors into ledger errors (handled by SqlLedgerStore)
- Schema migrations
- Domain logic or business rules

Architecture Notes
------------------
**Instances, not class state**:
- Each `DatabaseService` owns its engine; the application container builds
  one and injects it into the stores that need it. Tests build their own.

**Transaction Model**:
- `get_transaction()` is the primary interface for all state mutations
- Automatic commit on success, rollback on any exception
- Never manually call `session.commit()` inside component code
- Pessimistic locks via `select(...).with_for_update()`

**Connection Pooling**:
- AsyncAdaptedQueuePool for Postgres (configurable pool_size and max_overflow)
- NullPool for testing environments and SQLite (no connection reuse)

Usage Example
-------------
>>> database = DatabaseService.from_config()
>>> await database.initialize()
>>> async with database.get_transaction() as session:
>>>     row = await session.get(CreditBalanceRow, user_id, with_for_update=True)
>>>     row.total_credits += 10
>>>     # Automatic commit on exit
"""

from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncGenerator, Optional, Type

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import AsyncAdaptedQueuePool, NullPool, Pool

from credit_ledger.core.config.config import Config
from credit_ledger.core.exceptions import ErrorSeverity, get_error_severity
from credit_ledger.core.logging.logger import get_logger

logger = get_logger(__name__)


# ============================================================================
# Exceptions
# ============================================================================


class DatabaseInitializationError(RuntimeError):
    """Raised when database engine initialization fails."""


class DatabaseNotInitializedError(RuntimeError):
    """Raised when database operations are attempted before initialization."""


# ============================================================================
# Configuration Snapshot
# ============================================================================


@dataclass(frozen=True)
class DatabaseConfigSnapshot:
    """Immutable view of database settings for the lifetime of one engine."""

    url: str
    echo: bool = False
    pool_class: Type[Pool] = AsyncAdaptedQueuePool
    pool_size: int = 20
    max_overflow: int = 10
    pool_recycle: int = 3600
    pool_timeout: int = 30
    statement_timeout_ms: int = 5000

    @property
    def is_postgres(self) -> bool:
        return self.url.startswith(("postgresql://", "postgresql+asyncpg://"))

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")

    @property
    def url_scheme(self) -> str:
        return self.url.split(":", 1)[0] if ":" in self.url else "unknown"

    @classmethod
    def from_config(cls, url: Optional[str] = None) -> "DatabaseConfigSnapshot":
        """
        Build a snapshot from Config; `url` overrides DATABASE_URL.

        Raises
        ------
        DatabaseInitializationError
            If no usable URL is configured.
        """
        database_url = url or Config.DATABASE_URL
        if not database_url or not isinstance(database_url, str):
            logger.error("DATABASE_URL is not configured or invalid")
            raise DatabaseInitializationError(
                "DATABASE_URL must be configured as a non-empty string"
            )

        pool_class: Type[Pool] = AsyncAdaptedQueuePool
        if Config.is_testing() or database_url.startswith("sqlite"):
            pool_class = NullPool

        return cls(
            url=database_url,
            echo=Config.DATABASE_ECHO,
            pool_class=pool_class,
            pool_size=Config.DATABASE_POOL_SIZE,
            max_overflow=Config.DATABASE_MAX_OVERFLOW,
            pool_recycle=Config.DATABASE_POOL_RECYCLE,
            pool_timeout=Config.DATABASE_POOL_TIMEOUT,
            statement_timeout_ms=Config.STATEMENT_TIMEOUT_MS,
        )


# ============================================================================
# DatabaseService - Core Infrastructure
# ============================================================================


class DatabaseService:
    """
    Async database engine and session management.

    Public API
    ----------
    **Lifecycle**:
    - initialize() -> Initialize engine and session factory
    - shutdown() -> Dispose engine and cleanup resources

    **Session Management**:
    - get_session() -> Read-only access
    - get_transaction() -> Atomic write transaction (preferred)

    **Utilities**:
    - health_check() -> Fast database reachability check
    """

    def __init__(self, config: DatabaseConfigSnapshot) -> None:
        self._config = config
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker[AsyncSession]] = None
        self._init_lock = asyncio.Lock()

    @classmethod
    def from_config(cls, url: Optional[str] = None) -> "DatabaseService":
        return cls(DatabaseConfigSnapshot.from_config(url))

    @property
    def config(self) -> DatabaseConfigSnapshot:
        return self._config

    @property
    def engine(self) -> AsyncEngine:
        self._ensure_initialized()
        assert self._engine is not None
        return self._engine

    @property
    def is_initialized(self) -> bool:
        return self._engine is not None

    # ========================================================================
    # Initialization & Shutdown
    # ========================================================================

    async def initialize(self) -> None:
        """
        Initialize the database engine and session factory.

        Idempotent: returns immediately when already initialized.

        Raises
        ------
        DatabaseInitializationError
            If engine creation fails.
        """
        async with self._init_lock:
            if self._engine is not None:
                logger.debug("DatabaseService already initialized; skipping")
                return

            config = self._config
            logger.info("Initializing DatabaseService")

            engine_kwargs: dict[str, Any] = {
                "echo": config.echo,
                "poolclass": config.pool_class,
            }

            if config.pool_class is AsyncAdaptedQueuePool:
                engine_kwargs.update(
                    {
                        "pool_size": config.pool_size,
                        "max_overflow": config.max_overflow,
                        "pool_recycle": config.pool_recycle,
                        "pool_timeout": config.pool_timeout,
                        "pool_pre_ping": True,
                    }
                )

            try:
                self._engine = create_async_engine(config.url, **engine_kwargs)
            except Exception as exc:
                logger.error(
                    "DatabaseService initialization failed",
                    extra={
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                        "url_scheme": config.url_scheme,
                    },
                    exc_info=True,
                )
                raise DatabaseInitializationError(
                    f"Database initialization failed: {exc}"
                ) from exc

            self._session_factory = async_sessionmaker(
                bind=self._engine,
                class_=AsyncSession,
                expire_on_commit=False,
            )

            logger.info(
                "DatabaseService initialized successfully",
                extra={
                    "url_scheme": config.url_scheme,
                    "pool_class": config.pool_class.__name__,
                },
            )

    async def shutdown(self) -> None:
        """Dispose the engine. Safe to call multiple times."""
        async with self._init_lock:
            if self._engine is None:
                logger.debug("DatabaseService not initialized; nothing to shutdown")
                return

            logger.info("Shutting down DatabaseService")
            try:
                await self._engine.dispose()
            finally:
                self._engine = None
                self._session_factory = None
            logger.info("DatabaseService shutdown complete")

    # ========================================================================
    # Health Check
    # ========================================================================

    async def health_check(self) -> bool:
        """
        Perform a lightweight ``SELECT 1``.

        Returns False instead of raising on connectivity failures.
        """
        if self._engine is None:
            logger.warning("Health check called on uninitialized DatabaseService")
            return False

        start = time.perf_counter()
        success = False

        try:
            async with self._engine.begin() as conn:
                await conn.execute(text("SELECT 1"))
            success = True
            return True

        except (OperationalError, DBAPIError) as exc:
            logger.warning(
                "Database health check failed",
                extra={"error": str(exc), "error_type": type(exc).__name__},
            )
            return False

        finally:
            duration_ms = (time.perf_counter() - start) * 1000.0
            logger.debug(
                "Database health check completed",
                extra={"success": success, "duration_ms": duration_ms},
            )

    # ========================================================================
    # Session & Transaction Context Managers
    # ========================================================================

    def _ensure_initialized(self) -> None:
        if self._session_factory is None or self._engine is None:
            logger.error("DatabaseService operation attempted before initialization")
            raise DatabaseNotInitializedError(
                "DatabaseService must be initialized before use. "
                "Call initialize() during startup."
            )

    async def _apply_statement_timeout(self, session: AsyncSession) -> None:
        if self._config.is_postgres:
            await session.execute(
                text(
                    f"SET LOCAL statement_timeout = "
                    f"{int(self._config.statement_timeout_ms)}"
                )
            )

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Create a database session without automatic commit.

        For write operations, use `get_transaction()`.
        """
        self._ensure_initialized()
        assert self._session_factory is not None

        start = time.perf_counter()
        async with self._session_factory() as session:
            try:
                await self._apply_statement_timeout(session)
                yield session
            finally:
                await session.close()
                logger.debug(
                    "Database session closed",
                    extra={"duration_ms": (time.perf_counter() - start) * 1000.0},
                )

    @asynccontextmanager
    async def get_transaction(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Create a database session wrapped in an atomic transaction.

        Commits on success. On any exception rolls back and re-raises the
        original exception unchanged.

        Usage Example
        -------------
        >>> async with database.get_transaction() as session:
        >>>     session.add(row)
        >>>     # Automatic commit on exit
        """
        self._ensure_initialized()
        assert self._session_factory is not None

        start = time.perf_counter()
        async with self._session_factory() as session:
            try:
                await self._apply_statement_timeout(session)
                yield session
                await session.commit()
                logger.debug(
                    "Database transaction committed",
                    extra={"duration_ms": (time.perf_counter() - start) * 1000.0},
                )

            except (OperationalError, DBAPIError) as exc:
                await session.rollback()
                logger.error(
                    "Database error in transaction; rolled back",
                    extra={
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                        "duration_ms": (time.perf_counter() - start) * 1000.0,
                    },
                    exc_info=True,
                )
                raise

            except BaseException as exc:
                # Includes cancellation: the rollback must still happen.
                await asyncio.shield(session.rollback())
                severity = get_error_severity(exc)
                log = (
                    logger.error
                    if severity in (ErrorSeverity.ERROR, ErrorSeverity.CRITICAL)
                    else logger.debug
                )
                log(
                    "Transaction rolled back",
                    extra={
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                        "duration_ms": (time.perf_counter() - start) * 1000.0,
                    },
                )
                raise

            finally:
                await session.close()
