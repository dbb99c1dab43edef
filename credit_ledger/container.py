"""
Ledger Container
================

Purpose
-------
Wire the credit ledger's components together and own their lifecycle.
Every component receives its collaborators through its constructor; this
module is the only place that reads `Config` to decide how they are built.

Responsibilities
----------------
- Build the orchestrator over a SQL store (`DatabaseService`) or the
  in-memory store
- Initialize and shut down the database engine and the Redis memo
- Provide a health snapshot

Usage
-----
    container = LedgerContainer.from_config()
    await container.initialize()
    result = await container.orchestrator.get_balance("u-1")
    await container.shutdown()

Tests skip the container and call `build_orchestrator` with an
`InMemoryLedgerStore` and a fixed clock.
"""

from __future__ import annotations

import time
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from credit_ledger.core.cache.analytics_cache import AnalyticsCache
from credit_ledger.core.config.config import Config
from credit_ledger.core.config.settings import LedgerSettings
from credit_ledger.core.database.base import utc_now
from credit_ledger.core.database.retry_policy import DatabaseRetryPolicy
from credit_ledger.core.database.service import DatabaseService
from credit_ledger.core.logging.logger import get_logger
from credit_ledger.database import create_schema
from credit_ledger.modules.analytics.aggregator import AnalyticsAggregator
from credit_ledger.modules.balance.projector import BalanceProjector
from credit_ledger.modules.catalog.products import ProductCatalog
from credit_ledger.modules.catalog.receipts import (
    ReceiptVerifier,
    StructuralReceiptVerifier,
)
from credit_ledger.modules.idempotency.guard import IdempotencyGuard
from credit_ledger.modules.ledger.memory_store import InMemoryLedgerStore
from credit_ledger.modules.ledger.sql_store import SqlLedgerStore
from credit_ledger.modules.ledger.store import LedgerStore
from credit_ledger.modules.orchestrator.service import CreditOrchestrator
from credit_ledger.modules.streak.tracker import StreakTracker

logger = get_logger(__name__)


def build_orchestrator(
    store: LedgerStore,
    settings: Optional[LedgerSettings] = None,
    *,
    clock: Callable[[], datetime] = utc_now,
    verifier: Optional[ReceiptVerifier] = None,
    cache: Optional[AnalyticsCache] = None,
    retry_policy: Optional[DatabaseRetryPolicy] = None,
    timezone_name: Optional[str] = None,
    storage_timeout_seconds: Optional[float] = None,
    reservation_timeout_seconds: Optional[float] = None,
) -> CreditOrchestrator:
    """
    Assemble a `CreditOrchestrator` over `store`.

    Unset arguments fall back to `Config` values and built-in defaults.
    """
    settings = settings or LedgerSettings.defaults()

    guard = IdempotencyGuard(
        store,
        reservation_timeout_seconds=(
            reservation_timeout_seconds
            if reservation_timeout_seconds is not None
            else Config.IDEMPOTENCY_RESERVATION_TIMEOUT_SECONDS
        ),
        clock=clock,
    )
    streaks = StreakTracker(
        store,
        settings,
        timezone_name=timezone_name or Config.DAILY_BONUS_TIMEZONE,
        clock=clock,
    )
    analytics = AnalyticsAggregator(
        store,
        cache=cache,
        page_size=Config.ANALYTICS_PAGE_SIZE,
        max_transactions=Config.ANALYTICS_MAX_TRANSACTIONS,
    )

    return CreditOrchestrator(
        store=store,
        guard=guard,
        projector=BalanceProjector(store),
        streaks=streaks,
        catalog=ProductCatalog.from_settings(settings),
        verifier=verifier or StructuralReceiptVerifier(),
        analytics=analytics,
        retry_policy=retry_policy or DatabaseRetryPolicy.from_config(),
        settings=settings,
        clock=clock,
        storage_timeout_seconds=(
            storage_timeout_seconds
            if storage_timeout_seconds is not None
            else Config.STORAGE_TIMEOUT_SECONDS
        ),
        history_max_page_size=Config.HISTORY_MAX_PAGE_SIZE,
    )


class LedgerContainer:
    """
    Lifecycle owner for one credit ledger deployment.

    Args:
        database: SQL backend; None selects the in-memory store
        settings: Balance tunables (loaded from LEDGER_CONFIG_DIR when None)
        cache: Analytics memo (from REDIS_URL when None)
        create_tables: Run `create_schema` during `initialize()`
    """

    def __init__(
        self,
        database: Optional[DatabaseService] = None,
        settings: Optional[LedgerSettings] = None,
        cache: Optional[AnalyticsCache] = None,
        create_tables: bool = False,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._database = database
        self._settings = settings
        self._cache = cache
        self._create_tables = create_tables
        self._clock = clock

        self._store: Optional[LedgerStore] = None
        self._orchestrator: Optional[CreditOrchestrator] = None
        self._initialized = False
        self._init_seconds: Optional[float] = None

    @classmethod
    def from_config(cls, create_tables: bool = False) -> "LedgerContainer":
        return cls(
            database=DatabaseService.from_config(),
            cache=AnalyticsCache.from_config(),
            create_tables=create_tables,
        )

    @classmethod
    def in_memory(
        cls,
        settings: Optional[LedgerSettings] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> "LedgerContainer":
        return cls(settings=settings, cache=AnalyticsCache.disabled(), clock=clock)

    # ========================================================================
    # Lifecycle
    # ========================================================================

    async def initialize(self) -> None:
        if self._initialized:
            logger.warning("LedgerContainer already initialized")
            return

        start = time.perf_counter()
        logger.info(
            "Ledger container initialization starting...",
            extra={"config": Config.get_config_summary()},
        )

        try:
            settings = self._settings or LedgerSettings.load()

            if self._database is not None:
                await self._database.initialize()
                if self._create_tables:
                    await create_schema(self._database.engine)
                self._store = SqlLedgerStore(self._database)
            else:
                self._store = InMemoryLedgerStore()

            self._orchestrator = build_orchestrator(
                self._store,
                settings,
                clock=self._clock,
                cache=self._cache,
            )
        except Exception as e:
            logger.critical(
                "Ledger container initialization failed",
                exc_info=True,
                extra={"error": str(e)},
            )
            raise

        self._init_seconds = time.perf_counter() - start
        self._initialized = True
        logger.info(
            "Ledger container initialized",
            extra={
                "backend": "sql" if self._database is not None else "memory",
                "total_time_seconds": round(self._init_seconds, 3),
                "analytics_cache": bool(self._cache and self._cache.enabled),
            },
        )

    async def shutdown(self) -> None:
        if not self._initialized:
            return

        logger.info("Shutting down ledger container...")
        if self._cache is not None:
            await self._cache.close()
        if self._database is not None:
            await self._database.shutdown()

        self._orchestrator = None
        self._store = None
        self._initialized = False
        logger.info("Ledger container shut down")

    async def health_check(self) -> Dict[str, Any]:
        database_ok: Optional[bool] = None
        if self._database is not None and self._initialized:
            database_ok = await self._database.health_check()

        cache_ok: Optional[bool] = None
        if self._cache is not None and self._cache.enabled:
            cache_ok = await self._cache.health_check()

        return {
            "initialized": self._initialized,
            "backend": "sql" if self._database is not None else "memory",
            "database": database_ok,
            "analytics_cache": cache_ok,
            "init_time_seconds": (
                round(self._init_seconds, 3) if self._init_seconds is not None else None
            ),
        }

    # ========================================================================
    # Accessors
    # ========================================================================

    @property
    def orchestrator(self) -> CreditOrchestrator:
        if not self._initialized or self._orchestrator is None:
            raise RuntimeError("LedgerContainer not initialized. Call initialize() first.")
        return self._orchestrator

    @property
    def store(self) -> LedgerStore:
        if not self._initialized or self._store is None:
            raise RuntimeError("LedgerContainer not initialized. Call initialize() first.")
        return self._store

    @property
    def is_initialized(self) -> bool:
        return self._initialized
