"""
Base Service Foundation

Purpose
-------
Provides the foundational class for the ledger's logic components (guard,
projector, streak tracker, aggregator, orchestrator). Services implement
business rules against an injected store and settings.

Design Notes
------------
This base class provides:
- Structured logging with operation context
- Settings access

What this class does NOT do:
- Open units of work on its own behalf (callers pass them in)
- Hold module-level state

Usage
-----
    class StreakTracker(BaseService):
        def __init__(self, store, settings, logger):
            super().__init__(settings, logger)
            self._store = store
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from logging import Logger

    from credit_ledger.core.config.settings import LedgerSettings


class BaseService:
    """
    Base class for ledger services.

    Args:
        settings: Ledger balance settings
        logger: Structured logger instance
    """

    def __init__(self, settings: LedgerSettings, logger: Logger) -> None:
        self._settings = settings
        self.log = logger

    @property
    def settings(self) -> LedgerSettings:
        return self._settings

    def log_operation(self, operation: str, **context: Any) -> None:
        self.log.info(
            f"Service operation: {operation}",
            extra={"operation": operation, **context},
        )

