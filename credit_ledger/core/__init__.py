"""
Core infrastructure layer for the credit ledger.

Purpose
-------
Provide a single import surface for the infrastructure subsystems:

- Configuration (Config, LedgerSettings)
- Database subsystem (DatabaseService, DatabaseRetryPolicy)
- Logging (structured logging, logger factory, LogContext)
- Infrastructure exceptions (LedgerError hierarchy)

Design Decisions
----------------
- Re-exports only; no logic, no I/O.
- Validation and the analytics cache are imported from their own packages
  because they depend on the shared domain module.
"""

from __future__ import annotations

from credit_ledger.core.config import Config, LedgerSettings
from credit_ledger.core.database import DatabaseRetryPolicy, DatabaseService
from credit_ledger.core.exceptions import (
    ConfigurationError,
    DuplicateTransactionError,
    ErrorSeverity,
    LedgerError,
    StorageTimeoutError,
    TransactionFailedError,
)
from credit_ledger.core.logging import LogContext, get_logger, setup_logging

__all__ = [
    "Config",
    "LedgerSettings",
    "DatabaseService",
    "DatabaseRetryPolicy",
    "ConfigurationError",
    "DuplicateTransactionError",
    "ErrorSeverity",
    "LedgerError",
    "StorageTimeoutError",
    "TransactionFailedError",
    "LogContext",
    "get_logger",
    "setup_logging",
]
