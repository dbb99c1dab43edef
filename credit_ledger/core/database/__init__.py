"""
Database subsystem for the credit ledger.

Provides the async SQLAlchemy engine/session service, the retry policy for
transient storage failures, and the ORM base shared by ledger models.
"""

from credit_ledger.core.database.base import (
    Base,
    JsonDocument,
    UtcDateTime,
    ensure_utc,
    utc_now,
)
from credit_ledger.core.database.retry_policy import (
    DatabaseRetryConfig,
    DatabaseRetryPolicy,
)
from credit_ledger.core.database.service import (
    DatabaseConfigSnapshot,
    DatabaseInitializationError,
    DatabaseNotInitializedError,
    DatabaseService,
)

__all__ = [
    "Base",
    "JsonDocument",
    "UtcDateTime",
    "ensure_utc",
    "utc_now",
    "DatabaseService",
    "DatabaseConfigSnapshot",
    "DatabaseInitializationError",
    "DatabaseNotInitializedError",
    "DatabaseRetryConfig",
    "DatabaseRetryPolicy",
]
