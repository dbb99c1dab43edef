"""
Infrastructure exceptions for the credit ledger.

Purpose
-------
Define the structured exception hierarchy shared by every ledger error, and
the infrastructure-level failures: storage unavailability, storage timeouts,
ledger integrity violations, and configuration errors.

Design Notes
------------
- Every ledger error (infrastructure and domain) inherits from `LedgerError`,
  so the orchestrator can surface any of them through one `Err` channel.
- Each exception carries:
  - `message`: human-readable description
  - `details`: additional structured context (dict)
  - `severity`: `ErrorSeverity` value for logging/alerting
  - `is_retryable`: whether the operation can be retried automatically
  - `error_code`: short, stable identifier for programmatic use
- Domain rule violations live in `credit_ledger.modules.shared.exceptions`.
- Helper functions (`is_transient_error`, `get_error_severity`, `should_alert`)
  centralize common exception handling patterns.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class ErrorSeverity(Enum):
    """Error severity levels for logging and alerting."""

    DEBUG = "debug"  # Expected, not concerning (e.g., already claimed today)
    INFO = "info"  # Normal operation (e.g., validation failures)
    WARNING = "warning"  # Concerning but handled (e.g., retryable errors)
    ERROR = "error"  # Unexpected errors requiring attention
    CRITICAL = "critical"  # Integrity failures requiring immediate action


class LedgerError(Exception):
    """
    Base exception for all credit ledger errors.

    Args:
        message: Human-readable error message
        details: Additional structured data about the error
        severity: Error severity level for logging handlers
        is_retryable: Whether the operation can be retried
        error_code: Stable code for programmatic handling

    Example:
        >>> raise LedgerError(
        ...     "Ledger unavailable",
        ...     {"user_id": "u-1"},
        ... )
    """

    DEFAULT_SEVERITY: ErrorSeverity = ErrorSeverity.ERROR
    DEFAULT_RETRYABLE: bool = False
    ERROR_CODE: Optional[str] = None

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        severity: Optional[ErrorSeverity] = None,
        is_retryable: Optional[bool] = None,
        error_code: Optional[str] = None,
    ) -> None:
        self.message: str = message
        self.details: Dict[str, Any] = details or {}
        self.severity: ErrorSeverity = severity or self.DEFAULT_SEVERITY
        self.is_retryable: bool = (
            is_retryable if is_retryable is not None else self.DEFAULT_RETRYABLE
        )
        self.error_code: str = error_code or self.ERROR_CODE or self.__class__.__name__
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "severity": self.severity.value,
            "is_retryable": self.is_retryable,
        }

    def __str__(self) -> str:
        details_str = f" | Details: {self.details}" if self.details else ""
        return f"[{self.error_code}] {self.message}{details_str}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"details={self.details!r}, "
            f"severity={self.severity.value!r}, "
            f"is_retryable={self.is_retryable!r}"
            ")"
        )


class ConfigurationError(LedgerError):
    """
    Raised when a configuration key is invalid or missing.

    Args:
        config_key: The configuration key that has issues
        message: Description of the configuration problem
    """

    DEFAULT_SEVERITY = ErrorSeverity.CRITICAL
    ERROR_CODE = "CONFIGURATION_ERROR"

    def __init__(self, config_key: str, message: str) -> None:
        self.config_key = config_key
        super().__init__(
            f"Configuration error for {config_key}: {message}",
            details={"config_key": config_key, "message": message},
        )


class TransactionFailedError(LedgerError):
    """
    Raised when the storage layer fails to apply or read ledger state.

    Nothing from the failed unit of work is visible afterwards; the caller
    may retry the whole operation.

    Args:
        operation: Description of the storage operation that failed
        original_error: The underlying driver/ORM exception, if any
    """

    DEFAULT_SEVERITY = ErrorSeverity.WARNING
    DEFAULT_RETRYABLE = True
    ERROR_CODE = "TRANSACTION_FAILED"

    def __init__(
        self,
        operation: str,
        original_error: Optional[BaseException] = None,
        message: Optional[str] = None,
    ) -> None:
        self.operation = operation
        self.original_error = original_error
        details: Dict[str, Any] = {"operation": operation}
        if original_error is not None:
            details["error"] = str(original_error)
            details["error_type"] = type(original_error).__name__
        super().__init__(
            message or f"Storage failure during {operation}",
            details=details,
        )


class StorageTimeoutError(TransactionFailedError):
    """Raised when a storage call exceeds its configured time bound."""

    ERROR_CODE = "STORAGE_TIMEOUT"

    def __init__(self, operation: str, timeout_seconds: float) -> None:
        self.timeout_seconds = timeout_seconds
        super().__init__(
            operation,
            message=f"Storage timed out after {timeout_seconds}s during {operation}",
        )
        self.details["timeout_seconds"] = timeout_seconds


class DuplicateTransactionError(LedgerError):
    """
    Raised when a ledger append collides with an existing transaction id.

    Transaction ids are generated by the engine, so a collision is an
    integrity bug rather than a user-facing condition.
    """

    DEFAULT_SEVERITY = ErrorSeverity.CRITICAL
    ERROR_CODE = "DUPLICATE_TRANSACTION"

    def __init__(self, transaction_id: str, user_id: Optional[str] = None) -> None:
        self.transaction_id = transaction_id
        super().__init__(
            f"Ledger already contains transaction {transaction_id}",
            details={"transaction_id": transaction_id, "user_id": user_id},
        )


class IdempotencyConflictError(LedgerError):
    """
    Raised by a store when an idempotency key insert loses a race.

    Internal: the idempotency guard resolves it by re-reading the winner.
    """

    DEFAULT_SEVERITY = ErrorSeverity.DEBUG
    DEFAULT_RETRYABLE = True
    ERROR_CODE = "IDEMPOTENCY_CONFLICT"

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(
            f"Idempotency key already reserved: {key}",
            details={"key": key},
        )


# Utility functions for exception handling patterns


def is_transient_error(exc: BaseException) -> bool:
    """
    Check if an exception represents a transient error that can be retried.

    Args:
        exc: Exception to check

    Returns:
        True if error is retryable, False otherwise.
    """
    if isinstance(exc, LedgerError):
        return exc.is_retryable
    return False


def get_error_severity(exc: BaseException) -> ErrorSeverity:
    """Get the severity level of an exception for logging."""
    if isinstance(exc, LedgerError):
        return exc.severity
    return ErrorSeverity.ERROR


def should_alert(exc: BaseException) -> bool:
    """Determine if an exception should trigger alerting (ERROR or CRITICAL)."""
    return get_error_severity(exc) in (ErrorSeverity.ERROR, ErrorSeverity.CRITICAL)
