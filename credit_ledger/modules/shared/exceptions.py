"""
Domain exceptions for the credit ledger.

Purpose
-------
Define the domain-rule exception hierarchy: bad input, missing balances,
overdrafts, repeated daily claims, rejected purchases and referrals. Services
raise these; the orchestrator converts them into typed `Err` values so no
exception crosses its public boundary.

Design Notes
------------
- All domain exceptions inherit from `LedgerDomainError`, itself a
  `LedgerError`, so they share severity/retry/code metadata with the
  infrastructure errors in `credit_ledger.core.exceptions`.
- Error codes are stable strings and part of the public contract.
- None of these are retryable: domain-rule violations surface to the caller
  for correction. The one exception is `OperationInProgressError`, which
  signals a concurrent reservation for the same key.
"""

from __future__ import annotations

from datetime import date
from typing import Any, Optional

from credit_ledger.core.exceptions import ErrorSeverity, LedgerError


class LedgerDomainError(LedgerError):
    """Base exception for all credit ledger domain-rule errors."""

    DEFAULT_SEVERITY = ErrorSeverity.INFO
    DEFAULT_RETRYABLE = False


class InvalidOperationError(LedgerDomainError):
    """
    Raised when an operation is rejected before any write.

    Args:
        action: Description of the invalid action
        reason: Explanation of why it's not allowed

    Example:
        >>> raise InvalidOperationError("add_credits", "amount must be positive")
    """

    ERROR_CODE = "INVALID_OPERATION"

    def __init__(
        self,
        action: str,
        reason: str,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.action = action
        self.reason = reason
        super().__init__(
            f"Invalid operation '{action}': {reason}",
            details={"action": action, "reason": reason, **(details or {})},
        )


class ValidationError(InvalidOperationError):
    """
    Raised when a single input field fails validation.

    Args:
        field: Name of the field that failed validation
        message: Explanation of why validation failed
    """

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        self.validation_message = message
        super().__init__(
            "validate",
            f"{field}: {message}",
            details={"field": field, "validation_message": message},
        )


class IdempotencyKeyOwnedError(InvalidOperationError):
    """Raised when an idempotency key is already held by a different user."""

    def __init__(self, key: str, user_id: str) -> None:
        self.key = key
        self.user_id = user_id
        super().__init__(
            "reserve",
            "idempotency key belongs to another user",
            details={"key": key, "user_id": user_id},
        )


class BalanceNotFoundError(LedgerDomainError):
    """Raised when a user has no ledger history (distinct from a zero balance)."""

    ERROR_CODE = "BALANCE_NOT_FOUND"

    def __init__(self, user_id: str) -> None:
        self.user_id = user_id
        super().__init__(
            f"No credit balance for user {user_id}",
            details={"user_id": user_id},
        )


class InsufficientCreditsError(LedgerDomainError):
    """
    Raised when a debit would take a balance below zero.

    Args:
        user_id: The user being debited
        required: Credits the debit needs
        current: Credits currently available
    """

    ERROR_CODE = "INSUFFICIENT_CREDITS"

    def __init__(self, user_id: str, required: int, current: int) -> None:
        self.user_id = user_id
        self.required = required
        self.current = current
        super().__init__(
            f"Insufficient credits: need {required:,}, have {current:,}",
            details={
                "user_id": user_id,
                "required": required,
                "current": current,
                "deficit": required - current,
            },
        )


class DailyBonusAlreadyClaimedError(LedgerDomainError):
    """Raised when the daily bonus was already claimed for the calendar date."""

    DEFAULT_SEVERITY = ErrorSeverity.DEBUG
    ERROR_CODE = "DAILY_BONUS_ALREADY_CLAIMED"

    def __init__(
        self,
        user_id: str,
        claim_date: date,
        next_eligible_date: Optional[date] = None,
        transaction_id: Optional[str] = None,
    ) -> None:
        self.user_id = user_id
        self.claim_date = claim_date
        self.next_eligible_date = next_eligible_date
        self.transaction_id = transaction_id
        super().__init__(
            f"Daily bonus already claimed for {claim_date.isoformat()}",
            details={
                "user_id": user_id,
                "claim_date": claim_date.isoformat(),
                "next_eligible_date": (
                    next_eligible_date.isoformat() if next_eligible_date else None
                ),
                "transaction_id": transaction_id,
            },
        )


class InvalidPurchaseError(LedgerDomainError):
    """Raised for unknown products, rejected receipts, or foreign transaction ids."""

    DEFAULT_SEVERITY = ErrorSeverity.WARNING
    ERROR_CODE = "INVALID_PURCHASE"

    def __init__(self, reason: str, **details: Any) -> None:
        self.reason = reason
        super().__init__(
            f"Invalid purchase: {reason}",
            details={"reason": reason, **details},
        )


class ReferralNotValidError(LedgerDomainError):
    """Raised for self-referrals and referees that already redeemed a code."""

    DEFAULT_SEVERITY = ErrorSeverity.WARNING
    ERROR_CODE = "REFERRAL_NOT_VALID"

    def __init__(self, reason: str, **details: Any) -> None:
        self.reason = reason
        super().__init__(
            f"Referral not valid: {reason}",
            details={"reason": reason, **details},
        )


class OperationInProgressError(LedgerDomainError):
    """
    Raised when another caller holds a fresh reservation for the same key.

    Retryable: once the holder completes, a retry returns the stored result;
    if the holder died, the reservation expires and a retry takes it over.
    """

    DEFAULT_SEVERITY = ErrorSeverity.DEBUG
    DEFAULT_RETRYABLE = True
    ERROR_CODE = "OPERATION_IN_PROGRESS"

    def __init__(self, key: str, retry_after_seconds: float) -> None:
        self.key = key
        self.retry_after_seconds = retry_after_seconds
        super().__init__(
            f"Operation {key} is already in progress",
            details={"key": key, "retry_after": retry_after_seconds},
        )
