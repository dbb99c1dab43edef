"""
Credit Ledger Shared Module

Purpose
-------
Domain-level foundations for the ledger modules:
- Domain exceptions and the Ok/Err result type
- Base service and repository patterns
- Ledger constants and pure formulas

Architecture
------------
- BaseService: logging and settings access for services
- BaseRepository: typed SQLAlchemy access for the SQL store
- Domain exceptions: business rule violations surfaced through `Err`
- Formulas: pure daily bonus / streak / purchase bonus calculations
"""

from credit_ledger.modules.shared.base_service import BaseService
from credit_ledger.modules.shared.exceptions import (
    BalanceNotFoundError,
    DailyBonusAlreadyClaimedError,
    IdempotencyKeyOwnedError,
    InsufficientCreditsError,
    InvalidOperationError,
    InvalidPurchaseError,
    LedgerDomainError,
    OperationInProgressError,
    ReferralNotValidError,
    ValidationError,
)
from credit_ledger.modules.shared.result import Err, Ok, Result, unwrap

__all__ = [
    "BaseService",
    "BalanceNotFoundError",
    "DailyBonusAlreadyClaimedError",
    "IdempotencyKeyOwnedError",
    "InsufficientCreditsError",
    "InvalidOperationError",
    "InvalidPurchaseError",
    "LedgerDomainError",
    "OperationInProgressError",
    "ReferralNotValidError",
    "ValidationError",
    "Err",
    "Ok",
    "Result",
    "unwrap",
]
