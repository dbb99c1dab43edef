"""
Database models for the credit ledger.

Importing this package registers every table on `Base.metadata`.
"""

from credit_ledger.database.models.enums import (
    ADMIN_TRANSACTION_TYPES,
    IdempotencyStatus,
    Platform,
    ReferralStatus,
    ReferralType,
    TransactionType,
)
from credit_ledger.database.models.ledger import (
    CreditBalanceRow,
    CreditTransactionRow,
    DailyBonusStateRow,
    IdempotencyRecordRow,
    ReferralRow,
)

__all__ = [
    "ADMIN_TRANSACTION_TYPES",
    "IdempotencyStatus",
    "Platform",
    "ReferralStatus",
    "ReferralType",
    "TransactionType",
    "CreditBalanceRow",
    "CreditTransactionRow",
    "DailyBonusStateRow",
    "IdempotencyRecordRow",
    "ReferralRow",
]
