"""
Ledger Module
=============

Append-only credit transaction log and its storage backends.

Exports:
- Records: CreditTransaction, CreditBalance, DailyBonusState,
  IdempotencyRecord, Referral, TransactionFilter, DateRange, PageRequest,
  TransactionPage, SystemCreditStats, SortDirection, UserLedgerTotals
- Contracts: LedgerStore, LedgerUnitOfWork
- Backends: SqlLedgerStore, InMemoryLedgerStore
"""

from .memory_store import InMemoryLedgerStore
from .records import (
    CreditBalance,
    CreditTransaction,
    DailyBonusState,
    DateRange,
    IdempotencyRecord,
    PageRequest,
    Referral,
    SortDirection,
    SystemCreditStats,
    TransactionFilter,
    TransactionPage,
    UserLedgerTotals,
    new_id,
)
from .sql_store import SqlLedgerStore
from .store import LedgerStore, LedgerUnitOfWork

__all__ = [
    "CreditBalance",
    "CreditTransaction",
    "DailyBonusState",
    "DateRange",
    "IdempotencyRecord",
    "InMemoryLedgerStore",
    "LedgerStore",
    "LedgerUnitOfWork",
    "PageRequest",
    "Referral",
    "SortDirection",
    "SqlLedgerStore",
    "SystemCreditStats",
    "TransactionFilter",
    "TransactionPage",
    "UserLedgerTotals",
    "new_id",
]
