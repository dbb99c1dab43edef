"""
Ledger Store contracts.

Purpose
-------
The ledger is the durable, append-only record of credit transactions keyed by
user and the single source of truth for balances. This module defines the
storage contract every backend implements:

- `LedgerStore`: read paths plus `unit_of_work()`.
- `LedgerUnitOfWork`: the write surface available inside one atomic unit.

Design Notes
------------
- Everything staged inside one `unit_of_work()` block becomes visible
  together on normal exit, or not at all if the block raises. The ledger
  append, balance cache update, streak update, idempotency completion and
  referral bookkeeping of one operation therefore commit as one unit.
- `for_update=True` asks the backend for a row lock held until the unit
  ends (``SELECT ... FOR UPDATE`` on SQL backends).
- Backends translate driver failures into `TransactionFailedError`
  (retryable), duplicate transaction ids into `DuplicateTransactionError`,
  and idempotency-key races into `IdempotencyConflictError`.
- Only the orchestrator appends transactions.
"""

from __future__ import annotations

from typing import AsyncContextManager, List, Optional, Protocol

from credit_ledger.modules.ledger.records import (
    CreditBalance,
    CreditTransaction,
    DailyBonusState,
    IdempotencyRecord,
    PageRequest,
    Referral,
    SystemCreditStats,
    TransactionFilter,
    TransactionPage,
    UserLedgerTotals,
)


class LedgerUnitOfWork(Protocol):
    """Write surface of one atomic unit of work."""

    async def append(self, transaction: CreditTransaction) -> str: ...

    async def sum_for_user(self, user_id: str) -> int: ...

    async def count_for_user(self, user_id: str) -> int: ...

    async def totals_for_user(self, user_id: str) -> UserLedgerTotals: ...

    async def get_balance(
        self, user_id: str, *, for_update: bool = False
    ) -> Optional[CreditBalance]: ...

    async def save_balance(self, balance: CreditBalance) -> None: ...

    async def get_daily_bonus_state(
        self, user_id: str, *, for_update: bool = False
    ) -> Optional[DailyBonusState]: ...

    async def save_daily_bonus_state(self, state: DailyBonusState) -> None: ...

    async def get_idempotency_record(
        self, key: str, *, for_update: bool = False
    ) -> Optional[IdempotencyRecord]: ...

    async def insert_idempotency_record(self, record: IdempotencyRecord) -> None: ...

    async def save_idempotency_record(self, record: IdempotencyRecord) -> None: ...

    async def delete_idempotency_record(self, key: str) -> None: ...

    async def get_referral_by_referee(
        self, referee_user_id: str, *, for_update: bool = False
    ) -> Optional[Referral]: ...

    async def save_referral(self, referral: Referral) -> None: ...


class LedgerStore(Protocol):
    """Durable ledger with read paths that bypass the write path."""

    def unit_of_work(self) -> AsyncContextManager[LedgerUnitOfWork]: ...

    async def sum_for_user(self, user_id: str) -> int: ...

    async def count_for_user(self, user_id: str) -> int: ...

    async def list_for_user(
        self,
        user_id: str,
        filter: TransactionFilter,
        page: PageRequest,
    ) -> TransactionPage: ...

    async def get_transaction(self, transaction_id: str) -> Optional[CreditTransaction]: ...

    async def get_balance(self, user_id: str) -> Optional[CreditBalance]: ...

    async def get_daily_bonus_state(self, user_id: str) -> Optional[DailyBonusState]: ...

    async def get_idempotency_record(self, key: str) -> Optional[IdempotencyRecord]: ...

    async def list_user_ids(self) -> List[str]: ...

    async def system_stats(self) -> SystemCreditStats: ...

    async def list_pending_referrals(self) -> List[Referral]: ...
