"""
In-memory ledger store.

Dict-backed `LedgerStore` used by unit tests and local tooling. A unit of work
stages every write and `_commit` applies them in one synchronous step, so no
other coroutine can observe a half-applied unit. Leaving the block with an
exception discards the staged writes.

Row locks are emulated optimistically: a balance read with `for_update=True`
remembers the version it saw, and commit fails with `TransactionFailedError`
if another unit changed that balance in the meantime.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, List, Optional, Set

from credit_ledger.core.exceptions import (
    DuplicateTransactionError,
    IdempotencyConflictError,
    TransactionFailedError,
)
from credit_ledger.core.logging.logger import get_logger
from credit_ledger.database.models.enums import ReferralStatus
from credit_ledger.modules.ledger.records import (
    CreditBalance,
    CreditTransaction,
    DailyBonusState,
    IdempotencyRecord,
    PageRequest,
    Referral,
    SortDirection,
    SystemCreditStats,
    TransactionFilter,
    TransactionPage,
    UserLedgerTotals,
)

logger = get_logger(__name__)

_DELETED = object()


class InMemoryLedgerUnitOfWork:
    def __init__(self, store: "InMemoryLedgerStore") -> None:
        self._store = store
        self.transactions: List[CreditTransaction] = []
        self.balances: Dict[str, CreditBalance] = {}
        self.daily_states: Dict[str, DailyBonusState] = {}
        self.idempotency: Dict[str, object] = {}
        self.inserted_keys: Set[str] = set()
        self.referrals: Dict[str, Referral] = {}
        self.observed_versions: Dict[str, int] = {}

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    async def append(self, transaction: CreditTransaction) -> str:
        if self._store.write_delay:
            await asyncio.sleep(self._store.write_delay)

        staged_ids = {t.id for t in self.transactions}
        if transaction.id in self._store._transactions or transaction.id in staged_ids:
            raise DuplicateTransactionError(transaction.id, transaction.user_id)

        key = transaction.idempotency_key
        if key is not None:
            staged_keys = {t.idempotency_key for t in self.transactions}
            if key in self._store._transaction_keys or key in staged_keys:
                raise DuplicateTransactionError(transaction.id, transaction.user_id)

        self.transactions.append(transaction)
        return transaction.id

    async def sum_for_user(self, user_id: str) -> int:
        staged = sum(t.amount for t in self.transactions if t.user_id == user_id)
        return self._store._sum(user_id) + staged

    async def count_for_user(self, user_id: str) -> int:
        staged = sum(1 for t in self.transactions if t.user_id == user_id)
        return len(self._store._by_user.get(user_id, [])) + staged

    async def totals_for_user(self, user_id: str) -> UserLedgerTotals:
        amounts = [t.amount for t in self._store._by_user.get(user_id, [])]
        amounts += [t.amount for t in self.transactions if t.user_id == user_id]
        return UserLedgerTotals(
            user_id=user_id,
            entries=len(amounts),
            earned=sum(a for a in amounts if a > 0),
            spent=sum(-a for a in amounts if a < 0),
        )

    # ------------------------------------------------------------------
    # Balance
    # ------------------------------------------------------------------

    async def get_balance(
        self, user_id: str, *, for_update: bool = False
    ) -> Optional[CreditBalance]:
        if user_id in self.balances:
            return self.balances[user_id]
        balance = self._store._balances.get(user_id)
        if for_update:
            self.observed_versions[user_id] = balance.version if balance else -1
        return balance

    async def save_balance(self, balance: CreditBalance) -> None:
        if balance.user_id not in self.observed_versions:
            current = self._store._balances.get(balance.user_id)
            self.observed_versions[balance.user_id] = current.version if current else -1
        self.balances[balance.user_id] = balance

    # ------------------------------------------------------------------
    # Daily bonus
    # ------------------------------------------------------------------

    async def get_daily_bonus_state(
        self, user_id: str, *, for_update: bool = False
    ) -> Optional[DailyBonusState]:
        if user_id in self.daily_states:
            return self.daily_states[user_id]
        return self._store._daily_states.get(user_id)

    async def save_daily_bonus_state(self, state: DailyBonusState) -> None:
        self.daily_states[state.user_id] = state

    # ------------------------------------------------------------------
    # Idempotency
    # ------------------------------------------------------------------

    async def get_idempotency_record(
        self, key: str, *, for_update: bool = False
    ) -> Optional[IdempotencyRecord]:
        if key in self.idempotency:
            staged = self.idempotency[key]
            return None if staged is _DELETED else staged  # type: ignore[return-value]
        return self._store._idempotency.get(key)

    async def insert_idempotency_record(self, record: IdempotencyRecord) -> None:
        if await self.get_idempotency_record(record.key) is not None:
            raise IdempotencyConflictError(record.key)
        self.idempotency[record.key] = record
        self.inserted_keys.add(record.key)

    async def save_idempotency_record(self, record: IdempotencyRecord) -> None:
        if await self.get_idempotency_record(record.key) is None:
            await self.insert_idempotency_record(record)
            return
        self.idempotency[record.key] = record

    async def delete_idempotency_record(self, key: str) -> None:
        self.idempotency[key] = _DELETED
        self.inserted_keys.discard(key)

    # ------------------------------------------------------------------
    # Referrals
    # ------------------------------------------------------------------

    async def get_referral_by_referee(
        self, referee_user_id: str, *, for_update: bool = False
    ) -> Optional[Referral]:
        for referral in self.referrals.values():
            if referral.referee_user_id == referee_user_id:
                return referral
        return self._store._referral_for_referee(referee_user_id)

    async def save_referral(self, referral: Referral) -> None:
        self.referrals[referral.id] = referral


class InMemoryLedgerStore:
    """
    `LedgerStore` held entirely in process memory.

    Args:
        write_delay: Seconds each `append` sleeps before staging, for
            exercising timeouts and interleavings in tests.
    """

    def __init__(self, write_delay: float = 0.0) -> None:
        self.write_delay = write_delay
        self._transactions: Dict[str, CreditTransaction] = {}
        self._transaction_keys: Set[str] = set()
        self._by_user: Dict[str, List[CreditTransaction]] = {}
        self._balances: Dict[str, CreditBalance] = {}
        self._daily_states: Dict[str, DailyBonusState] = {}
        self._idempotency: Dict[str, IdempotencyRecord] = {}
        self._referrals: Dict[str, Referral] = {}

    @asynccontextmanager
    async def unit_of_work(self) -> AsyncIterator[InMemoryLedgerUnitOfWork]:
        uow = InMemoryLedgerUnitOfWork(self)
        yield uow
        self._commit(uow)

    def _commit(self, uow: InMemoryLedgerUnitOfWork) -> None:
        for transaction in uow.transactions:
            if transaction.id in self._transactions:
                raise DuplicateTransactionError(transaction.id, transaction.user_id)
            if transaction.idempotency_key in self._transaction_keys:
                raise DuplicateTransactionError(transaction.id, transaction.user_id)

        for key in uow.inserted_keys:
            if key in self._idempotency:
                raise IdempotencyConflictError(key)

        for user_id, seen in uow.observed_versions.items():
            current = self._balances.get(user_id)
            if (current.version if current else -1) != seen:
                raise TransactionFailedError(
                    "ledger.commit",
                    message=f"Balance for {user_id} changed during the unit of work",
                )

        for transaction in uow.transactions:
            self._transactions[transaction.id] = transaction
            if transaction.idempotency_key is not None:
                self._transaction_keys.add(transaction.idempotency_key)
            self._by_user.setdefault(transaction.user_id, []).append(transaction)
        self._balances.update(uow.balances)
        self._daily_states.update(uow.daily_states)
        for key, staged in uow.idempotency.items():
            if staged is _DELETED:
                self._idempotency.pop(key, None)
            else:
                self._idempotency[key] = staged  # type: ignore[assignment]
        self._referrals.update(uow.referrals)

        logger.debug(
            "In-memory unit of work committed",
            extra={"transactions": len(uow.transactions)},
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _sum(self, user_id: str) -> int:
        return sum(t.amount for t in self._by_user.get(user_id, []))

    def _referral_for_referee(self, referee_user_id: str) -> Optional[Referral]:
        for referral in self._referrals.values():
            if referral.referee_user_id == referee_user_id:
                return referral
        return None

    async def sum_for_user(self, user_id: str) -> int:
        return self._sum(user_id)

    async def count_for_user(self, user_id: str) -> int:
        return len(self._by_user.get(user_id, []))

    async def list_for_user(
        self,
        user_id: str,
        filter: TransactionFilter,
        page: PageRequest,
    ) -> TransactionPage:
        matching = [t for t in self._by_user.get(user_id, []) if filter.matches(t)]
        matching.sort(
            key=lambda t: (t.created_at, t.id),
            reverse=page.sort is SortDirection.DESC,
        )
        items = matching[page.offset : page.offset + page.limit]
        return TransactionPage(
            items=tuple(items),
            total_count=len(matching),
            page=page.page,
            limit=page.limit,
        )

    async def get_transaction(self, transaction_id: str) -> Optional[CreditTransaction]:
        return self._transactions.get(transaction_id)

    async def get_balance(self, user_id: str) -> Optional[CreditBalance]:
        return self._balances.get(user_id)

    async def get_daily_bonus_state(self, user_id: str) -> Optional[DailyBonusState]:
        return self._daily_states.get(user_id)

    async def get_idempotency_record(self, key: str) -> Optional[IdempotencyRecord]:
        return self._idempotency.get(key)

    async def list_user_ids(self) -> List[str]:
        return sorted(set(self._by_user) | set(self._balances))

    async def system_stats(self) -> SystemCreditStats:
        amounts = [t.amount for t in self._transactions.values()]
        return SystemCreditStats(
            total_users=len(self._by_user),
            total_transactions=len(amounts),
            total_credits_issued=sum(a for a in amounts if a > 0),
            total_credits_spent=sum(-a for a in amounts if a < 0),
        )

    async def list_pending_referrals(self) -> List[Referral]:
        pending = [
            r for r in self._referrals.values() if r.status is ReferralStatus.PENDING
        ]
        return sorted(pending, key=lambda r: r.created_at)

    # ------------------------------------------------------------------
    # Test support
    # ------------------------------------------------------------------

    def corrupt_balance(self, balance: CreditBalance) -> None:
        """Overwrite the cached balance directly, bypassing the ledger."""
        self._balances[balance.user_id] = balance
