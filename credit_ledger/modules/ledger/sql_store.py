"""
SQL Ledger Store (SQLAlchemy async).

Purpose
-------
Relational backend for the ledger. One `unit_of_work()` is one database
transaction from `DatabaseService.get_transaction()`, so the ledger insert,
balance cache update, streak update and idempotency completion of an
operation commit or roll back together.

Responsibilities
----------------
- Map `credit_ledger.database.models` rows to ledger domain records.
- Apply row locks (``SELECT ... FOR UPDATE``) when callers ask for them.
- Filter, order and page transaction listings inside the database.
- Translate driver failures:
  - IntegrityError on a ledger insert -> DuplicateTransactionError
  - IntegrityError on an idempotency insert -> IdempotencyConflictError
  - any other OperationalError / DBAPIError -> TransactionFailedError

Non-Responsibilities
--------------------
- Business rules (balances never going negative, streak rules, etc.)
- In-process serialization (the orchestrator's per-user locks)
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, List, Optional

from sqlalchemy import and_, case, func, select, union
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from credit_ledger.core.database.service import DatabaseService
from credit_ledger.core.exceptions import (
    DuplicateTransactionError,
    IdempotencyConflictError,
    TransactionFailedError,
)
from credit_ledger.core.logging.logger import get_logger
from credit_ledger.database.models import (
    CreditBalanceRow,
    CreditTransactionRow,
    DailyBonusStateRow,
    IdempotencyRecordRow,
    IdempotencyStatus,
    ReferralRow,
    ReferralStatus,
    ReferralType,
    TransactionType,
)
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
from credit_ledger.modules.shared.base_repository import BaseRepository

logger = get_logger(__name__)


# ============================================================================
# Row <-> record mapping
# ============================================================================


def _to_transaction(row: CreditTransactionRow) -> CreditTransaction:
    return CreditTransaction(
        id=row.id,
        user_id=row.user_id,
        type=TransactionType(row.type),
        amount=int(row.amount),
        description=row.description,
        created_at=row.created_at,
        metadata=dict(row.metadata_ or {}),
        idempotency_key=row.idempotency_key,
    )


def _to_balance(row: CreditBalanceRow) -> CreditBalance:
    return CreditBalance(
        user_id=row.user_id,
        total_credits=int(row.total_credits),
        lifetime_earned=int(row.lifetime_earned),
        lifetime_spent=int(row.lifetime_spent),
        version=int(row.version),
        updated_at=row.updated_at,
    )


def _to_daily_state(row: DailyBonusStateRow) -> DailyBonusState:
    return DailyBonusState(
        user_id=row.user_id,
        last_claim_date=row.last_claim_date,
        current_streak=int(row.current_streak),
        next_eligible_date=row.next_eligible_date,
        total_claims=int(row.total_claims),
        updated_at=row.updated_at,
    )


def _to_idempotency(row: IdempotencyRecordRow) -> IdempotencyRecord:
    return IdempotencyRecord(
        key=row.key,
        user_id=row.user_id,
        operation=row.operation,
        status=IdempotencyStatus(row.status),
        created_at=row.created_at,
        resulting_transaction_id=row.resulting_transaction_id,
        result_payload=dict(row.result_payload) if row.result_payload else None,
        completed_at=row.completed_at,
    )


def _to_referral(row: ReferralRow) -> Referral:
    return Referral(
        id=row.id,
        referrer_user_id=row.referrer_user_id,
        referee_user_id=row.referee_user_id,
        referral_code=row.referral_code,
        type=ReferralType(row.type),
        referrer_credits=int(row.referrer_credits),
        referee_credits=int(row.referee_credits),
        status=ReferralStatus(row.status),
        created_at=row.created_at,
        referrer_transaction_id=row.referrer_transaction_id,
        referee_transaction_id=row.referee_transaction_id,
        completed_at=row.completed_at,
    )


def _filter_conditions(user_id: str, filter: TransactionFilter) -> List[Any]:
    conditions: List[Any] = [CreditTransactionRow.user_id == user_id]
    if filter.types:
        conditions.append(CreditTransactionRow.type.in_([t.value for t in filter.types]))
    if filter.exclude_types:
        conditions.append(
            CreditTransactionRow.type.not_in([t.value for t in filter.exclude_types])
        )
    if filter.start is not None:
        conditions.append(CreditTransactionRow.created_at >= filter.start)
    if filter.end is not None:
        conditions.append(CreditTransactionRow.created_at < filter.end)
    return conditions


# ============================================================================
# Repositories
# ============================================================================


class TransactionRepository(BaseRepository[CreditTransactionRow]):
    def __init__(self) -> None:
        super().__init__(CreditTransactionRow, logger)

    async def sum_for_user(self, session: AsyncSession, user_id: str) -> int:
        result = await session.execute(
            select(func.coalesce(func.sum(CreditTransactionRow.amount), 0)).where(
                CreditTransactionRow.user_id == user_id
            )
        )
        return int(result.scalar_one())

    async def totals_for_user(self, session: AsyncSession, user_id: str) -> UserLedgerTotals:
        amount = CreditTransactionRow.amount
        result = await session.execute(
            select(
                func.count(),
                func.coalesce(func.sum(case((amount > 0, amount), else_=0)), 0),
                func.coalesce(func.sum(case((amount < 0, -amount), else_=0)), 0),
            ).where(CreditTransactionRow.user_id == user_id)
        )
        entries, earned, spent = result.one()
        return UserLedgerTotals(
            user_id=user_id, entries=int(entries), earned=int(earned), spent=int(spent)
        )

    async def page_for_user(
        self,
        session: AsyncSession,
        user_id: str,
        filter: TransactionFilter,
        page: PageRequest,
    ) -> TransactionPage:
        conditions = _filter_conditions(user_id, filter)
        total = await self.count(session, *conditions)

        if page.sort is SortDirection.ASC:
            order_by = [CreditTransactionRow.created_at.asc(), CreditTransactionRow.id.asc()]
        else:
            order_by = [CreditTransactionRow.created_at.desc(), CreditTransactionRow.id.desc()]

        rows = await self.find_many_where(
            session,
            *conditions,
            order_by=order_by,
            limit=page.limit,
            offset=page.offset,
        )
        return TransactionPage(
            items=tuple(_to_transaction(row) for row in rows),
            total_count=total,
            page=page.page,
            limit=page.limit,
        )

    async def system_stats(self, session: AsyncSession) -> SystemCreditStats:
        amount = CreditTransactionRow.amount
        result = await session.execute(
            select(
                func.count(func.distinct(CreditTransactionRow.user_id)),
                func.count(),
                func.coalesce(func.sum(case((amount > 0, amount), else_=0)), 0),
                func.coalesce(func.sum(case((amount < 0, -amount), else_=0)), 0),
            ).select_from(CreditTransactionRow)
        )
        users, transactions, issued, spent = result.one()
        return SystemCreditStats(
            total_users=int(users),
            total_transactions=int(transactions),
            total_credits_issued=int(issued),
            total_credits_spent=int(spent),
        )


class BalanceRepository(BaseRepository[CreditBalanceRow]):
    def __init__(self) -> None:
        super().__init__(CreditBalanceRow, logger)


class DailyBonusStateRepository(BaseRepository[DailyBonusStateRow]):
    def __init__(self) -> None:
        super().__init__(DailyBonusStateRow, logger)


class IdempotencyRepository(BaseRepository[IdempotencyRecordRow]):
    def __init__(self) -> None:
        super().__init__(IdempotencyRecordRow, logger)


class ReferralRepository(BaseRepository[ReferralRow]):
    def __init__(self) -> None:
        super().__init__(ReferralRow, logger)


# ============================================================================
# Unit of work
# ============================================================================


class SqlLedgerUnitOfWork:
    """`LedgerUnitOfWork` over one open SQLAlchemy transaction."""

    def __init__(self, session: AsyncSession, store: "SqlLedgerStore") -> None:
        self.session = session
        self._store = store

    async def append(self, transaction: CreditTransaction) -> str:
        row = CreditTransactionRow(
            id=transaction.id,
            user_id=transaction.user_id,
            type=transaction.type.value,
            amount=transaction.amount,
            description=transaction.description,
            metadata_=dict(transaction.metadata),
            idempotency_key=transaction.idempotency_key,
            created_at=transaction.created_at,
        )
        try:
            await self._store.transactions.add(self.session, row)
        except IntegrityError as exc:
            logger.critical(
                "Ledger append violated a uniqueness constraint",
                extra={
                    "transaction_id": transaction.id,
                    "user_id": transaction.user_id,
                    "idempotency_key": transaction.idempotency_key,
                },
            )
            raise DuplicateTransactionError(transaction.id, transaction.user_id) from exc
        return transaction.id

    async def sum_for_user(self, user_id: str) -> int:
        return await self._store.transactions.sum_for_user(self.session, user_id)

    async def count_for_user(self, user_id: str) -> int:
        return await self._store.transactions.count(
            self.session, CreditTransactionRow.user_id == user_id
        )

    async def totals_for_user(self, user_id: str) -> UserLedgerTotals:
        return await self._store.transactions.totals_for_user(self.session, user_id)

    async def get_balance(
        self, user_id: str, *, for_update: bool = False
    ) -> Optional[CreditBalance]:
        row = await self._store.balances.get(self.session, user_id, for_update=for_update)
        return _to_balance(row) if row else None

    async def save_balance(self, balance: CreditBalance) -> None:
        row = await self._store.balances.get(self.session, balance.user_id)
        if row is None:
            row = CreditBalanceRow(user_id=balance.user_id)
            self.session.add(row)
        row.total_credits = balance.total_credits
        row.lifetime_earned = balance.lifetime_earned
        row.lifetime_spent = balance.lifetime_spent
        row.version = balance.version
        row.updated_at = balance.updated_at
        await self.session.flush()

    async def get_daily_bonus_state(
        self, user_id: str, *, for_update: bool = False
    ) -> Optional[DailyBonusState]:
        row = await self._store.daily_states.get(
            self.session, user_id, for_update=for_update
        )
        return _to_daily_state(row) if row else None

    async def save_daily_bonus_state(self, state: DailyBonusState) -> None:
        row = await self._store.daily_states.get(self.session, state.user_id)
        if row is None:
            row = DailyBonusStateRow(user_id=state.user_id)
            self.session.add(row)
        row.last_claim_date = state.last_claim_date
        row.current_streak = state.current_streak
        row.next_eligible_date = state.next_eligible_date
        row.total_claims = state.total_claims
        if state.updated_at is not None:
            row.updated_at = state.updated_at
        await self.session.flush()

    async def get_idempotency_record(
        self, key: str, *, for_update: bool = False
    ) -> Optional[IdempotencyRecord]:
        row = await self._store.idempotency.get(self.session, key, for_update=for_update)
        return _to_idempotency(row) if row else None

    async def insert_idempotency_record(self, record: IdempotencyRecord) -> None:
        row = IdempotencyRecordRow(
            key=record.key,
            user_id=record.user_id,
            operation=record.operation,
            status=record.status.value,
            resulting_transaction_id=record.resulting_transaction_id,
            result_payload=record.result_payload,
            created_at=record.created_at,
            completed_at=record.completed_at,
        )
        try:
            await self._store.idempotency.add(self.session, row)
        except IntegrityError as exc:
            raise IdempotencyConflictError(record.key) from exc

    async def save_idempotency_record(self, record: IdempotencyRecord) -> None:
        row = await self._store.idempotency.get(self.session, record.key)
        if row is None:
            await self.insert_idempotency_record(record)
            return
        row.user_id = record.user_id
        row.operation = record.operation
        row.status = record.status.value
        row.resulting_transaction_id = record.resulting_transaction_id
        row.result_payload = record.result_payload
        row.created_at = record.created_at
        row.completed_at = record.completed_at
        await self.session.flush()

    async def delete_idempotency_record(self, key: str) -> None:
        row = await self._store.idempotency.get(self.session, key)
        if row is not None:
            await self._store.idempotency.delete(self.session, row)

    async def get_referral_by_referee(
        self, referee_user_id: str, *, for_update: bool = False
    ) -> Optional[Referral]:
        row = await self._store.referrals.find_one_where(
            self.session,
            ReferralRow.referee_user_id == referee_user_id,
            for_update=for_update,
        )
        return _to_referral(row) if row else None

    async def save_referral(self, referral: Referral) -> None:
        row = await self._store.referrals.get(self.session, referral.id)
        if row is None:
            row = ReferralRow(id=referral.id)
            self.session.add(row)
        row.referrer_user_id = referral.referrer_user_id
        row.referee_user_id = referral.referee_user_id
        row.referral_code = referral.referral_code
        row.type = referral.type.value
        row.referrer_credits = referral.referrer_credits
        row.referee_credits = referral.referee_credits
        row.status = referral.status.value
        row.referrer_transaction_id = referral.referrer_transaction_id
        row.referee_transaction_id = referral.referee_transaction_id
        row.created_at = referral.created_at
        row.completed_at = referral.completed_at
        await self.session.flush()


# ============================================================================
# Store
# ============================================================================


class SqlLedgerStore:
    """
    `LedgerStore` backed by `DatabaseService`.

    Usage
    -----
    >>> store = SqlLedgerStore(database)
    >>> async with store.unit_of_work() as uow:
    ...     await uow.append(transaction)
    """

    def __init__(self, database: DatabaseService) -> None:
        self._database = database
        self.transactions = TransactionRepository()
        self.balances = BalanceRepository()
        self.daily_states = DailyBonusStateRepository()
        self.idempotency = IdempotencyRepository()
        self.referrals = ReferralRepository()

    @asynccontextmanager
    async def unit_of_work(self) -> AsyncIterator[SqlLedgerUnitOfWork]:
        try:
            async with self._database.get_transaction() as session:
                yield SqlLedgerUnitOfWork(session, self)
        except (OperationalError, DBAPIError) as exc:
            raise TransactionFailedError("ledger.unit_of_work", exc) from exc

    @asynccontextmanager
    async def _read_session(self, operation: str) -> AsyncIterator[AsyncSession]:
        try:
            async with self._database.get_session() as session:
                yield session
        except (OperationalError, DBAPIError) as exc:
            raise TransactionFailedError(operation, exc) from exc

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def sum_for_user(self, user_id: str) -> int:
        async with self._read_session("ledger.sum_for_user") as session:
            return await self.transactions.sum_for_user(session, user_id)

    async def count_for_user(self, user_id: str) -> int:
        async with self._read_session("ledger.count_for_user") as session:
            return await self.transactions.count(
                session, CreditTransactionRow.user_id == user_id
            )

    async def list_for_user(
        self,
        user_id: str,
        filter: TransactionFilter,
        page: PageRequest,
    ) -> TransactionPage:
        async with self._read_session("ledger.list_for_user") as session:
            return await self.transactions.page_for_user(session, user_id, filter, page)

    async def get_transaction(self, transaction_id: str) -> Optional[CreditTransaction]:
        async with self._read_session("ledger.get_transaction") as session:
            row = await self.transactions.get(session, transaction_id)
            return _to_transaction(row) if row else None

    async def get_balance(self, user_id: str) -> Optional[CreditBalance]:
        async with self._read_session("ledger.get_balance") as session:
            row = await self.balances.get(session, user_id)
            return _to_balance(row) if row else None

    async def get_daily_bonus_state(self, user_id: str) -> Optional[DailyBonusState]:
        async with self._read_session("ledger.get_daily_bonus_state") as session:
            row = await self.daily_states.get(session, user_id)
            return _to_daily_state(row) if row else None

    async def get_idempotency_record(self, key: str) -> Optional[IdempotencyRecord]:
        async with self._read_session("ledger.get_idempotency_record") as session:
            row = await self.idempotency.get(session, key)
            return _to_idempotency(row) if row else None

    async def list_user_ids(self) -> List[str]:
        stmt = union(
            select(CreditTransactionRow.user_id),
            select(CreditBalanceRow.user_id),
        )
        async with self._read_session("ledger.list_user_ids") as session:
            result = await session.execute(stmt)
            return sorted(str(user_id) for user_id in result.scalars().all())

    async def system_stats(self) -> SystemCreditStats:
        async with self._read_session("ledger.system_stats") as session:
            return await self.transactions.system_stats(session)

    async def list_pending_referrals(self) -> List[Referral]:
        async with self._read_session("ledger.list_pending_referrals") as session:
            rows = await self.referrals.find_many_where(
                session,
                and_(ReferralRow.status == ReferralStatus.PENDING.value),
                order_by=[ReferralRow.created_at.asc()],
            )
            return [_to_referral(row) for row in rows]
