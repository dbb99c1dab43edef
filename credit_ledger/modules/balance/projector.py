"""
Balance Projector

Purpose
-------
Maintain and serve the balance projection of the ledger.

- CACHED reads return the maintained `credit_balances` row.
- FOLD reads recompute the balance from the ledger (audit path).
- `apply` moves the cached balance in the caller's unit of work, under the
  row lock, and refuses to go below zero.
- `reconcile` compares the cache with the fold and optionally repairs it.

Invariant
---------
After every commit, `total_credits` equals the sum of the user's transaction
amounts. Drift can only come from writes that bypass the orchestrator, and is
logged at ERROR when detected.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, replace
from typing import Any, AsyncContextManager, Callable, Dict, List, Optional

from credit_ledger.core.database.base import utc_now
from credit_ledger.core.logging.logger import get_logger
from credit_ledger.modules.ledger.records import CreditBalance
from credit_ledger.modules.ledger.store import LedgerStore, LedgerUnitOfWork
from credit_ledger.modules.shared.exceptions import (
    BalanceNotFoundError,
    InsufficientCreditsError,
)

logger = get_logger(__name__)


class BalanceReadMode(str, enum.Enum):
    CACHED = "cached"
    FOLD = "fold"


@dataclass(frozen=True, slots=True)
class ReconciliationReport:
    user_id: str
    cached: Optional[int]
    folded: int
    entries: int = 0
    repaired: bool = False

    @property
    def discrepancy(self) -> int:
        return self.folded - (self.cached or 0)

    @property
    def is_consistent(self) -> bool:
        # No cached row is only correct for a user with no ledger history.
        if self.cached is None:
            return self.entries == 0
        return self.discrepancy == 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "cached": self.cached,
            "folded": self.folded,
            "discrepancy": self.discrepancy,
            "entries": self.entries,
            "repaired": self.repaired,
        }


class BalanceProjector:
    def __init__(self, store: LedgerStore) -> None:
        self._store = store

    async def get_balance(
        self, user_id: str, mode: BalanceReadMode = BalanceReadMode.CACHED
    ) -> CreditBalance:
        """
        Read a user's balance.

        Raises:
            BalanceNotFoundError: The user has no ledger history
        """
        cached = await self._store.get_balance(user_id)

        if mode is BalanceReadMode.CACHED:
            if cached is None:
                raise BalanceNotFoundError(user_id)
            return cached

        async with self._store.unit_of_work() as uow:
            totals = await uow.totals_for_user(user_id)
        if not totals.has_history:
            raise BalanceNotFoundError(user_id)

        return CreditBalance(
            user_id=user_id,
            total_credits=totals.total,
            lifetime_earned=totals.earned,
            lifetime_spent=totals.spent,
            version=totals.entries,
            updated_at=cached.updated_at if cached else utc_now(),
        )

    async def apply(
        self,
        uow: LedgerUnitOfWork,
        user_id: str,
        amount: int,
        *,
        require_existing: bool = False,
    ) -> CreditBalance:
        """
        Apply one ledger entry's `amount` to the cached balance.

        Args:
            require_existing: Raise BalanceNotFoundError instead of starting
                a balance at zero for a user with no history

        Raises:
            BalanceNotFoundError: No history and `require_existing`
            InsufficientCreditsError: The result would be negative
        """
        current = await uow.get_balance(user_id, for_update=True)
        if current is None:
            if require_existing:
                raise BalanceNotFoundError(user_id)
            current = CreditBalance.empty(user_id)

        if current.total_credits + amount < 0:
            raise InsufficientCreditsError(
                user_id, required=-amount, current=current.total_credits
            )

        updated = current.apply(amount, utc_now())
        await uow.save_balance(updated)
        return updated

    async def reconcile(self, user_id: str, repair: bool = False) -> ReconciliationReport:
        """
        Compare the cached balance with the ledger fold, optionally repairing it.

        The cached row (locked) and the fold are read in one unit of work, so
        a write committing alongside cannot show up as drift. A user with no
        history and no cached row is consistent and never gets a row written.
        """
        async with self._store.unit_of_work() as uow:
            cached = await uow.get_balance(user_id, for_update=True)
            totals = await uow.totals_for_user(user_id)
            report = ReconciliationReport(
                user_id=user_id,
                cached=cached.total_credits if cached else None,
                folded=totals.total,
                entries=totals.entries,
            )

            if report.is_consistent:
                return report

            logger.error(
                "Balance drift detected",
                extra={**report.to_dict(), "repair": repair},
            )

            if not repair:
                return report

            base = cached or CreditBalance.empty(user_id)
            await uow.save_balance(
                CreditBalance(
                    user_id=user_id,
                    total_credits=totals.total,
                    lifetime_earned=totals.earned,
                    lifetime_spent=totals.spent,
                    version=max(base.version + 1, totals.entries),
                    updated_at=utc_now(),
                )
            )

        logger.warning(
            "Balance cache repaired from ledger",
            extra={"user_id": user_id, "total_credits": totals.total},
        )
        return replace(report, repaired=True)

    async def reconcile_all(
        self,
        repair: bool = False,
        hold: Optional[Callable[[str], AsyncContextManager[None]]] = None,
    ) -> List[ReconciliationReport]:
        """
        Reconcile every user the store knows about.

        Args:
            hold: Per-user context manager entered around each user's
                reconcile, so in-process writers for that user are held off
        """
        reports = []
        for user_id in await self._store.list_user_ids():
            if hold is None:
                reports.append(await self.reconcile(user_id, repair=repair))
                continue
            async with hold(user_id):
                reports.append(await self.reconcile(user_id, repair=repair))

        drifted = sum(1 for r in reports if not r.is_consistent)
        logger.info(
            "Balance reconciliation finished",
            extra={"users": len(reports), "drifted": drifted, "repair": repair},
        )
        return reports
