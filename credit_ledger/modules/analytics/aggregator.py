"""
Analytics Aggregator

Purpose
-------
Read-only summaries of a user's credit activity over a date range: totals,
per-type sums and counts, and UTC month buckets.

Design Notes
------------
- Pages through `LedgerStore.list_for_user` newest first, `page_size` rows
  at a time, and stops at `limit` transactions (`truncated=True` when more
  matched). Memory stays bounded by `limit`.
- Admin adjustments are excluded in storage unless `include_admin=True`.
- Results may be memoised in `AnalyticsCache`; a stale snapshot for up to
  the cache TTL is acceptable, a Redis outage is not an error.
"""

from __future__ import annotations

from collections import Counter, defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Tuple

from credit_ledger.core.cache.analytics_cache import AnalyticsCache
from credit_ledger.core.config.config import Config
from credit_ledger.core.database.base import ensure_utc
from credit_ledger.core.logging.logger import get_logger
from credit_ledger.database.models.enums import (
    ADMIN_TRANSACTION_TYPES,
    TransactionType,
)
from credit_ledger.modules.ledger.records import (
    DateRange,
    PageRequest,
    SortDirection,
    SystemCreditStats,
)
from credit_ledger.modules.ledger.store import LedgerStore

logger = get_logger(__name__)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse(value: Optional[str]) -> Optional[datetime]:
    return ensure_utc(datetime.fromisoformat(value)) if value else None


@dataclass(frozen=True, slots=True)
class MonthlyCredits:
    month: str
    earned: int = 0
    spent: int = 0

    @property
    def net(self) -> int:
        return self.earned - self.spent

    def to_dict(self) -> Dict[str, Any]:
        return {"month": self.month, "earned": self.earned, "spent": self.spent}


@dataclass(frozen=True, slots=True)
class AnalyticsSnapshot:
    user_id: str
    start: Optional[datetime]
    end: Optional[datetime]
    include_admin: bool
    current_balance: int
    total_earned: int
    total_spent: int
    total_purchases: int
    daily_bonuses_claimed: int
    referral_credits: int
    credits_by_type: Dict[str, int] = field(default_factory=dict)
    transactions_by_type: Dict[str, int] = field(default_factory=dict)
    credits_by_month: Tuple[MonthlyCredits, ...] = ()
    transactions_considered: int = 0
    truncated: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "start": _iso(self.start),
            "end": _iso(self.end),
            "include_admin": self.include_admin,
            "current_balance": self.current_balance,
            "total_earned": self.total_earned,
            "total_spent": self.total_spent,
            "total_purchases": self.total_purchases,
            "daily_bonuses_claimed": self.daily_bonuses_claimed,
            "referral_credits": self.referral_credits,
            "credits_by_type": dict(self.credits_by_type),
            "transactions_by_type": dict(self.transactions_by_type),
            "credits_by_month": [m.to_dict() for m in self.credits_by_month],
            "transactions_considered": self.transactions_considered,
            "truncated": self.truncated,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AnalyticsSnapshot":
        return cls(
            user_id=data["user_id"],
            start=_parse(data.get("start")),
            end=_parse(data.get("end")),
            include_admin=bool(data["include_admin"]),
            current_balance=int(data["current_balance"]),
            total_earned=int(data["total_earned"]),
            total_spent=int(data["total_spent"]),
            total_purchases=int(data["total_purchases"]),
            daily_bonuses_claimed=int(data["daily_bonuses_claimed"]),
            referral_credits=int(data["referral_credits"]),
            credits_by_type=dict(data.get("credits_by_type") or {}),
            transactions_by_type=dict(data.get("transactions_by_type") or {}),
            credits_by_month=tuple(
                MonthlyCredits(m["month"], int(m["earned"]), int(m["spent"]))
                for m in data.get("credits_by_month") or []
            ),
            transactions_considered=int(data.get("transactions_considered", 0)),
            truncated=bool(data.get("truncated", False)),
        )


class AnalyticsAggregator:
    def __init__(
        self,
        store: LedgerStore,
        cache: Optional[AnalyticsCache] = None,
        page_size: int = 500,
        max_transactions: int = 10_000,
    ) -> None:
        self._store = store
        self._cache = cache or AnalyticsCache.disabled()
        self._page_size = page_size
        self._max_transactions = max_transactions

    @classmethod
    def from_config(
        cls, store: LedgerStore, cache: Optional[AnalyticsCache] = None
    ) -> "AnalyticsAggregator":
        return cls(
            store,
            cache=cache,
            page_size=Config.ANALYTICS_PAGE_SIZE,
            max_transactions=Config.ANALYTICS_MAX_TRANSACTIONS,
        )

    @property
    def max_transactions(self) -> int:
        return self._max_transactions

    async def summarize(
        self,
        user_id: str,
        date_range: Optional[DateRange] = None,
        include_admin: bool = False,
        limit: Optional[int] = None,
    ) -> AnalyticsSnapshot:
        date_range = date_range or DateRange()
        cap = min(limit or self._max_transactions, self._max_transactions)

        cache_key = self._cache.make_key(
            user_id,
            _iso(date_range.start) or "-",
            _iso(date_range.end) or "-",
            int(include_admin),
            cap,
        )
        cached = await self._cache.get(cache_key)
        if cached is not None:
            return AnalyticsSnapshot.from_dict(cached)

        snapshot = await self._compute(user_id, date_range, include_admin, cap)
        await self._cache.set(cache_key, snapshot.to_dict())
        return snapshot

    async def _compute(
        self,
        user_id: str,
        date_range: DateRange,
        include_admin: bool,
        cap: int,
    ) -> AnalyticsSnapshot:
        exclude = frozenset() if include_admin else ADMIN_TRANSACTION_TYPES
        filter = date_range.to_filter(exclude_types=exclude)

        credits_by_type: Dict[str, int] = defaultdict(int)
        counts: Counter[str] = Counter()
        months: Dict[str, List[int]] = defaultdict(lambda: [0, 0])
        earned = spent = considered = 0
        total_matching = 0

        page_number = 1
        while considered < cap:
            remaining = cap - considered
            # Fixed page size keeps offsets aligned; only the last slice shrinks.
            page = await self._store.list_for_user(
                user_id,
                filter,
                PageRequest(page=page_number, limit=self._page_size, sort=SortDirection.DESC),
            )
            total_matching = page.total_count

            for transaction in page.items[:remaining]:
                type_key = transaction.type.value
                credits_by_type[type_key] += transaction.amount
                counts[type_key] += 1

                bucket = months[transaction.created_at.strftime("%Y-%m")]
                if transaction.amount >= 0:
                    earned += transaction.amount
                    bucket[0] += transaction.amount
                else:
                    spent += -transaction.amount
                    bucket[1] += -transaction.amount
                considered += 1

            if not page.has_more:
                break
            page_number += 1

        balance = await self._store.get_balance(user_id)
        snapshot = AnalyticsSnapshot(
            user_id=user_id,
            start=date_range.start,
            end=date_range.end,
            include_admin=include_admin,
            current_balance=balance.total_credits if balance else 0,
            total_earned=earned,
            total_spent=spent,
            total_purchases=counts[TransactionType.PURCHASE.value],
            daily_bonuses_claimed=counts[TransactionType.DAILY_BONUS.value],
            referral_credits=credits_by_type.get(TransactionType.REFERRAL.value, 0),
            credits_by_type=dict(credits_by_type),
            transactions_by_type=dict(counts),
            credits_by_month=tuple(
                MonthlyCredits(month, e, s) for month, (e, s) in sorted(months.items())
            ),
            transactions_considered=considered,
            truncated=total_matching > considered,
        )

        logger.debug(
            "Analytics snapshot computed",
            extra={
                "user_id": user_id,
                "transactions_considered": considered,
                "truncated": snapshot.truncated,
                "include_admin": include_admin,
            },
        )
        return snapshot

    async def system_stats(self) -> SystemCreditStats:
        return await self._store.system_stats()
