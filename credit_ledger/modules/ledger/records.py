"""
Ledger domain records.

Frozen dataclasses that cross component boundaries. Storage backends map their
rows to these, so services never hold ORM instances and the in-memory backend
needs no SQLAlchemy session.
"""

from __future__ import annotations

import enum
import math
import uuid
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import Any, Dict, FrozenSet, Mapping, Optional, Tuple

from credit_ledger.core.database.base import ensure_utc, utc_now
from credit_ledger.database.models.enums import (
    IdempotencyStatus,
    ReferralStatus,
    ReferralType,
    TransactionType,
)


def new_id() -> str:
    return str(uuid.uuid4())


# ============================================================================
# CreditTransaction
# ============================================================================


@dataclass(frozen=True, slots=True)
class CreditTransaction:
    """Immutable ledger fact. Corrections are new offsetting transactions."""

    id: str
    user_id: str
    type: TransactionType
    amount: int
    description: str
    created_at: datetime
    metadata: Dict[str, Any] = field(default_factory=dict)
    idempotency_key: Optional[str] = None

    @classmethod
    def create(
        cls,
        *,
        user_id: str,
        type: TransactionType,
        amount: int,
        description: str,
        metadata: Optional[Mapping[str, Any]] = None,
        idempotency_key: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> "CreditTransaction":
        return cls(
            id=new_id(),
            user_id=user_id,
            type=type,
            amount=amount,
            description=description,
            created_at=ensure_utc(created_at) if created_at else utc_now(),
            metadata=dict(metadata or {}),
            idempotency_key=idempotency_key,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "type": self.type.value,
            "amount": self.amount,
            "description": self.description,
            "created_at": self.created_at.isoformat(),
            "metadata": dict(self.metadata),
            "idempotency_key": self.idempotency_key,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CreditTransaction":
        return cls(
            id=data["id"],
            user_id=data["user_id"],
            type=TransactionType(data["type"]),
            amount=int(data["amount"]),
            description=data.get("description", ""),
            created_at=ensure_utc(datetime.fromisoformat(data["created_at"])),
            metadata=dict(data.get("metadata") or {}),
            idempotency_key=data.get("idempotency_key"),
        )


# ============================================================================
# CreditBalance
# ============================================================================


@dataclass(frozen=True, slots=True)
class CreditBalance:
    user_id: str
    total_credits: int
    updated_at: datetime
    lifetime_earned: int = 0
    lifetime_spent: int = 0
    version: int = 0

    @classmethod
    def empty(cls, user_id: str) -> "CreditBalance":
        return cls(user_id=user_id, total_credits=0, updated_at=utc_now())

    def apply(self, amount: int, at: Optional[datetime] = None) -> "CreditBalance":
        """Return the balance after one ledger entry of `amount`."""
        return replace(
            self,
            total_credits=self.total_credits + amount,
            lifetime_earned=self.lifetime_earned + max(amount, 0),
            lifetime_spent=self.lifetime_spent + max(-amount, 0),
            version=self.version + 1,
            updated_at=at or utc_now(),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "total_credits": self.total_credits,
            "lifetime_earned": self.lifetime_earned,
            "lifetime_spent": self.lifetime_spent,
            "version": self.version,
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CreditBalance":
        return cls(
            user_id=data["user_id"],
            total_credits=int(data["total_credits"]),
            lifetime_earned=int(data.get("lifetime_earned", 0)),
            lifetime_spent=int(data.get("lifetime_spent", 0)),
            version=int(data.get("version", 0)),
            updated_at=ensure_utc(datetime.fromisoformat(data["updated_at"])),
        )


# ============================================================================
# DailyBonusState
# ============================================================================


@dataclass(frozen=True, slots=True)
class DailyBonusState:
    user_id: str
    last_claim_date: Optional[date] = None
    current_streak: int = 0
    next_eligible_date: Optional[date] = None
    total_claims: int = 0
    updated_at: Optional[datetime] = None


# ============================================================================
# IdempotencyRecord
# ============================================================================


@dataclass(frozen=True, slots=True)
class IdempotencyRecord:
    key: str
    user_id: str
    operation: str
    status: IdempotencyStatus
    created_at: datetime
    resulting_transaction_id: Optional[str] = None
    result_payload: Optional[Dict[str, Any]] = None
    completed_at: Optional[datetime] = None

    @property
    def is_completed(self) -> bool:
        return self.status is IdempotencyStatus.COMPLETED


# ============================================================================
# Referral
# ============================================================================


@dataclass(frozen=True, slots=True)
class Referral:
    id: str
    referrer_user_id: str
    referee_user_id: str
    referral_code: str
    type: ReferralType
    referrer_credits: int
    referee_credits: int
    status: ReferralStatus
    created_at: datetime
    referrer_transaction_id: Optional[str] = None
    referee_transaction_id: Optional[str] = None
    completed_at: Optional[datetime] = None


# ============================================================================
# Listing: filters, pages, aggregates
# ============================================================================


class SortDirection(str, enum.Enum):
    ASC = "asc"
    DESC = "desc"


@dataclass(frozen=True, slots=True)
class TransactionFilter:
    """
    Storage-side filter for transaction listings.

    `start` is inclusive, `end` exclusive. Empty `types` means all types.
    """

    types: FrozenSet[TransactionType] = frozenset()
    exclude_types: FrozenSet[TransactionType] = frozenset()
    start: Optional[datetime] = None
    end: Optional[datetime] = None

    def matches(self, transaction: CreditTransaction) -> bool:
        if self.types and transaction.type not in self.types:
            return False
        if transaction.type in self.exclude_types:
            return False
        if self.start is not None and transaction.created_at < ensure_utc(self.start):
            return False
        if self.end is not None and transaction.created_at >= ensure_utc(self.end):
            return False
        return True


@dataclass(frozen=True, slots=True)
class DateRange:
    """Half-open UTC range `[start, end)`; either end may be open."""

    start: Optional[datetime] = None
    end: Optional[datetime] = None

    def to_filter(self, **kwargs: Any) -> TransactionFilter:
        return TransactionFilter(start=self.start, end=self.end, **kwargs)


@dataclass(frozen=True, slots=True)
class PageRequest:
    page: int = 1
    limit: int = 20
    sort: SortDirection = SortDirection.DESC

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


@dataclass(frozen=True, slots=True)
class TransactionPage:
    items: Tuple[CreditTransaction, ...]
    total_count: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        if self.total_count == 0:
            return 0
        return math.ceil(self.total_count / self.limit)

    @property
    def has_more(self) -> bool:
        return self.page < self.total_pages


@dataclass(frozen=True, slots=True)
class SystemCreditStats:
    total_users: int
    total_transactions: int
    total_credits_issued: int
    total_credits_spent: int

    @property
    def credits_outstanding(self) -> int:
        return self.total_credits_issued - self.total_credits_spent


@dataclass(frozen=True, slots=True)
class UserLedgerTotals:
    """Folded view of one user's ledger entries."""

    user_id: str
    entries: int
    earned: int
    spent: int

    @property
    def total(self) -> int:
        return self.earned - self.spent

    @property
    def has_history(self) -> bool:
        return self.entries > 0
