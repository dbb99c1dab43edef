"""
Result DTOs returned by `CreditOrchestrator`.

Keyed operations (purchase, daily bonus, referral) persist their DTO as the
idempotency record's `result_payload`; `to_dict`/`from_dict` define that
JSON shape, so a replay returns a value equal to the original.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Tuple

from credit_ledger.modules.ledger.records import (
    CreditBalance,
    CreditTransaction,
    TransactionPage,
)


@dataclass(frozen=True, slots=True)
class PurchaseResult:
    credits_granted: int
    bonus_credits: int
    transaction: CreditTransaction

    @property
    def total_credits(self) -> int:
        return self.credits_granted + self.bonus_credits

    def to_dict(self) -> Dict[str, Any]:
        return {
            "credits_granted": self.credits_granted,
            "bonus_credits": self.bonus_credits,
            "transaction": self.transaction.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PurchaseResult":
        return cls(
            credits_granted=int(data["credits_granted"]),
            bonus_credits=int(data["bonus_credits"]),
            transaction=CreditTransaction.from_dict(data["transaction"]),
        )


@dataclass(frozen=True, slots=True)
class DailyBonusClaim:
    transaction: CreditTransaction
    granted: int
    new_streak: int
    balance: CreditBalance

    def to_dict(self) -> Dict[str, Any]:
        return {
            "transaction": self.transaction.to_dict(),
            "granted": self.granted,
            "new_streak": self.new_streak,
            "balance": self.balance.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "DailyBonusClaim":
        return cls(
            transaction=CreditTransaction.from_dict(data["transaction"]),
            granted=int(data["granted"]),
            new_streak=int(data["new_streak"]),
            balance=CreditBalance.from_dict(data["balance"]),
        )


@dataclass(frozen=True, slots=True)
class ReferralResult:
    referrer_credits: int
    referee_credits: int
    referrer_transaction: CreditTransaction
    referee_transaction: CreditTransaction

    def to_dict(self) -> Dict[str, Any]:
        return {
            "referrer_credits": self.referrer_credits,
            "referee_credits": self.referee_credits,
            "referrer_transaction": self.referrer_transaction.to_dict(),
            "referee_transaction": self.referee_transaction.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ReferralResult":
        return cls(
            referrer_credits=int(data["referrer_credits"]),
            referee_credits=int(data["referee_credits"]),
            referrer_transaction=CreditTransaction.from_dict(data["referrer_transaction"]),
            referee_transaction=CreditTransaction.from_dict(data["referee_transaction"]),
        )


@dataclass(frozen=True, slots=True)
class TransactionHistory:
    transactions: Tuple[CreditTransaction, ...]
    total_count: int
    current_page: int
    total_pages: int
    has_more: bool
    grouped_by_date: Dict[str, List[CreditTransaction]] = field(default_factory=dict)

    @classmethod
    def from_page(cls, page: TransactionPage) -> "TransactionHistory":
        grouped: Dict[str, List[CreditTransaction]] = {}
        for transaction in page.items:
            grouped.setdefault(transaction.created_at.date().isoformat(), []).append(
                transaction
            )
        return cls(
            transactions=page.items,
            total_count=page.total_count,
            current_page=page.page,
            total_pages=page.total_pages,
            has_more=page.has_more,
            grouped_by_date=grouped,
        )
