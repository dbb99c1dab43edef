"""
Database Model Enums
====================

Categorical values stored in ledger tables. Declared as ``str`` enums so
they persist as their plain values and compare equal to them.
"""

from __future__ import annotations

import enum


class TransactionType(str, enum.Enum):
    """Why a ledger entry exists. The sign of the amount follows the type."""

    GRANT = "grant"
    SPEND = "spend"
    PURCHASE = "purchase"
    DAILY_BONUS = "daily_bonus"
    REFERRAL = "referral"
    ADMIN_ADD = "admin_add"
    ADMIN_DEDUCT = "admin_deduct"

    @property
    def is_admin(self) -> bool:
        return self in (TransactionType.ADMIN_ADD, TransactionType.ADMIN_DEDUCT)

    @property
    def is_debit(self) -> bool:
        return self in (TransactionType.SPEND, TransactionType.ADMIN_DEDUCT)


ADMIN_TRANSACTION_TYPES = frozenset(
    {TransactionType.ADMIN_ADD, TransactionType.ADMIN_DEDUCT}
)


class ReferralType(str, enum.Enum):
    SIGNUP = "signup"
    PURCHASE = "purchase"
    ACHIEVEMENT = "achievement"


class ReferralStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"


class IdempotencyStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"


class Platform(str, enum.Enum):
    """Stores a purchase receipt can originate from."""

    IOS = "ios"
    ANDROID = "android"
    WEB = "web"
