"""
CreditBalanceRow: maintained balance projection, one row per user.
Pure schema only. Updated in the same transaction as each ledger insert.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, CheckConstraint, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from credit_ledger.core.database.base import Base, UtcDateTime, utc_now


class CreditBalanceRow(Base):
    """
    Cached sum of a user's ledger amounts.

    `version` counts applied ledger entries and doubles as a cheap drift
    signal during reconciliation.
    """

    __tablename__ = "credit_balances"
    __table_args__ = (
        CheckConstraint("total_credits >= 0", name="total_credits_non_negative"),
    )

    user_id: Mapped[str] = mapped_column(String(128), primary_key=True)

    total_credits: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    lifetime_earned: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    lifetime_spent: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    updated_at: Mapped[datetime] = mapped_column(
        UtcDateTime,
        nullable=False,
        default=utc_now,
    )
