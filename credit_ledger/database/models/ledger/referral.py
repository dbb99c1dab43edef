"""
ReferralRow: one redeemed referral code per referee.
Pure schema only.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from credit_ledger.core.database.base import Base, UtcDateTime, utc_now


class ReferralRow(Base):
    """`referee_user_id` is unique: a user can be referred only once."""

    __tablename__ = "credit_referrals"
    __table_args__ = (
        Index("ix_credit_referrals_referrer", "referrer_user_id"),
        Index("ix_credit_referrals_status", "status"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)

    referrer_user_id: Mapped[str] = mapped_column(String(128), nullable=False)

    referee_user_id: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
        unique=True,
    )

    referral_code: Mapped[str] = mapped_column(String(64), nullable=False)

    type: Mapped[str] = mapped_column(String(32), nullable=False)

    referrer_credits: Mapped[int] = mapped_column(BigInteger, nullable=False)

    referee_credits: Mapped[int] = mapped_column(BigInteger, nullable=False)

    status: Mapped[str] = mapped_column(String(16), nullable=False)

    referrer_transaction_id: Mapped[Optional[str]] = mapped_column(
        String(36),
        nullable=True,
    )

    referee_transaction_id: Mapped[Optional[str]] = mapped_column(
        String(36),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        UtcDateTime,
        nullable=False,
        default=utc_now,
    )

    completed_at: Mapped[Optional[datetime]] = mapped_column(
        UtcDateTime,
        nullable=True,
    )
