"""
DailyBonusStateRow: per-user daily bonus streak state.
Pure schema only.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from sqlalchemy import Date, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from credit_ledger.core.database.base import Base, UtcDateTime, utc_now


class DailyBonusStateRow(Base):
    """Dates are calendar dates in the configured reference timezone."""

    __tablename__ = "daily_bonus_states"

    user_id: Mapped[str] = mapped_column(String(128), primary_key=True)

    last_claim_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    current_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    next_eligible_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    total_claims: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    updated_at: Mapped[datetime] = mapped_column(
        UtcDateTime,
        nullable=False,
        default=utc_now,
    )
