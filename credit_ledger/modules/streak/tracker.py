"""
Streak Tracker

Purpose
-------
Daily-bonus state machine. One claim per calendar day in the reference
timezone; consecutive days grow the streak, any gap resets it.

Transitions (claim on `today`)
------------------------------
- no prior claim            -> streak 1
- last claim == yesterday   -> streak + 1
- last claim == today       -> DailyBonusAlreadyClaimedError
- older last claim          -> streak 1

Bonus
-----
    bonus = base + min(previous_effective_streak * step, cap)

where the previous effective streak is the stored streak when the last claim
was yesterday and 0 otherwise (defaults: base 10, step 2, cap 14).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from credit_ledger.core.config.config import Config
from credit_ledger.core.config.settings import LedgerSettings
from credit_ledger.core.database.base import utc_now
from credit_ledger.core.exceptions import ConfigurationError
from credit_ledger.core.logging.logger import get_logger
from credit_ledger.modules.ledger.records import DailyBonusState
from credit_ledger.modules.ledger.store import LedgerStore, LedgerUnitOfWork
from credit_ledger.modules.shared.base_service import BaseService
from credit_ledger.modules.shared.exceptions import DailyBonusAlreadyClaimedError
from credit_ledger.modules.shared.formulas import (
    calculate_daily_bonus,
    effective_streak,
    next_streak,
)


def _iso(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass(frozen=True, slots=True)
class DailyBonusStatus:
    user_id: str
    can_claim: bool
    current_streak: int
    next_bonus_amount: int
    last_claim_date: Optional[date]
    next_eligible_date: date

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "can_claim": self.can_claim,
            "current_streak": self.current_streak,
            "next_bonus_amount": self.next_bonus_amount,
            "last_claim_date": _iso(self.last_claim_date),
            "next_eligible_date": _iso(self.next_eligible_date),
        }


@dataclass(frozen=True, slots=True)
class StreakClaim:
    user_id: str
    claim_date: date
    granted_amount: int
    previous_streak: int
    new_streak: int
    next_eligible_date: date


class StreakTracker(BaseService):
    """
    Daily bonus status and claims.

    Args:
        store: Ledger store (status reads)
        settings: Bonus formula settings
        timezone_name: IANA zone that defines the calendar day
        clock: Returns the current aware datetime
    """

    def __init__(
        self,
        store: LedgerStore,
        settings: LedgerSettings,
        timezone_name: str = "UTC",
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        super().__init__(settings, get_logger(__name__))
        self._store = store
        self._clock = clock
        try:
            self._tz = ZoneInfo(timezone_name)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ConfigurationError(
                "DAILY_BONUS_TIMEZONE", f"unknown timezone '{timezone_name}'"
            ) from exc

    @classmethod
    def from_config(
        cls,
        store: LedgerStore,
        settings: LedgerSettings,
        clock: Callable[[], datetime] = utc_now,
    ) -> "StreakTracker":
        return cls(store, settings, Config.DAILY_BONUS_TIMEZONE, clock)

    @property
    def timezone(self) -> ZoneInfo:
        return self._tz

    def today(self) -> date:
        """Current calendar date in the reference timezone."""
        return self._clock().astimezone(self._tz).date()

    def bonus_for_streak(self, streak: int) -> int:
        return calculate_daily_bonus(
            streak,
            base=self.settings.daily_bonus_base,
            step=self.settings.daily_bonus_streak_step,
            cap=self.settings.daily_bonus_streak_cap,
        )

    async def get_status(self, user_id: str) -> DailyBonusStatus:
        today = self.today()
        state = await self._store.get_daily_bonus_state(user_id)
        last = state.last_claim_date if state else None
        stored = state.current_streak if state else 0

        current = effective_streak(last, stored, today)
        if last == today:
            return DailyBonusStatus(
                user_id=user_id,
                can_claim=False,
                current_streak=current,
                next_bonus_amount=self.bonus_for_streak(current),
                last_claim_date=last,
                next_eligible_date=today + timedelta(days=1),
            )

        return DailyBonusStatus(
            user_id=user_id,
            can_claim=True,
            current_streak=current,
            next_bonus_amount=self.bonus_for_streak(current),
            last_claim_date=last,
            next_eligible_date=today,
        )

    async def claim(
        self, uow: LedgerUnitOfWork, user_id: str, today: date
    ) -> StreakClaim:
        """
        Advance the streak for a claim on `today` inside the caller's unit.

        Raises:
            DailyBonusAlreadyClaimedError: A claim for `today` already exists
        """
        state = await uow.get_daily_bonus_state(user_id, for_update=True)
        if state is None:
            state = DailyBonusState(user_id=user_id)

        if state.last_claim_date == today:
            raise DailyBonusAlreadyClaimedError(
                user_id, today, next_eligible_date=today + timedelta(days=1)
            )

        previous = effective_streak(state.last_claim_date, state.current_streak, today)
        new = next_streak(state.last_claim_date, state.current_streak, today)
        amount = self.bonus_for_streak(previous)
        next_eligible = today + timedelta(days=1)

        await uow.save_daily_bonus_state(
            DailyBonusState(
                user_id=user_id,
                last_claim_date=today,
                current_streak=new,
                next_eligible_date=next_eligible,
                total_claims=state.total_claims + 1,
                updated_at=utc_now(),
            )
        )

        self.log.debug(
            "Daily streak advanced",
            extra={
                "user_id": user_id,
                "claim_date": today.isoformat(),
                "previous_streak": previous,
                "new_streak": new,
                "granted": amount,
            },
        )
        return StreakClaim(
            user_id=user_id,
            claim_date=today,
            granted_amount=amount,
            previous_streak=previous,
            new_streak=new,
            next_eligible_date=next_eligible,
        )
