"""
Unit tests for StreakTracker.

Tests the daily claim state machine, status reporting, and the reference
timezone that defines a calendar day.
"""

from datetime import date, datetime, timezone

import pytest

from credit_ledger.core.exceptions import ConfigurationError
from credit_ledger.modules.shared.exceptions import DailyBonusAlreadyClaimedError
from credit_ledger.modules.streak.tracker import StreakTracker


@pytest.fixture
def tracker(memory_store, settings, clock):
    return StreakTracker(memory_store, settings, clock=clock)


async def _claim(store, tracker, user_id="u-1"):
    async with store.unit_of_work() as uow:
        return await tracker.claim(uow, user_id, tracker.today())


@pytest.mark.asyncio
class TestClaims:
    async def test_first_claim(self, memory_store, tracker):
        claim = await _claim(memory_store, tracker)

        assert claim.granted_amount == 10
        assert claim.previous_streak == 0
        assert claim.new_streak == 1
        assert claim.next_eligible_date == date(2025, 3, 11)

    async def test_consecutive_days_grow_bonus(self, memory_store, tracker, clock):
        granted = []
        for _ in range(9):
            granted.append((await _claim(memory_store, tracker)).granted_amount)
            clock.next_day()

        assert granted == [10, 12, 14, 16, 18, 20, 22, 24, 24]
        state = await memory_store.get_daily_bonus_state("u-1")
        assert state.current_streak == 9
        assert state.total_claims == 9

    async def test_same_day_rejected(self, memory_store, tracker):
        await _claim(memory_store, tracker)

        with pytest.raises(DailyBonusAlreadyClaimedError) as exc_info:
            await _claim(memory_store, tracker)

        assert exc_info.value.next_eligible_date == date(2025, 3, 11)
        assert exc_info.value.error_code == "DAILY_BONUS_ALREADY_CLAIMED"

    async def test_gap_resets_streak(self, memory_store, tracker, clock):
        await _claim(memory_store, tracker)
        clock.next_day()
        await _claim(memory_store, tracker)
        clock.advance(days=3)

        claim = await _claim(memory_store, tracker)

        assert claim.previous_streak == 0
        assert claim.new_streak == 1
        assert claim.granted_amount == 10


@pytest.mark.asyncio
class TestStatus:
    async def test_new_user_can_claim(self, tracker):
        status = await tracker.get_status("nobody")

        assert status.can_claim is True
        assert status.current_streak == 0
        assert status.next_bonus_amount == 10
        assert status.last_claim_date is None

    async def test_after_claim_cannot_claim_today(self, memory_store, tracker):
        await _claim(memory_store, tracker)

        status = await tracker.get_status("u-1")

        assert status.can_claim is False
        assert status.current_streak == 1
        assert status.next_bonus_amount == 12
        assert status.next_eligible_date == date(2025, 3, 11)

    async def test_lapsed_streak_reported_as_zero(self, memory_store, tracker, clock):
        await _claim(memory_store, tracker)
        clock.advance(days=2)

        status = await tracker.get_status("u-1")

        assert status.can_claim is True
        assert status.current_streak == 0
        assert status.to_dict()["last_claim_date"] == "2025-03-10"


class TestReferenceTimezone:
    def test_day_follows_configured_zone(self, memory_store, settings):
        late_utc = datetime(2025, 3, 10, 23, 30, tzinfo=timezone.utc)

        utc_tracker = StreakTracker(memory_store, settings, "UTC", clock=lambda: late_utc)
        tokyo_tracker = StreakTracker(
            memory_store, settings, "Asia/Tokyo", clock=lambda: late_utc
        )

        assert utc_tracker.today() == date(2025, 3, 10)
        assert tokyo_tracker.today() == date(2025, 3, 11)

    def test_unknown_zone_is_configuration_error(self, memory_store, settings):
        with pytest.raises(ConfigurationError) as exc_info:
            StreakTracker(memory_store, settings, "Mars/Olympus_Mons")
        assert exc_info.value.config_key == "DAILY_BONUS_TIMEZONE"

    def test_bonus_follows_settings(self, memory_store):
        from credit_ledger.core.config.settings import LedgerSettings

        custom = LedgerSettings.from_overrides(
            {"daily_bonus": {"base": 5, "streak_step": 5, "streak_cap": 10}}
        )
        tracker = StreakTracker(memory_store, custom)

        assert [tracker.bonus_for_streak(s) for s in (0, 1, 2, 3)] == [5, 10, 15, 15]
