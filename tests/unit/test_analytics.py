"""
Unit tests for AnalyticsAggregator and the orchestrator's analytics calls.
"""

from datetime import datetime, timezone

import pytest

from credit_ledger.core.cache.analytics_cache import AnalyticsCache
from credit_ledger.modules.analytics.aggregator import AnalyticsAggregator, AnalyticsSnapshot
from credit_ledger.modules.ledger.records import DateRange


async def _seed_activity(orchestrator, clock):
    """Grant, daily bonus, purchase and spend in March; one admin grant in April."""
    await orchestrator.add_credits("u-1", 50, "welcome")
    await orchestrator.claim_daily_bonus("u-1")
    await orchestrator.process_purchase(
        "u-1", "credits_popular", "tok-1234567890", "ios", "txn-1"
    )
    await orchestrator.deduct_credits("u-1", 30, "sticker pack")
    clock.advance(days=25)
    await orchestrator.admin_add_credits("u-1", 100, "goodwill", "admin-1")


@pytest.mark.asyncio
class TestSummaries:
    async def test_totals_exclude_admin_by_default(self, orchestrator, clock):
        await _seed_activity(orchestrator, clock)

        snapshot = (await orchestrator.get_credit_analytics("u-1")).unwrap()

        assert snapshot.total_earned == 50 + 10 + 40
        assert snapshot.total_spent == 30
        assert snapshot.total_purchases == 1
        assert snapshot.daily_bonuses_claimed == 1
        assert snapshot.current_balance == 170
        assert "admin_add" not in snapshot.credits_by_type
        assert snapshot.truncated is False

    async def test_include_admin(self, orchestrator, clock):
        await _seed_activity(orchestrator, clock)

        snapshot = (
            await orchestrator.get_credit_analytics("u-1", include_admin=True)
        ).unwrap()

        assert snapshot.credits_by_type["admin_add"] == 100
        assert snapshot.total_earned == 200

    async def test_month_buckets(self, orchestrator, clock):
        await _seed_activity(orchestrator, clock)

        snapshot = (
            await orchestrator.get_credit_analytics("u-1", include_admin=True)
        ).unwrap()

        months = {m.month: m for m in snapshot.credits_by_month}
        assert set(months) == {"2025-03", "2025-04"}
        assert months["2025-03"].earned == 100
        assert months["2025-03"].spent == 30
        assert months["2025-03"].net == 70
        assert months["2025-04"].earned == 100

    async def test_date_range_is_half_open(self, orchestrator, clock):
        await _seed_activity(orchestrator, clock)
        window = DateRange(
            start=datetime(2025, 4, 1, tzinfo=timezone.utc),
            end=datetime(2025, 5, 1, tzinfo=timezone.utc),
        )

        snapshot = (
            await orchestrator.get_credit_analytics("u-1", window, include_admin=True)
        ).unwrap()

        assert snapshot.transactions_considered == 1
        assert snapshot.start == window.start

    async def test_referral_credits(self, orchestrator):
        await orchestrator.process_referral("alice", "bob", "ALICE-42")

        snapshot = (await orchestrator.get_credit_analytics("alice")).unwrap()

        assert snapshot.referral_credits == 25

    async def test_inverted_range_rejected(self, orchestrator):
        window = DateRange(
            start=datetime(2025, 5, 1, tzinfo=timezone.utc),
            end=datetime(2025, 4, 1, tzinfo=timezone.utc),
        )

        result = await orchestrator.get_credit_analytics("u-1", window)

        assert result.error_code == "INVALID_OPERATION"

    async def test_limit_above_cap_rejected(self, orchestrator):
        result = await orchestrator.get_credit_analytics("u-1", limit=10_000_000)

        assert result.error_code == "INVALID_OPERATION"


@pytest.mark.asyncio
class TestBoundedPaging:
    async def test_truncates_at_limit(self, orchestrator, memory_store, clock):
        for _ in range(7):
            await orchestrator.add_credits("u-1", 1)
            clock.advance(minutes=1)
        aggregator = AnalyticsAggregator(memory_store, page_size=2, max_transactions=5)

        snapshot = await aggregator.summarize("u-1")

        assert snapshot.transactions_considered == 5
        assert snapshot.truncated is True
        assert snapshot.total_earned == 5

    async def test_caller_limit_below_cap(self, orchestrator, memory_store):
        for _ in range(4):
            await orchestrator.add_credits("u-1", 2)
        aggregator = AnalyticsAggregator(memory_store, page_size=2, max_transactions=100)

        snapshot = await aggregator.summarize("u-1", limit=3)

        assert snapshot.transactions_considered == 3
        assert snapshot.truncated is True

    async def test_exact_fit_is_not_truncated(self, orchestrator, memory_store):
        for _ in range(4):
            await orchestrator.add_credits("u-1", 2)
        aggregator = AnalyticsAggregator(memory_store, page_size=2, max_transactions=4)

        snapshot = await aggregator.summarize("u-1")

        assert snapshot.transactions_considered == 4
        assert snapshot.truncated is False

    async def test_unknown_user_is_empty(self, memory_store):
        snapshot = await AnalyticsAggregator(memory_store).summarize("nobody")

        assert snapshot.current_balance == 0
        assert snapshot.transactions_considered == 0
        assert snapshot.credits_by_month == ()


@pytest.mark.asyncio
class TestMemoisation:
    async def test_cached_snapshot_is_served(self, orchestrator, memory_store, mocker):
        await orchestrator.add_credits("u-1", 10)
        stored = {}
        client = mocker.AsyncMock()
        client.get.side_effect = lambda key: stored.get(key)

        async def _set(key, value, ex=None):
            stored[key] = value

        client.set.side_effect = _set
        cache = AnalyticsCache(client, ttl_seconds=30)
        aggregator = AnalyticsAggregator(memory_store, cache=cache)

        first = await aggregator.summarize("u-1")
        await orchestrator.add_credits("u-1", 10)
        second = await aggregator.summarize("u-1")

        assert second == first
        assert second.current_balance == 10
        assert cache.hits == 1
        assert client.set.await_args.kwargs["ex"] == 30


class TestSnapshotSerialization:
    def test_snapshot_dict_shape(self):
        snapshot = AnalyticsSnapshot(
            user_id="u-1",
            start=None,
            end=None,
            include_admin=False,
            current_balance=3,
            total_earned=5,
            total_spent=2,
            total_purchases=0,
            daily_bonuses_claimed=0,
            referral_credits=0,
        )

        payload = snapshot.to_dict()

        assert payload["start"] is None
        assert payload["credits_by_month"] == []
        assert AnalyticsSnapshot.from_dict(payload) == snapshot
