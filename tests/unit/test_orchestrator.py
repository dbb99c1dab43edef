"""
Unit tests for CreditOrchestrator.

End-to-end ledger flows over the in-memory store: the welcome/daily bonus
scenario, add/deduct rules, concurrency, timeouts and cancellation, history,
admin adjustments, and reconciliation. Every public call returns Ok/Err.
"""

import asyncio

import pytest
from sqlalchemy.exc import OperationalError

from credit_ledger.database.models.enums import TransactionType
from credit_ledger.modules.ledger.memory_store import InMemoryLedgerStore
from credit_ledger.modules.ledger.records import (
    CreditBalance,
    PageRequest,
    TransactionFilter,
)
from credit_ledger.modules.shared.exceptions import DailyBonusAlreadyClaimedError
from credit_ledger.modules.shared.result import Err, Ok


@pytest.mark.asyncio
class TestExampleScenario:
    """Balance 0 → welcome 50 → daily 60 → rejected → next day 72."""

    async def test_welcome_then_two_days_of_bonus(self, orchestrator, clock):
        added = await orchestrator.add_credits("user", 50, "welcome")
        assert added.is_ok
        assert added.value.total_credits == 50

        day_one = await orchestrator.claim_daily_bonus("user")
        assert day_one.is_ok
        assert day_one.value.granted == 10
        assert day_one.value.new_streak == 1
        assert day_one.value.balance.total_credits == 60

        again = await orchestrator.claim_daily_bonus("user")
        assert again.is_err
        assert isinstance(again.error, DailyBonusAlreadyClaimedError)
        assert again.error.transaction_id == day_one.value.transaction.id
        assert (await orchestrator.get_balance("user")).value.total_credits == 60

        clock.next_day()
        day_two = await orchestrator.claim_daily_bonus("user")
        assert day_two.value.granted == 12
        assert day_two.value.new_streak == 2
        assert day_two.value.balance.total_credits == 72

        folded = await orchestrator.get_balance("user", consistent=True)
        assert folded.value.total_credits == 72

    async def test_daily_transaction_metadata(self, orchestrator):
        claim = (await orchestrator.claim_daily_bonus("u-1")).unwrap()

        assert claim.transaction.type is TransactionType.DAILY_BONUS
        assert claim.transaction.idempotency_key == "daily-bonus:u-1:2025-03-10"
        assert claim.transaction.metadata == {
            "claim_date": "2025-03-10",
            "streak": 1,
            "previous_streak": 0,
        }

    async def test_concurrent_double_tap_grants_once(self, orchestrator, memory_store):
        results = await asyncio.gather(
            *(orchestrator.claim_daily_bonus("u-1") for _ in range(5))
        )

        assert sum(1 for r in results if r.is_ok) == 1
        assert all(
            r.error_code == "DAILY_BONUS_ALREADY_CLAIMED" for r in results if r.is_err
        )
        assert await memory_store.count_for_user("u-1") == 1

    async def test_status_reflects_claim(self, orchestrator):
        before = (await orchestrator.get_daily_bonus_status("u-1")).unwrap()
        await orchestrator.claim_daily_bonus("u-1")
        after = (await orchestrator.get_daily_bonus_status("u-1")).unwrap()

        assert before.can_claim and not after.can_claim
        assert after.next_bonus_amount == 12


@pytest.mark.asyncio
class TestAddAndDeduct:
    async def test_unknown_user_has_no_balance(self, orchestrator):
        result = await orchestrator.get_balance("ghost")

        assert isinstance(result, Err)
        assert result.error_code == "BALANCE_NOT_FOUND"

    @pytest.mark.parametrize("amount", [0, -5, 2.5, "ten", True])
    async def test_invalid_amounts(self, orchestrator, amount):
        result = await orchestrator.add_credits("u-1", amount)

        assert result.error_code == "INVALID_OPERATION"
        assert result.is_retryable is False

    async def test_blank_user_rejected(self, orchestrator):
        result = await orchestrator.add_credits("  ", 5)

        assert result.error_code == "INVALID_OPERATION"

    async def test_deduct_without_history(self, orchestrator):
        result = await orchestrator.deduct_credits("ghost", 1)

        assert result.error_code == "BALANCE_NOT_FOUND"

    async def test_overdraft_leaves_ledger_untouched(self, orchestrator, memory_store):
        await orchestrator.add_credits("u-1", 10)

        result = await orchestrator.deduct_credits("u-1", 11, "too much")

        assert result.error_code == "INSUFFICIENT_CREDITS"
        assert result.error.details["current"] == 10
        assert await memory_store.count_for_user("u-1") == 1

    async def test_deduct_records_negative_spend(self, orchestrator, memory_store):
        await orchestrator.add_credits("u-1", 10)
        balance = (await orchestrator.deduct_credits("u-1", 4, "sticker")).unwrap()

        page = await memory_store.list_for_user(
            "u-1",
            TransactionFilter(types=frozenset({TransactionType.SPEND})),
            PageRequest(page=1, limit=50),
        )
        assert balance.total_credits == 6
        assert balance.lifetime_spent == 4
        assert page.items[0].amount == -4
        assert page.items[0].description == "sticker"

    async def test_hundred_concurrent_deducts_end_at_zero(self, orchestrator):
        await orchestrator.add_credits("u-1", 100)

        results = await asyncio.gather(
            *(orchestrator.deduct_credits("u-1", 1) for _ in range(100))
        )

        assert all(r.is_ok for r in results)
        assert (await orchestrator.get_balance("u-1")).value.total_credits == 0
        assert (await orchestrator.get_balance("u-1", consistent=True)).value.total_credits == 0
        assert (await orchestrator.deduct_credits("u-1", 1)).error_code == "INSUFFICIENT_CREDITS"

    async def test_oversubscribed_deducts_never_go_negative(self, orchestrator):
        await orchestrator.add_credits("u-1", 100)

        results = await asyncio.gather(
            *(orchestrator.deduct_credits("u-1", 1) for _ in range(150))
        )

        assert sum(1 for r in results if r.is_ok) == 100
        assert sum(1 for r in results if r.is_err) == 50
        assert (await orchestrator.get_balance("u-1")).value.total_credits == 0

    async def test_users_do_not_share_locks(self, orchestrator):
        await asyncio.gather(
            orchestrator.add_credits("a", 5), orchestrator.add_credits("b", 7)
        )

        assert (await orchestrator.get_balance("a")).value.total_credits == 5
        assert (await orchestrator.get_balance("b")).value.total_credits == 7
        assert len(orchestrator.locks) == 0


@pytest.mark.asyncio
class TestFailureMapping:
    async def test_storage_timeout(self, make_orchestrator):
        store = InMemoryLedgerStore(write_delay=0.2)
        orchestrator = make_orchestrator(store, storage_timeout_seconds=0.05)

        result = await orchestrator.add_credits("u-1", 10)

        assert result.error_code == "STORAGE_TIMEOUT"
        assert result.is_retryable is True
        assert (await orchestrator.get_balance("u-1")).error_code == "BALANCE_NOT_FOUND"

        store.write_delay = 0
        assert (await orchestrator.add_credits("u-1", 10)).value.total_credits == 10

    async def test_cancel_during_write_lets_write_finish(self, make_orchestrator):
        store = InMemoryLedgerStore(write_delay=0.1)
        orchestrator = make_orchestrator(store)

        task = asyncio.ensure_future(orchestrator.add_credits("u-1", 10))
        await asyncio.sleep(0.02)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        assert (await store.get_balance("u-1")).total_credits == 10

    async def test_database_error_is_transaction_failed(
        self, orchestrator, memory_store, mocker
    ):
        mocker.patch.object(
            memory_store,
            "unit_of_work",
            side_effect=OperationalError("UPDATE", {}, Exception("connection reset")),
        )

        result = await orchestrator.add_credits("u-1", 10)

        assert result.error_code == "TRANSACTION_FAILED"
        assert result.is_retryable is True
        assert memory_store.unit_of_work.call_count == 1

    async def test_keyed_operations_are_retried(self, orchestrator, memory_store, mocker):
        mocker.patch.object(
            memory_store,
            "unit_of_work",
            side_effect=OperationalError("INSERT", {}, Exception("connection reset")),
        )

        result = await orchestrator.claim_daily_bonus("u-1")

        assert result.error_code == "TRANSACTION_FAILED"
        assert memory_store.unit_of_work.call_count == 3

    async def test_unexpected_error_is_internal(self, orchestrator, mocker):
        mocker.patch.object(
            orchestrator._projector, "apply", side_effect=RuntimeError("boom")
        )

        result = await orchestrator.add_credits("u-1", 10)

        assert result.error_code == "INTERNAL_ERROR"
        assert result.is_retryable is False

    async def test_err_serializes(self, orchestrator):
        result = await orchestrator.deduct_credits("ghost", 1)

        payload = result.to_dict()
        assert payload["error_code"] == "BALANCE_NOT_FOUND"
        assert payload["details"]["user_id"] == "ghost"


@pytest.mark.asyncio
class TestHistory:
    async def _seed(self, orchestrator, clock, count=5):
        for i in range(count):
            await orchestrator.add_credits("u-1", i + 1, f"grant {i}")
            clock.advance(hours=12)
        await orchestrator.deduct_credits("u-1", 3, "spend")

    async def test_pages_newest_first(self, orchestrator, clock):
        await self._seed(orchestrator, clock)

        history = (await orchestrator.get_user_transactions("u-1", page=1, limit=4)).unwrap()

        assert history.total_count == 6
        assert history.total_pages == 2
        assert history.has_more is True
        assert history.current_page == 1
        assert history.transactions[0].type is TransactionType.SPEND
        assert sum(len(v) for v in history.grouped_by_date.values()) == 4

    async def test_ascending_and_filtered(self, orchestrator, clock):
        await self._seed(orchestrator, clock)

        result = await orchestrator.get_user_transactions(
            "u-1",
            filter=TransactionFilter(types=frozenset({TransactionType.GRANT})),
            limit=10,
            sort="asc",
        )

        amounts = [t.amount for t in result.value.transactions]
        assert amounts == [1, 2, 3, 4, 5]
        assert result.value.has_more is False

    async def test_grouped_by_calendar_date(self, orchestrator, clock):
        await self._seed(orchestrator, clock, count=4)

        history = (await orchestrator.get_user_transactions("u-1", limit=20)).unwrap()

        assert set(history.grouped_by_date) == {"2025-03-10", "2025-03-11", "2025-03-12"}

    async def test_page_size_bounded(self, orchestrator):
        result = await orchestrator.get_user_transactions("u-1", limit=1000)

        assert result.error_code == "INVALID_OPERATION"

    async def test_empty_history(self, orchestrator):
        history = (await orchestrator.get_user_transactions("nobody")).unwrap()

        assert history.total_count == 0
        assert history.transactions == ()
        assert history.has_more is False


@pytest.mark.asyncio
class TestAdmin:
    async def test_admin_add_records_admin(self, orchestrator):
        result = await orchestrator.admin_add_credits("u-1", 25, "support refund", "admin-7")

        transaction = result.unwrap()
        assert transaction.type is TransactionType.ADMIN_ADD
        assert transaction.amount == 25
        assert transaction.metadata == {"admin_id": "admin-7", "reason": "support refund"}

    async def test_admin_deduct(self, orchestrator):
        await orchestrator.add_credits("u-1", 30)

        transaction = (
            await orchestrator.admin_deduct_credits("u-1", 10, "chargeback", "admin-7")
        ).unwrap()

        assert transaction.amount == -10
        assert (await orchestrator.get_balance("u-1")).value.total_credits == 20

    async def test_admin_deduct_cannot_overdraw(self, orchestrator):
        await orchestrator.add_credits("u-1", 5)

        result = await orchestrator.admin_deduct_credits("u-1", 10, "chargeback", "admin-7")

        assert result.error_code == "INSUFFICIENT_CREDITS"

    async def test_reason_required(self, orchestrator):
        result = await orchestrator.admin_add_credits("u-1", 5, "", "admin-7")

        assert result.error_code == "INVALID_OPERATION"

    async def test_system_stats(self, orchestrator):
        await orchestrator.add_credits("a", 10)
        await orchestrator.add_credits("b", 20)
        await orchestrator.deduct_credits("b", 5)

        stats = (await orchestrator.admin_get_analytics()).unwrap()

        assert stats.total_users == 2
        assert stats.total_transactions == 3
        assert stats.total_credits_issued == 30
        assert stats.total_credits_spent == 5
        assert stats.credits_outstanding == 25


@pytest.mark.asyncio
class TestReconciliation:
    async def _drift(self, memory_store, user_id, value):
        cached = await memory_store.get_balance(user_id)
        memory_store.corrupt_balance(
            CreditBalance(user_id=user_id, total_credits=value, updated_at=cached.updated_at)
        )

    async def test_reconcile_reports_drift(self, orchestrator, memory_store):
        await orchestrator.add_credits("u-1", 40)
        await self._drift(memory_store, "u-1", 99)

        report = (await orchestrator.reconcile_balance("u-1")).unwrap()

        assert report.cached == 99
        assert report.folded == 40
        assert not report.is_consistent

    async def test_reconcile_all_with_repair(self, orchestrator, memory_store):
        await orchestrator.add_credits("a", 1)
        await orchestrator.add_credits("b", 2)
        await self._drift(memory_store, "b", 0)

        reports = (await orchestrator.reconcile_all(repair=True)).unwrap()

        assert {r.user_id: r.repaired for r in reports} == {"a": False, "b": True}
        assert (await orchestrator.get_balance("b")).value.total_credits == 2

    async def test_results_are_ok_instances(self, orchestrator):
        assert isinstance(await orchestrator.reconcile_all(), Ok)

    async def test_reconcile_unknown_user_writes_nothing(self, orchestrator, memory_store):
        report = (await orchestrator.reconcile_balance("ghost")).unwrap()
        repaired = (await orchestrator.reconcile_balance("ghost", repair=True)).unwrap()

        assert report.is_consistent
        assert repaired.repaired is False
        assert await memory_store.get_balance("ghost") is None
        assert (await orchestrator.get_balance("ghost")).error_code == "BALANCE_NOT_FOUND"

    async def test_reconcile_all_waits_for_user_lock(self, orchestrator):
        await orchestrator.add_credits("u-1", 5)

        async with orchestrator.locks.hold("u-1"):
            task = asyncio.ensure_future(orchestrator.reconcile_all())
            await asyncio.sleep(0.01)
            assert not task.done()

        reports = (await task).unwrap()
        assert all(r.is_consistent for r in reports)
