"""
Integration Tests for CreditOrchestrator over SqlLedgerStore (SQLite)
=====================================================================

The same flows as the in-memory unit tests, with every write going through
a real SQLAlchemy transaction.
"""

import asyncio
import logging

import pytest
from sqlalchemy import update

from credit_ledger.database.models import CreditBalanceRow
from credit_ledger.database.models.enums import TransactionType
from credit_ledger.modules.ledger.records import TransactionFilter


@pytest.fixture
def sql_orchestrator(make_orchestrator, sqlite_store):
    return make_orchestrator(sqlite_store)


@pytest.mark.database
class TestLedgerFlows:
    """Balance, bonus, purchase and referral flows on SQL."""

    async def test_welcome_and_daily_bonus(self, sql_orchestrator, clock):
        # Act
        await sql_orchestrator.add_credits("u-1", 50, "welcome")
        first = await sql_orchestrator.claim_daily_bonus("u-1")
        repeat = await sql_orchestrator.claim_daily_bonus("u-1")
        clock.next_day()
        second = await sql_orchestrator.claim_daily_bonus("u-1")

        # Assert
        assert first.value.balance.total_credits == 60
        assert repeat.error_code == "DAILY_BONUS_ALREADY_CLAIMED"
        assert repeat.error.transaction_id == first.value.transaction.id
        assert second.value.granted == 12
        assert (await sql_orchestrator.get_balance("u-1", consistent=True)).value.total_credits == 72

    async def test_overdraft_rejected(self, sql_orchestrator, sqlite_store):
        # Arrange
        await sql_orchestrator.add_credits("u-1", 5)

        # Act
        result = await sql_orchestrator.deduct_credits("u-1", 6)

        # Assert
        assert result.error_code == "INSUFFICIENT_CREDITS"
        assert await sqlite_store.count_for_user("u-1") == 1

    async def test_serialised_deducts(self, sql_orchestrator):
        # Arrange
        await sql_orchestrator.add_credits("u-1", 20)

        # Act
        results = await asyncio.gather(
            *(sql_orchestrator.deduct_credits("u-1", 1) for _ in range(25))
        )

        # Assert
        assert sum(1 for r in results if r.is_ok) == 20
        assert (await sql_orchestrator.get_balance("u-1")).value.total_credits == 0

    async def test_purchase_replay(self, sql_orchestrator, sqlite_store):
        # Act
        first = await sql_orchestrator.process_purchase(
            "u-1", "credits_pro", "tok-1234567890", "android", "gpa.1234"
        )
        second = await sql_orchestrator.process_purchase(
            "u-1", "credits_pro", "tok-1234567890", "android", "gpa.1234"
        )

        # Assert
        assert first.value.total_credits == 90
        assert second.value == first.value
        assert await sqlite_store.count_for_user("u-1") == 1

    async def test_referral_commits_both_legs(self, sql_orchestrator, sqlite_store):
        # Act
        result = await sql_orchestrator.process_referral("alice", "bob", "ALICE-42")
        again = await sql_orchestrator.process_referral("carol", "bob", "CAROL-1")

        # Assert
        assert result.is_ok
        assert again.error_code == "REFERRAL_NOT_VALID"
        assert await sqlite_store.sum_for_user("bob") == 50
        assert await sqlite_store.sum_for_user("alice") == 25
        assert await sqlite_store.get_idempotency_record("referral:bob:referrer") is not None

    async def test_referral_rollback(self, sql_orchestrator, sqlite_store, mocker):
        # Arrange
        original_apply = sql_orchestrator._projector.apply

        async def failing_apply(uow, user_id, amount, **kwargs):
            if user_id == "alice":
                raise RuntimeError("boom")
            return await original_apply(uow, user_id, amount, **kwargs)

        mocker.patch.object(sql_orchestrator._projector, "apply", side_effect=failing_apply)

        # Act
        result = await sql_orchestrator.process_referral("alice", "bob", "ALICE-42")

        # Assert
        assert result.error_code == "INTERNAL_ERROR"
        assert await sqlite_store.count_for_user("bob") == 0
        assert await sqlite_store.get_idempotency_record("referral:bob:referee") is None


@pytest.mark.database
class TestReadsAndMaintenance:
    """History, analytics and reconciliation on SQL."""

    async def test_history_and_analytics(self, sql_orchestrator, clock):
        # Arrange
        for amount in (5, 10, 15):
            await sql_orchestrator.add_credits("u-1", amount)
            clock.advance(hours=1)
        await sql_orchestrator.deduct_credits("u-1", 4)
        await sql_orchestrator.admin_add_credits("u-1", 100, "goodwill", "admin-1")

        # Act
        history = (
            await sql_orchestrator.get_user_transactions(
                "u-1",
                filter=TransactionFilter(types=frozenset({TransactionType.GRANT})),
                limit=2,
            )
        ).unwrap()
        snapshot = (await sql_orchestrator.get_credit_analytics("u-1")).unwrap()

        # Assert
        assert [t.amount for t in history.transactions] == [15, 10]
        assert history.has_more is True
        assert snapshot.total_earned == 30
        assert snapshot.total_spent == 4
        assert snapshot.current_balance == 126

    async def test_reconcile_repairs_drift(self, sql_orchestrator, sqlite_database):
        # Arrange
        await sql_orchestrator.add_credits("u-1", 40)
        async with sqlite_database.get_transaction() as session:
            await session.execute(
                update(CreditBalanceRow)
                .where(CreditBalanceRow.user_id == "u-1")
                .values(total_credits=1)
            )

        # Act
        detected = (await sql_orchestrator.reconcile_balance("u-1")).unwrap()
        repaired = (await sql_orchestrator.reconcile_balance("u-1", repair=True)).unwrap()

        # Assert
        assert detected.discrepancy == 39
        assert repaired.repaired is True
        assert (await sql_orchestrator.get_balance("u-1")).value.total_credits == 40

    async def test_reconcile_alongside_writes_reports_no_drift(self, sql_orchestrator, caplog):
        # Arrange
        await sql_orchestrator.add_credits("u-1", 1)

        # Act
        drifted = 0
        with caplog.at_level(logging.ERROR):
            for _ in range(10):
                results = await asyncio.gather(
                    sql_orchestrator.reconcile_all(),
                    *(sql_orchestrator.add_credits("u-1", 1) for _ in range(5)),
                )
                drifted += sum(1 for r in results[0].unwrap() if not r.is_consistent)

        # Assert
        assert drifted == 0
        assert not any("drift" in r.getMessage().lower() for r in caplog.records)
        assert (await sql_orchestrator.get_balance("u-1", consistent=True)).value.total_credits == 51

    async def test_reconcile_unknown_user_on_sql(self, sql_orchestrator, sqlite_store):
        # Act
        report = (await sql_orchestrator.reconcile_balance("ghost", repair=True)).unwrap()

        # Assert
        assert report.is_consistent
        assert await sqlite_store.get_balance("ghost") is None
