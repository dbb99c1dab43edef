"""
Unit tests for referral processing.

Both legs of a referral (referee and referrer credits) commit together or
not at all, and a referee can redeem exactly one referral.
"""

import pytest

from credit_ledger.database.models.enums import ReferralStatus, ReferralType, TransactionType
from credit_ledger.modules.ledger.records import Referral


async def _referral_for(store, referee):
    async with store.unit_of_work() as uow:
        return await uow.get_referral_by_referee(referee)


@pytest.mark.asyncio
class TestProcessReferral:
    async def test_signup_credits_both_users(self, orchestrator, memory_store):
        result = (await orchestrator.process_referral("alice", "bob", "ALICE-42")).unwrap()

        assert result.referee_credits == 50
        assert result.referrer_credits == 25
        assert (await orchestrator.get_balance("bob")).value.total_credits == 50
        assert (await orchestrator.get_balance("alice")).value.total_credits == 25

        referral = await _referral_for(memory_store, "bob")
        assert referral.status is ReferralStatus.COMPLETED
        assert referral.referrer_transaction_id == result.referrer_transaction.id
        assert referral.referee_transaction_id == result.referee_transaction.id

    async def test_legs_cross_reference(self, orchestrator):
        result = (await orchestrator.process_referral("alice", "bob", "ALICE-42")).unwrap()

        referee_meta = result.referee_transaction.metadata
        referrer_meta = result.referrer_transaction.metadata
        assert result.referee_transaction.type is TransactionType.REFERRAL
        assert referee_meta["referral_id"] == referrer_meta["referral_id"]
        assert referee_meta["counterparty_user_id"] == "alice"
        assert referrer_meta["counterparty_user_id"] == "bob"
        assert referee_meta["role"] == "referee"
        assert referrer_meta["role"] == "referrer"

    async def test_type_selects_amounts(self, orchestrator):
        result = await orchestrator.process_referral(
            "alice", "bob", "ALICE-42", ReferralType.PURCHASE.value
        )

        assert result.value.referee_credits == 20
        assert result.value.referrer_credits == 30

    async def test_unknown_type(self, orchestrator):
        result = await orchestrator.process_referral("alice", "bob", "ALICE-42", "birthday")

        assert result.error_code == "INVALID_OPERATION"

    async def test_self_referral(self, orchestrator, memory_store):
        result = await orchestrator.process_referral("alice", "alice", "ALICE-42")

        assert result.error_code == "REFERRAL_NOT_VALID"
        assert result.error.details["reason"] == "self-referral"
        assert await memory_store.count_for_user("alice") == 0


@pytest.mark.asyncio
class TestReferralIdempotency:
    async def test_identical_replay_returns_stored_result(self, orchestrator, memory_store):
        first = (await orchestrator.process_referral("alice", "bob", "ALICE-42")).unwrap()
        again = (await orchestrator.process_referral("alice", "bob", "ALICE-42")).unwrap()

        assert again == first
        assert await memory_store.count_for_user("bob") == 1
        assert await memory_store.count_for_user("alice") == 1

    async def test_second_referrer_rejected(self, orchestrator):
        await orchestrator.process_referral("alice", "bob", "ALICE-42")

        result = await orchestrator.process_referral("carol", "bob", "CAROL-7")

        assert result.error_code == "REFERRAL_NOT_VALID"
        assert (await orchestrator.get_balance("carol")).error_code == "BALANCE_NOT_FOUND"

    async def test_same_referrer_new_code_rejected(self, orchestrator):
        await orchestrator.process_referral("alice", "bob", "ALICE-42")

        result = await orchestrator.process_referral("alice", "bob", "ALICE-43")

        assert result.error_code == "REFERRAL_NOT_VALID"

    async def test_referrer_may_refer_many(self, orchestrator):
        await orchestrator.process_referral("alice", "bob", "ALICE-42")
        await orchestrator.process_referral("alice", "carol", "ALICE-42")

        assert (await orchestrator.get_balance("alice")).value.total_credits == 50


@pytest.mark.asyncio
class TestReferralAtomicity:
    async def test_failed_referrer_leg_rolls_back_both(
        self, orchestrator, memory_store, mocker
    ):
        original_apply = orchestrator._projector.apply

        async def failing_apply(uow, user_id, amount, **kwargs):
            if user_id == "alice":
                raise RuntimeError("balance row unavailable")
            return await original_apply(uow, user_id, amount, **kwargs)

        mocker.patch.object(orchestrator._projector, "apply", side_effect=failing_apply)

        result = await orchestrator.process_referral("alice", "bob", "ALICE-42")

        assert result.error_code == "INTERNAL_ERROR"
        assert await memory_store.count_for_user("bob") == 0
        assert await memory_store.count_for_user("alice") == 0
        assert await _referral_for(memory_store, "bob") is None
        assert await memory_store.get_idempotency_record("referral:bob:referee") is None

    async def test_retry_after_failure_succeeds(self, orchestrator, mocker):
        original_apply = orchestrator._projector.apply
        patcher = mocker.patch.object(
            orchestrator._projector, "apply", side_effect=RuntimeError("down")
        )
        await orchestrator.process_referral("alice", "bob", "ALICE-42")
        patcher.side_effect = original_apply

        result = await orchestrator.process_referral("alice", "bob", "ALICE-42")

        assert result.is_ok
        assert (await orchestrator.get_balance("bob")).value.total_credits == 50


@pytest.mark.asyncio
class TestPendingReferrals:
    async def test_lists_only_pending(self, orchestrator, memory_store, clock):
        await orchestrator.process_referral("alice", "bob", "ALICE-42")
        async with memory_store.unit_of_work() as uow:
            await uow.save_referral(
                Referral(
                    id="ref-pending",
                    referrer_user_id="alice",
                    referee_user_id="dave",
                    referral_code="ALICE-42",
                    type=ReferralType.ACHIEVEMENT,
                    referrer_credits=15,
                    referee_credits=15,
                    status=ReferralStatus.PENDING,
                    created_at=clock(),
                )
            )

        pending = (await orchestrator.find_pending_referrals()).unwrap()

        assert [r.id for r in pending] == ["ref-pending"]

    async def test_orchestrator_flows_leave_nothing_pending(self, orchestrator, mocker):
        await orchestrator.process_referral("alice", "bob", "ALICE-42")
        mocker.patch.object(
            orchestrator._projector, "apply", side_effect=RuntimeError("down")
        )
        await orchestrator.process_referral("carol", "dave", "CAROL-1")

        assert (await orchestrator.find_pending_referrals()).unwrap() == []
