"""
Unit tests for UserLockRegistry.
"""

import asyncio

import pytest

from credit_ledger.modules.orchestrator.locks import UserLockRegistry


@pytest.mark.asyncio
class TestUserLockRegistry:
    async def test_same_user_serialised(self):
        locks = UserLockRegistry()
        order = []

        async def worker(tag):
            async with locks.hold("u-1"):
                order.append(f"{tag}-in")
                await asyncio.sleep(0.01)
                order.append(f"{tag}-out")

        await asyncio.gather(worker("a"), worker("b"))

        assert order == ["a-in", "a-out", "b-in", "b-out"]

    async def test_different_users_interleave(self):
        locks = UserLockRegistry()
        entered = asyncio.Event()

        async def holder():
            async with locks.hold("u-1"):
                entered.set()
                await asyncio.sleep(0.05)

        task = asyncio.ensure_future(holder())
        await entered.wait()

        async with locks.hold("u-2"):
            assert locks.is_locked("u-1")

        await task

    async def test_entries_dropped_when_idle(self):
        locks = UserLockRegistry()

        async with locks.hold("u-1", "u-2"):
            assert len(locks) == 2

        assert len(locks) == 0
        assert not locks.is_locked("u-1")

    async def test_multi_user_hold_is_deadlock_free(self):
        locks = UserLockRegistry()

        async def pair(a, b):
            async with locks.hold(a, b):
                await asyncio.sleep(0.001)

        await asyncio.wait_for(
            asyncio.gather(*(pair("x", "y") if i % 2 else pair("y", "x") for i in range(20))),
            timeout=2,
        )

    async def test_released_on_error(self):
        locks = UserLockRegistry()

        with pytest.raises(RuntimeError):
            async with locks.hold("u-1"):
                raise RuntimeError("boom")

        assert len(locks) == 0
