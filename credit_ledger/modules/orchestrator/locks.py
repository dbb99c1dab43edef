"""
Per-user asyncio lock registry.

Serialises writes for one user inside this process; writes for different
users never contend. Entries are reference counted and dropped once no
coroutine holds or waits on them, so the registry does not grow with the
number of users ever seen.

Multi-user holds (referrals) acquire in sorted user-id order.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, List


class UserLockRegistry:
    def __init__(self) -> None:
        self._locks: Dict[str, asyncio.Lock] = {}
        self._refs: Dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    def _checkout(self, user_id: str) -> asyncio.Lock:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = self._locks[user_id] = asyncio.Lock()
        self._refs[user_id] = self._refs.get(user_id, 0) + 1
        return lock

    def _checkin(self, user_id: str) -> None:
        remaining = self._refs[user_id] - 1
        if remaining:
            self._refs[user_id] = remaining
        else:
            del self._refs[user_id]
            del self._locks[user_id]

    @asynccontextmanager
    async def hold(self, *user_ids: str) -> AsyncIterator[None]:
        ordered = sorted(set(user_ids))
        locks = [self._checkout(user_id) for user_id in ordered]
        acquired: List[asyncio.Lock] = []
        try:
            for lock in locks:
                await lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()
            for user_id in ordered:
                self._checkin(user_id)

    def is_locked(self, user_id: str) -> bool:
        lock = self._locks.get(user_id)
        return lock is not None and lock.locked()
