"""
Per-event mutual exclusion for admission operations.

One asyncio.Lock per event id, created on demand and dropped when the last
holder or waiter leaves, so idle events cost nothing. Operations on
different events never contend. Across processes the event row lock
(SELECT ... FOR UPDATE) taken by the ledger provides the same guarantee.
"""

import asyncio
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import AsyncIterator


class EventLockManager:
    def __init__(self) -> None:
        self._locks: dict[int, asyncio.Lock] = {}
        self._users: defaultdict[int, int] = defaultdict(int)

    @asynccontextmanager
    async def hold(self, event_id: int) -> AsyncIterator[None]:
        lock = self._locks.get(event_id)
        if lock is None:
            lock = self._locks[event_id] = asyncio.Lock()
        self._users[event_id] += 1
        try:
            async with lock:
                yield
        finally:
            self._users[event_id] -= 1
            if self._users[event_id] == 0:
                del self._users[event_id]
                self._locks.pop(event_id, None)

    def is_locked(self, event_id: int) -> bool:
        lock = self._locks.get(event_id)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)
