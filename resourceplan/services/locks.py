"""Per-user write serialisation within one process.

Each ``(organization_id, user_id)`` key gets an ``asyncio.Lock`` while at
least one caller holds or waits on it; idle keys are dropped. Cross-process
serialisation is the store's job (see ``AllocationStore.user_transaction``).
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from uuid import UUID

_Key = tuple[UUID, UUID]


class UserLockRegistry:
    def __init__(self) -> None:
        self._locks: dict[_Key, asyncio.Lock] = {}
        self._holders: dict[_Key, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, organization_id: UUID, user_id: UUID) -> AsyncIterator[None]:
        key = (organization_id, user_id)
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._holders[key] = self._holders.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[key] -= 1
            if self._holders[key] == 0:
                del self._holders[key]
                del self._locks[key]
