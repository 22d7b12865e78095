"""
ModGate - Keyed Locks
=====================

Per-key asyncio locks created on demand.

DESIGN:
    Message processing, reaction confirmations, reviewer buttons and the
    history sweep all mutate per-user state. Each of them holds the user's
    lock while doing so, which serializes work for one user without
    blocking anyone else. A lock is discarded once nobody holds or waits
    on it, so the map only contains users with work in flight.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Hashable


class KeyedLock:
    """Map of lazily created asyncio.Lock objects keyed by user id."""

    def __init__(self) -> None:
        self._locks: Dict[Hashable, asyncio.Lock] = {}
        self._holders: Dict[Hashable, int] = {}

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        """Acquire the lock for key for the duration of the block."""
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        self._holders[key] = self._holders.get(key, 0) + 1

        try:
            async with lock:
                yield
        finally:
            self._holders[key] -= 1
            if self._holders[key] == 0:
                del self._holders[key]
                del self._locks[key]

    def locked(self, key: Hashable) -> bool:
        """Whether key's lock is currently held."""
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)


__all__ = ["KeyedLock"]
