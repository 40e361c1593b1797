"""Per-key asyncio locks.

Locks live in a WeakValueDictionary: a lock stays registered while some
task holds or waits on it and disappears once nobody references it, so
the arena does not grow with the number of keys ever seen.
"""
import asyncio
import weakref
from contextlib import asynccontextmanager
from typing import AsyncIterator, Hashable


class KeyedLocks:
    """Arena of asyncio locks keyed by any hashable; distinct keys never contend."""

    def __init__(self) -> None:
        self._locks: "weakref.WeakValueDictionary[Hashable, asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )

    def _lock_for(self, key: Hashable) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        lock = self._lock_for(key)
        async with lock:
            yield

    def __len__(self) -> int:
        return len(self._locks)
