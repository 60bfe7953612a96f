"""
Table Service — Per-key asyncio lock

Serializes writers for one key (e.g. one table's running bill) inside a single
process. Cross-process ordering is left to the version CAS in the store.
"""
import asyncio
from collections.abc import AsyncIterator, Hashable
from contextlib import asynccontextmanager


class KeyedLock:
    def __init__(self) -> None:
        self._locks: dict[Hashable, asyncio.Lock] = {}
        self._holders: dict[Hashable, int] = {}

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._holders[key] = self._holders.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[key] -= 1
            if self._holders[key] == 0:
                # Nobody holds or waits on this key any more
                del self._holders[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)
