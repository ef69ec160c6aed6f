"""Per-key asyncio locks that are dropped once nobody holds or awaits them."""
import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Hashable, List


class KeyedLocks:
    """One ``asyncio.Lock`` per key, created on demand.

    Entries are only touched from coroutines on the running loop, so the
    bookkeeping between ``get`` and the holder count needs no extra guard.
    """

    def __init__(self) -> None:
        # key -> [lock, holders + waiters]
        self._entries: Dict[Hashable, List] = {}

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        entry = self._entries.get(key)
        if entry is None:
            entry = self._entries[key] = [asyncio.Lock(), 0]
        entry[1] += 1
        try:
            async with entry[0]:
                yield
        finally:
            entry[1] -= 1
            if entry[1] == 0:
                del self._entries[key]

    def __len__(self) -> int:
        return len(self._entries)
