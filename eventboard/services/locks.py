"""Per-event locks shared by every writer of an event in this process."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager


class EventLocks:
    """One ``asyncio.Lock`` per event id, held only while in use.

    An entry exists while some task holds or waits for the lock and is
    dropped when the last one leaves, so lookups of unknown or deleted ids
    leave nothing behind.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    def __contains__(self, event_id: str) -> bool:
        return event_id in self._locks

    @asynccontextmanager
    async def hold(self, event_id: str):
        lock = self._locks.get(event_id)
        if lock is None:
            lock = self._locks[event_id] = asyncio.Lock()
        self._users[event_id] = self._users.get(event_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[event_id] -= 1
            if not self._users[event_id]:
                del self._users[event_id]
                del self._locks[event_id]
