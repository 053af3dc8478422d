"""
Per-Ticket Locking
==================

In-process mutual exclusion keyed by ticket id.

Held for the whole read-decide-persist-record cycle of one transition.
The store's version check covers writers outside this process.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict


class TicketLockRegistry:
    """
    Lazily created asyncio locks, one per ticket.

    Entries are dropped once no coroutine holds or waits on them, so the
    registry only grows with the number of tickets in flight.
    """

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, ticket_id: str) -> AsyncIterator[None]:
        lock = self._locks.get(ticket_id)
        if lock is None:
            lock = self._locks[ticket_id] = asyncio.Lock()
        self._users[ticket_id] = self._users.get(ticket_id, 0) + 1

        try:
            async with lock:
                yield
        finally:
            self._users[ticket_id] -= 1
            if self._users[ticket_id] == 0:
                del self._users[ticket_id]
                del self._locks[ticket_id]

    def is_locked(self, ticket_id: str) -> bool:
        lock = self._locks.get(ticket_id)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)
