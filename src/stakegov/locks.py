"""
stakegov/locks.py

Per-key exclusive access for ledger state transitions.

Each operation holds the locks of every record it touches for its whole
check-then-commit sequence. Keys are acquired in a fixed order so two
operations touching overlapping records can never deadlock.
"""

from contextlib import AsyncExitStack, asynccontextmanager
from typing import AsyncIterator, Dict, Hashable

import trio


class KeyedLocks:
    """
    Lazily created trio.Lock per record key, dropped once no task holds
    or waits on it.

    Usage:
        locks = KeyedLocks()
        async with locks.hold(("proposal", 1)):
            ...
    """

    def __init__(self):
        self._locks: Dict[Hashable, trio.Lock] = {}
        self._users: Dict[Hashable, int] = {}    # Tasks holding or waiting, per key

    def _enter(self, key: Hashable) -> trio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = trio.Lock()
            self._locks[key] = lock
        self._users[key] = self._users.get(key, 0) + 1
        return lock

    def _leave(self, key: Hashable) -> None:
        remaining = self._users[key] - 1
        if remaining:
            self._users[key] = remaining
        else:
            del self._users[key]
            del self._locks[key]

    def is_held(self, key: Hashable) -> bool:
        """Check if some task currently holds key."""
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, *keys: Hashable) -> AsyncIterator[None]:
        """Acquire the locks for all keys, in sorted order, for the block."""
        ordered = sorted(set(keys), key=repr)
        locks = [self._enter(key) for key in ordered]
        try:
            async with AsyncExitStack() as stack:
                for lock in locks:
                    await stack.enter_async_context(lock)
                yield
        finally:
            for key in ordered:
                self._leave(key)

    def __len__(self) -> int:
        return len(self._locks)
