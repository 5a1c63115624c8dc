"""
Keyed in-process locking.

Serializes work on the same key (one freelancer, one configuration row, one
association) while letting unrelated keys proceed concurrently. Locks are
created on first use and discarded once nobody holds or waits for them.

Usage:
    locks = KeyedLockService("onboarding")

    async with locks.lock(freelancer_id):
        # at most one holder per freelancer_id
        ...
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Hashable

logger = logging.getLogger("provisioning.services.lock")


class KeyedLockService:
    """
    Map of asyncio locks keyed by resource.

    Attributes:
        _name: Name used in log messages
        _locks: Active locks by key
        _users: Holders plus waiters per key, used to discard idle locks
    """

    def __init__(self, name: str = "default"):
        self._name = name
        self._locks: Dict[Hashable, asyncio.Lock] = {}
        self._users: Dict[Hashable, int] = {}

    @asynccontextmanager
    async def lock(self, key: Any) -> AsyncGenerator[None, None]:
        key = str(key)
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._users[key] = self._users.get(key, 0) + 1
        if lock.locked():
            logger.debug(f"[{self._name}] waiting for lock on {key}")
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    def is_locked(self, key: Any) -> bool:
        lock = self._locks.get(str(key))
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)
