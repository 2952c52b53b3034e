"""Per-entity async locks serializing reconciliations and balance-changing writes.

Two reconciliations of the same completion record, or two withdrawals from the
same account, must not interleave their read-then-write sequences. Callers wrap
those sequences in ``entity_lock(kind, id)``; locks for different keys never
contend.
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager


logger = logging.getLogger(__name__)


class KeyedLock:
    """A family of asyncio locks addressed by string key, dropped once unused."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}

    def is_locked(self, key: str) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, *keys: str) -> AsyncIterator[None]:
        """Acquire every key's lock, in sorted order so overlapping key sets cannot deadlock."""
        ordered = sorted(set(keys))
        acquired: list[str] = []
        try:
            for key in ordered:
                lock = self._locks.setdefault(key, asyncio.Lock())
                self._waiters[key] = self._waiters.get(key, 0) + 1
                try:
                    await lock.acquire()
                except BaseException:
                    self._release_waiter(key)
                    raise
                acquired.append(key)
            yield
        finally:
            for key in reversed(acquired):
                self._locks[key].release()
                self._release_waiter(key)

    def _release_waiter(self, key: str) -> None:
        self._waiters[key] -= 1
        if self._waiters[key] == 0:
            del self._waiters[key]
            del self._locks[key]


_entity_locks = KeyedLock()


def lock_key(kind: str, entity_id: str) -> str:
    return f"{kind}:{entity_id}"


@asynccontextmanager
async def entity_lock(kind: str, *entity_ids: str) -> AsyncIterator[None]:
    """Serialize work on one or more entities of the same kind.

    Usage:
        async with entity_lock("ledger_account", from_id, to_id):
            ...
    """
    keys = [lock_key(kind, entity_id) for entity_id in entity_ids]
    async with _entity_locks.hold(*keys):
        logger.debug("Entity lock acquired", extra={"keys": keys})
        yield
