"""
Per-account locking.

One asyncio.Lock per key, created on first use and dropped once nobody
holds or waits for it. Postings on different accounts never wait for
each other. Operations spanning several accounts take their locks in
ascending key order so two of them can never deadlock.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Hashable

import structlog

from banksecure.errors import LockTimeoutError


logger = structlog.get_logger("banksecure.locks")


class KeyedLock:
    """Map of asyncio locks keyed by entity id, with bounded waits."""

    def __init__(self, timeout: float):
        self._timeout = timeout
        self._locks: dict[Hashable, asyncio.Lock] = {}
        # Holders plus waiters per key
        self._users: dict[Hashable, int] = {}

    @property
    def timeout(self) -> float:
        return self._timeout

    @property
    def active_keys(self) -> set[Hashable]:
        """Keys currently held or waited on."""
        return set(self._locks)

    def _checkout(self, key: Hashable) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._users[key] = self._users.get(key, 0) + 1
        return lock

    def _checkin(self, key: Hashable) -> None:
        self._users[key] -= 1
        if self._users[key] == 0:
            del self._users[key]
            del self._locks[key]

    @staticmethod
    def _abandon(acquire: asyncio.Future, lock: asyncio.Lock) -> None:
        """Cancel a pending acquire. If it took the lock anyway, release it."""
        def release_if_taken(task: asyncio.Future) -> None:
            if not task.cancelled() and task.exception() is None:
                lock.release()

        acquire.add_done_callback(release_if_taken)
        acquire.cancel()

    async def _acquire(self, key: Hashable, lock: asyncio.Lock) -> None:
        acquire = asyncio.ensure_future(lock.acquire())
        try:
            done, _ = await asyncio.wait({acquire}, timeout=self._timeout)
        except asyncio.CancelledError:
            self._abandon(acquire, lock)
            raise

        if not done:
            self._abandon(acquire, lock)
            logger.warning("lock_timeout", key=str(key), timeout=self._timeout)
            raise LockTimeoutError(
                f"Timed out after {self._timeout}s waiting for lock on {key}"
            )

    @asynccontextmanager
    async def hold(self, *keys: Hashable) -> AsyncIterator[None]:
        """
        Hold the locks of every key for the duration of the block.

        Raises:
            LockTimeoutError: If any lock is not acquired within the timeout;
                locks already taken are released
        """
        held: list[Hashable] = []
        try:
            for key in sorted(set(keys)):
                lock = self._checkout(key)
                try:
                    await self._acquire(key, lock)
                except BaseException:
                    self._checkin(key)
                    raise
                held.append(key)
            yield
        finally:
            for key in reversed(held):
                self._locks[key].release()
                self._checkin(key)
