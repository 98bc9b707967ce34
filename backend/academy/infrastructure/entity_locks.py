"""Entity Locks — single-writer-per-entity discipline for requests, sessions and classrooms.

Invariants:
    - Mutations on the same entity key are mutually exclusive
    - Different keys never block each other
    - Multi-key holds acquire in sorted order (no lock-order deadlocks)
    - A key's lock is dropped from the registry once nobody holds or awaits it
    - Critical sections are short: validate -> mutate -> commit, no external calls

Design Decisions:
    - asyncio.Lock per key in a module-level registry (ADR: one uvicorn process per
      worker; cross-worker exclusion comes from SELECT ... FOR UPDATE inside the
      same critical section)
    - Reference counting over WeakValueDictionary: deterministic cleanup, testable
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager


def session_key(session_id: object) -> str:
    return f"session:{session_id}"


def request_key(request_id: object) -> str:
    return f"request:{request_id}"


def classroom_key(classroom_id: object) -> str:
    return f"classroom:{classroom_id}"


def slug_key(slug: str) -> str:
    return f"slug:{slug}"


def submission_key(kind: str, requester_id: str, target_id: object | None) -> str:
    return f"submit:{kind}:{requester_id}:{target_id or 'platform'}"


class EntityLocks:
    """Registry of per-key asyncio locks with reference-counted cleanup."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._holders: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, *keys: str) -> AsyncIterator[None]:
        """Hold every key's lock for the duration of the block."""
        ordered = sorted(set(keys))
        acquired: list[str] = []
        try:
            for key in ordered:
                lock = self._checkout(key)
                try:
                    await lock.acquire()
                except BaseException:
                    self._checkin(key)
                    raise
                acquired.append(key)
            yield
        finally:
            for key in reversed(acquired):
                self._locks[key].release()
                self._checkin(key)

    def is_locked(self, key: str) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)

    def _checkout(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._holders[key] = self._holders.get(key, 0) + 1
        return lock

    def _checkin(self, key: str) -> None:
        remaining = self._holders[key] - 1
        if remaining:
            self._holders[key] = remaining
            return
        del self._holders[key]
        del self._locks[key]


entity_locks = EntityLocks()
