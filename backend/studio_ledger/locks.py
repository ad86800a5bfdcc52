"""Per-entity locks that serialise credit and capacity mutations.

Every engine operation acquires its locks here before touching the data
store, then reads the same rows ``FOR UPDATE``. The in-process locks make a
single worker correct on any backend; the row locks extend that across
workers on PostgreSQL.

Global order: class locks first, then subscription locks; within a kind,
ids are taken in ascending string order. Asking for a class lock while a
subscription lock is held, or re-acquiring a held lock, raises
``RuntimeError`` instead of deadlocking.
"""

import asyncio
import uuid
import weakref
from collections.abc import AsyncIterator, Iterable
from contextlib import AsyncExitStack, asynccontextmanager
from contextvars import ContextVar

CLASS = "class"
SUBSCRIPTION = "subscription"

LockKey = tuple[str, str]

_held_locks: ContextVar[tuple[LockKey, ...]] = ContextVar("held_entity_locks", default=())


def _keys(kind: str, ids: Iterable[uuid.UUID | str]) -> list[LockKey]:
    return [(kind, entity_id) for entity_id in sorted({str(i) for i in ids})]


class EntityLockRegistry:
    """Lazily created ``asyncio.Lock`` per (kind, id), dropped when unused."""

    def __init__(self) -> None:
        self._locks: weakref.WeakValueDictionary[LockKey, asyncio.Lock] = weakref.WeakValueDictionary()

    def _lock_for(self, key: LockKey) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    @asynccontextmanager
    async def hold(
        self,
        *,
        classes: Iterable[uuid.UUID | str] = (),
        subscriptions: Iterable[uuid.UUID | str] = (),
    ) -> AsyncIterator[None]:
        """Acquire the requested locks in global order and hold them for the block."""
        requested = _keys(CLASS, classes) + _keys(SUBSCRIPTION, subscriptions)
        held = _held_locks.get()

        if any(kind == CLASS for kind, _ in requested) and any(kind == SUBSCRIPTION for kind, _ in held):
            raise RuntimeError("Lock order violation: class lock requested while holding a subscription lock")
        reentrant = set(requested) & set(held)
        if reentrant:
            raise RuntimeError(f"Lock already held by this task: {sorted(reentrant)}")

        async with AsyncExitStack() as stack:
            for key in requested:
                await stack.enter_async_context(self._lock_for(key))
            token = _held_locks.set(held + tuple(requested))
            try:
                yield
            finally:
                _held_locks.reset(token)

    def is_locked(self, kind: str, entity_id: uuid.UUID | str) -> bool:
        lock = self._locks.get((kind, str(entity_id)))
        return lock is not None and lock.locked()


entity_locks = EntityLockRegistry()
