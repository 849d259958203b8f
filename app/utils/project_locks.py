from contextlib import asynccontextmanager
from typing import AsyncIterator
import asyncio
import weakref


class ProjectLockRegistry:
    """Per-project asyncio locks for read-modify-write sections within one process.

    Cross-process serialization is left to the conditional updates in the store;
    this only keeps coroutines of the same worker from interleaving on one project.
    """

    def __init__(self):
        # entries disappear once no coroutine holds or waits on the lock
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def _lock_for(self, project_id: str) -> asyncio.Lock:
        lock = self._locks.get(project_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[project_id] = lock
        return lock

    @asynccontextmanager
    async def hold(self, project_id: str) -> AsyncIterator[None]:
        lock = self._lock_for(project_id)
        async with lock:
            yield

    def is_held(self, project_id: str) -> bool:
        lock = self._locks.get(project_id)
        return lock is not None and lock.locked()
