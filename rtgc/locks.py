"""
Locks - asyncio locks that work from any event loop.

An ``asyncio.Lock`` binds to the loop it is first contended on. Groups
and participants outlive any single loop (``asyncio.run`` per call is a
normal way to drive them), so each running loop gets its own lock.
Cross-loop callers are still serialised by the Room's critical section
at commit time.
"""

from __future__ import annotations

import asyncio
import threading
import weakref


class LoopLock:
    """
    One ``asyncio.Lock`` per running event loop, created on first use.

    Example:
        lock = LoopLock()

        async def work():
            async with lock:
                ...

        asyncio.run(work())
        asyncio.run(work())  # fresh lock for the new loop
    """

    def __init__(self):
        self._locks: weakref.WeakKeyDictionary[
            asyncio.AbstractEventLoop, asyncio.Lock
        ] = weakref.WeakKeyDictionary()
        self._guard = threading.Lock()

    def for_running_loop(self) -> asyncio.Lock:
        """Lock belonging to the current loop. Must be called from a coroutine."""
        loop = asyncio.get_running_loop()
        with self._guard:
            lock = self._locks.get(loop)
            if lock is None:
                lock = asyncio.Lock()
                self._locks[loop] = lock
            return lock

    def locked(self) -> bool:
        """True if the lock of any live loop is held."""
        with self._guard:
            return any(lock.locked() for lock in self._locks.values())

    async def __aenter__(self) -> asyncio.Lock:
        lock = self.for_running_loop()
        await lock.acquire()
        return lock

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.for_running_loop().release()
