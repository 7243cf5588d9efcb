from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Coroutine, TypeVar

import anyio
import anyio.from_thread

T = TypeVar("T")


def run_async(coro: Coroutine[object, object, T], *, timeout: float | None = None) -> T:
    """
    Run an async coroutine from sync code (CLI commands, scripts).

    - Inside an AnyIO worker thread, uses anyio.from_thread.run to execute on the owning loop.
    - Falls back to anyio.run when no AnyIO worker thread is available.
    - Raises if called from an async context in the same thread (use await instead).
    """

    async def _runner() -> T:
        if timeout is not None:
            with anyio.fail_after(timeout):
                return await coro
        return await coro

    try:
        return anyio.from_thread.run(_runner)
    except RuntimeError:
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return anyio.run(_runner)
        raise RuntimeError("run_async called from async context; use await instead")


class KeyedLock:
    """Process-local mutual exclusion keyed by an identifier."""

    def __init__(self) -> None:
        self._locks: dict[str, anyio.Lock] = {}
        self._waiters: dict[str, int] = {}

    def locked(self, key: str) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = anyio.Lock()
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                # Last holder gone; drop the entry so the map does not grow per draft.
                del self._waiters[key]
                del self._locks[key]
