"""Cooperative locks guarding read-modify-write of session state."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import logfire


class AsyncReadWriteLock:
    """Readers share the lock; a writer holds it alone.

    Pending writers block new readers so a steady stream of analysis reads
    cannot starve a research merge.
    """

    def __init__(self, name: str = "session") -> None:
        self.name = name
        self._cond = asyncio.Condition()
        self._active_readers = 0
        self._writer_active = False
        self._pending_writers = 0

    @property
    def readers(self) -> int:
        return self._active_readers

    @property
    def writing(self) -> bool:
        return self._writer_active

    async def _acquire_shared(self) -> None:
        async with self._cond:
            await self._cond.wait_for(
                lambda: not self._writer_active and self._pending_writers == 0
            )
            self._active_readers += 1
        logfire.trace("Shared lock acquired", lock=self.name, readers=self._active_readers)

    async def _release_shared(self) -> None:
        async with self._cond:
            if self._active_readers == 0:
                raise RuntimeError(f"lock {self.name!r}: shared release without acquire")
            self._active_readers -= 1
            if self._active_readers == 0:
                self._cond.notify_all()

    async def _acquire_exclusive(self) -> None:
        async with self._cond:
            self._pending_writers += 1
            try:
                await self._cond.wait_for(
                    lambda: not self._writer_active and self._active_readers == 0
                )
                self._writer_active = True
            finally:
                self._pending_writers -= 1
        logfire.trace("Exclusive lock acquired", lock=self.name)

    async def _release_exclusive(self) -> None:
        async with self._cond:
            if not self._writer_active:
                raise RuntimeError(f"lock {self.name!r}: exclusive release without acquire")
            self._writer_active = False
            self._cond.notify_all()

    @asynccontextmanager
    async def read_locked(self) -> AsyncIterator[None]:
        await self._acquire_shared()
        try:
            yield
        finally:
            await self._release_shared()

    @asynccontextmanager
    async def write_locked(self) -> AsyncIterator[None]:
        await self._acquire_exclusive()
        try:
            yield
        finally:
            await self._release_exclusive()


class SessionLockRegistry:
    """Hands out one `AsyncReadWriteLock` per session id."""

    def __init__(self) -> None:
        self._locks: dict[str, AsyncReadWriteLock] = {}
        self._guard = asyncio.Lock()

    async def get(self, session_id: str) -> AsyncReadWriteLock:
        async with self._guard:
            lock = self._locks.get(session_id)
            if lock is None:
                lock = AsyncReadWriteLock(name=f"session:{session_id}")
                self._locks[session_id] = lock
            return lock

    def __len__(self) -> int:
        return len(self._locks)


__all__ = ["AsyncReadWriteLock", "SessionLockRegistry"]
