"""Counting admission gate for tables and batches."""

import asyncio


class ConcurrencyLimiter:
    """Bounds how many units of work run at once.

    Used as an async context manager. ``active`` counts holders of a permit,
    ``waiting`` counts callers blocked on acquisition.
    """

    def __init__(self, permits: int, name: str = "limiter"):
        if permits < 1:
            raise ValueError(f"{name} needs at least one permit, got {permits}")
        self.name = name
        self.permits = permits
        self._semaphore = asyncio.Semaphore(permits)
        self._active = 0
        self._waiting = 0

    async def acquire(self) -> None:
        self._waiting += 1
        try:
            await self._semaphore.acquire()
        finally:
            self._waiting -= 1
        self._active += 1

    def release(self) -> None:
        self._active -= 1
        self._semaphore.release()

    async def __aenter__(self) -> "ConcurrencyLimiter":
        await self.acquire()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.release()

    @property
    def active(self) -> int:
        return self._active

    @property
    def waiting(self) -> int:
        return self._waiting

    @property
    def available(self) -> int:
        return self.permits - self._active
