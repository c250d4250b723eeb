"""
RequestDeduplicator - one in-flight resolution per cache key.

When several requests miss the cache for the same key at once, only the first
one resolves the source chain; the others await the same task.
"""

import asyncio
from typing import Any, Awaitable, Callable, TypeVar

from loguru import logger

T = TypeVar("T")


class RequestDeduplicator:
    """
    Deduplicates concurrent async work by key.

    Usage:
        dedup = RequestDeduplicator()

        records = await dedup.dedupe(
            "collection:constellations",
            lambda: resolver.resolve(chain),
        )
    """

    def __init__(self, debug: bool = False):
        self._in_flight: dict[str, asyncio.Task[Any]] = {}
        self._lock = asyncio.Lock()
        self._debug = debug
        self.total = 0
        self.deduplicated = 0

    async def dedupe(
        self,
        key: str,
        request_fn: Callable[[], Awaitable[T]],
    ) -> T:
        """
        Run request_fn unless work for key is already in flight.

        The shared task is shielded, so a caller that gives up (for example on
        a deadline) does not cancel the work for the remaining waiters.
        """
        async with self._lock:
            task = self._in_flight.get(key)
            if task is not None:
                self.deduplicated += 1
                self._log(f"JOIN: {key[:50]}")
            else:
                self.total += 1
                self._log(f"NEW: {key[:50]}")
                task = asyncio.create_task(self._execute_and_cleanup(key, request_fn))
                self._in_flight[key] = task

        return await asyncio.shield(task)

    async def _execute_and_cleanup(
        self,
        key: str,
        request_fn: Callable[[], Awaitable[T]],
    ) -> T:
        """Execute request and clean up when done."""
        try:
            return await request_fn()
        finally:
            async with self._lock:
                self._in_flight.pop(key, None)
                self._log(f"DONE: {key[:50]}")

    def is_in_flight(self, key: str) -> bool:
        return key in self._in_flight

    async def cancel_all(self) -> int:
        """Cancel all in-flight work."""
        async with self._lock:
            count = len(self._in_flight)
            for task in self._in_flight.values():
                task.cancel()
            self._in_flight.clear()
            if count:
                self._log(f"CANCEL_ALL: {count} tasks cancelled")
            return count

    def get_stats(self) -> dict[str, Any]:
        """Get deduplication statistics."""
        joined = self.total + self.deduplicated
        rate = self.deduplicated / joined if joined else 0.0
        return {
            "total_requests": self.total,
            "deduplicated": self.deduplicated,
            "in_flight": len(self._in_flight),
            "dedup_rate": f"{rate:.2%}",
        }

    def _log(self, message: str) -> None:
        """Log debug message if debug mode is enabled."""
        if self._debug:
            logger.debug(f"[Deduplicator] {message}")
