"""
StalenessRefresher - serve cached data now, refresh it in the background.

The caller always gets the cached value back immediately. When the data is
older than the staleness threshold a detached task re-acquires it so the next
caller sees fresher data. At most one refresh per cache key runs at a time;
a second trigger for the same key is a no-op while the first is in flight.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, TypeVar

from loguru import logger

T = TypeVar("T")


@dataclass(frozen=True)
class RefreshTask:
    """A fire-and-forget refresh job."""

    triggered_by: str | None
    target_cache_key: str
    started_at: datetime


class StalenessRefresher:
    """
    Background refresh keyed by cache key.

    Usage:
        refresher = StalenessRefresher()

        images = refresher.maybe_refresh(
            cached_value=entry.value,
            cached_at=entry.stored_at,
            staleness_threshold=timedelta(days=7),
            refresh_fn=reload_gallery,
            key="collection:apod",
        )
    """

    def __init__(self, clock: Callable[[], datetime] = datetime.now):
        self._clock = clock
        self._in_flight: dict[str, RefreshTask] = {}
        self._tasks: set[asyncio.Task[Any]] = set()
        self.started = 0
        self.skipped = 0
        self.failed = 0

    def maybe_refresh(
        self,
        cached_value: T,
        cached_at: datetime,
        staleness_threshold: timedelta,
        refresh_fn: Callable[[], Awaitable[Any]],
        key: str,
        triggered_by: str | None = None,
    ) -> T:
        """
        Return cached_value; schedule refresh_fn if the data is too old.

        Never blocks on, and never raises from, the refresh.
        """
        age = self._clock() - cached_at
        if age > staleness_threshold:
            self._schedule(key, refresh_fn, triggered_by, age)
        return cached_value

    def _schedule(
        self,
        key: str,
        refresh_fn: Callable[[], Awaitable[Any]],
        triggered_by: str | None,
        age: timedelta,
    ) -> RefreshTask | None:
        if key in self._in_flight:
            self.skipped += 1
            logger.debug(f"Refresh for {key} already in flight, skipping")
            return None

        job = RefreshTask(
            triggered_by=triggered_by,
            target_cache_key=key,
            started_at=self._clock(),
        )
        self._in_flight[key] = job
        self.started += 1
        logger.info(
            f"Data for {key} is {age.total_seconds():.0f}s old, "
            f"refreshing in background (request {triggered_by})"
        )

        task = asyncio.create_task(self._run(job, refresh_fn))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return job

    async def _run(
        self, job: RefreshTask, refresh_fn: Callable[[], Awaitable[Any]]
    ) -> None:
        try:
            await refresh_fn()
            logger.info(f"Background refresh of {job.target_cache_key} completed")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.failed += 1
            logger.error(f"Background refresh of {job.target_cache_key} failed: {e}")
        finally:
            self._in_flight.pop(job.target_cache_key, None)

    def in_flight(self) -> list[RefreshTask]:
        return list(self._in_flight.values())

    def is_refreshing(self, key: str) -> bool:
        return key in self._in_flight

    async def wait_idle(self) -> None:
        """Wait for every running refresh to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        """Cancel running refreshes."""
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)
        self._in_flight.clear()

    def get_stats(self) -> dict[str, Any]:
        return {
            "started": self.started,
            "skipped": self.skipped,
            "failed": self.failed,
            "in_flight": len(self._in_flight),
        }
