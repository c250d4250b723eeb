from datetime import datetime, timedelta
from typing import Callable

import httpx
import pytest

from cosmofy.datastore.store import MemoryRecordStore
from cosmofy.services.cache import TieredCache
from cosmofy.services.fetcher import ResilientFetcher, RetryPolicy
from cosmofy.services.pipeline import AcquisitionPipeline
from cosmofy.settings import IntegrationSettings


class FakeClock:
    """Manually advanced clock for cache and staleness tests."""

    def __init__(self, start: datetime = datetime(2025, 3, 1, 21, 0)):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


class SleepRecorder:
    """Stands in for asyncio.sleep; records requested delays."""

    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def mock_fetcher(
    handler: Callable[[httpx.Request], httpx.Response],
    sleep: SleepRecorder | None = None,
    max_retries: int = 3,
) -> ResilientFetcher:
    return ResilientFetcher(
        transport=httpx.MockTransport(handler),
        sleep=sleep or SleepRecorder(),
        default_policy=RetryPolicy(max_retries=max_retries, base_backoff=1.0),
    )


def fast_settings(**overrides) -> IntegrationSettings:
    """Integration settings with one attempt and a short deadline."""
    values = {"max_retries": 1, "base_backoff": 0.0, "deadline": 2.0}
    values.update(overrides)
    return IntegrationSettings(**values)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def store() -> MemoryRecordStore:
    return MemoryRecordStore()


@pytest.fixture
def cache(clock) -> TieredCache:
    return TieredCache(clock=clock)


@pytest.fixture
def make_pipeline(cache, store, sleeper):
    """Factory for a pipeline whose HTTP traffic goes to a mock handler."""

    def factory(handler: Callable[[httpx.Request], httpx.Response] | None = None):
        def unreachable(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503, text="no upstream in tests")

        fetcher = mock_fetcher(handler or unreachable, sleep=sleeper)
        return AcquisitionPipeline(cache=cache, fetcher=fetcher, store=store)

    return factory
