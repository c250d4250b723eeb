import asyncio
from datetime import date, timedelta

import pytest

from cosmofy.datastore.store import MemoryRecordStore
from cosmofy.normalization import ApodImage, DuplicatePolicy
from cosmofy.services.cache import CacheScope
from cosmofy.services.errors import DeadlineExceeded
from cosmofy.services.pipeline import AcquisitionPipeline, AcquisitionSpec
from cosmofy.services.resolver import SourceDescriptor


class Upstream:
    """Controllable source: returns records, fails, or stalls."""

    def __init__(self, name="upstream", records=None, delay=0.0):
        self.name = name
        self.records = records if records is not None else ["a", "b", "c"]
        self.delay = delay
        self.failing = False
        self.calls = 0

    async def fetch(self):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.failing:
            raise RuntimeError(f"{self.name} is down")
        return list(self.records)

    @property
    def descriptor(self):
        return SourceDescriptor(name=self.name, fetch=self.fetch, parse=lambda raw: raw)


def apod(day: str, title: str) -> ApodImage:
    return ApodImage(id=day, date=date.fromisoformat(day), title=title)


@pytest.fixture
def pipeline(cache, store):
    return AcquisitionPipeline(cache=cache, store=store)


def make_spec(upstream, **kwargs) -> AcquisitionSpec:
    kwargs.setdefault("ttl", timedelta(days=1))
    kwargs.setdefault("fallback_ttl", timedelta(days=7))
    return AcquisitionSpec(
        scope=CacheScope.COLLECTION, key="test", chain=[upstream.descriptor], **kwargs
    )


@pytest.mark.asyncio
async def test_source_then_cache(pipeline):
    upstream = Upstream()
    spec = make_spec(upstream)

    first = await pipeline.acquire(spec)
    second = await pipeline.acquire(spec)

    assert first.origin == "source"
    assert first.source == "upstream"
    assert first.data == ["a", "b", "c"]
    assert second.origin == "cache"
    assert second.data == ["a", "b", "c"]
    assert upstream.calls == 1


@pytest.mark.asyncio
async def test_falls_back_to_stale_cache_when_sources_fail(pipeline, clock):
    upstream = Upstream()
    spec = make_spec(upstream)
    await pipeline.acquire(spec)

    clock.advance(days=2)
    upstream.failing = True
    result = await pipeline.acquire(spec)

    assert result.origin == "stale"
    assert result.is_stale
    assert result.data == ["a", "b", "c"]
    assert upstream.calls == 2


@pytest.mark.asyncio
async def test_stale_beyond_fallback_window_is_not_served(pipeline, clock):
    upstream = Upstream()
    spec = make_spec(upstream)
    await pipeline.acquire(spec)

    clock.advance(days=8)
    upstream.failing = True
    result = await pipeline.acquire(spec)

    assert result.origin == "empty"
    assert result.is_empty


@pytest.mark.asyncio
async def test_default_when_nothing_cached(pipeline):
    upstream = Upstream()
    upstream.failing = True

    result = await pipeline.acquire(make_spec(upstream, default=lambda: ["placeholder"]))

    assert result.origin == "default"
    assert result.data == ["placeholder"]


@pytest.mark.asyncio
async def test_empty_result_never_raises(pipeline):
    upstream = Upstream()
    upstream.failing = True

    result = await pipeline.acquire(make_spec(upstream))

    assert result.origin == "empty"
    assert result.data == []
    assert not result.timed_out
    result.raise_for_status()


@pytest.mark.asyncio
async def test_stored_collection_served_when_sources_fail(cache):
    store = MemoryRecordStore()
    await store.insert("apod_images", apod("2025-02-27", "Horsehead").model_dump(mode="json"))
    pipeline = AcquisitionPipeline(cache=cache, store=store)
    upstream = Upstream()
    upstream.failing = True

    result = await pipeline.acquire(
        make_spec(upstream, collection="apod_images", record_type=ApodImage)
    )

    assert result.origin == "stale"
    assert result.first == apod("2025-02-27", "Horsehead")


@pytest.mark.asyncio
async def test_deadline_prefers_stale_cache(pipeline, cache, clock):
    await cache.put(CacheScope.COLLECTION, "test", ["old"], ttl=timedelta(hours=1))
    clock.advance(hours=2)
    upstream = Upstream(records=["new"], delay=0.2)

    result = await pipeline.acquire(make_spec(upstream, deadline=0.02))

    assert result.origin == "stale"
    assert result.timed_out
    assert result.data == ["old"]

    # The late result still lands in the cache
    await pipeline.guard.drain()
    entry = await cache.get(CacheScope.COLLECTION, "test")
    assert entry.value == ["new"]


@pytest.mark.asyncio
async def test_deadline_without_fallback_times_out(pipeline):
    upstream = Upstream(delay=0.2)

    result = await pipeline.acquire(make_spec(upstream, deadline=0.02))

    assert result.origin == "empty"
    assert result.timed_out
    with pytest.raises(DeadlineExceeded):
        result.raise_for_status()
    await pipeline.guard.drain()


@pytest.mark.asyncio
async def test_deadline_serves_stored_collection(cache):
    store = MemoryRecordStore()
    await store.insert("apod_images", apod("2025-02-27", "Horsehead").model_dump(mode="json"))
    pipeline = AcquisitionPipeline(cache=cache, store=store)
    upstream = Upstream(records=[apod("2025-02-28", "Rosette")], delay=0.3)

    result = await pipeline.acquire(
        make_spec(
            upstream,
            collection="apod_images",
            record_type=ApodImage,
            deadline=0.02,
        )
    )

    assert result.origin == "stale"
    assert result.timed_out
    assert result.data == [apod("2025-02-27", "Horsehead")]
    result.raise_for_status()
    await pipeline.guard.drain()


@pytest.mark.asyncio
async def test_deadline_serves_default_before_empty(pipeline):
    upstream = Upstream(delay=0.3)

    result = await pipeline.acquire(
        make_spec(upstream, deadline=0.02, default=lambda: ["known"])
    )

    assert result.origin == "default"
    assert result.timed_out
    assert result.data == ["known"]
    await pipeline.guard.drain()


@pytest.mark.asyncio
async def test_stale_while_revalidate(pipeline, clock):
    upstream = Upstream(records=["v1"])
    spec = make_spec(upstream, staleness_threshold=timedelta(days=3))
    await pipeline.acquire(spec)

    clock.advance(days=2)
    upstream.records = ["v2"]
    served = await pipeline.acquire(spec)

    assert served.origin == "cache"
    assert served.is_stale
    assert served.data == ["v1"]

    await pipeline.refresher.wait_idle()
    refreshed = await pipeline.acquire(spec)

    assert refreshed.data == ["v2"]
    assert not refreshed.is_stale
    assert upstream.calls == 2


@pytest.mark.asyncio
async def test_fresh_hit_refreshes_when_data_itself_is_old(pipeline, clock):
    upstream = Upstream(records=["v1"])
    spec = make_spec(
        upstream,
        ttl=timedelta(days=30),
        staleness_threshold=timedelta(days=7),
        freshness_of=lambda records: clock() - timedelta(days=10),
    )
    await pipeline.acquire(spec)
    upstream.records = ["v2"]

    served = await pipeline.acquire(spec)
    assert served.origin == "cache"
    assert served.data == ["v1"]

    await pipeline.refresher.wait_idle()
    assert upstream.calls == 2

    refreshed = await pipeline.acquire(spec)
    await pipeline.refresher.wait_idle()
    assert refreshed.data == ["v2"]


@pytest.mark.asyncio
async def test_concurrent_misses_resolve_once(pipeline):
    upstream = Upstream(delay=0.02)
    spec = make_spec(upstream)

    results = await asyncio.gather(*(pipeline.acquire(spec) for _ in range(4)))

    assert upstream.calls == 1
    assert all(r.data == ["a", "b", "c"] for r in results)


@pytest.mark.asyncio
async def test_merge_accumulates_stored_records(pipeline, store, clock):
    upstream = Upstream(records=[apod("2025-02-27", "Horsehead")])
    spec = make_spec(
        upstream,
        collection="apod_images",
        record_type=ApodImage,
        merge=True,
        finalize=lambda images: sorted(images, key=lambda i: i.date, reverse=True),
    )
    await pipeline.acquire(spec)

    clock.advance(days=2)
    upstream.records = [apod("2025-02-27", "Horsehead (retitled)"), apod("2025-03-01", "Saturn")]
    result = await pipeline.acquire(spec)

    assert [r.id for r in result.data] == ["2025-03-01", "2025-02-27"]
    # First write wins by default
    assert result.data[1].title == "Horsehead"
    assert store.count("apod_images") == 2


@pytest.mark.asyncio
async def test_replace_policy_overwrites_stored_record(pipeline, store, clock):
    upstream = Upstream(records=[apod("2025-02-27", "Horsehead")])
    spec = make_spec(
        upstream,
        collection="apod_images",
        record_type=ApodImage,
        duplicate_policy=DuplicatePolicy.REPLACE,
    )
    await pipeline.acquire(spec)

    clock.advance(days=2)
    upstream.records = [apod("2025-02-27", "Horsehead (retitled)")]
    await pipeline.acquire(spec)

    [stored] = await store.get("apod_images")
    assert stored["title"] == "Horsehead (retitled)"


@pytest.mark.asyncio
async def test_unexpected_failure_degrades(pipeline):
    def broken_finalize(records):
        raise TypeError("bug in finalize")

    result = await pipeline.acquire(
        make_spec(Upstream(), finalize=broken_finalize, default=["fallback"])
    )

    assert result.origin == "default"
    assert result.data == ["fallback"]


@pytest.mark.asyncio
async def test_to_dict_serializes_records(pipeline):
    upstream = Upstream(records=[apod("2025-03-01", "Saturn")])

    result = await pipeline.acquire(make_spec(upstream), request_id="req-1")
    payload = result.to_dict()

    assert payload["origin"] == "source"
    assert payload["request_id"] == "req-1"
    assert payload["data"][0]["date"] == "2025-03-01"


@pytest.mark.asyncio
async def test_health_status_reports_components(pipeline):
    await pipeline.acquire(make_spec(Upstream()))

    status = pipeline.get_health_status()

    assert status["cache"]["collection"]["size"] == 1
    assert status["deduplicator"]["total_requests"] == 1
    assert status["deadline_timeouts"] == 0
    await pipeline.close()
