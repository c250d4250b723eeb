from datetime import timedelta

import pytest

from conftest import fast_settings

from cosmofy.datasource.constellations import ConstellationSource
from cosmofy.scheduler import MaintenanceScheduler
from cosmofy.services.cache import CacheScope
from cosmofy.settings import Settings


@pytest.mark.asyncio
async def test_sweep_job_removes_expired_entries(make_pipeline, cache, clock):
    scheduler = MaintenanceScheduler(make_pipeline())
    await cache.put(
        CacheScope.QUERY, "old", 1, ttl=timedelta(minutes=1), fallback_ttl=timedelta(hours=1)
    )
    clock.advance(hours=2)

    assert await scheduler.sweep_cache_job() == 1


@pytest.mark.asyncio
async def test_prewarm_job_acquires_catalog(make_pipeline):
    pipeline = make_pipeline()
    scheduler = MaintenanceScheduler(pipeline)
    scheduler._constellations = ConstellationSource(
        pipeline, fast_settings(deadline=None), batch_pause=0
    )

    # Upstream unreachable: nothing to warm, and the job does not raise
    assert await scheduler.prewarm_constellations_job() == 0


@pytest.mark.asyncio
async def test_start_registers_jobs_and_stop(make_pipeline):
    settings = Settings(CACHE_SWEEP_INTERVAL_MINUTES=5, CONSTELLATION_PREWARM_HOURS=12)
    scheduler = MaintenanceScheduler(make_pipeline(), settings=settings)

    scheduler.start()
    try:
        assert scheduler.is_running()
        assert {job["id"] for job in scheduler.get_jobs()} == {
            "cache_sweep",
            "constellation_prewarm",
        }
        scheduler.start()  # second start is a no-op
    finally:
        scheduler.stop()

    assert not scheduler.is_running()
