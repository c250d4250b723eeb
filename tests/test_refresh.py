import asyncio
from datetime import timedelta

import pytest

from cosmofy.services.refresh import StalenessRefresher


@pytest.mark.asyncio
async def test_refresh_triggered_only_past_threshold(clock):
    refresher = StalenessRefresher(clock=clock)
    calls = []

    async def refresh():
        calls.append(clock())

    fresh_enough = clock() - timedelta(days=6)
    too_old = clock() - timedelta(days=8)

    assert refresher.maybe_refresh("v", fresh_enough, timedelta(days=7), refresh, key="k") == "v"
    await refresher.wait_idle()
    assert calls == []

    assert refresher.maybe_refresh("v", too_old, timedelta(days=7), refresh, key="k") == "v"
    await refresher.wait_idle()
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_returns_without_waiting_for_refresh(clock):
    refresher = StalenessRefresher(clock=clock)
    release = asyncio.Event()

    async def slow_refresh():
        await release.wait()

    value = refresher.maybe_refresh(
        [1, 2], clock() - timedelta(hours=2), timedelta(hours=1), slow_refresh, key="k"
    )

    assert value == [1, 2]
    assert refresher.is_refreshing("k")

    release.set()
    await refresher.wait_idle()
    assert not refresher.is_refreshing("k")


@pytest.mark.asyncio
async def test_failed_refresh_is_swallowed(clock):
    refresher = StalenessRefresher(clock=clock)

    async def broken():
        raise RuntimeError("upstream down")

    refresher.maybe_refresh("v", clock() - timedelta(days=2), timedelta(days=1), broken, key="k")
    await refresher.wait_idle()

    assert refresher.get_stats()["failed"] == 1
    assert not refresher.is_refreshing("k")


@pytest.mark.asyncio
async def test_one_refresh_in_flight_per_key(clock):
    refresher = StalenessRefresher(clock=clock)
    release = asyncio.Event()
    calls = 0

    async def refresh():
        nonlocal calls
        calls += 1
        await release.wait()

    old = clock() - timedelta(days=2)
    for _ in range(3):
        refresher.maybe_refresh("v", old, timedelta(days=1), refresh, key="gallery")
    refresher.maybe_refresh("v", old, timedelta(days=1), refresh, key="other")

    release.set()
    await refresher.wait_idle()

    assert calls == 2
    assert refresher.get_stats()["skipped"] == 2


@pytest.mark.asyncio
async def test_close_cancels_running_refreshes(clock):
    refresher = StalenessRefresher(clock=clock)

    async def forever():
        await asyncio.Event().wait()

    refresher.maybe_refresh("v", clock() - timedelta(days=2), timedelta(days=1), forever, key="k")
    await asyncio.sleep(0)
    await refresher.close()

    assert refresher.in_flight() == []
