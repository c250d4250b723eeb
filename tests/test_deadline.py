import asyncio

import pytest

from cosmofy.services.deadline import TIMED_OUT, DeadlineGuard, ResponseSlot


async def quick():
    return "fresh"


async def slow():
    await asyncio.sleep(0.5)
    return "late"


@pytest.mark.asyncio
async def test_work_finishing_in_time_wins():
    outcome = await DeadlineGuard().with_deadline(1.0, quick)

    assert outcome.value == "fresh"
    assert not outcome.timed_out


@pytest.mark.asyncio
async def test_fallback_preferred_over_timeout():
    async def cached():
        return "stale"

    outcome = await DeadlineGuard().with_deadline(0.05, slow, fallback=cached)

    assert outcome.value == "stale"
    assert outcome.timed_out
    assert outcome.from_fallback


@pytest.mark.asyncio
async def test_timed_out_without_fallback():
    async def nothing_cached():
        return None

    guard = DeadlineGuard()
    outcome = await guard.with_deadline(0.05, slow, fallback=nothing_cached)

    assert outcome.value is TIMED_OUT
    assert outcome.is_timed_out
    assert not TIMED_OUT
    assert guard.timeouts == 1


@pytest.mark.asyncio
async def test_losing_work_keeps_running_detached():
    landed = []

    async def warms_cache():
        await asyncio.sleep(0.1)
        landed.append("written")
        return "late"

    guard = DeadlineGuard()
    outcome = await guard.with_deadline(0.01, warms_cache)
    assert outcome.is_timed_out
    assert guard.detached_count() == 1

    await guard.drain()
    assert landed == ["written"]
    assert guard.detached_count() == 0


@pytest.mark.asyncio
async def test_no_budget_waits_for_work():
    outcome = await DeadlineGuard().with_deadline(None, slow)

    assert outcome.value == "late"


@pytest.mark.asyncio
async def test_work_error_propagates_when_in_time():
    async def broken():
        raise ValueError("bad payload")

    with pytest.raises(ValueError):
        await DeadlineGuard().with_deadline(1.0, broken)


def test_response_slot_settles_once():
    slot = ResponseSlot()

    assert slot.settle("work result", winner="work")
    assert not slot.settle(TIMED_OUT, winner="timer")
    assert slot.value == "work result"
    assert slot.winner == "work"


@pytest.mark.asyncio
async def test_late_work_result_is_discarded():
    async def nothing_cached():
        return None

    guard = DeadlineGuard()
    outcome = await guard.with_deadline(0.01, slow, fallback=nothing_cached)
    assert outcome.is_timed_out
    assert guard.late_results == 0

    await guard.drain()
    assert guard.late_results == 1
    assert outcome.value is TIMED_OUT


@pytest.mark.asyncio
async def test_work_in_time_cancels_the_timer():
    guard = DeadlineGuard()
    outcome = await guard.with_deadline(0.05, quick)
    await asyncio.sleep(0.1)

    assert outcome.value == "fresh"
    assert guard.timeouts == 0
    assert guard.late_results == 0
