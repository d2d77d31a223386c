"""
Tests for the open-model arrival scheduler.

Offsets are checked against the closed-form area under the rate curve;
run() tests use FakeClock so arrivals land exactly on schedule.
"""

import asyncio
import math

import pytest

from holdrace.core.config import Stage
from holdrace.core.metrics import OutcomeAggregator
from holdrace.services.scheduler import ArrivalScheduler, arrival_offsets, expected_arrivals

from fake_clock import FakeClock


def test_constant_rate_spaces_arrivals_evenly():
    offsets = list(arrival_offsets(10, [Stage(target=10, duration=1)]))

    assert len(offsets) == 10
    assert offsets == pytest.approx([k / 10 for k in range(10)])


def test_ramp_up_follows_area_under_curve():
    """0 -> 10/s over 2s: A(t) = 2.5 t^2, so arrival k lands at sqrt(k / 2.5)."""
    offsets = list(arrival_offsets(0, [Stage(target=10, duration=2)]))

    assert len(offsets) == 10
    assert offsets == pytest.approx([math.sqrt(k / 2.5) for k in range(10)])


def test_ramp_down_follows_area_under_curve():
    """10 -> 0/s over 2s: A(t) = 10t - 2.5t^2."""
    offsets = list(arrival_offsets(10, [Stage(target=0, duration=2)]))

    assert len(offsets) == 10
    expected = [(10 - math.sqrt(100 - 10 * k)) / 5 for k in range(10)]
    assert offsets == pytest.approx(expected)
    assert all(0 <= offset < 2 for offset in offsets)


def test_offsets_carry_across_stages():
    offsets = list(arrival_offsets(10, [Stage(target=10, duration=1), Stage(target=10, duration=1)]))

    assert len(offsets) == 20
    assert offsets == pytest.approx([k / 10 for k in range(20)])
    assert offsets == sorted(offsets)


def test_zero_rate_stage_emits_nothing():
    assert list(arrival_offsets(0, [Stage(target=0, duration=5)])) == []


def test_expected_arrivals():
    stages = [Stage(target=10, duration=2), Stage(target=10, duration=3), Stage(target=0, duration=2)]
    assert expected_arrivals(0, stages) == pytest.approx(50)


def test_max_actors_must_be_positive():
    with pytest.raises(ValueError):
        ArrivalScheduler(1, [Stage(target=1, duration=1)], OutcomeAggregator(), max_actors=0)


def make_scheduler(aggregator, clock, rate, duration, **kwargs):
    return ArrivalScheduler(
        rate,
        [Stage(target=rate, duration=duration)],
        aggregator,
        clock=clock,
        sleep=clock.sleep,
        **kwargs,
    )


@pytest.mark.asyncio
async def test_launches_every_arrival_on_schedule():
    aggregator = OutcomeAggregator()
    clock = FakeClock()

    async def iteration(index):
        pass

    scheduler = make_scheduler(aggregator, clock, rate=10, duration=1, max_actors=50)
    result = await scheduler.run(iteration)

    assert result.launched == result.completed == 10
    assert result.dropped == result.interrupted == 0
    # Nine gaps between arrivals, then the tail of the stage
    assert clock.sleeps == pytest.approx([0.1] * 10)
    assert result.elapsed == pytest.approx(1.0)


@pytest.mark.asyncio
async def test_cap_drops_start_events_instead_of_waiting():
    """Blocked actors never slow the clock down; surplus arrivals are shed."""
    aggregator = OutcomeAggregator()
    clock = FakeClock()
    never = asyncio.Event()

    async def iteration(index):
        await never.wait()

    scheduler = make_scheduler(aggregator, clock, rate=10, duration=1, max_actors=2, graceful_stop=0.05)
    result = await scheduler.run(iteration)

    assert result.launched == 2
    assert result.dropped == 8
    assert result.interrupted == 2
    assert result.peak_concurrency == 2
    assert result.elapsed == pytest.approx(1.0)
    assert scheduler.active_count == 0

    snapshot = aggregator.snapshot()
    assert snapshot.dropped == 8
    assert snapshot.interrupted == 2


@pytest.mark.asyncio
async def test_actor_indices_are_reused_lowest_first():
    aggregator = OutcomeAggregator()
    clock = FakeClock()
    gate = asyncio.Event()
    seen = []

    async def iteration(index):
        seen.append(index)
        if len(seen) == 1:
            await gate.wait()

    scheduler = make_scheduler(
        aggregator, clock, rate=3, duration=1, max_actors=10, pre_allocated_actors=3, graceful_stop=0.05
    )
    result = await scheduler.run(iteration)

    # Actor 1 is still blocked, so 2 is handed out again once it is released
    assert seen == [1, 2, 2]
    assert result.completed == 2
    assert result.interrupted == 1


@pytest.mark.asyncio
async def test_pool_grows_past_pre_allocated_up_to_cap():
    aggregator = OutcomeAggregator()
    clock = FakeClock()
    never = asyncio.Event()
    seen = []

    async def iteration(index):
        seen.append(index)
        await never.wait()

    scheduler = make_scheduler(
        aggregator, clock, rate=4, duration=1, max_actors=3, pre_allocated_actors=1, graceful_stop=0.05
    )
    result = await scheduler.run(iteration)

    assert seen == [1, 2, 3]
    assert result.dropped == 1


@pytest.mark.asyncio
async def test_crashing_actor_is_counted_not_fatal():
    aggregator = OutcomeAggregator()
    clock = FakeClock()

    async def iteration(index):
        raise RuntimeError("boom")

    scheduler = make_scheduler(aggregator, clock, rate=2, duration=1, max_actors=5)
    result = await scheduler.run(iteration)

    assert result.launched == 2
    assert result.completed == 0
    snapshot = aggregator.snapshot()
    assert snapshot.aborts == {"unexpected": 2}
    assert snapshot.iterations == 2


@pytest.mark.asyncio
async def test_outer_cancellation_takes_actors_down():
    aggregator = OutcomeAggregator()
    never = asyncio.Event()
    started = asyncio.Event()
    unwound = []

    async def iteration(index):
        started.set()
        try:
            await never.wait()
        except asyncio.CancelledError:
            unwound.append(index)
            raise

    scheduler = ArrivalScheduler(10, [Stage(target=10, duration=60)], aggregator, max_actors=5)
    task = asyncio.create_task(scheduler.run(iteration))
    await started.wait()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    # Actors have finished unwinding by the time run() gives up control
    assert unwound == [1]
    assert scheduler.active_count == 0
    assert aggregator.snapshot().interrupted == 1
