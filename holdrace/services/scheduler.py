"""
Arrival-rate scheduler.

SCHEDULING MODEL: Open model, ramping arrival rate
==================================================

Actors are launched on a clock, not when a previous actor finishes. The
rate curve is piecewise linear: each stage moves from the previous target
to its own target over its duration. The n-th actor starts when the area
under the curve reaches n, so a slow target service does not slow the
arrivals down. That is the point of an open model: latency shows up as
more concurrent actors, not as fewer requests.

Load shedding, not backpressure:
  When `max_actors` are in flight, the next start event is dropped and
  counted. The scheduler itself never waits on actors.

Shutdown:
  After the last stage, in-flight actors get `graceful_stop` seconds to
  finish; whatever is still running is cancelled and counted as
  interrupted.
"""

import asyncio
import heapq
import math
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterator, Optional, Sequence

from holdrace.core import metrics
from holdrace.core.config import RunConfig, Stage
from holdrace.core.logging import get_logger
from holdrace.core.metrics import OutcomeAggregator

logger = get_logger(__name__)

# Floating point slack when deciding whether an arrival falls inside a stage
_EPSILON = 1e-9


def arrival_offsets(start_rate: float, stages: Sequence[Stage]) -> Iterator[float]:
    """
    Yield start offsets (seconds from t=0) for a ramping arrival rate.

    Within a stage the rate is r(t) = r0 + (r1 - r0) * t / D, so arrivals
    A(t) = r0*t + (r1 - r0)*t^2 / (2D). Arrival k happens where A(t) = k,
    solved in closed form. An arrival at the very end of the last stage
    is not emitted.
    """
    base_time = 0.0
    base_arrivals = 0.0
    rate = float(start_rate)
    next_arrival = 0

    for stage in stages:
        target = float(stage.target)
        duration = float(stage.duration)
        stage_total = (rate + target) * duration / 2
        slope = (target - rate) / duration

        while next_arrival - base_arrivals < stage_total - _EPSILON:
            amount = next_arrival - base_arrivals
            # Rationalised root of slope/2*t^2 + rate*t - amount = 0;
            # stable for ramps up, ramps down, and flat stages.
            denominator = rate + math.sqrt(max(rate * rate + 2 * slope * amount, 0.0))
            offset = 0.0 if denominator == 0 else 2 * amount / denominator
            yield base_time + min(offset, duration)
            next_arrival += 1

        base_time += duration
        base_arrivals += stage_total
        rate = target


def expected_arrivals(start_rate: float, stages: Sequence[Stage]) -> float:
    """Area under the rate curve: how many actors a full run would start."""
    total = 0.0
    rate = float(start_rate)
    for stage in stages:
        total += (rate + stage.target) * stage.duration / 2
        rate = stage.target
    return total


@dataclass
class ScheduleResult:
    launched: int = 0
    completed: int = 0
    dropped: int = 0
    interrupted: int = 0
    elapsed: float = 0.0
    peak_concurrency: int = 0


class ArrivalScheduler:
    def __init__(
        self,
        start_rate: float,
        stages: Sequence[Stage],
        aggregator: OutcomeAggregator,
        max_actors: int,
        pre_allocated_actors: Optional[int] = None,
        graceful_stop: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if max_actors < 1:
            raise ValueError("max_actors must be at least 1")
        self.start_rate = start_rate
        self.stages = tuple(stages)
        self.aggregator = aggregator
        self.max_actors = max_actors
        self.pre_allocated_actors = min(pre_allocated_actors or max_actors, max_actors)
        self.graceful_stop = graceful_stop
        self.clock = clock
        self.sleep = sleep

        # Free actor indices, lowest first, so indices are reused like VU ids
        self._free_indices = list(range(1, self.pre_allocated_actors + 1))
        heapq.heapify(self._free_indices)
        self._next_new_index = self.pre_allocated_actors + 1
        self._grew_pool = False
        self._active: set[asyncio.Task] = set()
        self._result = ScheduleResult()

    @classmethod
    def from_config(cls, config: RunConfig, aggregator: OutcomeAggregator) -> "ArrivalScheduler":
        return cls(
            config.start_rate,
            config.stages,
            aggregator,
            max_actors=config.max_actors,
            pre_allocated_actors=config.pre_allocated_actors,
            graceful_stop=config.graceful_stop,
        )

    @property
    def total_duration(self) -> float:
        return sum(stage.duration for stage in self.stages)

    @property
    def active_count(self) -> int:
        return len(self._active)

    def _acquire_index(self) -> int:
        if self._free_indices:
            return heapq.heappop(self._free_indices)
        index = self._next_new_index
        self._next_new_index += 1
        if not self._grew_pool:
            self._grew_pool = True
            logger.warning(
                "actor_pool_grown",
                pre_allocated=self.pre_allocated_actors,
                max_actors=self.max_actors,
            )
        return index

    def _release_index(self, index: int) -> None:
        heapq.heappush(self._free_indices, index)

    async def _run_actor(self, iteration: Callable[[int], Awaitable[Any]], index: int) -> None:
        try:
            await iteration(index)
            self._result.completed += 1
        except asyncio.CancelledError:
            raise
        except Exception:
            # A crashing actor must not take the scheduler down with it
            logger.exception("actor_crashed", actor_index=index)
            self.aggregator.record_abort(metrics.UNEXPECTED)
            self.aggregator.record_iteration()
        finally:
            self._release_index(index)

    def _launch(self, iteration: Callable[[int], Awaitable[Any]]) -> None:
        if len(self._active) >= self.max_actors:
            self._result.dropped += 1
            self.aggregator.record_dropped()
            if self._result.dropped == 1:
                logger.warning("actor_cap_reached", max_actors=self.max_actors)
            return

        index = self._acquire_index()
        task = asyncio.create_task(self._run_actor(iteration, index))
        self._active.add(task)
        task.add_done_callback(self._active.discard)
        self._result.launched += 1
        self._result.peak_concurrency = max(self._result.peak_concurrency, len(self._active))

    async def _stop(self) -> None:
        if not self._active:
            return
        pending = list(self._active)
        logger.info("graceful_stop_started", in_flight=len(pending), grace_seconds=self.graceful_stop)

        if self.graceful_stop > 0:
            _, still_running = await asyncio.wait(pending, timeout=self.graceful_stop)
        else:
            still_running = set(pending)

        if still_running:
            for task in still_running:
                task.cancel()
            await asyncio.gather(*still_running, return_exceptions=True)
            self._result.interrupted += len(still_running)
            self.aggregator.record_interrupted(len(still_running))
            logger.warning("actors_interrupted", count=len(still_running))

    async def run(self, iteration: Callable[[int], Awaitable[Any]]) -> ScheduleResult:
        """Launch `iteration(actor_index)` on schedule until the last stage ends."""
        start = self.clock()
        logger.info(
            "schedule_started",
            start_rate=self.start_rate,
            stages=[(stage.target, stage.duration) for stage in self.stages],
            expected_arrivals=round(expected_arrivals(self.start_rate, self.stages)),
            max_actors=self.max_actors,
        )

        try:
            for offset in arrival_offsets(self.start_rate, self.stages):
                delay = offset - (self.clock() - start)
                if delay > 0:
                    await self.sleep(delay)
                self._launch(iteration)

            remaining = self.total_duration - (self.clock() - start)
            if remaining > 0:
                await self.sleep(remaining)
            await self._stop()
        finally:
            # Cancelled from outside (Ctrl-C): take the actors down too, and
            # let them unwind before the caller closes the HTTP client
            stragglers = list(self._active)
            for task in stragglers:
                task.cancel()
            if stragglers:
                await asyncio.gather(*stragglers, return_exceptions=True)
                self._result.interrupted += len(stragglers)
                self.aggregator.record_interrupted(len(stragglers))

        self._result.elapsed = self.clock() - start
        logger.info(
            "schedule_finished",
            launched=self._result.launched,
            completed=self._result.completed,
            dropped=self._result.dropped,
            interrupted=self._result.interrupted,
            elapsed=round(self._result.elapsed, 3),
        )
        return self._result
