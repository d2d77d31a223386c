"""
Scenario wiring: build every collaborator from one RunConfig and run it.

integrated  - every actor runs the full join -> admission -> session ->
              reservation -> hold flow with its own credential.
hold-focus  - setup runs once; every actor only holds the fixed seat list
              against the shared session/reservation pair. With a single
              seat this checks hold atomicity: exactly one hold may win.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Optional

import httpx
import structlog

from holdrace.core.config import RunConfig, Scenario
from holdrace.core.exceptions import ConfigError, SetupFatal
from holdrace.core.logging import get_logger
from holdrace.core.metrics import OutcomeAggregator, OutcomeSnapshot, start_metrics_server
from holdrace.infrastructure.booking_api import BookingApiClient, build_http_client
from holdrace.services.bootstrap import SharedBookingContext, bootstrap_shared_session
from holdrace.services.flow_runner import ActorResult, FlowRunner, hold_seats
from holdrace.services.scheduler import ArrivalScheduler, ScheduleResult
from holdrace.services.seat_pool import Credential, CredentialSeatPool

logger = get_logger(__name__)


@dataclass
class RunReport:
    scenario: Scenario
    snapshot: OutcomeSnapshot
    schedule: ScheduleResult
    threshold_failures: list[str] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return not self.threshold_failures


class HoldFocusRunner:
    """Hold-only iteration against the shared setup pair."""

    def __init__(
        self,
        api: BookingApiClient,
        config: RunConfig,
        context: SharedBookingContext,
        aggregator: OutcomeAggregator,
    ):
        self.api = api
        self.config = config
        self.context = context
        self.aggregator = aggregator

    async def run(self, actor_index: int) -> ActorResult:
        with structlog.contextvars.bound_contextvars(actor_index=actor_index):
            outcome, status = await hold_seats(
                self.api,
                self.aggregator,
                self.context.credential.token,
                self.context.booking_session_id,
                self.context.reservation_id,
                self.config.hold_seat_ids,
            )
            if self.config.think_time > 0:
                await asyncio.sleep(self.config.think_time)
        self.aggregator.record_iteration()
        return ActorResult(
            actor_index=actor_index,
            outcome=outcome,
            hold_status=status,
            booking_session_id=self.context.booking_session_id,
            reservation_id=self.context.reservation_id,
            seat_ids=list(self.config.hold_seat_ids),
        )


def evaluate_thresholds(config: RunConfig, snapshot: OutcomeSnapshot) -> list[str]:
    failures = []
    if snapshot.setup_failed:
        failures.append("setup_failed: rate==0")
    if config.max_failed_rate is not None and snapshot.failed_rate >= config.max_failed_rate:
        failures.append(
            f"http_req_failed: rate<{config.max_failed_rate} (actual {snapshot.failed_rate:.3f})"
        )
    return failures


async def run_integrated(
    config: RunConfig,
    api: BookingApiClient,
    aggregator: OutcomeAggregator,
    pool: Optional[CredentialSeatPool] = None,
) -> ScheduleResult:
    pool = pool or CredentialSeatPool.from_config(config)
    runner = FlowRunner(api, config, pool, aggregator)
    scheduler = ArrivalScheduler.from_config(config, aggregator)
    return await scheduler.run(runner.run)


async def run_hold_focus(
    config: RunConfig,
    api: BookingApiClient,
    aggregator: OutcomeAggregator,
) -> ScheduleResult:
    if not config.fixed_token:
        raise ConfigError('TOKEN env is required. e.g. TOKEN="Bearer xxx"')
    credential = Credential(token=config.fixed_token, device_id=config.fixed_device_id)

    context = await bootstrap_shared_session(api, credential, aggregator)
    runner = HoldFocusRunner(api, config, context, aggregator)
    scheduler = ArrivalScheduler.from_config(config, aggregator)
    return await scheduler.run(runner.run)


async def run_scenario(
    config: RunConfig,
    aggregator: Optional[OutcomeAggregator] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    pool: Optional[CredentialSeatPool] = None,
) -> RunReport:
    """
    Run one scenario end to end.

    SetupFatal (and its subclasses) propagate after setup_failed has been
    recorded; every per-actor problem is already absorbed into the counters.
    """
    aggregator = aggregator or OutcomeAggregator()
    if config.metrics_port:
        start_metrics_server(aggregator, config.metrics_port)
        logger.info("metrics_server_started", port=config.metrics_port)

    try:
        # Datasets are loaded before the first request so a bad file fails fast
        if config.scenario is Scenario.INTEGRATED and pool is None:
            pool = CredentialSeatPool.from_config(config)

        async with build_http_client(config, transport=transport) as http:
            api = BookingApiClient(http, config, aggregator)
            try:
                if config.scenario is Scenario.HOLD_FOCUS:
                    schedule = await run_hold_focus(config, api, aggregator)
                else:
                    schedule = await run_integrated(config, api, aggregator, pool=pool)
            finally:
                await api.drain_background()
    except SetupFatal:
        aggregator.mark_setup_failed()
        raise

    snapshot = aggregator.snapshot()
    return RunReport(
        scenario=config.scenario,
        snapshot=snapshot,
        schedule=schedule,
        threshold_failures=evaluate_thresholds(config, snapshot),
    )
