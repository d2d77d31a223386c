"""
Session actor flow.

One actor is one simulated client running the scripted sequence once:

  queue join -> admission wait -> booking-session create
             -> (keep-alive ping) -> reservation create -> seat hold

Each step feeds the next, so steps run strictly in order. An unexpected
status or body at any step raises ActorAbort, which ends this actor's
iteration only: it is logged with status and body, counted per step, and
never retried.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, Sequence

import structlog

from holdrace.core import metrics
from holdrace.core.config import RunConfig
from holdrace.core.exceptions import ActorAbort
from holdrace.core.logging import get_logger
from holdrace.core.metrics import OutcomeAggregator
from holdrace.infrastructure.booking_api import BookingApiClient
from holdrace.schemas.booking import BookingSessionResponse, ReservationResponse
from holdrace.schemas.queue import QueueJoinResponse, WaitingTicket
from holdrace.services.admission_poller import AdmissionPoller
from holdrace.services.classifier import HoldOutcome, classify_hold_status, is_expected_hold
from holdrace.services.seat_pool import Credential, CredentialSeatPool

logger = get_logger(__name__)


@dataclass
class ActorResult:
    actor_index: int
    outcome: Optional[HoldOutcome] = None
    hold_status: Optional[int] = None
    aborted_step: Optional[str] = None
    booking_session_id: Optional[str] = None
    reservation_id: Optional[str] = None
    seat_ids: list[int] = field(default_factory=list)

    @property
    def aborted(self) -> bool:
        return self.aborted_step is not None


# ---- Steps (shared with the bootstrap hook) ----

async def join_queue(api: BookingApiClient, credential: Credential) -> WaitingTicket:
    response = await api.queue_join(credential.token, credential.device_id)
    if response.status != 200:
        raise ActorAbort(metrics.QUEUE_JOIN, "unexpected status", response.status, response.short_body)

    body = response.parse(QueueJoinResponse, metrics.QUEUE_JOIN)
    if not body.qsid:
        raise ActorAbort(metrics.QUEUE_JOIN, "missing qsid", response.status, response.short_body)
    return WaitingTicket.from_join(body)


async def create_booking_session(api: BookingApiClient, credential: Credential, ticket: WaitingTicket) -> str:
    if not ticket.admitted:
        raise ActorAbort(metrics.BOOKING_SESSION_CREATE, "ticket not admitted")

    response = await api.booking_session_create(credential.token, ticket.waiting_token, credential.device_id)
    if response.status != 200:
        raise ActorAbort(metrics.BOOKING_SESSION_CREATE, "unexpected status", response.status, response.short_body)

    body = response.parse(BookingSessionResponse, metrics.BOOKING_SESSION_CREATE)
    if not body.bookingSessionId:
        raise ActorAbort(metrics.BOOKING_SESSION_CREATE, "missing bookingSessionId", response.status, response.short_body)
    return body.bookingSessionId


async def create_reservation(api: BookingApiClient, credential: Credential, booking_session_id: str) -> str:
    response = await api.create_reservation(credential.token, booking_session_id)
    if response.status != 200:
        raise ActorAbort(metrics.RESERVATION_CREATE, "unexpected status", response.status, response.short_body)

    body = response.parse(ReservationResponse, metrics.RESERVATION_CREATE)
    if not body.reservationId:
        raise ActorAbort(metrics.RESERVATION_CREATE, "missing reservationId", response.status, response.short_body)
    return body.reservationId


async def hold_seats(
    api: BookingApiClient,
    aggregator: OutcomeAggregator,
    token: str,
    booking_session_id: str,
    reservation_id: str,
    seat_ids: Sequence[int],
) -> tuple[Optional[HoldOutcome], int]:
    """Issue the hold and classify it. 200/409 are both expected; the rest is logged."""
    response = await api.hold_seats(token, booking_session_id, reservation_id, seat_ids)
    outcome = classify_hold_status(response.status)
    aggregator.record_hold(outcome)

    if not is_expected_hold(outcome):
        logger.warning(
            "hold_unexpected",
            status=response.status,
            body=response.short_body,
            seat_ids=list(seat_ids),
            reservation_id=reservation_id,
        )
    return outcome, response.status


class FlowRunner:
    """Runs the full integrated flow for one actor index at a time."""

    def __init__(
        self,
        api: BookingApiClient,
        config: RunConfig,
        pool: CredentialSeatPool,
        aggregator: OutcomeAggregator,
        poller_factory: Optional[Callable[[], AdmissionPoller]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.api = api
        self.config = config
        self.pool = pool
        self.aggregator = aggregator
        self.poller_factory = poller_factory or (lambda: AdmissionPoller.from_config(api, config))
        self.sleep = sleep

    async def run(self, actor_index: int) -> ActorResult:
        result = ActorResult(actor_index=actor_index)
        credential = self.pool.credential_for(actor_index)

        with structlog.contextvars.bound_contextvars(actor_index=actor_index):
            try:
                await self._run_steps(credential, result)
            except ActorAbort as e:
                result.aborted_step = e.step
                self.aggregator.record_abort(e.step)
                logger.info(
                    "actor_aborted",
                    step=e.step,
                    reason=e.reason,
                    status=e.status,
                    body=e.body,
                    booking_session_id=result.booking_session_id,
                )
                self.aggregator.record_iteration()
                return result

            if self.config.think_time > 0:
                await self.sleep(self.config.think_time)

        self.aggregator.record_iteration()
        return result

    async def _run_steps(self, credential: Credential, result: ActorResult) -> None:
        ticket = await join_queue(self.api, credential)

        if not ticket.admitted:
            poller = self.poller_factory()
            await poller.wait_for_admission(ticket, credential.token)

        booking_session_id = await create_booking_session(self.api, credential, ticket)
        result.booking_session_id = booking_session_id

        if self.config.booking_ping:
            self.api.fire_and_forget(self.api.booking_session_ping(credential.token, booking_session_id))

        reservation_id = await create_reservation(self.api, credential, booking_session_id)
        result.reservation_id = reservation_id

        seat_ids = self.pool.next_seats(self.config.seats_per_hold)
        result.seat_ids = seat_ids
        result.outcome, result.hold_status = await hold_seats(
            self.api, self.aggregator, credential.token, booking_session_id, reservation_id, seat_ids
        )
