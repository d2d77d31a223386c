"""
Waiting-room admission polling.

POLLING STRATEGY: Bounded fixed-interval loop
=============================================

A queue join that does not admit synchronously hands back only a `qsid`.
The actor then asks the status endpoint until it is admitted or its own
deadline passes:

  1. (optional) fire a queue ping so the service keeps the ticket alive
  2. GET status with X-QSID
  3. 200 + status=ADMITTED + waitingToken  -> ADMITTED, return the token
  4. anything else                          -> sleep one interval, repeat
  5. elapsed >= max_wait                    -> TIMED_OUT, PollTimeout

Failed status checks only spend wait budget; they never end the actor by
themselves. With max_wait W and interval I the loop makes at most
ceil(W/I) + 1 status checks and returns by W + I (plus request time).

Each actor owns its poller, so cancelling the actor's task cancels its
poll without touching anyone else.
"""

import asyncio
import time
from enum import Enum
from typing import Awaitable, Callable

from holdrace.core import metrics
from holdrace.core.config import RunConfig
from holdrace.core.exceptions import ActorAbort, PollTimeout
from holdrace.core.logging import get_logger
from holdrace.infrastructure.booking_api import BookingApiClient
from holdrace.schemas.queue import QueueStatusResponse, WaitingTicket

logger = get_logger(__name__)


class PollState(str, Enum):
    PENDING = "PENDING"
    ADMITTED = "ADMITTED"
    TIMED_OUT = "TIMED_OUT"
    ERROR = "ERROR"


class AdmissionPoller:
    """Turns a pending waiting ticket into an admission grant, or gives up."""

    def __init__(
        self,
        api: BookingApiClient,
        interval: float,
        max_wait: float,
        ping: bool = True,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if interval <= 0:
            raise ValueError("poll interval must be positive")
        self.api = api
        self.interval = interval
        self.max_wait = max_wait
        self.ping = ping
        self.clock = clock
        self.sleep = sleep
        self.state = PollState.PENDING
        self.polls = 0
        self.elapsed = 0.0

    @classmethod
    def from_config(cls, api: BookingApiClient, config: RunConfig, **kwargs) -> "AdmissionPoller":
        return cls(api, config.poll_interval, config.max_wait, ping=config.queue_ping, **kwargs)

    async def wait_for_admission(self, ticket: WaitingTicket, token: str) -> str:
        """Return the waiting token once admitted; raise PollTimeout otherwise."""
        if ticket.admitted:
            self.state = PollState.ADMITTED
            return ticket.waiting_token

        start = self.clock()
        try:
            while self.clock() - start < self.max_wait:
                if self.ping:
                    self.api.fire_and_forget(self.api.queue_ping(token, ticket.qsid))

                self.polls += 1
                response = await self.api.queue_status(token, ticket.qsid)
                if response.status != 200:
                    logger.info(
                        "queue_status_failed",
                        status=response.status,
                        body=response.short_body,
                        qsid=ticket.qsid,
                        poll=self.polls,
                    )
                    await self.sleep(self.interval)
                    continue

                try:
                    body = response.parse(QueueStatusResponse, metrics.ADMISSION)
                except ActorAbort as e:
                    logger.info("queue_status_unparsable", body=e.body, qsid=ticket.qsid, poll=self.polls)
                    await self.sleep(self.interval)
                    continue

                if body.admitted:
                    ticket.admit(body.waitingToken)
                    self.state = PollState.ADMITTED
                    self.elapsed = self.clock() - start
                    logger.debug("admission_granted", qsid=ticket.qsid, polls=self.polls, elapsed=round(self.elapsed, 3))
                    return ticket.waiting_token

                await self.sleep(self.interval)
        except asyncio.CancelledError:
            self.state = PollState.ERROR
            raise

        self.state = PollState.TIMED_OUT
        self.elapsed = self.clock() - start
        logger.warning(
            "admission_timed_out",
            qsid=ticket.qsid,
            max_wait_ms=int(self.max_wait * 1000),
            polls=self.polls,
        )
        raise PollTimeout(self.max_wait, self.polls)
