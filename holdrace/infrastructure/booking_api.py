"""
HTTP adapter for the booking service.

One method per endpoint; each returns an ApiResponse and records request
metrics. Transport failures are reported as status 0 instead of raising,
so callers decide what an unreachable service means for their step.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Optional, Sequence, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from holdrace.core import metrics
from holdrace.core.config import RunConfig
from holdrace.core.exceptions import ActorAbort
from holdrace.core.logging import get_logger
from holdrace.core.metrics import OutcomeAggregator
from holdrace.schemas.booking import BookingSessionCreate, SeatHoldRequest

logger = get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

# Response bodies are echoed into logs on failure; keep lines readable
MAX_LOGGED_BODY = 512


@dataclass(frozen=True)
class ApiResponse:
    status: int
    body: str
    duration: float

    @property
    def ok(self) -> bool:
        return self.status == 200

    @property
    def short_body(self) -> str:
        return self.body[:MAX_LOGGED_BODY]

    def parse(self, model: type[ModelT], step: str) -> ModelT:
        """Validate the JSON body, turning any parse failure into an ActorAbort."""
        try:
            return model.model_validate_json(self.body)
        except ValidationError as e:
            raise ActorAbort(step, f"unparsable body: {e.error_count()} error(s)", self.status, self.short_body) from e


def build_http_client(config: RunConfig, transport: Optional[httpx.AsyncBaseTransport] = None) -> httpx.AsyncClient:
    """Shared client for every actor; the pool is sized to the actor cap."""
    limits = httpx.Limits(
        max_connections=config.max_actors,
        max_keepalive_connections=config.pre_allocated_actors,
    )
    return httpx.AsyncClient(
        base_url=config.base_url,
        timeout=config.request_timeout,
        limits=limits,
        transport=transport,
        headers={"Accept": "application/json"},
    )


def _schedule_id_value(schedule_id: str) -> Any:
    # The service expects a JSON number when the id is numeric
    return int(schedule_id) if schedule_id.isdigit() else schedule_id


class BookingApiClient:
    """Request construction for the queue, booking-session, and booking endpoints."""

    def __init__(self, http: httpx.AsyncClient, config: RunConfig, aggregator: OutcomeAggregator):
        self.http = http
        self.config = config
        self.aggregator = aggregator
        self._background: set[asyncio.Task] = set()

    async def _request(self, step: str, method: str, url: str, **kwargs) -> ApiResponse:
        start = time.perf_counter()
        try:
            response = await self.http.request(method, url, **kwargs)
        except httpx.TransportError as e:
            duration = time.perf_counter() - start
            self.aggregator.record_request(step, 0, duration)
            logger.warning("request_transport_error", step=step, error=str(e) or type(e).__name__)
            return ApiResponse(status=0, body=str(e), duration=duration)

        duration = time.perf_counter() - start
        self.aggregator.record_request(step, response.status_code, duration)
        return ApiResponse(status=response.status_code, body=response.text, duration=duration)

    # ---- Waiting room ----

    async def queue_join(self, token: str, device_id: str) -> ApiResponse:
        return await self._request(
            metrics.QUEUE_JOIN,
            "POST",
            f"/api/v1/queue/join/{self.config.schedule_id}",
            headers={"Authorization": token, "X-Device-Id": device_id},
        )

    async def queue_status(self, token: str, qsid: str) -> ApiResponse:
        return await self._request(
            metrics.QUEUE_STATUS,
            "GET",
            f"/api/v1/queue/status/{self.config.schedule_id}",
            headers={"Authorization": token, "X-QSID": qsid},
        )

    async def queue_ping(self, token: str, qsid: str) -> ApiResponse:
        return await self._request(
            metrics.QUEUE_PING,
            "POST",
            f"/api/v1/queue/ping/{self.config.schedule_id}",
            headers={"Authorization": token, "X-QSID": qsid},
        )

    # ---- Booking ----

    async def booking_session_create(self, token: str, waiting_token: str, device_id: str) -> ApiResponse:
        payload = BookingSessionCreate(
            scheduleId=_schedule_id_value(self.config.schedule_id),
            waitingToken=waiting_token,
            deviceId=device_id,
        )
        return await self._request(
            metrics.BOOKING_SESSION_CREATE,
            "POST",
            "/api/v1/booking-session/create",
            headers={"Authorization": token, "Content-Type": "application/json"},
            content=payload.model_dump_json(),
        )

    async def booking_session_ping(self, token: str, booking_session_id: str) -> ApiResponse:
        return await self._request(
            metrics.BOOKING_SESSION_PING,
            "POST",
            f"/api/v1/booking-session/ping/{self.config.schedule_id}",
            headers={"Authorization": token, "X-BOOKING-SESSION-ID": booking_session_id},
        )

    async def create_reservation(self, token: str, booking_session_id: str) -> ApiResponse:
        return await self._request(
            metrics.RESERVATION_CREATE,
            "POST",
            f"/api/v1/booking/schedule/{self.config.schedule_id}/reservation",
            headers={"Authorization": token, "X-BOOKING-SESSION-ID": booking_session_id},
        )

    async def hold_seats(
        self,
        token: str,
        booking_session_id: str,
        reservation_id: str,
        seat_ids: Sequence[int],
    ) -> ApiResponse:
        payload = SeatHoldRequest(performanceSeatIds=list(seat_ids))
        return await self._request(
            metrics.SEAT_HOLD,
            "POST",
            f"/api/v1/booking/reservation/{reservation_id}/seats:hold",
            headers={
                "Authorization": token,
                "X-BOOKING-SESSION-ID": booking_session_id,
                "Content-Type": "application/json",
            },
            content=payload.model_dump_json(),
        )

    # ---- Best-effort calls ----

    def fire_and_forget(self, coro) -> asyncio.Task:
        """Run a keep-alive call without waiting for it; its result is ignored."""
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background_done)
        return task

    def _background_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.debug("background_call_failed", error=repr(error))

    async def drain_background(self, timeout: float = 1.0) -> None:
        """Give pending pings a moment to finish, then cancel the rest."""
        if not self._background:
            return
        pending = list(self._background)
        _, still_pending = await asyncio.wait(pending, timeout=timeout)
        for task in still_pending:
            task.cancel()
        if still_pending:
            await asyncio.gather(*still_pending, return_exceptions=True)
