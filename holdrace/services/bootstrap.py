"""
One-time setup for the hold-focus scenario.

Runs queue join -> booking-session create -> reservation create once,
before any actor starts, and shares the resulting session/reservation pair
with every iteration. There is no admission polling here: the join must
admit synchronously. Any failure marks setup as failed and aborts the run.
"""

from dataclasses import dataclass

from holdrace.core import metrics
from holdrace.core.exceptions import ActorAbort, SetupFatal
from holdrace.core.logging import get_logger
from holdrace.core.metrics import OutcomeAggregator
from holdrace.infrastructure.booking_api import BookingApiClient
from holdrace.services.flow_runner import create_booking_session, create_reservation, join_queue
from holdrace.services.seat_pool import Credential

logger = get_logger(__name__)


@dataclass(frozen=True)
class SharedBookingContext:
    credential: Credential
    booking_session_id: str
    reservation_id: str


async def bootstrap_shared_session(
    api: BookingApiClient,
    credential: Credential,
    aggregator: OutcomeAggregator,
) -> SharedBookingContext:
    try:
        ticket = await join_queue(api, credential)
        if not ticket.admitted:
            raise ActorAbort(metrics.QUEUE_JOIN, "waitingToken missing (no immediate admission)")
        booking_session_id = await create_booking_session(api, credential, ticket)
        reservation_id = await create_reservation(api, credential, booking_session_id)
    except ActorAbort as e:
        aggregator.mark_setup_failed()
        logger.error("setup_failed", step=e.step, reason=e.reason, status=e.status, body=e.body)
        raise SetupFatal(f"setup failed: {e.step}: {e.reason}") from e

    logger.info(
        "setup_completed",
        booking_session_id=booking_session_id,
        reservation_id=reservation_id,
    )
    return SharedBookingContext(
        credential=credential,
        booking_session_id=booking_session_id,
        reservation_id=reservation_id,
    )
