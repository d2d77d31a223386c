from holdrace.schemas.queue import QueueStatus, QueueJoinResponse, QueueStatusResponse, WaitingTicket
from holdrace.schemas.booking import (
    BookingSessionCreate, BookingSessionResponse, ReservationResponse, SeatHoldRequest,
)

__all__ = [
    "QueueStatus", "QueueJoinResponse", "QueueStatusResponse", "WaitingTicket",
    "BookingSessionCreate", "BookingSessionResponse", "ReservationResponse", "SeatHoldRequest",
]
