"""
Pydantic schemas for booking-session, reservation, and seat-hold bodies.
"""

from typing import Optional, Union

from pydantic import BaseModel, Field

from holdrace.schemas.queue import Identifier


class BookingSessionCreate(BaseModel):
    scheduleId: Union[int, str]
    waitingToken: str = Field(..., min_length=1)
    deviceId: str


class BookingSessionResponse(BaseModel):
    bookingSessionId: Optional[Identifier] = None


class ReservationResponse(BaseModel):
    reservationId: Optional[Identifier] = None


class SeatHoldRequest(BaseModel):
    performanceSeatIds: list[int] = Field(..., min_length=1)
