"""
Pydantic schemas for waiting-room responses.

Every field is optional: the service omits what it does not know yet,
and a missing identifier is handled as its own failure branch.
"""

from enum import Enum
from typing import Annotated, Any, Optional

from pydantic import BaseModel, BeforeValidator


def _coerce_id(value: Any) -> Any:
    # Identifiers may arrive as JSON numbers; headers and paths need strings
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value


Identifier = Annotated[str, BeforeValidator(_coerce_id)]


class QueueStatus(str, Enum):
    PENDING = "PENDING"
    ADMITTED = "ADMITTED"


class QueueJoinResponse(BaseModel):
    qsid: Optional[Identifier] = None
    status: Optional[str] = None
    waitingToken: Optional[str] = None

    @property
    def admitted(self) -> bool:
        return self.status == QueueStatus.ADMITTED.value and bool(self.waitingToken)


class QueueStatusResponse(BaseModel):
    status: Optional[str] = None
    waitingToken: Optional[str] = None

    @property
    def admitted(self) -> bool:
        return self.status == QueueStatus.ADMITTED.value and bool(self.waitingToken)


class WaitingTicket:
    """
    Correlation id + token pair issued by queue join.

    Only `admit()` mutates a ticket, and an admitted ticket stays admitted.
    """

    __slots__ = ("qsid", "waiting_token", "status")

    def __init__(self, qsid: str, waiting_token: Optional[str] = None, status: QueueStatus = QueueStatus.PENDING):
        self.qsid = qsid
        self.waiting_token = waiting_token
        self.status = status

    @classmethod
    def from_join(cls, body: QueueJoinResponse) -> "WaitingTicket":
        ticket = cls(qsid=body.qsid)
        if body.admitted:
            ticket.admit(body.waitingToken)
        return ticket

    @property
    def admitted(self) -> bool:
        return self.status is QueueStatus.ADMITTED

    def admit(self, waiting_token: str) -> None:
        if not waiting_token:
            raise ValueError("admission requires a non-empty waiting token")
        if self.admitted:
            return
        self.waiting_token = waiting_token
        self.status = QueueStatus.ADMITTED

    def __repr__(self) -> str:
        return f"WaitingTicket(qsid={self.qsid!r}, status={self.status.value})"
