"""
Hold outcome classification.

The hold response status is the primary measured signal: 200 means this
actor won the seat, 409 means another actor got there first. Everything
else is an anomaly.
"""

from enum import Enum
from typing import Optional


class HoldOutcome(str, Enum):
    WON = "won"
    LOST = "lost"
    CLIENT_ERROR = "client_error"
    SERVER_ERROR = "server_error"


def classify_hold_status(status: int) -> Optional[HoldOutcome]:
    """
    Map a seat-hold HTTP status to an outcome.

    Returns None for statuses outside every category (0 for transport
    failures, 1xx/3xx, 2xx other than 200).
    """
    if status == 200:
        return HoldOutcome.WON
    if status == 409:
        return HoldOutcome.LOST
    if 400 <= status < 500:
        return HoldOutcome.CLIENT_ERROR
    if status >= 500:
        return HoldOutcome.SERVER_ERROR
    return None


def is_expected_hold(outcome: Optional[HoldOutcome]) -> bool:
    """Won and lost are both valid contention results."""
    return outcome in (HoldOutcome.WON, HoldOutcome.LOST)
