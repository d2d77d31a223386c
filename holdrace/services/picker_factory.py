"""
Seat picker factory.
Configures which seat selection policy a run uses.
"""

from typing import Sequence

from holdrace.core.config import SeatPickMode
from holdrace.services.interfaces.random_picker import RandomSeatPicker
from holdrace.services.interfaces.round_robin_picker import RoundRobinSeatPicker
from holdrace.services.interfaces.seat_picker import SeatPicker


def get_seat_picker(mode: SeatPickMode, seat_ids: Sequence[int]) -> SeatPicker:
    """
    Get the picker for a seat pick mode.

    - random: RandomSeatPicker (default)
    - roundrobin: RoundRobinSeatPicker
    """
    if mode is SeatPickMode.ROUND_ROBIN:
        return RoundRobinSeatPicker(seat_ids)
    return RandomSeatPicker(seat_ids)
