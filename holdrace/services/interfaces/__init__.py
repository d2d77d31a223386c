"""
Service interfaces for dependency inversion.
Allows swapping seat selection policies without changing the actor flow.
"""

from .seat_picker import SeatPicker
from .random_picker import RandomSeatPicker
from .round_robin_picker import RoundRobinSeatPicker

__all__ = ['SeatPicker', 'RandomSeatPicker', 'RoundRobinSeatPicker']
