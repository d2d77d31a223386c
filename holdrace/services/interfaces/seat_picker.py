"""
Seat selection policy interface.
Allows swapping how contention is spread across the seat pool.
"""

from abc import ABC, abstractmethod
from typing import Sequence


class SeatPicker(ABC):
    """
    Interface for seat selection policies.

    Implementations:
    - RandomSeatPicker: uniform pick, contention spread by chance
    - RoundRobinSeatPicker: shared cursor, balanced and deterministic
    """

    def __init__(self, seat_ids: Sequence[int]):
        if not seat_ids:
            raise ValueError("seat pool must not be empty")
        self.seat_ids = tuple(seat_ids)

    @abstractmethod
    def pick(self) -> int:
        """
        Select one seat id from the pool.

        Safe to call from many actors concurrently.
        """
        pass

    def _check_count(self, count: int) -> None:
        if not 1 <= count <= len(self.seat_ids):
            raise ValueError(f"cannot pick {count} distinct seats from a pool of {len(self.seat_ids)}")

    @abstractmethod
    def pick_many(self, count: int) -> list[int]:
        """
        Select `count` distinct seat ids for one hold request.

        Raises ValueError when the pool has fewer than `count` seats.
        """
        pass
