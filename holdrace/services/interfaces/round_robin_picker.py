"""
Round-robin seat selection with a shared cursor.
"""

import threading
from typing import Sequence

from holdrace.services.interfaces.seat_picker import SeatPicker


class RoundRobinSeatPicker(SeatPicker):
    """
    Walk the pool in order with one cursor shared by every actor.

    The cursor only moves forward and wraps modulo the pool size, so M picks
    over K seats select each seat floor(M/K) or ceil(M/K) times. A multi-seat
    request takes consecutive slots, which are distinct while count <= K.
    """

    def __init__(self, seat_ids: Sequence[int]):
        super().__init__(seat_ids)
        self._cursor = 0
        self._lock = threading.Lock()

    @property
    def cursor(self) -> int:
        return self._cursor

    def pick(self) -> int:
        return self.pick_many(1)[0]

    def pick_many(self, count: int) -> list[int]:
        """Take `count` consecutive slots in one step so a request never interleaves with another actor."""
        self._check_count(count)
        with self._lock:
            start = self._cursor
            self._cursor += count
        size = len(self.seat_ids)
        return [self.seat_ids[(start + offset) % size] for offset in range(count)]
