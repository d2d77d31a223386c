"""
Uniform random seat selection.
"""

import random
from typing import Optional, Sequence

from holdrace.services.interfaces.seat_picker import SeatPicker


class RandomSeatPicker(SeatPicker):
    """
    Pick uniformly over the pool.

    Use when:
    - Measuring contention that looks like real shoppers
    - Pool is large relative to arrival rate
    """

    def __init__(self, seat_ids: Sequence[int], rng: Optional[random.Random] = None):
        super().__init__(seat_ids)
        self.rng = rng or random.Random()

    def pick(self) -> int:
        return self.seat_ids[self.rng.randrange(len(self.seat_ids))]

    def pick_many(self, count: int) -> list[int]:
        self._check_count(count)
        return self.rng.sample(self.seat_ids, count)
