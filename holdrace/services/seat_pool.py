"""
Credential and seat pool shared by every actor.

Tokens and seat ids are loaded once and held in tuples; the only moving
part is the seat picker's cursor in round-robin mode.
"""

from dataclasses import dataclass
from typing import Optional, Sequence

from holdrace.core.config import RunConfig, SeatPickMode
from holdrace.core.exceptions import DatasetError
from holdrace.infrastructure.datasets import load_seat_ids, load_tokens
from holdrace.services.interfaces.seat_picker import SeatPicker
from holdrace.services.picker_factory import get_seat_picker


@dataclass(frozen=True)
class Credential:
    token: str
    device_id: str


class CredentialSeatPool:
    def __init__(
        self,
        tokens: Sequence[str],
        seat_ids: Sequence[int],
        device_prefix: str = "Device",
        picker: Optional[SeatPicker] = None,
        seats_per_hold: int = 1,
    ):
        if not tokens:
            raise DatasetError("credential pool is empty")
        if not seat_ids:
            raise DatasetError("seat pool is empty")
        if seats_per_hold > len(seat_ids):
            raise DatasetError(
                f"SEATS_PER_HOLD={seats_per_hold} needs at least that many seats, pool has {len(seat_ids)}"
            )
        self.tokens = tuple(tokens)
        self.seat_ids = tuple(seat_ids)
        self.device_prefix = device_prefix
        self.picker = picker or get_seat_picker(SeatPickMode.RANDOM, self.seat_ids)

    @classmethod
    def from_config(cls, config: RunConfig) -> "CredentialSeatPool":
        """Load both datasets; raises DatasetError before any actor can start."""
        tokens = load_tokens(config.token_csv)
        seat_ids = load_seat_ids(config.seat_json)
        return cls(
            tokens,
            seat_ids,
            device_prefix=config.device_prefix,
            picker=get_seat_picker(config.seat_pick_mode, seat_ids),
            seats_per_hold=config.seats_per_hold,
        )

    def __len__(self) -> int:
        return len(self.tokens)

    def credential_for(self, actor_index: int) -> Credential:
        """Actor indices are 1-based: 1..N map onto tokens[0..N-1], then wrap."""
        if actor_index < 1:
            raise ValueError(f"actor_index must be >= 1, got {actor_index}")
        idx = (actor_index - 1) % len(self.tokens)
        return Credential(token=self.tokens[idx], device_id=f"{self.device_prefix}-{idx + 1}")

    def next_seat(self) -> int:
        return self.picker.pick()

    def next_seats(self, count: int) -> list[int]:
        return self.picker.pick_many(count)
