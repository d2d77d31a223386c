"""
Load-run configuration using pydantic-settings.

Settings are read from environment variables (and an optional .env file)
once at process start, then frozen into a RunConfig that is passed by
reference into every component. Nothing reads the environment after that.
"""

import logging
from enum import Enum
from functools import lru_cache
from typing import Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings

from holdrace.core.exceptions import ConfigError

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class Scenario(str, Enum):
    INTEGRATED = "integrated"
    HOLD_FOCUS = "hold-focus"


class SeatPickMode(str, Enum):
    RANDOM = "random"
    ROUND_ROBIN = "roundrobin"


class Stage(BaseModel):
    """One ramp segment: move linearly to `target` arrivals/s over `duration` seconds."""

    target: float = Field(..., ge=0)
    duration: float = Field(..., gt=0)

    model_config = {"frozen": True}


class RunConfig(BaseModel):
    """Immutable snapshot of everything a run needs."""

    base_url: str
    schedule_id: str
    scenario: Scenario

    # Arrival shape
    start_rate: float = Field(..., ge=0)
    stages: tuple[Stage, ...]
    pre_allocated_actors: int = Field(..., gt=0)
    max_actors: int = Field(..., gt=0)
    graceful_stop: float = Field(..., ge=0)

    # Admission polling
    poll_interval: float = Field(..., gt=0)
    max_wait: float = Field(..., gt=0)
    queue_ping: bool
    booking_ping: bool

    # Seat selection
    seat_pick_mode: SeatPickMode
    seats_per_hold: int = Field(..., gt=0)
    hold_seat_ids: tuple[int, ...]

    think_time: float = Field(..., ge=0)
    device_prefix: str
    fixed_token: Optional[str] = None
    fixed_device_id: str
    token_csv: str
    seat_json: str

    request_timeout: float = Field(..., gt=0)
    max_failed_rate: Optional[float] = None
    metrics_port: Optional[int] = None

    model_config = {"frozen": True}

    @property
    def total_duration(self) -> float:
        return sum(stage.duration for stage in self.stages)


def parse_stages(raw: str) -> tuple[Stage, ...]:
    """Parse "30:20,30:40,0:20" into stages (target:seconds pairs)."""
    stages = []
    for chunk in raw.split(","):
        chunk = chunk.strip()
        if not chunk:
            continue
        target, sep, duration = chunk.partition(":")
        if not sep:
            raise ConfigError(f"Invalid stage {chunk!r}, expected target:seconds")
        try:
            stages.append(Stage(target=float(target), duration=float(duration)))
        except ValueError as e:
            raise ConfigError(f"Invalid stage {chunk!r}: {e}") from e
    if not stages:
        raise ConfigError("STAGES must contain at least one target:seconds pair")
    return tuple(stages)


def parse_seat_ids(raw: str) -> tuple[int, ...]:
    try:
        seat_ids = tuple(int(v.strip()) for v in raw.split(",") if v.strip())
    except ValueError as e:
        raise ConfigError(f"SEAT_IDS must be comma-separated integers: {raw!r}") from e
    if not seat_ids:
        raise ConfigError("SEAT_IDS must contain at least one seat id")
    if len(set(seat_ids)) != len(seat_ids):
        raise ConfigError(f"SEAT_IDS must not repeat a seat id: {raw!r}")
    return seat_ids


class Settings(BaseSettings):
    # Logging
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: Optional[str] = None  # "json" or "console"; unset follows ENVIRONMENT

    # Target
    BASE_URL: str = "http://localhost:8080"
    SCHEDULE_ID: str = "3"
    SCENARIO: Scenario = Scenario.INTEGRATED

    # Arrival ramp (unset values fall back to per-scenario defaults)
    ARRIVAL: float = 30
    RAMP_SEC: Optional[float] = None
    DURATION_SEC: Optional[float] = None
    START_RATE: Optional[float] = None
    STAGES: Optional[str] = None
    PRE_ALLOCATED_ACTORS: Optional[int] = None
    MAX_ACTORS: Optional[int] = None
    GRACEFUL_STOP_SEC: float = 10

    # Waiting room
    QUEUE_STATUS_POLL_MS: int = 200
    QUEUE_MAX_WAIT_MS: int = 15000
    DO_QUEUE_PING: bool = True
    DO_BOOKING_PING: bool = False

    # Seats
    SEAT_PICK_MODE: SeatPickMode = SeatPickMode.RANDOM
    SEATS_PER_HOLD: int = 1
    SEAT_IDS: str = "30001"

    # Actors
    THINK_TIME_MS: Optional[int] = None
    DEVICE_PREFIX: str = "Device"
    TOKEN: Optional[str] = None  # "Bearer xxx", hold-focus only
    DEVICE_ID: str = "Device-123"

    # Datasets
    TOKEN_CSV: str = "./tokens.csv"
    SEAT_JSON: str = "./seat_ids.json"

    REQUEST_TIMEOUT_SEC: float = 30
    MAX_FAILED_RATE: Optional[float] = None
    METRICS_PORT: Optional[int] = None

    model_config = {
        "env_file": ".env",
        "case_sensitive": True,
        "extra": "ignore",
    }

    @property
    def log_json(self) -> bool:
        if self.LOG_FORMAT:
            return self.LOG_FORMAT.lower() == "json"
        return self.ENVIRONMENT == "production"

    @property
    def log_level(self) -> int:
        level = self.LOG_LEVEL.upper()
        return getattr(logging, level) if level in _LOG_LEVELS else logging.INFO

    @field_validator("SEAT_PICK_MODE", mode="before")
    @classmethod
    def _lower_pick_mode(cls, value):
        return value.lower() if isinstance(value, str) else value

    def _default_stages(self, scenario: Scenario) -> tuple[float, tuple[Stage, ...]]:
        if scenario is Scenario.HOLD_FOCUS:
            ramp = self.RAMP_SEC if self.RAMP_SEC is not None else 5
            steady = self.DURATION_SEC if self.DURATION_SEC is not None else 50
            start = 0.0
        else:
            ramp = self.RAMP_SEC if self.RAMP_SEC is not None else 20
            steady = self.DURATION_SEC if self.DURATION_SEC is not None else 40
            start = self.ARRIVAL
        if self.START_RATE is not None:
            start = self.START_RATE
        stages = (
            Stage(target=self.ARRIVAL, duration=ramp),
            Stage(target=self.ARRIVAL, duration=steady),
            Stage(target=0 if scenario is Scenario.HOLD_FOCUS else self.ARRIVAL, duration=ramp),
        )
        return start, stages

    def to_run_config(self, scenario: Optional[Scenario] = None) -> RunConfig:
        """Freeze settings into the RunConfig for one run."""
        scenario = scenario or self.SCENARIO
        start_rate, stages = self._default_stages(scenario)
        if self.STAGES:
            stages = parse_stages(self.STAGES)
            if self.START_RATE is None:
                start_rate = 0.0

        if scenario is Scenario.HOLD_FOCUS:
            pre_allocated = max(60, int(self.ARRIVAL * 2))
            max_actors = max(300, int(self.ARRIVAL * 10))
            think_ms = 1
            max_failed_rate = self.MAX_FAILED_RATE
        else:
            pre_allocated, max_actors = 200, 1200
            think_ms = 0
            max_failed_rate = self.MAX_FAILED_RATE if self.MAX_FAILED_RATE is not None else 0.2

        if self.PRE_ALLOCATED_ACTORS is not None:
            pre_allocated = self.PRE_ALLOCATED_ACTORS
        if self.MAX_ACTORS is not None:
            max_actors = self.MAX_ACTORS
        if self.THINK_TIME_MS is not None:
            think_ms = self.THINK_TIME_MS

        return RunConfig(
            base_url=self.BASE_URL.rstrip("/"),
            schedule_id=str(self.SCHEDULE_ID),
            scenario=scenario,
            start_rate=start_rate,
            stages=stages,
            pre_allocated_actors=min(pre_allocated, max_actors),
            max_actors=max_actors,
            graceful_stop=self.GRACEFUL_STOP_SEC,
            poll_interval=self.QUEUE_STATUS_POLL_MS / 1000,
            max_wait=self.QUEUE_MAX_WAIT_MS / 1000,
            queue_ping=self.DO_QUEUE_PING,
            booking_ping=self.DO_BOOKING_PING,
            seat_pick_mode=self.SEAT_PICK_MODE,
            seats_per_hold=self.SEATS_PER_HOLD,
            hold_seat_ids=parse_seat_ids(self.SEAT_IDS),
            think_time=think_ms / 1000,
            device_prefix=self.DEVICE_PREFIX,
            fixed_token=self.TOKEN,
            fixed_device_id=self.DEVICE_ID,
            token_csv=self.TOKEN_CSV,
            seat_json=self.SEAT_JSON,
            request_timeout=self.REQUEST_TIMEOUT_SEC,
            max_failed_rate=max_failed_rate,
            metrics_port=self.METRICS_PORT,
        )


@lru_cache()
def get_settings() -> Settings:
    return Settings()
