"""
Pytest fixtures for the fake booking service, run config, and API client.

The load generator talks to an in-process FastAPI fake through
httpx.ASGITransport, so every test runs the real request/response path
without a network.
"""

from typing import AsyncGenerator, Callable

import httpx
import pytest
import pytest_asyncio

from holdrace.core.config import RunConfig, Scenario, SeatPickMode, Stage
from holdrace.core.metrics import OutcomeAggregator
from holdrace.infrastructure.booking_api import BookingApiClient, build_http_client
from holdrace.services.interfaces.round_robin_picker import RoundRobinSeatPicker
from holdrace.services.seat_pool import CredentialSeatPool

from fake_booking_api import FakeBookingService, create_app

CONFIG_DEFAULTS = dict(
    base_url="http://test",
    schedule_id="3",
    scenario=Scenario.INTEGRATED,
    start_rate=0,
    stages=(Stage(target=10, duration=1),),
    pre_allocated_actors=10,
    max_actors=50,
    graceful_stop=1.0,
    poll_interval=0.01,
    max_wait=1.0,
    queue_ping=False,
    booking_ping=False,
    seat_pick_mode=SeatPickMode.ROUND_ROBIN,
    seats_per_hold=1,
    hold_seat_ids=(30001,),
    think_time=0,
    device_prefix="Device",
    fixed_token="Bearer fixed",
    fixed_device_id="Device-123",
    token_csv="./tokens.csv",
    seat_json="./seat_ids.json",
    request_timeout=5.0,
    max_failed_rate=None,
    metrics_port=None,
)


@pytest.fixture
def make_config() -> Callable[..., RunConfig]:
    """Build a RunConfig with test defaults; keyword arguments override."""

    def _make(**overrides) -> RunConfig:
        return RunConfig(**{**CONFIG_DEFAULTS, **overrides})

    return _make


@pytest.fixture
def config(make_config) -> RunConfig:
    return make_config()


@pytest.fixture
def fake_service() -> FakeBookingService:
    return FakeBookingService()


@pytest.fixture
def transport(fake_service: FakeBookingService) -> httpx.ASGITransport:
    return httpx.ASGITransport(app=create_app(fake_service))


@pytest.fixture
def aggregator() -> OutcomeAggregator:
    return OutcomeAggregator()


@pytest.fixture
def pool() -> CredentialSeatPool:
    """Three credentials, one hot seat."""
    seat_ids = [30001]
    return CredentialSeatPool(["t1", "t2", "t3"], seat_ids, picker=RoundRobinSeatPicker(seat_ids))


@pytest_asyncio.fixture
async def api(
    config: RunConfig,
    transport: httpx.ASGITransport,
    aggregator: OutcomeAggregator,
) -> AsyncGenerator[BookingApiClient, None]:
    """API client wired to the fake service."""
    async with build_http_client(config, transport=transport) as http:
        client = BookingApiClient(http, config, aggregator)
        yield client
        await client.drain_background()
