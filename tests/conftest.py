"""Pytest configuration and fixtures."""

from collections.abc import AsyncGenerator, Generator

import pytest
from httpx import ASGITransport, AsyncClient

from transit_arrivals.main import app
from transit_arrivals.services.engine import TransitEngine, reset_engine, set_engine
from transit_arrivals.services.gtfs_rt.worker import reset_worker
from transit_arrivals.services.gtfs_static.loader import StaticSchedule, StaticScheduleLoader

from .fixtures.gtfs_fixture import FrozenClock, build_gtfs_zip


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def schedule() -> StaticSchedule:
    """Static schedule loaded from the fixture GTFS ZIP."""
    loaded, _report = StaticScheduleLoader().load_bytes(build_gtfs_zip(), source="fixture")
    return loaded


@pytest.fixture
def engine(schedule: StaticSchedule, clock: FrozenClock) -> Generator[TransitEngine, None, None]:
    """Engine over the fixture schedule, installed as the app singleton."""
    reset_worker()
    built = TransitEngine(schedule=schedule, timezone_name="Europe/Rome", clock=clock)
    set_engine(built)
    yield built
    reset_worker()
    reset_engine()


@pytest.fixture
def empty_engine() -> Generator[TransitEngine, None, None]:
    """Engine with no schedule loaded."""
    reset_worker()
    built = TransitEngine()
    set_engine(built)
    yield built
    reset_worker()
    reset_engine()


@pytest.fixture
async def client(engine: TransitEngine) -> AsyncGenerator[AsyncClient, None]:  # noqa: ARG001
    """Async HTTP client for testing."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
async def client_no_schedule(
    empty_engine: TransitEngine,  # noqa: ARG001
) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client while no static schedule is loaded."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
