"""
Pytest configuration and shared fixtures for service layer tests.
"""
import pytest
from unittest.mock import AsyncMock, MagicMock

from app.services.access import AccessControl
from app.services.notifications import MemoryEventSink
from app.services.referrals import InMemoryInviteStore, InviteService

FIXED_BIND_TIME = 1_700_000_000

OWNER = "0xowner"
ALICE = "0xa11ce"
BOB = "0xb0b"
CAROL = "0xca201"
DAVE = "0xda7e"


class StepClock:
    """Deterministic clock: every call returns the next second"""

    def __init__(self, start: int = FIXED_BIND_TIME):
        self.now = start

    def __call__(self) -> int:
        value = self.now
        self.now += 1
        return value


@pytest.fixture
def clock():
    return StepClock()


@pytest.fixture
def store():
    """Empty in-memory invite store"""
    return InMemoryInviteStore()


@pytest.fixture
def event_sink():
    return MemoryEventSink()


@pytest.fixture
def invite_service(store, event_sink, clock):
    """InviteService over the in-memory store with a step clock"""
    return InviteService(store, sink=event_sink, clock=clock)


@pytest.fixture
def access_control(event_sink):
    return AccessControl(owner=OWNER, sink=event_sink)


@pytest.fixture
def mock_redis():
    """Mock redis.asyncio client: lock always free, publish succeeds"""
    client = MagicMock()
    client.set = AsyncMock(return_value=True)
    client.eval = AsyncMock(return_value=1)
    client.publish = AsyncMock(return_value=1)
    return client
