"""
Test configuration for pytest
"""

import pytest
import pytest_asyncio
from datetime import datetime, timedelta, timezone

from gamehall.core.channel import InMemoryChannelHub
from gamehall.core.config import Settings
from gamehall.core.context import TerminalContext
from gamehall.models import Operator, OperatorRole
from gamehall.services.snapshot_store import InMemorySnapshotStore

START = datetime(2026, 3, 14, 18, 0, tzinfo=timezone.utc)


class FakeClock:
    """Controllable clock handed to every component under test"""

    def __init__(self, start: datetime = START):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> datetime:
        self.now += timedelta(**delta)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    """Small pool, in-memory backends, no .env lookup"""
    return Settings(
        _env_file=None,
        TERMINAL_ID="terminal-a",
        TABLE_POOL_SIZE=5,
        SNAPSHOT_BACKEND="memory",
        REPLICATION_BACKEND="memory",
        REPLICATION_CHANNEL="test-realtime",
    )


@pytest.fixture
def hub() -> InMemoryChannelHub:
    return InMemoryChannelHub()


@pytest.fixture
def make_terminal(settings, hub, clock):
    """Factory for terminal contexts sharing one channel hub and clock"""

    def factory(terminal_id: str = "terminal-a", snapshots=None, **overrides) -> TerminalContext:
        terminal_settings = settings.model_copy(update={"TERMINAL_ID": terminal_id, **overrides})
        return TerminalContext(
            terminal_settings,
            snapshots if snapshots is not None else InMemorySnapshotStore(),
            hub.channel(terminal_settings.REPLICATION_CHANNEL),
            clock=clock,
        )

    return factory


@pytest_asyncio.fixture
async def terminal(make_terminal):
    """A started terminal with an employee logged in"""
    context = make_terminal("terminal-a")
    await context.start()
    await context.login(Operator(id="op-1", username="sara", role=OperatorRole.EMPLOYEE))
    yield context
    await context.stop()


@pytest_asyncio.fixture
async def peer(make_terminal):
    """A second started terminal on the same channel"""
    context = make_terminal("terminal-b")
    await context.start()
    await context.login(Operator(id="op-2", username="omar", role=OperatorRole.OWNER))
    yield context
    await context.stop()


@pytest_asyncio.fixture
async def customer(terminal):
    created = terminal.records.add_customer("Layla Haddad", email="layla@example.com")
    await terminal.drain()
    return created
