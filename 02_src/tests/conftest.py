"""Pytest configuration and fixtures."""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))


class FakeClock:
    """Manually advanced epoch-milliseconds clock."""

    def __init__(self, start_ms: float = 1_700_000_000_000.0):
        self.now = start_ms

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


@pytest.fixture
def clock():
    """Create a controllable clock."""
    return FakeClock()


@pytest.fixture
def monitor(clock):
    """Create HealthMonitor driven by the fake clock."""
    from antibeaver.monitor import HealthMonitor

    return HealthMonitor(capacity=100, clock=clock)


@pytest_asyncio.fixture
async def storage():
    """Create in-memory thought store for testing."""
    from antibeaver.storage import ThoughtStore

    st = ThoughtStore(":memory:")
    await st.init()
    yield st
    await st.close()


@pytest.fixture
def tracker(storage):
    """Create AuditTracker with storage."""
    from antibeaver.audit import AuditTracker

    return AuditTracker(storage)


@pytest.fixture
def settings():
    """Default settings against an in-memory database."""
    from antibeaver.config import GovernanceSettings

    return GovernanceSettings(db_path=":memory:")


@pytest.fixture
def on_synthesis():
    """Create mock synthesis handler."""
    return AsyncMock()


@pytest.fixture
def transport():
    """Create mock transport."""
    return AsyncMock()


@pytest.fixture
def controller(storage, monitor, tracker, settings, on_synthesis, transport):
    """Create GovernanceController for testing."""
    from antibeaver.controller import GovernanceController

    return GovernanceController(
        storage=storage,
        monitor=monitor,
        tracker=tracker,
        settings=settings,
        on_synthesis=on_synthesis,
        transport=transport,
    )


@pytest.fixture
def make_thought():
    """Factory for BufferedThought instances."""
    from antibeaver.models import BufferedThought, Priority

    base = datetime(2026, 2, 7, 12, 0, 0, tzinfo=timezone.utc)

    def _make(
        id: int = 1,
        content: str = "Test thought",
        priority: Priority = Priority.P1,
        offset_s: int = 0,
        agent_id: str = "main",
    ) -> BufferedThought:
        return BufferedThought(
            id=id,
            agent_id=agent_id,
            channel="slack",
            target="#ops",
            content=content,
            priority=priority,
            created_at=base + timedelta(seconds=offset_s),
        )

    return _make
