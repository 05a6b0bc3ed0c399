"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import pytest
import sys
from datetime import UTC, datetime, timedelta
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from src.proficiency.engine import ProficiencyEngine  # noqa: E402
from src.proficiency.engine_config import EngineConfig  # noqa: E402
from src.proficiency.persistence import MemoryKeyValueStore, PersistenceGateway  # noqa: E402
from src.proficiency.state_store import KeyStateStore  # noqa: E402


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (engine end to end)")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        # Mark based on test file location
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


class FakeTimer:
    """Stands in for threading.Timer; fires only when told to."""

    created: list["FakeTimer"] = []

    def __init__(self, interval, function):
        self.interval = interval
        self.function = function
        self.started = False
        self.cancelled = False
        self.daemon = False
        FakeTimer.created.append(self)

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        self.function()


class FakeClock:
    """Deterministic clock that advances on demand."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def config():
    """Engine config with a fixed seed."""
    return EngineConfig(random_seed=1234)


@pytest.fixture
def store(config):
    return KeyStateStore(config)


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 2, 10, 0, tzinfo=UTC))


@pytest.fixture
def fake_timers():
    FakeTimer.created = []
    yield FakeTimer.created
    FakeTimer.created = []


@pytest.fixture
def timer_factory(fake_timers):
    return FakeTimer


@pytest.fixture
def kv_store():
    return MemoryKeyValueStore()


@pytest.fixture
def gateway(kv_store, config, fake_timers):
    return PersistenceGateway(kv_store, config=config, timer_factory=FakeTimer)


@pytest.fixture
def engine(config, gateway, clock):
    """Engine over an in-memory backend with manual timers."""
    engine = ProficiencyEngine(config=config, gateway=gateway, clock=clock)
    yield engine
    engine.close()
