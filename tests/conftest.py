import datetime as dt

import pytest

from lionlink.config import Settings
from lionlink.identity.store import IdentityStore, MemoryBackend

T0 = dt.datetime(2025, 3, 1, 12, 0, 0, tzinfo=dt.timezone.utc)


class FakeClock:
    """Settable wall clock returning aware datetimes (or None when unset)."""

    def __init__(self, now=T0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now = self.now + dt.timedelta(seconds=seconds)


class FakeMonotonic:
    def __init__(self, start=1000.0):
        self.value = start

    def __call__(self):
        return self.value

    def advance(self, seconds):
        self.value += seconds


@pytest.fixture(scope="session")
def identity():
    return IdentityStore.generate("11111111-2222-3333-4444-555555555555")


@pytest.fixture
def store(identity):
    store = IdentityStore(MemoryBackend())
    store.save(identity)
    return store


@pytest.fixture
def settings(tmp_path):
    return Settings(
        username="barista@example.com",
        password="hunter2",
        machine_serial="GS012345",
        identity_path=str(tmp_path / "identity.json"),
        api_url="https://api.test/api/customer-app",
        ws_host="ws.test",
        http_timeout=5.0,
        ws_poll_timeout=0.01,
        stats_min_interval=60.0,
        reconnect_interval=30.0,
        enable_loop_job=False,
        auto_connect=False,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def monotonic():
    return FakeMonotonic()
