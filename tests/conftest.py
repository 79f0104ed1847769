"""Shared fixtures for the sleeptracker tests."""

import itertools
import logging

import anyio
import pytest

from sleeptracker.tracker.store import InMemorySleepStore, SqliteSleepStore


@pytest.fixture(scope="session")
def anyio_backend():
    """Run anyio-marked tests on asyncio."""
    return "asyncio"


@pytest.fixture(autouse=True)
def setup_test_logging(caplog):
    """Capture DEBUG logs so failing tests show store and publish activity."""
    caplog.set_level(logging.DEBUG, logger="sleeptracker")


@pytest.fixture
def clock():
    """Deterministic clock: one minute further on every call."""
    return itertools.count(1_700_000_000_000, 60_000).__next__


@pytest.fixture
def memory_store():
    return InMemorySleepStore()


@pytest.fixture
def sqlite_store(tmp_path):
    s = SqliteSleepStore(db_path=tmp_path / "sleep.db")
    yield s
    s.close()


@pytest.fixture(autouse=True)
def default_db(tmp_path, monkeypatch):
    """Point the default database location at a temp dir."""
    import sleeptracker.config as config
    import sleeptracker.tracker.store as store_mod

    home = tmp_path / "home"
    monkeypatch.setattr(config, "SLEEPTRACKER_DIR", home)
    monkeypatch.setattr(config, "DB_PATH", home / "sleep.db")
    monkeypatch.setattr(store_mod, "DB_PATH", home / "sleep.db")
    return home / "sleep.db"


class GatedStore(InMemorySleepStore):
    """In-memory store whose inserts wait until ``insert_gate`` is set."""

    def __init__(self, nights=None):
        super().__init__(nights)
        self.insert_gate = anyio.Event()

    async def insert(self, night):
        await self.insert_gate.wait()
        return await super().insert(night)


class RecordingStore(InMemorySleepStore):
    """In-memory store that records which methods were called."""

    def __init__(self, nights=None):
        super().__init__(nights)
        self.calls: list[str] = []
        self.fail_on: set[str] = set()

    def _record(self, name):
        self.calls.append(name)
        if name in self.fail_on:
            from sleeptracker.tracker.errors import StorageError

            raise StorageError(f"{name} unavailable")

    async def insert(self, night):
        self._record("insert")
        return await super().insert(night)

    async def update(self, night):
        self._record("update")
        return await super().update(night)

    async def get(self, night_id):
        self._record("get")
        return await super().get(night_id)

    async def most_recent(self):
        self._record("most_recent")
        return await super().most_recent()

    async def all(self):
        self._record("all")
        return await super().all()

    async def clear_all(self):
        self._record("clear_all")
        return await super().clear_all()


@pytest.fixture
def gated_store():
    return GatedStore()


@pytest.fixture
def recording_store():
    return RecordingStore()
