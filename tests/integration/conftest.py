"""
Shared fixtures for SchoolSync integration tests.

Everything runs against InMemoryRemoteStore; no network access.
"""

from datetime import datetime, timedelta, timezone

import pytest

from backoffice.schoolsync.gateway.gateway import PersistenceGateway
from backoffice.schoolsync.gateway.memory import InMemoryRemoteStore
from backoffice.schoolsync.notify import NotificationCenter
from backoffice.schoolsync.session import SessionPartitioner, StoreSessionSource
from backoffice.schoolsync.store.entity_store import EntityStore
from backoffice.schoolsync.sync.coordinator import SyncCoordinator


class FakeClock:
    """Settable clock shared by the coordinator and reaper."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 6, 1, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
async def remote():
    remote = InMemoryRemoteStore()
    await remote.connect()
    return remote


@pytest.fixture
def gateway(remote):
    return PersistenceGateway(remote)


@pytest.fixture
def store():
    return EntityStore()


@pytest.fixture
def notifications():
    return NotificationCenter(limit=50)


@pytest.fixture
def partitioner(store):
    return SessionPartitioner(StoreSessionSource(store))


@pytest.fixture
def coordinator(store, gateway, partitioner, notifications, clock):
    return SyncCoordinator(store, gateway, partitioner, notifications, clock=clock)
