"""
Shared fixtures for discovery coordinator tests.
"""
from typing import Any, Dict, List

import pytest

from discovery_cache import DiscoveryCoordinator, MemoryDiscoveryStore

from discovery_fakes import (
    CACHE_ID,
    CLIENT_ID,
    EXTERNAL_ENDPOINT,
    INITIAL_ENDPOINT,
    NEXT_EXTERNAL_ENDPOINT,
    FakeClock,
    FakeFetchGet,
    RecordingSleep,
    make_external_document,
    make_initial_document,
)


@pytest.fixture
def store() -> MemoryDiscoveryStore:
    return MemoryDiscoveryStore()


@pytest.fixture
def fetch_get() -> FakeFetchGet:
    fake = FakeFetchGet()
    fake.add(INITIAL_ENDPOINT, make_initial_document())
    fake.add(EXTERNAL_ENDPOINT, make_external_document())
    fake.add(
        NEXT_EXTERNAL_ENDPOINT,
        make_external_document(base_uri="https://api2.example.com"),
        {"discovery-tag": "v2"},
    )
    return fake


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
async def make_coordinator(store, fetch_get, clock, sleep):
    """Factory for coordinators wired to the fake collaborators."""
    created: List[DiscoveryCoordinator] = []

    def factory(**overrides: Any) -> DiscoveryCoordinator:
        kwargs: Dict[str, Any] = dict(
            cache=store,
            cache_id=CACHE_ID,
            initial_endpoint=INITIAL_ENDPOINT,
            fetch_get=fetch_get,
            client_id=CLIENT_ID,
            clock=clock,
            sleep=sleep,
            auto_init=False,
        )
        kwargs.update(overrides)
        coordinator = DiscoveryCoordinator(**kwargs)
        created.append(coordinator)
        return coordinator

    yield factory

    for coordinator in created:
        await coordinator.close()
