"""Pytest configuration and fixtures for discovery_cache component tests."""
from pathlib import Path
from typing import Generator

import pytest

from discovery_cache import (
    EventChannel,
    FileDiscoveryStore,
    MemoryDiscoveryStore,
)


@pytest.fixture
def memory_store() -> Generator[MemoryDiscoveryStore, None, None]:
    """Create a memory discovery store for testing."""
    store = MemoryDiscoveryStore()
    yield store


@pytest.fixture
def file_store(tmp_path: Path) -> FileDiscoveryStore:
    """Create a file discovery store in a temporary directory."""
    return FileDiscoveryStore(tmp_path / "discovery")


@pytest.fixture
def channel() -> EventChannel:
    return EventChannel()


@pytest.fixture
def sample_document() -> dict:
    return {
        "version": "1.0",
        "expiresIn": 3600,
        "discoveryApi": {"externalUri": "https://disc2.example.com"},
    }
