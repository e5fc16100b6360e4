"""
Memory store implementations for discovery_cache.
"""
import copy
from typing import Any, Dict, Optional

from ..types import DiscoveryCacheStore, InFlightRequest, SingleflightStore


class MemoryDiscoveryStore(DiscoveryCacheStore):
    """
    In-memory store for discovery documents.

    Documents are deep-copied on the way in and out, so a caller mutating
    a returned document never changes what is cached.

    Example:
        store = MemoryDiscoveryStore()
        await store.set_item("sdk-initial", initial_data)
        data = await store.get_item("sdk-initial")
    """

    def __init__(self) -> None:
        self._items: Dict[str, Any] = {}

    async def get_item(self, key: str) -> Optional[Any]:
        """Get a stored document by key."""
        if key not in self._items:
            return None
        return copy.deepcopy(self._items[key])

    async def set_item(self, key: str, value: Any) -> None:
        """Store a document, replacing any previous value."""
        self._items[key] = copy.deepcopy(value)

    async def remove_item(self, key: str) -> None:
        """Remove a stored document."""
        self._items.pop(key, None)

    async def keys(self) -> list:
        """Get all stored keys."""
        return list(self._items.keys())

    async def size(self) -> int:
        """Get the number of stored documents."""
        return len(self._items)

    async def clear(self) -> None:
        """Remove every stored document."""
        self._items.clear()

    async def close(self) -> None:
        """Close the store."""
        await self.clear()


class MemorySingleflightStore(SingleflightStore):
    """
    In-memory store for tracking in-flight operations (singleflight).
    """

    def __init__(self) -> None:
        self._in_flight: Dict[str, InFlightRequest] = {}

    def get(self, key: str) -> Optional[InFlightRequest]:
        """Get an in-flight operation by key."""
        return self._in_flight.get(key)

    def set(self, key: str, request: InFlightRequest) -> None:
        """Register an in-flight operation."""
        self._in_flight[key] = request

    def delete(self, key: str) -> bool:
        """Remove an in-flight operation."""
        if key in self._in_flight:
            del self._in_flight[key]
            return True
        return False

    def has(self, key: str) -> bool:
        """Check if an operation is in-flight."""
        return key in self._in_flight

    def keys(self) -> list:
        """Get the keys of all in-flight operations."""
        return list(self._in_flight.keys())

    def size(self) -> int:
        """Get current number of in-flight operations."""
        return len(self._in_flight)

    def clear(self) -> None:
        """Clear all in-flight operations."""
        self._in_flight.clear()


def create_memory_discovery_store() -> MemoryDiscoveryStore:
    """Create a memory discovery store."""
    return MemoryDiscoveryStore()


def create_memory_singleflight_store() -> MemorySingleflightStore:
    """Create a memory singleflight store."""
    return MemorySingleflightStore()
