"""
Store implementations for discovery_cache.
"""
from .memory import (
    MemoryDiscoveryStore,
    MemorySingleflightStore,
    create_memory_discovery_store,
    create_memory_singleflight_store,
)
from .file import FileDiscoveryStore, create_file_discovery_store

__all__ = [
    "MemoryDiscoveryStore",
    "MemorySingleflightStore",
    "FileDiscoveryStore",
    "create_memory_discovery_store",
    "create_memory_singleflight_store",
    "create_file_discovery_store",
]
