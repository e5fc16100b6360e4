"""
JSON file store for discovery documents.

Keeps one file per cache key so a bootstrap document fetched by one
process is found by the next one.
"""
import asyncio
import json
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Any, Optional, Union

from ..types import DiscoveryCacheStore

logger = logging.getLogger("discovery_cache.stores.file")

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9._-]")


class FileDiscoveryStore(DiscoveryCacheStore):
    """
    Discovery store persisting each document as ``<directory>/<key>.json``.

    Writes land in a temporary file that is then renamed over the target,
    so readers only ever see a complete document.

    Example:
        store = FileDiscoveryStore("~/.cache/my-sdk")
        await store.set_item("sdk-initial", initial_data)
    """

    def __init__(self, directory: Union[str, Path]) -> None:
        self._directory = Path(directory).expanduser()

    @property
    def directory(self) -> Path:
        return self._directory

    def _path_for(self, key: str) -> Path:
        return self._directory / f"{_UNSAFE_KEY_CHARS.sub('_', key)}.json"

    def _read(self, key: str) -> Optional[Any]:
        path = self._path_for(key)
        if not path.exists():
            return None
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable cache file {path}: {e}")
            return None

    def _write(self, key: str, value: Any) -> None:
        self._directory.mkdir(parents=True, exist_ok=True)
        path = self._path_for(key)
        fd, tmp_name = tempfile.mkstemp(dir=self._directory, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(value, fh)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.debug(f"Wrote cache file {path}")

    def _remove(self, key: str) -> None:
        self._path_for(key).unlink(missing_ok=True)

    def _clear(self) -> None:
        if not self._directory.exists():
            return
        for path in self._directory.glob("*.json"):
            path.unlink(missing_ok=True)

    async def get_item(self, key: str) -> Optional[Any]:
        """Get a stored document by key."""
        return await asyncio.to_thread(self._read, key)

    async def set_item(self, key: str, value: Any) -> None:
        """Store a document, replacing any previous file."""
        await asyncio.to_thread(self._write, key, value)

    async def remove_item(self, key: str) -> None:
        """Remove a stored document."""
        await asyncio.to_thread(self._remove, key)

    async def clear(self) -> None:
        """Remove every stored document in the directory."""
        await asyncio.to_thread(self._clear)

    async def close(self) -> None:
        """Nothing to release; files stay on disk."""
        pass


def create_file_discovery_store(directory: Union[str, Path]) -> FileDiscoveryStore:
    """Create a file discovery store."""
    return FileDiscoveryStore(directory)
