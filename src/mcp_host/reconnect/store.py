"""Durable key-value storage for the server catalog and connection states.

Values are JSON-compatible. The file store keeps every key in one JSON
document and rewrites it on each change.
"""

from __future__ import annotations

import copy
import json
from abc import abstractmethod
from pathlib import Path
from typing import Any, Dict, Optional, Protocol, Union, runtime_checkable

import aiofiles
import aiofiles.os

from ..observability.logging import get_logger

logger = get_logger(__name__)

SERVERS_KEY = "mcp_servers"
CONNECTION_STATES_KEY = "mcp_connection_states"


@runtime_checkable
class KeyValueStore(Protocol):
    """Protocol for the storage the catalog and supervisor persist into."""

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """Return the value stored under ``key``, or None."""
        ...

    @abstractmethod
    async def set(self, key: str, value: Any) -> None:
        """Store ``value`` under ``key``."""
        ...

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Remove ``key``; returns whether it existed."""
        ...


class InMemoryKeyValueStore:
    """Store kept in process memory. Values are deep-copied in and out."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None) -> None:
        self._data: Dict[str, Any] = copy.deepcopy(initial or {})

    async def get(self, key: str) -> Optional[Any]:
        return copy.deepcopy(self._data.get(key))

    async def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)

    async def delete(self, key: str) -> bool:
        if key in self._data:
            del self._data[key]
            return True
        return False


class FileKeyValueStore:
    """Store backed by a single JSON file.

    File layout:
        {"mcp_servers": [...], "mcp_connection_states": {...}}
    """

    def __init__(self, path: Union[str, Path]) -> None:
        """
        Args:
            path: JSON file to read and write. Parent directories are created.
        """
        self._path = Path(path)
        self._cache: Optional[Dict[str, Any]] = None

    @property
    def path(self) -> Path:
        return self._path

    async def _ensure_directory(self) -> None:
        if not self._path.parent.exists():
            await aiofiles.os.makedirs(str(self._path.parent), exist_ok=True)

    async def _load_cache(self) -> Dict[str, Any]:
        if self._cache is not None:
            return self._cache

        if not self._path.exists():
            self._cache = {}
            return self._cache

        try:
            async with aiofiles.open(self._path, "r", encoding="utf-8") as f:
                content = await f.read()
            data = json.loads(content) if content.strip() else {}
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Ignoring unreadable state file", path=str(self._path), error=str(e))
            data = {}
        self._cache = data if isinstance(data, dict) else {}
        return self._cache

    async def _save_cache(self) -> None:
        await self._ensure_directory()
        async with aiofiles.open(self._path, "w", encoding="utf-8") as f:
            await f.write(json.dumps(self._cache, indent=2, ensure_ascii=False))

    async def get(self, key: str) -> Optional[Any]:
        cache = await self._load_cache()
        return copy.deepcopy(cache.get(key))

    async def set(self, key: str, value: Any) -> None:
        cache = await self._load_cache()
        cache[key] = copy.deepcopy(value)
        await self._save_cache()

    async def delete(self, key: str) -> bool:
        cache = await self._load_cache()
        if key in cache:
            del cache[key]
            await self._save_cache()
            return True
        return False
