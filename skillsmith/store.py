"""Key-value persistence for skill registrations and conversations."""

import asyncio
import copy
import json
import tempfile
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any
from urllib.parse import quote, unquote


class KeyValueStore(ABC):
    """Async get/put/delete/list store. Values are JSON-compatible."""

    @abstractmethod
    async def get(self, key: str, default: Any = None) -> Any:
        ...

    @abstractmethod
    async def put(self, key: str, value: Any) -> None:
        ...

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Remove a key. Returns False if it did not exist."""
        ...

    @abstractmethod
    async def list(self, prefix: str = "") -> dict[str, Any]:
        """Return every entry whose key starts with ``prefix``."""
        ...


class MemoryStore(KeyValueStore):
    def __init__(self):
        self._data: dict[str, Any] = {}

    async def get(self, key: str, default: Any = None) -> Any:
        if key not in self._data:
            return default
        return copy.deepcopy(self._data[key])

    async def put(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)

    async def delete(self, key: str) -> bool:
        if key not in self._data:
            return False
        del self._data[key]
        return True

    async def list(self, prefix: str = "") -> dict[str, Any]:
        return {
            k: copy.deepcopy(v) for k, v in self._data.items() if k.startswith(prefix)
        }


class FileStore(KeyValueStore):
    """One JSON file per key under ``root``."""

    def __init__(self, root: str | Path):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _file(self, key: str) -> Path:
        return self.root / f"{quote(key, safe='')}.json"

    def _read(self, path: Path) -> Any:
        return json.loads(path.read_text())

    async def get(self, key: str, default: Any = None) -> Any:
        path = self._file(key)
        if not path.exists():
            return default
        return await asyncio.to_thread(self._read, path)

    async def put(self, key: str, value: Any) -> None:
        payload = json.dumps(value, default=str)
        path = self._file(key)

        def _write():
            with tempfile.NamedTemporaryFile(
                "w", dir=self.root, suffix=".tmp", delete=False
            ) as tmp:
                tmp.write(payload)
            Path(tmp.name).replace(path)

        await asyncio.to_thread(_write)

    async def delete(self, key: str) -> bool:
        path = self._file(key)
        if not path.exists():
            return False
        await asyncio.to_thread(path.unlink)
        return True

    async def list(self, prefix: str = "") -> dict[str, Any]:
        entries = {}
        for path in sorted(self.root.glob("*.json")):
            key = unquote(path.stem)
            if key.startswith(prefix):
                entries[key] = await asyncio.to_thread(self._read, path)
        return entries


class KeyedLocks:
    """One asyncio.Lock per partition key (user id, session id).

    A key's lock is dropped once no task holds or waits on it.
    """

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def __call__(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]
