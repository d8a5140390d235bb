"""
State Store

Key-value persistence that outlives the engine process. The engine keeps
nothing it needs across restarts anywhere else.

Read-modify-write on a key goes through :meth:`StateStore.update`, which holds
a per-key lock so concurrent task completions never lose each other's writes.
"""

import asyncio
import copy
import json
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable

import structlog

logger = structlog.get_logger()

# Persisted keys
RUNNING = "running"
INTENSITY = "intensity"
ENGINE_SETTINGS = "engineSettings"
TASK_WEIGHTS = "taskWeights"
CATEGORY_SETTINGS = "categorySettings"
STATS = "stats"
LOGS = "logs"
BANDWIDTH_HOURLY = "bandwidthHourly"
BANDWIDTH_DAILY = "bandwidthDaily"
SESSION_START = "sessionStart"

_MISSING = object()


class StateStore(ABC):
    """Async key-value store with per-key serialized updates."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    @abstractmethod
    async def _read(self, key: str) -> Any:
        """Return the stored value, or ``_MISSING``."""
        ...

    @abstractmethod
    async def _write(self, key: str, value: Any) -> None:
        ...

    async def get(self, key: str, default: Any = None) -> Any:
        """Get a value, falling back to ``default`` if absent."""
        value = await self._read(key)
        if value is _MISSING or value is None:
            return copy.deepcopy(default)
        return value

    async def set(self, key: str, value: Any) -> None:
        async with self._lock(key):
            await self._write(key, value)

    async def update(self, key: str, fn: Callable[[Any], Any], default: Any = None) -> Any:
        """
        Apply ``fn`` to the current value of ``key`` and store the result.

        Updates of the same key run one at a time; different keys do not
        block each other.

        Returns:
            The value written
        """
        async with self._lock(key):
            current = await self.get(key, default)
            new = fn(current)
            await self._write(key, new)
            return new


class MemoryStore(StateStore):
    """Store held in a dict. Survives engine instances, not the process."""

    def __init__(self, data: dict[str, Any] | None = None) -> None:
        super().__init__()
        self.data: dict[str, Any] = data if data is not None else {}

    async def _read(self, key: str) -> Any:
        if key not in self.data:
            return _MISSING
        return copy.deepcopy(self.data[key])

    async def _write(self, key: str, value: Any) -> None:
        self.data[key] = copy.deepcopy(value)


class JsonFileStore(StateStore):
    """
    Store backed by a single JSON document on disk.

    Writes replace the file atomically. An unreadable or corrupt file reads
    as empty so every accessor falls back to its defaults.
    """

    def __init__(self, path: Path | str) -> None:
        super().__init__()
        self.path = Path(path)
        self._file_lock = asyncio.Lock()

    def _load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("state_read_failed", path=str(self.path), error=str(e))
            return {}
        if isinstance(payload, dict):
            return payload
        logger.warning("state_not_a_mapping", path=str(self.path))
        return {}

    def _save(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".state-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
            os.replace(tmp, self.path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    async def _read(self, key: str) -> Any:
        data = await asyncio.to_thread(self._load)
        return data.get(key, _MISSING)

    async def _write(self, key: str, value: Any) -> None:
        async with self._file_lock:
            data = await asyncio.to_thread(self._load)
            data[key] = value
            await asyncio.to_thread(self._save, data)
