"""
Telemetry

Bounded aggregates the engine keeps about its own activity:

- EventLog: newest-first ring buffer of log entries
- BandwidthAggregator: hour and day byte buckets plus a session counter
- StatsTracker: daily per-kind counters and all-time totals

All persisted aggregates are written through ``StateStore.update`` so
concurrent task completions are applied one at a time per key.
"""

from collections import deque
from typing import Any, Generic, Iterable, TypeVar

import structlog
from pydantic import ValidationError

from . import store as keys
from .clock import Clock
from .models import LogEntry, Stats, TaskKind
from .store import StateStore

logger = structlog.get_logger()

T = TypeVar("T")


class RingBuffer(Generic[T]):
    """Fixed-capacity buffer, newest first. Pushing past capacity drops the oldest."""

    def __init__(self, capacity: int, items: Iterable[T] = ()):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        # items arrive newest-first, so keep the head
        self._items: deque[T] = deque(list(items)[:capacity], maxlen=capacity)

    def push(self, item: T) -> None:
        self._items.appendleft(item)

    def clear(self) -> None:
        self._items.clear()

    def to_list(self) -> list[T]:
        return list(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self):
        return iter(self._items)


class EventLog:
    """Persisted activity log with a fixed capacity."""

    def __init__(self, state: StateStore, capacity: int, clock: Clock):
        self.state = state
        self.capacity = capacity
        self.clock = clock

    async def append(self, entry: LogEntry) -> None:
        row = entry.to_wire()

        def push(logs: list[dict[str, Any]]) -> list[dict[str, Any]]:
            ring = RingBuffer(self.capacity, logs if isinstance(logs, list) else [])
            ring.push(row)
            return ring.to_list()

        await self.state.update(keys.LOGS, push, [])

    async def system(self, message: str) -> None:
        """Append an ``info`` entry about the engine itself."""
        await self.append(LogEntry.system(message, self.clock.now()))

    async def raw_entries(self) -> list[dict[str, Any]]:
        logs = await self.state.get(keys.LOGS, [])
        if not isinstance(logs, list):
            return []
        return logs[: self.capacity]

    async def entries(self) -> list[LogEntry]:
        """Most recent first. Rows that no longer parse are skipped."""
        entries = []
        for row in await self.raw_entries():
            try:
                entries.append(LogEntry.model_validate(row))
            except ValidationError as e:
                logger.warning("log_entry_invalid", error=str(e))
        return entries

    async def clear(self) -> None:
        await self.state.set(keys.LOGS, [])
        await self.system("Logs cleared by user")


def _add_to_bucket(buckets: Any, key: str, nbytes: int, capacity: int) -> dict[str, int]:
    buckets = buckets if isinstance(buckets, dict) else {}
    buckets[key] = buckets.get(key, 0) + nbytes
    # keys sort chronologically; keep the newest `capacity` boundaries
    for stale in sorted(buckets)[:-capacity]:
        del buckets[stale]
    return buckets


class BandwidthAggregator:
    """Rolling hour/day byte buckets and an in-memory session total."""

    def __init__(
        self,
        state: StateStore,
        clock: Clock,
        hourly_capacity: int = 24,
        daily_capacity: int = 30,
    ):
        self.state = state
        self.clock = clock
        self.hourly_capacity = hourly_capacity
        self.daily_capacity = daily_capacity
        self.session_bytes = 0

    def reset_session(self) -> None:
        self.session_bytes = 0

    async def record(self, nbytes: int) -> None:
        if nbytes < 0:
            raise ValueError(f"byte count must be non-negative, got {nbytes}")
        self.session_bytes += nbytes

        now = self.clock.now()
        hour_key = self.clock.hour_key(now)
        day_key = self.clock.day_key(now)
        await self.state.update(
            keys.BANDWIDTH_HOURLY,
            lambda b: _add_to_bucket(b, hour_key, nbytes, self.hourly_capacity),
            {},
        )
        await self.state.update(
            keys.BANDWIDTH_DAILY,
            lambda b: _add_to_bucket(b, day_key, nbytes, self.daily_capacity),
            {},
        )

    async def hourly(self) -> dict[str, int]:
        buckets = await self.state.get(keys.BANDWIDTH_HOURLY, {})
        return buckets if isinstance(buckets, dict) else {}

    async def daily(self) -> dict[str, int]:
        buckets = await self.state.get(keys.BANDWIDTH_DAILY, {})
        return buckets if isinstance(buckets, dict) else {}


class StatsTracker:
    """Per-kind daily counters and the all-time action total."""

    def __init__(self, state: StateStore, clock: Clock):
        self.state = state
        self.clock = clock

    def _parse(self, raw: Any) -> Stats:
        today = self.clock.day_key()
        try:
            stats = Stats.model_validate(raw) if isinstance(raw, dict) else Stats(today=today)
        except ValidationError as e:
            logger.warning("stats_invalid", error=str(e))
            stats = Stats(today=today)
        stats.roll_over(today)
        return stats

    async def get(self) -> Stats:
        return self._parse(await self.state.get(keys.STATS))

    async def record(self, kind: TaskKind) -> Stats:
        def bump(raw: Any) -> dict[str, Any]:
            stats = self._parse(raw)
            stats.count(kind)
            return stats.to_wire()

        return Stats.model_validate(await self.state.update(keys.STATS, bump))
