"""Shared fixtures: an in-memory resource host, a controllable clock, small timings."""

import asyncio
import random
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

import pytest
import pytz

from poissonarr.clock import Clock
from poissonarr.config import Config
from poissonarr.engine import EngineController
from poissonarr.errors import CollaboratorAttachError, HandoffError, ResourceOpenError
from poissonarr.host import INTERACTION_COMPLETE, Resource, ResourceHost
from poissonarr.models import TaskDescriptor, TaskKind
from poissonarr.store import MemoryStore


@dataclass
class Behavior:
    """How a fake resource's collaborator responds."""
    load_delay: float = 0.0
    load_fails: bool = False
    attach_fails: bool = False
    handoff_failures: int = 0
    report: dict[str, Any] | None = field(
        default_factory=lambda: {"scrolls": 3, "clicks": 1, "bytesEstimated": 2048}
    )
    reply_after: float = 0.01
    close_fails: bool = False


class FakeResource(Resource):
    def __init__(self, url: str, behavior: Behavior):
        self.url = url
        self.behavior = behavior
        self.sent: list[dict[str, Any]] = []
        self.close_calls = 0
        self._handoff_failures = behavior.handoff_failures
        self._done = asyncio.get_running_loop().create_future()

    @property
    def closed(self) -> bool:
        return self.close_calls > 0

    async def load(self) -> None:
        if self.behavior.load_delay:
            await asyncio.sleep(self.behavior.load_delay)
        if self.behavior.load_fails:
            raise ResourceOpenError("connection refused")

    async def attach(self) -> None:
        if self.behavior.attach_fails:
            raise CollaboratorAttachError("restricted destination")

    async def send(self, message: dict[str, Any]) -> None:
        self.sent.append(message)
        if self._handoff_failures > 0:
            self._handoff_failures -= 1
            raise HandoffError("not listening yet")
        if self.behavior.report is not None:
            reply = {"event": INTERACTION_COMPLETE, **self.behavior.report}
            asyncio.get_running_loop().call_later(self.behavior.reply_after, self._reply, reply)

    def _reply(self, reply: dict[str, Any]) -> None:
        if not self._done.done():
            self._done.set_result(reply)

    async def completion(self) -> dict[str, Any]:
        return await asyncio.shield(self._done)

    async def close(self) -> None:
        self.close_calls += 1
        if self.behavior.close_fails:
            raise RuntimeError("already gone")


class FakeHost(ResourceHost):
    def __init__(
        self,
        behavior: Behavior | None = None,
        open_fails: bool = False,
        open_delay: float = 0.0,
        open_error: Exception | None = None,
    ):
        self.behavior = behavior or Behavior()
        self.open_fails = open_fails
        self.open_delay = open_delay
        self.open_error = open_error
        self.open_calls: list[str] = []
        self.resources: list[FakeResource] = []
        self.started = False
        self.closed = False

    async def start(self) -> None:
        self.started = True

    async def open(self, url: str) -> Resource:
        self.open_calls.append(url)
        if self.open_delay:
            await asyncio.sleep(self.open_delay)
        if self.open_error is not None:
            raise self.open_error
        if self.open_fails:
            raise ResourceOpenError("no more tabs")
        resource = FakeResource(url, self.behavior)
        self.resources.append(resource)
        return resource

    async def close(self) -> None:
        self.closed = True


class FixedClock(Clock):
    def __init__(self, start: datetime | None = None):
        super().__init__("UTC")
        self.current = start or datetime(2025, 2, 8, 14, 30, tzinfo=pytz.UTC)

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


def make_task(
    kind: TaskKind = TaskKind.BROWSE,
    target: str = "https://www.example.com",
    budget_ms: int = 40,
    offset: float = 0.0,
) -> TaskDescriptor:
    extra = {}
    if kind is TaskKind.SEARCH:
        extra = {"search_engine": "Google", "search_query": "why is the sky blue"}
    return TaskDescriptor(
        kind=kind,
        target=target,
        duration_budget_ms=budget_ms,
        scheduled_offset_sec=offset,
        **extra,
    )


@pytest.fixture
def config(tmp_path) -> Config:
    return Config(
        state_path=str(tmp_path / "state.json"),
        tick_period_seconds=3600,
        grace_ms=50,
        handoff_retry_delay_ms=10,
        log_capacity=20,
        duration_ranges_ms={
            "search": [20, 40],
            "browse": [30, 60],
            "adClick": [25, 45],
        },
    )


@pytest.fixture
def state() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def host() -> FakeHost:
    return FakeHost()


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)


@pytest.fixture
async def engine(config, state, host, clock, rng):
    engine = EngineController(config, state, host, clock=clock, rng=rng)
    yield engine
    await engine.shutdown()
