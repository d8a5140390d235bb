"""
Scheduler

Drives the recurring tick. Each tick hands the pending batch to one timer
per task and builds the next batch in the background, so a batch is always
generated one period ahead of its dispatch.
"""

import asyncio
import random
from enum import Enum
from typing import Awaitable, Callable, Coroutine

import structlog

from .config import Config
from .generator import TaskGenerator
from .models import TaskDescriptor
from .settings import SettingsRepository

logger = structlog.get_logger()


class SchedulerState(str, Enum):
    IDLE = "idle"
    ACTIVE = "active"


class Scheduler:
    """Periodic batch generation and per-task dispatch timing."""

    def __init__(
        self,
        config: Config,
        settings: SettingsRepository,
        dispatch: Callable[[TaskDescriptor], Awaitable[object]],
        rng: random.Random | None = None,
    ):
        self.config = config
        self.settings = settings
        self.dispatch = dispatch
        self.rng = rng or random.Random()
        self.period = config.tick_period_seconds

        self.state = SchedulerState.IDLE
        self.pending: list[TaskDescriptor] = []
        self.ticks_created = 0
        self._tick: asyncio.Task | None = None
        self._timers: set[asyncio.TimerHandle] = set()
        self._builds: set[asyncio.Task] = set()
        self._dispatched: set[asyncio.Task] = set()

    @property
    def active(self) -> bool:
        return self.state is SchedulerState.ACTIVE

    @property
    def has_tick(self) -> bool:
        return self._tick is not None and not self._tick.done()

    @property
    def armed(self) -> int:
        """Per-task timers armed but not yet fired."""
        return len(self._timers)

    async def build_batch(self) -> list[TaskDescriptor]:
        """Generate one window of tasks at the current intensity."""
        settings = await self.settings.snapshot()
        intensity = await self.settings.get_intensity()
        arrivals = self.config.lambda_for(intensity)

        generator = TaskGenerator(self.config, settings, self.rng)
        batch = generator.build_batch(arrivals, self.period)
        logger.info(
            "batch_scheduled",
            size=len(batch),
            intensity=intensity,
            rate=arrivals,
            period=self.period,
        )
        return batch

    async def refresh_batch(self) -> None:
        """Replace the pending batch wholesale."""
        batch = await self.build_batch()
        # stop may have landed while settings were being read
        if self.active:
            self.pending = batch

    async def start_tick(self) -> None:
        """Idle -> Active: build the first batch and arm the recurring tick."""
        self.state = SchedulerState.ACTIVE
        await self.refresh_batch()
        self.ensure_tick()

    async def resume(self) -> bool:
        """
        Bring an Active scheduler back after in-memory state was lost.

        Recreates the tick only if it is missing and seeds a batch only if
        none is pending.

        Returns:
            True if a tick had to be recreated
        """
        self.state = SchedulerState.ACTIVE
        created = self.ensure_tick()
        if not self.pending:
            await self.refresh_batch()
        return created

    def ensure_tick(self) -> bool:
        if self.has_tick:
            return False
        self._tick = asyncio.create_task(self._tick_loop(), name="poissonarr-tick")
        self.ticks_created += 1
        return True

    async def _tick_loop(self) -> None:
        while True:
            await asyncio.sleep(self.period)
            try:
                await self.on_tick()
            except Exception as e:
                logger.error("tick_failed", error=str(e))

    async def on_tick(self) -> None:
        if not self.active:
            return

        due, self.pending = self.pending, []
        self._spawn(self.refresh_batch(), self._builds)

        loop = asyncio.get_running_loop()
        for task in due:
            self._arm(loop, task)
        logger.debug("tick_dispatched", due=len(due))

    def _arm(self, loop: asyncio.AbstractEventLoop, task: TaskDescriptor) -> None:
        handle: asyncio.TimerHandle | None = None

        def fire() -> None:
            self._timers.discard(handle)
            if not self.active:
                return
            logger.debug("task_dispatched", kind=task.kind.value, offset=task.scheduled_offset_sec)
            self._spawn(self.dispatch(task), self._dispatched)

        handle = loop.call_later(task.scheduled_offset_sec, fire)
        self._timers.add(handle)

    def _spawn(self, coro: Coroutine, bucket: set[asyncio.Task]) -> asyncio.Task:
        task = asyncio.create_task(coro)
        bucket.add(task)
        task.add_done_callback(bucket.discard)
        return task

    async def stop_tick(self) -> None:
        """
        Active -> Idle: cancel the tick, undispatched timers and any batch
        still being built. Tasks already dispatched keep running.
        """
        self.state = SchedulerState.IDLE
        self.pending = []

        for handle in self._timers:
            handle.cancel()
        self._timers.clear()

        for task in list(self._builds):
            task.cancel()

        if self._tick is not None:
            self._tick.cancel()
            try:
                await self._tick
            except asyncio.CancelledError:
                pass
            self._tick = None

    async def shutdown(self) -> None:
        """Host shutdown: stop ticking and cancel in-flight dispatches too."""
        await self.stop_tick()
        dispatched = list(self._dispatched)
        for task in dispatched:
            task.cancel()
        await asyncio.gather(*dispatched, return_exceptions=True)

    async def wait_dispatched(self) -> None:
        """Wait for every dispatched task to finish."""
        while self._dispatched:
            await asyncio.gather(*list(self._dispatched), return_exceptions=True)
