"""Engine controller: the Stopped/Running state machine."""

import asyncio
import random
from enum import Enum
from typing import Any

import structlog

from . import store as keys
from .clock import Clock
from .config import Config
from .executor import TaskExecutor
from .host import ResourceHost
from .scheduler import Scheduler
from .settings import SettingsRepository
from .store import StateStore
from .telemetry import BandwidthAggregator, EventLog, StatsTracker

logger = structlog.get_logger()


class EngineState(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"


def format_bytes(nbytes: int) -> str:
    if nbytes < 1024:
        return f"{nbytes} B"
    if nbytes < 1024**2:
        return f"{nbytes / 1024:.1f} KB"
    if nbytes < 1024**3:
        return f"{nbytes / 1024**2:.1f} MB"
    return f"{nbytes / 1024**3:.2f} GB"


class EngineController:
    """
    Single engine instance behind explicit start/stop/reconcile.

    The persisted ``running`` flag is the source of truth. The process
    hosting the engine may be restarted between any two calls, so every
    external entry point calls :meth:`reconcile` before doing anything else.
    """

    def __init__(
        self,
        config: Config,
        state: StateStore,
        host: ResourceHost,
        clock: Clock | None = None,
        rng: random.Random | None = None,
    ):
        self.config = config
        self.state = state
        self.host = host
        self.clock = clock or Clock(config.timezone)

        self.settings = SettingsRepository(state, config)
        self.event_log = EventLog(state, config.log_capacity, self.clock)
        self.bandwidth = BandwidthAggregator(
            state, self.clock, config.hourly_buckets, config.daily_buckets
        )
        self.stats = StatsTracker(state, self.clock)
        self.executor = TaskExecutor(
            host,
            config,
            self.event_log,
            self.bandwidth,
            self.stats,
            self.clock,
            is_active=lambda: self.running,
        )
        self.scheduler = Scheduler(config, self.settings, self.executor.run, rng)

        self.status = EngineState.STOPPED
        self._reconcile_lock = asyncio.Lock()

    @property
    def running(self) -> bool:
        return self.status is EngineState.RUNNING

    def rate_label(self, intensity: str) -> str:
        per_hour = self.config.lambda_for(intensity) * 3600 / self.config.tick_period_seconds
        return f"~{per_hour:.0f}/hr"

    async def start(self) -> None:
        await self.state.set(keys.RUNNING, True)
        self.status = EngineState.RUNNING
        self.bandwidth.reset_session()
        await self.state.set(keys.SESSION_START, self.clock.now().isoformat())

        intensity = await self.settings.get_intensity()
        await self.event_log.system(
            f"Engine started: intensity {intensity}, target rate {self.rate_label(intensity)}"
        )
        logger.info("engine_started", intensity=intensity)
        await self.scheduler.start_tick()

    async def stop(self) -> None:
        await self.state.set(keys.RUNNING, False)
        self.status = EngineState.STOPPED
        await self.scheduler.stop_tick()

        closed = await self.executor.close_all()
        noun = "resource" if closed == 1 else "resources"
        await self.event_log.system(
            f"Engine stopped: closed {closed} active task {noun}, "
            f"session bandwidth: {format_bytes(self.bandwidth.session_bytes)}"
        )
        logger.info("engine_stopped", closed=closed, session_bytes=self.bandwidth.session_bytes)

    async def reconcile(self) -> None:
        """
        Bring in-memory state in line with the persisted running flag.

        If the flag says Running but this instance is Stopped, the host
        discarded our state: resume without logging a fresh start, recreate
        the tick if it is missing and seed a batch if none is pending.
        Idempotent, and concurrent callers are serialized.
        """
        async with self._reconcile_lock:
            persisted = await self.state.get(keys.RUNNING, False)
            if not persisted or self.running:
                return

            self.status = EngineState.RUNNING
            created = await self.scheduler.resume()
            await self.event_log.system("Engine resumed after restart")
            logger.info("engine_resumed", tick_recreated=created)

    async def set_intensity(self, intensity: str) -> None:
        previous = await self.settings.get_intensity()
        await self.settings.set_intensity(intensity)
        await self.event_log.system(f"Intensity changed: {previous} -> {intensity}")
        if self.running:
            await self.scheduler.refresh_batch()

    async def get_status(self) -> dict[str, Any]:
        stats = await self.stats.get()
        return {
            "running": self.running,
            "intensity": await self.settings.get_intensity(),
            "stats": stats.to_wire(),
            "sessionBandwidth": self.bandwidth.session_bytes,
            "sessionStart": await self.state.get(keys.SESSION_START),
        }

    async def shutdown(self) -> None:
        """
        Host shutdown. Leaves the persisted running flag alone so the next
        process resumes where this one left off.
        """
        await self.scheduler.shutdown()
        closed = await self.executor.close_all()
        logger.info("engine_shutdown", closed=closed, running=self.running)
        self.status = EngineState.STOPPED
