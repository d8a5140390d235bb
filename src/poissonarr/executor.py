"""
Task Executor

Owns one dispatched task from open to cleanup. Every opened resource is
released on every exit path, and every dispatched task that got past the
target check produces exactly one log entry.
"""

import asyncio
import itertools
from typing import Callable

import structlog
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_fixed

from .clock import Clock
from .config import Config
from .errors import CollaboratorAttachError, HandoffError, InvalidTargetError, ResourceOpenError
from .host import Resource, ResourceHost, check_target, interact_message, parse_completion
from .models import InteractionReport, InteractionSummary, LogEntry, TaskDescriptor, TaskKind, TaskStatus
from .telemetry import BandwidthAggregator, EventLog, StatsTracker

logger = structlog.get_logger()


def describe(task: TaskDescriptor) -> str:
    if task.kind is TaskKind.SEARCH:
        return f'Searched "{task.search_query}" on {task.search_engine}'
    if task.kind is TaskKind.AD_CLICK:
        return "Visited ad-heavy site"
    return "Browsed page"


def _plural(n: int, word: str) -> str:
    return f"{n} {word}" if n == 1 else f"{n} {word}s"


class TaskExecutor:
    """Runs single tasks against a resource host and records the outcome."""

    def __init__(
        self,
        host: ResourceHost,
        config: Config,
        event_log: EventLog,
        bandwidth: BandwidthAggregator,
        stats: StatsTracker,
        clock: Clock,
        is_active: Callable[[], bool],
    ):
        self.host = host
        self.config = config
        self.event_log = event_log
        self.bandwidth = bandwidth
        self.stats = stats
        self.clock = clock
        self.is_active = is_active
        self._open: dict[int, Resource] = {}
        self._slots = itertools.count()

    @property
    def in_flight(self) -> int:
        """Resources currently held open by running tasks."""
        return len(self._open)

    async def run(self, task: TaskDescriptor) -> LogEntry | None:
        """
        Execute one task to completion.

        Returns:
            The log entry written, or None when the task was dropped before
            it held a resource (engine stopped, or target rejected)
        """
        if not self.is_active():
            logger.debug("task_dropped_engine_stopped", kind=task.kind.value)
            return None

        try:
            check_target(task.target)
        except InvalidTargetError:
            logger.warning("invalid_target", target=task.target)
            await self.event_log.system(f"Skipped invalid URL: {task.target}")
            return None

        loop = asyncio.get_running_loop()
        started = loop.time()
        timeout = (task.duration_budget_ms + self.config.grace_ms) / 1000

        try:
            resource = await self.host.open(task.target)
        except ResourceOpenError as e:
            logger.warning("resource_open_failed", target=task.target, error=str(e))
            return await self._finish(
                task, TaskStatus.RESOURCE_FAILED, None, started, detail=str(e)
            )
        except Exception as e:
            logger.error("resource_open_crashed", target=task.target, error=repr(e))
            return await self._finish(
                task, TaskStatus.RESOURCE_FAILED, None, started, detail=str(e) or repr(e)
            )

        if not self.is_active():
            # stopped while the host was creating the resource
            logger.debug("task_dropped_engine_stopped", kind=task.kind.value)
            await self._close_quietly(resource)
            return None

        slot = next(self._slots)
        self._open[slot] = resource
        status, report, detail = TaskStatus.TIMEOUT, None, None
        try:
            # the deadline runs from dispatch, so loading counts against it
            remaining = max(0.0, started + timeout - loop.time())
            status, report, detail = await asyncio.wait_for(
                self._interact(task, resource, started), timeout=remaining
            )
        except asyncio.TimeoutError:
            logger.info("task_timed_out", kind=task.kind.value, timeout=timeout)
        except Exception as e:
            # A misbehaving collaborator must not take the engine down with it
            logger.error("task_failed", kind=task.kind.value, error=str(e))
        finally:
            await self._release(slot)

        return await self._finish(task, status, report, started, detail=detail)

    async def _interact(
        self, task: TaskDescriptor, resource: Resource, started: float
    ) -> tuple[TaskStatus, InteractionReport | None, str | None]:
        loop = asyncio.get_running_loop()
        try:
            await resource.load()
        except ResourceOpenError as e:
            logger.warning("resource_open_failed", target=task.target, error=str(e))
            return TaskStatus.RESOURCE_FAILED, None, str(e)

        if not self.is_active():
            # stop already force-closed the resource; nothing left to drive
            logger.debug("interaction_skipped_engine_stopped", kind=task.kind.value)
            return TaskStatus.TIMEOUT, None, None

        try:
            await resource.attach()
        except CollaboratorAttachError as e:
            # Restricted destination: the page still loaded, it just gets no interaction
            logger.info("collaborator_attach_failed", target=task.target, error=str(e))
            remaining = task.duration_budget_ms / 1000 - (loop.time() - started)
            if remaining > 0:
                await asyncio.sleep(remaining)
            report = InteractionReport(bytes_estimated=self.config.fallback_bytes)
            return TaskStatus.SUCCESS, report, None

        try:
            await self._hand_off(resource, task)
        except HandoffError:
            logger.info("handoff_failed", target=task.target)
            return TaskStatus.TIMEOUT, None, None

        message = await resource.completion()
        return TaskStatus.SUCCESS, parse_completion(message), None

    async def _hand_off(self, resource: Resource, task: TaskDescriptor) -> None:
        """Send ``interact``, retrying once if the collaborator was not listening yet."""
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(HandoffError),
            stop=stop_after_attempt(2),
            wait=wait_fixed(self.config.handoff_retry_delay_ms / 1000),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                await resource.send(interact_message(task))

    async def _release(self, slot: int) -> None:
        resource = self._open.pop(slot, None)
        if resource is None:
            # already force-closed by stop
            return
        await self._close_quietly(resource)

    async def _close_quietly(self, resource: Resource) -> None:
        try:
            await resource.close()
        except Exception as e:
            logger.debug("resource_close_failed", url=resource.url, error=str(e))

    async def close_all(self) -> int:
        """Force-close every resource still held by an in-flight task."""
        resources = list(self._open.values())
        self._open.clear()
        for resource in resources:
            await self._close_quietly(resource)
        return len(resources)

    async def _finish(
        self,
        task: TaskDescriptor,
        status: TaskStatus,
        report: InteractionReport | None,
        started: float,
        detail: str | None = None,
    ) -> LogEntry:
        if status is TaskStatus.RESOURCE_FAILED:
            nbytes = 0
        elif report is not None and report.bytes_estimated > 0:
            nbytes = report.bytes_estimated
        else:
            nbytes = self.config.fallback_bytes

        summary = report.summary if report is not None else InteractionSummary()
        duration_ms = int((asyncio.get_running_loop().time() - started) * 1000)

        await self.bandwidth.record(nbytes)
        await self.stats.record(task.kind)

        message = describe(task)
        if status is TaskStatus.TIMEOUT:
            message += " (timed out)"
        elif status is TaskStatus.RESOURCE_FAILED:
            message += f" (failed to open: {detail})" if detail else " (failed to open)"
        parts = []
        if summary.scrolls:
            parts.append(_plural(summary.scrolls, "scroll"))
        if summary.clicks:
            parts.append(_plural(summary.clicks, "click"))
        if parts:
            message += ": " + ", ".join(parts)

        entry = LogEntry(
            timestamp=self.clock.now(),
            kind=task.kind.value,
            target=task.target,
            search_engine=task.search_engine,
            search_query=task.search_query,
            duration_ms=duration_ms,
            interaction_summary=summary,
            bytes_estimated=nbytes,
            status=status,
            message=message,
        )
        await self.event_log.append(entry)
        logger.info(
            "task_finished",
            kind=task.kind.value,
            status=status.value,
            duration_ms=duration_ms,
            bytes=nbytes,
        )
        return entry
