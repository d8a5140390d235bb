import asyncio

import pytest

from conftest import Behavior, FakeHost, make_task
from poissonarr.errors import InvalidTargetError
from poissonarr.executor import TaskExecutor
from poissonarr.host import check_target
from poissonarr.models import TaskKind, TaskStatus
from poissonarr.telemetry import BandwidthAggregator, EventLog, StatsTracker


class Harness:
    def __init__(self, config, state, clock, host, active=True):
        self.active = active
        self.event_log = EventLog(state, config.log_capacity, clock)
        self.bandwidth = BandwidthAggregator(state, clock)
        self.stats = StatsTracker(state, clock)
        self.executor = TaskExecutor(
            host,
            config,
            self.event_log,
            self.bandwidth,
            self.stats,
            clock,
            is_active=lambda: self.active,
        )


@pytest.fixture
def make(config, state, clock):
    def factory(host, active=True):
        return Harness(config, state, clock, host, active)
    return factory


async def test_success_records_everything_once(make, host):
    h = make(host)
    entry = await h.executor.run(make_task(TaskKind.SEARCH))

    assert entry.status is TaskStatus.SUCCESS
    assert entry.interaction_summary.scrolls == 3
    assert entry.interaction_summary.clicks == 1
    assert entry.bytes_estimated == 2048
    assert entry.message == 'Searched "why is the sky blue" on Google: 3 scrolls, 1 click'

    [resource] = host.resources
    assert resource.close_calls == 1
    assert resource.sent == [{"command": "interact", "durationBudgetMs": 40, "kind": "search"}]
    assert h.executor.in_flight == 0

    stats = await h.stats.get()
    assert (stats.searches, stats.total_actions) == (1, 1)
    assert h.bandwidth.session_bytes == 2048
    assert len(await h.event_log.entries()) == 1


async def test_silent_collaborator_times_out_at_budget_plus_grace(make, config):
    host = FakeHost(Behavior(report=None))
    h = make(host)
    task = make_task(budget_ms=100)
    expected = (task.duration_budget_ms + config.grace_ms) / 1000

    loop = asyncio.get_running_loop()
    started = loop.time()
    entry = await h.executor.run(task)
    elapsed = loop.time() - started

    assert entry.status is TaskStatus.TIMEOUT
    assert elapsed >= expected
    assert elapsed < expected + 0.1
    assert entry.bytes_estimated == config.fallback_bytes
    assert entry.message == "Browsed page (timed out)"
    assert host.resources[0].close_calls == 1


async def test_open_failure_is_logged_without_retry(make):
    host = FakeHost(open_fails=True)
    h = make(host)
    entry = await h.executor.run(make_task(TaskKind.AD_CLICK))

    assert entry.status is TaskStatus.RESOURCE_FAILED
    assert entry.bytes_estimated == 0
    assert entry.interaction_summary.scrolls == 0
    assert entry.interaction_summary.clicks == 0
    assert len(host.open_calls) == 1
    assert host.resources == []
    assert h.bandwidth.session_bytes == 0


async def test_invalid_scheme_is_skipped_with_system_entry(make, host):
    h = make(host)
    result = await h.executor.run(make_task(target="javascript:alert(1)"))

    assert result is None
    assert host.open_calls == []
    [entry] = await h.event_log.entries()
    assert entry.kind == "system"
    assert entry.message == "Skipped invalid URL: javascript:alert(1)"


async def test_inactive_engine_drops_task_silently(make, host):
    h = make(host, active=False)
    assert await h.executor.run(make_task()) is None
    assert host.open_calls == []
    assert await h.event_log.entries() == []


async def test_attach_failure_waits_budget_then_succeeds(make, config):
    host = FakeHost(Behavior(attach_fails=True))
    h = make(host)
    task = make_task(budget_ms=80)

    loop = asyncio.get_running_loop()
    started = loop.time()
    entry = await h.executor.run(task)

    assert loop.time() - started >= 0.08
    assert entry.status is TaskStatus.SUCCESS
    assert entry.interaction_summary.scrolls == 0
    assert entry.bytes_estimated == config.fallback_bytes
    assert host.resources[0].sent == []
    assert host.resources[0].close_calls == 1


async def test_handoff_is_retried_once(make):
    host = FakeHost(Behavior(handoff_failures=1))
    h = make(host)
    entry = await h.executor.run(make_task())

    assert entry.status is TaskStatus.SUCCESS
    assert len(host.resources[0].sent) == 2


async def test_handoff_failing_twice_degrades_to_timeout(make):
    host = FakeHost(Behavior(handoff_failures=5))
    h = make(host)
    entry = await h.executor.run(make_task(budget_ms=1000))

    assert entry.status is TaskStatus.TIMEOUT
    assert len(host.resources[0].sent) == 2
    assert entry.duration_ms < 1000
    assert host.resources[0].close_calls == 1


async def test_close_failure_is_swallowed(make):
    host = FakeHost(Behavior(close_fails=True))
    h = make(host)
    entry = await h.executor.run(make_task())
    assert entry.status is TaskStatus.SUCCESS


async def test_malformed_report_counts_as_timeout(make, config):
    host = FakeHost(Behavior(report={"scrolls": "many"}))
    h = make(host)
    entry = await h.executor.run(make_task())
    assert entry.status is TaskStatus.TIMEOUT
    assert entry.bytes_estimated == config.fallback_bytes


async def test_zero_byte_report_uses_fallback_estimate(make, config):
    host = FakeHost(Behavior(report={"scrolls": 1, "clicks": 0, "bytesEstimated": 0}))
    h = make(host)
    entry = await h.executor.run(make_task())
    assert entry.bytes_estimated == config.fallback_bytes


async def test_close_all_closes_each_in_flight_resource_once(make):
    host = FakeHost(Behavior(report=None))
    h = make(host)
    runs = [asyncio.create_task(h.executor.run(make_task(budget_ms=300))) for _ in range(3)]
    while len(host.resources) < 3:
        await asyncio.sleep(0.005)

    assert h.executor.in_flight == 3
    assert await h.executor.close_all() == 3

    entries = await asyncio.gather(*runs)
    assert all(e.status is TaskStatus.TIMEOUT for e in entries)
    assert [r.close_calls for r in host.resources] == [1, 1, 1]


async def test_concurrent_completions_keep_counters_consistent(make, host):
    h = make(host)
    await asyncio.gather(*(h.executor.run(make_task()) for _ in range(12)))

    stats = await h.stats.get()
    assert stats.browses == 12
    assert stats.total_actions == 12
    assert len(await h.event_log.entries()) == 12
    assert h.bandwidth.session_bytes == 12 * 2048


@pytest.mark.parametrize("url", ["javascript:alert(1)", "file:///etc/passwd", "https://", "ftp://example.com"])
def test_check_target_rejects_non_web_urls(url):
    with pytest.raises(InvalidTargetError):
        check_target(url)


async def test_slow_load_counts_against_the_deadline(make, config):
    host = FakeHost(Behavior(load_delay=1.0))
    h = make(host)
    task = make_task(budget_ms=100)
    expected = (task.duration_budget_ms + config.grace_ms) / 1000

    loop = asyncio.get_running_loop()
    started = loop.time()
    run = asyncio.create_task(h.executor.run(task))
    await asyncio.sleep(0.02)

    # tracked while still loading
    assert h.executor.in_flight == 1

    entry = await run
    elapsed = loop.time() - started
    assert entry.status is TaskStatus.TIMEOUT
    assert expected <= elapsed < expected + 0.1
    assert host.resources[0].sent == []
    assert host.resources[0].close_calls == 1


async def test_load_failure_is_logged_as_resource_failed(make):
    host = FakeHost(Behavior(load_fails=True))
    h = make(host)
    entry = await h.executor.run(make_task())

    assert entry.status is TaskStatus.RESOURCE_FAILED
    assert entry.bytes_estimated == 0
    assert entry.message == "Browsed page (failed to open: connection refused)"
    assert host.resources[0].sent == []
    assert host.resources[0].close_calls == 1


async def test_unexpected_open_error_still_writes_one_entry(make):
    host = FakeHost(open_error=RuntimeError("browser crashed"))
    h = make(host)
    entry = await h.executor.run(make_task())

    assert entry.status is TaskStatus.RESOURCE_FAILED
    assert entry.message == "Browsed page (failed to open: browser crashed)"
    assert len(await h.event_log.entries()) == 1
    assert (await h.stats.get()).total_actions == 1


async def test_stop_during_open_closes_new_resource(make):
    host = FakeHost(open_delay=0.05)
    h = make(host)
    run = asyncio.create_task(h.executor.run(make_task()))
    await asyncio.sleep(0.01)
    h.active = False

    assert await run is None
    [resource] = host.resources
    assert resource.sent == []
    assert resource.close_calls == 1
    assert h.executor.in_flight == 0
