from __future__ import annotations

import asyncio

import pytest
from structlog.testing import capture_logs

from status_board.models import CycleSummary, OverallStatus, ServiceDescriptor, ServiceResult, ServiceStatus
from status_board.scheduler import REFRESH_JOB_ID, CycleScheduler, SchedulerState


SERVICES = (
    ServiceDescriptor(name="a", url="https://a.example", category="Core"),
    ServiceDescriptor(name="b", url="https://b.example", category="Core"),
)


class GatedRunner:
    """Cycle runner that blocks until released, counting invocations."""

    def __init__(self) -> None:
        self.gate = asyncio.Event()
        self.calls = 0
        self.entered = asyncio.Event()

    async def __call__(self, services, *, client=None, timeout_ms=0, probe_path="", on_result=None) -> CycleSummary:
        self.calls += 1
        self.entered.set()
        await self.gate.wait()
        results = tuple(
            ServiceResult(service=s, status=ServiceStatus.OPERATIONAL, response_time_ms=1) for s in services
        )
        if on_result is not None:
            for r in results:
                on_result(r)
        return CycleSummary(overall_status=OverallStatus.OPERATIONAL, message="All systems operational", results=results)


@pytest.mark.asyncio
async def test_trigger_runs_a_cycle_and_publishes_loading_then_summary() -> None:
    runner = GatedRunner()
    runner.gate.set()
    sched = CycleScheduler(SERVICES, cycle_runner=runner)
    summaries: list[CycleSummary] = []
    results: list[ServiceResult] = []
    sched.add_summary_listener(summaries.append)
    sched.add_result_listener(results.append)

    assert sched.state is SchedulerState.IDLE
    ran = await sched.trigger("manual")

    assert ran is True
    assert sched.state is SchedulerState.IDLE
    assert [s.overall_status for s in summaries] == [OverallStatus.LOADING, OverallStatus.OPERATIONAL]
    assert summaries[0].message == "Checking services..."
    assert [r.service.name for r in results] == ["a", "b"]
    assert sched.last_summary is summaries[-1]
    assert sched.cycles_completed == 1


@pytest.mark.asyncio
async def test_trigger_while_running_is_dropped() -> None:
    runner = GatedRunner()
    sched = CycleScheduler(SERVICES, cycle_runner=runner)
    finals: list[CycleSummary] = []
    sched.add_summary_listener(lambda s: finals.append(s) if s.overall_status is not OverallStatus.LOADING else None)

    first = asyncio.create_task(sched.trigger("manual"))
    await runner.entered.wait()
    assert sched.is_running is True

    second = await sched.trigger("manual")
    assert second is False
    assert sched.triggers_dropped == 1

    runner.gate.set()
    assert await first is True
    assert runner.calls == 1
    assert len(finals) == 1
    assert sched.is_running is False


@pytest.mark.asyncio
async def test_request_refresh_claims_synchronously() -> None:
    runner = GatedRunner()
    sched = CycleScheduler(SERVICES, cycle_runner=runner)

    assert sched.request_refresh() is True
    # Still running: the second click must be refused before the first cycle even started.
    assert sched.request_refresh() is False
    assert sched.is_running is True

    runner.gate.set()
    await sched.wait_idle()
    assert runner.calls == 1
    assert sched.cycles_completed == 1

    # Idle again: a new refresh is accepted.
    assert sched.request_refresh() is True
    await sched.wait_idle()
    assert runner.calls == 2


@pytest.mark.asyncio
async def test_failed_cycle_returns_to_idle_and_next_cycle_runs() -> None:
    calls = 0

    async def flaky_runner(services, **kwargs) -> CycleSummary:
        nonlocal calls
        calls += 1
        if calls == 1:
            raise RuntimeError("boom")
        return CycleSummary(overall_status=OverallStatus.OPERATIONAL, message="All systems operational")

    sched = CycleScheduler(SERVICES, cycle_runner=flaky_runner)
    with pytest.raises(RuntimeError):
        await sched.trigger("manual")
    assert sched.state is SchedulerState.IDLE
    assert sched.last_summary is None

    assert await sched.trigger("interval") is True
    assert sched.last_summary is not None


@pytest.mark.asyncio
async def test_start_runs_startup_cycle_and_registers_interval_job() -> None:
    runner = GatedRunner()
    runner.gate.set()
    sched = CycleScheduler(SERVICES, refresh_interval_ms=60_000, cycle_runner=runner)

    await sched.start()
    try:
        job = sched.scheduler.get_job(REFRESH_JOB_ID)
        assert job is not None
        assert job.trigger.interval.total_seconds() == 60.0

        await sched.wait_idle()
        assert runner.calls == 1
        assert sched.last_summary is not None
    finally:
        await sched.stop()

    assert sched.scheduler.running is False


@pytest.mark.asyncio
async def test_interval_tick_respects_in_flight_guard() -> None:
    runner = GatedRunner()
    sched = CycleScheduler(SERVICES, cycle_runner=runner)

    assert sched.request_refresh() is True
    await runner.entered.wait()
    await sched._tick()
    assert runner.calls == 1

    runner.gate.set()
    await sched.wait_idle()
    await sched._tick()
    assert runner.calls == 2


@pytest.mark.asyncio
async def test_stop_waits_for_in_flight_cycle() -> None:
    runner = GatedRunner()
    sched = CycleScheduler(SERVICES, cycle_runner=runner)
    await sched.start()
    await runner.entered.wait()

    stopper = asyncio.create_task(sched.stop())
    await asyncio.sleep(0.05)
    assert stopper.done() is False

    runner.gate.set()
    await stopper
    assert sched.cycles_completed == 1
    assert sched.is_running is False


@pytest.mark.asyncio
async def test_refresh_during_stop_is_dropped() -> None:
    runner = GatedRunner()
    sched = CycleScheduler(SERVICES, cycle_runner=runner)
    await sched.start()
    await runner.entered.wait()

    stopper = asyncio.create_task(sched.stop())
    await asyncio.sleep(0.05)
    runner.gate.set()
    await asyncio.sleep(0)
    # The startup cycle may have finished by now, but a stopping scheduler still refuses work.
    assert sched.request_refresh() is False
    assert await sched.trigger("interval") is False

    await stopper
    assert runner.calls == 1
    assert sched.is_running is False
    assert sched.triggers_dropped == 2


@pytest.mark.asyncio
async def test_background_crash_is_logged_with_traceback() -> None:
    async def broken_runner(services, **kwargs) -> CycleSummary:
        raise RuntimeError("boom")

    sched = CycleScheduler(SERVICES, cycle_runner=broken_runner)
    with capture_logs() as logs:
        assert sched.request_refresh() is True
        await sched.wait_idle()
        await asyncio.sleep(0.01)

    crashes = [e for e in logs if e["event"] == "Background cycle crashed"]
    assert len(crashes) == 1
    assert crashes[0]["log_level"] == "error"
    assert isinstance(crashes[0]["exc_info"], RuntimeError)
    assert sched.state is SchedulerState.IDLE
