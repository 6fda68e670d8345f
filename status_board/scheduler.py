"""Cycle scheduling: startup, manual and periodic triggers behind an in-flight guard."""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Awaitable, Callable, Sequence

import httpx
import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from status_board.aggregator import run_cycle
from status_board.checker import ResultListener, notify_listener
from status_board.models import CycleSummary, ServiceDescriptor, ServiceResult
from status_board.probe import DEFAULT_PROBE_PATH, DEFAULT_PROBE_TIMEOUT_MS


logger = structlog.get_logger(__name__)

DEFAULT_REFRESH_INTERVAL_MS = 60_000
REFRESH_JOB_ID = "status-board-refresh"

SummaryListener = Callable[[CycleSummary], None]
CycleRunner = Callable[..., Awaitable[CycleSummary]]


class SchedulerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"


class CycleScheduler:
    """
    Decides when a check cycle runs and guarantees cycles never overlap.

    Any trigger that arrives while a cycle is running is dropped, not queued.
    The periodic tick is a plain recurring timer (APScheduler interval job),
    independent of when the previous cycle finished.
    """

    def __init__(
        self,
        services: Sequence[ServiceDescriptor],
        *,
        timeout_ms: int = DEFAULT_PROBE_TIMEOUT_MS,
        refresh_interval_ms: int = DEFAULT_REFRESH_INTERVAL_MS,
        probe_path: str = DEFAULT_PROBE_PATH,
        user_agent: str | None = None,
        cycle_runner: CycleRunner = run_cycle,
    ):
        self.services = tuple(services)
        self.timeout_ms = int(timeout_ms)
        self.refresh_interval_ms = int(refresh_interval_ms)
        self.probe_path = probe_path
        self.user_agent = user_agent
        self.cycle_runner = cycle_runner

        self.scheduler: AsyncIOScheduler | None = None
        self.cycles_completed = 0
        self.triggers_dropped = 0

        self._state = SchedulerState.IDLE
        self._idle = asyncio.Event()
        self._idle.set()
        self._last_summary: CycleSummary | None = None
        self._client: httpx.AsyncClient | None = None
        self._started = False
        self._stopping = False
        self._result_listeners: list[ResultListener] = []
        self._summary_listeners: list[SummaryListener] = []
        self._background: set[asyncio.Task] = set()

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is SchedulerState.RUNNING

    @property
    def last_summary(self) -> CycleSummary | None:
        return self._last_summary

    def add_result_listener(self, listener: ResultListener) -> None:
        self._result_listeners.append(listener)

    def add_summary_listener(self, listener: SummaryListener) -> None:
        self._summary_listeners.append(listener)

    def _emit_result(self, result: ServiceResult) -> None:
        for listener in list(self._result_listeners):
            notify_listener(listener, result)

    def _emit_summary(self, summary: CycleSummary) -> None:
        for listener in list(self._summary_listeners):
            notify_listener(listener, summary)

    def _claim(self, reason: str) -> bool:
        # Check-and-set with no await in between: atomic on the event loop.
        if self._stopping:
            self.triggers_dropped += 1
            logger.info("Scheduler stopping; trigger dropped", reason=reason)
            return False
        if self._state is SchedulerState.RUNNING:
            self.triggers_dropped += 1
            logger.info("Cycle already running; trigger dropped", reason=reason)
            return False
        self._state = SchedulerState.RUNNING
        self._idle.clear()
        return True

    async def _run_claimed(self, reason: str) -> CycleSummary:
        logger.info("Cycle started", reason=reason, services=len(self.services))
        try:
            self._emit_summary(CycleSummary.loading())
            summary = await self.cycle_runner(
                self.services,
                client=self._client,
                timeout_ms=self.timeout_ms,
                probe_path=self.probe_path,
                on_result=self._emit_result,
            )
            self._last_summary = summary
            self.cycles_completed += 1
            logger.info(
                "Cycle complete",
                reason=reason,
                overall_status=summary.overall_status.value,
                message=summary.message,
            )
            self._emit_summary(summary)
            return summary
        finally:
            self._state = SchedulerState.IDLE
            self._idle.set()

    async def trigger(self, reason: str = "manual") -> bool:
        """Run one cycle now unless one is in flight. Returns whether a cycle ran."""
        if not self._claim(reason):
            return False
        await self._run_claimed(reason)
        return True

    def request_refresh(self) -> bool:
        """
        Manual refresh from the presentation layer.

        Claims the cycle synchronously and runs it in the background, so two
        rapid requests can never both be accepted.
        """
        if not self._claim("manual"):
            return False
        self._spawn(self._run_claimed("manual"))
        return True

    def _spawn(self, coro: Awaitable) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._on_background_done)
        return task

    def _on_background_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Background cycle crashed", error=f"{type(exc).__name__}: {exc}", exc_info=exc)

    async def _tick(self) -> None:
        await self.trigger("interval")

    async def start(self) -> None:
        """Open the shared HTTP client, register the interval timer, kick off the startup cycle."""
        if self._started:
            logger.warning("Scheduler already started")
            return
        headers = {"User-Agent": self.user_agent} if self.user_agent else None
        self._client = httpx.AsyncClient(headers=headers)
        self._stopping = False

        self.scheduler = AsyncIOScheduler(event_loop=asyncio.get_running_loop())
        self.scheduler.add_job(
            self._tick,
            trigger=IntervalTrigger(seconds=self.refresh_interval_ms / 1000.0),
            id=REFRESH_JOB_ID,
            name="Periodic status refresh",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self.scheduler.start()
        self._started = True
        logger.info(
            "Scheduler started",
            services=len(self.services),
            refresh_interval_ms=self.refresh_interval_ms,
            timeout_ms=self.timeout_ms,
        )

        if self._claim("startup"):
            self._spawn(self._run_claimed("startup"))

    async def wait_idle(self) -> None:
        await self._idle.wait()

    async def stop(self) -> None:
        if not self._started:
            return
        self._stopping = True
        if self.scheduler is not None:
            self.scheduler.shutdown(wait=False)
        self._started = False
        # No mid-cycle cancellation: an in-flight cycle runs to completion.
        await self.wait_idle()
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        logger.info("Scheduler stopped", cycles_completed=self.cycles_completed)
