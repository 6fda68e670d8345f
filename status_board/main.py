"""Command-line entry point: run check cycles and log the results."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import signal
import sys

import httpx
import structlog

from status_board.aggregator import run_cycle
from status_board.config import DEFAULT_CONFIG_PATH, DashboardConfig, load_config
from status_board.models import OverallStatus
from status_board.presenter import ConsolePresenter, build_status_report
from status_board.scheduler import CycleScheduler


logger = structlog.get_logger(__name__)


def configure_logging(level_name: str) -> None:
    level = getattr(logging, str(level_name).upper(), logging.INFO)
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="ISO"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
    # Request-level chatter from the HTTP stack drowns the per-service lines.
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)


async def run_once(config: DashboardConfig) -> int:
    presenter = ConsolePresenter()
    async with httpx.AsyncClient(headers={"User-Agent": config.user_agent}) as client:
        summary = await run_cycle(
            config.services(),
            client=client,
            timeout_ms=config.probe_timeout_ms,
            probe_path=config.probe_path,
            on_result=presenter.on_result,
        )
    presenter.on_summary(summary)
    sys.stdout.write(build_status_report(summary))
    sys.stdout.flush()
    return 0 if summary.overall_status is OverallStatus.OPERATIONAL else 1


async def run_forever(config: DashboardConfig) -> int:
    presenter = ConsolePresenter()
    scheduler = CycleScheduler(
        config.services(),
        timeout_ms=config.probe_timeout_ms,
        refresh_interval_ms=config.refresh_interval_ms,
        probe_path=config.probe_path,
        user_agent=config.user_agent,
    )
    scheduler.add_result_listener(presenter.on_result)
    scheduler.add_summary_listener(presenter.on_summary)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # add_signal_handler is unavailable on Windows event loops.
            pass

    await scheduler.start()
    try:
        await stop_event.wait()
    finally:
        await scheduler.stop()
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Service status dashboard")
    parser.add_argument(
        "--config",
        default=os.getenv("STATUS_BOARD_CONFIG") or str(DEFAULT_CONFIG_PATH),
        help="Path to YAML config",
    )
    parser.add_argument("--once", action="store_true", help="Run one check cycle, print the report and exit")
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (INFO, WARNING, ...); defaults to the config value",
    )
    args = parser.parse_args()

    config = load_config(args.config)
    configure_logging(args.log_level or config.log_level)

    if args.once:
        return asyncio.run(run_once(config))
    return asyncio.run(run_forever(config))


if __name__ == "__main__":
    raise SystemExit(main())
