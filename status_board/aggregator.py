from __future__ import annotations

import asyncio
import time
from datetime import datetime, timezone
from typing import Iterable, Sequence

import httpx
import structlog

from status_board.checker import ResultListener, ServiceChecker, unverified_result
from status_board.models import CycleSummary, OverallStatus, ServiceDescriptor, ServiceResult, ServiceStatus
from status_board.probe import DEFAULT_PROBE_PATH, DEFAULT_PROBE_TIMEOUT_MS


logger = structlog.get_logger(__name__)

MESSAGE_ALL_OPERATIONAL = "All systems operational"
MESSAGE_ISSUES = "Some services are experiencing issues"
MESSAGE_UNVERIFIED = "Some services could not be verified"
MESSAGE_DEGRADED = "Some services are degraded"


def derive_overall_status(results: Iterable[ServiceResult]) -> tuple[OverallStatus, str]:
    """
    Collapse per-service results into one indicator.

    Precedence: all operational, then any down, then any unknown, then
    degraded. An empty set is vacuously operational.
    """
    statuses = [r.status for r in results]
    if all(s is ServiceStatus.OPERATIONAL for s in statuses):
        return OverallStatus.OPERATIONAL, MESSAGE_ALL_OPERATIONAL
    if any(s is ServiceStatus.DOWN for s in statuses):
        return OverallStatus.DOWN, MESSAGE_ISSUES
    if any(s is ServiceStatus.UNKNOWN for s in statuses):
        return OverallStatus.DEGRADED, MESSAGE_UNVERIFIED
    return OverallStatus.DEGRADED, MESSAGE_DEGRADED


async def _check_isolated(checker: ServiceChecker, service: ServiceDescriptor) -> ServiceResult:
    try:
        return await checker.check(service)
    except Exception as exc:
        err = f"{type(exc).__name__}: {exc}"
        logger.exception("Service check crashed", service=service.name, error=err)
        return unverified_result(service, f"Check failed: {err}")


async def _run_with_client(
    services: Sequence[ServiceDescriptor],
    client: httpx.AsyncClient,
    *,
    timeout_ms: int,
    probe_path: str,
    on_result: ResultListener | None,
) -> CycleSummary:
    checker = ServiceChecker(client, timeout_ms=timeout_ms, probe_path=probe_path, on_result=on_result)
    started = time.perf_counter()

    tasks = [asyncio.create_task(_check_isolated(checker, service)) for service in services]
    # gather keeps input order no matter which probe settles first.
    results = tuple(await asyncio.gather(*tasks)) if tasks else ()

    overall, message = derive_overall_status(results)
    summary = CycleSummary(
        overall_status=overall,
        message=message,
        results=results,
        completed_at=datetime.now(timezone.utc),
    )
    logger.info(
        "Cycle aggregated",
        services=len(results),
        overall_status=overall.value,
        down=sum(1 for r in results if r.status is ServiceStatus.DOWN),
        unknown=sum(1 for r in results if r.status is ServiceStatus.UNKNOWN),
        elapsed_ms=int(round((time.perf_counter() - started) * 1000.0)),
    )
    return summary


async def run_cycle(
    services: Sequence[ServiceDescriptor],
    *,
    client: httpx.AsyncClient | None = None,
    timeout_ms: int = DEFAULT_PROBE_TIMEOUT_MS,
    probe_path: str = DEFAULT_PROBE_PATH,
    on_result: ResultListener | None = None,
) -> CycleSummary:
    """Check every service concurrently and summarize; all-or-nothing per cycle."""
    services = tuple(services)
    if client is not None:
        return await _run_with_client(
            services, client, timeout_ms=timeout_ms, probe_path=probe_path, on_result=on_result
        )
    async with httpx.AsyncClient() as own_client:
        return await _run_with_client(
            services, own_client, timeout_ms=timeout_ms, probe_path=probe_path, on_result=on_result
        )
