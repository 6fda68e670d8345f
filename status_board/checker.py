from __future__ import annotations

from typing import Callable

import httpx
import structlog

from status_board.models import ProbeOutcome, ServiceDescriptor, ServiceResult, ServiceStatus
from status_board.probe import DEFAULT_PROBE_PATH, DEFAULT_PROBE_TIMEOUT_MS, ProbeTargetError, probe


logger = structlog.get_logger(__name__)

ResultListener = Callable[[ServiceResult], None]


def classify_outcome(service: ServiceDescriptor, outcome: ProbeOutcome) -> ServiceResult:
    """Pure mapping from a probe outcome to a per-service result."""
    if outcome.reachable:
        return ServiceResult(
            service=service,
            status=ServiceStatus.OPERATIONAL,
            response_time_ms=int(outcome.elapsed_ms),
            detail=f"Response time: {int(outcome.elapsed_ms)}ms",
        )
    return ServiceResult(
        service=service,
        status=ServiceStatus.DOWN,
        response_time_ms=None,
        detail="Connection timed out",
    )


def unverified_result(service: ServiceDescriptor, reason: str) -> ServiceResult:
    return ServiceResult(
        service=service,
        status=ServiceStatus.UNKNOWN,
        response_time_ms=None,
        detail=reason,
    )


def notify_listener(listener: Callable | None, payload: object) -> None:
    # Presenter failures must never leak into engine results.
    if listener is None:
        return
    try:
        listener(payload)
    except Exception:
        logger.exception("Status listener failed", listener=getattr(listener, "__name__", repr(listener)))


class ServiceChecker:
    """Probes one service and classifies the outcome."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        timeout_ms: int = DEFAULT_PROBE_TIMEOUT_MS,
        probe_path: str = DEFAULT_PROBE_PATH,
        on_result: ResultListener | None = None,
    ):
        self.client = client
        self.timeout_ms = int(timeout_ms)
        self.probe_path = probe_path
        self.on_result = on_result

    async def check(self, service: ServiceDescriptor) -> ServiceResult:
        try:
            outcome = await probe(
                service.url,
                self.timeout_ms,
                client=self.client,
                probe_path=self.probe_path,
            )
        except ProbeTargetError as exc:
            logger.warning("Service URL rejected", service=service.name, url=service.url, error=str(exc))
            result = unverified_result(service, f"Invalid service URL: {exc}")
        except Exception as exc:
            logger.exception("Service check failed", service=service.name, url=service.url)
            result = unverified_result(service, f"Check failed: {type(exc).__name__}: {exc}")
        else:
            result = classify_outcome(service, outcome)
            logger.debug(
                "Service checked",
                service=service.name,
                status=result.status.value,
                elapsed_ms=outcome.elapsed_ms,
            )

        notify_listener(self.on_result, result)
        return result
