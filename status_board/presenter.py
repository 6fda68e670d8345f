"""
View helpers for the status dashboard.

Everything here only consumes engine output (ServiceResult / CycleSummary);
nothing in the engine depends on this module.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Sequence

import structlog

from status_board.models import CycleSummary, OverallStatus, ServiceCategory, ServiceDescriptor, ServiceResult, ServiceStatus


logger = structlog.get_logger(__name__)

STATUS_LABELS = {
    ServiceStatus.OPERATIONAL: "Operational",
    ServiceStatus.DOWN: "Timeout",
    ServiceStatus.UNKNOWN: "Unknown",
}


def format_ms(value: Any) -> str:
    try:
        if value is None:
            return "n/a"
        return f"{int(round(float(value)))}ms"
    except Exception:
        return "n/a"


def format_timestamp(value: datetime | None) -> str:
    if value is None:
        return "never"
    return value.strftime("%Y-%m-%d %H:%M:%S %Z").strip()


def build_status_report(summary: CycleSummary) -> str:
    lines = [
        f"Status: {summary.overall_status.value.upper()} - {summary.message}",
        f"Checked: {format_timestamp(summary.completed_at)}",
    ]

    category = None
    for result in summary.results:
        if result.service.category != category:
            category = result.service.category
            lines.append("")
            lines.append(f"{category or 'Services'}:")
        label = STATUS_LABELS.get(result.status, result.status.value)
        if result.status is ServiceStatus.OPERATIONAL:
            lines.append(f"- {result.service.name}: {label} {format_ms(result.response_time_ms)}")
        else:
            lines.append(f"- {result.service.name}: {label} ({result.detail or result.status.value})")

    return "\n".join(lines).strip() + "\n"


class ConsolePresenter:
    """Logs per-service updates and cycle summaries."""

    def on_result(self, result: ServiceResult) -> None:
        logger.info(
            "Service status",
            service=result.service.name,
            status=result.status.value,
            response_time=format_ms(result.response_time_ms),
        )

    def on_summary(self, summary: CycleSummary) -> None:
        if summary.overall_status is OverallStatus.LOADING:
            logger.info("Checking services")
            return
        log = logger.info if summary.overall_status is OverallStatus.OPERATIONAL else logger.warning
        log(
            "Overall status",
            overall_status=summary.overall_status.value,
            message=summary.message,
            completed_at=summary.completed_at.isoformat(),
        )


def _service_card(service: ServiceDescriptor, result: ServiceResult | None, *, running: bool) -> dict[str, Any]:
    card: dict[str, Any] = {
        "name": service.name,
        "url": service.url,
        "description": service.description,
        "kind": service.kind,
    }
    if result is None or running:
        card.update(status_class="checking", status_text="Checking...", detail="")
    elif result.status is ServiceStatus.OPERATIONAL:
        card.update(
            status_class=result.status.value,
            status_text=STATUS_LABELS[result.status],
            detail=f"Response time: {format_ms(result.response_time_ms)}",
        )
    else:
        card.update(status_class=result.status.value, status_text=STATUS_LABELS[result.status], detail=result.detail)
    return card


def build_dashboard_context(
    categories: Sequence[ServiceCategory],
    summary: CycleSummary | None,
    *,
    running: bool,
    title: str = "Service Status",
) -> dict[str, Any]:
    """Template variables for ``dashboard.html``; escaping is left to the template engine."""
    by_name: dict[str, ServiceResult] = {}
    if summary is not None:
        by_name = {r.service.name: r for r in summary.results}

    if running or summary is None:
        overall_class = OverallStatus.LOADING.value
        overall_text = "Checking services..."
    else:
        overall_class = summary.overall_status.value
        overall_text = summary.message

    return {
        "title": title,
        "overall_class": overall_class,
        "overall_text": overall_text,
        "categories": [
            {
                "name": category.name,
                "services": [_service_card(s, by_name.get(s.name), running=running) for s in category.services],
            }
            for category in categories
        ],
        "last_updated": format_timestamp(summary.completed_at) if summary is not None else "never",
        "running": running,
    }
