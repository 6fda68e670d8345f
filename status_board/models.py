from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


class ServiceStatus(str, Enum):
    OPERATIONAL = "operational"
    DOWN = "down"
    # Part of the taxonomy the aggregator understands; probes never produce it.
    UNKNOWN = "unknown"


class OverallStatus(str, Enum):
    OPERATIONAL = "operational"
    DEGRADED = "degraded"
    DOWN = "down"
    LOADING = "loading"


class ProbeResolution(str, Enum):
    REACHABLE = "reachable"
    TIMED_OUT = "timed_out"


SERVICE_KINDS = ("website", "api", "database")


@dataclass(frozen=True)
class ServiceDescriptor:
    name: str
    url: str
    description: str = ""
    category: str = ""
    # Display metadata only (icon choice); never read by the engine.
    kind: str = "website"


@dataclass(frozen=True)
class ServiceCategory:
    name: str
    services: tuple[ServiceDescriptor, ...] = ()


@dataclass(frozen=True)
class ProbeOutcome:
    """
    Result of one timed reachability attempt.

    Exactly one of {reachable, timed out} holds: a probe either heard back
    from the origin (any response, including an error) or the deadline won.
    """

    resolution: ProbeResolution
    elapsed_ms: int

    @property
    def reachable(self) -> bool:
        return self.resolution is ProbeResolution.REACHABLE

    @property
    def timed_out(self) -> bool:
        return self.resolution is ProbeResolution.TIMED_OUT

    @classmethod
    def reached(cls, elapsed_ms: int) -> ProbeOutcome:
        return cls(resolution=ProbeResolution.REACHABLE, elapsed_ms=int(elapsed_ms))

    @classmethod
    def timeout(cls, elapsed_ms: int) -> ProbeOutcome:
        return cls(resolution=ProbeResolution.TIMED_OUT, elapsed_ms=int(elapsed_ms))


@dataclass(frozen=True)
class ServiceResult:
    service: ServiceDescriptor
    status: ServiceStatus
    response_time_ms: int | None
    detail: str = ""

    def to_dict(self) -> dict[str, object]:
        return {
            "name": self.service.name,
            "url": self.service.url,
            "description": self.service.description,
            "category": self.service.category,
            "kind": self.service.kind,
            "status": self.status.value,
            "response_time_ms": self.response_time_ms,
            "detail": self.detail,
        }


@dataclass(frozen=True)
class CycleSummary:
    overall_status: OverallStatus
    message: str
    results: tuple[ServiceResult, ...] = ()
    completed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def loading(cls) -> CycleSummary:
        return cls(overall_status=OverallStatus.LOADING, message="Checking services...")

    def to_dict(self) -> dict[str, object]:
        return {
            "overall_status": self.overall_status.value,
            "message": self.message,
            "completed_at": self.completed_at.isoformat(),
            "results": [r.to_dict() for r in self.results],
        }


def flatten_categories(categories: list[ServiceCategory] | tuple[ServiceCategory, ...]) -> tuple[ServiceDescriptor, ...]:
    """Ordered service list: category order first, then service order within each category."""
    return tuple(service for category in categories for service in category.services)
