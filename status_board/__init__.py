"""Client-side status dashboard: probe services, aggregate their health."""

from status_board.aggregator import derive_overall_status, run_cycle
from status_board.checker import ServiceChecker, classify_outcome
from status_board.models import (
    CycleSummary,
    OverallStatus,
    ProbeOutcome,
    ProbeResolution,
    ServiceCategory,
    ServiceDescriptor,
    ServiceResult,
    ServiceStatus,
)
from status_board.probe import ProbeTargetError, build_probe_target, probe
from status_board.scheduler import CycleScheduler, SchedulerState

__all__ = [
    "CycleScheduler",
    "CycleSummary",
    "OverallStatus",
    "ProbeOutcome",
    "ProbeResolution",
    "ProbeTargetError",
    "SchedulerState",
    "ServiceCategory",
    "ServiceChecker",
    "ServiceDescriptor",
    "ServiceResult",
    "ServiceStatus",
    "build_probe_target",
    "classify_outcome",
    "derive_overall_status",
    "probe",
    "run_cycle",
]
