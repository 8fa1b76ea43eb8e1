"""Load-generation engine."""

from .collector import EndpointStats, ResultCollector
from .coordinator import RampUpCoordinator, RunPhase, compute_start_offsets
from .executor import RequestExecutor
from .models import RequestResult, UserEvent, UserEventKind
from .report import LoadTestReport, percentile_95, render_report
from .virtual_user import VirtualUser

__all__ = [
    "EndpointStats",
    "LoadTestReport",
    "RampUpCoordinator",
    "RequestExecutor",
    "RequestResult",
    "ResultCollector",
    "RunPhase",
    "UserEvent",
    "UserEventKind",
    "VirtualUser",
    "compute_start_offsets",
    "percentile_95",
    "render_report",
]
