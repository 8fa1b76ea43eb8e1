"""End-of-run report model and its console rendering."""

import math
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

MAX_ERROR_SAMPLES = 5


def percentile_95(durations_ms: list[float]) -> float:
    """Nearest-rank 95th percentile with the index clamped to the last element."""
    if not durations_ms:
        return 0.0
    ordered = sorted(durations_ms)
    index = min(math.floor(len(ordered) * 0.95), len(ordered) - 1)
    return ordered[index]


def success_rate(success_count: int, count: int) -> float:
    if count == 0:
        return 0.0
    return round(success_count / count * 100, 2)


class ErrorSample(BaseModel):
    status_code: int
    error: str | None = None


class EndpointReport(BaseModel):
    name: str
    count: int
    success_count: int
    failure_count: int
    success_rate_pct: float
    avg_ms: float
    min_ms: float
    max_ms: float
    p95_ms: float
    error_samples: list[ErrorSample] = Field(default_factory=list)


class UserSummary(BaseModel):
    """Genuine per-user lifecycle counts, independent of the deadline."""

    expected: int
    started: int = 0
    completed: int = 0
    failed: int = 0
    cancelled: int = 0

    @property
    def not_started(self) -> int:
        return max(self.expected - self.started, 0)


class LoadTestReport(BaseModel):
    started_at: datetime
    elapsed_seconds: float
    stopped_by: Literal["deadline", "completion"]
    total_requests: int
    successful_requests: int
    failed_requests: int
    users: UserSummary
    endpoints: list[EndpointReport] = Field(default_factory=list)

    def endpoint(self, name: str) -> EndpointReport | None:
        return next((ep for ep in self.endpoints if ep.name == name), None)


def render_report(report: LoadTestReport) -> str:
    users = report.users
    lines = [
        "",
        "========== LOAD TEST REPORT ==========",
        f"Test Duration: {report.elapsed_seconds:.2f} seconds (stopped by {report.stopped_by})",
        f"Total Requests: {report.total_requests}",
        f"Successful Requests: {report.successful_requests}",
        f"Failed Requests: {report.failed_requests}",
        (
            f"Virtual Users: {users.expected} expected, {users.started} started, "
            f"{users.completed} completed, {users.failed} failed, "
            f"{users.cancelled} cancelled, {users.not_started} not started"
        ),
        "",
        "---------- BY ENDPOINT ----------",
    ]
    for ep in report.endpoints:
        lines += [
            "",
            f"Endpoint: {ep.name}",
            f"  Requests: {ep.count}",
            f"  Success Rate: {ep.success_rate_pct:.2f}%",
            f"  Avg Response: {ep.avg_ms:.2f} ms",
            f"  Min Response: {ep.min_ms:.2f} ms",
            f"  Max Response: {ep.max_ms:.2f} ms",
            f"  95th Percentile: {ep.p95_ms:.2f} ms",
        ]
        if ep.error_samples:
            lines.append("  Error Samples:")
            lines += [
                f"    Status: {sample.status_code}, Error: {sample.error}"
                for sample in ep.error_samples
            ]
    return "\n".join(lines)
