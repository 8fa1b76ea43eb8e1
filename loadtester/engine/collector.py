"""Result collector: the single owner of all aggregate run state.

Virtual users only ever put messages on :attr:`ResultCollector.outbox`; the
collector task drains it one message at a time, so no two results are folded
concurrently and no locks are needed anywhere else.
"""

import asyncio
import statistics
from dataclasses import dataclass, field
from datetime import UTC, datetime

import structlog

from .models import CollectorMessage, RequestResult, UserEvent, UserEventKind
from .report import (
    MAX_ERROR_SAMPLES,
    EndpointReport,
    ErrorSample,
    LoadTestReport,
    UserSummary,
    percentile_95,
    success_rate,
)

logger = structlog.get_logger()


@dataclass
class EndpointStats:
    """Running statistics for one request name."""

    count: int = 0
    success_count: int = 0
    durations_ms: list[float] = field(default_factory=list)
    error_samples: list[ErrorSample] = field(default_factory=list)

    def add(self, result: RequestResult) -> None:
        self.count += 1
        self.durations_ms.append(result.duration_ms)
        if result.success:
            self.success_count += 1
        elif len(self.error_samples) < MAX_ERROR_SAMPLES:
            self.error_samples.append(
                ErrorSample(status_code=result.status_code, error=result.error)
            )

    def to_report(self, name: str) -> EndpointReport:
        durations = self.durations_ms
        return EndpointReport(
            name=name,
            count=self.count,
            success_count=self.success_count,
            failure_count=self.count - self.success_count,
            success_rate_pct=success_rate(self.success_count, self.count),
            avg_ms=round(statistics.fmean(durations), 2) if durations else 0.0,
            min_ms=round(min(durations), 2) if durations else 0.0,
            max_ms=round(max(durations), 2) if durations else 0.0,
            p95_ms=round(percentile_95(durations), 2),
            error_samples=list(self.error_samples),
        )


_CLOSE = object()


class ResultCollector:
    def __init__(self, expected_users: int = 0) -> None:
        self.outbox: asyncio.Queue = asyncio.Queue()
        self.started_at = datetime.now(UTC)
        self._stats: dict[str, EndpointStats] = {}
        self._users = UserSummary(expected=expected_users)
        self._report: LoadTestReport | None = None

    # ---- ingestion -----------------------------------------------------------

    async def run(self) -> None:
        """Drain the outbox until :meth:`close` is called."""
        while True:
            message = await self.outbox.get()
            if message is _CLOSE:
                return
            self.ingest(message)

    def close(self) -> None:
        self.outbox.put_nowait(_CLOSE)

    def ingest(self, message: CollectorMessage) -> None:
        if self._report is not None:
            logger.warning("late_message_dropped", message=repr(message))
            return
        if isinstance(message, RequestResult):
            self._stats.setdefault(message.request_name, EndpointStats()).add(message)
        elif isinstance(message, UserEvent):
            self._record_user_event(message)
        else:
            logger.warning("unknown_message_dropped", message=repr(message))

    def _record_user_event(self, event: UserEvent) -> None:
        users = self._users
        if event.kind is UserEventKind.STARTED:
            users.started += 1
        elif event.kind is UserEventKind.COMPLETED:
            users.completed += 1
        elif event.kind is UserEventKind.FAILED:
            users.failed += 1
        elif event.kind is UserEventKind.CANCELLED:
            users.cancelled += 1

    # ---- read side -----------------------------------------------------------

    @property
    def users(self) -> UserSummary:
        return self._users.model_copy()

    def stats(self, request_name: str) -> EndpointStats | None:
        return self._stats.get(request_name)

    @property
    def report(self) -> LoadTestReport | None:
        return self._report

    def generate_report(self, elapsed_seconds: float, stopped_by: str) -> LoadTestReport:
        """Freeze the aggregate state into the final report. Call exactly once."""
        if self._report is not None:
            raise RuntimeError("report already generated for this run")

        total = sum(s.count for s in self._stats.values())
        successful = sum(s.success_count for s in self._stats.values())
        self._report = LoadTestReport(
            started_at=self.started_at,
            elapsed_seconds=round(elapsed_seconds, 3),
            stopped_by=stopped_by,
            total_requests=total,
            successful_requests=successful,
            failed_requests=total - successful,
            users=self._users.model_copy(),
            endpoints=[stats.to_report(name) for name, stats in self._stats.items()],
        )
        logger.info(
            "report_generated",
            total_requests=total,
            successful_requests=successful,
            endpoints=len(self._stats),
        )
        return self._report
