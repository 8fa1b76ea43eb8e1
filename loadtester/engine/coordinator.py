"""Ramp-up coordinator: staggers virtual users and enforces the hard deadline."""

import asyncio
import time
from enum import StrEnum

import httpx
import structlog

from loadtester.config import LoadTestConfig
from loadtester.scenarios.models import Scenario

from .collector import ResultCollector
from .executor import RequestExecutor, create_client
from .models import CollectorMessage, UserEvent, UserEventKind
from .report import LoadTestReport
from .virtual_user import VirtualUser

logger = structlog.get_logger()


class RunPhase(StrEnum):
    IDLE = "idle"
    SPAWNING = "spawning"
    RUNNING = "running"
    STOPPED = "stopped"


def compute_start_offsets(concurrent_users: int, ramp_up_seconds: float) -> list[int]:
    """Start offset in milliseconds for each user index.

    ``floor(i / (users / ramp_up) * 1000)``, evaluated as ``i * ramp_up * 1000
    // users`` to stay exact for integer inputs. A zero ramp-up starts every
    user immediately.
    """
    if concurrent_users < 1:
        raise ValueError(f"concurrent_users must be >= 1, got {concurrent_users}")
    if ramp_up_seconds < 0:
        raise ValueError(f"ramp_up_seconds must be >= 0, got {ramp_up_seconds}")
    if ramp_up_seconds == 0:
        return [0] * concurrent_users
    return [int(i * ramp_up_seconds * 1000 // concurrent_users) for i in range(concurrent_users)]


class RampUpCoordinator:
    """Drives one load-test run from spawn to report.

    Phases only move forward: idle -> spawning -> running -> stopped. When the
    deadline fires, users still replaying (or still waiting for their start
    offset) are cancelled; results they already emitted are kept. If every
    user finishes first the run stops early.
    """

    def __init__(
        self,
        config: LoadTestConfig,
        scenario: Scenario,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config
        self.scenario = scenario
        self._transport = transport
        self._phase = RunPhase.IDLE
        self._user_tasks: list[asyncio.Task[None]] = []
        self.collector: ResultCollector | None = None

    @property
    def phase(self) -> RunPhase:
        return self._phase

    def _advance(self, phase: RunPhase) -> None:
        order = list(RunPhase)
        if order.index(phase) <= order.index(self._phase):
            raise RuntimeError(f"cannot move from {self._phase} to {phase}")
        logger.debug("coordinator_phase", previous=str(self._phase), phase=str(phase))
        self._phase = phase

    # ---- user lifecycle ------------------------------------------------------

    @property
    def outbox(self) -> "asyncio.Queue[CollectorMessage]":
        if self.collector is None:
            raise RuntimeError("the run has not started; no collector yet")
        return self.collector.outbox

    def create_user(self, user_id: int, client: httpx.AsyncClient) -> VirtualUser:
        executor = RequestExecutor(
            client,
            self.config.base_url,
            max_error_body_chars=self.config.max_error_body_chars,
        )
        return VirtualUser(user_id, self.scenario, executor, self.outbox)

    async def _run_user(self, user_id: int) -> None:
        outbox = self.outbox
        outbox.put_nowait(UserEvent(user_id, UserEventKind.STARTED))
        try:
            async with create_client(self.config, self._transport) as client:
                await self.create_user(user_id, client).run()
        except asyncio.CancelledError:
            outbox.put_nowait(UserEvent(user_id, UserEventKind.CANCELLED))
            raise
        except Exception:
            # Only this user's replay ends; other users and the run carry on.
            logger.exception("virtual_user_crashed", user_id=user_id)
            outbox.put_nowait(UserEvent(user_id, UserEventKind.FAILED))
        else:
            outbox.put_nowait(UserEvent(user_id, UserEventKind.COMPLETED))

    async def _spawn_users(self, offsets_ms: list[int], start: float) -> None:
        for user_id, offset_ms in enumerate(offsets_ms):
            delay = start + offset_ms / 1000.0 - time.monotonic()
            if delay > 0:
                await asyncio.sleep(delay)
            task = asyncio.create_task(self._run_user(user_id), name=f"user-{user_id}")
            self._user_tasks.append(task)

    # ---- main execution ------------------------------------------------------

    async def run(self) -> LoadTestReport:
        """Execute the run and return the frozen report."""
        cfg = self.config
        if self._phase is not RunPhase.IDLE:
            raise RuntimeError("a coordinator runs exactly one load test")

        self.collector = ResultCollector(expected_users=cfg.concurrent_users)
        collector_task = asyncio.create_task(self.collector.run(), name="result-collector")
        offsets = compute_start_offsets(cfg.concurrent_users, cfg.ramp_up_seconds)

        logger.info(
            "load_test_starting",
            base_url=cfg.base_url,
            concurrent_users=cfg.concurrent_users,
            duration_seconds=cfg.duration_seconds,
            ramp_up_seconds=cfg.ramp_up_seconds,
            requests_per_user=len(self.scenario.requests),
        )

        start = time.monotonic()
        self._advance(RunPhase.SPAWNING)
        spawner = asyncio.create_task(self._spawn_users(offsets, start), name="spawner")
        stopped_by = "completion"
        try:
            async with asyncio.timeout(cfg.duration_seconds):
                await spawner
                self._advance(RunPhase.RUNNING)
                await asyncio.gather(*self._user_tasks)
        except TimeoutError:
            stopped_by = "deadline"
            if self._phase is RunPhase.SPAWNING:
                self._advance(RunPhase.RUNNING)
        finally:
            pending = [t for t in (spawner, *self._user_tasks) if not t.done()]
            for task in pending:
                task.cancel()
            if pending:
                logger.info("cancelling_in_flight_users", count=len(pending))
                await asyncio.gather(*pending, return_exceptions=True)

        elapsed = time.monotonic() - start
        self._advance(RunPhase.STOPPED)
        self.collector.close()
        await collector_task

        logger.info("load_test_stopped", stopped_by=stopped_by, elapsed_seconds=round(elapsed, 3))
        return self.collector.generate_report(elapsed, stopped_by)
