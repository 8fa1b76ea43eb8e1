"""A virtual user replays the scenario once, one request at a time."""

import asyncio
from datetime import timedelta

import structlog

from loadtester.scenarios.models import RequestSpec, Scenario

from .executor import RequestExecutor
from .models import CollectorMessage, RequestResult

logger = structlog.get_logger()


class VirtualUser:
    """Sequential replay of one scenario, modelling a single human session.

    Request ``i + 1`` is issued only after request ``i`` has returned and its
    think time has elapsed. The outbox is the only way out of the user.
    """

    def __init__(
        self,
        user_id: int,
        scenario: Scenario,
        executor: RequestExecutor,
        outbox: "asyncio.Queue[CollectorMessage]",
    ) -> None:
        self.user_id = user_id
        self._scenario = scenario
        self._executor = executor
        self._outbox = outbox

    async def run(self) -> int:
        """Replay the scenario and return the number of results emitted."""
        emitted = 0
        for spec in self._scenario.requests:
            result = await self._execute(spec)
            self._outbox.put_nowait(result)
            emitted += 1

            if spec.think_time_ms > 0:
                await asyncio.sleep(spec.think_time_ms / 1000.0)

        logger.debug("virtual_user_finished", user_id=self.user_id, results=emitted)
        return emitted

    async def _execute(self, spec: RequestSpec) -> RequestResult:
        try:
            return await self._executor.execute(spec, user_id=self.user_id)
        except Exception as exc:
            logger.exception("request_execution_failed", user_id=self.user_id, request=spec.name)
            return RequestResult(
                request_name=spec.name,
                success=False,
                status_code=0,
                duration=timedelta(0),
                error=f"{type(exc).__name__}: {exc}",
                user_id=self.user_id,
            )
