"""SweepScheduler — runs the timeout sweep on a fixed interval inside the API process.

Started and stopped from the FastAPI lifespan when P2P_SWEEP_ENABLED. Deployments
that trigger sweeps externally (cron hitting POST /admin/p2p/sweep) leave it off.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable

from src.p2p_sweeper.sweeper import SweepResult

logger = logging.getLogger(__name__)


class SweepScheduler:
    def __init__(
        self,
        sweep: Callable[[], Awaitable[SweepResult]],
        interval_seconds: float,
    ) -> None:
        self._sweep = sweep
        self._interval = interval_seconds
        self._task: asyncio.Task[None] | None = None
        self.running = False
        self.last_result: SweepResult | None = None

    async def start(self) -> None:
        if self._task is not None:
            return
        self.running = True
        self._task = asyncio.create_task(self._loop(), name="p2p-timeout-sweep")
        logger.info("Timeout sweeper started (every %ss)", self._interval)

    async def stop(self) -> None:
        self.running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Timeout sweeper stopped")

    async def _loop(self) -> None:
        while self.running:
            try:
                self.last_result = await self._sweep()
            except asyncio.CancelledError:
                raise
            except Exception:
                # Next tick retries; per-trade failures are already isolated by the sweep
                logger.exception("Timeout sweep run failed")
            await asyncio.sleep(self._interval)
