"""
In-process renewal control loop.

Runs one cycle immediately on start, then one every interval, alongside the
request-serving code in the same event loop.
"""

import asyncio
import contextlib
from collections.abc import Awaitable, Callable
from typing import Any

import structlog

logger = structlog.get_logger(__name__)


class RenewalScheduler:
    """Periodic driver for ``RenewalService.run_cycle``."""

    def __init__(
        self,
        run_cycle: Callable[[], Awaitable[Any]],
        interval_seconds: float,
    ) -> None:
        self._run_cycle = run_cycle
        self.interval_seconds = interval_seconds
        self._task: asyncio.Task[None] | None = None
        self._stopping = asyncio.Event()
        self.cycles_run = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._stopping = asyncio.Event()
        self._task = asyncio.create_task(self._loop(), name="billing-renewal-scheduler")
        logger.info("billing.scheduler.started", interval_seconds=self.interval_seconds)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stopping.set()
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("billing.scheduler.stopped", cycles_run=self.cycles_run)

    async def run_once(self) -> None:
        """Run one cycle; a failing cycle is logged and does not stop the loop."""
        try:
            await self._run_cycle()
        except Exception:
            logger.exception("billing.scheduler.cycle_failed")
        finally:
            self.cycles_run += 1

    async def _loop(self) -> None:
        while not self._stopping.is_set():
            await self.run_once()
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(self._stopping.wait(), timeout=self.interval_seconds)


__all__ = ["RenewalScheduler"]
