from __future__ import annotations

import asyncio
import logging
from typing import Optional

from .ingest import CycleReport, IngestionCycle

LOGGER = logging.getLogger("polymarket_mirror.scheduler")


class IngestionScheduler:
    """Run an :class:`IngestionCycle` at start-up and then at a fixed rate.

    Ticks are measured from start, not from the end of the previous cycle.
    A tick that lands while a cycle is still running is skipped.
    """

    def __init__(self, cycle: IngestionCycle, interval: float) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._cycle = cycle
        self.interval = interval
        self.skipped = 0
        self.last_report: Optional[CycleReport] = None
        self._task: Optional[asyncio.Task] = None
        self._inflight: Optional[asyncio.Task] = None
        self._stopping = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._stopping.clear()
        self._task = asyncio.create_task(self._run_loop(), name="ingestion-scheduler")
        LOGGER.info("Scheduler started; interval %.1fs", self.interval)

    def tick(self) -> bool:
        if self._inflight is not None and not self._inflight.done():
            self.skipped += 1
            LOGGER.warning("Previous ingestion cycle still running; skipping tick")
            return False
        self._inflight = asyncio.create_task(self._run_cycle(), name="ingestion-cycle")
        return True

    async def _run_cycle(self) -> None:
        report = await self._cycle.run()
        if report is not None:
            self.last_report = report

    async def _run_loop(self) -> None:
        loop = asyncio.get_running_loop()
        next_tick = loop.time()
        while not self._stopping.is_set():
            self.tick()
            next_tick += self.interval
            delay = max(0.0, next_tick - loop.time())
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass

    async def stop(self) -> None:
        self._stopping.set()
        if self._task is not None:
            await self._task
            self._task = None
        if self._inflight is not None:
            await self._inflight
            self._inflight = None
        LOGGER.info("Scheduler stopped")
